"""
StampFixtures: calibrated SDSS stamp and catalog fixtures for source-inference tests.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("stampfixtures")
except PackageNotFoundError:
    # Package is not installed, use fallback (for development)
    __version__ = "0.1.0"  # Sync with pyproject.toml manually for development

__author__ = "StampFixtures Team"

from .core.config import FixtureConfig
from .core.errors import FixtureError, MalformedValueError, MissingFieldError, ShapeMismatchError, StampIOError
from .core.models import CatalogEntry, Image, PsfComponent, SkyIntensity
from .processing.catalog import load_stamp_catalog, normalize_catalog, normalize_row
from .processing.stamp import calibrate_stamp, load_stamp_blob

__all__ = [
    "FixtureConfig",
    "FixtureError",
    "MalformedValueError",
    "MissingFieldError",
    "ShapeMismatchError",
    "StampIOError",
    "CatalogEntry",
    "Image",
    "PsfComponent",
    "SkyIntensity",
    "calibrate_stamp",
    "load_stamp_blob",
    "load_stamp_catalog",
    "normalize_catalog",
    "normalize_row",
]
