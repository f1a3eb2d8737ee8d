"""
Configuration for stamp calibration, catalog normalization and dataset assembly.
"""

import logging
import os
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml

# SDSS photometric bands, in the order images and flux vectors are indexed
BAND_LETTERS = "ugriz"
N_BANDS = len(BAND_LETTERS)

# Stamp shipped with the test data directory
DEFAULT_STAMP_ID = "164.4311-39.0359_2kpsf"

# Environment variable pointing at the raw stamp/catalog directory
DATA_DIR_ENV = "STAMPFIXTURES_DATA_DIR"

logger = logging.getLogger(__name__)


def default_data_dir() -> Path:
    """Directory holding raw ``stamp-*.fits`` and ``cat-*.fits`` files."""
    env_dir = os.environ.get(DATA_DIR_ENV)
    if env_dir:
        return Path(env_dir)
    return Path.cwd() / "data"


@dataclass
class FixtureConfig:
    """
    Configuration for building calibrated test fixtures.

    Parameters
    ----------
    data_dir : Path
        Directory containing raw stamps and catalogs. Defaults to
        ``$STAMPFIXTURES_DATA_DIR`` or ``./data``.
    stamp_id : str
        Stamp identifier used by the sample dataset builders.
    band_letters : str
        Band letters in image order. Must contain exactly 5 bands.
    flux_floor : float
        Floor applied to every catalog flux (non-physical fluxes are clamped).
    min_radius_arcsec : float
        Floor applied to the effective radius before pixel conversion.
    pixel_scale_arcsec : float
        Plate scale in arcsec/pixel used for the radius conversion.
    dev_threshold : float
        ``frac_dev`` above which the de Vaucouleurs shape is used.
    max_active_sources : int
        Number of sources made active when none is requested explicitly.
    small_canvas, three_body_canvas, n_body_canvas : Tuple[int, int]
        (H, W) of the synthetic canvases used by the dataset builders.
    max_workers : int
        Worker threads used to load the bands of one stamp. 1 loads serially.
    """

    data_dir: Path = field(default_factory=default_data_dir)
    stamp_id: str = DEFAULT_STAMP_ID
    band_letters: str = BAND_LETTERS

    # Catalog normalization
    flux_floor: float = 1e-6
    min_radius_arcsec: float = 1.0 / 30
    pixel_scale_arcsec: float = 0.396
    dev_threshold: float = 0.5

    # Dataset assembly
    max_active_sources: int = 3
    small_canvas: Tuple[int, int] = (20, 23)
    three_body_canvas: Tuple[int, int] = (112, 238)
    n_body_canvas: Tuple[int, int] = (900, 1000)
    n_body_patch_radius: float = 20.0

    max_workers: int = 1

    def __post_init__(self):
        """Validate configuration parameters after initialization."""
        if isinstance(self.data_dir, str):
            self.data_dir = Path(self.data_dir)

        if len(self.band_letters) != N_BANDS:
            raise ValueError(f"band_letters must name exactly {N_BANDS} bands, got '{self.band_letters}'")

        if self.flux_floor <= 0:
            raise ValueError(f"flux_floor must be > 0, got {self.flux_floor}")
        if self.min_radius_arcsec <= 0:
            raise ValueError(f"min_radius_arcsec must be > 0, got {self.min_radius_arcsec}")
        if self.pixel_scale_arcsec <= 0:
            raise ValueError(f"pixel_scale_arcsec must be > 0, got {self.pixel_scale_arcsec}")
        if not 0 <= self.dev_threshold <= 1:
            raise ValueError(f"dev_threshold must be 0-1, got {self.dev_threshold}")

        if self.max_active_sources < 1:
            raise ValueError(f"max_active_sources must be >= 1, got {self.max_active_sources}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.n_body_patch_radius <= 0:
            raise ValueError(f"n_body_patch_radius must be > 0, got {self.n_body_patch_radius}")

        # YAML round-trips tuples as lists
        for name in ("small_canvas", "three_body_canvas", "n_body_canvas"):
            canvas = tuple(int(v) for v in getattr(self, name))
            if len(canvas) != 2 or min(canvas) <= 0:
                raise ValueError(f"{name} must be a positive (H, W) pair, got {canvas}")
            setattr(self, name, canvas)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-type view of the config (``data_dir`` as str, canvases as lists) for YAML."""
        data = asdict(self)
        data["data_dir"] = str(self.data_dir)
        for name in ("small_canvas", "three_body_canvas", "n_body_canvas"):
            data[name] = list(data[name])
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FixtureConfig":
        """Build a config from a mapping such as a parsed YAML document; unknown keys are logged and dropped."""
        known = {name: value for name, value in data.items() if name in cls.__dataclass_fields__}
        unknown = sorted(set(data) - set(known))
        if unknown:
            logger.warning(f"Ignoring unknown fixture config keys: {unknown}")
        return cls(**known)

    def to_yaml_file(self, filepath: Path) -> Path:
        """
        Write the config as YAML, creating parent directories as needed.

        Field order follows the dataclass so the file reads like the
        parameter list above.
        """
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, "w") as f:
            f.write("# StampFixtures fixture configuration\n")
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
        logger.debug(f"Wrote fixture config to {filepath}")
        return filepath

    @classmethod
    def from_yaml_file(cls, filepath: Path) -> "FixtureConfig":
        """
        Read a config written by :meth:`to_yaml_file` (or edited by hand).

        An empty file gives the defaults.

        Raises
        ------
        FileNotFoundError
            If ``filepath`` does not exist.
        ValueError
            If the document is not a mapping, or a value fails validation.
        """
        filepath = Path(filepath)
        if not filepath.is_file():
            raise FileNotFoundError(f"Config file not found: {filepath}")
        with open(filepath) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Fixture config {filepath} must hold a mapping, got {type(data).__name__}")
        return cls.from_dict(data)

    def copy_with_overrides(self, **overrides) -> "FixtureConfig":
        """
        Validated copy with some fields replaced.

        >>> FixtureConfig().copy_with_overrides(small_canvas=(40, 46)).small_canvas
        (40, 46)
        """
        return replace(self, **overrides)


def export_default_fixture_config(output_dir: Path, filename: str = "fixture_config.yaml") -> Path:
    """
    Write the default fixture settings to ``output_dir/filename``.

    Edit the file and load it back with :meth:`FixtureConfig.from_yaml_file`
    to point the dataset builders at another stamp or canvas size.
    """
    return FixtureConfig().to_yaml_file(Path(output_dir) / filename)
