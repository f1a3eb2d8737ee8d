"""
Thin wrappers around astropy.wcs, the coordinate-map collaborator.

No projection math lives here: headers go in, ``astropy.wcs.WCS`` objects
come out, and pixel-to-world conversion is delegated to astropy.
"""

import logging
import warnings
from contextlib import contextmanager

import numpy as np
from astropy import log as astropy_log
from astropy.io import fits
from astropy.io.fits.verify import VerifyWarning
from astropy.wcs import (
    WCS,
    FITSFixedWarning,
    InconsistentAxisTypesError,
    InvalidTransformError,
    SingularMatrixError,
)

from ..core.errors import MalformedValueError

logger = logging.getLogger(__name__)


@contextmanager
def suppress_astropy_info():
    """
    Context manager to temporarily suppress astropy INFO messages and FITS warnings.

    SDSS stamp headers carry non-standard keywords that make astropy report
    harmless header fixes every time a WCS is built.
    """
    original_level = astropy_log.level
    astropy_log.setLevel("WARNING")

    try:
        with warnings.catch_warnings():
            warnings.filterwarnings("ignore", category=VerifyWarning)
            warnings.filterwarnings("ignore", category=FITSFixedWarning)
            yield
    finally:
        astropy_log.setLevel(original_level)


def wcs_from_header(header_str: str) -> WCS:
    """
    Build the celestial coordinate map described by a FITS header string.

    Parameters
    ----------
    header_str : str
        Raw 80-column FITS header card string.

    Returns
    -------
    WCS
        Two-axis coordinate map.

    Raises
    ------
    MalformedValueError
        If the header describes no valid celestial transform.
    """
    try:
        header = fits.Header.fromstring(header_str)
        with suppress_astropy_info():
            wcs = WCS(header, naxis=2)
            # wcsset runs lazily; force it so bad CTYPE/CD cards fail here
            wcs.wcs.set()
    except (ValueError, InvalidTransformError, SingularMatrixError, InconsistentAxisTypesError) as e:
        raise MalformedValueError(f"Invalid WCS in header: {e}") from e
    logger.debug(f"Built WCS with ctype {list(wcs.wcs.ctype)}")
    return wcs


def identity_wcs() -> WCS:
    """
    Coordinate map whose world coordinates equal the 1-based pixel coordinates.

    Used to place hand-made catalog entries directly in pixel units on a
    synthetic canvas.
    """
    wcs = WCS(naxis=2)
    wcs.wcs.cd = np.array([[1.0, 0.0], [0.0, 1.0]])
    wcs.wcs.ctype = ["", ""]
    wcs.wcs.crpix = [1.0, 1.0]
    wcs.wcs.crval = [1.0, 1.0]
    return wcs


def pix_to_world(wcs: WCS, pixcoords: np.ndarray) -> np.ndarray:
    """
    Convert FITS (1-based) pixel coordinates to world coordinates.

    Parameters
    ----------
    wcs : WCS
        Coordinate map.
    pixcoords : np.ndarray
        Pixel coordinates, shape (N, 2).

    Returns
    -------
    np.ndarray
        World coordinates, shape (N, 2).
    """
    pixcoords = np.atleast_2d(np.asarray(pixcoords, dtype=np.float64))
    # Core WCS only; distortion terms are not applied
    return wcs.wcs_pix2world(pixcoords, 1)
