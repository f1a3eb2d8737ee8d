"""
Raw SDSS stamp reading and photometric calibration.

A stamp is one small FITS cutout per band, named
``stamp-<band>-<stamp_id>.fits``, whose primary header carries the
calibration constants (``CALIB``, ``SKY``, ``GAIN``), the Gaussian-mixture
PSF coefficients (``PSF_P0..PSF_P17``) and the provenance triple
(``RUN``, ``CAMCOL``, ``FIELD``).
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Mapping, Optional

import numpy as np
from astropy.io import fits

from ..core.config import BAND_LETTERS, N_BANDS
from ..core.errors import FixtureError, MalformedValueError, ShapeMismatchError, StampIOError
from ..core.models import Image, SkyIntensity
from .coordinates import wcs_from_header
from .psf import header_float, psf_from_header

logger = logging.getLogger(__name__)


@dataclass
class RawStamp:
    """Pixels and header of one uncalibrated band stamp."""

    filepath: Path
    pixels: np.ndarray  # Detector counts (nanomaggies-scaled)
    header: fits.Header
    header_str: str
    band_letter: str
    stamp_id: str


def stamp_path(stamp_dir: Path, band_letter: str, stamp_id: str) -> Path:
    """Path of the raw stamp file for one band."""
    return Path(stamp_dir) / f"stamp-{band_letter}-{stamp_id}.fits"


def read_raw_stamp(stamp_dir: Path, band_letter: str, stamp_id: str) -> RawStamp:
    """
    Read one raw band stamp.

    Parameters
    ----------
    stamp_dir : Path
        Directory containing ``stamp-*.fits`` files.
    band_letter : str
        Band letter, one of ``ugriz``.
    stamp_id : str
        Stamp identifier, e.g. ``"164.4311-39.0359_2kpsf"``.

    Returns
    -------
    RawStamp
        Pixels, header and raw header string of the primary HDU.

    Raises
    ------
    StampIOError
        If the file cannot be opened or holds no image data.
    """
    filepath = stamp_path(stamp_dir, band_letter, stamp_id)
    logger.debug(f"Reading raw stamp: {filepath}")

    try:
        with fits.open(filepath) as hdulist:
            hdu = hdulist[0]
            if hdu.data is None:
                raise StampIOError("Primary HDU holds no image data", path=str(filepath))
            pixels = np.array(hdu.data, dtype=np.float64)
            header = hdu.header.copy()
            header_str = header.tostring()
    except OSError as e:
        if isinstance(e, StampIOError):
            raise e.with_context(band=band_letter, stamp_id=stamp_id)
        raise StampIOError(f"Cannot read stamp: {e}", path=str(filepath), band=band_letter, stamp_id=stamp_id) from e

    return RawStamp(
        filepath=filepath,
        pixels=pixels,
        header=header,
        header_str=header_str,
        band_letter=band_letter,
        stamp_id=stamp_id,
    )


def _as_fits_header(header: Mapping[str, Any]) -> fits.Header:
    if isinstance(header, fits.Header):
        return header
    return fits.Header(list(header.items()))


def calibrate_stamp(
    pixels: np.ndarray,
    header: Mapping[str, Any],
    band: int,
    header_str: Optional[str] = None,
    stamp_id: Optional[str] = None,
) -> Image:
    """
    Convert a raw band stamp into a calibrated Image.

    Pixel values are converted to photon counts with
    ``round((raw / CALIB + SKY) * GAIN)``. The sky model is a constant
    surface at ``SKY * CALIB`` and every row carries the gain factor
    ``GAIN / CALIB``.

    Parameters
    ----------
    pixels : np.ndarray
        Raw pixel array, shape (H, W).
    header : Mapping
        Stamp header (``astropy.io.fits.Header`` or plain mapping).
    band : int
        0-based band index.
    header_str : str, optional
        Raw header card string for the WCS. Rendered from ``header`` if omitted.
    stamp_id : str, optional
        Stamp identifier, only used for error context.

    Returns
    -------
    Image
        Calibrated image.

    Raises
    ------
    MissingFieldError
        If a required header keyword is absent.
    MalformedValueError
        If a calibration constant is non-finite or non-positive, or a PSF
        covariance is not positive-definite.
    ShapeMismatchError
        If the pixel array is not 2-D or disagrees with ``NAXIS1``/``NAXIS2``.
    """
    try:
        return _calibrate(pixels, header, band, header_str)
    except FixtureError as e:
        raise e.with_context(band=band, stamp_id=stamp_id)


def _calibrate(pixels: np.ndarray, header: Mapping[str, Any], band: int, header_str: Optional[str]) -> Image:
    if not 0 <= band < N_BANDS:
        raise MalformedValueError(f"Band index must be 0-{N_BANDS - 1}, got {band}")

    raw = np.asarray(pixels, dtype=np.float64)
    if raw.ndim != 2:
        raise ShapeMismatchError(f"Stamp pixels must be 2-D, got shape {raw.shape}")
    H, W = raw.shape
    if "NAXIS1" in header and "NAXIS2" in header:
        declared = (int(header["NAXIS2"]), int(header["NAXIS1"]))
        if declared != (H, W):
            raise ShapeMismatchError(f"Pixel array shape {(H, W)} does not match declared {declared}")

    calib = header_float(header, "CALIB")
    sky = header_float(header, "SKY")
    gain = header_float(header, "GAIN")
    if calib <= 0:
        raise MalformedValueError(f"CALIB must be > 0, got {calib}")
    if gain <= 0:
        raise MalformedValueError(f"GAIN must be > 0, got {gain}")

    # Round in electron space so repeated conversions cannot drift
    dn = raw / calib + sky
    nelec = np.round(dn * gain)
    n_negative = int(np.sum(nelec < 0))
    if n_negative:
        logger.warning(f"Band {band}: {n_negative} calibrated pixels are negative")

    iota = gain / calib
    epsilon = sky * calib

    psf = psf_from_header(header)

    if header_str is None:
        header_str = _as_fits_header(header).tostring()
    wcs = wcs_from_header(header_str)

    run_num = int(round(header_float(header, "RUN")))
    camcol_num = int(round(header_float(header, "CAMCOL")))
    field_num = int(round(header_float(header, "FIELD")))

    image = Image(
        H=H,
        W=W,
        pixels=nelec,
        band=band,
        wcs=wcs,
        psf=psf,
        run_num=run_num,
        camcol_num=camcol_num,
        field_num=field_num,
        sky=SkyIntensity.constant(epsilon, H, W),
        iota_vec=np.full(H, iota),
    )

    logger.debug(
        f"Calibrated band {band}: shape ({H}, {W}), iota={iota:.4f}, epsilon={epsilon:.4f}, "
        f"run/camcol/field={run_num}/{camcol_num}/{field_num}"
    )
    return image


def load_stamp_image(stamp_dir: Path, stamp_id: str, band: int, band_letters: str = BAND_LETTERS) -> Image:
    """Read and calibrate one band of a stamp; ``band_letters[band]`` names the file."""
    raw = read_raw_stamp(stamp_dir, band_letters[band], stamp_id)
    return calibrate_stamp(raw.pixels, raw.header, band, header_str=raw.header_str, stamp_id=stamp_id)


def load_stamp_blob(
    stamp_dir: Path, stamp_id: str, max_workers: int = 1, band_letters: str = BAND_LETTERS
) -> List[Image]:
    """
    Load all five bands of a stamp as calibrated Images.

    Parameters
    ----------
    stamp_dir : Path
        Directory containing ``stamp-<band>-<stamp_id>.fits`` files.
    stamp_id : str
        Stamp identifier.
    max_workers : int
        Number of bands calibrated concurrently. 1 loads serially.
    band_letters : str
        Letters of the five bands, in image order, as used in the file names.

    Returns
    -------
    List[Image]
        One Image per band, in ``band_letters`` order.

    Raises
    ------
    FixtureError
        The first error raised by any band; no partial list is returned.
    """
    if len(band_letters) != N_BANDS:
        raise ValueError(f"band_letters must name exactly {N_BANDS} bands, got '{band_letters}'")
    logger.info(f"Loading stamp {stamp_id} from {stamp_dir}")

    def fetch_image(band: int) -> Image:
        return load_stamp_image(stamp_dir, stamp_id, band, band_letters)

    if max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            images = list(executor.map(fetch_image, range(N_BANDS)))
    else:
        images = [fetch_image(b) for b in range(N_BANDS)]

    logger.info(f"Loaded {len(images)} bands of stamp {stamp_id}, shape ({images[0].H}, {images[0].W})")
    return images
