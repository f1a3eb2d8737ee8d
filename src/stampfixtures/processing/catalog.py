"""
Catalog normalization: raw survey catalog rows to canonical CatalogEntry records.

Raw catalogs (``cat-<stamp_id>.fits``, produced by the Tractor ``testblob2``
script) describe galaxies with two light profiles, de Vaucouleurs (``_dev``)
and exponential (``_exp``), each with its own flux, axis ratio, position
angle and effective radius. Fluxes are blended by ``frac_dev``; shape
parameters come from the dominant profile only.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from astropy.io import fits
from astropy.table import Table

from ..core.config import FixtureConfig
from ..core.errors import FixtureError, MalformedValueError, MissingFieldError, StampIOError
from ..core.models import CatalogEntry, Image

logger = logging.getLogger(__name__)

# Columns used to match catalog rows to the stamp they were cut from
PROVENANCE_COLUMNS = ("run", "camcol", "field")


class LightProfile(Enum):
    """Galaxy light profile; the value is the catalog column suffix."""

    DEV = "dev"
    EXP = "exp"

    @classmethod
    def dominant(cls, frac_dev: float, threshold: float = 0.5) -> "LightProfile":
        """Profile whose shape parameters describe a galaxy with this ``frac_dev``."""
        return cls.DEV if frac_dev > threshold else cls.EXP


@dataclass(frozen=True)
class ProfileShape:
    """Shape triple of one light profile, in raw catalog units."""

    profile: LightProfile
    axis_ratio: float
    phi_deg: float
    theta_arcsec: float

    @classmethod
    def from_row(cls, row: Mapping[str, Any], profile: LightProfile) -> "ProfileShape":
        suffix = profile.value
        return cls(
            profile=profile,
            axis_ratio=_row_float(row, f"ab_{suffix}"),
            phi_deg=_row_float(row, f"phi_{suffix}"),
            theta_arcsec=_row_float(row, f"theta_{suffix}"),
        )


def _row_float(row: Mapping[str, Any], column: str) -> float:
    if column not in row:
        raise MissingFieldError(column)
    try:
        value = float(row[column])
    except (TypeError, ValueError) as e:
        raise MalformedValueError(f"Column '{column}' is not numeric: {row[column]!r}") from e
    if not math.isfinite(value):
        raise MalformedValueError(f"Column '{column}' is not finite: {value}")
    return value


def _row_flag(row: Mapping[str, Any], column: str) -> bool:
    """Read a boolean column; only bools and integer 0/1 are accepted."""
    if column not in row:
        raise MissingFieldError(column)
    value = row[column]
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, np.integer)) and value in (0, 1):
        return bool(value)
    raise MalformedValueError(f"Column '{column}' is not a boolean flag: {value!r}")


def canonical_angle(phi_deg: float, already_target_convention: bool = True) -> float:
    """
    Convert a catalog position angle to the engine's frame.

    The angle is measured from the reference axis (``90 - phi``) and
    wrapped into ``[0, 180)`` degrees before conversion to radians. Catalogs
    whose producer uses the opposite sign convention are negated first.

    Parameters
    ----------
    phi_deg : float
        Raw position angle in degrees, any number of turns.
    already_target_convention : bool
        False when the raw angle must be negated first.

    Returns
    -------
    float
        Angle in radians, in ``[0, pi)``.
    """
    if not already_target_convention:
        phi_deg = -phi_deg

    phi90 = 90 - phi_deg
    phi90 -= math.floor(phi90 / 180) * 180
    if phi90 >= 180:
        # tiny negative inputs round up to exactly 180 in floating point
        phi90 -= 180
    return phi90 * (math.pi / 180)


def effective_radius_pixels(theta_arcsec: float, min_arcsec: float = 1.0 / 30, pixel_scale: float = 0.396) -> float:
    """Effective radius in pixels, floored at ``min_arcsec`` before conversion."""
    return max(theta_arcsec, min_arcsec) / pixel_scale


def normalize_row(
    row: Mapping[str, Any],
    already_target_convention: bool,
    objid: Optional[str] = None,
    row_index: Optional[int] = None,
    config: Optional[FixtureConfig] = None,
) -> CatalogEntry:
    """
    Build a CatalogEntry from one raw catalog row.

    Parameters
    ----------
    row : Mapping
        Raw row (pandas Series or dict) with ``ra``, ``dec``, ``is_star``,
        ``frac_dev``, per-band ``psfflux_*``/``devflux_*``/``expflux_*`` and
        the ``ab``/``phi``/``theta`` columns of both profiles.
    already_target_convention : bool
        Whether the row's position angle already uses the engine's sign
        convention.
    objid : str, optional
        Identifier used when the row has no ``objid`` column.
    row_index : int, optional
        Row position, only used for error context.
    config : FixtureConfig, optional
        Flux floor, radius floor, plate scale and dev threshold.

    Returns
    -------
    CatalogEntry

    Raises
    ------
    MissingFieldError
        If a required column is absent.
    MalformedValueError
        If a value is non-numeric, non-finite, or the entry breaks an invariant.
    """
    try:
        return _normalize(row, already_target_convention, objid, config or FixtureConfig())
    except FixtureError as e:
        raise e.with_context(row_index=row_index)


def _normalize(
    row: Mapping[str, Any], already_target_convention: bool, objid: Optional[str], config: FixtureConfig
) -> CatalogEntry:
    floor = config.flux_floor
    frac_dev = _row_float(row, "frac_dev")
    is_star = _row_flag(row, "is_star")

    star_fluxes = np.zeros(len(config.band_letters))
    gal_fluxes = np.zeros(len(config.band_letters))
    for b, bl in enumerate(config.band_letters):
        star_fluxes[b] = max(_row_float(row, f"psfflux_{bl}"), floor)
        gal_fluxes[b] = frac_dev * max(_row_float(row, f"devflux_{bl}"), floor) + (1 - frac_dev) * max(
            _row_float(row, f"expflux_{bl}"), floor
        )

    shape = ProfileShape.from_row(row, LightProfile.dominant(frac_dev, config.dev_threshold))

    if "objid" in row and not _is_missing(row["objid"]):
        objid = _as_str(row["objid"])
    if objid is None:
        raise MissingFieldError("objid")

    return CatalogEntry(
        pos=[_row_float(row, "ra"), _row_float(row, "dec")],
        is_star=is_star,
        star_fluxes=star_fluxes,
        gal_fluxes=gal_fluxes,
        gal_frac_dev=frac_dev,
        gal_ab=shape.axis_ratio,
        gal_angle=canonical_angle(shape.phi_deg, already_target_convention),
        gal_scale=effective_radius_pixels(shape.theta_arcsec, config.min_radius_arcsec, config.pixel_scale_arcsec),
        objid=objid,
        thing_id=0,
    )


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def _as_str(value: Any) -> str:
    if isinstance(value, bytes):
        value = value.decode("ascii", errors="replace")
    return str(value).strip()


@dataclass
class CatalogNormalization:
    """Entries built from a catalog table, plus the rows that failed."""

    entries: List[CatalogEntry] = field(default_factory=list)
    failures: List[FixtureError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_first(self) -> None:
        """Re-raise the first row failure, if any."""
        if self.failures:
            raise self.failures[0]


def normalize_catalog(
    df: pd.DataFrame, already_target_convention: bool, config: Optional[FixtureConfig] = None
) -> CatalogNormalization:
    """
    Normalize every row of a raw catalog table independently.

    Rows without an ``objid`` get their 1-based table position as identifier.
    A failing row is recorded in ``failures`` and does not stop the batch.
    """
    config = config or FixtureConfig()
    result = CatalogNormalization()

    # records keep per-column dtypes (iterrows would upcast integer ids to float)
    for i, row in enumerate(df.to_dict("records")):
        try:
            entry = normalize_row(row, already_target_convention, objid=str(i + 1), row_index=i, config=config)
        except FixtureError as e:
            logger.warning(f"Skipping catalog row {i}: {e}")
            result.failures.append(e)
            continue
        result.entries.append(entry)

    logger.info(f"Normalized {len(result.entries)}/{len(df)} catalog rows")
    return result


def catalog_path(cat_dir: Path, stamp_id: str) -> Path:
    """Path of the raw catalog file for a stamp."""
    return Path(cat_dir) / f"cat-{stamp_id}.fits"


def load_stamp_catalog_df(
    cat_dir: Path, stamp_id: str, images: Optional[Sequence[Image]] = None, match_blob: bool = False
) -> pd.DataFrame:
    """
    Read a raw stamp catalog into a DataFrame.

    Parameters
    ----------
    cat_dir : Path
        Directory containing ``cat-<stamp_id>.fits``.
    stamp_id : str
        Stamp identifier.
    images : Sequence[Image], optional
        Calibrated images of the stamp; required when ``match_blob`` is set.
    match_blob : bool
        Keep only rows observed in the same run/camcol/field as the r-band image.

    Returns
    -------
    pd.DataFrame
        One row per candidate source, columns as in the FITS table.

    Raises
    ------
    StampIOError
        If the catalog file cannot be read.
    MissingFieldError
        If ``match_blob`` is set and a provenance column is absent.
    """
    filepath = catalog_path(cat_dir, stamp_id)
    logger.info(f"Reading stamp catalog: {filepath}")

    try:
        with fits.open(filepath) as hdulist:
            if len(hdulist) < 2:
                raise StampIOError(f"Expected a table extension, got {len(hdulist)} HDUs", path=str(filepath))
            df = Table(hdulist[1].data).to_pandas()
    except OSError as e:
        if isinstance(e, StampIOError):
            raise e.with_context(stamp_id=stamp_id)
        raise StampIOError(f"Cannot read catalog: {e}", path=str(filepath), stamp_id=stamp_id) from e

    # FITS column names are case-insensitive; the normalizer expects lower case
    df.columns = [str(c).lower() for c in df.columns]

    if match_blob:
        if not images or len(images) <= 2:
            raise ValueError("match_blob requires the calibrated images of the stamp")
        for column in PROVENANCE_COLUMNS:
            if column not in df.columns:
                raise MissingFieldError(column, stamp_id=stamp_id)
        reference = images[2]
        matches = (
            (df["camcol"] == reference.camcol_num)
            & (df["run"] == reference.run_num)
            & (df["field"] == reference.field_num)
        )
        df = df[matches].reset_index(drop=True)
        logger.debug(f"{len(df)} catalog rows match run/camcol/field of the stamp")

    return df


def load_stamp_catalog(
    cat_dir: Path,
    stamp_id: str,
    images: Optional[Sequence[Image]] = None,
    match_blob: bool = False,
    strict: bool = True,
    config: Optional[FixtureConfig] = None,
) -> List[CatalogEntry]:
    """
    Load a stamp catalog as canonical CatalogEntry records.

    Rows selected with ``match_blob`` already use the engine's position
    angle convention; rows from the full catalog are sign-flipped.

    Parameters
    ----------
    cat_dir, stamp_id, images, match_blob
        See :func:`load_stamp_catalog_df`.
    strict : bool
        Raise the first row failure (default). When False, failing rows are
        logged and left out.
    config : FixtureConfig, optional
        Normalization constants.

    Returns
    -------
    List[CatalogEntry]
    """
    df = load_stamp_catalog_df(cat_dir, stamp_id, images, match_blob=match_blob)
    result = normalize_catalog(df, already_target_convention=match_blob, config=config)
    if strict:
        result.raise_first()
    return result.entries
