"""
Gaussian-mixture PSF assembly from flat stamp header keywords.

Stamp headers carry the 3-component PSF as 18 scalars ``PSF_P0..PSF_P17``:
three weights, three 2-vector centroid offsets and three covariance
triples. :data:`PSF_COMPONENT_FIELDS` spells out which keyword feeds which
slot, and :func:`psf_from_header` is the only consumer of that table.
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Tuple

import numpy as np

from ..core.errors import FixtureError, MalformedValueError, MissingFieldError
from ..core.models import PsfComponent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PsfSlots:
    """Header keywords feeding one PSF component."""

    weight: str
    mean: Tuple[str, str]  # (x, y) centroid offset
    cov: Tuple[str, str, str]  # (var_x, var_y, cov_xy)


PSF_COMPONENT_FIELDS: Tuple[PsfSlots, ...] = (
    PsfSlots(weight="PSF_P0", mean=("PSF_P3", "PSF_P4"), cov=("PSF_P9", "PSF_P10", "PSF_P11")),
    PsfSlots(weight="PSF_P1", mean=("PSF_P5", "PSF_P6"), cov=("PSF_P12", "PSF_P13", "PSF_P14")),
    PsfSlots(weight="PSF_P2", mean=("PSF_P7", "PSF_P8"), cov=("PSF_P15", "PSF_P16", "PSF_P17")),
)


def header_float(header: Mapping[str, Any], key: str) -> float:
    """
    Read a finite numeric header value.

    Raises
    ------
    MissingFieldError
        If ``key`` is absent.
    MalformedValueError
        If the value is not a finite number.
    """
    if key not in header:
        raise MissingFieldError(key)
    value = header[key]
    if isinstance(value, (bool, str)) or value is None:
        raise MalformedValueError(f"Header field '{key}' is not numeric: {value!r}")
    try:
        value = float(value)
    except (TypeError, ValueError) as e:
        raise MalformedValueError(f"Header field '{key}' is not numeric: {value!r}") from e
    if not np.isfinite(value):
        raise MalformedValueError(f"Header field '{key}' is not finite: {value}")
    return value


def covariance_from_triple(var_x: float, var_y: float, cov_xy: float) -> np.ndarray:
    """Symmetric 2x2 covariance ``[[var_x, cov_xy], [cov_xy, var_y]]``."""
    return np.array([[var_x, cov_xy], [cov_xy, var_y]], dtype=np.float64)


def psf_from_header(header: Mapping[str, Any]) -> Tuple[PsfComponent, ...]:
    """
    Build the 3-component PSF mixture from ``PSF_P*`` header keywords.

    Parameters
    ----------
    header : Mapping
        FITS header (or any mapping) holding ``PSF_P0..PSF_P17``.

    Returns
    -------
    Tuple[PsfComponent, ...]
        The mixture components, in header order.

    Raises
    ------
    MissingFieldError
        If any PSF keyword is absent.
    MalformedValueError
        If a value is non-numeric or a covariance is not positive-definite.
    """
    components = []
    for k, slots in enumerate(PSF_COMPONENT_FIELDS):
        try:
            weight = header_float(header, slots.weight)
            mean = np.array([header_float(header, key) for key in slots.mean])
            cov = covariance_from_triple(*(header_float(header, key) for key in slots.cov))
            components.append(PsfComponent(weight=weight, mean=mean, cov=cov))
        except FixtureError as e:
            raise e.with_context(psf_component=k)

    weights = ", ".join(f"{c.weight:.4f}" for c in components)
    logger.debug(f"Assembled {len(components)}-component PSF, weights [{weights}]")
    return tuple(components)
