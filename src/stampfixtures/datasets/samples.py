"""
Hand-made sample sources and the fixed parameter perturbation.
"""

import math
from typing import List, Sequence

import numpy as np

from ..core.interfaces import ParamIds
from ..core.models import CatalogEntry

# ugriz fluxes of a bright SDSS star
SAMPLE_STAR_FLUXES = np.array([4.451805e03, 1.491065e03, 2.264545e03, 2.027004e03, 1.846822e04])

# Galaxy fluxes, scaled up 100x so the galaxy stands out from the sky
SAMPLE_GALAXY_FLUXES = np.array([1.377666e01, 5.635334e01, 1.258656e02, 1.884264e02, 2.351820e02]) * 100

SAMPLE_STAR_FLUXES.setflags(write=False)
SAMPLE_GALAXY_FLUXES.setflags(write=False)

SAMPLE_FRAC_DEV = 0.1
SAMPLE_AXIS_RATIO = 0.7
SAMPLE_ANGLE = math.pi / 4
SAMPLE_RADIUS = 4.0


def sample_ce(pos: Sequence[float], is_star: bool) -> CatalogEntry:
    """
    Sample catalog entry at ``pos``.

    Examples
    --------
    >>> ce = sample_ce([10.1, 12.2], True)
    >>> ce.gal_angle == math.pi / 4
    True
    """
    return CatalogEntry(
        pos=pos,
        is_star=is_star,
        star_fluxes=SAMPLE_STAR_FLUXES,
        gal_fluxes=SAMPLE_GALAXY_FLUXES,
        gal_frac_dev=SAMPLE_FRAC_DEV,
        gal_ab=SAMPLE_AXIS_RATIO,
        gal_angle=SAMPLE_ANGLE,
        gal_scale=SAMPLE_RADIUS,
        objid="sample",
        thing_id=0,
    )


def perturb_params(vp: List[np.ndarray], ids: ParamIds) -> List[np.ndarray]:
    """
    Move parameter vectors away from the ground truth, in place.

    At the truth every derivative of the objective is zero; these fixed
    offsets give tests non-trivial gradients to check.

    Parameters
    ----------
    vp : List[np.ndarray]
        One parameter vector per source.
    ids : ParamIds
        Parameter layout of the engine.

    Returns
    -------
    List[np.ndarray]
        ``vp``, modified in place.
    """
    for vs in vp:
        vs[ids.a] = [0.4, 0.6]
        vs[ids.u[0]] += 0.8
        vs[ids.u[1]] -= 0.7
        vs[ids.r1] -= math.log(10)
        vs[ids.r2] *= 25.0
        vs[ids.e_dev] += 0.05
        vs[ids.e_axis] += 0.05
        vs[ids.e_angle] += math.pi / 10
        vs[ids.e_scale] *= 1.2
        vs[ids.c1] += 0.5
        vs[ids.c2] = 1e-1
    return vp
