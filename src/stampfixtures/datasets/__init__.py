"""
Synthetic datasets for testing the inference engine.

Builders load the calibrated sample stamp, move it onto a synthetic canvas,
place a small known catalog, and hand everything to the engine. The engine
and the scene compositor are supplied by the caller (see
:mod:`stampfixtures.core.interfaces`).

Examples
--------
>>> from stampfixtures.datasets import DatasetBuilder
>>> builder = DatasetBuilder(engine, compositor)
>>> ea, vp, catalog = builder.gen_sample_star_dataset()
>>> len(catalog)
1
"""

from .assembly import (
    DatasetBuilder,
    DatasetBundle,
    make_elbo_args,
    select_active_sources,
)
from .samples import (
    SAMPLE_GALAXY_FLUXES,
    SAMPLE_STAR_FLUXES,
    perturb_params,
    sample_ce,
)

__all__ = [
    "DatasetBuilder",
    "DatasetBundle",
    "make_elbo_args",
    "select_active_sources",
    "SAMPLE_STAR_FLUXES",
    "SAMPLE_GALAXY_FLUXES",
    "perturb_params",
    "sample_ce",
]
