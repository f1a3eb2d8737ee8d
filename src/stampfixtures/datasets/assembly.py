"""
Dataset builders: calibrated stamps + small catalogs -> inference engine inputs.

Each builder loads the sample stamp, retargets it to a synthetic canvas,
lets the compositor render the catalog into it, and packages the result
for the inference engine together with initial parameter guesses.
"""

import logging
import math
from typing import Any, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from ..core.config import FixtureConfig
from ..core.interfaces import InferenceEngine, SceneCompositor
from ..core.models import CatalogEntry, Image, SkyIntensity
from ..processing.coordinates import identity_wcs, pix_to_world
from ..processing.stamp import load_stamp_blob
from .samples import (
    SAMPLE_ANGLE,
    SAMPLE_AXIS_RATIO,
    SAMPLE_FRAC_DEV,
    SAMPLE_RADIUS,
    SAMPLE_STAR_FLUXES,
    perturb_params,
    sample_ce,
)

logger = logging.getLogger(__name__)

# Seed of the compositor noise in the hand-placed datasets
SMALL_DATASET_SEED = 1


class DatasetBundle(NamedTuple):
    """Engine arguments, per-source parameter vectors and ground-truth catalog."""

    args: Any
    params: List[np.ndarray]
    catalog: List[CatalogEntry]


def select_active_sources(n_sources: int, active_source: Optional[int] = None, max_active: int = 3) -> List[int]:
    """
    Choose the 0-based indices of the sources the engine optimizes jointly.

    An explicitly requested source is used alone. Otherwise every source is
    active when there are at most ``max_active``, else the first ``max_active``.
    """
    if active_source is not None:
        if not 0 <= active_source < n_sources:
            raise ValueError(f"active_source must be 0-{n_sources - 1}, got {active_source}")
        return [active_source]
    return list(range(min(n_sources, max_active)))


def make_elbo_args(
    images: List[Image],
    catalog: Sequence[CatalogEntry],
    engine: InferenceEngine,
    active_source: Optional[int] = None,
    patch_radius_pix: float = float("nan"),
    include_kl: bool = True,
    max_active: int = 3,
) -> Any:
    """Turn images and catalog entries into inference engine arguments."""
    active_sources = select_active_sources(len(catalog), active_source, max_active)
    logger.debug(f"Active sources: {active_sources} of {len(catalog)}")
    return engine.build_args(
        images, catalog, active_sources, include_kl=include_kl, patch_radius_pix=patch_radius_pix
    )


class DatasetBuilder:
    """
    Builds synthetic datasets around the sample stamp.

    Parameters
    ----------
    engine : InferenceEngine
        Builds argument bundles and initial parameter vectors.
    compositor : SceneCompositor
        Renders catalog sources into images.
    config : FixtureConfig, optional
        Data location, stamp id and canvas sizes.
    """

    def __init__(self, engine: InferenceEngine, compositor: SceneCompositor, config: Optional[FixtureConfig] = None):
        self.engine = engine
        self.compositor = compositor
        self.config = config or FixtureConfig()

    def load_sample_images(self) -> List[Image]:
        """Calibrated bands of the configured sample stamp."""
        return load_stamp_blob(
            self.config.data_dir,
            self.config.stamp_id,
            max_workers=self.config.max_workers,
            band_letters=self.config.band_letters,
        )

    def init_params(self, catalog: Sequence[CatalogEntry], perturb: bool = True) -> List[np.ndarray]:
        """Ground-truth parameter vectors, optionally perturbed."""
        vp = [np.array(self.engine.catalog_init_source(ce), dtype=np.float64) for ce in catalog]
        if perturb:
            perturb_params(vp, self.engine.ids)
        return vp

    def _canvas_dataset(
        self,
        catalog: List[CatalogEntry],
        canvas: Tuple[int, int],
        perturb: bool = True,
        include_kl: bool = True,
    ) -> DatasetBundle:
        rng = np.random.default_rng(SMALL_DATASET_SEED)
        images0 = self.load_sample_images()
        H, W = canvas
        for image in images0:
            image.rebind(H=H, W=W, wcs=identity_wcs())

        images = self.compositor.gen_blob(images0, catalog, rng)
        ea = make_elbo_args(
            images, catalog, self.engine, include_kl=include_kl, max_active=self.config.max_active_sources
        )
        vp = self.init_params(catalog, perturb)

        logger.info(f"Built {len(catalog)}-source dataset on a {H}x{W} canvas")
        return DatasetBundle(ea, vp, catalog)

    def gen_sample_star_dataset(self, perturb: bool = True) -> DatasetBundle:
        """One star on the small canvas."""
        catalog = [sample_ce([10.1, 12.2], True)]
        return self._canvas_dataset(catalog, self.config.small_canvas, perturb=perturb)

    def gen_sample_galaxy_dataset(self, perturb: bool = True, include_kl: bool = True) -> DatasetBundle:
        """One galaxy on the small canvas."""
        catalog = [sample_ce([8.5, 9.6], False)]
        return self._canvas_dataset(catalog, self.config.small_canvas, perturb=perturb, include_kl=include_kl)

    def gen_two_body_dataset(self, perturb: bool = True) -> DatasetBundle:
        """
        A galaxy and a star on the small canvas.

        The two sources are too close to be identifiable; this is a quick
        unit-test fixture, not a deblending benchmark.
        """
        catalog = [
            sample_ce([4.5, 3.6], False),
            sample_ce([10.1, 12.1], True),
        ]
        return self._canvas_dataset(catalog, self.config.small_canvas, perturb=perturb)

    def gen_three_body_dataset(self, perturb: bool = True) -> DatasetBundle:
        catalog = [
            sample_ce([4.5, 3.6], False),
            sample_ce([60.1, 82.2], True),
            sample_ce([71.3, 100.4], False),
        ]
        return self._canvas_dataset(catalog, self.config.three_body_canvas, perturb=perturb)

    def gen_n_body_dataset(
        self,
        S: int,
        patch_pixel_radius: Optional[float] = None,
        seed: Optional[int] = None,
        perturb: bool = True,
    ) -> DatasetBundle:
        """
        Large dataset with ``S`` randomly placed stars.

        Locations are drawn first, then mapped to world coordinates through
        the r-band WCS; the compositor noise uses the same generator. With a
        ``seed`` the result is reproducible.

        Parameters
        ----------
        S : int
            Number of stars.
        patch_pixel_radius : float, optional
            Patch radius passed to the engine. Defaults to ``config.n_body_patch_radius``.
        seed : int, optional
            Seed of the placement and compositor noise.
        perturb : bool
            Perturb the initial parameter vectors.
        """
        if S < 1:
            raise ValueError(f"S must be >= 1, got {S}")
        if patch_pixel_radius is None:
            patch_pixel_radius = self.config.n_body_patch_radius

        rng = np.random.default_rng(seed)
        images0 = self.load_sample_images()
        H, W = self.config.n_body_canvas
        for image in images0:
            image.rebind(H=H, W=W)

        locations = rng.random((S, 2)) * np.array([H, W])
        world_locations = pix_to_world(images0[2].wcs, locations)

        catalog = [
            CatalogEntry(
                pos=world_locations[s],
                is_star=True,
                star_fluxes=SAMPLE_STAR_FLUXES,
                gal_fluxes=SAMPLE_STAR_FLUXES,
                gal_frac_dev=SAMPLE_FRAC_DEV,
                gal_ab=SAMPLE_AXIS_RATIO,
                gal_angle=SAMPLE_ANGLE,
                gal_scale=SAMPLE_RADIUS,
                objid=str(s + 1),
                thing_id=s + 1,
            )
            for s in range(S)
        ]

        images = self.compositor.gen_blob(images0, catalog, rng)

        # Background and calibration span the full canvas
        for image in images:
            image.rebind(
                sky=SkyIntensity.constant(image.sky[0, 0], image.H, image.W),
                iota_vec=np.full(image.H, image.iota),
            )

        ea = make_elbo_args(
            images,
            catalog,
            self.engine,
            patch_radius_pix=patch_pixel_radius,
            max_active=self.config.max_active_sources,
        )
        vp = self.init_params(catalog, perturb)

        logger.info(f"Built {S}-source dataset on a {H}x{W} canvas (seed={seed})")
        return DatasetBundle(ea, vp, catalog)

    def true_star_init(self) -> DatasetBundle:
        """
        Sample star dataset with parameters pinned at a confident star.

        The star probability, brightness variance and color variance are
        nearly zero-width, and the r-band brightness matches the catalog.
        """
        ea, vp, catalog = self.gen_sample_star_dataset(perturb=False)
        ids = self.engine.ids

        vs = vp[0]
        vs[ids.a] = [1.0 - 1e-4, 1e-4]
        vs[ids.r2] = 1e-4
        vs[ids.r1] = math.log(SAMPLE_STAR_FLUXES[2]) - 0.5 * vs[ids.r2]
        vs[ids.c2] = 1e-4

        return DatasetBundle(ea, vp, catalog)
