"""
Record types shared by the stamp calibrator, catalog normalizer and dataset builders.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Tuple

import numpy as np

from .config import N_BANDS
from .errors import MalformedValueError, ShapeMismatchError

logger = logging.getLogger(__name__)

# The instrument PSF model is always a 3-term Gaussian mixture
N_PSF_COMPONENTS = 3


def _frozen_array(values: Any, shape: Tuple[int, ...], name: str) -> np.ndarray:
    """Copy ``values`` into a read-only float64 array of the given shape."""
    try:
        arr = np.array(values, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise MalformedValueError(f"{name} is not numeric: {e}") from e
    if arr.shape != shape:
        raise MalformedValueError(f"{name} must have shape {shape}, got {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise MalformedValueError(f"{name} contains non-finite values: {arr.tolist()}")
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class PsfComponent:
    """
    One term of the Gaussian-mixture PSF.

    Attributes
    ----------
    weight : float
        Mixture amplitude (unitless).
    mean : np.ndarray
        Sub-pixel centroid offset, shape (2,), pixels.
    cov : np.ndarray
        Symmetric positive-definite covariance, shape (2, 2), pixels^2.
    """

    weight: float
    mean: np.ndarray
    cov: np.ndarray

    def __post_init__(self):
        weight = float(self.weight)
        if not math.isfinite(weight):
            raise MalformedValueError(f"PSF weight must be finite, got {self.weight}")
        mean = _frozen_array(self.mean, (2,), "PSF mean")
        cov = _frozen_array(self.cov, (2, 2), "PSF covariance")

        if cov[0, 1] != cov[1, 0]:
            raise MalformedValueError(f"PSF covariance is not symmetric: {cov.tolist()}")
        # Sylvester's criterion for a symmetric 2x2 matrix
        if not (cov[0, 0] > 0 and np.linalg.det(cov) > 0):
            raise MalformedValueError(f"PSF covariance is not positive-definite: {cov.tolist()}")

        object.__setattr__(self, "weight", weight)
        object.__setattr__(self, "mean", mean)
        object.__setattr__(self, "cov", cov)


@dataclass
class SkyIntensity:
    """
    Separable additive background model.

    Attributes
    ----------
    sky_small : np.ndarray
        Background level grid, shape (H, W).
    x_lookup : np.ndarray
        Row positions 1..H of ``sky_small`` on the image.
    y_lookup : np.ndarray
        Column positions 1..W of ``sky_small`` on the image.
    sky_scales : np.ndarray
        Per-row scale vector, shape (H,).
    """

    sky_small: np.ndarray
    x_lookup: np.ndarray
    y_lookup: np.ndarray
    sky_scales: np.ndarray

    def __post_init__(self):
        h, w = np.shape(self.sky_small)
        if len(self.x_lookup) != h or len(self.sky_scales) != h:
            raise ShapeMismatchError(
                f"Sky row lookup/scales must have length {h}, "
                f"got {len(self.x_lookup)} and {len(self.sky_scales)}"
            )
        if len(self.y_lookup) != w:
            raise ShapeMismatchError(f"Sky column lookup must have length {w}, got {len(self.y_lookup)}")

    @classmethod
    def constant(cls, level: float, H: int, W: int) -> "SkyIntensity":
        """Constant background surface at ``level`` over an H x W canvas."""
        return cls(
            sky_small=np.full((H, W), float(level)),
            x_lookup=np.arange(1, H + 1),
            y_lookup=np.arange(1, W + 1),
            sky_scales=np.ones(H),
        )

    @property
    def shape(self) -> Tuple[int, int]:
        return self.sky_small.shape

    def __getitem__(self, index):
        return self.sky_small[index]


@dataclass
class Image:
    """
    One calibrated band observation.

    ``pixels`` are photon counts. ``H``, ``W``, ``wcs``, ``sky`` and
    ``iota_vec`` may only be changed through :meth:`rebind`.
    """

    H: int
    W: int
    pixels: np.ndarray
    band: int
    wcs: Any
    psf: Tuple[PsfComponent, ...]
    run_num: int
    camcol_num: int
    field_num: int
    sky: SkyIntensity
    iota_vec: np.ndarray
    raw_psf: Optional[Any] = field(default=None, repr=False)

    def __post_init__(self):
        if np.shape(self.pixels) != (self.H, self.W):
            raise ShapeMismatchError(
                f"Pixel array shape {np.shape(self.pixels)} does not match declared ({self.H}, {self.W})",
                band=self.band,
            )
        if len(self.iota_vec) != self.H:
            raise ShapeMismatchError(
                f"Calibration vector length {len(self.iota_vec)} does not match H={self.H}", band=self.band
            )
        self.psf = tuple(self.psf)
        if len(self.psf) != N_PSF_COMPONENTS:
            raise MalformedValueError(
                f"PSF must have exactly {N_PSF_COMPONENTS} components, got {len(self.psf)}", band=self.band
            )

    @property
    def iota(self) -> float:
        """Photon-per-count gain factor of the first row."""
        return float(self.iota_vec[0])

    def rebind(
        self,
        H: Optional[int] = None,
        W: Optional[int] = None,
        wcs: Any = None,
        sky: Optional[SkyIntensity] = None,
        iota_vec: Optional[Sequence[float]] = None,
    ) -> "Image":
        """
        Retarget the image to a synthetic canvas, in place.

        Only the canvas size, coordinate map, sky model and calibration
        vector can be rebound. Pixel data is left untouched; it is the
        compositor's job to produce pixels for the new canvas.

        When the canvas size changes and no ``sky`` / ``iota_vec`` is given,
        both are rebuilt as constant surfaces at their current level.

        Returns
        -------
        Image
            ``self``, for chaining.

        Raises
        ------
        ShapeMismatchError
            If a supplied sky or calibration vector does not fit the canvas.
        """
        new_h = self.H if H is None else int(H)
        new_w = self.W if W is None else int(W)
        if new_h <= 0 or new_w <= 0:
            raise ShapeMismatchError(f"Canvas must be positive, got ({new_h}, {new_w})", band=self.band)
        resized = (new_h, new_w) != (self.H, self.W)

        if sky is None and resized:
            sky = SkyIntensity.constant(self.sky[0, 0], new_h, new_w)
        if sky is not None and sky.shape != (new_h, new_w):
            raise ShapeMismatchError(
                f"Sky shape {sky.shape} does not match canvas ({new_h}, {new_w})", band=self.band
            )

        if iota_vec is None and resized:
            iota_vec = np.full(new_h, self.iota)
        if iota_vec is not None:
            iota_vec = np.asarray(iota_vec, dtype=np.float64)
            if len(iota_vec) != new_h:
                raise ShapeMismatchError(
                    f"Calibration vector length {len(iota_vec)} does not match H={new_h}", band=self.band
                )

        self.H, self.W = new_h, new_w
        if wcs is not None:
            self.wcs = wcs
        if sky is not None:
            self.sky = sky
        if iota_vec is not None:
            self.iota_vec = iota_vec

        logger.debug(f"Rebound band {self.band} to canvas ({new_h}, {new_w})")
        return self


@dataclass(frozen=True, eq=False)
class CatalogEntry:
    """
    Canonical catalog record for one source.

    Attributes
    ----------
    pos : np.ndarray
        Position (RA, Dec in degrees, or canvas pixel units for synthetic scenes).
    is_star : bool
        Star/galaxy flag.
    star_fluxes, gal_fluxes : np.ndarray
        Per-band fluxes, shape (5,), non-negative.
    gal_frac_dev : float
        Fraction of galaxy light in the de Vaucouleurs profile, in [0, 1].
    gal_ab : float
        Axis ratio, in (0, 1].
    gal_angle : float
        Position angle in radians, in [0, pi).
    gal_scale : float
        Effective radius in pixels, > 0.
    objid : str
        Source identifier.
    thing_id : int
        Provenance tag.
    """

    pos: np.ndarray
    is_star: bool
    star_fluxes: np.ndarray
    gal_fluxes: np.ndarray
    gal_frac_dev: float
    gal_ab: float
    gal_angle: float
    gal_scale: float
    objid: str
    thing_id: int = 0

    def __post_init__(self):
        object.__setattr__(self, "pos", _frozen_array(self.pos, (2,), "pos"))
        for name in ("star_fluxes", "gal_fluxes"):
            fluxes = _frozen_array(getattr(self, name), (N_BANDS,), name)
            if np.any(fluxes < 0):
                raise MalformedValueError(f"{name} must be non-negative, got {fluxes.tolist()}")
            object.__setattr__(self, name, fluxes)

        frac_dev = float(self.gal_frac_dev)
        ab = float(self.gal_ab)
        angle = float(self.gal_angle)
        scale = float(self.gal_scale)
        if not 0 <= frac_dev <= 1:
            raise MalformedValueError(f"gal_frac_dev must be 0-1, got {self.gal_frac_dev}")
        if not 0 < ab <= 1:
            raise MalformedValueError(f"gal_ab must be in (0, 1], got {self.gal_ab}")
        if not 0 <= angle < math.pi:
            raise MalformedValueError(f"gal_angle must be in [0, pi), got {self.gal_angle}")
        if not (math.isfinite(scale) and scale > 0):
            raise MalformedValueError(f"gal_scale must be positive, got {self.gal_scale}")

        object.__setattr__(self, "is_star", bool(self.is_star))
        object.__setattr__(self, "gal_frac_dev", frac_dev)
        object.__setattr__(self, "gal_ab", ab)
        object.__setattr__(self, "gal_angle", angle)
        object.__setattr__(self, "gal_scale", scale)
        object.__setattr__(self, "objid", str(self.objid))
        object.__setattr__(self, "thing_id", int(self.thing_id))
