"""
Contracts of the external collaborators used by the dataset builders.

The inference engine and the synthetic scene compositor live outside this
package. The builders only rely on the protocols below, so any engine or
compositor exposing these methods can be plugged in.
"""

from dataclasses import dataclass
from typing import Any, List, Protocol, Sequence, runtime_checkable

import numpy as np

from .models import CatalogEntry, Image


@dataclass(frozen=True)
class ParamIds:
    """
    Index layout of one source's parameter vector.

    Each attribute holds the positions of one parameter group inside the
    vector returned by :meth:`InferenceEngine.catalog_init_source`.

    Attributes
    ----------
    a : np.ndarray
        Star/galaxy probabilities, 2 slots.
    u : np.ndarray
        Position, 2 slots.
    r1, r2 : np.ndarray
        Brightness log-mean and log-variance, one slot per source type.
    e_dev, e_axis, e_angle, e_scale : np.ndarray
        Galaxy shape parameters.
    c1, c2 : np.ndarray
        Color means and variances.
    """

    a: np.ndarray
    u: np.ndarray
    r1: np.ndarray
    r2: np.ndarray
    e_dev: np.ndarray
    e_axis: np.ndarray
    e_angle: np.ndarray
    e_scale: np.ndarray
    c1: np.ndarray
    c2: np.ndarray

    def __post_init__(self):
        for name in self.__dataclass_fields__:
            object.__setattr__(self, name, np.atleast_1d(np.asarray(getattr(self, name), dtype=np.intp)))
        if len(self.a) != 2 or len(self.u) != 2:
            raise ValueError(f"a and u must each index 2 slots, got {len(self.a)} and {len(self.u)}")


@runtime_checkable
class SceneCompositor(Protocol):
    """Renders catalog sources, convolved with each image's PSF, plus noise."""

    def gen_blob(self, images: List[Image], catalog: Sequence[CatalogEntry], rng: np.random.Generator) -> List[Image]:
        """
        Return images of identical shape with the catalog sources rendered in.

        All randomness must be drawn from ``rng``.
        """
        ...


@runtime_checkable
class InferenceEngine(Protocol):
    """Argument bundle constructor and parameter layout of the inference engine."""

    ids: ParamIds

    def build_args(
        self,
        images: List[Image],
        catalog: Sequence[CatalogEntry],
        active_sources: List[int],
        include_kl: bool = True,
        patch_radius_pix: float = float("nan"),
    ) -> Any:
        """Package images, catalog and 0-based active source indices for the optimizer."""
        ...

    def catalog_init_source(self, entry: CatalogEntry) -> np.ndarray:
        """Parameter vector encoding ``entry`` as the ground truth."""
        ...
