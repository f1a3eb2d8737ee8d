"""
Shared fixtures: synthetic stamp/catalog FITS files and stub collaborators.
"""

import dataclasses
import math
from pathlib import Path
from typing import Dict, List

import numpy as np
import pytest
from astropy.io import fits
from astropy.table import Table

from stampfixtures.core.config import BAND_LETTERS, FixtureConfig
from stampfixtures.core.interfaces import ParamIds
from stampfixtures.core.models import Image

STAMP_ID = "164.4311-39.0359_2kpsf"
STAMP_SHAPE = (12, 15)

CALIB = 0.005
SKY = 0.02
GAIN = 4.7

RUN, CAMCOL, FIELD = 3900, 6, 269

# (weight, mean x, mean y, var x, var y, cov xy) per PSF component
PSF_TERMS = [
    (0.80, 0.01, -0.02, 1.50, 1.60, 0.10),
    (0.15, -0.05, 0.03, 4.00, 4.20, -0.20),
    (0.05, 0.10, 0.08, 10.0, 9.00, 0.50),
]


def make_stamp_header(band: int = 2) -> fits.Header:
    """Stamp header with calibration, PSF, provenance and TAN WCS keywords."""
    header = fits.Header()
    header["CALIB"] = CALIB
    header["SKY"] = SKY
    header["GAIN"] = GAIN
    for k, (weight, mx, my, vx, vy, cxy) in enumerate(PSF_TERMS):
        header[f"PSF_P{k}"] = weight
        header[f"PSF_P{3 + 2 * k}"] = mx
        header[f"PSF_P{4 + 2 * k}"] = my
        header[f"PSF_P{9 + 3 * k}"] = vx
        header[f"PSF_P{10 + 3 * k}"] = vy
        header[f"PSF_P{11 + 3 * k}"] = cxy
    header["RUN"] = RUN
    header["CAMCOL"] = CAMCOL
    header["FIELD"] = FIELD
    header["FILTER"] = BAND_LETTERS[band]
    header["CTYPE1"] = "RA---TAN"
    header["CTYPE2"] = "DEC--TAN"
    header["CRPIX1"] = 7.0
    header["CRPIX2"] = 6.0
    header["CRVAL1"] = 164.4311
    header["CRVAL2"] = -39.0359
    header["CD1_1"] = -0.396 / 3600
    header["CD1_2"] = 0.0
    header["CD2_1"] = 0.0
    header["CD2_2"] = 0.396 / 3600
    return header


def make_raw_pixels(seed: int = 0, shape=STAMP_SHAPE) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.uniform(0.0, 2.0, size=shape).astype(np.float32)


def write_stamp(stamp_dir: Path, stamp_id: str = STAMP_ID, shape=STAMP_SHAPE) -> Path:
    """Write all five ``stamp-<band>-<id>.fits`` files."""
    stamp_dir.mkdir(parents=True, exist_ok=True)
    for b, bl in enumerate(BAND_LETTERS):
        hdu = fits.PrimaryHDU(data=make_raw_pixels(seed=b, shape=shape), header=make_stamp_header(b))
        hdu.writeto(stamp_dir / f"stamp-{bl}-{stamp_id}.fits", overwrite=True)
    return stamp_dir


def make_catalog_row(**overrides) -> Dict:
    """Raw catalog row for a galaxy; any column can be overridden."""
    row = {
        "ra": 164.4311,
        "dec": -39.0359,
        "is_star": False,
        "frac_dev": 0.3,
        "ab_dev": 0.6,
        "ab_exp": 0.8,
        "phi_dev": 30.0,
        "phi_exp": -20.0,
        "theta_dev": 2.0,
        "theta_exp": 1.5,
        "run": RUN,
        "camcol": CAMCOL,
        "field": FIELD,
    }
    for b, bl in enumerate(BAND_LETTERS):
        row[f"psfflux_{bl}"] = 10.0 * (b + 1)
        row[f"devflux_{bl}"] = 20.0 * (b + 1)
        row[f"expflux_{bl}"] = 5.0 * (b + 1)
    row.update(overrides)
    return row


def write_catalog(cat_dir: Path, rows: List[Dict], stamp_id: str = STAMP_ID) -> Path:
    cat_dir.mkdir(parents=True, exist_ok=True)
    columns = list(rows[0].keys())
    table = Table({name: [row[name] for row in rows] for name in columns})
    path = cat_dir / f"cat-{stamp_id}.fits"
    table.write(path, format="fits", overwrite=True)
    return path


N_PARAMS = 28
STUB_IDS = ParamIds(
    a=[0, 1],
    u=[2, 3],
    r1=[4, 5],
    r2=[6, 7],
    e_dev=8,
    e_axis=9,
    e_angle=10,
    e_scale=11,
    c1=list(range(12, 20)),
    c2=list(range(20, 28)),
)


class StubEngine:
    """Records build_args calls and encodes catalog entries naively."""

    ids = STUB_IDS

    def __init__(self):
        self.calls = []

    def build_args(self, images, catalog, active_sources, include_kl=True, patch_radius_pix=float("nan")):
        args = {
            "images": images,
            "catalog": catalog,
            "active_sources": active_sources,
            "include_kl": include_kl,
            "patch_radius_pix": patch_radius_pix,
        }
        self.calls.append(args)
        return args

    def catalog_init_source(self, entry):
        vs = np.zeros(N_PARAMS)
        vs[self.ids.a] = [0.5, 0.5] if not entry.is_star else [0.9, 0.1]
        vs[self.ids.u] = entry.pos
        vs[self.ids.r1] = math.log(entry.star_fluxes[2])
        vs[self.ids.r2] = 0.1
        vs[self.ids.e_dev] = entry.gal_frac_dev
        vs[self.ids.e_axis] = entry.gal_ab
        vs[self.ids.e_angle] = entry.gal_angle
        vs[self.ids.e_scale] = entry.gal_scale
        vs[self.ids.c2] = 0.01
        return vs


class StubCompositor:
    """Fills each canvas with sky plus Gaussian noise drawn from ``rng``."""

    def __init__(self):
        self.calls = []

    def gen_blob(self, images: List[Image], catalog, rng) -> List[Image]:
        self.calls.append((images, list(catalog)))
        out = []
        for image in images:
            noise = rng.normal(0.0, 1.0, size=(image.H, image.W))
            pixels = np.full((image.H, image.W), image.sky[0, 0]) + noise
            out.append(dataclasses.replace(image, pixels=pixels))
        return out


@pytest.fixture
def stamp_header():
    return make_stamp_header()


@pytest.fixture
def data_dir(tmp_path):
    """Directory with the five sample stamp bands and a two-row catalog."""
    directory = tmp_path / "data"
    write_stamp(directory)
    write_catalog(
        directory,
        [
            make_catalog_row(),
            make_catalog_row(is_star=True, frac_dev=0.9, run=RUN + 1),
        ],
    )
    return directory


@pytest.fixture
def config(data_dir):
    return FixtureConfig(data_dir=data_dir, stamp_id=STAMP_ID)


@pytest.fixture
def engine():
    return StubEngine()


@pytest.fixture
def compositor():
    return StubCompositor()
