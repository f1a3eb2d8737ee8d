"""
Example usage of StampFixtures: calibrating a stamp and normalizing its catalog.
"""

from pathlib import Path

import numpy as np

from stampfixtures import FixtureConfig, load_stamp_blob, load_stamp_catalog
from stampfixtures.processing.catalog import normalize_catalog, load_stamp_catalog_df
from stampfixtures.utils.helpers import setup_logging


# Example 1: Load the five calibrated bands of a stamp
def example_load_stamp(config: FixtureConfig):
    """Load every band of the sample stamp and print its calibration."""
    print("Example 1: Calibrated stamp")
    print("-" * 50)

    images = load_stamp_blob(
        config.data_dir, config.stamp_id, max_workers=config.max_workers, band_letters=config.band_letters
    )

    for image in images:
        print(f"  Band {config.band_letters[image.band]}: {image.H}x{image.W} pixels")
        print(f"    iota = {image.iota:.4f}, sky level = {image.sky[0, 0]:.4f}")
        print(f"    run/camcol/field = {image.run_num}/{image.camcol_num}/{image.field_num}")
        for k, comp in enumerate(image.psf):
            print(f"    PSF component {k}: weight={comp.weight:.4f}, mean={comp.mean}, "
                  f"eigenvalues={np.linalg.eigvalsh(comp.cov)}")

    return images


# Example 2: Load the catalog entries of the same stamp
def example_load_catalog(config: FixtureConfig, images):
    """Normalize the sources observed in the same run/camcol/field as the stamp."""
    print("\nExample 2: Catalog entries matched to the stamp")
    print("-" * 50)

    catalog = load_stamp_catalog(config.data_dir, config.stamp_id, images, match_blob=True)

    for ce in catalog:
        kind = "star" if ce.is_star else "galaxy"
        print(f"  {ce.objid}: {kind} at ({ce.pos[0]:.5f}, {ce.pos[1]:.5f}), "
              f"r flux {ce.star_fluxes[2]:.2f}, angle {ce.gal_angle:.3f} rad, radius {ce.gal_scale:.2f} px")


# Example 3: Lenient catalog normalization
def example_lenient_catalog(config: FixtureConfig):
    """Keep going when some rows of the full catalog are malformed."""
    print("\nExample 3: Lenient normalization of the full catalog")
    print("-" * 50)

    df = load_stamp_catalog_df(config.data_dir, config.stamp_id)
    result = normalize_catalog(df, already_target_convention=False, config=config)

    print(f"  {len(result.entries)} entries, {len(result.failures)} failed rows")
    for failure in result.failures:
        print(f"    {failure}")


if __name__ == "__main__":
    setup_logging("INFO")

    config = FixtureConfig(data_dir=Path("data"), max_workers=5)
    images = example_load_stamp(config)
    example_load_catalog(config, images)
    example_lenient_catalog(config)
