"""
Tests for the fixture configuration system.
"""

import logging
from pathlib import Path

import pytest
import yaml

from stampfixtures.core.config import (
    DATA_DIR_ENV,
    DEFAULT_STAMP_ID,
    FixtureConfig,
    default_data_dir,
    export_default_fixture_config,
)
from stampfixtures.utils.helpers import setup_logging


class TestFixtureConfig:
    """Tests for FixtureConfig."""

    def test_default_values(self):
        """Test that default values are correctly set."""
        config = FixtureConfig()
        assert config.stamp_id == DEFAULT_STAMP_ID
        assert config.band_letters == "ugriz"
        assert config.flux_floor == 1e-6
        assert config.min_radius_arcsec == pytest.approx(1.0 / 30)
        assert config.pixel_scale_arcsec == 0.396
        assert config.dev_threshold == 0.5
        assert config.max_active_sources == 3
        assert config.small_canvas == (20, 23)
        assert config.three_body_canvas == (112, 238)
        assert config.n_body_canvas == (900, 1000)
        assert config.n_body_patch_radius == 20.0
        assert config.max_workers == 1

    def test_data_dir_from_environment(self, tmp_path, monkeypatch):
        """Test that the data directory honours the environment variable."""
        monkeypatch.setenv(DATA_DIR_ENV, str(tmp_path))
        assert default_data_dir() == tmp_path
        assert FixtureConfig().data_dir == tmp_path

    def test_data_dir_fallback(self, monkeypatch):
        """Test the ./data fallback when the environment variable is unset."""
        monkeypatch.delenv(DATA_DIR_ENV, raising=False)
        assert default_data_dir() == Path.cwd() / "data"

    def test_string_data_dir_converted(self):
        """Test that a string data_dir becomes a Path."""
        config = FixtureConfig(data_dir="some/dir")
        assert isinstance(config.data_dir, Path)

    def test_validation_positive_values(self):
        """Test that validation rejects non-positive constants."""
        with pytest.raises(ValueError, match="must be > 0"):
            FixtureConfig(flux_floor=0.0)

        with pytest.raises(ValueError, match="must be > 0"):
            FixtureConfig(pixel_scale_arcsec=-0.396)

        with pytest.raises(ValueError, match="must be >= 1"):
            FixtureConfig(max_active_sources=0)

        with pytest.raises(ValueError, match="must be >= 1"):
            FixtureConfig(max_workers=0)

    def test_validation_range_checks(self):
        """Test range and shape checks."""
        with pytest.raises(ValueError, match="dev_threshold must be 0-1"):
            FixtureConfig(dev_threshold=1.5)

        with pytest.raises(ValueError, match="exactly 5 bands"):
            FixtureConfig(band_letters="gri")

        with pytest.raises(ValueError, match="small_canvas must be a positive"):
            FixtureConfig(small_canvas=(20, 0))

    def test_canvas_lists_become_tuples(self):
        """Test that canvases given as lists are stored as int tuples."""
        config = FixtureConfig(three_body_canvas=[50, 60.0])
        assert config.three_body_canvas == (50, 60)

    def test_serialization(self, tmp_path):
        """Test dict round-trip."""
        config = FixtureConfig(data_dir=tmp_path, flux_floor=1e-4, small_canvas=(30, 31))

        data = config.to_dict()
        assert data["data_dir"] == str(tmp_path)
        assert data["small_canvas"] == [30, 31]
        assert data["flux_floor"] == 1e-4

        config2 = FixtureConfig.from_dict(data)
        assert config2.data_dir == tmp_path
        assert config2.small_canvas == (30, 31)
        assert config2.flux_floor == 1e-4

    def test_from_dict_ignores_unknown_keys(self, caplog):
        """Test that unknown keys are dropped with a warning."""
        with caplog.at_level(logging.WARNING, logger="stampfixtures.core.config"):
            config = FixtureConfig.from_dict({"max_workers": 4, "obsolete_option": True})
        assert config.max_workers == 4
        assert "obsolete_option" in caplog.text

    def test_yaml_must_hold_mapping(self, tmp_path):
        """Test that a YAML list is rejected."""
        filepath = tmp_path / "list.yaml"
        filepath.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError, match="must hold a mapping"):
            FixtureConfig.from_yaml_file(filepath)

    def test_yaml_file_operations(self, tmp_path):
        """Test saving and loading from YAML file."""
        config = FixtureConfig(data_dir=tmp_path / "data", dev_threshold=0.6, n_body_canvas=(90, 100))

        filepath = tmp_path / "nested" / "config.yaml"
        config.to_yaml_file(filepath)

        # Verify file exists and is valid YAML
        assert filepath.exists()
        with open(filepath) as f:
            data = yaml.safe_load(f)
            assert data["dev_threshold"] == 0.6
            assert data["n_body_canvas"] == [90, 100]

        config2 = FixtureConfig.from_yaml_file(filepath)
        assert config2.dev_threshold == 0.6
        assert config2.n_body_canvas == (90, 100)
        assert config2.data_dir == tmp_path / "data"

    def test_missing_yaml_file(self, tmp_path):
        """Test that a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            FixtureConfig.from_yaml_file(tmp_path / "missing.yaml")

    def test_empty_yaml_file(self, tmp_path, monkeypatch):
        """Test that an empty file yields the defaults."""
        monkeypatch.delenv(DATA_DIR_ENV, raising=False)
        filepath = tmp_path / "empty.yaml"
        filepath.write_text("")
        assert FixtureConfig.from_yaml_file(filepath).max_active_sources == 3

    def test_copy_with_overrides(self):
        """Test copying with overrides leaves the original untouched."""
        config = FixtureConfig()
        wide = config.copy_with_overrides(small_canvas=(40, 46), max_workers=5)

        assert wide.small_canvas == (40, 46)
        assert wide.max_workers == 5
        assert config.small_canvas == (20, 23)
        assert config.max_workers == 1

    def test_copy_with_invalid_override(self):
        """Test that overrides are validated."""
        with pytest.raises(ValueError, match="flux_floor"):
            FixtureConfig().copy_with_overrides(flux_floor=-1.0)

    def test_copy_with_unknown_field(self):
        """Test that misspelled overrides are not silently dropped."""
        with pytest.raises(TypeError):
            FixtureConfig().copy_with_overrides(flux_flor=1.0)


class TestExportDefaultFixtureConfig:
    """Tests for the configuration template export."""

    def test_export_to_directory(self, tmp_path):
        """Test exporting to directory with default filename."""
        config_file = export_default_fixture_config(tmp_path)

        assert config_file.exists()
        assert config_file.name == "fixture_config.yaml"
        assert config_file.parent == tmp_path

        with open(config_file) as f:
            data = yaml.safe_load(f)
            assert data["flux_floor"] == 1e-6
            assert data["pixel_scale_arcsec"] == 0.396
            assert data["small_canvas"] == [20, 23]

    def test_export_with_custom_filename(self, tmp_path):
        """Test exporting with custom filename."""
        config_file = export_default_fixture_config(tmp_path / "out", filename="my_fixtures.yaml")

        assert config_file.name == "my_fixtures.yaml"
        assert config_file.exists()
        assert FixtureConfig.from_yaml_file(config_file).stamp_id == DEFAULT_STAMP_ID


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def restore_package_level(self):
        package_logger = logging.getLogger("stampfixtures")
        level = package_logger.level
        yield
        package_logger.setLevel(level)

    def test_sets_package_level(self):
        """Test that the package logger follows the requested level."""
        package_logger = setup_logging("debug")
        assert package_logger.name == "stampfixtures"
        assert package_logger.level == logging.DEBUG

        setup_logging("WARNING")
        assert logging.getLogger("stampfixtures.processing.stamp").getEffectiveLevel() == logging.WARNING

    def test_unknown_level(self):
        """Test that a misspelled level is rejected."""
        with pytest.raises(ValueError, match="Unknown logging level"):
            setup_logging("VERBOSE")
