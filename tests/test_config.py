"""Tests for kasa.config — YAML configuration loader."""

from datetime import date

import pytest

from kasa.config import Config
from kasa.dates import HolidayCalendar
from tests.conftest import FIXTURE_CONFIG_DIR


class TestConfigInit:
    def test_loads_from_config_dir(self):
        config = Config(FIXTURE_CONFIG_DIR)
        assert config.config_dir == FIXTURE_CONFIG_DIR

    def test_raises_on_missing_directory(self):
        with pytest.raises(FileNotFoundError, match="Config directory not found"):
            Config("/nonexistent/path")

    def test_raises_on_file_not_directory(self, tmp_path):
        f = tmp_path / "not_a_dir.yaml"
        f.write_text("test: true")
        with pytest.raises(FileNotFoundError, match="Config directory not found"):
            Config(f)


class TestConfigDefaults:
    def test_methods(self):
        config = Config(FIXTURE_CONFIG_DIR)
        assert config.default_methods == ["Nakit", "Havale / EFT"]

    def test_categories(self):
        config = Config(FIXTURE_CONFIG_DIR)
        assert "Market" in config.default_categories
        assert "Diğer" in config.default_categories

    def test_labels(self):
        config = Config(FIXTURE_CONFIG_DIR)
        assert config.recurring_category == "Abonelik"
        assert config.payment_category == "Kart Ödemesi"
        assert config.locale == "tr"

    def test_lazy_loading(self):
        config = Config(FIXTURE_CONFIG_DIR)
        assert config._defaults is None
        _ = config.default_methods
        assert config._defaults is not None

    def test_returned_lists_are_copies(self):
        config = Config(FIXTURE_CONFIG_DIR)
        config.default_methods.append("Extra")
        assert "Extra" not in config.default_methods

    def test_missing_keys_fall_back(self, tmp_path):
        (tmp_path / "defaults.yaml").write_text("methods: [Nakit]\n")
        config = Config(tmp_path)
        assert config.default_categories == []
        assert config.recurring_category == "Abonelik"
        assert config.locale == "tr"


class TestConfigErrors:
    def test_missing_file(self, tmp_path):
        config = Config(tmp_path)
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            _ = config.defaults

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / "defaults.yaml").write_text("methods: [unclosed\n")
        config = Config(tmp_path)
        with pytest.raises(ValueError, match="Invalid YAML"):
            _ = config.defaults

    def test_empty_file(self, tmp_path):
        (tmp_path / "defaults.yaml").write_text("")
        config = Config(tmp_path)
        with pytest.raises(ValueError, match="Empty config file"):
            _ = config.defaults

    def test_defaults_must_be_mapping(self, tmp_path):
        (tmp_path / "defaults.yaml").write_text("- a\n- b\n")
        config = Config(tmp_path)
        with pytest.raises(ValueError, match="must be a mapping"):
            _ = config.defaults


class TestConfigHolidays:
    def test_calendar_from_yaml(self):
        config = Config(FIXTURE_CONFIG_DIR)
        cal = config.holiday_calendar
        assert isinstance(cal, HolidayCalendar)
        assert cal.is_holiday(date(2026, 3, 20))
        assert cal.is_holiday(date(2026, 10, 29))

    def test_calendar_only_has_configured_days(self):
        config = Config(FIXTURE_CONFIG_DIR)
        # Victory Day is in the built-in list but not in the fixture file
        assert not config.holiday_calendar.is_holiday(date(2026, 8, 30))

    def test_calendar_cached(self):
        config = Config(FIXTURE_CONFIG_DIR)
        assert config.holiday_calendar is config.holiday_calendar
