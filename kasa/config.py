"""YAML configuration loader for Kasa.

Loads the config files from the config/ directory:
  defaults.yaml   payment methods, categories, display locale, labels
  holidays.yaml   fixed and per-year movable public holidays
"""

from pathlib import Path

import yaml

from kasa.dates import HolidayCalendar


class Config:
    """Loads and provides access to the YAML configuration files."""

    def __init__(self, config_dir: Path | str = "config"):
        self.config_dir = Path(config_dir)
        if not self.config_dir.is_dir():
            raise FileNotFoundError(f"Config directory not found: {self.config_dir}")

        self._defaults: dict | None = None
        self._holidays: dict | None = None
        self._holiday_calendar: HolidayCalendar | None = None

    def _load(self, filename: str) -> dict | list:
        path = self.config_dir / filename
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
        if data is None:
            raise ValueError(f"Empty config file: {path}")
        return data

    @property
    def defaults(self) -> dict:
        if self._defaults is None:
            data = self._load("defaults.yaml")
            if not isinstance(data, dict):
                raise ValueError(f"defaults.yaml must be a mapping, got {type(data).__name__}")
            self._defaults = data
        return self._defaults

    @property
    def default_methods(self) -> list[str]:
        return list(self.defaults.get("methods", []))

    @property
    def default_categories(self) -> list[str]:
        return list(self.defaults.get("categories", []))

    @property
    def recurring_category(self) -> str:
        return self.defaults.get("recurring_category", "Abonelik")

    @property
    def payment_category(self) -> str:
        return self.defaults.get("payment_category", "Kart Ödemesi")

    @property
    def locale(self) -> str:
        return self.defaults.get("locale", "tr")

    @property
    def holidays(self) -> dict:
        """Return the raw YAML structure of holidays.yaml."""
        if self._holidays is None:
            self._holidays = self._load("holidays.yaml")
        return self._holidays

    @property
    def holiday_calendar(self) -> HolidayCalendar:
        if self._holiday_calendar is None:
            self._holiday_calendar = HolidayCalendar.from_dict(self.holidays)
        return self._holiday_calendar
