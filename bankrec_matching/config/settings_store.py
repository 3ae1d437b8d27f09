"""
Key-value persistence for match settings.

Stores the user's filter toggles, sort preference and round-off tolerance
in a JSON file under fixed keys, so that settings written by one process
are picked up by the next.
"""

import json
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from bankrec_matching.models import (
    ConfigurationError, DEFAULT_FILTERS, DEFAULT_ROUND_OFF_TOLERANCE,
    KNOWN_FILTERS, MatchConfiguration, SortField, SortOrder
)
from .validation import parse_round_off_tolerance, parse_sort_field, parse_sort_order

import logging
logger = logging.getLogger(__name__)


MATCH_FILTERS_KEY = 'mint-bank-rec-match-filters'
SORT_FIELD_KEY = 'mint-bank-rec-invoice-sort-field'
SORT_ORDER_KEY = 'mint-bank-rec-invoice-sort-order'
ROUND_OFF_KEY = 'mint-bank-rec-round-off-value'


class SettingsStore:
    """
    JSON file backed key-value store for match settings.

    Reads never raise: a missing or corrupt file, or an invalid value under
    one key, falls back to the default for that key.
    """

    def __init__(self, settings_file: Optional[str] = None):
        """
        Initialize settings store.

        Args:
            settings_file: Path of the JSON file. If None, uses
                ~/.bankrec_matching/settings.json
        """
        self.logger = logging.getLogger(f"{__name__}.SettingsStore")

        if settings_file:
            self.settings_file = Path(settings_file)
        else:
            self.settings_file = Path.home() / '.bankrec_matching' / 'settings.json'

        self.settings_file.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

        self.logger.info(f"Settings store initialized with file: {self.settings_file}")

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value for key, or default."""
        with self._lock:
            return self._load().get(key, default)

    def set(self, key: str, value: Any):
        """Store a JSON-serialisable value under key."""
        with self._lock:
            data = self._load()
            data[key] = value
            self._save(data)
        self.logger.debug(f"Stored {key} = {value!r}")

    def load_configuration(self) -> MatchConfiguration:
        """
        Build a MatchConfiguration from the stored values.

        Returns:
            MatchConfiguration (defaults for missing or invalid keys)
        """
        with self._lock:
            data = self._load()

        enabled_filters = DEFAULT_FILTERS
        stored_filters = data.get(MATCH_FILTERS_KEY)
        if isinstance(stored_filters, list):
            enabled_filters = frozenset(f for f in stored_filters if f in KNOWN_FILTERS)
        elif stored_filters is not None:
            self.logger.warning(f"Ignoring invalid {MATCH_FILTERS_KEY}: {stored_filters!r}")

        sort_field = self._parse_or_default(data, SORT_FIELD_KEY, parse_sort_field,
                                            SortField.OUTSTANDING_AMOUNT)
        sort_order = self._parse_or_default(data, SORT_ORDER_KEY, parse_sort_order,
                                            SortOrder.ASC)
        tolerance = self._parse_or_default(data, ROUND_OFF_KEY, parse_round_off_tolerance,
                                           DEFAULT_ROUND_OFF_TOLERANCE)

        return MatchConfiguration(
            enabled_filters=enabled_filters,
            sort_field=sort_field,
            sort_order=sort_order,
            round_off_tolerance=tolerance
        )

    def save_configuration(self, config: MatchConfiguration):
        """Write every key of a MatchConfiguration in one file update."""
        with self._lock:
            data = self._load()
            data[MATCH_FILTERS_KEY] = sorted(config.enabled_filters)
            data[SORT_FIELD_KEY] = config.sort_field.value
            data[SORT_ORDER_KEY] = config.sort_order.value
            data[ROUND_OFF_KEY] = config.round_off_tolerance
            self._save(data)
        self.logger.info("Saved match settings")

    def _parse_or_default(self, data: Dict[str, Any], key: str, parser, default):
        if key not in data:
            return default
        try:
            return parser(data[key])
        except ConfigurationError as e:
            self.logger.warning(f"Ignoring invalid {key}: {e}")
            return default

    def _load(self) -> Dict[str, Any]:
        """Load settings from file."""
        if not self.settings_file.exists():
            return {}
        try:
            with open(self.settings_file, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Failed to load settings file: {e}")
            return {}
        if not isinstance(data, dict):
            self.logger.error("Settings file does not hold a JSON object, ignoring it")
            return {}
        return data

    def _save(self, data: Dict[str, Any]):
        """Save settings to file."""
        tmp_file = self.settings_file.with_suffix('.tmp')
        with open(tmp_file, 'w') as f:
            json.dump(data, f, indent=2)
        tmp_file.replace(self.settings_file)
