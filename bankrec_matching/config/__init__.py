"""
Configuration management for bank reconciliation matching.

Provides the live match configuration service, its key-value persistence
and validation of settings and data source configurations.
"""

from .match_configuration import MatchSettingsService
from .settings_store import (
    SettingsStore, MATCH_FILTERS_KEY, SORT_FIELD_KEY, SORT_ORDER_KEY, ROUND_OFF_KEY
)
from .validation import (
    ConfigurationValidator, ValidationResult, parse_round_off_tolerance,
    parse_sort_field, parse_sort_order
)

__all__ = [
    "MatchSettingsService",
    "SettingsStore",
    "MATCH_FILTERS_KEY",
    "SORT_FIELD_KEY",
    "SORT_ORDER_KEY",
    "ROUND_OFF_KEY",
    "ConfigurationValidator",
    "ValidationResult",
    "parse_round_off_tolerance",
    "parse_sort_field",
    "parse_sort_order"
]
