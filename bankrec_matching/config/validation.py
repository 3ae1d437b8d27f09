"""
Configuration validation utilities.

Provides validation for match settings values and data source connection
configurations with detailed error reporting.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List
from urllib.parse import urlparse

from bankrec_matching.models import (
    ConfigurationError, KNOWN_FILTERS, SortField, SortOrder
)

import logging
logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of configuration validation."""
    is_valid: bool
    errors: List[str]
    warnings: List[str]
    suggestions: List[str]

    def add_error(self, message: str):
        """Add an error message."""
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str):
        """Add a warning message."""
        self.warnings.append(message)

    def add_suggestion(self, message: str):
        """Add a suggestion message."""
        self.suggestions.append(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'is_valid': self.is_valid,
            'errors': self.errors,
            'warnings': self.warnings,
            'suggestions': self.suggestions
        }


def parse_round_off_tolerance(value: Any) -> int:
    """
    Parse a round-off tolerance supplied by a user or a settings file.

    Accepts positive integers and strings holding one. Integral floats
    (``50.0``) are accepted, fractional ones are not.

    Raises:
        ConfigurationError: If the value is not a positive integer
    """
    if isinstance(value, bool) or value is None:
        raise ConfigurationError(f"Round-off tolerance must be a positive integer, got {value!r}")

    if isinstance(value, int):
        parsed = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ConfigurationError(f"Round-off tolerance must be a whole number, got {value!r}")
        parsed = int(value)
    elif isinstance(value, str) and re.fullmatch(r'\s*\+?\d+\s*', value):
        parsed = int(value)
    else:
        raise ConfigurationError(f"Round-off tolerance must be a positive integer, got {value!r}")

    if parsed <= 0:
        raise ConfigurationError(f"Round-off tolerance must be positive, got {parsed}")
    return parsed


def parse_sort_field(value: Any) -> SortField:
    """Parse a sort field from an enum member or its string value."""
    if isinstance(value, SortField):
        return value
    try:
        return SortField(value)
    except ValueError:
        raise ConfigurationError(f"Unknown sort field: {value!r}")


def parse_sort_order(value: Any) -> SortOrder:
    """Parse a sort order from an enum member or its string value."""
    if isinstance(value, SortOrder):
        return value
    try:
        return SortOrder(str(value).lower())
    except ValueError:
        raise ConfigurationError(f"Unknown sort order: {value!r}")


def parse_filter_id(value: Any) -> str:
    if value not in KNOWN_FILTERS:
        raise ConfigurationError(f"Unknown match filter: {value!r}")
    return value


class ConfigurationValidator:
    """Validates data source configurations with detailed error reporting."""

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.ConfigurationValidator")

    def validate_data_source_config(self, config) -> ValidationResult:
        """
        Validate a data source connection configuration.

        Args:
            config: DataSourceConfig to validate

        Returns:
            ValidationResult with validation details
        """
        result = ValidationResult(is_valid=True, errors=[], warnings=[], suggestions=[])

        if not config.connection_id:
            result.add_error("Connection ID is required")
        elif not re.match(r'^[a-zA-Z0-9_-]+$', config.connection_id):
            result.add_error("Connection ID can only contain letters, numbers, hyphens, and underscores")

        if not config.base_url:
            result.add_error("Base URL is required")
        else:
            parsed = urlparse(config.base_url)
            if parsed.scheme not in ('http', 'https'):
                result.add_error("Base URL must use http or https")
            elif not parsed.netloc:
                result.add_error("Base URL must include a host")
            elif parsed.scheme == 'http' and parsed.hostname not in ('localhost', '127.0.0.1'):
                result.add_warning("Credentials will be sent over plain HTTP")
                result.add_suggestion("Use an https:// site URL")
            if parsed.path not in ('', '/'):
                result.add_warning("Base URL has a path; the API path is appended to it")

        if not config.api_key:
            result.add_error("API key is required")
        if config.authentication_type.value in ('token', 'basic_auth') and not config.api_secret:
            result.add_error("API secret is required for token and basic authentication")

        if config.timeout <= 0:
            result.add_error("Timeout must be positive")
        elif config.timeout > 120:
            result.add_warning("Timeout is very high (>2 minutes)")

        if not config.company:
            result.add_warning("No company configured; searches will not be scoped to a company")

        self.logger.debug(f"Validated data source config '{config.connection_id}': "
                          f"{len(result.errors)} errors, {len(result.warnings)} warnings")
        return result

    def validate_settings(self, data: Dict[str, Any]) -> ValidationResult:
        """
        Validate a raw settings payload before it is applied.

        Args:
            data: Dictionary that may hold enabled_filters, sort_field,
                sort_order and round_off_tolerance

        Returns:
            ValidationResult with validation details
        """
        result = ValidationResult(is_valid=True, errors=[], warnings=[], suggestions=[])

        if 'enabled_filters' in data:
            filters = data['enabled_filters']
            if not isinstance(filters, (list, tuple, set, frozenset)):
                result.add_error("enabled_filters must be a list")
            else:
                unknown = sorted(str(f) for f in filters if f not in KNOWN_FILTERS)
                if unknown:
                    result.add_warning(f"Unknown filters will be ignored: {', '.join(unknown)}")
                if len(set(filters)) != len(filters):
                    result.add_warning("Duplicate filters will be collapsed")

        checks = (
            ('sort_field', parse_sort_field),
            ('sort_order', parse_sort_order),
            ('round_off_tolerance', parse_round_off_tolerance),
        )
        for key, parser in checks:
            if key in data:
                try:
                    parser(data[key])
                except ConfigurationError as e:
                    result.add_error(str(e))

        return result
