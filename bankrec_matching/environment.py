"""
Environment configuration for bank reconciliation matching.

Reads the data source connection from ``BANKREC_*`` environment variables,
sets up logging and wires a ready-to-use orchestrator.
"""

import os
import sys
import logging
from typing import Mapping, Optional

from bankrec_matching.config.match_configuration import MatchSettingsService
from bankrec_matching.config.settings_store import SettingsStore
from bankrec_matching.config.validation import ConfigurationValidator
from bankrec_matching.connectors.base_connector import BaseConnector
from bankrec_matching.connectors.frappe_connector import FrappeConnector
from bankrec_matching.models import AuthenticationType, ConfigurationError, DataSourceConfig
from bankrec_matching.orchestrator import SearchOrchestrator
from bankrec_matching.planner import CandidateQueryPlanner

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: Optional[str] = None):
    """Configure root logging; level defaults to BANKREC_LOG_LEVEL or INFO."""
    level_name = (level or os.environ.get('BANKREC_LOG_LEVEL', 'INFO')).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    # Request-level chatter from requests' transport
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def load_data_source_config(environ: Optional[Mapping[str, str]] = None) -> DataSourceConfig:
    """
    Build the data source configuration from environment variables.

    Args:
        environ: Mapping to read from; defaults to ``os.environ``

    Raises:
        ConfigurationError: If a variable is missing or the result fails validation
    """
    env = os.environ if environ is None else environ

    base_url = env.get('BANKREC_BASE_URL', '').strip()
    if not base_url:
        raise ConfigurationError("BANKREC_BASE_URL is not set")

    auth_name = env.get('BANKREC_AUTH_TYPE', AuthenticationType.TOKEN.value).strip().lower()
    try:
        auth_type = AuthenticationType(auth_name)
    except ValueError:
        raise ConfigurationError(f"Unknown BANKREC_AUTH_TYPE: {auth_name!r}")

    try:
        timeout = int(env.get('BANKREC_TIMEOUT', '30'))
    except ValueError:
        raise ConfigurationError(f"BANKREC_TIMEOUT must be an integer, got {env.get('BANKREC_TIMEOUT')!r}")

    config = DataSourceConfig(
        connection_id=env.get('BANKREC_CONNECTION_ID', 'frappe'),
        base_url=base_url,
        api_key=env.get('BANKREC_API_KEY', ''),
        api_secret=env.get('BANKREC_API_SECRET') or None,
        authentication_type=auth_type,
        company=env.get('BANKREC_COMPANY') or None,
        timeout=timeout
    )

    result = ConfigurationValidator().validate_data_source_config(config)
    for warning in result.warnings:
        logger.warning(f"Data source configuration: {warning}")
    if not result.is_valid:
        raise ConfigurationError("; ".join(result.errors))

    logger.info(f"Loaded data source configuration for {config.base_url}")
    return config


def build_orchestrator(config: Optional[DataSourceConfig] = None,
                       connector: Optional[BaseConnector] = None,
                       settings_file: Optional[str] = None,
                       environ: Optional[Mapping[str, str]] = None) -> SearchOrchestrator:
    """
    Wire settings, planner, connector and orchestrator together.

    Without an explicit connector, a FrappeConnector is built from
    ``config`` (or from the environment when ``config`` is None).
    """
    env = os.environ if environ is None else environ

    if connector is None:
        config = config or load_data_source_config(env)
        connector = FrappeConnector(config)
    company = config.company if config else env.get('BANKREC_COMPANY') or None

    store = SettingsStore(settings_file or env.get('BANKREC_SETTINGS_FILE') or None)
    settings = MatchSettingsService(store=store)
    planner = CandidateQueryPlanner(company=company)

    return SearchOrchestrator(connector, settings, planner=planner)
