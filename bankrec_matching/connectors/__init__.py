"""
Invoice data source connectors for bank reconciliation matching.

This package provides:
- The connector contract used by the search orchestrator
- A Frappe/ERPNext REST connector built on requests
- An in-memory connector for offline use and tests
- Authentication for the REST connector
"""

from .base_connector import BaseConnector, ConnectorError
from .frappe_connector import FrappeConnector
from .memory_connector import InMemoryConnector
from .authentication import (
    AuthenticatorFactory, BaseAuthenticator, TokenAuthenticator,
    BearerTokenAuthenticator, BasicAuthAuthenticator, CSRFTokenDecorator,
    AuthenticationError
)

__all__ = [
    "BaseConnector",
    "ConnectorError",
    "FrappeConnector",
    "InMemoryConnector",
    "AuthenticatorFactory",
    "BaseAuthenticator",
    "TokenAuthenticator",
    "BearerTokenAuthenticator",
    "BasicAuthAuthenticator",
    "CSRFTokenDecorator",
    "AuthenticationError"
]
