"""
Bank Reconciliation Invoice Matching

Finds outstanding sales invoices that a bank deposit may settle, so that a
reconciliation user can pick the right one quickly.

This package provides:
- Core data models for invoices, transactions and match results
- A staged candidate query planner (exact, fallback, show-all)
- The amount policy, consolidation and sort pipeline
- A search orchestrator that publishes results to subscribers
- Data source connectors and persisted match settings
"""

from .models import (
    # Core data models
    Invoice,
    Transaction,
    MatchConfiguration,
    MatchResult,

    # Configuration models
    DataSourceConfig,
    ConnectionTestResult,

    # Enums
    InvoiceStatus,
    SortField,
    SortOrder,
    MatchSource,
    MatchStatus,
    AuthenticationType,

    # Exceptions
    BankRecMatchingError,
    TransportError,
    ConfigurationError,
    ValidationError
)
from .orchestrator import SearchOrchestrator

__version__ = "1.0.0"
__author__ = "Bank Reconciliation Team"

__all__ = [
    # Core data models
    "Invoice",
    "Transaction",
    "MatchConfiguration",
    "MatchResult",

    # Configuration models
    "DataSourceConfig",
    "ConnectionTestResult",

    # Enums
    "InvoiceStatus",
    "SortField",
    "SortOrder",
    "MatchSource",
    "MatchStatus",
    "AuthenticationType",

    # Exceptions
    "BankRecMatchingError",
    "TransportError",
    "ConfigurationError",
    "ValidationError",

    "SearchOrchestrator"
]
