"""
Base connector interface for invoice data sources.

A data source answers ``InvoiceQuery`` list queries with raw records.
The base class turns those records into ``Invoice`` snapshots and keeps
the timing and health bookkeeping shared by every source.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from bankrec_matching.models import (
    ConnectionTestResult, Invoice, TransportError, ValidationError
)
from bankrec_matching.planner import InvoiceQuery

logger = logging.getLogger(__name__)


class ConnectorError(TransportError):
    """Raised when a data source cannot answer a query."""
    pass


class BaseConnector(ABC):
    """
    Abstract base class for invoice data sources.

    Subclasses implement ``get_list``, ``test_connection`` and
    ``get_connection_info``.
    """

    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        self.logger = logging.getLogger(f"{__name__}.{connection_id}")
        self._last_connection_test: Optional[ConnectionTestResult] = None
        self._connection_healthy = True

    @abstractmethod
    def get_list(self, query: InvoiceQuery) -> List[Dict[str, Any]]:
        """
        Run a list query against the data source.

        Returns:
            Raw invoice records, at most ``query.limit_page_length`` of them

        Raises:
            TransportError: If the data source cannot be reached or answers
                with an error
        """
        pass

    @abstractmethod
    def test_connection(self) -> ConnectionTestResult:
        pass

    @abstractmethod
    def get_connection_info(self) -> Dict[str, Any]:
        """Connection metadata for health reporting; never includes secrets."""
        pass

    def fetch_invoices(self, query: InvoiceQuery) -> List[Invoice]:
        """
        Run a query and convert the records to invoices.

        Raises:
            TransportError: If the request fails
        """
        return self.to_invoices(self.get_list(query))

    def to_invoices(self, records: List[Dict[str, Any]]) -> List[Invoice]:
        """
        Convert raw records to invoices.

        A malformed record never fails the whole stage. It is left out and
        logged at error level, since a dropped record is a candidate the
        user will not see.
        """
        invoices = []
        for record in records:
            try:
                invoices.append(Invoice.from_dict(record))
            except ValidationError as e:
                self.logger.error(f"Dropping invoice record {record.get('name')!r}: {e}")
        if len(invoices) < len(records):
            self.logger.warning(
                f"{len(records) - len(invoices)} of {len(records)} invoice records were dropped"
            )
        return invoices

    def is_healthy(self) -> bool:
        """False after a failed query or connection test, until one succeeds."""
        return self._connection_healthy

    def _log_operation(self, operation: str, duration: float, success: bool,
                       details: Optional[str] = None):
        outcome = "succeeded" if success else "failed"
        message = f"{operation} {outcome} in {duration:.3f}s"
        if details:
            message += f" ({details})"

        if success:
            self.logger.info(message)
        else:
            self.logger.error(message)

    def _handle_error(self, operation: str, error: Exception) -> ConnectorError:
        """Log a failed operation, mark the source unhealthy and wrap the error."""
        self.logger.error(f"{operation} failed on '{self.connection_id}': {error}", exc_info=True)
        self._connection_healthy = False
        return ConnectorError(str(error))

    def _measure_time(self, func, *args, **kwargs):
        """Call ``func`` and return ``(result, seconds)``."""
        start_time = time.perf_counter()
        result = func(*args, **kwargs)
        return result, time.perf_counter() - start_time
