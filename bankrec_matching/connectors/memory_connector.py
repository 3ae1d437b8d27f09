"""
In-memory invoice data source.

Answers the same list queries as the REST connector from a list of
records, evaluating filter triples, ordering and page size locally. Used
for offline runs and tests.
"""

import time
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional

from bankrec_matching.models import ConnectionTestResult, ValidationError, to_decimal
from bankrec_matching.planner import InvoiceQuery
from .base_connector import BaseConnector, ConnectorError

_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    '=': lambda left, right: left == right,
    '!=': lambda left, right: left != right,
    '>': lambda left, right: left is not None and left > right,
    '>=': lambda left, right: left is not None and left >= right,
    '<': lambda left, right: left is not None and left < right,
    '<=': lambda left, right: left is not None and left <= right,
    'in': lambda left, right: left in right,
    'not in': lambda left, right: left not in right,
}


def _comparable(left: Any, right: Any):
    # Amounts arrive as floats, ints or strings; compare them as Decimals
    if isinstance(right, (int, float, Decimal)) and not isinstance(right, bool):
        try:
            return (to_decimal(left) if left is not None else None), to_decimal(right)
        except ValidationError:
            return left, right
    return left, right


def record_matches(record: Dict[str, Any], filters: Iterable) -> bool:
    """Evaluate ``(field, operator, value)`` triples against one record."""
    for field_name, operator, value in filters:
        compare = _OPERATORS.get(operator.lower())
        if compare is None:
            raise ConnectorError(f"Unsupported filter operator: {operator!r}")
        left, right = _comparable(record.get(field_name), value)
        if not compare(left, right):
            return False
    return True


class InMemoryConnector(BaseConnector):
    """
    Serves invoice records held in memory.

    Args:
        records: Raw invoice records, as the REST API would return them
        connection_id: Identifier used in logs
    """

    def __init__(self, records: Optional[List[Dict[str, Any]]] = None,
                 connection_id: str = 'in-memory'):
        super().__init__(connection_id)
        self.records: List[Dict[str, Any]] = list(records or [])
        self.queries: List[InvoiceQuery] = []

    def get_list(self, query: InvoiceQuery) -> List[Dict[str, Any]]:
        self.queries.append(query)
        start_time = time.perf_counter()

        matching = [record for record in self.records if record_matches(record, query.filters)]
        matching = self._order(matching, query.order_by)
        page = [
            {key: record.get(key) for key in query.fields}
            for record in matching[:query.limit_page_length]
        ]

        self._log_operation(f"{query.stage.value} query", time.perf_counter() - start_time,
                            True, f"{len(page)} records")
        return page

    def _order(self, records: List[Dict[str, Any]], order_by: str) -> List[Dict[str, Any]]:
        if not order_by:
            return records
        parts = order_by.split()
        field_name = parts[0]
        descending = len(parts) > 1 and parts[1].lower() == 'desc'
        present = [r for r in records if r.get(field_name) is not None]
        missing = [r for r in records if r.get(field_name) is None]
        present.sort(key=lambda r: str(r[field_name]), reverse=descending)
        return present + missing

    def test_connection(self) -> ConnectionTestResult:
        result = ConnectionTestResult(
            success=True,
            connection_id=self.connection_id,
            response_time=0.0,
            additional_info={'records': len(self.records)}
        )
        self._last_connection_test = result
        return result

    def get_connection_info(self) -> Dict[str, Any]:
        return {
            'connection_id': self.connection_id,
            'connection_type': 'IN_MEMORY',
            'records': len(self.records),
            'healthy': self.is_healthy()
        }
