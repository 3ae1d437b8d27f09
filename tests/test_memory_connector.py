"""
Unit tests for the in-memory invoice connector.
"""

from decimal import Decimal

import pytest

from bankrec_matching.connectors.base_connector import ConnectorError
from bankrec_matching.connectors.memory_connector import InMemoryConnector, record_matches
from bankrec_matching.planner import CandidateQueryPlanner


def record(name, grand_total, outstanding, status="Unpaid", company="Example Co",
           posting_date="2024-01-01"):
    return {
        'name': name,
        'customer': 'CUST-A',
        'customer_name': 'Acme Ltd',
        'posting_date': posting_date,
        'grand_total': grand_total,
        'outstanding_amount': outstanding,
        'status': status,
        'company': company,
        'due_date': None,
        'currency': 'INR'
    }


class TestRecordMatches:
    """Test cases for filter triple evaluation."""

    def test_numeric_comparison_across_types(self):
        assert record_matches({'grand_total': 1180.0}, [('grand_total', '=', Decimal('1180'))])
        assert record_matches({'grand_total': '1,180.00'}, [('grand_total', '=', 1180)])
        assert not record_matches({'outstanding_amount': 0}, [('outstanding_amount', '>', 0)])

    def test_missing_value_fails_ordering_operators(self):
        assert not record_matches({}, [('outstanding_amount', '>', 0)])

    def test_in_operators(self):
        assert record_matches({'status': 'Unpaid'}, [('status', 'in', ['Unpaid', 'Overdue'])])
        assert record_matches({'status': 'Paid'}, [('status', 'not in', ['Unpaid'])])

    def test_unknown_operator(self):
        with pytest.raises(ConnectorError):
            record_matches({'name': 'x'}, [('name', 'like', '%x%')])


class TestInMemoryConnector:
    """Test cases for InMemoryConnector."""

    def setup_method(self):
        """Setup test environment."""
        self.connector = InMemoryConnector([
            record("SINV-1", 1000, 1000, posting_date="2024-01-01"),
            record("SINV-2", 1000, 0, status="Paid", posting_date="2024-01-02"),
            record("SINV-3", 1000, 1000, status="Draft", posting_date="2024-01-03"),
            record("SINV-4", 1000, 1000, company="Other Co", posting_date="2024-01-04"),
            record("SINV-5", 1050, 1050, posting_date="2024-01-05"),
        ])
        self.planner = CandidateQueryPlanner(company="Example Co")

    def test_exact_query(self):
        invoices = self.connector.fetch_invoices(self.planner.exact_query(Decimal('1000')))
        assert [invoice.name for invoice in invoices] == ["SINV-1"]

    def test_fallback_query_orders_newest_first(self):
        records = self.connector.get_list(self.planner.fallback_query())
        assert [r['name'] for r in records] == ["SINV-5", "SINV-1"]

    def test_debug_query_keeps_paid(self):
        records = self.connector.get_list(self.planner.debug_query())
        assert [r['name'] for r in records] == ["SINV-5", "SINV-2", "SINV-1"]

    def test_projection_and_page_size(self):
        connector = InMemoryConnector([record(f"SINV-{i}", 10, 10) for i in range(30)])
        records = connector.get_list(CandidateQueryPlanner().fallback_query())

        assert len(records) == 20
        assert 'company' not in records[0]

    def test_queries_are_recorded(self):
        query = self.planner.debug_query()
        self.connector.get_list(query)
        assert self.connector.queries == [query]

    def test_connection(self):
        assert self.connector.test_connection().success is True
        assert self.connector.get_connection_info()['records'] == 5
