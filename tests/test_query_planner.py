"""
Unit tests for candidate query planning.

Tests the exact, fallback and show-all queries and the relative
difference filter applied to fallback results.
"""

from datetime import date
from decimal import Decimal

from bankrec_matching.models import Invoice, MatchSource
from bankrec_matching.planner import (
    DEBUG_PAGE_SIZE, EXACT_PAGE_SIZE, FALLBACK_PAGE_SIZE, INVOICE_FIELDS,
    CandidateQueryPlanner
)


def make_invoice(name, outstanding):
    return Invoice(
        name=name,
        customer="CUST-A",
        posting_date=date(2024, 1, 1),
        grand_total=Decimal(outstanding),
        status="Unpaid",
        outstanding_amount=Decimal(outstanding)
    )


class TestCandidateQueryPlanner:
    """Test cases for CandidateQueryPlanner."""

    def setup_method(self):
        """Setup test environment."""
        self.planner = CandidateQueryPlanner(company="Example Co")

    def test_exact_query(self):
        query = self.planner.exact_query(Decimal('1180.00'))

        assert query.stage == MatchSource.EXACT
        assert query.limit_page_length == EXACT_PAGE_SIZE == 10
        assert query.filters == (
            ('grand_total', '=', Decimal('1180.00')),
            ('status', '!=', 'Cancelled'),
            ('status', '!=', 'Draft'),
            ('status', '!=', 'Paid'),
            ('company', '=', 'Example Co'),
        )

    def test_fallback_query(self):
        query = self.planner.fallback_query()

        assert query.stage == MatchSource.FALLBACK
        assert query.limit_page_length == FALLBACK_PAGE_SIZE == 20
        assert ('outstanding_amount', '>', 0) in query.filters
        assert ('status', '!=', 'Paid') in query.filters
        assert not any(name == 'grand_total' for name, _, _ in query.filters)

    def test_debug_query(self):
        query = self.planner.debug_query()

        assert query.stage == MatchSource.DEBUG
        assert query.limit_page_length == DEBUG_PAGE_SIZE == 50
        assert query.filters == (
            ('status', '!=', 'Cancelled'),
            ('status', '!=', 'Draft'),
            ('company', '=', 'Example Co'),
        )

    def test_no_company_filter_without_company(self):
        planner = CandidateQueryPlanner()
        for query in (planner.exact_query(5), planner.fallback_query(), planner.debug_query()):
            assert not any(name == 'company' for name, _, _ in query.filters)

    def test_query_for(self):
        assert self.planner.query_for(MatchSource.EXACT, 10).stage == MatchSource.EXACT
        assert self.planner.query_for(MatchSource.FALLBACK, 10).stage == MatchSource.FALLBACK
        assert self.planner.query_for(MatchSource.DEBUG, 10).stage == MatchSource.DEBUG

    def test_payload(self):
        payload = self.planner.exact_query(Decimal('1180.50')).to_payload()

        assert payload['doctype'] == 'Sales Invoice'
        assert payload['fields'] == list(INVOICE_FIELDS)
        assert payload['filters'][0] == ['grand_total', '=', 1180.5]
        assert payload['order_by'] == 'posting_date desc'
        assert payload['limit_page_length'] == 10

    def test_payload_integral_amount_is_int(self):
        payload = self.planner.exact_query(Decimal('5000.00')).to_payload()
        assert payload['filters'][0] == ['grand_total', '=', 5000]
        assert isinstance(payload['filters'][0][2], int)

    def test_fallback_filter_keeps_ten_percent_window(self):
        invoices = [
            make_invoice("SINV-1", "1000"),
            make_invoice("SINV-2", "1100"),
            make_invoice("SINV-3", "1101"),
            make_invoice("SINV-4", "899"),
            make_invoice("SINV-5", "950"),
        ]
        result = self.planner.filter_fallback_candidates(invoices, Decimal('1000'))
        assert [invoice.name for invoice in result] == ["SINV-1", "SINV-2", "SINV-5"]

    def test_fallback_filter_zero_amount(self):
        invoices = [make_invoice("SINV-1", "0"), make_invoice("SINV-2", "10")]
        assert self.planner.filter_fallback_candidates(invoices, Decimal('0')) == []

    def test_custom_fallback_window(self):
        planner = CandidateQueryPlanner(fallback_max_difference=Decimal('0.5'))
        invoices = [make_invoice("SINV-1", "1400"), make_invoice("SINV-2", "1600")]
        result = planner.filter_fallback_candidates(invoices, Decimal('1000'))
        assert [invoice.name for invoice in result] == ["SINV-1"]
