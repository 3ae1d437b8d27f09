"""
Query planning for sales invoice candidate searches.

Builds the three ``frappe.client.get_list`` queries used to find candidate
invoices for a bank transaction: the exact grand-total search, the broader
fallback over invoices with an outstanding balance, and the show-all
diagnostic search.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from bankrec_matching.models import Invoice, InvoiceStatus, MatchSource, to_decimal
from bankrec_matching.matching.amount_policy import (
    Amount, FALLBACK_RELATIVE_DIFFERENCE, within_relative_difference
)

import logging
logger = logging.getLogger(__name__)

SALES_INVOICE_DOCTYPE = "Sales Invoice"

INVOICE_FIELDS = (
    'name', 'customer', 'customer_name', 'posting_date', 'grand_total',
    'status', 'outstanding_amount', 'due_date', 'currency'
)

EXACT_PAGE_SIZE = 10
FALLBACK_PAGE_SIZE = 20
DEBUG_PAGE_SIZE = 50

# Settled or not yet submitted invoices are never candidates
EXCLUDED_STATUSES = (InvoiceStatus.CANCELLED, InvoiceStatus.DRAFT, InvoiceStatus.PAID)
DEBUG_EXCLUDED_STATUSES = (InvoiceStatus.CANCELLED, InvoiceStatus.DRAFT)

FilterTriple = Tuple[str, str, Any]


@dataclass(frozen=True)
class InvoiceQuery:
    """A single list query against the invoice data source."""
    stage: MatchSource
    filters: Tuple[FilterTriple, ...]
    limit_page_length: int
    order_by: str = 'posting_date desc'
    doctype: str = SALES_INVOICE_DOCTYPE
    fields: Tuple[str, ...] = field(default=INVOICE_FIELDS)

    def to_payload(self) -> Dict[str, Any]:
        """Request body for ``frappe.client.get_list``."""
        return {
            'doctype': self.doctype,
            'fields': list(self.fields),
            'filters': [[name, operator, _json_value(value)]
                        for name, operator, value in self.filters],
            'order_by': self.order_by,
            'limit_page_length': self.limit_page_length
        }


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        # Integral amounts go over the wire as ints, the rest as floats
        return int(value) if value == value.to_integral_value() else float(value)
    return value


class CandidateQueryPlanner:
    """
    Builds the query for each search stage and post-filters fallback results.

    Args:
        company: Company the search is scoped to. No company filter is
            added when it is empty.
        fallback_max_difference: Relative difference kept by the fallback
            stage (0.10 keeps invoices within 10% of the match amount)
    """

    def __init__(self, company: Optional[str] = None,
                 fallback_max_difference: Decimal = FALLBACK_RELATIVE_DIFFERENCE):
        self.company = company
        self.fallback_max_difference = fallback_max_difference
        self.logger = logging.getLogger(f"{__name__}.CandidateQueryPlanner")

    def exact_query(self, match_amount: Amount) -> InvoiceQuery:
        """Invoices whose grand total equals the match amount."""
        filters = [('grand_total', '=', to_decimal(match_amount))]
        filters.extend(self._status_filters(EXCLUDED_STATUSES))
        filters.extend(self._company_filter())
        return InvoiceQuery(
            stage=MatchSource.EXACT,
            filters=tuple(filters),
            limit_page_length=EXACT_PAGE_SIZE
        )

    def fallback_query(self) -> InvoiceQuery:
        """Invoices with any outstanding balance."""
        filters = [('outstanding_amount', '>', 0)]
        filters.extend(self._status_filters(EXCLUDED_STATUSES))
        filters.extend(self._company_filter())
        return InvoiceQuery(
            stage=MatchSource.FALLBACK,
            filters=tuple(filters),
            limit_page_length=FALLBACK_PAGE_SIZE
        )

    def debug_query(self) -> InvoiceQuery:
        """Every submitted, non-cancelled invoice of the company."""
        filters = list(self._status_filters(DEBUG_EXCLUDED_STATUSES))
        filters.extend(self._company_filter())
        return InvoiceQuery(
            stage=MatchSource.DEBUG,
            filters=tuple(filters),
            limit_page_length=DEBUG_PAGE_SIZE
        )

    def query_for(self, stage: MatchSource, match_amount: Amount) -> InvoiceQuery:
        if stage is MatchSource.EXACT:
            return self.exact_query(match_amount)
        if stage is MatchSource.FALLBACK:
            return self.fallback_query()
        return self.debug_query()

    def filter_fallback_candidates(self, invoices: List[Invoice],
                                   match_amount: Amount) -> List[Invoice]:
        """
        Keep fallback invoices close to the match amount.

        Returns:
            Invoices within the relative difference window; empty when the
            match amount is zero
        """
        if to_decimal(match_amount) == 0:
            self.logger.info("Match amount is zero, fallback search yields no candidates")
            return []

        relevant = [
            invoice for invoice in invoices
            if within_relative_difference(invoice, match_amount, self.fallback_max_difference)
        ]
        self.logger.info(f"Fallback search: {len(relevant)} of {len(invoices)} invoices "
                         f"within {float(self.fallback_max_difference) * 100:.0f}% of {match_amount}")
        return relevant

    def _status_filters(self, statuses) -> List[FilterTriple]:
        return [('status', '!=', status.value) for status in statuses]

    def _company_filter(self) -> List[FilterTriple]:
        if not self.company:
            return []
        return [('company', '=', self.company)]
