"""
Deterministic ordering of candidate invoices.
"""

from datetime import date
from typing import Any, Callable, Dict, Iterable, List

from bankrec_matching.models import Invoice, SortField, SortOrder

# Missing due dates sort as the earliest possible date in either direction
MISSING_DATE = date.min

_SORT_KEYS: Dict[SortField, Callable[[Invoice], Any]] = {
    SortField.OUTSTANDING_AMOUNT: lambda invoice: invoice.effective_amount,
    SortField.GRAND_TOTAL: lambda invoice: invoice.grand_total,
    SortField.POSTING_DATE: lambda invoice: invoice.posting_date,
    SortField.DUE_DATE: lambda invoice: invoice.due_date or MISSING_DATE,
    SortField.CUSTOMER_NAME: lambda invoice: invoice.display_name.casefold(),
}


def sort_key(field: SortField) -> Callable[[Invoice], Any]:
    return _SORT_KEYS[field]


def sort_invoices(invoices: Iterable[Invoice], field: SortField,
                  order: SortOrder) -> List[Invoice]:
    """
    Sort invoices by one field, breaking ties by invoice name ascending.

    The tie-break is applied first and the primary sort is stable (also
    with ``reverse=True``), so equal keys keep name order in both
    directions.
    """
    by_name = sorted(invoices, key=lambda invoice: invoice.name)
    return sorted(by_name, key=sort_key(field), reverse=order is SortOrder.DESC)
