"""
Amount comparison rules for matching invoices to a bank transaction.

Provides exact equality on the effective amount, round-off bucketing with
a configurable tolerance, the relative-difference window used by the
fallback search and the outstanding-amount floor.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from bankrec_matching.models import Invoice, to_decimal

import logging
logger = logging.getLogger(__name__)

FALLBACK_RELATIVE_DIFFERENCE = Decimal('0.10')

Amount = Union[Decimal, float, int, str]


def effective_amount(invoice: Invoice) -> Decimal:
    """Outstanding amount when present, otherwise the grand total."""
    return invoice.effective_amount


def round_to_tolerance(amount: Amount, tolerance: int) -> Decimal:
    """
    Round an amount to the nearest multiple of ``tolerance``.

    Halves round away from zero: with a tolerance of 100, 4950 becomes
    5000 and 5050 becomes 5100.

    Args:
        amount: Amount to round
        tolerance: Bucket width, a positive integer

    Returns:
        The rounded amount
    """
    step = Decimal(tolerance)
    buckets = (to_decimal(amount) / step).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
    return buckets * step


def matches_exact(invoice: Invoice, match_amount: Amount) -> bool:
    """Keep an invoice whose effective amount equals the match amount."""
    return invoice.effective_amount == to_decimal(match_amount)


def matches_rounded(invoice: Invoice, match_amount: Amount, tolerance: int) -> bool:
    """Keep an invoice that falls in the same round-off bucket as the match amount."""
    matches = (round_to_tolerance(invoice.effective_amount, tolerance)
               == round_to_tolerance(match_amount, tolerance))
    logger.debug(f"Round-off comparison for {invoice.name}: {invoice.effective_amount} vs "
                 f"{match_amount} (tolerance {tolerance}) = {matches}")
    return matches


def meets_outstanding_floor(invoice: Invoice, match_amount: Amount) -> bool:
    """An invoice must be able to absorb the whole transaction amount."""
    return invoice.effective_amount >= to_decimal(match_amount)


def relative_difference(amount: Amount, target: Amount) -> Optional[Decimal]:
    """
    Relative difference ``|amount - target| / target``.

    Returns:
        The ratio, or None when target is zero
    """
    target_decimal = to_decimal(target)
    if target_decimal == 0:
        return None
    return abs(to_decimal(amount) - target_decimal) / abs(target_decimal)


def within_relative_difference(invoice: Invoice, match_amount: Amount,
                               max_difference: Decimal = FALLBACK_RELATIVE_DIFFERENCE) -> bool:
    """
    Check whether an invoice is close enough to the match amount.

    A zero match amount never matches.
    """
    difference = relative_difference(invoice.effective_amount, match_amount)
    if difference is None:
        return False
    return difference <= max_difference
