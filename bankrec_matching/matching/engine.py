"""
Matching engine for bank transaction to sales invoice candidates.

Applies, in order, the amount policy, the outstanding-amount floor, the
optional per-customer consolidation and the configured sort to a list of
candidate invoices. Everything here is pure: no I/O, no shared state.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Tuple

from bankrec_matching.models import (
    GROUP_BY_CUSTOMER, Invoice, MatchConfiguration, to_decimal
)
from .amount_policy import Amount, matches_exact, matches_rounded, meets_outstanding_floor
from .sorting import sort_invoices

import logging
logger = logging.getLogger(__name__)


@dataclass
class EngineTrace:
    """Candidate counts after each step of one engine pass."""
    match_amount: Decimal
    policy: str  # 'exact', 'rounded' or 'skipped'
    candidates: int = 0
    after_amount_policy: int = 0
    after_outstanding_floor: int = 0
    after_consolidation: int = 0
    dropped: Dict[str, List[str]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'match_amount': str(self.match_amount),
            'policy': self.policy,
            'candidates': self.candidates,
            'after_amount_policy': self.after_amount_policy,
            'after_outstanding_floor': self.after_outstanding_floor,
            'after_consolidation': self.after_consolidation,
            'dropped': self.dropped
        }


def consolidate_by_customer(invoices: Iterable[Invoice]) -> List[Invoice]:
    """
    Keep one invoice per customer: the one with the lowest effective amount.

    Ties keep the invoice seen first. Customers stay in first-seen order.
    """
    best: Dict[str, Invoice] = {}
    for invoice in invoices:
        current = best.get(invoice.customer)
        if current is None or invoice.effective_amount < current.effective_amount:
            best[invoice.customer] = invoice
    return list(best.values())


def _run_pipeline(candidates: Iterable[Invoice], match_amount: Amount,
                  config: MatchConfiguration,
                  apply_amount_policy: bool) -> Tuple[List[Invoice], EngineTrace]:
    amount = to_decimal(match_amount)
    remaining = list(candidates)

    if not apply_amount_policy:
        policy = 'skipped'
    elif config.exact_amount_match:
        policy = 'exact'
    else:
        policy = 'rounded'

    trace = EngineTrace(match_amount=amount, policy=policy, candidates=len(remaining))

    if policy == 'exact':
        kept = [invoice for invoice in remaining if matches_exact(invoice, amount)]
    elif policy == 'rounded':
        tolerance = config.round_off_tolerance
        kept = [invoice for invoice in remaining if matches_rounded(invoice, amount, tolerance)]
    else:
        kept = remaining
    trace.dropped['amount_policy'] = _names_missing(remaining, kept)
    trace.after_amount_policy = len(kept)
    remaining = kept

    kept = [invoice for invoice in remaining if meets_outstanding_floor(invoice, amount)]
    trace.dropped['outstanding_floor'] = _names_missing(remaining, kept)
    trace.after_outstanding_floor = len(kept)
    remaining = kept

    if config.is_enabled(GROUP_BY_CUSTOMER):
        kept = consolidate_by_customer(remaining)
        trace.dropped['consolidation'] = _names_missing(remaining, kept)
        remaining = kept
    trace.after_consolidation = len(remaining)

    return sort_invoices(remaining, config.sort_field, config.sort_order), trace


def _names_missing(before: List[Invoice], after: List[Invoice]) -> List[str]:
    kept_ids = {id(invoice) for invoice in after}
    return [invoice.name for invoice in before if id(invoice) not in kept_ids]


def match_invoices(candidates: Iterable[Invoice], match_amount: Amount,
                   config: MatchConfiguration,
                   apply_amount_policy: bool = True) -> List[Invoice]:
    """
    Filter and order candidate invoices for a transaction amount.

    Args:
        candidates: Invoices returned by a query stage
        match_amount: Unsigned transaction amount
        config: Match configuration snapshot
        apply_amount_policy: False for the show-all stage, which skips the
            exact/rounded amount comparison but keeps the other steps

    Returns:
        Filtered, sorted list of invoices (possibly empty)
    """
    result, _ = _run_pipeline(candidates, match_amount, config, apply_amount_policy)
    return result


class MatchingEngine:
    """
    Logging wrapper around ``match_invoices``.

    Holds no state between calls, so one instance can be shared freely.
    """

    def __init__(self):
        """Initialize matching engine."""
        self.logger = logging.getLogger(f"{__name__}.MatchingEngine")

    def run(self, candidates: Iterable[Invoice], match_amount: Amount,
            config: MatchConfiguration, apply_amount_policy: bool = True) -> List[Invoice]:
        """Filter and sort candidates; see ``match_invoices``."""
        result, trace = _run_pipeline(candidates, match_amount, config, apply_amount_policy)
        self.logger.info(
            f"Matched {trace.candidates} candidates against {trace.match_amount} "
            f"({trace.policy} policy): {len(result)} kept"
        )
        self.logger.debug(f"Engine trace: {trace.to_dict()}")
        return result

    def explain(self, candidates: Iterable[Invoice], match_amount: Amount,
                config: MatchConfiguration, apply_amount_policy: bool = True) -> EngineTrace:
        """
        Report how many candidates survive each step, and which were dropped.

        Returns:
            EngineTrace for the pass
        """
        _, trace = _run_pipeline(candidates, match_amount, config, apply_amount_policy)
        return trace
