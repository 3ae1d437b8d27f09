"""
Matching engine for bank reconciliation invoice candidates.

Provides the amount comparison rules, deterministic sorting and the
filter/sort pipeline applied to every query stage's candidates.
"""

from .amount_policy import (
    effective_amount, matches_exact, matches_rounded, meets_outstanding_floor,
    relative_difference, round_to_tolerance, within_relative_difference
)
from .engine import EngineTrace, MatchingEngine, consolidate_by_customer, match_invoices
from .sorting import sort_invoices

__all__ = [
    "effective_amount",
    "matches_exact",
    "matches_rounded",
    "meets_outstanding_floor",
    "relative_difference",
    "round_to_tolerance",
    "within_relative_difference",
    "EngineTrace",
    "MatchingEngine",
    "consolidate_by_customer",
    "match_invoices",
    "sort_invoices"
]
