"""
Search orchestration for sales invoice candidates.

Sequences the query stages for the active bank transaction (exact, then
fallback when the exact search returns nothing, or show-all on request),
runs the matching engine over whatever a stage returned and publishes
``MatchResult`` snapshots to subscribers.

Every search takes a new sequence token. A stage response that arrives
after a newer search has started is dropped, so late answers never
overwrite newer state.
"""

import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, List, Optional, Tuple, Union

from bankrec_matching.config.match_configuration import MatchSettingsService
from bankrec_matching.connectors.base_connector import BaseConnector
from bankrec_matching.matching.engine import MatchingEngine
from bankrec_matching.models import (
    Invoice, MatchConfiguration, MatchResult, MatchSource, MatchStatus,
    SALES_INVOICE, Transaction, TransportError, ValidationError, to_decimal
)
from bankrec_matching.planner import CandidateQueryPlanner, InvoiceQuery

import logging
logger = logging.getLogger(__name__)

ResultListener = Callable[[MatchResult], None]

ERROR_PREFIX = "Failed to load sales invoices"
DEBUG_ERROR_PREFIX = "Failed to load all invoices"


@dataclass(frozen=True)
class _CandidateCache:
    """Candidates of the last completed stage, kept for re-filtering."""
    transaction: Optional[Transaction]
    match_amount: Decimal
    candidates: Tuple[Invoice, ...]
    source: MatchSource
    apply_amount_policy: bool
    raw_count: int


class SearchOrchestrator:
    """
    Drives candidate searches for one reconciliation session.

    States: idle, loading(exact), loading(fallback), loading(debug),
    ready and error. The current one is the ``status``/``source`` pair of
    ``result``.

    Args:
        connector: Invoice data source
        settings: Owner of the live match configuration
        planner: Query planner; defaults to one without company scope
        engine: Matching engine; defaults to a new MatchingEngine
        executor: Optional executor. When given, searches run on it and
            the trigger methods return Futures.
    """

    def __init__(self, connector: BaseConnector, settings: MatchSettingsService,
                 planner: Optional[CandidateQueryPlanner] = None,
                 engine: Optional[MatchingEngine] = None,
                 executor: Optional[Executor] = None):
        self.connector = connector
        self.settings = settings
        self.planner = planner or CandidateQueryPlanner()
        self.engine = engine or MatchingEngine()
        self.executor = executor
        self.logger = logging.getLogger(f"{__name__}.SearchOrchestrator")

        self._lock = threading.RLock()
        self._listeners: List[ResultListener] = []
        self._search_id = 0
        self._transaction: Optional[Transaction] = None
        self._amount_override: Optional[Decimal] = None
        self._cache: Optional[_CandidateCache] = None
        self._result = MatchResult(status=MatchStatus.IDLE)

        self.settings.subscribe(self._on_configuration_changed)

    @property
    def result(self) -> MatchResult:
        """Latest published result."""
        with self._lock:
            return self._result

    @property
    def transaction(self) -> Optional[Transaction]:
        with self._lock:
            return self._transaction

    def subscribe(self, listener: ResultListener):
        """Register a callback that receives every published MatchResult."""
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: ResultListener):
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def close(self):
        """Detach from the settings service."""
        self.settings.unsubscribe(self._on_configuration_changed)

    # Triggers

    def set_transaction(self, transaction: Optional[Transaction]
                        ) -> Union[MatchResult, Future]:
        """
        Make a transaction the active one and search for it.

        Setting the same transaction again while a search for it is loading
        or ready does nothing; use ``retry`` to search again. A new
        transaction drops any search amount override.

        Returns:
            The published result, or a Future of it when an executor is set
        """
        with self._lock:
            unchanged = (transaction == self._transaction and self._result.status in
                         (MatchStatus.LOADING, MatchStatus.READY))
            if unchanged:
                self.logger.debug("Transaction unchanged, keeping current search")
                return self._completed(self._result)
            self._transaction = transaction
            self._amount_override = None
            token = self._next_token()
            amount = self._search_amount()

        # May drop or restore the sales_invoice filter; the cache is already cleared
        self.settings.apply_transaction(transaction)
        return self._start_search(token, transaction, amount)

    def set_search_amount(self, amount) -> Union[MatchResult, Future]:
        """
        Search the active transaction again using a different amount.

        The amount replaces the transaction's match amount for the exact
        query, the fallback window and the engine, and stays in force for
        ``retry`` and ``show_all`` until the transaction changes. Passing
        None goes back to the transaction's own amount.

        Raises:
            ValidationError: If the amount is not a finite, non-negative number
        """
        override = None
        if amount is not None:
            override = to_decimal(amount)
            if not override.is_finite() or override < 0:
                raise ValidationError(f"Invalid search amount: {amount!r}")

        with self._lock:
            transaction = self._transaction
            self._amount_override = override
            token = self._next_token()
            amount = self._search_amount()
        self.logger.info(f"Searching {transaction.name if transaction else 'no transaction'} "
                         f"for amount {amount}")
        return self._start_search(token, transaction, amount)

    def retry(self) -> Union[MatchResult, Future]:
        """Search again for the active transaction, starting from the exact stage."""
        with self._lock:
            transaction = self._transaction
            token = self._next_token()
            amount = self._search_amount()
        self.logger.info(f"Retrying search for {transaction.name if transaction else 'no transaction'}")
        return self._start_search(token, transaction, amount)

    def show_all(self) -> Union[MatchResult, Future]:
        """
        Run the show-all diagnostic search.

        The results skip the amount policy but still go through the
        outstanding floor, consolidation and sort.
        """
        with self._lock:
            transaction = self._transaction
            token = self._next_token()
            amount = self._search_amount()

        if transaction is not None and transaction.is_withdrawal:
            self.logger.info(f"Withdrawal {transaction.name} is not matched against sales invoices")
            return self._completed(self._publish_idle(token, transaction, amount))

        return self._dispatch(self._run_debug_search, token, transaction, amount)

    # Search execution

    def _search_amount(self) -> Optional[Decimal]:
        """Amount searched for the active transaction. Caller holds the lock."""
        if self._amount_override is not None:
            return self._amount_override
        return self._transaction.match_amount if self._transaction else None

    def _start_search(self, token: int, transaction: Optional[Transaction],
                      amount: Optional[Decimal]):
        reason = self._ineligibility_reason(transaction, amount)
        if reason:
            self.logger.info(f"No sales invoice search: {reason}")
            return self._completed(self._publish_idle(token, transaction, amount))
        return self._dispatch(self._run_search, token, transaction, amount)

    def _ineligibility_reason(self, transaction: Optional[Transaction],
                              amount: Optional[Decimal]) -> Optional[str]:
        if transaction is None:
            return "no active transaction"
        if transaction.is_withdrawal:
            return f"{transaction.name} is a withdrawal"
        if not amount:
            return f"{transaction.name} has no amount to match"
        if not self.settings.current.is_enabled(SALES_INVOICE):
            return "sales_invoice filter is disabled"
        return None

    def _run_search(self, token: int, transaction: Transaction, amount: Decimal) -> MatchResult:
        if not self._publish_loading(token, transaction, amount, MatchSource.EXACT):
            return self.result
        exact_query = self.planner.exact_query(amount)
        records, failure = self._fetch(exact_query)
        if failure is not None:
            return self._publish_error(token, transaction, amount, MatchSource.EXACT,
                                       f"{ERROR_PREFIX}: {failure}")

        if records:
            invoices = self.connector.to_invoices(records)
            return self._publish_ready(token, transaction, amount, invoices, MatchSource.EXACT,
                                       apply_amount_policy=True, raw_count=len(records))

        self.logger.info(f"No exact amount match for {amount}, trying fallback search")
        if not self._publish_loading(token, transaction, amount, MatchSource.FALLBACK):
            return self.result
        records, failure = self._fetch(self.planner.fallback_query())
        if failure is not None:
            return self._publish_error(token, transaction, amount, MatchSource.FALLBACK,
                                       f"{ERROR_PREFIX}: {failure}")

        invoices = self.planner.filter_fallback_candidates(
            self.connector.to_invoices(records), amount
        )
        return self._publish_ready(token, transaction, amount, invoices, MatchSource.FALLBACK,
                                   apply_amount_policy=True, raw_count=len(records))

    def _run_debug_search(self, token: int, transaction: Optional[Transaction],
                          amount: Optional[Decimal]) -> MatchResult:
        if not self._publish_loading(token, transaction, amount, MatchSource.DEBUG):
            return self.result
        self.logger.info("Fetching all sales invoices for diagnosis")
        records, failure = self._fetch(self.planner.debug_query())
        if failure is not None:
            return self._publish_error(token, transaction, amount, MatchSource.DEBUG,
                                       f"{DEBUG_ERROR_PREFIX}: {failure}")
        invoices = self.connector.to_invoices(records)
        return self._publish_ready(token, transaction, amount, invoices, MatchSource.DEBUG,
                                   apply_amount_policy=False, raw_count=len(records))

    def _fetch(self, query: InvoiceQuery):
        """
        Run one query.

        Returns:
            Tuple of (records, None) or (None, error message)
        """
        try:
            return self.connector.get_list(query), None
        except TransportError as e:
            self.logger.error(f"{query.stage.value} query failed: {e}")
            return None, str(e) or type(e).__name__
        except Exception as e:
            self.logger.error(f"Unexpected error in {query.stage.value} query: {e}", exc_info=True)
            return None, str(e) or type(e).__name__

    # Publishing

    def _next_token(self) -> int:
        """Start a new search session. Caller holds the lock."""
        self._search_id += 1
        self._cache = None
        return self._search_id

    def _is_current(self, token: int) -> bool:
        return token == self._search_id

    def _publish_loading(self, token: int, transaction: Optional[Transaction],
                         amount: Optional[Decimal], source: MatchSource) -> bool:
        result = MatchResult(
            status=MatchStatus.LOADING,
            source=source,
            transaction_name=transaction.name if transaction else None,
            match_amount=amount,
            search_id=token
        )
        return self._publish(token, result) is not None

    def _publish_idle(self, token: int, transaction: Optional[Transaction],
                      amount: Optional[Decimal]) -> MatchResult:
        result = MatchResult(
            status=MatchStatus.IDLE,
            transaction_name=transaction.name if transaction else None,
            match_amount=amount,
            search_id=token
        )
        return self._publish(token, result) or self.result

    def _publish_error(self, token: int, transaction: Optional[Transaction],
                       amount: Optional[Decimal], source: MatchSource,
                       message: str) -> MatchResult:
        result = MatchResult(
            status=MatchStatus.ERROR,
            source=source,
            error_message=message,
            transaction_name=transaction.name if transaction else None,
            match_amount=amount,
            search_id=token
        )
        return self._publish(token, result) or self.result

    def _publish_ready(self, token: int, transaction: Optional[Transaction],
                       amount: Optional[Decimal], candidates: List[Invoice], source: MatchSource,
                       apply_amount_policy: bool, raw_count: int) -> MatchResult:
        if amount is None:
            amount = Decimal('0')
        cache = _CandidateCache(
            transaction=transaction,
            match_amount=amount,
            candidates=tuple(candidates),
            source=source,
            apply_amount_policy=apply_amount_policy,
            raw_count=raw_count
        )

        with self._lock:
            if not self._is_current(token):
                self.logger.debug(f"Discarding stale {source.value} response for search {token}")
                return self._result
            # Engine runs under the lock so a concurrent settings change
            # either sees this cache or is seen here
            self._cache = cache
            result = self._compute(cache, self.settings.current, token)
            self._result = result

        self.logger.info(f"Search {token} ready: {len(result.invoices)} invoices "
                         f"from {source.value} stage ({raw_count} raw)")
        self._notify(result)
        return result

    def _compute(self, cache: _CandidateCache, config: MatchConfiguration,
                 token: int) -> MatchResult:
        invoices = self.engine.run(cache.candidates, cache.match_amount, config,
                                   apply_amount_policy=cache.apply_amount_policy)
        return MatchResult(
            status=MatchStatus.READY,
            invoices=tuple(invoices),
            source=cache.source,
            transaction_name=cache.transaction.name if cache.transaction else None,
            match_amount=cache.match_amount,
            raw_count=cache.raw_count,
            search_id=token
        )

    def _publish(self, token: int, result: MatchResult) -> Optional[MatchResult]:
        with self._lock:
            if not self._is_current(token):
                self.logger.debug(f"Discarding stale {result.status.value} result for search {token}")
                return None
            self._result = result
        self._notify(result)
        return result

    def _notify(self, result: MatchResult):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(result)

    def _on_configuration_changed(self, config: MatchConfiguration):
        """Re-filter cached candidates in place; no new query is issued."""
        with self._lock:
            if self._cache is None or self._result.status is not MatchStatus.READY:
                return
            result = self._compute(self._cache, config, self._search_id)
            self._result = result
        self.logger.debug(f"Recomputed search {result.search_id} after settings change")
        self._notify(result)

    def _dispatch(self, func, *args):
        if self.executor is not None:
            return self.executor.submit(func, *args)
        return func(*args)

    def _completed(self, result: MatchResult):
        """Wrap an immediate result the same way ``_dispatch`` would."""
        if self.executor is None:
            return result
        future: Future = Future()
        future.set_result(result)
        return future
