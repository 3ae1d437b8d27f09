"""
Ownership of the current match configuration.

``MatchSettingsService`` holds the single live ``MatchConfiguration`` and
applies every change as an atomic replacement of that value. It also keeps
the sales-invoice filter consistent with the active transaction: while a
withdrawal is being reconciled, the ``sales_invoice`` filter stays off, and
it is switched back on once the withdrawal is no longer active.
"""

import threading
from typing import Any, Callable, List, Optional

from bankrec_matching.models import (
    ConfigurationError, MatchConfiguration, SALES_INVOICE, Transaction
)
from .settings_store import SettingsStore
from .validation import (
    parse_filter_id, parse_round_off_tolerance, parse_sort_field, parse_sort_order
)

import logging
logger = logging.getLogger(__name__)

ConfigurationListener = Callable[[MatchConfiguration], None]


class MatchSettingsService:
    """
    Owns the live match configuration.

    Readers get an immutable snapshot through ``current``. Writers go
    through the mutation methods, which validate, replace the snapshot
    under a lock, persist it when a store is attached and notify listeners.
    Rejected updates leave the snapshot untouched and return False.
    """

    def __init__(self, initial: Optional[MatchConfiguration] = None,
                 store: Optional[SettingsStore] = None):
        """
        Initialize the settings service.

        Args:
            initial: Starting configuration. If None, loaded from store or defaults.
            store: Optional SettingsStore used to load and persist changes
        """
        self.logger = logging.getLogger(f"{__name__}.MatchSettingsService")
        self._lock = threading.RLock()
        self._store = store
        self._listeners: List[ConfigurationListener] = []
        self._withdrawal_active = False
        self._sales_invoice_suspended = False

        if initial is not None:
            self._config = initial
        elif store is not None:
            self._config = store.load_configuration()
        else:
            self._config = MatchConfiguration()

    @property
    def current(self) -> MatchConfiguration:
        with self._lock:
            return self._config

    @property
    def withdrawal_active(self) -> bool:
        with self._lock:
            return self._withdrawal_active

    def subscribe(self, listener: ConfigurationListener):
        """Register a callback invoked with the new configuration after each change."""
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: ConfigurationListener):
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def toggle_filter(self, filter_id: str, enabled: Optional[bool] = None) -> bool:
        """
        Flip one filter, or force it on/off when ``enabled`` is given.

        Other filters are never touched. Enabling ``sales_invoice`` while a
        withdrawal is active is dropped silently.

        Returns:
            True if the configuration changed, False otherwise
        """
        try:
            filter_id = parse_filter_id(filter_id)
        except ConfigurationError as e:
            self.logger.warning(f"Rejected filter toggle: {e}")
            return False

        with self._lock:
            filters = set(self._config.enabled_filters)
            turn_on = (filter_id not in filters) if enabled is None else bool(enabled)

            if turn_on and filter_id == SALES_INVOICE and self._withdrawal_active:
                self.logger.info("Ignoring sales_invoice filter while a withdrawal is active")
                return False

            if turn_on:
                filters.add(filter_id)
            else:
                filters.discard(filter_id)

            new_config = self._replace(enabled_filters=frozenset(filters))

        return self._notify(new_config)

    def set_sort(self, field: Any = None, order: Any = None) -> bool:
        """
        Update the sort field and/or order.

        Returns:
            True if the configuration changed, False if nothing changed or a
            value was rejected
        """
        try:
            changes = {}
            if field is not None:
                changes['sort_field'] = parse_sort_field(field)
            if order is not None:
                changes['sort_order'] = parse_sort_order(order)
        except ConfigurationError as e:
            self.logger.warning(f"Rejected sort update: {e}")
            return False

        if not changes:
            return False
        with self._lock:
            new_config = self._replace(**changes)
        return self._notify(new_config)

    def set_round_off_tolerance(self, value: Any) -> bool:
        """
        Update the round-off tolerance.

        Non-positive or non-numeric values are rejected and the previous
        tolerance is kept.

        Returns:
            True if the configuration changed, False otherwise
        """
        try:
            tolerance = parse_round_off_tolerance(value)
        except ConfigurationError as e:
            self.logger.warning(f"Rejected round-off tolerance: {e}")
            return False

        with self._lock:
            new_config = self._replace(round_off_tolerance=tolerance)
        return self._notify(new_config)

    def apply_transaction(self, transaction: Optional[Transaction],
                          notify: bool = True) -> MatchConfiguration:
        """
        Record the active transaction and enforce the withdrawal rule.

        If the transaction is a withdrawal and ``sales_invoice`` is enabled,
        the filter is removed for as long as withdrawals stay active. The
        removal is not persisted, and the filter comes back as soon as a
        non-withdrawal (or no transaction) becomes active.

        Args:
            transaction: The transaction now being reconciled, or None
            notify: Whether listeners hear about a filter changed here

        Returns:
            The configuration in force after the rule is applied
        """
        new_config = None
        with self._lock:
            self._withdrawal_active = bool(transaction and transaction.is_withdrawal)
            filters = self._config.enabled_filters
            if self._withdrawal_active and SALES_INVOICE in filters:
                self.logger.info(
                    f"Disabling sales_invoice filter for withdrawal {transaction.name}"
                )
                self._sales_invoice_suspended = True
                new_config = self._replace(persist=False,
                                           enabled_filters=filters - {SALES_INVOICE})
            elif not self._withdrawal_active and self._sales_invoice_suspended:
                self.logger.info("Restoring sales_invoice filter after withdrawal")
                self._sales_invoice_suspended = False
                new_config = self._replace(persist=False,
                                           enabled_filters=filters | {SALES_INVOICE})
            current = self._config

        if notify:
            self._notify(new_config)
        return current

    def _replace(self, persist: bool = True, **changes) -> Optional[MatchConfiguration]:
        """
        Swap in a new configuration. Caller holds the lock.

        Args:
            persist: Whether to write the change to the store
            **changes: MatchConfiguration fields to replace

        Returns:
            The new configuration, or None if nothing changed
        """
        new_config = MatchConfiguration(
            enabled_filters=changes.get('enabled_filters', self._config.enabled_filters),
            sort_field=changes.get('sort_field', self._config.sort_field),
            sort_order=changes.get('sort_order', self._config.sort_order),
            round_off_tolerance=changes.get('round_off_tolerance',
                                            self._config.round_off_tolerance)
        )
        if new_config == self._config:
            return None

        self._config = new_config
        self.logger.debug(f"Match configuration updated: {new_config.to_dict()}")

        if persist and self._store is not None:
            try:
                self._store.save_configuration(self._stored_view(new_config))
            except OSError as e:
                self.logger.error(f"Failed to persist match settings: {e}")
        return new_config

    def _stored_view(self, config: MatchConfiguration) -> MatchConfiguration:
        # The user's choice, without the filter a withdrawal switched off
        if not self._sales_invoice_suspended:
            return config
        return MatchConfiguration(
            enabled_filters=config.enabled_filters | {SALES_INVOICE},
            sort_field=config.sort_field,
            sort_order=config.sort_order,
            round_off_tolerance=config.round_off_tolerance
        )

    def _notify(self, new_config: Optional[MatchConfiguration]) -> bool:
        # Listeners run outside the lock so they may read or mutate settings
        if new_config is None:
            return False
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(new_config)
        return True
