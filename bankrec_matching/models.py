"""
Core data models for bank reconciliation invoice matching.

This module defines the fundamental data structures used throughout the
matching process: the invoices offered as candidates, the bank transaction
being reconciled, the match configuration and the published match result.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple, Union


class InvoiceStatus(Enum):
    """Sales Invoice statuses reported by the data source."""
    DRAFT = "Draft"
    UNPAID = "Unpaid"
    OVERDUE = "Overdue"
    PAID = "Paid"
    CANCELLED = "Cancelled"
    PARTLY_PAID = "Partly Paid"
    UNPAID_AND_DISCOUNTED = "Unpaid and Discounted"
    OVERDUE_AND_DISCOUNTED = "Overdue and Discounted"
    RETURN = "Return"
    CREDIT_NOTE_ISSUED = "Credit Note Issued"


class SortField(Enum):
    """Fields the candidate list can be ordered by."""
    OUTSTANDING_AMOUNT = "outstanding_amount"
    POSTING_DATE = "posting_date"
    CUSTOMER_NAME = "customer_name"
    GRAND_TOTAL = "grand_total"
    DUE_DATE = "due_date"


class SortOrder(Enum):
    """Sort direction."""
    ASC = "asc"
    DESC = "desc"


class MatchSource(Enum):
    """Query stage that produced a match result."""
    EXACT = "exact"
    FALLBACK = "fallback"
    DEBUG = "debug"


class MatchStatus(Enum):
    """Lifecycle status of a match result."""
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


# Filter identifiers understood by the match configuration
EXACT_AMOUNT_MATCH = "exact_amount_match"
SALES_INVOICE = "sales_invoice"
GROUP_BY_CUSTOMER = "group_by_customer"

KNOWN_FILTERS: FrozenSet[str] = frozenset({
    "payment_entry",
    "journal_entry",
    "purchase_invoice",
    SALES_INVOICE,
    "expense_claim",
    "bank_transaction",
    "invoice_matching",
    EXACT_AMOUNT_MATCH,
    GROUP_BY_CUSTOMER,
})

DEFAULT_FILTERS: FrozenSet[str] = frozenset({
    "payment_entry",
    "journal_entry",
    SALES_INVOICE,
    EXACT_AMOUNT_MATCH,
})

DEFAULT_ROUND_OFF_TOLERANCE = 100


def to_decimal(value: Union[Decimal, float, int, str]) -> Decimal:
    """
    Convert a monetary value to Decimal.

    Floats go through ``str`` so that 0.1 stays 0.1. Strings may carry
    thousands separators.

    Raises:
        ValidationError: If the value cannot be read as a number
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    try:
        if isinstance(value, float):
            return Decimal(str(value))
        if isinstance(value, str):
            return Decimal(value.replace(',', '').strip())
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")


def _to_date(value: Union[date, datetime, str, None]) -> Optional[date]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        # Frappe sends plain dates, but datetimes show up on some doctypes
        return datetime.fromisoformat(str(value)).date()
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}")


@dataclass(frozen=True)
class Invoice:
    """
    Snapshot of an outstanding Sales Invoice offered as a match candidate.

    Invoices are owned by the data source; the matching code only reads them.
    """
    name: str
    customer: str
    posting_date: date
    grand_total: Decimal
    status: str
    customer_name: Optional[str] = None
    due_date: Optional[date] = None
    outstanding_amount: Optional[Decimal] = None
    currency: Optional[str] = None

    def __post_init__(self):
        if self.outstanding_amount is not None:
            if self.outstanding_amount < 0 or self.outstanding_amount > self.grand_total:
                raise ValidationError(
                    f"Invoice {self.name}: outstanding amount {self.outstanding_amount} "
                    f"must be between 0 and grand total {self.grand_total}"
                )

    @property
    def effective_amount(self) -> Decimal:
        """Outstanding amount when known, otherwise the grand total."""
        if self.outstanding_amount is not None:
            return self.outstanding_amount
        return self.grand_total

    @property
    def display_name(self) -> str:
        return self.customer_name or self.customer

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'name': self.name,
            'customer': self.customer,
            'customer_name': self.customer_name,
            'posting_date': self.posting_date.isoformat(),
            'due_date': self.due_date.isoformat() if self.due_date else None,
            'grand_total': str(self.grand_total),
            'outstanding_amount': (
                str(self.outstanding_amount) if self.outstanding_amount is not None else None
            ),
            'status': self.status,
            'currency': self.currency
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Invoice':
        """
        Create an Invoice from a data source record.

        Raises:
            ValidationError: If required fields are missing or malformed
        """
        missing = [key for key in ('name', 'customer', 'posting_date', 'grand_total')
                   if data.get(key) in (None, '')]
        if missing:
            raise ValidationError(f"Invoice record missing fields: {', '.join(missing)}")

        outstanding = data.get('outstanding_amount')
        return cls(
            name=str(data['name']),
            customer=str(data['customer']),
            customer_name=data.get('customer_name') or None,
            posting_date=_to_date(data['posting_date']),
            due_date=_to_date(data.get('due_date')),
            grand_total=to_decimal(data['grand_total']),
            outstanding_amount=to_decimal(outstanding) if outstanding is not None else None,
            status=str(data.get('status') or ''),
            currency=data.get('currency') or None
        )


@dataclass(frozen=True)
class Transaction:
    """
    Bank transaction being reconciled.

    A transaction carries either a deposit or a withdrawal. Only deposits
    can be settled against sales invoices.
    """
    name: str
    posting_date: Optional[date] = None
    description: str = ''
    deposit: Decimal = Decimal('0')
    withdrawal: Decimal = Decimal('0')
    unallocated_amount: Optional[Decimal] = None
    currency: Optional[str] = None

    @property
    def is_withdrawal(self) -> bool:
        return self.withdrawal > 0

    @property
    def match_amount(self) -> Decimal:
        """Unsigned amount used as the search key."""
        if self.unallocated_amount is not None:
            return abs(self.unallocated_amount)
        if self.is_withdrawal:
            return abs(self.withdrawal)
        return abs(self.deposit)

    @classmethod
    def from_signed_amount(cls, name: str, amount: Union[Decimal, float, int, str],
                           **kwargs) -> 'Transaction':
        """Build a transaction from a signed amount; negative means withdrawal."""
        value = to_decimal(amount)
        if value < 0:
            return cls(name=name, withdrawal=-value, **kwargs)
        return cls(name=name, deposit=value, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'name': self.name,
            'date': self.posting_date.isoformat() if self.posting_date else None,
            'description': self.description,
            'deposit': str(self.deposit),
            'withdrawal': str(self.withdrawal),
            'unallocated_amount': (
                str(self.unallocated_amount) if self.unallocated_amount is not None else None
            ),
            'currency': self.currency
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        """
        Create a Transaction from a dictionary.

        Accepts either ``deposit``/``withdrawal`` columns or a single signed
        ``amount``.

        Raises:
            ValidationError: If the record is malformed
        """
        if not data.get('name'):
            raise ValidationError("Transaction record missing field: name")

        common = {
            'posting_date': _to_date(data.get('date') or data.get('posting_date')),
            'description': data.get('description') or '',
            'currency': data.get('currency') or None,
        }
        unallocated = data.get('unallocated_amount')
        if unallocated is not None:
            common['unallocated_amount'] = to_decimal(unallocated)

        if 'amount' in data and 'deposit' not in data and 'withdrawal' not in data:
            return cls.from_signed_amount(str(data['name']), data['amount'], **common)

        deposit = to_decimal(data.get('deposit') or 0)
        withdrawal = to_decimal(data.get('withdrawal') or 0)
        if deposit < 0 or withdrawal < 0:
            raise ValidationError("Deposit and withdrawal must not be negative")
        return cls(name=str(data['name']), deposit=deposit, withdrawal=withdrawal, **common)


@dataclass(frozen=True)
class MatchConfiguration:
    """
    Snapshot of the user's match settings.

    Instances are immutable; ``MatchSettingsService`` replaces them whole
    on every change.
    """
    enabled_filters: FrozenSet[str] = DEFAULT_FILTERS
    sort_field: SortField = SortField.OUTSTANDING_AMOUNT
    sort_order: SortOrder = SortOrder.ASC
    round_off_tolerance: int = DEFAULT_ROUND_OFF_TOLERANCE

    def __post_init__(self):
        # Accept any iterable of ids from callers
        object.__setattr__(self, 'enabled_filters', frozenset(self.enabled_filters))
        if (isinstance(self.round_off_tolerance, bool)
                or not isinstance(self.round_off_tolerance, int)
                or self.round_off_tolerance <= 0):
            raise ConfigurationError(
                f"Round-off tolerance must be a positive integer, got {self.round_off_tolerance!r}"
            )

    def is_enabled(self, filter_id: str) -> bool:
        return filter_id in self.enabled_filters

    @property
    def exact_amount_match(self) -> bool:
        return EXACT_AMOUNT_MATCH in self.enabled_filters

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'enabled_filters': sorted(self.enabled_filters),
            'sort_field': self.sort_field.value,
            'sort_order': self.sort_order.value,
            'round_off_tolerance': self.round_off_tolerance
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MatchConfiguration':
        """Create MatchConfiguration from dictionary."""
        try:
            return cls(
                enabled_filters=frozenset(data.get('enabled_filters', DEFAULT_FILTERS)),
                sort_field=SortField(data.get('sort_field', SortField.OUTSTANDING_AMOUNT.value)),
                sort_order=SortOrder(data.get('sort_order', SortOrder.ASC.value)),
                round_off_tolerance=data.get('round_off_tolerance', DEFAULT_ROUND_OFF_TOLERANCE)
            )
        except ValueError as e:
            raise ConfigurationError(str(e))


@dataclass(frozen=True)
class MatchResult:
    """
    Complete output of a matching pass.

    Replaced whole on every recomputation; consumers never see a partially
    updated result.
    """
    status: MatchStatus
    invoices: Tuple[Invoice, ...] = ()
    source: Optional[MatchSource] = None
    error_message: Optional[str] = None
    transaction_name: Optional[str] = None
    match_amount: Optional[Decimal] = None
    raw_count: int = 0
    search_id: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.invoices

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'status': self.status.value,
            'source': self.source.value if self.source else None,
            'invoices': [invoice.to_dict() for invoice in self.invoices],
            'error_message': self.error_message,
            'transaction_name': self.transaction_name,
            'match_amount': str(self.match_amount) if self.match_amount is not None else None,
            'raw_count': self.raw_count,
            'search_id': self.search_id
        }


class AuthenticationType(Enum):
    """Authentication methods for the invoice data source."""
    TOKEN = "token"
    BEARER_TOKEN = "bearer_token"
    BASIC_AUTH = "basic_auth"


@dataclass
class DataSourceConfig:
    """Configuration for the Frappe/ERPNext invoice data source."""
    connection_id: str
    base_url: str
    api_key: str
    api_secret: Optional[str] = None
    authentication_type: AuthenticationType = AuthenticationType.TOKEN
    company: Optional[str] = None
    timeout: int = 30
    csrf_token: Optional[str] = None
    additional_headers: Dict[str, str] = field(default_factory=dict)

    def to_dict(self, include_secrets: bool = False) -> Dict[str, Any]:
        """Convert to dictionary, optionally excluding credentials."""
        data = {
            'connection_id': self.connection_id,
            'base_url': self.base_url,
            'authentication_type': self.authentication_type.value,
            'company': self.company,
            'timeout': self.timeout,
            'additional_headers': self.additional_headers
        }
        if include_secrets:
            data['api_key'] = self.api_key
            data['api_secret'] = self.api_secret
            data['csrf_token'] = self.csrf_token
        return data


@dataclass
class ConnectionTestResult:
    """Result of testing a data source connection."""
    success: bool
    connection_id: str
    response_time: float
    error_message: Optional[str] = None
    additional_info: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'success': self.success,
            'connection_id': self.connection_id,
            'response_time': self.response_time,
            'error_message': self.error_message,
            'additional_info': self.additional_info
        }


# Custom exceptions for bank reconciliation matching
class BankRecMatchingError(Exception):
    """Base exception for bank reconciliation matching."""
    pass


class TransportError(BankRecMatchingError):
    """Raised when the invoice data source request fails."""
    pass


class ConfigurationError(BankRecMatchingError):
    """Raised when a configuration value is invalid."""
    pass


class ValidationError(BankRecMatchingError):
    """Raised when an invoice or transaction record is malformed."""
    pass
