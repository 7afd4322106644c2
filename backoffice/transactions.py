"""
Transaction Module

Read-only views over the core-banking transaction records: the full list,
the per-status screens (completed, pending, failed, reversed), transaction
analytics by channel, type, currency and day, and the transactions of one
customer or organization.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass
from typing import Optional, Tuple
from enum import Enum

from .aggregates import AggregateSnapshot, AggregationType, MetricDefinition, MetricFormat
from .export import ExportFormat, ExportResult
from .filters import FilterSet, FilterSpec, FilterValues, MatchType
from .managers import ScreenManager
from .query import AllOf, AnyOf, Compare, Equals, FieldKind, InSet, Ordering, SortDirection
from .query_builder import WindowPolicy
from .screens import BrowseRequest, BrowseResult, ListScreen
from .storage import StorageRecord


TRANSACTIONS_TABLE = "transactions"

HIGH_VALUE_AMOUNT = Decimal('10000')


class TransactionStatus(Enum):
    COMPLETED = "Completed"
    AUTHORIZED = "Authorized"
    PENDING = "Pending"
    PENDING_AUTHORIZED = "Pending Authorized"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


PENDING_STATUSES = (TransactionStatus.PENDING.value, TransactionStatus.PENDING_AUTHORIZED.value)


class PartyType(Enum):
    """Party type codes on either side of a transaction"""
    CUSTOMER = "1000"
    ORGANIZATION = "5000"


class TransactionView(Enum):
    """The per-status transaction screens"""
    ALL = "all"
    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"
    REVERSED = "reversed"
    ANALYTICS = "analytics"


@dataclass
class Transaction(StorageRecord):
    """A transaction; `id` is the order id"""
    trans_status: str
    initiated_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    debit_party_id: Optional[str] = None
    debit_party_type: Optional[str] = None
    debit_party_account: Optional[str] = None
    debit_account_type: Optional[str] = None
    debit_party_mnemonic: Optional[str] = None
    credit_party_id: Optional[str] = None
    credit_party_type: Optional[str] = None
    credit_party_account: Optional[str] = None
    credit_account_type: Optional[str] = None
    credit_party_mnemonic: Optional[str] = None
    request_amount: Decimal = Decimal('0.00')
    actual_amount: Decimal = Decimal('0.00')
    fee: Decimal = Decimal('0.00')
    currency: str = "DJF"
    channel: Optional[str] = None
    transaction_type: Optional[str] = None
    reason_type: Optional[str] = None
    is_reversed: int = 0
    remark: Optional[str] = None

    timestamp_fields = ('initiated_at', 'ended_at', 'expired_at')
    decimal_fields = ('request_amount', 'actual_amount', 'fee')

    @property
    def order_id(self) -> str:
        return self.id

    @property
    def is_high_value(self) -> bool:
        return self.actual_amount >= HIGH_VALUE_AMOUNT

    @property
    def reversed(self) -> bool:
        return bool(self.is_reversed)


HIGH_VALUE = Compare('actual_amount', '>=', HIGH_VALUE_AMOUNT)

AMOUNT_BANDS = {
    'high_value': HIGH_VALUE,
    'standard': Compare('actual_amount', '<', HIGH_VALUE_AMOUNT),
}

TRANSACTION_SORTABLE = {
    'id': FieldKind.TEXT,
    'trans_status': FieldKind.TEXT,
    'initiated_at': FieldKind.TEXT,
    'actual_amount': FieldKind.NUMBER,
    'request_amount': FieldKind.NUMBER,
    'fee': FieldKind.NUMBER,
    'currency': FieldKind.TEXT,
    'channel': FieldKind.TEXT,
    'debit_party_mnemonic': FieldKind.TEXT,
    'credit_party_mnemonic': FieldKind.TEXT,
}

TRANSACTION_EXPORT_COLUMNS = (
    'id', 'trans_status', 'initiated_at', 'debit_party_id', 'debit_party_mnemonic',
    'debit_party_account', 'credit_party_id', 'credit_party_mnemonic', 'credit_party_account',
    'request_amount', 'actual_amount', 'fee', 'currency', 'channel', 'transaction_type',
    'reason_type', 'is_reversed', 'remark',
)

TRANSACTION_FILTERS = FilterSet(
    FilterSpec('search', MatchType.SUBSTRING,
               targets=('id', 'remark', 'debit_party_mnemonic', 'credit_party_mnemonic')),
    FilterSpec('debit_party', MatchType.SUBSTRING, targets=('debit_party_mnemonic',)),
    FilterSpec('credit_party', MatchType.SUBSTRING, targets=('credit_party_mnemonic',)),
    FilterSpec('trans_status', MatchType.IN),
    FilterSpec('currency', MatchType.EXACT),
    FilterSpec('channel', MatchType.EXACT),
    FilterSpec('transaction_type', MatchType.EXACT),
    FilterSpec('reason_type', MatchType.EXACT),
    FilterSpec('account_type', MatchType.EXACT, targets=('debit_account_type', 'credit_account_type')),
    FilterSpec('amount', MatchType.RANGE, targets=('actual_amount',), kind=FieldKind.NUMBER),
    FilterSpec('amount_band', MatchType.PRESET, presets=AMOUNT_BANDS),
    FilterSpec('date_range', MatchType.RANGE, targets=('initiated_at',), kind=FieldKind.DATE),
)

_COUNT = MetricDefinition('total_transactions', AggregationType.COUNT)
_VOLUME = MetricDefinition('total_volume', AggregationType.SUM, field='actual_amount',
                           format=MetricFormat.MONEY)
_AVERAGE = MetricDefinition('average_amount', AggregationType.AVERAGE, field='actual_amount',
                            format=MetricFormat.MONEY)
_HIGH_VALUE = MetricDefinition('high_value_count', AggregationType.COUNT, condition=HIGH_VALUE)
_COMPLETED = MetricDefinition('completed_transactions', AggregationType.COUNT,
                              condition=Equals('trans_status', TransactionStatus.COMPLETED.value))
_SUCCESS_RATE = MetricDefinition('success_rate', AggregationType.PERCENTAGE,
                                 numerator='completed_transactions',
                                 denominator='total_transactions',
                                 format=MetricFormat.PERCENTAGE)


def _screen(name: str, window_policy: WindowPolicy, metrics, base=()) -> ListScreen:
    return ListScreen(
        name=name,
        table=TRANSACTIONS_TABLE,
        filters=TRANSACTION_FILTERS,
        default_ordering=Ordering('initiated_at', SortDirection.DESC),
        sortable=TRANSACTION_SORTABLE,
        window_policy=window_policy,
        window_filter='date_range',
        base=tuple(base),
        metrics=tuple(metrics),
        label_fields={'trans_status': 'transaction_status'},
        export_columns=TRANSACTION_EXPORT_COLUMNS,
    )


TRANSACTIONS_SCREEN = _screen("transactions", WindowPolicy.LAST_7_DAYS, (
    _COUNT,
    _COMPLETED,
    MetricDefinition('pending_transactions', AggregationType.COUNT,
                     condition=InSet('trans_status', PENDING_STATUSES)),
    MetricDefinition('failed_transactions', AggregationType.COUNT,
                     condition=Equals('trans_status', TransactionStatus.FAILED.value)),
    _VOLUME,
    MetricDefinition('total_fees', AggregationType.SUM, field='fee', format=MetricFormat.MONEY),
    _SUCCESS_RATE,
    MetricDefinition('currencies', AggregationType.DISTINCT, field='currency'),
))

COMPLETED_SCREEN = _screen(
    "completed_transactions", WindowPolicy.LAST_7_DAYS,
    (_COUNT, _VOLUME, _AVERAGE, _HIGH_VALUE,
     MetricDefinition('total_fees', AggregationType.SUM, field='fee', format=MetricFormat.MONEY)),
    base=(Equals('trans_status', TransactionStatus.COMPLETED.value),),
)

PENDING_SCREEN = _screen(
    "pending_transactions", WindowPolicy.LAST_30_DAYS,
    (_COUNT,
     MetricDefinition('total_value', AggregationType.SUM, field='actual_amount',
                      format=MetricFormat.MONEY),
     _HIGH_VALUE,
     MetricDefinition('by_status', AggregationType.DISTRIBUTION, field='trans_status')),
    base=(InSet('trans_status', PENDING_STATUSES),),
)

FAILED_SCREEN = _screen(
    "failed_transactions", WindowPolicy.LAST_30_DAYS,
    (_COUNT,
     MetricDefinition('failed_value', AggregationType.SUM, field='actual_amount',
                      format=MetricFormat.MONEY),
     MetricDefinition('by_reason', AggregationType.DISTRIBUTION, field='reason_type')),
    base=(Equals('trans_status', TransactionStatus.FAILED.value),),
)

REVERSED_SCREEN = _screen(
    "reversed_transactions", WindowPolicy.LAST_30_DAYS,
    (_COUNT,
     MetricDefinition('total_reversed_amount', AggregationType.SUM, field='actual_amount',
                      format=MetricFormat.MONEY),
     MetricDefinition('avg_reversal_amount', AggregationType.AVERAGE, field='actual_amount',
                      format=MetricFormat.MONEY)),
    base=(Equals('is_reversed', 1),),
)

ANALYTICS_SCREEN = _screen("transaction_analytics", WindowPolicy.LAST_30_DAYS, (
    _COUNT,
    _COMPLETED,
    _VOLUME,
    _AVERAGE,
    MetricDefinition('largest_amount', AggregationType.MAX, field='actual_amount',
                     format=MetricFormat.MONEY),
    _SUCCESS_RATE,
    MetricDefinition('by_status', AggregationType.DISTRIBUTION, field='trans_status'),
    MetricDefinition('by_channel', AggregationType.GROUPING, field='channel',
                     value_field='actual_amount'),
    MetricDefinition('by_type', AggregationType.GROUPING, field='transaction_type',
                     value_field='actual_amount'),
    MetricDefinition('by_currency', AggregationType.GROUPING, field='currency',
                     value_field='actual_amount'),
    MetricDefinition('daily_trend', AggregationType.GROUPING, field='initiated_at',
                     key_kind=FieldKind.DATE, value_field='actual_amount'),
))

SCREENS = {
    TransactionView.ALL: TRANSACTIONS_SCREEN,
    TransactionView.COMPLETED: COMPLETED_SCREEN,
    TransactionView.PENDING: PENDING_SCREEN,
    TransactionView.FAILED: FAILED_SCREEN,
    TransactionView.REVERSED: REVERSED_SCREEN,
    TransactionView.ANALYTICS: ANALYTICS_SCREEN,
}


def party_transactions_screen(party_type: PartyType, party_id: str) -> ListScreen:
    """Transactions where one party is debited or credited, without a date window"""
    party_id = str(party_id)
    return TRANSACTIONS_SCREEN.scoped(
        AnyOf((
            AllOf((Equals('debit_party_id', party_id), Equals('debit_party_type', party_type.value))),
            AllOf((Equals('credit_party_id', party_id), Equals('credit_party_type', party_type.value))),
        )),
        name=f"party_{party_type.value}_{party_id}_transactions",
        window_policy=WindowPolicy.NO_WINDOW,
    )


class TransactionManager(ScreenManager):
    """Read access to transactions; the console never moves money"""

    table = TRANSACTIONS_TABLE
    record_type = Transaction
    entity_type = "transaction"

    def get_transaction(self, order_id: str) -> Optional[Transaction]:
        return self._get(order_id)

    def browse_transactions(self, view: TransactionView = TransactionView.ALL,
                            request: Optional[BrowseRequest] = None) -> BrowseResult:
        return self._browse(SCREENS[view], request)

    def browse_party_transactions(self, party_type: PartyType, party_id: str,
                                  request: Optional[BrowseRequest] = None) -> BrowseResult:
        return self._browse(party_transactions_screen(party_type, party_id), request)

    def transaction_analytics(self, request: Optional[BrowseRequest] = None
                              ) -> Tuple[FilterValues, AggregateSnapshot]:
        """Volume, channel, currency and daily trend metrics; no rows are fetched"""
        return self.browser.summarize(ANALYTICS_SCREEN, request)

    def export_transactions(self, view: TransactionView = TransactionView.ALL,
                            request: Optional[BrowseRequest] = None,
                            export_format: ExportFormat = ExportFormat.CSV,
                            limit: Optional[int] = None,
                            user_id: Optional[str] = None) -> ExportResult:
        return self._export(SCREENS[view], request, export_format, limit, user_id)
