"""
Account Module

Customer and organization accounts: records, the two account list screens
(with balance bands and owner-name search) and the account manager.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import List, Optional
from enum import Enum

from .aggregates import AggregationType, MetricDefinition, MetricFormat
from .audit import AuditEventType
from .export import ExportFormat, ExportResult
from .filters import FilterSet, FilterSpec, MatchType, RelatedTarget
from .managers import ScreenManager
from .query import Compare, Equals, FieldKind, InSet, Not, Ordering, Query, SortDirection
from .query_builder import WindowPolicy
from .screens import BrowseRequest, BrowseResult, ListScreen
from .storage import StorageRecord


ACCOUNTS_TABLE = "accounts"
# Owner tables searched through related-entity filters
CUSTOMERS_TABLE = "customers"
ORGANIZATIONS_TABLE = "organizations"

HIGH_BALANCE = Decimal('100000')
VERY_HIGH_BALANCE = Decimal('1000000')


class AccountStatus(Enum):
    """Account lifecycle codes"""
    PENDING_OPENING = "01"
    OPENING = "02"
    ACTIVE = "03"
    SUSPENDED = "04"
    CLOSED = "05"
    BLOCKED = "06"
    DORMANT = "07"


class OwnerKind(Enum):
    CUSTOMER = "customer"
    ORGANIZATION = "organization"


@dataclass
class Account(StorageRecord):
    """An account; `id` is the account number"""
    owner_kind: str
    owner_id: str
    account_name: str = ""
    alias: Optional[str] = None
    account_type_id: Optional[str] = None
    currency: str = "DJF"
    balance: Decimal = Decimal('0.00')
    reserved_balance: Decimal = Decimal('0.00')
    account_status: str = AccountStatus.PENDING_OPENING.value
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    timestamp_fields = ('opened_at', 'closed_at')
    decimal_fields = ('balance', 'reserved_balance')

    @property
    def account_no(self) -> str:
        return self.id

    @property
    def available_balance(self) -> Decimal:
        return self.balance - self.reserved_balance

    @property
    def is_active(self) -> bool:
        return self.account_status == AccountStatus.ACTIVE.value


BALANCE_BANDS = {
    'positive': Compare('balance', '>', 0),
    'negative': Compare('balance', '<', 0),
    'zero': Compare('balance', '=', 0),
    'high': Compare('balance', '>', HIGH_BALANCE),
    'very_high': Compare('balance', '>', VERY_HIGH_BALANCE),
}

ACCOUNT_METRICS = (
    MetricDefinition('total_accounts', AggregationType.COUNT),
    MetricDefinition('active_accounts', AggregationType.COUNT,
                     condition=Equals('account_status', AccountStatus.ACTIVE.value)),
    MetricDefinition('inactive_accounts', AggregationType.COUNT,
                     condition=Not(Equals('account_status', AccountStatus.ACTIVE.value))),
    MetricDefinition('blocked_accounts', AggregationType.COUNT,
                     condition=InSet('account_status', (AccountStatus.SUSPENDED.value,
                                                        AccountStatus.BLOCKED.value))),
    MetricDefinition('accounts_with_balance', AggregationType.COUNT,
                     condition=Compare('balance', '>', 0)),
    MetricDefinition('total_balance', AggregationType.SUM, field='balance', format=MetricFormat.MONEY),
    MetricDefinition('total_reserved', AggregationType.SUM, field='reserved_balance', format=MetricFormat.MONEY),
    MetricDefinition('average_balance', AggregationType.AVERAGE, field='balance', format=MetricFormat.MONEY),
    MetricDefinition('active_rate', AggregationType.PERCENTAGE,
                     numerator='active_accounts', denominator='total_accounts',
                     format=MetricFormat.PERCENTAGE),
    MetricDefinition('currencies', AggregationType.DISTINCT, field='currency'),
    MetricDefinition('account_types', AggregationType.DISTINCT, field='account_type_id'),
    MetricDefinition('by_status', AggregationType.DISTRIBUTION, field='account_status'),
)

ACCOUNT_SORTABLE = {
    'id': FieldKind.TEXT,
    'account_name': FieldKind.TEXT,
    'alias': FieldKind.TEXT,
    'currency': FieldKind.TEXT,
    'account_status': FieldKind.TEXT,
    'balance': FieldKind.NUMBER,
    'reserved_balance': FieldKind.NUMBER,
    'opened_at': FieldKind.TEXT,
    'created_at': FieldKind.TEXT,
}

ACCOUNT_EXPORT_COLUMNS = (
    'id', 'owner_id', 'account_name', 'alias', 'account_type_id', 'currency',
    'balance', 'reserved_balance', 'account_status', 'account_status_label',
    'opened_at', 'closed_at',
)


def _account_filters(owner_table: str, owner_fields) -> FilterSet:
    owners = tuple(RelatedTarget(owner_table, 'owner_id', 'id', name) for name in owner_fields)
    return FilterSet(
        FilterSpec('search', MatchType.SUBSTRING,
                   targets=('id', 'alias', 'account_name', 'owner_id') + owners),
        FilterSpec('owner_name', MatchType.SUBSTRING, targets=owners),
        FilterSpec('account_status', MatchType.IN),
        FilterSpec('currency', MatchType.EXACT),
        FilterSpec('account_type_id', MatchType.EXACT),
        FilterSpec('balance_band', MatchType.PRESET, presets=BALANCE_BANDS),
        FilterSpec('balance', MatchType.RANGE, kind=FieldKind.NUMBER),
        FilterSpec('date_range', MatchType.RANGE, targets=('created_at',), kind=FieldKind.DATE),
    )


CUSTOMER_ACCOUNTS_SCREEN = ListScreen(
    name="customer_accounts",
    table=ACCOUNTS_TABLE,
    filters=_account_filters(CUSTOMERS_TABLE, ('public_name', 'user_name')),
    default_ordering=Ordering('created_at', SortDirection.DESC),
    sortable=ACCOUNT_SORTABLE,
    window_policy=WindowPolicy.LAST_30_DAYS,
    window_filter='date_range',
    base=(Equals('owner_kind', OwnerKind.CUSTOMER.value),),
    metrics=ACCOUNT_METRICS,
    label_fields={'account_status': 'account_status'},
    export_columns=ACCOUNT_EXPORT_COLUMNS,
)

ORGANIZATION_ACCOUNTS_SCREEN = ListScreen(
    name="organization_accounts",
    table=ACCOUNTS_TABLE,
    filters=_account_filters(ORGANIZATIONS_TABLE, ('biz_org_name', 'public_name')),
    default_ordering=Ordering('created_at', SortDirection.DESC),
    sortable=ACCOUNT_SORTABLE,
    window_policy=WindowPolicy.LAST_5_YEARS,
    window_filter='date_range',
    base=(Equals('owner_kind', OwnerKind.ORGANIZATION.value),),
    metrics=ACCOUNT_METRICS,
    label_fields={'account_status': 'account_status'},
    export_columns=ACCOUNT_EXPORT_COLUMNS,
)

_SCREENS = {
    OwnerKind.CUSTOMER: CUSTOMER_ACCOUNTS_SCREEN,
    OwnerKind.ORGANIZATION: ORGANIZATION_ACCOUNTS_SCREEN,
}


def owned_accounts_screen(owner_kind: OwnerKind, owner_id: str) -> ListScreen:
    """Accounts of one customer or organization, without a date window"""
    return _SCREENS[owner_kind].scoped(
        Equals('owner_id', owner_id),
        name=f"{owner_kind.value}_{owner_id}_accounts",
        window_policy=WindowPolicy.NO_WINDOW,
    )


class AccountManager(ScreenManager):
    """Read access and status changes for accounts"""

    table = ACCOUNTS_TABLE
    record_type = Account
    entity_type = "account"

    def get_account(self, account_no: str) -> Optional[Account]:
        return self._get(account_no)

    def browse_accounts(self, owner_kind: OwnerKind,
                        request: Optional[BrowseRequest] = None) -> BrowseResult:
        return self._browse(_SCREENS[owner_kind], request)

    def browse_owned_accounts(self, owner_kind: OwnerKind, owner_id: str,
                              request: Optional[BrowseRequest] = None) -> BrowseResult:
        return self._browse(owned_accounts_screen(owner_kind, owner_id), request)

    def export_accounts(self, owner_kind: OwnerKind, request: Optional[BrowseRequest] = None,
                        export_format: ExportFormat = ExportFormat.CSV,
                        limit: Optional[int] = None, user_id: Optional[str] = None) -> ExportResult:
        return self._export(_SCREENS[owner_kind], request, export_format, limit, user_id)

    def accounts_of(self, owner_kind: OwnerKind, owner_id: str) -> List[Account]:
        """Every account of one owner, newest first"""
        query = Query(ACCOUNTS_TABLE).where(
            Equals('owner_kind', owner_kind.value), Equals('owner_id', owner_id)
        ).order_by(Ordering('created_at', SortDirection.DESC))
        return self.records.fetch_records(Account, query)

    def change_account_status(self, account_no: str, new_status: str,
                              reason: Optional[str] = None,
                              user_id: Optional[str] = None) -> Optional[Account]:
        """Set an account's status code (block, suspend, reactivate, ...)"""
        extra = {}
        if new_status == AccountStatus.CLOSED.value:
            extra['closed_at'] = datetime.now(timezone.utc)
        return self._change_status(
            account_no, 'account_status', new_status,
            allowed=[s.value for s in AccountStatus],
            event_type=AuditEventType.ACCOUNT_STATUS_CHANGED,
            reason=reason, user_id=user_id, extra=extra,
        )
