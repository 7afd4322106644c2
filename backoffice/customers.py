"""
Customer Module

Customer records, the customer list screen and the customer detail view
(accounts, KYC presence, total balance and segment).
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, Optional
from enum import Enum

from .accounts import AccountManager, CUSTOMERS_TABLE, OwnerKind
from .aggregates import AggregationType, MetricDefinition, MetricFormat
from .audit import AuditEventType
from .export import ExportFormat, ExportResult
from .filters import FilterSet, FilterSpec, MatchType
from .kyc import IdentityKind, KycManager
from .managers import ScreenManager
from .query import Equals, FieldKind, InSet, Ordering, SortDirection
from .query_builder import WindowPolicy
from .screens import BrowseRequest, BrowseResult, ListScreen
from .storage import StorageRecord
from .transactions import PartyType, party_transactions_screen


class CustomerStatus(Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    PENDING = "PENDING"
    SUSPENDED = "SUSPENDED"
    BLOCKED = "BLOCKED"
    TERMINATED = "TERMINATED"


class CustomerType(Enum):
    INDIVIDUAL = "INDIVIDUAL"
    CORPORATE = "CORPORATE"
    PREMIUM = "PREMIUM"
    VIP = "VIP"


class CustomerSegment(Enum):
    """Balance segments shown on the customer detail page"""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    ZERO = "Zero"


HIGH_SEGMENT_BALANCE = Decimal('100000')
MEDIUM_SEGMENT_BALANCE = Decimal('10000')


def customer_segment(total_balance: Decimal) -> CustomerSegment:
    if total_balance >= HIGH_SEGMENT_BALANCE:
        return CustomerSegment.HIGH
    elif total_balance >= MEDIUM_SEGMENT_BALANCE:
        return CustomerSegment.MEDIUM
    elif total_balance > 0:
        return CustomerSegment.LOW
    else:
        return CustomerSegment.ZERO


@dataclass
class Customer(StorageRecord):
    """A customer; `id` is the core-banking customer id"""
    user_name: str
    public_name: str = ""
    customer_type: str = CustomerType.INDIVIDUAL.value
    trust_level: int = 0
    status: str = CustomerStatus.ACTIVE.value
    person_id: Optional[str] = None
    sp_id: Optional[str] = None
    status_change_reason: Optional[str] = None
    status_changed_at: Optional[datetime] = None
    active_time: Optional[datetime] = None

    timestamp_fields = ('status_changed_at', 'active_time')

    @property
    def display_name(self) -> str:
        return self.public_name or self.user_name

    @property
    def is_blocked(self) -> bool:
        return self.status == CustomerStatus.BLOCKED.value


CUSTOMERS_SCREEN = ListScreen(
    name="customers",
    table=CUSTOMERS_TABLE,
    filters=FilterSet(
        FilterSpec('search', MatchType.SUBSTRING, targets=('id', 'user_name', 'public_name')),
        FilterSpec('status', MatchType.IN),
        FilterSpec('customer_type', MatchType.EXACT),
        FilterSpec('trust_level', MatchType.EXACT, kind=FieldKind.NUMBER),
        FilterSpec('sp_id', MatchType.EXACT),
        FilterSpec('date_range', MatchType.RANGE, targets=('created_at',), kind=FieldKind.DATE),
    ),
    default_ordering=Ordering('created_at', SortDirection.DESC),
    sortable={
        'id': FieldKind.TEXT,
        'user_name': FieldKind.TEXT,
        'public_name': FieldKind.TEXT,
        'customer_type': FieldKind.TEXT,
        'trust_level': FieldKind.NUMBER,
        'status': FieldKind.TEXT,
        'active_time': FieldKind.TEXT,
        'created_at': FieldKind.TEXT,
    },
    window_policy=WindowPolicy.LAST_5_YEARS,
    window_filter='date_range',
    metrics=(
        MetricDefinition('total_customers', AggregationType.COUNT),
        MetricDefinition('active_customers', AggregationType.COUNT,
                         condition=Equals('status', CustomerStatus.ACTIVE.value)),
        MetricDefinition('blocked_customers', AggregationType.COUNT,
                         condition=InSet('status', (CustomerStatus.BLOCKED.value,
                                                    CustomerStatus.SUSPENDED.value))),
        MetricDefinition('active_rate', AggregationType.PERCENTAGE,
                         numerator='active_customers', denominator='total_customers',
                         format=MetricFormat.PERCENTAGE),
        MetricDefinition('average_trust_level', AggregationType.AVERAGE, field='trust_level',
                         format=MetricFormat.DECIMAL),
        MetricDefinition('by_status', AggregationType.DISTRIBUTION, field='status'),
        MetricDefinition('by_type', AggregationType.DISTRIBUTION, field='customer_type'),
    ),
    label_fields={
        'status': 'customer_status',
        'customer_type': 'customer_type',
        'trust_level': 'trust_level',
    },
    export_columns=(
        'id', 'user_name', 'public_name', 'customer_type', 'trust_level', 'status',
        'status_label', 'sp_id', 'active_time', 'created_at',
    ),
)


class CustomerManager(ScreenManager):
    """Customer list, detail view and block/unblock"""

    table = CUSTOMERS_TABLE
    record_type = Customer
    entity_type = "customer"

    def __init__(self, storage, audit_trail, account_manager: AccountManager,
                 kyc_manager: KycManager, **kwargs):
        super().__init__(storage, audit_trail, **kwargs)
        self.account_manager = account_manager
        self.kyc_manager = kyc_manager

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        return self._get(customer_id)

    def browse_customers(self, request: Optional[BrowseRequest] = None) -> BrowseResult:
        return self._browse(CUSTOMERS_SCREEN, request)

    def export_customers(self, request: Optional[BrowseRequest] = None,
                         export_format: ExportFormat = ExportFormat.CSV,
                         limit: Optional[int] = None, user_id: Optional[str] = None) -> ExportResult:
        return self._export(CUSTOMERS_SCREEN, request, export_format, limit, user_id)

    def browse_customer_accounts(self, customer_id: str,
                                 request: Optional[BrowseRequest] = None) -> BrowseResult:
        return self.account_manager.browse_owned_accounts(OwnerKind.CUSTOMER, customer_id, request)

    def browse_customer_transactions(self, customer_id: str,
                                     request: Optional[BrowseRequest] = None) -> BrowseResult:
        return self._browse(party_transactions_screen(PartyType.CUSTOMER, customer_id), request)

    def get_customer_detail(self, customer_id: str) -> Optional[Dict[str, Any]]:
        """
        Customer with its accounts, KYC status, total balance and segment.

        Returns None when the customer does not exist.
        """
        customer = self.get_customer(customer_id)
        if customer is None:
            return None

        accounts = self.account_manager.accounts_of(OwnerKind.CUSTOMER, customer.id)
        total_balance = sum((a.balance for a in accounts), Decimal('0.00'))
        labels = self.browser.labels

        return {
            'customer': labels.decorate(customer.to_dict(), CUSTOMERS_SCREEN.label_fields),
            'accounts': [
                labels.decorate(a.to_dict(), {'account_status': 'account_status'}) for a in accounts
            ],
            'account_count': len(accounts),
            'active_accounts': sum(1 for a in accounts if a.is_active),
            'total_balance': str(total_balance.quantize(Decimal('0.01'))),
            'segment': customer_segment(total_balance).value,
            'kyc_status': self.kyc_manager.status_for(IdentityKind.CUSTOMER, customer.id),
        }

    def change_status(self, customer_id: str, new_status: str,
                      reason: Optional[str] = None,
                      user_id: Optional[str] = None) -> Optional[Customer]:
        return self._change_status(
            customer_id, 'status', new_status,
            allowed=[s.value for s in CustomerStatus],
            event_type=AuditEventType.CUSTOMER_STATUS_CHANGED,
            reason=reason, user_id=user_id,
            extra={'status_change_reason': reason,
                   'status_changed_at': datetime.now(timezone.utc)},
        )

    def block_customer(self, customer_id: str, reason: Optional[str] = None,
                       user_id: Optional[str] = None) -> Optional[Customer]:
        return self.change_status(customer_id, CustomerStatus.BLOCKED.value, reason, user_id)

    def unblock_customer(self, customer_id: str, reason: Optional[str] = None,
                         user_id: Optional[str] = None) -> Optional[Customer]:
        return self.change_status(customer_id, CustomerStatus.ACTIVE.value, reason, user_id)
