"""
Organization Module

Organization records, the organization list screen and the organization
detail view (accounts, operators and balance totals).
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import Any, Dict, Optional
from enum import Enum

from .accounts import AccountManager, ORGANIZATIONS_TABLE, OwnerKind
from .aggregates import AggregationType, MetricDefinition, MetricFormat
from .audit import AuditEventType
from .export import ExportFormat, ExportResult
from .filters import FilterSet, FilterSpec, MatchType
from .kyc import IdentityKind, KycManager
from .managers import ScreenManager
from .operators import IdentityType, OperatorManager, PartyStatus
from .query import Equals, FieldKind, InSet, Ordering, SortDirection
from .query_builder import WindowPolicy
from .screens import BrowseRequest, BrowseResult, ListScreen
from .storage import StorageRecord
from .transactions import PartyType, party_transactions_screen


class OrganizationType(Enum):
    COMPANY = "CORP"
    NGO = "NGO"
    GOVERNMENT = "GOVT"
    BANK = "BANK"
    RETAIL = "RETAIL"
    OTHER = "OTHER"


@dataclass
class Organization(StorageRecord):
    """An organization; `id` is the core-banking organization id"""
    biz_org_name: str
    public_name: str = ""
    organization_type: str = OrganizationType.OTHER.value
    trust_level: int = 0
    short_code: Optional[str] = None
    organization_code: Optional[str] = None
    person_id: Optional[str] = None
    sp_id: Optional[str] = None
    status: str = PartyStatus.ACTIVE.value
    is_top: int = 0

    @property
    def display_name(self) -> str:
        return self.public_name or self.biz_org_name


ORGANIZATIONS_SCREEN = ListScreen(
    name="organizations",
    table=ORGANIZATIONS_TABLE,
    filters=FilterSet(
        FilterSpec('search', MatchType.SUBSTRING,
                   targets=('id', 'biz_org_name', 'public_name', 'short_code', 'organization_code')),
        FilterSpec('status', MatchType.IN),
        FilterSpec('organization_type', MatchType.EXACT),
        FilterSpec('trust_level', MatchType.EXACT, kind=FieldKind.NUMBER),
        FilterSpec('is_top', MatchType.EXACT, kind=FieldKind.NUMBER),
        FilterSpec('date_range', MatchType.RANGE, targets=('created_at',), kind=FieldKind.DATE),
    ),
    default_ordering=Ordering('created_at', SortDirection.DESC),
    sortable={
        'id': FieldKind.TEXT,
        'biz_org_name': FieldKind.TEXT,
        'public_name': FieldKind.TEXT,
        'organization_type': FieldKind.TEXT,
        'trust_level': FieldKind.NUMBER,
        'status': FieldKind.TEXT,
        'created_at': FieldKind.TEXT,
    },
    window_policy=WindowPolicy.LAST_2_YEARS,
    window_filter='date_range',
    metrics=(
        MetricDefinition('total_organizations', AggregationType.COUNT),
        MetricDefinition('active_organizations', AggregationType.COUNT,
                         condition=Equals('status', PartyStatus.ACTIVE.value)),
        MetricDefinition('blocked_organizations', AggregationType.COUNT,
                         condition=InSet('status', (PartyStatus.SUSPENDED.value,
                                                    PartyStatus.BLOCKED.value))),
        MetricDefinition('top_organizations', AggregationType.COUNT,
                         condition=Equals('is_top', 1)),
        MetricDefinition('active_rate', AggregationType.PERCENTAGE,
                         numerator='active_organizations', denominator='total_organizations',
                         format=MetricFormat.PERCENTAGE),
        MetricDefinition('by_status', AggregationType.DISTRIBUTION, field='status'),
        MetricDefinition('by_type', AggregationType.DISTRIBUTION, field='organization_type'),
    ),
    label_fields={
        'status': 'organization_status',
        'organization_type': 'organization_type',
        'trust_level': 'trust_level',
    },
    export_columns=(
        'id', 'biz_org_name', 'public_name', 'organization_type', 'trust_level',
        'short_code', 'organization_code', 'status', 'status_label', 'is_top', 'created_at',
    ),
)


class OrganizationManager(ScreenManager):
    """Organization list, detail view and status changes"""

    table = ORGANIZATIONS_TABLE
    record_type = Organization
    entity_type = "organization"

    def __init__(self, storage, audit_trail, account_manager: AccountManager,
                 operator_manager: OperatorManager, kyc_manager: KycManager, **kwargs):
        super().__init__(storage, audit_trail, **kwargs)
        self.account_manager = account_manager
        self.operator_manager = operator_manager
        self.kyc_manager = kyc_manager

    def get_organization(self, organization_id: str) -> Optional[Organization]:
        return self._get(organization_id)

    def browse_organizations(self, request: Optional[BrowseRequest] = None) -> BrowseResult:
        return self._browse(ORGANIZATIONS_SCREEN, request)

    def export_organizations(self, request: Optional[BrowseRequest] = None,
                             export_format: ExportFormat = ExportFormat.CSV,
                             limit: Optional[int] = None,
                             user_id: Optional[str] = None) -> ExportResult:
        return self._export(ORGANIZATIONS_SCREEN, request, export_format, limit, user_id)

    def browse_organization_accounts(self, organization_id: str,
                                     request: Optional[BrowseRequest] = None) -> BrowseResult:
        return self.account_manager.browse_owned_accounts(
            OwnerKind.ORGANIZATION, organization_id, request
        )

    def browse_organization_operators(self, organization_id: str,
                                      request: Optional[BrowseRequest] = None) -> BrowseResult:
        return self.operator_manager.browse_owned_operators(
            IdentityType.ORGANIZATION, organization_id, request
        )

    def browse_organization_transactions(self, organization_id: str,
                                         request: Optional[BrowseRequest] = None) -> BrowseResult:
        return self._browse(party_transactions_screen(PartyType.ORGANIZATION, organization_id), request)

    def get_organization_detail(self, organization_id: str) -> Optional[Dict[str, Any]]:
        """Organization with its accounts, operators and balance totals, or None"""
        organization = self.get_organization(organization_id)
        if organization is None:
            return None

        accounts = self.account_manager.accounts_of(OwnerKind.ORGANIZATION, organization.id)
        operators = self.operator_manager.operators_of(IdentityType.ORGANIZATION, organization.id)
        labels = self.browser.labels

        balances: Dict[str, Decimal] = {}
        for account in accounts:
            balances[account.currency] = balances.get(account.currency, Decimal('0.00')) + account.balance

        return {
            'organization': labels.decorate(organization.to_dict(), ORGANIZATIONS_SCREEN.label_fields),
            'accounts': [
                labels.decorate(a.to_dict(), {'account_status': 'account_status'}) for a in accounts
            ],
            'operators': [
                labels.decorate(o.to_dict(), {'status': 'operator_status'}) for o in operators
            ],
            'account_count': len(accounts),
            'active_accounts': sum(1 for a in accounts if a.is_active),
            'operator_count': len(operators),
            'admin_operators': sum(1 for o in operators if o.admin),
            'total_balance': str(sum(balances.values(), Decimal('0.00')).quantize(Decimal('0.01'))),
            'balance_by_currency': {
                currency: str(total.quantize(Decimal('0.01')))
                for currency, total in sorted(balances.items())
            },
            'kyc_status': self.kyc_manager.status_for(IdentityKind.ORGANIZATION, organization.id),
        }

    def change_status(self, organization_id: str, new_status: str,
                      reason: Optional[str] = None,
                      user_id: Optional[str] = None) -> Optional[Organization]:
        return self._change_status(
            organization_id, 'status', new_status,
            allowed=[s.value for s in PartyStatus],
            event_type=AuditEventType.ORGANIZATION_STATUS_CHANGED,
            reason=reason, user_id=user_id,
        )
