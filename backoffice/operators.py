"""
Operator Module

Operators are the staff identities of customers and organizations on the
core-banking side. The console lists them, shows one operator and changes
its status.
"""

from datetime import datetime
from dataclasses import dataclass
from typing import List, Optional
from enum import Enum

from .aggregates import AggregationType, MetricDefinition, MetricFormat
from .audit import AuditEventType
from .export import ExportFormat, ExportResult
from .filters import FilterSet, FilterSpec, MatchType
from .managers import ScreenManager
from .query import Equals, FieldKind, Ordering, Query, SortDirection
from .query_builder import WindowPolicy
from .screens import BrowseRequest, BrowseResult, ListScreen
from .storage import StorageRecord


OPERATORS_TABLE = "operators"


class PartyStatus(Enum):
    """Lifecycle codes shared by organizations and operators"""
    INACTIVE = "01"
    ACTIVE = "03"
    SUSPENDED = "05"
    BLOCKED = "07"
    CLOSED = "09"


class IdentityType(Enum):
    """Kind of identity an operator belongs to"""
    CUSTOMER = 1
    ORGANIZATION = 2
    OPERATOR = 3


@dataclass
class Operator(StorageRecord):
    """An operator; `id` is the core-banking operator id"""
    operator_code: str
    owned_identity_type: int = IdentityType.ORGANIZATION.value
    owned_identity_id: Optional[str] = None
    user_name: str = ""
    public_name: str = ""
    status: str = PartyStatus.ACTIVE.value
    is_admin: int = 0
    active_time: Optional[datetime] = None

    timestamp_fields = ('active_time',)

    @property
    def admin(self) -> bool:
        return bool(self.is_admin)


OPERATORS_SCREEN = ListScreen(
    name="operators",
    table=OPERATORS_TABLE,
    filters=FilterSet(
        FilterSpec('search', MatchType.SUBSTRING,
                   targets=('id', 'operator_code', 'user_name', 'public_name')),
        FilterSpec('status', MatchType.IN),
        FilterSpec('owned_identity_type', MatchType.EXACT, kind=FieldKind.NUMBER),
        FilterSpec('owned_identity_id', MatchType.EXACT),
        FilterSpec('is_admin', MatchType.EXACT, kind=FieldKind.NUMBER),
        FilterSpec('date_range', MatchType.RANGE, targets=('created_at',), kind=FieldKind.DATE),
    ),
    default_ordering=Ordering('created_at', SortDirection.DESC),
    sortable={
        'id': FieldKind.TEXT,
        'operator_code': FieldKind.TEXT,
        'user_name': FieldKind.TEXT,
        'public_name': FieldKind.TEXT,
        'status': FieldKind.TEXT,
        'active_time': FieldKind.TEXT,
        'created_at': FieldKind.TEXT,
    },
    window_policy=WindowPolicy.LAST_2_YEARS,
    window_filter='date_range',
    metrics=(
        MetricDefinition('total_operators', AggregationType.COUNT),
        MetricDefinition('active_operators', AggregationType.COUNT,
                         condition=Equals('status', PartyStatus.ACTIVE.value)),
        MetricDefinition('admin_operators', AggregationType.COUNT,
                         condition=Equals('is_admin', 1)),
        MetricDefinition('active_rate', AggregationType.PERCENTAGE,
                         numerator='active_operators', denominator='total_operators',
                         format=MetricFormat.PERCENTAGE),
        MetricDefinition('by_status', AggregationType.DISTRIBUTION, field='status'),
        MetricDefinition('by_identity_type', AggregationType.DISTRIBUTION, field='owned_identity_type'),
    ),
    label_fields={
        'status': 'operator_status',
        'owned_identity_type': 'operator_identity_type',
    },
    export_columns=(
        'id', 'operator_code', 'user_name', 'public_name', 'owned_identity_type',
        'owned_identity_id', 'status', 'status_label', 'is_admin', 'active_time', 'created_at',
    ),
)


def owned_operators_screen(identity_type: IdentityType, identity_id: str) -> ListScreen:
    """Operators of one organization (or customer), without a date window"""
    return OPERATORS_SCREEN.scoped(
        Equals('owned_identity_type', identity_type.value),
        Equals('owned_identity_id', identity_id),
        name=f"identity_{identity_type.value}_{identity_id}_operators",
        window_policy=WindowPolicy.NO_WINDOW,
    )


class OperatorManager(ScreenManager):
    """Operator list, detail and status changes"""

    table = OPERATORS_TABLE
    record_type = Operator
    entity_type = "operator"

    def get_operator(self, operator_id: str) -> Optional[Operator]:
        return self._get(operator_id)

    def browse_operators(self, request: Optional[BrowseRequest] = None) -> BrowseResult:
        return self._browse(OPERATORS_SCREEN, request)

    def browse_owned_operators(self, identity_type: IdentityType, identity_id: str,
                               request: Optional[BrowseRequest] = None) -> BrowseResult:
        return self._browse(owned_operators_screen(identity_type, identity_id), request)

    def export_operators(self, request: Optional[BrowseRequest] = None,
                         export_format: ExportFormat = ExportFormat.CSV,
                         limit: Optional[int] = None, user_id: Optional[str] = None) -> ExportResult:
        return self._export(OPERATORS_SCREEN, request, export_format, limit, user_id)

    def operators_of(self, identity_type: IdentityType, identity_id: str) -> List[Operator]:
        query = Query(OPERATORS_TABLE).where(
            Equals('owned_identity_type', identity_type.value),
            Equals('owned_identity_id', identity_id),
        ).order_by(Ordering('created_at', SortDirection.DESC))
        return self.records.fetch_records(Operator, query)

    def change_status(self, operator_id: str, new_status: str,
                      reason: Optional[str] = None,
                      user_id: Optional[str] = None) -> Optional[Operator]:
        return self._change_status(
            operator_id, 'status', new_status,
            allowed=[s.value for s in PartyStatus],
            event_type=AuditEventType.OPERATOR_STATUS_CHANGED,
            reason=reason, user_id=user_id,
        )
