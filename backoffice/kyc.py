"""
KYC Records Module

KYC records are stored as an opaque attribute blob per identity. The console
only lists them and reports completeness against the configured required
attributes; it never verifies identities.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from enum import Enum

from .aggregates import AggregationType, MetricDefinition
from .export import ExportFormat, ExportResult
from .filters import FilterSet, FilterSpec, MatchType
from .managers import ScreenManager
from .query import FieldKind, Ordering, SortDirection
from .screens import BrowseRequest, BrowseResult, ListScreen
from .storage import StorageRecord


KYC_TABLE = "kyc_records"


class IdentityKind(Enum):
    CUSTOMER = "customer"
    ORGANIZATION = "organization"
    OPERATOR = "operator"


def kyc_record_id(identity_kind: IdentityKind, identity_id: str) -> str:
    return f"{identity_kind.value}-{identity_id}"


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


@dataclass
class KycRecord(StorageRecord):
    identity_kind: str
    identity_id: str
    attributes: Dict[str, Any] = field(default_factory=dict)

    def missing_attributes(self, required: Sequence[str]) -> List[str]:
        return [name for name in required if not _present(self.attributes.get(name))]

    def is_complete(self, required: Sequence[str]) -> bool:
        return not self.missing_attributes(required)


def kyc_status(record: Optional[Dict[str, Any]], required: Sequence[str]) -> str:
    """complete / incomplete / missing for a stored KYC row (or None)"""
    if record is None:
        return 'missing'
    attributes = record.get('attributes') or {}
    if all(_present(attributes.get(name)) for name in required):
        return 'complete'
    return 'incomplete'


KYC_SCREEN = ListScreen(
    name="kyc_records",
    table=KYC_TABLE,
    filters=FilterSet(
        FilterSpec('search', MatchType.SUBSTRING, targets=('identity_id',)),
        FilterSpec('identity_kind', MatchType.EXACT),
        FilterSpec('date_range', MatchType.RANGE, targets=('created_at',), kind=FieldKind.DATE),
    ),
    default_ordering=Ordering('created_at', SortDirection.DESC),
    sortable={'identity_id': FieldKind.TEXT, 'identity_kind': FieldKind.TEXT},
    metrics=(
        MetricDefinition('total_records', AggregationType.COUNT),
        MetricDefinition('by_identity_kind', AggregationType.DISTRIBUTION, field='identity_kind'),
    ),
    export_columns=('id', 'identity_kind', 'identity_id', 'kyc_status', 'missing_attributes', 'created_at'),
)


class KycManager(ScreenManager):
    """Lists KYC records with their completeness"""

    table = KYC_TABLE
    record_type = KycRecord
    entity_type = "kyc"

    def __init__(self, *args, required_attributes: Sequence[str] = (), **kwargs):
        super().__init__(*args, **kwargs)
        self.required_attributes = tuple(required_attributes)

    def get_kyc(self, identity_kind: IdentityKind, identity_id: str) -> Optional[KycRecord]:
        return self._get(kyc_record_id(identity_kind, identity_id))

    def status_for(self, identity_kind: IdentityKind, identity_id: str) -> str:
        record = self.storage.load(self.table, kyc_record_id(identity_kind, identity_id))
        return kyc_status(record, self.required_attributes)

    def _with_completeness(self, row: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(row)
        status = kyc_status(row, self.required_attributes)
        attributes = row.get('attributes') or {}
        row['kyc_status'] = status
        row['is_complete'] = status == 'complete'
        row['missing_attributes'] = [n for n in self.required_attributes if not _present(attributes.get(n))]
        return self.browser.labels.decorate(row, {'kyc_status': 'kyc_status'})

    def browse_kyc(self, request: Optional[BrowseRequest] = None) -> BrowseResult:
        result = self._browse(KYC_SCREEN, request)
        return BrowseResult(
            result.screen, result.page.map(self._with_completeness), result.aggregates,
            result.filters, result.ordering, result.view
        )

    def export_kyc(self, request: Optional[BrowseRequest] = None,
                   export_format: ExportFormat = ExportFormat.CSV,
                   limit: Optional[int] = None, user_id: Optional[str] = None) -> ExportResult:
        return self._export(KYC_SCREEN, request, export_format, limit, user_id,
                            transform=self._with_completeness)
