"""
Audit Trail Module

Hash-chained immutable audit log with SHA-256 for tamper detection.
Every state change made from the console (status changes, exports, logins)
is logged here, and the audit screen lists these real events.
"""

import hashlib
import json
import threading
from datetime import date, datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
from decimal import Decimal
import uuid

from .aggregates import AggregationType, MetricDefinition
from .filters import FilterSet, FilterSpec, MatchType
from .query import Equals, FieldKind, Ordering, Query, SortDirection
from .query_builder import WindowPolicy
from .screens import ListScreen
from .storage import StorageInterface, StorageRecord


AUDIT_TABLE = "audit_events"


class AuditEventType(Enum):
    """Types of audit events"""
    # Party status changes
    CUSTOMER_STATUS_CHANGED = "customer_status_changed"
    ORGANIZATION_STATUS_CHANGED = "organization_status_changed"
    OPERATOR_STATUS_CHANGED = "operator_status_changed"

    # Account events
    ACCOUNT_STATUS_CHANGED = "account_status_changed"

    # Data access
    RECORDS_EXPORTED = "records_exported"

    # RBAC events
    USER_CREATED = "user_created"
    USER_LOCKED = "user_locked"
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"

    # System events
    AUDIT_INTEGRITY_CHECK = "audit_integrity_check"


def _convert_value(value):
    if isinstance(value, Decimal):
        return str(value)
    elif isinstance(value, (datetime, date)):
        return value.isoformat()
    elif isinstance(value, Enum):
        return value.value
    elif isinstance(value, dict):
        return {k: _convert_value(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_convert_value(v) for v in value]
    else:
        return value


@dataclass
class AuditEvent(StorageRecord):
    """
    Immutable audit event with hash chaining for tamper detection
    """
    sequence: int
    event_type: AuditEventType
    entity_type: str  # customer, organization, operator, account, user, ...
    entity_id: str
    previous_hash: str
    current_hash: str
    metadata: Dict[str, Any]
    user_id: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.event_type, str):
            self.event_type = AuditEventType(self.event_type)
        self.metadata = {k: _convert_value(v) for k, v in (self.metadata or {}).items()}

    def calculate_hash(self) -> str:
        """
        Calculate SHA-256 hash of this event
        Hash includes all fields except current_hash to prevent circular reference
        """
        hash_data = {
            'id': self.id,
            'sequence': self.sequence,
            'created_at': self.created_at.isoformat(),
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'previous_hash': self.previous_hash,
            'user_id': self.user_id,
            'metadata': self.metadata
        }

        # Create deterministic JSON string
        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        """Verify that the current hash is correct"""
        return self.current_hash == self.calculate_hash()


CHAIN_ORDER = Ordering('sequence', SortDirection.ASC, FieldKind.NUMBER)


class AuditTrail:
    """
    Hash-chained audit trail for tamper detection
    """

    def __init__(self, storage: StorageInterface, table_name: str = AUDIT_TABLE):
        self.storage = storage
        self.table_name = table_name
        self._lock = threading.Lock()

    def _last_event(self) -> Optional[Dict[str, Any]]:
        latest = self.storage.fetch(Query(self.table_name).order_by(CHAIN_ORDER.toggled()), limit=1)
        return latest[0] if latest else None

    def log_event(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None
    ) -> AuditEvent:
        """
        Log an audit event with hash chaining

        Args:
            event_type: Type of audit event
            entity_type: Type of entity being audited
            entity_id: ID of the entity
            metadata: Additional event-specific data
            user_id: ID of user who initiated the action

        Returns:
            Created AuditEvent
        """
        with self._lock:
            last = self._last_event()
            now = datetime.now(timezone.utc)
            event = AuditEvent(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                sequence=(int(last['sequence']) + 1) if last else 1,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=str(entity_id),
                previous_hash=last['current_hash'] if last else "",
                current_hash="",
                user_id=user_id,
                metadata=metadata or {}
            )
            event.current_hash = event.calculate_hash()
            self.storage.save(self.table_name, event.id, event.to_dict())
            return event

    def get_events_for_entity(self, entity_type: str, entity_id: str,
                              limit: Optional[int] = None) -> List[AuditEvent]:
        """Events for one entity, oldest first; with a limit, the most recent N"""
        query = Query(self.table_name).where(
            Equals('entity_type', entity_type), Equals('entity_id', entity_id)
        )
        if limit:
            rows = self.storage.fetch(query.order_by(CHAIN_ORDER.toggled()), limit=limit)
            rows.reverse()
        else:
            rows = self.storage.fetch(query.order_by(CHAIN_ORDER))
        return [AuditEvent.from_dict(row) for row in rows]

    def get_event_by_id(self, event_id: str) -> Optional[AuditEvent]:
        """Get a specific audit event by ID"""
        event_data = self.storage.load(self.table_name, event_id)
        if event_data:
            return AuditEvent.from_dict(event_data)
        return None

    def count_events(self) -> int:
        """Get total number of audit events"""
        return self.storage.count(self.table_name)

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify the integrity of the entire audit chain

        Returns:
            Dictionary with integrity check results
        """
        result = {
            'valid': True,
            'total_events': 0,
            'hash_errors': [],
            'chain_breaks': [],
            'details': {}
        }

        rows = self.storage.fetch(Query(self.table_name).order_by(CHAIN_ORDER))
        if not rows:
            return result

        events = [AuditEvent.from_dict(row) for row in rows]
        result['total_events'] = len(events)

        previous_hash = ""
        for position, event in enumerate(events):
            if not event.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_hash': event.calculate_hash(),
                    'actual_hash': event.current_hash
                })
            if event.previous_hash != previous_hash:
                result['valid'] = False
                result['chain_breaks'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': event.previous_hash
                })
            previous_hash = event.current_hash

        result['details'] = {
            'first_event_time': events[0].created_at.isoformat(),
            'last_event_time': events[-1].created_at.isoformat(),
            'event_types': sorted(set(e.event_type.value for e in events)),
            'entity_types': sorted(set(e.entity_type for e in events))
        }

        return result


AUDIT_SCREEN = ListScreen(
    name="audit_events",
    table=AUDIT_TABLE,
    filters=FilterSet(
        FilterSpec('search', MatchType.SUBSTRING, targets=('entity_id', 'user_id', 'entity_type')),
        FilterSpec('event_type', MatchType.IN),
        FilterSpec('entity_type', MatchType.EXACT),
        FilterSpec('user_id', MatchType.EXACT),
        FilterSpec('date_range', MatchType.RANGE, targets=('created_at',), kind=FieldKind.DATE),
    ),
    default_ordering=Ordering('sequence', SortDirection.DESC, FieldKind.NUMBER),
    sortable={'created_at': FieldKind.TEXT, 'event_type': FieldKind.TEXT, 'entity_type': FieldKind.TEXT},
    window_policy=WindowPolicy.LAST_30_DAYS,
    window_filter='date_range',
    metrics=(
        MetricDefinition('total_events', AggregationType.COUNT),
        MetricDefinition('by_event_type', AggregationType.DISTRIBUTION, field='event_type'),
        MetricDefinition('users', AggregationType.DISTINCT, field='user_id'),
    ),
    export_columns=('sequence', 'created_at', 'event_type', 'entity_type', 'entity_id', 'user_id', 'current_hash'),
)
