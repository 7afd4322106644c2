"""
Shared behaviour of the entity managers: typed loads, browsing and export
through list screens, and audited single-field status changes.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from .audit import AUDIT_SCREEN, AUDIT_TABLE, AuditEvent, AuditEventType, AuditTrail
from .export import Exporter, ExportFormat, ExportResult
from .logging_config import get_logger, log_action
from .screens import BrowseRequest, BrowseResult, ListScreen, ScreenBrowser
from .storage import StorageInterface, StorageManager, StorageRecord


logger = get_logger("backoffice.managers")


class ScreenManager:
    """Base for managers whose records are browsed through list screens"""

    table: str
    record_type: type
    entity_type: str

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 browser: Optional[ScreenBrowser] = None, exporter: Optional[Exporter] = None):
        self.storage = storage
        self.records = StorageManager(storage)
        self.audit_trail = audit_trail
        self.browser = browser or ScreenBrowser(storage)
        self.exporter = exporter or Exporter(self.browser)

    def _get(self, record_id: str) -> Optional[StorageRecord]:
        return self.records.load_record(self.record_type, self.table, str(record_id))

    def _save(self, record: StorageRecord) -> None:
        self.records.save_record(record, self.table)

    def save(self, record: StorageRecord) -> StorageRecord:
        """Store a record as loaded from the core-banking source"""
        self._save(record)
        return record

    def save_many(self, records: Iterable[StorageRecord]) -> int:
        count = 0
        with self.storage.atomic():
            for record in records:
                self._save(record)
                count += 1
        return count

    def _browse(self, screen: ListScreen, request: Optional[BrowseRequest]) -> BrowseResult:
        return self.browser.browse(screen, request)

    def _export(self, screen: ListScreen, request: Optional[BrowseRequest],
                export_format: ExportFormat, limit: Optional[int],
                user_id: Optional[str], transform=None) -> ExportResult:
        result = self.exporter.export(screen, request, export_format, limit,
                                      user_id=user_id, transform=transform)
        self.audit_trail.log_event(
            AuditEventType.RECORDS_EXPORTED,
            entity_type=self.entity_type,
            entity_id=screen.name,
            metadata={
                'format': export_format.value,
                'exported': result.exported,
                'total': result.total,
                'truncated': result.truncated,
            },
            user_id=user_id
        )
        return result

    def _change_status(self, record_id: str, field_name: str, new_status: str,
                       allowed: Iterable[str], event_type: AuditEventType,
                       reason: Optional[str] = None, user_id: Optional[str] = None,
                       extra: Optional[Dict[str, Any]] = None) -> Optional[StorageRecord]:
        """
        Set one status field on a record and audit the change.

        Returns None when the record does not exist. Raises ValueError for a
        code outside `allowed`.
        """
        allowed = set(allowed)
        if new_status not in allowed:
            raise ValueError(f"Invalid {field_name} {new_status!r}; expected one of {sorted(allowed)}")

        record = self._get(record_id)
        if record is None:
            return None

        old_status = getattr(record, field_name)
        now = datetime.now(timezone.utc)
        setattr(record, field_name, new_status)
        record.updated_at = now
        for name, value in (extra or {}).items():
            setattr(record, name, value)
        self._save(record)

        self.audit_trail.log_event(
            event_type,
            entity_type=self.entity_type,
            entity_id=record.id,
            metadata={'field': field_name, 'old_status': old_status,
                      'new_status': new_status, 'reason': reason},
            user_id=user_id
        )
        log_action(
            logger, "info", f"{self.entity_type} {record.id} {field_name} {old_status} -> {new_status}",
            user_id=user_id, action="status_change", resource=f"{self.entity_type}/{record.id}"
        )
        return record


class AuditLogManager(ScreenManager):
    """Browsing, export and verification of the audit trail itself"""

    table = AUDIT_TABLE
    record_type = AuditEvent
    entity_type = "audit"

    def browse_events(self, request: Optional[BrowseRequest] = None) -> BrowseResult:
        return self._browse(AUDIT_SCREEN, request)

    def export_events(self, request: Optional[BrowseRequest] = None,
                      export_format: ExportFormat = ExportFormat.CSV,
                      limit: Optional[int] = None, user_id: Optional[str] = None) -> ExportResult:
        return self._export(AUDIT_SCREEN, request, export_format, limit, user_id)

    def get_event(self, event_id: str) -> Optional[AuditEvent]:
        return self.audit_trail.get_event_by_id(event_id)

    def verify_integrity(self, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Verify the chain and record that the check ran"""
        result = self.audit_trail.verify_integrity()
        self.audit_trail.log_event(
            AuditEventType.AUDIT_INTEGRITY_CHECK,
            entity_type=self.entity_type,
            entity_id=self.audit_trail.table_name,
            metadata={'valid': result['valid'], 'total_events': result['total_events']},
            user_id=user_id
        )
        if not result['valid']:
            log_action(logger, "error", "Audit chain verification failed",
                       user_id=user_id, action="audit_verify", resource=self.audit_trail.table_name,
                       extra={'hash_errors': len(result['hash_errors']),
                              'chain_breaks': len(result['chain_breaks'])})
        return result
