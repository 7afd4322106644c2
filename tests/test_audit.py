"""
Tests for the hash-chained audit trail and its list screen
"""

import pytest

from backoffice.audit import AUDIT_TABLE, AuditEventType, AuditTrail
from backoffice.export import ExportFormat
from backoffice.managers import AuditLogManager
from backoffice.screens import BrowseRequest
from backoffice.storage import InMemoryStorage


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def audit(storage):
    return AuditTrail(storage)


@pytest.fixture
def audit_log(storage, audit):
    return AuditLogManager(storage, audit)


def status_change(audit, entity_id, old, new, user_id="u-1"):
    return audit.log_event(
        AuditEventType.CUSTOMER_STATUS_CHANGED, "customer", entity_id,
        {"old_status": old, "new_status": new}, user_id
    )


class TestAuditTrail:
    """Test event logging and chain verification"""

    def test_events_are_chained(self, audit):
        """Test each event points at the previous event's hash"""
        first = status_change(audit, "1", "ACTIVE", "BLOCKED")
        second = status_change(audit, "1", "BLOCKED", "ACTIVE")

        assert first.sequence == 1
        assert first.previous_hash == ""
        assert second.sequence == 2
        assert second.previous_hash == first.current_hash
        assert second.verify_hash()

    def test_verify_integrity_of_clean_chain(self, audit):
        for number in range(5):
            status_change(audit, str(number), "ACTIVE", "BLOCKED")

        result = audit.verify_integrity()
        assert result['valid']
        assert result['total_events'] == 5
        assert result['details']['event_types'] == ["customer_status_changed"]

    def test_empty_chain_is_valid(self, audit):
        result = audit.verify_integrity()
        assert result['valid']
        assert result['total_events'] == 0

    def test_tampered_metadata_is_detected(self, storage, audit):
        """Test editing a stored event breaks its hash"""
        status_change(audit, "1", "ACTIVE", "BLOCKED")
        event = status_change(audit, "2", "ACTIVE", "BLOCKED")

        stored = storage.load(AUDIT_TABLE, event.id)
        stored['metadata']['new_status'] = "ACTIVE"
        storage.save(AUDIT_TABLE, event.id, stored)

        result = audit.verify_integrity()
        assert not result['valid']
        assert [error['event_id'] for error in result['hash_errors']] == [event.id]

    def test_deleted_event_breaks_the_chain(self, storage, audit):
        status_change(audit, "1", "ACTIVE", "BLOCKED")
        middle = status_change(audit, "2", "ACTIVE", "BLOCKED")
        status_change(audit, "3", "ACTIVE", "BLOCKED")

        storage.delete(AUDIT_TABLE, middle.id)

        result = audit.verify_integrity()
        assert not result['valid']
        assert len(result['chain_breaks']) == 1
        assert result['hash_errors'] == []

    def test_events_for_entity(self, audit):
        status_change(audit, "1", "ACTIVE", "BLOCKED")
        status_change(audit, "2", "ACTIVE", "BLOCKED")
        status_change(audit, "1", "BLOCKED", "ACTIVE")
        status_change(audit, "1", "ACTIVE", "SUSPENDED")

        events = audit.get_events_for_entity("customer", "1")
        assert [e.metadata['new_status'] for e in events] == ["BLOCKED", "ACTIVE", "SUSPENDED"]

        latest = audit.get_events_for_entity("customer", "1", limit=2)
        assert [e.metadata['new_status'] for e in latest] == ["ACTIVE", "SUSPENDED"]

    def test_event_round_trip(self, audit):
        event = status_change(audit, "1", "ACTIVE", "BLOCKED")
        loaded = audit.get_event_by_id(event.id)
        assert loaded.event_type == AuditEventType.CUSTOMER_STATUS_CHANGED
        assert loaded.verify_hash()
        assert audit.get_event_by_id("missing") is None
        assert audit.count_events() == 1


class TestAuditLogManager:
    """Test browsing, exporting and verifying recorded events"""

    def test_browse_newest_first(self, audit, audit_log):
        status_change(audit, "1", "ACTIVE", "BLOCKED")
        audit.log_event(AuditEventType.LOGIN_SUCCESS, "user", "u-2", {}, "u-2")

        result = audit_log.browse_events()
        assert [row['sequence'] for row in result.page.rows] == [2, 1]
        assert result.aggregates['total_events'] == 2
        assert result.aggregates['by_event_type'] == {
            "customer_status_changed": 1, "login_success": 1,
        }
        assert result.aggregates['users'] == ["u-1", "u-2"]

    def test_filter_by_event_type(self, audit, audit_log):
        status_change(audit, "1", "ACTIVE", "BLOCKED")
        audit.log_event(AuditEventType.LOGIN_FAILED, "user", "bob", {"reason": "invalid_password"}, "bob")

        result = audit_log.browse_events(BrowseRequest(filters={'event_type': 'login_failed'}))
        assert [row['entity_id'] for row in result.page.rows] == ["bob"]

    def test_export_is_itself_audited(self, audit, audit_log):
        status_change(audit, "1", "ACTIVE", "BLOCKED")

        result = audit_log.export_events(export_format=ExportFormat.CSV, user_id="auditor-1")
        assert result.exported == 1
        assert "customer_status_changed" in result.content

        exported = audit.get_events_for_entity("audit", "audit_events")
        assert exported[-1].event_type == AuditEventType.RECORDS_EXPORTED
        assert exported[-1].user_id == "auditor-1"

    def test_verify_records_the_check(self, audit, audit_log):
        status_change(audit, "1", "ACTIVE", "BLOCKED")

        result = audit_log.verify_integrity(user_id="auditor-1")
        assert result['valid']
        assert result['total_events'] == 1

        checks = audit.get_events_for_entity("audit", AUDIT_TABLE)
        assert checks[-1].event_type == AuditEventType.AUDIT_INTEGRITY_CHECK
        assert checks[-1].metadata == {'valid': True, 'total_events': 1}
        assert audit.verify_integrity()['valid']
