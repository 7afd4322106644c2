"""
Tests for customer and organization account screens
"""

from datetime import datetime, timezone, timedelta
from decimal import Decimal

import pytest

from backoffice.accounts import Account, AccountManager, AccountStatus, OwnerKind
from backoffice.audit import AuditEventType, AuditTrail
from backoffice.export import ExportFormat
from backoffice.screens import BrowseRequest
from backoffice.storage import InMemoryStorage


NOW = datetime.now(timezone.utc)


def make_account(account_no, owner_kind, owner_id, balance, status=AccountStatus.ACTIVE, days_ago=1, **extra):
    created = NOW - timedelta(days=days_ago)
    return Account(
        id=account_no, created_at=created, updated_at=created,
        owner_kind=owner_kind.value, owner_id=owner_id, balance=Decimal(balance),
        account_status=status.value, opened_at=created, **extra
    )


@pytest.fixture
def storage():
    storage = InMemoryStorage()
    storage.save("customers", "1", {"id": "1", "public_name": "Amina Hassan", "user_name": "amina.h"})
    storage.save("customers", "2", {"id": "2", "public_name": "Omar Daher", "user_name": "omar.d"})
    storage.save("organizations", "5001", {"id": "5001", "biz_org_name": "Red Sea Traders"})
    return storage


@pytest.fixture
def audit(storage):
    return AuditTrail(storage)


@pytest.fixture
def account_manager(storage, audit):
    manager = AccountManager(storage, audit)
    manager.save_many([
        make_account("100001", OwnerKind.CUSTOMER, "1", "15250.00", alias="salary"),
        make_account("100002", OwnerKind.CUSTOMER, "2", "120000.00", reserved_balance=Decimal("500.00")),
        make_account("100003", OwnerKind.CUSTOMER, "2", "0.00", status=AccountStatus.BLOCKED, days_ago=3),
        make_account("100004", OwnerKind.CUSTOMER, "1", "75.00", days_ago=400),
        make_account("200001", OwnerKind.ORGANIZATION, "5001", "2500000.00", days_ago=300),
    ])
    return manager


def account_numbers(result):
    return [row["id"] for row in result.page.rows]


class TestAccountScreens:
    """Test the two account list screens"""

    def test_customer_accounts_default_window(self, account_manager):
        """Test only recent customer accounts are listed by default, newest first"""
        result = account_manager.browse_accounts(OwnerKind.CUSTOMER)
        assert account_numbers(result) == ["100001", "100002", "100003"]

    def test_organization_accounts_use_five_year_window(self, account_manager):
        result = account_manager.browse_accounts(OwnerKind.ORGANIZATION)
        assert account_numbers(result) == ["200001"]

    def test_metrics(self, account_manager):
        aggregates = account_manager.browse_accounts(OwnerKind.CUSTOMER).aggregates
        assert aggregates['total_accounts'] == 3
        assert aggregates['active_accounts'] == 2
        assert aggregates['blocked_accounts'] == 1
        assert aggregates['total_balance'] == Decimal('135250.00')
        assert aggregates['total_reserved'] == Decimal('500.00')
        assert aggregates['active_rate'] == Decimal('66.67')
        assert aggregates['by_status'] == {'03': 2, '06': 1}
        assert aggregates['currencies'] == ['DJF']

    def test_owner_name_search(self, account_manager):
        """Test searching accounts by the owning customer's name"""
        result = account_manager.browse_accounts(
            OwnerKind.CUSTOMER, BrowseRequest(filters={'owner_name': 'omar'})
        )
        assert account_numbers(result) == ["100002", "100003"]

    def test_search_matches_alias_or_owner(self, account_manager):
        result = account_manager.browse_accounts(
            OwnerKind.CUSTOMER, BrowseRequest(filters={'search': 'SALARY'})
        )
        assert account_numbers(result) == ["100001"]

    def test_balance_band(self, account_manager):
        result = account_manager.browse_accounts(
            OwnerKind.CUSTOMER, BrowseRequest(filters={'balance_band': 'high'})
        )
        assert account_numbers(result) == ["100002"]

    def test_sort_by_balance(self, account_manager):
        result = account_manager.browse_accounts(
            OwnerKind.CUSTOMER, BrowseRequest(sort_by='balance', sort_direction='asc')
        )
        assert account_numbers(result) == ["100003", "100001", "100002"]

    def test_status_labels(self, account_manager):
        rows = account_manager.browse_accounts(OwnerKind.CUSTOMER).page.rows
        labels = {row['id']: row['account_status_label'] for row in rows}
        assert labels == {"100001": "Active", "100002": "Active", "100003": "Blocked"}

    def test_owned_accounts_ignore_the_window(self, account_manager):
        result = account_manager.browse_owned_accounts(OwnerKind.CUSTOMER, "1")
        assert account_numbers(result) == ["100001", "100004"]

    def test_accounts_of(self, account_manager):
        accounts = account_manager.accounts_of(OwnerKind.CUSTOMER, "2")
        assert [a.account_no for a in accounts] == ["100002", "100003"]
        assert accounts[0].available_balance == Decimal('119500.00')


class TestAccountStatus:
    """Test audited status changes"""

    def test_block_account(self, account_manager, audit):
        account = account_manager.change_account_status(
            "100001", AccountStatus.BLOCKED.value, reason="court order", user_id="u-7"
        )
        assert account.account_status == "06"
        assert account_manager.get_account("100001").account_status == "06"

        event = audit.get_events_for_entity("account", "100001")[-1]
        assert event.event_type == AuditEventType.ACCOUNT_STATUS_CHANGED
        assert event.metadata['old_status'] == "03"
        assert event.metadata['reason'] == "court order"
        assert event.user_id == "u-7"

    def test_close_sets_closed_at(self, account_manager):
        account = account_manager.change_account_status("100004", AccountStatus.CLOSED.value)
        assert account.closed_at is not None
        assert account_manager.get_account("100004").closed_at == account.closed_at

    def test_invalid_status(self, account_manager):
        with pytest.raises(ValueError, match="Invalid account_status"):
            account_manager.change_account_status("100001", "99")

    def test_missing_account(self, account_manager):
        assert account_manager.change_account_status("999999", AccountStatus.ACTIVE.value) is None


class TestAccountExport:
    def test_export_matches_the_screen(self, account_manager, audit):
        result = account_manager.export_accounts(
            OwnerKind.CUSTOMER, BrowseRequest(filters={'account_status': '03'}),
            ExportFormat.CSV, user_id="u-7"
        )
        lines = result.content.strip().splitlines()
        assert lines[0].startswith("id,owner_id,account_name")
        assert len(lines) == 3
        assert result.total == 2

        event = audit.get_events_for_entity("account", "customer_accounts")[-1]
        assert event.event_type == AuditEventType.RECORDS_EXPORTED
        assert event.metadata['exported'] == 2
