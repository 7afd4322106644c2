"""
Tests for the organization screen and detail view
"""

from datetime import datetime, timezone, timedelta
from decimal import Decimal

import pytest

from backoffice.accounts import Account, AccountManager, AccountStatus, OwnerKind
from backoffice.audit import AuditEventType, AuditTrail
from backoffice.export import ExportFormat
from backoffice.kyc import KycManager
from backoffice.operators import IdentityType, Operator, OperatorManager, PartyStatus
from backoffice.organizations import Organization, OrganizationManager, OrganizationType
from backoffice.screens import BrowseRequest
from backoffice.storage import InMemoryStorage


NOW = datetime.now(timezone.utc)


def ago(days):
    return NOW - timedelta(days=days)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def audit(storage):
    return AuditTrail(storage)


@pytest.fixture
def organization_manager(storage, audit):
    accounts = AccountManager(storage, audit)
    operators = OperatorManager(storage, audit)
    kyc = KycManager(storage, audit, required_attributes=("registration_number",))
    manager = OrganizationManager(storage, audit, accounts, operators, kyc)

    manager.save_many([
        Organization(id="5001", created_at=ago(300), updated_at=ago(300), biz_org_name="Red Sea Traders",
                     public_name="RST", organization_type=OrganizationType.RETAIL.value,
                     trust_level=3, short_code="RST01", is_top=1),
        Organization(id="5002", created_at=ago(45), updated_at=ago(45), biz_org_name="Port Logistics",
                     organization_type=OrganizationType.COMPANY.value, trust_level=2,
                     short_code="PLG01", status=PartyStatus.INACTIVE.value),
        Organization(id="5003", created_at=ago(900), updated_at=ago(900), biz_org_name="Old Mill"),
    ])
    accounts.save_many([
        Account(id="200001", created_at=ago(299), updated_at=ago(299), owner_kind=OwnerKind.ORGANIZATION.value,
                owner_id="5001", balance=Decimal("2500000.00"), account_status=AccountStatus.ACTIVE.value),
        Account(id="200002", created_at=ago(100), updated_at=ago(100), owner_kind=OwnerKind.ORGANIZATION.value,
                owner_id="5001", currency="USD", balance=Decimal("1200.50"),
                account_status=AccountStatus.SUSPENDED.value),
    ])
    operators.save_many([
        Operator(id="9001", created_at=ago(290), updated_at=ago(290), operator_code="RST-ADM",
                 owned_identity_type=IdentityType.ORGANIZATION.value, owned_identity_id="5001", is_admin=1),
        Operator(id="9002", created_at=ago(40), updated_at=ago(40), operator_code="RST-CSH",
                 owned_identity_type=IdentityType.ORGANIZATION.value, owned_identity_id="5001"),
    ])
    return manager


def row_ids(result):
    return [row["id"] for row in result.page.rows]


class TestOrganizationScreen:
    """Test the organization list"""

    def test_two_year_window(self, organization_manager):
        result = organization_manager.browse_organizations()
        assert row_ids(result) == ["5002", "5001"]
        assert result.aggregates['total_organizations'] == 2

    def test_search_by_short_code(self, organization_manager):
        result = organization_manager.browse_organizations(BrowseRequest(filters={'search': 'plg'}))
        assert row_ids(result) == ["5002"]

    def test_type_and_status_labels(self, organization_manager):
        result = organization_manager.browse_organizations(BrowseRequest(filters={'status': '01'}))
        row = result.page.rows[0]
        assert row['status_label'] == "Inactive"
        assert row['organization_type_label'] == "Company"

    def test_export(self, organization_manager):
        result = organization_manager.export_organizations(export_format=ExportFormat.JSON, user_id="u-1")
        assert result.exported == 2
        assert '"biz_org_name": "Red Sea Traders"' in result.content


class TestOrganizationDetail:
    """Test the organization detail view"""

    def test_detail(self, organization_manager):
        detail = organization_manager.get_organization_detail("5001")
        assert detail['organization']['biz_org_name'] == "Red Sea Traders"
        assert detail['account_count'] == 2
        assert detail['active_accounts'] == 1
        assert detail['operator_count'] == 2
        assert detail['admin_operators'] == 1
        assert detail['balance_by_currency'] == {'DJF': "2500000.00", 'USD': "1200.50"}
        assert detail['total_balance'] == "2501200.50"
        assert detail['kyc_status'] == "missing"

    def test_missing_organization(self, organization_manager):
        assert organization_manager.get_organization_detail("404") is None

    def test_accounts_and_operators_of_one_organization(self, organization_manager):
        accounts = organization_manager.browse_organization_accounts("5001")
        assert row_ids(accounts) == ["200002", "200001"]
        operators = organization_manager.browse_organization_operators("5001")
        assert row_ids(operators) == ["9002", "9001"]
        assert row_ids(organization_manager.browse_organization_operators("5002")) == []


class TestOrganizationStatus:
    def test_suspend(self, organization_manager, audit):
        organization = organization_manager.change_status(
            "5001", PartyStatus.SUSPENDED.value, reason="licence review", user_id="u-1"
        )
        assert organization.status == "05"
        event = audit.get_events_for_entity("organization", "5001")[-1]
        assert event.event_type == AuditEventType.ORGANIZATION_STATUS_CHANGED
        assert event.metadata == {
            'field': 'status', 'old_status': '03', 'new_status': '05', 'reason': 'licence review',
        }

    def test_customer_status_codes_are_rejected(self, organization_manager):
        with pytest.raises(ValueError):
            organization_manager.change_status("5001", "ACTIVE")
