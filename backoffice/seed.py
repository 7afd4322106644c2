"""
Demo data for local runs: a few customers, organizations, operators,
accounts, transactions and KYC records, plus an `admin` console user.
"""

from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import Dict, Optional

from .accounts import Account, AccountStatus, OwnerKind
from .customers import Customer, CustomerStatus, CustomerType
from .kyc import IdentityKind, KycRecord, kyc_record_id
from .logging_config import get_logger
from .operators import IdentityType, Operator, PartyStatus
from .organizations import Organization, OrganizationType
from .transactions import PartyType, Transaction, TransactionStatus


logger = get_logger("backoffice.seed")

DEMO_ADMIN_USERNAME = "admin"
DEMO_ADMIN_PASSWORD = "admin-password"


def seed_demo_data(system, now: Optional[datetime] = None) -> Dict[str, int]:
    """Load demo records through the managers; returns counts per entity"""
    now = now or datetime.now(timezone.utc)

    def ago(days: int) -> datetime:
        return now - timedelta(days=days)

    customers = [
        Customer(id="1", created_at=ago(400), updated_at=ago(400), user_name="amina.h",
                 public_name="Amina Hassan", customer_type=CustomerType.INDIVIDUAL.value,
                 trust_level=3, status=CustomerStatus.ACTIVE.value, active_time=ago(399)),
        Customer(id="2", created_at=ago(20), updated_at=ago(20), user_name="omar.d",
                 public_name="Omar Daher", customer_type=CustomerType.PREMIUM.value,
                 trust_level=4, status=CustomerStatus.ACTIVE.value, active_time=ago(19)),
        Customer(id="3", created_at=ago(3), updated_at=ago(3), user_name="leila.a",
                 public_name="Leila Ali", trust_level=1, status=CustomerStatus.PENDING.value),
    ]
    organizations = [
        Organization(id="5001", created_at=ago(300), updated_at=ago(300), biz_org_name="Red Sea Traders",
                     public_name="RST", organization_type=OrganizationType.RETAIL.value, trust_level=3,
                     short_code="RST01", status=PartyStatus.ACTIVE.value, is_top=1),
        Organization(id="5002", created_at=ago(45), updated_at=ago(45), biz_org_name="Port Logistics",
                     organization_type=OrganizationType.COMPANY.value, trust_level=2,
                     short_code="PLG01", status=PartyStatus.INACTIVE.value),
    ]
    operators = [
        Operator(id="9001", created_at=ago(290), updated_at=ago(290), operator_code="RST-ADM",
                 owned_identity_type=IdentityType.ORGANIZATION.value, owned_identity_id="5001",
                 user_name="rst.admin", public_name="RST Admin", is_admin=1),
        Operator(id="9002", created_at=ago(40), updated_at=ago(40), operator_code="RST-CSH",
                 owned_identity_type=IdentityType.ORGANIZATION.value, owned_identity_id="5001",
                 user_name="rst.cashier", public_name="RST Cashier"),
    ]
    accounts = [
        Account(id="100001", created_at=ago(399), updated_at=ago(399), owner_kind=OwnerKind.CUSTOMER.value,
                owner_id="1", account_name="Amina Hassan", balance=Decimal('15250.00'),
                account_status=AccountStatus.ACTIVE.value, opened_at=ago(399)),
        Account(id="100002", created_at=ago(10), updated_at=ago(10), owner_kind=OwnerKind.CUSTOMER.value,
                owner_id="2", account_name="Omar Daher", balance=Decimal('120000.00'),
                reserved_balance=Decimal('500.00'), account_status=AccountStatus.ACTIVE.value,
                opened_at=ago(10)),
        Account(id="200001", created_at=ago(299), updated_at=ago(299), owner_kind=OwnerKind.ORGANIZATION.value,
                owner_id="5001", account_name="RST Operating", balance=Decimal('2500000.00'),
                account_status=AccountStatus.ACTIVE.value, opened_at=ago(299)),
    ]

    def transaction(order_id: str, days: int, status: TransactionStatus, amount: str,
                    channel: str, **extra) -> Transaction:
        return Transaction(
            id=order_id, created_at=ago(days), updated_at=ago(days), trans_status=status.value,
            initiated_at=ago(days), debit_party_id="1", debit_party_type=PartyType.CUSTOMER.value,
            debit_party_account="100001", debit_party_mnemonic="Amina Hassan",
            credit_party_id="5001", credit_party_type=PartyType.ORGANIZATION.value,
            credit_party_account="200001", credit_party_mnemonic="Red Sea Traders",
            request_amount=Decimal(amount), actual_amount=Decimal(amount), channel=channel,
            transaction_type="PAYMENT", **extra
        )

    transactions = [
        transaction("700001", 1, TransactionStatus.COMPLETED, "250.00", "USSD", fee=Decimal('2.50')),
        transaction("700002", 2, TransactionStatus.COMPLETED, "12500.00", "APP", fee=Decimal('25.00')),
        transaction("700003", 5, TransactionStatus.PENDING, "80.00", "APP"),
        transaction("700004", 12, TransactionStatus.FAILED, "40.00", "USSD", reason_type="INSUFFICIENT_FUNDS"),
        transaction("700005", 15, TransactionStatus.COMPLETED, "300.00", "APP", is_reversed=1),
    ]
    kyc_records = [
        KycRecord(id=kyc_record_id(IdentityKind.CUSTOMER, "1"), created_at=ago(398), updated_at=ago(398),
                  identity_kind=IdentityKind.CUSTOMER.value, identity_id="1",
                  attributes={'first_name': "Amina", 'last_name': "Hassan",
                              'date_of_birth': "1990-04-02", 'id_number': "DJ-449102"}),
        KycRecord(id=kyc_record_id(IdentityKind.CUSTOMER, "2"), created_at=ago(9), updated_at=ago(9),
                  identity_kind=IdentityKind.CUSTOMER.value, identity_id="2",
                  attributes={'first_name': "Omar", 'last_name': "Daher"}),
    ]

    counts = {
        'customers': system.customer_manager.save_many(customers),
        'organizations': system.organization_manager.save_many(organizations),
        'operators': system.operator_manager.save_many(operators),
        'accounts': system.account_manager.save_many(accounts),
        'transactions': system.transaction_manager.save_many(transactions),
        'kyc_records': system.kyc_manager.save_many(kyc_records),
    }

    if system.rbac_manager.get_user_by_username(DEMO_ADMIN_USERNAME) is None:
        system.rbac_manager.create_user(
            DEMO_ADMIN_USERNAME, "admin@example.com", "Demo Administrator",
            roles=['super-admin'], password=DEMO_ADMIN_PASSWORD
        )
        counts['users'] = 1

    logger.info(f"Seeded demo data: {counts}")
    return counts
