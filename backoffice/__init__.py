"""
Bank Back-Office

Read-mostly staff console over a core-banking data store: filterable,
paginated list views with summary aggregates and CSV/JSON export for
customers, organizations, operators, accounts, transactions, KYC records
and the audit trail.
"""

__version__ = "1.0.0"
