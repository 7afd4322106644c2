"""
Presentation Mapping Module

Maps stored codes to display labels and badge colors, one immutable table
per entity kind. Lookups are always by (kind, code); an unknown code is
shown as itself with the neutral badge.
"""

from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from .storage import parse_timestamp


NEUTRAL_COLOR = "badge-neutral"


@dataclass(frozen=True)
class StatusLabel:
    label: str
    color: str


def _table(entries: Dict[str, Tuple[str, str]]) -> Mapping[str, StatusLabel]:
    return MappingProxyType({code: StatusLabel(label, color) for code, (label, color) in entries.items()})


# Organizations and operators share the odd-numbered lifecycle codes
_PARTY_STATUS = {
    '01': ("Inactive", "badge-neutral"),
    '03': ("Active", "badge-success"),
    '05': ("Suspended", "badge-warning"),
    '07': ("Blocked", "badge-error"),
    '09': ("Closed", "badge-ghost"),
}

_TRUST_LEVELS = {
    '0': ("Level 0 - Unverified", "badge-neutral"),
    '1': ("Level 1 - Basic", "badge-neutral"),
    '2': ("Level 2 - Intermediate", "badge-info"),
    '3': ("Level 3 - Advanced", "badge-info"),
    '4': ("Level 4 - Premium", "badge-success"),
    '5': ("Level 5 - Maximum", "badge-success"),
}

DEFAULT_TABLES: Dict[str, Dict[str, Tuple[str, str]]] = {
    'customer_status': {
        'ACTIVE': ("Active", "badge-success"),
        'INACTIVE': ("Inactive", "badge-neutral"),
        'PENDING': ("Pending", "badge-warning"),
        'SUSPENDED': ("Suspended", "badge-error"),
        'BLOCKED': ("Blocked", "badge-error"),
        'TERMINATED': ("Terminated", "badge-ghost"),
    },
    'customer_type': {
        'INDIVIDUAL': ("Individual", "badge-neutral"),
        'CORPORATE': ("Corporate", "badge-info"),
        'PREMIUM': ("Premium", "badge-primary"),
        'VIP': ("VIP", "badge-secondary"),
    },
    'organization_status': _PARTY_STATUS,
    'organization_type': {
        'CORP': ("Company", "badge-neutral"),
        'NGO': ("NGO", "badge-neutral"),
        'GOVT': ("Government", "badge-neutral"),
        'BANK': ("Bank", "badge-neutral"),
        'RETAIL': ("Retail", "badge-neutral"),
        'OTHER': ("Other", "badge-neutral"),
    },
    'operator_status': _PARTY_STATUS,
    'operator_identity_type': {
        '1': ("Customer", "badge-info"),
        '2': ("Organization", "badge-primary"),
        '3': ("Operator", "badge-neutral"),
    },
    'account_status': {
        '01': ("Pending opening", "badge-warning"),
        '02': ("Opening", "badge-warning"),
        '03': ("Active", "badge-success"),
        '04': ("Suspended", "badge-error"),
        '05': ("Closed", "badge-neutral"),
        '06': ("Blocked", "badge-error"),
        '07': ("Dormant", "badge-ghost"),
    },
    'transaction_status': {
        'Completed': ("Completed", "badge-success"),
        'Authorized': ("Authorized", "badge-info"),
        'Pending': ("Pending", "badge-warning"),
        'Pending Authorized': ("Pending Authorized", "badge-warning"),
        'Failed': ("Failed", "badge-error"),
        'Cancelled': ("Cancelled", "badge-neutral"),
    },
    'trust_level': _TRUST_LEVELS,
    'kyc_status': {
        'complete': ("Complete", "badge-success"),
        'incomplete': ("Incomplete", "badge-warning"),
        'missing': ("No KYC", "badge-error"),
    },
}


class LabelRegistry:
    """Immutable per-kind code tables"""

    def __init__(self, tables: Optional[Dict[str, Dict[str, Tuple[str, str]]]] = None):
        tables = DEFAULT_TABLES if tables is None else tables
        self._tables: Mapping[str, Mapping[str, StatusLabel]] = MappingProxyType(
            {kind: _table(entries) for kind, entries in tables.items()}
        )

    @property
    def kinds(self) -> Tuple[str, ...]:
        return tuple(self._tables)

    def label(self, kind: str, code: Any) -> StatusLabel:
        """Label for a code; unknown kinds and codes pass through as neutral"""
        text = "" if code is None else str(code)
        table = self._tables.get(kind)
        if table is not None and text in table:
            return table[text]
        return StatusLabel(text, NEUTRAL_COLOR)

    def options(self, kind: str) -> Dict[str, str]:
        """code -> label, for filter dropdowns"""
        return {code: entry.label for code, entry in self._tables.get(kind, {}).items()}

    def decorate(self, row: Dict[str, Any], label_fields: Mapping[str, str]) -> Dict[str, Any]:
        """Copy of a row with `<field>_label` / `<field>_color` added per labelled field"""
        decorated = dict(row)
        for field_name, kind in label_fields.items():
            entry = self.label(kind, row.get(field_name))
            decorated[f"{field_name}_label"] = entry.label
            decorated[f"{field_name}_color"] = entry.color
        return decorated


def format_timestamp(value: Any, fmt: str = "%d/%m/%Y %H:%M") -> str:
    """Display form of a stored timestamp; unparseable input is shown as-is"""
    if value is None or value == "":
        return ""
    try:
        parsed = value if isinstance(value, datetime) else parse_timestamp(value)
    except ValueError:
        return str(value)
    return parsed.strftime(fmt)


registry = LabelRegistry()


def get_registry() -> LabelRegistry:
    """Get the shared label registry"""
    return registry
