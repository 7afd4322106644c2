"""
Tests for status labels and display formatting
"""

from datetime import datetime, timezone

from backoffice.presentation import (
    NEUTRAL_COLOR, LabelRegistry, StatusLabel, format_timestamp, get_registry
)


class TestLabelRegistry:
    """Test (kind, code) label lookups"""

    def test_known_codes(self):
        registry = get_registry()
        assert registry.label('account_status', '03') == StatusLabel("Active", "badge-success")
        assert registry.label('organization_status', '07') == StatusLabel("Blocked", "badge-error")
        assert registry.label('transaction_status', 'Pending Authorized').color == "badge-warning"

    def test_same_code_differs_by_kind(self):
        """Test codes are never looked up without their kind"""
        registry = get_registry()
        assert registry.label('account_status', '01').label == "Pending opening"
        assert registry.label('operator_status', '01').label == "Inactive"

    def test_unknown_code_passes_through_neutral(self):
        registry = get_registry()
        assert registry.label('account_status', '42') == StatusLabel("42", NEUTRAL_COLOR)
        assert registry.label('no_such_kind', 'X') == StatusLabel("X", NEUTRAL_COLOR)
        assert registry.label('account_status', None) == StatusLabel("", NEUTRAL_COLOR)

    def test_integer_codes(self):
        assert get_registry().label('trust_level', 3).label == "Level 3 - Advanced"

    def test_decorate_copies_the_row(self):
        registry = LabelRegistry({'color': {'R': ("Red", "badge-error")}})
        row = {'id': '1', 'color': 'R'}
        decorated = registry.decorate(row, {'color': 'color'})
        assert decorated['color_label'] == "Red"
        assert decorated['color_color'] == "badge-error"
        assert 'color_label' not in row

    def test_options(self):
        assert get_registry().options('kyc_status') == {
            'complete': "Complete", 'incomplete': "Incomplete", 'missing': "No KYC",
        }
        assert get_registry().options('unknown') == {}


class TestFormatTimestamp:
    def test_default_format(self):
        assert format_timestamp("2024-01-05T10:07:00+00:00") == "05/01/2024 10:07"
        assert format_timestamp(datetime(2024, 2, 10, 9, 0, tzinfo=timezone.utc), "%Y-%m-%d") == "2024-02-10"

    def test_empty_and_unparseable(self):
        assert format_timestamp(None) == ""
        assert format_timestamp("") == ""
        assert format_timestamp("sometime") == "sometime"
