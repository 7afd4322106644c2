"""
Tests for summary metrics over a screen query
"""

from decimal import Decimal

import pytest

from backoffice.aggregates import AggregateCalculator, AggregationType, MetricDefinition, MetricFormat
from backoffice.query import Compare, Equals, FieldKind, Query
from backoffice.storage import InMemoryStorage, SQLiteStorage


ROWS = [
    {"id": "1", "status": "Completed", "amount": "100.00", "channel": "APP", "currency": "DJF",
     "initiated_at": "2024-01-05T10:00:00+00:00"},
    {"id": "2", "status": "Failed", "amount": "200.00", "channel": "USSD", "currency": "",
     "initiated_at": "2024-01-05T11:00:00+00:00"},
    {"id": "3", "status": "Completed", "amount": "33.33", "channel": "APP", "currency": "USD",
     "initiated_at": "2024-02-10T09:00:00+00:00"},
]


@pytest.fixture(params=[InMemoryStorage, lambda: SQLiteStorage(":memory:")], ids=["memory", "sqlite"])
def storage(request):
    backend = request.param()
    for row in ROWS:
        backend.save("payments", row["id"], row)
    return backend


@pytest.fixture
def calculator():
    return AggregateCalculator([
        MetricDefinition('total', AggregationType.COUNT),
        MetricDefinition('completed', AggregationType.COUNT, condition=Equals('status', 'Completed')),
        MetricDefinition('volume', AggregationType.SUM, field='amount', format=MetricFormat.MONEY),
        MetricDefinition('average', AggregationType.AVERAGE, field='amount', format=MetricFormat.MONEY),
        MetricDefinition('smallest', AggregationType.MIN, field='amount'),
        MetricDefinition('largest', AggregationType.MAX, field='amount'),
        MetricDefinition('success_rate', AggregationType.PERCENTAGE,
                         numerator='completed', denominator='total', format=MetricFormat.PERCENTAGE),
        MetricDefinition('currencies', AggregationType.DISTINCT, field='currency'),
        MetricDefinition('by_status', AggregationType.DISTRIBUTION, field='status'),
        MetricDefinition('by_channel', AggregationType.GROUPING, field='channel', value_field='amount'),
        MetricDefinition('daily', AggregationType.GROUPING, field='initiated_at', key_kind=FieldKind.DATE),
    ])


class TestAggregateCalculator:
    """Test computing every aggregation kind"""

    def test_all_metrics(self, storage, calculator):
        snapshot = calculator.compute(storage, Query("payments"))

        assert snapshot['total'] == 3
        assert snapshot['completed'] == 2
        assert snapshot['volume'] == Decimal('333.33')
        assert snapshot['average'] == Decimal('111.11')
        assert snapshot['smallest'] == Decimal('33.33')
        assert snapshot['largest'] == Decimal('200.00')
        assert snapshot['success_rate'] == Decimal('66.67')
        assert snapshot['currencies'] == ['DJF', 'USD']
        assert snapshot['by_status'] == {'Completed': 2, 'Failed': 1}
        assert snapshot['by_channel'] == [
            {'key': 'APP', 'count': 2, 'total': Decimal('133.33')},
            {'key': 'USSD', 'count': 1, 'total': Decimal('200.00')},
        ]
        assert snapshot['daily'] == [
            {'key': '2024-01-05', 'count': 2},
            {'key': '2024-02-10', 'count': 1},
        ]

    def test_metrics_follow_the_filtered_query(self, storage, calculator):
        """Test metrics see exactly the page's predicates"""
        snapshot = calculator.compute(storage, Query("payments").where(Compare('amount', '>', 50)))
        assert snapshot['total'] == 2
        assert snapshot['volume'] == Decimal('300.00')

    def test_empty_result(self, storage, calculator):
        """Test empty inputs give zeros rather than errors"""
        snapshot = calculator.compute(storage, Query("payments").where(Equals('status', 'Cancelled')))
        assert snapshot['total'] == 0
        assert snapshot['volume'] == Decimal('0.00')
        assert snapshot['average'] == Decimal('0.00')
        assert snapshot['success_rate'] == Decimal('0.00')
        assert snapshot['currencies'] == []
        assert snapshot['by_status'] == {}
        assert snapshot['by_channel'] == []

    def test_snapshot_is_read_only(self, storage, calculator):
        snapshot = calculator.compute(storage, Query("payments"))
        with pytest.raises(TypeError):
            snapshot['total'] = 0
        assert snapshot.to_dict()['total'] == 3


class TestMetricDefinitions:
    """Test metric declaration checks"""

    def test_field_required(self):
        with pytest.raises(ValueError, match="needs a field"):
            MetricDefinition('volume', AggregationType.SUM)

    def test_percentage_needs_both_operands(self):
        with pytest.raises(ValueError, match="numerator and a denominator"):
            MetricDefinition('rate', AggregationType.PERCENTAGE, numerator='completed')

    def test_percentage_must_refer_to_earlier_metrics(self):
        with pytest.raises(ValueError, match="undefined metrics"):
            AggregateCalculator([
                MetricDefinition('rate', AggregationType.PERCENTAGE, numerator='a', denominator='b'),
            ])

    def test_duplicate_metric_names(self):
        with pytest.raises(ValueError, match="Duplicate metric name"):
            AggregateCalculator([
                MetricDefinition('total', AggregationType.COUNT),
                MetricDefinition('total', AggregationType.COUNT),
            ])

    def test_format_value(self):
        money = MetricDefinition('volume', AggregationType.SUM, field='amount', format=MetricFormat.MONEY)
        rate = MetricDefinition('rate', AggregationType.PERCENTAGE, numerator='a', denominator='b',
                                format=MetricFormat.PERCENTAGE)
        count = MetricDefinition('total', AggregationType.COUNT)
        assert money.format_value(Decimal('1234567.5')) == "1,234,567.50"
        assert rate.format_value(Decimal('66.666')) == "66.67%"
        assert count.format_value(3) == "3"
