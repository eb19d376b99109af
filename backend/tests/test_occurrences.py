from datetime import date

import pytest

from fintrack.recurring.engine import (
    iter_occurrences,
    matches,
    next_occurrences,
    upcoming_occurrences,
)
from fintrack.recurring.models import Frequency
from tests.fakes import make_rule


def test_weekly_from_a_wednesday():
    rule = make_rule(frequency=Frequency.WEEKLY, day_of_week=1, start_date=date(2024, 1, 1))
    assert next_occurrences(rule, 3, today=date(2024, 1, 3)) == [
        date(2024, 1, 8),
        date(2024, 1, 15),
        date(2024, 1, 22),
    ]


def test_monthly_day_31_through_leap_february():
    rule = make_rule(frequency=Frequency.MONTHLY, day_of_month=31, start_date=date(2024, 1, 1))
    assert next_occurrences(rule, 2, today=date(2024, 1, 1)) == [
        date(2024, 1, 31),
        date(2024, 2, 29),
    ]


def test_monthly_day_31_over_a_year():
    rule = make_rule(frequency=Frequency.MONTHLY, day_of_month=31, start_date=date(2023, 1, 1))
    dates = next_occurrences(rule, 12, today=date(2023, 1, 1))
    assert [d.month for d in dates] == list(range(1, 13))
    assert date(2023, 2, 28) in dates
    assert date(2023, 4, 30) in dates


def test_monthly_recovers_after_short_month():
    rule = make_rule(frequency=Frequency.MONTHLY, day_of_month=30, start_date=date(2023, 2, 1))
    assert next_occurrences(rule, 3, today=date(2023, 2, 1)) == [
        date(2023, 2, 28),
        date(2023, 3, 30),
        date(2023, 4, 30),
    ]


def test_today_counts_when_it_matches():
    rule = make_rule(frequency=Frequency.MONTHLY, day_of_month=15)
    assert next_occurrences(rule, 1, today=date(2024, 5, 15)) == [date(2024, 5, 15)]


def test_daily_sequence():
    rule = make_rule(frequency=Frequency.DAILY)
    assert next_occurrences(rule, 3, today=date(2024, 2, 28)) == [
        date(2024, 2, 28),
        date(2024, 2, 29),
        date(2024, 3, 1),
    ]


def test_future_start_date_is_the_first_candidate():
    rule = make_rule(frequency=Frequency.DAILY, start_date=date(2024, 6, 1))
    assert next_occurrences(rule, 2, today=date(2024, 1, 1)) == [
        date(2024, 6, 1),
        date(2024, 6, 2),
    ]


def test_stops_at_end_date():
    rule = make_rule(
        frequency=Frequency.WEEKLY,
        day_of_week=5,
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 19),
    )
    assert next_occurrences(rule, 10, today=date(2024, 1, 1)) == [
        date(2024, 1, 5),
        date(2024, 1, 12),
        date(2024, 1, 19),
    ]


def test_expired_rule_yields_nothing():
    rule = make_rule(end_date=date(2023, 12, 31))
    assert next_occurrences(rule, 5, today=date(2024, 1, 1)) == []


@pytest.mark.parametrize("count", [0, -3])
def test_non_positive_count_is_empty(count):
    assert next_occurrences(make_rule(), count, today=date(2024, 1, 1)) == []


def test_does_not_touch_marker():
    rule = make_rule(last_generated_date=date(2024, 1, 1))
    next_occurrences(rule, 5, today=date(2024, 1, 1))
    assert rule.last_generated_date == date(2024, 1, 1)


def test_iteration_is_lazy_and_restartable():
    rule = make_rule(frequency=Frequency.DAILY)
    first = next(iter_occurrences(rule, date(2024, 1, 1)))
    again = next(iter_occurrences(rule, date(2024, 1, 1)))
    assert first == again == date(2024, 1, 1)


@pytest.mark.parametrize(
    "overrides",
    [
        dict(frequency=Frequency.DAILY),
        dict(frequency=Frequency.WEEKLY, day_of_week=0),
        dict(frequency=Frequency.WEEKLY, day_of_week=6),
        dict(frequency=Frequency.MONTHLY, day_of_month=1),
        dict(frequency=Frequency.MONTHLY, day_of_month=29),
        dict(frequency=Frequency.MONTHLY, day_of_month=31, end_date=date(2025, 3, 1)),
    ],
)
def test_sequence_properties(overrides):
    rule = make_rule(start_date=date(2024, 1, 10), **overrides)
    dates = next_occurrences(rule, 40, today=date(2023, 11, 20))

    assert len(dates) <= 40
    assert all(a < b for a, b in zip(dates, dates[1:]))
    assert all(matches(rule, d) for d in dates)
    assert all(d >= rule.start_date for d in dates)
    if rule.end_date is not None:
        assert all(d <= rule.end_date for d in dates)


class TestUpcoming:
    def test_merges_rules_in_date_order(self):
        rent = make_rule(frequency=Frequency.MONTHLY, day_of_month=1, description="Rent")
        gym = make_rule(frequency=Frequency.WEEKLY, day_of_week=1, description="Gym")

        upcoming = upcoming_occurrences([rent, gym], date(2024, 1, 3), limit=4)

        assert [(o.date, o.description) for o in upcoming] == [
            (date(2024, 1, 8), "Gym"),
            (date(2024, 1, 15), "Gym"),
            (date(2024, 1, 22), "Gym"),
            (date(2024, 1, 29), "Gym"),
        ]

    def test_skips_inactive_rules(self):
        paused = make_rule(is_active=False)
        assert upcoming_occurrences([paused], date(2024, 1, 1)) == []

    def test_limits_per_rule(self):
        salary = make_rule(frequency=Frequency.MONTHLY, day_of_month=25)
        upcoming = upcoming_occurrences([salary], date(2024, 1, 1), limit=10, per_rule=2)
        assert [o.date for o in upcoming] == [date(2024, 1, 25), date(2024, 2, 25)]
        assert upcoming[0].rule_id == salary.id
        assert upcoming[0].amount == salary.amount
