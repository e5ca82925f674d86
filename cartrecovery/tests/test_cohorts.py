"""Unit tests for weekly cohort analysis.

WHAT: Week bucketing (Sunday start, reporting timezone), totals and rates
WHY: Cohorts drive the week-over-week recovery chart
REFERENCES:
    - cartrecovery/analytics/cohorts.py (module under test)
"""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from cartrecovery.analytics.cohorts import analyze_cohorts, week_start
from cartrecovery.models import CartStatus


def _at(*args):
    return datetime(*args, tzinfo=timezone.utc)


class TestWeekStart:

    def test_sunday_is_its_own_week_start(self):
        assert week_start(date(2024, 11, 24)) == date(2024, 11, 24)

    def test_saturday_belongs_to_previous_sunday(self):
        assert week_start(date(2024, 11, 30)) == date(2024, 11, 24)

    def test_monday(self):
        assert week_start(date(2024, 11, 25)) == date(2024, 11, 24)


class TestAnalyzeCohorts:

    def test_empty_input(self):
        assert analyze_cohorts([]) == []

    def test_groups_by_week(self, make_cart):
        carts = [
            make_cart(total_value=100, abandoned_at=_at(2024, 11, 18, 10)),  # Mon, week of 17th
            make_cart(total_value=50, abandoned_at=_at(2024, 11, 23, 23)),   # Sat, week of 17th
            make_cart(
                total_value=200,
                status=CartStatus.recovered,
                recovered_value=180,
                abandoned_at=_at(2024, 11, 24, 9),                           # Sun, week of 24th
            ),
        ]

        cohorts = analyze_cohorts(carts)

        assert [c.week for c in cohorts] == ["2024-11-17", "2024-11-24"]
        first, second = cohorts
        assert first.total_carts == 2
        assert first.recovered_carts == 0
        assert first.total_value == 150
        assert first.recovery_rate == "0.0"
        assert first.avg_cart_value == "75.00"

        assert second.total_carts == 1
        assert second.recovered_carts == 1
        assert second.recovered_value == 180
        assert second.recovery_rate == "100.0"
        assert second.avg_cart_value == "200.00"

    def test_totals_sum_to_input(self, make_cart):
        """WHAT: Every cart lands in exactly one cohort."""
        carts = [make_cart(abandoned_at=_at(2024, 11, day, 12)) for day in range(1, 29)]

        cohorts = analyze_cohorts(carts)

        assert sum(c.total_carts for c in cohorts) == len(carts)

    def test_recovered_without_value_counts_zero(self, make_cart):
        carts = [make_cart(status=CartStatus.recovered, recovered_value=None)]

        cohort = analyze_cohorts(carts)[0]

        assert cohort.recovered_carts == 1
        assert cohort.recovered_value == 0

    def test_first_seen_order(self, make_cart):
        carts = [
            make_cart(abandoned_at=_at(2024, 11, 26, 12)),
            make_cart(abandoned_at=_at(2024, 11, 12, 12)),
        ]

        assert [c.week for c in analyze_cohorts(carts)] == ["2024-11-24", "2024-11-10"]

    def test_week_boundary_uses_reporting_timezone(self, make_cart):
        """WHAT: Sunday 01:00 UTC is still Saturday evening in São Paulo (UTC-3).
        WHY: Merchants read weeks on their local calendar.
        """
        cart = make_cart(abandoned_at=_at(2024, 11, 24, 1))

        assert analyze_cohorts([cart])[0].week == "2024-11-24"
        assert analyze_cohorts([cart], ZoneInfo("America/Sao_Paulo"))[0].week == "2024-11-17"

    def test_serializes_camel_case(self, make_cart):
        payload = analyze_cohorts([make_cart()])[0].model_dump(by_alias=True)

        assert set(payload) == {
            "week", "totalCarts", "recoveredCarts", "totalValue",
            "recoveredValue", "recoveryRate", "avgCartValue",
        }
