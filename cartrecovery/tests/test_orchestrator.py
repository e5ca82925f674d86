"""Tests for the analytics orchestrator.

WHAT: Report assembly, concurrency, section degradation and ROI unavailability
WHY: One failing data source must never blank the whole dashboard
REFERENCES:
    - cartrecovery/analytics/orchestrator.py (module under test)
"""

import asyncio
import time
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from cartrecovery.analytics.orchestrator import AnalyticsOrchestrator, parse_period
from cartrecovery.analytics.records import CampaignInsight
from cartrecovery.models import CartStatus
from cartrecovery.services.cart_store import CartStore
from cartrecovery.services.meta_ads_client import MetaAdsClientError
from cartrecovery.services.roi_service import RoiService
from cartrecovery.tests.conftest import NOW, TEST_USER_ID


class BrokenCartsStore(CartStore):
    def fetch_carts(self, user_id, since, until=None):
        raise OperationalError("SELECT ...", {}, Exception("database is locked"))


class BrokenEmailStore(CartStore):
    def fetch_email_actions(self, since, user_id=None):
        raise OperationalError("SELECT ...", {}, Exception("connection reset"))


def _build(orchestrator, period=30):
    return asyncio.run(orchestrator.build_report(TEST_USER_ID, period))


class TestParsePeriod:

    @pytest.mark.parametrize("raw,expected", [
        ("7", 7),
        (" 14 ", 14),
        (90, 90),
        (None, 30),
        ("", 30),
        ("abc", 30),
        ("0", 30),
        ("-5", 30),
        ("7.5", 30),
        ("3650", 3650),
        ("3651", 3650),
        ("1000000", 3650),
    ])
    def test_parse(self, raw, expected):
        assert parse_period(raw) == expected

    def test_custom_default(self):
        assert parse_period("nope", default=14) == 14


class TestBuildReport:

    def test_empty_data(self, orchestrator):
        """WHAT: No carts and no emails still yields a fully shaped report."""
        report = _build(orchestrator)

        assert report.success is True
        assert report.period == 30
        assert report.cohorts == []
        assert report.funnel.sent == 0
        assert report.funnel.open_rate == report.funnel.click_rate == "0.0"
        assert report.funnel.conversion_rate == report.funnel.click_to_conversion == "0.0"
        assert len(report.cart_value) == 5
        assert all(b.carts == 0 and b.recovery_rate == "0.0" for b in report.cart_value)
        assert len(report.time_of_day.by_hour) == 24
        assert len(report.time_of_day.by_day_of_week) == 7
        assert report.roi is None
        assert report.degraded == []

    def test_start_date(self, orchestrator):
        report = _build(orchestrator, period=7)

        assert report.start_date == (NOW - timedelta(days=7)).isoformat()

    def test_assembles_all_sections(
        self, orchestrator, add_cart, add_action, add_meta_connection, insights
    ):
        add_cart(total_value=50, utm_source="google")
        add_cart(total_value=150, status=CartStatus.recovered, recovered_value=150,
                 utm_source="facebook", utm_campaign="black-friday-2024")
        add_cart(total_value=999, abandoned_at=NOW - timedelta(days=45))
        add_action(opened=True, clicked=True, converted=True)
        add_action()
        add_meta_connection()
        insights.append(CampaignInsight(campaign_id="1", campaign_name="Black Friday 2024", spend=100))

        report = _build(orchestrator)

        assert sum(c.total_carts for c in report.cohorts) == 2
        assert report.funnel.sent == 2
        assert report.funnel.click_to_conversion == "100.0"
        assert {g.name for g in report.utm.sources} == {"google", "facebook"}
        brackets = {b.range: b for b in report.cart_value}
        assert brackets["R$ 0-100"].carts == 1
        assert brackets["R$ 100-300"].recovery_rate == "100.0"
        assert report.roi.campaigns[0].roas == pytest.approx(1.5)
        assert report.email_roi.emails_sent == 2
        assert report.email_roi.total_recovered_value == 150
        assert report.degraded == []

    def test_serializes_camel_case_with_snake_case_roi(self, orchestrator, add_meta_connection, insights):
        add_meta_connection()
        insights.append(CampaignInsight(campaign_id="1", campaign_name="Promo", spend=10))

        payload = _build(orchestrator).model_dump(by_alias=True)

        assert {"startDate", "timeOfDay", "cartValue", "emailRoi", "degraded"} <= set(payload)
        assert "byDayOfWeek" in payload["timeOfDay"]
        assert "overall_roas" in payload["roi"]
        assert "ad_spend" in payload["roi"]["campaigns"][0]


class TestDegradation:

    def test_cart_fetch_failure_degrades_cart_sections(self, session_factory, roi_service, add_action):
        add_action(opened=True)
        orchestrator = AnalyticsOrchestrator(BrokenCartsStore(session_factory), roi_service, clock=lambda: NOW)

        report = _build(orchestrator)

        assert report.degraded == ["cohorts", "utm", "timeOfDay", "cartValue", "emailRoi"]
        assert report.cohorts == []
        assert len(report.cart_value) == 5
        assert report.funnel.sent == 1

    def test_email_fetch_failure_degrades_funnel(self, session_factory, roi_service, add_cart):
        add_cart()
        orchestrator = AnalyticsOrchestrator(BrokenEmailStore(session_factory), roi_service, clock=lambda: NOW)

        report = _build(orchestrator)

        assert report.degraded == ["funnel", "emailRoi"]
        assert report.funnel.sent == 0
        assert len(report.cohorts) == 1

    def test_meta_error_degrades_roi(self, session_factory, cart_store, token_cipher, add_meta_connection):
        add_meta_connection()

        def failing_fetch(credentials, date_preset):
            raise MetaAdsClientError("Rate limit exceeded")

        roi_service = RoiService(session_factory, cart_store, token_cipher, failing_fetch)
        orchestrator = AnalyticsOrchestrator(cart_store, roi_service, clock=lambda: NOW)

        report = _build(orchestrator)

        assert report.roi is None
        assert report.degraded == ["roi"]

    def test_roi_timeout_is_not_degraded(self, session_factory, cart_store, token_cipher, add_meta_connection):
        add_meta_connection()

        def slow_fetch(credentials, date_preset):
            time.sleep(0.5)
            return [CampaignInsight(campaign_id="1", campaign_name="Slow", spend=1)]

        roi_service = RoiService(session_factory, cart_store, token_cipher, slow_fetch)
        orchestrator = AnalyticsOrchestrator(cart_store, roi_service, roi_timeout=0.05, clock=lambda: NOW)

        report = _build(orchestrator)

        assert report.roi is None
        assert report.degraded == []

    def test_unexpected_error_propagates(self, session_factory, roi_service):
        class ExplodingStore(CartStore):
            def fetch_carts(self, user_id, since, until=None):
                raise RuntimeError("bug")

        orchestrator = AnalyticsOrchestrator(ExplodingStore(session_factory), roi_service, clock=lambda: NOW)

        with pytest.raises(RuntimeError):
            _build(orchestrator)
