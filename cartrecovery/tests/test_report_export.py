"""Unit tests for CSV and PDF report exports.

WHAT: Section flattening, CSV quoting and BOM, empty-section errors, PDF rendering
WHY: Merchants open these files in spreadsheet apps and share the PDFs
REFERENCES:
    - cartrecovery/services/report_export.py (module under test)
"""

from datetime import datetime

import pytest

from cartrecovery.analytics.crosstab import analyze_by_time, analyze_by_utm, analyze_by_value
from cartrecovery.analytics.cohorts import analyze_cohorts
from cartrecovery.analytics.records import CampaignInsight
from cartrecovery.analytics.roi import calculate_roi
from cartrecovery.models import CartStatus
from cartrecovery.schemas import AnalyticsReportOut
from cartrecovery.services.report_export import (
    EMPTY_EXPORT_MESSAGE,
    EXPORT_SECTIONS,
    export_filename,
    export_section_csv,
    render_report_pdf,
    rows_to_csv,
    section_rows,
)
from cartrecovery.tests.conftest import NOW


@pytest.fixture
def report(make_cart):
    carts = [
        make_cart(total_value=50, utm_source="google"),
        make_cart(total_value=150, status=CartStatus.recovered, recovered_value=150,
                  utm_source="facebook", utm_campaign="black-friday-2024"),
    ]
    roi = calculate_roi(
        [CampaignInsight(campaign_id="1", campaign_name="Black Friday, 2024", spend=100)],
        carts,
        NOW.replace(day=1),
        NOW,
    )
    return AnalyticsReportOut(
        period=30,
        start_date=NOW.isoformat(),
        cohorts=analyze_cohorts(carts),
        utm=analyze_by_utm(carts),
        time_of_day=analyze_by_time(carts),
        cart_value=analyze_by_value(carts),
        roi=roi,
    )


class TestCsv:

    def test_bom_and_header_from_first_row(self):
        text = rows_to_csv([{"Nome": "a", "Carrinhos": 1}, {"Nome": "b", "Carrinhos": 2}])

        assert text == "\ufeffNome,Carrinhos\na,1\nb,2"

    def test_quotes_commas_and_quotes(self):
        text = rows_to_csv([{"Campanha": 'Promo, "Black" Friday'}])

        assert text.splitlines()[1] == '"Promo, ""Black"" Friday"'

    def test_empty_rows_raise(self):
        with pytest.raises(ValueError, match=EMPTY_EXPORT_MESSAGE):
            rows_to_csv([])

    def test_cohort_rows(self, report):
        rows = section_rows(report, "cohorts")

        assert rows[0]["Carrinhos"] == 2
        assert rows[0]["Valor Total (R$)"] == "200.00"
        assert rows[0]["Taxa de Recuperação (%)"] == "50.0"

    def test_utm_rows_cover_all_dimensions(self, report):
        rows = section_rows(report, "utm")

        assert {r["Dimensão"] for r in rows} == {"Origem", "Mídia", "Campanha"}

    def test_time_of_day_rows(self, report):
        rows = section_rows(report, "timeOfDay")

        assert len(rows) == 24 + 7
        assert rows[0]["Período"] == "00h"
        assert rows[24]["Período"] == "Dom"

    def test_roi_rows(self, report):
        rows = section_rows(report, "roi")

        assert rows[0]["Campanha"] == "Black Friday, 2024"
        assert rows[0]["Gasto em Ads (R$)"] == "100.00"
        assert rows[0]["ROAS"] == "0.00"

    def test_roi_without_data_is_empty(self, report):
        report.roi = None

        with pytest.raises(ValueError, match=EMPTY_EXPORT_MESSAGE):
            export_section_csv(report, "roi")

    def test_every_section_exports(self, report):
        for section in ("cohorts", "utm", "timeOfDay", "cartValue"):
            assert export_section_csv(report, section).startswith("\ufeff")
        assert set(EXPORT_SECTIONS) == {"cohorts", "utm", "timeOfDay", "cartValue", "roi"}

    def test_unknown_section(self, report):
        with pytest.raises(ValueError):
            section_rows(report, "everything")

    def test_filename(self):
        now = datetime(2024, 11, 30, 10, 0)

        assert export_filename("cohorts", "csv", now) == "recuperacao-cohorts-2024-11-30.csv"
        assert export_filename(None, "pdf", now) == "recuperacao-2024-11-30.pdf"


class TestPdf:

    def test_renders_pdf(self, report):
        pdf = render_report_pdf(report, now=datetime(2024, 11, 30))

        assert pdf.startswith(b"%PDF")
        assert len(pdf) > 1000

    def test_renders_empty_report(self):
        pdf = render_report_pdf(AnalyticsReportOut(period=7, start_date=NOW.isoformat()))

        assert pdf.startswith(b"%PDF")
