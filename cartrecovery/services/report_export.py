"""
Recovery Report Export

Turns an AnalyticsReportOut into downloadable files:
  - CSV per section (UTF-8 with BOM so spreadsheet apps detect the encoding)
  - A4 PDF summary (reportlab Platypus)

Column headers are in Portuguese, matching the dashboard the merchants use.
"""
import csv
import io
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_LEFT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import (
    HRFlowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle,
)

from cartrecovery.analytics.formatting import (
    format_currency, format_percentage, format_roas, roi_tier, to_fixed,
)
from cartrecovery.schemas import AnalyticsReportOut

logger = logging.getLogger(__name__)


EMPTY_EXPORT_MESSAGE = "Nenhum dado para exportar"
EXPORT_SECTIONS = ("cohorts", "utm", "timeOfDay", "cartValue", "roi")
ROI_PDF_CAMPAIGNS = 15

BOM = "\ufeff"

# ── Palette ──────────────────────────────────────
INK = colors.HexColor("#1f2937")
MUTED = colors.HexColor("#6b7280")
BRAND = colors.HexColor("#16a34a")
STRIPE = colors.HexColor("#f3f4f6")
RULE = colors.HexColor("#e5e7eb")
WHITE = colors.white

TIER_COLORS = {
    "excellent": colors.HexColor("#15803d"),
    "positive": colors.HexColor("#2563eb"),
    "warning": colors.HexColor("#ca8a04"),
    "negative": colors.HexColor("#dc2626"),
}

PAGE_W, PAGE_H = A4


# =============================================================================
# CSV
# =============================================================================

def _money(value: float) -> str:
    return to_fixed(value or 0, 2)


def section_rows(report: AnalyticsReportOut, section: str) -> List[Dict[str, Any]]:
    """Flatten one report section into CSV-ready rows.

    Raises:
        ValueError: Unknown section.
    """
    if section == "cohorts":
        return [
            {
                "Semana": c.week,
                "Carrinhos": c.total_carts,
                "Recuperados": c.recovered_carts,
                "Valor Total (R$)": _money(c.total_value),
                "Valor Recuperado (R$)": _money(c.recovered_value),
                "Taxa de Recuperação (%)": c.recovery_rate,
                "Ticket Médio (R$)": c.avg_cart_value,
            }
            for c in report.cohorts
        ]

    if section == "utm":
        dimensions = (
            ("Origem", report.utm.sources),
            ("Mídia", report.utm.mediums),
            ("Campanha", report.utm.campaigns),
        )
        return [
            {
                "Dimensão": label,
                "Nome": g.name,
                "Carrinhos": g.carts,
                "Recuperados": g.recovered,
                "Valor Total (R$)": _money(g.total_value),
                "Valor Recuperado (R$)": _money(g.recovered_value),
                "Taxa de Recuperação (%)": g.recovery_rate,
            }
            for label, groups in dimensions
            for g in groups
        ]

    if section == "timeOfDay":
        rows = [
            {
                "Tipo": "Hora",
                "Período": f"{b.hour:02d}h",
                "Carrinhos": b.carts,
                "Recuperados": b.recovered,
                "Valor (R$)": _money(b.value),
                "Taxa de Recuperação (%)": b.recovery_rate,
            }
            for b in report.time_of_day.by_hour
        ]
        rows.extend(
            {
                "Tipo": "Dia",
                "Período": b.day,
                "Carrinhos": b.carts,
                "Recuperados": b.recovered,
                "Valor (R$)": _money(b.value),
                "Taxa de Recuperação (%)": b.recovery_rate,
            }
            for b in report.time_of_day.by_day_of_week
        )
        return rows

    if section == "cartValue":
        return [
            {
                "Faixa": b.range,
                "Carrinhos": b.carts,
                "Recuperados": b.recovered,
                "Taxa de Recuperação (%)": b.recovery_rate,
            }
            for b in report.cart_value
        ]

    if section == "roi":
        campaigns = report.roi.campaigns if report.roi else []
        return [
            {
                "Campanha": c.campaign_name,
                "Gasto em Ads (R$)": _money(c.ad_spend),
                "Carrinhos Abandonados": c.abandoned_carts,
                "Carrinhos Recuperados": c.recovered_carts,
                "Receita Recuperada (R$)": _money(c.recovered_value),
                "ROI (%)": to_fixed(c.roi_percentage, 2),
                "ROAS": to_fixed(c.roas, 2),
            }
            for c in campaigns
        ]

    raise ValueError(f"Unknown export section: {section}")


def rows_to_csv(rows: List[Dict[str, Any]]) -> str:
    """Serialize rows to CSV text (BOM + header from the first row's keys).

    Values containing commas or quotes are quoted, inner quotes doubled.

    Raises:
        ValueError: No rows to export.
    """
    if not rows:
        raise ValueError(EMPTY_EXPORT_MESSAGE)

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(rows[0].keys()), lineterminator="\n", extrasaction="ignore")
    writer.writeheader()
    writer.writerows(rows)
    # No trailing newline after the last row
    return BOM + buffer.getvalue().rstrip("\n")


def export_section_csv(report: AnalyticsReportOut, section: str) -> str:
    rows = section_rows(report, section)
    logger.info(f"[EXPORT] CSV section={section} rows={len(rows)}")
    return rows_to_csv(rows)


def export_filename(section: Optional[str], extension: str, now: Optional[datetime] = None) -> str:
    """'recuperacao-cohorts-2024-11-30.csv' / 'recuperacao-2024-11-30.pdf'."""
    stamp = (now or datetime.now()).strftime("%Y-%m-%d")
    parts = ["recuperacao", section, stamp] if section else ["recuperacao", stamp]
    return "-".join(parts) + f".{extension}"


# =============================================================================
# PDF
# =============================================================================

def _styles():
    """Build custom paragraph styles."""
    ss = getSampleStyleSheet()
    ss.add(ParagraphStyle(
        "ReportTitle", parent=ss["Title"],
        fontName="Helvetica-Bold", fontSize=20, leading=26,
        textColor=INK, alignment=TA_LEFT, spaceAfter=4,
    ))
    ss.add(ParagraphStyle(
        "ReportSub", parent=ss["Normal"],
        fontName="Helvetica", fontSize=10, leading=13,
        textColor=MUTED, alignment=TA_LEFT, spaceAfter=12,
    ))
    ss.add(ParagraphStyle(
        "SectionHead", parent=ss["Heading2"],
        fontName="Helvetica-Bold", fontSize=13, leading=16,
        textColor=BRAND, spaceAfter=6, spaceBefore=14,
    ))
    ss.add(ParagraphStyle(
        "KpiValue", parent=ss["Normal"],
        fontName="Helvetica-Bold", fontSize=16, leading=20,
        textColor=INK, alignment=TA_CENTER,
    ))
    ss.add(ParagraphStyle(
        "KpiLabel", parent=ss["Normal"],
        fontName="Helvetica", fontSize=8, leading=10,
        textColor=MUTED, alignment=TA_CENTER,
    ))
    ss.add(ParagraphStyle(
        "Note", parent=ss["Normal"],
        fontName="Helvetica-Oblique", fontSize=8, leading=10,
        textColor=MUTED,
    ))
    return ss


def _make_table(headers, rows, col_widths=None, text_colors=None):
    """Striped table with a brand-coloured header row.

    Args:
        text_colors: optional list of (col, row, color) overrides for body cells
            (row is 1-based, counting the header as 0).
    """
    data = [headers] + rows
    t = Table(data, colWidths=col_widths, repeatRows=1)
    style_cmds = [
        ("BACKGROUND", (0, 0), (-1, 0), BRAND),
        ("TEXTCOLOR", (0, 0), (-1, 0), WHITE),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTNAME", (0, 1), (-1, -1), "Helvetica"),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
        ("LINEBELOW", (0, 1), (-1, -1), 0.3, RULE),
        ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
        ("ALIGN", (0, 0), (0, -1), "LEFT"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ]
    for i in range(2, len(data), 2):
        style_cmds.append(("BACKGROUND", (0, i), (-1, i), STRIPE))
    for col, row, color in text_colors or []:
        style_cmds.append(("TEXTCOLOR", (col, row), (col, row), color))
    t.setStyle(TableStyle(style_cmds))
    return t


def _header_footer(canvas, doc):
    """Draw header bar and page footer on every page."""
    canvas.saveState()
    canvas.setFillColor(INK)
    canvas.rect(0, PAGE_H - 28, PAGE_W, 28, fill=1, stroke=0)
    canvas.setFillColor(WHITE)
    canvas.setFont("Helvetica-Bold", 9)
    canvas.drawString(20, PAGE_H - 19, "RECUPERAÇÃO DE CARRINHOS")
    canvas.setFillColor(MUTED)
    canvas.setFont("Helvetica-Oblique", 8)
    canvas.drawCentredString(PAGE_W / 2, 18, f"Página {doc.page}")
    canvas.restoreState()


def _kpi_table(report: AnalyticsReportOut, ss) -> Table:
    total_carts = sum(c.total_carts for c in report.cohorts)
    recovered_carts = sum(c.recovered_carts for c in report.cohorts)
    recovered_value = sum(c.recovered_value for c in report.cohorts)

    cards = [
        ("Carrinhos abandonados", str(total_carts)),
        ("Carrinhos recuperados", str(recovered_carts)),
        ("Receita recuperada", format_currency(recovered_value)),
        ("ROI dos e-mails", f"{report.email_roi.roi}%"),
    ]
    data = [
        [Paragraph(label, ss["KpiLabel"]) for label, _ in cards],
        [Paragraph(value, ss["KpiValue"]) for _, value in cards],
    ]
    table = Table(data, colWidths=[(PAGE_W - 40) / len(cards)] * len(cards))
    table.setStyle(TableStyle([
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("TOPPADDING", (0, 0), (-1, 0), 10),
        ("BOTTOMPADDING", (0, 1), (-1, 1), 10),
        ("BACKGROUND", (0, 0), (-1, -1), STRIPE),
        ("BOX", (0, 0), (-1, -1), 0.5, RULE),
        ("LINEAFTER", (0, 0), (-2, -1), 0.3, RULE),
    ]))
    return table


def render_report_pdf(report: AnalyticsReportOut, now: Optional[datetime] = None) -> bytes:
    """Render the analytics report as an A4 PDF and return its bytes."""
    now = now or datetime.now()
    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        topMargin=40,
        bottomMargin=32,
        leftMargin=20,
        rightMargin=20,
        title="Relatório de Recuperação",
    )

    ss = _styles()
    story = [
        Spacer(1, 8),
        Paragraph("Relatório de Recuperação", ss["ReportTitle"]),
        Paragraph(
            f"Período: últimos {report.period} dias · Gerado em {now.strftime('%d/%m/%Y')}",
            ss["ReportSub"],
        ),
        HRFlowable(width="100%", thickness=1, color=BRAND, spaceAfter=12),
        _kpi_table(report, ss),
    ]

    if report.degraded:
        story.append(Spacer(1, 6))
        story.append(Paragraph(
            f"Dados indisponíveis nesta geração: {', '.join(report.degraded)}", ss["Note"],
        ))

    # ── Cohorts ─────────────────────────────────────
    if report.cohorts:
        story.append(Paragraph("Coortes semanais", ss["SectionHead"]))
        rows = [
            [c.week, c.total_carts, c.recovered_carts, format_currency(c.total_value),
             format_currency(c.recovered_value), f"{c.recovery_rate}%"]
            for c in report.cohorts
        ]
        story.append(_make_table(
            ["Semana", "Carrinhos", "Recuperados", "Valor total", "Valor recuperado", "Taxa"], rows,
        ))

    # ── Funnel ──────────────────────────────────────
    f = report.funnel
    story.append(Paragraph("Funil de e-mails", ss["SectionHead"]))
    story.append(_make_table(
        ["Etapa", "Quantidade", "Taxa"],
        [
            ["Enviados", f.sent, "-"],
            ["Abertos", f.opened, f"{f.open_rate}%"],
            ["Clicados", f.clicked, f"{f.click_rate}%"],
            ["Convertidos", f.converted, f"{f.conversion_rate}%"],
        ],
    ))

    # ── Cart value ──────────────────────────────────
    story.append(Paragraph("Faixas de valor", ss["SectionHead"]))
    story.append(_make_table(
        ["Faixa", "Carrinhos", "Recuperados", "Taxa"],
        [[b.range, b.carts, b.recovered, f"{b.recovery_rate}%"] for b in report.cart_value],
    ))

    # ── ROI ─────────────────────────────────────────
    roi = report.roi
    if roi and roi.campaigns:
        story.append(Paragraph("Análise de ROI", ss["SectionHead"]))
        story.append(Paragraph(
            f"ROI geral: {format_percentage(roi.overall_roi)} · ROAS {format_roas(roi.overall_roas)} · "
            f"{roi.date_start} a {roi.date_stop}",
            ss["ReportSub"],
        ))
        campaigns = roi.campaigns[:ROI_PDF_CAMPAIGNS]
        rows = [
            [c.campaign_name, format_currency(c.ad_spend), c.abandoned_carts, c.recovered_carts,
             format_currency(c.recovered_value), format_percentage(c.roi_percentage)]
            for c in campaigns
        ]
        tier_colors = [
            (5, i, TIER_COLORS[roi_tier(c.roi_percentage)]) for i, c in enumerate(campaigns, start=1)
        ]
        story.append(_make_table(
            ["Campanha", "Gasto Ads", "Abandonados", "Recuperados", "Receita", "ROI"],
            rows, text_colors=tier_colors,
        ))
        if len(roi.campaigns) > ROI_PDF_CAMPAIGNS:
            story.append(Paragraph(
                f"Mostrando {ROI_PDF_CAMPAIGNS} de {len(roi.campaigns)} campanhas", ss["Note"],
            ))

    doc.build(story, onFirstPage=_header_footer, onLaterPages=_header_footer)
    pdf = buf.getvalue()
    logger.info(f"[EXPORT] PDF rendered ({len(pdf)} bytes, period={report.period}d)")
    return pdf
