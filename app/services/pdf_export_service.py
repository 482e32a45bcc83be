"""PDF export: ReportLab multi-page case study report.

A4, 20 mm margins.
  Page 1  cover: title, details table, narrative, financials
  Page 2  technical data: welding procedure and cost calculator tables

Every page carries the confidentiality footer, the exporter line and the
page number.  Output is deterministic for a given case, exporter and
``generated_at`` (ReportLab invariant mode).
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from io import BytesIO
from xml.sax.saxutils import escape

from flask import current_app, has_app_context
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import (
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from app.models import db
from app.models.audit import write_audit
from app.models.case_study import LIFETIME_UNITS, WPS_FIELDS, CaseStudy
from app.services.cost_calculator import format_money, format_percent

logger = logging.getLogger(__name__)

CONFIDENTIAL_FOOTER = "CONFIDENTIAL - For internal use only"
NO_TECHNICAL_DATA = "No technical data available for this case study."
DEFAULT_COMPANY_NAME = "Welding Alloys"

# Colors
_ACCENT = colors.HexColor("#1D4ED8")
_HEADER_BG = colors.HexColor("#334155")
_GRID = colors.HexColor("#94A3B8")
_ROW_ALT = colors.HexColor("#F1F5F9")

_NARRATIVE_SECTIONS = (
    ("problem_description", "Problem Description"),
    ("previous_solution", "Previous Solution"),
    ("wa_solution", "Solution"),
    ("technical_advantages", "Technical Advantages"),
)


def _label(field: str) -> str:
    return field.replace("_", " ").capitalize()


def _text(value) -> str:
    if value is None or value == "":
        return "-"
    return escape(str(value))


def pdf_file_name(case: CaseStudy) -> str:
    slug = re.sub(r"[^A-Za-z0-9]+", "-", f"{case.customer_name}-{case.component_workpiece}").strip("-")
    return f"case-study-{case.id}-{slug.lower() or 'export'}.pdf"


class CaseStudyPdfBuilder:
    """Builds the case study report into an in-memory buffer."""

    def __init__(self, company_name: str = DEFAULT_COMPANY_NAME):
        self.company_name = company_name
        self._styles = getSampleStyleSheet()
        self._add_custom_styles()

    def _add_custom_styles(self) -> None:
        self._styles.add(ParagraphStyle(
            name="CoverTitle",
            fontSize=20, leading=26,
            textColor=_ACCENT, spaceAfter=8,
        ))
        self._styles.add(ParagraphStyle(
            name="CoverSubtitle",
            fontSize=11, leading=15,
            textColor=colors.gray, spaceAfter=4,
        ))
        self._styles.add(ParagraphStyle(
            name="SectionTitle",
            fontSize=13, leading=17,
            textColor=_ACCENT, spaceAfter=6, spaceBefore=10,
        ))
        self._styles.add(ParagraphStyle(
            name="CaseBody",
            fontSize=9.5, leading=13,
            textColor=colors.black, spaceAfter=4,
        ))

    def build(self, case: CaseStudy, exporter, generated_at: datetime) -> bytes:
        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            leftMargin=20 * mm,
            rightMargin=20 * mm,
            topMargin=20 * mm,
            bottomMargin=25 * mm,
            title=case.title,
            author=self.company_name,
            invariant=1,
        )
        exported_line = (
            f"Exported by {exporter.display_name} <{exporter.email}> "
            f"on {generated_at.astimezone(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}"
        )

        def footer(canvas, doc_) -> None:
            canvas.saveState()
            canvas.setFont("Helvetica", 7.5)
            canvas.setFillColor(colors.gray)
            canvas.drawString(20 * mm, 14 * mm, CONFIDENTIAL_FOOTER)
            canvas.drawString(20 * mm, 10 * mm, exported_line)
            canvas.drawRightString(A4[0] - 20 * mm, 10 * mm, f"Page {doc_.page}")
            canvas.restoreState()

        story: list = []
        story.extend(self._build_cover(case))
        story.append(PageBreak())
        story.extend(self._build_technical(case))
        doc.build(story, onFirstPage=footer, onLaterPages=footer)
        return buffer.getvalue()

    # ------------------------------------------------------------------
    # Page 1
    # ------------------------------------------------------------------

    def _build_cover(self, case: CaseStudy) -> list:
        s = self._styles
        story = [
            Paragraph(escape(self.company_name), s["CoverSubtitle"]),
            Paragraph(escape(case.title), s["CoverTitle"]),
            Paragraph(f"{case.type} case study &middot; Status: {case.status}", s["CoverSubtitle"]),
            Spacer(1, 4 * mm),
            Paragraph("Case Details", s["SectionTitle"]),
        ]

        severities = case.wear_severities or {}
        wear = ", ".join(
            f"{w} ({severities[w]}/5)" if w in severities else w for w in (case.wear_type or [])
        )
        details = [
            ["Field", "Value"],
            ["Customer", _text(case.customer_name)],
            ["Industry", _text(case.industry)],
            ["Location", _text(case.location)],
            ["Country", _text(case.country)],
            ["Component", _text(case.component_workpiece)],
            ["Work type", _text(case.work_type)],
            ["Wear types", _text(wear)],
            ["Base metal", _text(case.base_metal)],
            ["OEM", _text(case.oem)],
            ["Product", _text(case.wa_product)],
        ]
        story.append(self._table(details, [45 * mm, 125 * mm]))

        for field, heading in _NARRATIVE_SECTIONS:
            value = getattr(case, field)
            if not value:
                continue
            story.append(Paragraph(heading, s["SectionTitle"]))
            story.append(Paragraph(escape(value).replace("\n", "<br/>"), s["CaseBody"]))

        story.append(Paragraph("Financials", s["SectionTitle"]))
        currency = case.currency or "EUR"
        story.append(self._table([
            ["Metric", "Value"],
            ["Solution value (revenue)", format_money(_float(case.solution_value_revenue), currency)],
            ["Annual potential revenue", format_money(_float(case.annual_potential_revenue), currency)],
            ["Customer savings", format_money(_float(case.customer_savings_amount), currency)],
        ], [70 * mm, 100 * mm]))
        return story

    # ------------------------------------------------------------------
    # Page 2
    # ------------------------------------------------------------------

    def _build_technical(self, case: CaseStudy) -> list:
        s = self._styles
        story = [Paragraph("Technical Data", s["SectionTitle"])]
        wps = case.welding_procedure
        cost = case.cost_calculator

        if wps is None and cost is None:
            story.append(Paragraph(NO_TECHNICAL_DATA, s["CaseBody"]))
            return story

        if wps is not None:
            story.append(Paragraph("Welding Procedure Specification", s["SectionTitle"]))
            rows = [["Parameter", "Value"]]
            rows.extend(
                [_label(f), _text(getattr(wps, f))] for f in WPS_FIELDS if getattr(wps, f)
            )
            story.append(self._table(rows, [60 * mm, 110 * mm]))
            if wps.layers:
                story.append(Spacer(1, 4 * mm))
                keys = sorted({k for layer in wps.layers for k in layer})
                layer_rows = [["#", *(_label(k) for k in keys)]]
                for i, layer in enumerate(wps.layers, start=1):
                    layer_rows.append([str(i), *(_text(layer.get(k)) for k in keys)])
                story.append(self._table(layer_rows, None))

        if cost is not None:
            story.append(Paragraph("Cost Reduction Calculation", s["SectionTitle"]))
            currency = cost.currency or case.currency or "EUR"
            rows = [
                ["Item", "Value"],
                ["Cost of part (old)", format_money(cost.cost_of_part_old, currency)],
                ["Cost of part (new)", format_money(cost.cost_of_part_new, currency)],
            ]
            for prefix, label in (("old", "Old lifetime"), ("new", "New lifetime")):
                parts = [
                    f"{getattr(cost, f'{prefix}_lifetime_{u}'):g} {u}"
                    for u in LIFETIME_UNITS if getattr(cost, f"{prefix}_lifetime_{u}")
                ]
                rows.append([label, ", ".join(parts) or "-"])
            rows.extend([
                ["Parts per year", f"{cost.parts_per_year:g}"],
                ["Maintenance cost / event", format_money(cost.maintenance_cost_per_event, currency)],
                ["Disassembly cost / event", format_money(cost.disassembly_cost_per_event, currency)],
                ["Downtime cost / event", format_money(cost.downtime_cost_per_event, currency)],
                ["Lifetime ratio", f"{cost.lifetime_ratio:.2f}" if cost.lifetime_ratio is not None else "-"],
                ["New parts per year", f"{cost.new_parts_per_year:.2f}" if cost.new_parts_per_year is not None else "-"],
                ["Annual cost (old)", format_money(cost.annual_cost_old, currency)],
                ["Annual cost (new)", format_money(cost.annual_cost_new, currency)],
                ["Annual savings", format_money(cost.annual_savings, currency)],
                ["Savings", format_percent(cost.savings_percentage)],
            ])
            story.append(self._table(rows, [70 * mm, 100 * mm]))
        return story

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _table(self, data: list, col_widths) -> Table:
        body = self._styles["CaseBody"]
        cells = [data[0]] + [
            [Paragraph(str(c), body) for c in row] for row in data[1:]
        ]
        table = Table(cells, colWidths=col_widths, repeatRows=1)
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), _HEADER_BG),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONTSIZE", (0, 0), (-1, 0), 9.5),
            ("ALIGN", (0, 0), (-1, -1), "LEFT"),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("GRID", (0, 0), (-1, -1), 0.5, _GRID),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, _ROW_ALT]),
            ("TOPPADDING", (0, 0), (-1, -1), 3),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
            ("LEFTPADDING", (0, 0), (-1, -1), 5),
        ]))
        return table


def _float(value):
    return float(value) if value is not None else None


def render_case_study_pdf(case: CaseStudy, exporter, generated_at: datetime | None = None) -> bytes:
    """Render without side effects."""
    company = (
        current_app.config.get("PDF_COMPANY_NAME", DEFAULT_COMPANY_NAME)
        if has_app_context() else DEFAULT_COMPANY_NAME
    )
    generated_at = generated_at or datetime.now(timezone.utc)
    return CaseStudyPdfBuilder(company_name=company).build(case, exporter, generated_at)


def export_case_study_pdf(case: CaseStudy, exporter, generated_at: datetime | None = None) -> bytes:
    """Render the report and record the PDF_EXPORTED audit entry."""
    pdf = render_case_study_pdf(case, exporter, generated_at)
    write_audit(
        entity_type="case_study",
        entity_id=case.id,
        action="PDF_EXPORTED",
        actor_user_id=exporter.id,
        details={"bytes": len(pdf)},
    )
    db.session.commit()
    logger.info("Case study PDF exported", extra={"case_id": case.id, "user_id": exporter.id})
    return pdf
