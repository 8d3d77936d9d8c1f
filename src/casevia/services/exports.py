"""Markdown, HTML and PDF renderings of a case study."""
from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from html import escape
from io import BytesIO

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.pdfgen.canvas import Canvas
from reportlab.platypus import Flowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from casevia.db.models import CaseStudy

BRANDING = "Generated with Casevia"


class ExportFormat(str, Enum):
    MARKDOWN = "markdown"
    HTML = "html"
    PDF = "pdf"

    @property
    def media_type(self) -> str:
        return _MEDIA_TYPES[self]

    @property
    def extension(self) -> str:
        return _EXTENSIONS[self]


_MEDIA_TYPES = {
    ExportFormat.MARKDOWN: "text/markdown",
    ExportFormat.HTML: "text/html",
    ExportFormat.PDF: "application/pdf",
}
_EXTENSIONS = {ExportFormat.MARKDOWN: "md", ExportFormat.HTML: "html", ExportFormat.PDF: "pdf"}


def _metrics(case_study: CaseStudy) -> list[dict[str, str]]:
    return [m for m in case_study.metrics or [] if isinstance(m, dict) and m.get("metric")]


def render_markdown(case_study: CaseStudy, include_branding: bool = True) -> str:
    parts = [f"# {case_study.title}\n\n", f"{case_study.summary or ''}\n\n"]

    if case_study.client_name or case_study.client_industry:
        parts.append("## Client Information\n\n")
        if case_study.client_name:
            parts.append(f"- **Company:** {case_study.client_name}\n")
        if case_study.client_industry:
            parts.append(f"- **Industry:** {case_study.client_industry}\n")
        parts.append("\n")

    parts.append(f"## The Challenge\n\n{case_study.challenge or ''}\n\n")
    parts.append(f"## The Solution\n\n{case_study.solution or ''}\n\n")
    parts.append(f"## The Results\n\n{case_study.results or ''}\n\n")

    metrics = _metrics(case_study)
    if metrics:
        parts.append("## Key Metrics\n\n")
        for m in metrics:
            parts.append(f"- **{m['metric']}**\n")
            if m.get("quote"):
                parts.append(f'  > "{m["quote"]}"\n')
            parts.append("\n")

    if case_study.key_quotes:
        parts.append("## Customer Quotes\n\n")
        parts.extend(f'> "{q}"\n\n' for q in case_study.key_quotes)

    if case_study.key_takeaways:
        parts.append("## Key Takeaways\n\n")
        parts.extend(f"{i}. {t}\n" for i, t in enumerate(case_study.key_takeaways, start=1))
        parts.append("\n")

    if include_branding:
        parts.append(f"---\n*{BRANDING}*\n")
    return "".join(parts)


def _paragraphs(text: str | None) -> str:
    return "".join(f"<p>{escape(line) or '&nbsp;'}</p>" for line in (text or "").split("\n"))


def _section(title: str, body: str) -> str:
    return f'<div class="section">\n<h2>{title}</h2>\n{body}\n</div>\n'


def _items(tag: str, values: Iterable[str]) -> str:
    return "".join(f"<{tag}>{escape(v)}</{tag}>" for v in values)


_STYLE = """
body { font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; line-height: 1.7;
       color: #1f2937; max-width: 900px; margin: 0 auto; padding: 48px 24px; }
h1 { font-size: 2.5em; line-height: 1.2; }
h2 { border-bottom: 3px solid #e5e7eb; padding-bottom: 0.3em; margin-top: 1.5em; }
.summary { font-size: 1.25em; color: #4b5563; }
.client-info { background: #f9fafb; border-left: 4px solid #3b82f6; padding: 24px; }
.metric { background: #667eea; color: white; padding: 24px; border-radius: 12px; margin: 16px 0; }
.metric-value { font-size: 1.75em; font-weight: 700; }
.metric-quote { font-style: italic; }
blockquote { border-left: 4px solid #3b82f6; padding-left: 24px; font-style: italic; }
.footer { margin-top: 48px; border-top: 2px solid #e5e7eb; text-align: center; color: #9ca3af; }
@media print { .metric { break-inside: avoid; } }
"""


def render_html(case_study: CaseStudy, include_branding: bool = True) -> str:
    title = escape(case_study.title)
    body = [f"<h1>{title}</h1>\n", f'<p class="summary">{escape(case_study.summary or "")}</p>\n']

    if case_study.client_name or case_study.client_industry:
        info = []
        if case_study.client_name:
            info.append(f"<p><strong>Client:</strong> {escape(case_study.client_name)}</p>")
        if case_study.client_industry:
            info.append(f"<p><strong>Industry:</strong> {escape(case_study.client_industry)}</p>")
        body.append(f'<div class="client-info">{"".join(info)}</div>\n')

    body.append(_section("The Challenge", _paragraphs(case_study.challenge)))
    body.append(_section("The Solution", _paragraphs(case_study.solution)))
    body.append(_section("The Results", _paragraphs(case_study.results)))

    metrics = _metrics(case_study)
    if metrics:
        cards = "".join(
            f'<div class="metric"><div class="metric-value">{escape(m["metric"])}</div>'
            f'<div class="metric-quote">"{escape(m.get("quote") or "")}"</div></div>'
            for m in metrics
        )
        body.append(_section("Key Metrics", cards))
    if case_study.key_quotes:
        quotes = "".join(f'<blockquote>"{escape(q)}"</blockquote>' for q in case_study.key_quotes)
        body.append(_section("Customer Quotes", quotes))
    if case_study.key_takeaways:
        body.append(_section("Key Takeaways", f"<ul>{_items('li', case_study.key_takeaways)}</ul>"))
    if include_branding:
        body.append(f'<div class="footer">{BRANDING}</div>\n')

    return (
        "<!DOCTYPE html>\n<html lang=\"en\">\n<head>\n<meta charset=\"UTF-8\">\n"
        '<meta name="viewport" content="width=device-width, initial-scale=1.0">\n'
        f"<title>{title}</title>\n<style>{_STYLE}</style>\n</head>\n<body>\n"
        f"{''.join(body)}</body>\n</html>\n"
    )


def _pdf_text(text: str | None) -> list[str]:
    return [escape(line, quote=False) for line in (text or "").split("\n") if line.strip()]


def _pdf_footer(canvas: Canvas, doc: SimpleDocTemplate) -> None:
    canvas.saveState()
    canvas.setFont("Helvetica", 8)
    canvas.setFillColor(colors.HexColor("#9ca3af"))
    canvas.drawCentredString(doc.pagesize[0] / 2, 0.5 * inch, BRANDING)
    canvas.restoreState()


def render_pdf(case_study: CaseStudy, include_branding: bool = True) -> bytes:
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        rightMargin=0.75 * inch,
        leftMargin=0.75 * inch,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
        title=case_study.title,
    )
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "CaseStudyTitle",
        parent=styles["Heading1"],
        fontSize=24,
        leading=28,
        fontName="Helvetica-Bold",
        spaceAfter=12,
    )
    summary_style = ParagraphStyle(
        "CaseStudySummary",
        parent=styles["Normal"],
        fontSize=12,
        leading=16,
        textColor=colors.HexColor("#4b5563"),
        spaceAfter=18,
    )
    heading_style = ParagraphStyle(
        "CaseStudyHeading",
        parent=styles["Heading2"],
        fontSize=16,
        fontName="Helvetica-Bold",
        textColor=colors.HexColor("#1f2937"),
        spaceBefore=12,
        spaceAfter=8,
    )
    body_style = ParagraphStyle(
        "CaseStudyBody", parent=styles["Normal"], fontSize=11, leading=15, spaceAfter=6
    )
    quote_style = ParagraphStyle(
        "CaseStudyQuote",
        parent=body_style,
        fontName="Helvetica-Oblique",
        leftIndent=18,
        textColor=colors.HexColor("#4b5563"),
    )

    story: list[Flowable] = [Paragraph(escape(case_study.title, quote=False), title_style)]
    story.extend(Paragraph(line, summary_style) for line in _pdf_text(case_study.summary))

    client_info = []
    if case_study.client_name:
        client_info.append(["Client:", case_study.client_name])
    if case_study.client_industry:
        client_info.append(["Industry:", case_study.client_industry])
    if client_info:
        client_table = Table(client_info, colWidths=[1.2 * inch, 5.5 * inch])
        client_table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor("#f9fafb")),
            ("LINEBEFORE", (0, 0), (0, -1), 3, colors.HexColor("#3b82f6")),
            ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 10),
            ("TOPPADDING", (0, 0), (-1, -1), 6),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
        ]))
        story.extend([client_table, Spacer(1, 0.2 * inch)])

    for heading, text in (
        ("The Challenge", case_study.challenge),
        ("The Solution", case_study.solution),
        ("The Results", case_study.results),
    ):
        story.append(Paragraph(heading, heading_style))
        story.extend(Paragraph(line, body_style) for line in _pdf_text(text))

    metrics = _metrics(case_study)
    if metrics:
        story.append(Paragraph("Key Metrics", heading_style))
        for m in metrics:
            story.append(Paragraph(f"<b>{escape(m['metric'], quote=False)}</b>", body_style))
            if m.get("quote"):
                story.append(Paragraph(f'"{escape(m["quote"], quote=False)}"', quote_style))
    if case_study.key_quotes:
        story.append(Paragraph("Customer Quotes", heading_style))
        story.extend(
            Paragraph(f'"{escape(q, quote=False)}"', quote_style) for q in case_study.key_quotes
        )
    if case_study.key_takeaways:
        story.append(Paragraph("Key Takeaways", heading_style))
        story.extend(
            Paragraph(f"{i}. {escape(t, quote=False)}", body_style)
            for i, t in enumerate(case_study.key_takeaways, start=1)
        )

    if include_branding:
        doc.build(story, onFirstPage=_pdf_footer, onLaterPages=_pdf_footer)
    else:
        doc.build(story)
    return buffer.getvalue()


def render(case_study: CaseStudy, fmt: ExportFormat, include_branding: bool = True) -> str | bytes:
    if fmt is ExportFormat.MARKDOWN:
        return render_markdown(case_study, include_branding)
    if fmt is ExportFormat.PDF:
        return render_pdf(case_study, include_branding)
    return render_html(case_study, include_branding)
