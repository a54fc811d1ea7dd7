import logging
from io import BytesIO
from typing import Any, Dict, List, Optional

import markdown
from xhtml2pdf import pisa

from .render import render_analysis

logger = logging.getLogger(__name__)

REPORT_STYLE_CSS = """
    @page {
        size: a4 portrait;
        margin: 1.2cm;
    }
    body {
        font-family: Helvetica, Arial, sans-serif;
        font-size: 10pt;
        line-height: 1.3;
        color: #000000;
    }
    h1 {
        font-size: 16pt;
        text-align: center;
        margin-bottom: 1.2em;
    }
    h2 {
        font-size: 13pt;
        border-bottom: 1px solid #000000;
        padding-bottom: 0.2em;
        margin-top: 1.2em;
    }
    h3 {
        font-size: 11pt;
        margin-top: 0.8em;
    }
    p, li {
        margin-bottom: 0.4em;
    }
    table {
        width: 100%;
        border-collapse: collapse;
        margin-bottom: 1em;
    }
    th, td {
        border: 1px solid #333333;
        padding: 4px;
        text-align: left;
        vertical-align: top;
    }
    th {
        background-color: #e0e0e0;
        font-weight: bold;
    }
"""


REPORT_FONT_FAMILY = "ReportFont"


class ReportGenerationError(Exception):
    pass


def report_style_css(font_path: Optional[str] = None) -> str:
    """
    Stylesheet for the PDF report.

    The built-in Helvetica has no Hangul glyphs, so Korean text only renders
    when font_path points to a TrueType font that covers it (Noto Sans KR,
    Nanum Gothic, ...). Without one, Korean characters come out as boxes.
    """
    if not font_path:
        return REPORT_STYLE_CSS
    font_face = f'@font-face {{ font-family: {REPORT_FONT_FAMILY}; src: url("{font_path}"); }}\n'
    return font_face + REPORT_STYLE_CSS.replace(
        "font-family: Helvetica", f"font-family: {REPORT_FONT_FAMILY}, Helvetica"
    )


def _cell(value: Any) -> str:
    return str(value).replace('|', '\\|').replace('\n', ' ')


def build_report_markdown(payload: Dict[str, Any]) -> str:
    """
    Markdown report for a stored comparison.

    Args:
        payload: {'analysisResult', 'referenceNda', 'customerNda'} as kept in
            session storage
    """
    analysis_result = payload['analysisResult']
    tabs = render_analysis(analysis_result, payload['referenceNda'], payload['customerNda'])
    comparison, risks, summary = tabs['comparison'], tabs['risks'], tabs['summary']

    lines: List[str] = [
        "# NDA Comparison Report",
        "",
        f"Comparing **{comparison['referenceFileName']}** (reference) with "
        f"**{comparison['customerFileName']}** (customer).",
        "",
    ]
    if tabs['error']:
        lines += [f"*Note: {tabs['error']}*", ""]

    lines += [
        "## Executive Summary",
        "",
        f"**Overall risk:** {(summary['overallRisk'] or 'unknown').capitalize()}",
        "",
        summary['recommendation'],
        "",
        "### Key Concerns",
        "",
    ]
    lines += [f"- {concern['text']}" for concern in summary['keyConcerns']] or ["- None"]
    lines += ["", "### Acceptable Terms", ""]
    lines += [f"- {term}" for term in summary['acceptableTerms']]

    lines += [
        "",
        "## Section Comparison",
        "",
        "| Section | Match | Key Differences |",
        "| --- | --- | --- |",
    ]
    for section in comparison['sections']:
        lines.append(f"| {_cell(section['title'])} | {section['match']}% | {_cell(section['differences'])} |")

    counts = risks['counts']
    lines += [
        "",
        "## Risk Analysis",
        "",
        f"{risks['totalRisks']} risk(s) identified: {counts['high']} high, {counts['medium']} medium, {counts['low']} low.",
        "",
    ]
    for risk in risks['risks']:
        lines += [
            f"### {risk['title']} ({risk['severity']})",
            "",
            f"**Section:** {risk['section']}",
            "",
            f"**Issue:** {risk['description']}",
            "",
            f"**Recommendation:** {risk['recommendation']}",
            "",
        ]

    lines += ["## Negotiation Points", ""]
    for index, point in enumerate(summary['negotiationPoints'], start=1):
        lines.append(f"{index}. **{point['title']}**: {point['recommendation']}")

    return "\n".join(lines) + "\n"


def generate_pdf_from_markdown(markdown_content: str, font_path: Optional[str] = None) -> BytesIO:
    """Convert a Markdown string to a PDF held in memory."""
    html_content = markdown.markdown(markdown_content, extensions=['tables'])

    full_html = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <title>NDA Comparison Report</title>
        <meta charset=\"utf-8\">
        <style>{report_style_css(font_path)}</style>
    </head>
    <body>{html_content}</body>
    </html>
    """

    result_file = BytesIO()
    pisa_status = pisa.CreatePDF(full_html, dest=result_file)

    if pisa_status.err:
        raise ReportGenerationError(f'PDF generation error: {pisa_status.err}')

    result_file.seek(0)
    logger.info(f"Generated comparison report ({result_file.getbuffer().nbytes} bytes)")
    return result_file
