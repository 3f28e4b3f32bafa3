"""
Auditor's report generation.

The report is the fixed NSA template with client and report details
substituted, wrapped in an HTML envelope that Word opens as a document.
A PDF rendition of the same content is produced with ReportLab.
"""
import io
import re
import html
import logging
from datetime import date

from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer

from constants import (
    AUDIT_REPORT_TEMPLATE, REPORT_PLACEHOLDERS, NO_KEY_AUDIT_MATTERS,
    OTHER_INFORMATION_SECTION, NSA_RESPONSIBILITIES, WORD_DOCUMENT_ENVELOPE,
    ENGAGEMENT_LETTER_TEMPLATE,
)
from models import Client, AuditReportDetails
from utils import format_date_long

PLACEHOLDER_PATTERN = re.compile('|'.join(re.escape(token) for token in REPORT_PLACEHOLDERS))
BLOCK_PATTERN = re.compile(r'<(h3|h4|p|li)\b[^>]*>(.*?)</\1>', re.DOTALL)


def _escape(value):
    return html.escape(value or '', quote=False)


def include_other_information(client, details):
    """Listed companies always get the other-information section"""
    return bool(client.isListed) or bool(details.includeOtherInformation)


def format_key_audit_matters(text):
    lines = [line.strip() for line in (text or '').strip().split('\n')]
    lines = [line for line in lines if line]
    if not lines:
        return f"<p>{NO_KEY_AUDIT_MATTERS}</p>"
    return ''.join(f"<p>{_escape(line)}</p>" for line in lines)


def render_report_body(client, details):
    """Substitute every template placeholder and return the report body HTML"""
    if isinstance(client, dict):
        client = Client.from_dict(client)
    if isinstance(details, dict):
        details = AuditReportDetails.from_dict(details)

    client_name = _escape(client.name)
    frf = _escape(client.frf)
    values = {
        '[CLIENT_NAME_HEADER]': client_name,
        '[Name of Entity]': client_name,
        '[Address]': _escape(client.address),
        '[FY_PERIOD_END_OPINION]': _escape(format_date_long(client.fyPeriodEnd)),
        '[APPLICABLE_FRF]': frf,
        '[KEY_AUDIT_MATTERS]': format_key_audit_matters(details.keyAuditMatters),
        '[OTHER_INFORMATION_SECTION]': OTHER_INFORMATION_SECTION if include_other_information(client, details) else '',
        '[NSA_RESPONSIBILITIES]': f"<p>{NSA_RESPONSIBILITIES}</p>",
        '[Name of Engagement Partner]': _escape(details.engagementPartnerName),
        '[Designation]': _escape(details.designation),
        '[Name of Audit Firm]': _escape(details.auditFirmName),
        '[Date]': _escape(format_date_long(details.reportDate)),
        '[Place]': _escape(details.reportPlace),
        '[Firm Registration Number]': _escape(details.firmRegistrationNumber),
        '[UDIN]': _escape(details.udin),
    }
    # One pass, so substituted text is never scanned for placeholders again
    return PLACEHOLDER_PATTERN.sub(lambda match: values[match.group(0)], AUDIT_REPORT_TEMPLATE)


def generate_audit_report(client, details):
    """Generate the Word-compatible auditor's report document"""
    if isinstance(client, dict):
        client = Client.from_dict(client)
    body = render_report_body(client, details)
    return WORD_DOCUMENT_ENVELOPE.format(title=f"{_escape(client.name)} Audit Report", content=body)


def report_filename(client, extension='doc'):
    """e.g. ABC_Pvt_Ltd_AuditReport_2024-07-15.doc"""
    if isinstance(client, dict):
        client = Client.from_dict(client)
    name = re.sub(r'\s+', '_', client.name.strip()) or 'Client'
    return f"{name}_AuditReport_{client.fyPeriodEnd}.{extension}"


def render_report_pdf(client, details):
    """Render the same report as a PDF and return the bytes"""
    if isinstance(client, dict):
        client = Client.from_dict(client)
    body = render_report_body(client, details)

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, title=f"{client.name} Audit Report")
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle('ReportTitle', parent=styles['Heading1'], fontSize=14, alignment=1, spaceAfter=20)
    block_styles = {
        'h3': styles['Heading2'],
        'h4': styles['Heading3'],
        'p': styles['Normal'],
        'li': styles['Normal'],
    }

    story = []
    for index, (tag, content) in enumerate(BLOCK_PATTERN.findall(body)):
        content = content.replace('<strong>', '<b>').replace('</strong>', '</b>').strip()
        if not content:
            continue
        if index == 0:
            story.append(Paragraph(content, title_style))
            continue
        if tag == 'li':
            content = f"• {content}"
        story.append(Paragraph(content, block_styles[tag]))
        story.append(Spacer(1, 6))

    doc.build(story)
    pdf_data = buffer.getvalue()
    buffer.close()
    logging.info(f"PDF report rendered for {client.name} ({len(pdf_data)} bytes)")
    return pdf_data


def draft_engagement_letter(client, today=None, partner_name=''):
    """Plain-text NSA 210 engagement letter draft for the Basics section"""
    if isinstance(client, dict):
        client = Client.from_dict(client)
    today = today or date.today()
    return ENGAGEMENT_LETTER_TEMPLATE.format(
        today=format_date_long(today.isoformat()),
        client_name=client.name,
        client_address=client.address,
        fy_period_end=format_date_long(client.fyPeriodEnd),
        frf=client.frf,
        partner_name=partner_name or '[Engagement Partner]',
    )
