"""
Module: services.certificates

Purpose:
    Issue certificates for currently certified staff members.
    build_certificate turns a member's ComplianceStatus into the fields a
    certificate shows; render_certificate_pdf lays them out on a landscape
    A4 page with ReportLab.

Key Functions:
    - build_certificate(): Certificate fields from a MemberCompliance
    - render_certificate_pdf(): PDF bytes for a Certificate

Dependencies:
    - reportlab: PDF generation

Used By:
    - routes.compliance: GET /api/staff/{id}/certificate
"""

import io
import re
from dataclasses import dataclass
from datetime import date, timedelta

from reportlab.lib.pagesizes import A4, landscape
from reportlab.pdfgen import canvas

from app.config import PolicySettings
from app.errors import CertificateUnavailable
from app.services.compliance import CertificationState, MemberCompliance, calendar_day
from app.logging_config import get_logger, log_with_context

logger = get_logger("certificate")

PAGE_WIDTH_PT, PAGE_HEIGHT_PT = landscape(A4)
BORDER_OUTER_PT = 28
BORDER_INNER_PT = 36
TITLE_COLOR = (0, 0.2, 0.4)
EXPIRY_COLOR = (0.78, 0, 0)


@dataclass(frozen=True)
class Certificate:
    recipient: str
    score: int
    issued_on: date
    valid_until: date
    organization: str
    title: str = "Certificate of Completion"

    @property
    def filename(self) -> str:
        slug = re.sub(r"[^A-Za-z0-9-]+", "_", self.recipient.strip()).strip("_") or "certificate"
        return f"{slug}_Certificate.pdf"


def build_certificate(entry: MemberCompliance, policy: PolicySettings,
                      organization: str) -> Certificate:
    """
    Certificate fields for a member whose certification is valid.

    The issue date is the calendar day of the latest pass and the
    certificate is valid until the day before it expires.

    Raises:
        CertificateUnavailable: If the member is expired or never certified
    """
    status = entry.status
    if status.state != CertificationState.VALID:
        raise CertificateUnavailable(status.state.value)

    return Certificate(
        recipient=entry.full_name or entry.email or entry.staff_id,
        score=status.last_score,
        issued_on=calendar_day(status.last_success_date, policy),
        valid_until=status.expiry_date - timedelta(days=1),
        organization=organization,
    )


def render_certificate_pdf(certificate: Certificate) -> bytes:
    """
    Render a certificate to PDF.

    Returns:
        PDF document bytes
    """
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=(PAGE_WIDTH_PT, PAGE_HEIGHT_PT))
    centre_x = PAGE_WIDTH_PT / 2

    c.setLineWidth(2)
    c.rect(BORDER_OUTER_PT, BORDER_OUTER_PT,
           PAGE_WIDTH_PT - 2 * BORDER_OUTER_PT, PAGE_HEIGHT_PT - 2 * BORDER_OUTER_PT)
    c.setLineWidth(0.5)
    c.rect(BORDER_INNER_PT, BORDER_INNER_PT,
           PAGE_WIDTH_PT - 2 * BORDER_INNER_PT, PAGE_HEIGHT_PT - 2 * BORDER_INNER_PT)

    c.setFont("Helvetica-Bold", 30)
    c.setFillColorRGB(*TITLE_COLOR)
    c.drawCentredString(centre_x, PAGE_HEIGHT_PT - 150, certificate.organization.upper())

    c.setFont("Helvetica-Bold", 20)
    c.setFillColorRGB(0, 0, 0)
    c.drawCentredString(centre_x, PAGE_HEIGHT_PT - 190, certificate.title)

    c.setFont("Helvetica-Oblique", 16)
    c.drawCentredString(centre_x, PAGE_HEIGHT_PT - 240, "This certificate is awarded to:")

    c.setFont("Helvetica-Bold", 28)
    c.drawCentredString(centre_x, PAGE_HEIGHT_PT - 285, certificate.recipient.upper())

    c.setFont("Helvetica", 14)
    c.drawCentredString(centre_x, PAGE_HEIGHT_PT - 325,
        f"Successfully completed the assessment with a score of {certificate.score}%")

    c.setFont("Helvetica", 12)
    c.drawCentredString(PAGE_WIDTH_PT * 0.25, 110,
                        f"Date Issued: {certificate.issued_on.strftime('%d/%m/%Y')}")
    c.setFillColorRGB(*EXPIRY_COLOR)
    c.drawCentredString(PAGE_WIDTH_PT * 0.75, 110,
                        f"Valid Until: {certificate.valid_until.strftime('%d/%m/%Y')}")

    c.setFillColorRGB(0.4, 0.4, 0.4)
    c.setFont("Helvetica", 10)
    c.drawCentredString(centre_x, 70, "Renewal is required to remain certified.")

    c.showPage()
    c.save()

    pdf_bytes = buffer.getvalue()
    log_with_context(logger, "INFO",
        "Rendered certificate for {}".format(certificate.recipient),
        extra_data={"bytes": len(pdf_bytes), "valid_until": certificate.valid_until.isoformat()})
    return pdf_bytes
