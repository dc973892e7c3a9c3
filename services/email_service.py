"""
Transaction Email Service using SendGrid with SMTP fallback.
Sends the generated cover sheet to the coordinator mailbox.
"""
import base64
import os
import re
from datetime import datetime, timezone
from html import escape
from typing import List, Optional, Tuple

from flask import current_app
from flask_mail import Message
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import (
    Mail, Email, To, Attachment, FileContent, FileName, FileType, Disposition
)

from services.documents.types import PartySide, TransactionRecord
from services.documents.transforms import ROLE_LABELS

# Default sender email (must be verified in SendGrid)
DEFAULT_SENDER = 'transactions@parealestatesupport.com'

PDF_MIME_TYPE = 'application/pdf'


def address_slug(address: Optional[str]) -> str:
    """
    Filename-safe slug for a property address.

    Examples:
        "123 Main St, Pittsburgh" -> "123_Main_St_Pittsburgh"
        None -> "unknown_address"
    """
    if not address:
        return 'unknown_address'
    slug = re.sub(r'[^a-zA-Z0-9]', '_', address)
    return re.sub(r'_+', '_', slug)[:30]


def document_filename(record: TransactionRecord, on_date: datetime = None) -> str:
    """Attachment name: Transaction_<address-slug>_<yyyy-mm-dd>.pdf"""
    on_date = on_date or datetime.now(timezone.utc)
    return f"Transaction_{address_slug(record.property.address)}_{on_date.strftime('%Y-%m-%d')}.pdf"


def build_subject(record: TransactionRecord) -> str:
    address = record.property.address or 'Unknown Address'
    listing = record.property.listing_id or 'N/A'
    return f"Transaction Form: {address} (MLS: {listing})"


def _summary_rows(record: TransactionRecord) -> List[Tuple[str, str]]:
    """Label/value pairs shown in both bodies, in display order."""
    prop = record.property
    rows = [
        ('Address', prop.address),
        ('MLS Number', prop.listing_id),
        ('Sale Price', f"${prop.sale_price}" if prop.sale_price else None),
        ('Closing Date', prop.closing_date),
        ('Status', prop.status),
        ('Access Type', prop.access_type),
        ('Access Code', prop.lockbox_code),
        ('Winterized', 'YES' if prop.is_winterized else 'NO'),
        ('Update MLS', 'YES' if prop.update_mls else 'NO'),
        ('Agent Name', record.agent.name),
        ('Agent Role', ROLE_LABELS[record.agent.role]),
        ('Total Commission', f"{record.commission.total_percentage}%" if record.commission.total_percentage else None),
    ]

    for side, label in ((PartySide.BUYER, 'Buyer'), (PartySide.SELLER, 'Seller')):
        party = next((p for p in record.parties if p.side is side), None)
        if party:
            rows.append((f"{label} Name", party.name))
            rows.append((f"{label} Email", party.email))
            rows.append((f"{label} Phone", party.phone))
            rows.append((f"{label} Address", party.address))

    if record.notes.urgent_issues:
        rows.append(('URGENT ISSUES', record.notes.urgent_issues))
    return [(label, value or 'Not provided') for label, value in rows]


def build_text_body(record: TransactionRecord, note: str = None) -> str:
    lines = [f"Transaction Form Submission - {datetime.now().strftime('%m/%d/%Y')}", ""]
    lines.extend(f"- {label}: {value}" for label, value in _summary_rows(record))
    lines.append("")
    if note:
        lines.append(f"NOTE: {note}")
    else:
        lines.append("Please see the attached PDF for complete transaction details.")
    return "\n".join(lines)


def build_html_body(record: TransactionRecord, note: str = None) -> str:
    rows = "".join(
        f'<tr><td style="padding: 10px; border-bottom: 1px solid #eee; font-weight: bold;">{escape(label)}:</td>'
        f'<td style="padding: 10px; border-bottom: 1px solid #eee;">{escape(str(value))}</td></tr>'
        for label, value in _summary_rows(record)
    )
    footer = (
        f'<p style="color: #b03a2e; font-weight: bold;">{escape(note)}</p>' if note
        else '<p>Please see the attached PDF for complete transaction details.</p>'
    )
    return f"""
<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <h2 style="background-color: #1a5276; color: white; padding: 20px; text-align: center;">
      Transaction Form Submission
    </h2>
    <table style="width: 100%; border-collapse: collapse;">{rows}</table>
    {footer}
    <p style="font-size: 12px; color: #777;">This email was automatically generated from a transaction form submission.</p>
  </div>
</body>
</html>
"""


class EmailService:
    """Transaction email relay: SendGrid first, SMTP through Flask-Mail as fallback."""

    def __init__(self, api_key=None, sender=None, recipient=None):
        """Initialize with SendGrid API key and addresses."""
        self.api_key = api_key if api_key is not None else os.getenv('SENDGRID_API_KEY')
        self.sender = sender or os.getenv('MAIL_DEFAULT_SENDER') or DEFAULT_SENDER
        self.recipient = recipient or os.getenv('TRANSACTION_EMAIL_RECIPIENT')
        self._client = None

    @property
    def client(self):
        """Lazy-load SendGrid client."""
        if self._client is None:
            if not self.api_key:
                raise ValueError("SENDGRID_API_KEY not configured")
            self._client = SendGridAPIClient(self.api_key)
        return self._client

    def send_transaction_document(self, record: TransactionRecord, document: Optional[bytes],
                                  note: str = None, recipient: str = None) -> bool:
        """
        Email the cover sheet for a record.

        Args:
            record: The submitted transaction
            document: PDF bytes to attach, or None to send without one
            note: Text shown in place of the attachment notice, used when
                  the document could not be attached
            recipient: Override the configured coordinator mailbox

        Returns:
            True if sent successfully, False otherwise
        """
        to_email = recipient or self.recipient
        if not to_email:
            current_app.logger.error("TRANSACTION_EMAIL_RECIPIENT not configured, cannot send transaction email")
            return False

        subject = build_subject(record)
        text_body = build_text_body(record, note)
        html_body = build_html_body(record, note)
        filename = document_filename(record) if document else None

        if self.api_key:
            if self._send_via_sendgrid(to_email, subject, text_body, html_body, document, filename):
                return True
        else:
            current_app.logger.info("SendGrid not configured, using SMTP")

        if self._send_via_smtp(to_email, subject, text_body, html_body, document, filename):
            return True

        current_app.logger.error(f"✗ All email methods failed for transaction email to {to_email}")
        return False

    def _send_via_sendgrid(self, to_email: str, subject: str, text_body: str, html_body: str,
                           document: Optional[bytes], filename: Optional[str]) -> bool:
        try:
            message = Mail(
                from_email=Email(self.sender),
                to_emails=To(to_email),
                subject=subject,
                plain_text_content=text_body,
                html_content=html_body
            )
            if document:
                message.attachment = Attachment(
                    FileContent(base64.b64encode(document).decode('ascii')),
                    FileName(filename),
                    FileType(PDF_MIME_TYPE),
                    Disposition('attachment')
                )

            response = self.client.send(message)
            if response.status_code in (200, 201, 202):
                current_app.logger.info(f"✓ SendGrid transaction email sent to {to_email}, status={response.status_code}")
                return True

            current_app.logger.warning(f"SendGrid failed: to={to_email}, status={response.status_code}")
            current_app.logger.warning(f"Response body: {response.body}")
        except Exception as e:
            current_app.logger.warning(f"SendGrid error: to={to_email}, error={str(e)}")
        return False

    def _send_via_smtp(self, to_email: str, subject: str, text_body: str, html_body: str,
                       document: Optional[bytes], filename: Optional[str]) -> bool:
        """
        Fallback through the app's Flask-Mail SMTP connection.

        Returns:
            True if sent successfully, False otherwise
        """
        mail = current_app.extensions.get('mail')
        if not mail:
            current_app.logger.warning("Flask-Mail not configured, skipping SMTP fallback")
            return False

        try:
            current_app.logger.info(f"Attempting SMTP delivery for {to_email}")
            msg = Message(
                subject=subject,
                sender=self.sender,
                recipients=[to_email],
                body=text_body,
                html=html_body
            )
            if document:
                msg.attach(filename, PDF_MIME_TYPE, document)
            mail.send(msg)
            current_app.logger.info(f"✓ SMTP transaction email sent to {to_email}")
            return True
        except Exception as e:
            current_app.logger.error(f"SMTP send failed for {to_email}: {str(e)}")
            return False

