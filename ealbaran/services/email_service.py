"""
Email service for delivery note notifications and invoices.
Uses Flask-Mail for SMTP integration with UTF-8 support.
"""
import logging
from datetime import datetime
from html import escape
from typing import Iterable, List, Optional

from flask import current_app
from flask_mail import Mail, Message

logger = logging.getLogger(__name__)

mail = Mail()

FOOTER = "eAlbarán - Gestión Digital de Albaranes"


def init_mail(app):
    """Initialize Flask-Mail with app."""
    mail.init_app(app)


def _mail_enabled() -> bool:
    """
    Check if mail is properly configured and enabled.
    Prevents 500 errors in dev or misconfigured environments.
    """
    cfg = current_app.config
    return bool(
        not cfg.get("MAIL_SUPPRESS_SEND", False)
        and cfg.get("MAIL_SERVER")
        and cfg.get("MAIL_USERNAME")
    )


def format_pickup_origins(pickup_origins: Optional[Iterable[dict]]) -> str:
    names = [
        stop.get('name') or stop.get('address')
        for stop in (pickup_origins or [])
        if stop.get('name') or stop.get('address')
    ]
    return ', '.join(names) if names else 'No especificado'


def _wrap_html(title: str, number: int, body: str, color: str) -> str:
    return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="UTF-8">
            <style>
                body {{ font-family: Arial, sans-serif; color: #333; }}
                .container {{ max-width: 600px; margin: auto; padding: 20px; }}
                .header {{ background: {color}; color: #fff; padding: 20px; text-align: center; }}
                .content {{ background: #fff; padding: 30px; }}
                .details {{ background: #f3f4f6; padding: 15px; border-radius: 5px; }}
                .footer {{ font-size: 12px; color: #6b7280; text-align: center; }}
            </style>
        </head>
        <body>
            <div class="container">
                <div class="header">
                    <h1>{title}</h1>
                    <p style="font-size: 24px; margin: 0;">#{number}</p>
                </div>
                <div class="content">{body}</div>
                <div class="footer">
                    <p>&copy; {datetime.now().year} {FOOTER}</p>
                </div>
            </div>
        </body>
        </html>
        """


def _note_details_html(note, extra: str = '') -> str:
    return f"""
        <div class="details">
            <p><strong>Número:</strong> {note.note_number}</p>
            <p><strong>Cliente:</strong> {escape(note.client_name or 'No especificado')}</p>
            <p><strong>Recogidas:</strong> {escape(format_pickup_origins(note.pickup_origins))}</p>
            <p><strong>Destino:</strong> {escape(note.destination or 'No especificado')}</p>
            {extra}
        </div>
        """


def send_delivery_note_created_email(to_emails: List[str], note, created_by: str) -> bool:
    """
    Notify tenant admins that a delivery note was created.

    Returns:
        True if sent (or mail disabled), False on SMTP errors
    """
    try:
        if not to_emails:
            logger.info(f"[EMAIL] No recipients for note #{note.note_number} creation")
            return True
        if not _mail_enabled():
            logger.info(f"[MAIL DISABLED] Note created email skipped for #{note.note_number}")
            return True

        body = (
            "<p>Se ha creado un nuevo albarán con los siguientes datos:</p>"
            + _note_details_html(note, f"<p><strong>Creado por:</strong> {escape(created_by or '-')}</p>")
            + "<p>El albarán está pendiente de firma.</p>"
        )
        text_body = (
            f"Nuevo albarán #{note.note_number}\n"
            f"Cliente: {note.client_name or 'No especificado'}\n"
            f"Recogidas: {format_pickup_origins(note.pickup_origins)}\n"
            f"Destino: {note.destination or 'No especificado'}\n"
            f"Creado por: {created_by or '-'}\n\n"
            "El albarán está pendiente de firma.\n"
        )
        msg = Message(
            subject=f"Nuevo Albarán #{note.note_number} creado",
            recipients=list(to_emails),
            body=text_body,
            html=_wrap_html('Nuevo Albarán Creado', note.note_number, body, '#2563eb'),
        )
        mail.send(msg)
        logger.info(f"[EMAIL] ✓ Note created email sent for #{note.note_number}")
        return True

    except Exception as e:
        logger.exception(f"[EMAIL] ✗ Error sending note created email: {e}")
        return False


def send_delivery_note_signed_email(to_emails: List[str], note, pdf_bytes: Optional[bytes] = None) -> bool:
    """Notify tenant admins that a delivery note is fully signed, with the PDF attached."""
    try:
        if not to_emails:
            logger.info(f"[EMAIL] No recipients for note #{note.note_number} signature")
            return True
        if not _mail_enabled():
            logger.info(f"[MAIL DISABLED] Note signed email skipped for #{note.note_number}")
            return True

        signed_at = note.destination_signed_at or note.signed_at or datetime.now()
        signed_date = signed_at.strftime('%d/%m/%Y %H:%M')
        body = (
            "<p style=\"text-align: center;\"><strong>✓ Completado</strong></p>"
            "<p>El albarán ha sido firmado correctamente:</p>"
            + _note_details_html(note, f"<p><strong>Firmado:</strong> {signed_date}</p>")
            + "<p>Puedes descargar el albarán firmado desde tu panel de empresa.</p>"
        )
        msg = Message(
            subject=f"Albarán #{note.note_number} firmado",
            recipients=list(to_emails),
            body=f"El albarán #{note.note_number} ha sido firmado el {signed_date}.",
            html=_wrap_html('Albarán Firmado', note.note_number, body, '#16a34a'),
        )
        if pdf_bytes:
            msg.attach(f"albaran_{note.note_number}.pdf", "application/pdf", pdf_bytes)
        mail.send(msg)
        logger.info(f"[EMAIL] ✓ Note signed email sent for #{note.note_number}")
        return True

    except Exception as e:
        logger.exception(f"[EMAIL] ✗ Error sending note signed email: {e}")
        return False


def send_invoice_email(to_email: str, invoice, pdf_bytes: bytes, company_name: str) -> bool:
    """Send an invoice PDF to the customer."""
    try:
        if not to_email:
            logger.warning(f"[EMAIL] Invoice {invoice.display_number} has no customer email")
            return False
        if not _mail_enabled():
            logger.info(f"[MAIL DISABLED] Invoice email skipped for {to_email}")
            return True

        msg = Message(
            subject=f"Factura {invoice.display_number} - {company_name}",
            recipients=[to_email],
            body=(
                f"Hola {invoice.customer_name},\n\n"
                f"Adjuntamos la factura {invoice.display_number}.\n\n"
                f"{company_name}"
            ),
        )
        msg.attach(f"factura_{invoice.display_number}.pdf", "application/pdf", pdf_bytes)
        mail.send(msg)
        logger.info(f"[EMAIL] ✓ Invoice {invoice.display_number} sent to {to_email}")
        return True

    except Exception as e:
        logger.exception(f"[EMAIL] ✗ Failed to send invoice to {to_email}: {str(e)}")
        return False


def get_admin_emails(session, tenant_id: int) -> List[str]:
    """Emails of active OWNER/ADMIN members of a tenant."""
    from ealbaran.models import AppUser, UserTenant, UserRole

    rows = session.query(AppUser.email).join(
        UserTenant, UserTenant.user_id == AppUser.id
    ).filter(
        UserTenant.tenant_id == tenant_id,
        UserTenant.active.is_(True),
        UserTenant.role.in_([UserRole.OWNER.value, UserRole.ADMIN.value]),
        AppUser.active.is_(True)
    ).all()
    return sorted({row.email for row in rows})
