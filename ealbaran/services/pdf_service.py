"""PDF rendering for delivery notes and invoices (reportlab)."""
import logging
from datetime import datetime
from io import BytesIO
from typing import Any, Dict, Optional
from xml.sax.saxutils import escape

from PIL import Image as PILImage
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import (
    SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer, Image
)

from ealbaran.exceptions import ValidationError
from ealbaran.services.photo_service import decode_data_url
from ealbaran.utils.completion import is_fully_signed
from ealbaran.utils.formatters import date_es, datetime_es, duration_es, money_es, num_es

logger = logging.getLogger(__name__)

PRIMARY = colors.HexColor('#2C3E50')
MUTED = colors.HexColor('#7F8C8D')
ACCENT = colors.HexColor('#3498DB')
GRID = colors.HexColor('#BDC3C7')
ZEBRA = colors.HexColor('#ECF0F1')


def _styles() -> Dict[str, ParagraphStyle]:
    styles = getSampleStyleSheet()
    return {
        'title': ParagraphStyle(
            'AlbaranTitle', parent=styles['Heading1'], fontSize=22,
            textColor=PRIMARY, spaceAfter=6, alignment=TA_CENTER, fontName='Helvetica-Bold'
        ),
        'subtitle': ParagraphStyle(
            'AlbaranSubtitle', parent=styles['Normal'], fontSize=10,
            textColor=MUTED, alignment=TA_CENTER, spaceAfter=4
        ),
        'section': ParagraphStyle(
            'AlbaranSection', parent=styles['Heading3'], fontSize=11,
            textColor=ACCENT, spaceBefore=10, spaceAfter=4, fontName='Helvetica-Bold'
        ),
        'body': ParagraphStyle('AlbaranBody', parent=styles['Normal'], fontSize=10, leading=13),
        'small': ParagraphStyle('AlbaranSmall', parent=styles['Normal'], fontSize=8, textColor=MUTED),
        'right': ParagraphStyle('AlbaranRight', parent=styles['Normal'], fontSize=10, alignment=TA_RIGHT),
        'footer': ParagraphStyle(
            'AlbaranFooter', parent=styles['Normal'], fontSize=8,
            textColor=colors.HexColor('#95A5A6'), alignment=TA_CENTER
        ),
    }


def _text(value: Any) -> str:
    """Escape user text for Paragraph markup; line breaks preserved."""
    if value is None or value == '':
        return '-'
    return escape(str(value)).replace('\n', '<br/>')


def _image_from_data_url(data_url: Optional[str], max_width: float, max_height: float) -> Optional[Image]:
    """Flowable for a data URL image scaled to fit the box, or None if unreadable."""
    if not data_url:
        return None
    try:
        _, raw = decode_data_url(data_url)
        with PILImage.open(BytesIO(raw)) as probe:
            width, height = probe.size
    except (ValidationError, OSError) as e:
        logger.warning(f"[PDF] Skipping unreadable image: {e}")
        return None

    scale = min(max_width / width, max_height / height, 1.0)
    return Image(BytesIO(raw), width=width * scale, height=height * scale)


def _grid_table(rows, col_widths) -> Table:
    table = Table(rows, colWidths=col_widths)
    table.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (-1, -1), 'Helvetica'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('GRID', (0, 0), (-1, -1), 0.5, GRID),
        ('BACKGROUND', (0, 0), (-1, 0), ZEBRA),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
    ]))
    return table


def _signature_cell(title: str, image: Optional[str], document: Optional[str],
                    signed_at: Optional[datetime], styles) -> list:
    cell = [Paragraph(f'<b>{title}</b>', styles['body'])]
    flowable = _image_from_data_url(image, 2.6 * inch, 1.1 * inch)
    if flowable is not None:
        cell.append(flowable)
    else:
        cell.append(Paragraph('<i>Sin firma</i>', styles['small']))
    if document:
        cell.append(Paragraph(f'DNI: {_text(document)}', styles['body']))
    if signed_at:
        cell.append(Paragraph(datetime_es(signed_at), styles['small']))
    return cell


def generate_delivery_note_pdf(note, business_info: Optional[Dict[str, Any]] = None) -> BytesIO:
    """
    Render a delivery note.

    Sections: header, client, pickup origins, destination, vehicle/date/time
    grid, carload details, observations, delivery photo, time tracking and
    the origin/destination signatures.
    """
    business_info = business_info or {}
    styles = _styles()
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.6 * inch,
        leftMargin=0.6 * inch,
        topMargin=0.6 * inch,
        bottomMargin=0.6 * inch,
        title=f'Albarán #{note.note_number}',
    )
    elements = []

    # 1. Header
    elements.append(Paragraph(f'ALBARÁN #{note.note_number}', styles['title']))
    if business_info.get('name'):
        elements.append(Paragraph(f"<b>{_text(business_info['name'])}</b>", styles['subtitle']))
    contact_parts = [business_info.get(key) for key in ('address', 'phone', 'email') if business_info.get(key)]
    if contact_parts:
        elements.append(Paragraph(_text(' | '.join(contact_parts)), styles['subtitle']))
    status_label = 'FIRMADO' if is_fully_signed(note) else 'PENDIENTE DE FIRMA'
    elements.append(Paragraph(status_label, styles['subtitle']))
    elements.append(Spacer(1, 0.15 * inch))

    # 2. Client and worker
    elements.append(Paragraph('CLIENTE', styles['section']))
    elements.append(Paragraph(_text(note.client_name), styles['body']))
    if note.worker is not None:
        elements.append(Paragraph(f'Trabajador: {_text(note.worker.name)}', styles['body']))

    # 3. Route
    elements.append(Paragraph('ORÍGENES DE RECOGIDA', styles['section']))
    for idx, stop in enumerate(note.pickup_origins or [], start=1):
        name = stop.get('name') or ''
        address = stop.get('address') or ''
        line = _text(name)
        if address and address != name:
            line += f' - {_text(address)}'
        elements.append(Paragraph(f'{idx}. {line}', styles['body']))

    elements.append(Paragraph('DESTINO', styles['section']))
    elements.append(Paragraph(_text(note.destination), styles['body']))
    elements.append(Spacer(1, 0.1 * inch))

    elements.append(_grid_table(
        [['Vehículo', 'Fecha', 'Hora'],
         [note.vehicle_type or '-', date_es(note.date), note.time or '-']],
        [2.6 * inch, 2.2 * inch, 2.2 * inch]
    ))

    # 4. Details
    if note.carload_details:
        elements.append(Paragraph('DETALLES DE CARGA', styles['section']))
        elements.append(Paragraph(_text(note.carload_details), styles['body']))
    if note.observations:
        elements.append(Paragraph('OBSERVACIONES', styles['section']))
        elements.append(Paragraph(_text(note.observations), styles['body']))

    photo = _image_from_data_url(note.photo, 4.5 * inch, 3.2 * inch)
    if photo is not None:
        elements.append(Paragraph('FOTO DE ENTREGA', styles['section']))
        elements.append(photo)

    # 5. Time tracking
    if note.arrived_at or note.departed_at or note.wait_time is not None:
        elements.append(Paragraph('REGISTRO DE TIEMPOS', styles['section']))
        duration = note.wait_duration_minutes
        if duration is None:
            duration = note.wait_time
        elements.append(_grid_table(
            [['Llegada', 'Salida', 'Duración'],
             [datetime_es(note.arrived_at), datetime_es(note.departed_at), duration_es(duration)]],
            [2.4 * inch, 2.4 * inch, 2.2 * inch]
        ))

    # 6. Signatures
    elements.append(Spacer(1, 0.2 * inch))
    origin_image = note.origin_signature or note.signature
    signatures = Table(
        [[
            _signature_cell('FIRMA DE ORIGEN', origin_image, note.origin_signature_document,
                            note.origin_signed_at or (note.signed_at if note.signature else None), styles),
            _signature_cell('FIRMA DE DESTINO', note.destination_signature,
                            note.destination_signature_document, note.destination_signed_at, styles),
        ]],
        colWidths=[3.5 * inch, 3.5 * inch]
    )
    signatures.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('BOX', (0, 0), (0, 0), 0.5, GRID),
        ('BOX', (1, 0), (1, 0), 0.5, GRID),
        ('TOPPADDING', (0, 0), (-1, -1), 6),
    ]))
    elements.append(signatures)

    elements.append(Spacer(1, 0.3 * inch))
    elements.append(Paragraph(
        f"Albarán generado digitalmente - {datetime.now().strftime('%d/%m/%Y %H:%M')}",
        styles['footer']
    ))

    doc.build(elements)
    buffer.seek(0)
    return buffer


def generate_invoice_pdf(invoice, template=None) -> BytesIO:
    """
    Render an invoice with the tenant's company header.

    Args:
        invoice: Invoice with line_items loaded
        template: InvoiceTemplate or None
    """
    styles = _styles()
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.75 * inch,
        leftMargin=0.75 * inch,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
        title=f'Factura {invoice.display_number}',
    )
    elements = []

    # 1. Company header
    if template is not None and template.company_name:
        elements.append(Paragraph(f'<b>{_text(template.company_name)}</b>', styles['body']))
        if template.company_tax_id:
            elements.append(Paragraph(f'CIF/NIF: {_text(template.company_tax_id)}', styles['body']))
        address = ', '.join(
            part for part in (template.company_address, template.company_postal_code, template.company_city) if part
        )
        if address:
            elements.append(Paragraph(_text(address), styles['body']))
        contact = ' | '.join(part for part in (template.company_phone, template.company_email) if part)
        if contact:
            elements.append(Paragraph(_text(contact), styles['small']))
    elements.append(Spacer(1, 0.2 * inch))

    elements.append(Paragraph('FACTURA', styles['title']))
    meta = Table(
        [['Nº', invoice.display_number],
         ['Fecha:', date_es(invoice.issue_date)],
         ['Vencimiento:', date_es(invoice.due_date)]],
        colWidths=[1.5 * inch, 3 * inch]
    )
    meta.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
    ]))
    elements.append(meta)
    elements.append(Spacer(1, 0.2 * inch))

    # 2. Customer
    elements.append(Paragraph('CLIENTE', styles['section']))
    elements.append(Paragraph(f'<b>{_text(invoice.customer_name)}</b>', styles['body']))
    if invoice.customer_tax_id:
        elements.append(Paragraph(f'CIF/NIF: {_text(invoice.customer_tax_id)}', styles['body']))
    if invoice.customer_address:
        elements.append(Paragraph(_text(invoice.customer_address), styles['body']))
    elements.append(Spacer(1, 0.2 * inch))

    # 3. Lines
    table_data = [['Concepto', 'Cantidad', 'Precio Unit.', 'Importe']]
    for line in invoice.line_items:
        table_data.append([
            Paragraph(_text(line.description), styles['body']),
            num_es(line.quantity),
            money_es(line.unit_price),
            money_es(line.amount),
        ])
    items_table = Table(table_data, colWidths=[3.6 * inch, 0.8 * inch, 1.1 * inch, 1.1 * inch])
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), ACCENT),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 8),
        ('ALIGN', (1, 1), (1, -1), 'CENTER'),
        ('ALIGN', (2, 1), (-1, -1), 'RIGHT'),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('GRID', (0, 0), (-1, -1), 0.5, GRID),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, ZEBRA]),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 0.2 * inch))

    # 4. Totals
    totals = Table(
        [['Base imponible:', money_es(invoice.subtotal)],
         [f'IVA ({num_es(invoice.tax_rate)}%):', money_es(invoice.tax_amount)],
         ['TOTAL:', money_es(invoice.total)]],
        colWidths=[5.3 * inch, 1.3 * inch]
    )
    totals.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('FONTNAME', (0, 2), (-1, 2), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 2), (-1, 2), 13),
        ('TEXTCOLOR', (0, 2), (-1, 2), colors.HexColor('#27AE60')),
        ('LINEABOVE', (0, 2), (-1, 2), 1, colors.HexColor('#27AE60')),
    ]))
    elements.append(totals)

    if invoice.notes:
        elements.append(Spacer(1, 0.2 * inch))
        elements.append(Paragraph(f'<b>Notas:</b> {_text(invoice.notes)}', styles['body']))

    footer_parts = []
    if template is not None and template.bank_account:
        footer_parts.append(f'IBAN: {_text(template.bank_account)}')
    if template is not None and template.footer_text:
        footer_parts.append(_text(template.footer_text))
    if footer_parts:
        elements.append(Spacer(1, 0.4 * inch))
        elements.append(Paragraph('<br/>'.join(footer_parts), styles['footer']))

    doc.build(elements)
    buffer.seek(0)
    return buffer
