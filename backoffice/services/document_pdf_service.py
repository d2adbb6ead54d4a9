"""PDF rendering for quotes (devis) and invoices (factures)."""
from io import BytesIO
from typing import Any, Dict, List
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import A4
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER

from sqlalchemy.orm import Session

from backoffice.models import Quote, Invoice
from backoffice.exceptions import NotFoundError
from backoffice.utils.formatters import num_fr, money_fcfa, date_fr

QUOTE_STATUS_LABELS = {
    'draft': 'Brouillon',
    'sent': 'Envoyé',
    'accepted': 'Accepté',
    'refused': 'Refusé',
    'expired': 'Expiré',
}

INVOICE_STATUS_LABELS = {
    'draft': 'Brouillon',
    'sent': 'Envoyée',
    'partially_paid': 'Partiellement payée',
    'paid': 'Payée',
    'cancelled': 'Annulée',
}


def _text(value) -> str:
    return escape(str(value)) if value else ''


def _render_document_pdf(document: Dict[str, Any], business_info: Dict[str, Any]) -> BytesIO:
    """
    Internal PDF rendering engine shared by quotes and invoices.

    ``document`` carries the title, the metadata rows, the client, the
    lines, the totals rows and an optional footer.
    """
    currency = business_info.get('currency', 'FCFA')
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.75*inch,
        leftMargin=0.75*inch,
        topMargin=0.75*inch,
        bottomMargin=0.75*inch,
        title=document['number'],
    )

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'DocumentTitle',
        parent=styles['Heading1'],
        fontSize=24,
        textColor=colors.HexColor('#2C3E50'),
        spaceAfter=12,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold'
    )

    header_style = ParagraphStyle(
        'DocumentHeader',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#7F8C8D'),
        alignment=TA_CENTER,
        spaceAfter=6
    )

    cell_style = ParagraphStyle('Cell', parent=styles['Normal'], fontSize=9, leading=11)
    detail_style = ParagraphStyle('CellDetail', parent=cell_style, fontSize=8, textColor=colors.HexColor('#7F8C8D'))

    # 1. Title and business header
    elements.append(Paragraph(document['title'], title_style))

    if business_info.get('name'):
        elements.append(Paragraph(f"<b>{_text(business_info['name'])}</b>", header_style))

    if business_info.get('address'):
        elements.append(Paragraph(_text(business_info['address']), header_style))

    contact_parts = []
    if business_info.get('phone'):
        contact_parts.append(f"Tél : {_text(business_info['phone'])}")
    if business_info.get('email'):
        contact_parts.append(f"Email : {_text(business_info['email'])}")

    if contact_parts:
        elements.append(Paragraph(" | ".join(contact_parts), header_style))

    elements.append(Spacer(1, 0.3*inch))

    # 2. Metadata and client
    client = document['client']
    info_rows = list(document['meta'])
    info_rows.append(['Client :', client.name if client else ''])
    if client:
        address = ', '.join(part for part in (client.address, client.city, client.country) if part)
        if address:
            info_rows.append(['Adresse :', address])
        if client.phone:
            info_rows.append(['Téléphone :', client.phone])
        if client.email:
            info_rows.append(['Email :', client.email])
    if document.get('subject'):
        info_rows.append(['Objet :', Paragraph(_text(document['subject']), cell_style)])

    info_table = Table(info_rows, colWidths=[1.6*inch, 4.4*inch])
    info_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('ALIGN', (1, 0), (1, -1), 'LEFT'),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
    ]))

    elements.append(info_table)
    elements.append(Spacer(1, 0.3*inch))

    # 3. Lines
    table_data = [['Réf.', 'Désignation', 'Qté', 'Unité', 'P.U.', 'Montant']]
    for line in document['lines']:
        designation = [Paragraph(_text(line.designation), cell_style)]
        if line.details:
            designation.append(Paragraph(_text(line.details), detail_style))
        table_data.append([
            line.reference or '',
            designation,
            num_fr(line.quantity),
            line.unit or '',
            num_fr(line.unit_price),
            num_fr(line.amount),
        ])

    items_table = Table(
        table_data,
        colWidths=[0.8*inch, 2.6*inch, 0.6*inch, 0.6*inch, 0.9*inch, 1.1*inch],
        repeatRows=1,
    )
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#3498DB')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 10),
        ('VALIGN', (0, 1), (-1, -1), 'TOP'),
        ('ALIGN', (2, 1), (3, -1), 'CENTER'),
        ('ALIGN', (4, 1), (5, -1), 'RIGHT'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#BDC3C7')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#ECF0F1')]),
    ]))

    elements.append(items_table)
    elements.append(Spacer(1, 0.2*inch))

    # 4. Totals
    totals_rows = [[label, money_fcfa(amount, currency)] for label, amount in document['totals']]
    totals_table = Table(totals_rows, colWidths=[5.0*inch, 1.6*inch])
    totals_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTNAME', (0, 0), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 11),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#27AE60')),
        ('BACKGROUND', (0, 0), (-1, -1), colors.HexColor('#E8F8F5')),
        ('BOX', (0, 0), (-1, -1), 2, colors.HexColor('#27AE60')),
    ]))

    elements.append(totals_table)
    elements.append(Spacer(1, 0.4*inch))

    if document.get('footer'):
        footer_style = ParagraphStyle(
            'Footer', parent=styles['Normal'], fontSize=9,
            textColor=colors.HexColor('#95A5A6'), alignment=TA_CENTER
        )
        elements.append(Paragraph('<br/>'.join(document['footer']), footer_style))

    doc.build(elements)
    buffer.seek(0)
    return buffer


def _quote_document(quote: Quote) -> Dict[str, Any]:
    meta = [
        ['Devis N° :', quote.reference],
        ['Date :', date_fr(quote.issue_date)],
        ['Valable jusqu\'au :', date_fr(quote.valid_until)],
        ['Statut :', QUOTE_STATUS_LABELS.get(quote.status, quote.status)],
    ]

    footer: List[str] = []
    if quote.delivery_delay:
        footer.append(f"<b>Délai de livraison :</b> {_text(quote.delivery_delay)}")
    if quote.delivery_terms:
        footer.append(f"<b>Conditions de livraison :</b> {_text(quote.delivery_terms)}")
    if quote.warranty:
        footer.append(f"<b>Garantie :</b> {_text(quote.warranty)}")
    footer.append(f"Validité de l'offre : {quote.validity_days} jours.")
    footer.append("<i>Ce devis ne constitue pas une facture.</i>")

    return {
        'title': 'DEVIS',
        'number': quote.reference,
        'meta': meta,
        'client': quote.client,
        'subject': quote.subject,
        'lines': quote.lines,
        'totals': [('TOTAL HT :', quote.total_ht)],
        'footer': footer,
    }


def _invoice_document(invoice: Invoice) -> Dict[str, Any]:
    meta = [
        ['Facture N° :', invoice.reference],
        ['Date :', date_fr(invoice.issue_date)],
        ['Échéance :', date_fr(invoice.due_date)],
        ['Statut :', INVOICE_STATUS_LABELS.get(invoice.status, invoice.status)],
    ]
    if invoice.quote is not None:
        meta.append(['Devis :', invoice.quote.reference])

    footer: List[str] = []
    if invoice.notes:
        footer.append(f"<b>Notes :</b> {_text(invoice.notes)}")

    return {
        'title': 'FACTURE',
        'number': invoice.reference,
        'meta': meta,
        'client': invoice.client,
        'subject': invoice.subject,
        'lines': invoice.lines,
        'totals': [
            ('TOTAL HT :', invoice.total_ht),
            (f'TVA ({num_fr(invoice.tva_rate)} %) :', invoice.total_tva),
            ('TOTAL TTC :', invoice.total_ttc),
            ('Montant payé :', invoice.amount_paid),
            ('Reste à payer :', invoice.balance_due),
        ],
        'footer': footer,
    }


def generate_quote_pdf(quote_id: int, session: Session, business_info: dict) -> BytesIO:
    """Generate the PDF of a persisted quote."""
    quote = session.get(Quote, quote_id)
    if not quote:
        raise NotFoundError(f'Devis {quote_id} introuvable.')
    return _render_document_pdf(_quote_document(quote), business_info)


def generate_invoice_pdf(invoice_id: int, session: Session, business_info: dict) -> BytesIO:
    """Generate the PDF of a persisted invoice."""
    invoice = session.get(Invoice, invoice_id)
    if not invoice:
        raise NotFoundError(f'Facture {invoice_id} introuvable.')
    return _render_document_pdf(_invoice_document(invoice), business_info)


def business_info_from_config(config) -> dict:
    """Issuer block printed on every document."""
    return {
        'name': config.get('BUSINESS_NAME', ''),
        'address': config.get('BUSINESS_ADDRESS', ''),
        'phone': config.get('BUSINESS_PHONE', ''),
        'email': config.get('BUSINESS_EMAIL', ''),
        'currency': config.get('CURRENCY_LABEL', 'FCFA'),
    }
