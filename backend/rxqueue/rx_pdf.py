"""
处方 PDF。

药房要求每个订单附一份可打印的处方单（order.document.pdfBase64），
内容和 payload 一致：practice / prescriber / patient / 每行药品 / 收货地址 / 电子签名。
"""

import base64
import io
import logging
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .medications import get_medication

logger = logging.getLogger(__name__)

GENDER_LABELS = {'m': 'Male', 'f': 'Female'}

_styles = getSampleStyleSheet()


def _p(text, style='Normal'):
    # reportlab 的 Paragraph 会解析标签，用户输入要先转义
    return Paragraph(escape(str(text if text is not None else '')), _styles[style])


def _info_table(rows):
    table = Table([[_p(f'{label}:', 'Heading5'), _p(value)] for label, value in rows], colWidths=[110, 390])
    table.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 2),
        ('TOPPADDING', (0, 0), (-1, -1), 2),
    ]))
    return table


def _ship_to(patient_info) -> str:
    street = ', '.join(part for part in (patient_info['address1'], patient_info.get('address2')) if part)
    return f"{street}, {patient_info['city']}, {patient_info['state']} {patient_info['zip']}"


def generate_prescription_pdf(reference_id, provider, clinic, patient_info, lines, shipping_method, date_written) -> bytes:
    """Render the printable prescription that travels with a pharmacy order."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=letter, title=f'Prescription {reference_id}')
    provider_name = f'{provider.first_name} {provider.last_name}'

    story = [
        _p((clinic.practice_name or clinic.name).upper(), 'Title'),
        _p(f'Order #: {reference_id}    Date: {date_written}'),
        Spacer(1, 12),
        _p('PRESCRIBER INFORMATION', 'Heading3'),
        _info_table([
            ('Name', provider_name),
            ('NPI', provider.npi),
            ('DEA', provider.dea or 'N/A'),
            ('License', f'{provider.license_state} {provider.license_number}'.strip() or 'N/A'),
            ('Phone', provider.phone or 'N/A'),
        ]),
        Spacer(1, 12),
        _p('PATIENT INFORMATION', 'Heading3'),
        _info_table([
            ('Name', f"{patient_info['first_name']} {patient_info['last_name']}"),
            ('Date of Birth', patient_info['dob']),
            ('Gender', GENDER_LABELS.get(patient_info['gender'], patient_info['gender'])),
            ('Phone', patient_info.get('phone') or 'N/A'),
            ('Email', patient_info.get('email') or 'N/A'),
            ('Address', _ship_to(patient_info)),
        ]),
        Spacer(1, 12),
        _p('ELECTRONIC PRESCRIPTION ORDER', 'Heading3'),
    ]

    rows = [[_p(h, 'Heading5') for h in ('Medication', 'Strength', 'Directions (SIG)', 'Qty', 'Refills', 'Days')]]
    for line in lines:
        med = get_medication(line['medicationKey'])
        rows.append([
            _p(med.name), _p(med.strength), _p(line['sig']),
            _p(line['quantity']), _p(line['refills'] or 0), _p(line['daysSupply']),
        ])
    rx_table = Table(rows, colWidths=[130, 70, 170, 40, 45, 45], repeatRows=1)
    rx_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.lightgrey),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
    ]))
    story += [
        rx_table,
        Spacer(1, 12),
        _info_table([
            ('Ship To', _ship_to(patient_info)),
            ('Shipping Service', shipping_method),
        ]),
        Spacer(1, 24),
        _p(f'Electronically signed by {provider_name} (NPI {provider.npi}) on {date_written}'),
    ]

    doc.build(story)
    pdf = buffer.getvalue()
    logger.debug("[RX_PDF] reference=%s 已生成 %d bytes", reference_id, len(pdf))
    return pdf


def generate_prescription_pdf_base64(*args, **kwargs) -> str:
    return base64.b64encode(generate_prescription_pdf(*args, **kwargs)).decode('ascii')
