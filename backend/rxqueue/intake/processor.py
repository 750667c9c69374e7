"""
InternalInvoice → Patient + PAID Invoice（入队）+ 触发 SOAP note 生成。

同一 clinic 下 external_id 相同的 invoice 只入库一次，重复 webhook 直接返回已有记录。
"""

import logging

from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from ..audit import log_action
from ..exceptions import ValidationError
from ..models import Clinic, Invoice, Patient
from .types import InternalInvoice

logger = logging.getLogger(__name__)

_ADDRESS_FIELDS = ('address1', 'address2', 'city', 'state', 'zip')


def _parse_paid_at(value):
    parsed = parse_datetime(value) if value else None
    if parsed is None:
        return timezone.now()
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def _upsert_patient(clinic, internal: InternalInvoice):
    """同 clinic + email 复用已有患者，只补空字段，不覆盖已有数据。"""
    data = internal.patient
    patient = Patient.objects.filter(clinic=clinic, email__iexact=data.email).first()

    if patient is None:
        patient = Patient.objects.create(
            clinic=clinic,
            patient_id=f"{Patient.objects.filter(clinic=clinic).count() + 1:06d}",
            first_name=data.first_name,
            last_name=data.last_name,
            email=data.email,
            phone=data.phone,
            dob=data.dob,
            gender=data.gender,
            intake_answers=data.intake_answers,
            glp1_history=data.glp1_history,
            **{name: getattr(data.address, name) for name in _ADDRESS_FIELDS},
        )
        logger.info("[INTAKE] 新患者 patient=%s clinic=%s", patient.id, clinic.subdomain)
        return patient

    changed = []
    for name in ('phone', 'dob', 'gender'):
        if not getattr(patient, name) and getattr(data, name):
            setattr(patient, name, getattr(data, name))
            changed.append(name)
    if not patient.address1 and data.address.address1:
        for name in _ADDRESS_FIELDS:
            setattr(patient, name, getattr(data.address, name))
        changed += list(_ADDRESS_FIELDS)
    if not patient.intake_answers and data.intake_answers:
        patient.intake_answers = data.intake_answers
        changed.append('intake_answers')
    if not patient.glp1_history and data.glp1_history:
        patient.glp1_history = data.glp1_history
        changed.append('glp1_history')

    if changed:
        patient.save(update_fields=[*changed, 'updated_at'])
    return patient


def ingest_invoice(internal: InternalInvoice):
    """
    Returns:
        (invoice, created)

    Raises:
        ValidationError: clinic 不存在
    """
    try:
        clinic = Clinic.objects.get(subdomain=internal.clinic_subdomain)
    except Clinic.DoesNotExist:
        raise ValidationError(
            message=f"Unknown clinic: {internal.clinic_subdomain!r}.",
            code="UNKNOWN_CLINIC",
        )

    existing = Invoice.objects.filter(clinic=clinic, external_id=internal.invoice.external_id).first()
    if existing is not None:
        logger.info("[INTAKE] 重复 webhook source=%s external_id=%s → invoice=%s",
                    internal.source, internal.invoice.external_id, existing.id)
        return existing, False

    data = internal.invoice
    metadata = {
        **data.extra_metadata,
        'source': internal.source,
        'product': data.product,
        'medicationType': data.medication_type,
        'plan': data.plan,
    }
    if data.invoice_number:
        metadata['invoiceNumber'] = data.invoice_number

    with transaction.atomic():
        patient = _upsert_patient(clinic, internal)
        invoice = Invoice.objects.create(
            clinic=clinic,
            patient=patient,
            external_id=data.external_id,
            status=Invoice.STATUS_PAID,
            amount=data.amount,
            amount_paid=data.amount_paid or data.amount,
            paid_at=_parse_paid_at(data.paid_at),
            metadata=metadata,
            line_items=data.line_items,
        )
        log_action(
            None, 'intake.invoice_received', 'invoice', invoice.id,
            clinic=clinic, metadata={'source': internal.source, 'external_id': data.external_id},
        )

    # 延迟导入，避免 tasks ↔ intake 循环依赖；测试里 patch('rxqueue.tasks.generate_soap_note')
    from .. import tasks
    tasks.generate_soap_note.delay(str(patient.id), str(invoice.id))

    logger.info("[INTAKE] source=%s invoice=%s 已入队 patient=%s", internal.source, invoice.id, patient.id)
    return invoice, True
