"""
处方提交流水线。

POST /api/prescriptions/ 的完整流程：
  1. 权限：provider / admin / super_admin；queue_for_provider 只有 admin 能用
  2. 表单完整性：地址、药房性别（m/f）、姓名 + DOB、至少一行有效药品
  3. SOAP gate：必须存在且已审批（provider 可以 approve_soap_note=true 当场审批）
  4. GLP-1 瓶数保护：1 个月 plan 多于 1 瓶 / 多月 plan 只有 1 瓶 → WarningError，
     带 override_vial_safeguard=true 重新提交即可
  5. 先落一条 PENDING 的 Order，再调药房；失败 → FAILED，成功 → SENT 并出队
     （admin 排队的 order 发送失败时留在队列里，只记 error_message）

药房调用在 DB 事务之外：药房失败时 Order 记录依然在，方便排查。
"""

import logging
import uuid

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, transaction
from django.utils import timezone

from .address import reconcile_address
from .audit import log_action
from .exceptions import BlockError, PermissionDeniedError, ValidationError, WarningError
from .medications import SYRINGE_KIT_KEY, count_glp1_vials, get_medication
from .models import Invoice, Order, Patient, Provider, RefillRequest, SoapNote, StaffProfile
from .pharmacy import get_pharmacy_client
from .queue import (
    MIN_DECLINE_REASON_LENGTH,
    apply_invoice_processed,
    apply_refill_prescribed,
    pharmacy_gender,
)
from .rx_pdf import generate_prescription_pdf_base64
from .soap_notes import approve_note, get_latest_soap_note
from .staff import APPROVER_ROLES, PRESCRIBER_ROLES, require_clinic, require_role, scope_to_clinic

logger = logging.getLogger(__name__)

QUEUE_ROLES = (StaffProfile.ROLE_ADMIN, StaffProfile.ROLE_SUPER_ADMIN)
ADDRESS_FIELDS = ('address1', 'city', 'state', 'zip')
PATIENT_FIELDS = (
    'first_name', 'last_name', 'dob', 'gender', 'phone', 'email',
    'address1', 'address2', 'city', 'state', 'zip',
)
ORDER_MEMO = 'Provider prescription queue'

_GLYCINE_STATEMENT = (
    'Beyond Medical Necessary - This individual patient would benefit from {drug} with Glycine to help '
    'with muscle loss and use compounded vials that offer flexible dosing for patients and lowest effective '
    'dose to minimize side effects and increase outcomes and compliance. By submitting this prescription, '
    'you confirm that you have reviewed available drug product options and concluded that this compounded '
    'product is necessary for the patient receiving it.'
)
_TESTOSTERONE_STATEMENT = (
    'Beyond medical necessary - This individual patient will benefit from Testosterone with grapeseed oil '
    'due to allergic reactions to commercially available one and use compounded vials that offer flexible '
    'dosing for patients and lowest effective dose to minimize side effects and increase outcomes and '
    'compliance. By submitting this prescription, you confirm that you have reviewed available drug product '
    'options and concluded that this compounded product is necessary for the patient receiving it.'
)


def get_clinical_difference_statement(medication_name):
    upper = (medication_name or '').upper()
    if 'TIRZEPATIDE' in upper:
        return _GLYCINE_STATEMENT.format(drug='Tirzepatide')
    if 'SEMAGLUTIDE' in upper:
        return _GLYCINE_STATEMENT.format(drug='Semaglutide')
    if 'TESTOSTERONE' in upper:
        return _TESTOSTERONE_STATEMENT
    return None


def normalize_dob(value) -> str:
    """'MM/DD/YYYY' → 'YYYY-MM-DD'；已经是 ISO（含 '-'）的原样返回。"""
    value = (value or '').strip()
    if not value or '-' in value:
        return value
    parts = value.split('/')
    if len(parts) == 3 and all(parts):
        mm, dd, yyyy = parts
        return f"{yyyy.zfill(4)}-{mm.zfill(2)}-{dd.zfill(2)}"
    return value


# ── 校验 ────────────────────────────────────────────────────────────────────

def build_patient_info(patient, overrides=None) -> dict:
    """
    药房需要的患者信息。先用库里的地址修正结果，再叠加表单里提交的字段。
    """
    address = reconcile_address(patient.address1, patient.address2, patient.city, patient.state, patient.zip)
    info = {
        'first_name': patient.first_name,
        'last_name': patient.last_name,
        'dob': patient.dob,
        'gender': patient.gender,
        'phone': patient.phone,
        'email': patient.email,
        'address1': address.address1,
        'address2': address.address2,
        'city': address.city,
        'state': address.state,
        'zip': address.zip,
    }
    if overrides is not None and not isinstance(overrides, dict):
        raise ValidationError(
            message='patient must be an object of field overrides',
            code='INVALID_PATIENT_OVERRIDES',
        )
    for field in PATIENT_FIELDS:
        value = (overrides or {}).get(field)
        if value is not None:
            info[field] = str(value).strip()
    return info


def validate_patient_info(info: dict) -> dict:
    """
    Returns:
        info 的副本：gender 已映射成 m / f，dob 已转 ISO。

    Raises:
        ValidationError: INCOMPLETE_SHIPPING_ADDRESS / INVALID_PHARMACY_GENDER / MISSING_PATIENT_INFO
    """
    missing = [field for field in ADDRESS_FIELDS if not (info.get(field) or '').strip()]
    if missing:
        raise ValidationError(
            message='Shipping address is required. Please fill in all address fields.',
            code='INCOMPLETE_SHIPPING_ADDRESS',
            detail={'missing_fields': missing},
        )

    gender = pharmacy_gender(info.get('gender'))
    if not gender:
        raise ValidationError(
            message="Patient sex is required for the pharmacy. Please select 'm' or 'f'.",
            code='INVALID_PHARMACY_GENDER',
            detail={'gender': info.get('gender') or ''},
        )

    missing = [field for field in ('first_name', 'last_name', 'dob') if not (info.get(field) or '').strip()]
    if missing:
        raise ValidationError(
            message='Patient name and date of birth are required.',
            code='MISSING_PATIENT_INFO',
            detail={'missing_fields': missing},
        )

    return {**info, 'gender': gender, 'dob': normalize_dob(info['dob'])}


def _days_supply(key, value) -> int:
    try:
        days = int(value or 30)
    except (TypeError, ValueError):
        days = 0
    if days < 1:
        raise ValidationError(
            message=f'daysSupply must be a positive integer for {key}',
            code='INVALID_DAYS_SUPPLY',
            detail={'medicationKey': key, 'daysSupply': value},
        )
    return days


def validate_rxs(rxs) -> list:
    """
    只保留同时有 medicationKey 和 sig 的行；key 必须在药品目录里。

    Raises:
        ValidationError: NO_VALID_MEDICATION / INVALID_DAYS_SUPPLY / INVALID_MEDICATION_KEY
    """
    lines = []
    for rx in rxs or []:
        if not isinstance(rx, dict):
            continue
        key = str(rx.get('medicationKey') or '').strip()
        sig = str(rx.get('sig') or '').strip()
        if key and sig:
            lines.append({
                'medicationKey': key,
                'sig': sig,
                'quantity': str(rx.get('quantity') or '1'),
                'refills': str(rx.get('refills') or '0'),
                'daysSupply': _days_supply(key, rx.get('daysSupply')),
            })

    if not lines:
        raise ValidationError(
            message='At least one medication with directions (sig) is required.',
            code='NO_VALID_MEDICATION',
        )

    invalid = [line['medicationKey'] for line in lines if get_medication(line['medicationKey']) is None]
    if invalid:
        raise ValidationError(
            message=f"Invalid medicationKey: {', '.join(invalid)}",
            code='INVALID_MEDICATION_KEY',
            detail={'invalid_keys': invalid},
        )
    return lines


def check_vial_safeguard(lines, plan_months, override=False):
    if override:
        return
    vials = count_glp1_vials(lines)
    if plan_months <= 1 and vials > 1:
        raise WarningError(
            message=(
                f"This is a 1-month plan but {vials} GLP-1 vials are selected. "
                "Confirm the quantity or resubmit with override_vial_safeguard=true."
            ),
            code='VIAL_QUANTITY_SAFEGUARD',
            detail={'plan_months': plan_months, 'glp1_vials': vials},
        )
    if plan_months > 1 and vials == 1:
        raise WarningError(
            message=(
                f"This is a {plan_months}-month plan but only 1 GLP-1 vial is selected. "
                "Confirm the quantity or resubmit with override_vial_safeguard=true."
            ),
            code='MULTI_MONTH_VIAL_MINIMUM',
            detail={'plan_months': plan_months, 'glp1_vials': vials},
        )


def add_syringe_kits(lines) -> list:
    """有 GLP-1 且没手动加耗材时，每瓶配一套注射器。"""
    vials = count_glp1_vials(lines)
    if vials == 0 or any(line['medicationKey'] == SYRINGE_KIT_KEY for line in lines):
        return lines
    kit = get_medication(SYRINGE_KIT_KEY)
    return [*lines, {
        'medicationKey': SYRINGE_KIT_KEY,
        'sig': kit.default_sig,
        'quantity': str(vials),
        'refills': '0',
        'daysSupply': lines[0]['daysSupply'],
    }]


def check_soap_gate(patient, profile, user, approve_soap_note=False) -> SoapNote:
    """
    Raises:
        BlockError: SOAP_NOTE_MISSING / SOAP_NOTE_NOT_APPROVED
    """
    note = get_latest_soap_note(patient)
    if note is None:
        raise BlockError(
            message='A SOAP note is required before prescribing. Generate or write one first.',
            code='SOAP_NOTE_MISSING',
            detail={'patient_id': str(patient.id)},
        )
    if note.is_approved:
        return note

    if approve_soap_note and profile.role in APPROVER_ROLES and profile.provider_id:
        note, _ = approve_note(note, profile, user)
        return note

    raise BlockError(
        message='The SOAP note must be approved by a provider before prescribing.',
        code='SOAP_NOTE_NOT_APPROVED',
        detail={'soap_note_id': str(note.id), 'status': note.status},
    )


# ── Lifefile payload ────────────────────────────────────────────────────────

def build_lifefile_payload(reference_id, provider, clinic, patient_info, lines, shipping_method, now=None) -> dict:
    now = now or timezone.now()
    date_written = now.date().isoformat()

    rxs = []
    for line in lines:
        med = get_medication(line['medicationKey'])
        rxs.append({
            'rxType': 'new',
            'drugName': med.name,
            'drugStrength': med.strength,
            'drugForm': med.form_label or med.form,
            'lfProductID': int(med.key),
            'quantity': line['quantity'],
            'quantityUnits': 'EA',
            'directions': line['sig'],
            'refills': int(line['refills'] or 0),
            'dateWritten': date_written,
            'daysSupply': line['daysSupply'],
            'clinicalDifferenceStatement': get_clinical_difference_statement(med.name),
        })

    address2 = patient_info.get('address2') or None
    return {
        'message': {
            'id': uuid.uuid4().hex,
            'sentTime': now.isoformat(),
        },
        'order': {
            'general': {
                'memo': ORDER_MEMO,
                'referenceId': reference_id,
            },
            'prescriber': {
                'npi': provider.npi,
                'licenseState': provider.license_state or None,
                'licenseNumber': provider.license_number or None,
                'dea': provider.dea or None,
                'firstName': provider.first_name,
                'lastName': provider.last_name,
                'phone': provider.phone or None,
                'email': provider.email or None,
            },
            'practice': {
                'id': clinic.practice_id or None,
                'name': clinic.practice_name or clinic.name,
            },
            'patient': {
                'firstName': patient_info['first_name'],
                'lastName': patient_info['last_name'],
                'dateOfBirth': patient_info['dob'],
                'gender': patient_info['gender'],
                'address1': patient_info['address1'],
                'address2': address2,
                'city': patient_info['city'],
                'state': patient_info['state'],
                'zip': patient_info['zip'],
                'phoneHome': patient_info.get('phone') or None,
                'email': patient_info.get('email') or None,
            },
            'shipping': {
                'recipientType': 'patient',
                'recipientFirstName': patient_info['first_name'],
                'recipientLastName': patient_info['last_name'],
                'recipientPhone': patient_info.get('phone') or None,
                'recipientEmail': patient_info.get('email') or None,
                'addressLine1': patient_info['address1'],
                'addressLine2': address2,
                'city': patient_info['city'],
                'state': patient_info['state'],
                'zipCode': patient_info['zip'],
                'service': shipping_method,
            },
            'billing': {
                'payorType': 'pat',
            },
            'rxs': rxs,
            'document': {
                'pdfBase64': generate_prescription_pdf_base64(
                    reference_id, provider, clinic, patient_info, lines, shipping_method, date_written,
                ),
            },
        },
    }


# ── 查询小工具 ──────────────────────────────────────────────────────────────

def _not_found(label, code):
    return BlockError(message=f'{label} not found', code=code, http_status=404)


def _get_patient(profile, patient_id) -> Patient:
    if not patient_id:
        raise ValidationError(message='patient_id is required', code='PATIENT_ID_REQUIRED')
    try:
        return scope_to_clinic(Patient.objects.select_related('clinic'), profile).get(id=patient_id)
    except (Patient.DoesNotExist, ValueError, DjangoValidationError):
        raise _not_found('Patient', 'PATIENT_NOT_FOUND')


def _resolve_provider(profile, provider_id) -> Provider:
    if not provider_id:
        if profile.provider is None:
            raise ValidationError(
                message='Provider selection required. Please select a provider before submitting.',
                code='PROVIDER_REQUIRED',
            )
        return profile.provider

    try:
        provider = scope_to_clinic(Provider.objects.all(), profile).get(id=provider_id)
    except (Provider.DoesNotExist, ValueError, DjangoValidationError):
        raise ValidationError(
            message='Invalid provider_id. Please ensure a provider profile is configured.',
            code='INVALID_PROVIDER',
        )

    if profile.role == StaffProfile.ROLE_PROVIDER and provider.id != profile.provider_id:
        raise PermissionDeniedError(
            message='Not authorized to prescribe as this provider',
            code='PROVIDER_MISMATCH',
        )
    return provider


def _optional(model, object_id, patient, **filters):
    if not object_id:
        return None
    try:
        return model.objects.get(id=object_id, patient=patient, **filters)
    except (model.DoesNotExist, ValueError, DjangoValidationError):
        raise _not_found(model.__name__, f'{model.__name__.upper()}_NOT_FOUND')


def _reference_id():
    return f"rxq-{uuid.uuid4().hex[:16]}"


# ── 发送 ────────────────────────────────────────────────────────────────────

def send_to_pharmacy(order: Order, payload: dict, user) -> Order:
    """
    order 已经落库（PENDING 或 QUEUED_FOR_PROVIDER）。调药房，更新状态，出队。

    Raises:
        PharmacySubmissionError / ServiceUnavailableError: 药房失败。
            PENDING 的 order 标记 FAILED；QUEUED_FOR_PROVIDER 的 order 留在队列里，
            只记 error_message，provider 可以再次 approve-and-send。
    """
    client = get_pharmacy_client()
    try:
        response = client.submit_order(payload)
    except Exception as exc:
        if order.status != Order.STATUS_QUEUED_FOR_PROVIDER:
            order.status = Order.STATUS_FAILED
        order.error_message = getattr(exc, 'message', None) or str(exc)
        order.save(update_fields=['status', 'error_message', 'updated_at'])
        logger.error("[PRESCRIPTIONS] order=%s 药房提交失败: %s", order.id, order.error_message)
        log_action(
            user, 'prescription.failed', 'order', order.id,
            clinic=order.clinic, metadata={'error': order.error_message},
        )
        raise

    with transaction.atomic():
        order.status = Order.STATUS_SENT
        order.pharmacy_order_id = response.order_id
        order.pharmacy_status = response.status
        order.response_payload = response.raw
        order.error_message = ''
        order.sent_at = timezone.now()
        order.save(update_fields=[
            'status', 'pharmacy_order_id', 'pharmacy_status', 'response_payload',
            'error_message', 'sent_at', 'updated_at',
        ])

        if order.invoice_id:
            invoice = Invoice.objects.select_for_update().get(id=order.invoice_id)
            if not invoice.prescription_processed:
                apply_invoice_processed(invoice, order.provider)
        if order.refill_id:
            refill = RefillRequest.objects.select_for_update().get(id=order.refill_id)
            if refill.status in RefillRequest.QUEUE_STATUSES:
                apply_refill_prescribed(refill, order.provider)

        log_action(
            user, 'prescription.sent', 'order', order.id,
            clinic=order.clinic,
            metadata={'pharmacy_order_id': response.order_id, 'reference_id': order.reference_id},
        )

    ensure_invoice_processed(order)
    logger.info("[PRESCRIPTIONS] order=%s 已发送 pharmacy_order_id=%s", order.id, order.pharmacy_order_id)
    return order


def ensure_invoice_processed(order: Order):
    """药房已接单后再补一次出队标记；失败只记日志，处方已经发出去了。"""
    if not order.invoice_id:
        return
    try:
        Invoice.objects.filter(id=order.invoice_id, prescription_processed=False).update(
            prescription_processed=True,
            prescription_processed_at=timezone.now(),
            prescription_processed_by=order.provider,
        )
    except DatabaseError as exc:
        logger.warning("[PRESCRIPTIONS] order=%s invoice=%s 补标已处理失败: %s", order.id, order.invoice_id, exc)


def submit_prescription(user, data: dict) -> dict:
    """
    POST /api/prescriptions/ 的 service 入口。

    data:
        patient_id, invoice_id?, refill_id?, provider_id?, patient? (覆盖字段),
        rxs: [{medicationKey, sig, quantity, refills, daysSupply}],
        shipping_method?, plan_months?, approve_soap_note?, override_vial_safeguard?,
        queue_for_provider?

    Returns:
        {"order": Order, "queued_for_provider": bool}
    """
    profile = require_clinic(user)
    require_role(profile, PRESCRIBER_ROLES, 'Not authorized to create prescriptions')

    queue_for_provider = bool(data.get('queue_for_provider'))
    if queue_for_provider and profile.role not in QUEUE_ROLES:
        raise PermissionDeniedError(
            message='Only clinic admins can queue prescriptions for provider review',
            code='QUEUE_NOT_ALLOWED',
        )

    provider = _resolve_provider(profile, data.get('provider_id'))
    patient = _get_patient(profile, data.get('patient_id'))
    invoice = _optional(Invoice, data.get('invoice_id'), patient)
    refill = _optional(RefillRequest, data.get('refill_id'), patient)

    patient_info = validate_patient_info(build_patient_info(patient, data.get('patient')))
    lines = validate_rxs(data.get('rxs'))

    # 数字字段先校验完，再走 SOAP gate（它可能当场审批 note）
    clinic = patient.clinic
    try:
        plan_months = int(data.get('plan_months') or 1)
    except (TypeError, ValueError):
        raise ValidationError(message='plan_months must be an integer', code='INVALID_PLAN_MONTHS')
    try:
        shipping_method = int(data.get('shipping_method') or clinic.default_shipping_method)
    except (TypeError, ValueError):
        raise ValidationError(
            message='shipping_method must be an integer',
            code='INVALID_SHIPPING_METHOD',
            detail={'shipping_method': data.get('shipping_method')},
        )

    if not queue_for_provider:
        check_soap_gate(patient, profile, user, approve_soap_note=bool(data.get('approve_soap_note')))

    check_vial_safeguard(lines, plan_months, override=bool(data.get('override_vial_safeguard')))
    lines = add_syringe_kits(lines)

    reference_id = _reference_id()
    payload = build_lifefile_payload(reference_id, provider, clinic, patient_info, lines, shipping_method)

    with transaction.atomic():
        order = Order.objects.create(
            clinic=clinic,
            patient=patient,
            provider=provider,
            invoice=invoice,
            refill=refill,
            status=Order.STATUS_QUEUED_FOR_PROVIDER if queue_for_provider else Order.STATUS_PENDING,
            rxs=lines,
            shipping_method=shipping_method,
            reference_id=reference_id,
            request_payload=payload,
            queued_by=user if queue_for_provider else None,
            queued_at=timezone.now() if queue_for_provider else None,
        )

    if queue_for_provider:
        log_action(
            user, 'prescription.queued_for_provider', 'order', order.id,
            clinic=clinic, metadata={'provider_id': str(provider.id)},
        )
        logger.info("[PRESCRIPTIONS] order=%s 已排给 provider=%s", order.id, provider.id)
        return {'order': order, 'queued_for_provider': True}

    send_to_pharmacy(order, payload, user)
    return {'order': order, 'queued_for_provider': False}


# ── Admin 排队的订单 ────────────────────────────────────────────────────────

def _get_queued_order(profile, order_id) -> Order:
    try:
        return scope_to_clinic(
            Order.objects.select_related('patient', 'clinic', 'provider'), profile,
        ).get(id=order_id, status=Order.STATUS_QUEUED_FOR_PROVIDER)
    except (Order.DoesNotExist, ValueError, DjangoValidationError):
        raise BlockError(
            message='Order not found, does not belong to your clinic, or is no longer queued',
            code='ORDER_NOT_QUEUED',
            http_status=404,
        )


def approve_and_send_order(user, order_id, data=None) -> Order:
    """provider 审核 admin 排好的订单，然后发给药房。SOAP gate 在这里检查。"""
    data = data or {}
    profile = require_clinic(user)
    require_role(profile, APPROVER_ROLES, 'Only providers can approve and send queued prescriptions')
    if profile.provider is None:
        raise ValidationError(
            message='Provider selection required. Please select a provider before submitting.',
            code='PROVIDER_REQUIRED',
        )

    order = _get_queued_order(profile, order_id)
    patient = order.patient
    check_soap_gate(patient, profile, user, approve_soap_note=bool(data.get('approve_soap_note')))
    patient_info = validate_patient_info(build_patient_info(patient))

    # 以审批人为 prescriber 重新生成 payload
    provider = profile.provider
    payload = build_lifefile_payload(
        order.reference_id or _reference_id(), provider, order.clinic, patient_info, order.rxs, order.shipping_method,
    )
    order.provider = provider
    order.request_payload = payload
    order.save(update_fields=['provider', 'request_payload', 'updated_at'])

    log_action(user, 'prescription.approved', 'order', order.id, clinic=order.clinic)
    return send_to_pharmacy(order, payload, user)


def decline_order(user, order_id, reason) -> Order:
    if not isinstance(reason, str) or len(reason.strip()) < MIN_DECLINE_REASON_LENGTH:
        raise ValidationError(
            message='A reason for declining is required (minimum 10 characters)',
            code='DECLINE_REASON_REQUIRED',
        )
    profile = require_clinic(user)
    require_role(profile, APPROVER_ROLES, 'Only providers can decline queued prescriptions')

    with transaction.atomic():
        order = _get_queued_order(profile, order_id)
        order.status = Order.STATUS_DECLINED
        order.decline_reason = reason.strip()
        order.declined_at = timezone.now()
        order.save(update_fields=['status', 'decline_reason', 'declined_at', 'updated_at'])
        log_action(
            user, 'prescription.declined', 'order', order.id,
            clinic=order.clinic, metadata={'reason': order.decline_reason},
        )

    logger.info("[PRESCRIPTIONS] order=%s declined by=%s", order.id, user.email)
    return order
