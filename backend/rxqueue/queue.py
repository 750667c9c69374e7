"""
Provider 处方队列。

三个来源合并成一个 FIFO 队列（最早进入队列的排最前）：
  1. invoice — status=PAID 且 prescription_processed=False（排队时间 = paid_at）
  2. refill  — status in (APPROVED, PENDING_PROVIDER)（排队时间 = provider_queued_at / admin_approved_at / created_at）
  3. order   — admin 排给 provider 的 QUEUED_FOR_PROVIDER 订单（排队时间 = queued_at）

tab='needs_info' 只返回被 hold 的 invoice；ready tab 不含 hold 的 invoice。
所有查询都限定在调用者的 clinic 内。
"""

import logging
import re

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import OperationalError, transaction
from django.db.models.functions import Coalesce
from django.utils import timezone

from .address import reconcile_address, reconcile_patient_address
from .audit import log_action
from .exceptions import BlockError, ServiceUnavailableError, ValidationError
from .medications import auto_select_medication, get_glp1_family, get_medication
from .models import Invoice, Order, OrderSet, Patient, RefillRequest
from .soap_notes import get_latest_soap_note, get_soap_status
from .staff import PRESCRIBER_ROLES, require_clinic, require_role, scope_to_clinic

logger = logging.getLogger(__name__)

TAB_READY = 'ready'
TAB_NEEDS_INFO = 'needs_info'
TABS = (TAB_READY, TAB_NEEDS_INFO)

MIN_DECLINE_REASON_LENGTH = 10

NOT_IN_QUEUE_MESSAGE = 'Invoice not found, does not belong to your clinic, or already processed'

# plan key（小写，去空格和 -）→ (label, months)
PLAN_DURATIONS = {
    'monthly': ('Monthly', 1),
    'quarterly': ('Quarterly', 3),
    'semester': ('6-Month', 6),
    '6month': ('6-Month', 6),
    'annual': ('Annual', 12),
    'yearly': ('Annual', 12),
}

# invoice metadata 里 GLP-1 相关字段的各种写法（key 先经过 normalize_key）
GLP1_USED_PATTERNS = (
    'glp1last30days', 'glp1last30', 'usedglp1inlast30days',
    'usedglp1inlast30', 'glp1usage', 'usedglp1',
)
GLP1_TYPE_PATTERNS = (
    'glp1type', 'glp1last30medicationtype', 'recentglp1medicationtype',
    'currentglp1medication', 'currentglp1', 'glp1medication',
    'recentglp1type', 'glp1medicationtype',
)
SEMAGLUTIDE_DOSE_PATTERNS = (
    'semaglutidedosage', 'semaglutidedose', 'semadose',
    'glp1last30medicationdosemg', 'glp1dose', 'glp1dosage',
)
TIRZEPATIDE_DOSE_PATTERNS = ('tirzepatidedosage', 'tirzepatidedose', 'tirzdose')


# ── 小工具 ──────────────────────────────────────────────────────────────────

def normalize_key(key) -> str:
    return re.sub(r'[-_\s]', '', str(key or '').lower())


def _is_yes(value) -> bool:
    return value is True or str(value or '').strip().lower() in ('yes', 'true', '1')


def _clean_dose(value):
    if value is None:
        return None
    numeric = re.sub(r'[^\d.]', '', str(value))
    try:
        return numeric if numeric and float(numeric) > 0 else None
    except ValueError:
        return None


def _capitalize(value: str) -> str:
    return value[:1].upper() + value[1:] if value else value


def format_amount(cents) -> str:
    if cents is None:
        return '-'
    return f"${cents / 100:.2f}"


def plan_info(plan: str):
    """'Quarterly' → ('Quarterly', 3)；不认识的 plan 按 1 个月。"""
    key = (plan or '').lower().replace(' ', '').replace('-', '')
    return PLAN_DURATIONS.get(key, (plan or 'Monthly', 1))


def plan_months_for_vials(vial_count) -> int:
    return vial_count if vial_count in (3, 6) else 1


def plan_label_for_months(months) -> str:
    return {6: '6-Month', 3: 'Quarterly'}.get(months, 'Monthly')


# ── Treatment / GLP-1 ───────────────────────────────────────────────────────

def derive_treatment(invoice):
    """
    invoice → (treatment_display, product, plan)。

    line_items[0] 的 description / product 覆盖 metadata.product；
    treatment 去掉结尾的 "product"，合并空白，首字母大写，再拼上 medicationType。
    """
    metadata = invoice.metadata or {}
    line_items = invoice.line_items or []

    treatment = metadata.get('product') or 'Unknown Treatment'
    medication_type = metadata.get('medicationType') or ''
    plan = metadata.get('plan') or ''

    if line_items and isinstance(line_items[0], dict):
        first = line_items[0]
        if first.get('description'):
            treatment = first['description']
        if first.get('product'):
            treatment = first['product']
        medication_type = first.get('medicationType') or medication_type
        plan = first.get('plan') or plan

    clean = re.sub(r'product$', '', str(treatment), flags=re.IGNORECASE)
    clean = _capitalize(' '.join(clean.split()))
    if medication_type:
        clean = f"{clean} {str(medication_type).capitalize()}".strip()
    return clean, metadata.get('product') or '', plan


# 队列自己写进 metadata 的字段，不参与 GLP-1 模糊匹配
_RESERVED_METADATA_KEYS = frozenset({'product', 'medicationtype', 'plan', 'source', 'invoicenumber'})


_KEY_MATCHERS = (
    lambda key, pattern: key == pattern,
    lambda key, pattern: pattern in key,
    lambda key, pattern: key in pattern,
)


def _find_metadata_value(metadata: dict, patterns):
    """
    按 完全相同 → key 包含 pattern → pattern 包含 key 的顺序找。
    "glp1-last-30" 不能抢走 "glp1-last-30-medication-type" 的匹配。
    """
    keyed = [(normalize_key(key), value) for key, value in metadata.items()]
    keyed = [(key, value) for key, value in keyed if key and key not in _RESERVED_METADATA_KEYS]
    for matches in _KEY_MATCHERS:
        for pattern in patterns:
            for key, value in keyed:
                if not matches(key, pattern):
                    continue
                text = str(value).strip() if value is not None else ''
                if text and text != '-':
                    return text
    return None


def extract_glp1_info(patient, metadata=None) -> dict:
    """
    GLP-1 用药史，依次看：
      1. patient.glp1_history（intake 存下来的结构化数据）
      2. patient.intake_answers（问答列表）
      3. invoice metadata（各 clinic 字段命名不统一，按 pattern 模糊匹配）

    Returns:
        {"used_glp1": bool, "glp1_type": str|None, "last_dose": str|None}
    """
    history = patient.glp1_history or {}
    if _is_yes(history.get('usedLast30Days')):
        return {
            'used_glp1': True,
            'glp1_type': history.get('medicationType') or None,
            'last_dose': _clean_dose(history.get('doseMg')),
        }

    used, glp1_type, last_dose = False, None, None
    for answer in patient.intake_answers or []:
        if not isinstance(answer, dict):
            continue
        key = normalize_key(answer.get('question') or answer.get('field'))
        value = answer.get('answer') or answer.get('value') or ''
        if 'glp1last30' in key or 'usedglp1' in key:
            used = used or _is_yes(value)
        if 'glp1type' in key or 'medicationtype' in key or 'recentglp1' in key:
            if value and str(value).lower() != 'none':
                glp1_type = str(value)
        if 'semaglutidedose' in key or 'tirzepatidedose' in key or 'dosemg' in key:
            if value and str(value) not in ('-', '0'):
                last_dose = _clean_dose(value)
    if used:
        return {'used_glp1': True, 'glp1_type': glp1_type, 'last_dose': last_dose}

    metadata = metadata or {}
    if not metadata:
        return {'used_glp1': False, 'glp1_type': None, 'last_dose': None}

    used = _is_yes(_find_metadata_value(metadata, GLP1_USED_PATTERNS))
    type_value = _find_metadata_value(metadata, GLP1_TYPE_PATTERNS)
    glp1_type = type_value if type_value and type_value.lower() not in ('none', 'no') else None

    if glp1_type and 'tirzepatide' in glp1_type.lower():
        dose = (_find_metadata_value(metadata, TIRZEPATIDE_DOSE_PATTERNS)
                or _find_metadata_value(metadata, SEMAGLUTIDE_DOSE_PATTERNS))
    else:
        dose = (_find_metadata_value(metadata, SEMAGLUTIDE_DOSE_PATTERNS)
                or _find_metadata_value(metadata, TIRZEPATIDE_DOSE_PATTERNS))

    return {'used_glp1': used, 'glp1_type': glp1_type, 'last_dose': _clean_dose(dose)}


# ── Queue items ─────────────────────────────────────────────────────────────

def _soap_summary(patient):
    note = get_latest_soap_note(patient)
    summary = None
    if note is not None:
        summary = {
            'id': str(note.id),
            'status': note.status,
            'created_at': note.created_at.isoformat(),
            'approved_at': note.approved_at.isoformat() if note.approved_at else None,
            'is_approved': note.is_approved,
        }
    return summary, get_soap_status(note)


def _clinic_summary(clinic):
    return {
        'id': str(clinic.id),
        'name': clinic.name,
        'subdomain': clinic.subdomain,
        'pharmacy_enabled': clinic.pharmacy_enabled,
        'practice_name': clinic.practice_name,
    }


def _patient_summary(patient):
    return {
        'patient_id': str(patient.id),
        'patient_display_id': patient.patient_id,
        'patient_name': patient.full_name,
        'patient_email': patient.email,
        'patient_phone': patient.phone,
        'patient_dob': patient.dob,
    }


def _iso(value):
    return value.isoformat() if value else None


def build_invoice_item(invoice) -> dict:
    treatment, _product, plan = derive_treatment(invoice)
    plan_label, plan_months = plan_info(plan)
    soap_note, soap_status = _soap_summary(invoice.patient)
    amount = invoice.amount or invoice.amount_paid
    queued_at = invoice.paid_at or invoice.created_at

    return {
        'queue_type': 'invoice',
        'invoice_id': str(invoice.id),
        'refill_id': None,
        'order_id': None,
        **_patient_summary(invoice.patient),
        'treatment': treatment,
        'plan': plan_label,
        'plan_months': plan_months,
        'vial_count': plan_months_for_vials(plan_months),
        'is_refill': False,
        'amount': amount,
        'amount_formatted': format_amount(amount),
        'paid_at': _iso(invoice.paid_at),
        'created_at': _iso(invoice.created_at),
        'queued_at': _iso(queued_at),
        'invoice_number': invoice.invoice_number,
        'held_at': _iso(invoice.held_at),
        'hold_reason': invoice.hold_reason,
        'glp1_info': extract_glp1_info(invoice.patient, invoice.metadata),
        'soap_note': soap_note,
        'has_soap_note': soap_note is not None,
        'soap_note_status': soap_status,
        'clinic_id': str(invoice.clinic_id),
        'clinic': _clinic_summary(invoice.clinic),
        '_sort_key': queued_at,
    }


def build_refill_item(refill) -> dict:
    if refill.medication_name:
        treatment = f"{refill.medication_name} {refill.medication_strength}".strip()
    else:
        treatment = 'Refill Prescription'
    plan_months = plan_months_for_vials(refill.vial_count)
    soap_note, soap_status = _soap_summary(refill.patient)
    queued_at = refill.provider_queued_at or refill.admin_approved_at or refill.created_at

    # refill 患者肯定用过 GLP-1，类型从药名推断
    family = get_glp1_family(treatment)
    invoice_number = f"INV-{refill.invoice_id}" if refill.invoice_id else f"REFILL-{refill.id}"

    return {
        'queue_type': 'refill',
        'invoice_id': str(refill.invoice_id) if refill.invoice_id else None,
        'refill_id': str(refill.id),
        'order_id': None,
        **_patient_summary(refill.patient),
        'treatment': treatment,
        'plan': refill.plan_name or plan_label_for_months(plan_months),
        'plan_months': plan_months,
        'vial_count': refill.vial_count,
        'is_refill': True,
        'requested_early': refill.requested_early,
        'patient_notes': refill.patient_notes,
        'amount': None,
        'amount_formatted': '-',
        'paid_at': None,
        'created_at': _iso(refill.created_at),
        'queued_at': _iso(queued_at),
        'invoice_number': invoice_number,
        'glp1_info': {
            'used_glp1': True,
            'glp1_type': family.capitalize() if family else (refill.medication_name or None),
            'last_dose': refill.medication_strength or None,
        },
        'soap_note': soap_note,
        'has_soap_note': soap_note is not None,
        'soap_note_status': soap_status,
        'clinic_id': str(refill.clinic_id),
        'clinic': _clinic_summary(refill.clinic),
        '_sort_key': queued_at,
    }


def build_order_item(order) -> dict:
    first_rx = (order.rxs or [{}])[0]
    med = get_medication(first_rx.get('medicationKey'))
    treatment = f"{med.name} {med.strength}" if med else 'Queued Prescription'
    soap_note, soap_status = _soap_summary(order.patient)
    queued_at = order.queued_at or order.created_at

    return {
        'queue_type': 'order',
        'invoice_id': str(order.invoice_id) if order.invoice_id else None,
        'refill_id': str(order.refill_id) if order.refill_id else None,
        'order_id': str(order.id),
        **_patient_summary(order.patient),
        'treatment': treatment,
        'rxs': order.rxs,
        'is_refill': order.refill_id is not None,
        'amount': None,
        'amount_formatted': '-',
        'created_at': _iso(order.created_at),
        'queued_at': _iso(queued_at),
        'queued_by': getattr(order.queued_by, 'email', None),
        'last_error': order.error_message or None,
        'invoice_number': f"ORDER-{order.id}",
        'soap_note': soap_note,
        'has_soap_note': soap_note is not None,
        'soap_note_status': soap_status,
        'clinic_id': str(order.clinic_id),
        'clinic': _clinic_summary(order.clinic),
        '_sort_key': queued_at,
    }


# ── 队列读取 ────────────────────────────────────────────────────────────────

def _invoice_queryset(clinic, tab):
    qs = Invoice.objects.filter(
        clinic=clinic,
        status=Invoice.STATUS_PAID,
        prescription_processed=False,
    )
    if tab == TAB_NEEDS_INFO:
        return qs.filter(held_at__isnull=False)
    return qs.filter(held_at__isnull=True)


def _database_unavailable():
    return ServiceUnavailableError(
        message='The prescription queue is temporarily unavailable. Please retry shortly.',
        code='DATABASE_UNAVAILABLE',
        retry_after=settings.QUEUE_RETRY_AFTER_SECONDS,
    )


def _parse_page(limit, offset):
    try:
        limit = int(limit if limit is not None else settings.PRESCRIPTION_QUEUE_PAGE_SIZE)
        offset = int(offset or 0)
    except (TypeError, ValueError):
        raise ValidationError(message='limit and offset must be integers', code='INVALID_PAGINATION')
    if limit < 1 or offset < 0:
        raise ValidationError(message='limit must be positive and offset non-negative', code='INVALID_PAGINATION')
    return limit, offset


def get_prescription_queue(clinic, limit=None, offset=0, tab=TAB_READY) -> dict:
    """
    读取队列的一页。

    合并三个来源后按排队时间升序。每个来源在数据库里按同一个排队时间
    （build_*_item 里的 queued_at）排序后取前 offset+limit 条，
    合并后的前 offset+limit 条一定落在其中。

    Raises:
        ValidationError: tab / 分页参数非法
        ServiceUnavailableError: 数据库暂时不可用（503 + Retry-After）
    """
    if tab not in TABS:
        raise ValidationError(
            message=f"Unknown queue tab '{tab}'",
            code='INVALID_TAB',
            detail={'allowed': list(TABS)},
        )
    limit, offset = _parse_page(limit, offset)
    window = offset + limit

    try:
        invoices_qs = _invoice_queryset(clinic, tab).select_related('patient', 'clinic')
        invoice_count = invoices_qs.count()
        invoices_qs = invoices_qs.order_by(Coalesce('paid_at', 'created_at'), 'id')
        items = [build_invoice_item(inv) for inv in invoices_qs[:window]]

        refill_count = order_count = 0
        if tab == TAB_READY:
            refills_qs = RefillRequest.objects.filter(
                clinic=clinic, status__in=RefillRequest.QUEUE_STATUSES,
            ).select_related('patient', 'clinic')
            refill_count = refills_qs.count()
            refills_qs = refills_qs.order_by(
                Coalesce('provider_queued_at', 'admin_approved_at', 'created_at'), 'id',
            )
            items += [build_refill_item(r) for r in refills_qs[:window]]

            orders_qs = Order.objects.filter(
                clinic=clinic, status=Order.STATUS_QUEUED_FOR_PROVIDER,
            ).select_related('patient', 'clinic', 'queued_by')
            order_count = orders_qs.count()
            orders_qs = orders_qs.order_by(Coalesce('queued_at', 'created_at'), 'id')
            items += [build_order_item(o) for o in orders_qs[:window]]
    except OperationalError as exc:
        logger.warning("[QUEUE] clinic=%s 数据库不可用: %s", clinic.id, exc)
        raise _database_unavailable()

    items.sort(key=lambda item: item['_sort_key'])
    page = items[offset:window]
    for item in page:
        item.pop('_sort_key')

    total = invoice_count + refill_count + order_count
    logger.info("[QUEUE] clinic=%s tab=%s total=%d returned=%d", clinic.id, tab, total, len(page))
    return {
        'items': page,
        'total': total,
        'invoice_count': invoice_count,
        'refill_count': refill_count,
        'order_count': order_count,
        'limit': limit,
        'offset': offset,
        'has_more': offset + len(page) < total,
    }


def list_queue(user, limit=None, offset=0, tab=TAB_READY) -> dict:
    profile = require_clinic(user)
    return get_prescription_queue(profile.clinic, limit=limit, offset=offset, tab=tab)


# ── 队列动作 ────────────────────────────────────────────────────────────────

def _get_pending_invoice(profile, invoice_id, for_update=False) -> Invoice:
    qs = Invoice.objects.select_related('patient', 'clinic')
    if for_update:
        qs = qs.select_for_update()
    try:
        return qs.get(
            id=invoice_id,
            clinic_id=profile.clinic_id,
            status=Invoice.STATUS_PAID,
            prescription_processed=False,
        )
    except (Invoice.DoesNotExist, ValueError, DjangoValidationError):
        raise BlockError(message=NOT_IN_QUEUE_MESSAGE, code='NOT_IN_QUEUE', http_status=404)


def _get_pending_refill(profile, refill_id, for_update=False) -> RefillRequest:
    qs = RefillRequest.objects.select_related('patient', 'clinic')
    if for_update:
        qs = qs.select_for_update()
    try:
        return qs.get(id=refill_id, clinic_id=profile.clinic_id, status__in=RefillRequest.QUEUE_STATUSES)
    except (RefillRequest.DoesNotExist, ValueError, DjangoValidationError):
        raise BlockError(
            message='Refill not found, does not belong to your clinic, or already processed',
            code='NOT_IN_QUEUE',
            http_status=404,
        )


def apply_invoice_processed(invoice, provider):
    invoice.prescription_processed = True
    invoice.prescription_processed_at = timezone.now()
    invoice.prescription_processed_by = provider
    invoice.save(update_fields=[
        'prescription_processed', 'prescription_processed_at', 'prescription_processed_by', 'updated_at',
    ])


def apply_refill_prescribed(refill, provider):
    refill.status = RefillRequest.STATUS_PRESCRIBED
    refill.prescribed_at = timezone.now()
    refill.prescribed_by = provider
    refill.save(update_fields=['status', 'prescribed_at', 'prescribed_by'])


def mark_processed(user, invoice_id=None, refill_id=None) -> dict:
    """标记处理完成（provider 在外部系统开过处方的情况）。invoice 和 refill 二选一。"""
    if not invoice_id and not refill_id:
        raise ValidationError(message='Invoice ID is required', code='INVOICE_ID_REQUIRED')

    profile = require_clinic(user)
    require_role(profile, PRESCRIBER_ROLES)

    with transaction.atomic():
        if refill_id:
            refill = _get_pending_refill(profile, refill_id, for_update=True)
            apply_refill_prescribed(refill, profile.provider)
            log_action(user, 'queue.refill_processed', 'refill', refill.id, clinic=refill.clinic)
            logger.info("[QUEUE] refill=%s 标记为 PRESCRIBED by=%s", refill.id, user.email)
            return {
                'success': True,
                'message': 'Refill marked as prescribed',
                'refill': {
                    'id': str(refill.id),
                    'status': refill.status,
                    'prescribed_at': _iso(refill.prescribed_at),
                    'clinic_id': str(refill.clinic_id),
                },
            }

        invoice = _get_pending_invoice(profile, invoice_id, for_update=True)
        if invoice.patient.clinic_id != invoice.clinic_id:
            # 允许继续处理，但记一笔，方便审计
            logger.warning(
                "[QUEUE] invoice=%s clinic 不一致: invoice_clinic=%s patient_clinic=%s",
                invoice.id, invoice.clinic_id, invoice.patient.clinic_id,
            )
        apply_invoice_processed(invoice, profile.provider)
        log_action(user, 'queue.invoice_processed', 'invoice', invoice.id, clinic=invoice.clinic)

    logger.info("[QUEUE] invoice=%s 标记为已处理 by=%s", invoice.id, user.email)
    return {
        'success': True,
        'message': 'Prescription marked as processed',
        'invoice': {
            'id': str(invoice.id),
            'prescription_processed': invoice.prescription_processed,
            'prescription_processed_at': _iso(invoice.prescription_processed_at),
            'clinic_id': str(invoice.clinic_id),
        },
    }


def decline_invoice(user, invoice_id, reason) -> dict:
    if not invoice_id:
        raise ValidationError(message='Invoice ID is required', code='INVOICE_ID_REQUIRED')
    if not isinstance(reason, str) or len(reason.strip()) < MIN_DECLINE_REASON_LENGTH:
        raise ValidationError(
            message='A reason for declining is required (minimum 10 characters)',
            code='DECLINE_REASON_REQUIRED',
        )

    profile = require_clinic(user)
    require_role(profile, PRESCRIBER_ROLES)
    reason = reason.strip()
    provider = profile.provider
    declined_by_name = provider.full_name if provider else user.email

    with transaction.atomic():
        invoice = _get_pending_invoice(profile, invoice_id, for_update=True)
        now = timezone.now()
        invoice.prescription_processed = True
        invoice.prescription_processed_at = now
        invoice.prescription_processed_by = provider
        invoice.declined_at = now
        invoice.declined_by = provider
        invoice.decline_reason = reason
        invoice.save(update_fields=[
            'prescription_processed', 'prescription_processed_at', 'prescription_processed_by',
            'declined_at', 'declined_by', 'decline_reason', 'updated_at',
        ])
        log_action(
            user, 'queue.invoice_declined', 'invoice', invoice.id,
            clinic=invoice.clinic, metadata={'reason': reason},
        )

    logger.info("[QUEUE] invoice=%s declined by=%s", invoice.id, declined_by_name)
    return {
        'success': True,
        'message': 'Prescription declined',
        'invoice': {
            'id': str(invoice.id),
            'prescription_processed': True,
            'prescription_declined': True,
            'declined_by': declined_by_name,
            'declined_at': _iso(invoice.declined_at),
        },
    }


def hold_invoice(user, invoice_id, reason) -> Invoice:
    """移到 needs_info tab，等患者补资料。"""
    reason = (reason or '').strip()
    if not reason:
        raise ValidationError(message='A reason for the hold is required', code='HOLD_REASON_REQUIRED')

    profile = require_clinic(user)
    require_role(profile, PRESCRIBER_ROLES)
    invoice = _get_pending_invoice(profile, invoice_id)
    if invoice.held_at is not None:
        raise BlockError(message='Invoice is already on hold', code='ALREADY_ON_HOLD')

    invoice.held_at = timezone.now()
    invoice.hold_reason = reason
    invoice.save(update_fields=['held_at', 'hold_reason', 'updated_at'])
    log_action(user, 'queue.invoice_held', 'invoice', invoice.id, clinic=invoice.clinic, metadata={'reason': reason})
    return invoice


def resume_invoice(user, invoice_id) -> Invoice:
    profile = require_clinic(user)
    require_role(profile, PRESCRIBER_ROLES)
    invoice = _get_pending_invoice(profile, invoice_id)
    if invoice.held_at is None:
        raise BlockError(message='Invoice is not on hold', code='NOT_ON_HOLD')

    invoice.held_at = None
    invoice.hold_reason = ''
    invoice.save(update_fields=['held_at', 'hold_reason', 'updated_at'])
    log_action(user, 'queue.invoice_resumed', 'invoice', invoice.id, clinic=invoice.clinic)
    return invoice


# ── 详情 ────────────────────────────────────────────────────────────────────

def pharmacy_gender(value) -> str:
    """患者 gender → Lifefile 要求的 'm' / 'f'；无法映射返回 ''。"""
    lowered = str(value or '').strip().lower()
    if lowered in ('m', 'male', 'man'):
        return 'm'
    if lowered in ('f', 'female', 'woman'):
        return 'f'
    return ''


def get_queue_item_details(user, invoice_id) -> dict:
    """
    开处方页面需要的全部信息：患者（地址已修正）、临床背景、
    最新 SOAP note、clinic，以及预填好的处方表单。
    """
    profile = require_clinic(user)
    try:
        invoice = _get_pending_invoice(profile, invoice_id)
    except OperationalError as exc:
        logger.warning("[QUEUE] invoice=%s 数据库不可用: %s", invoice_id, exc)
        raise _database_unavailable()

    patient = invoice.patient
    address = reconcile_address(patient.address1, patient.address2, patient.city, patient.state, patient.zip)

    treatment, product, plan = derive_treatment(invoice)
    _, plan_months = plan_info(plan)
    glp1_info = extract_glp1_info(patient, invoice.metadata)
    order_sets = OrderSet.objects.filter(clinic=invoice.clinic, is_active=True)
    selection = auto_select_medication(
        treatment,
        product=product,
        glp1_info=glp1_info,
        plan_months=plan_months,
        order_sets=list(order_sets),
    )
    note = get_latest_soap_note(patient)

    return {
        'invoice': invoice,
        'patient': patient,
        'address': address,
        'soap_note': note,
        'soap_note_status': get_soap_status(note),
        'treatment': treatment,
        'plan_months': plan_months,
        'glp1_info': glp1_info,
        'prescription_form': {
            'medications': [line.as_dict() for line in selection.lines],
            'selection_source': selection.source,
            'order_set_name': selection.order_set_name,
            'is_new_patient': selection.is_new_patient,
            'shipping_method': invoice.clinic.default_shipping_method,
            'gender': pharmacy_gender(patient.gender),
            'address': address.as_dict(),
        },
    }


def reconcile_patient(user, patient_id):
    """修复并保存患者地址。Returns: (patient, Address, changed)"""
    profile = require_clinic(user)
    require_role(profile, PRESCRIBER_ROLES)
    try:
        patient = scope_to_clinic(Patient.objects.all(), profile).get(id=patient_id)
    except (Patient.DoesNotExist, ValueError, DjangoValidationError):
        raise BlockError(message='Patient not found', code='PATIENT_NOT_FOUND', http_status=404)

    address, changed = reconcile_patient_address(patient)
    if changed:
        log_action(user, 'patient.address_reconciled', 'patient', patient.id, clinic=patient.clinic)
    return patient, address, changed
