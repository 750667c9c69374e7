"""
SOAP note：AI 生成 / 手动录入 / provider 审批 / 锁定。

状态机：
  (无)  ──generate / manual──▶ DRAFT ──approve──▶ APPROVED ──lock──▶ LOCKED
                                 ▲                    │
                                 └──────edit──────────┘   （LOCKED 不可再改）

审批是幂等的：已经 APPROVED / LOCKED 的 note 再 approve 直接原样返回。
"""

import json
import logging
import re
from dataclasses import dataclass

from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils import timezone

from .audit import log_action
from .exceptions import BlockError, PermissionDeniedError, ValidationError
from .llm import get_llm_service
from .models import Invoice, Patient, SoapNote, StaffProfile
from .staff import APPROVER_ROLES, require_clinic, require_role, scope_to_clinic

logger = logging.getLogger(__name__)

SOAP_SECTIONS = ('subjective', 'objective', 'assessment', 'plan')
# subjective 少于这个长度的 note 视为占位，不算数
MIN_SUBJECTIVE_LENGTH = 20

SYSTEM_PROMPT = (
    "You are a licensed telehealth clinician documenting an asynchronous visit. "
    "Write a concise, clinically accurate SOAP note from the patient's intake answers. "
    "Do not invent vitals or exam findings that are not in the intake. "
    "Respond with a single JSON object with the keys "
    "\"subjective\", \"objective\", \"assessment\" and \"plan\"; each value is plain text."
)


@dataclass
class EnsureSoapNoteResult:
    success: bool
    action: str                      # existing / generated / failed / no_data
    soap_note: SoapNote = None
    error: str = ''

    @property
    def status(self):
        return self.soap_note.status if self.soap_note else None


# ── 查询 ────────────────────────────────────────────────────────────────────

def get_latest_soap_note(patient):
    return patient.soap_notes.order_by('-created_at').first()


def get_soap_status(note) -> str:
    """队列上显示的 SOAP 状态：MISSING / DRAFT / APPROVED / LOCKED。"""
    return note.status if note is not None else 'MISSING'


def get_meaningful_soap_note(patient):
    note = (
        patient.soap_notes
        .exclude(subjective='')
        .order_by('-created_at')
        .first()
    )
    if note is not None and len(note.subjective) > MIN_SUBJECTIVE_LENGTH:
        return note
    return None


def is_test_patient(patient) -> bool:
    first = (patient.first_name or '').lower()
    last = (patient.last_name or '').lower()
    email = (patient.email or '').lower()
    if first == 'unknown' or last == 'unknown':
        return True
    return any(marker in value for marker in ('test', 'demo') for value in (first, last, email))


# ── 生成 ────────────────────────────────────────────────────────────────────

def build_soap_prompt(patient, invoice=None) -> str:
    answers = patient.intake_answers or []
    answer_lines = '\n'.join(
        f"- {item.get('question', '').strip()}: {item.get('answer', '')}"
        for item in answers
        if isinstance(item, dict) and item.get('question')
    ) or '- (no intake answers on file)'

    glp1 = patient.glp1_history or {}
    treatment = ''
    if invoice is not None:
        treatment = (invoice.metadata or {}).get('product') or ''

    return f"""Patient Information:
- Name: {patient.first_name} {patient.last_name}
- DOB: {patient.dob or 'Not provided'}
- Sex: {patient.gender or 'Not provided'}
- Allergies: {patient.allergies or 'None reported'}
- Medical conditions: {patient.medical_conditions or 'None reported'}
- Current medications: {patient.current_medications or 'None reported'}
- GLP-1 in last 30 days: {'Yes' if glp1.get('usedLast30Days') else 'No'}{f" ({glp1.get('medicationType')}, {glp1.get('doseMg')} mg)" if glp1.get('usedLast30Days') else ''}

Requested treatment: {treatment or 'Not specified'}

Intake answers:
{answer_lines}

Write the SOAP note as JSON."""


def parse_soap_response(content: str) -> dict:
    """LLM 输出 → {subjective, objective, assessment, plan}。允许外面包一层 ```json```。"""
    text = (content or '').strip()
    fenced = re.match(r'^```(?:json)?\s*(.*?)\s*```$', text, re.DOTALL)
    if fenced:
        text = fenced.group(1)

    try:
        data = json.loads(text)
    except ValueError as exc:
        raise ValueError(f"LLM response is not valid JSON: {exc}") from exc

    missing = [section for section in SOAP_SECTIONS if not str(data.get(section) or '').strip()]
    if missing:
        raise ValueError(f"LLM response missing SOAP sections: {missing}")
    return {section: str(data[section]).strip() for section in SOAP_SECTIONS}


def generate_soap_note_for_patient(patient, invoice=None) -> SoapNote:
    """
    调 LLM 生成一条 DRAFT note。

    Raises:
        Exception: LLM 调用或解析失败，由调用方决定重试（tasks.py）或报告。
    """
    service = get_llm_service()
    response = service.complete(SYSTEM_PROMPT, build_soap_prompt(patient, invoice))
    sections = parse_soap_response(response.content)

    note = SoapNote.objects.create(
        clinic=patient.clinic,
        patient=patient,
        invoice=invoice,
        status=SoapNote.STATUS_DRAFT,
        source_type=SoapNote.SOURCE_AI,
        generated_by_ai=True,
        llm_model=response.model,
        prompt_tokens=response.prompt_tokens,
        completion_tokens=response.completion_tokens,
        **sections,
    )
    logger.info("[SOAP] patient=%s 生成 note=%s model=%s", patient.id, note.id, response.model)
    return note


def ensure_soap_note_exists(patient, invoice=None) -> EnsureSoapNoteResult:
    """已有有效 note 就复用，否则尝试生成。失败不抛出，结果里带 action。"""
    existing = get_meaningful_soap_note(patient)
    if existing is not None:
        return EnsureSoapNoteResult(success=True, action='existing', soap_note=existing)

    if is_test_patient(patient):
        logger.info("[SOAP] patient=%s 测试 / demo 患者，跳过", patient.id)
        return EnsureSoapNoteResult(success=False, action='no_data', error='Test/demo patient - skipped')

    has_invoice_data = invoice is not None and bool(invoice.metadata)
    if not patient.intake_answers and not has_invoice_data:
        return EnsureSoapNoteResult(success=False, action='no_data', error='No intake data available')

    try:
        note = generate_soap_note_for_patient(patient, invoice)
    except Exception as exc:
        logger.exception("[SOAP] patient=%s 生成失败", patient.id)
        return EnsureSoapNoteResult(success=False, action='failed', error=str(exc))

    return EnsureSoapNoteResult(success=True, action='generated', soap_note=note)


# ── API 入口 ────────────────────────────────────────────────────────────────

def _get_patient(profile, patient_id) -> Patient:
    try:
        return scope_to_clinic(Patient.objects.select_related('clinic'), profile).get(id=patient_id)
    except (Patient.DoesNotExist, ValueError, DjangoValidationError):
        raise BlockError(
            message='Patient not found',
            code='PATIENT_NOT_FOUND',
            http_status=404,
        )


def _get_note(profile, note_id) -> SoapNote:
    try:
        return scope_to_clinic(SoapNote.objects.select_related('patient'), profile).get(id=note_id)
    except (SoapNote.DoesNotExist, ValueError, DjangoValidationError):
        raise BlockError(
            message='SOAP note not found',
            code='SOAP_NOTE_NOT_FOUND',
            http_status=404,
        )


def request_soap_generation(user, patient_id, invoice_id=None) -> EnsureSoapNoteResult:
    profile = require_clinic(user)
    patient = _get_patient(profile, patient_id)
    invoice = None
    if invoice_id:
        invoice = Invoice.objects.filter(id=invoice_id, patient=patient).first()
    return ensure_soap_note_exists(patient, invoice)


def create_manual_soap_note(user, patient_id, data: dict) -> SoapNote:
    profile = require_clinic(user)
    patient = _get_patient(profile, patient_id)

    sections = {section: str(data.get(section) or '').strip() for section in SOAP_SECTIONS}
    missing = [section for section, value in sections.items() if not value]
    if missing:
        raise ValidationError(
            message='All SOAP sections are required.',
            code='SOAP_SECTIONS_REQUIRED',
            detail={'missing': missing},
        )
    if is_test_patient(patient):
        raise BlockError(
            message='Cannot create SOAP notes for test/demo patients',
            code='TEST_PATIENT',
        )

    note = SoapNote.objects.create(
        clinic=patient.clinic,
        patient=patient,
        status=SoapNote.STATUS_DRAFT,
        source_type=SoapNote.SOURCE_MANUAL,
        **sections,
    )
    log_action(user, 'soap_note.created', 'soap_note', note.id, clinic=patient.clinic)
    return note


def update_soap_note(user, note_id, data: dict) -> SoapNote:
    """LOCKED 不可改；APPROVED 改了以后回到 DRAFT，需要重新审批。"""
    profile = require_clinic(user)
    note = _get_note(profile, note_id)

    if note.status == SoapNote.STATUS_LOCKED:
        raise BlockError(
            message='SOAP note is locked and cannot be edited',
            code='SOAP_NOTE_LOCKED',
        )

    changed = []
    for section in SOAP_SECTIONS:
        if section in data:
            setattr(note, section, str(data[section] or '').strip())
            changed.append(section)
    if not changed:
        return note

    if note.status == SoapNote.STATUS_APPROVED:
        note.status = SoapNote.STATUS_DRAFT
        note.approved_by = None
        note.approved_at = None
        changed += ['status', 'approved_by', 'approved_at']

    note.save(update_fields=[*changed, 'updated_at'])
    log_action(user, 'soap_note.updated', 'soap_note', note.id, clinic=note.clinic, metadata={'fields': changed})
    return note


def approve_soap_note(user, note_id):
    """
    provider / super_admin 审批。

    Returns:
        (note, already_approved)
    """
    profile = require_clinic(user)
    require_role(profile, APPROVER_ROLES, 'Only providers can approve SOAP notes')
    note = _get_note(profile, note_id)
    return approve_note(note, profile, user)


def approve_note(note: SoapNote, profile: StaffProfile, user):
    if note.is_approved:
        return note, True

    note.status = SoapNote.STATUS_APPROVED
    note.approved_by = profile.provider
    note.approved_at = timezone.now()
    note.save(update_fields=['status', 'approved_by', 'approved_at', 'updated_at'])
    log_action(user, 'soap_note.approved', 'soap_note', note.id, clinic=note.clinic)
    logger.info("[SOAP] note=%s approved by provider=%s", note.id, profile.provider_id)
    return note, False


def lock_soap_note(user, note_id) -> SoapNote:
    profile = require_clinic(user)
    note = _get_note(profile, note_id)

    if note.status == SoapNote.STATUS_LOCKED:
        raise BlockError(message='SOAP note is already locked', code='SOAP_NOTE_ALREADY_LOCKED')
    if note.status != SoapNote.STATUS_APPROVED:
        raise BlockError(message='Only approved SOAP notes can be locked', code='SOAP_NOTE_NOT_APPROVED')
    if profile.provider_id is None or note.approved_by_id != profile.provider_id:
        raise PermissionDeniedError(
            message='Only the approving provider can lock the note',
            code='NOT_APPROVING_PROVIDER',
        )

    note.status = SoapNote.STATUS_LOCKED
    note.locked_at = timezone.now()
    note.save(update_fields=['status', 'locked_at', 'updated_at'])
    log_action(user, 'soap_note.locked', 'soap_note', note.id, clinic=note.clinic)
    return note
