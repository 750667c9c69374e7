"""
HTTP 层：只做「取参数 → 调 service → 序列化」。

views 不 catch 业务异常，统一交给 exception_handler 转成
{type, code, message, detail} 的错误响应。
"""

import hmac
import logging

from django.conf import settings
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from . import prescriptions, queue, soap_notes
from .exceptions import PermissionDeniedError, ValidationError
from .intake import get_adapter, ingest_invoice
from .serializers import (
    serialize_address_reconciliation,
    serialize_intake_result,
    serialize_invoice_hold,
    serialize_order,
    serialize_prescription_result,
    serialize_queue_item_details,
    serialize_soap_generation,
    serialize_soap_note,
)

logger = logging.getLogger(__name__)


# ── Prescription queue ──────────────────────────────────────────────────────

class PrescriptionQueueView(APIView):
    """
    GET   /api/provider/prescription-queue/?limit=&offset=&tab=ready|needs_info
    PATCH /api/provider/prescription-queue/   {invoice_id | refill_id}  → 标记已处理
    POST  /api/provider/prescription-queue/   {invoice_id, reason}      → 拒绝
    """

    def get(self, request):
        params = request.query_params
        result = queue.list_queue(
            request.user,
            limit=params.get('limit'),
            offset=params.get('offset', 0),
            tab=params.get('tab', queue.TAB_READY),
        )
        return Response(result)

    def patch(self, request):
        data = request.data
        result = queue.mark_processed(
            request.user,
            invoice_id=data.get('invoice_id'),
            refill_id=data.get('refill_id'),
        )
        return Response(result)

    def post(self, request):
        data = request.data
        result = queue.decline_invoice(request.user, data.get('invoice_id'), data.get('reason'))
        return Response(result)


class QueueItemDetailView(APIView):
    """GET /api/provider/prescription-queue/<invoice_id>/"""

    def get(self, request, invoice_id):
        details = queue.get_queue_item_details(request.user, invoice_id)
        return Response(serialize_queue_item_details(details))


class QueueItemHoldView(APIView):
    """POST /api/provider/prescription-queue/<invoice_id>/hold  {reason}"""

    def post(self, request, invoice_id):
        invoice = queue.hold_invoice(request.user, invoice_id, request.data.get('reason'))
        return Response(serialize_invoice_hold(invoice))


class QueueItemResumeView(APIView):
    def post(self, request, invoice_id):
        invoice = queue.resume_invoice(request.user, invoice_id)
        return Response(serialize_invoice_hold(invoice))


# ── Prescriptions / orders ──────────────────────────────────────────────────

class PrescriptionCreateView(APIView):
    """
    POST /api/prescriptions/

    provider 直接发药房 → 201 + SENT 的 order
    admin 带 queue_for_provider=true → 201 + QUEUED_FOR_PROVIDER 的 order
    """

    def post(self, request):
        result = prescriptions.submit_prescription(request.user, request.data)
        return Response(serialize_prescription_result(result), status=status.HTTP_201_CREATED)


class OrderApproveAndSendView(APIView):
    def post(self, request, order_id):
        order = prescriptions.approve_and_send_order(request.user, order_id, request.data)
        return Response({
            'success': True,
            'message': 'Prescription approved and submitted to pharmacy',
            'order': serialize_order(order),
        })


class OrderDeclineView(APIView):
    def post(self, request, order_id):
        order = prescriptions.decline_order(request.user, order_id, request.data.get('reason'))
        return Response({
            'success': True,
            'message': 'Queued prescription declined',
            'order': serialize_order(order),
        })


# ── SOAP notes ──────────────────────────────────────────────────────────────

class SoapNoteCreateView(APIView):
    """POST /api/soap-notes/  {patient_id, subjective, objective, assessment, plan}"""

    def post(self, request):
        data = request.data
        note = soap_notes.create_manual_soap_note(request.user, data.get('patient_id'), data)
        return Response(serialize_soap_note(note), status=status.HTTP_201_CREATED)


class SoapNoteGenerateView(APIView):
    """
    POST /api/soap-notes/generate  {patient_id, invoice_id?}

    同步生成；已有有效 note 时直接返回它（action=existing）。
    """

    def post(self, request):
        data = request.data
        result = soap_notes.request_soap_generation(
            request.user, data.get('patient_id'), invoice_id=data.get('invoice_id'),
        )
        http_status = status.HTTP_201_CREATED if result.action == 'generated' else status.HTTP_200_OK
        return Response(serialize_soap_generation(result), status=http_status)


class SoapNoteDetailView(APIView):
    def patch(self, request, note_id):
        note = soap_notes.update_soap_note(request.user, note_id, request.data)
        return Response(serialize_soap_note(note))


class SoapNoteApproveView(APIView):
    def post(self, request, note_id):
        note, already_approved = soap_notes.approve_soap_note(request.user, note_id)
        return Response({
            'already_approved': already_approved,
            'soap_note': serialize_soap_note(note),
        })


class SoapNoteLockView(APIView):
    def post(self, request, note_id):
        note = soap_notes.lock_soap_note(request.user, note_id)
        return Response(serialize_soap_note(note))


# ── Patients ────────────────────────────────────────────────────────────────

class PatientReconcileAddressView(APIView):
    """POST /api/patients/<patient_id>/reconcile-address → 修复后的地址写回 patient"""

    def post(self, request, patient_id):
        patient, address, changed = queue.reconcile_patient(request.user, patient_id)
        return Response(serialize_address_reconciliation(patient, address, changed))


# ── Intake webhook ──────────────────────────────────────────────────────────

class IntakeInvoiceWebhookView(APIView):
    """
    POST /api/intake/<source>/invoices

    外部支付平台的 webhook，不走 Bearer token。
    配了 INTAKE_WEBHOOK_SECRET 时要求 X-Webhook-Secret header 一致。
    新 invoice → 201；重复推送 → 200（幂等）。
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request, source):
        self._check_secret(request)

        # request.body 必须在 request.data 之前读取
        adapter = get_adapter(source, request.body, content_type=request.content_type or '')
        internal = adapter.process()
        invoice, created = ingest_invoice(internal)

        http_status = status.HTTP_201_CREATED if created else status.HTTP_200_OK
        return Response(serialize_intake_result(invoice, created), status=http_status)

    @staticmethod
    def _check_secret(request):
        expected = getattr(settings, 'INTAKE_WEBHOOK_SECRET', '')
        if not expected:
            return
        provided = request.headers.get('X-Webhook-Secret', '')
        if not provided:
            raise ValidationError(message='Missing webhook secret', code='WEBHOOK_SECRET_REQUIRED')
        if not hmac.compare_digest(provided, expected):
            logger.warning("[INTAKE] webhook secret 不匹配 path=%s", request.path)
            raise PermissionDeniedError(message='Invalid webhook secret', code='INVALID_WEBHOOK_SECRET')
