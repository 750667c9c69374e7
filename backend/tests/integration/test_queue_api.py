"""
Integration tests — 真实 HTTP 请求打到 DRF View，验证完整流程。

用 DRF APIClient，走完：
  HTTP Request → urls.py → APIView → Service → ORM → DB → Response

每个测试验证：status_code + response body 的统一格式。
"""
from datetime import timedelta
from unittest.mock import patch

import pytest
from django.db import OperationalError
from django.utils import timezone
from rest_framework.authtoken.models import Token

from rxqueue.models import Invoice
from tests.conftest import ClinicFactory, InvoiceFactory, PatientFactory, RefillRequestFactory

QUEUE_URL = '/api/provider/prescription-queue/'


def assert_error(response, status, code):
    body = response.json()
    assert response.status_code == status
    assert body['code'] == code
    assert 'type' in body
    assert 'message' in body


# ===================================================================
# Auth
# ===================================================================

@pytest.mark.django_db
class TestAuthentication:

    def test_unauthenticated_request_rejected(self, api_client):
        response = api_client.get(QUEUE_URL)

        assert response.status_code in (401, 403)
        assert response.json()['type'] == 'error'

    def test_bearer_token(self, api_client, provider_user, clinic):
        InvoiceFactory(patient=PatientFactory(clinic=clinic))
        token = Token.objects.create(user=provider_user)

        response = api_client.get(QUEUE_URL, HTTP_AUTHORIZATION=f'Bearer {token.key}')

        assert response.status_code == 200
        assert response.json()['total'] == 1

    def test_drf_token_keyword_not_accepted(self, api_client, provider_user):
        token = Token.objects.create(user=provider_user)

        response = api_client.get(QUEUE_URL, HTTP_AUTHORIZATION=f'Token {token.key}')

        assert response.status_code in (401, 403)

    def test_user_without_staff_profile(self, api_client, django_user_model):
        user = django_user_model.objects.create_user(username='outsider', email='outsider@example.com')
        api_client.force_authenticate(user=user)

        assert_error(api_client.get(QUEUE_URL), 403, 'NO_STAFF_PROFILE')


# ===================================================================
# GET queue
# ===================================================================

@pytest.mark.django_db
class TestListQueue:

    def test_fifo_merge_of_invoices_and_refills(self, provider_client, clinic):
        now = timezone.now()
        older = InvoiceFactory(patient=PatientFactory(clinic=clinic), paid_at=now - timedelta(hours=3))
        refill = RefillRequestFactory(patient=PatientFactory(clinic=clinic), admin_approved_at=now - timedelta(hours=2))
        newer = InvoiceFactory(patient=PatientFactory(clinic=clinic), paid_at=now - timedelta(hours=1))
        InvoiceFactory(patient=PatientFactory(clinic=ClinicFactory()))

        response = provider_client.get(QUEUE_URL)

        body = response.json()
        assert response.status_code == 200
        assert 'type' not in body
        assert body['total'] == 3
        assert [item['queue_type'] for item in body['items']] == ['invoice', 'refill', 'invoice']
        assert body['items'][0]['invoice_id'] == str(older.id)
        assert body['items'][1]['refill_id'] == str(refill.id)
        assert body['items'][2]['invoice_id'] == str(newer.id)
        assert body['items'][0]['soap_note_status'] == 'MISSING'

    def test_pagination_params(self, provider_client, clinic):
        for _ in range(3):
            InvoiceFactory(patient=PatientFactory(clinic=clinic))

        body = provider_client.get(QUEUE_URL, {'limit': 2, 'offset': 0}).json()

        assert len(body['items']) == 2
        assert body['has_more'] is True

    def test_invalid_limit(self, provider_client):
        assert_error(provider_client.get(QUEUE_URL, {'limit': 'ten'}), 400, 'INVALID_PAGINATION')

    def test_invalid_tab(self, provider_client):
        assert_error(provider_client.get(QUEUE_URL, {'tab': 'archived'}), 400, 'INVALID_TAB')

    def test_database_unavailable_sets_retry_after(self, provider_client):
        with patch('rxqueue.queue._invoice_queryset', side_effect=OperationalError('too many connections')):
            response = provider_client.get(QUEUE_URL)

        assert_error(response, 503, 'DATABASE_UNAVAILABLE')
        assert response['Retry-After'] == '15'


# ===================================================================
# PATCH / POST queue
# ===================================================================

@pytest.mark.django_db
class TestQueueActions:

    def test_mark_processed(self, provider_client, clinic, provider):
        invoice = InvoiceFactory(patient=PatientFactory(clinic=clinic))

        response = provider_client.patch(QUEUE_URL, {'invoice_id': str(invoice.id)}, format='json')

        assert response.status_code == 200
        assert response.json()['invoice']['prescription_processed'] is True
        invoice.refresh_from_db()
        assert invoice.prescription_processed_by == provider
        assert provider_client.get(QUEUE_URL).json()['total'] == 0

    def test_mark_processed_twice_is_404(self, provider_client, clinic):
        invoice = InvoiceFactory(patient=PatientFactory(clinic=clinic))
        provider_client.patch(QUEUE_URL, {'invoice_id': str(invoice.id)}, format='json')

        response = provider_client.patch(QUEUE_URL, {'invoice_id': str(invoice.id)}, format='json')

        assert_error(response, 404, 'NOT_IN_QUEUE')

    def test_mark_processed_requires_id(self, provider_client):
        assert_error(provider_client.patch(QUEUE_URL, {}, format='json'), 400, 'INVOICE_ID_REQUIRED')

    def test_mark_refill_processed(self, provider_client, clinic):
        refill = RefillRequestFactory(patient=PatientFactory(clinic=clinic))

        response = provider_client.patch(QUEUE_URL, {'refill_id': str(refill.id)}, format='json')

        assert response.status_code == 200
        assert response.json()['refill']['status'] == 'PRESCRIBED'

    def test_staff_cannot_mark_processed(self, api_client, staff_user, clinic):
        invoice = InvoiceFactory(patient=PatientFactory(clinic=clinic))
        api_client.force_authenticate(user=staff_user)

        response = api_client.patch(QUEUE_URL, {'invoice_id': str(invoice.id)}, format='json')

        assert_error(response, 403, 'ROLE_NOT_ALLOWED')

    def test_decline(self, provider_client, clinic):
        invoice = InvoiceFactory(patient=PatientFactory(clinic=clinic))

        response = provider_client.post(
            QUEUE_URL, {'invoice_id': str(invoice.id), 'reason': 'Contraindicated with current medication'},
            format='json',
        )

        body = response.json()
        assert response.status_code == 200
        assert body['invoice']['prescription_declined'] is True
        assert body['invoice']['declined_by'] == 'Sarah Chen'
        assert Invoice.objects.get(id=invoice.id).decline_reason == 'Contraindicated with current medication'

    def test_decline_short_reason(self, provider_client, clinic):
        invoice = InvoiceFactory(patient=PatientFactory(clinic=clinic))

        response = provider_client.post(QUEUE_URL, {'invoice_id': str(invoice.id), 'reason': 'no'}, format='json')

        assert_error(response, 400, 'DECLINE_REASON_REQUIRED')


# ===================================================================
# Detail / hold / resume / address
# ===================================================================

@pytest.mark.django_db
class TestQueueItem:

    def test_detail_prefills_prescription_form(self, provider_client, clinic):
        patient = PatientFactory(clinic=clinic, address1='2900 W Dallas St', city='130', state='HO', zip='Texas')
        invoice = InvoiceFactory(patient=patient)

        response = provider_client.get(f'{QUEUE_URL}{invoice.id}/')

        body = response.json()
        assert response.status_code == 200
        assert body['patient']['address']['state'] == 'TX'
        assert body['patient']['address']['address2'] == '130'
        assert body['treatment'] == 'Semaglutide Injections'
        assert body['soap_note_status'] == 'MISSING'
        form = body['prescription_form']
        assert form['gender'] == 'f'
        assert form['medications'][0]['medicationKey'] == '203448971'
        assert form['is_new_patient'] is True

    def test_detail_other_clinic_is_404(self, provider_client):
        invoice = InvoiceFactory(patient=PatientFactory(clinic=ClinicFactory()))

        assert_error(provider_client.get(f'{QUEUE_URL}{invoice.id}/'), 404, 'NOT_IN_QUEUE')

    def test_hold_and_resume(self, provider_client, clinic):
        invoice = InvoiceFactory(patient=PatientFactory(clinic=clinic))

        held = provider_client.post(f'{QUEUE_URL}{invoice.id}/hold', {'reason': 'Need updated photo ID'}, format='json')

        assert held.status_code == 200
        assert held.json()['on_hold'] is True
        assert provider_client.get(QUEUE_URL, {'tab': 'needs_info'}).json()['total'] == 1
        assert provider_client.get(QUEUE_URL).json()['total'] == 0

        resumed = provider_client.post(f'{QUEUE_URL}{invoice.id}/resume', format='json')

        assert resumed.status_code == 200
        assert resumed.json()['on_hold'] is False
        assert provider_client.get(QUEUE_URL).json()['total'] == 1

    def test_resume_when_not_held(self, provider_client, clinic):
        invoice = InvoiceFactory(patient=PatientFactory(clinic=clinic))

        assert_error(provider_client.post(f'{QUEUE_URL}{invoice.id}/resume', format='json'), 409, 'NOT_ON_HOLD')

    def test_reconcile_address(self, provider_client, clinic):
        patient = PatientFactory(
            clinic=clinic, address1='201 Elbridge Ave, Apt F, Cloverdale, California, 95425',
            city='', state='', zip='',
        )

        response = provider_client.post(f'/api/patients/{patient.id}/reconcile-address', format='json')

        body = response.json()
        assert response.status_code == 200
        assert body['changed'] is True
        assert body['address']['state'] == 'CA'
        patient.refresh_from_db()
        assert patient.city == 'Cloverdale'
