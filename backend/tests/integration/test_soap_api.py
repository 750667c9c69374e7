"""
Integration tests — SOAP note 的创建 / 生成 / 编辑 / 审批 / 锁定接口。

LLM 全部 patch 掉。
"""
import json
from unittest.mock import MagicMock, patch

import pytest

from rxqueue.llm.types import LLMResponse
from rxqueue.models import SoapNote
from tests.conftest import PatientFactory, SoapNoteFactory, approved_note

SECTIONS = {
    'subjective': 'Patient reports weight gain over the past two years.',
    'objective': 'BMI 31.',
    'assessment': 'Obesity.',
    'plan': 'Start GLP-1 therapy.',
}


def post(client, url, data=None):
    return client.post(url, data or {}, format='json')


@pytest.mark.django_db
class TestSoapNoteApi:

    def test_create_manual_note(self, admin_client, clinic):
        patient = PatientFactory(clinic=clinic)

        response = post(admin_client, '/api/soap-notes/', {'patient_id': str(patient.id), **SECTIONS})

        body = response.json()
        assert response.status_code == 201
        assert body['status'] == 'DRAFT'
        assert body['source_type'] == 'MANUAL'
        assert body['plan'] == 'Start GLP-1 therapy.'

    def test_create_requires_all_sections(self, admin_client, clinic):
        patient = PatientFactory(clinic=clinic)

        response = post(admin_client, '/api/soap-notes/', {'patient_id': str(patient.id), 'subjective': 'x'})

        body = response.json()
        assert response.status_code == 400
        assert body['code'] == 'SOAP_SECTIONS_REQUIRED'
        assert body['detail']['missing'] == ['objective', 'assessment', 'plan']

    def test_generate(self, provider_client, clinic):
        patient = PatientFactory(clinic=clinic)
        service = MagicMock()
        service.complete.return_value = LLMResponse(content=json.dumps(SECTIONS), model='claude-sonnet-4-20250514')

        with patch('rxqueue.soap_notes.get_llm_service', return_value=service):
            response = post(provider_client, '/api/soap-notes/generate', {'patient_id': str(patient.id)})

        body = response.json()
        assert response.status_code == 201
        assert body['action'] == 'generated'
        assert body['soap_note']['generated_by_ai'] is True
        assert body['soap_note']['status'] == 'DRAFT'

    def test_generate_returns_existing_note(self, provider_client, clinic):
        note = SoapNoteFactory(patient=PatientFactory(clinic=clinic))

        response = post(provider_client, '/api/soap-notes/generate', {'patient_id': str(note.patient_id)})

        body = response.json()
        assert response.status_code == 200
        assert body['action'] == 'existing'
        assert body['soap_note']['id'] == str(note.id)

    def test_generate_unknown_patient(self, provider_client):
        response = post(
            provider_client, '/api/soap-notes/generate', {'patient_id': '00000000-0000-0000-0000-000000000000'},
        )

        assert response.status_code == 404
        assert response.json()['code'] == 'PATIENT_NOT_FOUND'

    def test_edit_approved_note_returns_to_draft(self, provider_client, clinic, provider):
        note = approved_note(PatientFactory(clinic=clinic), provider)

        response = provider_client.patch(f'/api/soap-notes/{note.id}', {'plan': 'Hold therapy.'}, format='json')

        body = response.json()
        assert response.status_code == 200
        assert body['status'] == 'DRAFT'
        assert body['approved_by'] is None

    def test_approve_then_lock(self, provider_client, clinic, provider):
        note = SoapNoteFactory(patient=PatientFactory(clinic=clinic))

        first = post(provider_client, f'/api/soap-notes/{note.id}/approve')
        second = post(provider_client, f'/api/soap-notes/{note.id}/approve')
        locked = post(provider_client, f'/api/soap-notes/{note.id}/lock')

        assert first.status_code == 200
        assert first.json()['already_approved'] is False
        assert first.json()['soap_note']['approved_by'] == str(provider.id)
        assert second.json()['already_approved'] is True
        assert locked.status_code == 200
        assert locked.json()['status'] == 'LOCKED'

        edit = provider_client.patch(f'/api/soap-notes/{note.id}', {'plan': 'Changed'}, format='json')
        assert edit.status_code == 409
        assert edit.json()['code'] == 'SOAP_NOTE_LOCKED'
        assert SoapNote.objects.get(id=note.id).plan != 'Changed'

    def test_admin_cannot_approve(self, admin_client, clinic):
        note = SoapNoteFactory(patient=PatientFactory(clinic=clinic))

        response = post(admin_client, f'/api/soap-notes/{note.id}/approve')

        assert response.status_code == 403
        assert response.json()['type'] == 'permission_denied'
