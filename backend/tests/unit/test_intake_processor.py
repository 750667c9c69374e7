"""
Unit tests for ingest_invoice (InternalInvoice → Patient + PAID Invoice).

SOAP 生成任务全部 patch 掉，只断言有没有被触发。
"""
from unittest.mock import patch

import pytest

from rxqueue.exceptions import ValidationError
from rxqueue.intake import get_adapter, ingest_invoice
from rxqueue.models import AuditEvent, Invoice, Patient
from rxqueue.queue import extract_glp1_info, get_prescription_queue
from tests.conftest import ClinicFactory, PatientFactory


def _internal(source, payload):
    return get_adapter(source, payload).process()


@pytest.fixture
def mock_soap_task():
    with patch('rxqueue.tasks.generate_soap_note') as mock_task:
        yield mock_task


@pytest.mark.django_db
class TestIngestInvoice:

    def test_creates_patient_and_paid_invoice(self, clinic, wellmedr_payload, mock_soap_task):
        invoice, created = ingest_invoice(_internal('wellmedr', wellmedr_payload))

        assert created is True
        assert invoice.status == Invoice.STATUS_PAID
        assert invoice.clinic == clinic
        assert invoice.external_id == 'pm_1StwAHDfH4PWyxxdppqIGipS'
        assert invoice.amount == 59700
        assert invoice.paid_at.year == 2026
        assert invoice.metadata['source'] == 'wellmedr'
        assert invoice.metadata['product'] == 'Tirzepatide'
        assert invoice.metadata['plan'] == 'quarterly'

        patient = invoice.patient
        assert patient.email == 'maria.lopez@example.com'
        assert patient.patient_id == '000001'
        assert patient.city == 'Cloverdale'
        assert patient.state == 'CA'
        assert patient.glp1_history['usedLast30Days'] is True
        mock_soap_task.delay.assert_called_once_with(str(patient.id), str(invoice.id))
        assert AuditEvent.objects.filter(action='intake.invoice_received', actor__isnull=True).count() == 1

    def test_duplicate_webhook_returns_existing(self, clinic, wellmedr_payload, mock_soap_task):
        first, _ = ingest_invoice(_internal('wellmedr', wellmedr_payload))

        second, created = ingest_invoice(_internal('wellmedr', wellmedr_payload))

        assert created is False
        assert second == first
        assert Invoice.objects.count() == 1
        assert mock_soap_task.delay.call_count == 1

    def test_same_external_id_in_other_clinic_is_not_a_duplicate(self, clinic, wellmedr_payload, mock_soap_task):
        ClinicFactory(subdomain='wellmedr-staging')
        ingest_invoice(_internal('wellmedr', wellmedr_payload))

        _, created = ingest_invoice(_internal('wellmedr', {**wellmedr_payload, 'clinic_subdomain': 'wellmedr-staging'}))

        assert created is True
        assert Invoice.objects.count() == 2

    def test_existing_patient_reused_and_only_blanks_filled(self, clinic, wellmedr_payload, mock_soap_task):
        existing = PatientFactory(
            clinic=clinic, email='maria.lopez@example.com', first_name='Maria', last_name='Lopez',
            phone='', dob='02/02/1980', glp1_history={},
        )

        invoice, _ = ingest_invoice(_internal('wellmedr', wellmedr_payload))

        existing.refresh_from_db()
        assert invoice.patient == existing
        assert Patient.objects.count() == 1
        assert existing.phone == '5125550142'
        assert existing.dob == '02/02/1980'
        assert existing.address1 == '123 Main St'
        assert existing.glp1_history['medicationType'] == 'tirzepatide'

    def test_unknown_clinic(self, wellmedr_payload, mock_soap_task):
        with pytest.raises(ValidationError) as exc_info:
            ingest_invoice(_internal('wellmedr', wellmedr_payload))

        assert exc_info.value.code == 'UNKNOWN_CLINIC'
        mock_soap_task.delay.assert_not_called()

    def test_eonmeds_invoice_lands_in_queue(self, eonmeds_payload, mock_soap_task):
        eonmeds = ClinicFactory(subdomain='eonmeds')

        invoice, _ = ingest_invoice(_internal('eonmeds', eonmeds_payload))

        assert invoice.metadata['invoiceNumber'] == 'EON-1001'
        assert invoice.line_items[0]['description'] == 'Semaglutide'
        queue = get_prescription_queue(eonmeds)
        assert queue['total'] == 1
        item = queue['items'][0]
        assert item['invoice_number'] == 'EON-1001'
        assert item['treatment'] == 'Semaglutide Injections'
        assert item['amount_formatted'] == '$399.00'

    def test_glp1_fields_readable_from_stored_metadata(self, clinic, wellmedr_payload, mock_soap_task):
        wellmedr_payload.pop('glp1-last-30')

        invoice, _ = ingest_invoice(_internal('wellmedr', wellmedr_payload))

        info = extract_glp1_info(invoice.patient, invoice.metadata)
        assert info['glp1_type'] == 'tirzepatide'
        assert info['last_dose'] == '5'
