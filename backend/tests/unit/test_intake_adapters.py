"""
测试 intake adapter 系统：
- WellmedrAdapter (平铺 snake_case，地址可能是整串)
- EonmedsAdapter (嵌套 camelCase)
- 工厂函数 get_adapter
- validate() 校验失败路径
- parse_amount_cents / split_name
"""

import json

import pytest

from rxqueue.address import Address
from rxqueue.exceptions import ValidationError
from rxqueue.intake import get_adapter
from rxqueue.intake.adapters import EonmedsAdapter, WellmedrAdapter
from rxqueue.intake.base import parse_amount_cents, split_name
from rxqueue.intake.types import InternalInvoice


# ── helpers ───────────────────────────────────────────────────────────────

class TestParseAmountCents:

    @pytest.mark.parametrize('value, expected', [
        (29900, 29900),
        (299.0, 29900),
        ('$299.00', 29900),
        ('1,299.50', 129950),
        ('59700', 59700),
        ('', 0),
        (None, 0),
        (True, 0),
        ('free', 0),
    ])
    def test_values(self, value, expected):
        assert parse_amount_cents(value) == expected


def test_split_name():
    assert split_name('Maria  del Carmen Lopez') == ('Maria', 'del Carmen Lopez')
    assert split_name('Cher') == ('Cher', '')
    assert split_name(None) == ('', '')


# ── WellmedrAdapter ───────────────────────────────────────────────────────

class TestWellmedrAdapter:

    def _make(self, payload):
        return WellmedrAdapter(raw_body=json.dumps(payload), content_type='application/json')

    def test_process_returns_internal_invoice(self, wellmedr_payload):
        internal = self._make(wellmedr_payload).process()

        assert isinstance(internal, InternalInvoice)
        assert internal.source == 'wellmedr'
        assert internal.clinic_subdomain == 'wellmedr'
        assert internal.raw_payload == wellmedr_payload

    def test_patient_fields(self, wellmedr_payload):
        patient = self._make(wellmedr_payload).process().patient

        assert patient.first_name == 'Maria'
        assert patient.last_name == 'Lopez'
        assert patient.email == 'maria.lopez@example.com'
        assert patient.dob == '03/20/1985'
        assert patient.gender == 'Female'
        assert patient.address == Address('201 Elbridge Ave', 'Apt F', 'Cloverdale', 'CA', '95425')

    def test_glp1_history(self, wellmedr_payload):
        patient = self._make(wellmedr_payload).process().patient

        assert patient.glp1_history == {'usedLast30Days': True, 'medicationType': 'tirzepatide', 'doseMg': '5'}

    def test_no_glp1_answer_leaves_history_empty(self, wellmedr_payload):
        del wellmedr_payload['glp1-last-30']
        assert self._make(wellmedr_payload).process().patient.glp1_history == {}

    def test_invoice_fields(self, wellmedr_payload):
        invoice = self._make(wellmedr_payload).process().invoice

        assert invoice.external_id == 'pm_1StwAHDfH4PWyxxdppqIGipS'
        assert invoice.amount == 59700
        assert invoice.amount_paid == 59700
        assert invoice.product == 'Tirzepatide'
        assert invoice.plan == 'quarterly'
        assert invoice.paid_at == '2026-01-15T10:00:00Z'

    def test_unhandled_fields_kept_as_metadata(self, wellmedr_payload):
        extra = self._make(wellmedr_payload).process().invoice.extra_metadata

        assert extra['glp1-last-30-medication-dose-mg'] == '5'
        assert extra['submission_id'] == 'd2620779-9a90-4385-a1b2'
        assert extra['stripePaymentMethodId'] == 'pm_1StwAHDfH4PWyxxdppqIGipS'
        assert 'customer_email' not in extra

    def test_price_string_when_amount_missing(self, wellmedr_payload):
        del wellmedr_payload['amount']
        wellmedr_payload['price'] = '$299.00'

        assert self._make(wellmedr_payload).process().invoice.amount == 29900

    def test_explicit_first_last_names_win(self, wellmedr_payload):
        wellmedr_payload.update({'first_name': 'Mari', 'last_name': 'Lopes'})
        patient = self._make(wellmedr_payload).process().patient

        assert (patient.first_name, patient.last_name) == ('Mari', 'Lopes')

    def test_clinic_subdomain_override(self, wellmedr_payload):
        wellmedr_payload['clinic_subdomain'] = 'wellmedr-staging'
        assert self._make(wellmedr_payload).process().clinic_subdomain == 'wellmedr-staging'

    def test_non_pm_payment_id_rejected(self, wellmedr_payload):
        wellmedr_payload['method_payment_id'] = 'ch_3Abc'

        with pytest.raises(ValidationError) as exc_info:
            self._make(wellmedr_payload).process()

        assert exc_info.value.code == 'INVALID_PAYMENT_METHOD'

    def test_invalid_email_rejected(self, wellmedr_payload):
        wellmedr_payload['customer_email'] = 'not-an-email'

        with pytest.raises(ValidationError) as exc_info:
            self._make(wellmedr_payload).process()

        fields = [error['field'] for error in exc_info.value.detail['errors']]
        assert fields == ['patient.email']

    def test_invalid_json(self):
        with pytest.raises(ValidationError) as exc_info:
            WellmedrAdapter(raw_body='{not json').process()
        assert exc_info.value.code == 'INVALID_PAYLOAD'

    def test_json_array_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            WellmedrAdapter(raw_body='[1, 2]').process()
        assert exc_info.value.code == 'INVALID_PAYLOAD'

    def test_accepts_already_parsed_dict(self, wellmedr_payload):
        internal = WellmedrAdapter(raw_body=wellmedr_payload).process()
        assert internal.patient.first_name == 'Maria'


# ── EonmedsAdapter ────────────────────────────────────────────────────────

class TestEonmedsAdapter:

    def _make(self, payload):
        return EonmedsAdapter(raw_body=json.dumps(payload).encode(), content_type='application/json')

    def test_patient_fields(self, eonmeds_payload):
        patient = self._make(eonmeds_payload).process().patient

        assert patient.first_name == 'Ana'
        assert patient.last_name == 'Silva'
        assert patient.dob == '1988-07-02'
        assert patient.gender == 'f'
        assert patient.address == Address('1 Ocean Dr', '', 'Miami', 'FL', '33139')
        assert patient.intake_answers == [{'question': 'Current medications', 'answer': 'Metformin'}]
        assert patient.glp1_history == {'usedLast30Days': False, 'medicationType': '', 'doseMg': ''}

    def test_invoice_fields(self, eonmeds_payload):
        internal = self._make(eonmeds_payload).process()
        invoice = internal.invoice

        assert internal.clinic_subdomain == 'eonmeds'
        assert invoice.external_id == 'in_1PqRsT'
        assert invoice.invoice_number == 'EON-1001'
        assert invoice.amount == 39900
        assert invoice.product == 'Semaglutide'
        assert invoice.medication_type == 'injections'
        assert invoice.plan == 'monthly'
        assert len(invoice.line_items) == 1

    def test_missing_names_become_unknown(self, eonmeds_payload):
        eonmeds_payload['patient'].pop('firstName')
        eonmeds_payload['patient'].pop('lastName')

        patient = self._make(eonmeds_payload).process().patient

        assert (patient.first_name, patient.last_name) == ('Unknown', 'Unknown')

    def test_missing_invoice_id(self, eonmeds_payload):
        eonmeds_payload['invoice'].pop('id')

        with pytest.raises(ValidationError) as exc_info:
            self._make(eonmeds_payload).process()

        fields = [error['field'] for error in exc_info.value.detail['errors']]
        assert 'invoice.external_id' in fields

    def test_address_as_string(self, eonmeds_payload):
        eonmeds_payload['patient']['address'] = '1 Ocean Dr, Miami, FL 33139'

        patient = self._make(eonmeds_payload).process().patient

        assert patient.address.city == 'Miami'
        assert patient.address.zip == '33139'


# ── get_adapter ───────────────────────────────────────────────────────────

class TestGetAdapter:

    def test_known_sources(self):
        assert isinstance(get_adapter('wellmedr', b'{}'), WellmedrAdapter)
        assert isinstance(get_adapter('eonmeds', b'{}'), EonmedsAdapter)

    def test_unknown_source(self):
        with pytest.raises(ValidationError) as exc_info:
            get_adapter('acme', b'{}')

        assert exc_info.value.code == 'UNKNOWN_SOURCE'
        assert exc_info.value.detail == {'known_sources': ['wellmedr', 'eonmeds']}
