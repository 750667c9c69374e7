"""
Shared fixtures for all tests.

factory-boy factories live here so both unit/ and integration/ can import them.
"""
import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

import factory
from rxqueue.models import (
    Clinic,
    Invoice,
    Order,
    OrderSet,
    Patient,
    Provider,
    RefillRequest,
    SoapNote,
    StaffProfile,
)


SEMAGLUTIDE_1ML = '203448971'
TIRZEPATIDE_1ML = '203448972'
TIRZEPATIDE_2ML = '203448973'


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

class ClinicFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Clinic

    name = factory.Sequence(lambda n: f'Clinic {n}')
    subdomain = factory.Sequence(lambda n: f'clinic{n}')
    practice_id = '1266'
    practice_name = factory.LazyAttribute(lambda o: f'{o.name} Practice')


class ProviderFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Provider

    clinic = factory.SubFactory(ClinicFactory)
    npi = factory.Sequence(lambda n: f'{1000000000 + n}')
    first_name = 'Sarah'
    last_name = 'Chen'
    email = factory.Sequence(lambda n: f'dr.chen{n}@clinic.example.com')
    phone = '5125550100'
    license_state = 'TX'
    license_number = 'TX-48211'


class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = get_user_model()

    username = factory.Sequence(lambda n: f'staff{n}')
    email = factory.Sequence(lambda n: f'staff{n}@clinic.example.com')


class StaffProfileFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = StaffProfile

    user = factory.SubFactory(UserFactory)
    role = StaffProfile.ROLE_PROVIDER
    clinic = factory.SubFactory(ClinicFactory)
    provider = None


class PatientFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Patient

    clinic = factory.SubFactory(ClinicFactory)
    patient_id = factory.Sequence(lambda n: f'{n + 1:06d}')
    first_name = 'Jane'
    last_name = 'Doe'
    email = factory.Sequence(lambda n: f'jane.doe{n}@example.com')
    phone = '5125550199'
    dob = '01/15/1990'
    gender = 'female'
    address1 = '123 Main St'
    city = 'Austin'
    state = 'TX'
    zip = '78701'
    intake_answers = factory.LazyFunction(lambda: [
        {'question': 'Goal weight', 'answer': '150 lbs'},
        {'question': 'Current medications', 'answer': 'None'},
    ])


class InvoiceFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Invoice

    patient = factory.SubFactory(PatientFactory)
    clinic = factory.LazyAttribute(lambda o: o.patient.clinic)
    external_id = factory.Sequence(lambda n: f'pm_{n:08d}')
    status = Invoice.STATUS_PAID
    amount = 29900
    amount_paid = 29900
    paid_at = factory.LazyFunction(timezone.now)
    metadata = factory.LazyFunction(lambda: {
        'product': 'Semaglutide',
        'medicationType': 'injections',
        'plan': 'Monthly',
    })


class RefillRequestFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = RefillRequest

    patient = factory.SubFactory(PatientFactory)
    clinic = factory.LazyAttribute(lambda o: o.patient.clinic)
    status = RefillRequest.STATUS_APPROVED
    medication_name = 'Tirzepatide'
    medication_strength = '10/20MG/ML'
    vial_count = 1
    admin_approved_at = factory.LazyFunction(timezone.now)


class SoapNoteFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = SoapNote

    patient = factory.SubFactory(PatientFactory)
    clinic = factory.LazyAttribute(lambda o: o.patient.clinic)
    subjective = 'Patient reports difficulty losing weight despite diet and exercise.'
    objective = 'BMI 32 per self-reported height and weight.'
    assessment = 'Obesity, candidate for GLP-1 therapy.'
    plan = 'Start semaglutide at initiation dose, follow up in 4 weeks.'
    status = SoapNote.STATUS_DRAFT


class OrderFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Order

    patient = factory.SubFactory(PatientFactory)
    clinic = factory.LazyAttribute(lambda o: o.patient.clinic)
    provider = factory.SubFactory(ProviderFactory, clinic=factory.SelfAttribute('..clinic'))
    status = Order.STATUS_QUEUED_FOR_PROVIDER
    rxs = factory.LazyFunction(lambda: [{
        'medicationKey': SEMAGLUTIDE_1ML,
        'sig': 'Inject 0.25 mg subcutaneously once weekly.',
        'quantity': '1',
        'refills': '0',
        'daysSupply': 28,
    }])
    reference_id = factory.Sequence(lambda n: f'rxq-{n:016x}')
    queued_at = factory.LazyFunction(timezone.now)


class OrderSetFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = OrderSet

    clinic = factory.SubFactory(ClinicFactory)
    name = 'Semaglutide 3 Month - New Patient'
    items = factory.LazyFunction(lambda: [
        {'medicationKey': SEMAGLUTIDE_1ML, 'sig': 'Month 1: 0.25 mg weekly', 'quantity': '1',
         'refills': '0', 'daysSupply': 28},
        {'medicationKey': '203448947', 'sig': 'Months 2-3: 0.5 mg weekly', 'quantity': '2',
         'refills': '0', 'daysSupply': 56},
    ])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_staff(role, clinic, with_provider=True):
    """建一个属于 clinic 的用户；provider 角色默认带 Provider 记录。"""
    provider = ProviderFactory(clinic=clinic) if with_provider else None
    profile = StaffProfileFactory(role=role, clinic=clinic, provider=provider)
    return profile.user


def approved_note(patient, provider):
    return SoapNoteFactory(
        patient=patient,
        status=SoapNote.STATUS_APPROVED,
        approved_by=provider,
        approved_at=timezone.now(),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clinic():
    return ClinicFactory(subdomain='wellmedr', name='Wellmedr')


@pytest.fixture
def provider_user(clinic):
    return make_staff(StaffProfile.ROLE_PROVIDER, clinic)


@pytest.fixture
def provider(provider_user):
    return provider_user.staff_profile.provider


@pytest.fixture
def admin_user(clinic):
    return make_staff(StaffProfile.ROLE_ADMIN, clinic, with_provider=False)


@pytest.fixture
def staff_user(clinic):
    return make_staff(StaffProfile.ROLE_STAFF, clinic, with_provider=False)


@pytest.fixture
def api_client():
    """DRF test client; use .force_authenticate(user) for logged-in requests."""
    return APIClient()


@pytest.fixture
def provider_client(api_client, provider_user):
    api_client.force_authenticate(user=provider_user)
    return api_client


@pytest.fixture
def admin_client(api_client, admin_user):
    api_client.force_authenticate(user=admin_user)
    return api_client


@pytest.fixture
def sample_rxs():
    return [{
        'medicationKey': SEMAGLUTIDE_1ML,
        'sig': 'Inject 0.25 mg (0.1 mL / 10 units) subcutaneously once weekly for 4 weeks.',
        'quantity': '1',
        'refills': '0',
        'daysSupply': 28,
    }]


@pytest.fixture
def wellmedr_payload():
    """Airtable 推过来的平铺格式。"""
    return {
        'customer_email': 'Maria.Lopez@example.com',
        'customer_name': 'Maria Lopez',
        'phone': '5125550142',
        'dob': '03/20/1985',
        'sex': 'Female',
        'product': 'Tirzepatide',
        'medication_type': 'injections',
        'plan': 'quarterly',
        'amount': 59700,
        'method_payment_id': 'pm_1StwAHDfH4PWyxxdppqIGipS',
        'submission_id': 'd2620779-9a90-4385-a1b2',
        'payment_date': '2026-01-15T10:00:00Z',
        'shipping_address': '201 Elbridge Ave, Apt F, Cloverdale, California, 95425',
        'glp1-last-30': 'yes',
        'glp1-last-30-medication-type': 'tirzepatide',
        'glp1-last-30-medication-dose-mg': '5',
    }


@pytest.fixture
def eonmeds_payload():
    return {
        'patient': {
            'firstName': 'Ana',
            'lastName': 'Silva',
            'email': 'ana.silva@example.com',
            'phone': '3055550111',
            'dateOfBirth': '1988-07-02',
            'gender': 'f',
            'address': {'address1': '1 Ocean Dr', 'city': 'Miami', 'state': 'Florida', 'zip': '33139'},
        },
        'invoice': {
            'id': 'in_1PqRsT',
            'invoiceNumber': 'EON-1001',
            'amountDue': 39900,
            'amountPaid': 39900,
            'paidAt': '2026-01-15T10:00:00Z',
            'lineItems': [{'description': 'Semaglutide', 'medicationType': 'injections', 'plan': 'monthly'}],
        },
        'intake': {
            'answers': [{'question': 'Current medications', 'answer': 'Metformin'}],
            'glp1History': {'usedLast30Days': False},
        },
    }
