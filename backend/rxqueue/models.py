import uuid

from django.conf import settings
from django.db import models


class Clinic(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    subdomain = models.CharField(max_length=100, unique=True)
    pharmacy_enabled = models.BooleanField(default=True)
    practice_id = models.CharField(max_length=50, blank=True, default='')
    practice_name = models.CharField(max_length=200, blank=True, default='')
    default_shipping_method = models.IntegerField(default=8115)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'clinics'

    def __str__(self):
        return self.name


class Provider(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='providers')
    npi = models.CharField(max_length=10, unique=True)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(blank=True, default='')
    phone = models.CharField(max_length=30, blank=True, default='')
    license_state = models.CharField(max_length=2, blank=True, default='')
    license_number = models.CharField(max_length=50, blank=True, default='')
    dea = models.CharField(max_length=20, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'providers'

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()


class StaffProfile(models.Model):
    ROLE_PROVIDER = 'provider'
    ROLE_ADMIN = 'admin'
    ROLE_SUPER_ADMIN = 'super_admin'
    ROLE_STAFF = 'staff'
    ROLE_CHOICES = [
        (ROLE_PROVIDER, 'Provider'),
        (ROLE_ADMIN, 'Admin'),
        (ROLE_SUPER_ADMIN, 'Super admin'),
        (ROLE_STAFF, 'Staff'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='staff_profile')
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_STAFF)
    clinic = models.ForeignKey(Clinic, on_delete=models.SET_NULL, null=True, blank=True, related_name='staff')
    provider = models.OneToOneField(Provider, on_delete=models.SET_NULL, null=True, blank=True, related_name='staff_profile')

    class Meta:
        db_table = 'staff_profiles'


class Patient(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='patients')
    patient_id = models.CharField(max_length=50, blank=True, default='')
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(blank=True, default='')
    phone = models.CharField(max_length=30, blank=True, default='')
    dob = models.CharField(max_length=20, blank=True, default='')
    gender = models.CharField(max_length=20, blank=True, default='')
    address1 = models.CharField(max_length=255, blank=True, default='')
    address2 = models.CharField(max_length=255, blank=True, default='')
    city = models.CharField(max_length=100, blank=True, default='')
    state = models.CharField(max_length=100, blank=True, default='')
    zip = models.CharField(max_length=20, blank=True, default='')
    allergies = models.TextField(blank=True, default='')
    medical_conditions = models.TextField(blank=True, default='')
    current_medications = models.TextField(blank=True, default='')
    # [{"question": "...", "answer": "..."}, ...]
    intake_answers = models.JSONField(default=list, blank=True)
    # {"usedLast30Days": true, "medicationType": "semaglutide", "doseMg": "0.5"}
    glp1_history = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'patients'

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()


class Invoice(models.Model):
    STATUS_DRAFT = 'DRAFT'
    STATUS_OPEN = 'OPEN'
    STATUS_PAID = 'PAID'
    STATUS_VOID = 'VOID'
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_OPEN, 'Open'),
        (STATUS_PAID, 'Paid'),
        (STATUS_VOID, 'Void'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='invoices')
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='invoices')
    external_id = models.CharField(max_length=100, blank=True, default='')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_OPEN)
    amount = models.IntegerField(default=0)        # cents
    amount_paid = models.IntegerField(default=0)   # cents
    paid_at = models.DateTimeField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    line_items = models.JSONField(default=list, blank=True)
    prescription_processed = models.BooleanField(default=False)
    prescription_processed_at = models.DateTimeField(null=True, blank=True)
    prescription_processed_by = models.ForeignKey(
        Provider, on_delete=models.SET_NULL, null=True, blank=True, related_name='processed_invoices',
    )
    held_at = models.DateTimeField(null=True, blank=True)
    hold_reason = models.TextField(blank=True, default='')
    declined_at = models.DateTimeField(null=True, blank=True)
    declined_by = models.ForeignKey(
        Provider, on_delete=models.SET_NULL, null=True, blank=True, related_name='declined_invoices',
    )
    decline_reason = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'invoices'

    @property
    def invoice_number(self):
        return (self.metadata or {}).get('invoiceNumber') or f"INV-{self.id}"


class RefillRequest(models.Model):
    STATUS_PENDING_PAYMENT = 'PENDING_PAYMENT'
    STATUS_PENDING_ADMIN = 'PENDING_ADMIN'
    STATUS_APPROVED = 'APPROVED'
    STATUS_PENDING_PROVIDER = 'PENDING_PROVIDER'
    STATUS_PRESCRIBED = 'PRESCRIBED'
    STATUS_REJECTED = 'REJECTED'
    STATUS_CHOICES = [
        (STATUS_PENDING_PAYMENT, 'Pending payment'),
        (STATUS_PENDING_ADMIN, 'Pending admin'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_PENDING_PROVIDER, 'Pending provider'),
        (STATUS_PRESCRIBED, 'Prescribed'),
        (STATUS_REJECTED, 'Rejected'),
    ]
    QUEUE_STATUSES = (STATUS_APPROVED, STATUS_PENDING_PROVIDER)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='refills')
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='refills')
    invoice = models.ForeignKey(Invoice, on_delete=models.SET_NULL, null=True, blank=True, related_name='refills')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING_ADMIN)
    medication_name = models.CharField(max_length=200, blank=True, default='')
    medication_strength = models.CharField(max_length=100, blank=True, default='')
    medication_form = models.CharField(max_length=100, blank=True, default='')
    vial_count = models.IntegerField(default=1)
    plan_name = models.CharField(max_length=100, blank=True, default='')
    requested_early = models.BooleanField(default=False)
    patient_notes = models.TextField(blank=True, default='')
    admin_approved_at = models.DateTimeField(null=True, blank=True)
    provider_queued_at = models.DateTimeField(null=True, blank=True)
    prescribed_at = models.DateTimeField(null=True, blank=True)
    prescribed_by = models.ForeignKey(
        Provider, on_delete=models.SET_NULL, null=True, blank=True, related_name='prescribed_refills',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'refill_queue'


class Order(models.Model):
    STATUS_PENDING = 'PENDING'
    STATUS_QUEUED_FOR_PROVIDER = 'QUEUED_FOR_PROVIDER'
    STATUS_SENT = 'SENT'
    STATUS_DECLINED = 'DECLINED'
    STATUS_FAILED = 'FAILED'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_QUEUED_FOR_PROVIDER, 'Queued for provider'),
        (STATUS_SENT, 'Sent'),
        (STATUS_DECLINED, 'Declined'),
        (STATUS_FAILED, 'Failed'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='orders')
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='orders')
    provider = models.ForeignKey(Provider, on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')
    invoice = models.ForeignKey(Invoice, on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')
    refill = models.ForeignKey(RefillRequest, on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')
    status = models.CharField(max_length=30, choices=STATUS_CHOICES, default=STATUS_QUEUED_FOR_PROVIDER)
    # [{"medicationKey", "sig", "quantity", "refills", "daysSupply"}, ...]
    rxs = models.JSONField(default=list, blank=True)
    shipping_method = models.IntegerField(default=8115)
    reference_id = models.CharField(max_length=100, blank=True, default='')
    pharmacy_order_id = models.CharField(max_length=100, blank=True, default='')
    pharmacy_status = models.CharField(max_length=50, blank=True, default='')
    request_payload = models.JSONField(default=dict, blank=True)
    response_payload = models.JSONField(default=dict, blank=True)
    error_message = models.TextField(blank=True, default='')
    queued_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='queued_orders',
    )
    queued_at = models.DateTimeField(null=True, blank=True)
    decline_reason = models.TextField(blank=True, default='')
    declined_at = models.DateTimeField(null=True, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'orders'


class OrderSet(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='order_sets')
    name = models.CharField(max_length=200)
    # [{"medicationKey", "sig", "quantity", "refills", "daysSupply"}, ...]
    items = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'order_sets'


class SoapNote(models.Model):
    STATUS_DRAFT = 'DRAFT'
    STATUS_APPROVED = 'APPROVED'
    STATUS_LOCKED = 'LOCKED'
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_LOCKED, 'Locked'),
    ]
    APPROVED_STATUSES = (STATUS_APPROVED, STATUS_LOCKED)

    SOURCE_AI = 'AI_GENERATED'
    SOURCE_MANUAL = 'MANUAL'
    SOURCE_CHOICES = [
        (SOURCE_AI, 'AI generated'),
        (SOURCE_MANUAL, 'Manual'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='soap_notes')
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='soap_notes')
    invoice = models.ForeignKey(Invoice, on_delete=models.SET_NULL, null=True, blank=True, related_name='soap_notes')
    subjective = models.TextField(blank=True, default='')
    objective = models.TextField(blank=True, default='')
    assessment = models.TextField(blank=True, default='')
    plan = models.TextField(blank=True, default='')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_DRAFT)
    source_type = models.CharField(max_length=20, choices=SOURCE_CHOICES, default=SOURCE_MANUAL)
    generated_by_ai = models.BooleanField(default=False)
    llm_model = models.CharField(max_length=100, blank=True, default='')
    prompt_tokens = models.IntegerField(null=True, blank=True)
    completion_tokens = models.IntegerField(null=True, blank=True)
    approved_by = models.ForeignKey(
        Provider, on_delete=models.SET_NULL, null=True, blank=True, related_name='approved_soap_notes',
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    locked_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'soap_notes'

    @property
    def is_approved(self):
        return self.status in self.APPROVED_STATUSES


class AuditEvent(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    clinic = models.ForeignKey(Clinic, on_delete=models.SET_NULL, null=True, blank=True, related_name='audit_events')
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='audit_events',
    )
    actor_email = models.CharField(max_length=254, blank=True, default='')
    action = models.CharField(max_length=100)
    entity_type = models.CharField(max_length=50)
    entity_id = models.CharField(max_length=100)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_events'
        ordering = ['-created_at']
