"""
Response serializers — ORM 对象 → JSON-able dict。

只负责「输出格式化」，不做任何解析或校验。
输入解析和校验在 service 层（queue / prescriptions / soap_notes）和 intake/ adapter 里。
"""


def _iso(value):
    return value.isoformat() if value else None


def serialize_soap_note(note):
    if note is None:
        return None
    return {
        'id': str(note.id),
        'patient_id': str(note.patient_id),
        'invoice_id': str(note.invoice_id) if note.invoice_id else None,
        'status': note.status,
        'source_type': note.source_type,
        'generated_by_ai': note.generated_by_ai,
        'llm_model': note.llm_model or None,
        'subjective': note.subjective,
        'objective': note.objective,
        'assessment': note.assessment,
        'plan': note.plan,
        'is_approved': note.is_approved,
        'approved_by': str(note.approved_by_id) if note.approved_by_id else None,
        'approved_at': _iso(note.approved_at),
        'locked_at': _iso(note.locked_at),
        'created_at': _iso(note.created_at),
        'updated_at': _iso(note.updated_at),
    }


def serialize_soap_generation(result):
    """ensure_soap_note_exists 的结果。"""
    return {
        'success': result.success,
        'action': result.action,
        'error': result.error or None,
        'soap_note': serialize_soap_note(result.soap_note),
    }


def serialize_order(order):
    response = {
        'order_id': str(order.id),
        'status': order.status,
        'patient_id': str(order.patient_id),
        'provider_id': str(order.provider_id) if order.provider_id else None,
        'invoice_id': str(order.invoice_id) if order.invoice_id else None,
        'refill_id': str(order.refill_id) if order.refill_id else None,
        'rxs': order.rxs,
        'shipping_method': order.shipping_method,
        'reference_id': order.reference_id,
        'created_at': _iso(order.created_at),
    }

    if order.status == order.STATUS_SENT:
        response['pharmacy_order_id'] = order.pharmacy_order_id
        response['pharmacy_status'] = order.pharmacy_status
        response['sent_at'] = _iso(order.sent_at)
    elif order.status == order.STATUS_QUEUED_FOR_PROVIDER:
        response['queued_at'] = _iso(order.queued_at)
    elif order.status == order.STATUS_DECLINED:
        response['decline_reason'] = order.decline_reason
        response['declined_at'] = _iso(order.declined_at)
    elif order.status == order.STATUS_FAILED:
        response['error'] = {'message': order.error_message, 'retry_allowed': True}

    return response


def serialize_prescription_result(result):
    order = result['order']
    if result['queued_for_provider']:
        message = (
            'Prescription queued for provider review. A provider can approve and send it '
            'to the pharmacy from the prescription queue.'
        )
    else:
        message = 'Prescription submitted to pharmacy'
    return {
        'success': True,
        'queued_for_provider': result['queued_for_provider'],
        'message': message,
        'order': serialize_order(order),
    }


def serialize_invoice_hold(invoice):
    return {
        'invoice_id': str(invoice.id),
        'on_hold': invoice.held_at is not None,
        'held_at': _iso(invoice.held_at),
        'hold_reason': invoice.hold_reason,
    }


def serialize_address(address):
    return address.as_dict()


def serialize_patient(patient, address=None):
    data = {
        'id': str(patient.id),
        'patient_id': patient.patient_id,
        'first_name': patient.first_name,
        'last_name': patient.last_name,
        'email': patient.email,
        'phone': patient.phone,
        'dob': patient.dob,
        'gender': patient.gender,
        'address': {
            'address1': patient.address1,
            'address2': patient.address2,
            'city': patient.city,
            'state': patient.state,
            'zip': patient.zip,
        },
    }
    if address is not None:
        data['address'] = serialize_address(address)
    return data


def serialize_queue_item_details(details):
    patient = details['patient']
    invoice = details['invoice']
    clinic = invoice.clinic
    return {
        'patient': {
            **serialize_patient(patient, details['address']),
            'allergies': patient.allergies,
            'medical_conditions': patient.medical_conditions,
            'current_medications': patient.current_medications,
            'intake_answers': patient.intake_answers,
        },
        'invoice': {
            'id': str(invoice.id),
            'invoice_number': invoice.invoice_number,
            'amount': invoice.amount,
            'amount_paid': invoice.amount_paid,
            'paid_at': _iso(invoice.paid_at),
            'metadata': invoice.metadata,
            'line_items': invoice.line_items,
        },
        'clinic': {
            'id': str(clinic.id),
            'name': clinic.name,
            'subdomain': clinic.subdomain,
            'pharmacy_enabled': clinic.pharmacy_enabled,
        },
        'treatment': details['treatment'],
        'plan_months': details['plan_months'],
        'glp1_info': details['glp1_info'],
        'soap_note_status': details['soap_note_status'],
        'soap_note': serialize_soap_note(details['soap_note']),
        'prescription_form': details['prescription_form'],
    }


def serialize_address_reconciliation(patient, address, changed):
    return {
        'patient_id': str(patient.id),
        'changed': changed,
        'address': serialize_address(address),
    }


def serialize_intake_result(invoice, created):
    return {
        'invoice_id': str(invoice.id),
        'patient_id': str(invoice.patient_id),
        'status': invoice.status,
        'duplicate': not created,
        'message': 'Invoice received and queued for prescribing.' if created else 'Duplicate webhook - invoice already exists',
    }
