"""
具体 Adapter 实现。

新增数据源：在此文件添加一个类，然后在 factory.py 注册即可。

已注册数据源：
  wellmedr — WellmedrAdapter  (Airtable 自动化推送，完全平铺 + snake_case，地址可能是整串)
  eonmeds  — EonmedsAdapter   (自有 intake 表单，嵌套 + camelCase)
"""

from ..address import extract_address_from_payload, smart_parse_address
from ..exceptions import ValidationError
from .base import BaseIntakeAdapter, parse_amount_cents, split_name
from .types import IntakeInvoice, IntakePatient, InternalInvoice


def _str(value) -> str:
    return str(value).strip() if value is not None else ""


# ── WellmedrAdapter ────────────────────────────────────────────────────────
#
# 外部格式示例（JSON）:
# {
#   "customer_email": "patient@example.com",
#   "customer_name": "John Doe",
#   "phone": "5551234567", "dob": "01/15/1980", "sex": "Male",
#   "product": "Tirzepatide", "medication_type": "injections", "plan": "quarterly",
#   "amount": 29900,                                   // cents；也可能给 "price": "$299.00"
#   "method_payment_id": "pm_1StwAHDfH4PWyxxdppqIGipS",
#   "submission_id": "d2620779-9a90-4385-a...",
#   "payment_date": "2026-01-15T10:00:00Z",
#   "shipping_address": "123 Main St, Apt 4B, Austin, TX 78701",
#   "glp1-last-30": "yes", "glp1-last-30-medication-type": "semaglutide",
#   "glp1-last-30-medication-dose-mg": "0.5"
# }
#
# 没被识别的字段原样进 invoice metadata，队列会从里面模糊匹配 GLP-1 字段。

class WellmedrAdapter(BaseIntakeAdapter):
    source = "wellmedr"
    clinic_subdomain = "wellmedr"

    _HANDLED_KEYS = {
        "customer_email", "customer_name", "cardholder_name", "first_name", "last_name",
        "phone", "dob", "date_of_birth", "sex", "gender",
        "amount", "amount_paid", "price", "method_payment_id", "payment_date",
        "product", "medication_type", "plan", "invoice_number", "clinic_subdomain",
    }

    def transform(self) -> InternalInvoice:
        raw = self._parsed

        first_name = _str(raw.get("first_name"))
        last_name = _str(raw.get("last_name"))
        if not first_name and not last_name:
            first_name, last_name = split_name(raw.get("customer_name") or raw.get("cardholder_name"))

        amount = parse_amount_cents(raw.get("amount") or raw.get("amount_paid"))
        if not amount and raw.get("price"):
            amount = parse_amount_cents(raw["price"] if isinstance(raw["price"], str) else float(raw["price"]))

        glp1_used = _str(raw.get("glp1-last-30") or raw.get("glp1_last_30"))
        glp1_history = {}
        if glp1_used:
            glp1_history = {
                "usedLast30Days": glp1_used.lower() == "yes",
                "medicationType": _str(raw.get("glp1-last-30-medication-type") or raw.get("glp1_last_30_medication_type")),
                "doseMg": _str(raw.get("glp1-last-30-medication-dose-mg") or raw.get("glp1_last_30_medication_dose_mg")),
            }

        extra = {
            key: value for key, value in raw.items()
            if key not in self._HANDLED_KEYS and not isinstance(value, (dict, list))
        }
        extra["stripePaymentMethodId"] = _str(raw.get("method_payment_id"))

        return InternalInvoice(
            source=self.source,
            raw_payload=raw,                          # 保留原始数据
            clinic_subdomain=self.resolve_clinic_subdomain(),
            patient=IntakePatient(
                first_name=first_name or "Unknown",
                last_name=last_name or "Unknown",
                email=_str(raw.get("customer_email")).lower(),
                phone=_str(raw.get("phone")),
                dob=_str(raw.get("dob") or raw.get("date_of_birth")),
                gender=_str(raw.get("sex") or raw.get("gender")),
                address=extract_address_from_payload(raw),
                glp1_history=glp1_history,
            ),
            invoice=IntakeInvoice(
                external_id=_str(raw.get("method_payment_id")),
                amount=amount,
                amount_paid=amount,
                paid_at=_str(raw.get("payment_date")),
                product=_str(raw.get("product")) or "GLP-1",
                medication_type=_str(raw.get("medication_type")),
                plan=_str(raw.get("plan")),
                invoice_number=_str(raw.get("invoice_number")),
                extra_metadata=extra,
            ),
        )

    def validate(self, internal: InternalInvoice) -> None:
        super().validate(internal)
        payment_id = internal.invoice.external_id
        if not payment_id.startswith("pm_"):
            raise ValidationError(
                message="Invalid payment method format. Expected a 'pm_' identifier.",
                code="INVALID_PAYMENT_METHOD",
                detail={"method_payment_id": payment_id[:10]},
            )


# ── EonmedsAdapter ─────────────────────────────────────────────────────────
#
# 外部格式示例（JSON）:
# {
#   "patient": {
#     "firstName": "Jane", "lastName": "Smith", "email": "jane@example.com",
#     "phone": "5559876543", "dateOfBirth": "1985-03-20", "gender": "f",
#     "address": { "address1": "1 Ocean Dr", "city": "Miami", "state": "Florida", "zip": "33139" }
#   },
#   "invoice": {
#     "id": "in_123", "invoiceNumber": "EON-1001", "amountDue": 39900, "amountPaid": 39900,
#     "paidAt": "2026-01-15T10:00:00Z",
#     "lineItems": [{ "description": "Semaglutide", "medicationType": "injections", "plan": "monthly" }]
#   },
#   "intake": {
#     "answers": [{ "question": "Current medications", "answer": "None" }],
#     "glp1History": { "usedLast30Days": true, "medicationType": "semaglutide", "doseMg": "0.5" }
#   }
# }

class EonmedsAdapter(BaseIntakeAdapter):
    source = "eonmeds"
    clinic_subdomain = "eonmeds"

    def transform(self) -> InternalInvoice:
        raw = self._parsed
        patient = raw.get("patient") or {}
        invoice = raw.get("invoice") or {}
        intake = raw.get("intake") or {}

        line_items = [item for item in (invoice.get("lineItems") or []) if isinstance(item, dict)]
        first_item = line_items[0] if line_items else {}

        history = intake.get("glp1History") or {}
        glp1_history = {}
        if history:
            used = history.get("usedLast30Days")
            glp1_history = {
                "usedLast30Days": used is True or _str(used).lower() == "yes",
                "medicationType": _str(history.get("medicationType")),
                "doseMg": _str(history.get("doseMg")),
            }

        answers = [
            {"question": _str(a.get("question")), "answer": a.get("answer")}
            for a in (intake.get("answers") or [])
            if isinstance(a, dict) and a.get("question")
        ]

        amount_paid = parse_amount_cents(invoice.get("amountPaid"))
        return InternalInvoice(
            source=self.source,
            raw_payload=raw,
            clinic_subdomain=self.resolve_clinic_subdomain(),
            patient=IntakePatient(
                first_name=_str(patient.get("firstName")) or "Unknown",
                last_name=_str(patient.get("lastName")) or "Unknown",
                email=_str(patient.get("email")).lower(),
                phone=_str(patient.get("phone")),
                dob=_str(patient.get("dateOfBirth") or patient.get("dob")),
                gender=_str(patient.get("gender")),
                address=smart_parse_address(patient.get("address")),
                intake_answers=answers,
                glp1_history=glp1_history,
            ),
            invoice=IntakeInvoice(
                external_id=_str(invoice.get("id")),
                amount=parse_amount_cents(invoice.get("amountDue")) or amount_paid,
                amount_paid=amount_paid,
                paid_at=_str(invoice.get("paidAt")),
                product=_str(first_item.get("product") or first_item.get("description")),
                medication_type=_str(first_item.get("medicationType")),
                plan=_str(first_item.get("plan")),
                invoice_number=_str(invoice.get("invoiceNumber")),
                line_items=line_items,
            ),
        )
