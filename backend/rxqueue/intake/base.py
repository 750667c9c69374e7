"""
BaseIntakeAdapter — 所有 invoice webhook Adapter 的抽象基类。

Adapter 只负责两步：parse() 把原始 body 变成 dict，transform() 把 dict
变成 InternalInvoice。落库、去重、SOAP 触发都在 processor.py。
新数据源：继承 BaseIntakeAdapter，声明 source，再加进 factory.py。
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Any

from ..exceptions import ValidationError
from .types import InternalInvoice

# ── 共用校验正则（Adapter 可直接复用） ─────────────────────────────────────
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def parse_amount_cents(value) -> int:
    """
    金额 → cents。

    int 直接当 cents；float 或带小数点 / $ 的字符串当美元。
    """
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(round(value * 100))
    cleaned = re.sub(r"[$,\s]", "", str(value))
    try:
        if "." in cleaned:
            return int(round(float(cleaned) * 100))
        return int(cleaned)
    except ValueError:
        return 0


def split_name(full_name: str):
    parts = (full_name or "").strip().split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


class BaseIntakeAdapter(ABC):
    """
    三步流水线：parse → transform → validate

    子类必须实现 transform()；parse() 默认按 JSON 解析。
    validate() 提供通用 email / 金额 / 去重键校验，子类可 super() 后追加检查。
    """

    # 子类声明自己对应的 source 标识符（与 factory 注册键一致）
    source: str = ""
    # invoice 默认归属的 clinic
    clinic_subdomain: str = ""

    def __init__(self, raw_body: bytes | str | dict, content_type: str = ""):
        self._raw_body = raw_body
        self._content_type = content_type
        self._parsed = None

    # ── 提供默认实现，子类可 override ──────────────────────────────────────

    def parse(self) -> Any:
        """原始请求体 → dict。"""
        if isinstance(self._raw_body, dict):
            self._parsed = self._raw_body
            return self._parsed
        try:
            parsed = json.loads(self._raw_body or b"{}")
        except ValueError as exc:
            raise ValidationError(
                message=f"Invalid JSON body: {exc}",
                code="INVALID_PAYLOAD",
            )
        if not isinstance(parsed, dict):
            raise ValidationError(message="Payload must be a JSON object.", code="INVALID_PAYLOAD")
        self._parsed = parsed
        return parsed

    def resolve_clinic_subdomain(self) -> str:
        raw = self._parsed or {}
        return (raw.get("clinic_subdomain") or raw.get("clinicSubdomain") or self.clinic_subdomain).strip()

    # ── 必须实现 ───────────────────────────────────────────────────────────

    @abstractmethod
    def transform(self) -> InternalInvoice:
        """
        将 self._parsed 转换为 InternalInvoice。
        必须把原始数据存入 InternalInvoice.raw_payload。
        """

    def validate(self, internal: InternalInvoice) -> None:
        """
        校验 InternalInvoice 中的通用字段。
        抛出 ValidationError（与现有异常体系兼容）。
        """
        errors = []

        if not EMAIL_RE.match(internal.patient.email or ""):
            errors.append({"field": "patient.email", "message": "A valid patient email is required."})

        if not internal.invoice.external_id:
            errors.append({"field": "invoice.external_id", "message": "A payment / invoice identifier is required."})

        if internal.invoice.amount < 0 or internal.invoice.amount_paid < 0:
            errors.append({"field": "invoice.amount", "message": "Amount cannot be negative."})

        if not internal.clinic_subdomain:
            errors.append({"field": "clinic_subdomain", "message": "Clinic could not be determined."})

        if errors:
            raise ValidationError(
                message="Request validation failed.",
                code="VALIDATION_ERROR",
                detail={"errors": errors},
            )

    # ── 对外统一入口 ───────────────────────────────────────────────────────

    def process(self) -> InternalInvoice:
        """parse → transform → validate，返回校验通过的 InternalInvoice。"""
        self.parse()
        internal = self.transform()
        self.validate(internal)
        return internal
