"""
InternalInvoice dataclass — intake 业务逻辑唯一认识的标准格式。

所有 Adapter 的 transform() 必须返回这个结构。
processor.py 只消费这个结构，永远不碰外部原始数据。
"""

from dataclasses import dataclass, field
from typing import Any

from ..address import Address


@dataclass
class IntakePatient:
    first_name: str
    last_name: str
    email: str
    phone: str = ""
    dob: str = ""              # 原样保存（MM/DD/YYYY 或 ISO），提交药房时再规范化
    gender: str = ""
    address: Address = field(default_factory=Address)
    intake_answers: list[dict] = field(default_factory=list)
    glp1_history: dict = field(default_factory=dict)


@dataclass
class IntakeInvoice:
    external_id: str           # 来源系统里的唯一标识，用于去重
    amount: int                # cents
    amount_paid: int = 0       # cents
    paid_at: str = ""          # ISO 8601，空 = 收到 webhook 的时间
    product: str = ""
    medication_type: str = ""
    plan: str = ""
    invoice_number: str = ""
    line_items: list[dict] = field(default_factory=list)
    extra_metadata: dict = field(default_factory=dict)


@dataclass
class InternalInvoice:
    """
    标准内部 invoice 格式。

    raw_payload       保存原始数据，用于排查问题，不参与业务逻辑。
    source            标识数据来源（"wellmedr" / "eonmeds" / ...）。
    clinic_subdomain  invoice 归属的 clinic。
    """

    patient: IntakePatient
    invoice: IntakeInvoice
    clinic_subdomain: str
    source: str = ""
    raw_payload: Any = field(default=None, repr=False)
