"""
药房层的标准响应结构。

所有 PharmacyClient 实现的 submit_order() 都返回这个对象。
业务层（prescriptions.py）只认识这个格式，不知道背后是 Lifefile 还是 sandbox。
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class PharmacyResponse:
    order_id: str          # 药房侧订单号，写入 Order.pharmacy_order_id
    status: str            # 药房返回的状态（"sent" / "received" / ...）
    raw: Any = field(default=None, repr=False)
