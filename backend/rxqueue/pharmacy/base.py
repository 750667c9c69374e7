"""
BasePharmacyClient — 所有药房对接实现的抽象基类。

每个新药房只需：
1. 继承 BasePharmacyClient
2. 实现 submit_order()
3. 在 factory.py 的 _build_registry 注册一行
"""

from abc import ABC, abstractmethod

from .types import PharmacyResponse


class BasePharmacyClient(ABC):

    @abstractmethod
    def submit_order(self, payload: dict) -> PharmacyResponse:
        """
        把完整的处方订单发给药房。

        Args:
            payload: build_lifefile_payload() 生成的 dict

        Raises:
            PharmacySubmissionError:  药房拒单（4xx / 业务错误）
            ServiceUnavailableError:  药房 503，重试后仍失败
        """
