"""
BaseLLMService — SOAP note 生成用的 LLM 抽象。

子类只实现 _request()：拿到 SDK client 的原始响应并转成 LLMResponse。
API key 检查、耗时日志都在 complete() 里统一处理。
"""

import logging
import time
from abc import ABC, abstractmethod

from .types import LLMResponse

logger = logging.getLogger(__name__)


class BaseLLMService(ABC):

    provider_name = ''
    api_key_setting = ''

    def __init__(self, api_key: str, model: str, max_tokens: int = 2000, timeout: float = 60):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout

    def complete(self, system_prompt: str, user_prompt: str) -> LLMResponse:
        """
        Raises:
            ValueError: 没配 API key
            Exception:  SDK 调用失败，原样抛出给 tasks.py 重试
        """
        if not self.api_key:
            raise ValueError(f"{self.api_key_setting} is not set")

        started = time.monotonic()
        response = self._request(system_prompt, user_prompt)
        logger.info(
            "[LLM] provider=%s model=%s tokens=%s/%s %.1fs",
            self.provider_name, response.model,
            response.prompt_tokens, response.completion_tokens,
            time.monotonic() - started,
        )
        return response

    @abstractmethod
    def _request(self, system_prompt: str, user_prompt: str) -> LLMResponse:
        ...
