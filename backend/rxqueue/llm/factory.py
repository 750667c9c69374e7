"""
get_llm_service() — 按 settings.LLM_PROVIDER 组装 LLMService。

key / model 都从 settings 读（settings 再从环境变量读），
测试里直接改 settings fixture 就能切换。
"""

from django.conf import settings

from .base import BaseLLMService


def _provider_config():
    # 延迟导入：SDK 只在真正生成 SOAP note 时才需要
    from .services import ClaudeService, OpenAIService

    return {
        "anthropic": (ClaudeService, "ANTHROPIC_API_KEY", "ANTHROPIC_MODEL"),
        "openai": (OpenAIService, "OPENAI_API_KEY", "OPENAI_MODEL"),
    }


def get_llm_service() -> BaseLLMService:
    """
    Raises:
        ValueError: LLM_PROVIDER 未知
    """
    provider = getattr(settings, "LLM_PROVIDER", "anthropic")
    config = _provider_config()
    if provider not in config:
        raise ValueError(f"Unknown LLM_PROVIDER: {provider!r}. Known providers: {sorted(config)}")

    service_cls, key_setting, model_setting = config[provider]
    return service_cls(
        api_key=getattr(settings, key_setting, ""),
        model=getattr(settings, model_setting),
        max_tokens=getattr(settings, "SOAP_MAX_TOKENS", 2000),
        timeout=getattr(settings, "LLM_TIMEOUT", 60),
    )
