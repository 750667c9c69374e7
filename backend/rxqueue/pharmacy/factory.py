"""
工厂函数：根据 settings.PHARMACY_PROVIDER 返回对应的药房 client。

  lifefile — 生产环境，走 HTTP
  sandbox  — 本地 / 测试，不出网
"""

from django.conf import settings

from .base import BasePharmacyClient


def _build_registry() -> dict[str, type[BasePharmacyClient]]:
    from .services import LifefileClient, SandboxPharmacyClient

    return {
        "lifefile": LifefileClient,
        "sandbox":  SandboxPharmacyClient,
    }


def get_pharmacy_client() -> BasePharmacyClient:
    """
    Raises:
        ValueError: PHARMACY_PROVIDER 未知
    """
    provider = getattr(settings, "PHARMACY_PROVIDER", "lifefile")
    registry = _build_registry()
    client_cls = registry.get(provider)

    if client_cls is None:
        raise ValueError(
            f"Unknown PHARMACY_PROVIDER: {provider!r}. "
            f"Known providers: {list(registry.keys())}"
        )

    return client_cls()
