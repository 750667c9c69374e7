"""
get_adapter() — 按 URL 里的 source 选 Adapter。

source 和 Adapter.source 一一对应；URL 大小写不敏感。
"""

from ..exceptions import ValidationError
from .base import BaseIntakeAdapter


def _adapters_by_source() -> dict[str, type[BaseIntakeAdapter]]:
    from .adapters import EonmedsAdapter, WellmedrAdapter

    return {cls.source: cls for cls in (WellmedrAdapter, EonmedsAdapter)}


def get_adapter(source: str, raw_body, content_type: str = "") -> BaseIntakeAdapter:
    """
    Raises:
        ValidationError: source 没有对应的 Adapter
    """
    adapters = _adapters_by_source()
    adapter_cls = adapters.get((source or "").strip().lower())
    if adapter_cls is None:
        raise ValidationError(
            message=f"Unknown intake source: {source!r}.",
            code="UNKNOWN_SOURCE",
            detail={"known_sources": list(adapters)},
        )
    return adapter_cls(raw_body=raw_body, content_type=content_type)
