"""
审计日志。

所有终态操作（标记已处理 / 拒绝 / 提交处方 / 审批 SOAP note）都写一条 AuditEvent。
"""

import logging

from .models import AuditEvent

logger = logging.getLogger(__name__)


def log_action(actor, action: str, entity_type: str, entity_id, clinic=None, metadata: dict = None):
    event = AuditEvent.objects.create(
        actor=actor,
        actor_email=getattr(actor, 'email', '') or '',
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        clinic=clinic,
        metadata=metadata or {},
    )
    logger.info("[AUDIT] %s %s=%s actor=%s", action, entity_type, entity_id, event.actor_email or '-')
    return event
