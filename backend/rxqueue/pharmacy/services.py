"""
具体药房实现。

已注册：
  lifefile — LifefileClient         (POST {LIFEFILE_BASE_URL}/order, basic auth)
  sandbox  — SandboxPharmacyClient  (不出网，直接返回假订单号)
"""

import logging
import time
import uuid

import requests
from django.conf import settings

from ..exceptions import PharmacySubmissionError, ServiceUnavailableError
from .base import BasePharmacyClient
from .types import PharmacyResponse

logger = logging.getLogger(__name__)


# ── LifefileClient ─────────────────────────────────────────────────────────
#
# 环境变量：LIFEFILE_BASE_URL / LIFEFILE_USERNAME / LIFEFILE_PASSWORD /
#           LIFEFILE_VENDOR_ID / LIFEFILE_LOCATION_ID / LIFEFILE_NETWORK_ID
#
# 只有 503 和连接超时会重试：最多 PHARMACY_MAX_RETRIES 次，
# 间隔 PHARMACY_RETRY_DELAY * (attempt + 1) 秒。

class LifefileClient(BasePharmacyClient):

    def __init__(self, session=None):
        self.base_url = settings.LIFEFILE_BASE_URL.rstrip('/')
        self.timeout = settings.LIFEFILE_TIMEOUT
        self.max_retries = settings.PHARMACY_MAX_RETRIES
        self.retry_delay = settings.PHARMACY_RETRY_DELAY
        self.session = session or requests.Session()
        self.session.auth = (settings.LIFEFILE_USERNAME, settings.LIFEFILE_PASSWORD)
        self.session.headers.update({
            'Content-Type': 'application/json',
            'X-Vendor-ID': str(settings.LIFEFILE_VENDOR_ID),
            'X-Location-ID': str(settings.LIFEFILE_LOCATION_ID),
            'X-API-Network-ID': str(settings.LIFEFILE_NETWORK_ID),
        })

    def submit_order(self, payload: dict) -> PharmacyResponse:
        url = f"{self.base_url}/order"
        reference_id = payload.get('order', {}).get('general', {}).get('referenceId')
        last_error = None

        for attempt in range(self.max_retries + 1):
            try:
                response = self.session.post(url, json=payload, timeout=self.timeout)
            except requests.ConnectTimeout as exc:
                # 连接都没建立，药房肯定没收到，可以重发
                last_error = str(exc)
                logger.warning(
                    "[PHARMACY] ref=%s 连接超时 (attempt %d/%d): %s",
                    reference_id, attempt + 1, self.max_retries + 1, exc,
                )
            except requests.RequestException as exc:
                # 请求可能已经送达，重发会产生重复处方
                logger.error("[PHARMACY] ref=%s 请求中断，不重发: %s", reference_id, exc)
                raise ServiceUnavailableError(
                    message=(
                        'No response from pharmacy. The order may have been received; '
                        'check the pharmacy before resubmitting.'
                    ),
                    code='PHARMACY_NO_RESPONSE',
                    detail={'error': str(exc), 'reference_id': reference_id},
                )
            else:
                if response.status_code != 503:
                    return self._handle_response(response, reference_id)
                last_error = 'Pharmacy service temporarily unavailable'
                logger.warning(
                    "[PHARMACY] ref=%s 503 (attempt %d/%d)",
                    reference_id, attempt + 1, self.max_retries + 1,
                )

            if attempt < self.max_retries:
                time.sleep(self.retry_delay * (attempt + 1))

        logger.error("[PHARMACY] ref=%s 重试 %d 次后仍不可用", reference_id, self.max_retries)
        raise ServiceUnavailableError(
            message='Pharmacy service is temporarily unavailable. Please try again shortly.',
            code='PHARMACY_UNAVAILABLE',
            detail={'error': last_error, 'attempts': self.max_retries + 1},
        )

    @staticmethod
    def _handle_response(response, reference_id) -> PharmacyResponse:
        try:
            body = response.json()
        except ValueError:
            body = {'raw': response.text}
        if not isinstance(body, dict):
            body = {'raw': body}

        if not response.ok:
            message = body.get('message') or body.get('error') or f'HTTP {response.status_code}'
            logger.error("[PHARMACY] ref=%s 药房拒单 status=%s: %s", reference_id, response.status_code, message)
            raise PharmacySubmissionError(
                message=f'Failed to submit order to pharmacy: {message}',
                detail={'status_code': response.status_code, 'response': body},
            )

        data = body.get('data') or {}
        order_id = data.get('orderId') or body.get('orderId')
        logger.info("[PHARMACY] ref=%s 已提交 lifefile_order_id=%s", reference_id, order_id)
        return PharmacyResponse(
            order_id=str(order_id) if order_id is not None else '',
            status=body.get('status') or 'sent',
            raw=body,
        )


# ── SandboxPharmacyClient ──────────────────────────────────────────────────

class SandboxPharmacyClient(BasePharmacyClient):

    def submit_order(self, payload: dict) -> PharmacyResponse:
        order_id = f"SBX-{uuid.uuid4().hex[:10].upper()}"
        logger.info("[PHARMACY][sandbox] 模拟提交 order_id=%s rxs=%d",
                    order_id, len(payload.get('order', {}).get('rxs', [])))
        return PharmacyResponse(
            order_id=order_id,
            status='sent',
            raw={'status': 'sent', 'data': {'orderId': order_id}, 'sandbox': True},
        )
