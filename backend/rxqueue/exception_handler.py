"""
统一异常处理器。

挂到 DRF 的 EXCEPTION_HANDLER setting 上。
所有响应（无论成功还是失败）前端都能用同一套逻辑判断：
  response.type 存在  → 出问题了
  没有 type 字段      → 成功

统一错误响应格式：
{
    "type":    "validation_error" | "permission_denied" | "block" | "warning" | ...,
    "code":    "INCOMPLETE_SHIPPING_ADDRESS",
    "message": "Shipping address is required. Please fill in all address fields.",
    "detail":  { ... }  // 可选
}
"""

import logging

from django.http import JsonResponse
from rest_framework.exceptions import APIException
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.views import exception_handler as drf_default_handler

from .exceptions import BaseAppException, ServiceUnavailableError

logger = logging.getLogger(__name__)


def unified_exception_handler(exc, context):
    """
    DRF exception handler entry point.

    优先级：
    1. BaseAppException 及其子类 → 统一格式（503 额外带 Retry-After）
    2. DRF 自带的 ValidationError → 转成统一格式
    3. DRF 其他 APIException（未登录 / 405 / ...）→ 统一格式，状态码沿用 DRF
    4. 其他异常 → 交给 DRF 默认处理
    """

    # --- 1. 我们自己的异常体系 ---
    if isinstance(exc, BaseAppException):
        body = {
            'type': exc.type,
            'code': exc.code,
            'message': exc.message,
        }
        if exc.detail is not None:
            body['detail'] = exc.detail
        response = JsonResponse(body, status=exc.http_status)
        if isinstance(exc, ServiceUnavailableError):
            response['Retry-After'] = str(exc.retry_after)
        if exc.http_status >= 500:
            logger.warning("[API] %s %s: %s", exc.http_status, exc.code, exc.message)
        return response

    # --- 2. DRF 自带的 ValidationError ---
    if isinstance(exc, DRFValidationError):
        body = {
            'type': 'validation_error',
            'code': 'VALIDATION_ERROR',
            'message': 'Request validation failed',
            'detail': exc.detail,
        }
        return JsonResponse(body, status=400)

    # --- 3. DRF 其他异常，套上同样的信封 ---
    if isinstance(exc, APIException):
        response = drf_default_handler(exc, context)
        if response is not None:
            response.data = {
                'type': 'error',
                'code': str(exc.default_code).upper(),
                'message': str(exc.detail),
            }
        return response

    # --- 4. 其他的交给 DRF 默认处理 ---
    return drf_default_handler(exc, context)
