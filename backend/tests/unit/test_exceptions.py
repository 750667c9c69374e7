"""
Unit tests for exception classes and unified_exception_handler.

不需要数据库，纯 Python 测试：
1. BaseAppException 默认值
2. 各子类的默认 type / code / http_status
3. 构造时覆盖 code / http_status
4. detail 可选
5. unified_exception_handler 把异常转成统一信封
"""
import json

import pytest
from rest_framework.exceptions import NotAuthenticated
from rest_framework.exceptions import ValidationError as DRFValidationError

from rxqueue.exception_handler import unified_exception_handler
from rxqueue.exceptions import (
    BaseAppException,
    BlockError,
    PermissionDeniedError,
    PharmacySubmissionError,
    ServiceUnavailableError,
    ValidationError,
    WarningError,
)


# -------------------------------------------------------------------
# Exception classes
# -------------------------------------------------------------------

class TestBaseAppException:

    def test_defaults(self):
        exc = BaseAppException('something broke')
        assert exc.message == 'something broke'
        assert exc.type == 'error'
        assert exc.code == 'UNKNOWN_ERROR'
        assert exc.http_status == 500
        assert exc.detail is None
        assert str(exc) == 'something broke'

    def test_override_code_and_status(self):
        exc = BaseAppException('bad', code='CUSTOM_CODE', http_status=418)
        assert exc.code == 'CUSTOM_CODE'
        assert exc.http_status == 418

    def test_override_does_not_leak_to_class(self):
        BlockError('gone', http_status=404)
        assert BlockError('blocked').http_status == 409


@pytest.mark.parametrize('exc_cls, type_, code, status', [
    (ValidationError, 'validation_error', 'VALIDATION_ERROR', 400),
    (PermissionDeniedError, 'permission_denied', 'FORBIDDEN', 403),
    (BlockError, 'block', 'BUSINESS_BLOCK', 409),
    (WarningError, 'warning', 'CONFIRMATION_REQUIRED', 409),
    (PharmacySubmissionError, 'upstream_error', 'LIFEFILE_SUBMISSION_FAILED', 502),
    (ServiceUnavailableError, 'service_unavailable', 'SERVICE_UNAVAILABLE', 503),
])
def test_subclass_defaults(exc_cls, type_, code, status):
    exc = exc_cls('message')
    assert exc.type == type_
    assert exc.code == code
    assert exc.http_status == status


def test_service_unavailable_retry_after():
    assert ServiceUnavailableError('down').retry_after == 15
    assert ServiceUnavailableError('down', retry_after=30).retry_after == 30


# -------------------------------------------------------------------
# unified_exception_handler
# -------------------------------------------------------------------

def _body(response):
    return json.loads(response.content)


class TestUnifiedExceptionHandler:

    def test_app_exception_envelope(self):
        exc = ValidationError(
            'Shipping address is required. Please fill in all address fields.',
            code='INCOMPLETE_SHIPPING_ADDRESS',
            detail={'missing_fields': ['zip']},
        )

        response = unified_exception_handler(exc, {})

        assert response.status_code == 400
        assert _body(response) == {
            'type': 'validation_error',
            'code': 'INCOMPLETE_SHIPPING_ADDRESS',
            'message': 'Shipping address is required. Please fill in all address fields.',
            'detail': {'missing_fields': ['zip']},
        }

    def test_detail_omitted_when_none(self):
        response = unified_exception_handler(BlockError('Invoice not found', code='NOT_FOUND', http_status=404), {})

        assert response.status_code == 404
        assert 'detail' not in _body(response)

    def test_warning_is_409(self):
        response = unified_exception_handler(WarningError('confirm', code='VIAL_QUANTITY_SAFEGUARD'), {})

        assert response.status_code == 409
        assert _body(response)['type'] == 'warning'

    def test_service_unavailable_sets_retry_after(self):
        exc = ServiceUnavailableError('Database temporarily unavailable', code='DATABASE_UNAVAILABLE', retry_after=20)

        response = unified_exception_handler(exc, {})

        assert response.status_code == 503
        assert response['Retry-After'] == '20'

    def test_drf_validation_error(self):
        response = unified_exception_handler(DRFValidationError({'rxs': ['This field is required.']}), {})

        body = _body(response)
        assert response.status_code == 400
        assert body['type'] == 'validation_error'
        assert body['code'] == 'VALIDATION_ERROR'
        assert 'rxs' in body['detail']

    def test_drf_not_authenticated(self):
        response = unified_exception_handler(NotAuthenticated(), {})

        assert response.status_code in (401, 403)
        assert response.data['type'] == 'error'
        assert response.data['code'] == 'NOT_AUTHENTICATED'

    def test_unknown_exception_falls_through(self):
        assert unified_exception_handler(RuntimeError('boom'), {}) is None
