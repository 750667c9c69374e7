"""
统一异常体系。

所有业务异常继承 BaseAppException，包含：
- type:        错误类型标识（validation_error / permission_denied / block / warning / ...）
- code:        业务错误码（INCOMPLETE_SHIPPING_ADDRESS / SOAP_NOTE_MISSING / ...）
- message:     人类可读的描述
- detail:      可选的附加信息（dict / list / None）
- http_status: HTTP 状态码

Service 层只需 raise，exception_handler 统一捕获并格式化响应。
"""


class BaseAppException(Exception):
    """所有业务异常的基类。"""

    type = 'error'
    code = 'UNKNOWN_ERROR'
    http_status = 500

    def __init__(self, message, code=None, detail=None, http_status=None):
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.detail = detail
        super().__init__(message)


class ValidationError(BaseAppException):
    """输入验证失败，400。"""

    type = 'validation_error'
    code = 'VALIDATION_ERROR'
    http_status = 400


class PermissionDeniedError(BaseAppException):
    """角色不允许执行该操作，403。"""

    type = 'permission_denied'
    code = 'FORBIDDEN'
    http_status = 403


class BlockError(BaseAppException):
    """业务规则阻止操作。service 层抛出，409（记录不存在时用 404）。"""

    type = 'block'
    code = 'BUSINESS_BLOCK'
    http_status = 409


class WarningError(BaseAppException):
    """
    业务警告，需要用户确认后继续。

    与其他异常不同，WarningError 不代表"失败"，而是"暂停"。
    前端收到后展示 warnings，用户确认后带 override 标志重新提交
    （例如 override_vial_safeguard=true）。
    """

    type = 'warning'
    code = 'CONFIRMATION_REQUIRED'
    http_status = 409


class PharmacySubmissionError(BaseAppException):
    """外部药房（Lifefile）拒绝或无法处理订单，502。"""

    type = 'upstream_error'
    code = 'LIFEFILE_SUBMISSION_FAILED'
    http_status = 502


class ServiceUnavailableError(BaseAppException):
    """
    临时不可用（数据库连接池耗尽 / 药房 503），503。

    retry_after 会被 exception_handler 写到 Retry-After header。
    """

    type = 'service_unavailable'
    code = 'SERVICE_UNAVAILABLE'
    http_status = 503

    def __init__(self, message, code=None, detail=None, http_status=None, retry_after=15):
        super().__init__(message, code=code, detail=detail, http_status=http_status)
        self.retry_after = retry_after
