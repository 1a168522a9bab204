"""
自定义全局异常处理器（DRF 入口）：
- 统一前端收到的错误结构，区分业务错误与系统异常
- 处理策略：
  1) BizError 及子类 → 直接转换为 {code, message, data, extra}
  2) DRF 内置异常（Validation/Authentication/Permission/NotFound）→ 映射为 BizError
  3) 不变量破坏与未知异常 → 记录完整日志，返回 500 标准格式，不泄露内部信息
"""

from typing import Any

from rest_framework import status
from rest_framework.exceptions import (
    ValidationError as DRFValidationError,
    AuthenticationFailed,
    NotAuthenticated,
    PermissionDenied as DRFPermissionDenied,
    NotFound as DRFNotFound,
)
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from .exceptions import (
    BizError,
    InvariantViolationError,
    ValidationError as BizValidationError,
    PermissionDeniedError,
    NotFoundError,
)
from .response import api_response, payload_from_biz_error
from .infra.logger import get_logger, logger_extra
from .utils.request_context import get_request_context

logger = get_logger(__name__)


def _extract_message(detail: Any) -> str:
    """从 DRF 的 detail 结构（str/list/dict）中提取第一条可读错误信息"""
    if isinstance(detail, str):
        return detail
    if isinstance(detail, list) and detail:
        return _extract_message(detail[0])
    if isinstance(detail, dict) and detail:
        return _extract_message(next(iter(detail.values())))
    return str(detail)


def _handle_biz_error(exc: BizError) -> Response:
    return Response(payload_from_biz_error(exc), status=exc.http_status)


def _handle_unexpected_exception(exc: Exception, context: dict) -> Response:
    """
    处理程序缺陷：记录完整堆栈，返回统一 500
    - 不变量破坏单独标记，便于告警检索
    """
    ctx = get_request_context()
    req = context.get("request")
    message = "领域不变量被破坏" if isinstance(exc, InvariantViolationError) else "Unhandled exception in API"
    logger.error(
        message,
        exc_info=exc,
        extra=logger_extra(
            {
                "path": getattr(req, "path", None),
                "method": getattr(req, "method", None),
            }
        ),
    )
    return api_response(
        code=50000,
        message="内部服务器错误，请联系管理员或稍后重试",
        data=None,
        http_status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        extra={
            "view": context.get("view").__class__.__name__ if context.get("view") else None,
            "request_id": ctx.get("request_id"),
        },
    )


def _map_drf_exception_to_biz(exc: Exception) -> BizError | None:
    if isinstance(exc, DRFValidationError):
        return BizValidationError(message=_extract_message(exc.detail), extra={"raw_detail": exc.detail})
    if isinstance(exc, (AuthenticationFailed, NotAuthenticated)):
        return PermissionDeniedError(message=_extract_message(getattr(exc, "detail", str(exc))), code=40100)
    if isinstance(exc, DRFPermissionDenied):
        return PermissionDeniedError(message=_extract_message(getattr(exc, "detail", str(exc))))
    if isinstance(exc, DRFNotFound):
        return NotFoundError(message=_extract_message(getattr(exc, "detail", str(exc))))
    return None


def custom_exception_handler(exc: Exception, context: dict) -> Response | None:
    """
    DRF 全局异常处理器

    处理顺序：BizError → DRF 内置异常映射 → DRF 默认 handler 包一层 → 500
    """
    if isinstance(exc, BizError):
        return _handle_biz_error(exc)

    mapped = _map_drf_exception_to_biz(exc)
    if mapped is not None:
        return _handle_biz_error(mapped)

    drf_response = drf_exception_handler(exc, context)
    if drf_response is not None:
        raw_data = drf_response.data
        status_code = drf_response.status_code
        return api_response(
            code=40000 if status_code < 500 else 50000,
            message=_extract_message(raw_data),
            data=None,
            http_status=status_code,
            extra={"raw": raw_data},
        )

    return _handle_unexpected_exception(exc, context)
