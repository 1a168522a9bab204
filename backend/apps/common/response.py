"""
统一 API 响应封装（common.response）

约定返回结构：
{
    "code": 0,            # 0 表示成功；非 0 表示业务错误
    "message": "OK",      # 提示信息
    "data": {...},        # 业务数据
    "extra": {...}        # 可选，附加元信息（进度、重试提示等）
}
"""

from typing import Any, Mapping, Optional

from rest_framework import status
from rest_framework.response import Response

from .exceptions import BizError

SUCCESS_CODE = 0

Payload = dict[str, Any]


def build_payload(
        *,
        code: int = SUCCESS_CODE,
        message: str = "OK",
        data: Any = None,
        extra: Optional[Mapping[str, Any]] = None,
) -> Payload:
    """构造统一的响应字典，不涉及 HTTP/DRF"""
    payload: Payload = {
        "code": code,
        "message": message,
        "data": data,
    }
    if extra:
        payload["extra"] = dict(extra)
    return payload


def payload_from_biz_error(exc: BizError, data: Any = None) -> Payload:
    return build_payload(code=exc.code, message=exc.message, data=data, extra=exc.extra)


def api_response(
        *,
        code: int = SUCCESS_CODE,
        message: str = "OK",
        data: Any = None,
        http_status: int = status.HTTP_200_OK,
        extra: Optional[Mapping[str, Any]] = None,
) -> Response:
    """统一构造 DRF Response，所有接口/异常的最终出口"""
    payload = build_payload(code=code, message=message, data=data, extra=extra)
    return Response(payload, status=http_status)


def success(data: Any = None, message: str = "OK") -> Response:
    """业务成功返回：HTTP 200，code 0"""
    return api_response(code=SUCCESS_CODE, message=message, data=data, http_status=status.HTTP_200_OK)


def created(data: Any = None, message: str = "Created") -> Response:
    """新建资源成功：HTTP 201，code 0"""
    return api_response(code=SUCCESS_CODE, message=message, data=data, http_status=status.HTTP_201_CREATED)


def accepted(data: Any = None, message: str = "Accepted") -> Response:
    """已受理的异步操作（如重新评估扫描）：HTTP 202，code 0"""
    return api_response(code=SUCCESS_CODE, message=message, data=data, http_status=status.HTTP_202_ACCEPTED)


def fail(
        *,
        code: int,
        message: str,
        http_status: int = status.HTTP_400_BAD_REQUEST,
        data: Any = None,
        extra: Optional[Mapping[str, Any]] = None,
) -> Response:
    """
    通用失败返回（不走 BizError）
    - 业务场景：兑换被拒绝属于结构化结果而非异常，需要携带进度数据返回
    """
    return api_response(code=code, message=message, data=data, http_status=http_status, extra=extra)


def response_from_biz_error(exc: BizError, data: Any = None) -> Response:
    return api_response(
        code=exc.code,
        message=exc.message,
        data=data,
        http_status=exc.http_status,
        extra=exc.extra,
    )
