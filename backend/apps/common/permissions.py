"""
通用权限封装（apps.common.permissions）

职责：
- 放置全局可复用的权限类（基于 Django/DRF 的认证系统）
- 出错时统一抛出 PermissionDeniedError，由全局异常处理器统一包装响应

说明：认证方式本身（会话/Basic）沿用 Django 与 DRF 默认实现，这里只做判定
"""

from __future__ import annotations

from rest_framework.permissions import AllowAny, BasePermission
from rest_framework.request import Request

from .exceptions import PermissionDeniedError

__all__ = ["AllowAny", "IsAuthenticated", "IsStaff"]


def _ensure_authenticated(request: Request):
    """确保用户已登录，返回 User；否则抛 PermissionDeniedError"""
    user = getattr(request, "user", None)
    if user is None or not user.is_authenticated:
        raise PermissionDeniedError(message="请先登录后再执行此操作", code=40100)
    return user


class IsAuthenticated(BasePermission):
    """登录即可访问"""

    def has_permission(self, request: Request, view) -> bool:
        _ensure_authenticated(request)
        return True


class IsStaff(BasePermission):
    """
    管理员（staff）权限：
    - 题目上下线、强制重置解锁码、完成记录纠正、系统健康查询
    - 评测服务回调使用 staff 服务账号写入完成记录
    """

    def has_permission(self, request: Request, view) -> bool:
        user = _ensure_authenticated(request)
        if not (user.is_staff or user.is_superuser):
            raise PermissionDeniedError(message="仅管理员可执行此操作")
        return True
