from __future__ import annotations

from django.contrib.auth import get_user_model
from rest_framework.test import APIClient


class AuthenticatedAPIMixin:
    """
    提供统一的用户构造与认证客户端工具，减少各测试用例的重复代码
    - 认证方式沿用 DRF 会话/Basic，这里直接 force_authenticate，避免依赖登录接口
    """

    default_password: str = "Pass1234"

    def create_user(self, username: str, *, is_staff: bool = False):
        """创建普通用户或管理员（评测服务账号同样使用 staff）"""
        return get_user_model().objects.create_user(
            username=username,
            email=f"{username}@example.com",
            password=self.default_password,
            is_staff=is_staff,
        )

    def auth_client(self, user) -> APIClient:
        """构造已认证的 APIClient"""
        client = APIClient()
        client.raise_request_exception = False
        client.force_authenticate(user=user)
        return client

    def staff_client(self, username: str = "judge") -> APIClient:
        """构造管理员客户端"""
        return self.auth_client(self.create_user(username, is_staff=True))
