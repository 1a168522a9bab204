from __future__ import annotations

from django.db import connection
from rest_framework.views import APIView
from rest_framework.request import Request
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema
from drf_spectacular.types import OpenApiTypes

from apps.common import response
from apps.common.permissions import AllowAny


class HealthCheckView(APIView):
    """
    健康检查接口
    - 用于负载均衡/监控探活，返回统一成功格式
    - 只做一次轻量数据库探测，保持快速响应
    """

    permission_classes = [AllowAny]
    authentication_classes: list = []

    @extend_schema(summary="健康检查", request=None, responses=OpenApiTypes.OBJECT)
    def get(self, request: Request) -> Response:
        _ = request
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
        return response.success({"status": "ok"})
