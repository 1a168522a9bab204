from __future__ import annotations

from rest_framework.views import APIView
from rest_framework.request import Request
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, extend_schema_view
from drf_spectacular.types import OpenApiTypes

from apps.common import response
from apps.common.exceptions import ValidationError
from apps.common.permissions import AllowAny, IsStaff
from apps.common.schema_utils import (
    api_response_schema,
    list_response,
    challenge_summary_serializer,
    phase_parameter,
)

from .models import Challenge
from .repo import ChallengeRepo
from .schemas import ChallengeActivationSchema, ChallengeCreateSchema
from .serializers import serialize_challenge
from .services import ChallengeActivationService, ChallengeCreateService


# 视图层：提供题目目录读取、管理员创建与上下线接口，仅做参数转换与服务调用


@extend_schema_view(get=extend_schema(tags=["challenges"]))
class ChallengeListView(APIView):
    """题目目录：返回开放中的题目，可按阶段过滤"""
    permission_classes = [AllowAny]
    challenge_repo = ChallengeRepo()

    @extend_schema(
        summary="题目目录",
        operation_id="challenge_list",
        parameters=[phase_parameter()],
        responses=list_response("ChallengeList", challenge_summary_serializer()),
    )
    def get(self, request: Request) -> Response:
        phase = request.query_params.get("phase") or None
        if phase and phase not in Challenge.Phase.values:
            raise ValidationError(message="题目阶段无效")
        challenges = self.challenge_repo.list_with_prerequisites(phase)
        return response.success({"items": [serialize_challenge(ch) for ch in challenges]})


@extend_schema_view(post=extend_schema(tags=["challenges"]))
class ChallengeAdminCreateView(APIView):
    """创建题目（管理员）"""
    permission_classes = [IsStaff]

    @extend_schema(
        summary="创建题目",
        operation_id="challenge_create",
        request=OpenApiTypes.OBJECT,
        responses=api_response_schema("ChallengeCreate", {"challenge": challenge_summary_serializer()}),
    )
    def post(self, request: Request) -> Response:
        schema = ChallengeCreateSchema.from_dict(request.data)
        challenge = ChallengeCreateService().execute(schema)
        return response.created({"challenge": serialize_challenge(challenge)}, message="题目已创建")


@extend_schema_view(post=extend_schema(tags=["challenges"]))
class ChallengeActivationView(APIView):
    """题目上下线（管理员）：下线即软删除"""
    permission_classes = [IsStaff]

    @extend_schema(
        summary="题目上下线",
        operation_id="challenge_activation",
        request=OpenApiTypes.OBJECT,
        responses=api_response_schema("ChallengeActivation", {"challenge": challenge_summary_serializer()}),
    )
    def post(self, request: Request, challenge_id: int) -> Response:
        schema = ChallengeActivationSchema.from_dict(request.data, extra={"challenge_id": challenge_id})
        challenge = ChallengeActivationService().execute(schema)
        message = "题目已上线" if challenge.is_active else "题目已下线"
        return response.success({"challenge": serialize_challenge(challenge)}, message=message)
