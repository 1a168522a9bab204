from __future__ import annotations

from rest_framework import serializers, status
from rest_framework.views import APIView
from rest_framework.request import Request
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter
from drf_spectacular.types import OpenApiTypes

from apps.common import response
from apps.common.exceptions import NotFoundError
from apps.common.permissions import AllowAny, IsAuthenticated, IsStaff
from apps.common.schema_utils import (
    api_response_schema,
    completion_serializer,
    eligibility_serializer,
    leaderboard_entry_serializer,
    list_response,
    member_serializer,
    system_health_serializer,
    team_serializer,
)
from apps.common.utils.validators import parse_int
from apps.challenges.catalog import ChallengeCatalog

from .eligibility import evaluate_state
from .models import Team
from .repo import CompletionRecordRepo, TeamMemberRepo, TeamRepo
from .schemas import (
    CompletionRecordSchema,
    CompletionRevokeSchema,
    TeamCreateSchema,
    TeamJoinSchema,
    UnlockCodeResetSchema,
    UnlockRedeemSchema,
)
from .serializers import serialize_completion, serialize_member, serialize_team
from .services import (
    BuildathonUnlockService,
    CompletionRecordService,
    CompletionRevokeService,
    EligibilityService,
    LeaderboardService,
    SystemHealthService,
    TeamCreateService,
    TeamJoinService,
    TeamLeaveService,
    UnlockCodeResetService,
    UnlockOutcome,
    build_team_progress,
    can_access_team_secrets,
    ensure_team_member,
)
from .triggers import CatalogChangeTrigger


# 视图层：队伍创建/加入/退出/详情、评测结果回写、资格查询、解锁码兑换、排行榜与管理员操作；仅做参数转换与服务调用


def team_detail_payload(team: Team, *, reveal_secrets: bool) -> dict:
    """
    队伍详情：基础信息、进度与完成记录
    - reveal_secrets 为真（本队成员或管理员）时附带邀请码、成员列表与解锁码
    """
    state = TeamRepo().load_state(team.id)
    result = evaluate_state(state, ChallengeCatalog().active_algorithmic())
    payload = {
        "team": serialize_team(team),
        "progress": build_team_progress(state, result, reveal_code=reveal_secrets),
        "completions": [serialize_completion(r) for r in CompletionRecordRepo().list_for_team(team.id)],
    }
    if reveal_secrets:
        payload["invite_code"] = team.invite_code
        payload["members"] = [serialize_member(m) for m in TeamMemberRepo().active_members(team.id)]
    return payload


TEAM_DETAIL_FIELDS = {
    "team": team_serializer(),
    "progress": eligibility_serializer(),
    "completions": completion_serializer(many=True),
    "invite_code": serializers.CharField(required=False, help_text="邀请码（仅本队成员可见）"),
    "members": member_serializer(many=True, required=False),
}


@extend_schema_view(post=extend_schema(tags=["teams"]))
class TeamCreateView(APIView):
    """创建队伍：创建时捕获当前算法题要求，创建者成为队长"""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="创建队伍",
        operation_id="team_create",
        request=OpenApiTypes.OBJECT,
        responses={
            201: api_response_schema(
                "TeamCreate", {"team": team_serializer(), "invite_code": serializers.CharField()}
            )
        },
    )
    def post(self, request: Request) -> Response:
        schema = TeamCreateSchema.from_dict(request.data)
        team = TeamCreateService().execute(schema, user=request.user)
        return response.created(
            {"team": serialize_team(team), "invite_code": team.invite_code}, message="队伍已创建"
        )


@extend_schema_view(post=extend_schema(tags=["teams"]))
class TeamJoinView(APIView):
    """凭邀请码加入队伍"""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="加入队伍",
        operation_id="team_join",
        request=OpenApiTypes.OBJECT,
        responses=api_response_schema("TeamJoin", {"team": team_serializer(), "member": member_serializer()}),
    )
    def post(self, request: Request) -> Response:
        member = TeamJoinService().execute(request.user, TeamJoinSchema.from_dict(request.data))
        return response.success(
            {"team": serialize_team(member.team), "member": serialize_member(member)}, message="已加入队伍"
        )


@extend_schema_view(post=extend_schema(tags=["teams"]))
class TeamLeaveView(APIView):
    """退出当前队伍"""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="退出队伍",
        operation_id="team_leave",
        request=None,
        responses=api_response_schema(
            "TeamLeave",
            {
                "team_id": serializers.IntegerField(),
                "dissolved": serializers.BooleanField(help_text="最后一名成员退出后队伍解散"),
                "new_leader_id": serializers.IntegerField(allow_null=True),
            },
        ),
    )
    def post(self, request: Request) -> Response:
        return response.success(TeamLeaveService().execute(request.user), message="已退出队伍")


@extend_schema_view(get=extend_schema(tags=["teams"]))
class MyTeamView(APIView):
    """我的队伍：含邀请码、成员与解锁码"""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="我的队伍",
        operation_id="team_mine",
        responses=api_response_schema("MyTeam", TEAM_DETAIL_FIELDS),
    )
    def get(self, request: Request) -> Response:
        membership = TeamMemberRepo().membership_of(request.user)
        if membership is None:
            raise NotFoundError(message="你尚未加入任何队伍")
        payload = team_detail_payload(membership.team, reveal_secrets=True)
        payload["role"] = membership.role
        return response.success(payload)


@extend_schema_view(get=extend_schema(tags=["teams"]))
class TeamDetailView(APIView):
    """队伍详情：基础信息、进度与完成记录；邀请码与解锁码仅对本队成员展示"""
    permission_classes = [IsAuthenticated]
    team_repo = TeamRepo()

    @extend_schema(
        summary="队伍详情",
        operation_id="team_detail",
        responses=api_response_schema("TeamDetail", TEAM_DETAIL_FIELDS),
    )
    def get(self, request: Request, team_id: int) -> Response:
        team = self.team_repo.get_or_404(team_id)
        return response.success(
            team_detail_payload(team, reveal_secrets=can_access_team_secrets(team.id, request.user))
        )


@extend_schema_view(post=extend_schema(tags=["teams"]))
class CompletionRecordView(APIView):
    """评测结果回写（评测服务账号，需管理员权限）"""
    permission_classes = [IsStaff]

    @extend_schema(
        summary="回写评测结果",
        operation_id="team_completion_record",
        request=OpenApiTypes.OBJECT,
        responses=api_response_schema(
            "CompletionRecordResult",
            {
                "completion": completion_serializer(),
                "eligibility": eligibility_serializer(),
                "team_points": serializers.IntegerField(),
                "unlock_code_generated": serializers.BooleanField(),
            },
        ),
    )
    def post(self, request: Request, team_id: int) -> Response:
        schema = CompletionRecordSchema.from_dict(request.data, extra={"team_id": team_id})
        outcome = CompletionRecordService().execute(schema)
        return response.success(
            {
                "completion": serialize_completion(outcome.record),
                "eligibility": outcome.eligibility.to_dict(),
                "team_points": outcome.team_points,
                "unlock_code_generated": outcome.unlock_code_generated,
            }
        )


@extend_schema_view(get=extend_schema(tags=["teams"]))
class TeamEligibilityView(APIView):
    """解锁资格查询：返回已完成/要求数量"""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="解锁资格",
        operation_id="team_eligibility",
        responses=api_response_schema("TeamEligibility", {"eligibility": eligibility_serializer()}),
    )
    def get(self, request: Request, team_id: int) -> Response:
        result = EligibilityService().execute(parse_int(team_id, field_name="队伍 ID"))
        return response.success({"eligibility": result.to_dict()})


@extend_schema_view(post=extend_schema(tags=["teams"]))
class BuildathonUnlockView(APIView):
    """兑换解锁码（本队成员或管理员）：拒绝时返回 400 与进度/原因"""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="兑换 Buildathon 解锁码",
        operation_id="team_buildathon_unlock",
        request=OpenApiTypes.OBJECT,
        responses=OpenApiTypes.OBJECT,
    )
    def post(self, request: Request, team_id: int) -> Response:
        team = TeamRepo().get_or_404(team_id)
        ensure_team_member(team.id, request.user)
        schema = UnlockRedeemSchema.from_dict(request.data, extra={"team_id": team_id})
        outcome = BuildathonUnlockService().execute(schema)
        if outcome.accepted:
            return response.success(outcome.to_dict(), message="Buildathon 已解锁")
        if outcome.reason == UnlockOutcome.REASON_ALREADY_UNLOCKED:
            return response.success(outcome.to_dict(), message="Buildathon 已处于解锁状态")
        messages = {
            UnlockOutcome.REASON_REQUIREMENTS_NOT_MET: "尚未完成全部算法题",
            UnlockOutcome.REASON_CODE_MISMATCH: "解锁码不正确",
        }
        return response.fail(
            code=UnlockOutcome.REJECTED_CODE,
            message=messages.get(outcome.reason, "兑换失败"),
            http_status=status.HTTP_400_BAD_REQUEST,
            data=outcome.to_dict(),
        )


@extend_schema_view(get=extend_schema(tags=["teams"]))
class LeaderboardView(APIView):
    """排行榜"""
    permission_classes = [AllowAny]

    @extend_schema(
        summary="排行榜",
        operation_id="team_leaderboard",
        parameters=[
            OpenApiParameter(name="limit", location=OpenApiParameter.QUERY, required=False, type=int),
        ],
        responses=list_response("Leaderboard", leaderboard_entry_serializer()),
    )
    def get(self, request: Request) -> Response:
        limit = request.query_params.get("limit")
        limit = max(1, min(parse_int(limit, field_name="limit"), 500)) if limit else None
        return response.success({"items": LeaderboardService().execute(limit)})


@extend_schema_view(get=extend_schema(tags=["teams-admin"]))
class SystemHealthView(APIView):
    """系统健康度（管理员）"""
    permission_classes = [IsStaff]

    @extend_schema(
        summary="系统健康度",
        operation_id="team_system_health",
        responses=api_response_schema("SystemHealthResult", {"health": system_health_serializer()}),
    )
    def get(self, request: Request) -> Response:
        return response.success({"health": SystemHealthService().execute()})


@extend_schema_view(post=extend_schema(tags=["teams-admin"]))
class ReevaluateView(APIView):
    """手动触发全量重新评估（管理员）"""
    permission_classes = [IsStaff]

    @extend_schema(
        summary="触发重新评估",
        operation_id="team_reevaluate",
        request=None,
        responses={202: OpenApiTypes.OBJECT},
    )
    def post(self, request: Request) -> Response:
        CatalogChangeTrigger.fire(f"manual:{getattr(request.user, 'username', '')}")
        return response.accepted({"scheduled": True}, message="重新评估已受理")


@extend_schema_view(post=extend_schema(tags=["teams-admin"]))
class UnlockCodeResetView(APIView):
    """强制重置解锁码（管理员）"""
    permission_classes = [IsStaff]

    @extend_schema(
        summary="强制重置解锁码",
        operation_id="team_unlock_code_reset",
        request=None,
        responses=OpenApiTypes.OBJECT,
    )
    def post(self, request: Request, team_id: int) -> Response:
        results = UnlockCodeResetService().execute(UnlockCodeResetSchema(team_id=team_id))
        return response.success({"items": results}, message="解锁码已重置")


@extend_schema_view(post=extend_schema(tags=["teams-admin"]))
class CompletionRevokeView(APIView):
    """纠正完成记录（管理员）：改判为答错并扣回积分"""
    permission_classes = [IsStaff]

    @extend_schema(
        summary="纠正完成记录",
        operation_id="team_completion_revoke",
        request=None,
        responses=api_response_schema("CompletionRevoke", {"completion": completion_serializer()}),
    )
    def post(self, request: Request, team_id: int, challenge_id: int) -> Response:
        record = CompletionRevokeService().execute(CompletionRevokeSchema(team_id=team_id, challenge_id=challenge_id))
        return response.success({"completion": serialize_completion(record)}, message="完成记录已纠正")
