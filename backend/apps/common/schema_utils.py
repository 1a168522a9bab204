# apps/common/schema_utils.py
from __future__ import annotations

from rest_framework import serializers
from drf_spectacular.utils import inline_serializer, OpenApiParameter


_CACHE: dict[str, type[serializers.Serializer]] = {}


def _cached(name: str, builder):
    """
    简单缓存，避免重复生成同名 inline serializer 导致冲突
    - inline_serializer 返回的是实例，这里缓存其类，调用方再按需实例化（如 many=True）
    """
    if name not in _CACHE:
        _CACHE[name] = builder().__class__
    return _CACHE[name]


def api_response_schema(
    name: str,
    data_fields: dict,
    *,
    extra_serializer: serializers.Field | None = None,
) -> serializers.Serializer:
    """
    构造统一响应 Schema：code/message/data/extra
    - name 用于生成唯一的响应/数据命名
    - data_fields 为 data 内部的字段定义
    """
    normalized_fields = {}
    for key, value in data_fields.items():
        if isinstance(value, type) and issubclass(value, serializers.Serializer):
            normalized_fields[key] = value()
        else:
            normalized_fields[key] = value
    data_serializer = inline_serializer(name=f"{name}Data", fields=normalized_fields)
    return inline_serializer(
        name=f"{name}Response",
        fields={
            "code": serializers.IntegerField(help_text="业务状态码，0 表示成功"),
            "message": serializers.CharField(help_text="提示信息"),
            "data": data_serializer,
            "extra": extra_serializer
            if extra_serializer
            else serializers.DictField(required=False, allow_null=True, help_text="附加信息"),
        },
    )


def list_response(
    name: str,
    item_serializer: serializers.Serializer,
    extra_fields: dict | None = None,
):
    """列表响应：data.items 为数组，可选附加字段"""
    items_field = (
        item_serializer(many=True)
        if isinstance(item_serializer, type) and issubclass(item_serializer, serializers.Serializer)
        else item_serializer
    )
    fields = {"items": items_field}
    if extra_fields:
        fields.update(extra_fields)
    return api_response_schema(name, fields)


def phase_parameter() -> OpenApiParameter:
    return OpenApiParameter(
        name="phase",
        location=OpenApiParameter.QUERY,
        description="题目阶段：algorithmic / buildathon，留空返回全部开放题目",
        required=False,
        type=str,
    )


# 常用数据结构
def challenge_summary_serializer(**kwargs):
    cls = _cached(
        "ChallengeSummary",
        lambda: inline_serializer(
            name="ChallengeSummary",
            fields={
                "id": serializers.IntegerField(help_text="题目 ID"),
                "slug": serializers.CharField(help_text="题目标识"),
                "title": serializers.CharField(help_text="题目标题"),
                "phase": serializers.CharField(help_text="所属阶段"),
                "difficulty": serializers.CharField(required=False),
                "points": serializers.IntegerField(help_text="分值"),
                "is_active": serializers.BooleanField(help_text="是否开放"),
                "order": serializers.IntegerField(help_text="排序", required=False),
                "prerequisites": serializers.ListField(
                    child=serializers.IntegerField(), help_text="前置题目 ID", required=False
                ),
            },
        ),
    )
    return cls(**kwargs) if kwargs else cls


def eligibility_serializer(**kwargs):
    cls = _cached(
        "EligibilityResult",
        lambda: inline_serializer(
            name="EligibilityResult",
            fields={
                "eligible": serializers.BooleanField(help_text="是否已满足解锁要求"),
                "completed_count": serializers.IntegerField(help_text="已提交过的要求题目数"),
                "required_count": serializers.IntegerField(help_text="要求题目总数"),
                "correct_count": serializers.IntegerField(help_text="已答对的要求题目数（仅展示）"),
                "source": serializers.CharField(help_text="要求来源：versioned / legacy"),
            },
        ),
    )
    return cls(**kwargs) if kwargs else cls


def team_serializer(**kwargs):
    cls = _cached(
        "TeamSummary",
        lambda: inline_serializer(
            name="TeamSummary",
            fields={
                "id": serializers.IntegerField(help_text="队伍 ID"),
                "name": serializers.CharField(help_text="队伍名称"),
                "slug": serializers.CharField(help_text="队伍标识"),
                "description": serializers.CharField(help_text="队伍简介", required=False, allow_blank=True),
                "points": serializers.IntegerField(help_text="当前积分"),
                "max_members": serializers.IntegerField(help_text="人数上限"),
                "is_active": serializers.BooleanField(help_text="是否有效"),
                "buildathon_unlocked": serializers.BooleanField(help_text="是否已解锁 Buildathon"),
                "buildathon_unlocked_at": serializers.DateTimeField(required=False, allow_null=True),
                "has_unlock_code": serializers.BooleanField(help_text="是否已生成解锁码"),
                "snapshot_pending": serializers.BooleanField(help_text="需求快照是否等待补录"),
                "created_at": serializers.DateTimeField(),
            },
        ),
    )
    return cls(**kwargs) if kwargs else cls


def member_serializer(**kwargs):
    cls = _cached(
        "TeamMember",
        lambda: inline_serializer(
            name="TeamMember",
            fields={
                "user_id": serializers.IntegerField(help_text="用户 ID"),
                "username": serializers.CharField(help_text="用户名"),
                "role": serializers.CharField(help_text="角色：leader / member"),
                "joined_at": serializers.DateTimeField(help_text="加入时间"),
            },
        ),
    )
    return cls(**kwargs) if kwargs else cls


def completion_serializer(**kwargs):
    cls = _cached(
        "CompletionRecord",
        lambda: inline_serializer(
            name="CompletionRecord",
            fields={
                "challenge_id": serializers.IntegerField(help_text="题目 ID"),
                "is_correct": serializers.BooleanField(help_text="是否答对"),
                "points_awarded": serializers.BooleanField(help_text="是否已计分"),
                "awarded_points": serializers.IntegerField(help_text="计入的分值"),
                "attempts": serializers.IntegerField(help_text="提交次数"),
                "completed_at": serializers.DateTimeField(help_text="首次提交时间"),
                "solved_at": serializers.DateTimeField(required=False, allow_null=True),
            },
        ),
    )
    return cls(**kwargs) if kwargs else cls


def leaderboard_entry_serializer(**kwargs):
    cls = _cached(
        "LeaderboardEntry",
        lambda: inline_serializer(
            name="LeaderboardEntry",
            fields={
                "rank": serializers.IntegerField(help_text="名次"),
                "team_id": serializers.IntegerField(help_text="队伍 ID"),
                "name": serializers.CharField(help_text="队伍名称"),
                "points": serializers.IntegerField(help_text="积分"),
                "solved": serializers.IntegerField(help_text="答对题目数"),
                "last_solved_at": serializers.DateTimeField(required=False, allow_null=True),
                "buildathon_unlocked": serializers.BooleanField(),
            },
        ),
    )
    return cls(**kwargs) if kwargs else cls


def system_health_serializer(**kwargs):
    cls = _cached(
        "SystemHealth",
        lambda: inline_serializer(
            name="SystemHealth",
            fields={
                "total_teams": serializers.IntegerField(),
                "teams_with_code": serializers.IntegerField(),
                "teams_without_code": serializers.IntegerField(),
                "health_percent": serializers.FloatField(help_text="已生成解锁码的队伍占比（百分比）"),
                "algorithmic_challenges": serializers.IntegerField(),
                "pending_snapshots": serializers.IntegerField(),
            },
        ),
    )
    return cls(**kwargs) if kwargs else cls
