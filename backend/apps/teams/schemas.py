# apps/teams/schemas.py

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Optional

from apps.common.base.base_schema import BaseSchema
from apps.common.exceptions import ValidationError
from apps.common.utils.validators import (
    forbid_dangerous_html,
    parse_bool,
    parse_int,
    validate_length,
)


# Schema 层：定义队伍创建与加入、评测结果回写、解锁码兑换与管理员纠正的入参结构与校验逻辑


@dataclass
class TeamCreateSchema(BaseSchema[None]):
    """
    创建队伍入参：
    - 名称去除首尾空白后 3-50 个字符
    - 简介不超过 200 个字符
    - 人数上限 1-10，默认 4
    """
    auto_validate: ClassVar[bool] = True
    ALIASES: ClassVar[dict[str, str]] = {"maxMembers": "max_members"}

    name: str
    description: str = ""
    max_members: int = 4

    def validate(self) -> None:
        self.name = str(self.name or "").strip()
        self.description = str(self.description or "").strip()
        if not self.name:
            raise ValidationError(message="队伍名称不能为空")
        validate_length(self.name, min_length=3, max_length=50, field_name="队伍名称")
        validate_length(self.description, max_length=200, field_name="队伍简介")
        forbid_dangerous_html(self.name, field_name="队伍名称")
        forbid_dangerous_html(self.description, field_name="队伍简介")
        if self.max_members is None:
            self.max_members = 4
        self.max_members = parse_int(self.max_members, field_name="人数上限")
        if not 1 <= self.max_members <= 10:
            raise ValidationError(message="人数上限需在 1-10 之间")


@dataclass
class TeamJoinSchema(BaseSchema[None]):
    """加入队伍入参：凭邀请码加入"""
    auto_validate: ClassVar[bool] = True
    ALIASES: ClassVar[dict[str, str]] = {"inviteCode": "invite_code"}

    invite_code: str

    def validate(self) -> None:
        if not isinstance(self.invite_code, str) or not self.invite_code.strip():
            raise ValidationError(message="邀请码不能为空")
        self.invite_code = self.invite_code.strip()


@dataclass
class CompletionRecordSchema(BaseSchema[None]):
    """
    评测结果入参（评测服务每次提交回调一次）：
    - awarded_points_hint 为空时使用题目分值
    """
    auto_validate: ClassVar[bool] = True
    ALIASES: ClassVar[dict[str, str]] = {
        "teamId": "team_id",
        "challengeId": "challenge_id",
        "isCorrect": "is_correct",
        "awardedPointsHint": "awarded_points_hint",
    }

    team_id: int
    challenge_id: int
    is_correct: bool
    awarded_points_hint: Optional[int] = None

    def validate(self) -> None:
        self.team_id = parse_int(self.team_id, field_name="队伍 ID")
        self.challenge_id = parse_int(self.challenge_id, field_name="题目 ID")
        self.is_correct = parse_bool(self.is_correct, field_name="is_correct")
        if self.awarded_points_hint is not None:
            self.awarded_points_hint = parse_int(self.awarded_points_hint, field_name="分值")
            if self.awarded_points_hint < 0:
                raise ValidationError(message="分值不能为负数")


@dataclass
class UnlockRedeemSchema(BaseSchema[None]):
    """兑换解锁码入参：兑换时去除首尾空白后精确比较"""
    auto_validate: ClassVar[bool] = True
    ALIASES: ClassVar[dict[str, str]] = {"unlock_code": "code", "unlockCode": "code"}

    team_id: int
    code: str

    def validate(self) -> None:
        self.team_id = parse_int(self.team_id, field_name="队伍 ID")
        if not isinstance(self.code, str) or not self.code.strip():
            raise ValidationError(message="解锁码不能为空")
        self.code = self.code.strip()


@dataclass
class CompletionRevokeSchema(BaseSchema[None]):
    """管理员纠正完成记录入参"""
    auto_validate: ClassVar[bool] = True

    team_id: int
    challenge_id: int

    def validate(self) -> None:
        self.team_id = parse_int(self.team_id, field_name="队伍 ID")
        self.challenge_id = parse_int(self.challenge_id, field_name="题目 ID")


@dataclass
class UnlockCodeResetSchema(BaseSchema[None]):
    """
    强制重置解锁码入参：
    - team_id 指定单个队伍；all_teams=True 时重置全部有效队伍
    """
    auto_validate: ClassVar[bool] = True

    team_id: Optional[int] = None
    all_teams: bool = False

    def validate(self) -> None:
        self.all_teams = parse_bool(self.all_teams, field_name="all_teams")
        if self.team_id is not None:
            self.team_id = parse_int(self.team_id, field_name="队伍 ID")
        if self.team_id is None and not self.all_teams:
            raise ValidationError(message="请指定队伍或选择重置全部队伍")
