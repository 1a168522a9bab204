# apps/challenges/schemas.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, List

from apps.common.base.base_schema import BaseSchema
from apps.common.exceptions import ValidationError
from apps.common.utils.validators import (
    validate_slug,
    forbid_dangerous_html,
    parse_bool,
    parse_int,
)

from .models import Challenge


# Schema 层：定义题目创建与上下线的入参结构与校验逻辑


@dataclass
class ChallengeCreateSchema(BaseSchema[None]):
    """
    创建题目入参：
    - 覆盖题目信息、阶段、分值与前置题目
    - 自动校验必填字段与枚举取值
    """
    auto_validate: ClassVar[bool] = True
    ALIASES: ClassVar[dict[str, str]] = {"isActive": "is_active"}

    # 题目标题
    title: str
    # 题目标识
    slug: str
    # 题目内容
    description: str = ""
    # 阶段
    phase: str = Challenge.Phase.ALGORITHMIC
    # 难度
    difficulty: str = Challenge.Difficulty.MEDIUM
    # 分值
    points: int = 100
    # 是否开放
    is_active: bool = True
    # 排序
    order: int = 0
    # 前置题目 ID 列表
    prerequisites: List[int] = field(default_factory=list)

    def validate(self) -> None:
        """校验题目必填字段、阶段、分值与前置题目"""
        self.title = (self.title or "").strip()
        if not self.title:
            raise ValidationError(message="题目标题不能为空")
        forbid_dangerous_html(self.title, field_name="题目标题")
        if not self.slug:
            raise ValidationError(message="题目标识不能为空")
        validate_slug(self.slug)
        forbid_dangerous_html(self.description, field_name="题目内容")
        if self.phase not in Challenge.Phase.values:
            raise ValidationError(message="题目阶段无效，请选择 algorithmic 或 buildathon")
        if self.difficulty not in Challenge.Difficulty.values:
            raise ValidationError(message="难度取值无效")
        self.points = parse_int(self.points, field_name="分值")
        if self.points < 0:
            raise ValidationError(message="分值不能为负数")
        self.order = parse_int(self.order, field_name="排序")
        self.is_active = parse_bool(self.is_active, field_name="是否开放")
        if not isinstance(self.prerequisites, (list, tuple)):
            raise ValidationError(message="前置题目需为 ID 列表")
        self.prerequisites = [parse_int(pk, field_name="前置题目 ID") for pk in self.prerequisites]


@dataclass
class ChallengeActivationSchema(BaseSchema[None]):
    """
    题目上下线入参：
    - challenge_id 来自路由
    - is_active=False 即软删除
    """
    auto_validate: ClassVar[bool] = True
    ALIASES: ClassVar[dict[str, str]] = {"isActive": "is_active"}

    challenge_id: int
    is_active: bool

    def validate(self) -> None:
        self.challenge_id = parse_int(self.challenge_id, field_name="题目 ID")
        self.is_active = parse_bool(self.is_active, field_name="是否开放")
