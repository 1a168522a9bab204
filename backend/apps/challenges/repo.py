# apps/challenges/repo.py

from __future__ import annotations

from typing import Iterable

from django.db.models import QuerySet

from apps.common.base.base_repo import BaseRepo
from apps.common.exceptions import NotFoundError

from .models import Challenge


# 仓储层：封装题目目录的数据库访问，供目录读取接口与服务层复用


class ChallengeRepo(BaseRepo[Challenge]):
    """
    题目仓储：
    - 业务场景：目录读取、完成记录写入前的题目校验、管理员上下线
    - 功能：封装获取逻辑，若不存在抛业务级 NotFoundError
    """

    model = Challenge

    def get_queryset(self) -> QuerySet[Challenge]:
        return super().get_queryset().order_by("order", "id")

    def get_or_404(self, challenge_id: int) -> Challenge:
        # 查询题目，不存在时抛出业务级 404
        try:
            return self.get_by_id(challenge_id)
        except (Challenge.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(message="题目不存在")

    def list_active(self, phase: str | None = None) -> QuerySet[Challenge]:
        """按目录顺序返回开放中的题目，可按阶段过滤"""
        qs = self.filter(is_active=True)
        if phase:
            qs = qs.filter(phase=phase)
        return qs

    def list_with_prerequisites(self, phase: str | None = None) -> QuerySet[Challenge]:
        """开放题目并预取前置关系，供访问规则批量判定"""
        return self.list_active(phase).prefetch_related("prerequisites")

    def prerequisite_ids(self, challenge: Challenge) -> set[int]:
        return set(challenge.prerequisites.values_list("id", flat=True))

    def set_prerequisites(self, challenge: Challenge, prerequisite_ids: Iterable[int]) -> None:
        """覆盖前置题目；不允许引用自身或不存在的题目"""
        ids = {int(pk) for pk in prerequisite_ids}
        ids.discard(challenge.pk)
        found = list(self.filter(id__in=ids))
        if len(found) != len(ids):
            raise NotFoundError(message="前置题目不存在")
        challenge.prerequisites.set(found)

    def count_active(self, phase: str) -> int:
        return self.list_active(phase).count()
