# apps/challenges/access.py

from __future__ import annotations

from typing import Iterable

from apps.common.exceptions import ChallengeLockedError, ChallengeNotAvailableError

from .models import Challenge


class ChallengeAccessPolicy:
    """
    队伍作答题目的访问规则：
    1. 题目必须处于开放状态
    2. Buildathon 阶段题目需要队伍已兑换解锁码
    3. 前置题目需全部提交过（以完成记录存在为准，不要求答对）
    """

    LOCKED_BUILDATHON = "buildathon_locked"
    LOCKED_PREREQUISITES = "prerequisites_missing"

    def locked_reason(
            self,
            challenge: Challenge,
            *,
            buildathon_unlocked: bool,
            completed_ids: Iterable[int],
            prerequisite_ids: Iterable[int] | None = None,
    ) -> str | None:
        """返回锁定原因，None 表示可作答；不检查开放状态"""
        if challenge.phase == Challenge.Phase.BUILDATHON and not buildathon_unlocked:
            return self.LOCKED_BUILDATHON
        if prerequisite_ids is None:
            prerequisite_ids = [c.id for c in challenge.prerequisites.all()]
        missing = set(prerequisite_ids) - set(completed_ids)
        if missing:
            return self.LOCKED_PREREQUISITES
        return None

    def ensure_accessible(
            self,
            challenge: Challenge,
            *,
            buildathon_unlocked: bool,
            completed_ids: Iterable[int],
    ) -> None:
        if not challenge.is_active:
            raise ChallengeNotAvailableError()
        reason = self.locked_reason(
            challenge, buildathon_unlocked=buildathon_unlocked, completed_ids=completed_ids
        )
        if reason == self.LOCKED_BUILDATHON:
            raise ChallengeLockedError(message="Buildathon 题目需先兑换解锁码", extra={"reason": reason})
        if reason == self.LOCKED_PREREQUISITES:
            raise ChallengeLockedError(message="请先完成前置题目", extra={"reason": reason})
