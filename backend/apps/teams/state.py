# apps/teams/state.py

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Mapping

from apps.common.exceptions import ensure_invariant


# 队伍聚合的内存表示与完成记录计分规则：纯函数，不访问数据库


@dataclass(frozen=True)
class RequirementEntry:
    """需求快照条目"""

    challenge_id: int
    title: str
    captured_at: datetime | None = None


@dataclass(frozen=True)
class CompletionState:
    """单条完成记录的内存视图"""

    challenge_id: int
    is_correct: bool
    points_awarded: bool
    awarded_points: int
    attempts: int
    completed_at: datetime
    solved_at: datetime | None = None


@dataclass(frozen=True)
class TeamState:
    """
    队伍聚合的一次读取结果：
    - version 用于提交时的 compare-and-swap
    - completions 以题目 ID 为键
    """

    team_id: int
    name: str
    is_active: bool
    version: int
    points: int
    unlock_code: str | None
    buildathon_unlocked: bool
    snapshot_pending: bool
    requirements: tuple[RequirementEntry, ...] = ()
    completions: Mapping[int, CompletionState] = field(default_factory=dict)

    @property
    def completed_ids(self) -> frozenset[int]:
        return frozenset(self.completions)

    @property
    def correct_ids(self) -> frozenset[int]:
        return frozenset(cid for cid, rec in self.completions.items() if rec.is_correct)

    def with_completion(self, record: CompletionState, points: int) -> "TeamState":
        completions = dict(self.completions)
        completions[record.challenge_id] = record
        return replace(self, completions=completions, points=points)


@dataclass(frozen=True)
class LedgerChange:
    """
    一次提交对账本的影响：
    - record：写入后的完成记录
    - points_delta：本次新增积分（只会是 0 或分值）
    """

    record: CompletionState
    created: bool
    points_delta: int

    @property
    def newly_awarded(self) -> bool:
        return self.points_delta > 0


def expected_points(completions: Mapping[int, CompletionState]) -> int:
    return sum(rec.awarded_points for rec in completions.values() if rec.points_awarded)


def check_points_invariant(state: TeamState) -> None:
    """积分必须等于已计分完成记录的分值之和"""
    expected = expected_points(state.completions)
    ensure_invariant(
        state.points == expected,
        f"队伍 {state.team_id} 积分不一致：points={state.points}，完成记录合计={expected}",
    )


def apply_completion(
        existing: CompletionState | None,
        *,
        challenge_id: int,
        is_correct: bool,
        point_value: int,
        now: datetime,
) -> LedgerChange:
    """
    计分规则：
    1. 无记录：创建；答对则计分，答错也算“已完成”但不计分
    2. 有记录且未答对、本次答对：升级为答对，未计分则补计一次
    3. 本次答错：不降级、不重复计分，只累加提交次数
    4. 已答对再次答对：积分不变
    """
    point_value = max(0, int(point_value))
    if existing is None:
        record = CompletionState(
            challenge_id=challenge_id,
            is_correct=is_correct,
            points_awarded=is_correct,
            awarded_points=point_value if is_correct else 0,
            attempts=1,
            completed_at=now,
            solved_at=now if is_correct else None,
        )
        return LedgerChange(record=record, created=True, points_delta=record.awarded_points)

    attempts = existing.attempts + 1
    if not is_correct or existing.is_correct:
        return LedgerChange(record=replace(existing, attempts=attempts), created=False, points_delta=0)

    # 答错 -> 答对
    if existing.points_awarded:
        record = replace(existing, is_correct=True, attempts=attempts, solved_at=existing.solved_at or now)
        return LedgerChange(record=record, created=False, points_delta=0)
    record = replace(
        existing,
        is_correct=True,
        points_awarded=True,
        awarded_points=point_value,
        attempts=attempts,
        solved_at=now,
    )
    return LedgerChange(record=record, created=False, points_delta=point_value)


def apply_revocation(existing: CompletionState) -> LedgerChange:
    """
    管理员纠正：将答对记录改判为答错
    - 按原计入分值对称扣减积分；记录仍保留，依旧计入“已完成”
    """
    debit = existing.awarded_points if existing.points_awarded else 0
    record = replace(existing, is_correct=False, points_awarded=False, awarded_points=0, solved_at=None)
    return LedgerChange(record=record, created=False, points_delta=-debit)
