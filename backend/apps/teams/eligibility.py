# apps/teams/eligibility.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence, Union

from apps.challenges.catalog import CatalogEntry

from .state import RequirementEntry, TeamState


# 解锁资格判定：唯一的判定入口，纯函数，不修改任何状态
#
# 要求来源在读取时一次性确定：
# - VersionedRequirements：队伍创建时捕获的需求快照
# - LegacyFallback：无快照的队伍（早期队伍、创建时目录为空、快照待补录），以当前开放的算法题为准


@dataclass(frozen=True)
class VersionedRequirements:
    entries: tuple[RequirementEntry, ...]

    kind = "versioned"


@dataclass(frozen=True)
class LegacyFallback:
    kind = "legacy"


RequirementSource = Union[VersionedRequirements, LegacyFallback]


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    completed_count: int
    required_count: int
    correct_count: int
    source: str
    required_ids: tuple[int, ...] = ()

    def to_dict(self) -> dict:
        return {
            "eligible": self.eligible,
            "completed_count": self.completed_count,
            "required_count": self.required_count,
            "correct_count": self.correct_count,
            "source": self.source,
        }


def resolve_source(state: TeamState) -> RequirementSource:
    if state.snapshot_pending or not state.requirements:
        return LegacyFallback()
    return VersionedRequirements(entries=tuple(state.requirements))


def required_ids(source: RequirementSource, active_algorithmic: Sequence[CatalogEntry]) -> tuple[int, ...]:
    """
    快照条目按当前目录过滤：已下线或已不属于算法阶段的题目不再计入
    """
    if isinstance(source, LegacyFallback):
        return tuple(entry.id for entry in active_algorithmic)
    active = {entry.id for entry in active_algorithmic}
    return tuple(entry.challenge_id for entry in source.entries if entry.challenge_id in active)


def evaluate(
        source: RequirementSource,
        completed_ids: Iterable[int],
        active_algorithmic: Sequence[CatalogEntry],
        correct_ids: Iterable[int] = (),
) -> EligibilityResult:
    """
    判定规则：
    1. required 为空则不满足（没有题目就没有可解锁的内容）
    2. completed = required 中存在完成记录的题目数（以提交存在为准，不要求答对）
    3. completed == required 即满足
    """
    required = required_ids(source, active_algorithmic)
    completed = set(completed_ids)
    correct = set(correct_ids)
    completed_count = sum(1 for cid in required if cid in completed)
    correct_count = sum(1 for cid in required if cid in correct)
    return EligibilityResult(
        eligible=bool(required) and completed_count == len(required),
        completed_count=completed_count,
        required_count=len(required),
        correct_count=correct_count,
        source=source.kind,
        required_ids=required,
    )


def evaluate_state(state: TeamState, active_algorithmic: Sequence[CatalogEntry]) -> EligibilityResult:
    return evaluate(resolve_source(state), state.completed_ids, active_algorithmic, state.correct_ids)
