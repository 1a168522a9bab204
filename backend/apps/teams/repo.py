# apps/teams/repo.py

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from django.db.models import Count, Max, Q, QuerySet, Sum
from django.utils import timezone
from django.utils.text import slugify

from apps.challenges.catalog import CatalogEntry
from apps.common.base.base_repo import BaseRepo
from apps.common.exceptions import NotFoundError, ensure_invariant

from .models import CompletionRecord, RequirementSnapshotEntry, Team, TeamMember
from .state import CompletionState, RequirementEntry, TeamState


# 仓储层：封装队伍聚合、成员关系、需求快照与完成记录的数据库访问；聚合写入统一走版本号条件更新


class TeamRepo(BaseRepo[Team]):
    """
    队伍仓储：
    - load_state：一次读取队伍、快照与完成记录，组装为内存聚合
    - commit：基于版本号的条件更新，失败返回 False，由服务层重试
    """

    model = Team

    def get_or_404(self, team_id: Any) -> Team:
        try:
            return self.get_by_id(team_id)
        except (Team.DoesNotExist, ValueError, TypeError) as exc:
            raise NotFoundError(message="队伍不存在") from exc

    def name_taken(self, name: str) -> bool:
        return self.filter(name__iexact=name).exists()

    def generate_slug(self, name: str) -> str:
        """根据队伍名称生成唯一 slug，重名则递增后缀"""
        base = slugify(name) or "team"
        slug = base
        idx = 1
        while self.filter(slug=slug).exists():
            idx += 1
            slug = f"{base}-{idx}"
        return slug

    def create_team(
            self,
            *,
            name: str,
            description: str = "",
            max_members: int = 4,
            snapshot_pending: bool = False,
    ) -> Team:
        return self.create(
            {
                "name": name,
                "slug": self.generate_slug(name),
                "description": description,
                "max_members": max_members,
                "snapshot_pending": snapshot_pending,
            }
        )

    def lock(self, team_id: int) -> Team:
        """行锁读取队伍（需在事务内调用），用于成员人数校验"""
        return self.get_queryset().select_for_update().get(pk=team_id)

    def get_by_invite_code(self, invite_code: str) -> Optional[Team]:
        return self.get_or_none(invite_code=invite_code, is_active=True)

    def load_state(self, team_id: Any) -> TeamState:
        team = self.get_or_404(team_id)
        requirements = tuple(
            RequirementEntry(challenge_id=e.challenge_id, title=e.title_at_capture, captured_at=e.captured_at)
            for e in RequirementSnapshotEntry.objects.filter(team_id=team.id).order_by("position", "id")
        )
        completions = {
            rec.challenge_id: CompletionState(
                challenge_id=rec.challenge_id,
                is_correct=rec.is_correct,
                points_awarded=rec.points_awarded,
                awarded_points=rec.awarded_points,
                attempts=rec.attempts,
                completed_at=rec.completed_at,
                solved_at=rec.solved_at,
            )
            for rec in CompletionRecord.objects.filter(team_id=team.id)
        }
        return TeamState(
            team_id=team.id,
            name=team.name,
            is_active=team.is_active,
            version=team.version,
            points=team.points,
            unlock_code=team.unlock_code,
            buildathon_unlocked=team.buildathon_unlocked,
            snapshot_pending=team.snapshot_pending,
            requirements=requirements,
            completions=completions,
        )

    def commit(
            self,
            state: TeamState,
            changes: Mapping[str, Any],
            *,
            expected: Mapping[str, Any] | None = None,
    ) -> bool:
        """
        以读取时的版本号为条件写入聚合：
        - 命中则 version +1；期间有其他写入则返回 False
        - update() 不会触发 auto_now，这里显式刷新 updated_at
        """
        conditions = {"version": state.version}
        if expected:
            conditions.update(expected)
        payload = dict(changes)
        payload["version"] = state.version + 1
        payload["updated_at"] = timezone.now()
        return self.compare_and_update(state.team_id, expected=conditions, changes=payload)

    def ledger_points(self, team_id: int) -> int:
        total = CompletionRecord.objects.filter(team_id=team_id, points_awarded=True).aggregate(
            total=Sum("awarded_points")
        )["total"]
        return int(total or 0)

    def verify_points_invariant(self, team_id: int) -> None:
        """从数据库复核：积分等于已计分完成记录之和"""
        points = self.filter(pk=team_id).values_list("points", flat=True).first()
        ledger = self.ledger_points(team_id)
        ensure_invariant(points == ledger, f"队伍 {team_id} 积分不一致：points={points}，完成记录合计={ledger}")

    def active_ids_after(self, last_id: int, limit: int) -> list[int]:
        """按 ID 升序分批读取有效队伍"""
        return list(
            self.filter(is_active=True, id__gt=last_id).order_by("id").values_list("id", flat=True)[:limit]
        )

    def pending_snapshot_ids(self) -> list[int]:
        return list(self.filter(snapshot_pending=True).order_by("id").values_list("id", flat=True))

    def code_counts(self) -> dict[str, int]:
        return self.filter(is_active=True).aggregate(
            total=Count("id"),
            with_code=Count("id", filter=Q(unlock_code__isnull=False)),
            pending=Count("id", filter=Q(snapshot_pending=True)),
        )

    def leaderboard(self, limit: int) -> QuerySet[Team]:
        """
        排行榜：积分降序；同分按最近一次答对时间升序（先达到该积分者靠前）
        """
        return (
            self.filter(is_active=True)
            .annotate(
                solved_count=Count("completions", filter=Q(completions__is_correct=True)),
                last_solved_at=Max("completions__solved_at"),
            )
            .order_by("-points", "last_solved_at", "id")[:limit]
        )


class RequirementSnapshotRepo(BaseRepo[RequirementSnapshotEntry]):
    """需求快照仓储：只允许写入一次"""

    model = RequirementSnapshotEntry

    def capture(self, team_id: int, entries: Sequence[CatalogEntry], *, now: datetime | None = None) -> int:
        ensure_invariant(
            not self.exists(team_id=team_id),
            f"队伍 {team_id} 的需求快照已捕获，不允许再次写入",
        )
        captured_at = now or timezone.now()
        rows = [
            RequirementSnapshotEntry(
                team_id=team_id,
                challenge_id=entry.id,
                title_at_capture=entry.title[:200],
                position=idx,
                captured_at=captured_at,
            )
            for idx, entry in enumerate(entries)
        ]
        self.model.objects.bulk_create(rows)
        return len(rows)


class CompletionRecordRepo(BaseRepo[CompletionRecord]):
    """完成记录仓储：每个（队伍，题目）仅一条，原地更新"""

    model = CompletionRecord

    def save_state(self, team_id: int, record: CompletionState, *, created: bool) -> CompletionRecord:
        fields = {
            "is_correct": record.is_correct,
            "points_awarded": record.points_awarded,
            "awarded_points": record.awarded_points,
            "attempts": record.attempts,
            "completed_at": record.completed_at,
            "solved_at": record.solved_at,
        }
        if created:
            return self.create({"team_id": team_id, "challenge_id": record.challenge_id, **fields})
        instance = self.get_queryset().get(team_id=team_id, challenge_id=record.challenge_id)
        return self.update(instance, {**fields, "updated_at": timezone.now()})

    def list_for_team(self, team_id: int) -> QuerySet[CompletionRecord]:
        return self.filter(team_id=team_id).select_related("challenge").order_by("completed_at", "id")


class TeamMemberRepo(BaseRepo[TeamMember]):
    """队伍成员仓储：维护成员增删与查询"""

    model = TeamMember

    def create_member(self, *, team: Team, user, role: str) -> TeamMember:
        return self.create({"team": team, "user": user, "role": role})

    def membership_of(self, user) -> Optional[TeamMember]:
        """查询用户当前所在队伍的成员关系"""
        if user is None or not getattr(user, "is_authenticated", False):
            return None
        return self.filter(user_id=user.id).select_related("team").first()

    def is_member(self, team_id: int, user) -> bool:
        if user is None or not getattr(user, "is_authenticated", False):
            return False
        return self.exists(team_id=team_id, user_id=user.id)

    def member_count(self, team_id: int) -> int:
        return self.count(team_id=team_id)

    def active_members(self, team_id: int) -> QuerySet[TeamMember]:
        return self.filter(team_id=team_id).select_related("user").order_by("joined_at", "id")

    def next_leader(self, team_id: int, *, exclude_user_id: int) -> Optional[TeamMember]:
        """队长移交对象：除自己以外最早加入的成员"""
        return self.active_members(team_id).exclude(user_id=exclude_user_id).first()
