# apps/teams/services.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from django.db import DatabaseError, IntegrityError
from django.utils import timezone

from apps.challenges.access import ChallengeAccessPolicy
from apps.challenges.catalog import ChallengeCatalog
from apps.challenges.repo import ChallengeRepo
from apps.common.base.base_service import BaseService
from apps.common.exceptions import (
    ChallengeNotAvailableError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    TeamInactiveError,
    TeamWriteConflictError,
    ValidationError,
    require,
)
from apps.common.infra.logger import get_logger, logger_extra
from apps.system.services import ConfigService

from .eligibility import EligibilityResult, evaluate_state
from .models import CompletionRecord, Team, TeamMember
from .repo import CompletionRecordRepo, RequirementSnapshotRepo, TeamMemberRepo, TeamRepo
from .schemas import (
    CompletionRecordSchema,
    CompletionRevokeSchema,
    TeamCreateSchema,
    TeamJoinSchema,
    UnlockCodeResetSchema,
    UnlockRedeemSchema,
)
from .state import TeamState, apply_completion, apply_revocation, check_points_invariant
from .unlock_codes import codes_match, generate_unlock_code

logger = get_logger(__name__)


def max_write_retries() -> int:
    return ConfigService().get_int("TEAM_WRITE_MAX_RETRIES", 5, minimum=1)


def unlock_code_prefix() -> str:
    return ConfigService().get("UNLOCK_CODE_PREFIX", "DUOTHAN")


def _log_conflict(team_id: int, attempt: int, operation: str) -> None:
    logger.info(
        "队伍写入版本冲突，重新读取后重试",
        extra=logger_extra({"team_id": team_id, "attempt": attempt, "operation": operation}),
    )


def _exhausted(team_id: int, operation: str) -> TeamWriteConflictError:
    logger.warning(
        "队伍写入重试次数耗尽",
        extra=logger_extra({"team_id": team_id, "operation": operation}),
    )
    return TeamWriteConflictError(extra={"team_id": team_id, "retryable": True})


# ======================
# 返回结果
# ======================

@dataclass(frozen=True)
class CompletionOutcome:
    record: CompletionRecord
    eligibility: EligibilityResult
    team_points: int
    newly_awarded: bool
    unlock_code_generated: bool


@dataclass(frozen=True)
class UnlockCodeOutcome:
    eligibility: EligibilityResult
    unlock_code: Optional[str]
    generated: bool


@dataclass(frozen=True)
class UnlockOutcome:
    """兑换结果：拒绝属于结构化结果而非异常"""

    REASON_ALREADY_UNLOCKED = "already_unlocked"
    REASON_REQUIREMENTS_NOT_MET = "requirements_not_met"
    REASON_CODE_MISMATCH = "code_mismatch"
    # 兑换被拒绝时响应中的业务码（47xxx 队伍/进度段）
    REJECTED_CODE = 47010

    unlocked: bool
    reason: Optional[str]
    completed_count: int
    required_count: int

    @property
    def accepted(self) -> bool:
        return self.unlocked and self.reason is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "unlocked": self.unlocked,
            "reason": self.reason,
            "completed_count": self.completed_count,
            "required_count": self.required_count,
        }


@dataclass
class SweepReport:
    teams_checked: int = 0
    codes_generated: int = 0
    failures: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "teams_checked": self.teams_checked,
            "codes_generated": self.codes_generated,
            "failures": self.failures,
        }


# ======================
# 成员与访问控制
# ======================

def _joins_as_member(user) -> bool:
    """管理员账号不加入队伍；匿名/内部调用（user=None）不写成员关系"""
    return user is not None and getattr(user, "is_authenticated", False) and not user.is_staff


def can_access_team_secrets(team_id: int, user, member_repo: TeamMemberRepo | None = None) -> bool:
    """邀请码与解锁码仅对本队成员及管理员可见"""
    if user is not None and getattr(user, "is_staff", False):
        return True
    return (member_repo or TeamMemberRepo()).is_member(team_id, user)


def ensure_team_member(team_id: int, user, member_repo: TeamMemberRepo | None = None) -> None:
    require(
        can_access_team_secrets(team_id, user, member_repo),
        PermissionDeniedError(message="仅队伍成员可执行此操作"),
    )


# ======================
# 队伍创建与需求快照
# ======================

class TeamCreateService(BaseService[Team]):
    """
    创建队伍服务：
    - 读取当前开放的算法题并写入需求快照
    - 目录读取失败时仍创建队伍，标记快照待补录并派发补录任务
    - 创建者（非管理员）自动成为队长；已在其他队伍中的用户不能再创建
    """

    atomic_enabled = False

    def __init__(
            self,
            team_repo: TeamRepo | None = None,
            snapshot_repo: RequirementSnapshotRepo | None = None,
            catalog: ChallengeCatalog | None = None,
            member_repo: TeamMemberRepo | None = None,
    ):
        self.team_repo = team_repo or TeamRepo()
        self.snapshot_repo = snapshot_repo or RequirementSnapshotRepo()
        self.catalog = catalog or ChallengeCatalog()
        self.member_repo = member_repo or TeamMemberRepo()

    def validate(self, schema: TeamCreateSchema, user=None) -> None:
        if self.team_repo.name_taken(schema.name):
            raise ConflictError(message="队伍名称已存在")
        if _joins_as_member(user):
            require(self.member_repo.membership_of(user) is None, ConflictError(message="您已经加入了一支队伍"))

    def perform(self, schema: TeamCreateSchema, user=None) -> Team:
        # 1) 事务外读取目录，读取失败不影响队伍创建
        try:
            entries = self.catalog.active_algorithmic()
        except DatabaseError as exc:
            logger.warning(
                "创建队伍时读取题目目录失败，快照转为待补录",
                extra=logger_extra({"team_name": schema.name, "error": str(exc)}),
            )
            entries = None
        # 2) 创建队伍、写入快照与队长成员关系
        try:
            with self.atomic():
                team = self.team_repo.create_team(
                    name=schema.name,
                    description=schema.description,
                    max_members=schema.max_members,
                    snapshot_pending=entries is None,
                )
                if entries is not None:
                    self.snapshot_repo.capture(team.id, entries)
                if _joins_as_member(user):
                    self.member_repo.create_member(team=team, user=user, role=TeamMember.Role.LEADER)
        except IntegrityError:
            raise ConflictError(message="队伍名称已存在或您已加入其他队伍")
        logger.info(
            "创建队伍",
            extra=logger_extra(
                {
                    "team_id": team.id,
                    "user_id": getattr(user, "id", None),
                    "requirements": len(entries) if entries is not None else None,
                    "snapshot_pending": team.snapshot_pending,
                }
            ),
        )
        if team.snapshot_pending:
            from .triggers import dispatch_snapshot_reconcile

            dispatch_snapshot_reconcile(team.id)
        return team


class TeamJoinService(BaseService[TeamMember]):
    """
    加入队伍服务：
    - 凭邀请码加入有效队伍，管理员账号不能加入
    - 校验人数上限与“一人一队”；人数校验在队伍行锁内完成
    """

    def __init__(self, team_repo: TeamRepo | None = None, member_repo: TeamMemberRepo | None = None):
        self.team_repo = team_repo or TeamRepo()
        self.member_repo = member_repo or TeamMemberRepo()

    def validate(self, user, schema: TeamJoinSchema) -> None:
        require(not user.is_staff, ValidationError(message="管理员账号无法加入队伍"))
        require(self.member_repo.membership_of(user) is None, ConflictError(message="您已经加入了一支队伍"))

    def perform(self, user, schema: TeamJoinSchema) -> TeamMember:
        team = self.team_repo.get_by_invite_code(schema.invite_code)
        require(team is not None, NotFoundError(message="邀请码无效"))
        team = self.team_repo.lock(team.id)
        if self.member_repo.member_count(team.id) >= team.max_members:
            logger.warning(
                "加入队伍失败：人数已满",
                extra=logger_extra({"team_id": team.id, "user_id": user.id}),
            )
            raise ConflictError(message="队伍人数已满")
        try:
            with self.atomic():
                member = self.member_repo.create_member(team=team, user=user, role=TeamMember.Role.MEMBER)
        except IntegrityError:
            raise ConflictError(message="您已经加入了一支队伍")
        logger.info("加入队伍", extra=logger_extra({"team_id": team.id, "user_id": user.id}))
        return member


class TeamLeaveService(BaseService[dict]):
    """
    退出队伍服务：
    - 队长退出且仍有其他成员时，队长移交给最早加入的成员
    - 最后一名成员退出后队伍解散（置为无效，积分与完成记录保留）
    """

    def __init__(self, team_repo: TeamRepo | None = None, member_repo: TeamMemberRepo | None = None):
        self.team_repo = team_repo or TeamRepo()
        self.member_repo = member_repo or TeamMemberRepo()

    def perform(self, user) -> dict:
        membership = self.member_repo.membership_of(user)
        require(membership is not None, NotFoundError(message="你尚未加入任何队伍"))
        team = self.team_repo.lock(membership.team_id)
        new_leader_id = None
        if membership.role == TeamMember.Role.LEADER:
            successor = self.member_repo.next_leader(team.id, exclude_user_id=user.id)
            if successor is not None:
                self.member_repo.update(successor, {"role": TeamMember.Role.LEADER})
                new_leader_id = successor.user_id
        self.member_repo.delete(membership)
        dissolved = self.member_repo.member_count(team.id) == 0
        if dissolved:
            self._deactivate(team.id)
        logger.info(
            "退出队伍",
            extra=logger_extra(
                {"team_id": team.id, "user_id": user.id, "new_leader_id": new_leader_id, "dissolved": dissolved}
            ),
        )
        return {"team_id": team.id, "dissolved": dissolved, "new_leader_id": new_leader_id}

    def _deactivate(self, team_id: int) -> None:
        for attempt in range(1, max_write_retries() + 1):
            state = self.team_repo.load_state(team_id)
            if not state.is_active or self.team_repo.commit(state, {"is_active": False}):
                return
            _log_conflict(team_id, attempt, "dissolve")
        raise _exhausted(team_id, "dissolve")


class SnapshotReconcileService(BaseService[bool]):
    """
    需求快照补录：
    - 仅处理 snapshot_pending 的队伍，以版本号 + 待补录标记为条件写入，保证只捕获一次
    - 补录后立即重新评估（可能直接满足解锁条件）
    """

    atomic_enabled = False

    def __init__(
            self,
            team_repo: TeamRepo | None = None,
            snapshot_repo: RequirementSnapshotRepo | None = None,
            catalog: ChallengeCatalog | None = None,
    ):
        self.team_repo = team_repo or TeamRepo()
        self.snapshot_repo = snapshot_repo or RequirementSnapshotRepo()
        self.catalog = catalog or ChallengeCatalog()

    def perform(self, team_id: int) -> bool:
        state = self.team_repo.load_state(team_id)
        if not state.snapshot_pending:
            return False
        entries = self.catalog.active_algorithmic()
        with self.atomic():
            committed = self.team_repo.commit(state, {"snapshot_pending": False}, expected={"snapshot_pending": True})
            if not committed:
                return False
            count = self.snapshot_repo.capture(team_id, entries)
        logger.info("需求快照补录完成", extra=logger_extra({"team_id": team_id, "requirements": count}))
        UnlockCodeService(team_repo=self.team_repo, catalog=self.catalog).execute(team_id)
        return True


# ======================
# 解锁码生成
# ======================

class UnlockCodeService(BaseService[UnlockCodeOutcome]):
    """
    解锁码生成（幂等）：
    - 判定满足且尚无解锁码时生成；已有解锁码直接返回，不覆盖
    - 条件写入：仅当 unlock_code 仍为空且版本号未变；失败方重新读取并拿到胜出方的解锁码
    """

    atomic_enabled = False

    def __init__(self, team_repo: TeamRepo | None = None, catalog: ChallengeCatalog | None = None):
        self.team_repo = team_repo or TeamRepo()
        self.catalog = catalog or ChallengeCatalog()

    def perform(self, team_id: int) -> UnlockCodeOutcome:
        active = self.catalog.active_algorithmic()
        for attempt in range(1, max_write_retries() + 1):
            state = self.team_repo.load_state(team_id)
            result = evaluate_state(state, active)
            if not result.eligible or state.unlock_code or not state.is_active:
                return UnlockCodeOutcome(eligibility=result, unlock_code=state.unlock_code, generated=False)
            now = timezone.now()
            code = generate_unlock_code(unlock_code_prefix(), now=now)
            try:
                with self.atomic():
                    committed = self.team_repo.commit(
                        state,
                        {"unlock_code": code, "unlock_code_generated_at": now},
                        expected={"unlock_code__isnull": True},
                    )
            except IntegrityError:
                logger.warning("解锁码重复，重新生成", extra=logger_extra({"team_id": team_id}))
                continue
            if committed:
                logger.info(
                    "解锁码已生成",
                    extra=logger_extra(
                        {"team_id": team_id, "required": result.required_count, "source": result.source}
                    ),
                )
                return UnlockCodeOutcome(eligibility=result, unlock_code=code, generated=True)
            _log_conflict(team_id, attempt, "unlock_code")
        raise _exhausted(team_id, "unlock_code")


class EligibilityService(BaseService[EligibilityResult]):
    """
    资格判定入口：
    - generate=True 时沿用幂等生成流程，满足条件的队伍顺带补齐解锁码
    - generate=False 为纯读取
    """

    atomic_enabled = False

    def __init__(self, team_repo: TeamRepo | None = None, catalog: ChallengeCatalog | None = None):
        self.team_repo = team_repo or TeamRepo()
        self.catalog = catalog or ChallengeCatalog()

    def perform(self, team_id: int, *, generate: bool = True) -> EligibilityResult:
        if generate:
            return UnlockCodeService(team_repo=self.team_repo, catalog=self.catalog).execute(team_id).eligibility
        state = self.team_repo.load_state(team_id)
        return evaluate_state(state, self.catalog.active_algorithmic())


# ======================
# 完成记录
# ======================

class CompletionRecordService(BaseService[CompletionOutcome]):
    """
    评测结果回写：
    1. 校验队伍/题目状态与访问规则
    2. 按计分规则更新完成记录（同一题只计分一次）
    3. 立即重新判定资格，首次满足时在同一次版本写入中生成解锁码
    - 乐观并发：以 Team.version 为条件写入，冲突时重读重试，耗尽后抛可重试错误
    """

    atomic_enabled = False

    def __init__(
            self,
            team_repo: TeamRepo | None = None,
            completion_repo: CompletionRecordRepo | None = None,
            challenge_repo: ChallengeRepo | None = None,
            catalog: ChallengeCatalog | None = None,
            access_policy: ChallengeAccessPolicy | None = None,
    ):
        self.team_repo = team_repo or TeamRepo()
        self.completion_repo = completion_repo or CompletionRecordRepo()
        self.challenge_repo = challenge_repo or ChallengeRepo()
        self.catalog = catalog or ChallengeCatalog()
        self.access_policy = access_policy or ChallengeAccessPolicy()

    def perform(self, schema: CompletionRecordSchema) -> CompletionOutcome:
        challenge = self.challenge_repo.get_or_404(schema.challenge_id)
        if not challenge.is_active:
            raise ChallengeNotAvailableError()
        point_value = schema.awarded_points_hint if schema.awarded_points_hint is not None else challenge.points
        active = self.catalog.active_algorithmic()

        for attempt in range(1, max_write_retries() + 1):
            state = self.team_repo.load_state(schema.team_id)
            if not state.is_active:
                raise TeamInactiveError()
            self.access_policy.ensure_accessible(
                challenge,
                buildathon_unlocked=state.buildathon_unlocked,
                completed_ids=state.completed_ids,
            )
            now = timezone.now()
            change = apply_completion(
                state.completions.get(challenge.id),
                challenge_id=challenge.id,
                is_correct=schema.is_correct,
                point_value=point_value,
                now=now,
            )
            updated = state.with_completion(change.record, state.points + change.points_delta)
            check_points_invariant(updated)
            result = evaluate_state(updated, active)

            changes: dict[str, Any] = {"points": updated.points}
            expected: dict[str, Any] = {}
            generate = result.eligible and not state.unlock_code
            if generate:
                changes["unlock_code"] = generate_unlock_code(unlock_code_prefix(), now=now)
                changes["unlock_code_generated_at"] = now
                expected["unlock_code__isnull"] = True

            try:
                with self.atomic():
                    if not self.team_repo.commit(state, changes, expected=expected):
                        _log_conflict(state.team_id, attempt, "completion")
                        continue
                    record = self.completion_repo.save_state(state.team_id, change.record, created=change.created)
                    self.team_repo.verify_points_invariant(state.team_id)
            except IntegrityError:
                # 仅解锁码唯一约束可能触发，整次写入已回滚
                logger.warning("解锁码重复，重新生成", extra=logger_extra({"team_id": state.team_id}))
                continue

            logger.info(
                "完成记录已更新",
                extra=logger_extra(
                    {
                        "team_id": state.team_id,
                        "challenge_id": challenge.id,
                        "is_correct": schema.is_correct,
                        "points_delta": change.points_delta,
                        "eligible": result.eligible,
                    }
                ),
            )
            if generate:
                logger.info("解锁码已生成", extra=logger_extra({"team_id": state.team_id}))
            return CompletionOutcome(
                record=record,
                eligibility=result,
                team_points=updated.points,
                newly_awarded=change.newly_awarded,
                unlock_code_generated=generate,
            )
        raise _exhausted(schema.team_id, "completion")


class CompletionRevokeService(BaseService[CompletionRecord]):
    """
    管理员纠正完成记录（答对 -> 答错）：
    - 按原计入分值对称扣减积分
    - 记录仍保留，继续计入“已完成”；解锁码不受影响
    """

    atomic_enabled = False

    def __init__(self, team_repo: TeamRepo | None = None, completion_repo: CompletionRecordRepo | None = None):
        self.team_repo = team_repo or TeamRepo()
        self.completion_repo = completion_repo or CompletionRecordRepo()

    def perform(self, schema: CompletionRevokeSchema) -> CompletionRecord:
        for attempt in range(1, max_write_retries() + 1):
            state = self.team_repo.load_state(schema.team_id)
            existing = state.completions.get(schema.challenge_id)
            if existing is None:
                raise NotFoundError(message="完成记录不存在")
            if not existing.is_correct and not existing.points_awarded:
                return self.completion_repo.get_queryset().get(
                    team_id=state.team_id, challenge_id=schema.challenge_id
                )
            change = apply_revocation(existing)
            updated = state.with_completion(change.record, state.points + change.points_delta)
            check_points_invariant(updated)
            with self.atomic():
                if not self.team_repo.commit(state, {"points": updated.points}):
                    _log_conflict(state.team_id, attempt, "revoke")
                    continue
                record = self.completion_repo.save_state(state.team_id, change.record, created=False)
                self.team_repo.verify_points_invariant(state.team_id)
            logger.warning(
                "管理员纠正完成记录",
                extra=logger_extra(
                    {"team_id": state.team_id, "challenge_id": schema.challenge_id, "points_delta": change.points_delta}
                ),
            )
            return record
        raise _exhausted(schema.team_id, "revoke")


# ======================
# Buildathon 兑换
# ======================

class BuildathonUnlockService(BaseService[UnlockOutcome]):
    """
    Buildathon 解锁（单向状态机 locked -> unlocked）：
    1. 已解锁：返回 already_unlocked，不报错
    2. 要求未完成：拒绝并返回进度
    3. 解锁码不匹配（或尚未生成）：拒绝
    - 以版本号 + buildathon_unlocked=False 为条件写入；并发失败方重新读取后返回 already_unlocked
    """

    atomic_enabled = False

    def __init__(self, team_repo: TeamRepo | None = None, catalog: ChallengeCatalog | None = None):
        self.team_repo = team_repo or TeamRepo()
        self.catalog = catalog or ChallengeCatalog()

    def perform(self, schema: UnlockRedeemSchema) -> UnlockOutcome:
        active = self.catalog.active_algorithmic()
        for attempt in range(1, max_write_retries() + 1):
            state = self.team_repo.load_state(schema.team_id)
            result = evaluate_state(state, active)
            progress = {"completed_count": result.completed_count, "required_count": result.required_count}
            if state.buildathon_unlocked:
                return UnlockOutcome(unlocked=True, reason=UnlockOutcome.REASON_ALREADY_UNLOCKED, **progress)
            if not state.is_active:
                raise TeamInactiveError()
            if not result.eligible:
                return UnlockOutcome(unlocked=False, reason=UnlockOutcome.REASON_REQUIREMENTS_NOT_MET, **progress)
            if not codes_match(schema.code, state.unlock_code):
                logger.info("解锁码不匹配", extra=logger_extra({"team_id": state.team_id}))
                return UnlockOutcome(unlocked=False, reason=UnlockOutcome.REASON_CODE_MISMATCH, **progress)
            committed = self.team_repo.commit(
                state,
                {"buildathon_unlocked": True, "buildathon_unlocked_at": timezone.now()},
                expected={"buildathon_unlocked": False},
            )
            if committed:
                logger.info("Buildathon 已解锁", extra=logger_extra({"team_id": state.team_id}))
                return UnlockOutcome(unlocked=True, reason=None, **progress)
            _log_conflict(state.team_id, attempt, "redeem")
        raise _exhausted(schema.team_id, "redeem")


# ======================
# 管理员操作
# ======================

class UnlockCodeResetService(BaseService[list]):
    """
    强制重置解锁码（管理员）：
    - 显式清空解锁码后立即重新评估，满足条件的队伍获得新解锁码
    - Buildathon 解锁状态不受影响
    """

    atomic_enabled = False

    def __init__(self, team_repo: TeamRepo | None = None, catalog: ChallengeCatalog | None = None):
        self.team_repo = team_repo or TeamRepo()
        self.catalog = catalog or ChallengeCatalog()

    def _clear(self, team_id: int) -> None:
        for attempt in range(1, max_write_retries() + 1):
            state = self.team_repo.load_state(team_id)
            if state.unlock_code is None:
                return
            if self.team_repo.commit(state, {"unlock_code": None, "unlock_code_generated_at": None}):
                logger.warning("管理员强制清空解锁码", extra=logger_extra({"team_id": team_id}))
                return
            _log_conflict(team_id, attempt, "reset")
        raise _exhausted(team_id, "reset")

    def perform(self, schema: UnlockCodeResetSchema) -> list:
        if schema.all_teams:
            team_ids = list(self.team_repo.filter(is_active=True).order_by("id").values_list("id", flat=True))
        else:
            team_ids = [self.team_repo.get_or_404(schema.team_id).id]
        generator = UnlockCodeService(team_repo=self.team_repo, catalog=self.catalog)
        results = []
        for team_id in team_ids:
            self._clear(team_id)
            outcome = generator.execute(team_id)
            results.append({"team_id": team_id, "regenerated": outcome.generated})
        return results


class ReevaluationService(BaseService[SweepReport]):
    """
    全量重新评估（题目目录变化后触发）：
    - 按 ID 分批遍历有效队伍，使用各自的需求快照判定
    - 只会为新满足条件的队伍生成解锁码，从不撤销已有解锁码
    - 单个队伍失败记录日志并计数，不中断扫描
    """

    atomic_enabled = False

    def __init__(self, team_repo: TeamRepo | None = None, catalog: ChallengeCatalog | None = None):
        self.team_repo = team_repo or TeamRepo()
        self.catalog = catalog or ChallengeCatalog()

    def perform(self, reason: str = "") -> SweepReport:
        chunk_size = ConfigService().get_int("REEVALUATION_CHUNK_SIZE", 200, minimum=1)
        generator = UnlockCodeService(team_repo=self.team_repo, catalog=self.catalog)
        report = SweepReport()
        last_id = 0
        while True:
            team_ids = self.team_repo.active_ids_after(last_id, chunk_size)
            if not team_ids:
                break
            for team_id in team_ids:
                report.teams_checked += 1
                try:
                    if generator.execute(team_id).generated:
                        report.codes_generated += 1
                except Exception as exc:
                    report.failures += 1
                    logger.error(
                        "重新评估单个队伍失败，继续扫描",
                        exc_info=exc,
                        extra=logger_extra({"team_id": team_id, "reason": reason}),
                    )
            last_id = team_ids[-1]
        logger.info("重新评估完成", extra=logger_extra({"reason": reason, **report.to_dict()}))
        return report


# ======================
# 只读查询
# ======================

class SystemHealthService(BaseService[dict]):
    """系统健康度：有效队伍中已生成解锁码的占比，以及快照补录积压"""

    atomic_enabled = False

    def __init__(self, team_repo: TeamRepo | None = None, challenge_repo: ChallengeRepo | None = None):
        self.team_repo = team_repo or TeamRepo()
        self.challenge_repo = challenge_repo or ChallengeRepo()

    def perform(self) -> dict:
        counts = self.team_repo.code_counts()
        total = counts["total"] or 0
        with_code = counts["with_code"] or 0
        return {
            "total_teams": total,
            "teams_with_code": with_code,
            "teams_without_code": total - with_code,
            "health_percent": round(with_code * 100 / total, 1) if total else 0.0,
            "algorithmic_challenges": self.challenge_repo.count_active("algorithmic"),
            "pending_snapshots": counts["pending"] or 0,
        }


class LeaderboardService(BaseService[list]):
    """排行榜：积分降序，同分按最近答对时间先后"""

    atomic_enabled = False

    def __init__(self, team_repo: TeamRepo | None = None):
        self.team_repo = team_repo or TeamRepo()

    def perform(self, limit: int | None = None) -> list:
        if limit is None:
            limit = ConfigService().get_int("LEADERBOARD_LIMIT", 50, minimum=1)
        items = []
        for rank, team in enumerate(self.team_repo.leaderboard(limit), start=1):
            items.append(
                {
                    "rank": rank,
                    "team_id": team.id,
                    "name": team.name,
                    "points": team.points,
                    "solved": team.solved_count,
                    "last_solved_at": team.last_solved_at,
                    "buildathon_unlocked": team.buildathon_unlocked,
                }
            )
        return items


def build_team_progress(state: TeamState, result: EligibilityResult, *, reveal_code: bool = True) -> dict:
    """
    队伍进度：要求/完成/答对数量与解锁状态
    - 解锁码仅在满足条件后展示，且仅对本队成员（reveal_code）展示
    """
    show = reveal_code and (result.eligible or state.buildathon_unlocked)
    return {
        **result.to_dict(),
        "unlock_code": state.unlock_code if show else None,
        "buildathon_unlocked": state.buildathon_unlocked,
    }
