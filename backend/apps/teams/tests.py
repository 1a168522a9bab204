from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone as dt_timezone
from unittest import mock

from django.core.cache import cache
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APITestCase

from apps.challenges.catalog import CatalogEntry, ChallengeCatalog
from apps.challenges.models import Challenge
from apps.challenges.schemas import ChallengeActivationSchema
from apps.challenges.services import ChallengeActivationService
from apps.common.exceptions import (
    ChallengeLockedError,
    ConflictError,
    InvariantViolationError,
    NotFoundError,
    PermissionDeniedError,
    TeamInactiveError,
    TeamWriteConflictError,
    ValidationError,
)
from apps.common.tests_utils import AuthenticatedAPIMixin

from .eligibility import LegacyFallback, VersionedRequirements, evaluate, resolve_source
from .models import CompletionRecord, RequirementSnapshotEntry, Team, TeamMember
from .repo import RequirementSnapshotRepo, TeamMemberRepo, TeamRepo
from .schemas import (
    CompletionRecordSchema,
    CompletionRevokeSchema,
    TeamCreateSchema,
    TeamJoinSchema,
    UnlockCodeResetSchema,
    UnlockRedeemSchema,
)
from .services import (
    BuildathonUnlockService,
    CompletionRecordService,
    CompletionRevokeService,
    EligibilityService,
    LeaderboardService,
    ReevaluationService,
    SnapshotReconcileService,
    SystemHealthService,
    TeamCreateService,
    TeamJoinService,
    TeamLeaveService,
    UnlockCodeResetService,
    UnlockCodeService,
    UnlockOutcome,
    ensure_team_member,
)
from .state import CompletionState, RequirementEntry, TeamState, apply_completion, apply_revocation, check_points_invariant
from .tasks import reconcile_pending_snapshots, reevaluate_all_teams, reevaluate_team
from .triggers import CatalogChangeTrigger
from .unlock_codes import CODE_PATTERN, codes_match, generate_unlock_code, looks_like_unlock_code, normalize_prefix


# 测试用例：覆盖计分规则、资格判定、解锁码、并发写入与 API 冒烟

LOCMEM_CACHE = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "teams-service-tests",
    }
}


def make_challenge(slug: str, *, phase=Challenge.Phase.ALGORITHMIC, points=100, is_active=True, order=0):
    return Challenge.objects.create(
        title=slug.replace("-", " ").title(),
        slug=slug,
        phase=phase,
        points=points,
        is_active=is_active,
        order=order,
    )


def make_team(name: str) -> Team:
    return TeamCreateService().execute(TeamCreateSchema(name=name))


def submit(team: Team, challenge: Challenge, is_correct: bool = True, hint: int | None = None):
    return CompletionRecordService().execute(
        CompletionRecordSchema(
            team_id=team.id,
            challenge_id=challenge.id,
            is_correct=is_correct,
            awarded_points_hint=hint,
        )
    )


def redeem(team: Team, code: str) -> UnlockOutcome:
    return BuildathonUnlockService().execute(UnlockRedeemSchema(team_id=team.id, code=code))


def stale_first(stale: TeamState):
    """第一次读取返回过期状态，模拟另一个请求已在读取之后写入"""
    real_load = TeamRepo.load_state
    calls = []

    def _load(repo, team_id):
        calls.append(team_id)
        if len(calls) == 1:
            return stale
        return real_load(repo, team_id)

    return mock.patch.object(TeamRepo, "load_state", new=_load)


class CompletionRuleTests(SimpleTestCase):
    """计分规则：纯函数，不访问数据库"""

    def setUp(self):
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=dt_timezone.utc)

    def test_first_correct_submission_awards_points(self):
        change = apply_completion(None, challenge_id=1, is_correct=True, point_value=100, now=self.now)
        self.assertTrue(change.created)
        self.assertEqual(change.points_delta, 100)
        self.assertTrue(change.record.points_awarded)
        self.assertEqual(change.record.solved_at, self.now)

    def test_wrong_submission_counts_as_completed_without_points(self):
        change = apply_completion(None, challenge_id=1, is_correct=False, point_value=100, now=self.now)
        self.assertTrue(change.created)
        self.assertEqual(change.points_delta, 0)
        self.assertFalse(change.record.is_correct)
        self.assertIsNone(change.record.solved_at)

    def test_wrong_then_correct_awards_once(self):
        first = apply_completion(None, challenge_id=1, is_correct=False, point_value=100, now=self.now)
        second = apply_completion(first.record, challenge_id=1, is_correct=True, point_value=100, now=self.now)
        self.assertEqual(second.points_delta, 100)
        self.assertEqual(second.record.attempts, 2)
        third = apply_completion(second.record, challenge_id=1, is_correct=True, point_value=100, now=self.now)
        self.assertEqual(third.points_delta, 0)
        self.assertEqual(third.record.attempts, 3)

    def test_correct_is_never_downgraded(self):
        first = apply_completion(None, challenge_id=1, is_correct=True, point_value=50, now=self.now)
        second = apply_completion(first.record, challenge_id=1, is_correct=False, point_value=50, now=self.now)
        self.assertTrue(second.record.is_correct)
        self.assertEqual(second.points_delta, 0)
        self.assertEqual(second.record.awarded_points, 50)

    def test_revocation_debits_awarded_points(self):
        first = apply_completion(None, challenge_id=1, is_correct=True, point_value=80, now=self.now)
        revoked = apply_revocation(first.record)
        self.assertEqual(revoked.points_delta, -80)
        self.assertFalse(revoked.record.is_correct)
        self.assertFalse(revoked.record.points_awarded)

    def test_points_invariant_detects_mismatch(self):
        record = CompletionState(
            challenge_id=1,
            is_correct=True,
            points_awarded=True,
            awarded_points=100,
            attempts=1,
            completed_at=self.now,
            solved_at=self.now,
        )
        state = TeamState(
            team_id=1,
            name="Alpha",
            is_active=True,
            version=0,
            points=90,
            unlock_code=None,
            buildathon_unlocked=False,
            snapshot_pending=False,
            completions={1: record},
        )
        with self.assertRaises(InvariantViolationError):
            check_points_invariant(state)


class EligibilityEvaluatorTests(SimpleTestCase):
    """资格判定：要求来源与计数规则"""

    def setUp(self):
        now = datetime(2026, 3, 1, tzinfo=dt_timezone.utc)
        self.catalog = [CatalogEntry(id=i, title=f"Q{i}", points=100, created_at=now) for i in (1, 2, 3)]

    def _state(self, *, requirements=(), pending=False):
        return TeamState(
            team_id=1,
            name="Alpha",
            is_active=True,
            version=0,
            points=0,
            unlock_code=None,
            buildathon_unlocked=False,
            snapshot_pending=pending,
            requirements=tuple(requirements),
        )

    def test_source_resolution(self):
        entries = [RequirementEntry(challenge_id=1, title="Q1")]
        self.assertIsInstance(resolve_source(self._state()), LegacyFallback)
        self.assertIsInstance(resolve_source(self._state(requirements=entries, pending=True)), LegacyFallback)
        self.assertIsInstance(resolve_source(self._state(requirements=entries)), VersionedRequirements)

    def test_snapshot_entries_filtered_by_active_catalog(self):
        source = VersionedRequirements(
            entries=(RequirementEntry(challenge_id=1, title="Q1"), RequirementEntry(challenge_id=9, title="Gone"))
        )
        result = evaluate(source, completed_ids={1}, active_algorithmic=self.catalog)
        self.assertTrue(result.eligible)
        self.assertEqual(result.required_count, 1)
        self.assertEqual(result.source, "versioned")

    def test_empty_requirements_never_eligible(self):
        result = evaluate(LegacyFallback(), completed_ids=set(), active_algorithmic=[])
        self.assertFalse(result.eligible)
        self.assertEqual(result.required_count, 0)

    def test_completion_not_correctness_decides(self):
        result = evaluate(LegacyFallback(), completed_ids={1, 2, 3}, active_algorithmic=self.catalog, correct_ids={1})
        self.assertTrue(result.eligible)
        self.assertEqual(result.completed_count, 3)
        self.assertEqual(result.correct_count, 1)

    def test_partial_progress(self):
        result = evaluate(LegacyFallback(), completed_ids={1, 42}, active_algorithmic=self.catalog)
        self.assertFalse(result.eligible)
        self.assertEqual((result.completed_count, result.required_count), (1, 3))


class UnlockCodeFormatTests(SimpleTestCase):
    def test_generated_code_shape(self):
        now = datetime(2026, 3, 1, 8, 30, tzinfo=dt_timezone.utc)
        code = generate_unlock_code("duothan", now=now)
        match = CODE_PATTERN.match(code)
        self.assertIsNotNone(match)
        self.assertEqual(match.group(1), "DUOTHAN")
        self.assertEqual(match.group(3), f"{int(now.timestamp()) % 10000:04d}")
        self.assertTrue(looks_like_unlock_code(code))

    def test_prefix_normalization(self):
        self.assertEqual(normalize_prefix("duo-than!"), "DUOTHAN")
        self.assertEqual(normalize_prefix(""), "DUOTHAN")
        self.assertEqual(normalize_prefix(None), "DUOTHAN")

    def test_codes_are_random(self):
        codes = {generate_unlock_code() for _ in range(20)}
        self.assertEqual(len(codes), 20)

    def test_tampered_checksum_rejected(self):
        code = generate_unlock_code()
        last = code[-1]
        replacement = "A" if last != "A" else "B"
        self.assertFalse(looks_like_unlock_code(code[:-1] + replacement))
        self.assertFalse(looks_like_unlock_code(""))

    def test_codes_match_trims_whitespace(self):
        code = generate_unlock_code()
        self.assertTrue(codes_match(f"  {code}\n", code))
        self.assertFalse(codes_match(code.lower(), code))
        self.assertFalse(codes_match(code, None))
        self.assertFalse(codes_match(None, code))


class TeamSchemaTests(SimpleTestCase):
    def test_team_name_trimmed_and_bounded(self):
        schema = TeamCreateSchema(name="  Alpha  ")
        self.assertEqual(schema.name, "Alpha")
        with self.assertRaises(ValidationError):
            TeamCreateSchema(name="ab")
        with self.assertRaises(ValidationError):
            TeamCreateSchema(name="x" * 51)
        with self.assertRaises(ValidationError):
            TeamCreateSchema(name="Alpha", description="d" * 201)

    def test_completion_schema_accepts_camel_case(self):
        schema = CompletionRecordSchema.from_dict({"teamId": "3", "challengeId": 7, "isCorrect": "true"})
        self.assertEqual((schema.team_id, schema.challenge_id, schema.is_correct), (3, 7, True))
        self.assertIsNone(schema.awarded_points_hint)

    def test_redeem_schema_rejects_blank_code(self):
        with self.assertRaises(ValidationError):
            UnlockRedeemSchema(team_id=1, code="   ")
        schema = UnlockRedeemSchema.from_dict({"unlock_code": " CODE "}, extra={"team_id": 1})
        self.assertEqual(schema.code, "CODE")

    def test_reset_schema_requires_target(self):
        with self.assertRaises(ValidationError):
            UnlockCodeResetSchema()
        self.assertTrue(UnlockCodeResetSchema(all_teams=True).all_teams)


@override_settings(CACHES=LOCMEM_CACHE)
class TeamCreateServiceTests(TestCase):
    """创建队伍与需求快照"""

    def setUp(self):
        cache.clear()
        self.q1 = make_challenge("two-sum", order=2)
        self.q2 = make_challenge("graph-walk", order=1)
        make_challenge("retired", is_active=False)
        make_challenge("build-app", phase=Challenge.Phase.BUILDATHON)

    def test_snapshot_captures_active_algorithmic_in_catalog_order(self):
        team = make_team("Alpha")
        entries = list(RequirementSnapshotEntry.objects.filter(team=team).order_by("position"))
        self.assertEqual([e.challenge_id for e in entries], [self.q2.id, self.q1.id])
        self.assertEqual(entries[0].title_at_capture, self.q2.title)
        self.assertFalse(team.snapshot_pending)
        self.assertEqual(team.slug, "alpha")

    def test_duplicate_name_rejected_case_insensitively(self):
        make_team("Alpha")
        with self.assertRaises(ConflictError):
            make_team("alpha")

    def test_snapshot_written_only_once(self):
        team = make_team("Alpha")
        with self.assertRaises(InvariantViolationError):
            RequirementSnapshotRepo().capture(team.id, ChallengeCatalog().active_algorithmic())

    def test_empty_catalog_team_uses_live_catalog(self):
        Challenge.objects.update(is_active=False)
        team = make_team("Early Birds")
        self.assertFalse(RequirementSnapshotEntry.objects.filter(team=team).exists())
        Challenge.objects.filter(pk=self.q1.pk).update(is_active=True)
        result = EligibilityService().execute(team.id, generate=False)
        self.assertEqual(result.source, "legacy")
        self.assertEqual(result.required_count, 1)

    def test_catalog_failure_marks_snapshot_pending(self):
        with mock.patch.object(ChallengeCatalog, "active_algorithmic", side_effect=DatabaseError("catalog down")):
            with self.captureOnCommitCallbacks(execute=False) as callbacks:
                team = make_team("Alpha")
        self.assertTrue(team.snapshot_pending)
        self.assertEqual(len(callbacks), 1)
        self.assertFalse(RequirementSnapshotEntry.objects.filter(team=team).exists())
        # 待补录期间按当前目录判定
        self.assertEqual(EligibilityService().execute(team.id, generate=False).source, "legacy")

        self.assertTrue(SnapshotReconcileService().execute(team.id))
        team.refresh_from_db()
        self.assertFalse(team.snapshot_pending)
        self.assertEqual(RequirementSnapshotEntry.objects.filter(team=team).count(), 2)
        self.assertFalse(SnapshotReconcileService().execute(team.id))

    def test_reconcile_task_processes_pending_teams(self):
        with mock.patch.object(ChallengeCatalog, "active_algorithmic", side_effect=DatabaseError("catalog down")):
            make_team("Alpha")
            make_team("Bravo")
        make_team("Charlie")
        self.assertEqual(reconcile_pending_snapshots(), 2)
        self.assertFalse(Team.objects.filter(snapshot_pending=True).exists())


@override_settings(CACHES=LOCMEM_CACHE)
class CompletionRecordServiceTests(TestCase):
    """完成记录、积分与解锁码生成"""

    def setUp(self):
        cache.clear()
        self.q1 = make_challenge("two-sum", points=100, order=1)
        self.q2 = make_challenge("graph-walk", points=200, order=2)
        self.q3 = make_challenge("dp-grid", points=300, order=3)
        self.build = make_challenge("build-app", phase=Challenge.Phase.BUILDATHON, points=500)
        self.team = make_team("Alpha")

    def test_points_follow_completion_rules(self):
        submit(self.team, self.q1, is_correct=False)
        submit(self.team, self.q1, is_correct=True)
        outcome = submit(self.team, self.q1, is_correct=True)
        self.assertFalse(outcome.newly_awarded)
        self.assertEqual(outcome.team_points, 100)
        record = CompletionRecord.objects.get(team=self.team, challenge=self.q1)
        self.assertEqual(record.attempts, 3)
        self.assertTrue(record.points_awarded)
        self.team.refresh_from_db()
        self.assertEqual(self.team.points, 100)
        self.assertEqual(self.team.version, 3)

    def test_awarded_points_hint_used_for_credit(self):
        outcome = submit(self.team, self.q2, hint=150)
        self.assertEqual(outcome.team_points, 150)
        CompletionRevokeService().execute(CompletionRevokeSchema(team_id=self.team.id, challenge_id=self.q2.id))
        self.team.refresh_from_db()
        self.assertEqual(self.team.points, 0)

    def test_all_completed_generates_code_once(self):
        self.assertFalse(submit(self.team, self.q1).unlock_code_generated)
        self.assertFalse(submit(self.team, self.q2, is_correct=False).unlock_code_generated)
        outcome = submit(self.team, self.q3)
        self.assertTrue(outcome.eligibility.eligible)
        self.assertTrue(outcome.unlock_code_generated)
        self.team.refresh_from_db()
        code = self.team.unlock_code
        self.assertTrue(looks_like_unlock_code(code))
        self.assertIsNotNone(self.team.unlock_code_generated_at)
        self.assertEqual(self.team.points, 400)

        # 后续提交与重复判定都不会替换解锁码
        self.assertFalse(submit(self.team, self.q2).unlock_code_generated)
        for _ in range(3):
            self.assertFalse(UnlockCodeService().execute(self.team.id).generated)
        self.team.refresh_from_db()
        self.assertEqual(self.team.unlock_code, code)

    def test_buildathon_challenge_requires_unlock(self):
        with self.assertRaises(ChallengeLockedError) as ctx:
            submit(self.team, self.build)
        self.assertEqual(ctx.exception.extra["reason"], "buildathon_locked")
        for ch in (self.q1, self.q2, self.q3):
            submit(self.team, ch)
        self.team.refresh_from_db()
        self.assertTrue(redeem(self.team, self.team.unlock_code).accepted)
        self.assertEqual(submit(self.team, self.build).team_points, 1100)

    def test_prerequisites_enforced(self):
        advanced = make_challenge("advanced", order=4)
        advanced.prerequisites.set([self.q1])
        with self.assertRaises(ChallengeLockedError):
            submit(self.team, advanced)
        submit(self.team, self.q1, is_correct=False)
        self.assertEqual(submit(self.team, advanced).team_points, 100)

    def test_inactive_team_and_missing_challenge(self):
        Team.objects.filter(pk=self.team.pk).update(is_active=False)
        with self.assertRaises(TeamInactiveError):
            submit(self.team, self.q1)
        with self.assertRaises(NotFoundError):
            CompletionRecordService().execute(
                CompletionRecordSchema(team_id=self.team.id, challenge_id=99999, is_correct=True)
            )

    def test_revocation_keeps_completion_and_code(self):
        for ch in (self.q1, self.q2, self.q3):
            submit(self.team, ch)
        self.team.refresh_from_db()
        code = self.team.unlock_code
        record = CompletionRevokeService().execute(
            CompletionRevokeSchema(team_id=self.team.id, challenge_id=self.q3.id)
        )
        self.assertFalse(record.is_correct)
        self.team.refresh_from_db()
        self.assertEqual(self.team.points, 300)
        self.assertEqual(self.team.unlock_code, code)
        result = EligibilityService().execute(self.team.id, generate=False)
        self.assertTrue(result.eligible)
        self.assertEqual(result.correct_count, 2)

        # 重新答对时按新分值计分一次
        self.assertEqual(submit(self.team, self.q3).team_points, 600)
        TeamRepo().verify_points_invariant(self.team.id)

    def test_revoke_missing_record(self):
        with self.assertRaises(NotFoundError):
            CompletionRevokeService().execute(CompletionRevokeSchema(team_id=self.team.id, challenge_id=self.q1.id))


@override_settings(CACHES=LOCMEM_CACHE)
class CatalogChangeTests(TestCase):
    """题目目录变化后的快照语义与重新评估"""

    def setUp(self):
        cache.clear()
        self.q1 = make_challenge("two-sum", order=1)
        self.q2 = make_challenge("graph-walk", order=2)

    def test_new_challenge_does_not_extend_existing_snapshot(self):
        team = make_team("Alpha")
        make_challenge("late-addition", order=3)
        submit(team, self.q1)
        outcome = submit(team, self.q2)
        self.assertTrue(outcome.eligibility.eligible)
        self.assertEqual(outcome.eligibility.required_count, 2)

        newcomer = make_team("Bravo")
        result = EligibilityService().execute(newcomer.id, generate=False)
        self.assertEqual(result.required_count, 3)

    def test_deactivation_shrinks_requirement_and_sweep_generates_code(self):
        team = make_team("Alpha")
        submit(team, self.q1)
        Challenge.objects.filter(pk=self.q2.pk).update(is_active=False)
        report = ReevaluationService().execute(reason="challenge_deactivated")
        self.assertEqual(report.codes_generated, 1)
        team.refresh_from_db()
        code = team.unlock_code
        self.assertIsNotNone(code)

        # 重新上线后不再满足，但解锁码不会被收回
        Challenge.objects.filter(pk=self.q2.pk).update(is_active=True)
        report = ReevaluationService().execute(reason="challenge_activated")
        self.assertEqual(report.codes_generated, 0)
        team.refresh_from_db()
        self.assertEqual(team.unlock_code, code)
        self.assertFalse(EligibilityService().execute(team.id, generate=False).eligible)

    @override_settings(REEVALUATION_CHUNK_SIZE=1)
    def test_sweep_chunks_and_isolates_failures(self):
        teams = [make_team(name) for name in ("Alpha", "Bravo", "Charlie")]
        for team in teams:
            submit(team, self.q1)
        Challenge.objects.filter(pk=self.q2.pk).update(is_active=False)
        broken = teams[1]
        real_perform = UnlockCodeService.perform

        def flaky(service, team_id):
            if team_id == broken.id:
                raise RuntimeError("boom")
            return real_perform(service, team_id)

        with mock.patch.object(UnlockCodeService, "perform", new=flaky):
            report = ReevaluationService().execute(reason="test")
        self.assertEqual(report.to_dict(), {"teams_checked": 3, "codes_generated": 2, "failures": 1})
        self.assertEqual(Team.objects.filter(unlock_code__isnull=False).count(), 2)

    def test_tasks_return_results(self):
        team = make_team("Alpha")
        self.assertEqual(reevaluate_all_teams(reason="manual")["teams_checked"], 1)
        submit(team, self.q1)
        Challenge.objects.filter(pk=self.q2.pk).update(is_active=False)
        self.assertTrue(reevaluate_team(team.id))
        self.assertFalse(reevaluate_team(team.id))

    def test_trigger_dispatches_after_commit(self):
        with mock.patch.object(reevaluate_all_teams, "delay") as delay:
            with self.captureOnCommitCallbacks(execute=True):
                CatalogChangeTrigger.fire("challenge_created:1")
                delay.assert_not_called()
        delay.assert_called_once_with(reason="challenge_created:1")

    def test_trigger_runs_inline_when_broker_unavailable(self):
        team = make_team("Alpha")
        submit(team, self.q1)
        Challenge.objects.filter(pk=self.q2.pk).update(is_active=False)
        with mock.patch.object(reevaluate_all_teams, "delay", side_effect=OSError("broker down")):
            with self.captureOnCommitCallbacks(execute=True):
                CatalogChangeTrigger.fire("challenge_deactivated")
        team.refresh_from_db()
        self.assertIsNotNone(team.unlock_code)


@override_settings(CACHES=LOCMEM_CACHE)
class ConcurrentWriteTests(TestCase):
    """
    乐观并发：通过注入过期读取模拟交错执行
    - 过期写入必然命中版本冲突，重新读取后按最新状态处理
    """

    def setUp(self):
        cache.clear()
        self.q1 = make_challenge("two-sum", points=100, order=1)
        self.q2 = make_challenge("graph-walk", points=100, order=2)
        self.team = make_team("Alpha")

    def test_duplicate_correct_submissions_credit_once(self):
        stale = TeamRepo().load_state(self.team.id)
        submit(self.team, self.q1)
        with stale_first(stale):
            outcome = submit(self.team, self.q1)
        self.assertFalse(outcome.newly_awarded)
        self.team.refresh_from_db()
        self.assertEqual(self.team.points, 100)
        self.assertEqual(CompletionRecord.objects.get(team=self.team, challenge=self.q1).attempts, 2)

    def test_interleaved_final_submissions_generate_single_code(self):
        submit(self.team, self.q1)
        stale = TeamRepo().load_state(self.team.id)
        first = submit(self.team, self.q2)
        self.assertTrue(first.unlock_code_generated)
        self.team.refresh_from_db()
        code = self.team.unlock_code
        with stale_first(stale):
            second = submit(self.team, self.q2)
        self.assertFalse(second.unlock_code_generated)
        self.team.refresh_from_db()
        self.assertEqual(self.team.unlock_code, code)
        self.assertEqual(self.team.points, 200)

    def test_racing_generators_keep_winner_code(self):
        submit(self.team, self.q1)
        Challenge.objects.filter(pk=self.q2.pk).update(is_active=False)
        stale = TeamRepo().load_state(self.team.id)
        winner = UnlockCodeService().execute(self.team.id)
        self.assertTrue(winner.generated)
        with stale_first(stale):
            loser = UnlockCodeService().execute(self.team.id)
        self.assertFalse(loser.generated)
        self.assertEqual(loser.unlock_code, winner.unlock_code)

    def test_concurrent_redeem_reports_already_unlocked(self):
        submit(self.team, self.q1)
        submit(self.team, self.q2)
        self.team.refresh_from_db()
        stale = TeamRepo().load_state(self.team.id)
        self.assertTrue(redeem(self.team, self.team.unlock_code).accepted)
        with stale_first(stale):
            outcome = redeem(self.team, self.team.unlock_code)
        self.assertTrue(outcome.unlocked)
        self.assertEqual(outcome.reason, UnlockOutcome.REASON_ALREADY_UNLOCKED)

    @override_settings(TEAM_WRITE_MAX_RETRIES=2)
    def test_exhausted_retries_raise_retryable_error(self):
        stale = TeamRepo().load_state(self.team.id)
        submit(self.team, self.q1)
        with mock.patch.object(TeamRepo, "load_state", return_value=stale):
            with self.assertRaises(TeamWriteConflictError) as ctx:
                submit(self.team, self.q2)
        self.assertTrue(ctx.exception.extra["retryable"])
        self.assertEqual(ctx.exception.http_status, 503)
        self.assertFalse(CompletionRecord.objects.filter(team=self.team, challenge=self.q2).exists())
        self.team.refresh_from_db()
        self.assertEqual(self.team.points, 100)


@override_settings(CACHES=LOCMEM_CACHE)
class BuildathonUnlockServiceTests(TestCase):
    def setUp(self):
        cache.clear()
        self.q1 = make_challenge("two-sum", order=1)
        self.q2 = make_challenge("graph-walk", order=2)
        self.team = make_team("Alpha")

    def test_requirements_not_met(self):
        submit(self.team, self.q1)
        outcome = redeem(self.team, "DUOTHAN-AAAAAAAA-0000-AA")
        self.assertFalse(outcome.unlocked)
        self.assertEqual(outcome.reason, UnlockOutcome.REASON_REQUIREMENTS_NOT_MET)
        self.assertEqual((outcome.completed_count, outcome.required_count), (1, 2))

    def test_code_mismatch_then_success_then_idempotent(self):
        submit(self.team, self.q1)
        submit(self.team, self.q2)
        self.team.refresh_from_db()
        code = self.team.unlock_code
        self.assertEqual(redeem(self.team, code + "X").reason, UnlockOutcome.REASON_CODE_MISMATCH)
        outcome = redeem(self.team, f"  {code} ")
        self.assertTrue(outcome.accepted)
        self.team.refresh_from_db()
        self.assertTrue(self.team.buildathon_unlocked)
        self.assertIsNotNone(self.team.buildathon_unlocked_at)
        again = redeem(self.team, "anything")
        self.assertEqual(again.reason, UnlockOutcome.REASON_ALREADY_UNLOCKED)

    def test_unlock_survives_reset_and_catalog_changes(self):
        submit(self.team, self.q1)
        submit(self.team, self.q2)
        self.team.refresh_from_db()
        redeem(self.team, self.team.unlock_code)
        make_challenge("late-addition", order=3)
        UnlockCodeResetService().execute(UnlockCodeResetSchema(team_id=self.team.id))
        ReevaluationService().execute(reason="challenge_created")
        self.team.refresh_from_db()
        self.assertTrue(self.team.buildathon_unlocked)

    def test_inactive_team_rejected(self):
        submit(self.team, self.q1)
        submit(self.team, self.q2)
        Team.objects.filter(pk=self.team.pk).update(is_active=False)
        with self.assertRaises(TeamInactiveError):
            redeem(self.team, "whatever")


@override_settings(CACHES=LOCMEM_CACHE)
class AdminOperationTests(TestCase):
    def setUp(self):
        cache.clear()
        self.q1 = make_challenge("two-sum", order=1)

    def test_reset_regenerates_code_for_eligible_team(self):
        done = make_team("Alpha")
        idle = make_team("Bravo")
        submit(done, self.q1)
        done.refresh_from_db()
        old_code = done.unlock_code
        results = UnlockCodeResetService().execute(UnlockCodeResetSchema(all_teams=True))
        self.assertEqual(
            results,
            [{"team_id": done.id, "regenerated": True}, {"team_id": idle.id, "regenerated": False}],
        )
        done.refresh_from_db()
        self.assertNotEqual(done.unlock_code, old_code)
        self.assertFalse(redeem(done, old_code).accepted)
        self.assertTrue(redeem(done, done.unlock_code).accepted)

    def test_health_percent(self):
        self.assertEqual(SystemHealthService().execute()["health_percent"], 0.0)
        done = make_team("Alpha")
        make_team("Bravo")
        make_team("Charlie")
        submit(done, self.q1)
        health = SystemHealthService().execute()
        self.assertEqual(health["total_teams"], 3)
        self.assertEqual(health["teams_with_code"], 1)
        self.assertEqual(health["teams_without_code"], 2)
        self.assertEqual(health["health_percent"], 33.3)
        self.assertEqual(health["algorithmic_challenges"], 1)

    def test_leaderboard_breaks_ties_by_earlier_solve(self):
        q2 = make_challenge("graph-walk", order=2)
        alpha = make_team("Alpha")
        bravo = make_team("Bravo")
        charlie = make_team("Charlie")
        submit(alpha, self.q1)
        submit(bravo, self.q1)
        submit(charlie, self.q1)
        submit(charlie, q2)
        base = timezone.now() - timedelta(hours=1)
        CompletionRecord.objects.filter(team=alpha).update(solved_at=base + timedelta(minutes=10))
        CompletionRecord.objects.filter(team=bravo).update(solved_at=base)
        board = LeaderboardService().execute()
        self.assertEqual([row["team_id"] for row in board], [charlie.id, bravo.id, alpha.id])
        self.assertEqual(board[0]["solved"], 2)
        self.assertEqual(board[0]["rank"], 1)
        self.assertEqual(len(LeaderboardService().execute(limit=1)), 1)


@override_settings(CACHES=LOCMEM_CACHE)
class TeamMembershipServiceTests(AuthenticatedAPIMixin, TestCase):
    """成员关系：创建即队长、邀请码加入、人数上限、退出与解散"""

    def setUp(self):
        cache.clear()
        make_challenge("two-sum", order=1)
        self.alice = self.create_user("alice")
        self.bob = self.create_user("bob")
        self.carol = self.create_user("carol")

    def _create(self, user, name="Alpha", **kwargs) -> Team:
        return TeamCreateService().execute(TeamCreateSchema(name=name, **kwargs), user=user)

    def _join(self, user, team: Team) -> TeamMember:
        return TeamJoinService().execute(user, TeamJoinSchema(invite_code=team.invite_code))

    def test_creator_becomes_leader_and_cannot_create_twice(self):
        team = self._create(self.alice)
        member = TeamMemberRepo().membership_of(self.alice)
        self.assertEqual(member.team_id, team.id)
        self.assertEqual(member.role, TeamMember.Role.LEADER)
        with self.assertRaises(ConflictError):
            self._create(self.alice, name="Bravo")
        self.assertFalse(Team.objects.filter(name="Bravo").exists())

    def test_staff_creator_is_not_a_member(self):
        judge = self.create_user("judge", is_staff=True)
        team = self._create(judge)
        self.assertFalse(TeamMember.objects.filter(team=team).exists())
        with self.assertRaises(ValidationError):
            self._join(judge, team)

    def test_join_by_invite_code_respects_capacity(self):
        team = self._create(self.alice, max_members=2)
        member = self._join(self.bob, team)
        self.assertEqual(member.role, TeamMember.Role.MEMBER)
        with self.assertRaises(ConflictError):
            self._join(self.carol, team)
        with self.assertRaises(ConflictError):
            self._join(self.bob, team)
        with self.assertRaises(NotFoundError):
            TeamJoinService().execute(self.carol, TeamJoinSchema(invite_code="not-a-code"))
        self.assertEqual(TeamMemberRepo().member_count(team.id), 2)

    def test_leader_leaving_hands_over_then_last_member_dissolves(self):
        team = self._create(self.alice)
        self._join(self.bob, team)
        version = Team.objects.get(pk=team.pk).version

        result = TeamLeaveService().execute(self.alice)
        self.assertEqual(result, {"team_id": team.id, "dissolved": False, "new_leader_id": self.bob.id})
        self.assertEqual(TeamMemberRepo().membership_of(self.bob).role, TeamMember.Role.LEADER)
        self.assertEqual(Team.objects.get(pk=team.pk).version, version)

        result = TeamLeaveService().execute(self.bob)
        self.assertTrue(result["dissolved"])
        team.refresh_from_db()
        self.assertFalse(team.is_active)
        self.assertEqual(team.version, version + 1)
        with self.assertRaises(NotFoundError):
            self._join(self.carol, team)
        # 退出后可以重新创建队伍
        self._create(self.alice, name="Bravo")

    def test_leave_without_team(self):
        with self.assertRaises(NotFoundError):
            TeamLeaveService().execute(self.carol)

    def test_member_guard(self):
        team = self._create(self.alice)
        ensure_team_member(team.id, self.alice)
        ensure_team_member(team.id, self.create_user("judge", is_staff=True))
        with self.assertRaises(PermissionDeniedError):
            ensure_team_member(team.id, self.bob)

    def test_max_members_bounds(self):
        with self.assertRaises(ValidationError):
            TeamCreateSchema(name="Alpha", max_members=0)
        with self.assertRaises(ValidationError):
            TeamCreateSchema(name="Alpha", max_members=11)
        self.assertEqual(TeamCreateSchema.from_dict({"name": "Alpha", "maxMembers": "3"}).max_members, 3)


@override_settings(CACHES=LOCMEM_CACHE)
class ScriptedEventSequenceTests(TestCase):
    """
    固定随机种子的事件序列：错误/正确/重复提交、管理员纠正、题目上下线 + 扫描、强制重置
    - 每一步之后从数据库复核积分不变量
    - 解锁码一旦生成，只有强制重置才会改变
    """

    SEED = 20241018
    ACTIONS = ("wrong", "correct", "repeat", "revoke", "toggle", "reset")

    def setUp(self):
        cache.clear()
        self.challenges = [make_challenge(f"task-{i}", points=50 * (i + 1), order=i) for i in range(4)]
        self.team = make_team("Alpha")
        self.repo = TeamRepo()

    def _active(self) -> list[Challenge]:
        return list(Challenge.objects.filter(is_active=True, phase=Challenge.Phase.ALGORITHMIC).order_by("id"))

    def _step(self, rng: random.Random, action: str) -> None:
        active = self._active()
        completed = list(
            CompletionRecord.objects.filter(team=self.team, challenge__is_active=True).order_by("challenge_id")
        )
        if action in ("wrong", "correct") and active:
            submit(self.team, rng.choice(active), is_correct=action == "correct")
        elif action == "repeat" and completed:
            submit(self.team, rng.choice(completed).challenge, is_correct=rng.random() < 0.5)
        elif action == "revoke":
            solved = [r for r in completed if r.is_correct]
            if solved:
                CompletionRevokeService().execute(
                    CompletionRevokeSchema(team_id=self.team.id, challenge_id=rng.choice(solved).challenge_id)
                )
        elif action == "toggle":
            challenge = rng.choice(self.challenges)
            challenge.refresh_from_db()
            with mock.patch.object(CatalogChangeTrigger, "fire"):
                ChallengeActivationService().execute(
                    ChallengeActivationSchema(challenge_id=challenge.id, is_active=not challenge.is_active)
                )
            ReevaluationService().execute(reason="toggle")
        elif action == "reset":
            UnlockCodeResetService().execute(UnlockCodeResetSchema(team_id=self.team.id))

    def test_invariants_hold_across_seeded_sequence(self):
        rng = random.Random(self.SEED)
        script = list(self.ACTIONS) * 8
        rng.shuffle(script)
        last_code = None
        for idx, action in enumerate(script):
            self._step(rng, action)
            self.repo.verify_points_invariant(self.team.id)
            current = Team.objects.values_list("unlock_code", flat=True).get(pk=self.team.pk)
            if action == "reset" or last_code is None:
                last_code = current
            else:
                self.assertEqual(current, last_code, f"第 {idx} 步（{action}）后解锁码发生变化")
        self.assertEqual(self.repo.get_or_404(self.team.id).points, self.repo.ledger_points(self.team.id))


@override_settings(CACHES=LOCMEM_CACHE)
class TeamAPITests(AuthenticatedAPIMixin, APITestCase):
    """API 冒烟：统一响应结构、权限与兑换流程"""

    def setUp(self):
        cache.clear()
        self.q1 = make_challenge("two-sum", order=1)
        self.q2 = make_challenge("graph-walk", order=2)
        self.player = self.auth_client(self.create_user("player"))
        self.judge = self.staff_client()

    def _create_team(self, name="Alpha") -> int:
        resp = self.player.post("/api/teams/", {"name": name, "description": "hello"}, format="json")
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data["code"], 0)
        return resp.data["data"]["team"]["id"]

    def _complete(self, team_id, challenge, is_correct=True):
        return self.judge.post(
            f"/api/teams/{team_id}/completions/",
            {"challengeId": challenge.id, "isCorrect": is_correct},
            format="json",
        )

    def test_anonymous_cannot_create_team(self):
        client = self.client_class()
        resp = client.post("/api/teams/", {"name": "Alpha"}, format="json")
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.data["code"], 40100)

    def test_player_cannot_record_completion(self):
        team_id = self._create_team()
        resp = self.player.post(
            f"/api/teams/{team_id}/completions/",
            {"challenge_id": self.q1.id, "is_correct": True},
            format="json",
        )
        self.assertEqual(resp.status_code, 403)

    def test_full_unlock_flow(self):
        team_id = self._create_team()
        resp = self._complete(team_id, self.q1)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["data"]["team_points"], 100)

        detail = self.player.get(f"/api/teams/{team_id}/")
        self.assertIsNone(detail.data["data"]["progress"]["unlock_code"])
        self.assertFalse(detail.data["data"]["team"]["has_unlock_code"])

        rejected = self.player.post(f"/api/teams/{team_id}/buildathon/unlock/", {"code": "nope"}, format="json")
        self.assertEqual(rejected.status_code, 400)
        self.assertEqual(rejected.data["code"], UnlockOutcome.REJECTED_CODE)
        self.assertEqual(rejected.data["data"]["reason"], "requirements_not_met")

        resp = self._complete(team_id, self.q2, is_correct=False)
        self.assertTrue(resp.data["data"]["unlock_code_generated"])
        detail = self.player.get(f"/api/teams/{team_id}/")
        code = detail.data["data"]["progress"]["unlock_code"]
        self.assertEqual(code, Team.objects.get(pk=team_id).unlock_code)

        eligibility = self.player.get(f"/api/teams/{team_id}/eligibility/")
        self.assertTrue(eligibility.data["data"]["eligibility"]["eligible"])

        mismatch = self.player.post(f"/api/teams/{team_id}/buildathon/unlock/", {"code": "DUOTHAN-X"}, format="json")
        self.assertEqual(mismatch.data["data"]["reason"], "code_mismatch")
        ok = self.player.post(f"/api/teams/{team_id}/buildathon/unlock/", {"unlockCode": code}, format="json")
        self.assertEqual(ok.status_code, 200)
        self.assertTrue(ok.data["data"]["unlocked"])
        again = self.player.post(f"/api/teams/{team_id}/buildathon/unlock/", {"code": code}, format="json")
        self.assertEqual(again.status_code, 200)
        self.assertEqual(again.data["data"]["reason"], "already_unlocked")

    def test_unknown_team_returns_404(self):
        resp = self.player.get("/api/teams/99999/")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.data["code"], 40400)

    def test_leaderboard_and_admin_endpoints(self):
        team_id = self._create_team()
        self._complete(team_id, self.q1)
        board = self.client_class().get("/api/teams/leaderboard/")
        self.assertEqual(board.status_code, 200)
        self.assertEqual(board.data["data"]["items"][0]["team_id"], team_id)
        self.assertEqual(self.player.get("/api/teams/admin/health/").status_code, 403)
        health = self.judge.get("/api/teams/admin/health/")
        self.assertEqual(health.data["data"]["health"]["total_teams"], 1)
        resp = self.judge.post("/api/teams/admin/reevaluate/")
        self.assertEqual(resp.status_code, 202)
        self.assertTrue(resp.data["data"]["scheduled"])

    def test_admin_revoke_and_reset(self):
        team_id = self._create_team()
        self._complete(team_id, self.q1)
        self._complete(team_id, self.q2)
        old_code = Team.objects.get(pk=team_id).unlock_code
        revoke = self.judge.post(f"/api/teams/{team_id}/admin/completions/{self.q1.id}/revoke/")
        self.assertEqual(revoke.status_code, 200)
        self.assertFalse(revoke.data["data"]["completion"]["is_correct"])
        self.assertEqual(Team.objects.get(pk=team_id).points, 100)
        reset = self.judge.post(f"/api/teams/{team_id}/admin/reset-unlock-code/")
        self.assertEqual(reset.data["data"]["items"][0]["regenerated"], True)
        self.assertNotEqual(Team.objects.get(pk=team_id).unlock_code, old_code)

    def test_outsider_cannot_read_or_redeem_code(self):
        team_id = self._create_team()
        self._complete(team_id, self.q1, is_correct=False)
        self._complete(team_id, self.q2, is_correct=False)
        code = Team.objects.get(pk=team_id).unlock_code
        self.assertIsNotNone(code)

        outsider = self.auth_client(self.create_user("outsider"))
        detail = outsider.get(f"/api/teams/{team_id}/")
        self.assertEqual(detail.status_code, 200)
        self.assertIsNone(detail.data["data"]["progress"]["unlock_code"])
        self.assertNotIn("invite_code", detail.data["data"])
        self.assertNotIn("members", detail.data["data"])

        resp = outsider.post(f"/api/teams/{team_id}/buildathon/unlock/", {"code": code}, format="json")
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.data["code"], 40300)
        self.assertFalse(Team.objects.get(pk=team_id).buildathon_unlocked)

        # 本队成员与管理员可见
        self.assertEqual(self.player.get(f"/api/teams/{team_id}/").data["data"]["progress"]["unlock_code"], code)
        self.assertEqual(self.judge.get(f"/api/teams/{team_id}/").data["data"]["progress"]["unlock_code"], code)
        ok = self.judge.post(f"/api/teams/{team_id}/buildathon/unlock/", {"code": code}, format="json")
        self.assertEqual(ok.status_code, 200)
        self.assertTrue(ok.data["data"]["unlocked"])

    def test_redeem_unknown_team_returns_404(self):
        resp = self.player.post("/api/teams/99999/buildathon/unlock/", {"code": "x"}, format="json")
        self.assertEqual(resp.status_code, 404)

    def test_join_leave_and_my_team(self):
        resp = self.player.post("/api/teams/", {"name": "Alpha", "maxMembers": 2}, format="json")
        self.assertEqual(resp.status_code, 201)
        team_id = resp.data["data"]["team"]["id"]
        invite_code = resp.data["data"]["invite_code"]
        self.assertEqual(resp.data["data"]["team"]["max_members"], 2)

        mine = self.player.get("/api/teams/mine/")
        self.assertEqual(mine.status_code, 200)
        self.assertEqual(mine.data["data"]["role"], "leader")
        self.assertEqual(mine.data["data"]["invite_code"], invite_code)
        self.assertEqual([m["username"] for m in mine.data["data"]["members"]], ["player"])

        friend = self.auth_client(self.create_user("friend"))
        self.assertEqual(friend.get("/api/teams/mine/").status_code, 404)
        self.assertEqual(friend.post("/api/teams/join/", {"inviteCode": "wrong"}, format="json").status_code, 404)
        joined = friend.post("/api/teams/join/", {"inviteCode": invite_code}, format="json")
        self.assertEqual(joined.status_code, 200)
        self.assertEqual(joined.data["data"]["member"]["role"], "member")
        self.assertEqual(friend.get(f"/api/teams/{team_id}/").data["data"]["invite_code"], invite_code)

        third = self.auth_client(self.create_user("third"))
        full = third.post("/api/teams/join/", {"inviteCode": invite_code}, format="json")
        self.assertEqual(full.status_code, 409)

        left = friend.post("/api/teams/leave/")
        self.assertEqual(left.status_code, 200)
        self.assertFalse(left.data["data"]["dissolved"])
        self.assertEqual(friend.get("/api/teams/mine/").status_code, 404)
        self.assertEqual(friend.post("/api/teams/leave/").status_code, 404)
