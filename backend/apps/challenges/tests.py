from __future__ import annotations

from unittest import mock

from django.core.cache import cache
from django.test import TestCase, override_settings
from rest_framework.test import APITestCase

from apps.common.exceptions import (
    ChallengeLockedError,
    ChallengeNotAvailableError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from apps.common.tests_utils import AuthenticatedAPIMixin
from apps.teams.tasks import reevaluate_all_teams
from apps.teams.triggers import CatalogChangeTrigger

from .access import ChallengeAccessPolicy
from .catalog import ChallengeCatalog
from .models import Challenge
from .repo import ChallengeRepo
from .schemas import ChallengeActivationSchema, ChallengeCreateSchema
from .services import ChallengeActivationService, ChallengeCreateService, affects_requirements


# 测试用例：覆盖题目目录、访问规则、创建/上下线触发重新评估与 API 冒烟


@override_settings(
    CACHES={
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "challenges-service-tests",
        }
    }
)
class ChallengeServiceTests(TestCase):
    """
    服务层单测：
    - 验证创建题目成功路径与前置题目写入
    - 验证只有“开放中的算法题”集合变化才触发重新评估
    """

    def setUp(self) -> None:
        cache.clear()

    def _create(self, slug: str, **kwargs) -> Challenge:
        return ChallengeCreateService().execute(ChallengeCreateSchema(title=slug.title(), slug=slug, **kwargs))

    def test_challenge_create_and_fetch(self):
        """创建题目后可通过仓储获取，前置题目一并写入"""
        with mock.patch.object(CatalogChangeTrigger, "fire") as fire:
            base = self._create("warmup", points=50)
            follow = self._create("follow-up", prerequisites=[base.id])
        fetched = ChallengeRepo().get_or_404(follow.id)
        self.assertEqual(ChallengeRepo().prerequisite_ids(fetched), {base.id})
        self.assertEqual(base.points, 50)
        fire.assert_has_calls([mock.call(f"challenge_created:{base.id}"), mock.call(f"challenge_created:{follow.id}")])

    def test_buildathon_or_inactive_creation_does_not_trigger(self):
        with mock.patch.object(CatalogChangeTrigger, "fire") as fire:
            self._create("build-app", phase=Challenge.Phase.BUILDATHON)
            self._create("draft", is_active=False)
        fire.assert_not_called()

    def test_duplicate_slug_and_unknown_prerequisite(self):
        self._create("warmup")
        with self.assertRaises(ConflictError):
            self._create("warmup")
        with self.assertRaises(NotFoundError):
            self._create("orphan", prerequisites=[99999])
        self.assertFalse(Challenge.objects.filter(slug="orphan").exists())

    def test_schema_validation(self):
        with self.assertRaises(ValidationError):
            ChallengeCreateSchema(title="", slug="empty")
        with self.assertRaises(ValidationError):
            ChallengeCreateSchema(title="Bad", slug="bad slug")
        with self.assertRaises(ValidationError):
            ChallengeCreateSchema(title="Bad", slug="bad", phase="finals")
        with self.assertRaises(ValidationError):
            ChallengeCreateSchema(title="Bad", slug="bad", points=-1)

    def test_activation_toggles_and_triggers(self):
        challenge = Challenge.objects.create(title="Two Sum", slug="two-sum")
        with mock.patch.object(CatalogChangeTrigger, "fire") as fire:
            ChallengeActivationService().execute(ChallengeActivationSchema(challenge_id=challenge.id, is_active=False))
            # 状态未变化时为空操作
            ChallengeActivationService().execute(ChallengeActivationSchema(challenge_id=challenge.id, is_active=False))
        fire.assert_called_once_with(f"challenge_deactivated:{challenge.id}")
        challenge.refresh_from_db()
        self.assertFalse(challenge.is_active)

    def test_activation_dispatches_reevaluation_after_commit(self):
        challenge = Challenge.objects.create(title="Two Sum", slug="two-sum")
        with mock.patch.object(reevaluate_all_teams, "delay") as delay:
            with self.captureOnCommitCallbacks(execute=True):
                ChallengeActivationService().execute(
                    ChallengeActivationSchema(challenge_id=challenge.id, is_active=False)
                )
        delay.assert_called_once_with(reason=f"challenge_deactivated:{challenge.id}")

    def test_affects_requirements(self):
        algo, build = Challenge.Phase.ALGORITHMIC, Challenge.Phase.BUILDATHON
        self.assertTrue(affects_requirements(before_phase=None, before_active=False, after_phase=algo, after_active=True))
        self.assertTrue(affects_requirements(before_phase=algo, before_active=True, after_phase=build, after_active=True))
        self.assertFalse(affects_requirements(before_phase=build, before_active=True, after_phase=build, after_active=False))
        self.assertFalse(affects_requirements(before_phase=algo, before_active=True, after_phase=algo, after_active=True))


class ChallengeCatalogTests(TestCase):
    """目录读取与访问规则"""

    def setUp(self) -> None:
        self.first = Challenge.objects.create(title="First", slug="first", order=2)
        self.second = Challenge.objects.create(title="Second", slug="second", order=1)
        Challenge.objects.create(title="Hidden", slug="hidden", is_active=False)
        self.build = Challenge.objects.create(title="Build", slug="build", phase=Challenge.Phase.BUILDATHON)

    def test_active_algorithmic_in_catalog_order(self):
        entries = ChallengeCatalog().active_algorithmic()
        self.assertEqual([e.id for e in entries], [self.second.id, self.first.id])
        self.assertEqual(entries[0].title, "Second")
        self.assertEqual(len(ChallengeCatalog().list_active(Challenge.Phase.BUILDATHON)), 1)

    def test_access_policy(self):
        policy = ChallengeAccessPolicy()
        self.first.prerequisites.set([self.second])
        self.assertEqual(
            policy.locked_reason(self.build, buildathon_unlocked=False, completed_ids=[]),
            ChallengeAccessPolicy.LOCKED_BUILDATHON,
        )
        self.assertIsNone(policy.locked_reason(self.build, buildathon_unlocked=True, completed_ids=[]))
        self.assertEqual(
            policy.locked_reason(self.first, buildathon_unlocked=False, completed_ids=[]),
            ChallengeAccessPolicy.LOCKED_PREREQUISITES,
        )
        policy.ensure_accessible(self.first, buildathon_unlocked=False, completed_ids=[self.second.id])
        with self.assertRaises(ChallengeLockedError):
            policy.ensure_accessible(self.build, buildathon_unlocked=False, completed_ids=[])
        hidden = Challenge.objects.get(slug="hidden")
        with self.assertRaises(ChallengeNotAvailableError):
            policy.ensure_accessible(hidden, buildathon_unlocked=True, completed_ids=[])


@override_settings(
    CACHES={
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "challenges-api-tests",
        }
    }
)
class ChallengeAPITests(AuthenticatedAPIMixin, APITestCase):
    """API 冒烟：目录公开读取，创建与上下线仅管理员"""

    def setUp(self) -> None:
        cache.clear()
        Challenge.objects.create(title="Two Sum", slug="two-sum")
        Challenge.objects.create(title="Build", slug="build", phase=Challenge.Phase.BUILDATHON)

    def test_list_filters_by_phase(self):
        resp = self.client.get("/api/challenges/", {"phase": "algorithmic"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([item["slug"] for item in resp.data["data"]["items"]], ["two-sum"])
        bad = self.client.get("/api/challenges/", {"phase": "finals"})
        self.assertEqual(bad.status_code, 400)
        self.assertEqual(bad.data["code"], 40002)

    def test_admin_create_and_deactivate(self):
        player = self.auth_client(self.create_user("player"))
        payload = {"title": "Graph Walk", "slug": "graph-walk", "points": 200}
        self.assertEqual(player.post("/api/challenges/admin/", payload, format="json").status_code, 403)

        judge = self.staff_client()
        resp = judge.post("/api/challenges/admin/", payload, format="json")
        self.assertEqual(resp.status_code, 201)
        challenge_id = resp.data["data"]["challenge"]["id"]
        resp = judge.post(f"/api/challenges/admin/{challenge_id}/activation/", {"isActive": False}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(resp.data["data"]["challenge"]["is_active"])
        listed = self.client.get("/api/challenges/")
        self.assertNotIn("graph-walk", [item["slug"] for item in listed.data["data"]["items"]])
