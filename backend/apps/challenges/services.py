# apps/challenges/services.py

from __future__ import annotations

from django.db import IntegrityError

from apps.common.base.base_service import BaseService
from apps.common.exceptions import ConflictError
from apps.common.infra.logger import get_logger, logger_extra
from apps.teams.triggers import CatalogChangeTrigger

from .models import Challenge
from .repo import ChallengeRepo
from .schemas import ChallengeActivationSchema, ChallengeCreateSchema

logger = get_logger(__name__)


def affects_requirements(
        *,
        before_phase: str | None,
        before_active: bool,
        after_phase: str,
        after_active: bool,
) -> bool:
    """
    判断题目变更是否影响“开放中的算法题”集合：
    - 新建开放的算法题、算法题上下线、阶段切换都会改变解锁要求
    """
    was_required = before_phase == Challenge.Phase.ALGORITHMIC and before_active
    is_required = after_phase == Challenge.Phase.ALGORITHMIC and after_active
    return was_required != is_required


class ChallengeCreateService(BaseService[Challenge]):
    """
    创建题目服务：
    - 校验并创建题目，同时写入前置题目
    - 新建开放中的算法题会触发全量重新评估
    """

    def __init__(self, repo: ChallengeRepo | None = None):
        self.repo = repo or ChallengeRepo()

    def validate(self, schema: ChallengeCreateSchema) -> None:
        if self.repo.exists(slug=schema.slug):
            raise ConflictError(message="题目标识已存在")

    def perform(self, schema: ChallengeCreateSchema) -> Challenge:
        payload = schema.to_dict(exclude=["prerequisites"])
        try:
            challenge = self.repo.create(payload)
        except IntegrityError:
            raise ConflictError(message="题目标识已存在")
        if schema.prerequisites:
            self.repo.set_prerequisites(challenge, schema.prerequisites)
        logger.info(
            "题目已创建",
            extra=logger_extra(
                {"challenge_id": challenge.id, "phase": challenge.phase, "is_active": challenge.is_active}
            ),
        )
        if affects_requirements(
                before_phase=None,
                before_active=False,
                after_phase=challenge.phase,
                after_active=challenge.is_active,
        ):
            CatalogChangeTrigger.fire(f"challenge_created:{challenge.id}")
        return challenge


class ChallengeActivationService(BaseService[Challenge]):
    """
    题目上下线服务：
    - 下线即软删除，完成记录保留
    - 算法题状态变化时触发全量重新评估；状态未变化时为空操作
    """

    def __init__(self, repo: ChallengeRepo | None = None):
        self.repo = repo or ChallengeRepo()

    def perform(self, schema: ChallengeActivationSchema) -> Challenge:
        challenge = self.repo.get_or_404(schema.challenge_id)
        if challenge.is_active == schema.is_active:
            return challenge
        before_active = challenge.is_active
        challenge = self.repo.update(challenge, {"is_active": schema.is_active})
        logger.info(
            "题目上下线状态已变更",
            extra=logger_extra({"challenge_id": challenge.id, "is_active": challenge.is_active}),
        )
        if affects_requirements(
                before_phase=challenge.phase,
                before_active=before_active,
                after_phase=challenge.phase,
                after_active=challenge.is_active,
        ):
            action = "activated" if challenge.is_active else "deactivated"
            CatalogChangeTrigger.fire(f"challenge_{action}:{challenge.id}")
        return challenge
