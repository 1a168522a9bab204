# apps/teams/triggers.py

from __future__ import annotations

from django.db import transaction

from apps.common.infra.logger import get_logger, logger_extra

logger = get_logger(__name__)


class CatalogChangeTrigger:
    """
    题目目录变化触发器（即发即忘）：
    - 在外层事务提交后派发 Celery 全量重新评估
    - Broker 不可用时在当前进程内直接执行扫描
    """

    @staticmethod
    def fire(reason: str = "") -> None:
        transaction.on_commit(lambda: CatalogChangeTrigger.dispatch(reason))

    @staticmethod
    def dispatch(reason: str = "") -> None:
        from .tasks import reevaluate_all_teams

        try:
            reevaluate_all_teams.delay(reason=reason)
            logger.info("已派发重新评估任务", extra=logger_extra({"reason": reason}))
        except Exception as exc:
            logger.warning(
                "派发重新评估任务失败，改为同步执行",
                extra=logger_extra({"reason": reason, "error": str(exc)}),
            )
            from .services import ReevaluationService

            ReevaluationService().execute(reason=reason)


def dispatch_snapshot_reconcile(team_id: int) -> None:
    """快照待补录的队伍提交后派发补录任务；派发失败留给定时任务处理"""

    def _send():
        from .tasks import reconcile_pending_snapshots

        try:
            reconcile_pending_snapshots.delay()
        except Exception as exc:
            logger.warning(
                "派发快照补录任务失败，等待定时任务补录",
                extra=logger_extra({"team_id": team_id, "error": str(exc)}),
            )

    transaction.on_commit(_send)
