from __future__ import annotations

from celery import shared_task

from apps.common.infra.logger import get_logger, logger_extra

from .repo import TeamRepo
from .services import ReevaluationService, SnapshotReconcileService, UnlockCodeService

logger = get_logger(__name__)


@shared_task(name="apps.teams.tasks.reevaluate_all_teams")
def reevaluate_all_teams(reason: str = "") -> dict:
    """
    Celery 任务：题目目录变化后全量重新评估
    - 返回 SweepReport 字典，便于在结果后端中查看
    """
    return ReevaluationService().execute(reason=reason).to_dict()


@shared_task(name="apps.teams.tasks.reevaluate_team")
def reevaluate_team(team_id: int) -> bool:
    """单个队伍重新评估，返回是否新生成了解锁码"""
    return UnlockCodeService().execute(team_id).generated


@shared_task(name="apps.teams.tasks.reconcile_pending_snapshots")
def reconcile_pending_snapshots() -> int:
    """
    Celery 定时任务：补录创建时未能捕获的需求快照
    - 目录仍不可读时保留待补录标记，等待下一轮调度
    """
    reconciled = 0
    for team_id in TeamRepo().pending_snapshot_ids():
        try:
            if SnapshotReconcileService().execute(team_id):
                reconciled += 1
        except Exception as exc:
            logger.error("需求快照补录失败", exc_info=exc, extra=logger_extra({"team_id": team_id}))
    if reconciled:
        logger.info("需求快照补录任务完成", extra=logger_extra({"reconciled": reconciled}))
    return reconciled
