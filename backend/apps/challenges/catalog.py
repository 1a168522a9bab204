# apps/challenges/catalog.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .models import Challenge
from .repo import ChallengeRepo


@dataclass(frozen=True)
class CatalogEntry:
    """
    题目目录条目（只读视图）：
    - 队伍模块只依赖这四个字段，不直接持有 Challenge 模型
    """

    id: int
    title: str
    points: int
    created_at: datetime


class ChallengeCatalog:
    """
    题目目录只读接口：
    - list_active(phase)：按目录顺序返回当前开放的题目
    - 每次调用即时读取数据库，返回调用时刻的快照
    """

    def __init__(self, repo: ChallengeRepo | None = None):
        self.repo = repo or ChallengeRepo()

    def list_active(self, phase: str) -> list[CatalogEntry]:
        return [
            CatalogEntry(id=ch.id, title=ch.title, points=ch.points, created_at=ch.created_at)
            for ch in self.repo.list_active(phase)
        ]

    def active_algorithmic(self) -> list[CatalogEntry]:
        return self.list_active(Challenge.Phase.ALGORITHMIC)
