from __future__ import annotations

from typing import Any

from .models import Challenge


def serialize_challenge(challenge: Challenge, *, status: str | None = None) -> dict[str, Any]:
    """
    题目序列化：
    - 返回目录展示所需字段与前置题目 ID
    - status 可选：队伍视角的 available / locked / completed
    """
    data = {
        "id": challenge.id,
        "slug": challenge.slug,
        "title": challenge.title,
        "description": challenge.description,
        "phase": challenge.phase,
        "difficulty": challenge.difficulty,
        "points": challenge.points,
        "is_active": challenge.is_active,
        "order": challenge.order,
        "prerequisites": sorted(c.id for c in challenge.prerequisites.all()),
    }
    if status is not None:
        data["status"] = status
    return data
