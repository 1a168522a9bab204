from __future__ import annotations

from typing import Any

from .models import CompletionRecord, Team, TeamMember


def serialize_team(team: Team) -> dict[str, Any]:
    """队伍基础信息（不含解锁码与邀请码）"""
    return {
        "id": team.id,
        "name": team.name,
        "slug": team.slug,
        "description": team.description,
        "points": team.points,
        "max_members": team.max_members,
        "is_active": team.is_active,
        "buildathon_unlocked": team.buildathon_unlocked,
        "buildathon_unlocked_at": team.buildathon_unlocked_at,
        "has_unlock_code": bool(team.unlock_code),
        "snapshot_pending": team.snapshot_pending,
        "created_at": team.created_at,
    }


def serialize_member(member: TeamMember) -> dict[str, Any]:
    return {
        "user_id": member.user_id,
        "username": member.user.get_username(),
        "role": member.role,
        "joined_at": member.joined_at,
    }


def serialize_completion(record: CompletionRecord) -> dict[str, Any]:
    return {
        "challenge_id": record.challenge_id,
        "is_correct": record.is_correct,
        "points_awarded": record.points_awarded,
        "awarded_points": record.awarded_points,
        "attempts": record.attempts,
        "completed_at": record.completed_at,
        "solved_at": record.solved_at,
    }
