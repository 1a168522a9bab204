from __future__ import annotations

import secrets

from django.conf import settings
from django.db import models

# 模型文件：定义队伍聚合（积分、解锁码、Buildathon 状态）、成员关系、需求快照与完成记录，不承载业务流程


def default_invite_code() -> str:
    """默认邀请码：12 位随机十六进制"""
    return secrets.token_hex(6)


class Team(models.Model):
    """
    队伍模型（聚合根）：
    - points 只能通过完成记录的计分规则变化
    - unlock_code 至多写入一次，常规流程从不清空（仅管理员强制重置）
    - buildathon_unlocked 单向：locked -> unlocked
    - version 为乐观并发版本号，聚合每次写入都 +1
    """

    # 队伍名称
    name = models.CharField("队伍名称", max_length=50, unique=True)
    # 队伍标识，便于展示/路由
    slug = models.SlugField("队伍标识", max_length=80, unique=True)
    # 队伍简介
    description = models.CharField("简介", max_length=200, blank=True)
    # 邀请码：成员凭此加入队伍，仅对成员可见
    invite_code = models.CharField("邀请码", max_length=16, default=default_invite_code, unique=True)
    # 人数上限
    max_members = models.PositiveSmallIntegerField("人数上限", default=4)
    # 队伍是否有效
    is_active = models.BooleanField("有效", default=True)
    # 当前积分
    points = models.PositiveIntegerField("积分", default=0)
    # Buildathon 解锁码
    unlock_code = models.CharField("解锁码", max_length=64, unique=True, null=True, blank=True)
    # 解锁码生成时间
    unlock_code_generated_at = models.DateTimeField("解锁码生成时间", null=True, blank=True)
    # 是否已解锁 Buildathon
    buildathon_unlocked = models.BooleanField("已解锁 Buildathon", default=False)
    # 解锁时间
    buildathon_unlocked_at = models.DateTimeField("解锁时间", null=True, blank=True)
    # 需求快照待补录（创建时读取题目目录失败）
    snapshot_pending = models.BooleanField("快照待补录", default=False, db_index=True)
    # 乐观并发版本号
    version = models.PositiveIntegerField("版本号", default=0)
    # 创建时间
    created_at = models.DateTimeField("创建时间", auto_now_add=True)
    # 更新时间
    updated_at = models.DateTimeField("更新时间", auto_now=True)

    class Meta:
        ordering = ["id"]
        verbose_name = "队伍"
        verbose_name_plural = "队伍"

    def __str__(self) -> str:
        return self.name


class RequirementSnapshotEntry(models.Model):
    """
    需求快照条目：
    - 队伍创建时捕获当时开放的算法题，之后不再变化
    - challenge_id 不做外键，题目后续变更不影响快照本身
    """

    team = models.ForeignKey(
        Team, verbose_name="队伍", related_name="requirement_entries", on_delete=models.CASCADE
    )
    # 题目 ID
    challenge_id = models.PositiveBigIntegerField("题目 ID")
    # 捕获时的题目标题
    title_at_capture = models.CharField("捕获时标题", max_length=200)
    # 目录顺序
    position = models.PositiveIntegerField("顺序", default=0)
    # 捕获时间
    captured_at = models.DateTimeField("捕获时间")

    class Meta:
        ordering = ["team_id", "position", "id"]
        verbose_name = "需求快照"
        verbose_name_plural = "需求快照"
        constraints = [
            models.UniqueConstraint(fields=["team", "challenge_id"], name="uniq_snapshot_team_challenge"),
        ]

    def __str__(self) -> str:
        return f"{self.team_id}:{self.challenge_id}"


class CompletionRecord(models.Model):
    """
    完成记录：每个（队伍，题目）一条
    - 首次提交即创建，无论对错；后续提交原地更新
    - points_awarded 为计分守卫：首次答对时 false -> true，且只发生一次
    """

    team = models.ForeignKey(Team, verbose_name="队伍", related_name="completions", on_delete=models.CASCADE)
    challenge = models.ForeignKey(
        "challenges.Challenge", verbose_name="题目", related_name="completions", on_delete=models.PROTECT
    )
    # 最近是否答对（答对后不会被错误提交降级）
    is_correct = models.BooleanField("是否答对", default=False)
    # 是否已计分
    points_awarded = models.BooleanField("已计分", default=False)
    # 计入的分值
    awarded_points = models.PositiveIntegerField("计入分值", default=0)
    # 提交次数
    attempts = models.PositiveIntegerField("提交次数", default=1)
    # 首次提交时间
    completed_at = models.DateTimeField("首次提交时间")
    # 首次答对时间
    solved_at = models.DateTimeField("首次答对时间", null=True, blank=True)
    # 更新时间
    updated_at = models.DateTimeField("更新时间", auto_now=True)

    class Meta:
        ordering = ["team_id", "completed_at", "id"]
        verbose_name = "完成记录"
        verbose_name_plural = "完成记录"
        constraints = [
            models.UniqueConstraint(fields=["team", "challenge"], name="uniq_completion_team_challenge"),
        ]

    def __str__(self) -> str:
        return f"{self.team_id}:{self.challenge_id}"


class TeamMember(models.Model):
    """
    队伍成员：
    - 一个用户同时只能属于一支队伍（user 唯一）
    - 退出即删除记录；队长退出时队长身份移交给最早加入的成员
    """

    class Role(models.TextChoices):
        LEADER = "leader", "队长"
        MEMBER = "member", "队员"

    team = models.ForeignKey(Team, verbose_name="队伍", related_name="members", on_delete=models.CASCADE)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL, verbose_name="用户", related_name="team_membership", on_delete=models.CASCADE
    )
    role = models.CharField("角色", max_length=20, choices=Role.choices, default=Role.MEMBER)
    joined_at = models.DateTimeField("加入时间", auto_now_add=True)

    class Meta:
        ordering = ["team_id", "joined_at", "id"]
        verbose_name = "队伍成员"
        verbose_name_plural = "队伍成员"

    def __str__(self) -> str:
        return f"{self.user} -> {self.team}"
