from __future__ import annotations

from django.db import models

# 模型文件：定义题目目录（两阶段题目、分值、上下线与前置条件），不承载业务流程


class Challenge(models.Model):
    """
    题目主体：
    - 按阶段区分：算法阶段（完成后获得解锁码）与 Buildathon 阶段（兑换解锁码后开放）
    - 下线即软删除（is_active=False），保证完成记录永远可追溯
    - 前置题目（prerequisites）用于同阶段内的解锁条件
    """

    class Phase(models.TextChoices):
        ALGORITHMIC = "algorithmic", "算法阶段"
        BUILDATHON = "buildathon", "Buildathon 阶段"

    class Difficulty(models.TextChoices):
        EASY = "easy", "Easy"
        MEDIUM = "medium", "Medium"
        HARD = "hard", "Hard"

    # 题目标题
    title = models.CharField("题目标题", max_length=200, help_text="展示给队伍的题目名称")
    # 题目标识 slug
    slug = models.SlugField("题目标识", max_length=200, unique=True, help_text="题目唯一标识，供接口/URL 使用")
    # 题目内容（题面）
    description = models.TextField("题目内容", blank=True, help_text="完整题面描述")
    # 所属阶段
    phase = models.CharField(
        "所属阶段",
        max_length=20,
        choices=Phase.choices,
        default=Phase.ALGORITHMIC,
        db_index=True,
        help_text="算法阶段题目构成解锁要求；Buildathon 题目需兑换解锁码后才能作答",
    )
    # 难度枚举
    difficulty = models.CharField(
        "难度",
        max_length=20,
        choices=Difficulty.choices,
        default=Difficulty.MEDIUM,
        help_text="题目难度标签，供队伍参考",
    )
    # 分值
    points = models.PositiveIntegerField("分值", default=100, help_text="答对时计入队伍积分的分值")
    # 是否开放
    is_active = models.BooleanField("是否开放", default=True, db_index=True, help_text="关闭即下线，不再计入解锁要求")
    # 排序
    order = models.PositiveIntegerField("排序", default=0, help_text="题目目录中的展示顺序，数值越小越靠前")
    # 前置题目
    prerequisites = models.ManyToManyField(
        "self",
        verbose_name="前置题目",
        symmetrical=False,
        related_name="unlocks",
        blank=True,
        help_text="需先提交过这些题目才能作答本题",
    )
    # 创建时间
    created_at = models.DateTimeField("创建时间", auto_now_add=True)
    # 更新时间
    updated_at = models.DateTimeField("更新时间", auto_now=True)

    class Meta:
        ordering = ["order", "id"]
        verbose_name = "题目"
        verbose_name_plural = "题目"

    def __str__(self) -> str:
        return f"{self.title} ({self.phase})"

    @property
    def is_algorithmic(self) -> bool:
        return self.phase == self.Phase.ALGORITHMIC
