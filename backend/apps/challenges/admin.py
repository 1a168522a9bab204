"""
挑战模块后台配置：
- 提供题目目录的管理界面
- 保存后若改变了“开放中的算法题”集合，则触发全量重新评估
"""

from __future__ import annotations

from django.contrib import admin

from apps.common.infra.logger import get_logger, logger_extra
from apps.teams.triggers import CatalogChangeTrigger

from .models import Challenge
from .services import affects_requirements

logger = get_logger(__name__)


@admin.register(Challenge)
class ChallengeAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "phase", "difficulty", "points", "is_active", "order", "updated_at")
    list_filter = ("phase", "difficulty", "is_active")
    search_fields = ("title", "slug")
    prepopulated_fields = {"slug": ("title",)}
    filter_horizontal = ("prerequisites",)
    ordering = ("order", "id")
    actions = ["activate_selected", "deactivate_selected"]

    def has_delete_permission(self, request, obj=None):
        # 下线即软删除，避免完成记录悬空
        return False

    def save_model(self, request, obj, form, change):
        before_phase, before_active = None, False
        if change and obj.pk:
            previous = Challenge.objects.filter(pk=obj.pk).values("phase", "is_active").first()
            if previous:
                before_phase, before_active = previous["phase"], previous["is_active"]
        super().save_model(request, obj, form, change)
        logger.info(
            "Admin修改题目",
            extra=logger_extra(
                {
                    "admin": getattr(request.user, "username", None),
                    "challenge_id": obj.pk,
                    "action": "change" if change else "add",
                }
            ),
        )
        if affects_requirements(
                before_phase=before_phase,
                before_active=before_active,
                after_phase=obj.phase,
                after_active=obj.is_active,
        ):
            CatalogChangeTrigger.fire(f"admin_saved:{obj.pk}")

    def _set_active(self, request, queryset, is_active: bool):
        changed = queryset.exclude(is_active=is_active)
        touches_algorithmic = changed.filter(phase=Challenge.Phase.ALGORITHMIC).exists()
        count = changed.update(is_active=is_active)
        if touches_algorithmic:
            CatalogChangeTrigger.fire("admin_bulk_activation")
        self.message_user(request, f"已更新 {count} 道题目")

    @admin.action(description="上线所选题目")
    def activate_selected(self, request, queryset):
        self._set_active(request, queryset, True)

    @admin.action(description="下线所选题目")
    def deactivate_selected(self, request, queryset):
        self._set_active(request, queryset, False)
