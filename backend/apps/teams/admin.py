"""
队伍模块后台配置：
- 只读展示积分、解锁码与快照，聚合状态只能通过服务层变更
- 成员可在后台直接调整（一人一队由数据库唯一约束保证）
- 提供“强制重置解锁码”“重新评估”批量操作
"""

from __future__ import annotations

from django.contrib import admin

from apps.common.infra.logger import get_logger, logger_extra

from .models import CompletionRecord, RequirementSnapshotEntry, Team, TeamMember
from .schemas import UnlockCodeResetSchema
from .services import UnlockCodeResetService, UnlockCodeService

logger = get_logger(__name__)


class TeamMemberInline(admin.TabularInline):
    model = TeamMember
    extra = 0
    readonly_fields = ("joined_at",)
    raw_id_fields = ("user",)


class RequirementSnapshotInline(admin.TabularInline):
    model = RequirementSnapshotEntry
    extra = 0
    can_delete = False
    readonly_fields = ("challenge_id", "title_at_capture", "position", "captured_at")

    def has_add_permission(self, request, obj=None):
        return False


class CompletionRecordInline(admin.TabularInline):
    model = CompletionRecord
    extra = 0
    can_delete = False
    readonly_fields = (
        "challenge",
        "is_correct",
        "points_awarded",
        "awarded_points",
        "attempts",
        "completed_at",
        "solved_at",
    )

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Team)
class TeamAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "name",
        "points",
        "max_members",
        "is_active",
        "unlock_code",
        "buildathon_unlocked",
        "snapshot_pending",
        "created_at",
    )
    list_filter = ("is_active", "buildathon_unlocked", "snapshot_pending")
    search_fields = ("name", "slug", "unlock_code")
    readonly_fields = (
        "invite_code",
        "points",
        "unlock_code",
        "unlock_code_generated_at",
        "buildathon_unlocked",
        "buildathon_unlocked_at",
        "snapshot_pending",
        "version",
        "created_at",
        "updated_at",
    )
    inlines = [TeamMemberInline, RequirementSnapshotInline, CompletionRecordInline]
    actions = ["reset_unlock_codes", "reevaluate_selected"]

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.action(description="强制重置解锁码并重新评估")
    def reset_unlock_codes(self, request, queryset):
        service = UnlockCodeResetService()
        regenerated = 0
        for team in queryset:
            results = service.execute(UnlockCodeResetSchema(team_id=team.id))
            regenerated += sum(1 for item in results if item["regenerated"])
        logger.warning(
            "Admin强制重置解锁码",
            extra=logger_extra(
                {"admin": getattr(request.user, "username", None), "teams": queryset.count(), "regenerated": regenerated}
            ),
        )
        self.message_user(request, f"已重置 {queryset.count()} 支队伍，重新生成 {regenerated} 个解锁码")

    @admin.action(description="重新评估所选队伍")
    def reevaluate_selected(self, request, queryset):
        service = UnlockCodeService()
        generated = sum(1 for team in queryset if service.execute(team.id).generated)
        self.message_user(request, f"已重新评估 {queryset.count()} 支队伍，新生成 {generated} 个解锁码")
