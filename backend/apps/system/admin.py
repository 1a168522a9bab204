from __future__ import annotations

from django.contrib import admin

from apps.common.infra.logger import get_logger, logger_extra
from .models import SystemConfig
from .services import ConfigService

logger = get_logger(__name__)


@admin.register(SystemConfig)
class SystemConfigAdmin(admin.ModelAdmin):
    """
    系统配置后台管理：
    - 支持在运行期为配置键设定覆盖值，留空表示沿用 settings.py
    - 保存后清理对应缓存并记录审计日志
    """

    list_display = ("key", "description", "value_type", "value", "updated_at")
    list_filter = ("value_type",)
    search_fields = ("key", "description")
    ordering = ("key",)
    readonly_fields = ("key", "description", "value_type")

    def has_add_permission(self, request):
        # 配置项由 SUPPORTED_CONFIGS 登记，不允许后台新增任意键
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def save_model(self, request, obj, form, change):
        super().save_model(request, obj, form, change)
        ConfigService().invalidate(obj.key)
        logger.info(
            "系统配置已修改",
            extra=logger_extra({"key": obj.key, "operator": getattr(request.user, "username", None)}),
        )
