from django.apps import AppConfig
from django.db.models.signals import post_migrate


class SystemConfigAppConfig(AppConfig):
    """
    系统配置模块 AppConfig

    职责：
    1. 注册后台动态配置（SystemConfig 模型）
    2. 启动时初始化日志系统；migrate 完成后登记可覆盖的配置项
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.system"
    label = "system"
    verbose_name = "System"

    def ready(self):
        """
        ready() 内只做无数据库访问的初始化（配置日志）；
        数据库相关的 ensure_supported_configs 放到 post_migrate 信号中执行
        """
        from apps.common.infra.logger import configure_logging, get_logger

        configure_logging(force=True)
        logger = get_logger(__name__)

        def sync_system_configs(**kwargs):
            """post_migrate 回调：确保 SystemConfig 表中的配置项齐全"""
            _ = kwargs
            try:
                from .services import ConfigService

                ConfigService().ensure_supported_configs()
                logger.info("系统配置自动初始化完成：已同步 SUPPORTED_CONFIGS 到数据库")
            except Exception as exc:
                logger.warning(f"系统配置自动初始化跳过（可能是数据库不可用）: {exc}")

        post_migrate.connect(sync_system_configs, sender=self, weak=False)
