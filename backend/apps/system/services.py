from __future__ import annotations

from typing import Any

from django.core.cache import cache
from django.conf import settings

from apps.common.base.base_service import BaseService
from apps.common.infra.logger import get_logger
from .repo import SystemConfigRepo
from .models import SystemConfig

logger = get_logger(__name__)


class ConfigService(BaseService[SystemConfig]):
    """
    系统配置服务：动态配置管理

    核心功能：
    1. 配置优先级：后台配置 > settings.py 默认值 > 传入默认值
    2. 自动初始化：migrate 后将 SUPPORTED_CONFIGS 以空值登记到数据库，空值表示沿用 settings
    3. 缓存：Django cache（5 分钟），缓存不可用时自动降级直查数据库
    4. 配置变更：后台修改后调用 invalidate() 清理缓存
    """

    cache_prefix = "system_config:"
    cache_timeout = 300

    # 支持后台覆盖的配置清单：key -> 类型/描述
    SUPPORTED_CONFIGS = {
        "UNLOCK_CODE_PREFIX": {
            "type": SystemConfig.ValueType.STRING,
            "desc": "Buildathon 解锁码前缀，仅影响新生成的解锁码（大写字母与数字）",
        },
        "TEAM_WRITE_MAX_RETRIES": {
            "type": SystemConfig.ValueType.INT,
            "desc": "队伍并发写入冲突时的最大重试次数，耗尽后返回可重试错误",
        },
        "REEVALUATION_CHUNK_SIZE": {
            "type": SystemConfig.ValueType.INT,
            "desc": "题目变更后重新评估扫描时每批处理的队伍数量",
        },
        "SNAPSHOT_RECONCILE_INTERVAL_SECONDS": {
            "type": SystemConfig.ValueType.INT,
            "desc": "需求快照补录任务的调度间隔（秒），修改后需重启 Celery Beat",
        },
        "LEADERBOARD_LIMIT": {
            "type": SystemConfig.ValueType.INT,
            "desc": "排行榜默认返回的队伍数量",
        },
    }

    def __init__(self, repo: SystemConfigRepo | None = None):
        self.repo = repo or SystemConfigRepo()

    def _cache_key(self, key: str) -> str:
        return f"{self.cache_prefix}{key}"

    def get(self, key: str, default: Any = None) -> Any:
        """
        获取配置值（按优先级读取）：
        1. 后台配置（SystemConfig 表中非空的值）
        2. settings.py 中的同名配置
        3. 传入的 default
        """
        cache_key = self._cache_key(key)
        try:
            if (cached := cache.get(cache_key)) is not None:
                return cached
        except Exception as e:
            logger.warning(f"缓存读取失败，降级到数据库查询: {e}")

        value = None
        cfg = self.repo.get_by_key(key)
        if cfg:
            value = cfg.cast_value()
        if value is None:
            value = getattr(settings, key, None)
        if value is None:
            value = default

        try:
            cache.set(cache_key, value, timeout=self.cache_timeout)
        except Exception as e:
            logger.warning(f"缓存写入失败: {e}")
        return value

    def get_int(self, key: str, default: int, *, minimum: int = 0) -> int:
        """读取整数配置，非法值回退到 default，并保证不小于 minimum"""
        raw = self.get(key, default)
        try:
            value = int(raw)
        except (TypeError, ValueError):
            logger.warning(f"配置 {key} 不是合法整数（{raw!r}），使用默认值 {default}")
            value = default
        return max(minimum, value)

    def ensure_supported_configs(self) -> None:
        """确保支持的配置项都存在记录（空值），并同步类型与描述"""
        existing = {c.key: c for c in self.repo.model.objects.all()}
        to_create = []
        for key, meta in self.SUPPORTED_CONFIGS.items():
            value_type = meta.get("type", SystemConfig.ValueType.STRING)
            desc = meta.get("desc", "")
            cfg = existing.get(key)
            if cfg is None:
                to_create.append(SystemConfig(key=key, value="", value_type=value_type, description=desc))
                continue
            if cfg.value_type != value_type or cfg.description != desc:
                cfg.value_type = value_type
                cfg.description = desc
                cfg.save(update_fields=["value_type", "description", "updated_at"])
        if to_create:
            self.repo.model.objects.bulk_create(to_create, ignore_conflicts=True)

    def invalidate(self, key: str | None = None) -> None:
        """配置变更后清理缓存；缓存不可用时仅记录日志"""
        try:
            if key:
                cache.delete(self._cache_key(key))
            else:
                cache.delete_many([self._cache_key(k) for k in self.SUPPORTED_CONFIGS])
        except Exception as e:
            logger.warning(f"缓存失效操作失败（不影响配置更新）: {e}")

    def perform(self, *args, **kwargs):
        """占位实现，满足 BaseService 抽象约束"""
        return None
