# -*- coding: utf-8 -*-
"""
系统配置单测
- 验证配置优先级：后台配置 > settings > 默认值
- 验证空值沿用 settings、非法整数回退默认值
"""
from __future__ import annotations

from django.core.cache import cache
from django.test import TestCase, override_settings

from apps.system.models import SystemConfig
from apps.system.services import ConfigService


class ConfigServiceTests(TestCase):
    def setUp(self):
        cache.clear()
        self.service = ConfigService()

    def tearDown(self):
        cache.clear()

    @override_settings(UNLOCK_CODE_PREFIX="DUOTHAN")
    def test_falls_back_to_settings_when_unset(self):
        self.service.ensure_supported_configs()
        self.assertEqual(self.service.get("UNLOCK_CODE_PREFIX"), "DUOTHAN")

    @override_settings(UNLOCK_CODE_PREFIX="DUOTHAN")
    def test_db_value_overrides_settings(self):
        # post_migrate 已写入全部受支持的键，这里只更新取值
        SystemConfig.objects.update_or_create(
            key="UNLOCK_CODE_PREFIX",
            defaults={"value": "BUILD", "value_type": SystemConfig.ValueType.STRING},
        )
        self.assertEqual(self.service.get("UNLOCK_CODE_PREFIX"), "BUILD")

    def test_default_used_when_nothing_configured(self):
        self.assertEqual(self.service.get("NOT_A_REAL_KEY", "fallback"), "fallback")

    def test_invalidate_drops_cached_value(self):
        cfg, _ = SystemConfig.objects.update_or_create(
            key="LEADERBOARD_LIMIT",
            defaults={"value": "10", "value_type": SystemConfig.ValueType.INT},
        )
        self.assertEqual(self.service.get("LEADERBOARD_LIMIT"), 10)
        cfg.value = "25"
        cfg.save()
        self.assertEqual(self.service.get("LEADERBOARD_LIMIT"), 10)
        self.service.invalidate("LEADERBOARD_LIMIT")
        self.assertEqual(self.service.get("LEADERBOARD_LIMIT"), 25)

    @override_settings(TEAM_WRITE_MAX_RETRIES="many")
    def test_get_int_rejects_garbage(self):
        self.assertEqual(self.service.get_int("TEAM_WRITE_MAX_RETRIES", 5, minimum=1), 5)

    def test_ensure_supported_configs_is_idempotent(self):
        self.service.ensure_supported_configs()
        self.service.ensure_supported_configs()
        self.assertEqual(
            SystemConfig.objects.filter(key__in=ConfigService.SUPPORTED_CONFIGS).count(),
            len(ConfigService.SUPPORTED_CONFIGS),
        )


class SystemConfigCastTests(TestCase):
    def test_cast_bool_and_json(self):
        self.assertTrue(SystemConfig(key="a", value="yes", value_type="bool").cast_value())
        self.assertEqual(SystemConfig(key="b", value='{"x": 1}', value_type="json").cast_value(), {"x": 1})
        self.assertIsNone(SystemConfig(key="c", value="", value_type="int").cast_value())
        self.assertIsNone(SystemConfig(key="d", value="abc", value_type="int").cast_value())
