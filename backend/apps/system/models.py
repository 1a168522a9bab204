from __future__ import annotations

import json
from typing import Any

from django.db import models

# 模型文件：运行期可覆盖的系统配置项


class SystemConfig(models.Model):
    """
    系统配置项模型
    - 场景：允许管理员在后台为可覆盖的运行参数设置值，优先于 settings.py
    - 约束：启动依赖（数据库、Broker）仍由 settings/环境变量提供，不在此覆盖
    """

    class ValueType(models.TextChoices):
        STRING = "string", "字符串"
        INT = "int", "整数"
        BOOL = "bool", "布尔"
        JSON = "json", "JSON"

    key = models.CharField("键", max_length=120, unique=True, db_index=True)
    value = models.TextField("配置值", blank=True, default="")
    value_type = models.CharField(
        "值类型", max_length=20, choices=ValueType.choices, default=ValueType.STRING
    )
    description = models.TextField("说明", blank=True)
    created_at = models.DateTimeField("创建时间", auto_now_add=True)
    updated_at = models.DateTimeField("更新时间", auto_now=True)

    class Meta:
        verbose_name = "系统配置"
        verbose_name_plural = "系统配置"
        ordering = ["key"]

    def __str__(self) -> str:
        return self.key

    def cast_value(self) -> Any:
        """根据类型转换配置值；空字符串视为未设置"""
        if self.value == "":
            return None
        if self.value_type == self.ValueType.INT:
            try:
                return int(self.value)
            except (TypeError, ValueError):
                return None
        if self.value_type == self.ValueType.BOOL:
            return str(self.value).strip().lower() in {"1", "true", "yes", "on"}
        if self.value_type == self.ValueType.JSON:
            try:
                return json.loads(self.value)
            except json.JSONDecodeError:
                return None
        return self.value
