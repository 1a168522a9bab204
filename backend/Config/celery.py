from __future__ import annotations

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "Config.settings")

# 创建 Celery 应用，使用 Django 配置中的 CELERY_* 变量（含 CELERY_TIMEZONE 与 CELERY_BEAT_SCHEDULE）
app = Celery("Config")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
