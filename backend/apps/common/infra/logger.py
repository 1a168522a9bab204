"""
日志封装：提供统一的日志记录器

- 输出到 {LOG_PATH}/system.log，按日期自动轮转，保留 30 天
- 支持 PLAIN（默认，便于 grep）与 JSON 两种格式，由 settings.LOG_FORMAT 决定
- 自动注入请求上下文（request_id、user_id、username、ip、path）
- logger_extra 过滤敏感字段（解锁码、Token 等）
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

from django.conf import settings as django_settings

_configured = False

_CONTEXT_FIELDS = ("username", "user_id", "ip", "path", "request_id")


class DuoThanJSONFormatter(logging.Formatter):
    """
    JSON 格式化器，输出示例：
    {"timestamp": "2026-03-02 10:00:00", "level": "INFO", "logger": "apps.teams.services",
     "message": "解锁码已生成", "team_id": 3, "request_id": "a1b2c3"}
    """

    def format(self, record: logging.LogRecord) -> str:
        from apps.common.utils.request_context import get_request_context

        ctx = get_request_context()
        log_dict = {
            "timestamp": datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _CONTEXT_FIELDS:
            value = ctx.get(key)
            if value not in (None, ""):
                log_dict[key] = value
        # logger_extra 写入的业务字段挂在 record 上，一并输出
        for key, value in getattr(record, "biz_extra", {}).items():
            log_dict.setdefault(key, value)
        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_dict, ensure_ascii=False, default=str)


class DuoThanPlainFormatter(logging.Formatter):
    """
    纯文本格式化器：
    {timestamp} {level} {logger} {message} {k=v ...} [{username}|{ip}|{path}|{request_id}]
    """

    def format(self, record: logging.LogRecord) -> str:
        from apps.common.utils.request_context import get_request_context

        ctx = get_request_context()
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        biz = " ".join(f"{k}={v}" for k, v in getattr(record, "biz_extra", {}).items())
        context_info = "[{}|{}|{}|{}]".format(
            ctx.get("username") or "-",
            ctx.get("ip") or "-",
            ctx.get("path") or "-",
            ctx.get("request_id") or "-",
        )
        parts = [timestamp, record.levelname, record.name, record.getMessage()]
        if biz:
            parts.append(biz)
        parts.append(context_info)
        log_line = " ".join(parts)
        if record.exc_info:
            log_line += "\n" + self.formatException(record.exc_info)
        return log_line


def get_log_path_from_settings() -> str:
    """基于 settings.LOG_PATH 生成日志文件路径，目录不存在时自动创建"""
    log_dir = Path(getattr(django_settings, "LOG_PATH", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    return str(log_dir / "system.log")


def configure_logging(force: bool = False, *, level: Optional[int] = None, log_file_path: Optional[str] = None) -> None:
    """
    配置日志系统（进程内只配置一次，force=True 时重新配置）
    - 文件 handler 按午夜轮转，保留 30 天
    - DEBUG 模式额外输出到控制台
    """
    global _configured
    if _configured and not force:
        return

    log_level = level if level is not None else getattr(logging, str(getattr(django_settings, "LOG_LEVEL", "INFO")).upper(), logging.INFO)
    log_file_path = log_file_path if log_file_path is not None else get_log_path_from_settings()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in list(root_logger.handlers):
        handler.close()
    root_logger.handlers.clear()

    if str(getattr(django_settings, "LOG_FORMAT", "plain")).lower() == "json":
        formatter: logging.Formatter = DuoThanJSONFormatter()
    else:
        formatter = DuoThanPlainFormatter()

    file_handler = logging.handlers.TimedRotatingFileHandler(
        filename=log_file_path,
        when="midnight",
        interval=1,
        backupCount=30,
        encoding="utf-8",
        delay=True,  # 延迟打开文件，避免多进程抢占
    )
    file_handler.suffix = "%Y-%m-%d"
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    if getattr(django_settings, "DEBUG", False) or os.getenv("LOG_TO_CONSOLE", "").lower() == "true":
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    _configured = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    获取 logger 实例

        logger = get_logger(__name__)
        logger.info("解锁码已生成", extra=logger_extra({"team_id": team.id}))
    """
    if not _configured:
        configure_logging()
    return logging.getLogger(name)


SENSITIVE_KEYS = {"password", "token", "code", "unlock_code", "submitted_code", "secret"}


def sanitize_extra(extra: Optional[dict] = None) -> dict:
    """过滤敏感字段，避免在日志中泄露解锁码/Token"""
    if not extra:
        return {}
    return {k: ("***" if k.lower() in SENSITIVE_KEYS else v) for k, v in extra.items()}


def logger_extra(extra: Optional[dict] = None) -> dict:
    """封装 extra：业务字段统一挂到 record.biz_extra，避免与 LogRecord 内置属性冲突"""
    return {"biz_extra": sanitize_extra(extra)}
