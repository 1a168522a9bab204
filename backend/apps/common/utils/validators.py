"""
校验工具集合：提供常用字段格式校验
"""

from __future__ import annotations

import re

from apps.common.exceptions import ValidationError


def validate_slug(slug: str) -> None:
    """校验 slug 仅包含字母、数字、连字符与下划线"""
    if not re.match(r"^[a-zA-Z0-9_-]+$", slug):
        raise ValidationError(message="短标识仅能包含字母、数字、连字符或下划线")


def validate_length(value: str, *, min_length: int = 0, max_length: int, field_name: str = "字段") -> None:
    """长度区间校验（闭区间）"""
    length = len(value or "")
    if length < min_length or length > max_length:
        if min_length:
            raise ValidationError(message=f"{field_name}长度需在 {min_length}-{max_length} 个字符之间")
        raise ValidationError(message=f"{field_name}不能超过 {max_length} 个字符")


def forbid_dangerous_html(value: str, *, field_name: str = "字段") -> None:
    """
    拒绝常见危险 HTML 片段（如 <script>/<iframe>/javascript: 等），降低 XSS 风险
    允许普通文本和 Markdown，但若检测到可执行片段则阻断
    """
    if not value:
        return
    lower = value.lower()
    dangerous_markers = [
        "<script",
        "javascript:",
        "onerror=",
        "onload=",
        "<iframe",
        "<object",
        "<embed",
        "svg/onload",
    ]
    if any(marker in lower for marker in dangerous_markers):
        raise ValidationError(message=f"{field_name} 含有潜在危险的 HTML/脚本片段")


def parse_int(value, *, field_name: str = "ID") -> int:
    """将路由/表单传入的 ID 转为整数，非法输入抛参数错误"""
    if isinstance(value, bool):
        raise ValidationError(message=f"{field_name} 不合法")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(message=f"{field_name} 不合法")


def parse_bool(value, *, field_name: str = "字段") -> bool:
    """兼容 JSON 布尔与表单字符串"""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "1", "yes"}:
        return True
    if isinstance(value, str) and value.strip().lower() in {"false", "0", "no"}:
        return False
    raise ValidationError(message=f"{field_name} 需为布尔值")
