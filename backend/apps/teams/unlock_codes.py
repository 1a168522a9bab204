# apps/teams/unlock_codes.py

from __future__ import annotations

import hashlib
import hmac
import re
import secrets
from datetime import datetime

from django.utils import timezone

# 解锁码格式：<前缀>-<8 位随机 base32>-<4 位时间段>-<2 位校验>
# 例：DUOTHAN-K7QX2MPA-4821-RB

DEFAULT_PREFIX = "DUOTHAN"
ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
RANDOM_LENGTH = 8

CODE_PATTERN = re.compile(r"^([A-Z0-9]{1,16})-([A-Z2-7]{8})-(\d{4})-([A-Z2-7]{2})$")


def normalize_prefix(prefix: str | None) -> str:
    cleaned = re.sub(r"[^A-Z0-9]", "", str(prefix or "").upper())[:16]
    return cleaned or DEFAULT_PREFIX


def _time_segment(moment: datetime) -> str:
    return f"{int(moment.timestamp()) % 10000:04d}"


def _checksum(body: str) -> str:
    digest = hashlib.sha256(body.encode("utf-8")).digest()
    return ALPHABET[digest[0] % 32] + ALPHABET[digest[1] % 32]


def generate_unlock_code(prefix: str | None = None, *, now: datetime | None = None) -> str:
    """随机段来自 secrets（40 bit），与队伍信息无关，不可由队伍元数据推测"""
    moment = now or timezone.now()
    random_part = "".join(secrets.choice(ALPHABET) for _ in range(RANDOM_LENGTH))
    body = f"{normalize_prefix(prefix)}-{random_part}-{_time_segment(moment)}"
    return f"{body}-{_checksum(body)}"


def looks_like_unlock_code(code: str | None) -> bool:
    """结构校验（供人工核对）：格式正确且校验位匹配"""
    if not code:
        return False
    code = code.strip()
    if not CODE_PATTERN.match(code):
        return False
    body, _, check = code.rpartition("-")
    return hmac.compare_digest(_checksum(body), check)


def codes_match(submitted: str | None, stored: str | None) -> bool:
    """去除首尾空白后精确比较；未生成解锁码时一律不匹配"""
    if not stored or submitted is None:
        return False
    return hmac.compare_digest(submitted.strip().encode("utf-8"), stored.encode("utf-8"))
