from __future__ import annotations

import re

from drf_spectacular.openapi import AutoSchema


class ShortDescriptionAutoSchema(AutoSchema):
    """
    自定义 AutoSchema：为缺少描述的接口填充简短中文说明
    - 优先使用父类生成的描述（extend_schema 或方法 docstring）
    - 其次取视图类 docstring 首行
    - 最后回退为“<METHOD> <path> 接口”
    """

    def get_description(self) -> str:
        desc = super().get_description()
        if desc:
            return desc
        doc = (getattr(self.view, "__doc__", "") or "").strip()
        if doc:
            first_line = doc.splitlines()[0].strip()
            if first_line:
                return first_line
        return f"{self.method} {self.path} 接口"

    def get_operation_id(self) -> str:
        # extend_schema 显式指定的 operation_id 会覆盖这里
        return build_operation_id(self.path, self.method)

    def get_tags(self):
        tags = super().get_tags() or []
        if tags and tags != ["api"]:
            return tags
        # 按路径推导标签，如 /api/teams/... -> teams
        path = getattr(self, "path", "") or ""
        for part in (p for p in path.strip("/").split("/") if p):
            if part.lower() == "api":
                continue
            return [part.replace("-", "_")]
        return ["api"]


def _sanitize_operation_id(value: str) -> str:
    """简易清洗：非字母数字下划线替换为下划线"""
    return re.sub(r"[^0-9a-zA-Z_]", "_", value)


def build_operation_id(path: str, method: str) -> str:
    """
    基于 HTTP 方法 + 路径生成 operationId：
    - /api/teams/{team_id}/eligibility/ -> get_teams_team_id_eligibility
    """
    clean = path.strip("/").replace("api/", "")
    parts = []
    for part in clean.split("/"):
        if part.startswith("{") and part.endswith("}"):
            part = part[1:-1]
        if part:
            parts.append(part.replace("-", "_"))
    base = "_".join(parts) or "root"
    return _sanitize_operation_id(f"{method.lower()}_{base}")
