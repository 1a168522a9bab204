# apps/common/base/base_schema.py

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, fields
from typing import Any, ClassVar, Dict, Generic, Iterable, Mapping, Optional, TypeVar

from apps.common.exceptions import ValidationError

T = TypeVar("T")
SchemaType = TypeVar("SchemaType", bound="BaseSchema[Any]")


@dataclass
class BaseSchema(ABC, Generic[T]):
    """
    业务 Schema / DTO 基类

    目的：
        - 用于 Service 层在外部输入（HTTP、评测回调、Celery 任务参数）与领域操作之间传递结构化数据
        - 聚合字段校验逻辑，替代零散的 serializer 校验

    子类示例：
        @dataclass
        class TeamCreateSchema(BaseSchema):
            name: str

            def validate(self):
                if len(self.name) < 3:
                    raise ValidationError("队伍名称过短")
    """

    #: 是否在 __post_init__ 中自动执行 validate
    auto_validate: ClassVar[bool] = False
    #: 字段别名映射：兼容前端/评测服务的驼峰命名
    ALIASES: ClassVar[dict[str, str]] = {}

    def __post_init__(self):
        if self.auto_validate:
            self.validate()

    @abstractmethod
    def validate(self) -> None:
        """子类实现字段/业务约束校验，出错时抛 BizError"""

    def to_dict(
            self,
            *,
            exclude_none: bool = False,
            exclude: Iterable[str] | None = None,
    ) -> Dict[str, Any]:
        """将 Schema 转为 dict，支持过滤 None 或移除指定字段"""
        data = asdict(self)
        if exclude_none:
            data = {key: value for key, value in data.items() if value is not None}
        if exclude:
            for key in exclude:
                data.pop(key, None)
        return data

    @classmethod
    def from_dict(
            cls: type[SchemaType],
            data: Mapping[str, Any],
            *,
            auto_validate: Optional[bool] = None,
            extra: Mapping[str, Any] | None = None,
    ) -> SchemaType:
        """
        将外部 payload 转为 Schema：
        - 兼容 QueryDict/Mapping；别名映射到内部字段名
        - 丢弃未声明的字段，避免 __init__ 收到未知参数
        - extra 用于注入路由参数（如 team_id），优先级高于 payload
        """
        if not isinstance(data, dict):
            data = dict(data)
        normalized = dict(data)
        for alias, target in cls.ALIASES.items():
            if alias in normalized:
                value = normalized.pop(alias)
                normalized.setdefault(target, value)
        if extra:
            normalized.update(extra)
        known = {field.name for field in fields(cls)}
        payload = {key: value for key, value in normalized.items() if key in known}
        try:
            instance = cls(**payload)  # type: ignore[arg-type]
        except TypeError as exc:
            # 缺少必填字段时 dataclass 抛 TypeError，统一转为参数错误
            raise ValidationError(message="缺少必填字段") from exc
        # 类级 auto_validate 已在 __post_init__ 中执行，这里只补显式要求的校验
        if auto_validate and not cls.auto_validate:
            instance.validate()
        return instance
