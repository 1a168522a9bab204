# apps/common/base/base_repo.py

from __future__ import annotations

from abc import ABC
from typing import Any, Generic, Iterable, Mapping, Optional, TypeVar

from django.db.models import Model, QuerySet

T = TypeVar("T", bound=Model)


class BaseRepo(ABC, Generic[T]):
    """
    Repository（数据访问层）基类：
    - 统一封装 Django ORM 读写细节，给 Service 提供稳定接口
    - 集中管理 select_related/prefetch/filter 等查询配置
    - 提供条件更新（compare-and-swap），供聚合根做乐观并发控制
    - 用法示例：class TeamRepo(BaseRepo[Team]): model = Team
    """

    #: 子类必须指定对应的模型
    model: type[T]

    # ------------------------
    # QuerySet 构建
    # ------------------------

    def get_queryset(self) -> QuerySet[T]:
        """返回默认 QuerySet，子类可覆盖以附加 select_related/filter"""
        if not getattr(self, "model", None):
            raise NotImplementedError("BaseRepo 子类必须声明 model 属性")
        return self.model._default_manager.all()

    def filter(self, *, queryset: Optional[QuerySet[T]] = None, **filters) -> QuerySet[T]:
        """通用过滤入口，允许注入自定义 QuerySet"""
        qs = queryset if queryset is not None else self.get_queryset()
        return qs.filter(**filters)

    def list(self, **filters) -> Iterable[T]:
        return self.filter(**filters)

    def get_by_id(self, pk: Any, *, queryset: Optional[QuerySet[T]] = None) -> T:
        """根据主键获取对象，不存在时让上层自行捕获 DoesNotExist 转 BizError"""
        qs = queryset if queryset is not None else self.get_queryset()
        return qs.get(pk=pk)

    def get_or_none(self, *, queryset: Optional[QuerySet[T]] = None, **filters) -> Optional[T]:
        qs = queryset if queryset is not None else self.get_queryset()
        return qs.filter(**filters).first()

    def exists(self, **filters) -> bool:
        return self.filter(**filters).exists()

    def count(self, **filters) -> int:
        return self.filter(**filters).count()

    # ------------------------
    # 写操作
    # ------------------------

    def create(self, data: dict) -> T:
        """创建记录；若需写入额外字段，可在子类中统一处理"""
        return self.model._default_manager.create(**data)

    def update(self, instance: T, data: dict) -> T:
        """批量更新字段并保存，返回最新实例"""
        for field, value in data.items():
            setattr(instance, field, value)
        if data:
            instance.save(update_fields=list(data.keys()))
        else:
            instance.save()
        return instance

    def compare_and_update(self, pk: Any, *, expected: Mapping[str, Any], changes: Mapping[str, Any]) -> bool:
        """
        条件更新：仅当记录当前字段值与 expected 一致时写入 changes
        - 单条 UPDATE ... WHERE pk=? AND <expected>，由数据库保证原子性
        - 返回是否命中（False 表示期间已被其他请求修改）
        """
        if not changes:
            return True
        updated = self.model._default_manager.filter(pk=pk, **expected).update(**changes)
        return updated == 1

    def delete(self, instance: T) -> None:
        instance.delete()
