# apps/common/base/base_service.py

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from django.db import transaction

from apps.common.exceptions import BizError, InvariantViolationError
from apps.common.infra.logger import get_logger

logger = get_logger(__name__)

ServiceReturn = TypeVar("ServiceReturn")


class BaseService(ABC, Generic[ServiceReturn]):
    """
    Service 层业务逻辑基类

    约束：
        - 负责编排业务逻辑，不直接处理 HTTP
        - 使用普通 Python 参数，避免依赖 request
        - 通过仓储/Repo 访问持久化层
        - 默认在事务中执行 `perform`；自行控制事务（如乐观并发重试）的子类关闭 atomic_enabled
        - 预期内的业务失败使用 BizError；系统异常与不变量破坏向上抛出交由全局 500 处理

    标准流程：validate(...) -> perform(...) -> handle_error(...)
    """

    atomic_enabled: bool = True
    atomic_savepoint: bool = True

    @staticmethod
    def atomic(*args, **kwargs):
        """为子类提供 `transaction.atomic` 上下文管理器"""
        return transaction.atomic(*args, **kwargs)

    def validate(self, *args, **kwargs) -> None:
        """可选的业务预检查钩子，默认空实现"""
        return None

    @abstractmethod
    def perform(self, *args, **kwargs) -> ServiceReturn:
        """子类必须实现的业务核心逻辑"""

    def execute(self, *args, **kwargs) -> ServiceReturn:
        """Service 对外的统一入口，封装标准流程"""
        try:
            self.validate(*args, **kwargs)
            if self.atomic_enabled:
                with self.atomic(savepoint=self.atomic_savepoint):
                    return self.perform(*args, **kwargs)
            return self.perform(*args, **kwargs)
        except Exception as exc:
            return self.handle_error(exc)

    __call__ = execute

    def handle_error(self, exc: Exception) -> ServiceReturn:
        """
        业务错误继续抛出；不变量破坏与系统异常记录完整堆栈后向上抛出
        """
        if isinstance(exc, BizError):
            raise exc
        if isinstance(exc, InvariantViolationError):
            logger.critical("领域不变量被破坏，拒绝继续写入：%s", exc, exc_info=exc)
            raise exc
        logger.exception("Service 层出现未捕获的系统异常，向上抛出以按 500 处理", exc_info=exc)
        raise exc
