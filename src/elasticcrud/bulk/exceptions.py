"""批量操作异常定义模块."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..exceptions import ElasticsearchCrudError

if TYPE_CHECKING:
    from .models import BulkItemOutcome


class BulkOperationError(ElasticsearchCrudError):
    """批量操作基础异常类."""

    pass


class BulkEncodingError(BulkOperationError):
    """待提交变更无法编码为 bulk 请求体时抛出."""

    pass


class BulkPartialFailureError(BulkOperationError):
    """bulk 请求返回 200，但部分条目执行失败.

    Attributes:
        items: 失败条目列表
    """

    def __init__(self, message: str, items: list[BulkItemOutcome] | None = None):
        super().__init__(message)
        self.items = list(items or [])
