"""工作单元上下文模块.

ElasticsearchContext 累积实体变更并通过一次 bulk 请求提交，
将条目级的部分失败汇总为 ResultDetails，同时提供按 ID 读取实体
和删除索引操作。

示例用法:
    >>> from elasticcrud.context import ElasticsearchContext
    >>> with ElasticsearchContext("http://localhost:9200") as context:
    ...     context.add_update_entity(skill, skill.id)
    ...     result = context.save_changes()
"""

from .exceptions import (
    ConcurrentSaveError,
    ContextError,
    ElasticsearchStatusError,
    IndexDeleteNotAllowedError,
    OperationCancelledError,
)
from .models import (
    CLIENT_CLOSED_REQUEST,
    NOTHING_TO_SAVE,
    OPERATION_CANCELLED,
    FailureKind,
    ResultDetails,
)
from .tool import ElasticsearchContext

__all__ = [
    "ElasticsearchContext",
    "ResultDetails",
    "FailureKind",
    "CLIENT_CLOSED_REQUEST",
    "NOTHING_TO_SAVE",
    "OPERATION_CANCELLED",
    "ContextError",
    "ConcurrentSaveError",
    "ElasticsearchStatusError",
    "IndexDeleteNotAllowedError",
    "OperationCancelledError",
]
