"""批量变更模块.

该模块提供工作单元的批量写入部分，包括：
- 待提交变更集（新增/更新/删除按加入顺序缓冲）
- bulk 请求体编码（换行分隔的 action/文档行）
- bulk 响应解析（HTTP 200 中的条目级失败检测）

示例用法:
    >>> from elasticcrud.bulk import PendingChangeSet, BulkPayloadEncoder
    >>> changes = PendingChangeSet()
    >>> changes.add_or_update(skill, skill.id)
    >>> payload = BulkPayloadEncoder(resolver).encode(changes.drain_and_clear())
"""

from .changes import PendingChangeSet
from .exceptions import (
    BulkEncodingError,
    BulkOperationError,
    BulkPartialFailureError,
)
from .models import (
    BulkAction,
    BulkItemOutcome,
    BulkPayload,
    BulkScanResult,
    PendingChange,
)
from .tool import BulkPayloadEncoder, BulkResponseParser

__all__ = [
    "BulkAction",
    "BulkItemOutcome",
    "BulkPayload",
    "BulkScanResult",
    "PendingChange",
    "PendingChangeSet",
    "BulkPayloadEncoder",
    "BulkResponseParser",
    "BulkOperationError",
    "BulkEncodingError",
    "BulkPartialFailureError",
]
