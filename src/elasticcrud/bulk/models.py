"""批量操作数据模型定义模块."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class BulkAction(Enum):
    """批量操作类型枚举."""

    INDEX = "index"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class PendingChange:
    """待提交的单条变更.

    加入变更集后不可修改。同一 ID 的多次变更不会合并，
    按加入顺序逐条写入 bulk 请求体。

    Attributes:
        entity_type: 实体类型，用于解析索引名称和文档类型
        entity_id: 文档ID
        payload: 实体实例，删除操作为 None
        is_delete: 是否为删除操作
    """

    entity_type: type
    entity_id: str
    payload: Any = None
    is_delete: bool = False

    @property
    def action(self) -> BulkAction:
        return BulkAction.DELETE if self.is_delete else BulkAction.INDEX


@dataclass(frozen=True)
class BulkPayload:
    """编码后的 bulk 请求体.

    Attributes:
        content: 换行分隔的 action/文档请求体
        entity_count: 请求体包含的变更数
    """

    content: str
    entity_count: int


@dataclass
class BulkItemOutcome:
    """bulk 响应 items 数组中的单个条目.

    Attributes:
        action: 操作类型（index、create、update、delete）
        index_name: 索引名称
        doc_type: 文档类型
        doc_id: 文档ID
        status: 条目级 HTTP 状态码
        error: 条目级错误信息（原始对象）
    """

    action: str
    index_name: str | None
    doc_type: str | None
    doc_id: str | None
    status: int | None
    error: Any = None

    @property
    def is_failed_delete(self) -> bool:
        """删除目标不存在（status 404）."""
        return self.action == BulkAction.DELETE.value and self.status == 404

    def describe(self) -> str:
        return f"删除失败: {self.index_name}, {self.doc_type}, {self.doc_id}; "


@dataclass
class BulkScanResult:
    """bulk 响应扫描结果.

    Attributes:
        outcomes: 全部条目
        failures: 失败条目
        error_message: 失败条目描述拼接而成的错误信息，无失败时为空字符串
    """

    outcomes: list[BulkItemOutcome] = field(default_factory=list)
    failures: list[BulkItemOutcome] = field(default_factory=list)
    error_message: str = ""

    def has_failures(self) -> bool:
        return bool(self.error_message)
