"""待提交变更集."""

import logging
from collections.abc import Iterator

from ..typing import EntityId
from .models import PendingChange

logger = logging.getLogger(__name__)


class PendingChangeSet:
    """有序的待提交变更缓冲区.

    由单个 ElasticsearchContext 独占，在两次保存之间累积变更。
    加入变更时不做任何 I/O，也不校验映射（延迟到编码时）。
    不支持多线程并发写入，调用方需自行串行化。
    """

    def __init__(self) -> None:
        self._changes: list[PendingChange] = []

    def add_or_update(self, entity: object, entity_id: EntityId) -> PendingChange:
        """加入新增或更新变更."""
        change = PendingChange(
            entity_type=type(entity),
            entity_id=str(entity_id),
            payload=entity,
        )
        logger.debug(f"加入待提交列表: {change.entity_type.__name__}, {change.entity_id}")
        self._changes.append(change)
        return change

    def mark_deleted(self, entity_type: type, entity_id: EntityId) -> PendingChange:
        """加入删除变更."""
        change = PendingChange(
            entity_type=entity_type,
            entity_id=str(entity_id),
            is_delete=True,
        )
        logger.debug(f"加入待删除: {entity_type.__name__}, {change.entity_id}")
        self._changes.append(change)
        return change

    def drain_and_clear(self) -> list[PendingChange]:
        """取出当前全部变更并清空缓冲区."""
        changes, self._changes = self._changes, []
        return changes

    def clear(self) -> None:
        self._changes = []

    def __len__(self) -> int:
        return len(self._changes)

    def __bool__(self) -> bool:
        return bool(self._changes)

    def __iter__(self) -> Iterator[PendingChange]:
        return iter(tuple(self._changes))
