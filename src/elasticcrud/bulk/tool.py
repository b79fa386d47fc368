"""bulk 请求体编码与响应解析."""

import json
import logging
from collections.abc import Iterable
from typing import Any

from ..mapping import ElasticsearchMappingResolver
from .exceptions import BulkEncodingError
from .models import (
    BulkItemOutcome,
    BulkPayload,
    BulkScanResult,
    PendingChange,
)

logger = logging.getLogger(__name__)


def _item_status(value: Any) -> int | None:
    """条目状态码，缺失或无法识别时为 None."""
    try:
        return int(value)
    except (TypeError, ValueError):
        if value is not None:
            logger.warning(f"无法识别的 bulk 条目状态码: {value!r}")
        return None


class BulkPayloadEncoder:
    """将待提交变更编码为 bulk 请求体.

    每个新增/更新变更输出两行（action 元数据行 + 文档行），
    每个删除变更只输出 action 元数据行，严格保持输入顺序。

    Args:
        mapping_resolver: 映射解析器
        include_document_type: 是否在元数据中写入 _type，默认为 True
        include_child_objects: 序列化实体时是否包含子对象，默认为 True
    """

    def __init__(
        self,
        mapping_resolver: ElasticsearchMappingResolver,
        include_document_type: bool = True,
        include_child_objects: bool = True,
    ):
        self.mapping_resolver = mapping_resolver
        self.include_document_type = include_document_type
        self.include_child_objects = include_child_objects

    def _action_metadata(self, change: PendingChange) -> dict[str, Any]:
        mapping = self.mapping_resolver.get_mapping(change.entity_type)
        metadata: dict[str, Any] = {
            "_index": mapping.get_index_for_type(change.entity_type),
        }
        if self.include_document_type:
            metadata["_type"] = mapping.get_document_type(change.entity_type)
        metadata["_id"] = change.entity_id
        return {change.action.value: metadata}

    def _encode_change(self, change: PendingChange) -> list[str]:
        lines = [json.dumps(self._action_metadata(change), ensure_ascii=False)]
        if not change.is_delete:
            mapping = self.mapping_resolver.get_mapping(change.entity_type)
            document = mapping.serialize_entity(
                change.payload, include_child_objects=self.include_child_objects
            )
            lines.append(json.dumps(document, ensure_ascii=False))
        return lines

    def encode(self, changes: Iterable[PendingChange]) -> BulkPayload:
        """编码变更列表.

        Args:
            changes: 待提交变更（按加入顺序）

        Returns:
            编码后的请求体，每行以换行符结尾

        Raises:
            MappingResolveError: 实体类型无法解析时抛出
            BulkEncodingError: 实体无法序列化为 JSON 时抛出
        """
        lines: list[str] = []
        count = 0
        for change in changes:
            try:
                lines.extend(self._encode_change(change))
            except (TypeError, ValueError) as e:
                raise BulkEncodingError(
                    f"编码实体失败: {change.entity_type.__name__}, "
                    f"{change.entity_id}: {str(e)}"
                ) from e
            count += 1

        content = "".join(f"{line}\n" for line in lines)
        logger.debug(f"编码 bulk 请求体: {count} 个实体, {len(lines)} 行")
        return BulkPayload(content=content, entity_count=count)


class BulkResponseParser:
    """bulk 响应解析器.

    HTTP 200 并不代表每个条目都成功，必须逐条扫描 items 数组。
    目前只有 status 为 404 的 delete 条目被视为失败，其余条目
    无论状态码如何都被接受。
    """

    def parse_item(self, item: dict[str, Any]) -> BulkItemOutcome | None:
        """解析单个条目，条目格式为 {action: {...}}."""
        for action, info in item.items():
            if not isinstance(info, dict):
                continue
            doc_id = info.get("_id")
            return BulkItemOutcome(
                action=action,
                index_name=info.get("_index"),
                doc_type=info.get("_type"),
                doc_id=str(doc_id) if doc_id is not None else None,
                status=_item_status(info.get("status")),
                error=info.get("error"),
            )
        return None

    def scan(self, response: Any) -> BulkScanResult:
        """扫描 bulk 响应.

        Args:
            response: 已解析的响应字典或原始 JSON 文本

        Returns:
            扫描结果，失败条目的描述按出现顺序拼接到 error_message
        """
        if isinstance(response, (bytes, bytearray)):
            response = response.decode("utf-8")
        if isinstance(response, str):
            response = json.loads(response) if response.strip() else {}

        result = BulkScanResult()
        items = response.get("items") if isinstance(response, dict) else None
        if not items:
            return result

        for item in items:
            if not isinstance(item, dict):
                continue
            outcome = self.parse_item(item)
            if outcome is None:
                continue
            result.outcomes.append(outcome)
            if outcome.is_failed_delete:
                result.failures.append(outcome)
                result.error_message += outcome.describe()
            elif outcome.status is not None and outcome.status >= 300:
                logger.debug(
                    f"bulk 条目状态 {outcome.status}: [{outcome.action}] "
                    f"{outcome.index_name}, {outcome.doc_id}"
                )

        if result.failures:
            logger.warning(
                f"bulk 响应中有 {len(result.failures)} 个删除条目失败: "
                f"{result.error_message}"
            )
        return result

