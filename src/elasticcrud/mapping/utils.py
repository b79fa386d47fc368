"""映射辅助函数."""

import dataclasses
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def validate_index_name(index_name: str) -> bool:
    """验证索引名称是否符合 Elasticsearch 规范.

    Args:
        index_name: 索引名称

    Returns:
        是否有效

    Note:
        Elasticsearch 索引名称限制：
        - 必须为小写
        - 不能以 . 、_ 、- 或 + 开头
        - 不能包含 , # / \\ * ? " < > | : 空格
        - 不能是 . 或 ..
        - 长度不能超过 255 字节
    """
    if not index_name or not isinstance(index_name, str):
        return False

    if len(index_name.encode("utf-8")) > 255:
        return False

    if index_name != index_name.lower():
        return False

    if index_name in (".", ".."):
        return False

    if index_name[0] in "._-+":
        return False

    invalid_chars = {",", "#", "/", "\\", '"', "<", ">", "|", " ", "\t", "\n", "\r"}
    invalid_chars.update({":", "*", "?"})

    return not any(char in invalid_chars for char in index_name)


def is_child_object(value: Any) -> bool:
    """判断字段值是否为子对象（嵌套实体或实体列表）."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return True
    if isinstance(value, (list, tuple)):
        return any(is_child_object(item) for item in value)
    return False


def to_document_value(value: Any) -> Any:
    """将字段值转换为可 JSON 序列化的值."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            f.name: to_document_value(getattr(value, f.name))
            for f in dataclasses.fields(value)
        }
    if isinstance(value, dict):
        return {str(k): to_document_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_document_value(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    # datetime 是 date 的子类
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    return value
