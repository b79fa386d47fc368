"""elasticcrud 类型定义模块."""

from typing import Any, Dict, Union

# 文档字典类型（_source 或序列化后的实体）
DocumentDict = Dict[str, Any]

# 实体ID类型，入队时统一转换为字符串
EntityId = Union[str, int]
