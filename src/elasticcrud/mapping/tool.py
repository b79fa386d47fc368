"""实体映射核心工具类.

ElasticsearchMapping 决定实体类型对应的索引名称和文档类型，
并负责实体与 _source 文档之间的转换；ElasticsearchMappingResolver
按实体类型查找映射，未注册的类型使用默认映射。
"""

import dataclasses
import logging
from collections.abc import Mapping
from typing import Any

from ..typing import DocumentDict
from .exceptions import EntityParseError, MappingResolveError
from .utils import is_child_object, to_document_value, validate_index_name

logger = logging.getLogger(__name__)


class ElasticsearchMapping:
    """默认实体映射.

    - 索引名称: 类型名小写 + "s"，例如 Skill -> skills
    - 文档类型: 类型名小写，例如 Skill -> skill
    - 序列化: dataclass 按字段、Mapping 按键、普通对象按公共属性

    可继承并覆盖任意方法以自定义映射。
    """

    def get_index_for_type(self, entity_type: type) -> str:
        return f"{entity_type.__name__.lower()}s"

    def get_document_type(self, entity_type: type) -> str:
        return entity_type.__name__.lower()

    def serialize_entity(
        self, entity: Any, include_child_objects: bool = True
    ) -> DocumentDict:
        """将实体转换为文档字典.

        Args:
            entity: 实体实例
            include_child_objects: 是否包含子对象（嵌套 dataclass 或其列表）

        Returns:
            可 JSON 序列化的文档字典
        """
        if dataclasses.is_dataclass(entity) and not isinstance(entity, type):
            fields = {f.name: getattr(entity, f.name) for f in dataclasses.fields(entity)}
        elif isinstance(entity, Mapping):
            fields = dict(entity)
        elif hasattr(entity, "__dict__"):
            fields = {k: v for k, v in vars(entity).items() if not k.startswith("_")}
        else:
            raise MappingResolveError(
                f"无法序列化类型为 {type(entity).__name__} 的实体"
            )

        return {
            str(name): to_document_value(value)
            for name, value in fields.items()
            if include_child_objects or not is_child_object(value)
        }

    def parse_entity(self, source: DocumentDict, entity_type: type) -> Any:
        """将 _source 文档还原为实体.

        dataclass 只使用 init 字段，文档中多余的键被忽略。
        嵌套的子对象保持为字典。

        Raises:
            EntityParseError: 文档无法构造为目标类型时抛出
        """
        try:
            if dataclasses.is_dataclass(entity_type):
                kwargs = {
                    f.name: source[f.name]
                    for f in dataclasses.fields(entity_type)
                    if f.init and f.name in source
                }
                return entity_type(**kwargs)
            if issubclass(entity_type, dict):
                return entity_type(source)
            entity = entity_type.__new__(entity_type)
            entity.__dict__.update(source)
            return entity
        except (TypeError, AttributeError) as e:
            raise EntityParseError(
                f"无法将文档解析为 {entity_type.__name__}: {str(e)}"
            ) from e


class ElasticsearchMappingResolver:
    """映射解析器.

    Examples:
        >>> resolver = ElasticsearchMappingResolver()
        >>> resolver.add_mapping(Skill, SkillMapping())
        >>> resolver.get_mapping(Skill).get_index_for_type(Skill)
    """

    def __init__(self, default_mapping: ElasticsearchMapping | None = None):
        self._default_mapping = default_mapping or ElasticsearchMapping()
        self._mappings: dict[type, ElasticsearchMapping] = {}

    def add_mapping(self, entity_type: type, mapping: ElasticsearchMapping) -> None:
        """为实体类型注册自定义映射."""
        logger.debug(f"注册映射: {entity_type.__name__} -> {type(mapping).__name__}")
        self._mappings[entity_type] = mapping

    def get_mapping(self, entity_type: type) -> ElasticsearchMapping:
        """获取实体类型的映射.

        Raises:
            MappingResolveError: 映射得到的索引名称不合法时抛出
        """
        if not isinstance(entity_type, type):
            raise MappingResolveError(f"实体类型必须是 type，当前值: {entity_type!r}")

        mapping = self._mappings.get(entity_type, self._default_mapping)
        index_name = mapping.get_index_for_type(entity_type)
        if not validate_index_name(index_name):
            raise MappingResolveError(
                f"类型 {entity_type.__name__} 映射的索引名称 '{index_name}' 不合法"
            )
        return mapping

    def resolve(self, entity_type: type) -> tuple[str, str]:
        """解析实体类型对应的 (索引名称, 文档类型)."""
        mapping = self.get_mapping(entity_type)
        return (
            mapping.get_index_for_type(entity_type),
            mapping.get_document_type(entity_type),
        )
