"""实体映射模块.

负责实体类型到索引名称/文档类型的解析，以及实体与 _source 文档之间的转换。

示例用法:
    >>> from elasticcrud.mapping import ElasticsearchMappingResolver
    >>> resolver = ElasticsearchMappingResolver()
    >>> resolver.resolve(Skill)
    ('skills', 'skill')
"""

from .exceptions import EntityParseError, MappingError, MappingResolveError
from .tool import ElasticsearchMapping, ElasticsearchMappingResolver
from .utils import validate_index_name

__all__ = [
    "ElasticsearchMapping",
    "ElasticsearchMappingResolver",
    "validate_index_name",
    "MappingError",
    "MappingResolveError",
    "EntityParseError",
]
