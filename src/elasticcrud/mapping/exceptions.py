"""映射解析异常定义模块."""

from ..exceptions import ElasticsearchCrudError


class MappingError(ElasticsearchCrudError):
    """映射层基础异常类."""

    pass


class MappingResolveError(MappingError):
    """实体类型无法解析为索引/文档类型时抛出."""

    pass


class EntityParseError(MappingError):
    """_source 无法还原为实体时抛出."""

    pass
