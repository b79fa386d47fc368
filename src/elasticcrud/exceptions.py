"""elasticcrud 异常定义模块."""


class ElasticsearchCrudError(Exception):
    """elasticcrud 基础异常类."""

    pass
