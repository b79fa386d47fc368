"""ElasticsearchContext 异常定义模块."""

from ..exceptions import ElasticsearchCrudError


class ContextError(ElasticsearchCrudError):
    """上下文操作基础异常类."""

    pass


class IndexDeleteNotAllowedError(ContextError):
    """上下文未开启 allow_delete_for_index 时删除索引."""

    pass


class ConcurrentSaveError(ContextError):
    """同一上下文上存在未完成的保存操作.

    被拒绝的保存不会取走待提交变更，这些变更留给下一次保存。
    """

    pass


class OperationCancelledError(ContextError):
    """上下文的取消范围已被取消."""

    pass


class ElasticsearchStatusError(ContextError):
    """请求返回非成功状态码.

    Attributes:
        status: HTTP 状态码
        description: 响应内容（仅 400 时包含）
    """

    def __init__(self, status: int, description: str | None = None):
        message = f"HTTP 状态码: {status}"
        if description:
            message = f"{message}, {description}"
        super().__init__(message)
        self.status = status
        self.description = description
