"""操作结果数据模型定义模块."""

from dataclasses import dataclass, field
from enum import Enum
from http import HTTPStatus
from typing import Generic, TypeVar

from ..bulk.exceptions import BulkPartialFailureError
from ..bulk.models import BulkItemOutcome
from .exceptions import ElasticsearchStatusError, OperationCancelledError

T = TypeVar("T")

# 客户端主动取消请求（nginx 约定的 499）
CLIENT_CLOSED_REQUEST = 499

NOTHING_TO_SAVE = "Nothing to save"
OPERATION_CANCELLED = "OperationCancelled"


class FailureKind(Enum):
    """操作失败类型."""

    BAD_REQUEST = "bad_request"
    HTTP_STATUS = "http_status"
    PARTIAL_BULK_FAILURE = "partial_bulk_failure"
    CANCELLED = "cancelled"


@dataclass
class ResultDetails(Generic[T]):
    """所有存储操作的结果封装.

    status 初始为 500，只有得到明确结果（传输层响应或取消）后才会被覆盖。

    Attributes:
        status: HTTP 状态码
        description: 原始响应内容或失败说明
        payload_result: 类型化结果（保存时为发送的请求体，读取时为实体）
        failure: 失败类型，成功时为 None
        error_message: 部分失败时拼接的错误信息
        item_errors: 部分失败时的失败条目

    示例:
        result = await context.save_changes_async()
        if not result.is_success():
            print(result.failure, result.error_message or result.description)
    """

    status: int = HTTPStatus.INTERNAL_SERVER_ERROR.value
    description: str | None = None
    payload_result: T | None = None
    failure: FailureKind | None = None
    error_message: str | None = None
    item_errors: list[BulkItemOutcome] = field(default_factory=list)

    def is_success(self) -> bool:
        """判断操作是否成功."""
        return self.failure is None and 200 <= self.status < 300

    def raise_for_failure(self) -> None:
        """失败时抛出对应的结构化异常.

        Raises:
            BulkPartialFailureError: bulk 部分条目失败
            OperationCancelledError: 请求被取消
            ElasticsearchStatusError: 其他非成功状态
        """
        if self.is_success():
            return
        if self.failure is FailureKind.PARTIAL_BULK_FAILURE:
            raise BulkPartialFailureError(self.error_message or "", self.item_errors)
        if self.failure is FailureKind.CANCELLED:
            raise OperationCancelledError(self.description or OPERATION_CANCELLED)
        raise ElasticsearchStatusError(self.status, self.description)
