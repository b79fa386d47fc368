"""ElasticsearchContext 核心工具类."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from http import HTTPStatus
from typing import Any, TypeVar
from urllib.parse import quote

from elasticsearch import ApiError, AsyncElasticsearch, TransportError

from ..bulk import BulkPayloadEncoder, BulkResponseParser, PendingChangeSet
from ..connection import ClusterConfig, ConnectionConfig, ESClientFactory
from ..exceptions import ElasticsearchCrudError
from ..mapping import ElasticsearchMappingResolver
from ..typing import EntityId
from .exceptions import (
    ConcurrentSaveError,
    IndexDeleteNotAllowedError,
    OperationCancelledError,
)
from .models import (
    CLIENT_CLOSED_REQUEST,
    NOTHING_TO_SAVE,
    OPERATION_CANCELLED,
    FailureKind,
    ResultDetails,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

BULK_PATH = "/_bulk"
BULK_HEADERS = {"accept": "application/json", "content-type": "application/json"}
READ_HEADERS = {"accept": "application/json"}
# 不使用映射类型的集群中文档端点的固定类型段
TYPELESS_DOC_ENDPOINT = "_doc"


def _response_text(body: Any) -> str:
    """返回响应体文本.

    工厂创建的客户端直接返回服务端原始文本；注入的客户端若已将 JSON
    解析为对象，则按 Elasticsearch 的紧凑格式重新序列化。
    """
    if body is None:
        return ""
    if isinstance(body, (bytes, bytearray)):
        return body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        return body
    return json.dumps(body, ensure_ascii=False, separators=(",", ":"))


def _response_object(body: Any) -> Any:
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8")
    if isinstance(body, str):
        return json.loads(body) if body.strip() else {}
    return body


class ElasticsearchContext:
    """Elasticsearch 工作单元上下文.

    累积实体的新增/更新/删除变更，在保存时通过一次 bulk 请求提交，
    并将 bulk 响应中的条目级失败汇总为一个结果。同时提供按 ID 读取实体
    和删除索引两个单资源操作。

    异步方法对预期的失败（400、其他非成功状态、bulk 部分失败、取消）
    总是返回 ResultDetails；同步方法在私有事件循环上运行对应的异步方法，
    失败时抛出结构化异常。同一上下文应只使用其中一种方式，且不支持并发保存。

    Args:
        cluster: 集群连接地址或集群配置
        mapping_resolver: 映射解析器，默认为 ElasticsearchMappingResolver()
        connection_config: 连接池配置（仅在未传入 client 时使用）
        client: 预先创建的 AsyncElasticsearch 客户端，所有权转移给上下文
        include_child_objects_in_document: 文档中是否包含子对象，默认为 True
        include_document_type: bulk 元数据中是否写入 _type、读取路径是否使用
            映射类型，默认为 True；关闭时读取路径为 /{index}/_doc/{id}
        allow_delete_for_index: 是否允许删除索引，默认为 False

    Example:
        >>> async with ElasticsearchContext("http://localhost:9200") as context:
        ...     context.add_update_entity(skill, skill.id)
        ...     context.delete_entity(Skill, 3)
        ...     result = await context.save_changes_async()
        ...     if result.failure is FailureKind.PARTIAL_BULK_FAILURE:
        ...         print(result.error_message)
    """

    def __init__(
        self,
        cluster: ClusterConfig | str,
        mapping_resolver: ElasticsearchMappingResolver | None = None,
        *,
        connection_config: ConnectionConfig | None = None,
        client: AsyncElasticsearch | None = None,
        include_child_objects_in_document: bool = True,
        include_document_type: bool = True,
        allow_delete_for_index: bool = False,
    ):
        if isinstance(cluster, str):
            cluster = ClusterConfig.from_url(cluster)
        self.cluster = cluster
        self.mapping_resolver = mapping_resolver or ElasticsearchMappingResolver()
        self.allow_delete_for_index = allow_delete_for_index
        self.include_document_type = include_document_type

        self._factory: ESClientFactory | None = None
        if client is None:
            self._factory = ESClientFactory(cluster, connection_config)
        self._client = client

        self._encoder = BulkPayloadEncoder(
            self.mapping_resolver,
            include_document_type=include_document_type,
            include_child_objects=include_child_objects_in_document,
        )
        self._parser = BulkResponseParser()
        self._pending = PendingChangeSet()
        self._saving = False
        self._cancelled = False
        self._inflight: set[asyncio.Future] = set()
        self._loop: asyncio.AbstractEventLoop | None = None
        logger.info(f"创建 ElasticsearchContext: hosts={cluster.hosts}")

    @property
    def client(self) -> AsyncElasticsearch:
        if self._client is None:
            if self._factory is None:
                raise ElasticsearchCrudError("上下文已关闭")
            self._client = self._factory.get_client()
        return self._client

    @property
    def pending_changes(self) -> PendingChangeSet:
        return self._pending

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    # ========== 变更跟踪 ==========

    def add_update_entity(self, entity: object, entity_id: EntityId) -> None:
        """加入新增或更新变更，不发起任何请求."""
        self._pending.add_or_update(entity, entity_id)

    def delete_entity(self, entity_type: type, entity_id: EntityId) -> None:
        """加入删除变更，不发起任何请求."""
        self._pending.mark_deleted(entity_type, entity_id)

    # ========== 请求与取消 ==========

    def cancel(self) -> None:
        """取消上下文的取消范围.

        正在进行的请求被中止，之后发起的请求直接返回取消结果。
        取消不可恢复，对上下文的整个生命周期有效。
        """
        logger.warning(f"取消上下文, 进行中的请求数: {len(self._inflight)}")
        self._cancelled = True
        for task in list(self._inflight):
            task.cancel()

    async def _perform_request(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        body: bytes | None = None,
    ) -> Any:
        """在上下文的取消范围内发起请求.

        Raises:
            OperationCancelledError: 上下文已取消或请求被 cancel() 中止
            ApiError: 响应状态码非 2xx
            TransportError: 连接失败等传输层错误
        """
        if self._cancelled:
            raise OperationCancelledError(OPERATION_CANCELLED)

        task = asyncio.ensure_future(
            self.client.perform_request(method, path, headers=headers, body=body)
        )
        self._inflight.add(task)
        try:
            return await task
        except asyncio.CancelledError:
            if not self._cancelled:
                raise
            raise OperationCancelledError(OPERATION_CANCELLED) from None
        finally:
            self._inflight.discard(task)

    async def _send(
        self,
        result: ResultDetails,
        method: str,
        path: str,
        headers: dict[str, str],
        body: bytes | None = None,
    ) -> tuple[int, Any]:
        """发起请求并将状态码写入 result，返回 (状态码, 响应体)."""
        try:
            response = await self._perform_request(method, path, headers, body)
            status, response_body = response.meta.status, response.body
        except ApiError as e:
            status, response_body = e.meta.status, e.body
        result.status = status
        return status, response_body

    @staticmethod
    def _apply_failure_status(
        result: ResultDetails, response_body: Any, operation: str
    ) -> ResultDetails:
        logger.warning(f"{operation} 响应状态码: {result.status}")
        if result.status == HTTPStatus.BAD_REQUEST:
            result.failure = FailureKind.BAD_REQUEST
            result.description = _response_text(response_body)
        else:
            result.failure = FailureKind.HTTP_STATUS
        return result

    @staticmethod
    def _apply_cancelled(result: ResultDetails, operation: str) -> ResultDetails:
        logger.warning(f"{operation} 请求已取消")
        result.status = CLIENT_CLOSED_REQUEST
        result.failure = FailureKind.CANCELLED
        result.description = OPERATION_CANCELLED
        return result

    # ========== 异步操作 ==========

    async def save_changes_async(self) -> ResultDetails[str]:
        """提交全部待提交变更.

        待提交列表为空时直接返回成功，不发起请求。本次保存在发送前取走
        全部待提交变更，无论结果如何都不会重发，失败的变更需要调用方重新加入。
        保存进行期间新加入的变更保留在待提交列表中，留给下一次保存。

        Returns:
            成功时 description 为原始响应，payload_result 为发送的请求体；
            bulk 条目中存在 404 的删除时 status 为 404，
            failure 为 PARTIAL_BULK_FAILURE

        Raises:
            ConcurrentSaveError: 同一上下文上已有保存在进行
            MappingResolveError: 实体类型无法解析
            BulkEncodingError: 实体无法编码
        """
        logger.debug("开始保存变更")
        if not self._pending:
            return ResultDetails(status=HTTPStatus.OK.value, description=NOTHING_TO_SAVE)
        if self._saving:
            raise ConcurrentSaveError("同一上下文不支持并发调用 save_changes_async")

        self._saving = True
        result: ResultDetails[str] = ResultDetails()
        changes = self._pending.drain_and_clear()
        try:
            payload = self._encoder.encode(changes)
            logger.debug(
                f"发送 bulk 请求 ({payload.entity_count} 个实体): {payload.content}"
            )
            logger.debug(f"请求 HTTP POST: {BULK_PATH}")
            status, response_body = await self._send(
                result, "POST", BULK_PATH, BULK_HEADERS, payload.content.encode("utf-8")
            )
            if not 200 <= status < 300:
                return self._apply_failure_status(
                    result, response_body, "save_changes_async"
                )

            response_text = _response_text(response_body)
            logger.debug(f"bulk 响应: {response_text}")
            scan = self._parser.scan(_response_object(response_body))

            result.description = response_text
            result.payload_result = payload.content
            if scan.has_failures():
                result.status = HTTPStatus.NOT_FOUND.value
                result.failure = FailureKind.PARTIAL_BULK_FAILURE
                result.error_message = scan.error_message
                result.item_errors = scan.failures
            return result
        except OperationCancelledError:
            return self._apply_cancelled(result, "save_changes_async")
        finally:
            self._saving = False

    async def get_entity_async(
        self, entity_type: type[T], entity_id: EntityId
    ) -> ResultDetails[T]:
        """按 ID 读取实体.

        响应中没有 _source 不视为错误，payload_result 为 None，
        status 为传输层返回的状态码。
        """
        logger.debug(f"读取实体: {entity_type.__name__}, {entity_id}")
        result: ResultDetails[T] = ResultDetails()
        mapping = self.mapping_resolver.get_mapping(entity_type)
        if self.include_document_type:
            doc_type = mapping.get_document_type(entity_type)
        else:
            doc_type = TYPELESS_DOC_ENDPOINT
        path = (
            f"/{mapping.get_index_for_type(entity_type)}"
            f"/{doc_type}"
            f"/{quote(str(entity_id), safe='')}"
        )
        logger.debug(f"请求 HTTP GET: {path}")
        try:
            status, response_body = await self._send(result, "GET", path, READ_HEADERS)
        except OperationCancelledError:
            return self._apply_cancelled(result, "get_entity_async")

        if not 200 <= status < 300:
            return self._apply_failure_status(result, response_body, "get_entity_async")

        logger.debug(f"GET 响应: {_response_text(response_body)}")
        response_object = _response_object(response_body)
        source = (
            response_object.get("_source") if isinstance(response_object, dict) else None
        )
        if source is not None:
            result.payload_result = mapping.parse_entity(source, entity_type)
        return result

    async def delete_index_async(self, entity_type: type) -> ResultDetails[str]:
        """删除实体类型对应的整个索引.

        Raises:
            IndexDeleteNotAllowedError: 未开启 allow_delete_for_index，不会发起请求
        """
        if not self.allow_delete_for_index:
            message = (
                "当前上下文未开启删除索引，如需删除请设置 allow_delete_for_index=True"
            )
            logger.error(message)
            raise IndexDeleteNotAllowedError(message)

        result: ResultDetails[str] = ResultDetails()
        index_name = self.mapping_resolver.get_mapping(entity_type).get_index_for_type(
            entity_type
        )
        logger.warning(f"请求删除索引: {index_name} ({entity_type.__name__})")
        try:
            status, response_body = await self._send(
                result, "DELETE", f"/{index_name}", READ_HEADERS
            )
        except OperationCancelledError:
            return self._apply_cancelled(result, "delete_index_async")

        if not 200 <= status < 300:
            return self._apply_failure_status(
                result, response_body, "delete_index_async"
            )

        result.description = _response_text(response_body)
        logger.debug(f"删除索引响应: {result.description}")
        return result

    # ========== 同步接口 ==========

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            raise ElasticsearchCrudError(
                "同步接口不能在运行中的事件循环内调用，请使用对应的异步方法"
            )
        if self._loop is None or self._loop.is_closed():
            self._loop = asyncio.new_event_loop()
        return self._loop

    def _run_sync(
        self, operation: str, func: Callable[..., Awaitable[Any]], *args: Any
    ) -> Any:
        """在私有事件循环上运行异步方法.

        已是 ElasticsearchCrudError 或 TransportError 的异常原样抛出，
        其他异常包装为 ElasticsearchCrudError。
        """
        loop = self._get_loop()
        try:
            return loop.run_until_complete(func(*args))
        except (ElasticsearchCrudError, TransportError) as e:
            logger.warning(f"{operation} 失败: {str(e)}")
            raise
        except Exception as e:
            logger.warning(f"{operation} 发生未知异常: {str(e)}")
            raise ElasticsearchCrudError(str(e)) from e

    def save_changes(self) -> ResultDetails[str]:
        """同步提交全部待提交变更.

        Raises:
            BulkPartialFailureError: bulk 响应中存在失败的删除条目
            ElasticsearchStatusError: 响应状态码非成功
            OperationCancelledError: 请求被取消
        """
        result = self._run_sync("save_changes", self.save_changes_async)
        result.raise_for_failure()
        return result

    def get_entity(self, entity_type: type[T], entity_id: EntityId) -> T | None:
        """同步按 ID 读取实体，文档不存在时抛出 ElasticsearchStatusError (404)."""
        result = self._run_sync(
            "get_entity", self.get_entity_async, entity_type, entity_id
        )
        result.raise_for_failure()
        return result.payload_result

    def delete_index(self, entity_type: type) -> ResultDetails[str]:
        result = self._run_sync("delete_index", self.delete_index_async, entity_type)
        result.raise_for_failure()
        return result

    # ========== 生命周期 ==========

    async def aclose(self) -> None:
        """释放传输层客户端，关闭后上下文不可再发起请求."""
        factory, self._factory = self._factory, None
        client, self._client = self._client, None
        if factory is not None:
            await factory.close()
        elif client is not None:
            await client.close()

    def close(self) -> None:
        """同步释放传输层客户端并关闭私有事件循环."""
        loop = self._get_loop()
        try:
            loop.run_until_complete(self.aclose())
        finally:
            loop.close()
            self._loop = None

    def __enter__(self) -> ElasticsearchContext:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    async def __aenter__(self) -> ElasticsearchContext:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
