"""ElasticsearchContext 单元测试.

覆盖 bulk 保存（空保存、成功、部分失败、400、其他状态、取消、并发保护）、
按 ID 读取、删除索引、同步接口的异常转换以及生命周期管理。
"""

import asyncio
import json
from dataclasses import dataclass
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from elasticsearch import ApiError, AsyncElasticsearch
from elasticsearch import ConnectionError as ESConnectionError

from elasticcrud.bulk import BulkPartialFailureError
from elasticcrud.context import (
    CLIENT_CLOSED_REQUEST,
    NOTHING_TO_SAVE,
    ConcurrentSaveError,
    ElasticsearchContext,
    ElasticsearchStatusError,
    FailureKind,
    IndexDeleteNotAllowedError,
    OperationCancelledError,
)
from elasticcrud.exceptions import ElasticsearchCrudError
from elasticcrud.mapping import MappingResolveError


@dataclass
class Skill:
    id: int
    name: str


# ============================================================
# 辅助函数与 fixtures
# ============================================================


def make_response(status: int, body) -> SimpleNamespace:
    """构造 perform_request 的返回值.

    工厂创建的客户端不反序列化 JSON，响应体为服务端返回的原始文本。
    """
    if isinstance(body, (dict, list)):
        body = json.dumps(body, separators=(",", ":"))
    return SimpleNamespace(meta=SimpleNamespace(status=status), body=body)


def make_api_error(status: int, body) -> ApiError:
    """构造非 2xx 响应对应的 ApiError，响应体同样为原始文本."""
    if isinstance(body, (dict, list)):
        body = json.dumps(body, separators=(",", ":"))
    return ApiError(
        message=f"status {status}", meta=SimpleNamespace(status=status), body=body
    )


EMPTY_BULK_RESPONSE = '{"took":3,"errors":false,"items":[]}'


def sent_body(client) -> str:
    return client.perform_request.call_args.kwargs["body"].decode("utf-8")


@pytest.fixture
def client():
    """创建模拟的 AsyncElasticsearch 客户端."""
    client = MagicMock(spec=AsyncElasticsearch)
    client.perform_request = AsyncMock(
        return_value=make_response(200, EMPTY_BULK_RESPONSE)
    )
    client.close = AsyncMock()
    return client


@pytest.fixture
def context(client):
    """创建使用模拟客户端的上下文."""
    return ElasticsearchContext("http://localhost:9200", client=client)


@pytest.fixture
def sync_context(client):
    """创建同步使用的上下文，测试结束后关闭私有事件循环."""
    context = ElasticsearchContext("http://localhost:9200", client=client)
    yield context
    context.close()


# ============================================================
# bulk 保存测试
# ============================================================


class TestSaveChangesAsync:
    """save_changes_async 测试."""

    @pytest.mark.asyncio
    async def test_nothing_to_save(self, context, client) -> None:
        """测试待提交列表为空时不发起请求."""
        result = await context.save_changes_async()

        assert result.status == 200
        assert result.description == NOTHING_TO_SAVE
        assert result.is_success()
        client.perform_request.assert_not_called()

    @pytest.mark.asyncio
    async def test_single_bulk_post(self, context, client) -> None:
        """测试发起一次 POST /_bulk 请求."""
        context.add_update_entity(Skill(id=1, name="python"), 1)
        context.delete_entity(Skill, 2)

        await context.save_changes_async()

        client.perform_request.assert_awaited_once()
        args = client.perform_request.call_args
        assert args.args == ("POST", "/_bulk")
        assert args.kwargs["headers"]["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_success_with_empty_items(self, context, client) -> None:
        """测试 items 为空时成功，payload_result 等于发送的请求体."""
        context.add_update_entity(Skill(id=1, name="python"), 1)

        result = await context.save_changes_async()

        assert result.is_success()
        assert result.status == 200
        assert result.payload_result == sent_body(client)
        assert result.description == EMPTY_BULK_RESPONSE
        assert len(context.pending_changes) == 0

    @pytest.mark.asyncio
    async def test_success_without_items_field(self, context, client) -> None:
        """测试响应没有 items 字段时成功."""
        client.perform_request.return_value = make_response(200, {"took": 1})
        context.delete_entity(Skill, 1)

        result = await context.save_changes_async()

        assert result.is_success()
        assert result.payload_result == sent_body(client)

    @pytest.mark.asyncio
    async def test_wire_order_preserved(self, context, client) -> None:
        """测试请求体按加入顺序输出."""
        context.add_update_entity(Skill(id=1, name="a"), "a")
        context.delete_entity(Skill, "b")
        context.add_update_entity(Skill(id=3, name="c"), "c")

        await context.save_changes_async()

        lines = [json.loads(line) for line in sent_body(client).splitlines()]
        assert [next(iter(line)) for line in lines] == [
            "index",
            "id",
            "delete",
            "index",
            "id",
        ]
        assert lines[2]["delete"]["_id"] == "b"

    @pytest.mark.asyncio
    async def test_varied_item_statuses_succeed(self, context, client) -> None:
        """测试非 404 删除的条目状态不影响整体成功."""
        client.perform_request.return_value = make_response(
            200,
            {
                "errors": True,
                "items": [
                    {"index": {"_index": "skills", "_id": "1", "status": 201}},
                    {"index": {"_index": "skills", "_id": "2", "status": 400}},
                    {"delete": {"_index": "skills", "_id": "3", "status": 200}},
                ],
            },
        )
        context.add_update_entity(Skill(id=1, name="a"), 1)

        result = await context.save_changes_async()

        assert result.is_success()
        assert result.failure is None

    @pytest.mark.asyncio
    async def test_unrecognized_item_status_accepted(self, context, client) -> None:
        """测试条目状态码无法识别时保存不抛出异常."""
        client.perform_request.return_value = make_response(
            200, {"items": [{"index": {"_index": "skills", "_id": "1", "status": "n/a"}}]}
        )
        context.add_update_entity(Skill(id=1, name="a"), 1)

        result = await context.save_changes_async()

        assert result.is_success()

    @pytest.mark.asyncio
    async def test_partial_failure_delete_not_found(self, context, client) -> None:
        """测试 404 的删除条目使整体结果失败."""
        body = {
            "items": [
                {"index": {"_index": "skills", "_type": "skill", "_id": "1", "status": 200}},
                {"delete": {"_index": "skills", "_type": "skill", "_id": "42", "status": 404}},
            ]
        }
        client.perform_request.return_value = make_response(200, body)
        context.add_update_entity(Skill(id=1, name="a"), 1)
        context.delete_entity(Skill, 42)

        result = await context.save_changes_async()

        assert not result.is_success()
        assert result.status == 404
        assert result.failure is FailureKind.PARTIAL_BULK_FAILURE
        assert "skills, skill, 42" in result.error_message
        assert [item.doc_id for item in result.item_errors] == ["42"]
        assert result.description == json.dumps(body, separators=(",", ":"))
        assert result.payload_result == sent_body(client)
        assert len(context.pending_changes) == 0

    @pytest.mark.asyncio
    async def test_bad_request(self, context, client) -> None:
        """测试 400 时 description 为原始响应内容."""
        error_body = '{"error":{"type":"illegal_argument_exception"},"status":400}'
        client.perform_request.side_effect = make_api_error(400, error_body)
        context.add_update_entity(Skill(id=1, name="a"), 1)

        result = await context.save_changes_async()

        assert result.status == 400
        assert result.failure is FailureKind.BAD_REQUEST
        assert result.description == error_body
        assert result.payload_result is None
        assert len(context.pending_changes) == 0

    @pytest.mark.asyncio
    async def test_decoded_body_keeps_compact_form(self, context, client) -> None:
        """测试注入客户端返回已解析的响应体时按紧凑格式还原."""
        client.perform_request.side_effect = ApiError(
            message="illegal_argument_exception",
            meta=SimpleNamespace(status=400),
            body={"error": {"type": "illegal_argument_exception"}, "status": 400},
        )
        context.add_update_entity(Skill(id=1, name="a"), 1)

        result = await context.save_changes_async()

        assert result.description == (
            '{"error":{"type":"illegal_argument_exception"},"status":400}'
        )

    @pytest.mark.asyncio
    async def test_other_status_returns_bare_status(self, context, client) -> None:
        """测试其他非成功状态只返回状态码."""
        client.perform_request.side_effect = make_api_error(503, {"error": "down"})
        context.add_update_entity(Skill(id=1, name="a"), 1)

        result = await context.save_changes_async()

        assert result.status == 503
        assert result.failure is FailureKind.HTTP_STATUS
        assert result.description is None
        assert len(context.pending_changes) == 0

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self, context, client) -> None:
        """测试传输层错误向上抛出且待提交列表被清空."""
        client.perform_request.side_effect = ESConnectionError("connection refused")
        context.add_update_entity(Skill(id=1, name="a"), 1)

        with pytest.raises(ESConnectionError):
            await context.save_changes_async()

        assert len(context.pending_changes) == 0

    @pytest.mark.asyncio
    async def test_encoding_failure_before_dispatch(self, context, client) -> None:
        """测试编码失败时不发起请求且待提交列表被清空."""
        context.add_update_entity(Skill(id=1, name="a"), 1)
        context.add_update_entity(42, 2)

        with pytest.raises(MappingResolveError):
            await context.save_changes_async()

        client.perform_request.assert_not_called()
        assert len(context.pending_changes) == 0

    @pytest.mark.asyncio
    async def test_failed_save_does_not_retry(self, context, client) -> None:
        """测试失败后再次保存不会重发之前的变更."""
        client.perform_request.side_effect = make_api_error(500, None)
        context.add_update_entity(Skill(id=1, name="a"), 1)
        await context.save_changes_async()

        result = await context.save_changes_async()

        assert result.description == NOTHING_TO_SAVE
        assert client.perform_request.await_count == 1


class TestCancellation:
    """取消范围测试."""

    @pytest.mark.asyncio
    async def test_cancel_before_save(self, context, client) -> None:
        """测试取消后保存直接返回取消结果."""
        context.cancel()
        context.add_update_entity(Skill(id=1, name="a"), 1)

        result = await context.save_changes_async()

        assert context.is_cancelled
        assert result.status == CLIENT_CLOSED_REQUEST
        assert result.failure is FailureKind.CANCELLED
        client.perform_request.assert_not_called()
        assert len(context.pending_changes) == 0

    @pytest.mark.asyncio
    async def test_cancel_inflight_save(self, context, client) -> None:
        """测试取消进行中的请求返回取消结果而不是抛出异常."""
        started = asyncio.Event()

        async def hang(*args, **kwargs):
            started.set()
            await asyncio.Event().wait()

        client.perform_request.side_effect = hang
        context.add_update_entity(Skill(id=1, name="a"), 1)

        task = asyncio.create_task(context.save_changes_async())
        await started.wait()
        context.cancel()
        result = await task

        assert result.failure is FailureKind.CANCELLED
        assert result.status == CLIENT_CLOSED_REQUEST
        assert len(context.pending_changes) == 0

    @pytest.mark.asyncio
    async def test_cancel_inflight_get(self, context, client) -> None:
        """测试取消进行中的读取请求."""
        started = asyncio.Event()

        async def hang(*args, **kwargs):
            started.set()
            await asyncio.Event().wait()

        client.perform_request.side_effect = hang

        task = asyncio.create_task(context.get_entity_async(Skill, 1))
        await started.wait()
        context.cancel()
        result = await task

        assert result.failure is FailureKind.CANCELLED
        assert result.payload_result is None

    @pytest.mark.asyncio
    async def test_concurrent_save_rejected(self, context, client) -> None:
        """测试同一上下文上的并发保存被拒绝."""
        started = asyncio.Event()

        async def hang(*args, **kwargs):
            started.set()
            await asyncio.Event().wait()

        client.perform_request.side_effect = hang
        context.add_update_entity(Skill(id=1, name="a"), 1)
        task = asyncio.create_task(context.save_changes_async())
        await started.wait()

        context.add_update_entity(Skill(id=2, name="b"), 2)
        with pytest.raises(ConcurrentSaveError):
            await context.save_changes_async()

        context.cancel()
        await task
        assert [change.entity_id for change in context.pending_changes] == ["2"]

    @pytest.mark.asyncio
    async def test_changes_added_during_save_kept(self, context, client) -> None:
        """测试保存进行期间加入的变更留给下一次保存."""
        started = asyncio.Event()
        release = asyncio.Event()

        async def delayed(*args, **kwargs):
            started.set()
            await release.wait()
            return make_response(200, EMPTY_BULK_RESPONSE)

        client.perform_request.side_effect = delayed
        context.add_update_entity(Skill(id=1, name="a"), 1)
        task = asyncio.create_task(context.save_changes_async())
        await started.wait()

        context.add_update_entity(Skill(id=2, name="b"), 2)
        release.set()
        first = await task

        assert first.is_success()
        assert [change.entity_id for change in context.pending_changes] == ["2"]

        client.perform_request.side_effect = None
        await context.save_changes_async()
        action = json.loads(sent_body(client).splitlines()[0])
        assert action["index"]["_id"] == "2"
        assert len(context.pending_changes) == 0


# ============================================================
# 单资源操作测试
# ============================================================


class TestGetEntityAsync:
    """get_entity_async 测试."""

    @pytest.mark.asyncio
    async def test_get_with_source(self, context, client) -> None:
        """测试解析 _source 为实体."""
        client.perform_request.return_value = make_response(
            200, {"_id": "1", "found": True, "_source": {"id": 1, "name": "python"}}
        )

        result = await context.get_entity_async(Skill, 1)

        client.perform_request.assert_awaited_once()
        assert client.perform_request.call_args.args == ("GET", "/skills/skill/1")
        assert result.is_success()
        assert result.payload_result == Skill(id=1, name="python")

    @pytest.mark.asyncio
    async def test_get_without_source(self, context, client) -> None:
        """测试没有 _source 时返回空结果而不是错误."""
        client.perform_request.return_value = make_response(200, {"_id": "1"})

        result = await context.get_entity_async(Skill, 1)

        assert result.status == 200
        assert result.failure is None
        assert result.payload_result is None

    @pytest.mark.asyncio
    async def test_get_not_found(self, context, client) -> None:
        """测试 404 只返回状态码."""
        client.perform_request.side_effect = make_api_error(404, {"found": False})

        result = await context.get_entity_async(Skill, 1)

        assert result.status == 404
        assert result.failure is FailureKind.HTTP_STATUS
        assert result.payload_result is None

    @pytest.mark.asyncio
    async def test_get_bad_request(self, context, client) -> None:
        """测试 400 时 description 为原始响应内容."""
        client.perform_request.side_effect = make_api_error(400, "bad id")

        result = await context.get_entity_async(Skill, 1)

        assert result.failure is FailureKind.BAD_REQUEST
        assert result.description == "bad id"

    @pytest.mark.asyncio
    async def test_get_quotes_id(self, context, client) -> None:
        """测试文档ID被转义."""
        client.perform_request.return_value = make_response(200, {})

        await context.get_entity_async(Skill, "a/b c")

        assert client.perform_request.call_args.args[1] == "/skills/skill/a%2Fb%20c"

    @pytest.mark.asyncio
    async def test_get_without_document_type(self, client) -> None:
        """测试关闭 include_document_type 时读取路径使用 _doc."""
        client.perform_request.return_value = make_response(
            200, {"_source": {"id": 1, "name": "python"}}
        )
        context = ElasticsearchContext(
            "http://localhost:9200", client=client, include_document_type=False
        )

        result = await context.get_entity_async(Skill, 1)

        assert client.perform_request.call_args.args == ("GET", "/skills/_doc/1")
        assert result.payload_result == Skill(id=1, name="python")


class TestDeleteIndexAsync:
    """delete_index_async 测试."""

    @pytest.mark.asyncio
    async def test_delete_not_allowed(self, context, client) -> None:
        """测试未开启删除索引时不发起请求."""
        with pytest.raises(IndexDeleteNotAllowedError):
            await context.delete_index_async(Skill)

        assert client.perform_request.call_count == 0

    @pytest.mark.asyncio
    async def test_delete_allowed(self, context, client) -> None:
        """测试开启后删除索引."""
        client.perform_request.return_value = make_response(200, '{"acknowledged":true}')
        context.allow_delete_for_index = True

        result = await context.delete_index_async(Skill)

        assert client.perform_request.call_args.args == ("DELETE", "/skills")
        assert result.is_success()
        assert result.description == '{"acknowledged":true}'

    @pytest.mark.asyncio
    async def test_delete_bad_request(self, client) -> None:
        """测试 400 时 description 为原始响应内容."""
        client.perform_request.side_effect = make_api_error(400, "cannot delete")
        context = ElasticsearchContext(
            "http://localhost:9200", client=client, allow_delete_for_index=True
        )

        result = await context.delete_index_async(Skill)

        assert result.status == 400
        assert result.description == "cannot delete"


# ============================================================
# 同步接口测试
# ============================================================


class TestSyncFacade:
    """同步接口测试."""

    def test_save_changes_success(self, sync_context, client) -> None:
        """测试同步保存成功返回结果."""
        sync_context.add_update_entity(Skill(id=1, name="a"), 1)

        result = sync_context.save_changes()

        assert result.is_success()
        assert result.payload_result == sent_body(client)

    def test_save_changes_nothing_to_save(self, sync_context) -> None:
        """测试同步保存空列表."""
        assert sync_context.save_changes().description == NOTHING_TO_SAVE

    def test_save_changes_partial_failure_raises(self, sync_context, client) -> None:
        """测试部分失败时抛出 BulkPartialFailureError."""
        client.perform_request.return_value = make_response(
            200,
            {"items": [{"delete": {"_index": "skills", "_type": "skill", "_id": "9", "status": 404}}]},
        )
        sync_context.delete_entity(Skill, 9)

        with pytest.raises(BulkPartialFailureError, match="skills, skill, 9") as exc_info:
            sync_context.save_changes()

        assert exc_info.value.items[0].doc_id == "9"
        assert len(sync_context.pending_changes) == 0

    def test_save_changes_bad_request_raises(self, sync_context, client) -> None:
        """测试 400 时抛出 ElasticsearchStatusError."""
        client.perform_request.side_effect = make_api_error(400, "bad payload")
        sync_context.add_update_entity(Skill(id=1, name="a"), 1)

        with pytest.raises(ElasticsearchStatusError) as exc_info:
            sync_context.save_changes()

        assert exc_info.value.status == 400
        assert exc_info.value.description == "bad payload"

    def test_save_changes_cancelled_raises(self, sync_context) -> None:
        """测试取消后同步保存抛出 OperationCancelledError."""
        sync_context.cancel()
        sync_context.add_update_entity(Skill(id=1, name="a"), 1)

        with pytest.raises(OperationCancelledError):
            sync_context.save_changes()

    def test_unexpected_error_wrapped(self, sync_context, client) -> None:
        """测试未知异常被包装为 ElasticsearchCrudError."""
        client.perform_request.side_effect = RuntimeError("boom")
        sync_context.add_update_entity(Skill(id=1, name="a"), 1)

        with pytest.raises(ElasticsearchCrudError, match="boom") as exc_info:
            sync_context.save_changes()

        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_transport_error_not_wrapped(self, sync_context, client) -> None:
        """测试传输层错误原样抛出."""
        client.perform_request.side_effect = ESConnectionError("refused")
        sync_context.add_update_entity(Skill(id=1, name="a"), 1)

        with pytest.raises(ESConnectionError):
            sync_context.save_changes()

    def test_typed_error_not_wrapped(self, sync_context) -> None:
        """测试已是结构化异常的错误原样抛出."""
        with pytest.raises(ElasticsearchCrudError) as exc_info:
            sync_context.delete_index(Skill)

        assert type(exc_info.value) is IndexDeleteNotAllowedError

    def test_get_entity(self, sync_context, client) -> None:
        """测试同步读取返回实体."""
        client.perform_request.return_value = make_response(
            200, {"_source": {"id": 5, "name": "rust"}}
        )

        assert sync_context.get_entity(Skill, 5) == Skill(id=5, name="rust")

    def test_get_entity_not_found_raises(self, sync_context, client) -> None:
        """测试文档不存在时抛出 ElasticsearchStatusError."""
        client.perform_request.side_effect = make_api_error(404, {"found": False})

        with pytest.raises(ElasticsearchStatusError) as exc_info:
            sync_context.get_entity(Skill, 5)

        assert exc_info.value.status == 404

    def test_delete_index(self, sync_context, client) -> None:
        """测试同步删除索引."""
        client.perform_request.return_value = make_response(200, {"acknowledged": True})
        sync_context.allow_delete_for_index = True

        assert sync_context.delete_index(Skill).is_success()

    @pytest.mark.asyncio
    async def test_sync_call_inside_event_loop_rejected(self, context, client) -> None:
        """测试在运行中的事件循环内调用同步接口抛出异常."""
        context.add_update_entity(Skill(id=1, name="a"), 1)

        with pytest.raises(ElasticsearchCrudError, match="异步方法"):
            context.save_changes()

        client.perform_request.assert_not_called()


# ============================================================
# 生命周期测试
# ============================================================


class TestLifecycle:
    """上下文生命周期测试."""

    @pytest.mark.asyncio
    async def test_async_context_manager_closes_client(self, client) -> None:
        """测试 async with 退出时关闭客户端."""
        async with ElasticsearchContext("http://localhost:9200", client=client):
            pass

        client.close.assert_awaited_once()

    def test_context_manager_closes_client(self, client) -> None:
        """测试 with 退出时关闭客户端."""
        with ElasticsearchContext("http://localhost:9200", client=client):
            pass

        client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_closed_context_rejects_requests(self, context, client) -> None:
        """测试关闭后注入的客户端不可再用."""
        await context.aclose()
        context.add_update_entity(Skill(id=1, name="a"), 1)

        with pytest.raises(ElasticsearchCrudError, match="已关闭"):
            await context.save_changes_async()

        assert len(context.pending_changes) == 0

    @pytest.mark.asyncio
    async def test_closed_context_does_not_recreate_client(self) -> None:
        """测试关闭后工厂创建的客户端不会被重新创建."""
        with patch("elasticcrud.connection.tool.AsyncElasticsearch") as mock_es:
            mock_es.return_value.close = AsyncMock()
            context = ElasticsearchContext("http://localhost:9200")
            assert context.client is mock_es.return_value

            await context.aclose()

            mock_es.return_value.close.assert_awaited_once()
            with pytest.raises(ElasticsearchCrudError, match="已关闭"):
                context.client
            mock_es.assert_called_once()
