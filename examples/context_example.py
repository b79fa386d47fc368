"""工作单元上下文使用示例.

本文件展示了如何使用 ElasticsearchContext 累积实体变更并通过一次 bulk 请求提交。
"""

import asyncio
import logging
from dataclasses import dataclass

from elasticcrud import (
    BulkPartialFailureError,
    ElasticsearchContext,
    ElasticsearchMapping,
    ElasticsearchMappingResolver,
    FailureKind,
)

logging.basicConfig(level=logging.DEBUG)


@dataclass
class User:
    id: str
    name: str
    age: int
    city: str


class UserMapping(ElasticsearchMapping):
    """用户索引映射，文档写入 users-v1 索引."""

    def get_index_for_type(self, entity_type):
        return "users-v1"


resolver = ElasticsearchMappingResolver()
resolver.add_mapping(User, UserMapping())


# ==================== 示例1：异步提交 ====================
async def example_save_async():
    """新增、更新、删除后一次提交."""
    async with ElasticsearchContext(
        "http://localhost:9200", resolver, include_document_type=False
    ) as context:
        context.add_update_entity(User("1", "张三", 25, "北京"), "1")
        context.add_update_entity(User("2", "李四", 30, "上海"), "2")
        context.delete_entity(User, "4")

        result = await context.save_changes_async()

        # HTTP 200 也可能包含失败的删除条目
        if result.failure is FailureKind.PARTIAL_BULK_FAILURE:
            print(f"部分失败: {result.error_message}")
            for item in result.item_errors:
                print(f"  [{item.action}] {item.index_name} {item.doc_id}")
        elif not result.is_success():
            print(f"提交失败: status={result.status}, {result.description}")
        else:
            print(f"提交成功:\n{result.payload_result}")

        user = await context.get_entity_async(User, "1")
        print(f"读取结果: status={user.status}, 实体={user.payload_result}")


# ==================== 示例2：同步提交 ====================
def example_save_sync():
    """同步接口在失败时抛出结构化异常."""
    with ElasticsearchContext(
        "http://localhost:9200", resolver, include_document_type=False
    ) as context:
        context.delete_entity(User, "does-not-exist")
        try:
            context.save_changes()
        except BulkPartialFailureError as e:
            print(f"删除失败的条目: {[item.doc_id for item in e.items]}")


# ==================== 示例3：删除索引 ====================
async def example_delete_index():
    """删除索引需要显式开启 allow_delete_for_index."""
    async with ElasticsearchContext(
        "http://localhost:9200", resolver, allow_delete_for_index=True
    ) as context:
        result = await context.delete_index_async(User)
        print(f"删除索引: status={result.status}, {result.description}")


if __name__ == "__main__":
    asyncio.run(example_save_async())
    example_save_sync()
    asyncio.run(example_delete_index())
