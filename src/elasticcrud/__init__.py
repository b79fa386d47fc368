"""elasticcrud - Elasticsearch 工作单元客户端.

累积实体的新增/更新/删除变更，通过一次 bulk 请求提交，
并将 bulk 响应中的条目级失败汇总为结构化结果。

主要功能:
    - ElasticsearchContext: 变更跟踪、bulk 提交、按 ID 读取、删除索引
    - ElasticsearchMappingResolver: 实体类型到索引/文档类型的映射
    - ESClientFactory: 异步 Elasticsearch 客户端创建

使用示例:
    from elasticcrud import ElasticsearchContext

    async with ElasticsearchContext("http://localhost:9200") as context:
        context.add_update_entity(skill, skill.id)
        result = await context.save_changes_async()
"""

__version__ = "0.1.0"

# 导出批量变更组件
from elasticcrud.bulk import (
    BulkAction,
    BulkEncodingError,
    BulkItemOutcome,
    BulkOperationError,
    BulkPartialFailureError,
    BulkPayload,
    BulkPayloadEncoder,
    BulkResponseParser,
    PendingChange,
    PendingChangeSet,
)

# 导出连接配置
from elasticcrud.connection import (
    ClusterConfig,
    ConnectionConfig,
    ConnectionConfigError,
    ESClientFactory,
)

# 导出上下文
from elasticcrud.context import (
    ElasticsearchContext,
    ElasticsearchStatusError,
    FailureKind,
    IndexDeleteNotAllowedError,
    OperationCancelledError,
    ResultDetails,
)

# 导出异常
from elasticcrud.exceptions import ElasticsearchCrudError

# 导出映射
from elasticcrud.mapping import (
    ElasticsearchMapping,
    ElasticsearchMappingResolver,
    MappingResolveError,
)

__all__ = [
    # 版本
    "__version__",
    # 上下文
    "ElasticsearchContext",
    "ResultDetails",
    "FailureKind",
    # 批量变更
    "BulkAction",
    "BulkItemOutcome",
    "BulkPayload",
    "BulkPayloadEncoder",
    "BulkResponseParser",
    "PendingChange",
    "PendingChangeSet",
    # 映射
    "ElasticsearchMapping",
    "ElasticsearchMappingResolver",
    # 连接
    "ClusterConfig",
    "ConnectionConfig",
    "ESClientFactory",
    # 异常
    "ElasticsearchCrudError",
    "ConnectionConfigError",
    "MappingResolveError",
    "BulkOperationError",
    "BulkEncodingError",
    "BulkPartialFailureError",
    "ElasticsearchStatusError",
    "IndexDeleteNotAllowedError",
    "OperationCancelledError",
]
