"""ES 客户端工厂工具模块.

提供 ESClientFactory 类，用于创建和管理 ElasticsearchContext 使用的
异步 Elasticsearch 客户端。

使用示例:
    from elasticcrud.connection import ESClientFactory, ClusterConfig

    async with ESClientFactory(ClusterConfig(hosts=["http://localhost:9200"])) as factory:
        client = factory.get_client()
"""

from __future__ import annotations

import logging

from elasticsearch import AsyncElasticsearch
from elasticsearch.serializer import TextSerializer

from .models import ClusterConfig, ConnectionConfig

logger = logging.getLogger(__name__)

# JSON 响应体以原始文本返回，由调用方自行解析
RAW_BODY_SERIALIZERS = {"application/json": TextSerializer()}


class ESClientFactory:
    """异步 Elasticsearch 客户端工厂.

    根据集群配置和连接池配置惰性创建并缓存单个 AsyncElasticsearch 实例，
    支持多种认证方式和异步上下文管理器。

    Attributes:
        _cluster: 集群配置
        _connection_config: 连接池配置
        _client: 缓存的客户端实例

    Examples:
        >>> factory = ESClientFactory(ClusterConfig(hosts=["http://localhost:9200"]))
        >>> client = factory.get_client()
    """

    def __init__(
        self,
        cluster: ClusterConfig,
        connection_config: ConnectionConfig | None = None,
    ) -> None:
        """初始化客户端工厂.

        Args:
            cluster: 集群配置
            connection_config: 连接池配置，默认使用 ConnectionConfig 的默认值
        """
        self._cluster = cluster
        self._connection_config = connection_config or ConnectionConfig()
        self._client: AsyncElasticsearch | None = None

    def _create_client(self) -> AsyncElasticsearch:
        """根据集群配置创建 AsyncElasticsearch 客户端实例.

        根据认证方式（Basic Auth / API Key / Bearer Token / 无认证）
        和 SSL 配置构建客户端。传输层重试被关闭，JSON 响应体不做反序列化，
        response.body 为服务端返回的原始文本。

        Returns:
            AsyncElasticsearch 客户端实例
        """
        cluster_config = self._cluster
        kwargs: dict = {
            "hosts": cluster_config.hosts,
            "max_retries": 0,
            "retry_on_timeout": False,
            "request_timeout": self._connection_config.request_timeout,
            "http_compress": self._connection_config.http_compress,
            "connections_per_node": self._connection_config.max_connections,
            "serializers": RAW_BODY_SERIALIZERS,
        }

        # Basic Auth 认证
        if cluster_config.username and cluster_config.password:
            kwargs["basic_auth"] = (
                cluster_config.username,
                cluster_config.password,
            )

        # API Key 认证
        if cluster_config.api_key:
            kwargs["api_key"] = cluster_config.api_key

        # Bearer Token 认证
        if cluster_config.bearer_token:
            kwargs["bearer_auth"] = cluster_config.bearer_token

        # SSL/TLS 配置
        if cluster_config.ca_certs:
            kwargs["ca_certs"] = cluster_config.ca_certs
        kwargs["verify_certs"] = cluster_config.verify_certs

        logger.info(f"创建异步 ES 客户端: hosts={cluster_config.hosts}")
        return AsyncElasticsearch(**kwargs)

    def get_client(self) -> AsyncElasticsearch:
        """获取客户端，首次调用时创建并缓存.

        Returns:
            AsyncElasticsearch 客户端实例
        """
        if self._client is None:
            self._client = self._create_client()
        return self._client

    async def close(self) -> None:
        """关闭已创建的客户端.

        关闭后可重新调用 get_client() 创建新的客户端。
        """
        if self._client is None:
            return
        client, self._client = self._client, None
        await client.close()

    async def __aenter__(self) -> ESClientFactory:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
