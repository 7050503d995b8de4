"""Async Elasticsearch client initialization."""

from __future__ import annotations

from elasticsearch import AsyncElasticsearch

from livedb_es.config import ElasticsearchConfig, StoreConfig
from livedb_es.persistence.elastic import ensure_indices


class ElasticsearchClient:
    """Manages the async Elasticsearch client and the adapter's indices."""

    def __init__(self, config: ElasticsearchConfig, store: StoreConfig) -> None:
        self._config = config
        self._store = store
        self._client: AsyncElasticsearch | None = None

    async def initialize(self) -> None:
        """Create the client and make sure the snapshot and ops indices exist."""
        if self._client is not None:
            return
        client = AsyncElasticsearch(
            list(self._config.hosts),
            api_key=self._config.api_key or None,
            request_timeout=self._config.request_timeout,
        )
        try:
            await ensure_indices(client, self._store)
        except Exception:
            await client.close()
            raise
        self._client = client

    async def close(self) -> None:
        """Close the underlying client."""
        if self._client:
            await self._client.close()
            self._client = None

    @property
    def client(self) -> AsyncElasticsearch:
        if self._client is None:
            raise RuntimeError("ElasticsearchClient not initialized, call initialize() first")
        return self._client
