from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping, Sequence

from livedb_es.backend.client import ElasticsearchClient
from livedb_es.config import Settings
from livedb_es.core.records import Snapshot
from livedb_es.persistence.base import OperationLog, SnapshotStore
from livedb_es.persistence.elastic import ElasticsearchOperationLog, ElasticsearchSnapshotStore


logger = logging.getLogger(__name__)


class LiveDb:
    """The livedb storage surface: a snapshot store and an op log behind one handle."""

    def __init__(
        self,
        snapshots: SnapshotStore,
        ops: OperationLog,
        on_close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._snapshots = snapshots
        self._ops = ops
        self._on_close = on_close

    @classmethod
    async def connect(cls, settings: Settings | None = None) -> LiveDb:
        """Open an Elasticsearch-backed instance, creating its indices when missing."""
        settings = settings or Settings()
        es = ElasticsearchClient(settings.elasticsearch, settings.store)
        await es.initialize()
        logger.info("connected to %s", ", ".join(settings.elasticsearch.hosts))
        return cls(
            snapshots=ElasticsearchSnapshotStore(es.client, settings.store),
            ops=ElasticsearchOperationLog(es.client, settings.store),
            on_close=es.close,
        )

    async def close(self) -> None:
        if self._on_close is not None:
            await self._on_close()
            self._on_close = None

    async def get_snapshot(self, collection: str, doc_id: str) -> Snapshot | None:
        return await self._snapshots.get_snapshot(collection, doc_id)

    async def write_snapshot(self, collection: str, doc_id: str, data: Any) -> Any:
        return await self._snapshots.write_snapshot(collection, doc_id, data)

    async def bulk_get_snapshot(self, requests: Mapping[str, Sequence[str]]) -> dict[str, dict[str, Any]]:
        return await self._snapshots.bulk_get_snapshot(requests)

    async def write_op(self, collection: str, doc_id: str, op: Mapping[str, Any]) -> dict[str, Any]:
        return await self._ops.append_op(collection, doc_id, op)

    async def get_version(self, collection: str, doc_id: str) -> int:
        return await self._ops.next_version(collection, doc_id)

    async def get_ops(
        self, collection: str, doc_id: str, start: int, end: int | None = None
    ) -> list[dict[str, Any]]:
        return await self._ops.get_ops(collection, doc_id, start, end)
