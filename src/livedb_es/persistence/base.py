from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence

from livedb_es.core.records import Snapshot


class SnapshotStore(Protocol):
    async def get_snapshot(self, collection: str, doc_id: str) -> Snapshot | None: ...

    async def write_snapshot(self, collection: str, doc_id: str, data: Any) -> Any: ...

    async def bulk_get_snapshot(self, requests: Mapping[str, Sequence[str]]) -> dict[str, dict[str, Any]]: ...


class OperationLog(Protocol):
    async def append_op(self, collection: str, doc_id: str, op: Mapping[str, Any]) -> dict[str, Any]: ...

    async def next_version(self, collection: str, doc_id: str) -> int: ...

    async def get_ops(
        self, collection: str, doc_id: str, start: int, end: int | None = None
    ) -> list[dict[str, Any]]: ...
