"""Elasticsearch-backed snapshot store and operation log.

Snapshots live in one index keyed by ``collection/doc_id``; operations live
in a second index keyed by ``collection/doc_id/v``. Identity parts are
percent-quoted before they are joined so ids containing ``/`` never collide.

Operation writes go through ``create`` (``op_type=create``), which Elasticsearch
rejects with 409 when the ``_id`` already exists. That rejection is the
first-writer-wins guarantee the op log relies on.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Sequence
from urllib.parse import quote

from elasticsearch import (
    ApiError,
    AsyncElasticsearch,
    BadRequestError,
    ConflictError,
    ConnectionError as EsConnectionError,
    ConnectionTimeout,
    NotFoundError,
    TransportError,
)

from livedb_es.config import StoreConfig
from livedb_es.core.records import Snapshot, doc_key, op_version, range_is_empty
from livedb_es.errors import BackendError, BackendUnavailableError, MalformedResultError
from livedb_es.persistence.base import OperationLog, SnapshotStore

logger = logging.getLogger(__name__)

SNAPSHOT_MAPPINGS: dict[str, Any] = {
    "dynamic": "strict",
    "properties": {
        "collection": {"type": "keyword"},
        "doc_id": {"type": "keyword"},
        "wrapped": {"type": "boolean"},
        "data": {"type": "object", "enabled": False},
    },
}

OPS_MAPPINGS: dict[str, Any] = {
    "dynamic": "strict",
    "properties": {
        "collection": {"type": "keyword"},
        "doc_id": {"type": "keyword"},
        "v": {"type": "long"},
        "op": {"type": "object", "enabled": False},
    },
}

_WRAPPED_KEY = "_value"
_INDEX_NOT_FOUND = "index_not_found_exception"
_ALREADY_EXISTS = "resource_already_exists_exception"


def _snapshot_id(collection: str, doc_id: str) -> str:
    return f"{quote(collection, safe='')}/{quote(doc_id, safe='')}"


def _op_id(collection: str, doc_id: str, version: int) -> str:
    return f"{_snapshot_id(collection, doc_id)}/{version}"


def _error_type(error: Any) -> str | None:
    if isinstance(error, ApiError):
        error = error.body.get("error") if isinstance(error.body, dict) else None
    if isinstance(error, dict):
        return error.get("type")
    return None


def _wrap(collection: str, doc_id: str, data: Any) -> dict[str, Any]:
    if isinstance(data, Mapping):
        return {"collection": collection, "doc_id": doc_id, "wrapped": False, "data": dict(data)}
    return {"collection": collection, "doc_id": doc_id, "wrapped": True, "data": {_WRAPPED_KEY: data}}


def _unwrap(source: Mapping[str, Any]) -> Any:
    try:
        data = source["data"]
        return data[_WRAPPED_KEY] if source.get("wrapped") else data
    except (KeyError, TypeError) as exc:
        raise MalformedResultError("snapshot document has no payload", source) from exc


@contextmanager
def _backend_errors(action: str, collection: str = "-", doc_id: str = "-") -> Iterator[None]:
    """Translate client exceptions into the adapter's error hierarchy."""
    extra = {"collection": collection, "doc_id": doc_id}
    try:
        yield
    except (EsConnectionError, ConnectionTimeout) as exc:
        logger.warning("%s: backend unreachable", action, extra=extra)
        raise BackendUnavailableError(f"{action}: backend unreachable: {exc}") from exc
    except ApiError as exc:
        logger.warning("%s: backend error %s", action, exc.meta.status, extra=extra)
        raise BackendError(f"{action}: {exc.message}", status=exc.meta.status) from exc
    except TransportError as exc:
        logger.warning("%s: transport error", action, extra=extra)
        raise BackendError(f"{action}: {exc}") from exc


async def ensure_indices(client: AsyncElasticsearch, config: StoreConfig) -> None:
    """Create the snapshot and ops indices if they do not exist yet."""
    for index, mappings in ((config.snapshot_index, SNAPSHOT_MAPPINGS), (config.ops_index, OPS_MAPPINGS)):
        with _backend_errors("create index"):
            try:
                await client.indices.create(index=index, mappings=mappings)
            except BadRequestError as exc:
                if _error_type(exc) != _ALREADY_EXISTS:
                    raise
                logger.debug("index %s already exists", index)
            else:
                logger.info("created index %s", index)


class ElasticsearchSnapshotStore(SnapshotStore):
    def __init__(self, client: AsyncElasticsearch, config: StoreConfig) -> None:
        self._client = client
        self._config = config

    async def get_snapshot(self, collection: str, doc_id: str) -> Snapshot | None:
        doc_key(collection, doc_id)
        with _backend_errors("get snapshot", collection, doc_id):
            try:
                resp = await self._client.get(
                    index=self._config.snapshot_index,
                    id=_snapshot_id(collection, doc_id),
                )
            except NotFoundError:
                return None
        return Snapshot(collection=collection, doc_id=doc_id, data=_unwrap(resp["_source"]))

    async def write_snapshot(self, collection: str, doc_id: str, data: Any) -> Any:
        doc_key(collection, doc_id)
        with _backend_errors("write snapshot", collection, doc_id):
            resp = await self._client.index(
                index=self._config.snapshot_index,
                id=_snapshot_id(collection, doc_id),
                document=_wrap(collection, doc_id, data),
                refresh=self._config.refresh,
            )
        result = resp["result"]
        if result not in ("created", "updated"):
            logger.error("snapshot write not acknowledged", extra={"collection": collection, "doc_id": doc_id})
            raise MalformedResultError("snapshot write was neither created nor updated", result)
        logger.debug("snapshot %s", result, extra={"collection": collection, "doc_id": doc_id})
        return data

    async def bulk_get_snapshot(self, requests: Mapping[str, Sequence[str]]) -> dict[str, dict[str, Any]]:
        results: dict[str, dict[str, Any]] = {collection: {} for collection in requests}
        wanted = [(collection, doc_id) for collection, doc_ids in requests.items() for doc_id in doc_ids]
        for collection, doc_id in wanted:
            doc_key(collection, doc_id)
        if not wanted:
            return results

        with _backend_errors("bulk get snapshots"):
            try:
                resp = await self._client.mget(
                    index=self._config.snapshot_index,
                    ids=[_snapshot_id(collection, doc_id) for collection, doc_id in wanted],
                )
            except NotFoundError as exc:
                if _error_type(exc) != _INDEX_NOT_FOUND:
                    raise
                return results
        docs = resp["docs"]
        if len(docs) != len(wanted):
            raise MalformedResultError(f"mget returned {len(docs)} docs for {len(wanted)} ids", docs)

        for (collection, doc_id), doc in zip(wanted, docs):
            if "error" in doc:
                if _error_type(doc["error"]) == _INDEX_NOT_FOUND:
                    continue
                raise BackendError(f"bulk get snapshots: {doc['error']}")
            if doc.get("found"):
                results[collection][doc_id] = _unwrap(doc["_source"])
        return results


class ElasticsearchOperationLog(OperationLog):
    def __init__(self, client: AsyncElasticsearch, config: StoreConfig) -> None:
        self._client = client
        self._config = config

    @staticmethod
    def _scope(collection: str, doc_id: str) -> list[dict[str, Any]]:
        return [{"term": {"collection": collection}}, {"term": {"doc_id": doc_id}}]

    async def append_op(self, collection: str, doc_id: str, op: Mapping[str, Any]) -> dict[str, Any]:
        doc_key(collection, doc_id)
        version = op_version(op)
        extra = {"collection": collection, "doc_id": doc_id, "version": version}
        with _backend_errors("append op", collection, doc_id):
            try:
                resp = await self._client.create(
                    index=self._config.ops_index,
                    id=_op_id(collection, doc_id, version),
                    document={"collection": collection, "doc_id": doc_id, "v": version, "op": dict(op)},
                    refresh=self._config.refresh,
                )
            except ConflictError:
                logger.info("duplicate version ignored", extra=extra)
                return dict(op)
        if resp["result"] != "created":
            logger.error("op write not acknowledged", extra=extra)
            raise MalformedResultError("op write was not created", resp["result"])
        logger.debug("op appended", extra=extra)
        return dict(op)

    async def next_version(self, collection: str, doc_id: str) -> int:
        doc_key(collection, doc_id)
        with _backend_errors("count ops", collection, doc_id):
            resp = await self._client.count(
                index=self._config.ops_index,
                query={"bool": {"filter": self._scope(collection, doc_id)}},
                ignore_unavailable=True,
            )
        return int(resp["count"])

    async def get_ops(
        self, collection: str, doc_id: str, start: int, end: int | None = None
    ) -> list[dict[str, Any]]:
        doc_key(collection, doc_id)
        if range_is_empty(start, end):
            return []

        bounds: dict[str, int] = {"gte": start}
        if end is not None:
            bounds["lt"] = end
        query = {"bool": {"filter": [*self._scope(collection, doc_id), {"range": {"v": bounds}}]}}

        ops: list[dict[str, Any]] = []
        search_after: list[Any] | None = None
        while True:
            with _backend_errors("get ops", collection, doc_id):
                resp = await self._client.search(
                    index=self._config.ops_index,
                    query=query,
                    sort=[{"v": "asc"}],
                    size=self._config.page_size,
                    search_after=search_after,
                    ignore_unavailable=True,
                )
            hits = resp["hits"]["hits"]
            ops.extend(hit["_source"]["op"] for hit in hits)
            if len(hits) < self._config.page_size:
                break
            search_after = hits[-1]["sort"]

        logger.debug("fetched %d ops", len(ops), extra={"collection": collection, "doc_id": doc_id})
        return ops
