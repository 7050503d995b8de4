from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from livedb_es.core.records import Snapshot, doc_key, op_version, range_is_empty
from livedb_es.persistence.base import OperationLog, SnapshotStore

logger = logging.getLogger(__name__)

_Key = Tuple[str, str]


class InMemoryPersistence(SnapshotStore, OperationLog):
    """Process-local snapshot store and op log with the same contract as the Elasticsearch backend."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshots: Dict[_Key, Any] = {}
        self._ops: Dict[_Key, Dict[int, Dict[str, Any]]] = {}

    async def get_snapshot(self, collection: str, doc_id: str) -> Snapshot | None:
        doc_key(collection, doc_id)
        with self._lock:
            if (collection, doc_id) not in self._snapshots:
                return None
            data = copy.deepcopy(self._snapshots[(collection, doc_id)])
        return Snapshot(collection=collection, doc_id=doc_id, data=data)

    async def write_snapshot(self, collection: str, doc_id: str, data: Any) -> Any:
        doc_key(collection, doc_id)
        with self._lock:
            self._snapshots[(collection, doc_id)] = copy.deepcopy(data)
        return data

    async def bulk_get_snapshot(self, requests: Mapping[str, Sequence[str]]) -> Dict[str, Dict[str, Any]]:
        for collection, doc_ids in requests.items():
            for doc_id in doc_ids:
                doc_key(collection, doc_id)
        results: Dict[str, Dict[str, Any]] = {}
        with self._lock:
            for collection, doc_ids in requests.items():
                found = results.setdefault(collection, {})
                for doc_id in doc_ids:
                    if (collection, doc_id) in self._snapshots:
                        found[doc_id] = copy.deepcopy(self._snapshots[(collection, doc_id)])
        return results

    async def append_op(self, collection: str, doc_id: str, op: Mapping[str, Any]) -> Dict[str, Any]:
        doc_key(collection, doc_id)
        version = op_version(op)
        with self._lock:
            ops = self._ops.setdefault((collection, doc_id), {})
            if version in ops:
                logger.info(
                    "duplicate version ignored",
                    extra={"collection": collection, "doc_id": doc_id, "version": version},
                )
            else:
                ops[version] = copy.deepcopy(dict(op))
        return dict(op)

    async def next_version(self, collection: str, doc_id: str) -> int:
        doc_key(collection, doc_id)
        with self._lock:
            return len(self._ops.get((collection, doc_id), {}))

    async def get_ops(
        self, collection: str, doc_id: str, start: int, end: int | None = None
    ) -> List[Dict[str, Any]]:
        doc_key(collection, doc_id)
        if range_is_empty(start, end):
            return []
        with self._lock:
            ops = self._ops.get((collection, doc_id))
            if ops is None:
                return []
            return [
                copy.deepcopy(ops[v])
                for v in sorted(ops)
                if v >= start and (end is None or v < end)
            ]
