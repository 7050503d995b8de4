"""pytest configuration for livedb-elasticsearch.

This file ensures that the project source directory is available on the
Python import path when running tests, and provides an in-memory stand-in
for the parts of ``AsyncElasticsearch`` the adapter talks to.

Location:
- tests/conftest.py
"""

import copy
import os
import sys
from typing import Any

import pytest
from elastic_transport import ApiResponseMeta, HttpHeaders, NodeConfig
from elasticsearch import BadRequestError, ConflictError, NotFoundError


def pytest_configure() -> None:
    """Configure pytest to include the src directory in sys.path."""

    # Resolve repository root (one level above the tests directory)
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

    # Resolve src directory
    src_path = os.path.join(repo_root, "src")

    # Prepend src to sys.path to allow absolute imports in tests
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


def make_api_error(cls: type, status: int, error_type: str) -> Exception:
    """Build an ``elasticsearch`` API error the way the transport raises it."""
    meta = ApiResponseMeta(
        status=status,
        http_version="1.1",
        headers=HttpHeaders(),
        duration=0.0,
        node=NodeConfig("http", "localhost", 9200),
    )
    return cls(message=error_type, meta=meta, body={"error": {"type": error_type}, "status": status})


def _matches(source: dict[str, Any], query: dict[str, Any]) -> bool:
    for clause in query["bool"]["filter"]:
        if "term" in clause:
            ((field, value),) = clause["term"].items()
            if source.get(field) != value:
                return False
        elif "range" in clause:
            ((field, bounds),) = clause["range"].items()
            value = source.get(field)
            if "gte" in bounds and value < bounds["gte"]:
                return False
            if "lt" in bounds and value >= bounds["lt"]:
                return False
        else:
            raise AssertionError(f"unsupported clause {clause!r}")
    return True


class _FakeIndices:
    def __init__(self, es: "FakeElasticsearch") -> None:
        self._es = es

    async def create(self, *, index: str, mappings: dict[str, Any]) -> dict[str, Any]:
        if index in self._es.docs:
            raise make_api_error(BadRequestError, 400, "resource_already_exists_exception")
        self._es.docs[index] = {}
        self._es.mappings[index] = mappings
        return {"acknowledged": True, "index": index}


class FakeElasticsearch:
    """Single-node, always-refreshed index store with Elasticsearch's create/409 rule."""

    def __init__(self) -> None:
        self.docs: dict[str, dict[str, dict[str, Any]]] = {}
        self.mappings: dict[str, dict[str, Any]] = {}
        self.indices = _FakeIndices(self)
        self.search_calls = 0
        self.mget_calls = 0

    def _check_index(self, index: str, ignore_unavailable: bool) -> None:
        if index not in self.docs and not ignore_unavailable:
            raise make_api_error(NotFoundError, 404, "index_not_found_exception")

    async def create(self, *, index: str, id: str, document: dict[str, Any], refresh: Any = None) -> dict[str, Any]:
        docs = self.docs.setdefault(index, {})
        if id in docs:
            raise make_api_error(ConflictError, 409, "version_conflict_engine_exception")
        docs[id] = copy.deepcopy(document)
        return {"_index": index, "_id": id, "result": "created"}

    async def index(self, *, index: str, id: str, document: dict[str, Any], refresh: Any = None) -> dict[str, Any]:
        docs = self.docs.setdefault(index, {})
        result = "updated" if id in docs else "created"
        docs[id] = copy.deepcopy(document)
        return {"_index": index, "_id": id, "result": result}

    async def get(self, *, index: str, id: str) -> dict[str, Any]:
        if index not in self.docs:
            raise make_api_error(NotFoundError, 404, "index_not_found_exception")
        if id not in self.docs[index]:
            raise make_api_error(NotFoundError, 404, "document_missing_exception")
        return {"_index": index, "_id": id, "found": True, "_source": copy.deepcopy(self.docs[index][id])}

    async def mget(self, *, index: str, ids: list[str]) -> dict[str, Any]:
        self.mget_calls += 1
        out = []
        for doc_id in ids:
            if index not in self.docs:
                out.append({"_index": index, "_id": doc_id, "error": {"type": "index_not_found_exception"}})
            elif doc_id in self.docs[index]:
                out.append(
                    {"_index": index, "_id": doc_id, "found": True, "_source": copy.deepcopy(self.docs[index][doc_id])}
                )
            else:
                out.append({"_index": index, "_id": doc_id, "found": False})
        return {"docs": out}

    async def count(self, *, index: str, query: dict[str, Any], ignore_unavailable: bool = False) -> dict[str, Any]:
        self._check_index(index, ignore_unavailable)
        docs = self.docs.get(index, {})
        return {"count": sum(1 for source in docs.values() if _matches(source, query))}

    async def search(
        self,
        *,
        index: str,
        query: dict[str, Any],
        sort: list[dict[str, str]],
        size: int,
        search_after: list[Any] | None = None,
        ignore_unavailable: bool = False,
    ) -> dict[str, Any]:
        self.search_calls += 1
        self._check_index(index, ignore_unavailable)
        ((field, order),) = sort[0].items()
        assert order == "asc"
        matched = sorted(
            (source for source in self.docs.get(index, {}).values() if _matches(source, query)),
            key=lambda source: source[field],
        )
        if search_after is not None:
            matched = [source for source in matched if source[field] > search_after[0]]
        page = matched[:size]
        hits = [{"_source": copy.deepcopy(source), "sort": [source[field]]} for source in page]
        return {"hits": {"total": {"value": len(matched), "relation": "eq"}, "hits": hits}}

    async def close(self) -> None:
        pass


@pytest.fixture
def fake_es() -> FakeElasticsearch:
    return FakeElasticsearch()


@pytest.fixture
def api_error():
    return make_api_error
