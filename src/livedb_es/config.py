"""Environment-driven settings for the Elasticsearch storage adapter."""

from __future__ import annotations

import os
from dataclasses import dataclass, field


def _env(key: str, default: str = "") -> str:
    return os.environ.get(key, default)


def _split_hosts(raw: str) -> tuple[str, ...]:
    return tuple(h.strip() for h in raw.split(",") if h.strip())


@dataclass(frozen=True)
class ElasticsearchConfig:
    """Connection settings for the Elasticsearch cluster."""

    hosts: tuple[str, ...] = field(
        default_factory=lambda: _split_hosts(_env("ELASTICSEARCH_HOSTS", "http://localhost:9200"))
    )
    api_key: str = field(default_factory=lambda: _env("ELASTICSEARCH_API_KEY"))
    request_timeout: float = field(default_factory=lambda: float(_env("ELASTICSEARCH_REQUEST_TIMEOUT", "10")))

    def __post_init__(self) -> None:
        if not self.hosts:
            raise ValueError("ELASTICSEARCH_HOSTS must name at least one host")


@dataclass(frozen=True)
class StoreConfig:
    """Index names and paging behaviour for the snapshot store and op log."""

    snapshot_index: str = field(default_factory=lambda: _env("LIVEDB_SNAPSHOT_INDEX", "livedb-snapshots"))
    ops_index: str = field(default_factory=lambda: _env("LIVEDB_OPS_INDEX", "livedb-ops"))
    page_size: int = field(default_factory=lambda: int(_env("LIVEDB_PAGE_SIZE", "100")))
    refresh: str = field(default_factory=lambda: _env("LIVEDB_REFRESH", "wait_for"))

    def __post_init__(self) -> None:
        if self.page_size < 1:
            raise ValueError(f"LIVEDB_PAGE_SIZE must be positive, got {self.page_size}")


@dataclass(frozen=True)
class Settings:
    elasticsearch: ElasticsearchConfig = field(default_factory=ElasticsearchConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
