from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, TypeVar

from dotenv import load_dotenv

N = TypeVar("N", int, float)


@dataclass(frozen=True)
class IndexerConfig:
    mongo_uri: str = "mongodb://localhost:27017"
    database: str = "opensearch-dev"
    log_level: str = "INFO"
    fetch_timeout: float = 15.0
    fetch_max_bytes: int = 5 * 1024 * 1024
    fetch_retries: int = 1
    impersonate: Optional[str] = None
    scraper_concurrency: int = 100
    engine_concurrency: int = 100
    engine_group_size: int = 500
    data_dir: str = "data"


def load_config(env_file: Optional[str] = ".env", environ: Optional[Mapping[str, str]] = None) -> IndexerConfig:
    """Build the configuration from the environment, reading ``env_file`` first if it exists.

    ``INDEXER_ENV=production`` selects ``PRODUCTION_DATABASE``; any other
    value selects ``DEVELOPMENT_DATABASE``."""
    if environ is None:
        if env_file:
            load_dotenv(env_file, override=False)
        environ = os.environ
    defaults = IndexerConfig()

    if environ.get("INDEXER_ENV", "development") == "production":
        database = environ.get("PRODUCTION_DATABASE", "opensearch")
    else:
        database = environ.get("DEVELOPMENT_DATABASE", defaults.database)

    return IndexerConfig(
        mongo_uri=environ.get("MONGO_URI", defaults.mongo_uri),
        database=database,
        log_level=environ.get("LOG_LEVEL", defaults.log_level).upper(),
        fetch_timeout=_number(environ, "FETCH_TIMEOUT", defaults.fetch_timeout, float),
        fetch_max_bytes=_number(environ, "FETCH_MAX_BYTES", defaults.fetch_max_bytes, int),
        fetch_retries=_number(environ, "FETCH_RETRIES", defaults.fetch_retries, int),
        impersonate=environ.get("IMPERSONATE") or None,
        scraper_concurrency=_number(environ, "SCRAPER_CONCURRENCY", defaults.scraper_concurrency, int),
        engine_concurrency=_number(environ, "ENGINE_CONCURRENCY", defaults.engine_concurrency, int),
        engine_group_size=_number(environ, "ENGINE_GROUP_SIZE", defaults.engine_group_size, int),
        data_dir=environ.get("DATA_DIR", defaults.data_dir),
    )


def _number(environ: Mapping[str, str], name: str, default: N, cast: Callable[[str], N]) -> N:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
