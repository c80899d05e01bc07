from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Tuple

from .models import HTTP_METHODS as _HTTP_METHODS

def _bool(env: str, default: bool = False) -> bool:
    v = os.getenv(env)
    if v is None:
        return default
    return v.lower() in ("1", "true", "yes", "on")

def _list(env: str, default: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in os.getenv(env, default).split(",") if item.strip())

@dataclass(frozen=True)
class Settings:
    # Routing convention
    ROUTE_FILE_MARKER: str = os.getenv("ROUTE_FILE_MARKER", "+server.ts")
    ROUTES_ROOT_MARKER: str = os.getenv("ROUTES_ROOT_MARKER", "src/routes")
    HTTP_METHODS: Tuple[str, ...] = _HTTP_METHODS
    STRICT_ROUTES_ROOT: bool = _bool("STRICT_ROUTES_ROOT", False)

    # Handler heuristics
    RESPONSE_HELPERS: Tuple[str, ...] = _list("RESPONSE_HELPERS", "json")
    QUERY_ACCESSORS: Tuple[str, ...] = _list("QUERY_ACCESSORS", "url.searchParams.get,url.searchParams.getAll")
    BODY_TAG: str = os.getenv("BODY_TAG", "body")
    UNKNOWN_TYPE: str = os.getenv("UNKNOWN_TYPE", "any")

    # Discovery
    IGNORED_DIRS: Tuple[str, ...] = _list("IGNORED_DIRS", "node_modules,.git,.svelte-kit,build,dist")

    # Concurrency
    SCAN_WORKERS: int = int(os.getenv("SCAN_WORKERS", "1"))

settings = Settings()
