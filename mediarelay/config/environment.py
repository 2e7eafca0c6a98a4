from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict

_DEFAULTS: Dict[str, str] = {
    "MEDIARELAY_SERVER_NAME": "MediaRelay Download Service",
    "MEDIARELAY_SERVER_DESCRIPTION": "Media probe and extraction service",
    "MEDIARELAY_SERVER_HOST": "0.0.0.0",
    "MEDIARELAY_SERVER_PORT": "9191",
    "MEDIARELAY_SERVER_LOG_LEVEL": "info",
    "MEDIARELAY_JOB_RETENTION_SECONDS": "3600",
    "MEDIARELAY_JOB_TOMBSTONE_LIMIT": "1024",
    "MEDIARELAY_SSE_HEARTBEAT_SECONDS": "15",
}


@dataclass(frozen=True)
class ServerEnvironmentConfig:
    name: str
    description: str
    host: str
    port: int
    log_level: str
    data_folder: str
    cache_folder: str
    download_folder: str
    job_retention_seconds: int
    job_tombstone_limit: int
    sse_heartbeat_seconds: int


def _coalesce_env(key: str) -> str:
    default = _DEFAULTS.get(key)
    value = os.getenv(key)
    if value is None:
        if default is None:
            raise RuntimeError(f"Missing environment variable '{key}'")
        return default
    trimmed = value.strip()
    if not trimmed:
        if default is not None:
            return default
        raise RuntimeError(f"Environment variable '{key}' cannot be empty")
    return trimmed


def _parse_int(key: str, *, minimum: int = 0) -> int:
    raw = _coalesce_env(key)
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"Environment variable '{key}' must be an integer") from exc
    if value < minimum:
        raise RuntimeError(f"Environment variable '{key}' must be >= {minimum}")
    return value


def _resolve_folder(key: str, fallback: Path) -> str:
    raw = os.getenv(key)
    candidate = Path(raw.strip()).expanduser() if raw and raw.strip() else fallback
    os.makedirs(candidate, exist_ok=True)
    return str(candidate)


@lru_cache(maxsize=1)
def get_server_environment() -> ServerEnvironmentConfig:
    name = _coalesce_env("MEDIARELAY_SERVER_NAME")
    description = _coalesce_env("MEDIARELAY_SERVER_DESCRIPTION")
    host = _coalesce_env("MEDIARELAY_SERVER_HOST")
    port = _parse_int("MEDIARELAY_SERVER_PORT", minimum=1)
    log_level = _coalesce_env("MEDIARELAY_SERVER_LOG_LEVEL").lower()

    data_folder = _resolve_folder(
        "MEDIARELAY_SERVER_DATA", Path.home() / ".mediarelay"
    )
    cache_folder = _resolve_folder(
        "MEDIARELAY_SERVER_CACHE", Path(data_folder) / "cache"
    )
    download_folder = str(Path(data_folder) / "downloads")
    os.makedirs(download_folder, exist_ok=True)

    return ServerEnvironmentConfig(
        name=name,
        description=description,
        host=host,
        port=port,
        log_level=log_level,
        data_folder=data_folder,
        cache_folder=cache_folder,
        download_folder=download_folder,
        job_retention_seconds=_parse_int("MEDIARELAY_JOB_RETENTION_SECONDS"),
        job_tombstone_limit=_parse_int("MEDIARELAY_JOB_TOMBSTONE_LIMIT", minimum=1),
        sse_heartbeat_seconds=_parse_int(
            "MEDIARELAY_SSE_HEARTBEAT_SECONDS", minimum=1
        ),
    )


__all__ = ["ServerEnvironmentConfig", "get_server_environment"]
