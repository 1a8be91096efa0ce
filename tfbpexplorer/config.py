"""
Environment-driven configuration.

Values are read with :func:`os.getenv` semantics from a mapping (``os.environ`` by
default). The app shell calls :func:`dotenv.load_dotenv` before
:func:`load_settings` so a local ``.env`` file is honoured outside of Docker.

"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

# Variables inspected by describe_environment(); token values are never echoed.
RECOGNIZED_VARIABLES = (
    "BINDING_CORRELATION_API",
    "PERTURBATION_CORRELATION_API",
    "RANKRESPONSE_URL",
    "NEXT_PUBLIC_RANKRESPONSE_URL",
    "TFBP_API_TOKEN",
    "TOKEN",
    "BASE_URL",
)

DEFAULT_DATA_DIRECTORIES = (Path("tmp") / "shiny_data", Path("data"))


def _append_trailing_slash(value: str) -> str:
    return value if value.endswith("/") else f"{value}/"


def _first_set(environ: Mapping[str, str], *names: str) -> str | None:
    for name in names:
        value = environ.get(name)
        if value is not None and value.strip():
            return value.strip()
    return None


def _int_setting(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _float_setting(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    rankresponse_url: str | None = None
    api_token: str | None = None
    binding_correlation_api: str | None = None
    perturbation_correlation_api: str | None = None
    data_directories: tuple[Path, ...] = DEFAULT_DATA_DIRECTORIES
    cache_ttl_seconds: float = 300.0
    replicate_concurrency: int = 4
    request_timeout_seconds: float = 60.0
    rank_bins: int = 150
    log_level: int = 10
    log_handler: Literal["console", "file"] = "console"


def resolve_rankresponse_url(environ: Mapping[str, str]) -> str | None:
    """
    Resolve the rank response API base URL.

    ``RANKRESPONSE_URL`` wins over ``NEXT_PUBLIC_RANKRESPONSE_URL``; as a last resort
    ``BASE_URL`` is suffixed with ``/api/rankresponse``. The result always ends in a
    single trailing slash so that endpoint names can be appended directly.

    """
    url = _first_set(environ, "RANKRESPONSE_URL", "NEXT_PUBLIC_RANKRESPONSE_URL")
    if url is None:
        base_url = _first_set(environ, "BASE_URL")
        if base_url is None:
            return None
        url = f"{base_url.rstrip('/')}/api/rankresponse"
    return _append_trailing_slash(url)


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build :class:`Settings` from ``environ`` (defaults to ``os.environ``)."""
    env = os.environ if environ is None else environ

    data_dirs_raw = _first_set(env, "TFBPEXPLORER_DATA_DIRS")
    data_directories = (
        tuple(Path(part) for part in data_dirs_raw.split(os.pathsep) if part)
        if data_dirs_raw
        else DEFAULT_DATA_DIRECTORIES
    )

    log_handler = (_first_set(env, "TFBPEXPLORER_LOG_HANDLER") or "console").lower()
    if log_handler not in ("console", "file"):
        raise ValueError(
            f"TFBPEXPLORER_LOG_HANDLER must be 'console' or 'file', got {log_handler!r}"
        )

    return Settings(
        rankresponse_url=resolve_rankresponse_url(env),
        api_token=_first_set(env, "TFBP_API_TOKEN", "TOKEN"),
        binding_correlation_api=_first_set(env, "BINDING_CORRELATION_API"),
        perturbation_correlation_api=_first_set(env, "PERTURBATION_CORRELATION_API"),
        data_directories=data_directories,
        cache_ttl_seconds=_float_setting(env, "TFBPEXPLORER_CACHE_TTL", 300.0),
        replicate_concurrency=max(
            1, _int_setting(env, "TFBPEXPLORER_REPLICATE_CONCURRENCY", 4)
        ),
        request_timeout_seconds=_float_setting(
            env, "TFBPEXPLORER_REQUEST_TIMEOUT", 60.0
        ),
        rank_bins=_int_setting(env, "TFBPEXPLORER_RANK_BINS", 150),
        log_level=_int_setting(env, "TFBPEXPLORER_LOG_LEVEL", 10),
        log_handler=log_handler,  # type: ignore[arg-type]
    )


def describe_environment(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """
    Report which recognized variables are set without revealing their values.

    :return: ``{"summary": str, "details": {name: {...}}, "timestamp": str}`` where
        each detail carries ``exists``, ``length`` and ``has_whitespace``.

    """
    env = os.environ if environ is None else environ
    details: dict[str, dict[str, Any]] = {}
    for name in RECOGNIZED_VARIABLES:
        value = env.get(name)
        details[name] = {
            "exists": bool(value),
            "length": len(value) if value else 0,
            "has_whitespace": value is not None and value.strip() != value,
        }

    set_count = sum(1 for entry in details.values() if entry["exists"])
    return {
        "summary": (
            f"{set_count} of {len(details)} environment variables are set"
        ),
        "details": details,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
