"""Configuration helpers for deploying the shared-world sync service."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping

from ..media import MAX_MEDIA_BYTES
from ..models import MESSAGE_LOG_LIMIT

DEFAULT_SWEEP_INTERVAL_SECONDS = 3600
DEFAULT_LIVENESS_WINDOW_SECONDS = 300

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _normalise_optional_string(value: str | None) -> str | None:
    if value is None:
        return None

    trimmed = value.strip()
    return trimmed or None


def _normalise_int(
    value: str | None, *, name: str, default: int, minimum: int
) -> int:
    if value is None:
        return default

    trimmed = value.strip()
    if not trimmed:
        return default

    try:
        parsed = int(trimmed)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer.") from exc

    if parsed < minimum:
        raise ValueError(f"{name} must be at least {minimum}.")
    return parsed


def _normalise_bool(value: str | None, *, name: str, default: bool) -> bool:
    if value is None:
        return default

    trimmed = value.strip().lower()
    if not trimmed:
        return default
    if trimmed in _TRUE_VALUES:
        return True
    if trimmed in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean flag.")


def _normalise_log_level(value: str | None) -> str:
    level = (_normalise_optional_string(value) or "INFO").upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError("WORLDSYNC_LOG_LEVEL must name a logging level.")
    return level


@dataclass(frozen=True)
class SyncApiSettings:
    """Deployment settings for the FastAPI application.

    Values are read from ``WORLDSYNC_*`` environment variables so the service
    can be configured without modifying application code. Empty strings are
    treated as if the variable was unset. Leaving ``api_key`` unset disables
    bearer authentication, which is only meant for local development.
    """

    api_key: str | None = None
    media_max_bytes: int = MAX_MEDIA_BYTES
    media_sweep_interval: int = DEFAULT_SWEEP_INTERVAL_SECONDS
    liveness_window_seconds: int = DEFAULT_LIVENESS_WINDOW_SECONDS
    message_log_limit: int = MESSAGE_LOG_LIMIT
    keep_global_room: bool = True
    strict_media_limits: bool = False
    public_base_url: str | None = None
    log_level: str = "INFO"

    @property
    def liveness_window(self) -> timedelta:
        return timedelta(seconds=self.liveness_window_seconds)

    @property
    def auth_enabled(self) -> bool:
        return self.api_key is not None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "SyncApiSettings":
        """Return settings populated from ``environ``.

        Args:
            environ: Optional mapping of environment variables. When omitted,
                :data:`os.environ` is used.

        Raises:
            ValueError: If a numeric or boolean variable cannot be parsed. The
                message names the offending variable.
        """

        source = environ if environ is not None else os.environ

        public_base_url = _normalise_optional_string(
            source.get("WORLDSYNC_PUBLIC_BASE_URL")
        )
        if public_base_url is not None:
            public_base_url = public_base_url.rstrip("/")

        return cls(
            api_key=_normalise_optional_string(source.get("WORLDSYNC_API_KEY")),
            media_max_bytes=_normalise_int(
                source.get("WORLDSYNC_MEDIA_MAX_BYTES"),
                name="WORLDSYNC_MEDIA_MAX_BYTES",
                default=MAX_MEDIA_BYTES,
                minimum=1,
            ),
            media_sweep_interval=_normalise_int(
                source.get("WORLDSYNC_MEDIA_SWEEP_INTERVAL"),
                name="WORLDSYNC_MEDIA_SWEEP_INTERVAL",
                default=DEFAULT_SWEEP_INTERVAL_SECONDS,
                minimum=0,
            ),
            liveness_window_seconds=_normalise_int(
                source.get("WORLDSYNC_LIVENESS_WINDOW"),
                name="WORLDSYNC_LIVENESS_WINDOW",
                default=DEFAULT_LIVENESS_WINDOW_SECONDS,
                minimum=1,
            ),
            message_log_limit=_normalise_int(
                source.get("WORLDSYNC_MESSAGE_LOG_LIMIT"),
                name="WORLDSYNC_MESSAGE_LOG_LIMIT",
                default=MESSAGE_LOG_LIMIT,
                minimum=1,
            ),
            keep_global_room=_normalise_bool(
                source.get("WORLDSYNC_KEEP_GLOBAL_ROOM"),
                name="WORLDSYNC_KEEP_GLOBAL_ROOM",
                default=True,
            ),
            strict_media_limits=_normalise_bool(
                source.get("WORLDSYNC_STRICT_MEDIA_LIMITS"),
                name="WORLDSYNC_STRICT_MEDIA_LIMITS",
                default=False,
            ),
            public_base_url=public_base_url,
            log_level=_normalise_log_level(source.get("WORLDSYNC_LOG_LEVEL")),
        )


__all__ = ["SyncApiSettings"]
