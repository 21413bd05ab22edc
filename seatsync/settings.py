"""Application-level configuration helpers (env → constants).

CORS origins are plain module constants. Everything the reconciliation engine
tunes (timers, pauses, retry budget) is collected in :class:`EngineSettings` so
a test can build an engine with millisecond delays instead of patching sleeps.
"""

from __future__ import annotations

# Standard library
import os
import random
from dataclasses import dataclass, fields

__all__ = ["ALLOWED_ORIGINS", "EngineSettings"]

# Fields whose env var is not simply the upper-cased field name.
_ENV_NAMES = {
    "max_attempts": "UPSTREAM_MAX_ATTEMPTS",
    "backoff_seconds": "UPSTREAM_BACKOFF_SECONDS",
    "grace_period_minutes": "INVITE_GRACE_PERIOD_MINUTES",
}


def _collect_origins() -> list[str]:
    """Collect allowed CORS origins from the environment.

    Falls back to the local dashboard dev-server when no explicit env vars are
    set so hot-reload keeps working.
    """
    origins: list[str] = []
    for name in ("FRONTEND_ORIGIN", "EXTRA_ORIGIN"):
        if (val := os.getenv(name)):
            origins.append(val)

    if not origins:
        origins.append("http://localhost:3000")
    return origins


ALLOWED_ORIGINS: list[str] = _collect_origins()


@dataclass(frozen=True)
class EngineSettings:
    """Timing and retry knobs for the upstream client and the scheduler."""

    upstream_base_url: str = "https://chatgpt.com/backend-api"
    upstream_timeout_seconds: float = 30.0
    max_attempts: int = 3
    backoff_seconds: float = 1.0

    refresh_interval_seconds: float = 30.0
    stagger_seconds: float = 5.0
    refresh_all_pause_seconds: float = 1.0

    grace_period_minutes: float = 5.0
    invite_delete_pause_seconds: float = 0.5
    bulk_gap_min_seconds: float = 15.0
    bulk_gap_max_seconds: float = 30.0
    sweep_pause_seconds: float = 1.0

    default_max_members: int = 7

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Build settings from upper-cased env vars (``STAGGER_SECONDS``, ``UPSTREAM_MAX_ATTEMPTS`` …)."""
        overrides: dict[str, object] = {}
        for field in fields(cls):
            raw = os.getenv(_ENV_NAMES.get(field.name, field.name.upper()))
            if raw is None or raw == "":
                continue
            if field.type in ("int", int):
                overrides[field.name] = int(raw)
            elif field.type in ("float", float):
                overrides[field.name] = float(raw)
            else:
                overrides[field.name] = raw
        return cls(**overrides)

    def bulk_gap_seconds(self) -> float:
        """Random pause between accounts in bulk operations."""
        return random.uniform(self.bulk_gap_min_seconds, self.bulk_gap_max_seconds)
