"""
Addressing Configuration - Environment-based with sensible defaults

    AETHER_CORE_URL              Core base URL (http://localhost:8891)
    AETHER_PATCH_PORT            Planning service port (8892)
    AETHER_POLL_INTERVAL_S       Active-channel poll cadence (5.0)
    AETHER_POLL_RESUME_DELAY_MS  Grace delay after the last drag (300)
    AETHER_HTTP_TIMEOUT_S        Request timeout to the core (3.0)
    AETHER_MAX_UNIVERSE          Highest universe offered (4)
    AETHER_CORS_ORIGINS          Extra CORS origins, comma separated
    AETHER_PATCH_LOG_DIR         Audit log directory (disabled if unset)
"""

from dataclasses import dataclass, field
from typing import List, Mapping, Optional
import os

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:8891",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:8891",
]


def _number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass
class PatchConfig:
    core_url: str = "http://localhost:8891"
    port: int = 8892
    poll_interval_s: float = 5.0
    resume_delay_s: float = 0.3
    http_timeout_s: float = 3.0
    max_universe: int = 4
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    log_dir: Optional[str] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "PatchConfig":
        """Read configuration from the environment (or a given mapping)."""
        env = os.environ if env is None else env

        origins = list(DEFAULT_CORS_ORIGINS)
        for origin in env.get("AETHER_CORS_ORIGINS", "").split(","):
            origin = origin.strip()
            if origin and origin not in origins:
                origins.append(origin)

        max_universe = _number(env, "AETHER_MAX_UNIVERSE", 4, int)
        if max_universe < 1:
            raise ValueError(f"AETHER_MAX_UNIVERSE must be >= 1, got {max_universe}")

        return cls(
            core_url=env.get("AETHER_CORE_URL", "http://localhost:8891").rstrip("/"),
            port=_number(env, "AETHER_PATCH_PORT", 8892, int),
            poll_interval_s=_number(env, "AETHER_POLL_INTERVAL_S", 5.0, float),
            resume_delay_s=_number(env, "AETHER_POLL_RESUME_DELAY_MS", 300, int) / 1000.0,
            http_timeout_s=_number(env, "AETHER_HTTP_TIMEOUT_S", 3.0, float),
            max_universe=max_universe,
            cors_origins=origins,
            log_dir=env.get("AETHER_PATCH_LOG_DIR") or None,
        )
