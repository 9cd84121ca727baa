from __future__ import annotations

import dataclasses
import os

from reansql.errors import ConfigError


def _split_keys(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [k.strip() for k in raw.split(",") if k.strip()]


def _float_env(env: dict[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


def _int_env(env: dict[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


@dataclasses.dataclass(frozen=True)
class Settings:
    gemini_api_keys: tuple[str, ...]
    gemini_model: str = "gemini-2.5-flash"
    gemini_timeout_s: float = 60.0
    gemini_max_retries: int = 3
    pacing_delay_s: float = 1.0
    log_level: str = "INFO"

    @staticmethod
    def from_env(env: dict[str, str] | None = None) -> "Settings":
        env = dict(os.environ if env is None else env)
        keys = _split_keys(env.get("GEMINI_API_KEYS")) or _split_keys(env.get("GEMINI_API_KEY"))
        max_retries = _int_env(env, "GEMINI_MAX_RETRIES", 3)
        if max_retries < 0:
            raise ConfigError("GEMINI_MAX_RETRIES must not be negative")
        pacing = _float_env(env, "PIPELINE_PACING_DELAY_S", 1.0)
        if pacing < 0:
            raise ConfigError("PIPELINE_PACING_DELAY_S must not be negative")
        return Settings(
            gemini_api_keys=tuple(keys),
            gemini_model=env.get("GEMINI_MODEL") or "gemini-2.5-flash",
            gemini_timeout_s=_float_env(env, "GEMINI_TIMEOUT_S", 60.0),
            gemini_max_retries=max_retries,
            pacing_delay_s=pacing,
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )
