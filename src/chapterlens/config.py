"""Configuration loader for chapterlens.

Loads from chapterlens.toml with sensible defaults when file is absent.
Configuration is loaded once at startup and passed via dependency injection.
Model names and the API key may be overridden from the environment.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path

from chapterlens.exceptions import ConfigError

__all__ = [
    "CompressionConfig",
    "Config",
    "ConfigError",
    "LoggingConfig",
    "ModelConfig",
    "RateLimitConfig",
    "ServerConfig",
    "apply_env_overrides",
    "load_config",
]

DEFAULT_BASE_URL = "https://api.groq.com/openai/v1"
DEFAULT_LARGE_MODEL = "llama3-70b-8192"
DEFAULT_SMALL_MODEL = "llama3-8b-8192"

ENV_LARGE_MODEL = "CHAPTERLENS_LARGE_MODEL"
ENV_SMALL_MODEL = "CHAPTERLENS_SMALL_MODEL"
ENV_API_KEY = "GROQ_API_KEY"


@dataclass(frozen=True)
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 9000


@dataclass(frozen=True)
class ModelConfig:
    """Configuration for the OpenAI-compatible chat endpoint."""

    base_url: str = DEFAULT_BASE_URL
    large_model: str = DEFAULT_LARGE_MODEL  # primary analysis
    small_model: str = DEFAULT_SMALL_MODEL  # language detection
    api_key: str = ""
    temperature: float = 0.2
    token_limit: int = 8192
    reserved_tokens: int = 1000
    timeout_seconds: float = 60.0

    def __repr__(self) -> str:
        key_display = f"***{self.api_key[-4:]}" if self.api_key else ""
        return (
            f"ModelConfig(base_url={self.base_url!r}, "
            f"large_model={self.large_model!r}, small_model={self.small_model!r}, "
            f"api_key={key_display!r})"
        )


@dataclass(frozen=True)
class RateLimitConfig:
    max_calls_per_minute: int = 5
    max_calls_per_hour: int = 30
    max_calls_per_day: int = 100
    max_retries: int = 5
    endpoint: str = "groq"
    state_path: str = ""  # empty = in-memory only

    @property
    def resolved_state_path(self) -> Path | None:
        if not self.state_path:
            return None
        return Path(self.state_path).expanduser()


@dataclass(frozen=True)
class CompressionConfig:
    max_chapter_chars: int = 4000


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class Config:
    """Top-level chapterlens configuration."""

    server: ServerConfig = field(default_factory=ServerConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    compression: CompressionConfig = field(default_factory=CompressionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _int_setting(data: dict, key: str, default: int, minimum: int) -> int:
    raw = data.get(key, default)
    try:
        value = int(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ConfigError(f"{key} must be at least {minimum}, got {value}")
    return value


def _positive_int(data: dict, key: str, default: int) -> int:
    return _int_setting(data, key, default, minimum=1)


def _non_negative_int(data: dict, key: str, default: int) -> int:
    return _int_setting(data, key, default, minimum=0)


def apply_env_overrides(config: Config, environ: dict[str, str] | None = None) -> Config:
    """Return config with model names and API key taken from the environment."""
    env = os.environ if environ is None else environ
    model = config.model
    large = env.get(ENV_LARGE_MODEL, "").strip()
    small = env.get(ENV_SMALL_MODEL, "").strip()
    api_key = env.get(ENV_API_KEY, "").strip()
    if large:
        model = replace(model, large_model=large)
    if small:
        model = replace(model, small_model=small)
    if api_key and not model.api_key:
        model = replace(model, api_key=api_key)
    if model is config.model:
        return config
    return replace(config, model=model)


def load_config(path: Path | None = None) -> Config:
    """Load configuration from a TOML file.

    If path is None, searches for chapterlens.toml in current directory
    then ~/.chapterlens/. Returns default config if no file is found.
    Environment overrides are applied either way.
    """
    if path is None:
        candidates = [
            Path.cwd() / "chapterlens.toml",
            Path.home() / ".chapterlens" / "chapterlens.toml",
        ]
        for candidate in candidates:
            if candidate.exists():
                path = candidate
                break

    if path is None or not path.exists():
        return apply_env_overrides(Config())

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e

    server_data = raw.get("server", {})
    server = ServerConfig(
        host=server_data.get("host", "127.0.0.1"),
        port=server_data.get("port", 9000),
    )

    model_data = raw.get("model", {})
    model = ModelConfig(
        base_url=model_data.get("base_url", DEFAULT_BASE_URL),
        large_model=model_data.get("large_model", DEFAULT_LARGE_MODEL),
        small_model=model_data.get("small_model", DEFAULT_SMALL_MODEL),
        api_key=model_data.get("api_key", ""),
        temperature=float(model_data.get("temperature", 0.2)),
        token_limit=_positive_int(model_data, "token_limit", 8192),
        reserved_tokens=int(model_data.get("reserved_tokens", 1000)),
        timeout_seconds=float(model_data.get("timeout_seconds", 60.0)),
    )
    if model.reserved_tokens >= model.token_limit:
        raise ConfigError(
            f"reserved_tokens ({model.reserved_tokens}) must be below "
            f"token_limit ({model.token_limit})"
        )

    limit_data = raw.get("rate_limit", {})
    rate_limit = RateLimitConfig(
        max_calls_per_minute=_positive_int(limit_data, "max_calls_per_minute", 5),
        max_calls_per_hour=_positive_int(limit_data, "max_calls_per_hour", 30),
        max_calls_per_day=_positive_int(limit_data, "max_calls_per_day", 100),
        max_retries=_non_negative_int(limit_data, "max_retries", 5),
        endpoint=str(limit_data.get("endpoint", "groq")),
        state_path=str(limit_data.get("state_path", "")),
    )

    compression_data = raw.get("compression", {})
    compression = CompressionConfig(
        max_chapter_chars=_positive_int(compression_data, "max_chapter_chars", 4000),
    )

    log_data = raw.get("logging", {})
    logging_cfg = LoggingConfig(level=str(log_data.get("level", "INFO")).upper())

    return apply_env_overrides(Config(
        server=server,
        model=model,
        rate_limit=rate_limit,
        compression=compression,
        logging=logging_cfg,
    ))
