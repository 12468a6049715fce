"""Config - Process-wide defaults, hooks and the YAML config loader.

ProcessConfig holds everything shared by all requests: default request
settings, the registered interceptors, standard headers, the debug filter
word list and the default Sender/Codec. Builders capture a config at
construction time (the process-wide instance unless one is passed in), so
tests can inject an isolated config instead of mutating the global one.

load_config() reads a YAML file with ${ENV_VAR} substitution into a new
ProcessConfig.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import TYPE_CHECKING, Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from qwikhttp.codec import PydanticCodec
from qwikhttp.errors import ConfigError
from qwikhttp.models import CachePolicy, LoggingLevel, ParameterType, ResponseThread
from qwikhttp.scheduler import MainThreadScheduler

if TYPE_CHECKING:
    from qwikhttp.codec import Codec
    from qwikhttp.hooks import LoadingIndicator, RequestInterceptor, ResponseInterceptor
    from qwikhttp.sender import Sender


DEFAULT_TIMEOUT = 40.0


@dataclass
class ProcessConfig:
    """Defaults and hooks shared by every request built against this config."""

    default_timeout: float = DEFAULT_TIMEOUT
    default_cache_policy: CachePolicy = CachePolicy.RELOAD_IGNORING_CACHE
    default_parameter_type: ParameterType = ParameterType.JSON
    default_loading_title: str | None = None
    default_response_thread: ResponseThread = ResponseThread.MAIN
    default_logging_level: LoggingLevel = LoggingLevel.ERRORS

    request_interceptor: RequestInterceptor | None = None
    response_interceptor: ResponseInterceptor | None = None
    loading_indicator: LoadingIndicator | None = None

    standard_headers: dict[str, str] = field(default_factory=dict)
    filter_words: list[str] = field(default_factory=list)
    filter_debug_output: bool = True

    sender: Sender | None = None
    codec: Codec = field(default_factory=PydanticCodec)
    main_scheduler: MainThreadScheduler = field(default_factory=MainThreadScheduler)

    def __post_init__(self) -> None:
        self.set_default_timeout(self.default_timeout)
        self._sender_lock = Lock()

    def set_default_timeout(self, timeout: float) -> None:
        """Set the default timeout; non-positive values reset to DEFAULT_TIMEOUT."""
        self.default_timeout = timeout if timeout > 0 else DEFAULT_TIMEOUT

    def get_sender(self) -> Sender:
        """Return the configured Sender, creating an HttpxSender on first use."""
        with self._sender_lock:
            if self.sender is None:
                from qwikhttp.sender import HttpxSender

                self.sender = HttpxSender()
            return self.sender


_config = ProcessConfig()
_config_lock = Lock()


def get_config() -> ProcessConfig:
    """Return the process-wide configuration."""
    with _config_lock:
        return _config


def set_config(config: ProcessConfig) -> ProcessConfig:
    """Replace the process-wide configuration. Returns the previous one."""
    global _config
    with _config_lock:
        previous, _config = _config, config
    return previous


# =============================================================================
# YAML Config File
# =============================================================================


class ConfigFile(BaseModel):
    """Structure of a qwikhttp YAML config file."""

    model_config = ConfigDict(extra="forbid")

    default_timeout: float = Field(default=DEFAULT_TIMEOUT, description="Seconds")
    default_cache_policy: CachePolicy = Field(default=CachePolicy.RELOAD_IGNORING_CACHE)
    default_parameter_type: ParameterType = Field(default=ParameterType.JSON)
    default_loading_title: str | None = Field(default=None)
    default_response_thread: ResponseThread = Field(default=ResponseThread.MAIN)
    default_logging_level: LoggingLevel = Field(
        default=LoggingLevel.ERRORS, description="Name (errors) or number (1)"
    )
    standard_headers: dict[str, str] = Field(
        default_factory=dict, description="Headers added to every request"
    )
    filter_words: list[str] = Field(
        default_factory=list, description="Keys whose values are hidden in debug output"
    )
    filter_debug_output: bool = Field(default=True)


def load_config(config_path: Path) -> ProcessConfig:
    """Load a ProcessConfig from YAML with ${ENV_VAR} substitution."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _expand_env(raw_config)
    level = raw_config.get("default_logging_level")
    if isinstance(level, str):
        try:
            raw_config["default_logging_level"] = LoggingLevel[level.upper()]
        except KeyError:
            raise ConfigError(f"Unknown logging level: {level}") from None

    try:
        parsed = ConfigFile.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid config structure: {e}") from e

    return ProcessConfig(**parsed.model_dump())


_ENV_REFERENCE = re.compile(r"\$\{([^}]+)\}")


def _expand_env(value: Any) -> Any:
    """Expand ${NAME} references in every string nested inside value.

    Keys are left untouched; only values are expanded.
    """
    if isinstance(value, dict):
        return {key: _expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env(item) for item in value]
    if isinstance(value, str):
        return _ENV_REFERENCE.sub(_lookup_env, value)
    return value


def _lookup_env(match: re.Match) -> str:
    name = match.group(1)
    try:
        return os.environ[name]
    except KeyError:
        raise ConfigError(
            f"Config references ${{{name}}} but that environment variable is not set"
        ) from None
