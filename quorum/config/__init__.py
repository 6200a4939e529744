"""
Configuration loading for Quorum.

Configuration values are resolved using the following precedence:

1. Explicit path passed to `load_config`
2. Environment variables (e.g., QUORUM_MAX_RETRIES)
3. `quorum.toml` if present in the working directory
4. Built-in defaults
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import tomllib
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from quorum.providers.interfaces import ProviderHandle

__all__ = [
    "BackendCredentials",
    "ConfigError",
    "QuorumConfig",
    "QuorumError",
    "load_config",
]


OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_CONFIG_FILE = Path("quorum.toml")


class QuorumError(Exception):
    """Base class for errors raised by quorum itself."""


class ConfigError(QuorumError, RuntimeError):
    """Raised when configuration cannot be loaded or validated."""


class BackendCredentials(BaseModel):
    """Credentials and endpoint for one backend kind."""

    api_key: Optional[str] = Field(None, description="API key", repr=False)
    api_key_env: Optional[str] = Field(None, description="Environment variable holding the API key")
    base_url: Optional[str] = Field(None, description="Override endpoint base URL")

    def resolve_api_key(self) -> Optional[str]:
        """Return the explicit key, falling back to the named environment variable."""
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.getenv(self.api_key_env)
        return None


class QuorumConfig(BaseModel):
    """Top-level configuration object shared across subsystems."""

    max_retries: int = Field(5, description="Attempt budget per expert", ge=1)
    sandbox_timeout: float = Field(10.0, description="Sandbox wall-clock limit in seconds", gt=0)
    python_executable: str = Field(
        default_factory=lambda: sys.executable or "python3",
        description="Interpreter used by the sandbox",
        min_length=1,
    )
    similarity_threshold: float = Field(
        0.7, description="Semantic clustering threshold", ge=0.0, le=1.0
    )
    chunk_size: int = Field(48, description="Characters per streamed chunk", ge=1)
    chunk_delay: float = Field(0.0, description="Delay between streamed chunks", ge=0.0)
    max_tokens: int = Field(8192, description="Completion token limit per call", ge=1)
    window_size: int = Field(10, description="Recent turns kept verbatim in context", ge=1)
    summary_trigger_turns: int = Field(
        6, description="User/assistant exchanges between summaries", ge=1
    )
    title_max_length: int = Field(60, description="Maximum generated title length", ge=1)
    log_level: str = Field("INFO", description="Log level")
    log_format: str = Field("console", description="Log format: json or console")
    router_config: Optional[Path] = Field(None, description="YAML file with router keywords")
    openai: BackendCredentials = Field(
        default_factory=lambda: BackendCredentials(api_key_env="OPENAI_API_KEY")
    )
    anthropic: BackendCredentials = Field(
        default_factory=lambda: BackendCredentials(api_key_env="ANTHROPIC_API_KEY")
    )
    openrouter: BackendCredentials = Field(
        default_factory=lambda: BackendCredentials(
            api_key_env="OPENROUTER_API_KEY", base_url=OPENROUTER_BASE_URL
        )
    )
    providers: List[ProviderHandle] = Field(
        default_factory=list, description="Providers used when none are given explicitly"
    )

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("log_format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        if value not in ("json", "console"):
            raise ValueError(f"log_format must be 'json' or 'console', got {value!r}")
        return value

    @field_validator("router_config", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Optional[Path]:
        if value is None or isinstance(value, Path):
            return value
        return Path(value)


_ENV_FIELDS = {
    "QUORUM_MAX_RETRIES": "max_retries",
    "QUORUM_SANDBOX_TIMEOUT": "sandbox_timeout",
    "QUORUM_PYTHON": "python_executable",
    "QUORUM_SIMILARITY_THRESHOLD": "similarity_threshold",
    "QUORUM_CHUNK_SIZE": "chunk_size",
    "QUORUM_CHUNK_DELAY": "chunk_delay",
    "QUORUM_MAX_TOKENS": "max_tokens",
    "QUORUM_WINDOW_SIZE": "window_size",
    "QUORUM_SUMMARY_TRIGGER_TURNS": "summary_trigger_turns",
    "QUORUM_TITLE_MAX_LENGTH": "title_max_length",
    "QUORUM_LOG_LEVEL": "log_level",
    "QUORUM_LOG_FORMAT": "log_format",
    "QUORUM_ROUTER_CONFIG": "router_config",
}

_BACKENDS = ("openai", "anthropic", "openrouter")


def load_config(config_path: Optional[Path | str] = None) -> QuorumConfig:
    """
    Load Quorum configuration from file/environment/defaults.

    Args:
        config_path: Optional explicit path to a `quorum.toml` file.

    Returns:
        QuorumConfig populated with the resolved values.

    Raises:
        ConfigError: if the provided config path does not exist, parsing
            fails or a value does not validate.
    """

    raw_data = _load_toml_data(config_path)
    values: Dict[str, Any] = {}

    settings = raw_data.get("quorum", raw_data)
    for env_var, field_name in _ENV_FIELDS.items():
        resolved = _env_or_value(env_var, settings.get(field_name))
        if resolved is not None:
            values[field_name] = resolved

    for backend in _BACKENDS:
        section = raw_data.get(backend)
        if section is not None:
            values[backend] = _load_credentials(backend, section)

    values["providers"] = _load_provider_handles(raw_data.get("providers", []))

    try:
        return QuorumConfig(**values)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def _load_toml_data(config_path: Optional[Path | str]) -> Dict[str, Any]:
    """Load data from a TOML file if one can be resolved."""

    resolved = _resolve_config_path(config_path)
    if resolved is None:
        return {}

    if not resolved.exists():
        raise ConfigError(f"Configuration file not found: {resolved}")

    try:
        with resolved.open("rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Could not parse {resolved}: {exc}") from exc


def _resolve_config_path(config_path: Optional[Path | str]) -> Optional[Path]:
    """Resolve configuration path with environment fallback."""

    if config_path:
        return Path(config_path)

    env_path = os.getenv("QUORUM_CONFIG_FILE")
    if env_path:
        return Path(env_path)

    return DEFAULT_CONFIG_FILE if DEFAULT_CONFIG_FILE.exists() else None


def _load_credentials(backend: str, raw: Dict[str, Any]) -> BackendCredentials:
    defaults = QuorumConfig.model_fields[backend].default_factory()
    data = defaults.model_dump()
    data.update(raw)
    return BackendCredentials(**data)


def _load_provider_handles(raw: List[Dict[str, Any]]) -> List[ProviderHandle]:
    """Convert ``[[providers]]`` tables into ProviderHandle instances."""

    handles: List[ProviderHandle] = []
    for entry in raw:
        data = dict(entry)
        data.setdefault("name", data.get("id", ""))
        api_key_env = data.pop("api_key_env", None)
        if not data.get("api_key") and api_key_env:
            data["api_key"] = os.getenv(api_key_env)
        try:
            handles.append(ProviderHandle(**data))
        except ValidationError as exc:
            raise ConfigError(f"Invalid provider entry {entry!r}: {exc}") from exc
    return handles


def _env_or_value(env_var: str, value: Any) -> Any:
    """Return environment variable value if set, otherwise the file value."""

    env_value = os.getenv(env_var)
    if env_value is not None:
        return env_value
    return value
