"""Configuration system for FinChat.

This module provides a typed configuration loader that reads settings from TOML files
and environment variables, following a clear precedence order:

1. Environment variables (highest priority)
2. config/local.toml (if it exists)
3. config/default.toml (lowest priority)

Configuration is structured using dataclasses for type safety and clarity. All settings
are immutable (frozen) after loading.

Configuration Validation:
    All configuration values are validated immediately after loading. Invalid values
    cause a ValueError to be raised with a clear, actionable error message.

    Validation rules:
    - provider: Must be "openai" or "ollama"
    - api_key: Must be set when provider is "openai"
    - temperature: Must be a number between 0 and 2
    - max_tokens: Must be an integer > 0
    - request_timeout_seconds: Must be a number > 0
    - debug: Must be a boolean

Configuration Logging:
    Upon successful loading, an INFO-level message is logged indicating the provider,
    model name, and debug flag. The API key is never logged.

Environment Variables:
    FINCHAT_PROVIDER: Completion backend, "openai" or "ollama" (default: openai)
    FINCHAT_MODEL: Model identifier (default: llama-3.3-70b-versatile)
    FINCHAT_BASE_URL: Endpoint base URL (default: https://api.groq.com/openai/v1)
    FINCHAT_API_KEY: Static bearer token attached to every request
    FINCHAT_TEMPERATURE: Sampling temperature (default: 0.5)
    FINCHAT_MAX_TOKENS: Maximum completion length (default: 1024)
    FINCHAT_REQUEST_TIMEOUT_SECONDS: Transport timeout per request (default: 60)
    FINCHAT_DEBUG: Enable DEBUG-level logging (default: false)
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

from finchat.session.utils.helpers import get_config_dir
from finchat.session.utils.logging import get_logger


logger = get_logger("finchat")

PROVIDERS = ("openai", "ollama")


@dataclass(frozen=True)
class LLMSettings:
    """Settings for the remote completion backend.

    Attributes:
        provider: Which client talks to the endpoint ("openai" for any OpenAI-compatible
                  chat completions API, "ollama" for an Ollama server).
        model: Model identifier sent with every request.
        base_url: Endpoint base URL. For "openai" the client posts to {base_url}/chat/completions.
        api_key: Static credential sent as a bearer token. Empty means no Authorization header.
        temperature: Sampling temperature.
        max_tokens: Maximum length of one completion.
        request_timeout_seconds: Transport timeout for one request.
    """
    provider: str
    model: str
    base_url: str
    api_key: str
    temperature: float
    max_tokens: int
    request_timeout_seconds: float


@dataclass(frozen=True)
class SessionSettings:
    """Settings for the chat session.

    Attributes:
        debug: Enable DEBUG-level logging for submissions, stale results and configuration.
    """
    debug: bool


@dataclass(frozen=True)
class Settings:
    """Top-level immutable settings."""
    llm: LLMSettings
    session: SessionSettings


def _parse_bool(value: str) -> bool:
    """Parse a string value as a boolean.

    Args:
        value: A string that should represent a boolean.
               Accepts "true", "false" (case-insensitive), "1", "0", "yes", "no".

    Returns:
        bool: The parsed value.

    Raises:
        ValueError: If value is not a recognized boolean representation.
    """
    if isinstance(value, bool):
        return value
    if value.lower() in ("true", "1", "yes"):
        return True
    if value.lower() in ("false", "0", "no"):
        return False
    raise ValueError(f"Cannot parse '{value}' as boolean")


def _load_toml(path: Path) -> dict:
    """Load TOML file, returning empty dict when missing."""
    if not path.exists():
        return {}

    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except Exception as exc:
        raise RuntimeError(f"Failed to load TOML file {path}: {exc}") from exc


def _get_config_dir() -> Path:
    """Get the config directory path (relative to project root).

    Raises:
        RuntimeError: If config directory cannot be located.
    """
    config_dir = get_config_dir()
    if not config_dir.exists():
        raise RuntimeError(
            f"Config directory not found. Expected: {config_dir}\n"
            "Please run FinChat from the project root or ensure config/default.toml exists."
        )
    return config_dir


def load_settings() -> Settings:
    """Load FinChat configuration from files and environment variables.

    Configuration precedence (highest to lowest):
    1. Environment variables (FINCHAT_* prefix)
    2. config/local.toml (if it exists)
    3. config/default.toml (required; must exist)

    Returns:
        Settings: The loaded, merged, and validated configuration object.

    Raises:
        RuntimeError: If config/default.toml is missing or malformed.
        ValueError: If required fields are missing, invalid, or fail validation.
    """
    config_dir = _get_config_dir()

    default_path = config_dir / "default.toml"
    if not default_path.exists():
        raise RuntimeError(f"default.toml not found at {default_path}")

    default_data = _load_toml(default_path)
    local_data = _load_toml(config_dir / "local.toml")

    # local overrides default, section by section
    merged = {}
    for section in ("llm", "session"):
        merged[section] = {}
        if section in default_data:
            merged[section].update(default_data[section])
        if section in local_data:
            merged[section].update(local_data[section])

    llm_config = merged["llm"]
    provider = str(os.getenv("FINCHAT_PROVIDER", llm_config.get("provider", "openai"))).strip().lower()
    model = os.getenv("FINCHAT_MODEL", llm_config.get("model"))
    base_url = os.getenv("FINCHAT_BASE_URL", llm_config.get("base_url"))
    api_key = os.getenv("FINCHAT_API_KEY", llm_config.get("api_key", "")) or ""
    temperature_raw = os.getenv("FINCHAT_TEMPERATURE", llm_config.get("temperature", 0.5))
    max_tokens_raw = os.getenv("FINCHAT_MAX_TOKENS", llm_config.get("max_tokens", 1024))
    timeout_raw = os.getenv(
        "FINCHAT_REQUEST_TIMEOUT_SECONDS",
        llm_config.get("request_timeout_seconds", 60),
    )

    if provider not in PROVIDERS:
        raise ValueError(
            f"provider must be one of {', '.join(PROVIDERS)}, got '{provider}'. "
            "Set FINCHAT_PROVIDER or config llm.provider."
        )
    if not model:
        raise ValueError("LLM model not configured. Set FINCHAT_MODEL or config llm.model")
    if not base_url:
        raise ValueError("LLM base_url not configured. Set FINCHAT_BASE_URL or config llm.base_url")
    if provider == "openai" and not str(api_key).strip():
        raise ValueError(
            "API key not configured. Set FINCHAT_API_KEY or config llm.api_key in config/local.toml."
        )

    try:
        temperature = float(temperature_raw)
        max_tokens = int(max_tokens_raw)
        request_timeout = float(timeout_raw)
    except (ValueError, TypeError) as e:
        raise ValueError(
            "temperature and request_timeout_seconds must be numbers and max_tokens an integer. "
            f"Got: {temperature_raw}, {timeout_raw}, {max_tokens_raw}"
        ) from e

    if not 0.0 <= temperature <= 2.0:
        raise ValueError(
            f"temperature must be between 0 and 2, got {temperature}. "
            "Set FINCHAT_TEMPERATURE or config llm.temperature."
        )
    if max_tokens <= 0:
        raise ValueError(
            f"max_tokens must be greater than zero, got {max_tokens}. "
            "Set FINCHAT_MAX_TOKENS or config llm.max_tokens."
        )
    if request_timeout <= 0:
        raise ValueError(
            f"request_timeout_seconds must be greater than zero, got {request_timeout}. "
            "Set FINCHAT_REQUEST_TIMEOUT_SECONDS or config llm.request_timeout_seconds."
        )

    llm_settings = LLMSettings(
        provider=provider,
        model=str(model),
        base_url=str(base_url).rstrip("/"),
        api_key=str(api_key).strip(),
        temperature=temperature,
        max_tokens=max_tokens,
        request_timeout_seconds=request_timeout,
    )

    session_config = merged["session"]
    debug_raw = os.getenv("FINCHAT_DEBUG", session_config.get("debug", False))
    try:
        debug = _parse_bool(debug_raw) if isinstance(debug_raw, str) else bool(debug_raw)
    except ValueError as e:
        raise ValueError(f"Invalid FINCHAT_DEBUG value: {debug_raw}") from e

    settings = Settings(llm=llm_settings, session=SessionSettings(debug=debug))

    logger.info(
        f"Configuration loaded: provider={llm_settings.provider}, model={llm_settings.model}, "
        f"debug={debug}"
    )

    return settings
