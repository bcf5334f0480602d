"""Dashboard configuration loading and validation.

Reads an optional ``dashboard.toml``, resolves ``${VAR}`` references, then
applies environment-variable overrides and returns a ``DashboardConfig``.

Vendor secrets are optional at load time.  Handlers that need them call
``require_google_client()`` / ``require_api_key()`` so that a missing secret
fails only the dependent handler instead of the whole process.
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from signal_dashboard.errors import ConfigurationError

DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_CONFIG_FILENAME = "dashboard.toml"
DEFAULT_CHAT_MODEL = "sonar-pro"

# ${VAR_NAME} references; names are letters, digits and underscores.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

_VALID_LOG_FORMATS = ("text", "json")


class ConfigError(Exception):
    """Raised when dashboard configuration is malformed or invalid."""


@dataclass
class LoggingConfig:
    """Logging configuration from the [logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_file: str | None = None


@dataclass
class ServerConfig:
    """HTTP server settings from the [server] section."""

    host: str = "127.0.0.1"
    port: int = 3000
    cors_origins: list[str] = field(default_factory=lambda: [DEFAULT_BASE_URL])


@dataclass
class GoogleConfig:
    """Google OAuth client settings from the [google] section."""

    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str | None = None


@dataclass
class PerplexityConfig:
    """Perplexity API settings from the [perplexity] section."""

    api_key: str | None = None
    default_model: str = DEFAULT_CHAT_MODEL


@dataclass
class DashboardConfig:
    """Complete dashboard configuration."""

    base_url: str = DEFAULT_BASE_URL
    environment: str = "development"
    google: GoogleConfig = field(default_factory=GoogleConfig)
    perplexity: PerplexityConfig = field(default_factory=PerplexityConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @property
    def redirect_uri(self) -> str:
        """OAuth callback URL registered with Google."""
        return self.google.redirect_uri or f"{self.base_url}/api/google/callback"

    @property
    def cookie_secure(self) -> bool:
        """Token cookies carry the ``Secure`` attribute in production only."""
        return self.environment == "production"

    def require_google_client(self) -> tuple[str, str]:
        """Return ``(client_id, client_secret)`` or raise ConfigurationError."""
        client_id = self.google.client_id
        client_secret = self.google.client_secret
        if not client_id or not client_secret:
            missing = [
                name
                for name, value in (
                    ("GOOGLE_CLIENT_ID", client_id),
                    ("GOOGLE_CLIENT_SECRET", client_secret),
                )
                if not value
            ]
            raise ConfigurationError(f"Google OAuth client is not configured: {', '.join(missing)}")
        return client_id, client_secret

    def require_api_key(self) -> str:
        """Return the Perplexity API key or raise ConfigurationError."""
        if not self.perplexity.api_key:
            raise ConfigurationError("Perplexity API key not set")
        return self.perplexity.api_key


# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists, and strings.  Non-string leaf values are returned
    unchanged.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    if isinstance(value, str):
        return _resolve_string(value)

    return value


def _resolve_string(s: str) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s* with env var values.

    Collects all missing variable names and reports them in a single error.
    """
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(
            f"Unresolved environment variable(s) in config value: {vars_str} (original: {s!r})"
        )

    return result


def _env(name: str) -> str | None:
    value = os.environ.get(name, "").strip()
    return value or None


# ---------------------------------------------------------------------------
# Section parsers
# ---------------------------------------------------------------------------


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    return section


def _optional_str(section: dict[str, Any], key: str, section_name: str) -> str | None:
    value = section.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"{section_name}.{key} must be a string")
    return value.strip() or None


def _parse_logging(section: dict[str, Any]) -> LoggingConfig:
    level = str(section.get("level", "INFO")).upper()
    fmt = str(section.get("format", "text")).lower()
    if fmt not in _VALID_LOG_FORMATS:
        raise ConfigError(f"logging.format must be one of {', '.join(_VALID_LOG_FORMATS)}")
    return LoggingConfig(
        level=level,
        format=fmt,
        log_file=_optional_str(section, "log_file", "logging"),
    )


def _parse_server(section: dict[str, Any]) -> ServerConfig:
    server = ServerConfig()
    if "host" in section:
        server.host = str(section["host"])
    if "port" in section:
        port = section["port"]
        if isinstance(port, bool) or not isinstance(port, int) or port <= 0:
            raise ConfigError("server.port must be a positive integer")
        server.port = port
    if "cors_origins" in section:
        origins = section["cors_origins"]
        if not isinstance(origins, list) or not all(isinstance(o, str) for o in origins):
            raise ConfigError("server.cors_origins must be a list of strings")
        server.cors_origins = origins
    return server


# ---------------------------------------------------------------------------
# load_config()
# ---------------------------------------------------------------------------


def load_config(config_path: Path | None = None) -> DashboardConfig:
    """Load dashboard configuration from TOML (optional) and the environment.

    Parameters
    ----------
    config_path:
        Path to a ``dashboard.toml`` file, or a directory containing one.
        When ``None`` or when the file does not exist, only environment
        variables and defaults are used.

    Raises
    ------
    ConfigError
        If the file contains invalid TOML, malformed sections, or references
        unset environment variables.
    """
    data: dict[str, Any] = {}
    if config_path is not None:
        toml_path = config_path / DEFAULT_CONFIG_FILENAME if config_path.is_dir() else config_path
        if toml_path.exists():
            try:
                data = tomllib.loads(toml_path.read_text())
            except tomllib.TOMLDecodeError as exc:
                raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc
            data = resolve_env_vars(data)

    dashboard = _section(data, "dashboard")
    google = _section(data, "google")
    perplexity = _section(data, "perplexity")

    config = DashboardConfig(
        base_url=_optional_str(dashboard, "base_url", "dashboard") or DEFAULT_BASE_URL,
        environment=_optional_str(dashboard, "environment", "dashboard") or "development",
        google=GoogleConfig(
            client_id=_optional_str(google, "client_id", "google"),
            client_secret=_optional_str(google, "client_secret", "google"),
            redirect_uri=_optional_str(google, "redirect_uri", "google"),
        ),
        perplexity=PerplexityConfig(
            api_key=_optional_str(perplexity, "api_key", "perplexity"),
            default_model=_optional_str(perplexity, "default_model", "perplexity")
            or DEFAULT_CHAT_MODEL,
        ),
        logging=_parse_logging(_section(data, "logging")),
        server=_parse_server(_section(data, "server")),
    )

    # --- Environment overrides ---
    base_url = _env("DASHBOARD_BASE_URL") or _env("NEXT_PUBLIC_BASE_URL")
    if base_url:
        config.base_url = base_url
    config.base_url = config.base_url.rstrip("/")
    config.environment = _env("DASHBOARD_ENV") or config.environment
    config.google.client_id = _env("GOOGLE_CLIENT_ID") or config.google.client_id
    config.google.client_secret = _env("GOOGLE_CLIENT_SECRET") or config.google.client_secret
    config.google.redirect_uri = _env("GOOGLE_REDIRECT_URI") or config.google.redirect_uri
    config.perplexity.api_key = _env("PERPLEXITY_API_KEY") or config.perplexity.api_key

    log_level = _env("DASHBOARD_LOG_LEVEL")
    if log_level:
        config.logging.level = log_level.upper()
    log_format = _env("DASHBOARD_LOG_FORMAT")
    if log_format:
        if log_format.lower() not in _VALID_LOG_FORMATS:
            raise ConfigError(
                f"DASHBOARD_LOG_FORMAT must be one of {', '.join(_VALID_LOG_FORMATS)}"
            )
        config.logging.format = log_format.lower()

    return config
