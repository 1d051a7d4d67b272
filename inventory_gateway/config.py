"""Configuration module for the inventory gateway.

Implements Pydantic v2 Settings for configuration management with support for:
- Environment variables (INVENTORY_GATEWAY_* prefix)
- YAML/TOML configuration files
- Command-line argument overrides

Configuration priority (later overrides earlier):
1. Built-in defaults
2. Configuration file (YAML/TOML)
3. Environment variables
4. Command-line arguments

Data-service and OAuth values are optional at load time so the HTTP app can
start and serve ``/health``; handlers that need them call ``Settings.require``
which raises ``ConfigurationError`` on first use.
"""

import logging
import warnings
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from inventory_gateway.domain.exceptions import ConfigurationError
from inventory_gateway.domain.models import PROVIDER_LOGIN_METHOD

logger = logging.getLogger(__name__)

INSECURE_LAB_COOKIE_KEY = "INSECURE_LAB_KEY_DO_NOT_USE_IN_PRODUCTION"


class Settings(BaseSettings):
    """Application configuration with sensible defaults.

    Example:
        # Load from environment only
        settings = Settings()

        # Override specific values
        settings = Settings(environment="prod", supabase_url="https://x.supabase.co")
    """

    model_config = SettingsConfigDict(
        env_prefix="INVENTORY_GATEWAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore unknown fields
    )

    # ========================================
    # Application Settings
    # ========================================

    environment: Literal["lab", "staging", "prod"] = Field(
        default="lab", description="Deployment environment (cookies are Secure in prod)"
    )

    debug: bool = Field(default=False, description="Enable debug mode with verbose logging")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )

    log_format: Literal["json", "text"] = Field(default="json", description="Log output format")

    http_host: str = Field(
        default="127.0.0.1",
        description="HTTP server bind address (0.0.0.0 for all interfaces)",
    )

    http_port: int = Field(default=8080, ge=1, le=65535, description="HTTP server port")

    # ========================================
    # Data Service (Supabase)
    # ========================================

    supabase_url: str | None = Field(
        default=None, description="Base URL of the hosted data/auth service"
    )

    supabase_anon_key: str | None = Field(
        default=None, description="Public (anon) API key of the data service"
    )

    supabase_service_role_key: str | None = Field(
        default=None, description="Service-role key used for elevated queries"
    )

    upstream_timeout_seconds: float = Field(
        default=10.0, ge=1.0, le=120.0, description="Timeout for data-service and provider calls"
    )

    # ========================================
    # External OAuth Provider
    # ========================================

    oauth_provider_url: str | None = Field(
        default=None,
        description="Base URL of the external provider (falls back to supabase_url)",
    )

    oauth_provider_name: str = Field(
        default=PROVIDER_LOGIN_METHOD, description="Provider name stored on linked accounts"
    )

    oauth_client_id: str | None = Field(default=None, description="OAuth client ID")

    oauth_client_secret: str | None = Field(
        default=None, description="OAuth client secret (sent on token exchange when set)"
    )

    oauth_scopes: str = Field(
        default="openid profile email", description="Scopes requested at authorization"
    )

    sso_entry_url: str | None = Field(
        default=None, description="Login-page SSO button target (defaults to /api/auth/sso)"
    )

    # ========================================
    # Security & Session State
    # ========================================

    cookie_encryption_key: str | None = Field(
        default=None,
        description="Fernet key sealing the JSON session cookies (base64, 32 bytes)",
    )

    redis_url: str | None = Field(
        default=None,
        description="Redis URL for the OAuth state nonce store (in-memory when unset)",
    )

    redis_timeout_seconds: float = Field(
        default=5.0, ge=0.1, le=60.0, description="Redis operation timeout"
    )

    # ========================================
    # Validators
    # ========================================

    @field_validator("supabase_url", "oauth_provider_url")
    @classmethod
    def validate_base_url(cls, v: str | None) -> str | None:
        """Validate service URLs and strip trailing slashes."""
        if v is None or v == "":
            return None
        if not (v.startswith("https://") or v.startswith("http://")):
            raise ValueError("service URLs must start with http:// or https://")
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_cookie_encryption_key(self) -> "Settings":
        """Require a cookie key outside lab."""
        if self.cookie_encryption_key is None:
            if self.environment in ["staging", "prod"]:
                raise ValueError(
                    "cookie_encryption_key is required for staging/prod environments"
                )
            warnings.warn(
                "cookie_encryption_key not set, using insecure default for lab only",
                UserWarning,
                stacklevel=2,
            )
            self.cookie_encryption_key = INSECURE_LAB_COOKIE_KEY
        return self

    @model_validator(mode="after")
    def validate_nonce_store(self) -> "Settings":
        """Warn when prod runs without a shared nonce store."""
        if self.environment == "prod" and not self.redis_url:
            warnings.warn(
                "redis_url not set in prod; OAuth state replay protection is per-process",
                UserWarning,
                stacklevel=2,
            )
        return self

    # ========================================
    # Helper Methods
    # ========================================

    @property
    def secure_cookies(self) -> bool:
        """Whether cookies carry the Secure attribute."""
        return self.environment == "prod"

    @property
    def effective_provider_url(self) -> str | None:
        """Provider base URL, falling back to the data-service URL."""
        return self.oauth_provider_url or self.supabase_url

    def require(self, *field_names: str) -> None:
        """Ensure the named settings are present.

        Args:
            field_names: Settings attributes that must be non-empty

        Raises:
            ConfigurationError: If any of them is missing
        """
        missing = []
        for name in field_names:
            value = (
                self.effective_provider_url
                if name == "oauth_provider_url"
                else getattr(self, name)
            )
            if not value:
                missing.append(name)
        if missing:
            logger.error(
                "Required configuration missing",
                extra={"missing_settings": missing},
            )
            raise ConfigurationError(
                f"Missing required settings: {', '.join(missing)}",
                context={"missing": missing},
            )

    def to_dict(self) -> dict:
        """Convert settings to dictionary, masking secrets."""
        data = self.model_dump()
        for key in (
            "supabase_anon_key",
            "supabase_service_role_key",
            "oauth_client_secret",
            "cookie_encryption_key",
        ):
            if data.get(key):
                data[key] = "***REDACTED***"
        return data


# ========================================
# Global Settings Instance
# ========================================

_settings: Settings | None = None


def get_settings() -> Settings:
    """Get global settings instance (singleton).

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Settings) -> None:
    """Set global settings instance.

    Args:
        settings: Settings instance to use globally
    """
    global _settings
    _settings = settings


def load_settings_from_file(config_file: Path | str) -> Settings:
    """Load settings from YAML or TOML configuration file.

    Args:
        config_file: Path to configuration file

    Returns:
        Settings instance loaded from file

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file format is invalid

    Example:
        settings = load_settings_from_file("config/prod.yaml")
        set_settings(settings)
    """
    config_path = Path(config_file)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()

    if suffix in [".yaml", ".yml"]:
        import yaml

        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}
    elif suffix == ".toml":
        import tomllib

        with open(config_path, "rb") as f:
            config_data = tomllib.load(f)
    else:
        raise ValueError(f"Unsupported config file format: {suffix}. Use .yaml, .yml, or .toml")

    return Settings(**config_data)
