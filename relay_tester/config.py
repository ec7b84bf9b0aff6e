"""Configuration loading for the relay conformance tester.

This module provides centralized configuration management:
- Load settings from a TOML config file, environment variables and .env files
- Let command-line overrides take precedence over every other source
- Validate configuration using pydantic
- Provide typed access to all settings
"""

import logging
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

from relay_tester.core.models import ConfigurationError, Nip
from relay_tester.core.runner import unique_in_order

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("nostr-relay-tester.toml")

# Well-known throwaway key; never use it for anything but testing.
DEFAULT_PRIVATE_KEY = "nsec1qqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqsmhltgl"


class Settings(BaseSettings):
    """Run configuration.

    Sources, highest priority first: init arguments (command-line
    overrides), environment, .env file, TOML config file, defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="RELAY_TESTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    relay_url: str | None = Field(
        default=None,
        description="Relay to test, e.g. wss://relay.primal.net",
    )
    key: str = Field(
        default=DEFAULT_PRIVATE_KEY,
        description="bech32-encoded (nsec) or hex private key signing test events",
    )
    nips: Annotated[list[Nip], NoDecode] = Field(
        default_factory=lambda: [Nip.NIP01, Nip.NIP09],
        description="NIPs to test, in order",
    )

    # Verification timing
    verify_timeout_seconds: float | None = Field(
        default=30.0,
        description="Deadline for the relay to echo a published event (None waits forever)",
    )
    fetch_timeout_seconds: float = Field(
        default=5.0,
        description="Deadline for stored-event queries",
    )

    # Logging configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log format",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    @field_validator("relay_url")
    @classmethod
    def validate_relay_url(cls, v: str | None) -> str | None:
        """Ensure the relay is addressed with a websocket scheme."""
        if v is None:
            return v
        v = v.strip()
        if not v.lower().startswith(("ws://", "wss://")):
            raise ValueError(f"relay_url must start with ws:// or wss://, got {v!r}")
        return v

    @field_validator("nips", mode="before")
    @classmethod
    def parse_nips(cls, v: Any) -> list[Nip]:
        """Accept comma separated or listed tokens, case-insensitive, without repeats."""
        if isinstance(v, str):
            tokens = [token for token in v.split(",") if token.strip()]
        else:
            tokens = list(v)
        nips = unique_in_order(Nip.parse(token) for token in tokens)
        if not nips:
            raise ValueError("at least one NIP must be requested")
        return nips

    @field_validator("verify_timeout_seconds")
    @classmethod
    def validate_verify_timeout(cls, v: float | None) -> float | None:
        """Ensure the verification deadline is positive when set."""
        if v is not None and v <= 0:
            raise ValueError("verify_timeout_seconds must be positive")
        return v

    @field_validator("fetch_timeout_seconds")
    @classmethod
    def validate_fetch_timeout(cls, v: float) -> float:
        """Ensure the query deadline is positive."""
        if v <= 0:
            raise ValueError("fetch_timeout_seconds must be positive")
        return v

    def require_relay_url(self) -> str:
        """Return the relay URL.

        Raises:
            ConfigurationError: If no relay URL was configured.
        """
        if not self.relay_url:
            raise ConfigurationError("Relay URL must be specified!")
        return self.relay_url


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
    env_file: str | None = None,
) -> Settings:
    """Load run settings from every configuration source.

    Args:
        config_path: TOML config file. If not provided, the default
            file is used when it exists.
        overrides: Values given on the command line.
        env_file: Optional path to .env file. If not provided,
            uses the default .env in the current directory.

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If an explicitly requested config file is
            missing or settings validation fails.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    toml_file: Path | None = path
    if not path.is_file():
        if config_path is not None and path != DEFAULT_CONFIG_PATH:
            raise ConfigurationError(f"Config file not found: {path}")
        logger.warning(f"Error accessing default config file: {path} does not exist")
        toml_file = None

    class FileSettings(Settings):
        model_config = SettingsConfigDict(toml_file=toml_file)

    kwargs: dict[str, Any] = dict(overrides or {})
    if env_file:
        kwargs["_env_file"] = env_file

    try:
        return FileSettings(**kwargs)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


__all__ = ["DEFAULT_CONFIG_PATH", "Settings", "load_settings"]
