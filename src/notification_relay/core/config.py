"""Configuration system for notification-relay.

This module implements the main configuration schema using Pydantic for
validation, with support for environment variable resolution and fail-fast
validation with actionable error messages.
"""

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Final
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

# Regular expression pattern for environment variable references
# Matches ${VARIABLE_NAME} syntax where VARIABLE_NAME can contain letters, digits, and underscores
ENV_VAR_PATTERN: Final[re.Pattern[str]] = re.compile(r"\$\{([A-Z0-9_]+)\}")


class ProviderSettings(BaseModel):
    """Per-provider section of the configuration file.

    ``config`` holds the provider-specific settings; each plugin validates it
    against its own schema when the provider is built.
    """

    model_config = ConfigDict(extra="forbid")

    enabled: Annotated[
        bool,
        Field(description="Administrative enable flag applied at startup"),
    ] = True
    priority: Annotated[
        int | None,
        Field(
            ge=0,
            description="Failover priority (lower first); defaults to the plugin's priority",
        ),
    ] = None
    config: Annotated[
        dict[str, object],
        Field(description="Provider-specific settings"),
    ] = {}


class DispatchConfig(BaseModel):
    """Configuration for dispatch retry and transport behaviour."""

    retry_attempts: Annotated[
        int,
        Field(
            ge=1,
            le=10,
            description="Delivery attempts per provider before failing over",
        ),
    ] = 3
    retry_base_delay_seconds: Annotated[
        float,
        Field(
            ge=0,
            description="Linear backoff base; attempt i waits base * i",
        ),
    ] = 1.0
    request_timeout_seconds: Annotated[
        float,
        Field(
            gt=0,
            le=60,
            description="Timeout for each provider HTTP request",
        ),
    ] = 10.0


class SchedulerConfig(BaseModel):
    """Configuration for the notification scheduler."""

    default_timezone: Annotated[
        str,
        Field(description="IANA timezone used when a schedule omits one"),
    ] = "UTC"

    @field_validator("default_timezone", mode="after")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate that the timezone resolves through zoneinfo.

        Raises:
            ValueError: If the timezone name is unknown
        """
        try:
            _ = ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            msg = f"Unknown timezone: {v}"
            raise ValueError(msg) from exc
        return v


class ApplicationConfig(BaseModel):
    """Configuration for application-level settings."""

    log_level: Annotated[
        str,
        Field(
            description="Logging level",
            pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        ),
    ] = "INFO"
    syslog_enabled: Annotated[
        bool,
        Field(
            description="Enable syslog integration",
        ),
    ] = False


class MainConfig(BaseModel):
    """Main application configuration schema.

    Top-level configuration container aggregating all configuration sections:
    - providers: Delivery providers keyed by plugin identifier
    - dispatch: Retry and transport settings shared by every provider
    - scheduler: Scheduler defaults
    - application: Application-level settings

    Every section has defaults, so an empty file is a valid configuration with
    no providers.
    """

    providers: Annotated[
        dict[str, ProviderSettings],
        Field(description="Delivery providers keyed by plugin identifier"),
    ] = {}
    dispatch: Annotated[
        DispatchConfig,
        Field(description="Dispatch retry configuration"),
    ] = DispatchConfig()
    scheduler: Annotated[
        SchedulerConfig,
        Field(description="Scheduler configuration"),
    ] = SchedulerConfig()
    application: Annotated[
        ApplicationConfig,
        Field(description="Application-level configuration"),
    ] = ApplicationConfig()

    @field_validator("providers", mode="after")
    @classmethod
    def validate_provider_identifiers(cls, v: dict[str, ProviderSettings]) -> dict[str, ProviderSettings]:
        """Validate provider identifiers against discovered plugins.

        Raises:
            ValueError: If any provider identifier is unknown
        """
        # Import here to avoid circular dependency at module level
        from notification_relay.plugins.discovery import discover_plugins

        available_identifiers = {plugin.identifier for plugin in discover_plugins()}
        normalized = {key.strip().lower(): settings for key, settings in v.items()}

        unknown = set(normalized) - available_identifiers
        if unknown:
            msg = (
                f"Unknown provider identifier(s): {', '.join(sorted(unknown))}. "
                f"Available providers: {', '.join(sorted(available_identifiers))}"
            )
            raise ValueError(msg)

        return normalized


class EnvironmentVariableError(Exception):
    """Exception raised when environment variable resolution fails.

    Raised when a required environment variable is missing. The message names
    the variable but never includes a resolved value.
    """


class ConfigurationError(Exception):
    """Exception raised when configuration loading or validation fails.

    This exception provides detailed, actionable error messages for configuration
    issues including file not found, YAML parsing errors, and validation failures.
    """


def resolve_env_var(value: str) -> str:
    """Resolve environment variable references in a string value.

    Parses ${VARIABLE_NAME} syntax and replaces with environment variable values.
    Supports multiple environment variable references in a single string.

    Raises:
        EnvironmentVariableError: If a required environment variable is missing

    Examples:
        >>> os.environ["TEST_VAR"] = "secret_value"
        >>> resolve_env_var("prefix_${TEST_VAR}_suffix")
        'prefix_secret_value_suffix'
    """

    def replace_match(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)

        if env_value is None:
            msg = (
                f"Required environment variable '{var_name}' is not set. "
                f"Please set this variable before starting the application."
            )
            raise EnvironmentVariableError(msg)

        return env_value

    return ENV_VAR_PATTERN.sub(replace_match, value)


def _resolve_env_vars_in_value(value: object) -> object:
    if isinstance(value, str):
        return resolve_env_var(value)
    if isinstance(value, dict):
        # YAML data is untyped at load time; validated by Pydantic after resolution
        return resolve_env_vars_in_dict(value)  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
    if isinstance(value, list):
        return [_resolve_env_vars_in_value(item) for item in value]  # pyright: ignore[reportUnknownVariableType]  # YAML list items
    return value


def resolve_env_vars_in_dict(data: Mapping[str, object]) -> dict[str, object]:
    """Recursively resolve environment variables in a dictionary.

    Traverses nested dictionaries and lists, resolving environment variable
    references in string values. Non-string values are preserved as-is.

    Raises:
        EnvironmentVariableError: If a required environment variable is missing

    Examples:
        >>> os.environ["SECRET"] = "my_secret"
        >>> resolve_env_vars_in_dict({"nested": {"key": "${SECRET}"}})
        {'nested': {'key': 'my_secret'}}
    """
    return {key: _resolve_env_vars_in_value(value) for key, value in data.items()}


def format_validation_error(error: ValidationError, *, header: str, footer: str) -> str:
    """Format Pydantic validation errors with field-level diagnostics."""
    error_lines = [header, ""]
    for detail in error.errors():
        field_path = " → ".join(str(loc) for loc in detail["loc"])
        error_lines.append(f"  Field: {field_path}")
        error_lines.append(f"  Error: {detail['msg']}")
        error_lines.append(f"  Type: {detail['type']}")
        error_lines.append("")
    error_lines.append(footer)
    return "\n".join(error_lines)


def load_yaml_document(path: Path, *, description: str = "configuration file") -> object:
    """Read a YAML (or JSON) document from ``path``.

    Raises:
        ConfigurationError: If the file is missing, unreadable or malformed
    """
    if not path.exists():
        msg = (
            f"The {description} was not found: {path}\n"
            f"Please create it at this location or pass a different path."
        )
        raise ConfigurationError(msg)

    try:
        with path.open("r", encoding="utf-8") as f:
            return yaml.safe_load(f)  # pyright: ignore[reportAny]  # YAML boundary
    except yaml.YAMLError as e:
        msg = (
            f"Failed to parse {description}: {path}\n"
            f"YAML parsing error: {e}\n"
            f"Please check the file for syntax errors."
        )
        raise ConfigurationError(msg) from e
    except OSError as e:
        msg = f"Failed to read {description}: {path}\nError: {e}\nPlease check file permissions."
        raise ConfigurationError(msg) from e


def load_main_config(config_path: Path) -> MainConfig:
    """Load and validate main application configuration from YAML file.

    Loads the main configuration file, resolves environment variables, and
    validates against the MainConfig schema. An empty file yields defaults.

    Args:
        config_path: Path to main configuration YAML file

    Returns:
        Validated MainConfig instance

    Raises:
        ConfigurationError: If configuration file cannot be loaded or is invalid
    """
    raw_data = load_yaml_document(config_path)
    if raw_data is None:
        raw_data = {}

    if not isinstance(raw_data, dict):
        msg = (
            f"Invalid configuration file format: {config_path}\n"
            f"Expected YAML dictionary at root level, got: {type(raw_data).__name__}\n"
            f"Configuration file must contain key-value pairs."
        )
        raise ConfigurationError(msg)

    try:
        resolved_data = resolve_env_vars_in_dict(raw_data)  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
    except EnvironmentVariableError as e:
        msg = (
            f"Environment variable resolution failed in: {config_path}\n"
            f"{e}\n"
            f"Set the required environment variable before starting the application."
        )
        raise ConfigurationError(msg) from e

    try:
        return MainConfig.model_validate(resolved_data)
    except ValidationError as e:
        msg = format_validation_error(
            e,
            header="Configuration validation failed:",
            footer=f"Configuration file: {config_path}\nPlease fix the above errors and try again.",
        )
        raise ConfigurationError(msg) from e


def parse_provider_config[T: BaseModel](
    raw: Mapping[str, object],
    model: type[T],
    *,
    provider_name: str,
) -> T:
    """Validate a provider's ``config`` section against its Pydantic model.

    Args:
        raw: Provider-specific settings with environment variables resolved
        model: Pydantic model class for validation
        provider_name: Human-readable provider name for error messages

    Returns:
        Validated provider configuration instance

    Raises:
        ConfigurationError: If the settings do not match the schema

    Examples:
        >>> config = parse_provider_config(
        ...     settings.config,
        ...     PluginConfig,
        ...     provider_name="Example",
        ... )
    """
    try:
        return model.model_validate(dict(raw))
    except ValidationError as e:
        msg = format_validation_error(
            e,
            header=f"{provider_name} configuration validation failed:",
            footer=f"Please fix the above errors in your {provider_name} configuration.",
        )
        raise ConfigurationError(msg) from e
