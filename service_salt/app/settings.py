"""
Configuration for the salt service.

Service settings come from the environment (``SALT_`` prefix) and may be
overridden by a YAML file. The salt provider configuration is a tagged
union on ``type`` and is loaded once at startup; it is never re-read.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from shared.config import BaseConfig
from shared.errors import ConfigurationError

DEFAULT_CONFIG_PATHS = (
    "./config.yaml",
    "./config.yml",
    "./salt-server.yaml",
    "./salt-server.yml",
    "/etc/zklogin-salt-server/config.yaml",
)

DEFAULT_FALLBACK_ENDPOINT = "https://salt.api.mystenlabs.com/get_salt"


class _ConfigModel(BaseModel):
    """Immutable config model accepting both snake_case and camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# Seed sources

class EnvSeedSource(_ConfigModel):
    type: Literal["env"] = "env"
    env_var: str = "MASTER_SEED"
    # Direct hex value, takes precedence over env_var
    value: Optional[SecretStr] = None


class AwsSeedSource(_ConfigModel):
    type: Literal["aws"] = "aws"
    secret_name: str
    region: str = "us-west-2"
    secret_key: str = "masterSeed"


class VaultSeedSource(_ConfigModel):
    type: Literal["vault"] = "vault"
    address: str
    path: str
    key: str = "masterSeed"
    token_env_var: str = "VAULT_TOKEN"
    timeout: float = 10.0


class FileSeedSource(_ConfigModel):
    type: Literal["file"] = "file"
    path: str
    key: str = "masterSeed"


SeedSource = Annotated[
    Union[EnvSeedSource, AwsSeedSource, VaultSeedSource, FileSeedSource],
    Field(discriminator="type"),
]


def _expand_seed_shorthand(value: Any) -> Any:
    """``"$NAME"`` reads env var NAME; any other string is the hex seed itself."""
    if isinstance(value, str):
        if value.startswith("$"):
            return {"type": "env", "env_var": value[1:]}
        return {"type": "env", "value": value}
    return value


# Salt providers

class LocalProviderConfig(_ConfigModel):
    type: Literal["local"] = "local"
    seed: SeedSource

    @field_validator("seed", mode="before")
    @classmethod
    def _seed_shorthand(cls, value: Any) -> Any:
        return _expand_seed_shorthand(value)


class RemoteProviderConfig(_ConfigModel):
    type: Literal["remote"] = "remote"
    endpoint: str
    # Seconds, applied to each attempt
    timeout: float = Field(default=10.0, gt=0)
    retry_count: int = Field(default=0, ge=0)
    api_key: Optional[SecretStr] = None


class HybridProviderConfig(_ConfigModel):
    type: Literal["hybrid"] = "hybrid"
    primary: LocalProviderConfig
    fallback: RemoteProviderConfig
    fallback_enabled: bool = True
    fallback_after_seconds: float = Field(default=60.0, ge=0)


class RouteMatch(_ConfigModel):
    audience: Optional[str] = None
    issuer: Optional[str] = None


class RouterRule(_ConfigModel):
    name: str
    match: RouteMatch = RouteMatch()
    provider: str


RoutedProviderConfig = Annotated[
    Union[LocalProviderConfig, RemoteProviderConfig],
    Field(discriminator="type"),
]


class RouterProviderConfig(_ConfigModel):
    type: Literal["router"] = "router"
    default_provider: str
    providers: Dict[str, RoutedProviderConfig]
    routes: List[RouterRule] = []


ProviderConfig = Annotated[
    Union[LocalProviderConfig, RemoteProviderConfig, HybridProviderConfig, RouterProviderConfig],
    Field(discriminator="type"),
]

_provider_adapter: TypeAdapter = TypeAdapter(ProviderConfig)


def parse_provider_config(raw: Mapping[str, Any]) -> Any:
    """Validate a raw mapping into one of the provider config variants."""
    try:
        return _provider_adapter.validate_python(raw)
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid salt provider configuration",
            details={"errors": e.errors(include_url=False, include_input=False)}
        ) from e


# Trusted issuers

class TrustedIssuerConfig(_ConfigModel):
    name: str
    jwks_uri: str
    issuers: List[str]
    enabled: bool = True


class SaltServiceSettings(BaseConfig):
    """Process settings for the salt service."""

    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: List[str] = ["*"]

    # Rate limiting
    rate_limit_max: int = Field(default=100, ge=1)
    rate_limit_window_seconds: float = Field(default=60.0, gt=0)

    # Token verification
    issuer_match: Literal["exact", "prefix"] = "exact"
    jwks_cache_ttl_seconds: float = Field(default=3600.0, gt=0)
    jwks_refresh_margin_seconds: float = Field(default=300.0, ge=0)
    jwks_fetch_timeout: float = Field(default=10.0, gt=0)


class AppConfig(BaseModel):
    """Fully resolved startup configuration."""

    model_config = ConfigDict(frozen=True)

    settings: SaltServiceSettings
    provider: ProviderConfig
    oauth: Optional[List[TrustedIssuerConfig]] = None


def find_config_file(settings: SaltServiceSettings) -> Optional[Path]:
    """Locate the YAML config file; an explicitly configured path must exist."""
    if settings.config_file:
        path = Path(settings.config_file)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        return path

    for candidate in DEFAULT_CONFIG_PATHS:
        path = Path(candidate)
        if path.exists():
            return path
    return None


def _settings_overrides(raw: Mapping[str, Any]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    server = raw.get("server") or {}
    logging_section = raw.get("logging") or {}
    security = raw.get("security") or {}

    if "port" in server:
        overrides["port"] = server["port"]
    if "host" in server:
        overrides["host"] = server["host"]
    if "level" in logging_section:
        overrides["log_level"] = logging_section["level"]
    if "format" in logging_section:
        overrides["log_format"] = logging_section["format"]

    cors = security.get("corsOrigins", security.get("cors_origins"))
    if cors is not None:
        overrides["cors_origins"] = [cors] if isinstance(cors, str) else list(cors)
    for yaml_key, field in (
        ("rateLimitMax", "rate_limit_max"),
        ("rateLimitWindowSeconds", "rate_limit_window_seconds"),
        ("issuerMatch", "issuer_match"),
    ):
        value = security.get(yaml_key, security.get(field))
        if value is not None:
            overrides[field] = value
    return overrides


def load_app_config(
    settings: Optional[SaltServiceSettings] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    """Resolve settings, provider and issuer configuration.

    Priority: YAML file (``SALT_CONFIG_FILE`` or a default path) over
    environment variables.
    """
    settings = settings or SaltServiceSettings()
    environ = os.environ if environ is None else environ

    path = find_config_file(settings)
    if path is None:
        return AppConfig(settings=settings, provider=provider_config_from_env(environ))

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    overrides = _settings_overrides(raw)
    if overrides:
        try:
            settings = SaltServiceSettings(**{**settings.model_dump(), **overrides})
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid settings in {path}",
                details={"errors": e.errors(include_url=False, include_input=False)}
            ) from e

    provider_raw = raw.get("provider")
    provider = (
        parse_provider_config(provider_raw)
        if provider_raw is not None
        else provider_config_from_env(environ)
    )

    oauth_raw = raw.get("oauth")
    oauth = None
    if oauth_raw is not None:
        try:
            oauth = [TrustedIssuerConfig.model_validate(item) for item in oauth_raw]
        except ValidationError as e:
            raise ConfigurationError(
                "Invalid oauth issuer configuration",
                details={"errors": e.errors(include_url=False, include_input=False)}
            ) from e

    return AppConfig(settings=settings, provider=provider, oauth=oauth)


def seed_source_from_env(environ: Mapping[str, str]) -> Dict[str, Any]:
    source = environ.get("SEED_SOURCE", "env")
    if source == "env":
        return {"type": "env", "env_var": "MASTER_SEED", "value": environ.get("MASTER_SEED")}
    if source == "aws":
        return {
            "type": "aws",
            "secret_name": environ.get("AWS_SECRET_NAME", ""),
            "region": environ.get("AWS_REGION", "us-west-2"),
        }
    if source == "vault":
        return {
            "type": "vault",
            "address": environ.get("VAULT_ADDR", ""),
            "path": environ.get("VAULT_PATH", ""),
        }
    if source == "file":
        return {"type": "file", "path": environ.get("SEED_FILE_PATH", "")}
    raise ConfigurationError(f"Unknown seed source: {source}")


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    try:
        return int(environ.get(name, default))
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer") from e


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    try:
        return float(environ.get(name, default))
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number") from e


def provider_config_from_env(environ: Mapping[str, str]) -> Any:
    """Build the provider config from ``SALT_PROVIDER_MODE`` and friends."""
    mode = environ.get("SALT_PROVIDER_MODE", "local")

    if mode == "local":
        raw: Dict[str, Any] = {"type": "local", "seed": seed_source_from_env(environ)}
    elif mode == "remote":
        endpoint = environ.get("REMOTE_SALT_ENDPOINT")
        if not endpoint:
            raise ConfigurationError("REMOTE_SALT_ENDPOINT is required for remote provider mode")
        raw = {
            "type": "remote",
            "endpoint": endpoint,
            "timeout": _env_float(environ, "REMOTE_SALT_TIMEOUT", 10.0),
            "api_key": environ.get("REMOTE_SALT_API_KEY"),
            "retry_count": _env_int(environ, "REMOTE_SALT_RETRY_COUNT", 0),
        }
    elif mode == "hybrid":
        raw = {
            "type": "hybrid",
            "primary": {"type": "local", "seed": seed_source_from_env(environ)},
            "fallback": {
                "type": "remote",
                "endpoint": environ.get("HYBRID_FALLBACK_ENDPOINT", DEFAULT_FALLBACK_ENDPOINT),
                "retry_count": _env_int(environ, "HYBRID_FALLBACK_RETRY_COUNT", 0),
            },
            "fallback_enabled": environ.get("HYBRID_FALLBACK_ENABLED", "true").lower() != "false",
            "fallback_after_seconds": _env_float(environ, "HYBRID_FALLBACK_AFTER_SECONDS", 60.0),
        }
    elif mode == "router":
        config_json = environ.get("ROUTER_CONFIG_JSON")
        if not config_json:
            raise ConfigurationError("ROUTER_CONFIG_JSON is required for router provider mode")
        try:
            raw = json.loads(config_json)
        except json.JSONDecodeError as e:
            raise ConfigurationError("ROUTER_CONFIG_JSON is not valid JSON") from e
    else:
        raise ConfigurationError(f"Unknown salt provider mode: {mode}")

    return parse_provider_config(raw)
