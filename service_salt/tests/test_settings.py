"""
Unit tests for salt service configuration.
"""

import json
import pytest
import yaml

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_salt.app.settings import (
    DEFAULT_FALLBACK_ENDPOINT,
    EnvSeedSource,
    FileSeedSource,
    HybridProviderConfig,
    LocalProviderConfig,
    RemoteProviderConfig,
    RouterProviderConfig,
    SaltServiceSettings,
    load_app_config,
    parse_provider_config,
    provider_config_from_env,
)
from shared.errors import ConfigurationError
from shared.test_helpers import TEST_SEED_HEX


class TestProviderConfig:
    """Test cases for provider configuration parsing."""

    def test_seed_env_shorthand(self):
        config = parse_provider_config({"type": "local", "seed": "$MY_SEED"})
        assert isinstance(config, LocalProviderConfig)
        assert config.seed == EnvSeedSource(env_var="MY_SEED")

    def test_seed_direct_shorthand(self):
        config = parse_provider_config({"type": "local", "seed": TEST_SEED_HEX})
        assert config.seed.value.get_secret_value() == TEST_SEED_HEX

    def test_seed_source_object(self):
        config = parse_provider_config({"type": "local", "seed": {"type": "file", "path": "/run/seed"}})
        assert config.seed == FileSeedSource(path="/run/seed")

    def test_remote_defaults(self):
        config = parse_provider_config({"type": "remote", "endpoint": "https://salt.example.com/get_salt"})
        assert isinstance(config, RemoteProviderConfig)
        assert config.timeout == 10.0
        assert config.retry_count == 0
        assert config.api_key is None

    def test_remote_camel_case(self):
        config = parse_provider_config({
            "type": "remote",
            "endpoint": "https://salt.example.com/get_salt",
            "retryCount": 2,
            "apiKey": "k",
        })
        assert config.retry_count == 2
        assert config.api_key.get_secret_value() == "k"

    def test_hybrid_defaults(self):
        config = parse_provider_config({
            "type": "hybrid",
            "primary": {"type": "local", "seed": TEST_SEED_HEX},
            "fallback": {"type": "remote", "endpoint": DEFAULT_FALLBACK_ENDPOINT},
        })
        assert isinstance(config, HybridProviderConfig)
        assert config.fallback_enabled is True
        assert config.fallback_after_seconds == 60.0

    def test_unknown_type(self):
        with pytest.raises(ConfigurationError):
            parse_provider_config({"type": "quantum"})

    def test_negative_retry_count(self):
        with pytest.raises(ConfigurationError):
            parse_provider_config({"type": "remote", "endpoint": "https://x", "retryCount": -1})

    def test_secret_not_in_repr(self):
        config = parse_provider_config({"type": "local", "seed": TEST_SEED_HEX})
        assert TEST_SEED_HEX not in repr(config)


class TestProviderConfigFromEnv:
    """Test cases for provider_config_from_env."""

    def test_default_local(self):
        config = provider_config_from_env({"MASTER_SEED": TEST_SEED_HEX})
        assert isinstance(config, LocalProviderConfig)
        assert config.seed.value.get_secret_value() == TEST_SEED_HEX

    def test_local_file_source(self):
        config = provider_config_from_env({"SEED_SOURCE": "file", "SEED_FILE_PATH": "/run/seed"})
        assert config.seed == FileSeedSource(path="/run/seed")

    def test_remote(self):
        config = provider_config_from_env({
            "SALT_PROVIDER_MODE": "remote",
            "REMOTE_SALT_ENDPOINT": "https://salt.example.com/get_salt",
            "REMOTE_SALT_RETRY_COUNT": "3",
            "REMOTE_SALT_TIMEOUT": "2.5",
        })
        assert isinstance(config, RemoteProviderConfig)
        assert config.retry_count == 3
        assert config.timeout == 2.5

    def test_remote_requires_endpoint(self):
        with pytest.raises(ConfigurationError):
            provider_config_from_env({"SALT_PROVIDER_MODE": "remote"})

    def test_hybrid(self):
        config = provider_config_from_env({
            "SALT_PROVIDER_MODE": "hybrid",
            "MASTER_SEED": TEST_SEED_HEX,
            "HYBRID_FALLBACK_ENABLED": "false",
        })
        assert isinstance(config, HybridProviderConfig)
        assert config.fallback.endpoint == DEFAULT_FALLBACK_ENDPOINT
        assert config.fallback_enabled is False

    def test_router(self):
        router = {
            "type": "router",
            "defaultProvider": "local",
            "providers": {"local": {"type": "local", "seed": "$MASTER_SEED"}},
        }
        config = provider_config_from_env({
            "SALT_PROVIDER_MODE": "router",
            "ROUTER_CONFIG_JSON": json.dumps(router),
        })
        assert isinstance(config, RouterProviderConfig)
        assert config.default_provider == "local"

    def test_router_invalid_json(self):
        with pytest.raises(ConfigurationError):
            provider_config_from_env({"SALT_PROVIDER_MODE": "router", "ROUTER_CONFIG_JSON": "{"})

    def test_unknown_mode(self):
        with pytest.raises(ConfigurationError):
            provider_config_from_env({"SALT_PROVIDER_MODE": "cloud"})

    def test_invalid_number(self):
        with pytest.raises(ConfigurationError):
            provider_config_from_env({
                "SALT_PROVIDER_MODE": "remote",
                "REMOTE_SALT_ENDPOINT": "https://x",
                "REMOTE_SALT_RETRY_COUNT": "many",
            })


class TestLoadAppConfig:
    """Test cases for load_app_config."""

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({
            "server": {"port": 8080},
            "logging": {"level": "debug", "format": "pretty"},
            "security": {"rateLimitMax": 5, "corsOrigins": "https://app.example.com"},
            "provider": {"type": "local", "seed": "$MASTER_SEED"},
            "oauth": [
                {"name": "google", "jwksUri": "https://www.googleapis.com/oauth2/v3/certs",
                 "issuers": ["https://accounts.google.com"]},
                {"name": "legacy", "jwksUri": "https://legacy.example.com/keys",
                 "issuers": ["https://legacy.example.com"], "enabled": False},
            ],
        }))

        config = load_app_config(SaltServiceSettings(config_file=str(path)), environ={})

        assert config.settings.port == 8080
        assert config.settings.log_level == "debug"
        assert config.settings.log_format == "pretty"
        assert config.settings.rate_limit_max == 5
        assert config.settings.cors_origins == ["https://app.example.com"]
        assert config.provider.seed == EnvSeedSource(env_var="MASTER_SEED")
        assert [issuer.name for issuer in config.oauth] == ["google", "legacy"]
        assert config.oauth[1].enabled is False

    def test_explicit_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_app_config(SaltServiceSettings(config_file=str(tmp_path / "absent.yaml")), environ={})

    def test_invalid_yaml_settings(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"security": {"rateLimitMax": 0}, "provider": {"type": "local", "seed": "$S"}}))

        with pytest.raises(ConfigurationError):
            load_app_config(SaltServiceSettings(config_file=str(path)), environ={})

    def test_environment_without_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_app_config(SaltServiceSettings(), environ={"MASTER_SEED": TEST_SEED_HEX})

        assert isinstance(config.provider, LocalProviderConfig)
        assert config.oauth is None

    def test_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("SALT_PORT", "4000")
        monkeypatch.setenv("SALT_ISSUER_MATCH", "prefix")

        settings = SaltServiceSettings()
        assert settings.port == 4000
        assert settings.issuer_match == "prefix"
