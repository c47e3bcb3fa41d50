"""Tests for proxy option rendering."""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from cliproxy_supervisor.config.proxy_config import (
    APIKeyEntry,
    ModelAlias,
    OpenAICompatibilityEntry,
    OpenAICompatibilityKey,
    PayloadConfig,
    PayloadModelMatch,
    PayloadRule,
    ProxyConfig,
    QuotaExceededConfig,
    RemoteManagementConfig,
    build_config_document,
    default_auth_dir,
    render_config,
)


class TestRenderConfig:
    """Test cases for render_config."""

    def test_minimal_document(self):
        text = render_config(ProxyConfig(), 8317)

        assert text.splitlines()[0] == "port: 8317"
        assert yaml.safe_load(text) == {
            "port": 8317,
            "auth-dir": str(Path.home() / ".cli-proxy-api"),
        }

    def test_allocated_port_overrides_configured_port(self):
        document = yaml.safe_load(render_config(ProxyConfig(port=9000), 41000))

        assert document["port"] == 41000

    def test_keys_are_kebab_case(self):
        config = ProxyConfig(
            auth_dir="/srv/auth",
            api_keys=["sk-1", "sk-2"],
            debug=True,
            logging_to_file=False,
            usage_statistics_enabled=True,
            proxy_url="socks5://127.0.0.1:1080",
            request_retry=3,
            ws_auth=False,
            request_log=True,
            remote_management=RemoteManagementConfig(allow_remote=False),
            quota_exceeded=QuotaExceededConfig(switch_project=True),
            generative_language_api_key=["AIza-1"],
        )

        document = yaml.safe_load(render_config(config, 8317))

        assert document == {
            "port": 8317,
            "auth-dir": "/srv/auth",
            "remote-management": {"allow-remote": False, "secret-key": ""},
            "api-keys": ["sk-1", "sk-2"],
            "debug": True,
            "logging-to-file": False,
            "usage-statistics-enabled": True,
            "proxy-url": "socks5://127.0.0.1:1080",
            "request-retry": 3,
            "quota-exceeded": {"switch-project": True},
            "ws-auth": False,
            "request-log": True,
            "generative-language-api-key": ["AIza-1"],
        }

    def test_provider_entries(self):
        config = ProxyConfig(
            gemini_api_key=[APIKeyEntry(api_key="g-1", base_url="https://g.example")],
            claude_api_key=[
                APIKeyEntry(
                    api_key="c-1",
                    models=[ModelAlias(name="claude-sonnet", alias="sonnet")],
                )
            ],
            codex_api_key=[APIKeyEntry(api_key="x-1", headers={"X-Team": "a"})],
            openai_compatibility=[
                OpenAICompatibilityEntry(
                    name="openrouter",
                    base_url="https://openrouter.ai/api/v1",
                    api_key_entries=[OpenAICompatibilityKey(api_key="or-1")],
                    models=[ModelAlias(name="moonshot/kimi", alias="kimi")],
                )
            ],
        )

        document = yaml.safe_load(render_config(config, 1))

        assert document["gemini-api-key"] == [
            {"api-key": "g-1", "base-url": "https://g.example"}
        ]
        assert document["claude-api-key"][0]["models"] == [
            {"name": "claude-sonnet", "alias": "sonnet"}
        ]
        assert document["codex-api-key"][0]["headers"] == {"X-Team": "a"}
        assert document["openai-compatibility"] == [
            {
                "name": "openrouter",
                "base-url": "https://openrouter.ai/api/v1",
                "api-key-entries": [{"api-key": "or-1"}],
                "models": [{"name": "moonshot/kimi", "alias": "kimi"}],
            }
        ]

    def test_payload_rules(self):
        config = ProxyConfig(
            payload=PayloadConfig(
                default=[
                    PayloadRule(
                        models=[PayloadModelMatch(name="gemini-*", protocol="gemini")],
                        params={"generationConfig.thinkingConfig.thinkingBudget": 32768},
                    )
                ]
            )
        )

        document = yaml.safe_load(render_config(config, 1))

        assert document["payload"] == {
            "default": [
                {
                    "models": [{"name": "gemini-*", "protocol": "gemini"}],
                    "params": {
                        "generationConfig.thinkingConfig.thinkingBudget": 32768
                    },
                }
            ]
        }

    def test_extra_is_merged_last(self):
        config = ProxyConfig(
            debug=False,
            extra={"debug": True, "custom-flag": "on", "nested": {"a": 1}},
        )

        document = build_config_document(config, 5)

        assert document["debug"] is True
        assert document["custom-flag"] == "on"
        assert document["nested"] == {"a": 1}
        assert list(document)[:2] == ["port", "auth-dir"]

    def test_kebab_case_input_is_accepted(self):
        config = ProxyConfig.model_validate(
            {"api-keys": ["sk"], "auth-dir": "/x", "request-retry": 1}
        )

        assert config.api_keys == ["sk"]
        assert config.auth_dir == "/x"

    def test_unknown_option_is_rejected(self):
        with pytest.raises(ValidationError):
            ProxyConfig(not_an_option=True)

    def test_negative_retry_is_rejected(self):
        with pytest.raises(ValidationError):
            ProxyConfig(request_retry=-1)


class TestProxyConfigHelpers:
    """Test cases for helper accessors."""

    def test_first_api_key(self):
        assert ProxyConfig().first_api_key is None
        assert ProxyConfig(api_keys=[]).first_api_key is None
        assert ProxyConfig(api_keys=["a", "b"]).first_api_key == "a"

    def test_default_auth_dir(self):
        assert default_auth_dir() == str(Path.home() / ".cli-proxy-api")
