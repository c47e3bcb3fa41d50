"""Typed CLIProxyAPI options and their YAML rendering.

Field names are snake_case in Python and rendered with the kebab-case keys the
proxy reads from its config file (``api_keys`` -> ``api-keys``). Unset fields
are left out of the rendered document so the proxy applies its own defaults.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field


def _kebab(name: str) -> str:
    return name.replace("_", "-")


class _ConfigModel(BaseModel):
    """Base model rendering fields under kebab-case keys."""

    model_config = ConfigDict(
        alias_generator=_kebab,
        populate_by_name=True,
        extra="forbid",
    )


class RemoteManagementConfig(_ConfigModel):
    """Remote management API switches."""

    allow_remote: Optional[bool] = None
    secret_key: str = ""
    disable_control_panel: Optional[bool] = None


class QuotaExceededConfig(_ConfigModel):
    """Behaviour when an upstream quota is exhausted."""

    switch_project: Optional[bool] = None
    switch_preview_model: Optional[bool] = None


class ModelAlias(_ConfigModel):
    """Upstream model name with an optional client-facing alias."""

    name: str
    alias: Optional[str] = None


class APIKeyEntry(_ConfigModel):
    """Upstream API key with optional per-key routing."""

    api_key: str
    base_url: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    proxy_url: Optional[str] = None
    models: Optional[List[ModelAlias]] = None


class OpenAICompatibilityKey(_ConfigModel):
    """Key for an OpenAI-compatible provider."""

    api_key: str
    proxy_url: Optional[str] = None


class OpenAICompatibilityEntry(_ConfigModel):
    """OpenAI-compatible upstream provider."""

    name: str
    base_url: str
    headers: Optional[Dict[str, str]] = None
    api_key_entries: Optional[List[OpenAICompatibilityKey]] = None
    api_keys: Optional[List[str]] = None
    models: Optional[List[ModelAlias]] = None


class PayloadModelMatch(_ConfigModel):
    """Model selector for a payload rule."""

    name: str
    protocol: Optional[str] = None


class PayloadRule(_ConfigModel):
    """Request payload parameters applied to matching models."""

    models: List[PayloadModelMatch]
    params: Dict[str, Any] = Field(default_factory=dict)


class PayloadConfig(_ConfigModel):
    """Default and override payload rules."""

    default: Optional[List[PayloadRule]] = None
    override: Optional[List[PayloadRule]] = None


class ProxyConfig(_ConfigModel):
    """Options for one CLIProxyAPI run.

    ``port`` is only a preference: the supervisor enforces the port it actually
    allocated when rendering. ``extra`` is merged verbatim into the top level of
    the rendered document and wins over typed fields.
    """

    port: Optional[int] = Field(default=None, ge=0, le=65535)
    remote_management: Optional[RemoteManagementConfig] = None
    auth_dir: Optional[str] = None
    api_keys: Optional[List[str]] = None
    debug: Optional[bool] = None
    logging_to_file: Optional[bool] = None
    usage_statistics_enabled: Optional[bool] = None
    proxy_url: Optional[str] = None
    request_retry: Optional[int] = Field(default=None, ge=0)
    quota_exceeded: Optional[QuotaExceededConfig] = None
    ws_auth: Optional[bool] = None
    request_log: Optional[bool] = None
    gemini_api_key: Optional[List[APIKeyEntry]] = None
    generative_language_api_key: Optional[List[str]] = None
    codex_api_key: Optional[List[APIKeyEntry]] = None
    claude_api_key: Optional[List[APIKeyEntry]] = None
    openai_compatibility: Optional[List[OpenAICompatibilityEntry]] = None
    payload: Optional[PayloadConfig] = None
    auth: Optional[Any] = None
    extra: Dict[str, Any] = Field(default_factory=dict)

    @property
    def first_api_key(self) -> Optional[str]:
        """Return the first client API key, used to authenticate probes."""
        if self.api_keys:
            return self.api_keys[0]
        return None


def default_auth_dir() -> str:
    """Default directory where the proxy stores provider credentials."""
    return str(Path.home() / ".cli-proxy-api")


def build_config_document(config: ProxyConfig, port: int) -> Dict[str, Any]:
    """Build the config mapping with the enforced port.

    Args:
        config: Proxy options
        port: Port the proxy must listen on

    Returns:
        Dict[str, Any]: Document with kebab-case keys, port first
    """
    document: Dict[str, Any] = {
        "port": port,
        "auth-dir": config.auth_dir or default_auth_dir(),
    }
    document.update(
        config.model_dump(
            by_alias=True,
            exclude_none=True,
            exclude={"port", "auth_dir", "extra"},
        )
    )
    document.update(config.extra)
    return document


def render_config(config: ProxyConfig, port: int) -> str:
    """Render proxy options as the YAML text the binary reads via --config.

    Args:
        config: Proxy options
        port: Port the proxy must listen on

    Returns:
        str: YAML document
    """
    return yaml.safe_dump(
        build_config_document(config, port),
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )
