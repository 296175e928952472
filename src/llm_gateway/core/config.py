"""
Integration configuration for the LLM gateway.

Integrations are owned by an external configuration store; this module
defines their shape and a YAML loader for file-based deployments.
"""

import os
import logging
from enum import Enum
from typing import Dict, List, Any, Optional, Union
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT_MS = 30000
DEFAULT_RETRY_ATTEMPTS = 3


class LLMProvider(str, Enum):
    """Supported provider families."""
    OPENAI = "OPENAI"
    AZURE_OPENAI = "AZURE_OPENAI"
    ANTHROPIC = "ANTHROPIC"
    GEMINI = "GEMINI"
    OLLAMA = "OLLAMA"
    CUSTOM_LLM = "CUSTOM_LLM"

    @classmethod
    def parse(cls, value: Union[str, "LLMProvider"]) -> Union["LLMProvider", str]:
        """Coerce to a provider; unknown names are returned unchanged."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            return value


@dataclass
class Credentials:
    """Secrets and addresses for one integration."""
    api_key: Optional[str] = None
    endpoint: Optional[str] = None
    base_url: Optional[str] = None

    @property
    def address(self) -> Optional[str]:
        return self.endpoint or self.base_url


@dataclass
class ProviderConfig:
    """Tuning and accounting parameters for one integration."""
    default_model: str = ""
    available_models: List[str] = field(default_factory=list)
    max_tokens_per_request: int = 4096
    default_temperature: float = 0.7
    default_max_tokens: int = 1000
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    # Cost per 1000 tokens
    cost_per_input_token: float = 0.0
    cost_per_output_token: float = 0.0
    is_default: bool = False
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    max_requests_per_minute: int = 60
    settings: Dict[str, Any] = field(default_factory=dict)


@dataclass
class IntegrationConfig:
    """Read-only description of one configured LLM integration."""
    integration_id: int
    provider: Union[LLMProvider, str]
    name: str = ""
    credentials: Credentials = field(default_factory=Credentials)
    provider_config: ProviderConfig = field(default_factory=ProviderConfig)
    status: str = "ACTIVE"
    is_deleted: bool = False
    additional_headers: Dict[str, str] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVE" and not self.is_deleted

    @property
    def settings(self) -> Dict[str, Any]:
        return self.provider_config.settings or {}


@dataclass
class GatewayConfig:
    """All integrations known to a file-based deployment."""
    integrations: List[IntegrationConfig] = field(default_factory=list)


def load_config(config_path: Optional[str] = None) -> GatewayConfig:
    """
    Load integration configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses ``LLM_GATEWAY_CONFIG``
            or the default locations.

    Returns:
        Loaded configuration
    """
    if config_path is None:
        paths = [
            Path("config/llm-gateway/integrations.yaml"),
            Path("/etc/llm-gateway/integrations.yaml"),
            Path.home() / ".config/llm-gateway/integrations.yaml",
        ]
        env_path = os.environ.get("LLM_GATEWAY_CONFIG")
        if env_path:
            paths.insert(0, Path(env_path))
        for p in paths:
            if p.exists():
                config_path = str(p)
                break

    if config_path is None or not Path(config_path).exists():
        logger.warning("No LLM gateway config file found, using empty configuration")
        return GatewayConfig()

    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        return parse_config(data)

    except (OSError, yaml.YAMLError, TypeError, ValueError) as e:
        logger.error(f"Failed to load config from {config_path}: {e}")
        return GatewayConfig()


def _expand_env(value: Optional[str]) -> Optional[str]:
    """Expand a ``${VAR}`` placeholder from the environment."""
    if value and isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        return os.environ.get(value[2:-1], "")
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}")
        return default


def parse_integration(data: Dict[str, Any]) -> IntegrationConfig:
    """Parse one integration mapping."""
    creds = data.get("credentials", {}) or {}
    credentials = Credentials(
        api_key=_expand_env(creds.get("api_key")),
        endpoint=_expand_env(creds.get("endpoint")),
        base_url=_expand_env(creds.get("base_url")),
    )

    pc = data.get("provider_config", {}) or {}
    provider_config = ProviderConfig(
        default_model=pc.get("default_model", ""),
        available_models=list(pc.get("available_models", [])),
        max_tokens_per_request=int(pc.get("max_tokens_per_request", 4096)),
        default_temperature=float(pc.get("default_temperature", 0.7)),
        default_max_tokens=int(pc.get("default_max_tokens", 1000)),
        timeout_ms=int(pc.get(
            "timeout_ms", _env_int("LLM_GATEWAY_DEFAULT_TIMEOUT_MS", DEFAULT_TIMEOUT_MS)
        )),
        cost_per_input_token=float(pc.get("cost_per_input_token", 0.0)),
        cost_per_output_token=float(pc.get("cost_per_output_token", 0.0)),
        is_default=bool(pc.get("is_default", False)),
        retry_attempts=int(pc.get(
            "retry_attempts", _env_int("LLM_GATEWAY_RETRY_ATTEMPTS", DEFAULT_RETRY_ATTEMPTS)
        )),
        max_requests_per_minute=int(pc.get("max_requests_per_minute", 60)),
        settings=dict(pc.get("settings", {}) or {}),
    )

    return IntegrationConfig(
        integration_id=int(data["id"]),
        provider=LLMProvider.parse(data.get("provider", "")),
        name=data.get("name", ""),
        credentials=credentials,
        provider_config=provider_config,
        status=data.get("status", "ACTIVE"),
        is_deleted=bool(data.get("is_deleted", False)),
        additional_headers=dict(data.get("additional_headers", {}) or {}),
    )


def parse_config(data: Dict[str, Any]) -> GatewayConfig:
    """Parse configuration dictionary."""
    integrations = []

    for item in data.get("integrations") or []:
        try:
            integrations.append(parse_integration(item))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            name = item.get("name", "?") if isinstance(item, dict) else item
            logger.error(f"Skipping invalid integration entry {name!r}: {e}")

    return GatewayConfig(integrations=integrations)
