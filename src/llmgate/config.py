# src/llmgate/config.py
"""
Gateway Configuration Models.

Pydantic models describing a gateway: its providers, extension settings,
metrics hub tuning and HTTP client defaults. Configuration is loaded from
plain dictionaries; reading files is left to the embedding application.

Configuration Structure:
    [gateway]
    default_provider = "primary"

    [[gateway.providers]]
    name = "primary"
    type = "static"

    [[gateway.providers]]
    name = "balanced"
    type = "loadbalance"
    provider_config = { providers = ["primary"], strategy = "round_robin" }

    [gateway.extensions.audit]
    enabled = true
    config = { level = "info" }

    [gateway.metrics]
    histogram_capacity = 1000
    default_subscription_buffer = 100
    emit_chunk_events = false
    currency = "USD"

    [gateway.http]
    timeout_s = 60
    max_retries = 3

Usage:
    >>> from llmgate.config import load_gateway_config
    >>> config = load_gateway_config({"gateway": {"default_provider": "primary"}})
    >>> config.metrics.histogram_capacity
    1000
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .models import ProviderConfig
from .transport.client import HTTPClientConfig

logger = logging.getLogger(__name__)


# =============================================================================
# SECTION MODELS
# =============================================================================


class MetricsConfig(BaseModel):
    """Metrics hub tuning."""

    histogram_capacity: int = Field(default=1000, ge=1, description="Latency samples kept per histogram.")
    default_subscription_buffer: int = Field(default=100, ge=1, description="Buffer size used by subscribe() without an explicit size.")
    emit_chunk_events: bool = Field(default=False, description="Emit a stream_chunk event for every streamed chunk.")
    currency: str = Field(default="USD")


class ExtensionSettings(BaseModel):
    """Startup settings for one extension."""

    enabled: bool = True
    config: Dict[str, Any] = Field(default_factory=dict)


class GatewayConfig(BaseModel):
    """Root configuration of a gateway."""

    default_provider: str = ""
    providers: List[ProviderConfig] = Field(default_factory=list)
    extensions: Dict[str, ExtensionSettings] = Field(default_factory=dict)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    http: HTTPClientConfig = Field(default_factory=HTTPClientConfig)

    @field_validator("default_provider")
    @classmethod
    def normalize_default_provider(cls, v: str) -> str:
        return v.strip().lower()

    @model_validator(mode="after")
    def check_provider_names(self) -> "GatewayConfig":
        names = [p.name.lower() for p in self.providers]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate provider names: {duplicates}")
        if self.default_provider and names and self.default_provider not in names:
            raise ValueError(f"default_provider '{self.default_provider}' is not a configured provider")
        return self

    def get_provider_config(self, name: str) -> Optional[ProviderConfig]:
        target = name.lower()
        for provider in self.providers:
            if provider.name.lower() == target:
                return provider
        return None


# =============================================================================
# LOADING FUNCTIONS
# =============================================================================


def load_gateway_config(
    config_dict: Optional[Dict[str, Any]] = None,
    section_path: str = "gateway",
) -> GatewayConfig:
    """
    Load gateway configuration from a config dictionary.

    Args:
        config_dict: Configuration dictionary. If None, returns the defaults.
        section_path: Dot-separated path to the gateway section. An empty
            path validates ``config_dict`` itself.

    Returns:
        GatewayConfig instance. A missing or malformed section logs a warning
        and yields the defaults.
    """
    if config_dict is None:
        return GatewayConfig()

    section: Any = config_dict
    for part in filter(None, section_path.split(".")):
        if not isinstance(section, dict):
            logger.warning(f"Config path '{section_path}' not found, using defaults")
            return GatewayConfig()
        section = section.get(part, {})

    if not isinstance(section, dict):
        logger.warning(f"Config section '{section_path}' is not a dict, using defaults")
        return GatewayConfig()

    try:
        return GatewayConfig.model_validate(section)
    except Exception as e:
        logger.warning(f"Failed to parse gateway config: {e}. Using defaults.")
        return GatewayConfig()
