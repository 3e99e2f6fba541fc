"""Configuration management for the gateway.

Supports YAML configuration files and environment variable overrides.
Configuration is loaded once at startup and never mutated afterwards.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.models import CredentialTier, TierRequirement


class GatewaySettings(BaseSettings):
    """Protocol gateway configuration."""
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3001)
    server_name: str = Field(default="protected-coingecko-mcp-server")
    server_version: str = Field(default="1.0.0")
    protocol_version: str = Field(default="2024-11-05")
    keepalive_interval_seconds: float = Field(default=30.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="GATEWAY_",
        env_file=".env",
        extra="ignore"
    )


class ProviderSettings(BaseSettings):
    """Upstream market-data provider configuration."""
    api_key: Optional[str] = Field(default=None, description="Pro API key")
    free_base_url: str = Field(default="https://api.coingecko.com/api/v3")
    pro_base_url: str = Field(default="https://pro-api.coingecko.com/api/v3")
    api_key_header: str = Field(default="x-cg-pro-api-key")
    timeout_seconds: float = Field(default=10.0, gt=0)
    retry_attempts: int = Field(default=3, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="COINGECKO_",
        env_file=".env",
        extra="ignore"
    )

    @property
    def base_url(self) -> str:
        """The pro endpoint is only used when an API key is configured."""
        return self.pro_base_url if self.api_key else self.free_base_url


class AuthorizerSettings(BaseSettings):
    """Authorization collaborator configuration."""
    mode: Literal["token", "remote", "disabled"] = Field(default="token")

    # Ledger
    contract_address: str = Field(default="0x9f2B42FB651b75CC3db4ef9FEd913A22BA4629Cf")
    chain_id: int = Field(default=1223954)
    rpc_url: str = Field(default="https://rpc.radiustech.io")

    # Remote verification service
    service_url: Optional[str] = Field(default=None)
    timeout_seconds: float = Field(default=5.0, gt=0)

    # Signed proofs
    jwt_secret: Optional[str] = Field(default=None)
    jwt_algorithm: str = Field(default="HS256")
    jwt_issuer: Optional[str] = Field(default=None)
    expected_audience: Optional[str] = Field(default=None)

    # Cache sizing hints, consumed by the authorizer only
    cache_ttl: int = Field(default=300, ge=0)
    cache_max_size: int = Field(default=1000, ge=0)
    cache_disabled: bool = Field(default=False)

    dev_mode: bool = Field(default=False)
    debug: bool = Field(default=False)

    # What the gate does when the authorizer cannot be constructed
    fail_open: bool = Field(default=True)

    model_config = SettingsConfigDict(
        env_prefix="EVMAUTH_",
        env_file=".env",
        extra="ignore"
    )


class TierSettings(BaseSettings):
    """Credential tiers and the tools placed in each of them."""
    basic_token_id: int = Field(default=1)
    premium_token_id: int = Field(default=3)
    pro_token_id: int = Field(default=5)

    tools: dict[str, CredentialTier] = Field(default_factory=lambda: {
        "ping": CredentialTier.FREE,
        "getSupportedVsCurrencies": CredentialTier.FREE,
        "getPrice": CredentialTier.BASIC,
        "getGlobal": CredentialTier.PREMIUM,
        "getCoinMarkets": CredentialTier.PREMIUM,
        "getTrending": CredentialTier.PRO,
    })

    model_config = SettingsConfigDict(
        env_prefix="EVMAUTH_",
        env_file=".env",
        extra="ignore"
    )

    def credential_for(self, tier: CredentialTier) -> Optional[int]:
        """Credential id required by a tier."""
        return {
            CredentialTier.FREE: None,
            CredentialTier.BASIC: self.basic_token_id,
            CredentialTier.PREMIUM: self.premium_token_id,
            CredentialTier.PRO: self.pro_token_id,
        }[tier]

    def requirements(self) -> TierRequirement:
        """Build the tool -> credential id table."""
        return {name: self.credential_for(tier) for name, tier in self.tools.items()}

    def category(self, tool_name: str) -> str:
        tier = self.tools.get(tool_name)
        return tier.name if tier else "UNKNOWN"


class Settings(BaseSettings):
    """Main application settings."""
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Component settings
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    authorizer: AuthorizerSettings = Field(default_factory=AuthorizerSettings)
    tiers: TierSettings = Field(default_factory=TierSettings)

    model_config = SettingsConfigDict(
        env_prefix="MCP_",
        env_file=".env",
        extra="ignore"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        return cls(**load_yaml_config(path))


def load_yaml_config(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file."""
    path = Path(path)
    if not path.exists():
        return {}

    with open(path) as f:
        return yaml.safe_load(f) or {}


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    config_path = os.environ.get("MCP_CONFIG_PATH", "config/settings.yaml")
    return Settings.from_yaml(config_path)
