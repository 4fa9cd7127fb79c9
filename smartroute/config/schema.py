"""Configuration schema using Pydantic."""

import os
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from smartroute.routing.types import ProviderId, UserTier


class ProviderConfig(BaseModel):
    """One routed provider."""
    enabled: bool = False
    api_key: str = ""
    api_base: str | None = None
    cost_per_token: float | None = None  # Overrides the catalog default
    models: dict[str, str] = Field(default_factory=dict)  # Merged into the catalog's model table
    default_model: str | None = None  # Key into models (or a literal model name)


class ProvidersConfig(BaseModel):
    """Configuration for every provider the router may call."""
    self_hosted: ProviderConfig = Field(default_factory=lambda: ProviderConfig(enabled=True))
    gateway: ProviderConfig = Field(default_factory=ProviderConfig)
    openai: ProviderConfig = Field(default_factory=ProviderConfig)
    gemini: ProviderConfig = Field(default_factory=ProviderConfig)
    claude: ProviderConfig = Field(default_factory=ProviderConfig)
    grok: ProviderConfig = Field(default_factory=ProviderConfig)
    deepseek: ProviderConfig = Field(default_factory=ProviderConfig)

    def get(self, provider_id: ProviderId) -> ProviderConfig:
        return getattr(self, provider_id.value.replace("-", "_"))


# Conventional vendor environment variables, checked when no key is configured
PROVIDER_ENV_KEYS: dict[ProviderId, tuple[str, ...]] = {
    ProviderId.SELF_HOSTED: ("SELF_HOSTED_API_KEY",),
    ProviderId.GATEWAY: ("OPENROUTER_API_KEY",),
    ProviderId.OPENAI: ("OPENAI_API_KEY",),
    ProviderId.GEMINI: ("GEMINI_API_KEY",),
    ProviderId.CLAUDE: ("ANTHROPIC_API_KEY",),
    ProviderId.GROK: ("XAI_API_KEY", "GROK_API_KEY"),
    ProviderId.DEEPSEEK: ("DEEPSEEK_API_KEY",),
}


class RoutingConfig(BaseModel):
    """Routing defaults applied when a request does not say otherwise."""
    default_tier: UserTier = UserTier.STANDARD
    timeout_ms: int = 30000  # Per invocation
    deadline_ms: int | None = None  # Whole request; None means unbounded
    enable_scoring: bool = True
    max_retries: int = 3
    history_window_days: int = 7


class CircuitBreakerConfig(BaseModel):
    """Per-provider circuit breaker."""
    failure_threshold: int = 5
    recovery_timeout_seconds: float = 60.0


class TrackingConfig(BaseModel):
    """Score history persistence."""
    enabled: bool = True
    path: str = "~/.smartroute/scores.jsonl"
    retention_days: int = 30  # Older records are dropped on load and append
    max_records: int = 10000

    @property
    def storage_path(self) -> Path:
        return Path(self.path).expanduser()


class Config(BaseSettings):
    """Root configuration for smartroute."""
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    tracking: TrackingConfig = Field(default_factory=TrackingConfig)

    def get_api_key(self, provider: ProviderId) -> str | None:
        """
        Get the API key for a provider.

        Args:
            provider: Provider id.

        Returns:
            The configured key, else the first matching environment variable, else None.
        """
        configured = self.providers.get(provider).api_key
        if configured:
            return configured

        for env_key in PROVIDER_ENV_KEYS.get(provider, ()):
            value = os.environ.get(env_key)
            if value:
                return value
        return None

    def get_api_base(self, provider: ProviderId) -> str | None:
        return self.providers.get(provider).api_base

    def enabled_providers(self) -> list[ProviderId]:
        return [p for p in ProviderId if self.providers.get(p).enabled]

    class Config:
        env_prefix = "SMARTROUTE_"
        env_nested_delimiter = "__"
