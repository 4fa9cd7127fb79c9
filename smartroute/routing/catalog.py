"""
Provider catalog: descriptors, task mappings and tier cost policies.

The catalog is a read-only snapshot. Reloading configuration builds a new
catalog; nothing here is mutated after construction.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from loguru import logger

from smartroute.routing.types import (
    DIRECT_API_PROVIDERS,
    ProviderId,
    TaskCategory,
    UserTier,
)


@dataclass(frozen=True)
class Capabilities:
    """What a provider can do."""
    json_mode: bool = False
    function_calling: bool = False
    vision: bool = False
    streaming: bool = True

    def supports(self, tag: str) -> bool:
        return bool(getattr(self, tag, False))


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static description of one backend."""
    id: ProviderId
    enabled: bool
    api_base: str | None
    models: Mapping[str, str]
    default_model: str
    capabilities: Capabilities = field(default_factory=Capabilities)
    max_context_tokens: int = 8192
    cost_per_token: float = 0.0
    specialties: tuple[str, ...] = ()
    api_key: str | None = field(default=None, repr=False)
    requires_key: bool = True
    # Model key to use for a given category; falls back to default_model.
    category_models: Mapping[TaskCategory, str] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key) or not self.requires_key

    @property
    def is_available(self) -> bool:
        return self.enabled and self.has_credentials

    def model_for(self, category: TaskCategory | None = None) -> str:
        """Resolve the model name for a category."""
        key = self.category_models.get(category, self.default_model) if category else self.default_model
        return self.models.get(key, key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id.value,
            "enabled": self.enabled,
            "has_credentials": self.has_credentials,
            "api_base": self.api_base,
            "default_model": self.model_for(),
            "cost_per_token": self.cost_per_token,
            "max_context_tokens": self.max_context_tokens,
            "specialties": list(self.specialties),
        }


@dataclass(frozen=True)
class TaskProviderMapping:
    """Preferred direct-API providers for one task category."""
    category: TaskCategory
    primary: ProviderId
    secondaries: tuple[ProviderId, ...]
    rationale: str
    optimal_temperature: float
    required_capabilities: tuple[str, ...] = ()

    @property
    def ordered(self) -> tuple[ProviderId, ...]:
        return (self.primary, *self.secondaries)


@dataclass(frozen=True)
class TierPolicy:
    """Cost policy for a user tier."""
    tier: UserTier
    prioritize_cost: bool
    max_cost_per_token: float
    allow_retries: bool
    preferred_providers: tuple[ProviderId, ...]


TIER_POLICIES: Mapping[UserTier, TierPolicy] = MappingProxyType({
    UserTier.FREE: TierPolicy(
        tier=UserTier.FREE,
        prioritize_cost=True,
        max_cost_per_token=0.01,
        allow_retries=False,
        preferred_providers=(ProviderId.GEMINI, ProviderId.DEEPSEEK, ProviderId.GROK),
    ),
    UserTier.STANDARD: TierPolicy(
        tier=UserTier.STANDARD,
        prioritize_cost=False,
        max_cost_per_token=0.05,
        allow_retries=True,
        preferred_providers=(ProviderId.GEMINI, ProviderId.CLAUDE, ProviderId.OPENAI, ProviderId.DEEPSEEK),
    ),
    UserTier.PREMIUM: TierPolicy(
        tier=UserTier.PREMIUM,
        prioritize_cost=False,
        max_cost_per_token=0.10,
        allow_retries=True,
        preferred_providers=(ProviderId.CLAUDE, ProviderId.OPENAI, ProviderId.GEMINI),
    ),
    UserTier.ENTERPRISE: TierPolicy(
        tier=UserTier.ENTERPRISE,
        prioritize_cost=False,
        max_cost_per_token=float("inf"),
        allow_retries=True,
        preferred_providers=(ProviderId.OPENAI, ProviderId.CLAUDE, ProviderId.GEMINI),
    ),
})


def _mapping(
    category: TaskCategory,
    primary: ProviderId,
    secondaries: tuple[ProviderId, ...],
    rationale: str,
    optimal_temperature: float,
    required: tuple[str, ...] = (),
) -> TaskProviderMapping:
    return TaskProviderMapping(category, primary, secondaries, rationale, optimal_temperature, required)


P = ProviderId

TASK_MAPPINGS: Mapping[TaskCategory, TaskProviderMapping] = MappingProxyType({
    TaskCategory.STRUCTURED_OUTPUT: _mapping(
        TaskCategory.STRUCTURED_OUTPUT, P.OPENAI, (P.CLAUDE, P.GEMINI),
        "OpenAI has the best JSON mode and structured output capabilities. "
        "Claude is a good backup for complex schemas.",
        0.2, ("json_mode",),
    ),
    TaskCategory.CODE_GENERATION: _mapping(
        TaskCategory.CODE_GENERATION, P.DEEPSEEK, (P.OPENAI, P.GROK, P.CLAUDE),
        "Deepseek specializes in coding tasks. GPT-4 is best for complex code architecture.",
        0.1, ("function_calling",),
    ),
    TaskCategory.CREATIVE_WRITING: _mapping(
        TaskCategory.CREATIVE_WRITING, P.CLAUDE, (P.OPENAI, P.GROK),
        "Claude excels at creative writing and long-form content. Grok adds humor and personality.",
        0.8, ("streaming",),
    ),
    TaskCategory.COMPLEX_REASONING: _mapping(
        TaskCategory.COMPLEX_REASONING, P.OPENAI, (P.CLAUDE, P.GEMINI),
        "GPT-4 has superior reasoning for multi-step problems. Claude is excellent for analysis.",
        0.4, ("function_calling",),
    ),
    TaskCategory.TOOL_EXECUTION: _mapping(
        TaskCategory.TOOL_EXECUTION, P.GEMINI, (P.OPENAI, P.CLAUDE),
        "Gemini is cost-effective for API tasks and handles schemas well. OpenAI provides precision.",
        0.1, ("function_calling",),
    ),
    TaskCategory.DATA_ANALYSIS: _mapping(
        TaskCategory.DATA_ANALYSIS, P.OPENAI, (P.GEMINI, P.CLAUDE),
        "GPT-4 is excellent at data analysis and insights. Gemini handles large datasets efficiently.",
        0.2, ("json_mode",),
    ),
    TaskCategory.MATH_REASONING: _mapping(
        TaskCategory.MATH_REASONING, P.GEMINI, (P.DEEPSEEK, P.OPENAI),
        "Gemini and Deepseek excel at mathematical reasoning. OpenAI provides verification.",
        0.1,
    ),
    TaskCategory.CONVERSATIONAL: _mapping(
        TaskCategory.CONVERSATIONAL, P.CLAUDE, (P.GROK, P.OPENAI),
        "Claude provides natural, safe conversations. Grok adds personality and humor.",
        0.7, ("streaming",),
    ),
    TaskCategory.REALTIME_INFO: _mapping(
        TaskCategory.REALTIME_INFO, P.GROK, (P.GEMINI, P.OPENAI),
        "Grok has access to current events. Gemini provides comprehensive knowledge.",
        0.6,
    ),
    TaskCategory.MULTIMODAL: _mapping(
        TaskCategory.MULTIMODAL, P.GEMINI, (P.CLAUDE, P.OPENAI),
        "Gemini leads in multimodal capabilities. Claude and GPT-4 analyze multimodal content.",
        0.3, ("vision",),
    ),
    TaskCategory.SAFETY_CRITICAL: _mapping(
        TaskCategory.SAFETY_CRITICAL, P.CLAUDE, (P.OPENAI, P.GEMINI),
        "Claude is designed with safety and ethics as primary concerns.",
        0.3,
    ),
    TaskCategory.COST_OPTIMIZED: _mapping(
        TaskCategory.COST_OPTIMIZED, P.GEMINI, (P.DEEPSEEK, P.GROK),
        "Gemini offers the best cost-performance ratio. Deepseek and Grok are cheap alternatives.",
        0.5,
    ),
})

# Gateway model key per category
GATEWAY_MODELS: Mapping[TaskCategory, str] = MappingProxyType({
    TaskCategory.STRUCTURED_OUTPUT: "gpt4",
    TaskCategory.CODE_GENERATION: "gpt4",
    TaskCategory.COMPLEX_REASONING: "gpt4",
    TaskCategory.DATA_ANALYSIS: "gpt4",
    TaskCategory.CREATIVE_WRITING: "claude",
    TaskCategory.CONVERSATIONAL: "claude",
    TaskCategory.SAFETY_CRITICAL: "claude",
    TaskCategory.TOOL_EXECUTION: "gemini",
    TaskCategory.MATH_REASONING: "gemini",
    TaskCategory.REALTIME_INFO: "gemini",
    TaskCategory.MULTIMODAL: "gemini",
    TaskCategory.COST_OPTIMIZED: "gemini",
})


def _descriptor(
    provider_id: ProviderId,
    api_base: str | None,
    models: dict[str, str],
    default_model: str,
    capabilities: Capabilities,
    max_context_tokens: int,
    cost_per_token: float,
    specialties: tuple[str, ...],
    requires_key: bool = True,
    category_models: dict[TaskCategory, str] | None = None,
) -> ProviderDescriptor:
    return ProviderDescriptor(
        id=provider_id,
        enabled=False,
        api_base=api_base,
        models=MappingProxyType(dict(models)),
        default_model=default_model,
        capabilities=capabilities,
        max_context_tokens=max_context_tokens,
        cost_per_token=cost_per_token,
        specialties=specialties,
        requires_key=requires_key,
        category_models=MappingProxyType(dict(category_models or {})),
    )


# Disabled by default; configuration enables and credentials them.
DEFAULT_DESCRIPTORS: Mapping[ProviderId, ProviderDescriptor] = MappingProxyType({
    P.SELF_HOSTED: _descriptor(
        P.SELF_HOSTED, "http://localhost:8000/v1",
        {"default": "default"}, "default",
        Capabilities(json_mode=True, function_calling=False, vision=False),
        8192, 0.0, ("general",),
        requires_key=False,
    ),
    P.GATEWAY: _descriptor(
        P.GATEWAY, "https://openrouter.ai/api/v1",
        {"gpt4": "openai/gpt-4", "claude": "anthropic/claude-3-opus", "gemini": "google/gemini-pro"},
        "gpt4",
        Capabilities(json_mode=True, function_calling=True, vision=True),
        128000, 0.02, ("model_aggregation",),
        category_models=dict(GATEWAY_MODELS),
    ),
    P.OPENAI: _descriptor(
        P.OPENAI, "https://api.openai.com/v1",
        {"gpt4": "gpt-4", "gpt4_turbo": "gpt-4-turbo-preview", "gpt35_turbo": "gpt-3.5-turbo"},
        "gpt4",
        Capabilities(json_mode=True, function_calling=True, vision=True),
        128000, 0.03,
        ("structured_json", "code_generation", "precise_instructions",
         "function_calling", "data_analysis", "mathematical_reasoning"),
    ),
    P.GEMINI: _descriptor(
        P.GEMINI, "https://generativelanguage.googleapis.com/v1beta",
        {"pro": "gemini-pro", "pro_vision": "gemini-pro-vision", "ultra": "gemini-ultra"},
        "pro",
        Capabilities(json_mode=False, function_calling=True, vision=True),
        32768, 0.001,
        ("cost_effective", "multimodal", "real_world_knowledge", "search_augmented",
         "api_execution", "mathematical_reasoning", "multilingual"),
        category_models={TaskCategory.MULTIMODAL: "pro_vision"},
    ),
    P.CLAUDE: _descriptor(
        P.CLAUDE, "https://api.anthropic.com/v1",
        {"opus": "claude-3-opus-20240229", "sonnet": "claude-3-sonnet-20240229",
         "haiku": "claude-3-haiku-20240307"},
        "opus",
        Capabilities(json_mode=True, function_calling=True, vision=True),
        200000, 0.015,
        ("creative_writing", "long_form_content", "analysis", "ethical_reasoning",
         "complex_instructions", "conversational", "safety_focused", "context_handling"),
    ),
    P.GROK: _descriptor(
        P.GROK, "https://api.x.ai/v1",
        {"grok1": "grok-1", "grok_beta": "grok-beta"},
        "grok_beta",
        Capabilities(json_mode=False, function_calling=True, vision=False),
        8192, 0.01,
        ("real_time_information", "humor_wit", "coding", "technical_questions",
         "current_events", "independent_thinking"),
    ),
    P.DEEPSEEK: _descriptor(
        P.DEEPSEEK, "https://api.deepseek.com/v1",
        {"coder": "deepseek-coder", "chat": "deepseek-chat"},
        "chat",
        Capabilities(json_mode=True, function_calling=True, vision=False),
        32768, 0.002,
        ("code_generation", "coding_assistance", "mathematical_reasoning",
         "algorithmic_tasks", "technical_writing", "cost_effective_coding"),
        category_models={TaskCategory.CODE_GENERATION: "coder", TaskCategory.MATH_REASONING: "coder"},
    ),
})


class ProviderCatalog:
    """
    Immutable table of provider descriptors, task mappings and tier policies.

    Safe to share across concurrent routing requests.
    """

    def __init__(
        self,
        descriptors: Mapping[ProviderId, ProviderDescriptor],
        mappings: Mapping[TaskCategory, TaskProviderMapping] = TASK_MAPPINGS,
        tier_policies: Mapping[UserTier, TierPolicy] = TIER_POLICIES,
    ):
        self._descriptors = MappingProxyType(dict(descriptors))
        self._mappings = MappingProxyType(dict(mappings))
        self._tier_policies = MappingProxyType(dict(tier_policies))

    @classmethod
    def with_enabled(
        cls,
        enabled: Iterable[ProviderId],
        api_keys: Mapping[ProviderId, str] | None = None,
    ) -> "ProviderCatalog":
        """Build a catalog from the defaults with the given providers switched on."""
        api_keys = api_keys or {}
        enabled = set(enabled)
        descriptors = {}
        for provider_id, descriptor in DEFAULT_DESCRIPTORS.items():
            if provider_id in enabled:
                key = api_keys.get(provider_id, descriptor.api_key or "configured")
                descriptor = replace(descriptor, enabled=True, api_key=key)
            descriptors[provider_id] = descriptor
        return cls(descriptors)

    @classmethod
    def from_config(cls, config: Any) -> "ProviderCatalog":
        """
        Build a catalog snapshot from a Config.

        Args:
            config: smartroute Config with a ``providers`` section.

        Returns:
            A new ProviderCatalog.
        """
        descriptors = {}
        for provider_id, descriptor in DEFAULT_DESCRIPTORS.items():
            section = config.providers.get(provider_id)
            overrides: dict[str, Any] = {
                "enabled": section.enabled,
                "api_key": config.get_api_key(provider_id),
            }
            if section.api_base:
                overrides["api_base"] = section.api_base
            if section.cost_per_token is not None:
                overrides["cost_per_token"] = section.cost_per_token
            if section.models:
                models = dict(descriptor.models)
                models.update(section.models)
                overrides["models"] = MappingProxyType(models)
            if section.default_model:
                overrides["default_model"] = section.default_model
            descriptors[provider_id] = replace(descriptor, **overrides)

        catalog = cls(descriptors)
        logger.debug(f"Provider catalog loaded: available={[p.value for p in catalog.available_providers()]}")
        return catalog

    def descriptor(self, provider_id: ProviderId) -> ProviderDescriptor:
        return self._descriptors[provider_id]

    def descriptors(self) -> list[ProviderDescriptor]:
        return list(self._descriptors.values())

    def is_available(self, provider_id: ProviderId) -> bool:
        """Enabled and credentialed."""
        descriptor = self._descriptors.get(provider_id)
        return descriptor is not None and descriptor.is_available

    def available_providers(self) -> list[ProviderId]:
        return [d.id for d in self._descriptors.values() if d.is_available]

    def mapping(self, category: TaskCategory) -> TaskProviderMapping:
        return self._mappings[category]

    def tier_policy(self, tier: UserTier) -> TierPolicy:
        return self._tier_policies[tier]

    def gateway_model(self, category: TaskCategory) -> str:
        """Category-appropriate model name on the aggregation gateway."""
        return self.descriptor(ProviderId.GATEWAY).model_for(category)

    def select_direct_provider(
        self,
        category: TaskCategory,
        tier: UserTier,
        exclude: Iterable[ProviderId] = (),
        force: ProviderId | None = None,
    ) -> ProviderId | None:
        """
        Pick the best untried vendor-API provider under the tier's cost policy.

        Args:
            category: The task category.
            tier: Active user tier.
            exclude: Providers already present in the routing path.
            force: A forced direct-API provider; chosen if available regardless of cost.

        Returns:
            The provider id, or None when no candidate remains.
        """
        excluded = set(exclude)

        if force is not None:
            if force.is_direct_api and self.is_available(force) and force not in excluded:
                return force
            return None

        policy = self.tier_policy(tier)
        candidates = [
            provider_id
            for provider_id in DIRECT_API_PROVIDERS
            if self.is_available(provider_id)
            and provider_id not in excluded
            and self.descriptor(provider_id).cost_per_token <= policy.max_cost_per_token
        ]
        if not candidates:
            return None

        if policy.prioritize_cost:
            return min(candidates, key=lambda p: self.descriptor(p).cost_per_token)

        for provider_id in self.mapping(category).ordered:
            if provider_id in candidates:
                return provider_id

        for provider_id in policy.preferred_providers:
            if provider_id in candidates:
                return provider_id

        return None

    def routing_stats(self) -> dict[str, Any]:
        """Available providers and the per-category mapping rows they can serve."""
        available = set(self.available_providers())
        return {
            "available_providers": [p.value for p in self.available_providers()],
            "task_mappings": {
                category.value: {
                    "primary": mapping.primary.value if mapping.primary in available else None,
                    "secondaries": [p.value for p in mapping.secondaries if p in available],
                    "rationale": mapping.rationale,
                    "optimal_temperature": mapping.optimal_temperature,
                }
                for category, mapping in self._mappings.items()
            },
        }
