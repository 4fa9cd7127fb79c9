"""
Tests for the provider catalog.

Tests:
- Availability from enabled flags and credentials
- Direct-API provider selection under tier policies
- Building a catalog from configuration
"""

import pytest

from smartroute.config.schema import Config, ProviderConfig, ProvidersConfig
from smartroute.routing.catalog import (
    DEFAULT_DESCRIPTORS,
    GATEWAY_MODELS,
    TASK_MAPPINGS,
    TIER_POLICIES,
    ProviderCatalog,
)
from smartroute.routing.types import ProviderId, TaskCategory, UserTier


class TestTables:
    """Tests for the static tables."""

    def test_every_category_is_mapped(self):
        assert set(TASK_MAPPINGS) == set(TaskCategory)
        assert set(GATEWAY_MODELS) == set(TaskCategory)

    def test_mappings_only_name_direct_providers(self):
        for mapping in TASK_MAPPINGS.values():
            for provider in mapping.ordered:
                assert provider.is_direct_api

    def test_every_tier_has_a_policy(self):
        assert set(TIER_POLICIES) == set(UserTier)
        assert not TIER_POLICIES[UserTier.FREE].allow_retries

    def test_defaults_are_disabled(self):
        catalog = ProviderCatalog(DEFAULT_DESCRIPTORS)

        assert catalog.available_providers() == []


class TestAvailability:
    """Tests for availability checks."""

    def test_self_hosted_needs_no_key(self):
        catalog = ProviderCatalog.with_enabled([ProviderId.SELF_HOSTED], api_keys={ProviderId.SELF_HOSTED: ""})

        assert catalog.is_available(ProviderId.SELF_HOSTED)

    def test_vendor_without_key_is_unavailable(self):
        catalog = ProviderCatalog.with_enabled([ProviderId.OPENAI], api_keys={ProviderId.OPENAI: ""})

        assert not catalog.is_available(ProviderId.OPENAI)

    def test_disabled_provider_is_unavailable(self):
        catalog = ProviderCatalog.with_enabled([ProviderId.OPENAI])

        assert catalog.is_available(ProviderId.OPENAI)
        assert not catalog.is_available(ProviderId.CLAUDE)

    def test_model_for_category(self, full_catalog):
        assert full_catalog.descriptor(ProviderId.DEEPSEEK).model_for(TaskCategory.CODE_GENERATION) == "deepseek-coder"
        assert full_catalog.descriptor(ProviderId.DEEPSEEK).model_for(TaskCategory.CONVERSATIONAL) == "deepseek-chat"
        assert full_catalog.gateway_model(TaskCategory.CREATIVE_WRITING) == "anthropic/claude-3-opus"

    def test_api_key_hidden_from_repr(self):
        catalog = ProviderCatalog.with_enabled([ProviderId.OPENAI], api_keys={ProviderId.OPENAI: "sk-secret"})

        assert "sk-secret" not in repr(catalog.descriptor(ProviderId.OPENAI))
        assert "sk-secret" not in str(catalog.descriptor(ProviderId.OPENAI).to_dict())


class TestSelectDirectProvider:
    """Tests for ProviderCatalog.select_direct_provider."""

    def test_standard_tier_uses_mapping_order(self, full_catalog):
        selected = full_catalog.select_direct_provider(TaskCategory.STRUCTURED_OUTPUT, UserTier.STANDARD)

        assert selected == ProviderId.OPENAI

    def test_excluded_providers_are_skipped(self, full_catalog):
        selected = full_catalog.select_direct_provider(
            TaskCategory.STRUCTURED_OUTPUT, UserTier.STANDARD, exclude=[ProviderId.OPENAI],
        )

        assert selected == ProviderId.CLAUDE

    def test_free_tier_picks_cheapest_under_ceiling(self, full_catalog):
        selected = full_catalog.select_direct_provider(TaskCategory.CREATIVE_WRITING, UserTier.FREE)

        assert selected == ProviderId.GEMINI

    def test_free_tier_cost_ceiling(self):
        catalog = ProviderCatalog.with_enabled([ProviderId.OPENAI, ProviderId.CLAUDE])

        assert catalog.select_direct_provider(TaskCategory.STRUCTURED_OUTPUT, UserTier.FREE) is None

    def test_falls_back_to_tier_preferences(self):
        catalog = ProviderCatalog.with_enabled([ProviderId.DEEPSEEK])

        selected = catalog.select_direct_provider(TaskCategory.CREATIVE_WRITING, UserTier.STANDARD)

        assert selected == ProviderId.DEEPSEEK

    def test_no_candidates(self, full_catalog):
        tried = [ProviderId.OPENAI, ProviderId.GEMINI, ProviderId.CLAUDE, ProviderId.GROK, ProviderId.DEEPSEEK]

        assert full_catalog.select_direct_provider(TaskCategory.STRUCTURED_OUTPUT, UserTier.STANDARD, exclude=tried) is None

    def test_forced_provider_ignores_cost(self, full_catalog):
        selected = full_catalog.select_direct_provider(
            TaskCategory.STRUCTURED_OUTPUT, UserTier.FREE, force=ProviderId.OPENAI,
        )

        assert selected == ProviderId.OPENAI

    @pytest.mark.parametrize("forced", [ProviderId.GATEWAY, ProviderId.SELF_HOSTED])
    def test_forced_non_direct_provider(self, full_catalog, forced):
        assert full_catalog.select_direct_provider(TaskCategory.STRUCTURED_OUTPUT, UserTier.STANDARD, force=forced) is None

    def test_routing_stats(self):
        catalog = ProviderCatalog.with_enabled([ProviderId.SELF_HOSTED, ProviderId.CLAUDE])

        stats = catalog.routing_stats()

        assert stats["available_providers"] == ["self-hosted", "claude"]
        row = stats["task_mappings"]["structured-output"]
        assert row["primary"] is None
        assert row["secondaries"] == ["claude"]


class TestFromConfig:
    """Tests for ProviderCatalog.from_config."""

    def test_config_overrides(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        config = Config(providers=ProvidersConfig(
            self_hosted=ProviderConfig(enabled=True, api_base="http://gpu-box:9000/v1"),
            openai=ProviderConfig(enabled=True, api_key="sk-test", cost_per_token=0.001, default_model="gpt4_turbo"),
            claude=ProviderConfig(enabled=True),
        ))

        catalog = ProviderCatalog.from_config(config)

        assert catalog.descriptor(ProviderId.SELF_HOSTED).api_base == "http://gpu-box:9000/v1"
        assert catalog.is_available(ProviderId.OPENAI)
        assert catalog.descriptor(ProviderId.OPENAI).cost_per_token == 0.001
        assert catalog.descriptor(ProviderId.OPENAI).model_for() == "gpt-4-turbo-preview"

    def test_enabled_without_key_is_unavailable(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        config = Config(providers=ProvidersConfig(claude=ProviderConfig(enabled=True)))

        catalog = ProviderCatalog.from_config(config)

        assert not catalog.is_available(ProviderId.CLAUDE)

    def test_custom_models_are_merged(self, monkeypatch):
        monkeypatch.delenv("DEEPSEEK_API_KEY", raising=False)
        config = Config(providers=ProvidersConfig(
            deepseek=ProviderConfig(enabled=True, api_key="k", models={"chat": "deepseek-v3"}),
        ))

        descriptor = ProviderCatalog.from_config(config).descriptor(ProviderId.DEEPSEEK)

        assert descriptor.model_for() == "deepseek-v3"
        assert descriptor.model_for(TaskCategory.CODE_GENERATION) == "deepseek-coder"
