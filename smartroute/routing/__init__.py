"""
Score-driven provider routing for smartroute.

Routes each request through a phased fallback run:
- Self-hosted model first (cheapest), retried once with a tuned temperature
- Best-fit vendor API under the caller's tier cost policy
- Model-aggregation gateway
- Last-resort self-hosted attempt with a heavily adjusted temperature

Every response is scored; the score decides whether to accept or escalate.
"""

from smartroute.routing.catalog import ProviderCatalog, ProviderDescriptor, TaskProviderMapping, TierPolicy
from smartroute.routing.classifier import TaskClassifier, classify_task
from smartroute.routing.scorer import ResponseScorer
from smartroute.routing.temperature import TemperatureAdvisor
from smartroute.routing.types import (
    Decision,
    Phase,
    ProviderId,
    RoutingOptions,
    RoutingResult,
    TaskCategory,
    UserTier,
)
from smartroute.routing.router import (
    RoutingOrchestrator,
    create_orchestrator_from_config,
)

__all__ = [
    "ProviderCatalog",
    "ProviderDescriptor",
    "TaskProviderMapping",
    "TierPolicy",
    "TaskClassifier",
    "classify_task",
    "ResponseScorer",
    "TemperatureAdvisor",
    "Decision",
    "Phase",
    "ProviderId",
    "RoutingOptions",
    "RoutingResult",
    "TaskCategory",
    "UserTier",
    "RoutingOrchestrator",
    "create_orchestrator_from_config",
]
