"""Base interfaces for model invocation and score persistence."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from smartroute.routing.types import ProviderId, TaskCategory

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."


@dataclass
class LLMResponse:
    """Response from a chat completion."""
    content: str | None
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)
    model: str | None = None

    @property
    def total_tokens(self) -> int | None:
        return self.usage.get("total_tokens") if self.usage else None


def build_messages(prompt: str, system_prompt: str | None = None) -> list[dict[str, Any]]:
    """System message plus the user prompt."""
    return [
        {"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


class ModelInvoker(ABC):
    """
    Abstract model invoker.

    Implementations turn (provider, temperature, messages) into a completion.
    Any failure is raised; the router decides what to do with it.
    """

    @abstractmethod
    async def invoke(
        self,
        provider_id: "ProviderId",
        temperature: float,
        messages: list[dict[str, Any]],
        category: "TaskCategory | None" = None,
        model: str | None = None,
        timeout_ms: float | None = None,
    ) -> LLMResponse:
        """
        Send one chat completion request.

        Args:
            provider_id: Backend to call.
            temperature: Sampling temperature.
            messages: Message dicts with 'role' and 'content'.
            category: Task category, used to pick a category-specific model.
            model: Explicit model override.
            timeout_ms: Give up after this long; None waits indefinitely.

        Returns:
            LLMResponse with the completion.

        Raises:
            InvocationError: The call failed; ``timed_out`` is set when
                ``timeout_ms`` elapsed.
        """
        pass

    def model_name(self, provider_id: "ProviderId", category: "TaskCategory | None" = None) -> str:
        """Model name the invoker would use; informational."""
        return provider_id.value

    def create_handle(
        self,
        provider_id: "ProviderId",
        temperature: float,
        category: "TaskCategory | None" = None,
    ) -> "ModelHandle":
        return ModelHandle(
            invoker=self,
            provider_id=provider_id,
            temperature=temperature,
            category=category,
            model=self.model_name(provider_id, category),
        )


class ModelHandle:
    """
    A provider bound to a temperature, ready for further chat exchanges.

    Returned to callers of ``route`` so they can keep talking to the
    selected model with the selected settings.
    """

    def __init__(
        self,
        invoker: ModelInvoker,
        provider_id: "ProviderId",
        temperature: float,
        category: "TaskCategory | None" = None,
        model: str | None = None,
    ):
        self.invoker = invoker
        self.provider_id = provider_id
        self.temperature = temperature
        self.category = category
        self.model = model

    async def chat(self, messages: list[dict[str, Any]]) -> LLMResponse:
        return await self.invoker.invoke(
            self.provider_id, self.temperature, messages, category=self.category,
        )

    async def complete(self, prompt: str, system_prompt: str | None = None) -> str:
        """Single-turn convenience wrapper returning only the text."""
        response = await self.chat(build_messages(prompt, system_prompt))
        return response.content or ""

    def __repr__(self) -> str:
        return f"ModelHandle(provider={self.provider_id.value}, model={self.model}, temperature={self.temperature})"


@runtime_checkable
class ScoreSink(Protocol):
    """Fire-and-forget persistence of score records."""

    def record_score(self, record: Any) -> None: ...


@runtime_checkable
class HistoricalReader(Protocol):
    """Read access to recent scores; must be safe for concurrent reads."""

    def get_recent_average(
        self,
        provider_id: "ProviderId",
        category: "TaskCategory",
        window_days: int = 7,
    ) -> float | None: ...


@runtime_checkable
class ScoreHistoryReader(HistoricalReader, Protocol):
    """Historical reader that also exposes the individual recent scores."""

    def get_recent_scores(
        self,
        provider_id: "ProviderId",
        category: "TaskCategory",
        window_days: int = 7,
    ) -> list[int]: ...
