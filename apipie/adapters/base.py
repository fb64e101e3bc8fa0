"""
apipie.adapters.base — Abstract base class for streaming provider adapters.

An adapter takes a system prompt plus the conversation history and yields
normalised ``TextEvent`` / ``UsageEvent`` objects, independent of the
provider's wire format.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence

from apipie.core.models import ConversationMessage, ModelSpec, NormalizedEvent


class BaseAdapter(ABC):
    """
    Interface contract for all provider adapters.

    Subclasses must implement ``create_message()``, ``get_model()`` and
    ``close()``.
    """

    @abstractmethod
    def create_message(
        self,
        system_prompt: str,
        messages: Sequence[ConversationMessage],
    ) -> AsyncIterator[NormalizedEvent]:
        """Stream a completion as normalised events."""
        ...

    @abstractmethod
    def get_model(self) -> ModelSpec:
        """Return the routable model id and its metadata."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release any held resources (HTTP clients, etc.)."""
        ...

    async def __aenter__(self) -> "BaseAdapter":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
