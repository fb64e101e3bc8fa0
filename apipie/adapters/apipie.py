"""
apipie.adapters.apipie — Streaming adapter for the APIpie routing API.

Ties the pieces together for one assistant session:

    resolve model (once) → shape request → stream normalised events

The adapter owns a single ``httpx.AsyncClient`` and the resolved
``ModelDescriptor``; neither is shared between instances.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any

import httpx

from apipie.adapters.base import BaseAdapter
from apipie.adapters.catalog import ModelCatalog, to_model_info
from apipie.adapters.memory import SessionMemory
from apipie.adapters.shaper import build_request
from apipie.adapters.stream import StreamDecoder
from apipie.agent.usage_tracker import UsageTracker
from apipie.core.models import (
    AdapterConfig,
    ConversationMessage,
    ModelDescriptor,
    ModelInfo,
    ModelSpec,
    NormalizedEvent,
    UsageEvent,
)

logger = logging.getLogger("apipie.adapters.apipie")

FALLBACK_MODEL_ID = "openai/gpt-4o-mini"

_WRITE_TIMEOUT = 30.0
_POOL_TIMEOUT = 10.0

# Keep connections alive to skip TLS on subsequent requests
_POOL_LIMITS = httpx.Limits(
    max_connections=10,
    max_keepalive_connections=5,
    keepalive_expiry=120,
)


class ApipieAdapter(BaseAdapter):
    """
    Sends chat conversations to APIpie and yields ``TextEvent`` /
    ``UsageEvent`` objects as the response streams in.

    One streaming request at a time per instance.  The requested model is
    resolved against the catalog on first use and cached; usage reported by
    each stream is accumulated on ``self.usage``.
    """

    def __init__(
        self,
        config: AdapterConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            headers={
                "X-API-Key": config.api_key,
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(
                connect=config.connect_timeout,
                read=config.read_timeout,
                write=_WRITE_TIMEOUT,
                pool=_POOL_TIMEOUT,
            ),
            limits=_POOL_LIMITS,
            transport=transport,
        )
        self._catalog = ModelCatalog(self._client)
        self._decoder = StreamDecoder(self._client)
        self._memory = SessionMemory(self._client)
        self._clear_pending = config.clear_memory_on_next_request
        self.usage = UsageTracker(model=config.model_id)

    @property
    def descriptor(self) -> ModelDescriptor | None:
        return self._catalog.descriptor

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    async def create_message(
        self,
        system_prompt: str,
        messages: Sequence[ConversationMessage | Mapping[str, Any]],
    ) -> AsyncIterator[NormalizedEvent]:
        """
        Stream a completion for *messages* under *system_prompt*.

        Fails with ``ModelUnavailable`` before any completion request is sent
        if the configured model cannot be resolved.
        """
        history = [
            m if isinstance(m, ConversationMessage) else ConversationMessage.model_validate(m)
            for m in messages
        ]
        descriptor = await self.resolve_model()

        request = build_request(
            system_prompt,
            history,
            self.config,
            descriptor,
            clear_memory=self._clear_pending,
        )
        # mem_clear is one-shot
        self._clear_pending = False
        self.usage.model = descriptor.full_id

        async for event in self._decoder.stream(request):
            if isinstance(event, UsageEvent):
                self.usage.add_usage(event)
            yield event

    async def resolve_model(self) -> ModelDescriptor:
        """Resolve the configured model, fetching the catalog on first use."""
        return await self._catalog.resolve(
            self.config.model_id, self.config.catalog_subtypes
        )

    def get_model(self) -> ModelSpec:
        """Model id and metadata; defaults apply until a model is resolved."""
        descriptor = self._catalog.descriptor
        if descriptor is None or descriptor.full_id != self.config.model_id:
            return ModelSpec(id=self.config.model_id or FALLBACK_MODEL_ID, info=ModelInfo())
        return ModelSpec(
            id=descriptor.route_id or descriptor.full_id,
            info=to_model_info(descriptor),
        )

    async def list_models(self) -> dict[str, ModelInfo]:
        """Available models keyed by ``provider/id``, for a model picker."""
        return await self._catalog.list_models(self.config.catalog_subtypes)

    async def clear_memory(self, session_id: str | None = None) -> None:
        """Discard server-side memory (defaults to the configured session)."""
        await self._memory.clear(session_id or self.config.memory_session_id)

    def request_memory_clear(self) -> None:
        """Send ``mem_clear`` with the next completion request only."""
        self._clear_pending = True

    def select_model(self, model_id: str) -> None:
        """Switch the requested model; it is resolved on the next request."""
        if model_id == self.config.model_id:
            return
        logger.info("Switching model %s → %s", self.config.model_id, model_id)
        self.config = AdapterConfig.model_validate(
            {**self.config.model_dump(), "model_id": model_id}
        )

    async def close(self) -> None:
        await self._client.aclose()
