"""
apipie.adapters.catalog — Model catalog fetch and descriptor resolution.

The catalog (``GET /models``) listing is cached per subtype filter.  A
requested ``provider/id`` is resolved against it; the resolved descriptor is
cached and reused until a different id is requested.  A failed resolution
drops the listing so the next attempt sees a fresh catalog.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import httpx
from pydantic import ValidationError

from apipie.core.errors import ModelUnavailable, TransportFailure
from apipie.core.models import ModelDescriptor, ModelInfo

logger = logging.getLogger("apipie.adapters.catalog")

# Completions shorter than this are useless for an editing assistant.
MIN_RESPONSE_TOKENS = 8000


def is_routable(m: ModelDescriptor) -> bool:
    """True if *m* may be selected for completion requests."""
    return m.available and m.max_response_tokens >= MIN_RESPONSE_TOKENS


def to_model_info(m: ModelDescriptor) -> ModelInfo:
    return ModelInfo(
        max_tokens=m.max_tokens or 128_000,
        context_window=m.max_response_tokens or 8192,
        input_price=m.input_cost,
        output_price=m.output_cost,
        description=m.description or None,
    )


class ModelCatalog:
    """
    Fetches the APIpie model catalog and resolves requested model ids.

    Holds no lock: an instance belongs to exactly one adapter, which runs one
    request at a time.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client
        self._listings: dict[tuple[str, ...], list[ModelDescriptor]] = {}
        self._descriptor: ModelDescriptor | None = None

    @property
    def descriptor(self) -> ModelDescriptor | None:
        """The currently resolved descriptor, or ``None``."""
        return self._descriptor

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    async def resolve(
        self,
        requested_model_id: str,
        subtypes: Sequence[str] = (),
    ) -> ModelDescriptor:
        """
        Return the descriptor for *requested_model_id*.

        Raises ``ModelUnavailable`` when no catalog entry with that
        ``provider/id`` is available with a large enough response budget.
        Transport problems propagate as ``TransportFailure``; nothing is
        retried.
        """
        if self._descriptor is not None and self._descriptor.full_id == requested_model_id:
            return self._descriptor

        models = await self._fetch(subtypes)
        match = next(
            (m for m in models if is_routable(m) and m.full_id == requested_model_id),
            None,
        )
        if match is None:
            # Re-fetch on the next attempt.
            self._listings.pop(tuple(subtypes), None)
            raise ModelUnavailable(requested_model_id)

        logger.info(
            "Resolved model %s → route=%s (max_response_tokens=%d)",
            requested_model_id,
            match.route_id,
            match.max_response_tokens,
        )
        self._descriptor = match
        return match

    async def list_models(self, subtypes: Sequence[str] = ()) -> dict[str, ModelInfo]:
        """Available, enabled models keyed by ``provider/id`` in catalog order."""
        models = await self._fetch(subtypes)
        out: dict[str, ModelInfo] = {}
        for m in models:
            if m.enabled and m.available and m.full_id not in out:
                out[m.full_id] = to_model_info(m)
        return out

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _fetch(self, subtypes: Sequence[str]) -> list[ModelDescriptor]:
        key = tuple(subtypes)
        if key in self._listings:
            return self._listings[key]

        params = {"subtype": ",".join(subtypes)} if subtypes else None
        logger.info("Fetching APIpie model catalog (subtype=%s)", params and params["subtype"])
        try:
            resp = await self._client.get("/models", params=params)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError as exc:
            raise TransportFailure(
                f"Model catalog request failed ({exc.response.status_code})",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportFailure(f"Model catalog request failed: {exc}") from exc
        except ValueError as exc:
            raise TransportFailure(f"Model catalog returned invalid JSON: {exc}") from exc

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise TransportFailure("Model catalog response has no 'data' list")

        try:
            models = [ModelDescriptor.model_validate(entry) for entry in data]
        except ValidationError as exc:
            raise TransportFailure(f"Model catalog entry is malformed: {exc}") from exc

        logger.debug("Catalog contains %d models", len(models))
        self._listings[key] = models
        return models
