"""
apipie.adapters.stream — Decode the APIpie SSE stream into normalised events.

APIpie streams OpenAI-shaped ``chat.completion.chunk`` objects.  The terminal
chunk carries a vendor-extended ``usage`` object with ``cost`` when
``stream_options.include_usage`` was requested.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from apipie.core.errors import TransportFailure
from apipie.core.models import NormalizedEvent, TextEvent, UsageEvent, WireRequest

logger = logging.getLogger("apipie.adapters.stream")

_DATA_PREFIX = "data:"
_DONE = "[DONE]"


def decode_chunk(chunk: dict[str, Any]) -> list[NormalizedEvent]:
    """
    Translate one upstream chunk into zero, one or two events.

    A text delta comes first, usage second, matching their position in the
    chunk.  Error payloads embedded in the chunk are not interpreted.
    """
    events: list[NormalizedEvent] = []

    choice = (chunk.get("choices") or [{}])[0] or {}
    delta = choice.get("delta") or {}
    text = delta.get("content")
    if text:
        events.append(TextEvent(text=text))

    usage = chunk.get("usage")
    if isinstance(usage, dict):
        events.append(
            UsageEvent(
                input_tokens=usage.get("prompt_tokens") or 0,
                output_tokens=usage.get("completion_tokens") or 0,
                total_cost=usage.get("cost") or 0,
            )
        )
    return events


class StreamDecoder:
    """
    Issues a streaming completion and yields events as chunks arrive.

    Iteration is pull-based: the next line is only read from the socket when
    the consumer asks for the next event.  Closing the iterator early closes
    the HTTP response.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def stream(self, request: WireRequest) -> AsyncIterator[NormalizedEvent]:
        body = request.to_body()
        chunks = 0
        try:
            async with self._client.stream("POST", "/chat/completions", json=body) as resp:
                if resp.is_error:
                    await resp.aread()
                    raise TransportFailure(
                        f"APIpie streaming error ({resp.status_code}): {resp.text[:500]}",
                        status_code=resp.status_code,
                    )

                async for line in resp.aiter_lines():
                    if not line.startswith(_DATA_PREFIX):
                        continue
                    data_str = line[len(_DATA_PREFIX):].strip()
                    if data_str == _DONE:
                        break
                    if not data_str:
                        continue
                    try:
                        chunk = json.loads(data_str)
                    except json.JSONDecodeError as exc:
                        raise TransportFailure(
                            f"Malformed stream chunk: {data_str[:200]!r}"
                        ) from exc
                    if not isinstance(chunk, dict):
                        raise TransportFailure(f"Unexpected stream chunk: {data_str[:200]!r}")

                    chunks += 1
                    for event in decode_chunk(chunk):
                        yield event
        except httpx.HTTPError as exc:
            raise TransportFailure(f"APIpie stream failed: {exc}") from exc

        logger.debug("APIpie stream closed after %d chunks", chunks)
