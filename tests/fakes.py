"""In-process fake of the APIpie HTTP API, served through httpx.MockTransport."""

from __future__ import annotations

import json
from typing import Any

import httpx


def catalog_entry(
    provider: str,
    model_id: str,
    *,
    route: str | None = None,
    available: int = 1,
    enabled: int = 1,
    max_tokens: int = 128_000,
    max_response_tokens: int = 16_384,
    input_cost: float = 2.5,
    output_cost: float = 10.0,
    description: str = "",
    subtype: str = "chat",
) -> dict[str, Any]:
    return {
        "enabled": enabled,
        "available": available,
        "type": "llm",
        "subtype": subtype,
        "provider": provider,
        "id": model_id,
        "model": model_id,
        "route": route or model_id,
        "description": description,
        "max_tokens": max_tokens,
        "max_response_tokens": max_response_tokens,
        "input_cost": input_cost,
        "output_cost": output_cost,
    }


DEFAULT_CATALOG = [
    catalog_entry("anthropic", "claude-3-5-sonnet", route="claude-3-5-sonnet-20241022",
                  max_response_tokens=8192),
    catalog_entry("openai", "gpt-4o", route="gpt-4o-2024-08-06", max_response_tokens=8192,
                  description="OpenAI flagship"),
    catalog_entry("openai", "gpt-3.5-turbo", max_response_tokens=4096),
    catalog_entry("meta", "llama-3-70b", available=0),
]


def sse(*chunks: dict[str, Any] | str, done: bool = True) -> bytes:
    """Frame chunks as a server-sent event stream."""
    lines = []
    for c in chunks:
        payload = c if isinstance(c, str) else json.dumps(c)
        lines.append(f"data: {payload}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def text_chunk(text: str) -> dict[str, Any]:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": {"content": text}, "finish_reason": None}],
    }


def usage_chunk(**usage: Any) -> dict[str, Any]:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion.chunk",
        "choices": [],
        "usage": usage,
    }


class FakeApipie:
    """
    Records every request and answers ``/models`` and ``/chat/completions``.
    """

    def __init__(
        self,
        catalog: list[dict[str, Any]] | None = None,
        stream_body: bytes | None = None,
        *,
        catalog_status: int = 200,
        stream_status: int = 200,
        memory_status: int = 200,
        memory_body: str = '{"ok": true}',
    ) -> None:
        self.catalog = DEFAULT_CATALOG if catalog is None else catalog
        self.stream_body = stream_body if stream_body is not None else sse(
            text_chunk("Hi"), usage_chunk(prompt_tokens=10, completion_tokens=2, cost=0.001)
        )
        self.catalog_status = catalog_status
        self.stream_status = stream_status
        self.memory_status = memory_status
        self.memory_body = memory_body
        self.requests: list[httpx.Request] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "GET" and path.endswith("/models"):
            if self.catalog_status != 200:
                return httpx.Response(self.catalog_status, text="catalog down")
            return httpx.Response(200, json={"data": self.catalog})

        if request.method == "POST" and path.endswith("/chat/completions"):
            body = json.loads(request.content)
            if body.get("stream"):
                if self.stream_status != 200:
                    return httpx.Response(self.stream_status, text="upstream exploded")
                return httpx.Response(
                    200,
                    content=self.stream_body,
                    headers={"content-type": "text/event-stream"},
                )
            return httpx.Response(self.memory_status, text=self.memory_body)

        return httpx.Response(404, text="not found")

    # ------------------------------------------------------------------

    def calls(self, method: str, suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path.endswith(suffix)]

    @property
    def catalog_fetches(self) -> int:
        return len(self.calls("GET", "/models"))

    @property
    def completion_bodies(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.calls("POST", "/chat/completions")]


async def collect(agen) -> list:
    return [event async for event in agen]
