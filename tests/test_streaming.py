"""
Tests for SSE stream decoding.

Tests cover:
1. decode_chunk — text deltas, usage defaults, ignored payloads
2. StreamDecoder — arrival order, [DONE], framing noise
3. Failures — malformed JSON, truncated streams, HTTP errors
4. Pull-based consumption — early close releases the response
"""

from __future__ import annotations

import json

import httpx
import pytest

from apipie.adapters.stream import StreamDecoder, decode_chunk
from apipie.core.errors import TransportFailure
from apipie.core.models import TextEvent, UsageEvent, WireRequest
from tests.fakes import collect, sse, text_chunk, usage_chunk


REQUEST = WireRequest(model="openai/gpt-4o", messages=[{"role": "user", "content": "hi"}])


def _decoder(body: bytes, status: int = 200) -> tuple[StreamDecoder, httpx.AsyncClient, list]:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status, content=body, headers={"content-type": "text/event-stream"})

    client = httpx.AsyncClient(base_url="https://apipie.ai/v1", transport=httpx.MockTransport(handler))
    return StreamDecoder(client), client, seen


# ===========================================================================
# decode_chunk
# ===========================================================================

class TestDecodeChunk:

    def test_text_delta(self):
        assert decode_chunk(text_chunk("Hel")) == [TextEvent("Hel")]

    def test_empty_delta_yields_nothing(self):
        chunk = {"choices": [{"index": 0, "delta": {"role": "assistant", "content": ""}}]}
        assert decode_chunk(chunk) == []

    def test_usage_only(self):
        events = decode_chunk(usage_chunk(prompt_tokens=10, completion_tokens=2, cost=0.001))
        assert events == [UsageEvent(input_tokens=10, output_tokens=2, total_cost=0.001)]

    def test_usage_fields_default_to_zero(self):
        assert decode_chunk(usage_chunk()) == [UsageEvent(0, 0, 0.0)]
        assert decode_chunk(usage_chunk(prompt_tokens=None, cost=None)) == [UsageEvent(0, 0, 0.0)]

    def test_text_and_usage_in_one_chunk(self):
        chunk = text_chunk("bye")
        chunk["usage"] = {"prompt_tokens": 3, "completion_tokens": 1}
        events = decode_chunk(chunk)
        assert events == [TextEvent("bye"), UsageEvent(3, 1, 0)]

    def test_in_band_error_is_not_interpreted(self):
        chunk = {"error": {"code": 502, "message": "provider down"}, "choices": []}
        assert decode_chunk(chunk) == []

    def test_event_tags(self):
        assert TextEvent("x").type == "text"
        assert UsageEvent().type == "usage"


# ===========================================================================
# StreamDecoder
# ===========================================================================

class TestStreamDecoder:

    @pytest.mark.asyncio
    async def test_hi_then_usage(self):
        body = sse(text_chunk("Hi"), usage_chunk(prompt_tokens=10, completion_tokens=2, cost=0.001))
        decoder, client, seen = _decoder(body)
        async with client:
            events = await collect(decoder.stream(REQUEST))
        assert events == [TextEvent("Hi"), UsageEvent(10, 2, 0.001)]
        assert seen[0].url.path == "/v1/chat/completions"

    @pytest.mark.asyncio
    async def test_order_matches_arrival_without_coalescing(self):
        pieces = ["def ", "main", "(", ")", ":"]
        decoder, client, _ = _decoder(sse(*[text_chunk(p) for p in pieces]))
        async with client:
            events = await collect(decoder.stream(REQUEST))
        assert [e.text for e in events] == pieces

    @pytest.mark.asyncio
    async def test_stops_at_done(self):
        body = sse(text_chunk("a")) + b"data: " + b'{"choices":[{"delta":{"content":"late"}}]}\n\n'
        decoder, client, _ = _decoder(body)
        async with client:
            events = await collect(decoder.stream(REQUEST))
        assert events == [TextEvent("a")]

    @pytest.mark.asyncio
    async def test_ignores_comments_and_blank_data(self):
        body = b": keep-alive\n\nevent: message\ndata:\n\n" + sse(text_chunk("ok"))
        decoder, client, _ = _decoder(body)
        async with client:
            events = await collect(decoder.stream(REQUEST))
        assert events == [TextEvent("ok")]

    @pytest.mark.asyncio
    async def test_stream_without_done_ends_cleanly(self):
        decoder, client, _ = _decoder(sse(text_chunk("a"), text_chunk("b"), done=False))
        async with client:
            events = await collect(decoder.stream(REQUEST))
        assert [e.text for e in events] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_request_body_is_wire_request(self):
        decoder, client, seen = _decoder(sse())
        async with client:
            await collect(decoder.stream(REQUEST))
        body = json.loads(seen[0].content)
        assert body["model"] == "openai/gpt-4o"
        assert body["stream"] is True
        assert body["stream_options"] == {"include_usage": True}
        assert "mem_clear" not in body


# ===========================================================================
# Failures
# ===========================================================================

class TestFailures:

    @pytest.mark.asyncio
    async def test_malformed_json_is_transport_failure(self):
        body = sse(text_chunk("a"), '{"choices": [', done=False)
        decoder, client, _ = _decoder(body)
        received = []
        async with client:
            with pytest.raises(TransportFailure):
                async for event in decoder.stream(REQUEST):
                    received.append(event)
        assert received == [TextEvent("a")]

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        decoder, client, _ = _decoder(b"rate limited", status=429)
        async with client:
            with pytest.raises(TransportFailure) as exc_info:
                await collect(decoder.stream(REQUEST))
        assert exc_info.value.status_code == 429
        assert "rate limited" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_network_error_mid_stream(self):
        class Broken(httpx.AsyncByteStream):
            async def __aiter__(self):
                yield sse(text_chunk("par"), done=False)
                raise httpx.RemoteProtocolError("peer closed connection")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=Broken())

        client = httpx.AsyncClient(base_url="https://apipie.ai/v1", transport=httpx.MockTransport(handler))
        decoder = StreamDecoder(client)
        received = []
        async with client:
            with pytest.raises(TransportFailure) as exc_info:
                async for event in decoder.stream(REQUEST):
                    received.append(event)
        assert received == [TextEvent("par")]
        assert isinstance(exc_info.value.__cause__, httpx.RemoteProtocolError)


# ===========================================================================
# Pull-based consumption
# ===========================================================================

class TestCancellation:

    @pytest.mark.asyncio
    async def test_early_close_closes_response(self):
        closed = []

        class Tracked(httpx.AsyncByteStream):
            async def __aiter__(self):
                for i in range(100):
                    yield sse(text_chunk(str(i)), done=False)

            async def aclose(self):
                closed.append(True)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=Tracked())

        client = httpx.AsyncClient(base_url="https://apipie.ai/v1", transport=httpx.MockTransport(handler))
        decoder = StreamDecoder(client)
        async with client:
            agen = decoder.stream(REQUEST)
            first = await agen.__anext__()
            await agen.aclose()
        assert first == TextEvent("0")
        assert closed == [True]
