"""
apipie.adapters.memory — Out-of-band control of APIpie session memory.
"""

from __future__ import annotations

import logging

import httpx

from apipie.core.errors import MemoryClearFailed, TransportFailure

logger = logging.getLogger("apipie.adapters.memory")

# No completion content is needed, so any cheap routable model will do.
CLEAR_MEMORY_MODEL = "openai/gpt-4o"


class SessionMemory:
    """Clears server-side conversational memory keyed by session id."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def clear(self, session_id: str) -> None:
        """
        Ask APIpie to discard stored memory for *session_id*.

        Raises ``MemoryClearFailed`` on a non-success status.  Not retried.
        """
        body = {
            "memory": True,
            "mem_clear": 1,
            "mem_session": session_id,
            "model": CLEAR_MEMORY_MODEL,
            "messages": [{"role": "user", "content": "clear"}],
        }
        logger.info("Clearing APIpie memory for session %s", session_id)
        try:
            resp = await self._client.post("/chat/completions", json=body)
        except httpx.HTTPError as exc:
            raise TransportFailure(f"Clear-memory request failed: {exc}") from exc

        if resp.is_error:
            logger.error(
                "Clear memory failed for session %s: HTTP %d", session_id, resp.status_code
            )
            raise MemoryClearFailed(resp.status_code, resp.text)
        logger.debug("Clear memory response: %d", resp.status_code)
