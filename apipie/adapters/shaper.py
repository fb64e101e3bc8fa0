"""
apipie.adapters.shaper — Build the ``POST /chat/completions`` body.

Converts a system prompt plus conversation history into the OpenAI-compatible
wire format and attaches the APIpie extension fields (session memory,
integrity, transforms).

With prompt caching enabled, the highest-reuse segments of a long coding
session are marked with ``cache_control: {"type": "ephemeral"}``:

* the system prompt,
* the last text segment of the two most recent user messages,
* every tool result that carries file contents.

Hints are attached to an existing segment; no messages are added.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Sequence
from typing import Any

from apipie.core.errors import InvalidDescriptor
from apipie.core.models import (
    AdapterConfig,
    ConversationMessage,
    ModelDescriptor,
    WireRequest,
)

logger = logging.getLogger("apipie.adapters.shaper")

CACHE_CONTROL: dict[str, str] = {"type": "ephemeral"}

# Tool results that embed a file body, as produced by the editor tools.
FILE_CONTENT_MARKERS = ("<file_content", "<final_file_content")

# Number of trailing user messages that receive a cache hint.
CACHED_USER_TURNS = 2


def build_request(
    system_prompt: str,
    messages: Sequence[ConversationMessage],
    config: AdapterConfig,
    descriptor: ModelDescriptor | None,
    *,
    clear_memory: bool = False,
) -> WireRequest:
    """
    Shape one streaming chat request.

    Raises ``InvalidDescriptor`` when called before a model was resolved.
    ``clear_memory`` adds ``mem_clear`` to this request only.
    """
    if descriptor is None:
        raise InvalidDescriptor("Cannot build a request before the model is resolved")

    wire_messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    wire_messages.extend(_convert_message(m) for m in messages)

    hints = 0
    if config.prompt_caching:
        hints = _apply_cache_hints(wire_messages)

    request = WireRequest(
        model=descriptor.full_id,
        messages=wire_messages,
        temperature=0,
        integrity=int(config.integrity),
    )

    if config.memory_enabled:
        request.memory = True
        request.mem_session = config.memory_session_id
        request.mem_expire = config.memory_expire_minutes
        request.mem_msgs = config.memory_max_messages
        if clear_memory:
            request.mem_clear = 1

    if config.prompt_caching:
        if config.middle_out:
            request.transforms = ["middle-out"]
        if config.response_format is not None:
            request.response_format = dict(config.response_format)

    logger.debug(
        "APIpie request: model=%s messages=%d cache_hints=%d memory=%s clear=%s",
        request.model,
        len(wire_messages),
        hints,
        config.memory_enabled,
        request.mem_clear is not None,
    )
    return request


def extract_messages(
    request: WireRequest,
    *,
    include_system: bool = False,
) -> list[ConversationMessage]:
    """
    Recover the conversation carried by *request*, with cache hints removed.

    The leading system prompt is dropped unless ``include_system`` is set.
    A content list reduced to a single text part comes back as plain text.
    """
    raw = request.messages if include_system else request.messages[1:]
    out: list[ConversationMessage] = []
    for entry in raw:
        content = entry.get("content")
        if isinstance(content, list):
            parts = [
                {k: v for k, v in part.items() if k != "cache_control"}
                for part in content
            ]
            if len(parts) == 1 and parts[0].get("type") == "text":
                content = parts[0].get("text", "")
            else:
                content = parts
        out.append(
            ConversationMessage(
                role=entry["role"],
                content=content,
                name=entry.get("name"),
                tool_call_id=entry.get("tool_call_id"),
                tool_calls=entry.get("tool_calls"),
            )
        )
    return out


# ---------------------------------------------------------------------------
# Message conversion
# ---------------------------------------------------------------------------

def _convert_message(msg: ConversationMessage) -> dict[str, Any]:
    """Convert a ConversationMessage to a plain dict for the API."""
    entry: dict[str, Any] = {"role": msg.role}
    entry["content"] = _convert_content(msg)
    if msg.name:
        entry["name"] = msg.name
    if msg.tool_call_id:
        entry["tool_call_id"] = msg.tool_call_id
    if msg.tool_calls:
        entry["tool_calls"] = copy.deepcopy(msg.tool_calls)
    return entry


def _convert_content(msg: ConversationMessage) -> str | list[dict[str, Any]] | None:
    content = msg.content
    if content is None:
        # Assistant turns that only call tools carry no content.
        return None if msg.tool_calls else ""
    if isinstance(content, str):
        return content

    parts = copy.deepcopy(content)
    text_only = all(p.get("type") == "text" for p in parts)
    if text_only and msg.role in ("system", "assistant"):
        return "\n".join(p.get("text", "") for p in parts)
    return parts


# ---------------------------------------------------------------------------
# Cache hints
# ---------------------------------------------------------------------------

def _apply_cache_hints(wire_messages: list[dict[str, Any]]) -> int:
    """Mark cacheable segments in place; returns the number of hints added."""
    hints = 0
    if _mark_last_text(wire_messages[0]):
        hints += 1

    user_indices = [i for i, m in enumerate(wire_messages) if m["role"] == "user"]
    for i in user_indices[-CACHED_USER_TURNS:]:
        if _mark_last_text(wire_messages[i]):
            hints += 1

    for m in wire_messages:
        if m["role"] == "tool" and _has_file_content(m) and _mark_last_text(m):
            hints += 1
    return hints


def _mark_last_text(entry: dict[str, Any]) -> bool:
    """
    Attach ``cache_control`` to the last text segment of *entry*.

    Plain string content is promoted to a single text part.  Empty text is
    never marked.
    """
    content = entry.get("content")
    if isinstance(content, str):
        if not content:
            return False
        entry["content"] = [
            {"type": "text", "text": content, "cache_control": dict(CACHE_CONTROL)}
        ]
        return True
    if isinstance(content, list):
        for part in reversed(content):
            if part.get("type") == "text" and part.get("text"):
                part["cache_control"] = dict(CACHE_CONTROL)
                return True
    return False


def _has_file_content(entry: dict[str, Any]) -> bool:
    content = entry.get("content")
    if isinstance(content, str):
        texts = [content]
    elif isinstance(content, list):
        texts = [p.get("text", "") for p in content if p.get("type") == "text"]
    else:
        return False
    return any(marker in t for t in texts for marker in FILE_CONTENT_MARKERS)
