"""
apipie.core.models — Pydantic schemas and event types for the APIpie adapter.

Covers the three shapes that cross the adapter boundary:

* catalog records returned by ``GET /models`` (``ModelDescriptor``),
* the caller-supplied configuration and conversation (``AdapterConfig``,
  ``ConversationMessage``) and the body sent to ``POST /chat/completions``
  (``WireRequest``),
* the normalised stream events handed back to the caller
  (``TextEvent`` / ``UsageEvent``).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)


DEFAULT_BASE_URL = "https://apipie.ai/v1"
DEFAULT_MODEL_ID = "openai/gpt-4o"


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class IntegrityLevel(IntEnum):
    """Opaque routing parameter forwarded as ``integrity``."""
    STANDARD = 11
    ENHANCED = 12


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class ModelDescriptor(BaseModel):
    """
    A single routable model from the APIpie catalog.

    Built straight from the JSON record; wire names are accepted as aliases.
    ``available`` / ``enabled`` arrive as ``0``/``1`` and are coerced to bool.
    """
    model_config = ConfigDict(
        frozen=True, populate_by_name=True, extra="ignore", protected_namespaces=()
    )

    provider: str = ""
    model_id: str = Field(default="", validation_alias=AliasChoices("id", "model_id"))
    route_id: str = Field(default="", validation_alias=AliasChoices("route", "route_id"))
    description: str = ""
    max_tokens: int = 0
    max_response_tokens: int = 0
    input_cost: float = 0.0
    output_cost: float = 0.0
    available: bool = False
    enabled: bool = True
    model_type: str = Field(
        default="", validation_alias=AliasChoices("type", "modelType", "model_type")
    )
    subtype: str = ""

    @field_validator(
        "provider", "model_id", "route_id", "description", "model_type", "subtype",
        mode="before",
    )
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator(
        "max_tokens", "max_response_tokens", "input_cost", "output_cost",
        mode="before",
    )
    @classmethod
    def _none_to_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("available", "enabled", mode="before")
    @classmethod
    def _flag(cls, v: Any) -> Any:
        if v is None:
            return False
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return v != 0
        return v

    @computed_field  # type: ignore[prop-decorator]
    @property
    def full_id(self) -> str:
        return f"{self.provider}/{self.model_id}"


class ModelInfo(BaseModel):
    """Model metadata exposed to the rest of the assistant."""
    max_tokens: int = 128_000
    context_window: int = 8192
    supports_images: bool = False
    supports_prompt_cache: bool = True
    input_price: float = 0.0
    output_price: float = 0.0
    description: str | None = None


class ModelSpec(BaseModel):
    """Result of ``get_model()``: the routable id plus its ``ModelInfo``."""
    id: str
    info: ModelInfo


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

Role = Literal["system", "user", "assistant", "tool"]


class ConversationMessage(BaseModel):
    """One message of the conversation history, in OpenAI chat shape."""
    role: Role
    content: str | list[dict[str, Any]] | None = None
    name: str | None = None
    tool_call_id: str | None = None
    tool_calls: list[dict[str, Any]] | None = None


class WireRequest(BaseModel):
    """Body of ``POST /chat/completions`` (OpenAI schema + APIpie extensions)."""
    model: str
    messages: list[dict[str, Any]]
    temperature: float = 0
    stream: bool = True
    stream_options: dict[str, Any] = Field(
        default_factory=lambda: {"include_usage": True}
    )
    # APIpie session memory
    memory: bool | None = None
    mem_session: str | None = None
    mem_expire: int | None = None
    mem_msgs: int | None = None
    mem_clear: int | None = None
    # APIpie routing
    integrity: int = IntegrityLevel.STANDARD
    transforms: list[str] | None = None
    response_format: dict[str, Any] | None = None

    def to_body(self) -> dict[str, Any]:
        """JSON body with unset optional fields dropped."""
        return self.model_dump(mode="json", exclude_none=True)


# ---------------------------------------------------------------------------
# Normalised stream events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TextEvent:
    """A text delta, exactly as received from one upstream chunk."""
    text: str
    type: Literal["text"] = "text"


@dataclass(frozen=True)
class UsageEvent:
    """Token / cost accounting reported by the upstream (absent fields are 0)."""
    input_tokens: int = 0
    output_tokens: int = 0
    total_cost: float = 0.0
    type: Literal["usage"] = "usage"


NormalizedEvent = TextEvent | UsageEvent


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

def _env_bool(name: str) -> bool | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    return raw.strip().lower() in ("1", "true", "yes", "on")


class AdapterConfig(BaseModel):
    """
    Caller-supplied settings for one adapter instance.

    Validated once at construction and read-only afterwards.
    ``prompt_caching`` selects between the cache-annotated request variant
    (default) and the plain one.
    """
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    api_key: str = ""
    model_id: str = DEFAULT_MODEL_ID
    base_url: str = DEFAULT_BASE_URL

    # Session memory
    memory_enabled: bool = True
    memory_session_id: str = "default-1"
    memory_expire_minutes: int = Field(default=15, ge=1)
    memory_max_messages: int = Field(default=6, ge=1)
    clear_memory_on_next_request: bool = False

    integrity: IntegrityLevel = IntegrityLevel.STANDARD

    # Request shaping
    prompt_caching: bool = True
    middle_out: bool = True
    response_format: dict[str, Any] | None = None
    catalog_subtypes: tuple[str, ...] = ()

    # HTTP
    connect_timeout: float = Field(default=10.0, gt=0)
    read_timeout: float = Field(default=180.0, gt=0)

    @field_validator("model_id")
    @classmethod
    def _check_model_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("model id must not be empty")
        return v

    @field_validator("integrity", mode="before")
    @classmethod
    def _integrity_from_str(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip().isdigit():
            return int(v)
        return v

    @field_validator("base_url")
    @classmethod
    def _strip_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @classmethod
    def from_env(cls, **overrides: Any) -> "AdapterConfig":
        """
        Build a config from ``APIPIE_*`` environment variables.

        Resolution order (highest priority first):
          1. Explicit ``overrides`` keyword arguments
          2. Environment variables
          3. Built-in defaults
        """
        values: dict[str, Any] = {}
        env_map = {
            "api_key": "APIPIE_API_KEY",
            "model_id": "APIPIE_MODEL",
            "base_url": "APIPIE_BASE_URL",
            "memory_session_id": "APIPIE_MEMORY_SESSION",
            "memory_expire_minutes": "APIPIE_MEMORY_EXPIRE",
            "memory_max_messages": "APIPIE_MEMORY_MSGS",
            "integrity": "APIPIE_INTEGRITY",
        }
        for field_name, env_name in env_map.items():
            raw = os.getenv(env_name)
            if raw:
                values[field_name] = raw

        for field_name, env_name in (
            ("memory_enabled", "APIPIE_MEMORY"),
            ("prompt_caching", "APIPIE_PROMPT_CACHING"),
        ):
            flag = _env_bool(env_name)
            if flag is not None:
                values[field_name] = flag

        values.update(overrides)
        return cls(**values)
