"""
apipie.adapters — Adapter factory and building blocks.

Provides a ``create_adapter()`` factory that returns a configured
``ApipieAdapter``, built from an explicit ``AdapterConfig`` or from the
``APIPIE_*`` environment variables.

Building blocks:
    - ``ModelCatalog``   — catalog fetch + descriptor resolution
    - ``build_request``  — wire-request shaping with cache hints
    - ``StreamDecoder``  — SSE chunks → normalised events
    - ``SessionMemory``  — server-side memory clearing
"""

from __future__ import annotations

from typing import Any

import httpx

from apipie.adapters.apipie import ApipieAdapter
from apipie.adapters.base import BaseAdapter
from apipie.adapters.catalog import ModelCatalog
from apipie.adapters.memory import SessionMemory
from apipie.adapters.shaper import build_request, extract_messages
from apipie.adapters.stream import StreamDecoder
from apipie.core.models import AdapterConfig


def create_adapter(
    config: AdapterConfig | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    **overrides: Any,
) -> ApipieAdapter:
    """
    Factory function that returns a ready-to-use adapter.

    Parameters
    ----------
    config :
        Explicit configuration.  When omitted it is read from the
        environment via ``AdapterConfig.from_env``.
    transport :
        Optional httpx transport (e.g. ``httpx.MockTransport`` in tests).
    overrides :
        Field overrides applied on top of the environment when *config*
        is not given.
    """
    if config is None:
        config = AdapterConfig.from_env(**overrides)
    elif overrides:
        raise TypeError("Pass either a config or field overrides, not both")
    return ApipieAdapter(config, transport=transport)


__all__ = [
    "ApipieAdapter",
    "BaseAdapter",
    "ModelCatalog",
    "SessionMemory",
    "StreamDecoder",
    "build_request",
    "create_adapter",
    "extract_messages",
]
