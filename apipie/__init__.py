"""
apipie — Streaming provider adapter for the APIpie model-routing API.

Resolves a requested model against the APIpie catalog, shapes chat requests
(with prompt-cache hints and session memory), and decodes the upstream SSE
stream into normalised text / usage events.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("apipie-adapter")
except PackageNotFoundError:
    # Running from an uninstalled checkout
    __version__ = "0.0.0"
