"""apipie.agent — Session-level helpers layered on the adapter."""

__all__ = ["UsageTracker"]

from apipie.agent.usage_tracker import UsageTracker
