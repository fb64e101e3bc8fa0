"""
apipie.agent.usage_tracker — Per-session token and cost totals.

APIpie reports the monetary cost of each request itself, so the tracker only
accumulates what the stream delivers in its ``UsageEvent``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from apipie.core.models import UsageEvent


@dataclass
class UsageTracker:
    """
    Tracks cumulative token usage and cost for a session.
    """
    model: str = ""
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost_usd: float = 0.0
    turn_costs: list[float] = field(default_factory=list)

    def add_usage(self, event: UsageEvent) -> float:
        """Record one usage event and return its cost."""
        self.total_input_tokens += event.input_tokens
        self.total_output_tokens += event.output_tokens
        self.total_cost_usd += event.total_cost
        self.turn_costs.append(event.total_cost)
        return event.total_cost

    @property
    def turns(self) -> int:
        return len(self.turn_costs)

    def format_cost(self, turn_cost: float | None = None) -> str:
        """Format cost display string."""
        if turn_cost is not None and turn_cost > 0:
            return f"Turn: ${turn_cost:.4f} | Session: ${self.total_cost_usd:.4f}"
        return f"Session cost: ${self.total_cost_usd:.4f}"

    def format_summary(self) -> str:
        """Format a full session cost summary."""
        lines = [
            "Session Cost Summary",
            f"  Model:          {self.model or '-'}",
            f"  Input tokens:   {self.total_input_tokens:,}",
            f"  Output tokens:  {self.total_output_tokens:,}",
            f"  Turns:          {self.turns}",
            f"  Total cost:     ${self.total_cost_usd:.4f}",
        ]
        return "\n".join(lines)
