"""
apipie.cli — Developer command line for exercising the adapter.

Usage:
    apipie chat "prompt"           Stream a completion to the terminal
    apipie model [MODEL_ID]        Resolve a model and show its metadata
    apipie clear-memory [SESSION]  Clear server-side session memory

Settings come from ``APIPIE_*`` environment variables (a ``.env`` file in
the working directory is honoured).
"""

from __future__ import annotations

import asyncio
import logging
import sys

import click
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from apipie import __version__
from apipie.adapters import create_adapter
from apipie.core.errors import ApipieError
from apipie.core.models import TextEvent, UsageEvent

console = Console()


def _setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s — %(message)s",
        datefmt="%H:%M:%S",
    )


def _fail(exc: ApipieError | ValidationError) -> None:
    console.print(f"[red]✗[/red] {escape(str(exc))}")
    sys.exit(1)


@click.group()
@click.version_option(__version__, prog_name="apipie")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """APIpie streaming adapter — developer tools."""
    load_dotenv()
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# chat
# ---------------------------------------------------------------------------

@main.command()
@click.argument("prompt")
@click.option("-m", "--model", "model_id", default=None, help="Model id (provider/model).")
@click.option("-s", "--system", "system_prompt", default="You are a helpful assistant.",
              help="System prompt.")
@click.option("--no-memory", is_flag=True, help="Disable APIpie session memory.")
def chat(prompt: str, model_id: str | None, system_prompt: str, no_memory: bool) -> None:
    """Stream a single-turn completion."""
    overrides: dict = {}
    if model_id:
        overrides["model_id"] = model_id
    if no_memory:
        overrides["memory_enabled"] = False

    async def _run() -> None:
        async with create_adapter(**overrides) as adapter:
            async for event in adapter.create_message(
                system_prompt, [{"role": "user", "content": prompt}]
            ):
                if isinstance(event, TextEvent):
                    console.print(event.text, end="", markup=False, highlight=False)
                elif isinstance(event, UsageEvent):
                    console.print()
                    console.print(
                        f"[dim]{event.input_tokens:,} in · {event.output_tokens:,} out · "
                        f"{adapter.usage.format_cost(event.total_cost)}[/dim]"
                    )

    try:
        asyncio.run(_run())
    except (ApipieError, ValidationError) as exc:
        _fail(exc)


# ---------------------------------------------------------------------------
# model
# ---------------------------------------------------------------------------

@main.command()
@click.argument("model_id", required=False)
def model(model_id: str | None) -> None:
    """Resolve a model against the catalog and show its metadata."""
    overrides = {"model_id": model_id} if model_id else {}

    async def _run():
        async with create_adapter(**overrides) as adapter:
            descriptor = await adapter.resolve_model()
            return descriptor, adapter.get_model()

    try:
        descriptor, spec = asyncio.run(_run())
    except (ApipieError, ValidationError) as exc:
        _fail(exc)
        return

    table = Table(title=f"Model — {descriptor.full_id}")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Route", spec.id)
    table.add_row("Max tokens", f"{spec.info.max_tokens:,}")
    table.add_row("Context window", f"{spec.info.context_window:,}")
    table.add_row("Input price", str(spec.info.input_price))
    table.add_row("Output price", str(spec.info.output_price))
    table.add_row("Prompt cache", "yes" if spec.info.supports_prompt_cache else "no")
    table.add_row("Description", spec.info.description or "—")
    console.print(table)


# ---------------------------------------------------------------------------
# clear-memory
# ---------------------------------------------------------------------------

@main.command("clear-memory")
@click.argument("session_id", required=False)
def clear_memory(session_id: str | None) -> None:
    """Clear APIpie server-side memory for a session."""

    async def _run() -> str:
        async with create_adapter() as adapter:
            sid = session_id or adapter.config.memory_session_id
            await adapter.clear_memory(sid)
            return sid

    try:
        sid = asyncio.run(_run())
    except (ApipieError, ValidationError) as exc:
        _fail(exc)
        return
    console.print(f"[green]✓[/green] Cleared memory for session [bold]{sid}[/bold]")


if __name__ == "__main__":
    main()
