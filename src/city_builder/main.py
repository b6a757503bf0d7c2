"""CLI startup entrypoint for City Builder."""

from __future__ import annotations

import json
import random

import typer
from rich import print

from city_builder.agent import CityAgent
from city_builder.cli import CliCommandHandler
from city_builder.config import settings
from city_builder.events import to_message
from city_builder.telemetry import configure_logging

app = typer.Typer(help="City Builder autonomous planner")


def _build_cli(seed: int | None = None, event_log: str | None = None) -> tuple[CityAgent, CliCommandHandler]:
    configure_logging(settings.log_level)
    rng = random.Random(seed if seed is not None else settings.rng_seed)
    agent = CityAgent.from_settings(settings, rng=rng, event_log_path=event_log)
    return agent, CliCommandHandler(agent)


@app.command()
def start() -> None:
    """Show runtime configuration."""
    print(
        {
            "app_name": settings.app_name,
            "placement_strategy": settings.placement_strategy,
            "tick_base_period_seconds": settings.tick_base_period_seconds,
            "build_duration_seconds": settings.build_duration_seconds,
            "narrative": "llm" if settings.llm_api_key else "fallback",
            "event_log_path": settings.event_log_path,
        }
    )


@app.command()
def decide() -> None:
    """Print the rule-based decision for a fresh world."""
    _, cli_handler = _build_cli()
    decision = cli_handler.decide()
    print({"category": decision.category.value, "reason": decision.reason, "rule": decision.rule})


@app.command()
def simulate(
    builds: int = typer.Option(10, help="How many constructions to complete"),
    seed: int = typer.Option(None, help="RNG seed for deterministic layouts"),
    event_log: str = typer.Option(None, help="Append every event to this JSONL file"),
) -> None:
    """Step and complete builds in-process, printing each event."""
    agent, cli_handler = _build_cli(seed=seed, event_log=event_log)
    agent.broadcaster.subscribe(lambda event: print(to_message(event)))
    placed = cli_handler.simulate(builds)
    print({"placed": len(placed), "resource_totals": agent.world.ledger.totals()})
    if len(placed) < builds:
        raise typer.Exit(code=1)


@app.command()
def run(
    seconds: float = typer.Option(30.0, help="Wall-clock seconds to run the loop"),
    speed: float = typer.Option(1.0, help="Speed multiplier, clamped to the configured bounds"),
    seed: int = typer.Option(None, help="RNG seed for deterministic layouts"),
) -> None:
    """Run the autonomous build loop for a fixed duration."""
    agent, cli_handler = _build_cli(seed=seed)
    agent.broadcaster.subscribe(lambda event: print(to_message(event)))
    snapshot = cli_handler.run_for(seconds, speed=speed)
    print({"total_structure_count": snapshot["total_structure_count"], "day": snapshot["day"]})


@app.command()
def snapshot(indent: int = typer.Option(2, help="JSON indentation")) -> None:
    """Print the resync snapshot of a fresh world."""
    _, cli_handler = _build_cli()
    print(json.dumps(cli_handler.snapshot(), indent=indent, default=str))


if __name__ == "__main__":
    app()
