from __future__ import annotations

import importlib
import random

import pytest

from city_builder.agent import CityAgent
from city_builder.cli import CliCommandHandler
from city_builder.config import Settings
from city_builder.models import Category


def test_console_entrypoint_exposes_app() -> None:
    pytest.importorskip("typer")

    module = importlib.import_module("city_builder.main")

    assert hasattr(module, "app")
    assert module.app is not None


def test_decide_and_simulate_commands_run() -> None:
    testing = pytest.importorskip("typer.testing")
    module = importlib.import_module("city_builder.main")
    runner = testing.CliRunner()

    decided = runner.invoke(module.app, ["decide"])
    simulated = runner.invoke(module.app, ["simulate", "--builds", "3", "--seed", "7"])

    assert decided.exit_code == 0
    assert "residential" in decided.output
    assert simulated.exit_code == 0
    assert "BUILD_COMPLETED" in simulated.output


def test_cli_handler_is_sync_friendly() -> None:
    handler = CliCommandHandler(CityAgent.from_settings(Settings(), rng=random.Random(5)))

    assert handler.decide().category is Category.RESIDENTIAL
    assert len(handler.simulate(2)) == 2
    assert handler.send({"type": "REQUEST_STATE"})["payload"]["total_structure_count"] == 11
    assert handler.send({"type": "NOPE"}) is None
    assert handler.recent_events(1)
