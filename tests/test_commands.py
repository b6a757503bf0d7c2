from __future__ import annotations

import logging

import pytest

from city_builder.commands import (
    ActionComplete,
    ActionType,
    CityBuilderError,
    CommandRejected,
    RequestAiAction,
    SetSpeed,
    SyncState,
    parse_command,
    validate_command,
)
from city_builder.models import Category, GridPoint


def test_action_complete_is_parsed_with_optional_fields() -> None:
    command = validate_command({"type": "ACTION_COMPLETE", "action_type": "BUILD_COMPLETE", "ticket_id": "abc"})

    assert isinstance(command, ActionComplete)
    assert command.action_type is ActionType.BUILD_COMPLETE
    assert command.ticket_id == "abc"
    assert command.position is None


def test_simple_commands_are_discriminated_by_type() -> None:
    assert isinstance(validate_command({"type": "REQUEST_AI_ACTION"}), RequestAiAction)
    speed = validate_command({"type": "SET_SPEED", "speed": "2.5"})
    assert isinstance(speed, SetSpeed) and speed.speed == 2.5


def test_sync_state_converts_structures() -> None:
    command = validate_command(
        {
            "type": "SYNC_STATE",
            "structures": [
                {"id": "a", "category": "power", "model_key": "solarpanel", "position": [24, 0, 24]},
                {"id": "b", "category": "residential", "position": {"x": 40, "z": -8}, "footprint": [2, 1]},
            ],
        }
    )

    assert isinstance(command, SyncState)
    power, home = command.to_structures()
    assert power.category is Category.POWER
    assert power.position == GridPoint(24, 24)
    assert home.position == GridPoint(40, -8)
    assert home.model_key == "building_A"
    assert list(home.cells()) == [(40, -8), (41, -8)]


@pytest.mark.parametrize(
    "payload",
    [
        {"type": "LAUNCH_ROCKET"},
        {"speed": 2},
        {"type": "SET_SPEED"},
        {"type": "SET_SPEED", "speed": -1},
        {"type": "ACTION_COMPLETE", "action_type": "TELEPORTED"},
        {"type": "ACTION_COMPLETE", "action_type": "ARRIVED", "position": [1]},
        {"type": "SYNC_STATE", "structures": [{"id": "x", "category": "castle", "position": [0, 0]}]},
        {"type": "SYNC_STATE", "structures": [{"id": "x", "category": "park", "position": "here"}]},
        "RESET",
        None,
    ],
)
def test_malformed_payloads_are_rejected(payload) -> None:
    with pytest.raises(CommandRejected):
        validate_command(payload)


def test_parse_command_logs_and_returns_none(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="city_builder.commands"):
        assert parse_command({"type": "LAUNCH_ROCKET"}) is None

    assert "command_rejected" in caplog.text
    assert issubclass(CommandRejected, CityBuilderError)
