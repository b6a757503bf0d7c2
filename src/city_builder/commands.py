"""Inbound command boundary: validate raw payloads into typed commands."""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from city_builder import catalog
from city_builder.models import Category, Footprint, GridPoint, Structure, StructureMetadata

logger = logging.getLogger("city_builder.commands")


class CityBuilderError(Exception):
    """Base error for the city builder."""


class CommandRejected(CityBuilderError):
    """Raised when an inbound payload is malformed or of an unknown type."""


class ActionType(str, Enum):
    ARRIVED = "ARRIVED"
    BUILD_COMPLETE = "BUILD_COMPLETE"


class _Command(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


def _to_grid_point(value: Any) -> GridPoint:
    """Accept ``[x, z]``, ``[x, y, z]`` or ``{"x", "z"}``."""
    if isinstance(value, GridPoint):
        return value
    try:
        if isinstance(value, dict):
            return GridPoint.of(float(value["x"]), float(value["z"]))
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return GridPoint.of(float(value[0]), float(value[1]))
        if isinstance(value, (list, tuple)) and len(value) == 3:
            return GridPoint.of(float(value[0]), float(value[2]))
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"invalid position: {exc}") from exc
    raise ValueError("position must be [x, z], [x, y, z] or an object with x and z")


class ActionComplete(_Command):
    type: Literal["ACTION_COMPLETE"]
    action_type: ActionType
    ticket_id: str | None = None
    position: list[float] | None = None

    @field_validator("position")
    @classmethod
    def _position_shape(cls, value: list[float] | None) -> list[float] | None:
        if value is not None and len(value) not in (2, 3):
            raise ValueError("position must have 2 or 3 coordinates")
        return value


class SetSpeed(_Command):
    type: Literal["SET_SPEED"]
    speed: float = Field(gt=0)


class RequestAiAction(_Command):
    type: Literal["REQUEST_AI_ACTION"]


class Reset(_Command):
    type: Literal["RESET"]


class RequestState(_Command):
    type: Literal["REQUEST_STATE"]


class MetadataPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    purpose: str = ""
    population: int = 0
    capacity: str = ""
    built_on_day: int = 1
    built_at: datetime | None = None


class StructurePayload(BaseModel):
    """A structure as reported by an external observer."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    category: Category
    model_key: str = ""
    position: Any
    orientation: int = 0
    footprint: tuple[int, int] = (1, 1)
    scale: float = 2.0
    metadata: MetadataPayload | None = None

    @field_validator("position")
    @classmethod
    def _position(cls, value: Any) -> GridPoint:
        return _to_grid_point(value)

    @field_validator("footprint")
    @classmethod
    def _footprint(cls, value: tuple[int, int]) -> tuple[int, int]:
        if value[0] < 1 or value[1] < 1:
            raise ValueError("footprint dimensions must be positive")
        return value

    def to_structure(self) -> Structure:
        model_key = self.model_key or catalog.MODEL_VARIANTS[self.category][0].model_key
        metadata = None
        if self.metadata is not None:
            metadata = StructureMetadata(
                name=self.metadata.name,
                purpose=self.metadata.purpose,
                population=self.metadata.population,
                capacity=self.metadata.capacity,
                category=self.category,
                built_on_day=self.metadata.built_on_day,
                built_at=self.metadata.built_at,
            )
        return Structure(
            id=self.id,
            category=self.category,
            model_key=model_key,
            position=self.position,
            orientation=self.orientation,
            footprint=Footprint(width=self.footprint[0], depth=self.footprint[1]),
            metadata=metadata,
            scale=self.scale,
        )


class SyncState(_Command):
    type: Literal["SYNC_STATE"]
    structures: list[StructurePayload] = Field(default_factory=list)

    def to_structures(self) -> list[Structure]:
        return [payload.to_structure() for payload in self.structures]


Command = Annotated[
    Union[ActionComplete, SetSpeed, RequestAiAction, Reset, RequestState, SyncState],
    Field(discriminator="type"),
]

_COMMAND_ADAPTER: TypeAdapter[Command] = TypeAdapter(Command)


def validate_command(payload: Any) -> Command:
    """Validate a raw payload, raising ``CommandRejected`` on any problem."""
    try:
        return _COMMAND_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise CommandRejected(f"{exc.error_count()} validation error(s): {exc.errors()[0]['msg']}") from exc


def parse_command(payload: Any) -> Command | None:
    """Boundary helper: return the command, or ``None`` after logging a warning."""
    try:
        return validate_command(payload)
    except CommandRejected as exc:
        command_type = payload.get("type") if isinstance(payload, dict) else None
        logger.warning("command_rejected", extra={"command_type": command_type, "error": str(exc)})
        return None
