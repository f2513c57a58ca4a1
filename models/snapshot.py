"""Versioned document holding the full session registry."""

from datetime import datetime
from typing import Annotated, Union

from pydantic import BaseModel, Field

from models.combat import CombatSession
from models.session import GameSession

AnySession = Annotated[Union[GameSession, CombatSession], Field(discriminator="kind")]


class RegistrySnapshot(BaseModel):
    version: int
    saved_at: datetime
    sessions: list[AnySession] = []


class SessionExport(BaseModel):
    """An owner's sessions, as handed out by the export endpoint."""
    exported_at: datetime
    owner_id: str
    sessions: list[AnySession] = []
