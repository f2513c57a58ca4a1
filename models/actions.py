"""Action request and result models for the session engine."""

from enum import Enum

from pydantic import BaseModel

from models.combat import Position


class SyncAction(str, Enum):
    """Actions a combat client can send with a sync request."""
    MOVE = "move"
    SHOOT = "shoot"
    RELOAD = "reload"


class AdminAction(str, Enum):
    """Privileged combat-session mutations."""
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    SKIP_ROOM = "skip_room"
    ADJUST_OXYGEN = "adjust_oxygen"
    REVEAL_CLUE = "reveal_clue"
    FORCE_VICTORY = "force_victory"
    FORCE_DEFEAT = "force_defeat"
    DELETE_SESSION = "delete_session"


class StageResult(BaseModel):
    """Outcome of submitting an answer for a stage or question."""
    correct: bool
    completed: bool
    attempts: int
    max_attempts: int | None = None
    score_delta: int = 0            # Change in the player's total score
    score: int = 0                  # Score now held for this stage
    feedback: str = ""


class ShotResult(BaseModel):
    hit: bool
    damage: int = 0
    target_id: str | None = None
    killed: bool = False
    boss_phase: int | None = None


class ClueResult(BaseModel):
    correct: bool
    attempts: int
    max_attempts: int
    clue_solved: bool
    oxygen_bonus_ms: int = 0


class SyncRequest(BaseModel):
    """Body of a combat sync call."""
    action: SyncAction
    position: Position | None = None    # For move
    target_x: float | None = None       # For shoot
    target_y: float | None = None


class AdminActionRequest(BaseModel):
    action: AdminAction
    seconds: float | None = None        # For adjust_oxygen
