"""Escape-room session, player, and puzzle content models."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, field_validator

from engine.ciphers import MORSE_CODE


class SessionStatus(str, Enum):
    """Lifecycle of a session. Never regresses."""
    WAITING = "waiting"             # Created, nobody has joined
    ACTIVE = "active"               # First player joined, clock running
    COMPLETED = "completed"         # Ended by an administrator or by combat outcome


class PlayerStatus(str, Enum):
    """Progress of a single player. Forward only."""
    JOINED = "joined"
    SOLVING = "solving"
    COMPLETED = "completed"


class Stage(str, Enum):
    """The built-in sequential stages, in play order."""
    DECODE = "decode"               # Morse word
    TRANSLATE = "translate"         # Greek word meaning (multiple choice)
    SKILL = "skill"                 # Mini-game score
    BONUS = "bonus"                 # Two bonus questions


STAGE_ORDER: list[Stage] = [Stage.DECODE, Stage.TRANSLATE, Stage.SKILL, Stage.BONUS]


def check_morse_words(words: list[str] | None) -> list[str] | None:
    """Reject blank words and characters that have no Morse encoding."""
    if words is None:
        return None
    for word in words:
        if not word.strip():
            raise ValueError("Morse words must not be blank")
        unknown = sorted({ch for ch in word.upper() if ch not in MORSE_CODE and not ch.isspace()})
        if unknown:
            raise ValueError(f"No Morse code for {''.join(unknown)!r} in {word!r}")
    return words


class GreekWord(BaseModel):
    """A word the translate stage asks the player to interpret."""
    word: str
    meaning: str


class QuestionOption(BaseModel):
    text: str
    is_correct: bool = False


class _QuestionBase(BaseModel):
    id: str
    title: str = ""
    content: str = ""
    points: int = Field(default=100, ge=0)
    max_attempts: int | None = Field(default=None, gt=0)
    hints: list[str] = []


class TextQuestion(_QuestionBase):
    """Free-text answer compared case- and whitespace-insensitively."""
    type: Literal["text"] = "text"
    solution: str


class MultipleChoiceQuestion(_QuestionBase):
    """Answer must be the text of an option marked correct."""
    type: Literal["multiple-choice"] = "multiple-choice"
    options: list[QuestionOption]


class OpenResponseQuestion(_QuestionBase):
    """Any answer is accepted and earns full points."""
    type: Literal["open-response"] = "open-response"


Question = Annotated[
    Union[TextQuestion, MultipleChoiceQuestion, OpenResponseQuestion],
    Field(discriminator="type"),
]


class GamePhase(BaseModel):
    """An administrator-authored group of questions."""
    id: str
    name: str
    description: str = ""
    order: int = 0
    questions: list[Question] = []


class StageProgress(BaseModel):
    attempts: int = 0
    completed: bool = False


class QuestionProgress(BaseModel):
    attempts: int = 0
    completed: bool = False
    correct: bool = False
    score: int = 0


def _default_stages() -> dict[Stage, StageProgress]:
    return {stage: StageProgress() for stage in STAGE_ORDER}


class Player(BaseModel):
    """A participant in an escape-room session.

    ``total_score`` and ``status`` are derived by the engine after every
    mutation; they are stored only so snapshots are self-describing.
    """
    token: str
    name: str
    player_slot: int                # 0-based join order
    status: PlayerStatus = PlayerStatus.JOINED
    stages: dict[Stage, StageProgress] = Field(default_factory=_default_stages)
    skill_score: int = 0            # Submitted mini-game score
    bonus_q1_correct: bool = False
    bonus_q2_correct: bool = False
    morse_word: str                 # Assigned at join time
    greek_word_index: int           # Assigned at join time
    question_progress: dict[str, QuestionProgress] = {}
    total_score: int = 0

    @field_validator("stages")
    @classmethod
    def _fill_missing_stages(cls, value: dict[Stage, StageProgress]) -> dict[Stage, StageProgress]:
        for stage in STAGE_ORDER:
            value.setdefault(stage, StageProgress())
        return value


class GameSession(BaseModel):
    """The full state of one escape-room session."""
    kind: Literal["escape"] = "escape"
    id: str
    join_code: str
    owner_id: str
    players: list[Player] = []
    start_time: datetime | None = None
    oxygen_minutes: int = 120
    status: SessionStatus = SessionStatus.WAITING
    final_unlock_code: str | None = None
    created_at: datetime
    title: str | None = None
    description: str | None = None
    phases: list[GamePhase] = []
    custom_morse_words: list[str] | None = None
    custom_greek_words: list[GreekWord] | None = None
    custom_max_morse_attempts: int | None = None
    custom_max_meaning_attempts: int | None = None
    custom_oxygen_minutes: int | None = None

    @field_validator("custom_morse_words")
    @classmethod
    def _check_morse_words(cls, value: list[str] | None) -> list[str] | None:
        return check_morse_words(value)


class PuzzleOverrides(BaseModel):
    """Administrator overrides for a session's puzzle content.

    Only the fields actually present in a request are applied; sending an
    explicit ``null`` clears the override.
    """
    custom_morse_words: list[str] | None = None
    custom_greek_words: list[GreekWord] | None = None
    custom_max_morse_attempts: int | None = Field(default=None, gt=0, le=100)
    custom_max_meaning_attempts: int | None = Field(default=None, gt=0, le=100)
    custom_oxygen_minutes: int | None = Field(default=None, gt=0, le=24 * 60)
    phases: list[GamePhase] | None = None
    title: str | None = None
    description: str | None = None

    @field_validator("custom_morse_words")
    @classmethod
    def _check_morse_words(cls, value: list[str] | None) -> list[str] | None:
        return check_morse_words(value)
