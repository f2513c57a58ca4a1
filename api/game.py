"""Escape-room status, stage submission, and final escape endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from api.views import escape_status
from auth import get_player_token
from engine.lifecycle import format_sequence, utcnow
from engine.progress import (
    attempt_escape,
    submit_bonus_answers,
    submit_question_answer,
    submit_skill_score,
    submit_stage_answer,
)
from engine.store import SessionStore
from errors import InvalidInputError
from models.actions import StageResult
from models.session import GameSession, Stage

router = APIRouter()


class StageSubmission(BaseModel):
    """Request body for a stage. Which fields are needed depends on the stage."""
    answer: str | None = None           # decode, translate
    score: int | None = Field(default=None, ge=0)  # skill
    q1_correct: bool | None = None      # bonus
    q2_correct: bool | None = None


class QuestionSubmission(BaseModel):
    answer: str


class EscapeRequest(BaseModel):
    sequence: str


class EscapeResponse(BaseModel):
    success: bool
    message: str
    sequence: str | None = None


def _get_store(request: Request) -> SessionStore:
    """Get the session store from app state."""
    return request.app.state.store


def _require_escape(session) -> GameSession:
    if not isinstance(session, GameSession):
        raise InvalidInputError("This endpoint is for escape-room sessions")
    return session


@router.get("/status")
def get_status(request: Request, token: str = Depends(get_player_token)) -> dict:
    """The player's progress, puzzle prompts, and the shared clock."""
    store = _get_store(request)
    with store.player_transaction(token) as (player, session):
        return escape_status(_require_escape(session), player, utcnow())


@router.post("/stages/{stage}", response_model=StageResult)
def submit_stage(
    stage: Stage,
    body: StageSubmission,
    request: Request,
    token: str = Depends(get_player_token),
) -> StageResult:
    """Submit the player's work for one built-in stage.

    - decode / translate: ``answer``
    - skill: ``score``
    - bonus: ``q1_correct`` and ``q2_correct``
    """
    store = _get_store(request)
    now = utcnow()
    with store.player_transaction(token) as (player, session):
        session = _require_escape(session)
        if stage in (Stage.DECODE, Stage.TRANSLATE):
            if body.answer is None:
                raise HTTPException(status_code=400, detail="'answer' is required")
            return submit_stage_answer(session, player, stage, body.answer, now)
        if stage == Stage.SKILL:
            if body.score is None:
                raise HTTPException(status_code=400, detail="'score' is required")
            return submit_skill_score(session, player, body.score, now)
        if body.q1_correct is None or body.q2_correct is None:
            raise HTTPException(status_code=400, detail="'q1_correct' and 'q2_correct' are required")
        return submit_bonus_answers(session, player, body.q1_correct, body.q2_correct, now)


@router.post("/questions/{question_id}", response_model=StageResult)
def submit_question(
    question_id: str,
    body: QuestionSubmission,
    request: Request,
    token: str = Depends(get_player_token),
) -> StageResult:
    """Answer one of the session's custom questions."""
    store = _get_store(request)
    with store.player_transaction(token) as (player, session):
        return submit_question_answer(_require_escape(session), player, question_id, body.answer, utcnow())


@router.post("/escape", response_model=EscapeResponse)
def escape(
    body: EscapeRequest,
    request: Request,
    token: str = Depends(get_player_token),
) -> EscapeResponse:
    """Try the final unlock sequence."""
    with _get_store(request).player_transaction(token) as (_, session):
        session = _require_escape(session)
        if session.final_unlock_code is None:
            return EscapeResponse(success=False, message="Not every player has finished yet")
        if not attempt_escape(session, body.sequence):
            return EscapeResponse(success=False, message="Incorrect sequence")
        return EscapeResponse(
            success=True,
            message="Airlock open. You escaped!",
            sequence=format_sequence([int(d) for d in session.final_unlock_code]),
        )
