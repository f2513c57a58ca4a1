"""Combat-mode endpoints: create, join, sync, and clue decoding.

Every call that reads or changes a combat session first advances it to
the current time, so clients see state as of their own request.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from api.lobby import CreateSessionResponse, JoinRequest, JoinResponse, join_with_code
from api.views import combat_status
from auth import Owner, get_current_owner, get_player_token
from engine.combat import advance, move_player, player_shoot, reload, submit_clue_answer
from engine.lifecycle import utcnow
from engine.store import SessionStore
from errors import InvalidInputError
from models.actions import ClueResult, SyncAction, SyncRequest
from models.combat import CombatConfig, CombatSession, Position

router = APIRouter()


class ClueRequest(BaseModel):
    answer: str


def _get_store(request: Request) -> SessionStore:
    """Get the session store from app state."""
    return request.app.state.store


def _require_combat(session) -> CombatSession:
    if not isinstance(session, CombatSession):
        raise InvalidInputError("This endpoint is for combat sessions")
    return session


@router.post("/sessions", response_model=CreateSessionResponse)
def create_combat_session(
    request: Request,
    config: CombatConfig | None = None,
    owner: Owner = Depends(get_current_owner),
) -> CreateSessionResponse:
    """Create a combat session with the given difficulty configuration."""
    session = _get_store(request).create_combat_session(owner.owner_id, config)
    return CreateSessionResponse(
        id=session.id,
        join_code=session.join_code,
        status=session.status.value,
    )


@router.post("/join", response_model=JoinResponse)
def join_combat(body: JoinRequest, request: Request) -> JoinResponse:
    """Join a combat session while it is still in its lobby."""
    return join_with_code(_get_store(request), body, kind="combat")


@router.get("/sync")
def get_sync(request: Request, token: str = Depends(get_player_token)) -> dict:
    """Advance the session to now and return the player's view of it."""
    now = utcnow()
    with _get_store(request).player_transaction(token) as (player, session):
        session = _require_combat(session)
        advance(session, now)
        player.last_sync_at = now
        return combat_status(session, player)


@router.post("/sync")
def post_sync(
    body: SyncRequest,
    request: Request,
    token: str = Depends(get_player_token),
) -> dict:
    """Advance the session, apply one player action, and return the result."""
    now = utcnow()
    with _get_store(request).player_transaction(token) as (player, session):
        session = _require_combat(session)
        advance(session, now)
        player.last_sync_at = now

        shot = None
        if body.action == SyncAction.MOVE:
            if body.position is None:
                raise HTTPException(status_code=400, detail="'position' is required for move")
            move_player(session, player, body.position)
        elif body.action == SyncAction.SHOOT:
            if body.target_x is None or body.target_y is None:
                raise HTTPException(status_code=400, detail="'target_x' and 'target_y' are required for shoot")
            shot = player_shoot(session, player, Position(x=body.target_x, y=body.target_y), now)
        else:
            reload(session, player)

        state = combat_status(session, player)
        state["shot"] = shot.model_dump() if shot is not None else None
        return state


@router.post("/clue", response_model=ClueResult)
def decode_clue(
    body: ClueRequest,
    request: Request,
    token: str = Depends(get_player_token),
) -> ClueResult:
    """Submit an answer to the current room's clue."""
    now = utcnow()
    with _get_store(request).player_transaction(token) as (player, session):
        session = _require_combat(session)
        advance(session, now)
        return submit_clue_answer(session, body.answer)
