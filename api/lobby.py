"""Session creation and join endpoints."""

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from auth import Owner, get_current_owner
from engine.store import SessionStore

router = APIRouter()


class CreateSessionResponse(BaseModel):
    """Response after creating a session."""
    id: str
    join_code: str
    status: str


class JoinRequest(BaseModel):
    """Request body for joining a session with its code."""
    code: str
    name: str


class JoinResponse(BaseModel):
    """Response after joining. The token authenticates every later call."""
    token: str
    session_id: str
    kind: str
    message: str


def _get_store(request: Request) -> SessionStore:
    """Get the session store from app state."""
    return request.app.state.store


def join_with_code(store: SessionStore, body: JoinRequest, kind: str | None = None) -> JoinResponse:
    token = store.join_session(body.code, body.name, kind=kind)
    _, session = store.get_player_by_token(token)
    return JoinResponse(
        token=token,
        session_id=session.id,
        kind=session.kind,
        message=f"{body.name.strip()} has joined the game.",
    )


@router.post("/sessions", response_model=CreateSessionResponse)
def create_session(
    request: Request,
    owner: Owner = Depends(get_current_owner),
) -> CreateSessionResponse:
    """Create an escape-room session owned by the caller."""
    session = _get_store(request).create_session(owner.owner_id)
    return CreateSessionResponse(
        id=session.id,
        join_code=session.join_code,
        status=session.status.value,
    )


@router.post("/join", response_model=JoinResponse)
def join_session(body: JoinRequest, request: Request) -> JoinResponse:
    """Join any session by its code.

    - Unknown code: 404.
    - Full, ended, or already-started combat session: 409.
    - Malformed code or empty name: 400.
    """
    return join_with_code(_get_store(request), body)
