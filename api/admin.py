"""Admin endpoints: owner login, session management, combat overrides."""

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel

from api.views import session_view
from auth import Owner, check_admin_secret, get_current_owner, issue_owner_id
from engine.combat import advance, apply_admin_action
from engine.lifecycle import utcnow
from engine.store import SessionStore
from errors import InvalidInputError
from models.actions import AdminAction, AdminActionRequest
from models.combat import CombatSession
from models.session import PuzzleOverrides

router = APIRouter()


class LoginRequest(BaseModel):
    """Request body for registering an administrator."""
    name: str


class LoginResponse(BaseModel):
    """Response after login. Send ``owner_id`` as X-Owner-Id from now on."""
    owner_id: str
    name: str


class ActionResponse(BaseModel):
    message: str
    session: dict | None = None


def _get_store(request: Request) -> SessionStore:
    """Get the session store from app state."""
    return request.app.state.store


@router.post("/login", response_model=LoginResponse)
def login(
    body: LoginRequest,
    x_admin_secret: str = Header(..., alias="X-Admin-Secret"),
) -> LoginResponse:
    """Issue an owner id to a caller holding the admin secret."""
    if not check_admin_secret(x_admin_secret):
        raise HTTPException(status_code=403, detail="Invalid admin secret")
    if not body.name.strip():
        raise HTTPException(status_code=400, detail="Name is required")
    owner = issue_owner_id(body.name.strip())
    return LoginResponse(owner_id=owner.owner_id, name=owner.name)


@router.get("/sessions")
def list_sessions(request: Request, owner: Owner = Depends(get_current_owner)) -> list[dict]:
    """The caller's sessions, newest first."""
    return [session_view(s) for s in _get_store(request).list_sessions_for_owner(owner.owner_id)]


@router.get("/sessions/export")
def export_sessions(request: Request, owner: Owner = Depends(get_current_owner)) -> dict:
    """Full dump of the caller's sessions, for download."""
    export = _get_store(request).export_sessions(owner.owner_id)
    data = export.model_dump(mode="json", exclude={"sessions"})
    data["sessions"] = [session_view(s) for s in export.sessions]
    return data


@router.delete("/sessions/{session_id}", response_model=ActionResponse)
def delete_session(
    session_id: str,
    request: Request,
    owner: Owner = Depends(get_current_owner),
) -> ActionResponse:
    """Delete a session with all of its players."""
    _get_store(request).delete_owned_session(session_id, owner.owner_id)
    return ActionResponse(message=f"Session {session_id} deleted")


@router.patch("/sessions/{session_id}/puzzles")
def update_puzzles(
    session_id: str,
    body: PuzzleOverrides,
    request: Request,
    owner: Owner = Depends(get_current_owner),
) -> dict:
    """Override puzzle content for an escape-room session.

    Only fields present in the body change; ``null`` restores the default.
    """
    session = _get_store(request).update_puzzle_settings(session_id, owner.owner_id, body)
    return session_view(session)


@router.post("/sessions/{session_id}/complete", response_model=ActionResponse)
def complete_session(
    session_id: str,
    request: Request,
    owner: Owner = Depends(get_current_owner),
) -> ActionResponse:
    """End a session. Further joins are refused."""
    session = _get_store(request).complete_session(session_id, owner.owner_id)
    return ActionResponse(message="Session completed", session=session_view(session))


@router.post("/combat/{session_id}/actions", response_model=ActionResponse)
def combat_action(
    session_id: str,
    body: AdminActionRequest,
    request: Request,
    owner: Owner = Depends(get_current_owner),
) -> ActionResponse:
    """Run a privileged action on a combat session."""
    store = _get_store(request)
    store.require_owner(session_id, owner.owner_id)

    if body.action == AdminAction.DELETE_SESSION:
        store.delete_session(session_id)
        return ActionResponse(message=f"Session {session_id} deleted")

    now = utcnow()
    with store.transaction(session_id) as session:
        if not isinstance(session, CombatSession):
            raise InvalidInputError("Combat actions apply to combat sessions only")
        advance(session, now)
        message = apply_admin_action(session, body.action, now, seconds=body.seconds)
        return ActionResponse(message=message, session=session_view(session))
