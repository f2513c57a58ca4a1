"""Administrator and player credentials for the Oxygen Escape server.

Administrators log in with the server's admin secret and receive an owner
id, which they send as ``X-Owner-Id`` on every admin request. Players send
the token they got when joining as a Bearer token.
"""

import json
import os
import secrets
from datetime import datetime, timezone
from pathlib import Path

from fastapi import HTTPException, Request
from pydantic import BaseModel

import config


class Owner(BaseModel):
    """An administrator who can create and manage sessions."""
    owner_id: str
    name: str
    created_at: datetime


# In-memory owner store: owner_id -> Owner
_owners: dict[str, Owner] = {}


def load_owners(path: str | None = None) -> dict[str, Owner]:
    """Load the owner store from a JSON file.

    Returns:
        Dict mapping owner ids to Owner objects.
    """
    _owners.clear()
    path = path or config.OWNERS_FILE
    if not Path(path).exists():
        return _owners
    with open(path) as f:
        data = json.load(f)
    _owners.update({key: Owner(**value) for key, value in data.items()})
    return _owners


def save_owners(path: str | None = None) -> None:
    """Persist the owner store to a JSON file (atomic write)."""
    path = path or config.OWNERS_FILE
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    tmp_path = path + ".tmp"
    data = {key: owner.model_dump(mode="json") for key, owner in _owners.items()}
    with open(tmp_path, "w") as f:
        json.dump(data, f, indent=2)
    os.replace(tmp_path, path)


def issue_owner_id(name: str, path: str | None = None) -> Owner:
    """Register an administrator and persist the store.

    Args:
        name: Display name for the administrator.
        path: Owner store file. Defaults to the configured one.

    Returns:
        The new Owner, whose ``owner_id`` is its credential.
    """
    owner = Owner(
        owner_id="own_" + secrets.token_hex(16),
        name=name,
        created_at=datetime.now(timezone.utc),
    )
    _owners[owner.owner_id] = owner
    save_owners(path)
    return owner


def get_owner(owner_id: str) -> Owner | None:
    return _owners.get(owner_id)


def check_admin_secret(secret: str) -> bool:
    return secrets.compare_digest(secret.encode(), config.ADMIN_SECRET.encode())


def get_current_owner(request: Request) -> Owner:
    """FastAPI dependency: resolve the ``X-Owner-Id`` header.

    Usage:
        @router.get("/sessions")
        def endpoint(owner: Owner = Depends(get_current_owner)):
            ...

    Raises:
        HTTPException 401: If the header is missing or unknown.
    """
    owner_id = request.headers.get("X-Owner-Id")
    if not owner_id:
        raise HTTPException(status_code=401, detail="Missing X-Owner-Id header")
    owner = _owners.get(owner_id)
    if owner is None:
        raise HTTPException(status_code=401, detail="Unknown owner id")
    return owner


def get_player_token(request: Request) -> str:
    """FastAPI dependency: extract the player's Bearer token.

    The token is only parsed here; the session store decides whether it
    belongs to anyone.

    Raises:
        HTTPException 401: If the Authorization header is missing or malformed.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")
    token = auth_header[len("Bearer "):].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")
    return token
