"""FastAPI app entry point for the Oxygen Escape server.

Run with:  uvicorn main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import config
from api.admin import router as admin_router
from api.combat import router as combat_router
from api.game import router as game_router
from api.lobby import router as lobby_router
from auth import load_owners
from config import LOG_LEVEL, OWNERS_FILE, PERSIST_ASYNC, SAVE_FILE
from engine.store import SessionStore
from errors import (
    ConflictError,
    GameError,
    InvalidInputError,
    NotFoundError,
    UnauthorizedError,
)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Let queued snapshot writes finish before the process exits."""
    yield
    app.state.store.close()


app = FastAPI(
    title="Oxygen Escape Server",
    description="Session engine for cooperative escape-room and combat games",
    version="0.1.0",
    lifespan=lifespan,
)

# Sessions hydrate lazily on first use; owners load up front
app.state.store = SessionStore(SAVE_FILE, asynchronous=PERSIST_ASYNC)
load_owners(OWNERS_FILE)
config.load_secret()

_STATUS_CODES: list[tuple[type[GameError], int]] = [
    (NotFoundError, 404),
    (UnauthorizedError, 403),
    (ConflictError, 409),
    (InvalidInputError, 400),
]


@app.exception_handler(GameError)
def handle_game_error(request: Request, exc: GameError) -> JSONResponse:
    """Map engine outcomes to HTTP status codes."""
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    logger.error("Unmapped engine error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Internal error"})


app.include_router(lobby_router, tags=["Lobby"])
app.include_router(game_router, prefix="/game", tags=["Game"])
app.include_router(combat_router, prefix="/combat", tags=["Combat"])
app.include_router(admin_router, prefix="/admin", tags=["Admin"])


@app.get("/")
def root() -> dict:
    """Root endpoint returning server info."""
    return {"name": "Oxygen Escape Server", "version": "0.1.0", "status": "running"}


@app.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"healthy": True, "sessions": len(app.state.store)}
