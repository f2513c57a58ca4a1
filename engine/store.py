"""In-memory session registry with durable snapshots.

The store owns three indices (session id, join code, player token) and keeps
them consistent. Every mutation runs inside :meth:`SessionStore.transaction`,
which serializes access per session, rolls the session back if the body
raises, and queues a snapshot of the whole registry once the lock is
released.
"""

from __future__ import annotations

import logging
import random
import secrets
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from uuid import uuid4

from pydantic import ValidationError

from config import (
    JOIN_CODE_ALPHABET,
    JOIN_CODE_LENGTH,
    MAX_PLAYERS,
    PERSIST_ASYNC,
    SAVE_FILE,
)
from engine import combat
from engine.lifecycle import refresh_session, utcnow
from engine.persistence import SnapshotWriter, dump_snapshot, load_snapshot
from engine.puzzles import assign_puzzle, effective_max_attempts, is_stage_unlocked
from errors import (
    ConflictError,
    GameCompleted,
    GameFull,
    InvalidCode,
    InvalidInputError,
    NotFoundError,
    UnauthorizedError,
)
from models.combat import CombatConfig, CombatPlayer, CombatSession
from models.session import (
    GameSession,
    Player,
    PuzzleOverrides,
    SessionStatus,
)
from models.snapshot import SessionExport

logger = logging.getLogger(__name__)

Session = GameSession | CombatSession

# Player fields a generic partial update may touch. Everything else is
# either identity (token, slot, assignment) or derived (status, score).
_MUTABLE_PLAYER_FIELDS = {
    "name",
    "stages",
    "skill_score",
    "bonus_q1_correct",
    "bonus_q2_correct",
    "question_progress",
}


def normalize_code(code: str) -> str:
    return code.strip().upper()


class SessionStore:
    """Registry of escape and combat sessions.

    Args:
        path: Snapshot file, loaded lazily before the first operation.
            None keeps the registry in memory only.
        asynchronous: Write snapshots on a background thread.
        rng: Source for join codes; defaults to the system CSPRNG.
    """

    def __init__(
        self,
        path: str | None = SAVE_FILE,
        asynchronous: bool = PERSIST_ASYNC,
        rng: random.Random | None = None,
    ) -> None:
        self._path = path
        self._writer = SnapshotWriter(path, asynchronous=asynchronous) if path else None
        self._rng = rng or secrets.SystemRandom()
        self._sessions: dict[str, Session] = {}
        self._code_index: dict[str, str] = {}
        self._token_index: dict[str, str] = {}
        self._session_locks: dict[str, threading.RLock] = {}
        self._registry_lock = threading.RLock()
        self._save_lock = threading.Lock()
        self._loaded = False

    # ------------------------------------------------------------------
    # Hydration and persistence
    # ------------------------------------------------------------------

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        with self._registry_lock:
            if self._loaded:
                return
            for session in load_snapshot(self._path) if self._path else []:
                if session.id in self._sessions or session.join_code in self._code_index:
                    logger.warning("Skipping duplicate session %s in snapshot", session.id)
                    continue
                self._register(session)
            self._loaded = True
            logger.info("Loaded %d sessions from %s", len(self._sessions), self._path)

    def _register(self, session: Session) -> None:
        self._sessions[session.id] = session
        self._code_index[session.join_code] = session.id
        self._session_locks[session.id] = threading.RLock()
        for player in session.players:
            self._token_index[player.token] = session.id

    def _save(self) -> None:
        """Queue a snapshot of the whole registry.

        Each session is copied under its own lock, one at a time, so a save
        never holds two session locks at once.
        """
        if self._writer is None:
            return
        with self._save_lock:
            with self._registry_lock:
                items = [(self._session_locks[sid], s) for sid, s in self._sessions.items()]
            copies = []
            for lock, session in items:
                with lock:
                    copies.append(session.model_copy(deep=True))
            self._writer.submit(dump_snapshot(copies))

    def flush(self) -> None:
        """Wait for queued snapshot writes to reach disk."""
        if self._writer is not None:
            self._writer.flush()

    def close(self) -> None:
        if self._writer is not None:
            self._writer.close()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self, session_id: str) -> Iterator[Session]:
        """Hold a session exclusively for the duration of the block.

        If the block raises, the session is restored to the state it had on
        entry and the exception propagates. Otherwise a snapshot is queued
        after the lock is released.

        Raises:
            NotFoundError: If no session has this id.
        """
        self._ensure_loaded()
        with self._registry_lock:
            lock = self._session_locks.get(session_id)
        if lock is None:
            raise NotFoundError(f"Session '{session_id}' not found")

        with lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise NotFoundError(f"Session '{session_id}' not found")
            backup = session.model_copy(deep=True)
            try:
                yield session
            except BaseException:
                for name in type(session).model_fields:
                    setattr(session, name, getattr(backup, name))
                raise
        self._save()

    @contextmanager
    def player_transaction(self, token: str) -> Iterator[tuple[Player | CombatPlayer, Session]]:
        """Like :meth:`transaction`, resolved from a player token.

        Raises:
            NotFoundError: If the token is unknown.
        """
        self._ensure_loaded()
        with self._registry_lock:
            session_id = self._token_index.get(token)
        if session_id is None:
            raise NotFoundError("Unknown player token")
        with self.transaction(session_id) as session:
            player = _find_player(session, token)
            if player is None:
                raise NotFoundError("Unknown player token")
            yield player, session

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _new_join_code(self) -> str:
        """Rejection-sample a code not held by any registered session."""
        while True:
            code = "".join(self._rng.choice(JOIN_CODE_ALPHABET) for _ in range(JOIN_CODE_LENGTH))
            if code not in self._code_index:
                return code

    def create_session(self, owner_id: str, now: datetime | None = None) -> GameSession:
        """Create an empty escape-room session in the ``waiting`` state."""
        self._ensure_loaded()
        now = now or utcnow()
        with self._registry_lock:
            session = GameSession(
                id=str(uuid4()),
                join_code=self._new_join_code(),
                owner_id=owner_id,
                created_at=now,
            )
            self._register(session)
        logger.info("Created session %s (code %s) for %s", session.id, session.join_code, owner_id)
        self._save()
        return session

    def create_combat_session(
        self,
        owner_id: str,
        config: CombatConfig | None = None,
        now: datetime | None = None,
    ) -> CombatSession:
        """Create a combat session in its lobby phase."""
        self._ensure_loaded()
        now = now or utcnow()
        with self._registry_lock:
            session = combat.create_combat_session(
                session_id=str(uuid4()),
                join_code=self._new_join_code(),
                owner_id=owner_id,
                config=config or CombatConfig(),
                now=now,
            )
            self._register(session)
        logger.info("Created combat session %s (code %s) for %s", session.id, session.join_code, owner_id)
        self._save()
        return session

    # ------------------------------------------------------------------
    # Lookups (absent results are None, never an exception)
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> Session | None:
        self._ensure_loaded()
        return self._sessions.get(session_id)

    def get_session_by_code(self, code: str) -> Session | None:
        """Look up a session by its join code. The caller uppercases."""
        self._ensure_loaded()
        session_id = self._code_index.get(code)
        if session_id is None:
            return None
        return self._sessions.get(session_id)

    def get_player_by_token(self, token: str) -> tuple[Player | CombatPlayer, Session] | None:
        self._ensure_loaded()
        session_id = self._token_index.get(token)
        if session_id is None:
            return None
        session = self._sessions.get(session_id)
        if session is None:
            return None
        player = _find_player(session, token)
        if player is None:
            return None
        return player, session

    def list_sessions_for_owner(self, owner_id: str) -> list[Session]:
        """An owner's sessions, newest first."""
        self._ensure_loaded()
        with self._registry_lock:
            owned = [s for s in self._sessions.values() if s.owner_id == owner_id]
        return sorted(owned, key=lambda s: s.created_at, reverse=True)

    def __len__(self) -> int:
        self._ensure_loaded()
        return len(self._sessions)

    # ------------------------------------------------------------------
    # Joining
    # ------------------------------------------------------------------

    def join_session(
        self,
        code: str,
        name: str,
        kind: str | None = None,
        now: datetime | None = None,
    ) -> str:
        """Add a player to the session with this join code.

        Args:
            code: Join code, any case.
            name: Display name.
            kind: If given, only a session of this kind is accepted.
            now: Join time; stamps ``start_time`` on the first escape join.

        Returns:
            The new player's token.

        Raises:
            InvalidInputError: Empty name or a code of the wrong length.
            InvalidCode: No session with this code (or of the wrong kind).
            GameFull: The session already has its maximum players.
            GameCompleted: The session has ended.
            GameInProgress: A combat session that has already started.
        """
        self._ensure_loaded()
        code = normalize_code(code)
        name = name.strip()
        if not name:
            raise InvalidInputError("Name is required")
        if len(code) != JOIN_CODE_LENGTH:
            raise InvalidInputError(f"Game code must be {JOIN_CODE_LENGTH} characters")

        session_id = self._code_index.get(code)
        if session_id is None:
            raise InvalidCode(code)
        now = now or utcnow()
        token = secrets.token_urlsafe(24)

        with self.transaction(session_id) as session:
            if kind is not None and session.kind != kind:
                raise InvalidCode(code)
            if isinstance(session, CombatSession):
                combat.add_player(session, token, name, now)
            else:
                _join_escape(session, token, name, now)
            with self._registry_lock:
                self._token_index[token] = session.id

        logger.info("Player %s joined session %s", name, session_id)
        return token

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def mutate_player(self, token: str, **updates) -> bool:
        """Apply a partial update to an escape-room player.

        Only the supplied fields change; ``stages`` and ``question_progress``
        merge per key. Completed flags may not go from
        true back to false. Derived fields are recomputed afterwards and
        the unlock code is assigned if this update completed the session.

        Returns:
            False if the token is unknown, True once the update is applied.

        Raises:
            InvalidInputError: Unknown or non-writable field, bad values, or
                attempts beyond the stage cap.
            ConflictError: The update would un-complete a stage, complete a
                locked one, or lower an attempt count.
        """
        self._ensure_loaded()
        if token not in self._token_index:
            return False
        unknown = set(updates) - _MUTABLE_PLAYER_FIELDS
        if unknown:
            raise InvalidInputError(f"Cannot update player fields: {', '.join(sorted(unknown))}")

        with self.player_transaction(token) as (player, session):
            if not isinstance(player, Player):
                raise InvalidInputError("Combat players are updated through sync actions")
            data = player.model_dump()
            for field, value in updates.items():
                if field in ("stages", "question_progress") and isinstance(value, dict):
                    data[field] = {**data[field], **value}
                else:
                    data[field] = value
            try:
                candidate = Player.model_validate(data)
            except ValidationError as e:
                raise InvalidInputError(str(e)) from e

            for stage, progress in player.stages.items():
                if progress.completed and not candidate.stages[stage].completed:
                    raise ConflictError(f"Stage '{stage.value}' is already completed")
            for qid, progress in player.question_progress.items():
                new = candidate.question_progress.get(qid)
                if progress.completed and (new is None or not new.completed):
                    raise ConflictError(f"Question '{qid}' is already completed")
            for stage, progress in candidate.stages.items():
                if progress.completed and not player.stages[stage].completed \
                        and not is_stage_unlocked(candidate, stage):
                    raise ConflictError(f"Stage '{stage.value}' is locked")
                if progress.attempts < player.stages[stage].attempts:
                    raise ConflictError(f"Attempts on stage '{stage.value}' cannot go down")
                cap = effective_max_attempts(session, stage)
                if cap is not None and progress.attempts > cap:
                    raise InvalidInputError(f"Stage '{stage.value}' allows at most {cap} attempts")

            for field in updates:
                setattr(player, field, getattr(candidate, field))
            refresh_session(session)
        return True

    def delete_session(self, session_id: str) -> bool:
        """Remove a session with all of its index entries. Idempotent."""
        self._ensure_loaded()
        with self._registry_lock:
            lock = self._session_locks.get(session_id)
        if lock is None:
            return False
        with lock:
            with self._registry_lock:
                session = self._sessions.pop(session_id, None)
                if session is None:
                    return False
                self._code_index.pop(session.join_code, None)
                for player in session.players:
                    self._token_index.pop(player.token, None)
                self._session_locks.pop(session_id, None)
        logger.info("Deleted session %s", session_id)
        self._save()
        return True

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def require_owner(self, session_id: str, owner_id: str) -> Session:
        """Return the session if ``owner_id`` owns it.

        Raises:
            NotFoundError: No such session.
            UnauthorizedError: The session belongs to someone else.
        """
        session = self.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session '{session_id}' not found")
        if session.owner_id != owner_id:
            raise UnauthorizedError("You do not own this session")
        return session

    def delete_owned_session(self, session_id: str, owner_id: str) -> bool:
        self.require_owner(session_id, owner_id)
        return self.delete_session(session_id)

    def update_puzzle_settings(
        self,
        session_id: str,
        owner_id: str,
        overrides: PuzzleOverrides,
    ) -> GameSession:
        """Apply the fields present in ``overrides`` to an escape session.

        Assignments already handed to joined players are not changed.
        """
        self.require_owner(session_id, owner_id)
        with self.transaction(session_id) as session:
            if not isinstance(session, GameSession):
                raise InvalidInputError("Puzzle settings apply to escape-room sessions only")
            for field in overrides.model_fields_set:
                value = getattr(overrides, field)
                if field == "phases" and value is None:
                    value = []
                setattr(session, field, value)
            refresh_session(session)
        logger.info("Updated puzzle settings for session %s", session_id)
        return session

    def complete_session(self, session_id: str, owner_id: str) -> Session:
        """End a session. Later joins fail with GameCompleted."""
        self.require_owner(session_id, owner_id)
        with self.transaction(session_id) as session:
            session.status = SessionStatus.COMPLETED
        logger.info("Session %s marked completed", session_id)
        return session

    def export_sessions(self, owner_id: str, now: datetime | None = None) -> SessionExport:
        sessions = [s.model_copy(deep=True) for s in self.list_sessions_for_owner(owner_id)]
        return SessionExport(exported_at=now or utcnow(), owner_id=owner_id, sessions=sessions)


def _find_player(session: Session, token: str) -> Player | CombatPlayer | None:
    for player in session.players:
        if player.token == token:
            return player
    return None


def _join_escape(session: GameSession, token: str, name: str, now: datetime) -> None:
    if session.status == SessionStatus.COMPLETED:
        raise GameCompleted()
    if len(session.players) >= MAX_PLAYERS:
        raise GameFull(MAX_PLAYERS)

    slot = len(session.players)
    morse_word, greek_index = assign_puzzle(session, slot)
    session.players.append(Player(
        token=token,
        name=name,
        player_slot=slot,
        morse_word=morse_word,
        greek_word_index=greek_index,
    ))
    if session.start_time is None:
        session.start_time = now
        session.status = SessionStatus.ACTIVE
