"""Session clock, derived player fields, and the final unlock sequence."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone

from engine.puzzles import (
    all_players_complete,
    effective_oxygen_minutes,
    player_complete,
    stage_score,
    total_score,
)
from models.session import GameSession, Player, PlayerStatus, Stage

logger = logging.getLogger(__name__)

_STATUS_RANK = {PlayerStatus.JOINED: 0, PlayerStatus.SOLVING: 1, PlayerStatus.COMPLETED: 2}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def remaining_time(session: GameSession, now: datetime | None = None) -> timedelta:
    """Time left on the oxygen clock.

    Zero whenever ``start_time`` is unset: the clock is not running yet.
    Use :func:`is_expired` to tell "not started" apart from "ran out".
    """
    if session.start_time is None:
        return timedelta(0)
    now = now or utcnow()
    deadline = timedelta(minutes=effective_oxygen_minutes(session))
    return max(timedelta(0), deadline - (now - session.start_time))


def is_expired(session: GameSession, now: datetime | None = None) -> bool:
    return session.start_time is not None and remaining_time(session, now) == timedelta(0)


def format_time(milliseconds: float) -> str:
    """Render a duration as MM:SS."""
    total_seconds = int(milliseconds // 1000)
    minutes, seconds = divmod(max(0, total_seconds), 60)
    return f"{minutes:02d}:{seconds:02d}"


# ---------------------------------------------------------------------------
# Final sequence
# ---------------------------------------------------------------------------


def calculate_final_sequence(players: list[Player]) -> list[int]:
    """Derive the six escape digits from the players' scores.

    Digits, in order: hundreds, tens and units of the score sum; the
    max-min spread mod 10; the floored mean mod 10; the decode-stage score
    sum mod 10.

    Raises:
        ValueError: If there are no players.
    """
    if not players:
        raise ValueError("Cannot derive a sequence without players")
    scores = [total_score(p) for p in players]
    total = sum(scores)
    decode_sum = sum(stage_score(p, Stage.DECODE) for p in players)
    return [
        (total // 100) % 10,
        (total // 10) % 10,
        total % 10,
        (max(scores) - min(scores)) % 10,
        (total // len(scores)) % 10,
        decode_sum % 10,
    ]


def format_sequence(sequence: list[int]) -> str:
    return "-".join(str(d) for d in sequence)


def derive_unlock_code(session: GameSession) -> str:
    return "".join(str(d) for d in calculate_final_sequence(session.players))


def validate_sequence(submitted: str, code: str) -> bool:
    """Compare a typed sequence to the code, ignoring any non-digits."""
    digits = re.sub(r"[^0-9]", "", submitted)
    return bool(code) and digits == code


# ---------------------------------------------------------------------------
# Derived fields
# ---------------------------------------------------------------------------


def _derived_status(player: Player) -> PlayerStatus:
    if player_complete(player):
        return PlayerStatus.COMPLETED
    touched = any(p.attempts or p.completed for p in player.stages.values())
    if touched or player.question_progress:
        return PlayerStatus.SOLVING
    return PlayerStatus.JOINED


def refresh_player(player: Player) -> None:
    """Recompute a player's total score and advance (never rewind) status."""
    player.total_score = total_score(player)
    derived = _derived_status(player)
    if _STATUS_RANK[derived] > _STATUS_RANK[player.status]:
        player.status = derived


def refresh_session(session: GameSession) -> bool:
    """Refresh every player and assign the unlock code on first completion.

    Returns:
        True if this call assigned ``final_unlock_code``.
    """
    for player in session.players:
        refresh_player(player)
    if session.final_unlock_code is None and all_players_complete(session):
        session.final_unlock_code = derive_unlock_code(session)
        logger.info("Session %s complete, unlock code assigned", session.id)
        return True
    return False
