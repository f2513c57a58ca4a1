"""Response shapes shared by the routers.

Player tokens and puzzle solutions never leave the server through these.
"""

from datetime import datetime

from engine.ciphers import CipherScheme, encode
from engine.lifecycle import format_time, is_expired, remaining_time
from engine.puzzles import (
    assigned_greek_word,
    current_stage,
    effective_max_attempts,
    meaning_options,
    ordered_phases,
)
from engine.rooms import get_room_config
from models.combat import CombatSession
from models.session import GameSession, MultipleChoiceQuestion, Player, Stage


def player_view(player) -> dict:
    return player.model_dump(mode="json", exclude={"token", "morse_word", "greek_word_index"})


def session_view(session: GameSession | CombatSession) -> dict:
    """Session fields with tokens stripped and custom phases sanitized."""
    data = session.model_dump(mode="json", exclude={"players", "phases"})
    data["players"] = [player_view(p) for p in session.players]
    if isinstance(session, GameSession):
        data["phases"] = [phase_view(p) for p in ordered_phases(session)]
    return data


def phase_view(phase) -> dict:
    questions = []
    for question in phase.questions:
        entry = question.model_dump(mode="json", exclude={"solution", "options"})
        if isinstance(question, MultipleChoiceQuestion):
            entry["options"] = [o.text for o in question.options]
        questions.append(entry)
    return {
        "id": phase.id,
        "name": phase.name,
        "description": phase.description,
        "order": phase.order,
        "questions": questions,
    }


def escape_status(session: GameSession, player: Player, now: datetime) -> dict:
    """Everything a player's client polls for in the escape-room mode."""
    remaining = remaining_time(session, now)
    greek = assigned_greek_word(session, player)
    stage = current_stage(player)
    return {
        "player": player_view(player),
        "session": session_view(session),
        "remaining_ms": int(remaining.total_seconds() * 1000),
        "remaining": format_time(remaining.total_seconds() * 1000),
        "expired": is_expired(session, now),
        "current_stage": stage.value if stage else None,
        "puzzle": {
            "morse": encode(CipherScheme.MORSE, player.morse_word),
            "greek_word": greek.word,
            "meaning_options": meaning_options(session),
            "max_attempts": {
                s.value: effective_max_attempts(session, s)
                for s in (Stage.DECODE, Stage.TRANSLATE)
            },
        },
    }


def combat_status(session: CombatSession, player) -> dict:
    clue = get_room_config(session.current_room).clue
    return {
        "player": player_view(player),
        "session": session_view(session),
        "oxygen": format_time(session.oxygen_remaining_ms),
        "clue": {
            "id": clue.id,
            "scheme": clue.scheme.value,
            "encoded": clue.encoded,
            "attempts": session.clue_attempts,
            "max_attempts": clue.max_attempts,
            "solved": session.clue_solved,
        },
    }
