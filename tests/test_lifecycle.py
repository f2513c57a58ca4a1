"""Tests for the session clock, derived player fields, and the unlock sequence."""

from datetime import datetime, timedelta, timezone

import pytest

from engine.lifecycle import (
    calculate_final_sequence,
    format_sequence,
    format_time,
    is_expired,
    refresh_player,
    refresh_session,
    remaining_time,
    validate_sequence,
)
from models.session import GameSession, Player, PlayerStatus, Stage

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _make_session(**overrides) -> GameSession:
    """Helper to create an escape session."""
    return GameSession(
        id="s1",
        join_code="ABCDEF",
        owner_id="owner1",
        created_at=T0,
        **overrides,
    )


def _make_player(slot: int = 0) -> Player:
    return Player(
        token=f"tok{slot}",
        name=f"Player{slot}",
        player_slot=slot,
        morse_word="SOS",
        greek_word_index=0,
    )


def _finish(player: Player, decode_attempts: int = 1, skill: int = 0) -> None:
    """Mark every built-in stage complete."""
    player.skill_score = skill
    for stage in Stage:
        player.stages[stage].attempts = decode_attempts if stage == Stage.DECODE else 1
        player.stages[stage].completed = True


class TestRemainingTime:
    """Tests for remaining_time() and is_expired()."""

    def test_not_started_is_zero_but_not_expired(self):
        session = _make_session(custom_oxygen_minutes=1)
        assert remaining_time(session, T0) == timedelta(0)
        assert not is_expired(session, T0)

    def test_counts_down(self):
        session = _make_session(start_time=T0, oxygen_minutes=10)
        assert remaining_time(session, T0 + timedelta(minutes=4)) == timedelta(minutes=6)
        assert not is_expired(session, T0 + timedelta(minutes=4))

    def test_clamped_and_expired(self):
        session = _make_session(start_time=T0, custom_oxygen_minutes=1)
        assert remaining_time(session, T0 + timedelta(minutes=5)) == timedelta(0)
        assert is_expired(session, T0 + timedelta(minutes=5))

    def test_override_beats_session_default(self):
        session = _make_session(start_time=T0, oxygen_minutes=120, custom_oxygen_minutes=30)
        assert remaining_time(session, T0) == timedelta(minutes=30)


class TestFormatTime:
    """Tests for format_time()."""

    def test_minutes_and_seconds(self):
        assert format_time(125_000) == "02:05"

    def test_zero_and_negative(self):
        assert format_time(0) == "00:00"
        assert format_time(-500) == "00:00"


class TestFinalSequence:
    """Tests for calculate_final_sequence() and helpers."""

    def test_digits(self):
        players = [_make_player(0), _make_player(1)]
        # Totals: 250+250+0+200 = 700 and 200+250+30+200 = 680
        _finish(players[0])
        _finish(players[1], decode_attempts=2, skill=30)
        # Sum 1380, spread 20, mean 690, decode sum 450
        assert calculate_final_sequence(players) == [3, 8, 0, 0, 0, 0]

    def test_deterministic(self):
        players = [_make_player(0)]
        _finish(players[0], skill=47)
        assert calculate_final_sequence(players) == calculate_final_sequence(players)

    def test_no_players(self):
        with pytest.raises(ValueError):
            calculate_final_sequence([])

    def test_format(self):
        assert format_sequence([1, 2, 3, 4, 5, 6]) == "1-2-3-4-5-6"

    def test_validate_ignores_separators(self):
        assert validate_sequence("1-2-3 4-5-6", "123456")
        assert not validate_sequence("123457", "123456")
        assert not validate_sequence("", "")


class TestRefresh:
    """Tests for refresh_player() and refresh_session()."""

    def test_status_progression(self):
        player = _make_player()
        refresh_player(player)
        assert player.status == PlayerStatus.JOINED

        player.stages[Stage.DECODE].attempts = 1
        refresh_player(player)
        assert player.status == PlayerStatus.SOLVING

        _finish(player)
        refresh_player(player)
        assert player.status == PlayerStatus.COMPLETED
        assert player.total_score == 250 + 250 + 0 + 200

    def test_status_never_regresses(self):
        player = _make_player()
        player.status = PlayerStatus.COMPLETED
        refresh_player(player)
        assert player.status == PlayerStatus.COMPLETED

    def test_unlock_code_assigned_once(self):
        session = _make_session(players=[_make_player(0), _make_player(1)])
        _finish(session.players[0])
        assert refresh_session(session) is False
        assert session.final_unlock_code is None

        _finish(session.players[1])
        assert refresh_session(session) is True
        code = session.final_unlock_code
        assert code is not None and len(code) == 6

        # Scores change afterwards; the code does not
        session.players[0].skill_score = 99
        assert refresh_session(session) is False
        assert session.final_unlock_code == code
