"""Tests for stage and question submissions and the final escape."""

from datetime import datetime, timedelta, timezone

import pytest

from engine.lifecycle import refresh_session
from engine.progress import (
    attempt_escape,
    submit_bonus_answers,
    submit_question_answer,
    submit_skill_score,
    submit_stage_answer,
)
from errors import ConflictError, InvalidInputError, NotFoundError
from models.session import (
    GamePhase,
    GameSession,
    GreekWord,
    OpenResponseQuestion,
    Player,
    PlayerStatus,
    SessionStatus,
    Stage,
    TextQuestion,
)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _make_session(players: int = 1, **overrides) -> GameSession:
    """Helper to create an active session with players who solve 'SOS'/'soul'."""
    session = GameSession(
        id="s1",
        join_code="ABCDEF",
        owner_id="owner1",
        created_at=T0,
        start_time=T0,
        status=SessionStatus.ACTIVE,
        custom_greek_words=[GreekWord(word="PSYCHE", meaning="soul"), GreekWord(word="LOGOS", meaning="word")],
        **overrides,
    )
    for slot in range(players):
        session.players.append(Player(
            token=f"tok{slot}",
            name=f"P{slot}",
            player_slot=slot,
            morse_word="SOS",
            greek_word_index=0,
        ))
    return session


def _play_through(session: GameSession, player: Player, skill: int = 50) -> None:
    submit_stage_answer(session, player, Stage.DECODE, "sos", T0)
    submit_stage_answer(session, player, Stage.TRANSLATE, "soul", T0)
    submit_skill_score(session, player, skill, T0)
    submit_bonus_answers(session, player, True, False, T0)


class TestStageAnswer:
    """Tests for submit_stage_answer()."""

    def test_correct_first_try(self):
        session = _make_session()
        player = session.players[0]
        result = submit_stage_answer(session, player, Stage.DECODE, " sos ", T0)
        assert result.correct and result.completed
        assert result.attempts == 1
        assert result.max_attempts == 5
        assert result.score == 250
        assert result.score_delta == 250
        assert player.total_score == 250
        assert player.status == PlayerStatus.SOLVING

    def test_wrong_then_right_penalized(self):
        session = _make_session()
        player = session.players[0]
        wrong = submit_stage_answer(session, player, Stage.DECODE, "SOX", T0)
        assert not wrong.correct
        assert wrong.score_delta == 0
        assert player.status == PlayerStatus.SOLVING
        right = submit_stage_answer(session, player, Stage.DECODE, "SOS", T0)
        assert right.score == 200
        assert right.score_delta == 200

    def test_exhaustion_is_idempotent(self):
        session = _make_session()
        player = session.players[0]
        for _ in range(5):
            submit_stage_answer(session, player, Stage.DECODE, "WRONG", T0)
        assert player.stages[Stage.DECODE].attempts == 5

        for answer in ("WRONG", "SOS", "SOS"):
            result = submit_stage_answer(session, player, Stage.DECODE, answer, T0)
            assert result.correct is False
            assert result.completed is False
            assert result.attempts == 5
        assert player.stages[Stage.DECODE].attempts == 5
        assert not player.stages[Stage.DECODE].completed

    def test_custom_attempt_cap(self):
        session = _make_session(custom_max_morse_attempts=2)
        player = session.players[0]
        submit_stage_answer(session, player, Stage.DECODE, "X", T0)
        result = submit_stage_answer(session, player, Stage.DECODE, "X", T0)
        assert result.max_attempts == 2
        assert result.feedback == "Incorrect. No attempts left"

    def test_completed_stage_not_resubmitted(self):
        session = _make_session()
        player = session.players[0]
        submit_stage_answer(session, player, Stage.DECODE, "SOS", T0)
        result = submit_stage_answer(session, player, Stage.DECODE, "WRONG", T0)
        assert result.completed and result.correct
        assert player.stages[Stage.DECODE].attempts == 1

    def test_out_of_order_rejected_without_mutation(self):
        session = _make_session()
        player = session.players[0]
        with pytest.raises(ConflictError, match="locked"):
            submit_stage_answer(session, player, Stage.TRANSLATE, "soul", T0)
        assert player.stages[Stage.TRANSLATE].attempts == 0

    def test_score_stage_needs_score(self):
        session = _make_session()
        with pytest.raises(InvalidInputError):
            submit_stage_answer(session, session.players[0], Stage.SKILL, "10", T0)

    def test_expired_session_rejected(self):
        session = _make_session(custom_oxygen_minutes=1)
        with pytest.raises(ConflictError, match="Oxygen"):
            submit_stage_answer(session, session.players[0], Stage.DECODE, "SOS", T0 + timedelta(minutes=2))

    def test_completed_session_rejected(self):
        session = _make_session()
        session.status = SessionStatus.COMPLETED
        with pytest.raises(ConflictError):
            submit_stage_answer(session, session.players[0], Stage.DECODE, "SOS", T0)


class TestSkillAndBonus:
    """Tests for submit_skill_score() and submit_bonus_answers()."""

    def test_skill_requires_translate(self):
        session = _make_session()
        player = session.players[0]
        submit_stage_answer(session, player, Stage.DECODE, "SOS", T0)
        with pytest.raises(ConflictError):
            submit_skill_score(session, player, 80, T0)

    def test_skill_negative_rejected(self):
        session = _make_session()
        with pytest.raises(InvalidInputError):
            submit_skill_score(session, session.players[0], -1, T0)

    def test_skill_once(self):
        session = _make_session()
        player = session.players[0]
        submit_stage_answer(session, player, Stage.DECODE, "SOS", T0)
        submit_stage_answer(session, player, Stage.TRANSLATE, "soul", T0)
        result = submit_skill_score(session, player, 80, T0)
        assert result.score_delta == 80
        with pytest.raises(ConflictError):
            submit_skill_score(session, player, 500, T0)
        assert player.skill_score == 80

    def test_bonus_completes_player(self):
        session = _make_session()
        player = session.players[0]
        _play_through(session, player, skill=50)
        assert player.status == PlayerStatus.COMPLETED
        assert player.total_score == 250 + 250 + 50 + 200
        assert session.final_unlock_code is not None


class TestUnlockCode:
    """Tests for the unlock code and attempt_escape()."""

    def test_assigned_when_last_player_finishes(self):
        session = _make_session(players=2)
        _play_through(session, session.players[0])
        assert session.final_unlock_code is None
        _play_through(session, session.players[1], skill=70)
        code = session.final_unlock_code
        assert code is not None

        refresh_session(session)
        assert session.final_unlock_code == code

    def test_escape(self):
        session = _make_session()
        assert attempt_escape(session, "000000") is False
        _play_through(session, session.players[0])
        code = session.final_unlock_code
        dashed = "-".join(code)
        assert attempt_escape(session, dashed) is True
        assert attempt_escape(session, "999999" if code != "999999" else "000000") is False


class TestQuestions:
    """Tests for submit_question_answer()."""

    def _session(self) -> GameSession:
        return _make_session(phases=[
            GamePhase(id="p1", name="Warmup", order=1, questions=[
                TextQuestion(id="q1", solution="mars", points=100, max_attempts=3),
            ]),
            GamePhase(id="p2", name="Reflection", order=2, questions=[
                OpenResponseQuestion(id="q2", points=40),
            ]),
        ])

    def test_scoring_with_penalty(self):
        session = self._session()
        player = session.players[0]
        submit_question_answer(session, player, "q1", "venus", T0)
        result = submit_question_answer(session, player, "q1", "Mars", T0)
        assert result.correct and result.completed
        assert result.score == 90
        assert player.total_score == 90

    def test_later_phase_locked(self):
        session = self._session()
        with pytest.raises(ConflictError):
            submit_question_answer(session, session.players[0], "q2", "thoughts", T0)

    def test_open_response_full_points(self):
        session = self._session()
        player = session.players[0]
        submit_question_answer(session, player, "q1", "mars", T0)
        result = submit_question_answer(session, player, "q2", "It was hard", T0)
        assert result.score == 40
        assert player.total_score == 140

    def test_attempt_cap(self):
        session = self._session()
        player = session.players[0]
        for _ in range(3):
            submit_question_answer(session, player, "q1", "pluto", T0)
        result = submit_question_answer(session, player, "q1", "mars", T0)
        assert not result.completed
        assert result.attempts == 3

    def test_unknown_question(self):
        session = self._session()
        with pytest.raises(NotFoundError):
            submit_question_answer(session, session.players[0], "nope", "x", T0)
