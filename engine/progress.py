"""Player progress: stage and question submissions, and the final escape.

Each function validates first and raises before touching state, then
applies the change and refreshes the session's derived fields. Callers run
them inside a store transaction.
"""

from __future__ import annotations

from datetime import datetime

from engine.lifecycle import is_expired, refresh_session, validate_sequence
from engine.puzzles import (
    check_question_answer,
    check_stage_answer,
    effective_max_attempts,
    find_question,
    is_question_unlocked,
    is_stage_unlocked,
    question_score,
    stage_score,
)
from errors import ConflictError, InvalidInputError, NotFoundError
from models.actions import StageResult
from models.session import (
    GameSession,
    OpenResponseQuestion,
    Player,
    QuestionProgress,
    SessionStatus,
    Stage,
)


def _require_open(session: GameSession, now: datetime | None) -> None:
    if session.status == SessionStatus.COMPLETED:
        raise ConflictError("This game has already ended")
    if is_expired(session, now):
        raise ConflictError("Oxygen has run out")


def _require_unlocked(player: Player, stage: Stage) -> None:
    if not is_stage_unlocked(player, stage):
        raise ConflictError(f"Stage '{stage.value}' is locked until earlier stages are completed")


def submit_stage_answer(
    session: GameSession,
    player: Player,
    stage: Stage,
    answer: str,
    now: datetime | None = None,
) -> StageResult:
    """Submit an answer for the decode or translate stage.

    Once the attempt cap is reached, or the stage is already completed,
    the call reports the current state and changes nothing.

    Args:
        session: Owning session (mutated in place).
        player: The submitting player.
        stage: ``decode`` or ``translate``.
        answer: Free text for decode; the chosen meaning for translate.
        now: Submission time, for the oxygen check.

    Returns:
        The outcome, including the change in total score.

    Raises:
        InvalidInputError: The stage takes a score, not an answer.
        ConflictError: Stage locked, session ended, or oxygen expired.
    """
    if stage not in (Stage.DECODE, Stage.TRANSLATE):
        raise InvalidInputError(f"Stage '{stage.value}' does not take an answer")
    _require_open(session, now)
    _require_unlocked(player, stage)

    progress = player.stages[stage]
    max_attempts = effective_max_attempts(session, stage)
    if progress.completed or progress.attempts >= max_attempts:
        return StageResult(
            correct=progress.completed,
            completed=progress.completed,
            attempts=progress.attempts,
            max_attempts=max_attempts,
            score=stage_score(player, stage),
            feedback="Stage already completed" if progress.completed else "No attempts left",
        )

    before = player.total_score
    correct = check_stage_answer(stage, answer, player, session)
    progress.attempts += 1
    if correct:
        progress.completed = True
    refresh_session(session)

    remaining = max_attempts - progress.attempts
    if correct:
        feedback = "Correct!"
    elif remaining:
        feedback = f"Incorrect. {remaining} attempts left"
    else:
        feedback = "Incorrect. No attempts left"
    return StageResult(
        correct=correct,
        completed=progress.completed,
        attempts=progress.attempts,
        max_attempts=max_attempts,
        score_delta=player.total_score - before,
        score=stage_score(player, stage),
        feedback=feedback,
    )


def submit_skill_score(
    session: GameSession,
    player: Player,
    score: int,
    now: datetime | None = None,
) -> StageResult:
    """Record the mini-game score. Accepted once, after translate.

    Raises:
        InvalidInputError: Negative score.
        ConflictError: Stage locked or already submitted, session ended.
    """
    if score < 0:
        raise InvalidInputError("Score must be non-negative")
    _require_open(session, now)
    _require_unlocked(player, Stage.SKILL)
    progress = player.stages[Stage.SKILL]
    if progress.completed:
        raise ConflictError("Skill score already submitted")

    before = player.total_score
    player.skill_score = score
    progress.attempts = 1
    progress.completed = True
    refresh_session(session)
    return StageResult(
        correct=True,
        completed=True,
        attempts=1,
        score_delta=player.total_score - before,
        score=stage_score(player, Stage.SKILL),
        feedback="Score recorded",
    )


def submit_bonus_answers(
    session: GameSession,
    player: Player,
    q1_correct: bool,
    q2_correct: bool,
    now: datetime | None = None,
) -> StageResult:
    """Record the two bonus answers, completing the player's built-in stages.

    Raises:
        ConflictError: Stage locked or already submitted, session ended.
    """
    _require_open(session, now)
    _require_unlocked(player, Stage.BONUS)
    progress = player.stages[Stage.BONUS]
    if progress.completed:
        raise ConflictError("Bonus answers already submitted")

    before = player.total_score
    player.bonus_q1_correct = q1_correct
    player.bonus_q2_correct = q2_correct
    progress.attempts = 1
    progress.completed = True
    refresh_session(session)
    return StageResult(
        correct=q1_correct and q2_correct,
        completed=True,
        attempts=1,
        score_delta=player.total_score - before,
        score=stage_score(player, Stage.BONUS),
        feedback="All stages complete" if session.final_unlock_code else "Bonus recorded",
    )


def submit_question_answer(
    session: GameSession,
    player: Player,
    question_id: str,
    answer: str,
    now: datetime | None = None,
) -> StageResult:
    """Answer one of the session's custom questions.

    Raises:
        NotFoundError: No question with this id.
        ConflictError: An earlier phase is incomplete, or the session ended.
    """
    found = find_question(session, question_id)
    if found is None:
        raise NotFoundError(f"Question '{question_id}' not found")
    phase_index, question = found
    _require_open(session, now)
    if not is_question_unlocked(player, session, phase_index):
        raise ConflictError("Complete the earlier phases first")

    progress = player.question_progress.get(question_id, QuestionProgress())
    if progress.completed or (question.max_attempts and progress.attempts >= question.max_attempts):
        return StageResult(
            correct=progress.correct,
            completed=progress.completed,
            attempts=progress.attempts,
            max_attempts=question.max_attempts,
            score=progress.score,
            feedback="Question already completed" if progress.completed else "No attempts left",
        )

    before = player.total_score
    correct = check_question_answer(question, answer)
    progress.attempts += 1
    if correct:
        progress.correct = True
        progress.completed = True
        progress.score = question_score(question, progress.attempts)
    player.question_progress[question_id] = progress
    refresh_session(session)

    if isinstance(question, OpenResponseQuestion):
        feedback = "Response recorded"
    else:
        feedback = "Correct!" if correct else "Incorrect"
    return StageResult(
        correct=correct,
        completed=progress.completed,
        attempts=progress.attempts,
        max_attempts=question.max_attempts,
        score_delta=player.total_score - before,
        score=progress.score,
        feedback=feedback,
    )


def attempt_escape(session: GameSession, sequence: str) -> bool:
    """Check a typed final sequence. False until the code has been assigned."""
    if session.final_unlock_code is None:
        return False
    return validate_sequence(sequence, session.final_unlock_code)
