"""Puzzle rules: answer checking, attempt caps, stage gating, and scores.

Every function here is pure. The owning session is passed in explicitly
wherever session-level overrides matter.
"""

from __future__ import annotations

import math

from config import (
    ATTEMPT_PENALTY,
    BONUS_SCORE,
    DEFAULT_GREEK_WORDS,
    DEFAULT_MAX_MEANING_ATTEMPTS,
    DEFAULT_MAX_MORSE_ATTEMPTS,
    DEFAULT_MORSE_WORDS,
    QUESTION_PENALTY_RATIO,
    STAGE_BASE_SCORE,
)
from models.session import (
    STAGE_ORDER,
    GamePhase,
    GameSession,
    GreekWord,
    MultipleChoiceQuestion,
    OpenResponseQuestion,
    Player,
    Question,
    Stage,
    TextQuestion,
)

_DEFAULT_GREEK = [GreekWord(**entry) for entry in DEFAULT_GREEK_WORDS]


def normalize_answer(answer: str) -> str:
    """Collapse case and surrounding/internal runs of whitespace."""
    return " ".join(answer.split()).casefold()


# ---------------------------------------------------------------------------
# Effective content (session override or default)
# ---------------------------------------------------------------------------


def effective_morse_words(session: GameSession) -> list[str]:
    if session.custom_morse_words:
        return session.custom_morse_words
    return DEFAULT_MORSE_WORDS


def effective_greek_words(session: GameSession) -> list[GreekWord]:
    if session.custom_greek_words:
        return session.custom_greek_words
    return _DEFAULT_GREEK


def _positive_or(value: int | None, default: int) -> int:
    if value is not None and value > 0:
        return value
    return default


def effective_max_attempts(session: GameSession, stage: Stage) -> int | None:
    """Attempt cap for a stage, or None for single-submission stages."""
    if stage == Stage.DECODE:
        return _positive_or(session.custom_max_morse_attempts, DEFAULT_MAX_MORSE_ATTEMPTS)
    if stage == Stage.TRANSLATE:
        return _positive_or(session.custom_max_meaning_attempts, DEFAULT_MAX_MEANING_ATTEMPTS)
    return None


def effective_oxygen_minutes(session: GameSession) -> int:
    return _positive_or(session.custom_oxygen_minutes, session.oxygen_minutes)


def has_custom_puzzles(session: GameSession) -> bool:
    return bool(
        session.custom_morse_words
        or session.custom_greek_words
        or session.custom_max_morse_attempts is not None
        or session.custom_max_meaning_attempts is not None
        or session.custom_oxygen_minutes is not None
    )


def assign_puzzle(session: GameSession, player_slot: int) -> tuple[str, int]:
    """Pick the morse word and Greek word index for a joining player.

    Args:
        session: The session being joined (its overrides apply).
        player_slot: The 0-based join position.

    Returns:
        (morse_word, greek_word_index), both ``player_slot mod length``.
    """
    words = effective_morse_words(session)
    greek = effective_greek_words(session)
    return words[player_slot % len(words)].upper(), player_slot % len(greek)


def assigned_greek_word(session: GameSession, player: Player) -> GreekWord:
    greek = effective_greek_words(session)
    return greek[player.greek_word_index % len(greek)]


def meaning_options(session: GameSession) -> list[str]:
    """All meanings offered as choices in the translate stage."""
    return [g.meaning for g in effective_greek_words(session)]


# ---------------------------------------------------------------------------
# Answer checking
# ---------------------------------------------------------------------------


def check_stage_answer(
    stage: Stage,
    answer: str,
    player: Player,
    session: GameSession,
) -> bool:
    """Check an answer for one of the answer-based built-in stages.

    Decode compares against the player's morse word; translate accepts the
    assigned word's meaning from the multiple-choice set.

    Raises:
        ValueError: For stages that take a score rather than an answer.
    """
    if stage == Stage.DECODE:
        return normalize_answer(answer) == normalize_answer(player.morse_word)
    if stage == Stage.TRANSLATE:
        accepted = {normalize_answer(assigned_greek_word(session, player).meaning)}
        return normalize_answer(answer) in accepted
    raise ValueError(f"Stage '{stage.value}' is not answer-checked")


def check_question_answer(question: Question, answer: str) -> bool:
    """Evaluate an answer against a custom question of any kind."""
    if isinstance(question, TextQuestion):
        return normalize_answer(answer) == normalize_answer(question.solution)
    if isinstance(question, MultipleChoiceQuestion):
        correct = {normalize_answer(o.text) for o in question.options if o.is_correct}
        return normalize_answer(answer) in correct
    if isinstance(question, OpenResponseQuestion):
        return True
    raise TypeError(f"Unknown question kind: {type(question).__name__}")


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def compute_stage_score(
    base_score: int,
    attempts_used: int,
    penalty: int = ATTEMPT_PENALTY,
) -> int:
    """Base score minus ``penalty`` per attempt beyond the first, floored at 0."""
    extra = max(0, attempts_used - 1)
    return max(0, base_score - extra * penalty)


def question_score(question: Question, attempts_used: int) -> int:
    if isinstance(question, OpenResponseQuestion):
        return question.points
    penalty = math.floor(question.points * QUESTION_PENALTY_RATIO)
    return compute_stage_score(question.points, attempts_used, penalty)


def stage_score(player: Player, stage: Stage) -> int:
    """Score currently earned on a stage; 0 unless it is completed and unlocked."""
    progress = player.stages[stage]
    if not progress.completed or not is_stage_unlocked(player, stage):
        return 0
    if stage in (Stage.DECODE, Stage.TRANSLATE):
        return compute_stage_score(STAGE_BASE_SCORE, progress.attempts)
    if stage == Stage.SKILL:
        return max(0, player.skill_score)
    return BONUS_SCORE


def total_score(player: Player) -> int:
    """Sum of completed stage and custom-question scores."""
    built_in = sum(stage_score(player, stage) for stage in STAGE_ORDER)
    custom = sum(p.score for p in player.question_progress.values() if p.completed)
    return built_in + custom


# ---------------------------------------------------------------------------
# Gating and completion
# ---------------------------------------------------------------------------


def is_stage_unlocked(player: Player, stage: Stage) -> bool:
    """A stage is open once every earlier stage is completed."""
    for earlier in STAGE_ORDER[:STAGE_ORDER.index(stage)]:
        if not player.stages[earlier].completed:
            return False
    return True


def current_stage(player: Player) -> Stage | None:
    for stage in STAGE_ORDER:
        if not player.stages[stage].completed:
            return stage
    return None


def find_question(session: GameSession, question_id: str) -> tuple[int, Question] | None:
    """Locate a question by id in the session's phases (in phase order)."""
    for index, phase in enumerate(ordered_phases(session)):
        for question in phase.questions:
            if question.id == question_id:
                return index, question
    return None


def ordered_phases(session: GameSession) -> list[GamePhase]:
    return sorted(session.phases, key=lambda p: p.order)


def is_question_unlocked(player: Player, session: GameSession, phase_index: int) -> bool:
    """Questions in a phase open once all earlier phases are completed."""
    for phase in ordered_phases(session)[:phase_index]:
        for question in phase.questions:
            progress = player.question_progress.get(question.id)
            if progress is None or not progress.completed:
                return False
    return True


def player_complete(player: Player) -> bool:
    return all(player.stages[stage].completed for stage in STAGE_ORDER)


def all_players_complete(session: GameSession) -> bool:
    """True iff the session has players and every one cleared every stage."""
    return bool(session.players) and all(player_complete(p) for p in session.players)
