"""Combat orchestration: lobby, room progression, shots, clues, win conditions.

Time only moves through :func:`advance`, which is called with an explicit
``now`` at the start of every request that touches a combat session.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime
from uuid import uuid4

from config import (
    ARENA_HEIGHT,
    ARENA_WIDTH,
    HITBOX_RADIUS,
    PLAYER_AMMO,
    PLAYER_HEALTH,
    SHOT_DAMAGE,
)
from engine.monsters import (
    clamp_to_arena,
    create_boss,
    create_monster,
    distance,
    random_spawn_position,
    tick_monster,
    update_boss_phase,
)
from engine.puzzles import normalize_answer
from engine.rooms import boss_for, get_room_config, scaled_spawns
from errors import (
    ConflictError,
    GameCompleted,
    GameFull,
    GameInProgress,
    InvalidInputError,
)
from models.actions import AdminAction, ClueResult, ShotResult
from models.combat import (
    ROOM_ORDER,
    CombatConfig,
    CombatPhase,
    CombatPlayer,
    CombatPlayerStatus,
    CombatSession,
    Monster,
    Position,
)
from models.session import SessionStatus

logger = logging.getLogger(__name__)

TERMINAL_PHASES = (CombatPhase.VICTORY, CombatPhase.DEFEAT)


def create_combat_session(
    session_id: str,
    join_code: str,
    owner_id: str,
    config: CombatConfig,
    now: datetime,
) -> CombatSession:
    """Initialize a combat session in its lobby phase.

    Args:
        session_id: Unique identifier for the session.
        join_code: Code players join with.
        owner_id: Administrator who may run admin actions on it.
        config: Difficulty and tuning.
        now: Creation time.

    Returns:
        A fresh CombatSession ready for players to join.
    """
    return CombatSession(
        id=session_id,
        join_code=join_code,
        owner_id=owner_id,
        config=config,
        oxygen_remaining_ms=config.oxygen_minutes * 60 * 1000,
        last_update=now,
        created_at=now,
    )


def is_over(session: CombatSession) -> bool:
    return session.phase in TERMINAL_PHASES


def add_player(session: CombatSession, token: str, name: str, now: datetime) -> CombatPlayer:
    """Add a player to a combat session still in its lobby.

    Raises:
        GameCompleted: The session has ended.
        GameInProgress: Combat has already started.
        GameFull: The configured player limit is reached.
    """
    if session.status == SessionStatus.COMPLETED or is_over(session):
        raise GameCompleted()
    if session.phase != CombatPhase.WAITING:
        raise GameInProgress()
    if len(session.players) >= session.config.max_players:
        raise GameFull(session.config.max_players)

    number = len(session.players) + 1
    player = CombatPlayer(
        id=str(uuid4()),
        token=token,
        name=name,
        player_number=number,
        position=Position(x=100 + number * 50, y=400),
        joined_at=now,
        last_sync_at=now,
    )
    session.players.append(player)
    return player


def start_combat(session: CombatSession, now: datetime, rng: random.Random | None = None) -> None:
    """Leave the lobby and spawn the first room.

    Raises:
        ConflictError: Combat already started, or nobody has joined.
    """
    if session.phase != CombatPhase.WAITING:
        raise ConflictError("Combat has already started")
    if not session.players:
        raise ConflictError("Need at least 1 player to start combat")

    for player in session.players:
        player.status = CombatPlayerStatus.ALIVE
        player.health = PLAYER_HEALTH
        player.ammo = PLAYER_AMMO
    session.status = SessionStatus.ACTIVE
    session.start_time = now
    session.last_update = now
    session.current_room_index = 0
    spawn_room_monsters(session, now, rng)
    logger.info("Combat started in session %s with %d players", session.id, len(session.players))


def spawn_room_monsters(session: CombatSession, now: datetime, rng: random.Random | None = None) -> None:
    """Replace the monster roster with a fresh one for the current room.

    Counts scale with difficulty and tiers are capped by the session's
    ``max_monster_tier``; a configured boss is added on top, uncapped.
    """
    rng = rng or random.Random()
    room = session.current_room
    config = session.config
    monsters: list[Monster] = []

    for spawn in scaled_spawns(room, config.difficulty, config.max_monster_tier):
        for _ in range(spawn.count):
            monsters.append(create_monster(
                _next_monster_id(session),
                spawn.type,
                spawn.tier,
                config,
                random_spawn_position(rng),
            ))

    boss_name = boss_for(room, config.difficulty)
    if boss_name is not None:
        monsters.append(create_boss(
            _next_monster_id(session),
            boss_name,
            config,
            Position(x=ARENA_WIDTH * 0.75, y=ARENA_HEIGHT / 2),
        ))

    session.monsters = monsters
    session.boss_active = boss_name is not None
    session.room_started_at = now
    session.clue_solved = False
    session.clue_attempts = 0
    session.phase = CombatPhase.ROOM_CLEARING


def _next_monster_id(session: CombatSession) -> str:
    session.next_monster_number += 1
    return f"{session.current_room.value.lower()}-{session.next_monster_number}"


# ---------------------------------------------------------------------------
# Pull tick
# ---------------------------------------------------------------------------


def advance(session: CombatSession, now: datetime, rng: random.Random | None = None) -> None:
    """Bring a combat session up to ``now``.

    Drains oxygen by the wall-clock time since ``last_update``, runs monster
    behaviour for that interval, and resolves room clears and terminal
    conditions. Calling it again for the same instant changes nothing.
    While paused, only ``last_update`` moves.

    Args:
        session: Combat session (mutated in place).
        now: Current time; earlier than ``last_update`` is a no-op.
        rng: Randomness for any spawns this call triggers.
    """
    elapsed_ms = (now - session.last_update).total_seconds() * 1000
    if elapsed_ms <= 0:
        return
    session.last_update = now
    if session.paused or session.phase == CombatPhase.WAITING or is_over(session):
        return

    session.oxygen_remaining_ms = max(0.0, session.oxygen_remaining_ms - elapsed_ms)
    for player in session.players:
        if player.status == CombatPlayerStatus.ALIVE:
            player.time_spent_ms += elapsed_ms
    if check_terminal(session):
        return

    if session.phase == CombatPhase.ROOM_CLEARING:
        for monster in session.monsters:
            tick_monster(monster, session.players, elapsed_ms)
        _resolve_room(session, now, rng)


def check_terminal(session: CombatSession) -> bool:
    """Enter defeat if oxygen has run out. Returns True once the game is over."""
    if is_over(session):
        return True
    if session.oxygen_remaining_ms <= 0:
        end_game(session, victory=False)
        return True
    return False


def end_game(session: CombatSession, victory: bool) -> None:
    """Set the one-way victory or defeat outcome. Survivors escape on victory."""
    if is_over(session):
        return
    session.victory = victory
    session.defeat = not victory
    session.phase = CombatPhase.VICTORY if victory else CombatPhase.DEFEAT
    session.status = SessionStatus.COMPLETED
    session.paused = False
    if victory:
        session.completed_rooms.append(session.current_room)
        for player in session.players:
            if player.status == CombatPlayerStatus.ALIVE:
                player.status = CombatPlayerStatus.ESCAPED
    logger.info("Session %s ended in %s", session.id, session.phase.value)


def _resolve_room(session: CombatSession, now: datetime, rng: random.Random | None) -> None:
    """Move on once the current room has no monsters left."""
    if session.phase != CombatPhase.ROOM_CLEARING or session.monsters:
        return
    room_config = get_room_config(session.current_room)
    if session.current_room_index < len(ROOM_ORDER) - 1:
        transition_room(session, now, rng)
    elif room_config.requires_clue and not session.clue_solved:
        session.phase = CombatPhase.CLUE_DECODING
    else:
        end_game(session, victory=True)


def transition_room(session: CombatSession, now: datetime, rng: random.Random | None = None) -> None:
    """Record the current room as cleared and spawn the next one.

    Raises:
        ConflictError: Already in the final room.
    """
    if session.current_room_index >= len(ROOM_ORDER) - 1:
        raise ConflictError("Already in the final room")
    session.completed_rooms.append(session.current_room)
    session.current_room_index += 1
    spawn_room_monsters(session, now, rng)
    logger.info("Session %s entered room %s", session.id, session.current_room.value)


# ---------------------------------------------------------------------------
# Player actions
# ---------------------------------------------------------------------------


def _require_playable(session: CombatSession) -> None:
    if is_over(session):
        raise GameCompleted()
    if session.phase == CombatPhase.WAITING:
        raise ConflictError("Combat has not started")
    if session.paused:
        raise ConflictError("Game is paused")


def _require_alive(player: CombatPlayer) -> None:
    if player.status != CombatPlayerStatus.ALIVE:
        raise ConflictError(f"Player is {player.status.value}")


def move_player(session: CombatSession, player: CombatPlayer, position: Position) -> None:
    """Move a living player, clamped to the arena."""
    _require_playable(session)
    _require_alive(player)
    player.position = clamp_to_arena(position)


def reload(session: CombatSession, player: CombatPlayer) -> None:
    _require_playable(session)
    _require_alive(player)
    player.ammo = PLAYER_AMMO


def _monster_at(session: CombatSession, target: Position) -> Monster | None:
    """Nearest monster whose hitbox contains the target point."""
    hits = [
        m for m in session.monsters
        if distance(m.position, target) <= HITBOX_RADIUS * m.size
    ]
    if not hits:
        return None
    return min(hits, key=lambda m: distance(m.position, target))


def player_shoot(
    session: CombatSession,
    player: CombatPlayer,
    target: Position,
    now: datetime,
    rng: random.Random | None = None,
) -> ShotResult:
    """Fire one round at a point in the arena.

    Args:
        session: Combat session (mutated in place).
        player: The shooter.
        target: Aim point.
        now: Time of the shot, used if the shot clears the room.
        rng: Randomness for the next room's spawns.

    Returns:
        The shot outcome.

    Raises:
        ConflictError: Paused, not started, shooter not alive, or no ammo.
        GameCompleted: The game has ended.
    """
    _require_playable(session)
    _require_alive(player)
    if player.ammo <= 0:
        raise ConflictError("Out of ammo")

    player.ammo -= 1
    player.total_shots += 1
    session.room_stats.shots_fired += 1

    monster = _monster_at(session, target)
    if monster is None:
        _update_accuracy(player)
        return ShotResult(hit=False)

    damage = min(SHOT_DAMAGE, monster.health)
    monster.health -= damage
    player.successful_shots += 1
    player.damage_dealt += damage
    session.room_stats.shots_hit += 1
    session.room_stats.damage_dealt += damage
    _update_accuracy(player)

    if update_boss_phase(monster):
        logger.info("Boss %s entered phase %d", monster.boss_name, monster.boss_phase)

    killed = monster.health <= 0
    if killed:
        _record_kill(session, player, monster)
        _resolve_room(session, now, rng)

    return ShotResult(
        hit=True,
        damage=damage,
        target_id=monster.id,
        killed=killed,
        boss_phase=monster.boss_phase,
    )


def _update_accuracy(player: CombatPlayer) -> None:
    player.accuracy = player.successful_shots / player.total_shots if player.total_shots else 0.0


def _record_kill(session: CombatSession, player: CombatPlayer, monster: Monster) -> None:
    session.monsters = [m for m in session.monsters if m.id != monster.id]
    tier_field = f"tier{monster.tier}"
    setattr(player.kills, tier_field, getattr(player.kills, tier_field) + 1)
    player.kills.total += 1
    session.total_kills += 1
    session.room_stats.monsters_killed[monster.tier] = (
        session.room_stats.monsters_killed.get(monster.tier, 0) + 1
    )
    if monster.is_boss:
        session.boss_active = any(m.is_boss for m in session.monsters)


def submit_clue_answer(session: CombatSession, answer: str) -> ClueResult:
    """Check an answer to the current room's clue.

    The first correct answer grants the room's oxygen reward. A solved clue
    or an exhausted attempt pool returns without consuming anything. In the
    final room a correct answer after the monsters are gone wins the game.

    Raises:
        ConflictError: Paused or not started.
        GameCompleted: The game has ended.
    """
    _require_playable(session)
    clue = get_room_config(session.current_room).clue
    if session.clue_solved or session.clue_attempts >= clue.max_attempts:
        return ClueResult(
            correct=session.clue_solved,
            attempts=session.clue_attempts,
            max_attempts=clue.max_attempts,
            clue_solved=session.clue_solved,
        )

    session.clue_attempts += 1
    correct = normalize_answer(answer) == normalize_answer(clue.answer)
    bonus_ms = 0
    if correct:
        session.clue_solved = True
        bonus_ms = get_room_config(session.current_room).oxygen_reward_seconds * 1000
        session.oxygen_remaining_ms += bonus_ms
        if session.phase == CombatPhase.CLUE_DECODING:
            end_game(session, victory=True)

    return ClueResult(
        correct=correct,
        attempts=session.clue_attempts,
        max_attempts=clue.max_attempts,
        clue_solved=session.clue_solved,
        oxygen_bonus_ms=bonus_ms,
    )


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------


def apply_admin_action(
    session: CombatSession,
    action: AdminAction,
    now: datetime,
    seconds: float | None = None,
    rng: random.Random | None = None,
) -> str:
    """Run a privileged action on a combat session already advanced to ``now``.

    Session deletion is handled by the store, not here.

    Returns:
        A short description of what happened.

    Raises:
        ConflictError: The action does not apply in the current phase.
        InvalidInputError: Missing ``seconds`` or an unsupported action.
    """
    if action == AdminAction.START:
        start_combat(session, now, rng)
        return "Combat started"

    if is_over(session):
        raise GameCompleted()

    if action == AdminAction.PAUSE:
        if session.paused:
            raise ConflictError("Game is already paused")
        session.paused = True
        return "Game paused"

    if action == AdminAction.RESUME:
        if not session.paused:
            raise ConflictError("Game is not paused")
        session.paused = False
        session.last_update = now
        return "Game resumed"

    if action == AdminAction.ADJUST_OXYGEN:
        if seconds is None:
            raise InvalidInputError("adjust_oxygen needs 'seconds'")
        session.oxygen_remaining_ms = max(0.0, session.oxygen_remaining_ms + seconds * 1000)
        check_terminal(session)
        return f"Oxygen adjusted by {seconds:g}s"

    if action == AdminAction.FORCE_VICTORY:
        end_game(session, victory=True)
        return "Victory forced"

    if action == AdminAction.FORCE_DEFEAT:
        end_game(session, victory=False)
        return "Defeat forced"

    if session.phase == CombatPhase.WAITING:
        raise ConflictError("Combat has not started")

    if action == AdminAction.SKIP_ROOM:
        transition_room(session, now, rng)
        return f"Skipped to {session.current_room.value}"

    if action == AdminAction.REVEAL_CLUE:
        clue = get_room_config(session.current_room).clue
        session.clue_solved = True
        if session.phase == CombatPhase.CLUE_DECODING:
            end_game(session, victory=True)
        return f"Clue answer: {clue.answer}"

    raise InvalidInputError(f"Unsupported action: {action.value}")
