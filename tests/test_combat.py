"""Tests for combat orchestration: lobby, rooms, shots, clues, the pull tick."""

import math
import random
from datetime import datetime, timedelta, timezone

import pytest

from engine.combat import (
    add_player,
    advance,
    apply_admin_action,
    create_combat_session,
    player_shoot,
    reload,
    start_combat,
    submit_clue_answer,
)
from engine.monsters import create_monster, distance
from engine.rooms import ROOM_CONFIGS, boss_for, scaled_spawns
from errors import ConflictError, GameCompleted, GameFull, GameInProgress, InvalidInputError
from models.actions import AdminAction
from models.combat import (
    CombatConfig,
    CombatPhase,
    CombatPlayerStatus,
    CombatSession,
    Difficulty,
    MonsterType,
    Position,
    Room,
)
from models.session import SessionStatus

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _make_session(players: int = 1, **config) -> CombatSession:
    """Helper to create a combat session with players in the lobby."""
    session = create_combat_session("c1", "QWERTY", "owner1", CombatConfig(**config), T0)
    for i in range(players):
        add_player(session, f"tok{i}", f"P{i}", T0)
    return session


def _started(players: int = 1, **config) -> CombatSession:
    session = _make_session(players, **config)
    start_combat(session, T0, random.Random(3))
    return session


def _crawler(session: CombatSession, monster_id: str, x: float, y: float = 300):
    return create_monster(monster_id, MonsterType.CRAWLER, 1, session.config, Position(x=x, y=y))


def _kill(session: CombatSession, monster, when: datetime = T0) -> None:
    """Shoot a monster until it dies."""
    shooter = session.players[0]
    target = monster.position.model_copy()
    while any(m.id == monster.id for m in session.monsters):
        player_shoot(session, shooter, target, when, random.Random(5))


class TestLobby:
    """Tests for add_player() and start_combat()."""

    def test_players_numbered_in_order(self):
        session = _make_session(players=3)
        assert [p.player_number for p in session.players] == [1, 2, 3]
        assert all(p.status == CombatPlayerStatus.JOINED for p in session.players)

    def test_full(self):
        session = _make_session(players=1, max_players=1)
        with pytest.raises(GameFull):
            add_player(session, "tok9", "Late", T0)

    def test_join_after_start(self):
        session = _started()
        with pytest.raises(GameInProgress):
            add_player(session, "tok9", "Late", T0)

    def test_join_after_end(self):
        session = _started()
        apply_admin_action(session, AdminAction.FORCE_DEFEAT, T0)
        with pytest.raises(GameCompleted):
            add_player(session, "tok9", "Late", T0)

    def test_start_needs_players(self):
        session = _make_session(players=0)
        with pytest.raises(ConflictError):
            start_combat(session, T0)

    def test_start_spawns_first_room(self):
        session = _started(players=2)
        assert session.phase == CombatPhase.ROOM_CLEARING
        assert session.status == SessionStatus.ACTIVE
        assert session.current_room == Room.CRYO_BAY
        assert len(session.monsters) == 5
        assert all(p.status == CombatPlayerStatus.ALIVE for p in session.players)
        assert len({m.id for m in session.monsters}) == 5

    def test_start_twice(self):
        session = _started()
        with pytest.raises(ConflictError):
            start_combat(session, T0)


class TestRoomProgression:
    """Tests for clearing rooms by shooting."""

    def test_clearing_three_monsters_advances_one_room(self):
        session = _started()
        monsters = [_crawler(session, f"m{i}", x) for i, x in enumerate((600, 700, 800))]
        session.monsters = list(monsters)

        for monster in monsters[:2]:
            _kill(session, monster)
        assert session.current_room_index == 0
        assert len(session.monsters) == 1

        _kill(session, monsters[2])
        assert session.current_room_index == 1
        assert session.current_room == Room.MED_BAY
        assert session.completed_rooms == [Room.CRYO_BAY]
        assert session.phase == CombatPhase.ROOM_CLEARING
        assert len(session.monsters) == 7
        assert not {m.id for m in session.monsters} & {m.id for m in monsters}

    def test_kills_and_damage_counted(self):
        session = _started()
        monster = _crawler(session, "m0", 600)
        session.monsters = [monster, _crawler(session, "m1", 800)]
        _kill(session, monster)
        player = session.players[0]
        assert player.kills.tier1 == 1
        assert player.kills.total == 1
        assert player.damage_dealt == 50
        assert session.total_kills == 1
        assert session.room_stats.monsters_killed[1] == 1

    def test_final_room_waits_for_clue(self):
        session = _started()
        session.current_room_index = 4
        monster = _crawler(session, "m0", 600)
        session.monsters = [monster]
        _kill(session, monster)
        assert session.phase == CombatPhase.CLUE_DECODING
        assert not session.victory

        result = submit_clue_answer(session, " void ")
        assert result.correct
        assert session.phase == CombatPhase.VICTORY
        assert session.status == SessionStatus.COMPLETED
        assert session.players[0].status == CombatPlayerStatus.ESCAPED
        assert Room.COMMAND_CENTER in session.completed_rooms

    def test_final_clue_first_then_clear_wins(self):
        session = _started()
        session.current_room_index = 4
        monster = _crawler(session, "m0", 600)
        session.monsters = [monster]
        submit_clue_answer(session, "VOID")
        assert session.phase == CombatPhase.ROOM_CLEARING
        _kill(session, monster)
        assert session.phase == CombatPhase.VICTORY


class TestShooting:
    """Tests for player_shoot() and reload()."""

    def test_accuracy(self):
        session = _started()
        monster = _crawler(session, "m0", 600)
        session.monsters = [monster, _crawler(session, "m1", 800)]
        player = session.players[0]

        hit = player_shoot(session, player, Position(x=600, y=300), T0)
        miss = player_shoot(session, player, Position(x=300, y=100), T0)
        assert hit.hit and hit.damage == 25 and hit.target_id == "m0"
        assert not miss.hit
        assert player.total_shots == 2
        assert player.successful_shots == 1
        assert player.accuracy == 0.5
        assert player.ammo == 28

    def test_out_of_ammo_then_reload(self):
        session = _started()
        player = session.players[0]
        player.ammo = 0
        with pytest.raises(ConflictError, match="ammo"):
            player_shoot(session, player, Position(x=300, y=100), T0)
        reload(session, player)
        assert player.ammo == 30

    def test_dead_player_cannot_shoot(self):
        session = _started()
        player = session.players[0]
        player.status = CombatPlayerStatus.DEAD
        with pytest.raises(ConflictError):
            player_shoot(session, player, Position(x=300, y=100), T0)

    def test_no_shooting_while_paused(self):
        session = _started()
        apply_admin_action(session, AdminAction.PAUSE, T0)
        with pytest.raises(ConflictError, match="paused"):
            player_shoot(session, session.players[0], Position(x=300, y=100), T0)


class TestAdvance:
    """Tests for the pull tick."""

    def test_drains_oxygen_by_elapsed_time(self):
        session = _started()
        before = session.oxygen_remaining_ms
        advance(session, T0 + timedelta(seconds=10))
        assert session.oxygen_remaining_ms == before - 10_000
        assert session.players[0].time_spent_ms == 10_000

    def test_same_instant_is_idempotent(self):
        session = _started()
        later = T0 + timedelta(seconds=3)
        advance(session, later)
        snapshot = session.model_dump()
        advance(session, later)
        assert session.model_dump() == snapshot

    def test_earlier_instant_is_noop(self):
        session = _started()
        advance(session, T0 + timedelta(seconds=5))
        oxygen = session.oxygen_remaining_ms
        advance(session, T0 + timedelta(seconds=1))
        assert session.oxygen_remaining_ms == oxygen

    def test_oxygen_exhaustion_is_defeat(self):
        session = _started()
        advance(session, T0 + timedelta(minutes=16))
        assert session.oxygen_remaining_ms == 0
        assert session.phase == CombatPhase.DEFEAT
        assert session.defeat and not session.victory
        assert session.status == SessionStatus.COMPLETED

    def test_lobby_does_not_drain(self):
        session = _make_session()
        before = session.oxygen_remaining_ms
        advance(session, T0 + timedelta(minutes=30))
        assert session.oxygen_remaining_ms == before
        assert session.phase == CombatPhase.WAITING

    def test_pause_freezes_oxygen(self):
        session = _started()
        apply_admin_action(session, AdminAction.PAUSE, T0)
        before = session.oxygen_remaining_ms
        advance(session, T0 + timedelta(minutes=5))
        assert session.oxygen_remaining_ms == before

        apply_admin_action(session, AdminAction.RESUME, T0 + timedelta(minutes=5))
        advance(session, T0 + timedelta(minutes=5, seconds=10))
        assert session.oxygen_remaining_ms == before - 10_000

    def test_movement_scales_with_elapsed_time(self):
        session = _started()
        player = session.players[0]
        monster = _crawler(session, "m0", 600)
        session.monsters = [monster]
        start_gap = distance(monster.position, player.position)

        advance(session, T0 + timedelta(seconds=1))
        assert distance(monster.position, player.position) == pytest.approx(start_gap - 30)

        advance(session, T0 + timedelta(seconds=3))
        assert distance(monster.position, player.position) == pytest.approx(start_gap - 90)

    def test_split_ticks_match_single_tick(self):
        one = _started()
        two = _started()
        for session in (one, two):
            session.monsters = [_crawler(session, "m0", 600)]
        advance(one, T0 + timedelta(seconds=2))
        advance(two, T0 + timedelta(seconds=1))
        advance(two, T0 + timedelta(seconds=2))
        assert one.monsters[0].position.x == pytest.approx(two.monsters[0].position.x)
        assert one.monsters[0].position.y == pytest.approx(two.monsters[0].position.y)
        assert one.oxygen_remaining_ms == two.oxygen_remaining_ms

    def test_no_advance_after_end(self):
        session = _started()
        apply_admin_action(session, AdminAction.FORCE_VICTORY, T0)
        oxygen = session.oxygen_remaining_ms
        advance(session, T0 + timedelta(minutes=60))
        assert session.oxygen_remaining_ms == oxygen
        assert session.phase == CombatPhase.VICTORY


class TestClues:
    """Tests for submit_clue_answer()."""

    def test_correct_grants_oxygen_once(self):
        session = _started()
        before = session.oxygen_remaining_ms
        wrong = submit_clue_answer(session, "HELP")
        assert not wrong.correct and wrong.attempts == 1

        right = submit_clue_answer(session, "sos")
        assert right.correct and right.clue_solved
        assert right.oxygen_bonus_ms == 120_000
        assert session.oxygen_remaining_ms == before + 120_000

        again = submit_clue_answer(session, "sos")
        assert again.oxygen_bonus_ms == 0
        assert again.attempts == 2
        assert session.oxygen_remaining_ms == before + 120_000

    def test_attempts_exhausted(self):
        session = _started()
        for _ in range(3):
            submit_clue_answer(session, "nope")
        result = submit_clue_answer(session, "SOS")
        assert not result.correct
        assert result.attempts == 3
        assert not session.clue_solved

    def test_not_before_start(self):
        session = _make_session()
        with pytest.raises(ConflictError):
            submit_clue_answer(session, "SOS")


class TestAdminActions:
    """Tests for apply_admin_action()."""

    def test_drain_oxygen_to_zero_is_defeat(self):
        session = _started()
        apply_admin_action(session, AdminAction.ADJUST_OXYGEN, T0, seconds=-100_000)
        assert session.oxygen_remaining_ms == 0
        assert session.phase == CombatPhase.DEFEAT

    def test_adjust_oxygen_needs_seconds(self):
        session = _started()
        with pytest.raises(InvalidInputError):
            apply_admin_action(session, AdminAction.ADJUST_OXYGEN, T0)

    def test_skip_room(self):
        session = _started()
        message = apply_admin_action(session, AdminAction.SKIP_ROOM, T0, rng=random.Random(1))
        assert session.current_room_index == 1
        assert "MED_BAY" in message

    def test_skip_past_final_room(self):
        session = _started()
        session.current_room_index = 4
        with pytest.raises(ConflictError):
            apply_admin_action(session, AdminAction.SKIP_ROOM, T0)

    def test_force_victory_escapes_survivors(self):
        session = _started(players=2)
        session.players[1].status = CombatPlayerStatus.DEAD
        apply_admin_action(session, AdminAction.FORCE_VICTORY, T0)
        assert session.victory
        assert session.players[0].status == CombatPlayerStatus.ESCAPED
        assert session.players[1].status == CombatPlayerStatus.DEAD

    def test_outcome_is_one_way(self):
        session = _started()
        apply_admin_action(session, AdminAction.FORCE_DEFEAT, T0)
        with pytest.raises(GameCompleted):
            apply_admin_action(session, AdminAction.FORCE_VICTORY, T0)
        assert session.phase == CombatPhase.DEFEAT

    def test_reveal_clue(self):
        session = _started()
        message = apply_admin_action(session, AdminAction.REVEAL_CLUE, T0)
        assert message == "Clue answer: SOS"
        assert session.clue_solved

    def test_pause_twice(self):
        session = _started()
        apply_admin_action(session, AdminAction.PAUSE, T0)
        with pytest.raises(ConflictError):
            apply_admin_action(session, AdminAction.PAUSE, T0)

    def test_skip_needs_started_game(self):
        session = _make_session()
        with pytest.raises(ConflictError):
            apply_admin_action(session, AdminAction.SKIP_ROOM, T0)


class TestRooms:
    """Tests for the static room tables."""

    def test_spawns_scale_and_cap(self):
        spawns = scaled_spawns(Room.ENGINEERING, Difficulty.EXTREME, max_tier=2)
        assert [(s.type, s.tier, s.count) for s in spawns] == [
            (MonsterType.CRAWLER, 1, 4),
            (MonsterType.CHARGER, 2, 6),
            (MonsterType.SPITTER, 2, 4),
            (MonsterType.CRAWLER, 2, 2),
        ]

    def test_counts_round_up(self):
        spawns = scaled_spawns(Room.CRYO_BAY, Difficulty.HARD, max_tier=5)
        assert spawns[0].count == math.ceil(5 * 1.2)

    def test_bosses(self):
        assert boss_for(Room.ENGINEERING, Difficulty.NORMAL) is None
        assert boss_for(Room.ENGINEERING, Difficulty.NIGHTMARE) == "OOZE_BLOB_T3"
        assert boss_for(Room.COMMAND_CENTER, Difficulty.EXTREME) == "VOID_ENTITY"

    def test_only_final_room_requires_clue(self):
        assert [r for r, c in ROOM_CONFIGS.items() if c.requires_clue] == [Room.COMMAND_CENTER]

    def test_clue_encoding(self):
        assert ROOM_CONFIGS[Room.CRYO_BAY].clue.encoded == "... --- ..."
        assert ROOM_CONFIGS[Room.COMMAND_CENTER].clue.encoded == "YRLG"
