"""Monster stat tables, spawning, boss phases, and per-tick behaviour."""

from __future__ import annotations

import math
import random

from pydantic import BaseModel

from config import ARENA_HEIGHT, ARENA_MARGIN, ARENA_WIDTH
from models.combat import (
    CombatConfig,
    CombatPlayer,
    CombatPlayerStatus,
    Difficulty,
    Monster,
    MonsterType,
    Position,
)


class BaseStats(BaseModel):
    health: int
    damage: int
    speed: int                      # Units per second
    size: float
    attack_cooldown_ms: int
    attack_range: float


class TierMultiplier(BaseModel):
    health: float
    damage: float
    speed: float
    size: float


class DifficultyMultiplier(BaseModel):
    health: float
    speed: float
    damage: float
    boss_health: float


class BossConfig(BaseModel):
    type: MonsterType
    health: int
    phase_thresholds: list[float]   # Health fractions, descending
    special_moves: list[str]

    @property
    def phases(self) -> int:
        return len(self.phase_thresholds) + 1


BASE_MONSTER_STATS: dict[MonsterType, BaseStats] = {
    MonsterType.CRAWLER: BaseStats(health=50, damage=10, speed=30, size=1.0, attack_cooldown_ms=2000, attack_range=30),
    MonsterType.CHARGER: BaseStats(health=60, damage=15, speed=80, size=1.2, attack_cooldown_ms=3000, attack_range=40),
    MonsterType.SPITTER: BaseStats(health=35, damage=8, speed=40, size=0.8, attack_cooldown_ms=1500, attack_range=120),
    MonsterType.OOZE_BLOB: BaseStats(health=100, damage=12, speed=20, size=1.5, attack_cooldown_ms=2500, attack_range=25),
    MonsterType.ARMORED_KNIGHT: BaseStats(health=150, damage=20, speed=25, size=1.8, attack_cooldown_ms=2800, attack_range=35),
    MonsterType.MUTANT_ABOMINATION: BaseStats(health=300, damage=25, speed=35, size=2.5, attack_cooldown_ms=2000, attack_range=50),
    MonsterType.VOID_ENTITY: BaseStats(health=600, damage=35, speed=45, size=3.5, attack_cooldown_ms=1800, attack_range=200),
}

TIER_MULTIPLIERS: dict[int, TierMultiplier] = {
    1: TierMultiplier(health=1.0, damage=1.0, speed=1.0, size=1.0),
    2: TierMultiplier(health=1.5, damage=1.2, speed=0.9, size=1.5),
    3: TierMultiplier(health=2.2, damage=1.5, speed=0.8, size=2.0),
    4: TierMultiplier(health=3.2, damage=1.8, speed=0.7, size=2.8),
    5: TierMultiplier(health=5.0, damage=2.0, speed=0.6, size=4.0),
}

DIFFICULTY_MULTIPLIERS: dict[Difficulty, DifficultyMultiplier] = {
    Difficulty.NORMAL: DifficultyMultiplier(health=1.0, speed=1.0, damage=1.0, boss_health=1.0),
    Difficulty.HARD: DifficultyMultiplier(health=1.25, speed=1.15, damage=1.15, boss_health=1.25),
    Difficulty.NIGHTMARE: DifficultyMultiplier(health=1.5, speed=1.3, damage=1.3, boss_health=1.5),
    Difficulty.EXTREME: DifficultyMultiplier(health=2.0, speed=1.5, damage=1.5, boss_health=2.0),
}

BOSS_CONFIGS: dict[str, BossConfig] = {
    "CHARGER_WARLORD": BossConfig(
        type=MonsterType.CHARGER, health=300, phase_thresholds=[0.66, 0.33],
        special_moves=["dual_charge", "rampage", "shockwave_aoe"],
    ),
    "SPITTER_HIVE_QUEEN": BossConfig(
        type=MonsterType.SPITTER, health=175, phase_thresholds=[0.5],
        special_moves=["drone_spawn", "swarm_attack", "poison_cloud", "teleport"],
    ),
    "ELDER_ABOMINATION": BossConfig(
        type=MonsterType.MUTANT_ABOMINATION, health=500, phase_thresholds=[0.75, 0.5, 0.25],
        special_moves=["accelerated_regen", "limb_regrowth", "chaos_attack"],
    ),
    "IRON_GUARDIAN": BossConfig(
        type=MonsterType.ARMORED_KNIGHT, health=350, phase_thresholds=[0.66, 0.33],
        special_moves=["shield_defense", "aggressive_assault", "desperate_frenzy"],
    ),
    "VOID_ENTITY": BossConfig(
        type=MonsterType.VOID_ENTITY, health=600, phase_thresholds=[0.8, 0.6, 0.4, 0.2],
        special_moves=["reality_bend", "cosmic_horror", "dimension_rift"],
    ),
}

BOSS_TIER = 5
REGEN_FRACTION_PER_SECOND = 0.05
# Bosses that start regenerating once they leave phase 1
_REGENERATING_BOSSES = {"ELDER_ABOMINATION"}


def session_multipliers(config: CombatConfig) -> DifficultyMultiplier:
    """Difficulty multipliers combined with the session's own tuning."""
    base = DIFFICULTY_MULTIPLIERS[config.difficulty]
    return DifficultyMultiplier(
        health=base.health * config.health_multiplier,
        speed=base.speed * config.speed_multiplier,
        damage=base.damage * config.damage_multiplier,
        boss_health=base.boss_health * config.health_multiplier,
    )


def calculate_monster_stats(
    monster_type: MonsterType,
    tier: int,
    multipliers: DifficultyMultiplier,
) -> BaseStats:
    """Scale a type's base stats by tier and difficulty. Integer stats floor.

    Raises:
        ValueError: If the tier is outside 1-5.
    """
    if tier not in TIER_MULTIPLIERS:
        raise ValueError(f"Tier must be 1-5, got {tier}")
    base = BASE_MONSTER_STATS[monster_type]
    tier_mult = TIER_MULTIPLIERS[tier]
    return BaseStats(
        health=math.floor(base.health * tier_mult.health * multipliers.health),
        damage=math.floor(base.damage * tier_mult.damage * multipliers.damage),
        speed=math.floor(base.speed * tier_mult.speed * multipliers.speed),
        size=base.size * tier_mult.size,
        attack_cooldown_ms=base.attack_cooldown_ms,
        attack_range=base.attack_range,
    )


def random_spawn_position(rng: random.Random) -> Position:
    """A point in the far half of the arena, away from the player start line."""
    return Position(
        x=rng.uniform(ARENA_WIDTH / 2, ARENA_WIDTH - ARENA_MARGIN),
        y=rng.uniform(ARENA_MARGIN, ARENA_HEIGHT - ARENA_MARGIN),
    )


def create_monster(
    monster_id: str,
    monster_type: MonsterType,
    tier: int,
    config: CombatConfig,
    position: Position,
) -> Monster:
    stats = calculate_monster_stats(monster_type, tier, session_multipliers(config))
    return Monster(
        id=monster_id,
        type=monster_type,
        tier=tier,
        health=stats.health,
        max_health=stats.health,
        damage=stats.damage,
        speed=stats.speed,
        base_damage=stats.damage,
        base_speed=stats.speed,
        size=stats.size,
        attack_range=stats.attack_range,
        attack_cooldown_ms=stats.attack_cooldown_ms,
        position=position,
    )


def create_boss(
    monster_id: str,
    boss_name: str,
    config: CombatConfig,
    position: Position,
) -> Monster:
    """Create a boss by name.

    Names in :data:`BOSS_CONFIGS` get multi-phase bosses. A name of the
    form ``TYPE_T<tier>`` (e.g. ``OOZE_BLOB_T3``) creates a single-phase
    elite of that type and tier.

    Raises:
        ValueError: If the name matches neither form.
    """
    boss = BOSS_CONFIGS.get(boss_name)
    if boss is None:
        type_name, sep, tier = boss_name.rpartition("_T")
        if not sep or type_name not in MonsterType.__members__ or not tier.isdigit():
            raise ValueError(f"Unknown boss: {boss_name}")
        monster = create_monster(monster_id, MonsterType[type_name], int(tier), config, position)
        monster.is_boss = True
        monster.boss_name = boss_name
        return monster

    multipliers = session_multipliers(config)
    monster = create_monster(monster_id, boss.type, BOSS_TIER, config, position)
    health = math.floor(boss.health * multipliers.boss_health)
    monster.health = health
    monster.max_health = health
    monster.is_boss = True
    monster.boss_name = boss_name
    monster.boss_phase = 1
    monster.max_boss_phases = boss.phases
    monster.phase_thresholds = list(boss.phase_thresholds)
    monster.special_move = boss.special_moves[0]
    return monster


def update_boss_phase(monster: Monster) -> bool:
    """Advance a boss to the phase its health fraction has reached.

    The phase is 1 plus the number of thresholds at or above the current
    health fraction; it never goes back down. Each phase beyond the first
    adds 25% of base speed and damage.

    Returns:
        True if the phase changed.
    """
    if not monster.is_boss or monster.boss_phase is None or monster.max_health <= 0:
        return False
    fraction = monster.health / monster.max_health
    target = 1 + sum(1 for t in monster.phase_thresholds if fraction <= t)
    if target <= monster.boss_phase:
        return False

    monster.boss_phase = target
    boost = 1 + 0.25 * (target - 1)
    monster.speed = math.floor(monster.base_speed * boost)
    monster.damage = math.floor(monster.base_damage * boost)
    boss = BOSS_CONFIGS.get(monster.boss_name or "")
    if boss is not None:
        monster.special_move = boss.special_moves[min(target - 1, len(boss.special_moves) - 1)]
        if monster.boss_name in _REGENERATING_BOSSES and target >= 2:
            monster.effects.regenerating = True
    return True


# ---------------------------------------------------------------------------
# Per-tick behaviour
# ---------------------------------------------------------------------------


def distance(a: Position, b: Position) -> float:
    """Euclidean distance between two arena points."""
    return math.hypot(a.x - b.x, a.y - b.y)


def clamp_to_arena(position: Position) -> Position:
    return Position(
        x=min(max(position.x, ARENA_MARGIN), ARENA_WIDTH - ARENA_MARGIN),
        y=min(max(position.y, ARENA_MARGIN), ARENA_HEIGHT - ARENA_MARGIN),
    )


def nearest_living_player(monster: Monster, players: list[CombatPlayer]) -> CombatPlayer | None:
    living = [p for p in players if p.status == CombatPlayerStatus.ALIVE]
    if not living:
        return None
    return min(living, key=lambda p: distance(monster.position, p.position))


def tick_monster(monster: Monster, players: list[CombatPlayer], elapsed_ms: float) -> int:
    """Apply ``elapsed_ms`` of behaviour to one monster.

    Stunned monsters do nothing. Regenerating monsters heal instead of
    moving. Others close on the nearest living player without overshooting
    and strike whenever their cooldown runs out in range; leftover cooldown
    carries into the next tick.

    Returns:
        Total damage dealt to players.
    """
    if elapsed_ms <= 0 or monster.effects.stunned:
        return 0

    if monster.effects.regenerating:
        heal = monster.max_health * REGEN_FRACTION_PER_SECOND * elapsed_ms / 1000
        monster.health = min(monster.max_health, math.floor(monster.health + heal))
        return 0

    target = nearest_living_player(monster, players)
    if target is None:
        return 0

    speed = monster.speed / 2 if monster.effects.slow else monster.speed
    gap = distance(monster.position, target.position)
    step = min(speed * elapsed_ms / 1000, max(0.0, gap - monster.attack_range))
    if step > 0 and gap > 0:
        monster.position = clamp_to_arena(Position(
            x=monster.position.x + (target.position.x - monster.position.x) * step / gap,
            y=monster.position.y + (target.position.y - monster.position.y) * step / gap,
        ))

    dealt = 0
    monster.cooldown_remaining_ms -= elapsed_ms
    while monster.cooldown_remaining_ms <= 0 and target.status == CombatPlayerStatus.ALIVE:
        if distance(monster.position, target.position) > monster.attack_range:
            monster.cooldown_remaining_ms = 0
            break
        target.health = max(0, target.health - monster.damage)
        dealt += monster.damage
        monster.cooldown_remaining_ms += monster.attack_cooldown_ms
        if target.health == 0:
            target.status = CombatPlayerStatus.DEAD
    if monster.cooldown_remaining_ms < 0:
        monster.cooldown_remaining_ms = 0
    return dealt
