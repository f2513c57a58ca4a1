"""Real-time combat session, player, and monster models."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from models.session import SessionStatus


class Difficulty(str, Enum):
    NORMAL = "NORMAL"
    HARD = "HARD"
    NIGHTMARE = "NIGHTMARE"
    EXTREME = "EXTREME"


class Room(str, Enum):
    """Station rooms, cleared in this order."""
    CRYO_BAY = "CRYO_BAY"
    MED_BAY = "MED_BAY"
    ENGINEERING = "ENGINEERING"
    BRIDGE = "BRIDGE"
    COMMAND_CENTER = "COMMAND_CENTER"


ROOM_ORDER: list[Room] = list(Room)


class CombatPhase(str, Enum):
    WAITING = "waiting"             # Lobby, players may join
    ROOM_CLEARING = "room_clearing" # Monsters alive in the current room
    CLUE_DECODING = "clue_decoding" # Room cleared, its clue gate still locked
    VICTORY = "victory"
    DEFEAT = "defeat"


class MonsterType(str, Enum):
    CRAWLER = "CRAWLER"
    CHARGER = "CHARGER"
    SPITTER = "SPITTER"
    OOZE_BLOB = "OOZE_BLOB"
    ARMORED_KNIGHT = "ARMORED_KNIGHT"
    MUTANT_ABOMINATION = "MUTANT_ABOMINATION"
    VOID_ENTITY = "VOID_ENTITY"


class CombatPlayerStatus(str, Enum):
    JOINED = "joined"
    ALIVE = "alive"
    DEAD = "dead"
    ESCAPED = "escaped"


class Position(BaseModel):
    x: float
    y: float


class MonsterEffects(BaseModel):
    stunned: bool = False
    slow: bool = False
    regenerating: bool = False


class Monster(BaseModel):
    """A hostile entity in the current room."""
    id: str
    type: MonsterType
    tier: int = Field(ge=1, le=5)
    health: int
    max_health: int
    damage: int
    speed: int                      # Units per second
    base_damage: int
    base_speed: int
    size: float = 1.0
    attack_range: float
    attack_cooldown_ms: int
    cooldown_remaining_ms: float = 0
    position: Position
    is_boss: bool = False
    boss_name: str | None = None
    boss_phase: int | None = None
    max_boss_phases: int | None = None
    phase_thresholds: list[float] = []  # Health fractions, descending
    special_move: str | None = None
    effects: MonsterEffects = MonsterEffects()


class KillStats(BaseModel):
    tier1: int = 0
    tier2: int = 0
    tier3: int = 0
    tier4: int = 0
    tier5: int = 0
    total: int = 0


class CombatPlayer(BaseModel):
    """A participant in a combat session."""
    id: str
    token: str
    name: str
    player_number: int
    status: CombatPlayerStatus = CombatPlayerStatus.JOINED
    health: int = 100
    ammo: int = 30
    position: Position
    kills: KillStats = KillStats()
    accuracy: float = 0.0           # successful_shots / total_shots
    total_shots: int = 0
    successful_shots: int = 0
    damage_dealt: int = 0
    time_spent_ms: float = 0
    joined_at: datetime
    last_sync_at: datetime


class CombatConfig(BaseModel):
    """Per-session difficulty configuration chosen at creation."""
    name: str = "Void Spire Expedition"
    difficulty: Difficulty = Difficulty.NORMAL
    oxygen_minutes: int = Field(default=15, gt=0, le=24 * 60)
    max_players: int = Field(default=4, ge=1, le=4)
    max_monster_tier: int = Field(default=3, ge=1, le=5)
    health_multiplier: float = Field(default=1.0, gt=0, le=10)
    speed_multiplier: float = Field(default=1.0, gt=0, le=10)
    damage_multiplier: float = Field(default=1.0, gt=0, le=10)


class RoomStats(BaseModel):
    """Counters accumulated across the whole run."""
    monsters_killed: dict[int, int] = Field(default_factory=lambda: {t: 0 for t in range(1, 6)})
    damage_dealt: int = 0
    shots_fired: int = 0
    shots_hit: int = 0


class CombatSession(BaseModel):
    """The full state of one combat session."""
    kind: Literal["combat"] = "combat"
    id: str
    join_code: str
    owner_id: str
    config: CombatConfig = CombatConfig()
    players: list[CombatPlayer] = []
    status: SessionStatus = SessionStatus.WAITING
    phase: CombatPhase = CombatPhase.WAITING
    paused: bool = False
    current_room_index: int = 0
    completed_rooms: list[Room] = []
    monsters: list[Monster] = []
    next_monster_number: int = 0
    oxygen_remaining_ms: float = 15 * 60 * 1000
    start_time: datetime | None = None
    last_update: datetime
    room_started_at: datetime | None = None
    boss_active: bool = False
    clue_solved: bool = False
    clue_attempts: int = 0
    victory: bool = False
    defeat: bool = False
    total_kills: int = 0
    room_stats: RoomStats = RoomStats()
    created_at: datetime

    @property
    def current_room(self) -> Room:
        return ROOM_ORDER[min(self.current_room_index, len(ROOM_ORDER) - 1)]
