"""Static room definitions for the combat mode: spawns, clues, and bosses."""

from __future__ import annotations

import math

from pydantic import BaseModel

from engine.ciphers import CipherScheme, encode
from models.combat import Difficulty, MonsterType, Room


class MonsterSpawn(BaseModel):
    type: MonsterType
    tier: int
    count: int


class Clue(BaseModel):
    """A cipher gate attached to a room."""
    id: str
    scheme: CipherScheme
    answer: str
    max_attempts: int = 3

    @property
    def encoded(self) -> str:
        return encode(self.scheme, self.answer)


class RoomConfig(BaseModel):
    room: Room
    name: str
    description: str
    spawns: list[MonsterSpawn]
    clue: Clue
    oxygen_reward_seconds: int     # Granted once, on the first correct clue answer
    bosses: dict[Difficulty, str] = {}   # Boss name, or a "TYPE_T<tier>" elite
    requires_clue: bool = False     # Room only counts as cleared once solved


ROOM_CONFIGS: dict[Room, RoomConfig] = {
    Room.CRYO_BAY: RoomConfig(
        room=Room.CRYO_BAY,
        name="Cryo Bay",
        description="Wake up in wreckage, alarms blaring",
        spawns=[MonsterSpawn(type=MonsterType.CRAWLER, tier=1, count=5)],
        clue=Clue(id="cryo-1", scheme=CipherScheme.MORSE, answer="SOS"),
        oxygen_reward_seconds=120,
    ),
    Room.MED_BAY: RoomConfig(
        room=Room.MED_BAY,
        name="Med Bay",
        description="Bio-hazard containment failed",
        spawns=[
            MonsterSpawn(type=MonsterType.CRAWLER, tier=1, count=4),
            MonsterSpawn(type=MonsterType.CHARGER, tier=2, count=2),
            MonsterSpawn(type=MonsterType.SPITTER, tier=2, count=1),
        ],
        clue=Clue(id="med-1", scheme=CipherScheme.CAESAR, answer="HELP"),
        oxygen_reward_seconds=180,
    ),
    Room.ENGINEERING: RoomConfig(
        room=Room.ENGINEERING,
        name="Engineering",
        description="Power systems failing, machinery hazards",
        spawns=[
            MonsterSpawn(type=MonsterType.CRAWLER, tier=1, count=2),
            MonsterSpawn(type=MonsterType.CHARGER, tier=2, count=3),
            MonsterSpawn(type=MonsterType.SPITTER, tier=2, count=2),
            MonsterSpawn(type=MonsterType.CRAWLER, tier=3, count=1),
        ],
        clue=Clue(id="eng-1", scheme=CipherScheme.BINARY, answer="HELP FORWARD"),
        oxygen_reward_seconds=240,
        bosses={
            Difficulty.NIGHTMARE: "OOZE_BLOB_T3",
            Difficulty.EXTREME: "OOZE_BLOB_T3",
        },
    ),
    Room.BRIDGE: RoomConfig(
        room=Room.BRIDGE,
        name="Bridge",
        description="Command functions, where the beacon is",
        spawns=[
            MonsterSpawn(type=MonsterType.CRAWLER, tier=1, count=1),
            MonsterSpawn(type=MonsterType.CHARGER, tier=2, count=3),
            MonsterSpawn(type=MonsterType.SPITTER, tier=3, count=2),
            MonsterSpawn(type=MonsterType.ARMORED_KNIGHT, tier=3, count=1),
        ],
        clue=Clue(id="bridge-1", scheme=CipherScheme.SUBSTITUTION, answer="ARTEMIS"),
        oxygen_reward_seconds=300,
    ),
    Room.COMMAND_CENTER: RoomConfig(
        room=Room.COMMAND_CENTER,
        name="Command Center",
        description="Activate the escape beacon",
        spawns=[
            MonsterSpawn(type=MonsterType.CRAWLER, tier=3, count=2),
            MonsterSpawn(type=MonsterType.SPITTER, tier=3, count=1),
        ],
        clue=Clue(id="command-1", scheme=CipherScheme.CAESAR, answer="VOID", max_attempts=5),
        oxygen_reward_seconds=600,
        bosses={
            Difficulty.NORMAL: "CHARGER_WARLORD",
            Difficulty.HARD: "SPITTER_HIVE_QUEEN",
            Difficulty.NIGHTMARE: "ELDER_ABOMINATION",
            Difficulty.EXTREME: "VOID_ENTITY",
        },
        requires_clue=True,
    ),
}

# Spawn-count multiplier per difficulty; counts round up.
SPAWN_RATE = {
    Difficulty.NORMAL: 1.0,
    Difficulty.HARD: 1.2,
    Difficulty.NIGHTMARE: 1.5,
    Difficulty.EXTREME: 2.0,
}


def get_room_config(room: Room) -> RoomConfig:
    return ROOM_CONFIGS[room]


def scaled_spawns(room: Room, difficulty: Difficulty, max_tier: int) -> list[MonsterSpawn]:
    """The room's spawn list with counts scaled and tiers capped.

    Args:
        room: Room being entered.
        difficulty: Session difficulty.
        max_tier: Highest tier the session allows.

    Returns:
        Spawn entries with a positive count.
    """
    rate = SPAWN_RATE[difficulty]
    spawns = []
    for spawn in ROOM_CONFIGS[room].spawns:
        count = math.ceil(spawn.count * rate)
        if count <= 0:
            continue
        spawns.append(MonsterSpawn(type=spawn.type, tier=min(spawn.tier, max_tier), count=count))
    return spawns


def boss_for(room: Room, difficulty: Difficulty) -> str | None:
    return ROOM_CONFIGS[room].bosses.get(difficulty)
