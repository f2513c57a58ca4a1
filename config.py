"""Server-wide configuration constants for the Oxygen Escape server."""

import os

DATA_DIR = os.environ.get("DATA_DIR", ".")  # Persistent data directory
SAVE_FILE = os.path.join(DATA_DIR, "sessions.json")
OWNERS_FILE = os.path.join(DATA_DIR, "owners.json")
PERSISTENCE_VERSION = 1
PERSIST_ASYNC = os.environ.get("PERSIST_ASYNC", "1") not in ("0", "false", "no")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
ADMIN_SECRET = os.environ.get("ADMIN_SECRET", "change-me-in-production")

MAX_PLAYERS = 4
JOIN_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # No I, O, 0, 1
JOIN_CODE_LENGTH = 6

# Escape-room puzzle content and limits
DEFAULT_MORSE_WORDS = ["SOS", "HELP", "ESCAPE", "OXYGEN", "ALERT", "DANGER", "RESCUE", "URGENT"]
DEFAULT_GREEK_WORDS = [
    {"word": "LOGOS", "meaning": "word, reason, principle"},
    {"word": "PSYCHE", "meaning": "soul, spirit, breath"},
    {"word": "AETHER", "meaning": "sky, heaven, upper air"},
    {"word": "KAIROS", "meaning": "time, season, opportunity"},
]
DEFAULT_MAX_MORSE_ATTEMPTS = 5
DEFAULT_MAX_MEANING_ATTEMPTS = 5
DEFAULT_OXYGEN_MINUTES = 120

# Scoring
STAGE_BASE_SCORE = 250       # Decode and translate stages
ATTEMPT_PENALTY = 50         # Lost per attempt beyond the first
BONUS_SCORE = 200
QUESTION_PENALTY_RATIO = 0.1  # Custom questions lose 10% of points per extra attempt

# Combat
PLAYER_HEALTH = 100
PLAYER_AMMO = 30
SHOT_DAMAGE = 25
HITBOX_RADIUS = 30.0         # Scaled by monster size
ARENA_WIDTH = 900.0
ARENA_HEIGHT = 600.0
ARENA_MARGIN = 30.0
DEFAULT_COMBAT_OXYGEN_MINUTES = 15

SECRET_FILE = os.path.join(DATA_DIR, "admin_secret.txt")


def load_secret() -> None:
    """Prefer an admin secret stored in SECRET_FILE over the environment."""
    global ADMIN_SECRET
    if os.path.exists(SECRET_FILE):
        with open(SECRET_FILE) as f:
            stored = f.read().strip()
        if stored:
            ADMIN_SECRET = stored
