# Room codes avoid visually confusable symbols (no I, O, 0 or 1).
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = 6

DEFAULT_MAP_URL = "https://upload.wikimedia.org/wikipedia/commons/5/5a/Parchment.00.jpg"
DEFAULT_MAP_WIDTH = 2000
DEFAULT_MAP_HEIGHT = 1400

# Map dimensions accepted from ``map:set`` (inclusive).
MAP_MIN_SIZE = 200
MAP_MAX_SIZE = 20000

# Player tokens spawn inside this square on join.
SPAWN_MIN = 200
SPAWN_SPREAD = 200

# Maximum lengths for client-supplied strings.
MAX_NAME_LENGTH = 24
MAX_IMG_URL_LENGTH = 400
MAX_COLOR_LENGTH = 32
MAX_MAP_URL_LENGTH = 800
MAX_EVENT_TEXT_LENGTH = 240
MAX_FORMULA_LENGTH = 64

DEFAULT_PLAYER_NAME = "Player"
DEFAULT_ENEMY_NAME = "Enemy"

# Upload storage
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
MAX_UPLOAD_NAME_LENGTH = 120
UPLOAD_CHUNK_SIZE = 1024 * 1024

__all__ = [
    "ROOM_CODE_ALPHABET",
    "ROOM_CODE_LENGTH",
    "DEFAULT_MAP_URL",
    "DEFAULT_MAP_WIDTH",
    "DEFAULT_MAP_HEIGHT",
    "MAP_MIN_SIZE",
    "MAP_MAX_SIZE",
    "SPAWN_MIN",
    "SPAWN_SPREAD",
    "MAX_NAME_LENGTH",
    "MAX_IMG_URL_LENGTH",
    "MAX_COLOR_LENGTH",
    "MAX_MAP_URL_LENGTH",
    "MAX_EVENT_TEXT_LENGTH",
    "MAX_FORMULA_LENGTH",
    "DEFAULT_PLAYER_NAME",
    "DEFAULT_ENEMY_NAME",
    "MAX_UPLOAD_BYTES",
    "MAX_UPLOAD_NAME_LENGTH",
    "UPLOAD_CHUNK_SIZE",
]
