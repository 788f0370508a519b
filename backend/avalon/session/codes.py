"""Room code generation."""

import secrets
import string
from collections.abc import Callable

from avalon.messaging.types import ROOM_CODE_LENGTH

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits

# attempts before giving up; 36**5 codes make collisions rare
_MAX_CODE_ATTEMPTS = 100


class RoomCodeExhaustedError(RuntimeError):
    """No free room code was found."""


def generate_room_code() -> str:
    """Return a random 5-character uppercase alphanumeric code."""
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def allocate_room_code(is_taken: Callable[[str], bool]) -> str:
    """Generate codes until one is not taken by a live room or game."""
    for _ in range(_MAX_CODE_ATTEMPTS):
        code = generate_room_code()
        if not is_taken(code):
            return code
    raise RoomCodeExhaustedError(f"no free room code after {_MAX_CODE_ATTEMPTS} attempts")
