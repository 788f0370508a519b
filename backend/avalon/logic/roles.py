"""Secret role dealing."""

import math

from avalon.logic.enums import Role
from avalon.logic.rng import shuffle_roles
from avalon.logic.settings import SPECIAL_ROLES_PLAYER_COUNT, validate_player_count

SPECIAL_ROLE_DECK: tuple[Role, ...] = (
    Role.MORDRED,
    Role.MINION,
    Role.MERLIN,
    Role.SERVANT,
    Role.SERVANT,
    Role.SERVANT,
)


def evil_count(player_count: int) -> int:
    """Number of evil seats in a generic deal: ceil(n / 3)."""
    return math.ceil(player_count / 3)


def build_role_deck(player_count: int) -> list[Role]:
    """Return the unshuffled role deck for a player count."""
    validate_player_count(player_count)
    if player_count == SPECIAL_ROLES_PLAYER_COUNT:
        return list(SPECIAL_ROLE_DECK)
    evils = evil_count(player_count)
    return [Role.EVIL] * evils + [Role.GOOD] * (player_count - evils)


def assign_roles(player_count: int, seed_hex: str) -> list[Role]:
    """Deal one role per seat, every arrangement of the deck equally likely."""
    return shuffle_roles(build_role_deck(player_count), seed_hex)
