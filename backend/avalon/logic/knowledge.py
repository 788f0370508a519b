"""
Night-phase knowledge: which hidden allegiances each player may see.

| Role    | Sees                                   |
|---------|----------------------------------------|
| MERLIN  | every MORDRED, MINION and EVIL player  |
| MORDRED | the MINION                             |
| MINION  | nobody                                 |
| EVIL    | the other EVIL players                 |
| others  | nobody                                 |

The MORDRED/MINION relation is one-way: Mordred knows his minion, the minion
does not know Mordred.
"""

from collections.abc import Sequence

from avalon.logic.enums import Role
from avalon.logic.state import AvalonPlayer

_VISIBLE_ROLES: dict[Role, frozenset[Role]] = {
    Role.MERLIN: frozenset({Role.MORDRED, Role.MINION, Role.EVIL}),
    Role.MORDRED: frozenset({Role.MINION}),
    Role.EVIL: frozenset({Role.EVIL}),
}


def knowledge_of(player: AvalonPlayer, players: Sequence[AvalonPlayer]) -> list[str]:
    """Return the names (in seat order) whose allegiance player is entitled to see."""
    if player.role is None:
        return []
    visible = _VISIBLE_ROLES.get(player.role, frozenset())
    return [
        other.name for other in players if other.player_id != player.player_id and other.role in visible
    ]
