"""Shared broadcast utility for sending messages to player groups."""

import contextlib
from typing import Any


async def broadcast_to_players(players: dict[str, Any], message: dict[str, Any]) -> None:
    """Send a message to every player of a room or game.

    Iterates over a snapshot of the dict values since a concurrent leave may
    mutate the dict while a send is awaited. A failed send to one player
    never stops delivery to the others.
    """
    for player in list(players.values()):
        with contextlib.suppress(RuntimeError, OSError, ConnectionError):
            await player.connection.send_message(message)
