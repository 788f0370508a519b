"""
Pydantic models for the session layer.
"""

from pydantic import BaseModel


class SessionStats(BaseModel):
    """Room and game counts reported by the status endpoint."""

    lobby_rooms: int
    active_games: int
    ended_games: int
    connections: int
