"""Result type returned by every state machine transition."""

from typing import NamedTuple

from avalon.logic.events import GameEvent
from avalon.logic.state import AvalonGameState, PendingTransition


class ActionResult(NamedTuple):
    """
    Result of a transition.

    new_state replaces the stored state when it is not None. scheduled is the
    delayed transition the session layer should arm, if any.
    """

    events: list[GameEvent]
    new_state: AvalonGameState | None = None
    scheduled: PendingTransition | None = None
