"""Per-game scheduling of delayed phase transitions."""

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from avalon.logic.state import PendingTransition

logger = structlog.get_logger()

# Callback type: (game_id, pending) -> Awaitable[None]
TransitionCallback = Callable[[str, PendingTransition], Awaitable[None]]
# Called with the game_id after a transition raised
FailureCallback = Callable[[str], Awaitable[None]]


class PhaseScheduler:
    """Hold at most one pending transition task per game.

    The scheduler only sleeps and calls back; it does not decide whether the
    transition is still valid. The callback (SessionManager) re-checks the
    game's phase and generation under the game lock when the task fires.
    """

    def __init__(self, on_fire: TransitionCallback, on_failure: FailureCallback | None = None) -> None:
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._pending: dict[str, PendingTransition] = {}
        self._on_fire = on_fire
        self._on_failure = on_failure

    def schedule(self, game_id: str, pending: PendingTransition) -> None:
        """Arm a transition for a game, replacing any pending one."""
        self.cancel(game_id)
        self._pending[game_id] = pending
        self._tasks[game_id] = asyncio.create_task(self._run(game_id, pending))

    def has_pending(self, game_id: str) -> bool:
        task = self._tasks.get(game_id)
        return task is not None and not task.done()

    def get_pending(self, game_id: str) -> PendingTransition | None:
        """Return the transition currently armed for a game, if any."""
        if not self.has_pending(game_id):
            return None
        return self._pending.get(game_id)

    def cancel(self, game_id: str) -> None:
        """Cancel the pending transition of a game, if any.

        The currently running task is never cancelled from inside its own
        callback; it is already removed from the registry before firing.
        """
        self._pending.pop(game_id, None)
        task = self._tasks.pop(game_id, None)
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def cleanup_game(self, game_id: str) -> None:
        self.cancel(game_id)

    def cancel_all(self) -> None:
        """Cancel every pending transition (server shutdown)."""
        for game_id in list(self._tasks):
            self.cancel(game_id)

    async def _run(self, game_id: str, pending: PendingTransition) -> None:
        try:
            await asyncio.sleep(pending.delay_seconds)
        except asyncio.CancelledError:
            return
        if self._tasks.get(game_id) is asyncio.current_task():
            self._tasks.pop(game_id, None)
            self._pending.pop(game_id, None)
        try:
            await self._on_fire(game_id, pending)
        except Exception:
            logger.exception("scheduled transition failed", game_id=game_id, transition=pending.transition)
            if self._on_failure is not None:
                await self._on_failure(game_id)
