"""Progress events published while a migration runs."""
import asyncio
import logging
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)

FOLDER_START = "folder_start"
FOLDER_RESOLVED = "folder_resolved"
FOLDER_FAILED = "folder_failed"
FILE_COMPLETE = "file_complete"
FILE_FAIL = "file_fail"
FILE_SKIPPED = "file_skipped"
BATCH_COMPLETE = "batch_complete"
FINISH = "finish"

MIGRATION_EVENTS = (
    FOLDER_START,
    FOLDER_RESOLVED,
    FOLDER_FAILED,
    FILE_COMPLETE,
    FILE_FAIL,
    FILE_SKIPPED,
    BATCH_COMPLETE,
    FINISH,
)


class MigrationEvents:
    """
    Subscriber registry for the migration events above.

    Subscribing to an unknown name raises ValueError so a typo in a
    display or test hook fails loudly instead of never firing. Listeners
    may be plain or async callables; a listener that raises is logged
    and the rest still run.

    Nothing here serialises publishers: members of one batch publish
    concurrently, and each publish works on a snapshot of the listeners
    taken when it starts.
    """

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {name: [] for name in MIGRATION_EVENTS}

    def subscribe(self, event_name: str, callback: Callable) -> None:
        listeners = self._listeners_for(event_name)
        if callback not in listeners:
            listeners.append(callback)

    def unsubscribe(self, event_name: str, callback: Callable) -> None:
        listeners = self._listeners_for(event_name)
        if callback in listeners:
            listeners.remove(callback)

    def listeners(self, event_name: str) -> List[Callable]:
        return list(self._listeners_for(event_name))

    async def publish(self, event_name: str, *args) -> None:
        for callback in self.listeners(event_name):
            try:
                outcome = callback(*args)
                if asyncio.iscoroutine(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Listener {getattr(callback, '__name__', callback)!r} failed on {event_name}: {e}")

    def _listeners_for(self, event_name: str) -> List[Callable]:
        try:
            return self._listeners[event_name]
        except KeyError:
            raise ValueError(
                f"unknown migration event {event_name!r}; expected one of {', '.join(MIGRATION_EVENTS)}"
            ) from None
