"""Remote Log Synchronizer - live food log subscription bound to an event loop.

Firestore delivers snapshots on its own watch thread. Each snapshot is handed
to the session's asyncio loop with ``call_soon_threadsafe``, which runs
callbacks in FIFO order, so snapshots are applied in the order they were
emitted. ``close()`` runs on the loop thread and flips ``active`` before any
queued delivery can run, so nothing is delivered after it returns.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from ..core.models import NutrientRecord
from .firestore_client import NutriCounterFirestoreClient


logger = logging.getLogger(__name__)


class LogSubscription:
    """Handle for one user's live food log listener.

    Owned by the session; opened on sign-in and closed exactly once on logout.
    """

    def __init__(
        self,
        db: NutriCounterFirestoreClient,
        user_id: str,
        on_snapshot: Callable[[list[NutrientRecord]], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        self._db = db
        self._user_id = user_id
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._watch: Any = None
        self._active = False
        self._closed = False

    @property
    def active(self) -> bool:
        return self._active

    def open(self, loop: asyncio.AbstractEventLoop) -> bool:
        """Start listening. Must be called from the loop's thread.

        Returns:
            True if the listener was established; on failure ``on_error`` has
            already been called and the subscription stays inactive
        """
        if self._closed or self._active:
            return self._active

        self._loop = loop
        self._active = True
        try:
            self._watch = self._db.watch_food_log(self._user_id, self._from_watch_thread)
        except Exception as e:
            logger.error("Failed to open food log listener for %s: %s", self._user_id[:8], str(e))
            self._active = False
            self._on_error(e)
            return False
        return True

    def _from_watch_thread(self, records: list[NutrientRecord]) -> None:
        loop = self._loop
        if loop is None or not self._active:
            return
        try:
            loop.call_soon_threadsafe(self._deliver, records)
        except RuntimeError:
            # loop already closed
            logger.debug("Dropping snapshot for %s: event loop closed", self._user_id[:8])

    def _deliver(self, records: list[NutrientRecord]) -> None:
        if not self._active:
            logger.debug("Dropping late snapshot for %s", self._user_id[:8])
            return
        self._on_snapshot(records)

    def close(self) -> None:
        """Stop the listener. Idempotent; later snapshots are dropped."""
        if self._closed:
            return
        self._closed = True
        self._active = False

        watch, self._watch = self._watch, None
        if watch is not None:
            try:
                watch.unsubscribe()
            except Exception as e:
                logger.warning("Error while closing food log listener: %s", str(e))
        logger.info("Closed food log listener for %s", self._user_id[:8])
