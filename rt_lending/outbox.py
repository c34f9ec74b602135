"""
Sync Outbox Module

Carries local change events to the spreadsheet service in the background
so a mutation never waits on the network. Delivery is at-most-once: a
failed notification is logged and counted, never retried, and the local
state it describes stays as it is.

Also holds the one-shot bulk loader that replaces local data with the
remote snapshot at startup.
"""

import logging
import queue
import threading
from typing import Optional

from .events import ChangeEvent, EventDispatcher
from .exceptions import SyncError
from .sync_client import SheetSyncClient

logger = logging.getLogger("rt_lending.sync")

_STOP = object()


class SyncOutbox:
    """Queue between the event dispatcher and the sync client"""

    def __init__(self, client: SheetSyncClient, dispatcher: Optional[EventDispatcher] = None,
                 maxsize: int = 1000):
        self.client = client
        self.dispatcher = dispatcher
        self._queue: "queue.Queue" = queue.Queue(maxsize=maxsize)
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.delivered = 0
        self.failed = 0
        self.dropped = 0

        if dispatcher is not None:
            dispatcher.subscribe_all(self.enqueue)

    def enqueue(self, event: ChangeEvent) -> bool:
        """Queue an event for delivery; a full queue drops it"""
        try:
            self._queue.put_nowait(event)
            return True
        except queue.Full:
            with self._lock:
                self.dropped += 1
            logger.warning(f"Sync queue full, dropping {event.action.value} for {event.entity_id}")
            return False

    def _deliver(self, event: ChangeEvent) -> None:
        if self.client.notify(event.action, event.payload):
            with self._lock:
                self.delivered += 1
        else:
            with self._lock:
                self.failed += 1

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._deliver(item)
            except Exception as e:
                logger.error(f"Unexpected error delivering change event: {e}")
            finally:
                self._queue.task_done()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        """Start the background worker"""
        if self.is_running:
            return
        self._thread = threading.Thread(target=self._run, name="rt-lending-sync", daemon=True)
        self._thread.start()
        logger.info("Sync outbox started")

    def stop(self, timeout: float = 5.0) -> None:
        """Deliver what is queued, then stop the worker"""
        if not self.is_running:
            return
        self._queue.put(_STOP)
        self._thread.join(timeout)
        self._thread = None
        logger.info(
            f"Sync outbox stopped: delivered={self.delivered} failed={self.failed} dropped={self.dropped}"
        )

    def flush(self) -> None:
        """Block until every queued event has been handed to the client.

        Without a running worker the queue is drained in the calling thread.
        """
        if self.is_running:
            self._queue.join()
            return
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            try:
                if item is not _STOP:
                    self._deliver(item)
            finally:
                self._queue.task_done()

    def close(self) -> None:
        self.stop()
        if self.dispatcher is not None:
            self.dispatcher.unsubscribe_all(self.enqueue)


class BootstrapLoader:
    """Runs the startup bulk load without blocking the caller"""

    def __init__(self, client: SheetSyncClient, store):
        self.client = client
        self.store = store
        self.done = threading.Event()
        self.error: Optional[SyncError] = None
        self._thread: Optional[threading.Thread] = None

    def load(self) -> bool:
        """Fetch the remote snapshot and apply it. Returns True on success."""
        try:
            if not self.client.enabled:
                logger.info("Remote sync disabled, keeping local data")
                return False
            snapshot = self.client.fetch_snapshot()
            self.store.apply_remote_snapshot(snapshot)
            return True
        except SyncError as e:
            self.error = e
            logger.warning(f"Bulk load failed, keeping local data: {e}")
            return False
        finally:
            self.done.set()

    def start(self) -> None:
        self._thread = threading.Thread(target=self.load, name="rt-lending-bootstrap", daemon=True)
        self._thread.start()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self.done.wait(timeout)
