"""Change notification for upload progress.

Notifications carry no payload: a listener learns only that something
changed and re-reads whatever state it cares about from the registry.
"""
import asyncio
import itertools
import logging
import threading
from typing import AsyncIterator, Callable, Dict

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class ObserverBus:
    """Synchronous fan-out to listeners plus an async change channel."""

    def __init__(self):
        self._listeners: Dict[int, Listener] = {}
        self._tokens = itertools.count()
        self._lock = threading.Lock()
        self._version = 0

    @property
    def version(self) -> int:
        """Number of notifications published so far."""
        return self._version

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` and return a function that removes it."""
        token = next(self._tokens)
        with self._lock:
            self._listeners[token] = listener

        def unsubscribe():
            with self._lock:
                self._listeners.pop(token, None)

        return unsubscribe

    def notify(self):
        """Call every listener. A failing listener is logged and skipped."""
        with self._lock:
            self._version += 1
            listeners = list(self._listeners.values())

        for listener in listeners:
            try:
                listener()
            except Exception as e:
                logger.warning(f"Upload listener {listener!r} raised {type(e).__name__}: {e}")

    async def changes(self, initial: bool = False) -> AsyncIterator[int]:
        """Yield the current version each time state changes.

        Bursts of notifications that arrive while the consumer is busy are
        coalesced into a single wake-up. With ``initial`` the current version
        is yielded once before waiting.
        """
        loop = asyncio.get_running_loop()
        wake = asyncio.Event()

        def on_change():
            loop.call_soon_threadsafe(wake.set)

        unsubscribe = self.subscribe(on_change)
        try:
            if initial:
                yield self._version
            while True:
                await wake.wait()
                wake.clear()
                yield self._version
        finally:
            unsubscribe()
