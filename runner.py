"""
A single event loop on a daemon thread that owns all async backend work.

Flask handles requests on worker threads; routes hand their coroutines to
this loop, so reconciler tasks and cache refreshes from different requests
always share one loop and are never touched from two threads at once.
"""
import asyncio
import logging
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class BackgroundLoop:

    def __init__(self, name: str = 'backend-loop'):
        self.name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        """The running loop, started on first use"""
        with self._lock:
            if self._loop is None or self._loop.is_closed():
                self._loop = asyncio.new_event_loop()
                self._thread = threading.Thread(target=self._run, args=(self._loop,), name=self.name, daemon=True)
                self._thread.start()
                logger.debug("Started %s", self.name)
            return self._loop

    @staticmethod
    def _run(loop: asyncio.AbstractEventLoop):
        asyncio.set_event_loop(loop)
        loop.run_forever()

    def run(self, coro, timeout: Optional[float] = None):
        """Run a coroutine on the loop and block the calling thread for its result"""
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout)

    def stop(self):
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop = self._thread = None
        if loop is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        thread.join()
        loop.close()
