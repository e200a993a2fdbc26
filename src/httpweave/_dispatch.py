"""
I/O dispatch context

An asyncio event loop driven by a single daemon thread. Engines schedule all
socket and timer work on it, so the completions of one engine never run
concurrently. Calling threads talk to it only through post() and call().
"""

import asyncio
import concurrent.futures
import logging
import threading

logger = logging.getLogger(__name__)


class DispatchContext:
    """Event loop running on a dedicated worker thread"""

    def __init__(self, name="httpweave-dispatch"):
        self.name = name
        self._loop = None
        self._thread = None
        self._lock = threading.Lock()
        self._stopped = False

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        self.start()
        return self._loop

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Start the worker thread if it is not running yet"""
        with self._lock:
            if self._stopped:
                raise RuntimeError("dispatch context has been stopped")
            if self._thread is not None:
                return
            loop = asyncio.new_event_loop()
            ready = threading.Event()

            def run():
                asyncio.set_event_loop(loop)
                loop.call_soon(ready.set)
                loop.run_forever()

            self._loop = loop
            self._thread = threading.Thread(target=run, name=self.name, daemon=True)
            self._thread.start()
            ready.wait()
            logger.debug("dispatch thread %s started", self.name)

    def in_dispatch_thread(self):
        return self._thread is not None and threading.current_thread() is self._thread

    def post(self, fn, *args):
        """Schedule fn(*args) on the dispatch thread"""
        self.loop.call_soon_threadsafe(fn, *args)

    def call(self, fn, *args, timeout=None):
        """Run fn(*args) on the dispatch thread and return its result"""
        if self.in_dispatch_thread():
            return fn(*args)

        future = concurrent.futures.Future()

        def run():
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(fn(*args))
            except BaseException as exc:
                future.set_exception(exc)

        self.post(run)
        return future.result(timeout)

    def stop(self):
        """Stop the loop and join the worker thread. Idempotent."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            loop, thread = self._loop, self._thread
        if loop is None:
            return
        if thread is threading.current_thread():
            raise RuntimeError("cannot stop the dispatch context from its own thread")
        loop.call_soon_threadsafe(loop.stop)
        thread.join()
        loop.close()
        logger.debug("dispatch thread %s stopped", self.name)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
