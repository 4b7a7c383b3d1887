"""Background event loop driving the asyncio clients from blocking code.

A client keeps its sessions (FTP control channel, SSH transport, pooled HTTP
connections) bound to the loop it connected on, so every call made through
one ``AsyncRunner`` lands on the same loop thread.
"""

import asyncio
import logging
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from typing import Any, Coroutine, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class AsyncRunner:
    """Owns an event loop running in a daemon thread.

    Example:
        with AsyncRunner() as runner:
            client = runner.run_sync(connect("sftp", {"host": "example.com"}))
            names = runner.run_sync(client.readdir("/"))
            runner.run_sync(client.disconnect())

    Stopping the runner cancels whatever is still pending on its loop, such
    as an upload whose stream was never closed.
    """

    thread_name = "filetransfer-loop"

    def __init__(self) -> None:
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise RuntimeError("AsyncRunner not started - call start() first")
        return self._loop

    def start(self) -> None:
        """Start the loop thread and return once the loop is running.

        Raises:
            RuntimeError: If the runner is already started.
        """
        if self._loop is not None:
            raise RuntimeError("AsyncRunner is already started")

        loop = asyncio.new_event_loop()
        ready = threading.Event()

        def serve() -> None:
            asyncio.set_event_loop(loop)
            loop.call_soon(ready.set)
            loop.run_forever()

        self._loop = loop
        self._thread = threading.Thread(target=serve, name=self.thread_name, daemon=True)
        self._thread.start()
        ready.wait()
        logger.debug("Started event loop thread %s", self.thread_name)

    def run(self, coro: Coroutine[Any, Any, T]) -> "Future[T]":
        """Schedule a coroutine on the loop thread.

        Raises:
            RuntimeError: If the runner is not started. The coroutine is
                          closed without running.
        """
        if self._loop is None:
            coro.close()
            raise RuntimeError("AsyncRunner not started - call start() first")
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def run_sync(self, coro: Coroutine[Any, Any, T], timeout: Optional[float] = None) -> T:
        """Run a coroutine on the loop thread and wait for its outcome.

        Args:
            coro: The coroutine to execute.
            timeout: Optional timeout in seconds. On expiry the coroutine is
                     cancelled before TimeoutError is raised.

        Raises:
            Exception: Whatever the coroutine raises.
        """
        future = self.run(coro)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            future.cancel()
            raise

    async def _shutdown(self) -> None:
        current = asyncio.current_task()
        pending = [task for task in asyncio.all_tasks() if task is not current]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        if pending:
            logger.debug("Cancelled %d pending task(s) on shutdown", len(pending))
        await asyncio.get_running_loop().shutdown_asyncgens()

    def stop(self, timeout: float = 5.0) -> None:
        """Cancel pending work, stop the loop and join its thread. Safe to repeat."""
        loop, thread = self._loop, self._thread
        if loop is None:
            return
        self._loop = None
        self._thread = None

        if thread is not None and thread.is_alive():
            try:
                asyncio.run_coroutine_threadsafe(self._shutdown(), loop).result(timeout=timeout)
            except FutureTimeoutError:
                logger.warning("Event loop thread %s did not shut down in time", self.thread_name)
            loop.call_soon_threadsafe(loop.stop)
            thread.join(timeout=timeout)

        if not loop.is_running():
            loop.close()
        logger.debug("Stopped event loop thread %s", self.thread_name)

    def __enter__(self) -> "AsyncRunner":
        self.start()
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[object],
    ) -> None:
        self.stop()
