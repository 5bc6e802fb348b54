"""
Resource Broadcaster - Single-assignment, multi-read hand-off of a started resource.

A controller node may not even exist yet when the server starts, so the
started resource must be available to subscribers that attach before OR
after resolution. Backed by concurrent.futures.Future, whose done
callbacks run immediately when added to an already-finished future.

Thread Safety:
- resolve()/fail() race safely (first writer wins, Future state lock)
- result()/subscribe() may be called from any thread
"""

import logging
from concurrent.futures import CancelledError, Future, InvalidStateError
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

R = TypeVar("R")


class ResourceBroadcaster(Generic[R]):
    """
    Write-once, read-many holder of a started resource or its failure.

    Example:
        broadcaster = ResourceBroadcaster("server:srv")
        broadcaster.subscribe(lambda server, error: print(server, error))

        broadcaster.resolve(server)       # True
        broadcaster.resolve(other_server) # False, value unchanged

        broadcaster.result(timeout=1.0)   # server (also for late callers)
    """

    def __init__(self, name: str):
        self.name = name
        self._future: Future = Future()

    def resolve(self, value: R) -> bool:
        """
        Resolve with the started resource.

        Returns:
            True if this call assigned the value, False if already resolved
        """
        try:
            self._future.set_result(value)
        except InvalidStateError:
            logger.warning(f"Broadcaster '{self.name}' already resolved, ignoring value")
            return False
        return True

    def fail(self, error: BaseException) -> bool:
        """
        Resolve with a failure; every current and future reader receives it.

        Returns:
            True if this call assigned the failure, False if already resolved
        """
        try:
            self._future.set_exception(error)
        except InvalidStateError:
            logger.warning(f"Broadcaster '{self.name}' already resolved, ignoring failure")
            return False
        return True

    def done(self) -> bool:
        return self._future.done()

    def failed(self) -> bool:
        return self._future.done() and self._future.exception() is not None

    def result(self, timeout: Optional[float] = None) -> R:
        """
        Block until resolved and return the resource.

        Raises:
            The failure passed to fail(), for every caller
            concurrent.futures.TimeoutError: If timeout elapses first
        """
        return self._future.result(timeout=timeout)

    def exception(self, timeout: Optional[float] = None) -> Optional[BaseException]:
        return self._future.exception(timeout=timeout)

    def subscribe(self, callback: Callable[[Optional[R], Optional[BaseException]], None]) -> None:
        """
        Call `callback(value, error)` once the broadcaster resolves.

        Runs immediately (in the caller's thread) when already resolved,
        otherwise in the thread that resolves it.
        """

        def _deliver(future: Future) -> None:
            try:
                error = future.exception()
            except CancelledError as e:
                callback(None, e)
                return
            if error is not None:
                callback(None, error)
            else:
                callback(future.result(), None)

        self._future.add_done_callback(_deliver)
