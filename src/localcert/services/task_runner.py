"""
Off-thread execution of certificate operations.

Key generation, signing and store I/O run on a worker thread. The result
is handed back exactly once, as an OperationResult, on the caller's event
loop when the caller had one, otherwise on the worker thread itself.

There is no cancellation: a dispatched operation always runs to completion.
Deadlines belong to the caller, e.g. asyncio.wait_for around run().
"""

import asyncio
import contextvars
import threading
import uuid
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, TypeVar

from loguru import logger

from localcert.core.operation_context import operation_id_context
from localcert.models import LocalCertError, OperationResult, StoreUnavailableError

T = TypeVar("T")

ResultCallback = Callable[[OperationResult[Any]], None]


class _SingleShotCallback:
    """Wraps a callback so it runs at most once."""

    def __init__(self, callback: ResultCallback, label: str):
        self._callback = callback
        self._label = label
        self._lock = threading.Lock()
        self._fired = False

    def __call__(self, result: OperationResult[Any]) -> None:
        with self._lock:
            if self._fired:
                logger.warning(f"Result for {self._label} already delivered, dropping")
                return
            self._fired = True

        try:
            self._callback(result)
        except Exception:
            logger.exception(f"Result callback for {self._label} raised")


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class AsyncTaskRunner:
    """
    Runs synchronous operations on a thread pool and delivers their result.

    Usage:
        runner = AsyncTaskRunner(max_workers=2)
        runner.dispatch("get-or-create", lambda: manager.get_or_create("web"), on_result)

        # or, inside a coroutine
        certificate = await runner.run("get-or-create", lambda: manager.get_or_create("web"))
    """

    def __init__(self, max_workers: int = 2):
        """
        Args:
            max_workers: Worker threads in the pool
        """
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="localcert"
        )
        self._closed = False
        # Guards _closed together with submission to the executor
        self._state_lock = threading.Lock()

        logger.debug(f"Initialized AsyncTaskRunner with {max_workers} workers")

    @property
    def closed(self) -> bool:
        return self._closed

    def dispatch(
        self, label: str, operation: Callable[[], Any], callback: ResultCallback
    ) -> Future:
        """
        Run an operation on a worker thread.

        Args:
            label: Operation name used in logs
            operation: Synchronous operation to run
            callback: Receives the OperationResult exactly once

        Returns:
            Future of the worker task (resolves after delivery is scheduled)

        Raises:
            RuntimeError: If the runner has been shut down
        """
        loop = _running_loop()
        deliver = _SingleShotCallback(callback, label)
        operation_id = uuid.uuid4().hex[:12]
        context = contextvars.copy_context()

        with self._state_lock:
            if self._closed:
                raise RuntimeError("AsyncTaskRunner has been shut down")
            return self._executor.submit(
                context.run, self._execute, label, operation_id, operation, deliver, loop
            )

    def _execute(
        self,
        label: str,
        operation_id: str,
        operation: Callable[[], Any],
        deliver: _SingleShotCallback,
        loop: asyncio.AbstractEventLoop | None,
    ) -> None:
        operation_id_context.set(operation_id)
        logger.debug(f"Running {label}")

        try:
            result = OperationResult.success(operation())
        except LocalCertError as e:
            logger.warning(f"{label} failed: {e.message}")
            result = OperationResult.failure(e)
        except Exception as e:
            logger.exception(f"{label} failed unexpectedly")
            error = StoreUnavailableError(f"{label} failed unexpectedly: {e}")
            error.__cause__ = e
            result = OperationResult.failure(error)

        self._send(deliver, result, loop)

    def _send(
        self,
        deliver: _SingleShotCallback,
        result: OperationResult[Any],
        loop: asyncio.AbstractEventLoop | None,
    ) -> None:
        if loop is None:
            deliver(result)
            return

        try:
            loop.call_soon_threadsafe(deliver, result)
        except RuntimeError:
            logger.warning("Caller event loop is closed, delivering on worker thread")
            deliver(result)

    def deliver(
        self, label: str, callback: ResultCallback, result: OperationResult[Any]
    ) -> None:
        """
        Deliver a result that is known without running anything.

        Uses the same channel as dispatch(): scheduled on the caller's loop
        when there is one, otherwise invoked immediately.

        Args:
            label: Operation name used in logs
            callback: Receives the result
            result: Result to deliver
        """
        deliver = _SingleShotCallback(callback, label)
        loop = _running_loop()
        if loop is None:
            deliver(result)
        else:
            loop.call_soon(deliver, result)

    async def run(self, label: str, operation: Callable[[], T]) -> T:
        """
        Awaitable form of dispatch().

        Args:
            label: Operation name used in logs
            operation: Synchronous operation to run

        Returns:
            The operation's return value

        Raises:
            LocalCertError: If the operation failed
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[OperationResult[T]] = loop.create_future()

        def resolve(result: OperationResult[T]) -> None:
            if not future.done():
                future.set_result(result)

        self.dispatch(label, operation, resolve)
        result = await future
        return result.unwrap()

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop accepting operations and release the worker threads.

        Args:
            wait: Block until running operations have delivered their results
        """
        with self._state_lock:
            self._closed = True
        self._executor.shutdown(wait=wait)
        logger.debug("AsyncTaskRunner shut down")
