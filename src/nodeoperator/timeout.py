"""Timeout class for reconcile operations."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

from .exceptions import OperationTimeoutError

__all__ = ["Timeout"]


class Timeout:
    """Track a cumulative timeout on a series of operations.

    A reconcile pass makes a sequence of Kubernetes API calls and possibly
    opens a device session, all of which must finish within the overall
    reconcile timeout so that one stuck node cannot starve the worker pool.
    Each call takes its own timeout from what is left of the total.

    Parameters
    ----------
    operation
        Human-readable name of operation, for error reporting.
    timeout
        Duration of the timeout.
    node
        If given, node associated with the timeout, for error reporting.
    """

    def __init__(
        self, operation: str, timeout: timedelta, node: str | None = None
    ) -> None:
        self._operation = operation
        self._timeout = timeout
        self._node = node
        self._start = datetime.now(tz=UTC)

    @asynccontextmanager
    async def enforce(self) -> AsyncIterator[None]:
        """Enforce the timeout and translate `TimeoutError`.

        Raises
        ------
        OperationTimeoutError
            Raised if `TimeoutError` was raised inside the enclosed operation.
        """
        try:
            async with asyncio.timeout(self.left()):
                yield
        except (OperationTimeoutError, TimeoutError) as e:
            now = datetime.now(tz=UTC)
            raise OperationTimeoutError(
                self._operation,
                self._node,
                started_at=self._start,
                failed_at=now,
            ) from e

    def left(self) -> float:
        """Return the amount of time remaining in seconds.

        Returns
        -------
        float
            Time remaining in the timeout in seconds.

        Raises
        ------
        OperationTimeoutError
            Raised if the timeout has expired.
        """
        now = datetime.now(tz=UTC)
        left = (self._timeout - (now - self._start)).total_seconds()
        if left <= 0.0:
            raise OperationTimeoutError(
                self._operation,
                self._node,
                started_at=self._start,
                failed_at=now,
            )
        return left
