"""Timeouts and error classification for board client calls.

Every call the pipeline makes to the board service goes through
``guarded_call`` so that timeouts and connector errors come out as the
sync error taxonomy.
"""

import asyncio
from typing import Awaitable, TypeVar

from connectors.board_base import BoardClientError
from core.errors import MutationRejectedError, QueryRejectedError, TransportError

T = TypeVar("T")


async def guarded_call(
    call: Awaitable[T],
    operation: str,
    timeout_seconds: float,
    mutation: bool = False,
) -> T:
    """Await a client call with a timeout and classify its failures.

    Args:
        call: The client coroutine
        operation: Name used in error messages (e.g. "create_item")
        timeout_seconds: Per-call timeout
        mutation: True when the call writes; rejections become MutationRejectedError

    Raises:
        TransportError: Timeout or a retryable connector error
        MutationRejectedError: A mutation the service refused
        QueryRejectedError: A lookup the service refused
    """
    try:
        return await asyncio.wait_for(call, timeout_seconds)
    except asyncio.TimeoutError as e:
        raise TransportError(
            f"{operation} timed out after {timeout_seconds}s",
            operation=operation,
        ) from e
    except BoardClientError as e:
        if e.retryable:
            raise TransportError(
                f"{operation} failed: {e.message}",
                operation=operation,
                status_code=e.status_code or None,
            ) from e
        if mutation:
            raise MutationRejectedError(e.message, operation=operation, remote_errors=e.errors) from e
        raise QueryRejectedError(e.message, operation=operation, remote_errors=e.errors) from e
