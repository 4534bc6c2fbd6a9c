"""
Fire-and-forget delivery of collector messages.

The collector never waits on, retries or observes delivery: a message
is handed to ``send_and_forget`` which schedules ``deliver`` as a task.
``deliver`` converts every failure into a ``SendResult`` so nothing
propagates back into the page callbacks; callers are free to ignore it.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Awaitable, Callable
from typing import Any

import aiohttp

from pagewatch.utils import logger
from pagewatch.utils.errors import get_error_message

log = logger.create_logger("Transport")

MessageSender = Callable[[dict[str, Any]], Awaitable[Any]]

# Strong references so scheduled deliveries are not garbage collected.
_in_flight: set[asyncio.Task[SendResult]] = set()


@dataclasses.dataclass(frozen=True)
class SendResult:
    """Outcome of one delivery attempt."""

    delivered: bool
    response: Any = None
    error: str | None = None


async def deliver(sender: MessageSender, message: dict[str, Any]) -> SendResult:
    """Send *message* once, turning any failure into an undelivered result."""
    try:
        response = await sender(message)
    except Exception as exc:
        log.debug("Message not delivered", {"type": message.get("type"), "error": get_error_message(exc)})
        return SendResult(delivered=False, error=get_error_message(exc))
    return SendResult(delivered=True, response=response)


def send_and_forget(sender: MessageSender, message: dict[str, Any]) -> asyncio.Task[SendResult] | None:
    """Schedule delivery of *message* on the running loop without awaiting it.

    Returns the task for callers that want to observe it (tests), or
    ``None`` when there is no running loop and the message is dropped.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        log.debug("No running event loop, message dropped", {"type": message.get("type")})
        return None
    task = loop.create_task(deliver(sender, message))
    _in_flight.add(task)
    task.add_done_callback(_in_flight.discard)
    return task


class HttpMessageSender:
    """Posts messages to a PageWatch server's ``/api/messages`` endpoint.

    Reuses one ``aiohttp.ClientSession`` for the lifetime of the sender;
    call ``close()`` when the watch session ends.
    """

    def __init__(self, endpoint: str, timeout_seconds: float = 5.0) -> None:
        self._endpoint = endpoint
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: aiohttp.ClientSession | None = None

    async def __call__(self, message: dict[str, Any]) -> Any:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        async with self._session.post(self._endpoint, json=message) as response:
            response.raise_for_status()
            return await response.json()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
