""" Correlation of JSON-RPC requests with their responses.

A :class:`CorrelationClient` assigns an id to every outgoing request, keeps a
:class:`PendingRequest` for it until a response with the same id arrives, and rejects requests that
are not answered in time. It does not know about sockets: frames are handed to a `transmit`
coroutine supplied by the owner, and responses are fed back with :meth:`CorrelationClient.receive`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Mapping, Optional

from shellyrpc.rpc.errors import ConnectionClosedError, RemoteError, RequestTimeoutError

logger = logging.getLogger(__name__)


# Request ids wrap around after this value. Ids still pending are skipped.
MAX_REQUEST_ID = 2**31 - 1

DEFAULT_REQUEST_TIMEOUT = 10.0


Transmit = Callable[[Dict[str, Any]], Awaitable[None]]


@dataclass(frozen=True)
class PendingRequest:
  """ A request that has been sent, but not yet answered. """

  request_id: int
  method: str
  fut: asyncio.Future[Any]
  timer: asyncio.TimerHandle


class CorrelationClient:
  """ Matches responses to requests by id, with a timeout per request. """

  def __init__(self, transmit: Transmit):
    """
    Args:
      transmit: Coroutine function that serializes and sends a request payload. If it raises, the
        request fails immediately with that exception.
    """

    self._transmit = transmit
    self._pending_by_id: Dict[int, PendingRequest] = {}
    self._id = 0

  @property
  def pending_ids(self) -> FrozenSet[int]:
    """ Ids of requests that are still waiting for a response. """
    return frozenset(self._pending_by_id)

  def _generate_id(self) -> int:
    """ continuously generate ids 1 <= x <= MAX_REQUEST_ID that are not pending. """
    while True:
      self._id = self._id % MAX_REQUEST_ID + 1
      if self._id not in self._pending_by_id:
        return self._id

  async def send(
    self,
    method: str,
    params: Optional[Dict[str, Any]] = None,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
  ) -> Any:
    """ Send a request and wait for its response.

    Args:
      method: The RPC method name.
      params: The method parameters. Omitted from the payload when `None`.
      timeout: Seconds to wait for a response.

    Returns:
      The `result` of the matching response.

    Raises:
      RequestTimeoutError: If no response arrived within `timeout` seconds.
      RemoteError: If the response carried an `error` object.
      ConnectionClosedError: If the request was rejected by :meth:`reject_all`.
    """

    loop = asyncio.get_running_loop()
    request_id = self._generate_id()
    fut: asyncio.Future[Any] = loop.create_future()
    timer = loop.call_later(timeout, self._expire, request_id, timeout)
    self._pending_by_id[request_id] = PendingRequest(
      request_id=request_id, method=method, fut=fut, timer=timer)

    payload: Dict[str, Any] = {"id": request_id, "method": method}
    if params is not None:
      payload["params"] = params

    logger.debug("Sending request %d: %s", request_id, method)
    try:
      try:
        await self._transmit(payload)
      except Exception as e: # pylint: disable=broad-except
        logger.warning("Failed to send request %d (%s): %r", request_id, method, e)
        self._complete_pending(request_id, exception=e)
      return await fut
    finally:
      # no-op unless the caller was cancelled while sending or waiting
      self._complete_pending(request_id, cancel=True)

  def receive(self, message: Mapping[str, Any]) -> bool:
    """ Resolve the pending request matching the `id` of a response.

    Returns:
      `True` if the response matched a pending request. Responses with an unknown id (e.g. arriving
      after their request timed out) are discarded and `False` is returned.
    """

    request_id = message.get("id")
    if not isinstance(request_id, int) or isinstance(request_id, bool) or \
        request_id not in self._pending_by_id:
      logger.debug("Discarding response with unknown id: %r", request_id)
      return False

    if "error" in message:
      self._complete_pending(request_id, exception=RemoteError.from_response(message["error"]))
    else:
      self._complete_pending(request_id, result=message.get("result"))
    return True

  def reject_all(self, reason: str) -> int:
    """ Reject all pending requests with a :class:`ConnectionClosedError`.

    Returns:
      The number of requests that were rejected.
    """

    request_ids = list(self._pending_by_id)
    for request_id in request_ids:
      self._complete_pending(request_id, exception=ConnectionClosedError(reason))
    if len(request_ids) > 0:
      logger.debug("Rejected %d pending request(s): %s", len(request_ids), reason)
    return len(request_ids)

  def _expire(self, request_id: int, timeout: float):
    pending = self._pending_by_id.get(request_id)
    if pending is None:
      return
    logger.warning("Request %d (%s) timed out after %s seconds", request_id, pending.method,
      timeout)
    self._complete_pending(
      request_id,
      exception=RequestTimeoutError(
        f"Request {pending.method} ({request_id}) timed out after {timeout} seconds"))

  def _complete_pending(
    self,
    request_id: int,
    result: Any = None,
    exception: Optional[BaseException] = None,
    cancel: bool = False,
  ) -> None:
    """ Remove a pending request, clear its timer and settle its future. """

    pending = self._pending_by_id.pop(request_id, None)
    if pending is None:
      return
    pending.timer.cancel()
    if pending.fut.done():
      return

    if cancel:
      pending.fut.cancel()
    elif exception is not None:
      pending.fut.set_exception(exception)
    else:
      pending.fut.set_result(result)
