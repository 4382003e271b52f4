import logging
from typing import Optional, Union

from websockets.asyncio.server import ServerConnection
from websockets.exceptions import ConnectionClosedError
from websockets.protocol import State

from shellyrpc.io.log_levels import LOG_LEVEL_IO
from shellyrpc.io.socket import ABNORMAL_CLOSURE, NORMAL_CLOSURE, ReadyState, Socket

logger = logging.getLogger(__name__)


_READY_STATE_FROM_PROTOCOL_STATE = {
  State.CONNECTING: ReadyState.CONNECTING,
  State.OPEN: ReadyState.OPEN,
  State.CLOSING: ReadyState.CLOSING,
  State.CLOSED: ReadyState.CLOSED,
}


class WebSocketConnection(Socket):
  """ A :class:`~shellyrpc.io.socket.Socket` backed by a connection accepted by a `websockets`
  server.

  The connection is already open when it is handed to us, so no `open` event is emitted. Call
  :meth:`run` from the server's connection handler: it reads frames until the connection ends and
  emits them as `message` events, followed by a single `close` event.
  """

  def __init__(self, websocket: ServerConnection):
    super().__init__()
    self._websocket = websocket
    self._close_emitted = False

  @property
  def websocket(self) -> ServerConnection:
    return self._websocket

  @property
  def ready_state(self) -> ReadyState:
    if self._close_emitted:
      return ReadyState.CLOSED
    return _READY_STATE_FROM_PROTOCOL_STATE[self._websocket.state]

  @property
  def remote_address(self) -> Optional[str]:
    address = self._websocket.remote_address
    if isinstance(address, tuple) and len(address) >= 2:
      return f"{address[0]}:{address[1]}"
    return str(address) if address is not None else None

  @property
  def path(self) -> Optional[str]:
    """ The request path of the opening handshake. """
    request = self._websocket.request
    return request.path if request is not None else None

  async def send(self, data: str) -> None:
    logger.log(LOG_LEVEL_IO, "[%s] write %s", self.remote_address, data)
    await self._websocket.send(data)

  async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
    logger.debug("Closing connection to %s (code: %d, reason: %r)", self.remote_address, code,
      reason)
    await self._websocket.close(code, reason)

  async def run(self) -> None:
    """ Read frames until the connection is closed. """

    try:
      async for message in self._websocket:
        self._handle_message(message)
    except ConnectionClosedError as e:
      logger.debug("Connection to %s closed with error: %s", self.remote_address, e)
    finally:
      self._handle_close()

  def _handle_message(self, message: Union[str, bytes]):
    logger.log(LOG_LEVEL_IO, "[%s] read %s", self.remote_address, message)
    try:
      self.emit("message", message)
    except Exception as e: # pylint: disable=broad-except
      logger.exception("Error while handling a message from %s", self.remote_address)
      self.emit("error", e)

  def _handle_close(self):
    if self._close_emitted:
      return
    self._close_emitted = True
    code = self._websocket.close_code
    reason = self._websocket.close_reason
    self.emit(
      "close",
      code if code is not None else ABNORMAL_CLOSURE,
      reason if reason is not None else "")
