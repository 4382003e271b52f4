import asyncio
import json
import logging
from typing import Any, Dict, Optional, Union

from shellyrpc.config.config import ServerOptions
from shellyrpc.io.socket import NORMAL_CLOSURE, ReadyState, Socket
from shellyrpc.rpc.base import RpcHandler
from shellyrpc.rpc.client import CorrelationClient
from shellyrpc.rpc.errors import DisconnectedError, ProtocolError
from shellyrpc.rpc.lifecycle import ConnectionLifecycle, ConnectionState, LifecycleEvent

logger = logging.getLogger(__name__)


PROTOCOL = "outboundWebsocket"

STATUS_NOTIFICATIONS = frozenset({"NotifyStatus", "NotifyFullStatus"})
EVENT_NOTIFICATIONS = frozenset({"NotifyEvent"})


class OutboundWebSocketRpcHandler(RpcHandler):
  """ Makes remote procedure calls to a single device over an Outbound WebSocket.

  The handler owns at most one socket at a time. When a device reconnects, the server attaches the
  new socket to the existing handler (see :attr:`socket`), so pending requests and event
  subscriptions survive the reconnect.

  Example:
    >>> handler = server.get_rpc_handler("shellyplus1-aabbcc")
    >>> handler.on("statusUpdate", print)
    >>> status = await handler.request("Shelly.GetStatus")
  """

  def __init__(
    self,
    socket: Optional[Socket],
    options: ServerOptions,
    device_id: Optional[str] = None,
  ):
    """
    Args:
      socket: The socket to communicate over, or `None` to wait for the device to connect.
      options: Configuration options. `client_id` and `request_timeout` are used.
      device_id: The id of the device. If set, frames with a different `src` are rejected.
    """

    super().__init__(PROTOCOL)
    self.options = options
    self.device_id = device_id

    self._socket: Optional[Socket] = socket
    self._lifecycle = ConnectionLifecycle(socket)
    self._destroyed = False
    self.client = CorrelationClient(self._send_request)

    self._bind(socket)

  def __repr__(self) -> str:
    return f"{self.__class__.__name__}({self.device_id!r})"

  @property
  def socket(self) -> Optional[Socket]:
    """ The underlying socket. Assigning a socket replaces the current one, see :meth:`attach`. """
    return self._socket

  @socket.setter
  def socket(self, socket: Optional[Socket]):
    self.attach(socket)

  @property
  def connected(self) -> bool:
    return self._socket is not None and self._socket.ready_state == ReadyState.OPEN

  @property
  def state(self) -> ConnectionState:
    """ The last observed state of the connection. """
    return self._lifecycle.state

  @property
  def destroyed(self) -> bool:
    return self._destroyed

  def attach(self, socket: Optional[Socket]):
    """ Replace the current socket.

    The old socket is released but not closed. If the replacement crosses the connected boundary,
    exactly one `connect` or `disconnect` event is emitted. Attaching the current socket again does
    nothing.
    """

    if socket is self._socket:
      return

    old_socket = self._socket
    self._unbind(old_socket)
    self._socket = socket
    self._bind(socket)
    logger.info("%r: socket replaced (%r -> %r)", self, old_socket, socket)

    event = self._lifecycle.replaced(old_socket, socket)
    if event is LifecycleEvent.CONNECT:
      self.emit("connect")
    elif event is LifecycleEvent.DISCONNECT:
      self.emit("disconnect", NORMAL_CLOSURE, "Socket replaced", None)

  async def request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
    """ Send a request to the device.

    Raises:
      DisconnectedError: If the device is not connected, or the handler has been destroyed. No data
        is sent in this case.
      RequestTimeoutError: If the device did not respond within `options.request_timeout` seconds.
      RemoteError: If the device responded with an error.
      ConnectionClosedError: If the handler was destroyed while waiting for the response.
    """

    if self._destroyed:
      raise DisconnectedError("WebSocket disconnected: handler destroyed")
    if not self.connected:
      raise DisconnectedError("WebSocket disconnected")

    self.emit("request", method, params)
    return await self.client.send(method, params, timeout=self.options.request_timeout)

  async def destroy(self) -> None:
    """ Reject all pending requests and close the socket.

    Waits until the socket has confirmed the close. Requests made after this method has been called
    fail immediately.
    """

    self._destroyed = True
    self.client.reject_all("Connection closed")
    try:
      await self._disconnect()
    finally:
      self._unbind(self._socket)

  async def _disconnect(self):
    socket = self._socket
    if socket is None:
      return

    state = socket.ready_state
    if state == ReadyState.CLOSED:
      return

    closed: asyncio.Future[None] = asyncio.get_running_loop().create_future()

    def handle_closed(*_):
      if not closed.done():
        closed.set_result(None)

    socket.once("close", handle_closed)
    try:
      if state in (ReadyState.OPEN, ReadyState.CONNECTING):
        await socket.close(NORMAL_CLOSURE, "User request")
      await closed
    finally:
      socket.off("close", handle_closed)

  async def _send_request(self, payload: Dict[str, Any]):
    socket = self._socket
    if socket is None or socket.ready_state != ReadyState.OPEN:
      raise DisconnectedError("WebSocket disconnected")

    # add our client id so that the device knows where to send the response
    data = {"src": self.options.client_id, **payload}
    await socket.send(json.dumps(data))

  def _bind(self, socket: Optional[Socket]):
    if socket is None:
      return
    socket \
      .on("open", self._handle_open) \
      .on("close", self._handle_close) \
      .on("message", self._handle_message) \
      .on("error", self._handle_error)

  def _unbind(self, socket: Optional[Socket]):
    if socket is None:
      return
    socket \
      .off("open", self._handle_open) \
      .off("close", self._handle_close) \
      .off("message", self._handle_message) \
      .off("error", self._handle_error)

  def _handle_open(self):
    logger.info("%r: connected", self)
    if self._lifecycle.opened() is LifecycleEvent.CONNECT:
      self.emit("connect")

  def _handle_close(self, code: int, reason: str):
    self._unbind(self._socket)
    logger.info("%r: disconnected (code: %s, reason: %r)", self, code, reason)
    if self._lifecycle.closed() is LifecycleEvent.DISCONNECT:
      self.emit("disconnect", code, reason, None)

  def _handle_error(self, error: Exception):
    logger.warning("%r: socket error: %r", self, error)
    self.emit("error", error)

  def _handle_message(self, data: Union[str, bytes]):
    try:
      message = json.loads(data)
    except (TypeError, ValueError) as e:
      self._protocol_error(f"Failed to parse message: {e}")
      return

    if not isinstance(message, dict):
      self._protocol_error(f"Message is not a JSON object: {message!r}")
      return

    try:
      self._dispatch(message)
    except Exception as e: # pylint: disable=broad-except
      logger.exception("%r: error while handling message", self)
      self.emit("error", e)

  def _dispatch(self, message: Dict[str, Any]):
    src = message.get("src")
    if self.device_id is not None and src is not None and src != self.device_id:
      self._protocol_error(f"Message source {src!r} does not match device {self.device_id!r}")
      return

    if "id" in message:
      # this is a response, let the client match it with its request
      if not self.client.receive(message):
        logger.debug("%r: ignored response with unknown id %r", self, message["id"])
      return

    method = message.get("method")
    if method in STATUS_NOTIFICATIONS:
      self.emit("statusUpdate", message.get("params"))
    elif method in EVENT_NOTIFICATIONS:
      self.emit("event", message.get("params"))
    else:
      self._protocol_error(f"Unrecognized message: {method!r}")

  def _protocol_error(self, msg: str):
    logger.warning("%r: %s", self, msg)
    self.emit("error", ProtocolError(msg))
