""" A server for devices that connect to us (Outbound WebSocket).

Devices open a WebSocket to the server and identify themselves through the `src` field of the
first frame they send. The server keeps one :class:`~shellyrpc.rpc.handler.OutboundWebSocketRpcHandler`
per device id, and hands every new socket of a device to its handler. From then on the server
stays out of the way: all further frames go straight to the handler.

Example:
  >>> server = OutboundWebSocketServer(ServerOptions(port=8765))
  >>> server.on("discover", lambda identifiers: print(identifiers.device_id))
  >>> await server.listen()
"""

from __future__ import annotations

import asyncio
import dataclasses
import http
import json
import logging
import types
import urllib.parse
from typing import Any, Coroutine, Dict, Mapping, Optional, Set, Union

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.http11 import Request, Response

from shellyrpc.config.config import ServerOptions
from shellyrpc.io.socket import POLICY_VIOLATION, ReadyState
from shellyrpc.io.websocket import WebSocketConnection
from shellyrpc.rpc.errors import ProtocolError, TransportError
from shellyrpc.rpc.handler import PROTOCOL, OutboundWebSocketRpcHandler
from shellyrpc.utils.events import EventEmitter

logger = logging.getLogger(__name__)


GOING_AWAY = 1001


@dataclasses.dataclass(frozen=True)
class DeviceIdentifiers:
  """ Identifies a device that has been discovered. """

  device_id: str
  protocol: str = PROTOCOL

  def __str__(self) -> str:
    return f"{self.device_id} ({self.protocol})"


class OutboundWebSocketServer(EventEmitter):
  """ Accepts incoming WebSocket connections from devices and multiplexes them over RPC handlers.

  Events:
    listening: The server has started listening.
    close: The server has been closed.
    connection(socket): A new socket has been accepted. The server still owns it.
    discover(identifiers): A device has connected for the first time. `identifiers` is a
      :class:`DeviceIdentifiers`.
    error(exc): An incoming connection failed before it could be handed to a handler, or the
      server failed to start.
  """

  def __init__(self, options: Optional[ServerOptions] = None):
    super().__init__()
    self.options = options if options is not None else ServerOptions()

    self._rpc_handlers: Dict[str, OutboundWebSocketRpcHandler] = {}
    self._server: Optional[Server] = None

    # sockets that have not sent their first message yet
    self._pending_sockets: Set[WebSocketConnection] = set()
    self._background_tasks: Set[asyncio.Task[None]] = set()

  @property
  def server(self) -> Server:
    """ The underlying `websockets` server. """
    if self._server is None:
      raise RuntimeError("The server is not listening. See `listen`.")
    return self._server

  @property
  def listening(self) -> bool:
    return self._server is not None

  @property
  def bound_port(self) -> int:
    """ The port the server is bound to. Useful when listening on port 0. """
    for sock in self.server.sockets:
      return sock.getsockname()[1]
    raise RuntimeError("The server is not bound to a socket.")

  @property
  def rpc_handlers(self) -> Mapping[str, OutboundWebSocketRpcHandler]:
    """ All RPC handlers, by device id. """
    return types.MappingProxyType(self._rpc_handlers)

  async def listen(self):
    """ Start accepting connections.

    Raises:
      OSError: If the server could not be bound. An `error` event is emitted as well.
    """

    if self._server is not None:
      raise RuntimeError("The server is already listening.")

    try:
      self._server = await serve(
        self._handle_connection,
        self.options.host,
        self.options.port,
        process_request=self._process_request,
      )
    except OSError as e:
      logger.error("Failed to start server on %s:%s: %s", self.options.host or "*",
        self.options.port, e)
      self.emit("error", e)
      raise

    logger.info("Listening for Outbound WebSocket connections on %s:%d%s",
      self.options.host or "*", self.bound_port, self.options.path or "")
    self.emit("listening")

  async def close(self):
    """ Stop accepting connections.

    Sockets that have already been handed to an RPC handler are not closed; their handlers own them.
    This method returns once the underlying server has finished, which includes the connections of
    those sockets ending (e.g. through :meth:`OutboundWebSocketRpcHandler.destroy`).
    """

    if self._server is None:
      return

    server = self._server
    logger.info("Closing server")
    server.close(close_connections=False)

    # these were never handed to a handler, so they are still ours to close
    for socket in list(self._pending_sockets):
      self._create_task(socket.close(GOING_AWAY, "Server closing"))

    await server.wait_closed()
    if len(self._background_tasks) > 0:
      await asyncio.gather(*self._background_tasks, return_exceptions=True)

    self._server = None
    self.emit("close")

  async def __aenter__(self):
    await self.listen()
    return self

  async def __aexit__(self, exc_type, exc_value, traceback):
    await self.close()

  def get_rpc_handler(self, device_id: str) -> OutboundWebSocketRpcHandler:
    """ Return the RPC handler for a device, creating a handler without a socket if the device has
    not connected yet. The handler picks up the device's socket as soon as it connects. """

    rpc_handler = self._rpc_handlers.get(device_id)
    if rpc_handler is None:
      rpc_handler = OutboundWebSocketRpcHandler(None, self.options, device_id=device_id)
      self._rpc_handlers[device_id] = rpc_handler
      logger.debug("Created RPC handler for %s", device_id)
    return rpc_handler

  def remove_rpc_handler(self, device_id: str) -> Optional[OutboundWebSocketRpcHandler]:
    """ Forget the RPC handler for a device. The handler is not destroyed.

    Returns:
      The removed handler, or `None` if there was none.
    """

    return self._rpc_handlers.pop(device_id, None)

  def _process_request(
    self,
    connection: ServerConnection,
    request: Request,
  ) -> Optional[Response]:
    """ Refuse handshakes to paths other than `options.path`. """

    if self.options.path is None:
      return None

    path = urllib.parse.urlsplit(request.path).path
    if path != self.options.path:
      logger.warning("Refused connection to path %r (expected %r)", request.path,
        self.options.path)
      return connection.respond(http.HTTPStatus.BAD_REQUEST, "Invalid path\n")
    return None

  async def _handle_connection(self, websocket: ServerConnection):
    """ Called by `websockets` for every new connection. Returns when the connection ends. """

    socket = WebSocketConnection(websocket)
    logger.debug("Incoming connection from %s", socket.remote_address)
    self.emit("connection", socket)
    self._await_first_message(socket)
    await socket.run()

  def _await_first_message(self, socket: WebSocketConnection):
    self._pending_sockets.add(socket)

    def handle_message(data: Union[str, bytes]):
      remove_listeners()
      self._handle_first_message(socket, data)

    def handle_close(code: int, reason: str):
      # the socket was closed before a message was received
      remove_listeners()
      self._report_error(TransportError(
        f"Incoming connection closed unexpectedly (code: {code}, reason: {reason!r})", code=code))

    def handle_error(error: Exception):
      remove_listeners()
      self._report_error(TransportError(f"Error in incoming connection: {error}"))
      self._abandon(socket)

    def remove_listeners():
      self._pending_sockets.discard(socket)
      socket \
        .off("message", handle_message) \
        .off("close", handle_close) \
        .off("error", handle_error)

    socket \
      .once("message", handle_message) \
      .once("close", handle_close) \
      .once("error", handle_error)

  def _handle_first_message(self, socket: WebSocketConnection, data: Union[str, bytes]):
    try:
      message = json.loads(data)
    except (TypeError, ValueError) as e:
      self._report_error(ProtocolError(f"Failed to parse first message: {e}"))
      self._abandon(socket)
      return

    src = message.get("src") if isinstance(message, dict) else None
    if not isinstance(src, str) or len(src) == 0:
      self._report_error(ProtocolError(f"Message source missing or invalid: {src!r}"))
      self._abandon(socket)
      return

    rpc_handler = self._rpc_handlers.get(src)
    if rpc_handler is not None:
      # a known device has reconnected, replace the socket of its handler
      logger.info("Device %s connected from %s", src, socket.remote_address)
      rpc_handler.attach(socket)
    else:
      rpc_handler = OutboundWebSocketRpcHandler(socket, self.options, device_id=src)
      self._rpc_handlers[src] = rpc_handler
      logger.info("Discovered device %s at %s", src, socket.remote_address)
      try:
        self.emit("discover", DeviceIdentifiers(device_id=src))
      except Exception as e: # pylint: disable=broad-except
        # the handler exists, it still gets the first message
        logger.exception("Error in discover listener for %s", src)
        self.emit("error", e)

    # deliver the message again, so that the handler sees it
    socket.emit("message", data)

  def _abandon(self, socket: WebSocketConnection):
    if socket.ready_state in (ReadyState.OPEN, ReadyState.CONNECTING):
      self._create_task(socket.close(POLICY_VIOLATION, "Invalid first message"))

  def _report_error(self, error: Exception):
    logger.warning("%s", error)
    self.emit("error", error)

  def _create_task(self, coro: Coroutine[Any, Any, None]):
    task = asyncio.get_running_loop().create_task(coro)
    self._background_tasks.add(task)
    task.add_done_callback(self._handle_task_done)

  def _handle_task_done(self, task: asyncio.Task[None]):
    self._background_tasks.discard(task)
    if not task.cancelled() and task.exception() is not None:
      logger.warning("Failed to close incoming connection: %r", task.exception())
