""" Runs an Outbound WebSocket server and logs what the connected devices send.

Configured through `shellyrpc.ini`/`shellyrpc.json` (see :mod:`shellyrpc.config`), with these
environment variables taking precedence:

  HOST, PORT, WS_PATH, CLIENT_ID, REQUEST_TIMEOUT: server options.
  RPC_METHOD: if set, this method is called on every device when it is discovered, e.g.
    `Shelly.GetDeviceInfo`.
"""

import asyncio
import logging
import os
import sys
from typing import Optional, Set

from websockets.exceptions import ConnectionClosed

from shellyrpc import CONFIG, LOG_FORMAT
from shellyrpc.config.config import ServerOptions
from shellyrpc.rpc import DeviceIdentifiers, OutboundWebSocketRpcHandler, OutboundWebSocketServer
from shellyrpc.rpc.errors import RpcError

logger = logging.getLogger(__name__)


def options_from_env(options: ServerOptions) -> ServerOptions:
  """ Return a copy of `options` with overrides from environment variables applied. """
  return ServerOptions.from_dict({
    **options.as_dict,
    "host": os.environ.get("HOST", options.host),
    "port": os.environ.get("PORT", options.port),
    "path": os.environ.get("WS_PATH", options.path),
    "client_id": os.environ.get("CLIENT_ID", options.client_id),
    "request_timeout": os.environ.get("REQUEST_TIMEOUT", options.request_timeout),
  })


class Monitor:
  """ Subscribes to the events of a server and of every handler it discovers. """

  def __init__(self, server: OutboundWebSocketServer, rpc_method: Optional[str] = None):
    self.server = server
    self.rpc_method = rpc_method
    self._tasks: Set[asyncio.Task] = set()

    server.on("discover", self._handle_discover)
    server.on("error", lambda error: logger.warning("Server error: %s", error))

  def _handle_discover(self, identifiers: DeviceIdentifiers):
    logger.info("Discovered %s", identifiers)
    handler = self.server.get_rpc_handler(identifiers.device_id)
    device_id = identifiers.device_id

    handler \
      .on("connect", lambda: logger.info("[%s] connected", device_id)) \
      .on("disconnect", lambda code, reason, _: logger.info(
        "[%s] disconnected (code: %s, reason: %r)", device_id, code, reason)) \
      .on("statusUpdate", lambda params: logger.info("[%s] status: %s", device_id, params)) \
      .on("event", lambda params: logger.info("[%s] event: %s", device_id, params)) \
      .on("error", lambda error: logger.warning("[%s] error: %s", device_id, error))

    if self.rpc_method is not None:
      task = asyncio.get_running_loop().create_task(self._call(handler, self.rpc_method))
      self._tasks.add(task)
      task.add_done_callback(self._tasks.discard)

  async def _call(self, handler: OutboundWebSocketRpcHandler, method: str):
    try:
      result = await handler.request(method)
    except (RpcError, ConnectionClosed, OSError) as e:
      logger.warning("[%s] %s failed: %r", handler.device_id, method, e)
      return
    logger.info("[%s] %s: %s", handler.device_id, method, result)

  async def run(self):
    """ Serve until cancelled, then destroy all handlers and close the server. """

    await self.server.listen()
    try:
      await asyncio.Future()  # run forever
    finally:
      for task in list(self._tasks):
        task.cancel()
      await asyncio.gather(
        *(handler.destroy() for handler in self.server.rpc_handlers.values()),
        return_exceptions=True)
      await self.server.close()


def main():
  if not logging.getLogger().handlers:
    logging.basicConfig(
      level=logging.INFO,
      format=LOG_FORMAT,
      stream=sys.stdout,
    )

  server = OutboundWebSocketServer(options_from_env(CONFIG.server))
  monitor = Monitor(server, rpc_method=os.environ.get("RPC_METHOD"))
  try:
    asyncio.run(monitor.run())
  except KeyboardInterrupt:
    logger.info("Stopped")


if __name__ == "__main__":
  main()
