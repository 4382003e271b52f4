import asyncio
import json
import os
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosedError

from shellyrpc.config.config import ServerOptions
from shellyrpc.monitor import Monitor, options_from_env
from shellyrpc.rpc.errors import DisconnectedError
from shellyrpc.rpc.server import OutboundWebSocketServer


class OptionsFromEnvTests(unittest.TestCase):
  def test_no_overrides(self):
    options = ServerOptions(port=1234, client_id="monitor")
    with patch.dict(os.environ, {}, clear=True):
      self.assertEqual(options_from_env(options), options)

  def test_overrides(self):
    env = {
      "HOST": "0.0.0.0",
      "PORT": "9000",
      "WS_PATH": "/shelly",
      "CLIENT_ID": "from-env",
      "REQUEST_TIMEOUT": "2.5",
    }
    with patch.dict(os.environ, env, clear=True):
      options = options_from_env(ServerOptions())
    self.assertEqual(options, ServerOptions(port=9000, host="0.0.0.0", path="/shelly",
      client_id="from-env", request_timeout=2.5))


class MonitorTests(unittest.IsolatedAsyncioTestCase):
  """ Runs the monitor against a device that answers one request. """

  async def test_call_logs_send_failures(self):
    monitor = Monitor(OutboundWebSocketServer(ServerOptions()), rpc_method="Shelly.GetStatus")
    for error in (ConnectionClosedError(None, None), ConnectionResetError("reset"),
                  DisconnectedError("WebSocket disconnected")):
      with self.subTest(error=error):
        handler = MagicMock(device_id="shellyplus1-aa")
        handler.request = AsyncMock(side_effect=error)
        with self.assertLogs("shellyrpc.monitor", level="WARNING") as logs:
          await monitor._call(handler, "Shelly.GetStatus")
        self.assertIn("Shelly.GetStatus failed", logs.output[0])

  @pytest.mark.timeout(20)
  async def test_calls_method_on_discover(self):
    server = OutboundWebSocketServer(ServerOptions(host="127.0.0.1", port=0, client_id="monitor"))
    monitor = Monitor(server, rpc_method="Shelly.GetDeviceInfo")
    listening = asyncio.get_running_loop().create_future()
    server.once("listening", lambda: listening.set_result(None))
    run = asyncio.create_task(monitor.run())
    await asyncio.wait_for(listening, timeout=5)

    client = await connect(f"ws://127.0.0.1:{server.bound_port}")
    await client.send(json.dumps({"src": "shellyplus1-aa", "method": "NotifyFullStatus",
      "params": {}}))
    request = json.loads(await asyncio.wait_for(client.recv(), timeout=5))
    self.assertEqual(request["method"], "Shelly.GetDeviceInfo")
    self.assertEqual(request["src"], "monitor")
    with self.assertLogs("shellyrpc.monitor", level="INFO") as logs:
      await client.send(json.dumps({"id": request["id"], "src": "shellyplus1-aa",
        "result": {"id": "shellyplus1-aa"}}))
      for _ in range(100):
        await asyncio.sleep(0.01)
        if any("Shelly.GetDeviceInfo" in line for line in logs.output):
          break
    self.assertTrue(any("Shelly.GetDeviceInfo" in line for line in logs.output))

    # stopping destroys the handler, which closes the device's connection
    run.cancel()
    with self.assertRaises(asyncio.CancelledError):
      await run
    await asyncio.wait_for(client.wait_closed(), timeout=5)
    self.assertEqual(client.close_code, 1000)
    self.assertFalse(server.listening)
