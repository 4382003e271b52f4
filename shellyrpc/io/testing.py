import json
from typing import Any, List, Optional

from shellyrpc.io.socket import NORMAL_CLOSURE, ReadyState, Socket


class FakeSocket(Socket):
  """ An in-memory socket for testing. Frames passed to :meth:`send` are collected in `sent`, and
  the test drives the socket with :meth:`open`, :meth:`receive` and :meth:`finish_close`. """

  def __init__(self, ready_state: ReadyState = ReadyState.OPEN, name: str = "fake"):
    super().__init__()
    self._ready_state = ready_state
    self.name = name
    self.sent: List[str] = []
    self.close_requests: List[tuple] = []
    self.send_error: Optional[Exception] = None
    self.confirm_close = True

  @property
  def ready_state(self) -> ReadyState:
    return self._ready_state

  @property
  def remote_address(self) -> Optional[str]:
    return self.name

  @property
  def sent_json(self) -> List[Any]:
    return [json.loads(frame) for frame in self.sent]

  async def send(self, data: str) -> None:
    if self.send_error is not None:
      raise self.send_error
    self.sent.append(data)

  async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
    self.close_requests.append((code, reason))
    if self._ready_state == ReadyState.CLOSED:
      return
    self._ready_state = ReadyState.CLOSING
    if self.confirm_close:
      self.finish_close(code, reason)

  def open(self):
    self._ready_state = ReadyState.OPEN
    self.emit("open")

  def receive(self, data: Any):
    """ Deliver a frame. Non-string data is serialized as JSON first. """
    if not isinstance(data, (str, bytes)):
      data = json.dumps(data)
    self.emit("message", data)

  def finish_close(self, code: int = NORMAL_CLOSURE, reason: str = ""):
    self._ready_state = ReadyState.CLOSED
    self.emit("close", code, reason)

  def fail(self, error: Exception):
    self.emit("error", error)
