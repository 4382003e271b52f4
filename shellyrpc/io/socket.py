import enum
from abc import ABC, abstractmethod
from typing import Optional

from shellyrpc.utils.events import EventEmitter


NORMAL_CLOSURE = 1000
POLICY_VIOLATION = 1008
ABNORMAL_CLOSURE = 1006


class ReadyState(enum.Enum):
  """ Readiness of a socket, following the WebSocket `readyState` values. """

  CONNECTING = 0
  OPEN = 1
  CLOSING = 2
  CLOSED = 3


class Socket(EventEmitter, ABC):
  """ A bidirectional, message oriented channel to a single remote peer.

  Events:
    open: The socket has become open.
    message(data): A frame has been received. `data` is a `str` or `bytes`.
    close(code, reason): The socket has been closed. Emitted exactly once.
    error(exc): A socket level error occurred.
  """

  @property
  @abstractmethod
  def ready_state(self) -> ReadyState:
    pass

  @property
  def remote_address(self) -> Optional[str]:
    """ A human readable description of the peer, for logging. """
    return None

  @abstractmethod
  async def send(self, data: str) -> None:
    """ Send a single frame. Raises if the frame could not be sent. """

  @abstractmethod
  async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
    """ Request the socket to be closed. The `close` event is emitted once the close is
    confirmed. """

  def __repr__(self) -> str:
    return f"{self.__class__.__name__}({self.remote_address or '?'}, {self.ready_state.name})"
