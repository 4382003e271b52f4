""" Connection lifecycle of an RPC handler.

The handler mirrors the readiness of its current socket into a :class:`ConnectionState`, and
turns changes of that state into `connect`/`disconnect` events. All observations go through a
single transition table keyed by whether the handler was connected before and is connected after
the change, so that a socket swap yields exactly one event when it crosses the connected boundary
and none otherwise.
"""

import enum
import logging
from typing import Dict, Optional, Tuple

from shellyrpc.io.socket import ReadyState, Socket

logger = logging.getLogger(__name__)


class ConnectionState(enum.Enum):
  """ The state of the socket attached to a handler. """

  NO_SOCKET = "no_socket"
  CONNECTING = "connecting"
  OPEN = "open"
  CLOSING = "closing"
  CLOSED = "closed"

  @property
  def connected(self) -> bool:
    return self is ConnectionState.OPEN

  @classmethod
  def of(cls, socket: Optional[Socket]) -> "ConnectionState":
    if socket is None:
      return cls.NO_SOCKET
    return _STATE_FROM_READY_STATE[socket.ready_state]


_STATE_FROM_READY_STATE = {
  ReadyState.CONNECTING: ConnectionState.CONNECTING,
  ReadyState.OPEN: ConnectionState.OPEN,
  ReadyState.CLOSING: ConnectionState.CLOSING,
  ReadyState.CLOSED: ConnectionState.CLOSED,
}


class LifecycleEvent(enum.Enum):
  CONNECT = "connect"
  DISCONNECT = "disconnect"


# (was connected, is connected) -> event to emit
_TRANSITIONS: Dict[Tuple[bool, bool], Optional[LifecycleEvent]] = {
  (False, False): None,
  (False, True): LifecycleEvent.CONNECT,
  (True, False): LifecycleEvent.DISCONNECT,
  (True, True): None,
}


class ConnectionLifecycle:
  """ Tracks the externally visible connection state of a handler. """

  def __init__(self, socket: Optional[Socket] = None):
    self._state = ConnectionState.of(socket)

  @property
  def state(self) -> ConnectionState:
    return self._state

  @property
  def connected(self) -> bool:
    return self._state.connected

  def opened(self) -> Optional[LifecycleEvent]:
    """ The current socket reported that it is open. """
    return self._transition(ConnectionState.OPEN)

  def closed(self) -> Optional[LifecycleEvent]:
    """ The current socket reported that it is closed. """
    return self._transition(ConnectionState.CLOSED)

  def replaced(self, old: Optional[Socket], new: Optional[Socket]) -> Optional[LifecycleEvent]:
    """ The current socket `old` was replaced by `new`. """
    if old is new:
      return None
    return self._transition(ConnectionState.of(new))

  def _transition(self, new_state: ConnectionState) -> Optional[LifecycleEvent]:
    event = _TRANSITIONS[(self._state.connected, new_state.connected)]
    logger.debug("Connection state %s -> %s", self._state.name, new_state.name)
    self._state = new_state
    return event
