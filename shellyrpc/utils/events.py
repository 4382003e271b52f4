from __future__ import annotations

import sys
from typing import Any, Callable, Dict, List, Tuple

if sys.version_info >= (3, 11):
  from typing import Self
else:
  from typing_extensions import Self


EventCallback = Callable[..., Any]


class EventEmitter:
  """ Base class for objects that publish named events to registered callbacks.

  Callbacks are called synchronously, in registration order, with the arguments passed to
  :meth:`emit`. Registering methods return `self` so that calls can be chained:

    >>> socket.on("message", handle_message).once("close", handle_close)
  """

  def __init__(self):
    self._event_callbacks: Dict[str, List[Tuple[EventCallback, bool]]] = {}

  def on(self, event: str, callback: EventCallback) -> Self:
    """ Register `callback` to be called every time `event` is emitted. """
    self._event_callbacks.setdefault(event, []).append((callback, False))
    return self

  def once(self, event: str, callback: EventCallback) -> Self:
    """ Register `callback` to be called the next time `event` is emitted, and then removed. """
    self._event_callbacks.setdefault(event, []).append((callback, True))
    return self

  def off(self, event: str, callback: EventCallback) -> Self:
    """ Remove a callback registered with :meth:`on` or :meth:`once`. Unknown callbacks are
    ignored. """
    callbacks = self._event_callbacks.get(event)
    if callbacks is None:
      return self
    for i, (cb, _) in enumerate(callbacks):
      if cb == callback:
        del callbacks[i]
        break
    if len(callbacks) == 0:
      del self._event_callbacks[event]
    return self

  def remove_all_listeners(self, event: str | None = None) -> Self:
    if event is None:
      self._event_callbacks.clear()
    else:
      self._event_callbacks.pop(event, None)
    return self

  def listener_count(self, event: str) -> int:
    return len(self._event_callbacks.get(event, []))

  def emit(self, event: str, *args: Any) -> bool:
    """ Call all callbacks registered for `event`.

    Returns:
      `True` if the event had listeners, `False` otherwise.
    """

    callbacks = self._event_callbacks.get(event)
    if not callbacks:
      return False

    # Callbacks may (un)register callbacks, so iterate over a snapshot.
    snapshot = list(callbacks)
    remaining = [entry for entry in callbacks if not entry[1]]
    if remaining:
      self._event_callbacks[event] = remaining
    else:
      del self._event_callbacks[event]
    for callback, _ in snapshot:
      callback(*args)
    return True
