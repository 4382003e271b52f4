from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from shellyrpc.utils.events import EventEmitter


class RpcHandler(EventEmitter, ABC):
  """ Abstract class for objects that make remote procedure calls to a single device.

  Events:
    connect: A connection to the device has been established.
    disconnect(code, reason, error): The connection to the device has been lost.
    request(method, params): A request is about to be sent.
    statusUpdate(params): The device pushed a (partial or full) status update.
    event(params): The device pushed an event notification.
    error(exc): Something went wrong that was not tied to a single request.
  """

  def __init__(self, protocol: str):
    super().__init__()
    self.protocol = protocol

  @property
  @abstractmethod
  def connected(self) -> bool:
    """ Whether requests can currently be sent. """

  @abstractmethod
  async def request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
    """ Send a request and return the result of the response. """

  @abstractmethod
  async def destroy(self) -> None:
    """ Reject all pending requests and close the connection. """
