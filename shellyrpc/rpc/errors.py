from typing import Any, Optional


class RpcError(RuntimeError):
  """ Base exception for RPC transport errors. `code` is set where the failure carries a status
  code: a JSON-RPC error code, or a WebSocket close code. """

  def __init__(self, msg: str, code: Optional[int] = None) -> None:
    super().__init__(msg)
    self.code = code


class RequestTimeoutError(RpcError):
  """ No response with a matching id arrived within the request timeout. """


class ConnectionClosedError(RpcError):
  """ The request was abandoned because the connection was closed, e.g. by
  :meth:`~shellyrpc.rpc.handler.OutboundWebSocketRpcHandler.destroy`. """


class DisconnectedError(RpcError):
  """ A request was made while no open connection to the device was available. """


class ProtocolError(RpcError):
  """ A received frame did not follow the protocol: malformed JSON, a missing or unexpected
  `src`, or an unrecognized notification. """


class TransportError(RpcError):
  """ A socket failed before it could be handed to an RPC handler. """


class RemoteError(RpcError):
  """ The device responded with an error object. """

  def __init__(self, msg: str, code: Optional[int] = None, data: Any = None) -> None:
    super().__init__(msg, code=code)
    self.data = data

  @classmethod
  def from_response(cls, error: Any) -> "RemoteError":
    if isinstance(error, dict):
      message = str(error.get("message", "unknown error"))
      code = error.get("code")
      return cls(message, code=code if isinstance(code, int) else None, data=error.get("data"))
    return cls(str(error))

  def __str__(self) -> str:
    if self.code is None:
      return super().__str__()
    return f"{super().__str__()} (code: {self.code})"
