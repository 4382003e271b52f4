from .base import RpcHandler
from .client import CorrelationClient, PendingRequest
from .errors import (
  ConnectionClosedError,
  DisconnectedError,
  ProtocolError,
  RemoteError,
  RequestTimeoutError,
  RpcError,
  TransportError,
)
from .handler import OutboundWebSocketRpcHandler
from .lifecycle import ConnectionLifecycle, ConnectionState, LifecycleEvent
from .server import DeviceIdentifiers, OutboundWebSocketServer
