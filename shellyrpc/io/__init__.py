from .socket import ReadyState, Socket
from .websocket import WebSocketConnection
