import logging
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from shellyrpc.io.log_levels import LOG_LEVEL_IO

LOG_FROM_STRING = {
  "IO": LOG_LEVEL_IO,
  "DEBUG": logging.DEBUG,
  "INFO": logging.INFO,
  "WARNING": logging.WARNING,
  "ERROR": logging.ERROR,
  "CRITICAL": logging.CRITICAL,
}

LOG_TO_STRING = {v: k for k, v in LOG_FROM_STRING.items()}


def _generate_client_id() -> str:
  return f"shellyrpc-{random.randint(0, 999999)}"


@dataclass
class ServerOptions:
  """ Options for an Outbound WebSocket server and the RPC handlers it creates.

  Attributes:
    port: The port to listen for incoming connections on.
    host: The host to bind to. `None` binds to all interfaces.
    path: If set, only connections to this path are accepted.
    client_id: Identifies this client to the devices. Sent as `src` with every request.
    request_timeout: Seconds to wait for a response before a request is abandoned.
  """

  port: int = 8765
  host: Optional[str] = None
  path: Optional[str] = None
  client_id: str = field(default_factory=_generate_client_id)
  request_timeout: float = 10.0

  @classmethod
  def from_dict(cls, d: dict) -> "ServerOptions":
    kwargs: dict = {}
    if d.get("port") is not None:
      kwargs["port"] = int(d["port"])
    if d.get("host") is not None:
      kwargs["host"] = str(d["host"])
    if d.get("path") is not None:
      kwargs["path"] = str(d["path"])
    if d.get("client_id") is not None:
      kwargs["client_id"] = str(d["client_id"])
    if d.get("request_timeout") is not None:
      kwargs["request_timeout"] = float(d["request_timeout"])
    return cls(**kwargs)

  @property
  def as_dict(self) -> dict:
    return {
      "port": self.port,
      "host": self.host,
      "path": self.path,
      "client_id": self.client_id,
      "request_timeout": self.request_timeout,
    }


@dataclass
class Config:
  """The configuration object for shellyrpc."""

  @dataclass
  class Logging:
    """The logging configuration."""

    level: int = logging.INFO
    log_dir: Optional[Path] = None

  logging: Logging = field(default_factory=Logging)
  server: ServerOptions = field(default_factory=ServerOptions)

  @classmethod
  def from_dict(cls, d: dict) -> "Config":
    logging_data = d.get("logging") or {}
    return cls(
      logging=cls.Logging(
        level=LOG_FROM_STRING[logging_data.get("level", "INFO")],
        log_dir=Path(logging_data["log_dir"]) if logging_data.get("log_dir") else None,
      ),
      server=ServerOptions.from_dict(d.get("server") or {}),
    )

  @property
  def as_dict(self) -> dict:
    return {
      "logging": {
        "level": LOG_TO_STRING[self.logging.level],
        "log_dir": str(self.logging.log_dir) if self.logging.log_dir is not None else None,
      },
      "server": self.server.as_dict,
    }
