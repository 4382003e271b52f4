import datetime
import logging
from pathlib import Path
from typing import Optional, Union

from shellyrpc.__version__ import __version__
from shellyrpc.config import Config, ServerOptions, load_config
from shellyrpc.rpc import (
  DeviceIdentifiers,
  OutboundWebSocketRpcHandler,
  OutboundWebSocketServer,
  RpcHandler,
)

CONFIG_FILE_NAME = "shellyrpc"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

CONFIG = load_config(CONFIG_FILE_NAME, create_default=False)


def project_root() -> Path:
  """ The directory containing the `shellyrpc` package. """
  return Path(__file__).parent.parent


def setup_logger(log_dir: Optional[Union[Path, str]], level: int):
  """ Set the level of the `shellyrpc` logger and, if `log_dir` is given, log to a file per day
  in that directory (`shellyrpc-YYYYMMDD.log`).

  Calling this again replaces the file handler of an earlier call.

  Args:
    log_dir: Directory for log files, created if needed. `None` disables file logging.
    level: The logging level, e.g. `logging.DEBUG` or `shellyrpc.io.log_levels.LOG_LEVEL_IO` to
      include every frame sent and received.
  """

  logger = logging.getLogger("shellyrpc")
  logger.setLevel(level)

  for handler in list(logger.handlers):
    if isinstance(handler, logging.FileHandler):
      logger.removeHandler(handler)
      handler.close()

  if log_dir is None:
    return

  log_dir = Path(log_dir)
  log_dir.mkdir(parents=True, exist_ok=True)
  today = datetime.datetime.now().strftime("%Y%m%d")
  fh = logging.FileHandler(log_dir / f"shellyrpc-{today}.log")
  fh.setLevel(logging.NOTSET)  # the logger level filters
  fh.setFormatter(logging.Formatter(LOG_FORMAT))
  logger.addHandler(fh)


def configure(cfg: Config):
  """ Apply a config to shellyrpc. """
  setup_logger(cfg.logging.log_dir, cfg.logging.level)


configure(CONFIG)
