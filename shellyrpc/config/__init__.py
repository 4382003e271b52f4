""" Config files for shellyrpc.

The config is read from `shellyrpc.ini` or `shellyrpc.json`, searching the current directory and
then its parents. Without a config file the defaults of :class:`Config` are used. A default file
can be created in the project root (the first parent with a `.git` directory).
"""

from pathlib import Path
from typing import Optional, Union

from shellyrpc.config.config import Config, ServerOptions
from shellyrpc.config.formats import (
  DEFAULT_FORMATS,
  ConfigFormat,
  IniFormat,
  JsonFormat,
  read_config,
  write_config,
)


def get_config_file(
  base_name: str,
  cur_dir: Optional[Union[str, Path]] = None
) -> Optional[Path]:
  """ Find a config file with name `base_name` and any known extension.

  Args:
    base_name: The file name without extension.
    cur_dir: The directory to start searching in. Defaults to the current directory.

  Returns:
    The path to the nearest config file, or `None` if there is none.
  """

  start = Path(cur_dir) if cur_dir is not None else Path.cwd()
  for directory in (start, *start.parents):
    for fmt in DEFAULT_FORMATS:
      candidate = directory / f"{base_name}.{fmt.extension}"
      if candidate.is_file():
        return candidate
  return None


def project_dir() -> Path:
  """ The first directory, starting from the current one, that contains `.git`. Falls back to the
  current directory. """
  cur_dir = Path.cwd()
  for parent in (cur_dir, *cur_dir.parents):
    if (parent / ".git").exists():
      return parent
  return cur_dir


def load_config(base_file_name: str, create_default: bool = False,
                create_module_level: bool = True) -> Config:
  """ Load the config.

  Args:
    base_file_name: The config file name without extension.
    create_default: If no config file exists, write the default config to a new INI file. The
      generated `client_id` is then stable across runs.
    create_module_level: Create the default file in the project root rather than the current
      directory.
  """

  config_path = get_config_file(base_file_name)
  if config_path is None:
    if not create_default:
      return Config()
    create_dir = project_dir() if create_module_level else Path.cwd()
    config_path = create_dir / f"{base_file_name}.{DEFAULT_FORMATS[0].extension}"
    write_config(Config(), config_path)

  return read_config(config_path)
