""" Config file formats. Each format reads and writes a :class:`Config` from and to a text stream,
and from and to a file with its extension. """

import configparser
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import IO, Dict, Optional, Sequence, Union

from shellyrpc.config.config import Config


class ConfigFormat(ABC):
  """ A file format for config files. """

  extension: str
  encoding = "utf-8"

  @abstractmethod
  def load(self, r: IO) -> Config:
    """ Load a Config object from an opened stream. """

  @abstractmethod
  def dump(self, cfg: Config, w: IO):
    """ Write a Config object to an opened stream. """

  def read(self, path: Union[str, Path]) -> Config:
    with open(path, "r", encoding=self.encoding) as f:
      return self.load(f)

  def write(self, cfg: Config, path: Union[str, Path]):
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding=self.encoding) as f:
      self.dump(cfg, f)


class IniFormat(ConfigFormat):
  """ INI files, one section per config group:

  .. code-block:: ini

    [logging]
    level = INFO

    [server]
    port = 8765
    client_id = shellyrpc-1234
  """

  extension = "ini"

  def load(self, r: IO) -> Config:
    parser = configparser.ConfigParser()
    parser.read_file(r)
    # INI values are strings, Config.from_dict converts them
    return Config.from_dict({section: dict(parser[section]) for section in parser.sections()})

  def dump(self, cfg: Config, w: IO):
    parser = configparser.ConfigParser()
    for section, values in cfg.as_dict.items():
      # INI has no null, leave unset options out
      parser[section] = {k: str(v) for k, v in values.items() if v is not None}
    parser.write(w)


class JsonFormat(ConfigFormat):
  """ JSON files with the same structure as :attr:`Config.as_dict`. """

  extension = "json"

  def load(self, r: IO) -> Config:
    data = json.load(r)
    if not isinstance(data, dict):
      raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return Config.from_dict(data)

  def dump(self, cfg: Config, w: IO):
    json.dump(cfg.as_dict, w, indent=2)


DEFAULT_FORMATS: Sequence[ConfigFormat] = (IniFormat(), JsonFormat())


def format_for(path: Union[str, Path],
               formats: Sequence[ConfigFormat] = DEFAULT_FORMATS) -> Optional[ConfigFormat]:
  """ Return the format for a file, based on its extension. """
  by_extension: Dict[str, ConfigFormat] = {f".{fmt.extension}": fmt for fmt in formats}
  return by_extension.get(Path(path).suffix.lower())


def read_config(path: Union[str, Path],
                formats: Sequence[ConfigFormat] = DEFAULT_FORMATS) -> Config:
  """ Read a config file. The format is picked by extension; files with an unknown extension are
  tried with every format in order.

  Raises:
    ValueError: If no format could read the file.
  """

  fmt = format_for(path, formats)
  if fmt is not None:
    return fmt.read(path)

  errors = []
  for candidate in formats:
    try:
      return candidate.read(path)
    except (ValueError, configparser.Error) as e:
      errors.append(f"{candidate.__class__.__name__}: {e}")
  raise ValueError(f"Could not read config file {path}. " + "; ".join(errors))


def write_config(cfg: Config, path: Union[str, Path],
                 formats: Sequence[ConfigFormat] = DEFAULT_FORMATS):
  """ Write a config file in the format matching its extension. """

  fmt = format_for(path, formats)
  if fmt is None:
    raise ValueError(f"Unknown config file extension: {Path(path).suffix!r}")
  fmt.write(cfg, path)
