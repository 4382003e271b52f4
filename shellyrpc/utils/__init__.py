from .events import (
  EventEmitter,
)
