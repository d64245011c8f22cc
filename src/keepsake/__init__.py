"""
keepsake: format-agnostic record persistence.

A RecordStore owns one dataclass record and saves, loads and deletes it in a
single file. Records can be written as binary, XML or JSON and optionally
encrypted with a secret. Observers can hook the before/after side of every
operation.
"""
import logging

__version__ = "0.1.0"

from .codec import deserialize, get_codec, serialize
from .descriptor import FileFormat, StorageDescriptor
from .errors import (
    DecryptionError,
    KeepsakeError,
    MissingFileError,
    ReentrantOperationError,
    SerializationError,
    UnsupportedFormatError,
)
from .events import EventHooks, StoreEvent
from .paths import PathResolver
from .record import DataFile
from .store import Outcome, RecordStore, StoreState

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "__version__",
    "DataFile",
    "DecryptionError",
    "EventHooks",
    "FileFormat",
    "KeepsakeError",
    "MissingFileError",
    "Outcome",
    "PathResolver",
    "RecordStore",
    "ReentrantOperationError",
    "SerializationError",
    "StorageDescriptor",
    "StoreEvent",
    "StoreState",
    "UnsupportedFormatError",
    "deserialize",
    "get_codec",
    "serialize",
]
