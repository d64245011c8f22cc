from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Generic, Iterator, Optional, Type, TypeVar, Union

from . import cipher
from .codec import get_codec, serialize
from .descriptor import FileFormat, StorageDescriptor
from .errors import (
    KeepsakeError,
    MissingFileError,
    ReentrantOperationError,
    SerializationError,
)
from .events import EventHooks, StoreEvent
from .paths import PathResolver, format_size
from .record import DataFile, from_plain, to_plain

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StoreState(str, Enum):
    IDLE = "idle"
    SAVING = "saving"
    LOADING = "loading"
    DELETING = "deleting"


@dataclass(frozen=True)
class Outcome:
    """Result of one save/load/delete call. Truthy when the operation succeeded."""

    success: bool
    error: Optional[BaseException] = None

    def __bool__(self) -> bool:
        return self.success


class RecordStore(Generic[T]):
    """Save, load and delete one record in one file.

    The held record is available as :attr:`data`; application code mutates it
    directly between saves. Recoverable failures (missing file, malformed or
    foreign-format payload, wrong secret, I/O errors) never raise: they are
    logged, delivered to ``AFTER_*`` observers as ``success=False`` and
    returned as a falsy :class:`Outcome`.

    Operations are synchronous and not reentrant. Starting one while another
    is in flight on the same store (e.g. from an observer) raises
    :class:`ReentrantOperationError`.
    """

    def __init__(
        self,
        descriptor: Union[StorageDescriptor, str],
        file_format: Union[FileFormat, str] = FileFormat.BINARY,
        *,
        record_type: Optional[Type[T]] = None,
        secret: Optional[str] = None,
        data: Optional[T] = None,
        default_factory: Optional[Callable[[], T]] = None,
        resolver: Optional[PathResolver] = None,
        app_version: Optional[str] = None,
        test_build: bool = False,
    ) -> None:
        if not isinstance(descriptor, StorageDescriptor):
            descriptor = StorageDescriptor(file_name=descriptor, file_format=file_format, secret=secret)
        self._descriptor = descriptor
        # Rejects unknown formats up front instead of on first save
        self._codec = get_codec(descriptor.file_format)

        if record_type is None:
            if data is None:
                raise ValueError("record_type is required when no initial data is given")
            record_type = type(data)
        self._record_type: Type[T] = record_type
        self._default_factory: Callable[[], T] = default_factory or record_type
        if data is None:
            data = self._default_factory()
        elif default_factory is None:
            # Delete resets to record_type(); make sure that works before any file is touched
            try:
                record_type()
            except TypeError as exc:
                raise ValueError(
                    f"{record_type.__name__} has no default value; pass default_factory"
                ) from exc
        self._data: T = data

        self._resolver = resolver or PathResolver()
        self.app_version = app_version
        self.test_build = test_build
        self._hooks = EventHooks()
        self._state = StoreState.IDLE

    # Properties

    @property
    def data(self) -> T:
        """The held record. Mutate it directly; call :meth:`save` to persist."""
        return self._data

    @data.setter
    def data(self, value: T) -> None:
        self._data = value

    @property
    def descriptor(self) -> StorageDescriptor:
        return self._descriptor

    @property
    def record_type(self) -> Type[T]:
        return self._record_type

    @property
    def encrypted(self) -> bool:
        return self._descriptor.encrypted

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def hooks(self) -> EventHooks:
        return self._hooks

    @property
    def file_name_with_extension(self) -> str:
        return self._descriptor.file_name_with_extension

    @property
    def path(self) -> Path:
        # Resolved on every access; the data directory is not cached
        return self._resolver.resolve(self.file_name_with_extension)

    def exists(self) -> bool:
        return self.path.is_file()

    def subscribe(self, event: StoreEvent, callback: Callable[..., Any]) -> None:
        self._hooks.subscribe(event, callback)

    def unsubscribe(self, event: StoreEvent, callback: Callable[..., Any]) -> None:
        self._hooks.unsubscribe(event, callback)

    # Operations

    def save(self) -> Outcome:
        """Write the held record to disk, truncating any previous file."""
        with self._operation(StoreState.SAVING):
            self._hooks.emit(StoreEvent.BEFORE_SAVE)
            error: Optional[BaseException] = None
            path: Optional[Path] = None
            try:
                self._stamp()
                payload = self._encode(self._data)
                path = self.path
                with path.open("wb") as fh:
                    fh.write(payload)
            except KeepsakeError as exc:
                error = exc
                logger.error("Could not save %s: %s", self.file_name_with_extension, exc)
            except Exception as exc:  # noqa: BLE001 - reported through the outcome
                error = exc
                logger.exception("Failed to save %s", path or self.file_name_with_extension)
            else:
                logger.info("Saved %s (%s)", path, format_size(len(payload)))
            return self._finish(StoreEvent.AFTER_SAVE, error)

    def load(self) -> Outcome:
        """Replace the held record with the one on disk.

        A missing file is not fatal: the held record is left untouched, a
        warning is logged and ``AFTER_LOAD`` still fires with ``False``. Any
        other failure also leaves the held record untouched.
        """
        with self._operation(StoreState.LOADING):
            self._hooks.emit(StoreEvent.BEFORE_LOAD)
            error: Optional[BaseException] = None
            try:
                loaded = from_plain(self._record_type, self.read_payload())
            except MissingFileError as exc:
                error = exc
                logger.warning("%s", exc)
            except KeepsakeError as exc:
                error = exc
                logger.error("Could not load %s: %s", self.file_name_with_extension, exc)
            except Exception as exc:  # noqa: BLE001 - reported through the outcome
                error = exc
                logger.exception("Failed to load %s", self.file_name_with_extension)
            else:
                self._data = loaded
                logger.info("File %s successfully loaded", self.file_name_with_extension)
            return self._finish(StoreEvent.AFTER_LOAD, error)

    def delete(self) -> Outcome:
        """Remove the file and reset the held record to its default.

        The record is reset even when there was no file to remove.
        """
        with self._operation(StoreState.DELETING):
            self._hooks.emit(StoreEvent.BEFORE_DELETE)
            error: Optional[BaseException] = None
            try:
                path = self.path
                if not path.is_file():
                    raise MissingFileError(f"The file {path} does not exist.")
                path.unlink()
            except MissingFileError as exc:
                error = exc
                logger.warning("%s", exc)
            except Exception as exc:  # noqa: BLE001 - reported through the outcome
                error = exc
                logger.exception("Failed to delete %s", self.file_name_with_extension)
            else:
                logger.info("Deleted %s", path)
            try:
                self._data = self._default_factory()
            except Exception as exc:  # noqa: BLE001 - reported through the outcome
                logger.exception("Could not build a default record; clearing it to None")
                self._data = None  # type: ignore[assignment]
                error = error or exc
            return self._finish(StoreEvent.AFTER_DELETE, error)

    def read_payload(self) -> Any:
        """Read and decode the file into a plain tree, decrypting if needed.

        Raises:
            MissingFileError: the file does not exist.
            SerializationError: the payload is malformed or in another format.
            DecryptionError: the secret is wrong or the ciphertext is corrupted.
        """
        path = self.path
        if not path.is_file():
            raise MissingFileError(f"The file {path} does not exist.")
        logger.debug("Loading %s", path)
        with path.open("rb") as fh:
            data = fh.read()
        return self._decode(data)

    # Internal utilities

    @contextmanager
    def _operation(self, state: StoreState) -> Iterator[None]:
        if self._state is not StoreState.IDLE:
            raise ReentrantOperationError(
                f"Cannot start {state.value} while {self._state.value} is in progress"
            )
        self._state = state
        try:
            yield
        finally:
            self._state = StoreState.IDLE

    def _finish(self, event: StoreEvent, error: Optional[BaseException]) -> Outcome:
        outcome = Outcome(success=error is None, error=error)
        self._hooks.emit(event, outcome.success)
        return outcome

    def _stamp(self) -> None:
        if self.app_version is not None and isinstance(self._data, DataFile):
            self._data.stamp(self.app_version, self.test_build)

    def _encode(self, value: T) -> bytes:
        if not self.encrypted:
            return self._codec.dumps(to_plain(value))
        # Encryption wraps the JSON text; the configured codec stores the ciphertext string
        text = serialize(value, FileFormat.JSON).decode("utf-8")
        return self._codec.dumps(cipher.encrypt(text, self._descriptor.secret))

    def _decode(self, data: bytes) -> Any:
        plain = self._codec.loads(data)
        if not self.encrypted:
            return plain
        if not isinstance(plain, str):
            raise SerializationError("Expected an encrypted payload but found a plain record")
        text = cipher.decrypt(plain, self._descriptor.secret)
        return get_codec(FileFormat.JSON).loads(text.encode("utf-8"))

    def __repr__(self) -> str:
        return (
            f"RecordStore({self._record_type.__name__}, {self._descriptor!r}, "
            f"state={self._state.value})"
        )
