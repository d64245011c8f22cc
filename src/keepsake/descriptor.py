from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .errors import UnsupportedFormatError


class FileFormat(str, Enum):
    """On-disk encodings. The value doubles as the file extension."""

    BINARY = "bin"
    XML = "xml"
    JSON = "json"

    @property
    def extension(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Union[str, "FileFormat"]) -> "FileFormat":
        """Accept a FileFormat, its name ("Binary", "xml") or its extension ("bin")."""
        if isinstance(value, FileFormat):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            for fmt in cls:
                if key in (fmt.value, fmt.name.lower()):
                    return fmt
        raise UnsupportedFormatError(f"File format {value!r} is not supported")


@dataclass(frozen=True)
class StorageDescriptor:
    """Configuration bound to a RecordStore for its whole lifetime.

    A non-empty ``secret`` turns encryption on; an empty or missing one leaves it off.
    """

    file_name: str
    file_format: FileFormat = FileFormat.BINARY
    secret: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.file_name, str) or not self.file_name.strip():
            raise ValueError("file_name must be a non-empty string")
        # frozen dataclass: normalise through object.__setattr__
        object.__setattr__(self, "file_format", FileFormat.parse(self.file_format))
        if self.secret is not None and not isinstance(self.secret, str):
            raise ValueError("secret must be a string or None")

    @property
    def encrypted(self) -> bool:
        return bool(self.secret)

    @property
    def file_name_with_extension(self) -> str:
        suffix = f".{self.file_format.extension}"
        if self.file_name.lower().endswith(suffix):
            return self.file_name
        return f"{self.file_name}{suffix}"

    def __repr__(self) -> str:
        # Keep the secret out of logs and tracebacks
        return (
            f"StorageDescriptor(file_name={self.file_name!r}, "
            f"file_format={self.file_format.name}, encrypted={self.encrypted})"
        )
