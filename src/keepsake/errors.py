from __future__ import annotations


class KeepsakeError(Exception):
    """Base exception for record persistence errors."""


class MissingFileError(KeepsakeError):
    """Raised when the file backing a store does not exist."""


class SerializationError(KeepsakeError):
    """Raised when a payload is malformed or was written in another format."""


class DecryptionError(KeepsakeError):
    """Raised when ciphertext cannot be decrypted (wrong secret or corrupted data)."""


class UnsupportedFormatError(KeepsakeError):
    """Raised when a file format has no matching codec."""


class ReentrantOperationError(KeepsakeError):
    """Raised when an operation is started while another one is still running on the same store."""
