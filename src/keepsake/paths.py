from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Union

from platformdirs import user_data_dir

logger = logging.getLogger(__name__)

APP_NAME = "keepsake"

# Environment variable override (useful for tests and portable installs)
ENV_DATA_DIR = "KEEPSAKE_DATA_DIR"

PathLike = Union[str, "os.PathLike[str]"]


class PathResolver:
    """Map logical file names to paths inside a writable data directory.

    The directory is looked up on every call, in order:
    - the ``base_dir`` given to the constructor
    - the ``KEEPSAKE_DATA_DIR`` environment variable
    - the platform user data dir from platformdirs
    """

    def __init__(self, base_dir: Optional[PathLike] = None, app_name: str = APP_NAME) -> None:
        self._base_dir = Path(base_dir).expanduser() if base_dir is not None else None
        self.app_name = app_name

    @property
    def base_dir(self) -> Path:
        if self._base_dir is not None:
            return self._base_dir
        override = os.environ.get(ENV_DATA_DIR, "").strip()
        if override:
            return Path(override).expanduser()
        return Path(user_data_dir(appname=self.app_name, appauthor=False))

    def resolve(self, file_name: str) -> Path:
        base = self.base_dir
        ensure_exists(base)
        return base / file_name

    def __repr__(self) -> str:
        return f"PathResolver(base_dir={self._base_dir!r}, app_name={self.app_name!r})"


def ensure_exists(path: Path) -> None:
    """Create the directory if it doesn't exist. Log and raise on failure."""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.error("Failed to create directory '%s': %s", path, exc)
        raise


def file_exists(path: PathLike) -> bool:
    return Path(path).is_file()


def file_size(path: PathLike) -> int:
    """Size of the file in bytes."""
    return Path(path).stat().st_size


def format_size(num_bytes: int) -> str:
    """Human readable byte count, e.g. ``1,234 Bytes``."""
    return f"{num_bytes:,} Bytes"


def file_name_without_extension(path: PathLike) -> str:
    return Path(path).stem
