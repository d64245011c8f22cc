from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar

import yaml

from .descriptor import FileFormat, StorageDescriptor
from .paths import APP_NAME, PathResolver
from .store import RecordStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class StoreSettings:
    file_name: str
    format: FileFormat = FileFormat.BINARY
    secret: Optional[str] = field(default=None, repr=False)
    # Name of an environment variable holding the secret; wins over ``secret``
    secret_env: Optional[str] = None

    def resolve_secret(self) -> Optional[str]:
        if self.secret_env:
            value = os.environ.get(self.secret_env)
            if value:
                return value
            logger.debug("Secret variable %s is not set", self.secret_env)
        return self.secret or None

    def descriptor(self) -> StorageDescriptor:
        return StorageDescriptor(file_name=self.file_name, file_format=self.format, secret=self.resolve_secret())

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"file_name": self.file_name, "format": self.format.name.lower()}
        if self.secret_env:
            data["secret_env"] = self.secret_env
        return data

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "StoreSettings":
        if not isinstance(data, dict):
            raise ValueError(f"Store {name!r} must be a mapping")
        secret = data.get("secret")
        return cls(
            file_name=str(data.get("file_name") or name),
            format=FileFormat.parse(data.get("format", FileFormat.BINARY)),
            secret=str(secret) if secret is not None else None,
            secret_env=data.get("secret_env"),
        )


@dataclass
class Settings:
    app_name: str = APP_NAME
    data_dir: Optional[Path] = None
    app_version: Optional[str] = None
    test_build: bool = False
    stores: Dict[str, StoreSettings] = field(default_factory=dict)

    @staticmethod
    def _load_yaml(path: Path) -> dict:
        with path.open("r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    @classmethod
    def _deep_merge(cls, base: dict, overlay: dict) -> dict:
        merged = dict(base)
        for k, v in (overlay or {}).items():
            if isinstance(v, dict) and isinstance(base.get(k), dict):
                merged[k] = cls._deep_merge(base[k], v)
            else:
                merged[k] = v
        return merged

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        data_dir = data.get("data_dir")
        app_version = data.get("app_version")
        stores = {
            str(name): StoreSettings.from_dict(str(name), raw)
            for name, raw in (data.get("stores") or {}).items()
        }
        return cls(
            app_name=str(data.get("app_name") or APP_NAME),
            data_dir=Path(data_dir).expanduser() if data_dir else None,
            app_version=str(app_version) if app_version is not None else None,
            test_build=bool(data.get("test_build", False)),
            stores=stores,
        )

    @classmethod
    def _packaged_defaults(cls) -> dict:
        source = resources.files("keepsake").joinpath("default_settings.yaml")
        try:
            with source.open("r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.warning("Packaged default_settings.yaml is missing; no stores are preconfigured")
            return cls().to_dict()

    @classmethod
    def load(cls, user_path: Optional[Path] = None) -> "Settings":
        """Build settings from the packaged store defaults.

        A YAML file at ``user_path`` is merged over them key by key, so it only
        needs the entries it changes (e.g. ``stores.ingame.format``).
        """
        merged = cls._packaged_defaults()
        if user_path is not None and user_path.is_file():
            merged = cls._deep_merge(merged, cls._load_yaml(user_path))
            logger.info("Merged store settings from %s", user_path)
        elif user_path is not None:
            logger.warning("Store settings file %s does not exist; keeping the defaults", user_path)

        settings = cls.from_dict(merged)
        logger.debug("Configured stores: %s", ", ".join(sorted(settings.stores)) or "<none>")
        return settings

    def to_dict(self) -> Dict[str, Any]:
        # Secrets are never written back; use secret_env for persistent configuration
        return {
            "app_name": self.app_name,
            "data_dir": str(self.data_dir) if self.data_dir else None,
            "app_version": self.app_version,
            "test_build": self.test_build,
            "stores": {name: s.to_dict() for name, s in self.stores.items()},
        }

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)
        logger.info("Saved settings to %s", path)

    def resolver(self) -> PathResolver:
        return PathResolver(base_dir=self.data_dir, app_name=self.app_name)

    def build_store(self, name: str, record_type: Type[T], **kwargs: Any) -> RecordStore[T]:
        """Create the RecordStore configured under ``stores.<name>``."""
        try:
            store_settings = self.stores[name]
        except KeyError as exc:
            raise KeyError(f"No store named {name!r} in settings") from exc
        kwargs.setdefault("resolver", self.resolver())
        kwargs.setdefault("app_version", self.app_version)
        kwargs.setdefault("test_build", self.test_build)
        return RecordStore(store_settings.descriptor(), record_type=record_type, **kwargs)
