"""Record models and conversion between dataclass records and plain trees.

A plain tree is built only from ``dict`` (str keys), ``list``, ``str``, ``int``,
``float``, ``bool`` and ``None``. Every codec reads and writes plain trees, so
this module is the single place where record types are inspected.
"""

from __future__ import annotations

import dataclasses
import logging
import types
import typing
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Type, TypeVar, Union

from .errors import SerializationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

PERSIST = "persist"

_UNION_TYPES = tuple(t for t in (Union, getattr(types, "UnionType", None)) if t is not None)


@dataclass
class DataFile:
    """Optional base for records that carry save bookkeeping.

    Useful for debugging and support: which build wrote the file, how many
    times it was saved and when.
    """

    game_version: str = "undefined"
    test_build: bool = False
    save_counter: int = 0
    last_save: str = ""

    def stamp(self, game_version: str, test_build: bool = False) -> None:
        self.game_version = game_version
        self.test_build = test_build
        self.save_counter += 1
        self.last_save = datetime.now(timezone.utc).isoformat()


def is_persisted(f: dataclasses.Field) -> bool:
    return bool(f.metadata.get(PERSIST, True))


def to_plain(value: Any) -> Any:
    """Lower a record (or any supported value) to a plain tree."""
    if isinstance(value, Enum):
        return to_plain(value.value)
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            f.name: to_plain(getattr(value, f.name))
            for f in dataclasses.fields(value)
            if is_persisted(f)
        }
    if isinstance(value, dict):
        out: Dict[str, Any] = {}
        for k, v in value.items():
            if isinstance(k, Enum):
                k = k.value
            if not isinstance(k, str):
                raise SerializationError(f"Mapping keys must be strings, got {type(k).__name__}")
            out[k] = to_plain(v)
        return out
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    if isinstance(value, (set, frozenset)):
        items = [to_plain(v) for v in value]
        try:
            return sorted(items)
        except TypeError:
            return items
    raise SerializationError(f"Cannot serialize value of type {type(value).__name__}")


def from_plain(tp: Any, value: Any) -> Any:
    """Raise a plain tree back into ``tp`` using its type hints."""
    if tp is Any or tp is None or isinstance(tp, TypeVar):
        return value

    origin = typing.get_origin(tp)
    if origin in _UNION_TYPES:
        args = [a for a in typing.get_args(tp) if a is not type(None)]
        if value is None:
            return None
        errors = []
        for arg in args:
            try:
                return from_plain(arg, value)
            except SerializationError as exc:
                errors.append(str(exc))
        raise SerializationError(f"Value {value!r} matches none of {tp}: {'; '.join(errors)}")

    if value is None:
        # Optional-ness is not tracked for bare annotations; accept None as stored
        return None

    if origin in (list, tuple, set, frozenset):
        if not isinstance(value, list):
            raise SerializationError(f"Expected a list for {tp}, got {type(value).__name__}")
        args = typing.get_args(tp)
        if origin is tuple and args and args[-1] is not Ellipsis:
            if len(args) != len(value):
                raise SerializationError(f"Expected {len(args)} items for {tp}, got {len(value)}")
            return tuple(from_plain(a, v) for a, v in zip(args, value))
        item_tp = args[0] if args else Any
        items = [from_plain(item_tp, v) for v in value]
        return items if origin is list else origin(items)

    if origin is dict:
        if not isinstance(value, dict):
            raise SerializationError(f"Expected a mapping for {tp}, got {type(value).__name__}")
        args = typing.get_args(tp)
        key_tp, val_tp = args if args else (str, Any)
        return {from_plain(key_tp, k): from_plain(val_tp, v) for k, v in value.items()}

    if isinstance(tp, type):
        if dataclasses.is_dataclass(tp):
            return _build_dataclass(tp, value)
        if issubclass(tp, Enum):
            try:
                return tp(value)
            except ValueError as exc:
                raise SerializationError(f"{value!r} is not a valid {tp.__name__}") from exc
        if tp is dict:
            return from_plain(Dict[str, Any], value)
        if tp in (list, tuple, set, frozenset):
            items = from_plain(List[Any], value)
            return items if tp is list else tp(items)
        if tp is float and isinstance(value, int) and not isinstance(value, bool):
            return float(value)
        if tp is int and isinstance(value, bool):
            raise SerializationError("Expected int, got bool")
        if isinstance(value, tp):
            return value
        raise SerializationError(f"Expected {tp.__name__}, got {type(value).__name__}")

    return value


def _build_dataclass(tp: Type[T], value: Any) -> T:
    if not isinstance(value, dict):
        raise SerializationError(f"Expected a mapping for {tp.__name__}, got {type(value).__name__}")
    try:
        hints = typing.get_type_hints(tp)
    except Exception as exc:  # noqa: BLE001 - unresolved forward references
        raise SerializationError(f"Cannot resolve type hints of {tp.__name__}: {exc}") from exc

    kwargs: Dict[str, Any] = {}
    known = set()
    for f in dataclasses.fields(tp):
        known.add(f.name)
        if not f.init or not is_persisted(f) or f.name not in value:
            continue
        kwargs[f.name] = from_plain(hints.get(f.name, Any), value[f.name])

    unknown = set(value) - known
    if unknown:
        logger.debug("Ignoring unknown fields for %s: %s", tp.__name__, sorted(unknown))
    try:
        return tp(**kwargs)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Cannot build {tp.__name__}: {exc}") from exc
