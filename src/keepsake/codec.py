from __future__ import annotations

import base64
import binascii
import json
import logging
import re
import struct
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Type, TypeVar

from .descriptor import FileFormat
from .errors import SerializationError, UnsupportedFormatError
from .record import from_plain, to_plain

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Codec(ABC):
    """Stateless encoder for plain trees (see :mod:`keepsake.record`)."""

    file_format: FileFormat

    @abstractmethod
    def dumps(self, plain: Any) -> bytes:
        """Encode a plain tree to bytes."""

    @abstractmethod
    def loads(self, data: bytes) -> Any:
        """Decode bytes into a plain tree. Raises SerializationError on bad input."""


class JsonCodec(Codec):
    file_format = FileFormat.JSON

    def dumps(self, plain: Any) -> bytes:
        try:
            text = json.dumps(plain, ensure_ascii=False, sort_keys=True, indent=2, allow_nan=False)
            return text.encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise SerializationError(f"Cannot encode JSON: {exc}") from exc

    def loads(self, data: bytes) -> Any:
        try:
            return json.loads(data.decode("utf-8"))
        except UnicodeDecodeError as exc:
            raise SerializationError(f"JSON payload is not UTF-8: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise SerializationError(f"Invalid JSON: {exc}") from exc


class BinaryCodec(Codec):
    """Tagged, length-prefixed binary encoding.

    Layout: ``MAGIC`` then one value. Each value starts with a one byte tag;
    strings are a u32 length plus UTF-8 bytes, lists a u32 count plus values,
    maps a u32 count plus (string key, value) pairs. All integers big-endian.
    """

    file_format = FileFormat.BINARY

    MAGIC = b"KSB\x01"

    TAG_NONE = b"N"
    TAG_TRUE = b"T"
    TAG_FALSE = b"F"
    TAG_INT = b"i"
    TAG_FLOAT = b"d"
    TAG_STR = b"s"
    TAG_LIST = b"l"
    TAG_MAP = b"m"

    def dumps(self, plain: Any) -> bytes:
        parts: List[bytes] = [self.MAGIC]
        self._pack(plain, parts)
        return b"".join(parts)

    def loads(self, data: bytes) -> Any:
        if data[: len(self.MAGIC)] != self.MAGIC:
            raise SerializationError("Not a binary record file (bad magic header)")
        try:
            value, offset = self._unpack(data, len(self.MAGIC))
        except (struct.error, IndexError) as exc:
            raise SerializationError(f"Truncated binary payload: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise SerializationError(f"Invalid string in binary payload: {exc}") from exc
        if offset != len(data):
            raise SerializationError(f"{len(data) - offset} trailing bytes after binary payload")
        return value

    def _pack_str(self, value: str, parts: List[bytes]) -> None:
        try:
            raw = value.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise SerializationError(f"String is not encodable as UTF-8: {exc}") from exc
        parts.append(struct.pack(">I", len(raw)))
        parts.append(raw)

    def _pack(self, value: Any, parts: List[bytes]) -> None:
        if value is None:
            parts.append(self.TAG_NONE)
        elif value is True:
            parts.append(self.TAG_TRUE)
        elif value is False:
            parts.append(self.TAG_FALSE)
        elif isinstance(value, int):
            try:
                parts.append(self.TAG_INT + struct.pack(">q", value))
            except struct.error as exc:
                raise SerializationError(f"Integer {value} does not fit in 64 bits") from exc
        elif isinstance(value, float):
            parts.append(self.TAG_FLOAT + struct.pack(">d", value))
        elif isinstance(value, str):
            parts.append(self.TAG_STR)
            self._pack_str(value, parts)
        elif isinstance(value, list):
            parts.append(self.TAG_LIST + struct.pack(">I", len(value)))
            for item in value:
                self._pack(item, parts)
        elif isinstance(value, dict):
            parts.append(self.TAG_MAP + struct.pack(">I", len(value)))
            for key in sorted(value):
                self._pack_str(key, parts)
                self._pack(value[key], parts)
        else:
            raise SerializationError(f"Cannot encode {type(value).__name__} in binary format")

    def _read(self, data: bytes, offset: int, size: int) -> bytes:
        chunk = data[offset : offset + size]
        if len(chunk) != size:
            raise SerializationError("Truncated binary payload")
        return chunk

    def _unpack_str(self, data: bytes, offset: int):
        (length,) = struct.unpack(">I", self._read(data, offset, 4))
        offset += 4
        return self._read(data, offset, length).decode("utf-8"), offset + length

    def _unpack(self, data: bytes, offset: int):
        tag = self._read(data, offset, 1)
        offset += 1
        if tag == self.TAG_NONE:
            return None, offset
        if tag == self.TAG_TRUE:
            return True, offset
        if tag == self.TAG_FALSE:
            return False, offset
        if tag == self.TAG_INT:
            return struct.unpack(">q", self._read(data, offset, 8))[0], offset + 8
        if tag == self.TAG_FLOAT:
            return struct.unpack(">d", self._read(data, offset, 8))[0], offset + 8
        if tag == self.TAG_STR:
            return self._unpack_str(data, offset)
        if tag == self.TAG_LIST:
            (count,) = struct.unpack(">I", self._read(data, offset, 4))
            offset += 4
            items = []
            for _ in range(count):
                item, offset = self._unpack(data, offset)
                items.append(item)
            return items, offset
        if tag == self.TAG_MAP:
            (count,) = struct.unpack(">I", self._read(data, offset, 4))
            offset += 4
            mapping: Dict[str, Any] = {}
            for _ in range(count):
                key, offset = self._unpack_str(data, offset)
                mapping[key], offset = self._unpack(data, offset)
            return mapping, offset
        raise SerializationError(f"Unknown type tag {tag!r} at offset {offset - 1}")


class XmlCodec(Codec):
    """XML element encoding keyed by field names.

    ``<record type="map"><Highscore type="int">100</Highscore></record>``
    Keys that are not usable as element names are written as
    ``<entry key="...">``; list items are ``<item>`` elements. Strings and
    keys that XML would not carry verbatim (carriage returns, control
    characters) are stored as base64 of their UTF-8 bytes, in a
    ``type="b64str"`` element or a ``key64`` attribute.
    """

    file_format = FileFormat.XML

    ROOT = "record"
    ENTRY = "entry"
    ITEM = "item"

    _NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.\-]*$")
    # Text that survives an XML round trip unchanged (parsers normalize \r)
    _TEXT_UNSAFE_RE = re.compile("[^\t\n\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")
    # Attribute values are whitespace-normalized as well
    _KEY_UNSAFE_RE = re.compile("[^\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")

    def dumps(self, plain: Any) -> bytes:
        root = ET.Element(self.ROOT)
        self._fill(root, plain)
        ET.indent(root, space="  ")
        return ET.tostring(root, encoding="utf-8", xml_declaration=True) + b"\n"

    def loads(self, data: bytes) -> Any:
        try:
            root = ET.fromstring(data)
        except ET.ParseError as exc:
            raise SerializationError(f"Invalid XML: {exc}") from exc
        if root.tag != self.ROOT:
            raise SerializationError(f"Unexpected XML root element <{root.tag}>")
        return self._read(root)

    def _element_name(self, key: str) -> bool:
        return bool(self._NAME_RE.match(key)) and key != self.ENTRY and not key.lower().startswith("xml")

    def _fill(self, el: ET.Element, value: Any) -> None:
        if value is None:
            el.set("type", "none")
        elif isinstance(value, bool):
            el.set("type", "bool")
            el.text = "true" if value else "false"
        elif isinstance(value, int):
            el.set("type", "int")
            el.text = str(value)
        elif isinstance(value, float):
            el.set("type", "float")
            el.text = repr(value)
        elif isinstance(value, str):
            if self._TEXT_UNSAFE_RE.search(value):
                el.set("type", "b64str")
                el.text = _b64(value)
            else:
                el.set("type", "str")
                el.text = value
        elif isinstance(value, list):
            el.set("type", "list")
            for item in value:
                self._fill(ET.SubElement(el, self.ITEM), item)
        elif isinstance(value, dict):
            el.set("type", "map")
            for key in sorted(value):
                if self._element_name(key):
                    child = ET.SubElement(el, key)
                elif self._KEY_UNSAFE_RE.search(key):
                    child = ET.SubElement(el, self.ENTRY, {"key64": _b64(key)})
                else:
                    child = ET.SubElement(el, self.ENTRY, {"key": key})
                self._fill(child, value[key])
        else:
            raise SerializationError(f"Cannot encode {type(value).__name__} in XML format")

    def _read(self, el: ET.Element) -> Any:
        kind = el.get("type")
        text = el.text or ""
        try:
            if kind == "none":
                return None
            if kind == "bool":
                if text not in ("true", "false"):
                    raise SerializationError(f"Invalid bool {text!r} in <{el.tag}>")
                return text == "true"
            if kind == "int":
                return int(text)
            if kind == "float":
                return float(text)
        except ValueError as exc:
            raise SerializationError(f"Invalid {kind} {text!r} in <{el.tag}>") from exc
        if kind == "str":
            return text
        if kind == "b64str":
            return _unb64(text, f"<{el.tag}>")
        if kind == "list":
            return [self._read(child) for child in el]
        if kind == "map":
            mapping: Dict[str, Any] = {}
            for child in el:
                if child.tag != self.ENTRY:
                    key = child.tag
                elif "key64" in child.attrib:
                    key = _unb64(child.get("key64"), "<entry> key64")
                else:
                    key = child.get("key")
                if key is None:
                    raise SerializationError("<entry> element without a key attribute")
                mapping[key] = self._read(child)
            return mapping
        raise SerializationError(f"Unknown type {kind!r} on <{el.tag}>")


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8", "surrogatepass")).decode("ascii")


def _unb64(text: str, where: str) -> str:
    try:
        return base64.b64decode(text.strip(), validate=True).decode("utf-8", "surrogatepass")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise SerializationError(f"Invalid base64 text in {where}") from exc


_CODECS: Dict[FileFormat, Codec] = {
    FileFormat.BINARY: BinaryCodec(),
    FileFormat.XML: XmlCodec(),
    FileFormat.JSON: JsonCodec(),
}


def get_codec(file_format: Any) -> Codec:
    try:
        fmt = FileFormat.parse(file_format)
        return _CODECS[fmt]
    except KeyError as exc:
        raise UnsupportedFormatError(f"No codec registered for {file_format!r}") from exc


def serialize(value: Any, file_format: Any) -> bytes:
    """Serialize a record (or any supported value) with the codec for ``file_format``."""
    codec = get_codec(file_format)
    data = codec.dumps(to_plain(value))
    logger.debug("Serialized %s to %d bytes of %s", type(value).__name__, len(data), codec.file_format.name)
    return data


def deserialize(data: bytes, file_format: Any, record_type: Type[T]) -> T:
    """Deserialize ``data`` into ``record_type``. Raises SerializationError on malformed input."""
    codec = get_codec(file_format)
    return from_plain(record_type, codec.loads(data))
