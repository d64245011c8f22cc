from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import pytest

from keepsake.codec import BinaryCodec, JsonCodec, XmlCodec, deserialize, get_codec, serialize
from keepsake.descriptor import FileFormat
from keepsake.errors import SerializationError, UnsupportedFormatError


class Difficulty(Enum):
    EASY = 1
    HARD = 2


@dataclass
class Position:
    x: float = 0.0
    y: float = 0.0


@dataclass
class Profile:
    name: str = "Ada"
    level: int = 1
    alive: bool = True
    difficulty: Difficulty = Difficulty.EASY
    position: Position = field(default_factory=Position)
    tags: List[str] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)
    title: Optional[str] = None
    session_token: str = field(default="", metadata={"persist": False})


def sample_profile() -> Profile:
    return Profile(
        name="Mörk <Ghoul> & co",
        level=42,
        alive=False,
        difficulty=Difficulty.HARD,
        position=Position(x=1.5, y=-3.25),
        tags=["night", "", "crypt keeper"],
        stats={"str": 7, "two words": 3, "entry": 1},
        title=None,
    )


@pytest.mark.parametrize("fmt", list(FileFormat))
def test_round_trip_each_format(fmt):
    profile = sample_profile()
    data = serialize(profile, fmt)
    assert isinstance(data, bytes)
    assert deserialize(data, fmt, Profile) == profile


@pytest.mark.parametrize("fmt", list(FileFormat))
def test_runtime_only_fields_are_not_written(fmt):
    profile = sample_profile()
    profile.session_token = "secret-session"
    loaded = deserialize(serialize(profile, fmt), fmt, Profile)
    assert loaded.session_token == ""
    assert b"secret-session" not in serialize(profile, fmt)


@pytest.mark.parametrize("fmt", list(FileFormat))
def test_serialization_is_deterministic(fmt):
    assert serialize(sample_profile(), fmt) == serialize(sample_profile(), fmt)


def test_json_is_an_object_keyed_by_field_names():
    text = serialize(Profile(name="Bo", level=3), FileFormat.JSON).decode("utf-8")
    assert '"name": "Bo"' in text
    assert '"level": 3' in text
    assert '"difficulty": 1' in text


def test_xml_elements_are_named_after_fields():
    text = serialize(Profile(level=3), FileFormat.XML).decode("utf-8")
    assert text.startswith("<?xml")
    assert '<level type="int">3</level>' in text
    assert '<record type="map">' in text


def test_xml_uses_entry_elements_for_awkward_keys():
    text = XmlCodec().dumps({"two words": 1, "entry": 2, "ok": 3}).decode("utf-8")
    assert '<entry key="two words" type="int">1</entry>' in text
    assert '<entry key="entry" type="int">2</entry>' in text
    assert '<ok type="int">3</ok>' in text
    assert XmlCodec().loads(text.encode("utf-8")) == {"two words": 1, "entry": 2, "ok": 3}


def test_binary_starts_with_magic_header():
    assert serialize(Profile(), FileFormat.BINARY).startswith(BinaryCodec.MAGIC)


def test_missing_fields_fall_back_to_defaults_and_unknown_fields_are_ignored():
    data = JsonCodec().dumps({"name": "Cy", "unknown": 5})
    loaded = deserialize(data, FileFormat.JSON, Profile)
    assert loaded.name == "Cy"
    assert loaded.level == 1
    assert loaded.position == Position()


def test_plain_strings_round_trip_in_every_codec():
    for fmt in FileFormat:
        codec = get_codec(fmt)
        assert codec.loads(codec.dumps("opaque blob==")) == "opaque blob=="


@pytest.mark.parametrize(
    "written,read",
    [
        (FileFormat.BINARY, FileFormat.JSON),
        (FileFormat.BINARY, FileFormat.XML),
        (FileFormat.JSON, FileFormat.BINARY),
        (FileFormat.JSON, FileFormat.XML),
        (FileFormat.XML, FileFormat.BINARY),
        (FileFormat.XML, FileFormat.JSON),
    ],
)
def test_reading_another_format_fails(written, read):
    data = serialize(sample_profile(), written)
    with pytest.raises(SerializationError):
        deserialize(data, read, Profile)


@pytest.mark.parametrize(
    "fmt,payload",
    [
        (FileFormat.JSON, b"{ not json"),
        (FileFormat.JSON, b"\xff\xfe"),
        (FileFormat.XML, b"<record type='map'><a type='int'>x</a></record>"),
        (FileFormat.XML, b"<other/>"),
        (FileFormat.BINARY, BinaryCodec.MAGIC + b"s\x00\x00\x00\x09abc"),
        (FileFormat.BINARY, BinaryCodec.MAGIC + b"N" + b"junk"),
        (FileFormat.BINARY, BinaryCodec.MAGIC + b"?"),
        (FileFormat.BINARY, b""),
    ],
)
def test_malformed_payloads_raise_serialization_error(fmt, payload):
    with pytest.raises(SerializationError):
        get_codec(fmt).loads(payload)


def test_type_mismatch_raises_serialization_error():
    data = JsonCodec().dumps({"level": "high"})
    with pytest.raises(SerializationError):
        deserialize(data, FileFormat.JSON, Profile)


def test_invalid_enum_value_raises_serialization_error():
    data = JsonCodec().dumps({"difficulty": 99})
    with pytest.raises(SerializationError):
        deserialize(data, FileFormat.JSON, Profile)


def test_unsupported_values_raise_serialization_error():
    with pytest.raises(SerializationError):
        serialize({"when": object()}, FileFormat.JSON)
    with pytest.raises(SerializationError):
        serialize({1: "int keys"}, FileFormat.BINARY)


def test_integer_overflow_in_binary_raises():
    with pytest.raises(SerializationError):
        serialize({"big": 2**70}, FileFormat.BINARY)


def test_unknown_format_is_rejected():
    with pytest.raises(UnsupportedFormatError):
        get_codec("yaml")
    assert get_codec("Binary") is get_codec(FileFormat.BINARY)


@pytest.mark.parametrize(
    "text",
    ["\r\n", "\r", "\t", "  lead and trail  ", "\x00", "bell\x07", "\ufffe", "plain", ""],
)
def test_xml_strings_round_trip_exactly(text):
    codec = XmlCodec()
    assert codec.loads(codec.dumps(text)) == text
    assert codec.loads(codec.dumps({"value": text, "items": [text]})) == {"value": text, "items": [text]}


def test_xml_keys_with_line_breaks_round_trip():
    codec = XmlCodec()
    value = {"a\r\nb": 1, "tab\there": 2, "nul\x00": 3}
    data = codec.dumps(value)
    assert b"key64=" in data
    assert codec.loads(data) == value


def test_xml_unsafe_strings_are_stored_as_base64():
    text = XmlCodec().dumps({"body": "a\rb"}).decode("utf-8")
    assert '<body type="b64str">YQ1i</body>' in text


def test_xml_invalid_base64_string_raises():
    data = b'<record type="map"><body type="b64str">not base64!</body></record>'
    with pytest.raises(SerializationError):
        XmlCodec().loads(data)


@pytest.mark.parametrize("fmt", list(FileFormat))
def test_lone_surrogates_are_a_serialization_error_or_round_trip(fmt):
    codec = get_codec(fmt)
    if fmt is FileFormat.XML:
        assert codec.loads(codec.dumps("\ud800")) == "\ud800"
    else:
        with pytest.raises(SerializationError):
            codec.dumps("\ud800")
