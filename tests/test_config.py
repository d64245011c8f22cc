from __future__ import annotations

import textwrap
from dataclasses import dataclass
from pathlib import Path

import pytest

from keepsake.config import Settings, StoreSettings
from keepsake.descriptor import FileFormat
from keepsake.errors import UnsupportedFormatError


@dataclass
class Note:
    text: str = ""


def write_yaml(path: Path, body: str) -> Path:
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


def test_defaults_come_from_packaged_yaml():
    settings = Settings.load()
    assert settings.app_name == "keepsake"
    assert settings.data_dir is None
    assert settings.stores["ingame"].format is FileFormat.BINARY
    assert settings.stores["ingame"].secret_env == "KEEPSAKE_SECRET"
    assert settings.stores["settings"].format is FileFormat.XML


def test_user_file_is_merged_over_defaults(tmp_path):
    user = write_yaml(
        tmp_path / "user.yaml",
        """
        data_dir: {data}
        app_version: "1.2.3"
        stores:
          settings:
            format: json
          notes:
            file_name: notes
            format: xml
            secret: pepper
        """.format(data=tmp_path / "saves"),
    )
    settings = Settings.load(user)
    assert settings.data_dir == tmp_path / "saves"
    assert settings.app_version == "1.2.3"
    # Untouched keys of a merged store survive
    assert settings.stores["settings"].file_name == "settings"
    assert settings.stores["settings"].format is FileFormat.JSON
    assert settings.stores["ingame"].format is FileFormat.BINARY
    assert settings.stores["notes"].descriptor().encrypted


def test_missing_user_file_is_a_warning(tmp_path, caplog):
    with caplog.at_level("WARNING", logger="keepsake.config"):
        settings = Settings.load(tmp_path / "absent.yaml")
    assert "ingame" in settings.stores
    assert any("does not exist" in r.getMessage() for r in caplog.records)


def test_unknown_format_in_settings_is_rejected(tmp_path):
    user = write_yaml(
        tmp_path / "bad.yaml",
        """
        stores:
          broken:
            format: toml
        """,
    )
    with pytest.raises(UnsupportedFormatError):
        Settings.load(user)


def test_secret_env_wins_over_inline_secret(monkeypatch):
    store = StoreSettings(file_name="x", secret="inline", secret_env="NOTE_SECRET")
    monkeypatch.delenv("NOTE_SECRET", raising=False)
    assert store.resolve_secret() == "inline"
    monkeypatch.setenv("NOTE_SECRET", "from-env")
    assert store.resolve_secret() == "from-env"


def test_build_store_uses_settings(tmp_path):
    settings = Settings(
        data_dir=tmp_path,
        app_version="9.9",
        stores={"notes": StoreSettings(file_name="notes", format=FileFormat.JSON)},
    )
    store = settings.build_store("notes", Note)
    store.data.text = "hello"
    assert store.save()
    assert store.path == tmp_path / "notes.json"
    assert store.app_version == "9.9"

    with pytest.raises(KeyError):
        settings.build_store("missing", Note)


def test_save_round_trips_without_secrets(tmp_path):
    settings = Settings(
        data_dir=tmp_path / "d",
        stores={"notes": StoreSettings(file_name="notes", format=FileFormat.XML, secret="s", secret_env="ENV")},
    )
    path = tmp_path / "out.yaml"
    settings.save(path)
    text = path.read_text(encoding="utf-8")
    assert "secret: s" not in text
    reloaded = Settings.load(path)
    assert reloaded.stores["notes"].format is FileFormat.XML
    assert reloaded.stores["notes"].secret_env == "ENV"
    assert reloaded.data_dir == tmp_path / "d"
