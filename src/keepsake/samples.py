"""Sample records and an application-level save manager.

Shows the intended wiring: the application owns its stores and passes them
around explicitly instead of reaching for a global.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List

from .config import Settings
from .descriptor import FileFormat
from .record import DataFile
from .store import Outcome, RecordStore

logger = logging.getLogger(__name__)


class Language(str, Enum):
    ENGLISH = "english"
    GERMAN = "german"
    FRENCH = "french"
    SPANISH = "spanish"


@dataclass
class IngameData(DataFile):
    highscore: int = 100
    last_score: int = 20
    file_type: FileFormat = FileFormat.JSON
    unlocked_levels: List[str] = field(default_factory=lambda: ["graveyard"])


@dataclass
class UserSettingsData:
    music_volume: int = 90
    sound_volume: int = 100
    language: Language = Language.ENGLISH


class SampleSaveManager:
    """Owns the ingame and user settings stores of the sample application."""

    def __init__(self, ingame: RecordStore[IngameData], user_settings: RecordStore[UserSettingsData]) -> None:
        self.ingame = ingame
        self.user_settings = user_settings

    @classmethod
    def from_settings(cls, settings: Settings) -> "SampleSaveManager":
        return cls(
            ingame=settings.build_store("ingame", IngameData),
            user_settings=settings.build_store("settings", UserSettingsData),
        )

    def save_all(self) -> Dict[str, Outcome]:
        return {
            "ingame": self.ingame.save(),
            "settings": self.user_settings.save(),
        }

    def load_all(self) -> Dict[str, Outcome]:
        results = {
            "ingame": self.ingame.load(),
            "settings": self.user_settings.load(),
        }
        failed = [name for name, outcome in results.items() if not outcome]
        if failed:
            logger.warning("Some sample stores failed to load: %s", ", ".join(failed))
        return results

    def delete_all(self) -> Dict[str, Outcome]:
        return {
            "ingame": self.ingame.delete(),
            "settings": self.user_settings.delete(),
        }
