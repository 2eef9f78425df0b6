"""
SERPINFO settings: immutable snapshots, persistence and the background manager.
"""

from .manager import SerpInfoManager
from .state import RemoteSerpInfo, SerpInfoSettings, UserSerpInfo
from .store import SettingsStore

__all__ = [
    "RemoteSerpInfo",
    "SerpInfoManager",
    "SerpInfoSettings",
    "SettingsStore",
    "UserSerpInfo",
]
