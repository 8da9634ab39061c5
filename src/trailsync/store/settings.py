"""Persisted key/value settings read and written by the orchestrator and scheduler."""
from datetime import datetime
from typing import Optional

from sqlmodel import Session

from trailsync.models.sync import SyncSetting
from trailsync.remote.normalizer import parse_timestamp

LAST_SYNC_KEY = "last_sync_timestamp"
AUTO_SYNC_KEY = "auto_sync_enabled"


class SettingsStore:
    def __init__(self, engine):
        self.engine = engine

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with Session(self.engine) as s:
            row = s.get(SyncSetting, key)
            return row.value if row is not None and row.value is not None else default

    def set(self, key: str, value: Optional[str]) -> None:
        with Session(self.engine) as s:
            row = s.get(SyncSetting, key)
            if row is None:
                row = SyncSetting(key=key, value=value)
            else:
                row.value = value
            s.add(row)
            s.commit()

    def get_last_sync(self) -> Optional[datetime]:
        return parse_timestamp(self.get(LAST_SYNC_KEY))

    def set_last_sync(self, when: Optional[datetime]) -> None:
        self.set(LAST_SYNC_KEY, when.isoformat() if when is not None else None)

    def get_auto_sync_enabled(self, default: bool = True) -> bool:
        value = self.get(AUTO_SYNC_KEY)
        if value is None:
            return default
        return value == "true"

    def set_auto_sync_enabled(self, enabled: bool) -> None:
        self.set(AUTO_SYNC_KEY, "true" if enabled else "false")
