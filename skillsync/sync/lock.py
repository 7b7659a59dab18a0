"""Lock file of sync-managed packages (skillsync.lock)"""

import json
import logging
import threading
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from skillsync.core.storage.atomic import atomic_write_json

logger = logging.getLogger(__name__)


class LockedSkill(BaseModel):
    """Record of one package installed by a sync"""

    name: str
    source_url: str
    installed_hash: str
    upstream_hash: str = ""
    subscription_ids: List[str] = Field(default_factory=list)
    last_synced: str
    installed_at: str
    risk_level: str
    files_count: int = 0
    has_manifest: bool = False
    upstream_updated_at: Optional[str] = None


class SyncLockFile(BaseModel):
    version: Literal[1] = 1
    skills: Dict[str, LockedSkill] = Field(default_factory=dict)
    last_sync_run: Optional[str] = None
    sync_count: int = 0

    def is_managed(self, name: str) -> bool:
        return name in self.skills


class SyncLockStore:
    """Read and atomically write the lock file of one scope"""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def read(self) -> SyncLockFile:
        """Load the lock; missing or malformed files yield an empty lock."""
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            return SyncLockFile()
        except (ValueError, OSError) as e:
            logger.warning(f"Invalid lock file {self.path}, using empty lock: {e}")
            return SyncLockFile()

        try:
            return SyncLockFile.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Invalid lock file {self.path}, using empty lock: {e.error_count()} error(s)")
            return SyncLockFile()

    def write(self, lock: SyncLockFile) -> None:
        atomic_write_json(self.path, lock.model_dump(mode="json"))

    def upsert(self, skill: LockedSkill) -> SyncLockFile:
        with self._lock:
            lock = self.read()
            lock.skills[skill.name] = skill
            self.write(lock)
        return lock

    def remove(self, name: str) -> bool:
        """Drop an entry. Returns False (and writes nothing) if it was absent."""
        with self._lock:
            lock = self.read()
            if name not in lock.skills:
                return False
            del lock.skills[name]
            self.write(lock)
        return True

    def is_managed(self, name: str) -> bool:
        return self.read().is_managed(name)
