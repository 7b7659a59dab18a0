"""Skill Registry - in-memory view of the installed packages of one scope.

This module provides:
- SkillRegistry: discover, scan and track packages under a skills directory
- Filesystem watching (watchdog) with a debounced resync
- Resync summaries (added / removed / modified / unchanged)
- Risk summaries across all tracked packages

The registry is the only component that reads package directories back from
disk. Its content_hash for an untouched install equals the hash the
installer reported, so reconciliation can detect local edits.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from skillsync.core.exceptions import SkillNotADirectoryError, SkillNotFoundError, SkillSyncError
from skillsync.core.scanner.content_scanner import (
    RISK_LEVEL_ORDER,
    ScanResult,
    build_scan_result,
    combine_package_files,
    compute_package_hash,
    find_threats,
)
from skillsync.core.scanner.limits import (
    MANIFEST_FILENAME,
    MAX_FILE_SIZE,
    MAX_FILES,
    MAX_TOTAL_SIZE,
    is_binary_file,
    is_text_file,
)
from skillsync.core.storage.paths import (
    ResolvedPaths,
    SkillScope,
    is_valid_skill_name,
    safe_skill_path,
)
from skillsync.core.time import utc_now

logger = logging.getLogger(__name__)

WATCH_DEBOUNCE_SECONDS = 0.5


class RegistryState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


@dataclass
class InstalledSkill:
    """Scan record of one installed package"""

    name: str
    path: Path
    files_count: int
    total_size: int
    has_manifest: bool
    scan_result: ScanResult
    content_hash: str
    last_scanned: datetime
    scope: SkillScope
    description: Optional[str] = None

    @property
    def risk_level(self) -> str:
        return self.scan_result.risk_level

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": str(self.path),
            "files_count": self.files_count,
            "total_size": self.total_size,
            "has_manifest": self.has_manifest,
            "risk_level": self.risk_level,
            "content_hash": self.content_hash,
            "last_scanned": self.last_scanned.isoformat(),
            "scope": self.scope.value,
            "description": self.description,
        }


@dataclass
class ResyncSummary:
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed or self.modified)


def read_manifest_description(content: str) -> Optional[str]:
    """Pull `description` from a SKILL.md YAML front matter block, if any."""
    if not content.startswith("---"):
        return None
    parts = content.split("---", 2)
    if len(parts) < 3:
        return None
    try:
        front_matter = yaml.safe_load(parts[1])
    except yaml.YAMLError:
        return None
    if isinstance(front_matter, dict):
        description = front_matter.get("description")
        if isinstance(description, str):
            return description.strip()
    return None


class _SkillsDirEventHandler(FileSystemEventHandler):
    def __init__(self, registry: "SkillRegistry"):
        self.registry = registry

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in ("opened", "closed", "closed_no_write"):
            return
        self.registry.schedule_resync()


class SkillRegistry:
    """Registry of installed packages for one scope.

    Lifecycle: UNINITIALIZED -> initialize() -> READY -> shutdown() -> UNINITIALIZED.
    initialize() always ends in READY, even when some packages fail to scan.

    All mutations happen under a re-entrant lock, so the watcher thread, the
    sync engine and callers on the main thread can share one instance.
    """

    def __init__(
        self,
        paths: ResolvedPaths,
        debounce_seconds: float = WATCH_DEBOUNCE_SECONDS,
        watch: bool = True,
    ):
        """Initialize skill registry.

        Args:
            paths: Resolved paths of the scope
            debounce_seconds: Quiet period before a watched change triggers resync
            watch: Start a filesystem watcher during initialize()
        """
        self.paths = paths
        self.debounce_seconds = debounce_seconds
        self.watch_enabled = watch
        self.state = RegistryState.UNINITIALIZED

        self._skills: Dict[str, InstalledSkill] = {}
        self._lock = threading.RLock()
        self._observer: Optional[Observer] = None
        self._debounce_timer: Optional[threading.Timer] = None

    @property
    def skills_dir(self) -> Path:
        return self.paths.skills_dir

    @property
    def initialized(self) -> bool:
        return self.state is RegistryState.READY

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Discover and scan every package, then start watching."""
        with self._lock:
            if self.state is not RegistryState.UNINITIALIZED:
                return
            self.state = RegistryState.INITIALIZING

        try:
            for name in self.discover_skills():
                try:
                    skill = self.scan_skill(name)
                    logger.info(f"[{self.paths.scope.value}] Skill '{name}': {skill.risk_level.upper()}")
                except (OSError, SkillSyncError) as e:
                    logger.warning(f"[{self.paths.scope.value}] Failed to scan '{name}': {e}")

            summary = self.get_summary()
            logger.info(
                f"[{self.paths.scope.value}] Loaded {summary['total']} skills "
                f"({summary['by_risk']['safe']} safe, {summary['by_risk']['critical']} critical)"
            )
            if self.watch_enabled:
                self.start_watching()
        except OSError as e:
            logger.warning(f"[{self.paths.scope.value}] Initialization failed: {e}")
        finally:
            with self._lock:
                self.state = RegistryState.READY

    def shutdown(self) -> None:
        """Stop watching and forget all records."""
        self.stop_watching()
        with self._lock:
            self._skills.clear()
            self.state = RegistryState.UNINITIALIZED

    # ------------------------------------------------------------------
    # Discovery and scanning
    # ------------------------------------------------------------------

    def discover_skills(self) -> List[str]:
        """Names of valid-named immediate subdirectories; [] if the root is missing."""
        try:
            entries = sorted(os.scandir(self.skills_dir), key=lambda e: e.name)
        except (FileNotFoundError, NotADirectoryError, PermissionError):
            return []
        return [e.name for e in entries if e.is_dir() and is_valid_skill_name(e.name)]

    def scan_skill(self, name: str) -> InstalledSkill:
        """
        Read and scan one package directory, replacing its record.

        Only immediate regular files are read. Binary, non-text and
        oversized files are skipped; reading stops at MAX_FILES files or
        MAX_TOTAL_SIZE bytes.

        Raises:
            InvalidSkillNameError, PathTraversalError: bad name
            SkillNotFoundError: directory missing
            SkillNotADirectoryError: path is not a directory
        """
        skill_path = safe_skill_path(self.skills_dir, name)
        if not skill_path.exists():
            raise SkillNotFoundError(f'Skill "{name}" not found at {skill_path}')
        if not skill_path.is_dir():
            raise SkillNotADirectoryError(f'"{name}" is not a directory')

        files: Dict[str, str] = {}
        total_size = 0
        for entry in sorted(os.scandir(skill_path), key=lambda e: e.name):
            if len(files) >= MAX_FILES:
                break
            if not entry.is_file():
                continue
            if is_binary_file(entry.name) or not is_text_file(entry.name):
                continue
            try:
                size = entry.stat().st_size
            except OSError:
                continue
            if size > MAX_FILE_SIZE:
                continue
            if total_size + size > MAX_TOTAL_SIZE:
                break
            try:
                with open(entry.path, "r", encoding="utf-8", errors="replace", newline="") as f:
                    files[entry.name] = f.read()
            except OSError as e:
                logger.debug(f"Skipping unreadable file {entry.path}: {e}")
                continue
            total_size += size

        content_hash = compute_package_hash(files)
        scan_result = build_scan_result(find_threats(combine_package_files(files)), content_hash)

        manifest_name = next((n for n in files if n.lower() == MANIFEST_FILENAME.lower()), None)
        skill = InstalledSkill(
            name=name,
            path=skill_path,
            files_count=len(files),
            total_size=total_size,
            has_manifest=manifest_name is not None,
            scan_result=scan_result,
            content_hash=content_hash,
            last_scanned=utc_now(),
            scope=self.paths.scope,
            description=read_manifest_description(files[manifest_name]) if manifest_name else None,
        )
        with self._lock:
            self._skills[name] = skill
        return skill

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_skill(self, name: str) -> Optional[InstalledSkill]:
        with self._lock:
            return self._skills.get(name)

    def list_skills(self) -> List[InstalledSkill]:
        with self._lock:
            return [self._skills[name] for name in sorted(self._skills)]

    def remove_skill(self, name: str) -> bool:
        """Drop a record without touching disk. Returns whether it existed."""
        with self._lock:
            return self._skills.pop(name, None) is not None

    def content_hashes(self) -> Dict[str, str]:
        """name -> content_hash of every tracked package"""
        with self._lock:
            return {name: skill.content_hash for name, skill in self._skills.items()}

    def get_summary(self) -> Dict[str, Any]:
        skills = self.list_skills()
        by_risk = {level: 0 for level in RISK_LEVEL_ORDER}
        for skill in skills:
            by_risk[skill.risk_level] = by_risk.get(skill.risk_level, 0) + 1
        return {
            "scope": self.paths.scope.value,
            "total": len(skills),
            "by_risk": by_risk,
            "skills": [
                {
                    "name": s.name,
                    "risk_level": s.risk_level,
                    "files_count": s.files_count,
                    "has_manifest": s.has_manifest,
                    "last_scanned": s.last_scanned.isoformat(),
                    "scope": s.scope.value,
                }
                for s in skills
            ],
        }

    # ------------------------------------------------------------------
    # Resync
    # ------------------------------------------------------------------

    def resync(self) -> ResyncSummary:
        """
        Reconcile records with the directory.

        Records whose directory vanished are removed. New directories are
        scanned and added. Existing ones are rescanned and reported as
        modified when the content hash changed. A package that fails to
        rescan keeps its old record and counts as unchanged.
        """
        summary = ResyncSummary()
        with self._lock:
            on_disk = set(self.discover_skills())
            tracked = set(self._skills)

            for name in sorted(tracked - on_disk):
                del self._skills[name]
                summary.removed.append(name)

            for name in sorted(on_disk):
                previous = self._skills.get(name)
                try:
                    fresh = self.scan_skill(name)
                except (OSError, SkillSyncError) as e:
                    if previous is None:
                        logger.warning(f"[{self.paths.scope.value}] Failed to scan new skill '{name}': {e}")
                    else:
                        summary.unchanged.append(name)
                    continue

                if previous is None:
                    summary.added.append(name)
                    logger.info(f"[{self.paths.scope.value}] New skill detected: '{name}'")
                elif fresh.content_hash != previous.content_hash:
                    summary.modified.append(name)
                    logger.info(f"[{self.paths.scope.value}] Skill modified: '{name}'")
                else:
                    summary.unchanged.append(name)

        return summary

    # ------------------------------------------------------------------
    # Watching
    # ------------------------------------------------------------------

    def schedule_resync(self) -> None:
        """(Re)start the debounce timer; resync runs once events go quiet."""
        with self._lock:
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
            timer = threading.Timer(self.debounce_seconds, self._debounced_resync)
            timer.daemon = True
            self._debounce_timer = timer
            timer.start()

    def _debounced_resync(self) -> None:
        with self._lock:
            self._debounce_timer = None
        try:
            self.resync()
        except OSError as e:
            logger.warning(f"[{self.paths.scope.value}] Resync error: {e}")

    def start_watching(self) -> bool:
        """Start the filesystem watcher. Returns False when the root is missing."""
        with self._lock:
            if self._observer is not None:
                return True
            if not self.skills_dir.is_dir():
                logger.info(
                    f"[{self.paths.scope.value}] Could not watch {self.skills_dir} (may not exist yet)"
                )
                return False

            observer = Observer()
            observer.daemon = True
            try:
                observer.schedule(_SkillsDirEventHandler(self), str(self.skills_dir), recursive=True)
                observer.start()
            except OSError as e:
                logger.warning(f"[{self.paths.scope.value}] Watch error: {e}")
                return False
            self._observer = observer
            return True

    def stop_watching(self) -> None:
        with self._lock:
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
                self._debounce_timer = None
            observer = self._observer
            self._observer = None

        if observer is not None:
            observer.stop()
            observer.join(timeout=2)

    @property
    def watching(self) -> bool:
        return self._observer is not None
