"""Sync Engine - reconcile installed packages with subscription results

This module implements reconciliation in two layers:
1. compute_sync_diff(): a pure function from (discovered, lock, policy,
   local hashes) to install / update / remove / conflict lists
2. SyncEngine: discovery through the marketplace, then applying the diff
   through the installer, registry and lock store

Design:
- Single flight: a sync requested while one is running returns an error
  report immediately instead of waiting
- Per-action failures become error actions; a sync never raises
- Dry runs perform discovery and diffing but write nothing
- Periodic sync runs on a daemon thread so it never keeps the process alive
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from skillsync.core.exceptions import SkillNotFoundError, SkillSyncError, SyncInProgressError
from skillsync.core.scanner.content_scanner import risk_exceeds
from skillsync.core.storage.paths import ResolvedPaths
from skillsync.core.time import utc_now_iso
from skillsync.marketplace.client import MarketplaceClient, SkillListing
from skillsync.skills.installer import InstallResult, SkillInstaller
from skillsync.skills.registry import SkillRegistry
from skillsync.sync.config import Subscription, SyncConfigStore, SyncPolicy
from skillsync.sync.lock import LockedSkill, SyncLockFile, SyncLockStore

logger = logging.getLogger(__name__)

SYNC_API_DELAY_SECONDS = 0.2
PERIODIC_JOIN_TIMEOUT_SECONDS = 5

ACTION_INSTALL = "install"
ACTION_UPDATE = "update"
ACTION_REMOVE = "remove"
ACTION_SKIP_CONFLICT = "skip-conflict"
ACTION_SKIP_RISK = "skip-risk"
ACTION_UNMANAGE = "unmanage"
ACTION_ERROR = "error"

SKIPPED_ACTIONS = (ACTION_SKIP_CONFLICT, ACTION_SKIP_RISK, ACTION_UNMANAGE)


# ============================================
# Data models
# ============================================

@dataclass
class DiscoveredSkill:
    """A marketplace hit claimed by one or more subscriptions"""

    listing: SkillListing
    subscription_ids: List[str]
    inferred_name: str

    @property
    def source_url(self) -> str:
        return self.listing.github_url

    @property
    def upstream_marker(self) -> str:
        return "" if self.listing.updated_at is None else str(self.listing.updated_at)


@dataclass
class PlannedInstall:
    name: str
    source_url: str
    subscription_ids: List[str]
    upstream_marker: str


@dataclass
class PlannedRemoval:
    name: str
    source_url: str


@dataclass
class SyncConflict:
    name: str
    source_url: str
    reason: str


@dataclass
class SyncDiff:
    to_install: List[PlannedInstall] = field(default_factory=list)
    to_update: List[PlannedInstall] = field(default_factory=list)
    to_remove: List[PlannedRemoval] = field(default_factory=list)
    conflicts: List[SyncConflict] = field(default_factory=list)


@dataclass
class SyncAction:
    type: str
    skill_name: str
    source_url: str
    reason: str
    risk_level: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "skill_name": self.skill_name,
            "source_url": self.source_url,
            "reason": self.reason,
            "risk_level": self.risk_level,
        }


@dataclass
class SyncReport:
    """Complete record of one sync; counters are derived from actions"""

    started_at: str
    finished_at: str
    total_discovered: int
    actions: List[SyncAction]
    dry_run: bool

    def _count(self, *types: str) -> int:
        return sum(1 for a in self.actions if a.type in types)

    @property
    def installed(self) -> int:
        return self._count(ACTION_INSTALL)

    @property
    def updated(self) -> int:
        return self._count(ACTION_UPDATE)

    @property
    def removed(self) -> int:
        return self._count(ACTION_REMOVE)

    @property
    def skipped(self) -> int:
        return self._count(*SKIPPED_ACTIONS)

    @property
    def errors(self) -> int:
        return self._count(ACTION_ERROR)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "total_discovered": self.total_discovered,
            "actions": [a.to_dict() for a in self.actions],
            "installed": self.installed,
            "updated": self.updated,
            "removed": self.removed,
            "skipped": self.skipped,
            "errors": self.errors,
            "dry_run": self.dry_run,
        }


@dataclass
class SyncStatus:
    enabled: bool
    syncing: bool
    last_sync_run: Optional[str]
    sync_count: int
    managed_skills: int
    subscriptions: int
    next_sync_in: Optional[str]
    interval_hours: float

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


# ============================================
# Pure diff
# ============================================

def infer_name_from_url(source_url: str) -> str:
    segments = [s for s in source_url.rstrip("/").split("/") if s]
    return segments[-1] if segments else "unknown-skill"


def compute_sync_diff(
    discovered: Mapping[str, DiscoveredSkill],
    lock: SyncLockFile,
    policy: SyncPolicy,
    local_hashes: Optional[Mapping[str, str]] = None,
) -> SyncDiff:
    """
    Classify discovered packages against the lock.

    - Not in the lock (by source URL): install
    - In the lock, upstream marker unchanged: nothing
    - Upstream changed, local copy untouched (or not tracked): update
    - Upstream changed, local copy edited since install: by conflict policy,
      skip -> conflict, overwrite -> update, unmanage -> conflict
    - With auto_remove, lock entries whose URL was not discovered: remove

    Args:
        discovered: source URL -> DiscoveredSkill
        lock: Current lock file
        policy: Current sync policy
        local_hashes: package name -> registry content hash

    Returns:
        SyncDiff
    """
    local_hashes = local_hashes or {}
    diff = SyncDiff()
    locked_by_url = {entry.source_url: entry for entry in lock.skills.values()}

    for source_url, item in discovered.items():
        locked = locked_by_url.get(source_url)
        marker = item.upstream_marker

        if locked is None:
            diff.to_install.append(
                PlannedInstall(item.inferred_name, source_url, list(item.subscription_ids), marker)
            )
            continue

        if marker == (locked.upstream_updated_at or ""):
            continue

        local_hash = local_hashes.get(locked.name)
        if local_hash is not None and local_hash != locked.installed_hash:
            if policy.conflict_policy == "overwrite":
                diff.to_update.append(
                    PlannedInstall(locked.name, source_url, list(item.subscription_ids), marker)
                )
            elif policy.conflict_policy == "unmanage":
                diff.conflicts.append(SyncConflict(
                    locked.name, source_url,
                    "Locally modified, unmanaged (conflict policy: unmanage)",
                ))
            else:
                diff.conflicts.append(SyncConflict(
                    locked.name, source_url,
                    "Locally modified, skipped (conflict policy: skip)",
                ))
            continue

        diff.to_update.append(
            PlannedInstall(locked.name, source_url, list(item.subscription_ids), marker)
        )

    if policy.auto_remove:
        for name, locked in lock.skills.items():
            if locked.source_url not in discovered:
                diff.to_remove.append(PlannedRemoval(name, locked.source_url))

    return diff


def _matches_filters(listing: SkillListing, subscription: Subscription) -> bool:
    if subscription.authors:
        author = (listing.author or "").lower()
        if not any(author == a.lower() for a in subscription.authors):
            return False
    if subscription.tags:
        listing_tags = {t.lower() for t in listing.tags}
        if not any(t.lower() in listing_tags for t in subscription.tags):
            return False
    return True


def _format_eta(seconds: float) -> str:
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    return f"{hours}h {minutes}m"


# ============================================
# Engine
# ============================================

class SyncEngine:
    """Subscription-driven reconciliation for one scope

    Example:
        >>> engine = SyncEngine(paths, registry, installer, marketplace)
        >>> report = engine.sync(dry_run=True)
        >>> print(report.installed, report.errors)
    """

    def __init__(
        self,
        paths: ResolvedPaths,
        registry: SkillRegistry,
        installer: SkillInstaller,
        marketplace: MarketplaceClient,
        config_store: Optional[SyncConfigStore] = None,
        lock_store: Optional[SyncLockStore] = None,
        api_delay_seconds: float = SYNC_API_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.paths = paths
        self.registry = registry
        self.installer = installer
        self.marketplace = marketplace
        self.config_store = config_store or SyncConfigStore(paths.config_path)
        self.lock_store = lock_store or SyncLockStore(paths.lock_path)
        self.api_delay_seconds = api_delay_seconds
        self._sleep = sleep

        self._sync_lock = threading.Lock()
        self._syncing = False

        self._timer_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._interval_seconds: Optional[float] = None
        self._next_run_at: Optional[float] = None

    @property
    def syncing(self) -> bool:
        return self._syncing

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def sync(self, dry_run: bool = False) -> SyncReport:
        """
        Run one reconciliation pass.

        Phases: discovery, diff, conflicts, installs, updates, removals,
        then (unless dry_run) an atomic lock write with sync_count + 1.

        Args:
            dry_run: Narrate intended actions without touching disk or the lock

        Returns:
            SyncReport (never raises)
        """
        if not self._sync_lock.acquire(blocking=False):
            busy = SyncInProgressError("Sync already in progress")
            logger.warning(f"[{self.paths.scope.value}] {busy}")
            now = utc_now_iso()
            return SyncReport(
                started_at=now,
                finished_at=now,
                total_discovered=0,
                actions=[SyncAction(ACTION_ERROR, "", "", str(busy))],
                dry_run=dry_run,
            )

        self._syncing = True
        started_at = utc_now_iso()
        actions: List[SyncAction] = []
        discovered: Dict[str, DiscoveredSkill] = {}
        try:
            policy = self.config_store.read()
            active = policy.active_subscriptions
            if not policy.enabled or not active:
                logger.info("Sync skipped: disabled or no active subscriptions")
                return SyncReport(started_at, utc_now_iso(), 0, [], dry_run)

            discovered = self._discover(active, actions)

            lock = self.lock_store.read()
            diff = compute_sync_diff(discovered, lock, policy, self.registry.content_hashes())

            self._apply_conflicts(diff, policy, lock, actions, dry_run)
            self._apply_installs(diff, policy, lock, actions, dry_run)
            self._apply_updates(diff, policy, lock, actions, dry_run)
            self._apply_removals(diff, lock, actions, dry_run)

            if not dry_run:
                lock.last_sync_run = utc_now_iso()
                lock.sync_count += 1
                self.lock_store.write(lock)

            report = SyncReport(started_at, utc_now_iso(), len(discovered), actions, dry_run)
            logger.info(
                f"Sync finished{' (dry run)' if dry_run else ''}: {report.installed} installed, "
                f"{report.updated} updated, {report.removed} removed, {report.skipped} skipped, "
                f"{report.errors} errors"
            )
            return report

        except Exception as e:
            logger.error(f"Sync failed: {e}", exc_info=True)
            actions.append(SyncAction(ACTION_ERROR, "", "", f"Sync failed: {e}"))
            return SyncReport(started_at, utc_now_iso(), len(discovered), actions, dry_run)

        finally:
            self._syncing = False
            self._sync_lock.release()

    def _discover(
        self,
        subscriptions: List[Subscription],
        actions: List[SyncAction],
    ) -> Dict[str, DiscoveredSkill]:
        discovered: Dict[str, DiscoveredSkill] = {}

        for index, subscription in enumerate(subscriptions):
            try:
                response = self.marketplace.search(
                    subscription.query,
                    limit=subscription.effective_limit,
                    sort_by=subscription.effective_sort,
                )
            except SkillSyncError as e:
                actions.append(SyncAction(
                    ACTION_ERROR, "", "", f'Subscription "{subscription.query}" failed: {e}'
                ))
            else:
                for listing in response.skills:
                    if not listing.github_url or not _matches_filters(listing, subscription):
                        continue
                    existing = discovered.get(listing.github_url)
                    if existing is not None:
                        if subscription.id not in existing.subscription_ids:
                            existing.subscription_ids.append(subscription.id)
                    else:
                        discovered[listing.github_url] = DiscoveredSkill(
                            listing=listing,
                            subscription_ids=[subscription.id],
                            inferred_name=infer_name_from_url(listing.github_url),
                        )

            if index < len(subscriptions) - 1:
                self._sleep(self.api_delay_seconds)

        logger.info(f"Discovered {len(discovered)} skills from {len(subscriptions)} subscriptions")
        return discovered

    def _apply_conflicts(self, diff, policy, lock, actions, dry_run) -> None:
        for conflict in diff.conflicts:
            if policy.conflict_policy == "unmanage":
                actions.append(SyncAction(ACTION_UNMANAGE, conflict.name, conflict.source_url, conflict.reason))
                if not dry_run:
                    lock.skills.pop(conflict.name, None)
            else:
                actions.append(SyncAction(ACTION_SKIP_CONFLICT, conflict.name, conflict.source_url, conflict.reason))

    def _roll_back(self, name: str, lock: SyncLockFile) -> None:
        try:
            self.installer.uninstall(name)
        except SkillNotFoundError:
            pass
        except (SkillSyncError, OSError) as e:
            logger.warning(f"Could not roll back risky install of '{name}': {e}")
        self.registry.remove_skill(name)
        lock.skills.pop(name, None)

    def _rescan(self, name: str) -> None:
        try:
            self.registry.scan_skill(name)
        except (SkillSyncError, OSError) as e:
            logger.warning(f"Rescan of '{name}' after sync failed: {e}")

    def _record_lock(self, lock: SyncLockFile, item: PlannedInstall, result: InstallResult) -> None:
        now = utc_now_iso()
        previous = lock.skills.get(result.name)
        lock.skills[result.name] = LockedSkill(
            name=result.name,
            source_url=item.source_url,
            installed_hash=result.content_hash,
            upstream_hash=result.content_hash,
            subscription_ids=list(item.subscription_ids),
            last_synced=now,
            installed_at=previous.installed_at if previous else now,
            risk_level=result.risk_level,
            files_count=result.files_count,
            has_manifest=result.has_manifest,
            upstream_updated_at=item.upstream_marker,
        )

    def _install_one(self, item: PlannedInstall, policy: SyncPolicy, lock: SyncLockFile, update: bool) -> SyncAction:
        result = self.installer.install(item.source_url, name=item.name, force=update)

        if risk_exceeds(result.risk_level, policy.max_risk_level):
            self._roll_back(result.name, lock)
            prefix = "Updated version risk" if update else "Risk level"
            return SyncAction(
                ACTION_SKIP_RISK, result.name, item.source_url,
                f"{prefix} {result.risk_level} exceeds max {policy.max_risk_level}",
                risk_level=result.risk_level,
            )

        self._rescan(result.name)
        self._record_lock(lock, item, result)
        verb = "Updated" if update else "Installed"
        return SyncAction(
            ACTION_UPDATE if update else ACTION_INSTALL, result.name, item.source_url,
            f"{verb} ({result.files_count} files, {result.risk_level} risk)",
            risk_level=result.risk_level,
        )

    def _apply_installs(self, diff, policy, lock, actions, dry_run) -> None:
        for item in diff.to_install:
            if dry_run:
                actions.append(SyncAction(ACTION_INSTALL, item.name, item.source_url, "New skill from subscription"))
                continue
            try:
                actions.append(self._install_one(item, policy, lock, update=False))
            except Exception as e:
                logger.exception(f"Failed to install {item.source_url}: {e}")
                actions.append(SyncAction(ACTION_ERROR, item.name, item.source_url, f"Install failed: {e}"))

    def _apply_updates(self, diff, policy, lock, actions, dry_run) -> None:
        for item in diff.to_update:
            if dry_run:
                actions.append(SyncAction(ACTION_UPDATE, item.name, item.source_url, "Upstream changed"))
                continue
            try:
                actions.append(self._install_one(item, policy, lock, update=True))
            except Exception as e:
                logger.exception(f"Failed to update {item.name}: {e}")
                actions.append(SyncAction(ACTION_ERROR, item.name, item.source_url, f"Update failed: {e}"))

    def _apply_removals(self, diff, lock, actions, dry_run) -> None:
        for item in diff.to_remove:
            if dry_run:
                actions.append(SyncAction(
                    ACTION_REMOVE, item.name, item.source_url, "No longer matched by any subscription"
                ))
                continue
            try:
                self.installer.uninstall(item.name)
            except Exception as e:
                logger.exception(f"Failed to remove {item.name}: {e}")
                actions.append(SyncAction(ACTION_ERROR, item.name, item.source_url, f"Remove failed: {e}"))
                continue

            self.registry.remove_skill(item.name)
            lock.skills.pop(item.name, None)
            actions.append(SyncAction(
                ACTION_REMOVE, item.name, item.source_url, "Removed, no longer matched by any subscription"
            ))

    # ------------------------------------------------------------------
    # Periodic sync
    # ------------------------------------------------------------------

    def start_periodic_sync(self) -> bool:
        """
        Start the background timer from the current policy.

        Each timer thread owns its stop event; a thread still finishing a
        sync after stop_periodic_sync() exits once that sync returns.

        Returns:
            False when the policy disables sync or the interval is 0
        """
        policy = self.config_store.read()
        if not policy.enabled or policy.sync_interval_hours <= 0:
            logger.info("Periodic sync disabled (interval=0 or disabled)")
            return False

        self.stop_periodic_sync()
        interval = policy.sync_interval_hours * 3600
        stop_event = threading.Event()
        self._interval_seconds = interval
        self._next_run_at = time.monotonic() + interval
        self._stop_event = stop_event
        self._timer_thread = threading.Thread(
            target=self._periodic_loop,
            args=(stop_event, interval),
            name=f"skillsync-periodic-{self.paths.scope.value}",
            daemon=True,
        )
        self._timer_thread.start()
        logger.info(f"Starting periodic sync every {policy.sync_interval_hours}h")
        return True

    def stop_periodic_sync(self) -> None:
        thread = self._timer_thread
        if thread is None:
            return
        self._stop_event.set()
        if thread is not threading.current_thread():
            thread.join(timeout=PERIODIC_JOIN_TIMEOUT_SECONDS)
            if thread.is_alive():
                logger.warning("Periodic sync thread still finishing a sync; it will exit afterwards")
        self._timer_thread = None
        self._next_run_at = None

    def restart_periodic_sync(self) -> bool:
        """Apply a changed interval: stop the timer and start it again."""
        self.stop_periodic_sync()
        return self.start_periodic_sync()

    @property
    def periodic_running(self) -> bool:
        return self._timer_thread is not None and self._timer_thread.is_alive()

    def _periodic_loop(self, stop_event: threading.Event, interval: float) -> None:
        while not stop_event.wait(interval):
            logger.info("Running periodic sync...")
            report = self.sync()
            logger.info(
                f"Periodic sync done: {report.installed} installed, {report.updated} updated, "
                f"{report.removed} removed, {report.errors} errors"
            )
            if not stop_event.is_set():
                self._next_run_at = time.monotonic() + interval

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> SyncStatus:
        policy = self.config_store.read()
        lock = self.lock_store.read()

        next_sync_in = None
        if self.periodic_running and self._next_run_at is not None:
            remaining = self._next_run_at - time.monotonic()
            if remaining > 0:
                next_sync_in = _format_eta(remaining)

        return SyncStatus(
            enabled=policy.enabled,
            syncing=self._syncing,
            last_sync_run=lock.last_sync_run,
            sync_count=lock.sync_count,
            managed_skills=len(lock.skills),
            subscriptions=len(policy.active_subscriptions),
            next_sync_in=next_sync_in,
            interval_hours=policy.sync_interval_hours,
        )

    def shutdown(self) -> None:
        self.stop_periodic_sync()
