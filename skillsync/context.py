"""
Per-scope service wiring

Each scope (global, project) owns its own registry, installer, stores and
sync engine. They are built on first use and shared afterwards; the HTTP
clients are shared across scopes.
"""

import logging
from pathlib import Path
from typing import Dict, Optional

from skillsync.config import SkillSyncSettings, get_settings
from skillsync.core.storage.paths import ResolvedPaths, SkillScope, resolve_paths
from skillsync.marketplace.client import MarketplaceClient
from skillsync.skills.importer.github_importer import GitHubFetcher
from skillsync.skills.installer import SkillInstaller
from skillsync.skills.registry import SkillRegistry
from skillsync.sync.config import SyncConfigStore
from skillsync.sync.engine import SyncEngine
from skillsync.sync.lock import SyncLockStore

logger = logging.getLogger(__name__)


class SkillSyncContext:
    """Lazily constructed services, keyed by scope"""

    def __init__(
        self,
        settings: Optional[SkillSyncSettings] = None,
        cwd: Optional[Path] = None,
        fetcher: Optional[GitHubFetcher] = None,
        marketplace: Optional[MarketplaceClient] = None,
        watch: bool = True,
    ):
        self.settings = settings or get_settings()
        self.cwd = cwd
        self.watch = watch
        self._fetcher = fetcher
        self._marketplace = marketplace

        self._paths: Dict[SkillScope, ResolvedPaths] = {}
        self._registries: Dict[SkillScope, SkillRegistry] = {}
        self._installers: Dict[SkillScope, SkillInstaller] = {}
        self._engines: Dict[SkillScope, SyncEngine] = {}

    @property
    def fetcher(self) -> GitHubFetcher:
        if self._fetcher is None:
            self._fetcher = GitHubFetcher(
                timeout=self.settings.timeout,
                token=self.settings.github_token,
            )
        return self._fetcher

    @property
    def marketplace(self) -> MarketplaceClient:
        if self._marketplace is None:
            self._marketplace = MarketplaceClient(
                base_url=self.settings.marketplace_url,
                api_key=self.settings.api_key,
                timeout=self.settings.timeout,
            )
        return self._marketplace

    def paths(self, scope: SkillScope) -> ResolvedPaths:
        scope = SkillScope(scope)
        if scope not in self._paths:
            self._paths[scope] = resolve_paths(scope, cwd=self.cwd, home=self.settings.home)
        return self._paths[scope]

    def registry(self, scope: SkillScope) -> SkillRegistry:
        scope = SkillScope(scope)
        if scope not in self._registries:
            self._registries[scope] = SkillRegistry(self.paths(scope), watch=self.watch)
        return self._registries[scope]

    def ensure_initialized(self, scope: SkillScope) -> SkillRegistry:
        registry = self.registry(scope)
        if not registry.initialized:
            registry.initialize()
        return registry

    def installer(self, scope: SkillScope) -> SkillInstaller:
        scope = SkillScope(scope)
        if scope not in self._installers:
            self._installers[scope] = SkillInstaller(self.paths(scope).skills_dir, fetcher=self.fetcher)
        return self._installers[scope]

    def config_store(self, scope: SkillScope) -> SyncConfigStore:
        return self.engine(scope).config_store

    def lock_store(self, scope: SkillScope) -> SyncLockStore:
        return self.engine(scope).lock_store

    def engine(self, scope: SkillScope) -> SyncEngine:
        scope = SkillScope(scope)
        if scope not in self._engines:
            self._engines[scope] = SyncEngine(
                paths=self.paths(scope),
                registry=self.ensure_initialized(scope),
                installer=self.installer(scope),
                marketplace=self.marketplace,
            )
        return self._engines[scope]

    def shutdown(self) -> None:
        """Stop periodic syncs and watchers in every scope, then forget them."""
        for engine in self._engines.values():
            engine.shutdown()
        for registry in self._registries.values():
            registry.shutdown()
        self._engines.clear()
        self._registries.clear()
        self._installers.clear()
        logger.debug("SkillSync context shut down")


_context: Optional[SkillSyncContext] = None


def get_context() -> SkillSyncContext:
    """Get the process-wide context, creating it on first use."""
    global _context
    if _context is None:
        _context = SkillSyncContext()
    return _context


def reset_context() -> None:
    """Shut down and drop the process-wide context (tests, CLI exit)."""
    global _context
    if _context is not None:
        _context.shutdown()
    _context = None
