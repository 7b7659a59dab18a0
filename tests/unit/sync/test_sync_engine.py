from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from skillsync.core.exceptions import NetworkError
from skillsync.core.storage.paths import SkillScope, resolve_paths
from skillsync.marketplace.client import SearchResponse, SkillListing
from skillsync.skills.importer.github_importer import (
    FetchedPackage,
    FetchScanResult,
    scan_fetched_package,
    validate_source_url,
)
from skillsync.skills.installer import SkillInstaller
from skillsync.skills.registry import SkillRegistry
from skillsync.sync.engine import SyncEngine, SyncReport

BASE = "https://github.com/acme/skills/tree/main"


class FakeFetcher:
    """Serves a file set per source URL"""

    def __init__(self, packages: Dict[str, Dict[str, str]]):
        self.packages = packages

    def fetch_and_scan(self, url: str) -> FetchScanResult:
        package = FetchedPackage(source=validate_source_url(url), files=dict(self.packages[url]))
        return scan_fetched_package(package)


class FakeMarketplace:
    """Answers searches from a query -> listings table"""

    def __init__(self, results: Dict[str, List[SkillListing]]):
        self.results = results
        self.queries: List[str] = []
        self.on_search: Optional[Callable[[], None]] = None

    def search(self, query: str, limit: int = 20, sort_by: str = "recent") -> SearchResponse:
        self.queries.append(query)
        if self.on_search is not None:
            self.on_search()
        if query not in self.results:
            raise NetworkError("Marketplace request failed: boom")
        skills = self.results[query]
        return SearchResponse(skills=skills, total=len(skills), query=query)


def _listing(name: str, updated_at=100, author: str = "acme", tags: List[str] = None) -> SkillListing:
    return SkillListing(
        name=name,
        author=author,
        github_url=f"{BASE}/{name}",
        updated_at=updated_at,
        tags=tags or [],
    )


def _engine(tmp_path: Path, packages: Dict[str, Dict[str, str]], results: Dict[str, List[SkillListing]]) -> SyncEngine:
    paths = resolve_paths(SkillScope.GLOBAL, home=tmp_path)
    registry = SkillRegistry(paths, watch=False)
    installer = SkillInstaller(
        paths.skills_dir,
        fetcher=FakeFetcher({f"{BASE}/{k}": v for k, v in packages.items()}),
        dependency_installer=MagicMock(),
    )
    return SyncEngine(paths, registry, installer, FakeMarketplace(results), sleep=MagicMock())


def test_disabled_or_empty_policy_does_nothing(tmp_path: Path) -> None:
    engine = _engine(tmp_path, {}, {})
    report = engine.sync()
    assert report.actions == []
    assert not engine.paths.lock_path.exists()

    engine.config_store.add_subscription("docs")
    engine.config_store.merge(enabled=False)
    assert engine.sync().actions == []
    assert engine.marketplace.queries == []


def test_dry_run_writes_nothing(tmp_path: Path) -> None:
    engine = _engine(tmp_path, {"formatter": {"SKILL.md": "# f\n"}}, {"docs": [_listing("formatter")]})
    engine.config_store.add_subscription("docs")

    report = engine.sync(dry_run=True)

    assert report.dry_run is True
    assert report.total_discovered == 1
    assert [(a.type, a.skill_name, a.reason) for a in report.actions] == [
        ("install", "formatter", "New skill from subscription")
    ]
    assert not engine.paths.lock_path.exists()
    assert not (engine.paths.skills_dir / "formatter").exists()


def test_sync_installs_and_records_lock(tmp_path: Path) -> None:
    engine = _engine(tmp_path, {"formatter": {"SKILL.md": "# f\n"}}, {"docs": [_listing("formatter")]})
    _, sub = engine.config_store.add_subscription("docs")

    report = engine.sync()

    assert report.installed == 1
    assert report.actions[0].reason == "Installed (1 files, safe risk)"
    lock = engine.lock_store.read()
    entry = lock.skills["formatter"]
    assert entry.source_url == f"{BASE}/formatter"
    assert entry.subscription_ids == [sub.id]
    assert entry.upstream_updated_at == "100"
    assert entry.installed_hash == engine.registry.get_skill("formatter").content_hash
    assert lock.sync_count == 1
    assert lock.last_sync_run is not None

    again = engine.sync()
    assert again.actions == []
    assert engine.lock_store.read().sync_count == 2


def test_upstream_change_updates_and_keeps_installed_at(tmp_path: Path) -> None:
    engine = _engine(tmp_path, {"formatter": {"SKILL.md": "# f\n"}}, {"docs": [_listing("formatter")]})
    engine.config_store.add_subscription("docs")
    engine.sync()
    installed_at = engine.lock_store.read().skills["formatter"].installed_at

    engine.installer.fetcher.packages[f"{BASE}/formatter"] = {"SKILL.md": "# f v2\n"}
    engine.marketplace.results["docs"] = [_listing("formatter", updated_at=200)]
    report = engine.sync()

    assert [a.type for a in report.actions] == ["update"]
    entry = engine.lock_store.read().skills["formatter"]
    assert entry.upstream_updated_at == "200"
    assert entry.installed_at == installed_at
    assert (engine.paths.skills_dir / "formatter" / "SKILL.md").read_text(encoding="utf-8") == "# f v2\n"


def test_local_edit_is_skipped_under_skip_policy(tmp_path: Path) -> None:
    engine = _engine(tmp_path, {"formatter": {"SKILL.md": "# f\n"}}, {"docs": [_listing("formatter")]})
    engine.config_store.add_subscription("docs")
    engine.sync()

    (engine.paths.skills_dir / "formatter" / "SKILL.md").write_text("# mine\n", encoding="utf-8")
    engine.registry.scan_skill("formatter")
    engine.marketplace.results["docs"] = [_listing("formatter", updated_at=200)]
    report = engine.sync()

    assert [a.type for a in report.actions] == ["skip-conflict"]
    assert report.skipped == 1
    assert (engine.paths.skills_dir / "formatter" / "SKILL.md").read_text(encoding="utf-8") == "# mine\n"


def test_unmanage_policy_drops_lock_entry(tmp_path: Path) -> None:
    engine = _engine(tmp_path, {"formatter": {"SKILL.md": "# f\n"}}, {"docs": [_listing("formatter")]})
    engine.config_store.add_subscription("docs")
    engine.sync()

    (engine.paths.skills_dir / "formatter" / "SKILL.md").write_text("# mine\n", encoding="utf-8")
    engine.registry.scan_skill("formatter")
    engine.config_store.merge(conflict_policy="unmanage")
    engine.marketplace.results["docs"] = [_listing("formatter", updated_at=200)]
    report = engine.sync()

    assert [a.type for a in report.actions] == ["unmanage"]
    assert "formatter" not in engine.lock_store.read().skills
    assert (engine.paths.skills_dir / "formatter").is_dir()


def test_install_above_max_risk_is_rolled_back(tmp_path: Path) -> None:
    packages = {"warn": {"SKILL.md": "# w\n", "a.js": "eval(a)\n"}}
    engine = _engine(tmp_path, packages, {"docs": [_listing("warn")]})
    engine.config_store.add_subscription("docs")
    engine.config_store.merge(max_risk_level="safe")

    report = engine.sync()

    assert [(a.type, a.risk_level) for a in report.actions] == [("skip-risk", "low")]
    assert report.actions[0].reason == "Risk level low exceeds max safe"
    assert not (engine.paths.skills_dir / "warn").exists()
    assert engine.registry.get_skill("warn") is None
    assert engine.lock_store.read().skills == {}


def test_risky_update_is_rolled_back(tmp_path: Path) -> None:
    engine = _engine(tmp_path, {"formatter": {"SKILL.md": "# f\n"}}, {"docs": [_listing("formatter")]})
    engine.config_store.add_subscription("docs")
    engine.sync()

    engine.installer.fetcher.packages[f"{BASE}/formatter"] = {
        "SKILL.md": "# f\n",
        "a.js": "eval(a)\natob(b)\nchild_process\n",
    }
    engine.marketplace.results["docs"] = [_listing("formatter", updated_at=200)]
    report = engine.sync()

    assert [(a.type, a.risk_level) for a in report.actions] == [("skip-risk", "medium")]
    assert report.actions[0].reason == "Updated version risk medium exceeds max low"
    assert not (engine.paths.skills_dir / "formatter").exists()
    assert "formatter" not in engine.lock_store.read().skills


def test_blocked_packages_become_error_actions(tmp_path: Path) -> None:
    packages = {
        "bad": {"run.sh": "rm -rf /\n"},
        "risky": {"SKILL.md": "# r\n", "a.js": "eval(a)\natob(b)\nchild_process\n"},
    }
    engine = _engine(tmp_path, packages, {"docs": [_listing("bad"), _listing("risky")]})
    engine.config_store.add_subscription("docs")

    report = engine.sync()

    assert report.errors == 2
    assert all(a.reason.startswith("Install failed: ") for a in report.actions)
    assert not (engine.paths.skills_dir / "bad").exists()
    assert not (engine.paths.skills_dir / "risky").exists()
    assert engine.lock_store.read().sync_count == 1


def test_unexpected_install_failure_does_not_stop_the_run(tmp_path: Path) -> None:
    listings = [
        _listing("formatter"),
        SkillListing(name="bad", author="acme", github_url=f"{BASE}/ba\x00d"),
        _listing("ghost"),
        _listing("linter"),
    ]
    packages = {"formatter": {"SKILL.md": "# f\n"}, "linter": {"SKILL.md": "# l\n"}}
    engine = _engine(tmp_path, packages, {"docs": listings})
    engine.config_store.add_subscription("docs")

    report = engine.sync()

    assert report.installed == 2
    assert report.errors == 2
    assert not any(a.reason.startswith("Sync failed") for a in report.actions)
    ghost = next(a for a in report.actions if a.skill_name == "ghost")
    assert ghost.type == "error"
    assert ghost.reason.startswith("Install failed:")
    lock = engine.lock_store.read()
    assert sorted(lock.skills) == ["formatter", "linter"]
    assert lock.sync_count == 1


def test_failed_subscription_does_not_stop_others(tmp_path: Path) -> None:
    engine = _engine(tmp_path, {"formatter": {"SKILL.md": "# f\n"}}, {"docs": [_listing("formatter")]})
    engine.config_store.add_subscription("broken")
    engine.config_store.add_subscription("docs")

    report = engine.sync()

    assert [a.type for a in report.actions] == ["error", "install"]
    assert report.actions[0].reason == 'Subscription "broken" failed: Marketplace request failed: boom'
    engine._sleep.assert_called_once_with(engine.api_delay_seconds)


def test_filters_and_dedupe_across_subscriptions(tmp_path: Path) -> None:
    listings = [
        _listing("formatter", author="ACME", tags=["Docs"]),
        _listing("other", author="someone"),
        SkillListing(name="nourl"),
    ]
    engine = _engine(tmp_path, {}, {"a": listings, "b": [_listing("formatter")]})
    engine.config_store.add_subscription("a", authors=["acme"], tags=["docs"])
    engine.config_store.add_subscription("b")

    report = engine.sync(dry_run=True)

    assert report.total_discovered == 1
    assert [a.skill_name for a in report.actions] == ["formatter"]


def test_auto_remove_uninstalls_unmatched(tmp_path: Path) -> None:
    engine = _engine(tmp_path, {"formatter": {"SKILL.md": "# f\n"}}, {"docs": [_listing("formatter")]})
    engine.config_store.add_subscription("docs")
    engine.sync()

    engine.marketplace.results["docs"] = []
    engine.config_store.merge(auto_remove=True)
    report = engine.sync()

    assert [(a.type, a.skill_name) for a in report.actions] == [("remove", "formatter")]
    assert not (engine.paths.skills_dir / "formatter").exists()
    assert engine.lock_store.read().skills == {}


def test_concurrent_sync_is_rejected(tmp_path: Path) -> None:
    engine = _engine(tmp_path, {}, {"docs": []})
    engine.config_store.add_subscription("docs")
    nested = []
    engine.marketplace.on_search = lambda: nested.append(engine.sync())

    outer = engine.sync()

    assert outer.errors == 0
    assert len(nested) == 1
    assert nested[0].errors == 1
    assert nested[0].actions[0].reason == "Sync already in progress"
    assert engine.syncing is False


def test_status_and_periodic_timer(tmp_path: Path) -> None:
    engine = _engine(tmp_path, {}, {})
    engine.config_store.add_subscription("docs")

    assert engine.start_periodic_sync() is False
    status = engine.get_status()
    assert status.subscriptions == 1
    assert status.next_sync_in is None
    assert status.sync_count == 0

    engine.config_store.merge(sync_interval_hours=2)
    assert engine.start_periodic_sync() is True
    assert engine.periodic_running is True
    assert engine.get_status().next_sync_in.startswith("1h 59m")

    engine.shutdown()
    assert engine.periodic_running is False


def test_restart_with_zero_interval_stops_timer(tmp_path: Path) -> None:
    engine = _engine(tmp_path, {}, {})
    engine.config_store.merge(sync_interval_hours=1)
    assert engine.start_periodic_sync() is True

    engine.config_store.merge(sync_interval_hours=0)
    assert engine.restart_periodic_sync() is False
    assert engine.periodic_running is False


def test_restart_during_running_sync_leaves_one_timer(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("skillsync.sync.engine.PERIODIC_JOIN_TIMEOUT_SECONDS", 0.1)
    engine = _engine(tmp_path, {}, {})
    engine.config_store.merge(sync_interval_hours=0.00001)
    entered = threading.Event()
    gate = threading.Event()

    def slow_sync(dry_run: bool = False) -> SyncReport:
        entered.set()
        gate.wait(5)
        return SyncReport("", "", 0, [], dry_run)

    monkeypatch.setattr(engine, "sync", slow_sync)
    assert engine.start_periodic_sync() is True
    assert entered.wait(5)
    old_thread = engine._timer_thread

    assert engine.restart_periodic_sync() is True
    new_thread = engine._timer_thread
    assert new_thread is not old_thread
    assert old_thread.is_alive()

    gate.set()
    old_thread.join(5)
    assert not old_thread.is_alive()
    assert new_thread.is_alive()

    engine.shutdown()
    assert engine.periodic_running is False
