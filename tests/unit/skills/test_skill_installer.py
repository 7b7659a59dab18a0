from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Dict, List
from unittest.mock import MagicMock

import pytest

from skillsync.core.exceptions import (
    AlreadyInstalledError,
    CriticalRiskBlockedError,
    InvalidSourceUrlError,
    PathTraversalError,
    RiskRejectedError,
    SkillNotADirectoryError,
    SkillNotFoundError,
)
from skillsync.core.scanner.content_scanner import compute_package_hash
from skillsync.core.storage.paths import SkillScope, resolve_paths
from skillsync.skills.importer.github_importer import (
    FetchedPackage,
    FetchScanResult,
    scan_fetched_package,
    validate_source_url,
)
from skillsync.skills.installer import SkillInstaller
from skillsync.skills.registry import SkillRegistry

SOURCE = "https://github.com/acme/skills/tree/main/skills/formatter"

CLEAN_FILES = {
    "SKILL.md": "---\ndescription: Formats tables\n---\n# Formatter\n",
    "format.py": "def fmt(rows):\n    return rows\n",
}


class FakeFetcher:
    """Serves a fixed file set for every URL and records the calls"""

    def __init__(self, files: Dict[str, str], unscanned_dirs: List[str] = None):
        self.files = files
        self.unscanned_dirs = unscanned_dirs or []
        self.calls: List[str] = []

    def fetch_and_scan(self, url: str) -> FetchScanResult:
        self.calls.append(url)
        package = FetchedPackage(
            source=validate_source_url(url),
            files=dict(self.files),
            unscanned_dirs=list(self.unscanned_dirs),
        )
        return scan_fetched_package(package)


def _installer(tmp_path: Path, files: Dict[str, str], **kwargs) -> SkillInstaller:
    return SkillInstaller(
        tmp_path / "skills",
        fetcher=FakeFetcher(files, **kwargs),
        dependency_installer=MagicMock(),
    )


def test_install_writes_scanned_files(tmp_path: Path) -> None:
    installer = _installer(tmp_path, CLEAN_FILES)

    result = installer.install(SOURCE)

    assert result.success is True
    assert result.name == "formatter"
    assert result.install_path == (tmp_path / "skills" / "formatter").resolve()
    assert result.files_count == 2
    assert result.risk_level == "safe"
    assert result.has_manifest is True
    assert result.content_hash == compute_package_hash(CLEAN_FILES)
    assert result.scan_summary.startswith("SAFE: ")
    assert result.warnings == []
    assert (result.install_path / "format.py").read_text(encoding="utf-8") == CLEAN_FILES["format.py"]
    installer.dependency_installer.assert_not_called()


def test_install_uses_explicit_name(tmp_path: Path) -> None:
    result = _installer(tmp_path, CLEAN_FILES).install(SOURCE, name="tables")
    assert result.install_path.name == "tables"


@pytest.mark.parametrize("force", [False, True])
def test_critical_content_is_blocked_and_nothing_written(tmp_path: Path, force: bool) -> None:
    installer = _installer(tmp_path, {"SKILL.md": "# x\n", "run.sh": "rm -rf /\n"})

    with pytest.raises(CriticalRiskBlockedError) as exc_info:
        installer.install(SOURCE, force=force)

    assert exc_info.value.scan_result.risk_level == "critical"
    skills_dir = tmp_path / "skills"
    assert not (skills_dir / "formatter").exists()
    assert not skills_dir.exists() or list(skills_dir.iterdir()) == []


def test_medium_risk_requires_force(tmp_path: Path) -> None:
    risky = {"SKILL.md": "# x\n", "a.js": "eval(a)\natob(b)\nchild_process\n"}
    installer = _installer(tmp_path, risky)

    with pytest.raises(RiskRejectedError):
        installer.install(SOURCE)
    assert not (tmp_path / "skills" / "formatter").exists()

    result = installer.install(SOURCE, force=True)
    assert result.risk_level == "medium"


def test_low_risk_installs_with_warning(tmp_path: Path) -> None:
    result = _installer(tmp_path, {"SKILL.md": "# x\n", "a.js": "eval(a)\n"}).install(SOURCE)
    assert result.risk_level == "low"
    assert result.warnings[0].startswith("Security scan: LOW risk.")


def test_existing_install_requires_force(tmp_path: Path) -> None:
    installer = _installer(tmp_path, CLEAN_FILES)
    installer.install(SOURCE)

    with pytest.raises(AlreadyInstalledError):
        installer.install(SOURCE)
    assert installer.fetcher.calls == [SOURCE]


def test_force_replaces_previous_files(tmp_path: Path) -> None:
    installer = _installer(tmp_path, CLEAN_FILES)
    first = installer.install(SOURCE)
    (first.install_path / "stale.txt").write_text("old", encoding="utf-8")

    installer.fetcher.files = {"SKILL.md": "# v2\n"}
    second = installer.install(SOURCE, force=True)

    assert sorted(p.name for p in second.install_path.iterdir()) == ["SKILL.md"]
    assert second.content_hash == compute_package_hash({"SKILL.md": "# v2\n"})


def test_missing_manifest_and_unscanned_dirs_warn(tmp_path: Path) -> None:
    installer = _installer(tmp_path, {"a.py": "x = 1\n"}, unscanned_dirs=["lib"])
    result = installer.install(SOURCE, force=True)

    assert result.has_manifest is False
    assert any("lib" in w for w in result.warnings)
    assert any("No SKILL.md found" in w for w in result.warnings)


def test_invalid_url_is_rejected_before_fetch(tmp_path: Path) -> None:
    installer = _installer(tmp_path, CLEAN_FILES)
    with pytest.raises(InvalidSourceUrlError):
        installer.install("https://example.com/acme/skills/tree/main/x")
    assert installer.fetcher.calls == []


@pytest.mark.parametrize("name", ["../etc/passwd", "../../x"])
def test_traversal_names_are_rejected(tmp_path: Path, name: str) -> None:
    installer = _installer(tmp_path, CLEAN_FILES)
    with pytest.raises(PathTraversalError):
        installer.install(SOURCE, name=name)
    with pytest.raises(PathTraversalError):
        installer.uninstall(name)
    assert installer.fetcher.calls == []


def test_package_json_triggers_dependency_install(tmp_path: Path) -> None:
    files = dict(CLEAN_FILES, **{"package.json": '{"name": "formatter"}\n'})
    installer = _installer(tmp_path, files)

    result = installer.install(SOURCE)

    assert result.deps_installed is True
    installer.dependency_installer.assert_called_once_with(result.install_path)


def test_dependency_install_failure_is_a_warning(tmp_path: Path) -> None:
    files = dict(CLEAN_FILES, **{"package.json": "{}\n"})
    installer = _installer(tmp_path, files)
    installer.dependency_installer.side_effect = subprocess.CalledProcessError(1, ["npm", "install"])

    result = installer.install(SOURCE)

    assert result.success is True
    assert result.deps_installed is False
    assert any(w.startswith("npm install failed") for w in result.warnings)


def test_lock_file_from_dependency_install_keeps_rescan_hash(tmp_path: Path) -> None:
    files = dict(CLEAN_FILES, **{"package.json": "{}\n"})
    installer = _installer(tmp_path, files)
    installer.dependency_installer.side_effect = (
        lambda path: (path / "package-lock.json").write_text('{"lockfileVersion": 3}\n', encoding="utf-8")
    )

    result = installer.install(SOURCE)

    assert (result.install_path / "package-lock.json").exists()
    registry = SkillRegistry(resolve_paths(SkillScope.GLOBAL, home=tmp_path), watch=False)
    assert registry.scan_skill("formatter").content_hash == result.content_hash


def test_uninstall(tmp_path: Path) -> None:
    installer = _installer(tmp_path, CLEAN_FILES)
    installed = installer.install(SOURCE)

    result = installer.uninstall("formatter")

    assert result.success is True
    assert result.removed_path == installed.install_path
    assert not installed.install_path.exists()
    with pytest.raises(SkillNotFoundError):
        installer.uninstall("formatter")


def test_uninstall_missing_and_file(tmp_path: Path) -> None:
    installer = _installer(tmp_path, CLEAN_FILES)
    with pytest.raises(SkillNotFoundError):
        installer.uninstall("ghost")

    (tmp_path / "skills").mkdir()
    (tmp_path / "skills" / "plain").write_text("x", encoding="utf-8")
    with pytest.raises(SkillNotADirectoryError):
        installer.uninstall("plain")
