"""Installer for skill packages fetched from GitHub"""

import logging
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from skillsync.core.exceptions import (
    AlreadyInstalledError,
    CriticalRiskBlockedError,
    PathTraversalError,
    RiskRejectedError,
    SkillNotADirectoryError,
    SkillNotFoundError,
)
from skillsync.core.scanner.content_scanner import (
    RISK_CRITICAL,
    RISK_HIGH,
    RISK_LOW,
    RISK_MEDIUM,
    compute_package_hash,
)
from skillsync.core.scanner.limits import DEPENDENCY_MANIFEST, MANIFEST_FILENAME
from skillsync.core.storage.paths import ensure_within, safe_skill_path
from skillsync.skills.importer.github_importer import (
    FetchScanResult,
    GitHubFetcher,
    validate_source_url,
)

logger = logging.getLogger(__name__)

DEPENDENCY_INSTALL_TIMEOUT = 60


@dataclass
class InstallResult:
    """Outcome of a successful install"""

    success: bool
    name: str
    install_path: Path
    files_count: int
    content_hash: str
    scan_summary: str
    risk_level: str
    has_manifest: bool
    deps_installed: bool
    warnings: List[str] = field(default_factory=list)


@dataclass
class UninstallResult:
    success: bool
    removed_path: Path
    message: str


def run_npm_install(package_dir: Path) -> None:
    """Install declared npm dependencies without running lifecycle scripts."""
    subprocess.run(
        ["npm", "install", "--ignore-scripts"],
        cwd=str(package_dir),
        timeout=DEPENDENCY_INSTALL_TIMEOUT,
        check=True,
        capture_output=True,
    )


def _describe_threats(scan: FetchScanResult, critical_only: bool = False) -> str:
    lines = []
    for threat in scan.threats:
        if critical_only and threat.severity != "critical":
            continue
        lines.append(f"  - [{threat.severity}/{threat.category}] {threat.description}")
    return "\n".join(lines)


class SkillInstaller:
    """Install and uninstall skill packages under one skills directory"""

    def __init__(
        self,
        skills_dir: Path,
        fetcher: Optional[GitHubFetcher] = None,
        dependency_installer: Optional[Callable[[Path], None]] = None,
    ):
        """
        Initialize installer

        Args:
            skills_dir: Root directory that holds one subdirectory per package
            fetcher: Remote fetcher (default: GitHubFetcher())
            dependency_installer: Callable run in the package directory when
                it ships a package.json (default: npm install --ignore-scripts)
        """
        self.skills_dir = Path(skills_dir)
        self.fetcher = fetcher or GitHubFetcher()
        self.dependency_installer = dependency_installer or run_npm_install

    def install(
        self,
        source_url: str,
        name: Optional[str] = None,
        force: bool = False,
    ) -> InstallResult:
        """
        Fetch, scan and install a package.

        Process:
        1. Validate the source URL (before any network access)
        2. Resolve and validate the package name and its directory
        3. Refuse an existing package unless force
        4. Fetch and scan; critical is always refused, medium/high need force
        5. Replace the package directory with exactly the scanned files
        6. Install npm dependencies when package.json is present (best effort)

        Args:
            source_url: GitHub tree URL
            name: Package name (default: last path segment of the URL)
            force: Overwrite an existing package and accept medium/high risk

        Returns:
            InstallResult

        Raises:
            InvalidSourceUrlError, InvalidSkillNameError, PathTraversalError,
            AlreadyInstalledError, CriticalRiskBlockedError, RiskRejectedError,
            NetworkError
        """
        source = validate_source_url(source_url)
        skill_name = name or source.name
        install_path = safe_skill_path(self.skills_dir, skill_name)

        exists = install_path.exists()
        if exists and not force:
            raise AlreadyInstalledError(
                f'Skill "{skill_name}" already installed at {install_path}. Use force to overwrite.'
            )

        scan = self.fetcher.fetch_and_scan(source_url)
        self._enforce_risk_policy(scan, force)

        warnings: List[str] = []
        if scan.risk_level == RISK_LOW:
            warnings.append(f"Security scan: LOW risk. {scan.recommendation}")
        if scan.unscanned_dirs:
            warnings.append(
                f"Subdirectories not installed: {', '.join(scan.unscanned_dirs)}"
            )

        written = self._write_package(install_path, scan.files, warnings)

        has_manifest = any(n.lower() == MANIFEST_FILENAME.lower() for n in written)
        if not has_manifest:
            warnings.append(f"No {MANIFEST_FILENAME} found. This skill may not be recognized.")

        deps_installed = False
        if DEPENDENCY_MANIFEST in written:
            try:
                self.dependency_installer(install_path)
                deps_installed = True
            except (OSError, subprocess.SubprocessError) as e:
                logger.warning(f"Dependency install failed for {skill_name}: {e}")
                warnings.append(
                    f"npm install failed: {e}. You may need to run it manually."
                )

        logger.info(
            f"Installed skill '{skill_name}' ({len(written)} files, risk={scan.risk_level}) "
            f"to {install_path}"
        )

        return InstallResult(
            success=True,
            name=skill_name,
            install_path=install_path,
            files_count=len(written),
            content_hash=compute_package_hash(written),
            scan_summary=scan.summary,
            risk_level=scan.risk_level,
            has_manifest=has_manifest,
            deps_installed=deps_installed,
            warnings=warnings,
        )

    @staticmethod
    def _enforce_risk_policy(scan: FetchScanResult, force: bool) -> None:
        if scan.risk_level == RISK_CRITICAL:
            raise CriticalRiskBlockedError(
                "BLOCKED: Critical security threats detected. Cannot install.\n\n"
                f"{scan.recommendation}\n\nCritical threats:\n"
                f"{_describe_threats(scan, critical_only=True)}",
                scan_result=scan,
            )
        if scan.risk_level in (RISK_HIGH, RISK_MEDIUM) and not force:
            raise RiskRejectedError(
                f"Security scan flagged {scan.risk_level.upper()} risk. Use force to install anyway.\n\n"
                f"{scan.recommendation}\n\nThreats:\n{_describe_threats(scan)}",
                scan_result=scan,
            )

    def _write_package(
        self,
        install_path: Path,
        files: Dict[str, str],
        warnings: List[str],
    ) -> Dict[str, str]:
        """
        Write files into a staging directory, then swap it into place.

        Returns:
            The files actually written, keyed by name
        """
        self.skills_dir.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f".{install_path.name}-", dir=str(self.skills_dir)))
        written: Dict[str, str] = {}

        try:
            for file_name, content in files.items():
                try:
                    target = ensure_within(staging, staging / file_name)
                except PathTraversalError:
                    warnings.append(f'Skipped "{file_name}": path traversal in filename')
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with open(target, "w", encoding="utf-8", newline="") as f:
                    f.write(content)
                written[file_name] = content

            if install_path.exists():
                shutil.rmtree(install_path)
            staging.rename(install_path)
        except Exception:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        return written

    def uninstall(self, name: str) -> UninstallResult:
        """
        Remove an installed package directory.

        Raises:
            InvalidSkillNameError: name fails validation
            PathTraversalError: name resolves outside the skills directory
            SkillNotFoundError: nothing installed under that name
            SkillNotADirectoryError: the path exists but is a plain file
        """
        install_path = safe_skill_path(self.skills_dir, name)
        if not install_path.exists():
            raise SkillNotFoundError(f'Skill "{name}" not found at {install_path}')
        if not install_path.is_dir():
            raise SkillNotADirectoryError(f'"{install_path}" is not a directory')

        shutil.rmtree(install_path)
        logger.info(f"Uninstalled skill '{name}' from {install_path}")
        return UninstallResult(
            success=True,
            removed_path=install_path,
            message=f'Skill "{name}" uninstalled successfully.',
        )
