# skillsync/core/storage/paths.py
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from skillsync.core.exceptions import InvalidSkillNameError, PathTraversalError

# Package names double as directory names under the skills root
VALID_SKILL_NAME = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_-]{0,63}$")

SKILLS_DIRNAME = "skills"
CONFIG_FILENAME = "skillsync.json"
LOCK_FILENAME = "skillsync.lock"


class SkillScope(str, Enum):
    """Where packages live: per user or per project"""

    GLOBAL = "global"
    PROJECT = "project"


@dataclass(frozen=True)
class ResolvedPaths:
    """Filesystem locations owned by one scope"""

    scope: SkillScope
    skills_dir: Path
    config_path: Path
    lock_path: Path

    @property
    def label(self) -> str:
        """Human readable scope name for log lines and listings"""
        return f"{self.scope.value} ({self.skills_dir})"


def default_home() -> Path:
    """Base directory of the global scope (~/.claude)"""
    return Path.home() / ".claude"


def resolve_paths(
    scope: SkillScope | str = SkillScope.GLOBAL,
    cwd: Optional[Path] = None,
    home: Optional[Path] = None,
) -> ResolvedPaths:
    """
    Resolve the packages root, config file and lock file for a scope.

    Args:
        scope: "global" (home based) or "project" (cwd based)
        cwd: Project root for the project scope (default: Path.cwd())
        home: Base directory for the global scope (default: ~/.claude)

    Returns:
        ResolvedPaths for the scope
    """
    scope = SkillScope(scope)
    if scope is SkillScope.PROJECT:
        base = (cwd or Path.cwd()) / ".claude"
    else:
        base = home or default_home()

    return ResolvedPaths(
        scope=scope,
        skills_dir=base / SKILLS_DIRNAME,
        config_path=base / CONFIG_FILENAME,
        lock_path=base / LOCK_FILENAME,
    )


def is_valid_skill_name(name: str) -> bool:
    return bool(name) and VALID_SKILL_NAME.match(name) is not None


def validate_skill_name(name: str) -> str:
    """Return name unchanged or raise InvalidSkillNameError"""
    if not isinstance(name, str) or not is_valid_skill_name(name):
        raise InvalidSkillNameError(
            f"Invalid skill name: {name!r}. Use 1-64 letters, digits, '-' or '_', "
            f"starting with a letter or digit."
        )
    return name


def safe_skill_path(skills_dir: Path, name: str) -> Path:
    """
    Compute the directory of a package, refusing anything outside skills_dir.

    The result must be a strict descendant of the root; the root itself
    is rejected as well. Containment is checked before the name pattern so
    "../x" style names report a traversal rather than a bad name.

    Raises:
        PathTraversalError: resolved path escapes skills_dir
        InvalidSkillNameError: name fails the pattern
    """
    if not isinstance(name, str) or not name:
        raise InvalidSkillNameError(f"Invalid skill name: {name!r}")
    resolved = ensure_within(skills_dir, skills_dir / name)
    validate_skill_name(name)
    return resolved


def ensure_within(root: Path, candidate: Path) -> Path:
    """Resolve candidate and require it to sit strictly below root."""
    root_resolved = root.resolve()
    candidate_resolved = candidate.resolve()
    try:
        relative = candidate_resolved.relative_to(root_resolved)
    except ValueError:
        raise PathTraversalError(f"Path traversal detected: {candidate}")
    if relative == Path("."):
        raise PathTraversalError(f"Path traversal detected: {candidate}")
    return candidate_resolved
