from __future__ import annotations

from pathlib import Path

import pytest

from skillsync.core.exceptions import InvalidSkillNameError, PathTraversalError
from skillsync.core.storage.paths import (
    SkillScope,
    ensure_within,
    is_valid_skill_name,
    resolve_paths,
    safe_skill_path,
    validate_skill_name,
)


def test_resolve_global_paths(tmp_path: Path) -> None:
    paths = resolve_paths("global", home=tmp_path / ".claude")
    assert paths.scope is SkillScope.GLOBAL
    assert paths.skills_dir == tmp_path / ".claude" / "skills"
    assert paths.config_path == tmp_path / ".claude" / "skillsync.json"
    assert paths.lock_path == tmp_path / ".claude" / "skillsync.lock"


def test_resolve_project_paths_use_cwd(tmp_path: Path) -> None:
    paths = resolve_paths(SkillScope.PROJECT, cwd=tmp_path, home=tmp_path / "ignored")
    assert paths.skills_dir == tmp_path / ".claude" / "skills"
    assert paths.label.startswith("project (")


def test_resolve_rejects_unknown_scope(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        resolve_paths("everywhere", home=tmp_path)


@pytest.mark.parametrize("name", ["my-skill", "a", "Skill_2", "x" * 64])
def test_valid_names(name: str) -> None:
    assert is_valid_skill_name(name)
    assert validate_skill_name(name) == name


@pytest.mark.parametrize("name", ["", "-lead", "_lead", "has space", "dot.name", "x" * 65, "a/b"])
def test_invalid_names(name: str) -> None:
    assert not is_valid_skill_name(name)
    with pytest.raises(InvalidSkillNameError):
        validate_skill_name(name)


def test_safe_skill_path_inside_root(tmp_path: Path) -> None:
    assert safe_skill_path(tmp_path, "my-skill") == (tmp_path / "my-skill").resolve()


@pytest.mark.parametrize("name", ["../etc/passwd", "../x", "../../x", "..", "."])
def test_safe_skill_path_rejects_traversal(tmp_path: Path, name: str) -> None:
    with pytest.raises(PathTraversalError):
        safe_skill_path(tmp_path / "skills", name)


def test_safe_skill_path_rejects_bad_pattern(tmp_path: Path) -> None:
    with pytest.raises(InvalidSkillNameError):
        safe_skill_path(tmp_path, "bad name")
    with pytest.raises(InvalidSkillNameError):
        safe_skill_path(tmp_path, "")


def test_ensure_within_nested(tmp_path: Path) -> None:
    assert ensure_within(tmp_path, tmp_path / "a" / "b.txt") == (tmp_path / "a" / "b.txt").resolve()
    with pytest.raises(PathTraversalError):
        ensure_within(tmp_path / "a", tmp_path / "b")
