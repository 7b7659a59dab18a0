"""Scope resolution, path safety and atomic persistence"""

from skillsync.core.storage.atomic import atomic_write_json
from skillsync.core.storage.paths import (
    SkillScope,
    ResolvedPaths,
    resolve_paths,
    validate_skill_name,
    safe_skill_path,
    is_valid_skill_name,
)

__all__ = [
    "atomic_write_json",
    "SkillScope",
    "ResolvedPaths",
    "resolve_paths",
    "validate_skill_name",
    "safe_skill_path",
    "is_valid_skill_name",
]
