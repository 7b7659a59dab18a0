"""Atomic JSON persistence"""

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def atomic_write_json(path: Path, data: Any) -> None:
    """
    Write JSON so readers see either the old file or the new one.

    The document goes to a sibling "<name>.tmp" file first and is then
    renamed over the target, creating parent directories as needed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_file = path.with_name(path.name + ".tmp")
    try:
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())

        temp_file.replace(path)
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Failed to write {path}: {e}")
        temp_file.unlink(missing_ok=True)
        raise
