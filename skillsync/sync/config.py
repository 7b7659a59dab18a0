"""Subscription and sync policy store (skillsync.json)"""

import json
import logging
import threading
import uuid
from pathlib import Path
from typing import Any, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from skillsync.core.storage.atomic import atomic_write_json

logger = logging.getLogger(__name__)

MaxRiskLevel = Literal["safe", "low", "medium"]
ConflictPolicy = Literal["skip", "overwrite", "unmanage"]
SortOrder = Literal["stars", "recent"]

DEFAULT_SUBSCRIPTION_LIMIT = 20
DEFAULT_SUBSCRIPTION_SORT = "stars"


class Subscription(BaseModel):
    """A saved marketplace query whose results should stay installed"""

    id: str = Field(min_length=1)
    query: str = Field(min_length=1, max_length=200)
    authors: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    limit: Optional[int] = Field(default=None, ge=1, le=100)
    sort_by: Optional[SortOrder] = None
    enabled: bool = True

    @property
    def effective_limit(self) -> int:
        return self.limit or DEFAULT_SUBSCRIPTION_LIMIT

    @property
    def effective_sort(self) -> str:
        return self.sort_by or DEFAULT_SUBSCRIPTION_SORT


class SyncPolicy(BaseModel):
    """Contents of skillsync.json"""

    version: Literal[1] = 1
    subscriptions: List[Subscription] = Field(default_factory=list)
    sync_interval_hours: float = Field(default=0, ge=0, le=168)
    max_risk_level: MaxRiskLevel = "low"
    conflict_policy: ConflictPolicy = "skip"
    auto_remove: bool = False
    enabled: bool = True

    @property
    def active_subscriptions(self) -> List[Subscription]:
        return [s for s in self.subscriptions if s.enabled]


# Fields merge() may change; version and subscriptions are never merged
MERGEABLE_FIELDS = frozenset({
    "sync_interval_hours",
    "max_risk_level",
    "conflict_policy",
    "auto_remove",
    "enabled",
})


class SyncConfigStore:
    """Read and write the sync policy of one scope"""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def read(self) -> SyncPolicy:
        """
        Load the policy.

        A missing file yields defaults. An unparsable or invalid file is
        logged and also yields defaults; it is left on disk untouched.
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            return SyncPolicy()
        except (ValueError, OSError) as e:
            logger.warning(f"Invalid sync config {self.path}, using defaults: {e}")
            return SyncPolicy()

        try:
            return SyncPolicy.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Invalid sync config {self.path}, using defaults: {e.error_count()} error(s)")
            return SyncPolicy()

    def write(self, policy: SyncPolicy) -> None:
        policy = SyncPolicy.model_validate(policy.model_dump())
        atomic_write_json(self.path, policy.model_dump(mode="json"))

    def merge(self, **changes: Any) -> SyncPolicy:
        """
        Apply a partial update to the scalar policy fields.

        Raises:
            ValueError: unknown field name
            pydantic.ValidationError: value out of range
        """
        unknown = set(changes) - MERGEABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown sync settings: {', '.join(sorted(unknown))}")

        with self._lock:
            current = self.read()
            merged = SyncPolicy.model_validate({**current.model_dump(), **changes})
            self.write(merged)
        return merged

    def add_subscription(
        self,
        query: str,
        authors: Optional[List[str]] = None,
        tags: Optional[List[str]] = None,
        limit: Optional[int] = None,
        sort_by: Optional[str] = None,
        enabled: bool = True,
    ) -> Tuple[SyncPolicy, Subscription]:
        """Append a subscription with a fresh uuid4 id."""
        subscription = Subscription(
            id=str(uuid.uuid4()),
            query=query,
            authors=authors or None,
            tags=tags or None,
            limit=limit,
            sort_by=sort_by,
            enabled=enabled,
        )
        with self._lock:
            policy = self.read()
            policy.subscriptions.append(subscription)
            self.write(policy)
        logger.info(f"Added subscription {subscription.id}: '{query}'")
        return policy, subscription

    def remove_subscription(self, subscription_id: str) -> Tuple[SyncPolicy, bool]:
        """Remove by id; the file is only rewritten when something was removed."""
        with self._lock:
            policy = self.read()
            remaining = [s for s in policy.subscriptions if s.id != subscription_id]
            removed = len(remaining) < len(policy.subscriptions)
            if removed:
                policy.subscriptions = remaining
                self.write(policy)
        return policy, removed
