"""Retention policy table.

Answers per-category retention questions: how long a category may be
kept, whether a record is past its auto-delete horizon, and whether the
category may be exported or deleted on a data subject's request.
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from dateutil import parser as date_parser

from .config import DEFAULT_POLICIES, DEFAULT_RETENTION_DAYS, DataRetentionPolicy

logger = logging.getLogger(__name__)


def _as_aware(value: Any) -> datetime:
    if isinstance(value, str):
        value = date_parser.isoparse(value)
    if not isinstance(value, datetime):
        raise TypeError(f"Expected datetime or ISO string, got {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RetentionPolicyTable:
    """Static lookup of retention policies by data category."""

    def __init__(self, policies: Optional[Mapping[str, DataRetentionPolicy]] = None):
        self._policies: Dict[str, DataRetentionPolicy] = dict(
            policies if policies is not None else DEFAULT_POLICIES
        )

    def get_policy(self, category: str) -> DataRetentionPolicy:
        """Return the policy for a category; unknown categories get the default."""
        policy = self._policies.get(category)
        if policy is not None:
            return policy
        return DataRetentionPolicy(
            data_type=category,
            max_retention_days=DEFAULT_RETENTION_DAYS,
            auto_delete_after_days=DEFAULT_RETENTION_DAYS,
        )

    def categories(self) -> List[str]:
        return sorted(self._policies)

    def policies(self) -> Dict[str, DataRetentionPolicy]:
        return dict(self._policies)

    def override(self, category: str, **changes: Any) -> DataRetentionPolicy:
        """Replace fields of one category's policy (adds the category if new)."""
        updated = replace(self.get_policy(category), **changes)
        self._policies[category] = updated
        return updated

    def should_auto_delete(
        self,
        category: str,
        created_at: Any,
        now: Optional[datetime] = None,
    ) -> bool:
        """True when the record is older than the category's auto-delete horizon."""
        policy = self.get_policy(category)
        current = _as_aware(now) if now is not None else datetime.now(timezone.utc)
        age = current - _as_aware(created_at)
        return age > timedelta(days=policy.auto_delete_after_days)

    def can_export(self, category: str) -> bool:
        return self.get_policy(category).allow_data_export

    def can_delete(self, category: str) -> bool:
        return self.get_policy(category).allow_data_deletion

    def purge_expired(
        self,
        category: str,
        records: Sequence[Mapping[str, Any]],
        now: Optional[datetime] = None,
    ) -> Tuple[List[Mapping[str, Any]], List[Mapping[str, Any]]]:
        """Split records into (kept, expired) using their ``created_at`` field.

        Records without a ``created_at`` are kept.
        """
        kept: List[Mapping[str, Any]] = []
        expired: List[Mapping[str, Any]] = []
        for record in records:
            created_at = record.get("created_at")
            if created_at is not None and self.should_auto_delete(category, created_at, now):
                expired.append(record)
            else:
                kept.append(record)
        if expired:
            logger.info(
                "Retention purge for %s: %d expired, %d kept",
                category, len(expired), len(kept),
            )
        return kept, expired
