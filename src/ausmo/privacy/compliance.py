"""Sensitive-field compliance check."""

from typing import Any, Iterable, Optional, Set

from .config import DEFAULT_SENSITIVE_FIELDS
from .retention import RetentionPolicyTable


class ComplianceChecker:
    """Flags payloads carrying sensitive fields in categories without consent."""

    def __init__(
        self,
        retention: RetentionPolicyTable,
        sensitive_fields: Optional[Iterable[str]] = None,
    ):
        self.retention = retention
        fields = sensitive_fields if sensitive_fields is not None else DEFAULT_SENSITIVE_FIELDS
        self.sensitive_fields: Set[str] = {f.lower() for f in fields}

    def find_sensitive_fields(self, data: Any) -> Set[str]:
        """Return every sensitive key found anywhere in a nested payload."""
        found: Set[str] = set()
        stack = [data]
        while stack:
            item = stack.pop()
            if isinstance(item, dict):
                for key, value in item.items():
                    if str(key).lower() in self.sensitive_fields:
                        found.add(str(key).lower())
                    stack.append(value)
            elif isinstance(item, (list, tuple)):
                stack.extend(item)
        return found

    def validate(self, category: str, data: Any) -> bool:
        policy = self.retention.get_policy(category)
        if policy.require_explicit_consent:
            return True
        return not self.find_sensitive_fields(data)
