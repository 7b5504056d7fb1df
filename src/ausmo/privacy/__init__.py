"""Retention policies, compliance checks and data subject requests."""

from .compliance import ComplianceChecker
from .config import (
    COMPLIANCE_STANDARDS,
    DATA_RIGHTS,
    DEFAULT_POLICIES,
    DEFAULT_RETENTION_DAYS,
    DEFAULT_SENSITIVE_FIELDS,
    DELETION_LOG_KEY,
    DataRetentionPolicy,
)
from .manager import PrivacyDataGateway, PrivacyManager
from .retention import RetentionPolicyTable

__all__ = [
    "COMPLIANCE_STANDARDS",
    "DATA_RIGHTS",
    "DEFAULT_POLICIES",
    "DEFAULT_RETENTION_DAYS",
    "DEFAULT_SENSITIVE_FIELDS",
    "DELETION_LOG_KEY",
    "ComplianceChecker",
    "DataRetentionPolicy",
    "PrivacyDataGateway",
    "PrivacyManager",
    "RetentionPolicyTable",
]
