"""Retention policy definitions and privacy constants."""

from dataclasses import asdict, dataclass
from typing import Dict, Tuple

# Key under which the deletion audit trail is persisted
DELETION_LOG_KEY = "privacy_deletion_log"

COMPLIANCE_STANDARDS = ("HIPAA", "GDPR", "COPPA", "FERPA")

DATA_RIGHTS = {
    "right_to_access": True,
    "right_to_rectification": True,
    "right_to_erasure": True,
    "right_to_portability": True,
    "right_to_restrict_processing": True,
}

DEFAULT_SENSITIVE_FIELDS: Tuple[str, ...] = (
    "ssn",
    "medical_record_number",
    "medicalrecordnumber",
    "diagnosis",
    "treatment",
)


@dataclass(frozen=True)
class DataRetentionPolicy:
    """Retention and data-rights rule for one data category."""

    data_type: str
    max_retention_days: int
    auto_delete_after_days: int
    require_explicit_consent: bool = False
    allow_data_export: bool = True
    allow_data_deletion: bool = True

    def to_dict(self) -> dict:
        return asdict(self)


# Clinical records are kept for seven years
DEFAULT_POLICIES: Dict[str, DataRetentionPolicy] = {
    "therapy_goals": DataRetentionPolicy(
        data_type="therapy_goals",
        max_retention_days=2555,
        auto_delete_after_days=2555,
        require_explicit_consent=True,
    ),
    "therapy_sessions": DataRetentionPolicy(
        data_type="therapy_sessions",
        max_retention_days=2555,
        auto_delete_after_days=2555,
        require_explicit_consent=True,
    ),
    "patient_profiles": DataRetentionPolicy(
        data_type="patient_profiles",
        max_retention_days=2555,
        auto_delete_after_days=2555,
        require_explicit_consent=True,
    ),
    "communication_data": DataRetentionPolicy(
        data_type="communication_data",
        max_retention_days=1095,
        auto_delete_after_days=1095,
    ),
    "usage_analytics": DataRetentionPolicy(
        data_type="usage_analytics",
        max_retention_days=365,
        auto_delete_after_days=365,
        allow_data_export=False,
    ),
}

DEFAULT_RETENTION_DAYS = 365
