"""Privacy manager: data export, secure deletion and privacy reports."""

import json
import logging
import threading
from datetime import datetime, timezone
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from ausmo.errors import PersistenceError
from ausmo.security import EncryptionEngine
from ausmo.storage import KeyValueStore

from .compliance import ComplianceChecker
from .config import COMPLIANCE_STANDARDS, DATA_RIGHTS, DELETION_LOG_KEY
from .retention import RetentionPolicyTable

logger = logging.getLogger(__name__)

EXPORT_FORMAT_VERSION = "1.0"


@runtime_checkable
class PrivacyDataGateway(Protocol):
    """Reads and erases one user's data for a category."""

    def export_user_data(self, user_id: str, category: str) -> Any: ...

    def delete_user_data(self, user_id: str, category: str) -> None: ...


class PrivacyManager:
    """Applies retention policy to data subject requests.

    Export and deletion only touch categories the policy table allows.
    Without a data gateway the request is still filtered and audited but
    carries no payload.
    """

    def __init__(
        self,
        retention: RetentionPolicyTable,
        encryption: EncryptionEngine,
        kv_store: KeyValueStore,
        gateway: Optional[PrivacyDataGateway] = None,
        compliance: Optional[ComplianceChecker] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.retention = retention
        self.encryption = encryption
        self.gateway = gateway
        self.compliance = compliance or ComplianceChecker(retention)
        self._kv = kv_store
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()

    def generate_data_export(self, user_id: str, categories: Iterable[str]) -> Dict[str, Any]:
        requested = list(categories)
        exported: List[str] = []
        refused: List[str] = []
        data: Dict[str, Any] = {}
        for category in requested:
            if not self.retention.can_export(category):
                refused.append(category)
                continue
            exported.append(category)
            if self.gateway is not None:
                data[category] = self.gateway.export_user_data(user_id, category)

        logger.info(
            "Data export for user %s: %d categories exported, %d refused",
            user_id, len(exported), len(refused),
        )
        return {
            "user_id": user_id,
            "export_date": self._clock().isoformat(),
            "version": EXPORT_FORMAT_VERSION,
            "data_types": requested,
            "exported_data_types": exported,
            "refused_data_types": refused,
            "data": data,
        }

    def secure_data_deletion(self, user_id: str, categories: Iterable[str]) -> Dict[str, Any]:
        """Delete permitted categories and append an audit entry."""
        deleted: List[str] = []
        refused: List[str] = []
        for category in categories:
            if not self.retention.can_delete(category):
                refused.append(category)
                continue
            if self.gateway is not None:
                self.gateway.delete_user_data(user_id, category)
            deleted.append(category)

        entry = {
            "user_id": user_id,
            "data_types": deleted,
            "refused_data_types": refused,
            "deletion_date": self._clock().isoformat(),
            "method": "secure_deletion",
            "compliance": "GDPR_Article_17",
        }
        self._append_deletion_log(entry)
        logger.info(
            "Secure deletion for user %s: %s deleted, %s refused",
            user_id, deleted, refused,
        )
        return entry

    def cleanup_expired_data(
        self,
        records_by_category: Mapping[str, Sequence[Mapping[str, Any]]],
        now: Optional[datetime] = None,
    ) -> Dict[str, List[Mapping[str, Any]]]:
        """Drop records past their category's auto-delete horizon.

        Returns the records to keep per category; the caller persists
        them. Categories with expired records get one audit entry.
        """
        current = now or self._clock()
        kept_by_category: Dict[str, List[Mapping[str, Any]]] = {}
        expired_counts: Dict[str, int] = {}
        for category, records in records_by_category.items():
            kept, expired = self.retention.purge_expired(category, records, current)
            kept_by_category[category] = kept
            if expired:
                expired_counts[category] = len(expired)

        if expired_counts:
            self._append_deletion_log({
                "user_id": None,
                "data_types": sorted(expired_counts),
                "expired_records": expired_counts,
                "deletion_date": current.isoformat(),
                "method": "retention_auto_delete",
                "compliance": "GDPR_Article_5",
            })
        return kept_by_category

    def _append_deletion_log(self, entry: Dict[str, Any]) -> None:
        with self._lock:
            log = self.get_deletion_log()
            log.append(entry)
            self._kv.set(DELETION_LOG_KEY, json.dumps(log))

    def get_deletion_log(self) -> List[Dict[str, Any]]:
        raw = self._kv.get(DELETION_LOG_KEY)
        if not raw:
            return []
        try:
            log = json.loads(raw)
        except ValueError as exc:
            raise PersistenceError("Deletion audit log is corrupted", path=DELETION_LOG_KEY) from exc
        return log if isinstance(log, list) else []

    def generate_privacy_report(self, user_id: str) -> Dict[str, Any]:
        policies = self.retention.policies()
        status = self.encryption.get_status()
        return {
            "user_id": user_id,
            "generated_date": self._clock().isoformat(),
            "data_types": sorted(policies),
            "retention_policies": {k: p.to_dict() for k, p in sorted(policies.items())},
            "encryption_status": "enabled" if status.get("enabled") else "disabled",
            "encryption_algorithm": status.get("algorithm"),
            "compliance_standards": list(COMPLIANCE_STANDARDS),
            "data_rights": dict(DATA_RIGHTS),
        }

    def validate_data_compliance(self, category: str, data: Any) -> bool:
        return self.compliance.validate(category, data)
