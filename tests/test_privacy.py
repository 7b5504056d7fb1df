"""Tests for retention policies, compliance checks and data subject requests."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from ausmo.errors import PersistenceError
from ausmo.privacy import (
    DELETION_LOG_KEY,
    ComplianceChecker,
    DataRetentionPolicy,
    PrivacyManager,
    RetentionPolicyTable,
)
from ausmo.security import EncryptionEngine
from ausmo.storage import InMemoryKeyValueStore

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class RecordingGateway:
    def __init__(self):
        self.deleted = []

    def export_user_data(self, user_id, category):
        return {"user_id": user_id, "category": category}

    def delete_user_data(self, user_id, category):
        self.deleted.append((user_id, category))


class TestRetentionPolicyTable:
    """Tests for policy lookup and auto-delete decisions."""

    def setup_method(self):
        self.table = RetentionPolicyTable()

    def test_known_category(self):
        policy = self.table.get_policy("therapy_goals")
        assert policy.max_retention_days == 2555
        assert policy.require_explicit_consent is True

    def test_unknown_category_gets_default(self):
        policy = self.table.get_policy("stickers")
        assert policy == DataRetentionPolicy(
            data_type="stickers", max_retention_days=365, auto_delete_after_days=365
        )
        assert "stickers" not in self.table.categories()

    def test_should_auto_delete(self):
        old = NOW - timedelta(days=366)
        fresh = NOW - timedelta(days=30)
        assert self.table.should_auto_delete("usage_analytics", old, now=NOW)
        assert not self.table.should_auto_delete("usage_analytics", fresh, now=NOW)
        assert not self.table.should_auto_delete("therapy_goals", old, now=NOW)

    def test_accepts_iso_strings_and_naive_datetimes(self):
        assert self.table.should_auto_delete("usage_analytics", "2024-01-01T00:00:00Z", now=NOW)
        assert not self.table.should_auto_delete(
            "usage_analytics", datetime(2026, 3, 1), now=NOW
        )

    def test_purge_expired(self):
        records = [
            {"id": 1, "created_at": "2020-01-01T00:00:00+00:00"},
            {"id": 2, "created_at": NOW - timedelta(days=2)},
            {"id": 3},
        ]
        kept, expired = self.table.purge_expired("usage_analytics", records, now=NOW)
        assert [r["id"] for r in kept] == [2, 3]
        assert [r["id"] for r in expired] == [1]

    def test_override(self):
        self.table.override("usage_analytics", allow_data_export=True)
        assert self.table.can_export("usage_analytics")
        assert RetentionPolicyTable().can_export("usage_analytics") is False

    def test_export_and_delete_rights(self):
        assert not self.table.can_export("usage_analytics")
        assert self.table.can_delete("usage_analytics")


class TestComplianceChecker:
    """Tests for sensitive-field detection."""

    def setup_method(self):
        self.checker = ComplianceChecker(RetentionPolicyTable())

    def test_nested_fields_found_case_insensitively(self):
        data = {"profile": {"SSN": "123"}, "history": [{"Diagnosis": "x"}, {"ok": 1}]}
        assert self.checker.find_sensitive_fields(data) == {"ssn", "diagnosis"}

    def test_consent_category_allows_sensitive_fields(self):
        assert self.checker.validate("therapy_goals", {"diagnosis": "apraxia"})

    def test_non_consent_category_rejects_sensitive_fields(self):
        assert not self.checker.validate("communication_data", {"treatment": "aac"})
        assert self.checker.validate("communication_data", {"message": "hello"})

    def test_custom_sensitive_fields(self):
        checker = ComplianceChecker(RetentionPolicyTable(), sensitive_fields=["Address"])
        assert not checker.validate("communication_data", {"address": "1 Main St"})
        assert checker.validate("communication_data", {"ssn": "123"})


class TestPrivacyManager:
    """Tests for export, deletion and the privacy report."""

    def setup_method(self):
        self.kv = InMemoryKeyValueStore()
        self.gateway = RecordingGateway()
        self.manager = PrivacyManager(
            RetentionPolicyTable(),
            EncryptionEngine(self.kv),
            self.kv,
            gateway=self.gateway,
            clock=lambda: NOW,
        )

    def test_export_filters_refused_categories(self):
        export = self.manager.generate_data_export("u1", ["therapy_goals", "usage_analytics"])
        assert export["version"] == "1.0"
        assert export["export_date"] == NOW.isoformat()
        assert export["data_types"] == ["therapy_goals", "usage_analytics"]
        assert export["exported_data_types"] == ["therapy_goals"]
        assert export["refused_data_types"] == ["usage_analytics"]
        assert export["data"] == {"therapy_goals": {"user_id": "u1", "category": "therapy_goals"}}

    def test_export_without_gateway_has_no_payload(self):
        manager = PrivacyManager(RetentionPolicyTable(), EncryptionEngine(self.kv), self.kv)
        export = manager.generate_data_export("u1", ["therapy_goals"])
        assert export["exported_data_types"] == ["therapy_goals"]
        assert export["data"] == {}

    def test_deletion_is_audited(self):
        table = RetentionPolicyTable()
        table.override("patient_profiles", allow_data_deletion=False)
        manager = PrivacyManager(
            table, EncryptionEngine(self.kv), self.kv, gateway=self.gateway, clock=lambda: NOW
        )
        entry = manager.secure_data_deletion("u1", ["communication_data", "patient_profiles"])
        assert entry["data_types"] == ["communication_data"]
        assert entry["refused_data_types"] == ["patient_profiles"]
        assert entry["method"] == "secure_deletion"
        assert self.gateway.deleted == [("u1", "communication_data")]

        manager.secure_data_deletion("u2", ["usage_analytics"])
        log = manager.get_deletion_log()
        assert [e["user_id"] for e in log] == ["u1", "u2"]
        assert json.loads(self.kv.get(DELETION_LOG_KEY)) == log

    def test_corrupt_deletion_log(self):
        self.kv.set(DELETION_LOG_KEY, "{not json")
        with pytest.raises(PersistenceError):
            self.manager.get_deletion_log()

    def test_privacy_report(self):
        report = self.manager.generate_privacy_report("u1")
        assert report["generated_date"] == NOW.isoformat()
        assert report["data_types"] == sorted(report["retention_policies"])
        assert "therapy_goals" in report["data_types"]
        assert report["encryption_status"] == "enabled"
        assert report["encryption_algorithm"] == "AES-256-GCM"
        assert report["compliance_standards"] == ["HIPAA", "GDPR", "COPPA", "FERPA"]
        assert report["data_rights"]["right_to_erasure"] is True

    def test_validate_data_compliance(self):
        assert not self.manager.validate_data_compliance("usage_analytics", {"ssn": "1"})

    def test_cleanup_expired_data(self):
        records = {
            "usage_analytics": [
                {"id": "old", "created_at": NOW - timedelta(days=400)},
                {"id": "new", "created_at": (NOW - timedelta(days=10)).isoformat()},
            ],
            "therapy_goals": [{"id": "goal", "created_at": NOW - timedelta(days=400)}],
        }
        kept = self.manager.cleanup_expired_data(records)
        assert [r["id"] for r in kept["usage_analytics"]] == ["new"]
        assert [r["id"] for r in kept["therapy_goals"]] == ["goal"]

        [entry] = self.manager.get_deletion_log()
        assert entry["method"] == "retention_auto_delete"
        assert entry["expired_records"] == {"usage_analytics": 1}
        assert entry["deletion_date"] == NOW.isoformat()

    def test_cleanup_with_nothing_expired_is_not_audited(self):
        kept = self.manager.cleanup_expired_data({"therapy_goals": [{"id": "g", "created_at": NOW}]})
        assert kept == {"therapy_goals": [{"id": "g", "created_at": NOW}]}
        assert self.manager.get_deletion_log() == []
