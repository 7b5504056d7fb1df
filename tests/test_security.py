"""Tests for the encryption engine."""

import pytest

from ausmo.errors import DecryptionError, EncryptionError, PersistenceError
from ausmo.security import (
    DEVICE_ID_KEY,
    MASTER_KEY_KEY,
    EncryptedRecord,
    EncryptionConfig,
    EncryptionEngine,
)
from ausmo.storage import InMemoryKeyValueStore


class BrokenKeyStore:
    def get(self, key):
        raise PersistenceError("keychain locked", path=key)

    def set(self, key, value):
        raise PersistenceError("keychain locked", path=key)

    def delete(self, key):
        pass


class TestEncryptDecrypt:
    """Tests for the AES-GCM round trip."""

    def setup_method(self):
        self.store = InMemoryKeyValueStore()
        self.engine = EncryptionEngine(self.store)

    def test_round_trip(self):
        payload = {"goal": "request snack", "trials": [1, 0, 1], "notes": "é ✓"}
        record = self.engine.encrypt(payload, "therapy_goals")
        assert record.algorithm == "AES-256-GCM"
        assert self.engine.decrypt(record, "therapy_goals") == payload

    def test_fresh_salt_and_iv_per_call(self):
        first = self.engine.encrypt({"a": 1}, "therapy_goals")
        second = self.engine.encrypt({"a": 1}, "therapy_goals")
        assert first.salt != second.salt
        assert first.iv != second.iv
        assert first.ciphertext != second.ciphertext
        assert len(bytes.fromhex(first.salt)) == 16
        assert len(bytes.fromhex(first.iv)) == 16

    def test_wrong_category_rejected(self):
        record = self.engine.encrypt({"a": 1}, "therapy_goals")
        with pytest.raises(DecryptionError):
            self.engine.decrypt(record, "usage_analytics")

    def test_tampered_ciphertext_rejected(self):
        record = self.engine.encrypt({"a": 1}, "therapy_goals")
        data = bytearray(record.ciphertext.encode("ascii"))
        data[0] = ord("A") if data[0] != ord("A") else ord("B")
        record.ciphertext = data.decode("ascii")
        with pytest.raises(DecryptionError):
            self.engine.decrypt(record, "therapy_goals")

    def test_malformed_record_rejected(self):
        record = EncryptedRecord(ciphertext="###", salt="zz", iv="00")
        with pytest.raises(DecryptionError, match="Malformed"):
            self.engine.decrypt(record, "therapy_goals")

    def test_different_device_cannot_decrypt(self):
        record = self.engine.encrypt({"a": 1}, "therapy_goals")
        other = EncryptionEngine(InMemoryKeyValueStore())
        with pytest.raises(DecryptionError):
            other.decrypt(record, "therapy_goals")

    def test_record_dict_round_trip(self):
        record = self.engine.encrypt("hello", "notes")
        data = record.to_dict()
        assert set(data) == {"data", "salt", "iv", "algorithm"}
        assert self.engine.decrypt(EncryptedRecord.from_dict(data), "notes") == "hello"

    def test_unserializable_payload(self):
        with pytest.raises(EncryptionError):
            self.engine.encrypt({"when": object()}, "notes")


class TestKeyManagement:
    """Tests for device id and master key persistence."""

    def test_keys_created_lazily_and_persisted(self):
        store = InMemoryKeyValueStore()
        engine = EncryptionEngine(store)
        assert engine.get_status()["master_key"] == "not_initialized"
        record = engine.encrypt({"a": 1}, "notes")
        assert store.get(MASTER_KEY_KEY)
        assert store.get(DEVICE_ID_KEY)
        assert engine.get_status()["master_key"] == "initialized"

        restarted = EncryptionEngine(store)
        assert restarted.decrypt(record, "notes") == {"a": 1}

    def test_clear_sensitive_data_reloads_from_store(self):
        store = InMemoryKeyValueStore()
        engine = EncryptionEngine(store)
        record = engine.encrypt({"a": 1}, "notes")
        assert engine.has_cached_key
        engine.clear_sensitive_data()
        assert not engine.has_cached_key
        assert engine.decrypt(record, "notes") == {"a": 1}

    def test_key_store_failure(self):
        engine = EncryptionEngine(BrokenKeyStore())
        with pytest.raises(EncryptionError, match="Failed to initialize encryption"):
            engine.encrypt({"a": 1}, "notes")

    def test_iterations_below_minimum(self):
        with pytest.raises(EncryptionError):
            EncryptionEngine(InMemoryKeyValueStore(), EncryptionConfig(iterations=1000))

    def test_status(self):
        status = EncryptionEngine(InMemoryKeyValueStore(), platform="android").get_status()
        assert status == {
            "enabled": True,
            "algorithm": "AES-256-GCM",
            "key_size": 256,
            "iterations": 10_000,
            "device_id": "not_initialized",
            "master_key": "not_initialized",
        }


class TestHashingAndTokens:
    """Tests for identifier hashing and random tokens."""

    def setup_method(self):
        self.engine = EncryptionEngine(InMemoryKeyValueStore())

    def test_hash_with_salt_is_stable(self):
        first = self.engine.hash_identifier("user-42", salt="pepper")
        assert first == self.engine.hash_identifier("user-42", salt="pepper")
        assert len(first) == 64
        assert first != self.engine.hash_identifier("user-43", salt="pepper")

    def test_hash_without_salt_is_random(self):
        assert self.engine.hash_identifier("user-42") != self.engine.hash_identifier("user-42")

    def test_random_token(self):
        token = self.engine.random_token(8)
        assert len(token) == 16
        int(token, 16)
        assert self.engine.random_token() != self.engine.random_token()

    def test_random_token_rejects_non_positive(self):
        with pytest.raises(ValueError):
            self.engine.random_token(0)
