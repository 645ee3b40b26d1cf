"""Tests for the FieldEncryptor (Fernet-based field encryption)."""

from __future__ import annotations

import pytest
from cryptography.fernet import Fernet

from carewatch.core.storage.encryption import EncryptionError, FieldEncryptor


@pytest.fixture
def key() -> str:
    return Fernet.generate_key().decode()


@pytest.fixture
def encryptor(key: str) -> FieldEncryptor:
    return FieldEncryptor(key)


class TestRoundTrip:
    def test_clinical_profile_round_trip(self, encryptor: FieldEncryptor):
        data = {
            "conditions": ["hypertension"],
            "medications": [{"name": "Losartan", "dose": "50mg", "schedule": "daily", "notes": None}],
        }
        token = encryptor.encrypt(data)
        assert isinstance(token, str)
        assert "hypertension" not in token
        assert encryptor.decrypt(token) == data

    def test_transcript_round_trip(self, encryptor: FieldEncryptor):
        text = "Me siento bien hoy, gracias."
        assert encryptor.decrypt(encryptor.encrypt(text)) == text

    def test_none_encrypts_to_empty(self, encryptor: FieldEncryptor):
        assert encryptor.encrypt(None) == ""
        assert encryptor.decrypt("") is None
        assert encryptor.decrypt(None) is None

    def test_unserializable_value_raises(self, encryptor: FieldEncryptor):
        with pytest.raises(EncryptionError, match="Encryption failed"):
            encryptor.encrypt({"when": object()})


class TestKeyValidation:
    def test_empty_key_raises(self):
        with pytest.raises(EncryptionError, match="must not be empty"):
            FieldEncryptor("")

    def test_whitespace_key_raises(self):
        with pytest.raises(EncryptionError, match="must not be empty"):
            FieldEncryptor("   ")

    def test_invalid_key_raises(self):
        with pytest.raises(EncryptionError, match="Invalid encryption key"):
            FieldEncryptor("not-a-valid-fernet-key")

    def test_generate_key_is_usable(self):
        encryptor = FieldEncryptor(FieldEncryptor.generate_key())
        assert encryptor.decrypt(encryptor.encrypt("ok")) == "ok"


class TestCorruptData:
    def test_wrong_key_cannot_decrypt(self, encryptor: FieldEncryptor):
        token = encryptor.encrypt({"secret": "data"})
        other = FieldEncryptor(Fernet.generate_key().decode())
        with pytest.raises(EncryptionError, match="invalid token"):
            other.decrypt(token)

    def test_tampered_token_raises(self, encryptor: FieldEncryptor):
        token = encryptor.encrypt({"data": 1})
        with pytest.raises(EncryptionError):
            encryptor.decrypt(token[:-5] + "XXXXX")
