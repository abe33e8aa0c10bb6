from __future__ import annotations

import pytest
from cryptography.fernet import Fernet

from src.core.errors import ConfigurationError
from src.core.security.crypto import EncryptionError, SecurityCipher
from src.core.security.dependencies import get_security_cipher


def test_security_cipher_round_trip() -> None:
    cipher = SecurityCipher([Fernet.generate_key().decode("utf-8")])

    encrypted = cipher.encrypt("shpat_secret")

    assert encrypted != "shpat_secret"
    assert cipher.decrypt(encrypted) == "shpat_secret"


def test_security_cipher_rejects_foreign_ciphertext() -> None:
    cipher = SecurityCipher([Fernet.generate_key().decode("utf-8")])
    other = SecurityCipher([Fernet.generate_key().decode("utf-8")])

    with pytest.raises(EncryptionError):
        cipher.decrypt(other.encrypt("shpat_secret"))


def test_security_cipher_new_primary_key_keeps_old_values_readable() -> None:
    old_key = Fernet.generate_key().decode("utf-8")
    new_key = Fernet.generate_key().decode("utf-8")
    legacy = SecurityCipher([old_key]).encrypt("shpat_secret")

    cipher = SecurityCipher([new_key, old_key])
    fresh = cipher.encrypt("shpat_secret")

    assert cipher.decrypt(legacy) == "shpat_secret"
    assert SecurityCipher([new_key]).decrypt(fresh) == "shpat_secret"
    with pytest.raises(EncryptionError):
        SecurityCipher([new_key]).decrypt(legacy)


def test_security_cipher_requires_valid_key() -> None:
    with pytest.raises(EncryptionError):
        SecurityCipher([])
    with pytest.raises(EncryptionError):
        SecurityCipher(["not-a-key"])


def test_get_security_cipher_placeholder_key(monkeypatch: pytest.MonkeyPatch) -> None:
    from src.core.security import dependencies

    monkeypatch.setattr(dependencies.settings, "master_encryption_key", "replace_with_fernet_key")
    with pytest.raises(ConfigurationError):
        get_security_cipher()


def test_get_security_cipher_accepts_key_list(monkeypatch: pytest.MonkeyPatch) -> None:
    from src.core.security import dependencies

    keys = f"{Fernet.generate_key().decode('utf-8')}, {Fernet.generate_key().decode('utf-8')}"
    monkeypatch.setattr(dependencies.settings, "master_encryption_key", keys)

    cipher = get_security_cipher()
    assert cipher.decrypt(cipher.encrypt("value")) == "value"
