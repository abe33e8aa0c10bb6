from __future__ import annotations

from cryptography.fernet import Fernet, InvalidToken, MultiFernet


class EncryptionError(ValueError):
    pass


class SecurityCipher:
    """Fernet encryption for storefront install tokens at rest.

    ``keys`` is ordered newest first: new values are encrypted with the first
    key, and older keys remain accepted for decryption.
    """

    def __init__(self, keys: list[str]) -> None:
        if not keys:
            raise EncryptionError("At least one Fernet key is required")
        try:
            self._fernet = MultiFernet([Fernet(key.encode("utf-8")) for key in keys])
        except ValueError as exc:
            raise EncryptionError("Invalid Fernet key") from exc

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8"))
        except InvalidToken as exc:
            raise EncryptionError("Unable to decrypt value") from exc
        return plaintext.decode("utf-8")
