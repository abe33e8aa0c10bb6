from src.core.config import settings
from src.core.errors import ConfigurationError
from src.core.security.crypto import EncryptionError, SecurityCipher

PLACEHOLDER_KEY = "replace_with_fernet_key"


def get_security_cipher() -> SecurityCipher:
    keys = [key.strip() for key in (settings.master_encryption_key or "").split(",") if key.strip()]
    if not keys or PLACEHOLDER_KEY in keys:
        raise ConfigurationError("MASTER_ENCRYPTION_KEY is not configured with a valid Fernet key")
    try:
        return SecurityCipher(keys)
    except EncryptionError as exc:
        raise ConfigurationError(f"MASTER_ENCRYPTION_KEY is invalid: {exc}") from exc
