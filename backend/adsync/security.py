"""Security utilities for provider token encryption and JWT decoding.

WHAT:
    - Symmetric encryption (Fernet) for platform access/refresh tokens at rest.
    - Decoding of JWTs issued by the external identity service, to learn
      which user a request belongs to.

WHY:
    - Token encryption keeps provider credentials out of plaintext storage.
    - Identity is delegated; this layer only needs the subject claim.

REFERENCES:
    - adsync/services/credential_manager.py (encrypts/decrypts credential rows)
    - adsync/deps.py::get_current_user_id
"""

import base64
import logging
from typing import Any, Dict

from cryptography.fernet import Fernet, InvalidToken
from jose import jwt


ALGORITHM = "HS256"

logger = logging.getLogger(__name__)


class TokenCipher:
    """Fernet wrapper used to store provider secrets.

    Args:
        key: URL-safe base64-encoded 32-byte key (see `Fernet.generate_key()`).

    Raises:
        RuntimeError: If the key is malformed.
    """

    def __init__(self, key: str):
        try:
            # Validate key length by decoding without storing plaintext material.
            base64.urlsafe_b64decode(key.encode("utf-8"))
            self._cipher = Fernet(key)
        except (ValueError, TypeError) as exc:
            raise RuntimeError(
                "TOKEN_ENCRYPTION_KEY must be a URL-safe base64-encoded 32-byte string. "
                "Generate with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
            ) from exc

    def encrypt(self, plaintext: str, *, context: str) -> str:
        """Encrypt a provider secret before persisting.

        Args:
            plaintext: Raw secret to encrypt (e.g., an access token).
            context:   Friendly label for logs (platform/user).

        Returns:
            URL-safe base64 ciphertext suitable for DB storage.
        """
        if not plaintext:
            raise ValueError("Cannot encrypt empty secret.")

        ciphertext = self._cipher.encrypt(plaintext.encode("utf-8")).decode("utf-8")
        logger.debug("[TOKEN_ENCRYPT] Secret encrypted for %s (length=%d)", context, len(plaintext))
        return ciphertext

    def decrypt(self, ciphertext: str, *, context: str) -> str:
        """Reverse `encrypt`.

        Raises:
            ValueError: If the stored value cannot be decrypted.
        """
        if not ciphertext:
            raise ValueError("Cannot decrypt empty secret.")

        try:
            plaintext = self._cipher.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            logger.error("[TOKEN_DECRYPT] Invalid ciphertext for %s", context)
            raise ValueError("Unable to decrypt stored token.") from exc
        logger.debug("[TOKEN_DECRYPT] Secret decrypted for %s (length=%d)", context, len(plaintext))
        return plaintext


def decode_token(token: str, secret: str) -> Dict[str, Any]:
    """Decode and validate a JWT, returning its payload.

    Raises jose.JWTError on failure.
    """
    return jwt.decode(token, secret, algorithms=[ALGORITHM])
