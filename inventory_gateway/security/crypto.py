"""Authenticated encryption for browser-held session cookies.

The identity, external-profile and pending-user cookies carry JSON that the
gateway later trusts for authorization decisions (notably the role). They are
sealed with Fernet (AES-128-CBC with HMAC authentication) so a browser can
neither read nor forge them; a tampered or foreign cookie fails to open and is
treated as an invalid session.

Key management:
- Key supplied via INVENTORY_GATEWAY_COOKIE_ENCRYPTION_KEY
- Lab falls back to an ephemeral key (sessions do not survive restarts)
- Staging/prod refuse the insecure default
"""

import json
import logging
from typing import Any, Final

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

# Sentinel value for insecure default key (lab only)
_INSECURE_LAB_KEY: Final[str] = "INSECURE_LAB_KEY_DO_NOT_USE_IN_PRODUCTION"


class EncryptionError(Exception):
    """Base exception for sealing/opening errors."""


class InvalidEncryptionKeyError(EncryptionError):
    """Raised when the cookie key is invalid or malformed."""


class DecryptionError(EncryptionError):
    """Raised when a sealed value cannot be opened (wrong key, tampered data)."""


class CookieSealer:
    """Seal and open JSON cookie payloads using Fernet.

    Example:
        sealer = CookieSealer(settings.cookie_encryption_key, settings.environment)
        value = sealer.seal({"id": "u-1", "rol": "admin"})
        payload = sealer.open(value)
    """

    def __init__(self, encryption_key: str, environment: str = "lab") -> None:
        """Initialize the sealer.

        Args:
            encryption_key: Base64-encoded Fernet key (32 bytes)
            environment: Deployment environment (lab/staging/prod)

        Raises:
            InvalidEncryptionKeyError: If key is invalid or insecure outside lab
        """
        self.environment = environment

        if encryption_key == _INSECURE_LAB_KEY:
            if environment in ["staging", "prod"]:
                raise InvalidEncryptionKeyError(
                    f"Insecure default cookie key not allowed in {environment}. "
                    "Set INVENTORY_GATEWAY_COOKIE_ENCRYPTION_KEY."
                )
            logger.warning(
                "Using ephemeral cookie key (lab only); sessions end on restart. "
                "Generate a key with: inventory-gateway --generate-cookie-key"
            )
            encryption_key = Fernet.generate_key().decode()

        try:
            self._fernet = Fernet(encryption_key.encode("utf-8"))
        except (ValueError, TypeError) as e:
            raise InvalidEncryptionKeyError(
                "Invalid cookie key format. Must be a base64-encoded 32-byte Fernet key."
            ) from e

    def seal(self, payload: dict[str, Any]) -> str:
        """Serialize and encrypt a JSON object.

        Args:
            payload: JSON-serializable mapping

        Returns:
            URL-safe token suitable for a cookie value
        """
        data = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        # Padding stripped so the value needs no cookie quoting
        return self._fernet.encrypt(data).decode("ascii").rstrip("=")

    def open(self, token: str) -> Any:
        """Decrypt and parse a sealed value.

        Args:
            token: Value produced by ``seal``

        Returns:
            Parsed JSON value (callers validate its shape)

        Raises:
            DecryptionError: If the value was tampered with, sealed with another
                key, or does not contain JSON
        """
        try:
            padded = token + "=" * (-len(token) % 4)
            data = self._fernet.decrypt(padded.encode("utf-8"))
        except (InvalidToken, UnicodeEncodeError) as e:
            raise DecryptionError("Cookie could not be opened") from e
        try:
            return json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecryptionError("Cookie payload is not JSON") from e


def generate_encryption_key() -> str:
    """Generate a new Fernet key.

    Returns:
        Base64-encoded 32-byte key suitable for CookieSealer
    """
    return Fernet.generate_key().decode("utf-8")

