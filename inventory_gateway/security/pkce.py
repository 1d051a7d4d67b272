"""PKCE pairs and the opaque OAuth state round-tripped through the provider.

The state is URL-safe base64 of a small JSON object:

    {"timestamp": <ms>, "nonce": "...", "mode": "linking", "original_user_id": "..."}

``mode`` and ``original_user_id`` are only present for the account-linking
flow. Decoding is strict and fails closed: anything that is not exactly that
shape raises ``AuthenticationError``.

A callback reconstructs a ``PendingAuthorization`` from the two short-lived
OAuth cookies and the state the provider echoed back. The record is keyed by
its nonce, which the callback claims exactly once.
"""

import base64
import binascii
import hmac
import json
import re
import secrets
import time
from dataclasses import dataclass
from typing import Literal

from authlib.common.security import generate_token
from authlib.oauth2.rfc7636 import create_s256_code_challenge
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from inventory_gateway.domain.exceptions import AuthenticationError

PKCE_VERIFIER_BYTES = 32
PKCE_METHOD = "S256"
STATE_MAX_AGE_SECONDS = 10 * 60
LINKING_MODE = "linking"

_B64URL_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class OAuthState(BaseModel):
    """Decoded anti-forgery state payload."""

    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)

    timestamp: int = Field(gt=0)
    nonce: str = Field(min_length=16, max_length=128, pattern=_B64URL_PATTERN.pattern)
    mode: Literal["linking"] | None = None
    original_user_id: str | None = Field(default=None, min_length=1)

    @model_validator(mode="after")
    def validate_linking(self) -> "OAuthState":
        if self.mode == LINKING_MODE and not self.original_user_id:
            raise ValueError("linking state requires original_user_id")
        return self

    @property
    def is_linking(self) -> bool:
        return self.mode == LINKING_MODE


@dataclass(frozen=True)
class PKCEPair:
    """PKCE verifier and its S256 challenge."""

    verifier: str
    challenge: str
    method: str = PKCE_METHOD


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(value: str) -> bytes:
    if not value or not _B64URL_PATTERN.match(value):
        raise ValueError("not base64url")
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


def generate_pkce_verifier() -> str:
    """Generate a PKCE code verifier.

    Returns:
        43-character base64url string (32 random bytes, no padding)
    """
    return _b64url_encode(secrets.token_bytes(PKCE_VERIFIER_BYTES))


def generate_pkce_challenge(verifier: str, method: str = PKCE_METHOD) -> str:
    """Derive the code challenge for a verifier.

    Args:
        verifier: PKCE code verifier
        method: Challenge method; only S256 is supported

    Returns:
        base64url(SHA-256(verifier)) without padding

    Raises:
        ValueError: If a method other than S256 is requested
    """
    if method != PKCE_METHOD:
        raise ValueError(f"Unsupported PKCE method: {method}")
    return create_s256_code_challenge(verifier)


def generate_pkce_pair() -> PKCEPair:
    verifier = generate_pkce_verifier()
    return PKCEPair(verifier=verifier, challenge=generate_pkce_challenge(verifier))


def new_state(
    mode: Literal["linking"] | None = None,
    original_user_id: str | None = None,
) -> OAuthState:
    """Create a fresh state payload.

    Args:
        mode: ``"linking"`` for the account-linking flow, otherwise None
        original_user_id: Logged-in account id (required when linking)

    Returns:
        State payload with the current timestamp and a random nonce
    """
    return OAuthState(
        timestamp=int(time.time() * 1000),
        nonce=generate_token(32),
        mode=mode,
        original_user_id=original_user_id,
    )


def encode_state(state: OAuthState) -> str:
    """Encode a state payload as URL-safe base64 JSON."""
    data = json.dumps(state.model_dump(exclude_none=True), separators=(",", ":"))
    return _b64url_encode(data.encode("utf-8"))


def decode_state(value: str | None) -> OAuthState:
    """Decode a state value produced by ``encode_state``.

    Args:
        value: Encoded state

    Returns:
        Validated state payload

    Raises:
        AuthenticationError: If the value is missing or is not a well-formed state
    """
    if not value:
        raise AuthenticationError("OAuth state missing", public_message="Invalid state")
    try:
        raw = json.loads(_b64url_decode(value))
    except (ValueError, binascii.Error, UnicodeDecodeError) as e:
        raise AuthenticationError(
            f"OAuth state is not decodable: {type(e).__name__}",
            public_message="Invalid state",
        ) from e
    if not isinstance(raw, dict):
        raise AuthenticationError("OAuth state is not an object", public_message="Invalid state")
    try:
        return OAuthState.model_validate(raw)
    except PydanticValidationError as e:
        raise AuthenticationError(
            f"OAuth state has unexpected shape: {e.error_count()} errors",
            public_message="Invalid state",
        ) from e


@dataclass(frozen=True)
class PendingAuthorization:
    """An in-flight authorization keyed by its state nonce.

    Built at callback time from the ``oauth_state``/``oauth_code_verifier``
    cookies and the state echoed by the provider. It can be completed once,
    either as a login or as a linking.
    """

    state: str
    verifier: str
    payload: OAuthState

    @property
    def nonce(self) -> str:
        return self.payload.nonce

    @property
    def is_linking(self) -> bool:
        return self.payload.is_linking

    @classmethod
    def from_callback(
        cls,
        returned_state: str | None,
        cookie_state: str | None,
        cookie_verifier: str | None,
        *,
        now: float | None = None,
        max_age_seconds: int = STATE_MAX_AGE_SECONDS,
    ) -> "PendingAuthorization":
        """Validate the callback's state against the stored cookies.

        Args:
            returned_state: ``state`` query parameter from the provider
            cookie_state: Value of the ``oauth_state`` cookie
            cookie_verifier: Value of the ``oauth_code_verifier`` cookie
            now: Current time in seconds (for tests)
            max_age_seconds: Maximum state age

        Returns:
            PendingAuthorization ready to be claimed

        Raises:
            AuthenticationError: On any mismatch, expiry or missing value
        """
        if not returned_state or not cookie_state:
            raise AuthenticationError("OAuth state missing", public_message="Invalid state")
        if not hmac.compare_digest(returned_state.encode(), cookie_state.encode()):
            raise AuthenticationError(
                "OAuth state does not match cookie", public_message="Invalid state"
            )
        payload = decode_state(returned_state)

        if not cookie_verifier:
            raise AuthenticationError(
                "PKCE verifier cookie missing", public_message="Session expired"
            )

        current_ms = (time.time() if now is None else now) * 1000
        age_ms = current_ms - payload.timestamp
        if age_ms > max_age_seconds * 1000 or age_ms < -60_000:
            raise AuthenticationError(
                "OAuth state expired",
                public_message="Session expired",
                context={"age_ms": age_ms},
            )

        return cls(state=returned_state, verifier=cookie_verifier, payload=payload)


__all__ = [
    "PKCE_METHOD",
    "STATE_MAX_AGE_SECONDS",
    "LINKING_MODE",
    "OAuthState",
    "PKCEPair",
    "PendingAuthorization",
    "generate_pkce_verifier",
    "generate_pkce_challenge",
    "generate_pkce_pair",
    "new_state",
    "encode_state",
    "decode_state",
]
