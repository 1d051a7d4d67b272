"""Browser session state held in cookies.

The session is a set of cookies rather than a server-side record:

=====================  =========  ======================================
Cookie                 Lifetime   Content
=====================  =========  ======================================
sb-access-token        4 h        access token (raw)
sb-refresh-token       30 d       refresh token (raw)
idToken                4 h        provider id token (raw)
userData               4 h        SessionUser (sealed JSON)
axpert_profile         4 h        ExternalProfile (sealed JSON)
axpert_avatar_url      4 h        avatar URL (raw)
pending_user_info      4 h        PendingUser (sealed JSON)
oauth_state            10 min     encoded OAuth state
oauth_code_verifier    10 min     PKCE verifier
=====================  =========  ======================================

All cookies are HttpOnly, SameSite=Lax, path ``/`` and Secure in prod.
``authToken``/``refreshToken``/``pendingUser`` are legacy names that are only
ever cleared.
"""

import logging
from collections.abc import Mapping
from typing import TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from starlette.responses import Response

from inventory_gateway.domain.exceptions import AuthenticationError
from inventory_gateway.domain.models import (
    ExternalProfile,
    IssuedSession,
    PendingUser,
    SessionUser,
    SessionView,
)
from inventory_gateway.security.crypto import CookieSealer, DecryptionError

logger = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "sb-access-token"
REFRESH_TOKEN_COOKIE = "sb-refresh-token"
ID_TOKEN_COOKIE = "idToken"
USER_COOKIE = "userData"
PROFILE_COOKIE = "axpert_profile"
AVATAR_COOKIE = "axpert_avatar_url"
PENDING_USER_COOKIE = "pending_user_info"
OAUTH_STATE_COOKIE = "oauth_state"
OAUTH_VERIFIER_COOKIE = "oauth_code_verifier"

LEGACY_ACCESS_TOKEN_COOKIE = "authToken"
LEGACY_REFRESH_TOKEN_COOKIE = "refreshToken"
LEGACY_PENDING_USER_COOKIE = "pendingUser"

SESSION_MAX_AGE = 4 * 60 * 60
REFRESH_MAX_AGE = 30 * 24 * 60 * 60
OAUTH_COOKIE_MAX_AGE = 10 * 60

ACCESS_TOKEN_COOKIES = (ACCESS_TOKEN_COOKIE, LEGACY_ACCESS_TOKEN_COOKIE)

LEGACY_SESSION_COOKIES = (
    LEGACY_ACCESS_TOKEN_COOKIE,
    LEGACY_REFRESH_TOKEN_COOKIE,
    LEGACY_PENDING_USER_COOKIE,
)

ALL_SESSION_COOKIES = (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    ID_TOKEN_COOKIE,
    USER_COOKIE,
    PROFILE_COOKIE,
    AVATAR_COOKIE,
    PENDING_USER_COOKIE,
    LEGACY_PENDING_USER_COOKIE,
    LEGACY_ACCESS_TOKEN_COOKIE,
    LEGACY_REFRESH_TOKEN_COOKIE,
    OAUTH_STATE_COOKIE,
    OAUTH_VERIFIER_COOKIE,
)

INVALID_SESSION = "INVALID_SESSION"

ModelT = TypeVar("ModelT", bound=BaseModel)


class SessionCookieManager:
    """Write, read and clear the session cookie set.

    Example:
        manager = SessionCookieManager(sealer, secure=settings.secure_cookies)
        manager.issue(response, session)
        view = manager.introspect(request.cookies)
        manager.clear(response)
    """

    def __init__(self, sealer: CookieSealer, secure: bool = False) -> None:
        self.sealer = sealer
        self.secure = secure

    # ========================================
    # Writing
    # ========================================

    def _set(self, response: Response, name: str, value: str, max_age: int) -> None:
        response.set_cookie(
            name,
            value,
            max_age=max_age,
            path="/",
            secure=self.secure,
            httponly=True,
            samesite="lax",
        )

    def _delete(self, response: Response, name: str) -> None:
        response.delete_cookie(
            name, path="/", secure=self.secure, httponly=True, samesite="lax"
        )

    def issue(self, response: Response, session: IssuedSession) -> None:
        """Write a complete authenticated session.

        The identity and access-token cookies are always written together.
        Optional cookies the new session does not carry are deleted, so nothing
        from an earlier session on the same browser survives, and a pending
        registration left over from an earlier callback is removed.
        """
        self._set(response, ACCESS_TOKEN_COOKIE, session.access_token, SESSION_MAX_AGE)
        self._set(response, USER_COOKIE, self.sealer.seal(session.user.to_cookie()), SESSION_MAX_AGE)
        if session.refresh_token:
            self._set(response, REFRESH_TOKEN_COOKIE, session.refresh_token, REFRESH_MAX_AGE)
        else:
            self._delete(response, REFRESH_TOKEN_COOKIE)
        if session.id_token:
            self._set(response, ID_TOKEN_COOKIE, session.id_token, SESSION_MAX_AGE)
        else:
            self._delete(response, ID_TOKEN_COOKIE)
        if session.profile is not None:
            self.set_profile(response, session.profile)
        else:
            self._delete(response, PROFILE_COOKIE)
            self._delete(response, AVATAR_COOKIE)
        for name in LEGACY_SESSION_COOKIES:
            self._delete(response, name)
        self._delete(response, PENDING_USER_COOKIE)

        logger.info(
            "Session issued",
            extra={
                "user_id": session.user.id,
                "user_role": session.user.rol,
                "login_method": session.user.login_method,
            },
        )

    def refresh_identity(
        self,
        response: Response,
        user: SessionUser,
        access_token: str,
        profile: ExternalProfile | None = None,
    ) -> None:
        """Rewrite the identity of an existing session without new tokens.

        The current access token is re-set alongside so both cookies keep the
        same lifetime.
        """
        self._set(response, ACCESS_TOKEN_COOKIE, access_token, SESSION_MAX_AGE)
        self._set(response, USER_COOKIE, self.sealer.seal(user.to_cookie()), SESSION_MAX_AGE)
        if profile is not None:
            self.set_profile(response, profile)

    def set_profile(self, response: Response, profile: ExternalProfile) -> None:
        self._set(response, PROFILE_COOKIE, self.sealer.seal(profile.to_cookie()), SESSION_MAX_AGE)
        if profile.avatar_url:
            self._set(response, AVATAR_COOKIE, profile.avatar_url, SESSION_MAX_AGE)
        else:
            self._delete(response, AVATAR_COOKIE)

    def set_pending_user(self, response: Response, pending: PendingUser) -> None:
        self._set(
            response, PENDING_USER_COOKIE, self.sealer.seal(pending.to_cookie()), SESSION_MAX_AGE
        )

    def set_oauth_cookies(self, response: Response, state: str, verifier: str) -> None:
        self._set(response, OAUTH_VERIFIER_COOKIE, verifier, OAUTH_COOKIE_MAX_AGE)
        self._set(response, OAUTH_STATE_COOKIE, state, OAUTH_COOKIE_MAX_AGE)

    def clear_oauth_cookies(self, response: Response) -> None:
        self._delete(response, OAUTH_VERIFIER_COOKIE)
        self._delete(response, OAUTH_STATE_COOKIE)

    def clear(self, response: Response) -> None:
        """Delete every session cookie, current and legacy. Idempotent."""
        for name in ALL_SESSION_COOKIES:
            self._delete(response, name)

    # ========================================
    # Reading
    # ========================================

    def _open(self, value: str, model: type[ModelT]) -> ModelT:
        """Open a sealed cookie and validate it against ``model``.

        Raises:
            DecryptionError: If the value cannot be opened
            PydanticValidationError: If the payload has another shape
        """
        payload = self.sealer.open(value)
        if not isinstance(payload, dict):
            raise DecryptionError("Cookie payload is not an object")
        return model.model_validate(payload)

    def read_user(self, cookies: Mapping[str, str]) -> SessionUser | None:
        """Return the session user, None when absent.

        Raises:
            AuthenticationError: If the cookie is present but invalid
        """
        value = cookies.get(USER_COOKIE)
        if not value:
            return None
        try:
            return self._open(value, SessionUser)
        except (DecryptionError, PydanticValidationError) as e:
            logger.warning(f"Rejected session cookie: {type(e).__name__}")
            raise AuthenticationError(
                "Session cookie failed validation",
                public_message="Invalid session",
                context={"error": INVALID_SESSION},
            ) from e

    def require_user(self, cookies: Mapping[str, str]) -> SessionUser:
        """Return the authenticated user or raise ``AuthenticationError``."""
        user = self.read_user(cookies)
        if user is None:
            raise AuthenticationError("No session cookie", public_message="Not authenticated")
        return user

    def read_access_token(self, cookies: Mapping[str, str]) -> str | None:
        for name in ACCESS_TOKEN_COOKIES:
            if cookies.get(name):
                return cookies[name]
        return None

    def read_profile(self, cookies: Mapping[str, str]) -> ExternalProfile | None:
        """Return the external profile; invalid cookies degrade to the avatar cookie."""
        value = cookies.get(PROFILE_COOKIE)
        if value:
            try:
                return self._open(value, ExternalProfile)
            except (DecryptionError, PydanticValidationError):
                logger.debug("Ignoring unreadable profile cookie")
        avatar = cookies.get(AVATAR_COOKIE)
        if avatar:
            return ExternalProfile(avatar_url=avatar)
        return None

    def read_pending_user(self, cookies: Mapping[str, str]) -> PendingUser | None:
        value = cookies.get(PENDING_USER_COOKIE)
        if not value:
            return None
        try:
            return self._open(value, PendingUser)
        except (DecryptionError, PydanticValidationError):
            logger.debug("Ignoring unreadable pending-user cookie")
            return None

    def introspect(self, cookies: Mapping[str, str]) -> SessionView:
        """Describe the current session.

        Returns:
            SessionView; ``error`` is ``INVALID_SESSION`` when the identity
            cookie is present but does not validate
        """
        if not cookies.get(USER_COOKIE):
            return SessionView(pending_user=self.read_pending_user(cookies))
        try:
            user = self.read_user(cookies)
        except AuthenticationError:
            return SessionView(error=INVALID_SESSION)
        return SessionView(
            user=user,
            axpert_profile=self.read_profile(cookies),
            is_authenticated=True,
        )


__all__ = [
    "SessionCookieManager",
    "ACCESS_TOKEN_COOKIE",
    "REFRESH_TOKEN_COOKIE",
    "ID_TOKEN_COOKIE",
    "USER_COOKIE",
    "PROFILE_COOKIE",
    "AVATAR_COOKIE",
    "PENDING_USER_COOKIE",
    "OAUTH_STATE_COOKIE",
    "OAUTH_VERIFIER_COOKIE",
    "ALL_SESSION_COOKIES",
    "INVALID_SESSION",
    "SESSION_MAX_AGE",
    "REFRESH_MAX_AGE",
    "OAUTH_COOKIE_MAX_AGE",
]
