"""Domain models for accounts, sessions and external profiles.

The session models describe exactly what the gateway writes into cookies.
Reading a cookie validates it against the same model (strict mode, camelCase
aliases) and rejects anything of another shape rather than coercing it.
"""

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


LoginMethod = Literal["local", "axpert"]

# Login method of provider sessions and the provider name on linked accounts
PROVIDER_LOGIN_METHOD: LoginMethod = "axpert"


class _CookieModel(BaseModel):
    model_config = ConfigDict(
        strict=True,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    def to_cookie(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class SessionUser(_CookieModel):
    """User-identity payload stored in the ``userData`` cookie."""

    id: str = Field(min_length=1)
    username: str | None = None
    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")
    rol: str | None = None
    email: str | None = None
    oauth_provider: str | None = Field(default=None, alias="oauthProvider")
    login_method: LoginMethod = Field(default="local", alias="loginMethod")

    @classmethod
    def from_account(
        cls, account: dict[str, Any], login_method: LoginMethod
    ) -> "SessionUser":
        """Build the identity payload from an account row."""
        return cls(
            id=str(account["id"]),
            username=account.get("username"),
            first_name=account.get("first_name"),
            last_name=account.get("last_name"),
            rol=account.get("rol"),
            email=account.get("email"),
            oauth_provider=account.get("oauth_provider"),
            login_method=login_method,
        )


class ExternalProfile(_CookieModel):
    """Profile from the external provider, stored in ``axpert_profile``."""

    avatar_url: str | None = Field(default=None, alias="avatarUrl")
    email: str | None = None
    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")
    external_id: str | None = Field(default=None, alias="externalId")


class PendingUser(_CookieModel):
    """Registration awaiting approval, stored in ``pending_user_info``."""

    id: str = Field(min_length=1)
    email: str | None = None
    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")
    avatar_url: str | None = Field(default=None, alias="avatarUrl")


class SessionView(BaseModel):
    """Result of session introspection as returned by ``/api/auth/session``."""

    model_config = ConfigDict(populate_by_name=True)

    user: SessionUser | None = None
    pending_user: PendingUser | None = Field(default=None, alias="pendingUser")
    axpert_profile: ExternalProfile | None = Field(default=None, alias="axpertProfile")
    is_authenticated: bool = Field(default=False, alias="isAuthenticated")
    error: str | None = None

    def to_response(self) -> dict[str, Any]:
        body = {
            "user": self.user.to_cookie() if self.user else None,
            "pendingUser": self.pending_user.to_cookie() if self.pending_user else None,
            "axpertProfile": self.axpert_profile.to_cookie() if self.axpert_profile else None,
            "isAuthenticated": self.is_authenticated,
        }
        if self.error:
            body["error"] = self.error
        return body


@dataclass(frozen=True)
class IssuedSession:
    """Tokens and identity to be written as session cookies."""

    access_token: str
    user: SessionUser
    refresh_token: str | None = None
    id_token: str | None = None
    profile: ExternalProfile | None = None


def account_user_type(account: dict[str, Any]) -> str:
    """Classify an account as ``local`` or ``oauth`` by its provider column."""
    provider = account.get("oauth_provider")
    return "local" if provider in (None, "", "traditional") else "oauth"


__all__ = [
    "LoginMethod",
    "PROVIDER_LOGIN_METHOD",
    "SessionUser",
    "ExternalProfile",
    "PendingUser",
    "SessionView",
    "IssuedSession",
    "account_user_type",
]
