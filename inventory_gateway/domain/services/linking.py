"""Attach an external provider identity to a logged-in local account."""

import logging
from dataclasses import dataclass
from typing import Any

from inventory_gateway.config import Settings
from inventory_gateway.domain.exceptions import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    UpstreamError,
)
from inventory_gateway.domain.models import ExternalProfile, SessionUser
from inventory_gateway.infra.supabase import DataServiceError, SupabaseClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinkResult:
    account: dict[str, Any]
    user: SessionUser


class AccountLinkingResolver:
    """Link an external identity to the account that started the linking flow.

    The linking state names the account that requested the link. The callback
    must arrive in the same browser session: the session's user id must equal
    that account id. No tokens are issued; the existing session stays the
    authoritative one and only its identity payload is refreshed.
    """

    def __init__(self, settings: Settings, supabase: SupabaseClient) -> None:
        self.settings = settings
        self.supabase = supabase

    async def link(
        self,
        original_user_id: str,
        current_user: SessionUser | None,
        profile: ExternalProfile,
    ) -> LinkResult:
        """Record the provider identity on the original account.

        Args:
            original_user_id: Account id carried in the linking state
            current_user: User of the session the callback arrived in
            profile: External profile fetched with the provider token

        Returns:
            LinkResult with the updated account and its refreshed identity

        Raises:
            AuthenticationError: No session in the callback request
            AuthorizationError: Session belongs to someone else, or the external
                identity is already linked to another account
            NotFoundError: The original account no longer exists
            UpstreamError: Data service failed
        """
        if current_user is None:
            raise AuthenticationError(
                "Linking callback without a session", public_message="Not authenticated"
            )
        if current_user.id != original_user_id:
            logger.warning(
                "Linking callback session does not match linking state",
                extra={"user_id": current_user.id, "account_id": original_user_id},
            )
            raise AuthorizationError(
                "Linking state was issued for another account",
                public_message="Session does not match linking request",
            )
        external_id = profile.external_id
        if not external_id:
            raise AuthenticationError(
                "External profile has no id", public_message="Profile unavailable"
            )

        provider = self.settings.oauth_provider_name
        try:
            account = await self.supabase.get_account(original_user_id)
            if account is None:
                raise NotFoundError(
                    f"Account {original_user_id} not found", public_message="User not found"
                )

            holder = await self.supabase.find_account(
                oauth_provider=provider, oauth_user_id=external_id
            )
            if holder is not None and str(holder.get("id")) != original_user_id:
                raise AuthorizationError(
                    "External identity already linked to another account",
                    public_message="This account is already linked to another user",
                    context={"account_id": holder.get("id")},
                )

            updated = await self.supabase.update_account(
                original_user_id,
                {"oauth_provider": provider, "oauth_user_id": external_id},
            )
        except DataServiceError as e:
            raise UpstreamError(f"Account linking failed: {e}") from e

        if updated is None:
            raise NotFoundError(
                f"Account {original_user_id} disappeared during linking",
                public_message="User not found",
            )

        logger.info(
            "External identity linked",
            extra={"user_id": original_user_id, "mode": "linking"},
        )
        return LinkResult(
            account=updated,
            user=SessionUser.from_account(updated, current_user.login_method),
        )
