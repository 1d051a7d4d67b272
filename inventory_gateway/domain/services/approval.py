"""Approval workflow for newly registered accounts.

Accounts created by a first provider login start with ``rol = null``,
``is_active = false`` and ``pending_approval = true``. A superadmin either
approves them (assigning a role and activating them) or rejects them, which
deletes the account row.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from inventory_gateway.config import Settings
from inventory_gateway.domain.exceptions import (
    AuthorizationError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from inventory_gateway.domain.models import SessionUser, account_user_type
from inventory_gateway.infra.observability.metrics import (
    record_approval_action,
    record_authz_check,
)
from inventory_gateway.infra.supabase import DataServiceError, SupabaseClient
from inventory_gateway.security.authz import UserRole, check_user_role, parse_role
from inventory_gateway.security.oidc import resolve_avatar_url

logger = logging.getLogger(__name__)

_USER_TYPES = ("all", "oauth", "local")


class AdminApprovalService:
    """List, approve and reject pending accounts.

    Example:
        service = AdminApprovalService(settings, supabase)
        pending = await service.list_pending(actor)
        await service.approve(actor, pending[0]["id"], "usuario")
    """

    def __init__(self, settings: Settings, supabase: SupabaseClient) -> None:
        self.settings = settings
        self.supabase = supabase

    def _require_superadmin(self, actor: SessionUser, action: str) -> None:
        try:
            check_user_role(actor.rol, [UserRole.SUPERADMIN], user_id=actor.id, action=action)
        except AuthorizationError:
            record_authz_check("superadmin", allowed=False)
            raise
        record_authz_check("superadmin", allowed=True)

    async def list_pending(
        self, actor: SessionUser, user_type: str | None = "all"
    ) -> list[dict[str, Any]]:
        """List accounts awaiting approval, newest first.

        Each row gains ``user_type`` (``local``/``oauth``) and ``avatar_url``
        from the identity service metadata. Enrichment is best-effort.

        Args:
            actor: Session user (must be superadmin)
            user_type: ``all``, ``oauth`` or ``local``

        Returns:
            Pending account rows

        Raises:
            AuthorizationError: Caller is not superadmin
            ValidationError: Unknown user_type
            UpstreamError: Data service failed
        """
        self._require_superadmin(actor, "list_pending_users")
        user_type = user_type or "all"
        if user_type not in _USER_TYPES:
            raise ValidationError(f"Unknown user type: {user_type}", public_message="Invalid type")

        try:
            accounts = await self.supabase.list_pending_accounts(user_type)
        except DataServiceError as e:
            raise UpstreamError(f"Pending account query failed: {e}") from e

        avatars: dict[str, str | None] = {}
        try:
            for auth_user in await self.supabase.list_auth_users():
                meta = auth_user.get("user_metadata") or {}
                avatars[str(auth_user.get("id"))] = meta.get("avatar_url")
        except DataServiceError as e:
            logger.warning(f"Avatar enrichment skipped: {type(e).__name__}")

        provider_url = self.settings.effective_provider_url
        return [
            {
                **account,
                "user_type": account_user_type(account),
                "avatar_url": resolve_avatar_url(
                    provider_url,
                    avatars.get(str(account.get("oauth_user_id") or account.get("id"))),
                ),
            }
            for account in accounts
        ]

    async def approve(
        self, actor: SessionUser, account_id: str | None, role: str | None
    ) -> dict[str, Any]:
        """Activate a pending account with a role.

        Re-approving an account re-applies the same fields.

        Raises:
            AuthorizationError: Caller is not superadmin
            ValidationError: Missing id or a role outside the closed set
            NotFoundError: No such account
            UpstreamError: Data service failed
        """
        self._require_superadmin(actor, "approve_user")
        if not account_id:
            raise ValidationError("userId is required", public_message="userId is required")
        if parse_role(role) is None:
            raise ValidationError(
                f"Invalid role for approval: {role!r}",
                public_message="A valid role is required to approve",
            )

        changes = {
            "rol": role,
            "is_active": True,
            "pending_approval": False,
            "approved_by": actor.id,
            "approved_at": datetime.now(UTC).isoformat(),
        }
        try:
            updated = await self.supabase.update_account(account_id, changes)
        except DataServiceError as e:
            record_approval_action("approve", success=False)
            raise UpstreamError(f"Approval update failed: {e}") from e

        if updated is None:
            record_approval_action("approve", success=False)
            raise NotFoundError(f"Account {account_id} not found", public_message="User not found")

        record_approval_action("approve", success=True)
        logger.info(
            "Account approved",
            extra={"account_id": account_id, "user_id": actor.id, "user_role": role},
        )
        return updated

    async def reject(self, actor: SessionUser, account_id: str | None) -> None:
        """Delete a pending account.

        Raises:
            AuthorizationError: Caller is not superadmin
            ValidationError: Missing id
            NotFoundError: No such account
            UpstreamError: Data service failed
        """
        self._require_superadmin(actor, "reject_user")
        if not account_id:
            raise ValidationError("userId is required", public_message="userId is required")

        try:
            deleted = await self.supabase.delete_account(account_id)
        except DataServiceError as e:
            record_approval_action("reject", success=False)
            raise UpstreamError(f"Rejection delete failed: {e}") from e

        if not deleted:
            record_approval_action("reject", success=False)
            raise NotFoundError(f"Account {account_id} not found", public_message="User not found")

        record_approval_action("reject", success=True)
        logger.info("Account rejected", extra={"account_id": account_id, "user_id": actor.id})

    async def check_status(self, account_id: str | None) -> dict[str, bool]:
        """Return activation flags for the pending-approval page.

        Raises:
            ValidationError: Missing id
            NotFoundError: No such account
            UpstreamError: Data service failed
        """
        if not account_id:
            raise ValidationError("userId is required", public_message="userId is required")
        try:
            account = await self.supabase.get_account(account_id)
        except DataServiceError as e:
            raise UpstreamError(f"Status lookup failed: {e}") from e
        if account is None:
            raise NotFoundError(f"Account {account_id} not found", public_message="User not found")
        return {
            "is_active": bool(account.get("is_active")),
            "pending_approval": bool(account.get("pending_approval")),
        }
