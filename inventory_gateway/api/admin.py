"""Admin API routes for the account approval workflow.

All endpoints require a session whose role is ``superadmin``; the role check
happens in ``AdminApprovalService`` before any query or mutation.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query

from inventory_gateway.api.dependencies import (
    GatewayServices,
    get_current_user,
    get_services,
)
from inventory_gateway.api.models import ApproveUserRequest
from inventory_gateway.domain.exceptions import ValidationError
from inventory_gateway.domain.models import SessionUser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/pending-users")
async def pending_users(
    user_type: str | None = Query(default="all", alias="type"),
    user: SessionUser = Depends(get_current_user),
    services: GatewayServices = Depends(get_services),
) -> dict[str, Any]:
    """List accounts awaiting approval, newest first.

    Args:
        user_type: ``all``, ``oauth`` or ``local``
        user: Current user (must be superadmin)

    Returns:
        ``{"users": [...]}``
    """
    users = await services.approval.list_pending(user, user_type)
    return {"users": users}


@router.post("/approve-user")
async def approve_user(
    body: ApproveUserRequest,
    user: SessionUser = Depends(get_current_user),
    services: GatewayServices = Depends(get_services),
) -> dict[str, Any]:
    """Approve (with a role) or reject a pending account.

    Args:
        body: ``{userId, rol, action}``
        user: Current user (must be superadmin)

    Returns:
        Success payload; approvals include the updated account
    """
    if body.action == "approve":
        account = await services.approval.approve(user, body.user_id, body.rol)
        return {"success": True, "message": "User approved", "user": account}

    if body.action == "reject":
        await services.approval.reject(user, body.user_id)
        return {"success": True, "message": "User rejected and removed"}

    raise ValidationError("action is required", public_message="Invalid action")
