"""Domain services: login, OAuth flow, linking, approval and the data gateway."""

from inventory_gateway.domain.services.approval import AdminApprovalService
from inventory_gateway.domain.services.gateway import AuthorizationGateway
from inventory_gateway.domain.services.linking import AccountLinkingResolver
from inventory_gateway.domain.services.login import CredentialAuthenticator
from inventory_gateway.domain.services.oauth import (
    CallbackOutcome,
    CallbackOutcomeKind,
    OAuthFlowController,
)

__all__ = [
    "AdminApprovalService",
    "AuthorizationGateway",
    "AccountLinkingResolver",
    "CredentialAuthenticator",
    "CallbackOutcome",
    "CallbackOutcomeKind",
    "OAuthFlowController",
]
