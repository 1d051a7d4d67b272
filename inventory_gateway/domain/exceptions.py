"""Domain-specific exceptions for the inventory gateway.

Every failure the gateway reports to a browser is one of the classes below.
Each carries the HTTP status it maps to, a stable machine-readable code and a
public message that is safe to show to the caller. The internal ``message``
and ``context`` are for server-side logs only.
"""


class GatewayError(Exception):
    """Base exception for gateway errors.

    Attributes:
        status_code: HTTP status the error is rendered with
        error_code: Stable code included in the JSON error body
        default_public_message: Text shown to callers when no override is given
    """

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"
    default_public_message: str = "Internal server error"

    def __init__(
        self,
        message: str,
        *,
        public_message: str | None = None,
        public_details: dict | None = None,
        context: dict | None = None,
    ) -> None:
        """Initialize gateway error.

        Args:
            message: Detailed message for server-side logs
            public_message: Message returned to the caller (defaults per class)
            public_details: Extra fields merged into the error body
            context: Additional context about the error
        """
        self.message = message
        self.public_message = public_message or self.default_public_message
        self.public_details = public_details or {}
        self.context = context or {}
        super().__init__(message)


class ValidationError(GatewayError):
    """Malformed or missing input."""

    status_code = 400
    error_code = "VALIDATION_ERROR"
    default_public_message = "Invalid request"


class AuthenticationError(GatewayError):
    """Missing, invalid or unverifiable credentials or session.

    The public message is deliberately generic so that callers cannot tell an
    unknown account from a wrong password.
    """

    status_code = 401
    error_code = "AUTHENTICATION_ERROR"
    default_public_message = "Invalid credentials"


class AuthorizationError(GatewayError):
    """Authenticated caller lacks the role or capability for the operation."""

    status_code = 403
    error_code = "FORBIDDEN"
    default_public_message = "Access denied"


class NotFoundError(GatewayError):
    """Referenced record does not exist."""

    status_code = 404
    error_code = "NOT_FOUND"
    default_public_message = "Not found"


class ConfigurationError(GatewayError):
    """Required server configuration is missing or invalid."""

    status_code = 500
    error_code = "CONFIGURATION_ERROR"
    default_public_message = "Server configuration error"


class UpstreamError(GatewayError):
    """The data service or the external identity provider failed."""

    status_code = 500
    error_code = "UPSTREAM_ERROR"
    default_public_message = "Upstream service error"


__all__ = [
    "GatewayError",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "ConfigurationError",
    "UpstreamError",
]
