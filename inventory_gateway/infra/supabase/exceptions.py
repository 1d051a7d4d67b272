"""Data-service client exceptions.

Maps low-level network/HTTP errors from the hosted data/auth service to
typed exceptions. Services translate these into gateway errors; nothing here
is shown to browsers.

Exception hierarchy:
- DataServiceError (base)
  - DataServiceConnectionError (network/timeout)
  - DataServiceClientError (4xx responses)
    - DataServiceAuthenticationError (401)
    - DataServiceNotFoundError (404)
  - DataServiceServerError (5xx responses)
"""


class DataServiceError(Exception):
    """Base exception for all data-service client errors."""


class DataServiceConnectionError(DataServiceError):
    """Raised for network failures and timeouts."""


class DataServiceClientError(DataServiceError):
    """Base exception for client errors (HTTP 4xx).

    Attributes:
        status_code: HTTP status code
        response_body: Raw response body (if available)
    """

    def __init__(self, message: str, status_code: int, response_body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class DataServiceAuthenticationError(DataServiceClientError):
    """Raised for rejected credentials or keys (HTTP 401)."""

    def __init__(self, message: str = "Authentication failed", response_body: str | None = None):
        super().__init__(message, 401, response_body)


class DataServiceNotFoundError(DataServiceClientError):
    """Raised when the resource does not exist (HTTP 404)."""

    def __init__(self, message: str = "Resource not found", response_body: str | None = None):
        super().__init__(message, 404, response_body)


class DataServiceServerError(DataServiceError):
    """Raised for server errors (HTTP 5xx)."""

    def __init__(self, message: str, status_code: int, response_body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
