"""Client for the hosted data/auth service (PostgREST + GoTrue APIs)."""

from inventory_gateway.infra.supabase.client import SupabaseClient
from inventory_gateway.infra.supabase.exceptions import (
    DataServiceAuthenticationError,
    DataServiceClientError,
    DataServiceConnectionError,
    DataServiceError,
    DataServiceNotFoundError,
    DataServiceServerError,
)

__all__ = [
    "SupabaseClient",
    "DataServiceError",
    "DataServiceConnectionError",
    "DataServiceClientError",
    "DataServiceAuthenticationError",
    "DataServiceNotFoundError",
    "DataServiceServerError",
]
