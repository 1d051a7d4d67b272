"""Inventory Gateway.

Session, identity-federation and authorization gateway for the inventory
web application: local login, OAuth2/PKCE login and account linking with an
external provider, cookie sessions, a role-gated data proxy and the admin
approval workflow for new accounts.
"""

__version__ = "0.1.0"

from inventory_gateway.config import Settings, get_settings, set_settings  # noqa: E402

__all__ = ["__version__", "Settings", "get_settings", "set_settings"]
