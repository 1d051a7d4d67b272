"""Main entry point for the inventory gateway.

1. Loads and validates configuration
2. Sets up structured logging
3. Serves the FastAPI application with uvicorn (which handles SIGTERM/SIGINT)
"""

import logging
import sys

import uvicorn

from inventory_gateway import __version__
from inventory_gateway.cli import create_argument_parser, settings_from_args
from inventory_gateway.config import Settings, set_settings
from inventory_gateway.infra.observability import setup_logging
from inventory_gateway.security.crypto import generate_encryption_key

logger = logging.getLogger(__name__)


def print_startup_banner(settings: Settings) -> None:  # pragma: no cover
    """Log startup banner with non-secret configuration."""
    logger.info("=" * 60)
    logger.info("Inventory Gateway")
    logger.info(f"Version: {__version__}")
    logger.info("=" * 60)
    logger.info(f"  Environment: {settings.environment}")
    logger.info(f"  Debug: {settings.debug}")
    logger.info(f"  HTTP: {settings.http_host}:{settings.http_port}")
    logger.info(f"  Data service: {settings.supabase_url or 'NOT CONFIGURED'}")
    logger.info(f"  OAuth provider: {settings.effective_provider_url or 'NOT CONFIGURED'}")
    logger.info(f"  Nonce store: {'redis' if settings.redis_url else 'memory'}")
    logger.info(f"  Secure cookies: {settings.secure_cookies}")
    logger.info("=" * 60)


def main(argv: list[str] | None = None) -> int:  # pragma: no cover
    """Main entry point.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parsed_args = create_argument_parser().parse_args(argv)
    if parsed_args.generate_cookie_key:
        print(generate_encryption_key())
        return 0

    try:
        settings = settings_from_args(parsed_args)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    set_settings(settings)
    setup_logging(level=settings.log_level, json_format=settings.log_format == "json")
    print_startup_banner(settings)

    from inventory_gateway.api.http import create_http_app

    app = create_http_app(settings)
    uvicorn.run(
        app,
        host=settings.http_host,
        port=settings.http_port,
        log_config=None,
        proxy_headers=True,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
