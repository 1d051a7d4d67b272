"""Command-line interface for the inventory gateway.

Parses arguments and loads configuration with the usual precedence: config
file, then environment variables, then command-line overrides.
"""

import argparse
from pathlib import Path

from inventory_gateway import __version__
from inventory_gateway.config import Settings, load_settings_from_file


def create_argument_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="inventory-gateway",
        description="Inventory Gateway - session, SSO and data-proxy authorization service",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--config", "-c", type=Path, help="Path to configuration file (YAML or TOML)"
    )

    parser.add_argument(
        "--environment", choices=["lab", "staging", "prod"], help="Deployment environment"
    )

    parser.add_argument("--debug", action="store_true", help="Enable debug mode")

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )

    parser.add_argument("--log-format", choices=["json", "text"], help="Log output format")

    parser.add_argument("--host", help="HTTP server bind address")

    parser.add_argument("--port", type=int, help="HTTP server port")

    parser.add_argument("--supabase-url", help="Base URL of the data/auth service")

    parser.add_argument("--redis-url", help="Redis URL for the OAuth state nonce store")

    parser.add_argument(
        "--generate-cookie-key",
        action="store_true",
        help="Print a new cookie encryption key and exit",
    )

    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {__version__}")

    return parser


def load_config_from_cli(args: list[str] | None = None) -> Settings:
    """Load configuration from CLI arguments and environment.

    Args:
        args: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Configured Settings instance

    Example:
        settings = load_config_from_cli(["--config", "config/prod.yaml", "--port", "9000"])
    """
    parser = create_argument_parser()
    parsed_args = parser.parse_args(args)
    return settings_from_args(parsed_args)


def settings_from_args(parsed_args: argparse.Namespace) -> Settings:
    if parsed_args.config:
        settings = load_settings_from_file(parsed_args.config)
    else:
        settings = Settings()

    cli_overrides: dict = {}

    if parsed_args.environment is not None:
        cli_overrides["environment"] = parsed_args.environment

    if parsed_args.debug:
        cli_overrides["debug"] = True

    if parsed_args.log_level is not None:
        cli_overrides["log_level"] = parsed_args.log_level

    if parsed_args.log_format is not None:
        cli_overrides["log_format"] = parsed_args.log_format

    if parsed_args.host is not None:
        cli_overrides["http_host"] = parsed_args.host

    if parsed_args.port is not None:
        cli_overrides["http_port"] = parsed_args.port

    if parsed_args.supabase_url is not None:
        cli_overrides["supabase_url"] = parsed_args.supabase_url

    if parsed_args.redis_url is not None:
        cli_overrides["redis_url"] = parsed_args.redis_url

    if cli_overrides:
        settings = Settings(**{**settings.model_dump(), **cli_overrides})

    return settings
