"""Runtime settings: defaults, environment, then command-line flags."""

import argparse
import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

from .models import DEFAULT_MAX_DEPTH

logger = logging.getLogger(__name__)

NOTION_API_BASE = "https://api.notion.com/v1"
NOTION_VERSION = "2025-09-03"

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 2052

ENV_TOKEN = "NOTION_KEY"
ENV_SERVICE_URL = "NOTION_ROOMS_SERVICE_URL"
ENV_ROOT_ID = "NOTION_ROOMS_ROOT_ID"


@dataclass(frozen=True)
class Settings:
    token: Optional[str] = None
    service_url: str = "/"
    api_base: str = NOTION_API_BASE
    notion_version: str = NOTION_VERSION
    timeout: float = 30.0
    metadata_timeout: float = 5.0
    max_depth: int = DEFAULT_MAX_DEPTH
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    root_id: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Defaults overlaid with ``NOTION_*`` environment variables."""
        environ = os.environ if environ is None else environ
        settings = cls()
        overrides = {}
        if environ.get(ENV_TOKEN):
            overrides["token"] = environ[ENV_TOKEN].strip()
        if environ.get(ENV_SERVICE_URL):
            overrides["service_url"] = environ[ENV_SERVICE_URL]
        if environ.get(ENV_ROOT_ID):
            overrides["root_id"] = environ[ENV_ROOT_ID]
        return replace(settings, **overrides)


def read_token_file(path: str) -> str:
    """Read the API token, exiting the process if it is missing or empty."""
    token_path = Path(path).expanduser()
    if not token_path.exists():
        logger.error(f"Token file not found: {token_path}")
        raise SystemExit(1)
    token = token_path.read_text().strip()
    if not token:
        logger.error("Token file is empty")
        raise SystemExit(1)
    logger.info(f"Notion token loaded from {token_path}")
    return token


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Notion Rooms renderer")
    parser.add_argument(
        "--token-file",
        help="Path to file containing Notion API token (overrides $NOTION_KEY)"
    )
    parser.add_argument(
        "--service-url",
        help="Base URL that rendered page links point at (default: /)"
    )
    parser.add_argument(
        "--root-id",
        help="Page rendered by /renderer when no id is given"
    )
    parser.add_argument(
        "--http",
        action="store_true",
        help="Run as HTTP server instead of stdio MCP"
    )
    parser.add_argument("--host", help=f"HTTP bind address (default: {DEFAULT_HOST})")
    parser.add_argument("--port", type=int, help=f"HTTP port (default: {DEFAULT_PORT})")
    return parser


def load_settings(args: argparse.Namespace, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Resolve settings from defaults, the environment and parsed CLI args.

    Raises:
        SystemExit: If no token is available from either source.
    """
    settings = Settings.from_env(environ)
    overrides = {}
    if args.token_file:
        overrides["token"] = read_token_file(args.token_file)
    for name in ("service_url", "root_id", "host", "port"):
        value = getattr(args, name, None)
        if value is not None:
            overrides[name] = value
    settings = replace(settings, **overrides)

    if not settings.token:
        logger.error(f"No Notion token. Pass --token-file <path> or set ${ENV_TOKEN}.")
        raise SystemExit(1)
    return settings
