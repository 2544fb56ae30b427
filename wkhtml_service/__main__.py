"""
Command-line entry point: ``python -m wkhtml_service`` / ``wkhtml-service``.

Flags override environment variables. Durations accept seconds or Go-style
values (``10s``, ``500ms``). SIGINT/SIGTERM start a graceful shutdown bounded
by ``--graceful-shutdown``; a second signal exits immediately.
"""

import argparse
import logging
import sys
from typing import Dict, List, Optional

import uvicorn
from pydantic import ValidationError

from .app import create_app
from .config import ServiceSettings
from .logging_config import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wkhtml-service",
        description="HTTP service converting HTML to PDF/JPEG with wkhtmltopdf",
    )
    # dest names match ServiceSettings fields; unset flags fall back to env.
    parser.add_argument("--wkhtmltopdf", dest="wkhtmltopdf", help="Path to wkhtmltopdf binary")
    parser.add_argument("--wkhtmltoimage", dest="wkhtmltoimage", help="Path to wkhtmltoimage binary")
    parser.add_argument("--web.address", dest="web_address", help="Address to listen on (default :8080)")
    parser.add_argument("--web.timeout", dest="web_timeout", help="Request timeout (default 10s)")
    parser.add_argument("--web.readTimeout", dest="web_read_timeout", help="Read timeout (default 5s)")
    parser.add_argument("--web.writeTimeout", dest="web_write_timeout", help="Write timeout (default 10s)")
    parser.add_argument(
        "--graceful-shutdown", dest="graceful_shutdown",
        help="Grace period for in-flight requests on shutdown (default 10s)",
    )
    parser.add_argument("--temp-dir", dest="temp_dir", help="Directory for temporary files")
    parser.add_argument("--debug", dest="debug", action="store_true", default=None, help="Debug mode")
    return parser


def settings_from_args(argv: Optional[List[str]] = None) -> ServiceSettings:
    args = build_parser().parse_args(argv)
    overrides: Dict[str, object] = {
        key: value for key, value in vars(args).items() if value is not None
    }
    return ServiceSettings(**overrides)


def main(argv: Optional[List[str]] = None) -> int:
    try:
        settings = settings_from_args(argv)
    except ValidationError as e:
        print(f"Configuration validation failed: {e}", file=sys.stderr)
        return 2

    configure_logging(settings.debug)

    host, port = settings.listen
    logger.info(f"Starting server address={host}:{port} timeout={settings.web_timeout}s")

    uvicorn.run(
        create_app(settings),
        host=host,
        port=port,
        log_config=None,
        access_log=False,
        timeout_graceful_shutdown=settings.graceful_shutdown,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
