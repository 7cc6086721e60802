"""HTTP entry point for Password Trainer."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Iterable

import uvicorn

from pwtrainer.errors import StartupValidationError
from pwtrainer.logging_config import configure_logging
from pwtrainer.settings import load_settings
from pwtrainer.web import create_app

LOGGER = logging.getLogger(__name__)


def _parse_args(argv: Iterable[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Password Trainer check service")
    parser.add_argument("--host", default=os.getenv("PWTRAINER_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PWTRAINER_PORT", "8080")))
    return parser.parse_args(list(argv))


def main(argv: Iterable[str] | None = None) -> int:
    configure_logging()
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    try:
        settings = load_settings()
        app = create_app(settings)
    except StartupValidationError as exc:
        for message in exc.messages:
            LOGGER.error("Refusing to start: %s", message)
        return 1
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        proxy_headers=True,
        forwarded_allow_ips=settings.forwarded_allow_ips,
        log_config=None,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
