#!/usr/bin/env python3
"""Court availability aggregator entry point."""

from __future__ import annotations

import logging

from aiohttp import web

from courtcal.app import create_application
from courtcal.config import get_settings, setup_logging


def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level)

    logger = logging.getLogger("courtcal")
    logger.info("Starting court availability aggregator…")

    app = create_application(settings)
    web.run_app(app, host=settings.host, port=settings.port, print=None)


if __name__ == "__main__":
    main()
