"""Serve the dockvault HTTP API: ``python -m dockvault [--port PORT]``."""

from __future__ import annotations

import argparse
import logging
import os
from typing import List, Optional

import uvicorn

from .telemetry import configure_logging

logger = logging.getLogger("dockvault")


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Run the dockvault API server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", "8000")))
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")
    args = parser.parse_args(argv)

    configure_logging(os.environ.get("DOCKVAULT_LOG_LEVEL", "INFO"))
    if os.environ.get("DOCKVAULT_INDEX_BACKEND", "in-memory") == "in-memory":
        logger.warning("Using the in-memory index; metadata is lost on restart unless DOCKVAULT_INDEX_STATE_PATH is set")
    logger.info("Starting dockvault API on %s:%d", args.host, args.port)
    uvicorn.run("dockvault.api.server:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
