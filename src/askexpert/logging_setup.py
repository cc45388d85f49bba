from __future__ import annotations

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    # stderr only: stdout carries JSON-RPC frames in stdio mode.
    level_name = (level or os.environ.get("ASK_EXPERT_LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
    # httpx logs every request line at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
