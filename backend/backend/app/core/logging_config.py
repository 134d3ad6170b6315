from __future__ import annotations

import logging

from app.core import config

DEV_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(message)s"
PROD_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str | int | None = None, fmt: str | None = None) -> None:
    """Configure root logging once for the API process."""
    level = _coerce_level(level if level is not None else config.LOG_LEVEL)
    fmt = fmt or config.LOG_FORMAT

    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        root.addHandler(logging.StreamHandler())

    formatter = logging.Formatter(PROD_FORMAT if fmt == "prod" else DEV_FORMAT)
    for handler in root.handlers:
        handler.setFormatter(formatter)

    if level > logging.DEBUG:
        for noisy in ("sqlalchemy.engine", "uvicorn.access"):
            logging.getLogger(noisy).setLevel(logging.WARNING)


def _coerce_level(raw_level) -> int:
    if isinstance(raw_level, int):
        return raw_level
    if isinstance(raw_level, str):
        candidate = raw_level.strip().upper()
        return getattr(logging, candidate, logging.INFO)
    return logging.INFO
