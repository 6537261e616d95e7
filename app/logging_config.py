"""
Centralized logging configuration.

Console output always; a rotating file handler when LOG_FILE is configured.
"""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

from flask import Flask


def setup_logging(app: Flask) -> logging.Logger:
    """Configure the root logger from app.config (LOG_LEVEL, LOG_FORMAT, LOG_FILE)."""
    log_level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    formatter = logging.Formatter(app.config.get("LOG_FORMAT") or logging.BASIC_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Re-creating the app (tests) must not stack handlers.
    for handler in list(root_logger.handlers):
        if getattr(handler, "_montaze_handler", False):
            root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    console_handler._montaze_handler = True
    root_logger.addHandler(console_handler)

    log_file = app.config.get("LOG_FILE")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        file_handler._montaze_handler = True
        root_logger.addHandler(file_handler)

    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    app.logger.debug("Logging initialized at level %s", logging.getLevelName(log_level))
    return root_logger
