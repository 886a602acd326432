# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Logging utilities for the mail probe.

The actual logging setup (level, handlers, format) is configured once via
``logging.basicConfig()`` in the command-line entry point; library modules
only ask for named loggers.

Example:
    Typical usage in a module::

        from mail_probe.logger import get_logger

        logger = get_logger("SmtpSubmitter")
        logger.debug("EHLO accepted")
"""

import logging

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str = "MailProbe") -> logging.Logger:
    """Retrieve a logger instance.

    Handlers and formatters are not configured here; that is left to the
    application entry point.

    Args:
        name: The logger name. Defaults to "MailProbe".

    Returns:
        A ``logging.Logger`` instance bound to the given name.
    """
    return logging.getLogger(name)


def configure_logging(level: str | int = "WARNING") -> None:
    """Configure the root logger for command-line use.

    Args:
        level: Level name (``"DEBUG"``, ``"INFO"``...) or numeric level.
            Unknown names fall back to WARNING.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        force=True,
    )
