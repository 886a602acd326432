# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Build a validated :class:`~mail_probe.config.ProbeConfig`.

Settings come from three layers, highest priority first:

1. Explicit overrides (command-line flags).
2. An INI file (``--config`` or ``MAIL_PROBE_CONFIG``).
3. ``MAIL_PROBE_*`` environment variables.

Config file sections/keys::

    [smtp]
    server = mx.example.com
    port = 587
    hello_name = probe.example.com
    username = probe
    password = secret
    cram = false
    starttls = true
    ssl_on_connect = false
    mail_from = probe@example.com
    rcpt = monitor@example.com
    subject = Delivery quality monitoring

    [imap]
    server = imap.example.com
    port = 993
    username = monitor
    password = secret
    tls = true
    mailbox = INBOX

    [poll]
    max_attempts = 200
    interval = 1
    deadline = 300

    [tls]
    verify_certs = false

    [output]
    debug = false
    silent = false

Environment variables use the flattened name, e.g. ``MAIL_PROBE_SMTP_SERVER``,
``MAIL_PROBE_IMAP_PASSWORD``, ``MAIL_PROBE_MAX_ATTEMPTS``.
"""

from __future__ import annotations

import configparser
import os
import socket
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .config import (
    DEFAULT_MAILBOX,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SUBJECT,
    AuthMode,
    Credentials,
    ImapConfig,
    PollBudget,
    ProbeConfig,
    SecurityMode,
    SmtpConfig,
    TrustPolicy,
)
from .logger import get_logger

ENV_PREFIX = "MAIL_PROBE_"
CONFIG_ENV = "MAIL_PROBE_CONFIG"

# (section, option) -> settings field
INI_FIELDS: dict[tuple[str, str], str] = {
    ("smtp", "server"): "smtp_server",
    ("smtp", "port"): "smtp_server_port",
    ("smtp", "hello_name"): "smtp_hello_name",
    ("smtp", "username"): "smtp_username",
    ("smtp", "password"): "smtp_password",
    ("smtp", "cram"): "smtp_cram",
    ("smtp", "starttls"): "smtp_starttls",
    ("smtp", "ssl_on_connect"): "ssl_on_connect",
    ("smtp", "mail_from"): "smtp_mail_from",
    ("smtp", "rcpt"): "smtp_rcpt",
    ("smtp", "subject"): "smtp_subject",
    ("imap", "server"): "imap_server",
    ("imap", "port"): "imap_server_port",
    ("imap", "username"): "imap_username",
    ("imap", "password"): "imap_password",
    ("imap", "tls"): "imap_tls",
    ("imap", "mailbox"): "imap_mailbox",
    ("poll", "max_attempts"): "max_attempts",
    ("poll", "interval"): "interval",
    ("poll", "deadline"): "deadline",
    ("tls", "verify_certs"): "verify_certs",
    ("output", "debug"): "debug",
    ("output", "silent"): "silent",
}

logger = get_logger("ConfigLoader")


class ConfigError(ValueError):
    """Raised when the probe settings are missing or inconsistent."""


class ProbeSettings(BaseModel):
    """Flat, validated probe settings as accepted from the outside world."""

    model_config = ConfigDict(extra="forbid")

    smtp_server: Annotated[str, Field(min_length=1, description="SMTP server host")]
    smtp_server_port: Annotated[int, Field(default=25, gt=0, lt=65536)]
    smtp_hello_name: Annotated[str | None, Field(default=None, description="EHLO name, default local hostname")]
    smtp_username: Annotated[str | None, Field(default=None)]
    smtp_password: Annotated[str | None, Field(default=None)]
    smtp_cram: Annotated[bool, Field(default=False, description="Use CRAM-MD5 instead of PLAIN")]
    smtp_starttls: Annotated[bool, Field(default=False)]
    ssl_on_connect: Annotated[bool, Field(default=False)]
    smtp_mail_from: Annotated[str, Field(min_length=1, description="Envelope and header sender")]
    smtp_rcpt: Annotated[str, Field(min_length=1, description="Envelope and header recipient")]
    smtp_subject: Annotated[str, Field(default=DEFAULT_SUBJECT)]

    imap_server: Annotated[str, Field(min_length=1)]
    imap_server_port: Annotated[int, Field(default=143, gt=0, lt=65536)]
    imap_username: Annotated[str, Field(min_length=1)]
    imap_password: Annotated[str, Field(min_length=1)]
    imap_tls: Annotated[bool, Field(default=False)]
    imap_mailbox: Annotated[str, Field(default=DEFAULT_MAILBOX, min_length=1)]

    max_attempts: Annotated[int, Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)]
    interval: Annotated[float, Field(default=DEFAULT_POLL_INTERVAL, ge=0)]
    deadline: Annotated[float | None, Field(default=None, gt=0)]

    verify_certs: Annotated[bool, Field(default=False)]
    debug: Annotated[bool, Field(default=False)]
    silent: Annotated[bool, Field(default=False)]

    @field_validator("smtp_username", "smtp_password", "smtp_hello_name", "deadline", mode="before")
    @classmethod
    def blank_is_none(cls, v: Any) -> Any:
        """Treat empty strings from INI files and env vars as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def check_consistency(self) -> "ProbeSettings":
        if self.smtp_username and not self.smtp_password:
            raise ValueError("smtp_password is required when smtp_username is set")
        if self.smtp_starttls and self.ssl_on_connect:
            raise ValueError("smtp_starttls and ssl_on_connect are mutually exclusive")
        return self

    def to_config(self) -> ProbeConfig:
        """Convert to the immutable configuration used by the probe."""
        if self.ssl_on_connect:
            security = SecurityMode.IMPLICIT_TLS
        elif self.smtp_starttls:
            security = SecurityMode.STARTTLS
        else:
            security = SecurityMode.NONE

        smtp_credentials = None
        if self.smtp_username:
            smtp_credentials = Credentials(self.smtp_username, self.smtp_password or "")

        smtp = SmtpConfig(
            host=self.smtp_server,
            port=self.smtp_server_port,
            hello_name=self.smtp_hello_name or socket.gethostname(),
            credentials=smtp_credentials,
            auth_mode=AuthMode.CRAM_MD5 if self.smtp_cram else AuthMode.PLAIN,
            security=security,
            mail_from=self.smtp_mail_from,
            rcpt_to=self.smtp_rcpt,
            subject=self.smtp_subject,
        )
        imap = ImapConfig(
            host=self.imap_server,
            port=self.imap_server_port,
            credentials=Credentials(self.imap_username, self.imap_password),
            use_tls=self.imap_tls,
            mailbox=self.imap_mailbox,
        )
        return ProbeConfig(
            smtp=smtp,
            imap=imap,
            poll=PollBudget(max_attempts=self.max_attempts, interval=self.interval, deadline=self.deadline),
            trust=TrustPolicy.VERIFY if self.verify_certs else TrustPolicy.INSECURE,
            debug=self.debug,
            silent=self.silent,
        )


def read_ini(config_path: str | os.PathLike[str]) -> dict[str, str]:
    """Read known keys from an INI file into flat settings names.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    parser = configparser.ConfigParser(interpolation=None)
    parser.read(path)

    values: dict[str, str] = {}
    for section in parser.sections():
        for option, value in parser.items(section):
            name = INI_FIELDS.get((section, option))
            if name is None:
                logger.warning("Ignoring unknown key [%s] %s in %s", section, option, path)
                continue
            values[name] = value
    return values


def read_env(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Collect ``MAIL_PROBE_<FIELD>`` variables."""
    environ = os.environ if environ is None else environ
    values: dict[str, str] = {}
    for name in ProbeSettings.model_fields:
        value = environ.get(ENV_PREFIX + name.upper())
        if value is not None:
            values[name] = value
    return values


def format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error["loc"])
        message = error["msg"].removeprefix("Value error, ")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


def load_settings(
    config_path: str | os.PathLike[str] | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ProbeSettings:
    """Merge environment, INI file and overrides, then validate.

    ``None`` values in ``overrides`` are ignored so that unset CLI flags do
    not mask lower layers.

    Raises:
        ConfigError: Validation failed.
        FileNotFoundError: ``config_path`` does not exist.
    """
    environ = os.environ if environ is None else environ
    merged: dict[str, Any] = read_env(environ)

    config_path = config_path or environ.get(CONFIG_ENV)
    if config_path:
        merged.update(read_ini(config_path))

    if overrides:
        merged.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return ProbeSettings(**merged)
    except ValidationError as exc:
        raise ConfigError(format_validation_error(exc)) from exc


def load_config(
    config_path: str | os.PathLike[str] | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ProbeConfig:
    """Shortcut for ``load_settings(...).to_config()``."""
    return load_settings(config_path, overrides, environ).to_config()


__all__ = [
    "ConfigError",
    "ProbeSettings",
    "format_validation_error",
    "load_config",
    "load_settings",
    "read_env",
    "read_ini",
]
