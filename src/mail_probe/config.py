# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Configuration dataclasses for the mail probe.

Provides a nested, immutable configuration structure:
- config.smtp.host
- config.imap.mailbox
- config.poll.max_attempts

A ``ProbeConfig`` is built once (see ``mail_probe.config_loader``) and passed
explicitly to every component; nothing mutates it afterwards.
"""

from __future__ import annotations

import socket
from dataclasses import dataclass, field
from enum import Enum

DEFAULT_SUBJECT = "Delivery quality monitoring"
DEFAULT_MAILBOX = "INBOX"
DEFAULT_MAX_ATTEMPTS = 200
DEFAULT_POLL_INTERVAL = 1.0


class SecurityMode(str, Enum):
    """How the SMTP session is protected.

    Attributes:
        NONE: Plaintext for the whole session.
        STARTTLS: Plaintext greeting, then upgraded with STARTTLS.
        IMPLICIT_TLS: TLS handshake right after connecting (SMTPS).
    """

    NONE = "none"
    STARTTLS = "starttls"
    IMPLICIT_TLS = "implicit-tls"


class AuthMode(str, Enum):
    """SMTP authentication mechanism."""

    NONE = "none"
    PLAIN = "plain"
    CRAM_MD5 = "cram-md5"


class TrustPolicy(str, Enum):
    """How server certificates are validated.

    Attributes:
        INSECURE: Accept any certificate, including self-signed ones. This is
            the default because the probe measures delivery, it is not a
            security boundary.
        VERIFY: Verify the chain against the system store and check the
            hostname.
    """

    INSECURE = "insecure"
    VERIFY = "verify"


@dataclass(frozen=True)
class Credentials:
    """Username and password pair."""

    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


@dataclass(frozen=True)
class SmtpConfig:
    """SMTP submission endpoint and envelope."""

    host: str
    mail_from: str
    rcpt_to: str
    port: int = 25
    hello_name: str = field(default_factory=socket.gethostname)
    """Client identity sent with EHLO/HELO."""

    credentials: Credentials | None = None
    """Absent means no authentication."""

    auth_mode: AuthMode = AuthMode.PLAIN
    """Mechanism used when credentials are set."""

    security: SecurityMode = SecurityMode.NONE
    subject: str = DEFAULT_SUBJECT

    @property
    def endpoint(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def effective_auth_mode(self) -> AuthMode:
        """Auth mode actually used: NONE whenever no credentials are set."""
        if self.credentials is None:
            return AuthMode.NONE
        return self.auth_mode


@dataclass(frozen=True)
class ImapConfig:
    """IMAP mailbox that receives the probe message."""

    host: str
    credentials: Credentials
    port: int = 143
    use_tls: bool = False
    mailbox: str = DEFAULT_MAILBOX

    @property
    def endpoint(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class PollBudget:
    """Bounds on the IMAP search loop."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    """Maximum number of SELECT/SEARCH rounds."""

    interval: float = DEFAULT_POLL_INTERVAL
    """Seconds slept between two unsuccessful rounds."""

    deadline: float | None = None
    """Optional cap in seconds on the whole poll phase."""

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval < 0:
            raise ValueError("interval must not be negative")
        if self.deadline is not None and self.deadline <= 0:
            raise ValueError("deadline must be positive")


@dataclass(frozen=True)
class ProbeConfig:
    """Main configuration container for a probe run.

    Example:
        config = ProbeConfig(
            smtp=SmtpConfig(host="mx.example.com", mail_from="probe@example.com",
                            rcpt_to="monitor@example.com"),
            imap=ImapConfig(host="imap.example.com",
                            credentials=Credentials("monitor", "secret")),
            poll=PollBudget(max_attempts=60),
        )
    """

    smtp: SmtpConfig
    imap: ImapConfig
    poll: PollBudget = field(default_factory=PollBudget)
    trust: TrustPolicy = TrustPolicy.INSECURE
    debug: bool = False
    """Expose submission timing and per-attempt matches."""

    silent: bool = False
    """Report the bare elapsed seconds only."""


__all__ = [
    "AuthMode",
    "Credentials",
    "DEFAULT_MAILBOX",
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_SUBJECT",
    "ImapConfig",
    "PollBudget",
    "ProbeConfig",
    "SecurityMode",
    "SmtpConfig",
    "TrustPolicy",
]
