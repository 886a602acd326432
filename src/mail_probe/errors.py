# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Typed failures raised while running a probe.

Every error carries the protocol stage that failed, the remote endpoint
(``host:port``) and the underlying cause string, so that callers can report
*where* the mail pipeline broke without parsing messages.

Hierarchy::

    ProbeError
    ├── TransportError        connect, DNS, TLS handshake, STARTTLS
    ├── ProtocolError         command rejected by the server
    ├── AuthError             credentials rejected or refused
    ├── ProbeTimeoutError     poll budget exhausted, message not found
    ├── ProbeCancelledError   polling stopped by the embedding context
    └── CleanupWarning        deletion of the probe message failed
"""

from __future__ import annotations

from enum import Enum


class Stage(str, Enum):
    """Probe stages, in the order they are executed."""

    SMTP_CONNECT = "smtp-connect"
    GREETING = "greeting"
    STARTTLS = "starttls"
    AUTH = "auth"
    MAIL = "mail"
    RCPT = "rcpt"
    DATA = "data"
    QUIT = "quit"
    IMAP_CONNECT = "imap-connect"
    IMAP_LOGIN = "imap-login"
    IMAP_SELECT = "imap-select"
    IMAP_SEARCH = "imap-search"
    POLL = "poll"
    IMAP_STORE = "imap-store"
    IMAP_EXPUNGE = "imap-expunge"


class ProbeError(Exception):
    """Base class for probe failures.

    Attributes:
        stage: The stage that failed.
        endpoint: ``host:port`` of the server involved.
        cause: Underlying error text (server reply or library error).
    """

    code = "probe_error"

    def __init__(self, stage: Stage, endpoint: str, cause: str):
        self.stage = Stage(stage)
        self.endpoint = endpoint
        self.cause = cause
        super().__init__(f"{self.stage.value} failed ({endpoint}): {cause}")


class TransportError(ProbeError):
    """Connection, DNS or TLS failure."""

    code = "transport_error"


class ProtocolError(ProbeError):
    """A protocol command was rejected by the server."""

    code = "protocol_error"


class AuthError(ProbeError):
    """Credentials were rejected, or sending them was refused."""

    code = "auth_error"


class ProbeTimeoutError(ProbeError):
    """The probe message was not found within the poll budget."""

    code = "timeout"

    def __init__(self, endpoint: str, attempts: int, cause: str | None = None):
        self.attempts = attempts
        super().__init__(
            Stage.POLL,
            endpoint,
            cause or f"message not delivered within {attempts} poll attempts",
        )


class ProbeCancelledError(ProbeError):
    """Polling was cancelled before the message was found."""

    code = "cancelled"

    def __init__(self, endpoint: str, attempts: int):
        self.attempts = attempts
        super().__init__(Stage.POLL, endpoint, f"cancelled after {attempts} poll attempts")


class CleanupWarning(ProbeError, UserWarning):
    """Removing the probe message from the mailbox failed.

    Never raised out of the probe: collected on the outcome instead.
    """

    code = "cleanup_warning"


__all__ = [
    "AuthError",
    "CleanupWarning",
    "ProbeCancelledError",
    "ProbeError",
    "ProbeTimeoutError",
    "ProtocolError",
    "Stage",
    "TransportError",
]
