# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Transport layer: plain or TLS streams to SMTP and IMAP servers.

The byte streams themselves are owned by ``aiosmtplib`` and ``aioimaplib``;
this module decides how they are secured and maps every connection or
handshake failure to :class:`~mail_probe.errors.TransportError` carrying the
failing ``host:port``.

Security modes:
- Plain: no TLS at all.
- Implicit TLS: TLS handshake before any protocol bytes (SMTPS, IMAPS).
- Plain then upgrade: the SMTP driver calls :func:`upgrade_smtp` after EHLO.

Trust policy:
    ``TrustPolicy.INSECURE`` accepts self-signed and otherwise unverifiable
    certificates. The probe measures delivery latency and is not a security
    boundary, so this is the default; ``TrustPolicy.VERIFY`` restores full
    chain and hostname verification.
"""

from __future__ import annotations

import asyncio
import ssl

import aioimaplib
import aiosmtplib

from .config import ImapConfig, SecurityMode, SmtpConfig, TrustPolicy
from .errors import Stage, TransportError
from .logger import get_logger

logger = get_logger("Transport")

LOCALHOST_NAMES = frozenset({"localhost", "127.0.0.1", "::1"})


def build_tls_context(trust: TrustPolicy) -> ssl.SSLContext:
    """Create the client TLS context for a trust policy."""
    context = ssl.create_default_context()
    if TrustPolicy(trust) is TrustPolicy.INSECURE:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def is_localhost(host: str) -> bool:
    return host.strip("[]").lower() in LOCALHOST_NAMES


async def open_smtp(config: SmtpConfig, trust: TrustPolicy) -> aiosmtplib.SMTP:
    """Connect to the SMTP server and read its greeting.

    Implicit TLS is negotiated here when configured; STARTTLS is left to the
    caller so that it happens after EHLO.

    Raises:
        TransportError: Connection refused, DNS failure, TLS handshake failure
            or an unusable greeting.
    """
    implicit = config.security is SecurityMode.IMPLICIT_TLS
    smtp = aiosmtplib.SMTP(
        hostname=config.host,
        port=config.port,
        local_hostname=config.hello_name,
        use_tls=implicit,
        start_tls=False,
        validate_certs=TrustPolicy(trust) is TrustPolicy.VERIFY,
        tls_context=build_tls_context(trust) if implicit else None,
    )
    try:
        await smtp.connect()
    except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as exc:
        raise TransportError(Stage.SMTP_CONNECT, config.endpoint, str(exc) or type(exc).__name__) from exc

    logger.debug("SMTP connected to %s (implicit_tls=%s)", config.endpoint, implicit)
    return smtp


async def upgrade_smtp(smtp: aiosmtplib.SMTP, config: SmtpConfig, trust: TrustPolicy) -> None:
    """Upgrade an established SMTP session with STARTTLS.

    There is no fallback to plaintext: a missing extension, a rejected command
    or a failed handshake all raise.

    Raises:
        TransportError: The upgrade could not be completed.
    """
    try:
        await smtp.starttls(tls_context=build_tls_context(trust))
    except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as exc:
        raise TransportError(Stage.STARTTLS, config.endpoint, str(exc) or type(exc).__name__) from exc

    logger.debug("SMTP session to %s upgraded with STARTTLS", config.endpoint)


async def open_imap(config: ImapConfig, trust: TrustPolicy) -> aioimaplib.IMAP4:
    """Connect to the IMAP server and wait for its greeting.

    Raises:
        TransportError: The server could not be reached or the TLS handshake
            failed.
    """
    try:
        if config.use_tls:
            client = aioimaplib.IMAP4_SSL(
                host=config.host,
                port=config.port,
                ssl_context=build_tls_context(trust),
            )
        else:
            client = aioimaplib.IMAP4(host=config.host, port=config.port)
        await client.wait_hello_from_server()
    except (OSError, asyncio.TimeoutError) as exc:
        raise TransportError(Stage.IMAP_CONNECT, config.endpoint, str(exc) or type(exc).__name__) from exc

    logger.debug("IMAP connected to %s (tls=%s)", config.endpoint, config.use_tls)
    return client


__all__ = [
    "build_tls_context",
    "is_localhost",
    "open_imap",
    "open_smtp",
    "upgrade_smtp",
]
