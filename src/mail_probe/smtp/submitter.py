# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SMTP submission of the probe message.

The session is a strictly sequential state machine::

    CONNECTED -> GREETED -> [SECURITY_UPGRADED] -> [AUTHENTICATED]
      -> SENDER_SET -> RECIPIENT_SET -> DATA_OPEN -> DATA_SENT -> CLOSED

The first failing transition ends the submission with a typed error naming
the stage; nothing is retried. A failed QUIT is only logged because the
message has already been accepted at that point.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from enum import Enum
from typing import TYPE_CHECKING, TypeVar

import aiosmtplib

from ..config import AuthMode, SecurityMode, SmtpConfig, TrustPolicy
from ..errors import AuthError, ProtocolError, Stage, TransportError
from ..logger import get_logger
from ..transport import is_localhost, open_smtp, upgrade_smtp

if TYPE_CHECKING:
    from logging import Logger

    from ..message import ProbeMessage

T = TypeVar("T")


class SessionState(str, Enum):
    """States reached by an SMTP submission session."""

    IDLE = "idle"
    CONNECTED = "connected"
    GREETED = "greeted"
    SECURITY_UPGRADED = "security-upgraded"
    AUTHENTICATED = "authenticated"
    SENDER_SET = "sender-set"
    RECIPIENT_SET = "recipient-set"
    DATA_OPEN = "data-open"
    DATA_SENT = "data-sent"
    CLOSED = "closed"


class SmtpSubmitter:
    """Drives one SMTP session that submits one probe message.

    Attributes:
        state: Last state successfully reached.
        history: Every state reached, in order.
    """

    def __init__(self, config: SmtpConfig, trust: TrustPolicy, logger: Logger | None = None):
        self._config = config
        self._trust = trust
        self._logger = logger or get_logger("SmtpSubmitter")
        self._smtp: aiosmtplib.SMTP | None = None
        self.state = SessionState.IDLE
        self.history: list[SessionState] = []

    def _advance(self, state: SessionState) -> None:
        self.state = state
        self.history.append(state)

    async def _step(self, stage: Stage, awaitable: Awaitable[T]) -> T:
        """Await one protocol command, mapping failures to the taxonomy."""
        endpoint = self._config.endpoint
        try:
            return await awaitable
        except aiosmtplib.SMTPAuthenticationError as exc:
            raise AuthError(stage, endpoint, f"{exc.code} {exc.message}") from exc
        except aiosmtplib.SMTPResponseException as exc:
            raise ProtocolError(stage, endpoint, f"{exc.code} {exc.message}") from exc
        except (aiosmtplib.SMTPServerDisconnected, aiosmtplib.SMTPTimeoutError, OSError, asyncio.TimeoutError) as exc:
            raise TransportError(stage, endpoint, str(exc) or type(exc).__name__) from exc
        except aiosmtplib.SMTPException as exc:
            raise ProtocolError(stage, endpoint, str(exc)) from exc

    async def submit(self, message: ProbeMessage) -> None:
        """Run the whole session for ``message``.

        Raises:
            TransportError: Connection, STARTTLS or mid-session disconnect.
            AuthError: Credentials rejected or refused over plaintext.
            ProtocolError: Any other command rejected by the server.
        """
        self._smtp = await open_smtp(self._config, self._trust)
        self._advance(SessionState.CONNECTED)
        try:
            await self._greet(Stage.GREETING)
            self._advance(SessionState.GREETED)

            if self._config.security is SecurityMode.STARTTLS:
                await upgrade_smtp(self._smtp, self._config, self._trust)
                await self._greet(Stage.STARTTLS)
                self._advance(SessionState.SECURITY_UPGRADED)

            if self._config.effective_auth_mode is not AuthMode.NONE:
                await self._authenticate()
                self._advance(SessionState.AUTHENTICATED)

            await self._step(Stage.MAIL, self._smtp.mail(message.mail_from))
            self._advance(SessionState.SENDER_SET)

            await self._step(Stage.RCPT, self._smtp.rcpt(message.rcpt_to))
            self._advance(SessionState.RECIPIENT_SET)

            self._advance(SessionState.DATA_OPEN)
            response = await self._step(Stage.DATA, self._smtp.data(message.as_bytes()))
            self._advance(SessionState.DATA_SENT)
            self._logger.debug("SMTP %s accepted message: %s", self._config.endpoint, response.message)
        except BaseException:
            self._smtp.close()
            raise

        await self._quit()

    async def _greet(self, stage: Stage) -> None:
        """EHLO with the configured hello name, falling back to HELO."""
        hello_name = self._config.hello_name
        try:
            await self._step(stage, self._smtp.ehlo(hostname=hello_name))
        except ProtocolError as exc:
            self._logger.debug("EHLO rejected by %s (%s), trying HELO", self._config.endpoint, exc.cause)
            await self._step(stage, self._smtp.helo(hostname=hello_name))

    async def _authenticate(self) -> None:
        credentials = self._config.credentials
        endpoint = self._config.endpoint

        if self._config.auth_mode is AuthMode.CRAM_MD5:
            await self._step(Stage.AUTH, self._smtp.auth_crammd5(credentials.username, credentials.password))
            self._logger.debug("SMTP %s authenticated with CRAM-MD5", endpoint)
            return

        encrypted = self._config.security is not SecurityMode.NONE
        if not encrypted and not is_localhost(self._config.host):
            raise AuthError(Stage.AUTH, endpoint, "refusing AUTH PLAIN over an unencrypted connection")
        await self._step(Stage.AUTH, self._smtp.auth_plain(credentials.username, credentials.password))
        self._logger.debug("SMTP %s authenticated with PLAIN", endpoint)

    async def _quit(self) -> None:
        try:
            await self._step(Stage.QUIT, self._smtp.quit())
        except (ProtocolError, TransportError) as exc:
            self._logger.warning("Ignoring QUIT failure: %s", exc)
            self._smtp.close()
        self._advance(SessionState.CLOSED)


__all__ = ["SessionState", "SmtpSubmitter"]
