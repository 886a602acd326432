# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Async IMAP session wrapper used to find and remove probe messages."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Iterable
from typing import TYPE_CHECKING

import aioimaplib

from ..config import ImapConfig, TrustPolicy
from ..errors import AuthError, ProtocolError, Stage, TransportError
from ..logger import get_logger
from ..transport import open_imap

if TYPE_CHECKING:
    from logging import Logger

_SEARCH_LINE = re.compile(r"^(?:\*\s+)?(?:SEARCH)?((?:\s*\d+)*)\s*$", re.IGNORECASE)


def quote(value: str) -> str:
    """Quote a string for use as an IMAP search argument."""
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def parse_search_batches(lines: Iterable[bytes | bytearray | str]) -> list[list[int]]:
    """Extract the UID batches from UID SEARCH response lines.

    Each untagged SEARCH line is one batch (possibly empty). The tagged
    completion line and any other text are skipped.

    >>> parse_search_batches([b"SEARCH 4 7", b"SEARCH completed"])
    [[4, 7]]
    """
    batches: list[list[int]] = []
    for line in lines:
        if isinstance(line, (bytes, bytearray)):
            line = bytes(line).decode("utf-8", errors="replace")
        text = line.strip()
        if not text:
            continue
        match = _SEARCH_LINE.match(text)
        if not match:
            continue
        batches.append([int(uid) for uid in match.group(1).split()])
    return batches


class ImapSession:
    """One authenticated IMAP connection to the probe mailbox."""

    def __init__(self, config: ImapConfig, trust: TrustPolicy, logger: Logger | None = None):
        self._config = config
        self._trust = trust
        self._logger = logger or get_logger("ImapSession")
        self._client: aioimaplib.IMAP4 | None = None

    @property
    def endpoint(self) -> str:
        return self._config.endpoint

    async def _command(self, stage: Stage, awaitable: Awaitable):
        """Await one IMAP command and require an OK result."""
        try:
            response = await awaitable
        except (aioimaplib.Abort, aioimaplib.CommandTimeout, OSError, asyncio.TimeoutError) as exc:
            raise TransportError(stage, self.endpoint, str(exc) or type(exc).__name__) from exc
        except aioimaplib.AioImapException as exc:
            raise ProtocolError(stage, self.endpoint, str(exc) or type(exc).__name__) from exc

        if response.result != "OK":
            raise ProtocolError(stage, self.endpoint, f"{response.result} {_describe(response.lines)}")
        return response

    async def connect(self) -> None:
        """Connect and authenticate with LOGIN.

        Raises:
            TransportError: The server could not be reached.
            AuthError: The credentials were rejected.
        """
        self._client = await open_imap(self._config, self._trust)
        credentials = self._config.credentials
        try:
            await self._command(Stage.IMAP_LOGIN, self._client.login(credentials.username, credentials.password))
        except ProtocolError as exc:
            raise AuthError(exc.stage, exc.endpoint, exc.cause) from exc

        self._logger.debug("IMAP connected to %s as %s", self.endpoint, credentials.username)

    def _require_client(self) -> aioimaplib.IMAP4:
        if not self._client:
            raise RuntimeError("Not connected")
        return self._client

    async def select_folder(self) -> None:
        """SELECT the configured mailbox read-write."""
        client = self._require_client()
        await self._command(Stage.IMAP_SELECT, client.select(self._config.mailbox))

    async def search_subject(self, text: str) -> list[list[int]]:
        """UID SEARCH SUBJECT ``text``; returns the result batches."""
        client = self._require_client()
        response = await self._command(
            Stage.IMAP_SEARCH,
            client.uid_search(f"SUBJECT {quote(text)}", charset=None),
        )
        return parse_search_batches(response.lines)

    async def mark_deleted(self, uids: Iterable[int]) -> None:
        """UID STORE +FLAGS (\\Deleted) on ``uids``."""
        client = self._require_client()
        uid_set = ",".join(str(uid) for uid in uids)
        await self._command(Stage.IMAP_STORE, client.uid("store", uid_set, "+FLAGS", "(\\Deleted)"))

    async def expunge(self) -> None:
        client = self._require_client()
        await self._command(Stage.IMAP_EXPUNGE, client.expunge())

    async def close(self) -> None:
        """LOGOUT; failures are only logged."""
        if self._client:
            try:
                await self._client.logout()
            except (aioimaplib.AioImapException, OSError, asyncio.TimeoutError) as exc:
                self._logger.warning("IMAP logout from %s failed: %s", self.endpoint, exc)
            self._client = None
            self._logger.debug("IMAP connection closed")


def _describe(lines: Iterable[bytes | bytearray | str]) -> str:
    parts = []
    for line in lines:
        if isinstance(line, (bytes, bytearray)):
            line = bytes(line).decode("utf-8", errors="replace")
        parts.append(line.strip())
    return " ".join(part for part in parts if part)


__all__ = ["ImapSession", "parse_search_batches", "quote"]
