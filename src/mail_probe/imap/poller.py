# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Poll the probe mailbox until the tagged message shows up.

Each attempt selects the mailbox, runs ``UID SEARCH SUBJECT "<tag>"`` and
keeps the first non-empty result batch. Polling stops on the first attempt
that finds something; otherwise it sleeps ``budget.interval`` and tries
again, up to ``budget.max_attempts`` attempts or ``budget.deadline`` seconds.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..errors import ProbeCancelledError, ProbeTimeoutError
from ..logger import get_logger

if TYPE_CHECKING:
    from logging import Logger

    from ..config import PollBudget
    from .client import ImapSession


@dataclass
class SearchResultSet:
    """UIDs matching the probe tag, in the order they were first seen.

    Attributes:
        attempts: Number of SELECT/SEARCH rounds performed so far.
        history: ``(attempt, uids)`` for every round, empty lists included.
    """

    attempts: int = 0
    history: list[tuple[int, list[int]]] = field(default_factory=list)
    _uids: dict[int, None] = field(default_factory=dict, repr=False)

    def record(self, attempt: int, uids: list[int]) -> None:
        self.attempts = attempt
        self.history.append((attempt, list(uids)))
        for uid in uids:
            self._uids.setdefault(uid, None)

    @property
    def uids(self) -> list[int]:
        return list(self._uids)

    def __iter__(self) -> Iterator[int]:
        return iter(self._uids)

    def __len__(self) -> int:
        return len(self._uids)

    def __bool__(self) -> bool:
        return bool(self._uids)


class MailboxPoller:
    """Search loop over an authenticated :class:`ImapSession`.

    Args:
        session: Connected IMAP session.
        budget: Attempt ceiling, interval and optional deadline.
        cancel_event: Set it to stop polling early.
        clock: Monotonic clock used for the deadline.
        logger: Optional logger.
        on_attempt: Called with ``(attempt, uids)`` right after every search
            round, so that progress can be shown while polling.
    """

    def __init__(
        self,
        session: ImapSession,
        budget: PollBudget,
        *,
        cancel_event: asyncio.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Logger | None = None,
        on_attempt: Callable[[int, list[int]], None] | None = None,
    ):
        self._session = session
        self._budget = budget
        self._cancel_event = cancel_event
        self._clock = clock
        self._logger = logger or get_logger("MailboxPoller")
        self._on_attempt = on_attempt
        self.results = SearchResultSet()

    def _cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    async def _wait(self, seconds: float) -> None:
        if seconds <= 0:
            return
        if self._cancel_event is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def poll_for_tag(self, tag: str) -> SearchResultSet:
        """Search until ``tag`` is found or the budget is spent.

        Raises:
            ProtocolError: SELECT or SEARCH was rejected (not retried).
            TransportError: The connection dropped.
            ProbeTimeoutError: Budget exhausted with nothing found.
            ProbeCancelledError: The cancel event was set.
        """
        budget = self._budget
        endpoint = self._session.endpoint
        results = self.results = SearchResultSet()
        started = self._clock()

        for attempt in range(1, budget.max_attempts + 1):
            if self._cancelled():
                raise ProbeCancelledError(endpoint, results.attempts)

            await self._session.select_folder()
            batches = await self._session.search_subject(tag)
            found = next((batch for batch in batches if batch), [])
            results.record(attempt, found)
            self._logger.debug("Attempt %d: found messages %s", attempt, found)
            if self._on_attempt is not None:
                self._on_attempt(attempt, found)

            if results:
                return results

            wait = budget.interval
            if budget.deadline is not None:
                remaining = budget.deadline - (self._clock() - started)
                if remaining <= 0:
                    raise ProbeTimeoutError(endpoint, attempt, f"message not delivered within {budget.deadline}s deadline")
                wait = min(wait, remaining)
            await self._wait(wait)

            if self._cancelled():
                raise ProbeCancelledError(endpoint, attempt)
            if budget.deadline is not None and self._clock() - started >= budget.deadline:
                raise ProbeTimeoutError(endpoint, attempt, f"message not delivered within {budget.deadline}s deadline")

        raise ProbeTimeoutError(endpoint, results.attempts)


__all__ = ["MailboxPoller", "SearchResultSet"]
