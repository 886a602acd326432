# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Round-trip probe orchestration.

A probe submits one tagged message over SMTP, then polls the IMAP mailbox
until the message appears, and finally deletes it again::

    tag -> SMTP submit -> IMAP login -> poll -> elapsed -> cleanup -> logout

The elapsed time runs from just before the SMTP connection is opened until
the poll loop reports found or timeout; cleanup is not included. Any fatal
error ends the probe at the failing stage, e.g. an SMTP failure means the
IMAP server is never contacted.

Example:
    Running a probe::

        prober = Prober(config)
        outcome = await prober.run()
        if outcome.delivered:
            print(outcome.seconds)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from .errors import CleanupWarning, ProbeCancelledError, ProbeError, ProbeTimeoutError
from .imap import ImapSession, MailboxPoller, cleanup
from .logger import get_logger
from .message import ProbeMessage, make_tag
from .smtp import SmtpSubmitter

if TYPE_CHECKING:
    from logging import Logger

    from .config import ProbeConfig


class ProbeStatus(str, Enum):
    DELIVERED = "delivered"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class ProbeOutcome:
    """Terminal result of one probe run.

    Attributes:
        status: Final status.
        tag: Correlation tag used as the message subject.
        elapsed: Seconds from submission start to found/timeout, or None
            when the probe failed before polling finished.
        submission_time: Seconds spent in the SMTP session, or None if it
            failed.
        uids: Mailbox UIDs of the found message(s).
        attempts: Number of poll rounds performed.
        history: ``(attempt, uids)`` per poll round.
        error: The failure for every status but DELIVERED.
        cleanup_warnings: Non-fatal problems removing the message.
    """

    status: ProbeStatus
    tag: str
    elapsed: float | None = None
    submission_time: float | None = None
    uids: list[int] = field(default_factory=list)
    attempts: int = 0
    history: list[tuple[int, list[int]]] = field(default_factory=list)
    error: ProbeError | None = None
    cleanup_warnings: list[CleanupWarning] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return self.status is ProbeStatus.DELIVERED

    @property
    def seconds(self) -> int | None:
        """Elapsed time truncated to whole seconds."""
        return None if self.elapsed is None else int(self.elapsed)

    @property
    def submission_seconds(self) -> int | None:
        return None if self.submission_time is None else int(self.submission_time)

    @property
    def cleanup_ok(self) -> bool:
        return not self.cleanup_warnings


class Prober:
    """Runs a single round-trip probe for a :class:`ProbeConfig`.

    Args:
        config: Immutable probe configuration.
        clock: Monotonic clock used for every duration.
        now: Wall clock used for the correlation tag.
        logger: Optional logger.
        on_submitted: Called with the SMTP session duration once the
            message has been accepted.
        on_attempt: Called with ``(attempt, uids)`` after every search round.
    """

    def __init__(
        self,
        config: ProbeConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
        logger: Logger | None = None,
        on_submitted: Callable[[float], None] | None = None,
        on_attempt: Callable[[int, list[int]], None] | None = None,
    ):
        self.config = config
        self._clock = clock
        self._now = now
        self._logger = logger or get_logger("Prober")
        self._on_submitted = on_submitted
        self._on_attempt = on_attempt
        self._cancel_event = asyncio.Event()

    def cancel(self) -> None:
        """Stop polling at the next opportunity; the outcome is CANCELLED."""
        self._cancel_event.set()

    async def run(self) -> ProbeOutcome:
        """Run the probe. Never raises for probe failures; see ``outcome.error``."""
        smtp_config = self.config.smtp
        tag = make_tag(self._now(), smtp_config.subject)
        message = ProbeMessage(mail_from=smtp_config.mail_from, rcpt_to=smtp_config.rcpt_to, tag=tag)
        self._logger.debug("Starting probe with tag %r", tag)

        start = self._clock()
        try:
            await SmtpSubmitter(smtp_config, self.config.trust, logger=self._logger).submit(message)
        except ProbeError as exc:
            self._logger.debug("SMTP submission failed: %s", exc)
            return ProbeOutcome(status=ProbeStatus.FAILED, tag=tag, error=exc)

        submission_time = self._clock() - start
        self._logger.debug("Message submitted to %s in %.3fs", smtp_config.endpoint, submission_time)
        if self._on_submitted is not None:
            self._on_submitted(submission_time)
        outcome = ProbeOutcome(status=ProbeStatus.FAILED, tag=tag, submission_time=submission_time)

        session = ImapSession(self.config.imap, self.config.trust, logger=self._logger)
        poller = MailboxPoller(
            session,
            self.config.poll,
            cancel_event=self._cancel_event,
            clock=self._clock,
            logger=self._logger,
            on_attempt=self._on_attempt,
        )
        try:
            await session.connect()
            results = await poller.poll_for_tag(tag)
            outcome.elapsed = self._clock() - start
            outcome.status = ProbeStatus.DELIVERED
            outcome.uids = results.uids

            cleaned = await cleanup(session, results, logger=self._logger)
            outcome.cleanup_warnings = cleaned.warnings
        except ProbeTimeoutError as exc:
            outcome.elapsed = self._clock() - start
            outcome.status = ProbeStatus.TIMEOUT
            outcome.error = exc
        except ProbeCancelledError as exc:
            outcome.elapsed = self._clock() - start
            outcome.status = ProbeStatus.CANCELLED
            outcome.error = exc
        except ProbeError as exc:
            outcome.error = exc
        finally:
            await session.close()

        outcome.attempts = poller.results.attempts
        outcome.history = poller.results.history
        self._logger.debug("Probe finished: %s", outcome.status.value)
        return outcome


async def run_probe(config: ProbeConfig, **kwargs) -> ProbeOutcome:
    """Convenience wrapper: build a :class:`Prober` and run it."""
    return await Prober(config, **kwargs).run()


__all__ = ["ProbeOutcome", "ProbeStatus", "Prober", "run_probe"]
