# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Remove found probe messages from the mailbox."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..errors import CleanupWarning, ProbeError
from ..logger import get_logger

if TYPE_CHECKING:
    from logging import Logger

    from .client import ImapSession


@dataclass
class CleanupOutcome:
    """Result of the cleanup phase."""

    uids: list[int] = field(default_factory=list)
    warnings: list[CleanupWarning] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings


async def cleanup(session: ImapSession, uids: Iterable[int], logger: Logger | None = None) -> CleanupOutcome:
    """Flag ``uids`` as \\Deleted, then EXPUNGE.

    Failures become warnings on the returned outcome; EXPUNGE is attempted
    even if the STORE failed. Nothing is done for an empty set.
    """
    logger = logger or get_logger("Cleanup")
    outcome = CleanupOutcome(uids=list(uids))
    if not outcome.uids:
        logger.debug("No probe messages to remove")
        return outcome

    for step in (lambda: session.mark_deleted(outcome.uids), session.expunge):
        try:
            await step()
        except ProbeError as exc:
            warning = CleanupWarning(exc.stage, exc.endpoint, exc.cause)
            logger.warning("%s", warning)
            outcome.warnings.append(warning)

    if outcome.ok:
        logger.debug("Removed probe messages %s", outcome.uids)
    return outcome


__all__ = ["CleanupOutcome", "cleanup"]
