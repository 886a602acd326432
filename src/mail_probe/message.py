# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Correlation tag and probe message construction."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from email.policy import SMTP

TAG_TIME_FORMAT = "%Y%m%d%H%M%S"
PROBE_BODY = "Test message to monitor mail delivery"


def make_tag(start: datetime, subject: str) -> str:
    """Build the correlation tag for a probe started at ``start``.

    The timestamp has second resolution and sorts lexicographically; the
    configured subject text is appended verbatim.

    >>> make_tag(datetime(2024, 3, 9, 7, 5, 1), "Delivery quality monitoring")
    '20240309070501Delivery quality monitoring'
    """
    return start.strftime(TAG_TIME_FORMAT) + subject


@dataclass(frozen=True)
class ProbeMessage:
    """The message submitted over SMTP. Its Subject is the correlation tag."""

    mail_from: str
    rcpt_to: str
    tag: str
    body: str = PROBE_BODY

    def to_email(self) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.mail_from
        msg["To"] = self.rcpt_to
        msg["Subject"] = self.tag
        msg.set_content(self.body)
        return msg

    def as_bytes(self) -> bytes:
        """Wire form with CRLF line endings, ready for DATA."""
        return self.to_email().as_bytes(policy=SMTP)


__all__ = ["PROBE_BODY", "ProbeMessage", "TAG_TIME_FORMAT", "make_tag"]
