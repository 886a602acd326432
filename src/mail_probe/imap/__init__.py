# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""IMAP side of the probe: session, search loop and cleanup."""

from .cleanup import CleanupOutcome, cleanup
from .client import ImapSession
from .poller import MailboxPoller, SearchResultSet

__all__ = ["CleanupOutcome", "ImapSession", "MailboxPoller", "SearchResultSet", "cleanup"]
