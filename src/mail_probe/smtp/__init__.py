# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SMTP submission of the probe message."""

from .submitter import SessionState, SmtpSubmitter

__all__ = ["SessionState", "SmtpSubmitter"]
