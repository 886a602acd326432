# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""End-to-end mail delivery probe.

Submits a uniquely tagged message over SMTP, polls an IMAP mailbox until the
message arrives, reports the round-trip time and deletes the message again.

Features:
    - SMTP with STARTTLS or implicit TLS, AUTH PLAIN or CRAM-MD5
    - IMAP polling with attempt budget, deadline and cancellation
    - Typed failures naming the stage and endpoint that broke
    - Prometheus textfile export

Example::

    from mail_probe import Prober, load_config

    config = load_config("/etc/mail-probe.ini")
    outcome = await Prober(config).run()
"""

from .config import (
    AuthMode,
    Credentials,
    ImapConfig,
    PollBudget,
    ProbeConfig,
    SecurityMode,
    SmtpConfig,
    TrustPolicy,
)
from .config_loader import ConfigError, load_config
from .errors import (
    AuthError,
    CleanupWarning,
    ProbeCancelledError,
    ProbeError,
    ProbeTimeoutError,
    ProtocolError,
    Stage,
    TransportError,
)
from .probe import ProbeOutcome, Prober, ProbeStatus, run_probe

__version__ = "0.1.0"

__all__ = [
    "AuthError",
    "AuthMode",
    "CleanupWarning",
    "ConfigError",
    "Credentials",
    "ImapConfig",
    "PollBudget",
    "ProbeCancelledError",
    "ProbeConfig",
    "ProbeError",
    "ProbeOutcome",
    "ProbeStatus",
    "ProbeTimeoutError",
    "Prober",
    "ProtocolError",
    "SecurityMode",
    "SmtpConfig",
    "Stage",
    "TransportError",
    "TrustPolicy",
    "load_config",
    "run_probe",
]
