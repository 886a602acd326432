# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics describing a probe run.

All metrics use the ``mail_probe_`` prefix and live in a private registry so
that one process can hold several independent metric sets (tests, embedding).

Metrics exposed:
    - ``mail_probe_success``: 1 if the message was delivered, else 0.
    - ``mail_probe_delivery_seconds``: Round-trip time of the last probe.
    - ``mail_probe_submission_seconds``: Time spent in the SMTP session.
    - ``mail_probe_poll_attempts``: IMAP search rounds of the last probe.
    - ``mail_probe_cleanup_ok``: 1 if the probe message was removed.
    - ``mail_probe_last_run_timestamp_seconds``: Unix time of the last probe.
    - ``mail_probe_failures_total``: Counter of failed probes per stage.

Example:
    Writing a node-exporter textfile after a run::

        metrics = ProbeMetrics()
        metrics.observe(outcome)
        metrics.write_textfile("/var/lib/node_exporter/mail_probe.prom")
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest, write_to_textfile

if TYPE_CHECKING:
    from .probe import ProbeOutcome


class ProbeMetrics:
    """Prometheus gauges and counters for probe outcomes.

    Attributes:
        registry: The CollectorRegistry holding all metrics.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()
        self.success = Gauge(
            "mail_probe_success",
            "1 if the probe message was delivered within budget",
            registry=self.registry,
        )
        self.delivery_seconds = Gauge(
            "mail_probe_delivery_seconds",
            "Seconds from SMTP submission start to IMAP found or timeout",
            registry=self.registry,
        )
        self.submission_seconds = Gauge(
            "mail_probe_submission_seconds",
            "Seconds spent in the SMTP session",
            registry=self.registry,
        )
        self.poll_attempts = Gauge(
            "mail_probe_poll_attempts",
            "IMAP search rounds performed",
            registry=self.registry,
        )
        self.cleanup_ok = Gauge(
            "mail_probe_cleanup_ok",
            "1 if the probe message was removed from the mailbox",
            registry=self.registry,
        )
        self.last_run = Gauge(
            "mail_probe_last_run_timestamp_seconds",
            "Unix time the last probe finished",
            registry=self.registry,
        )
        self.failures = Counter(
            "mail_probe_failures_total",
            "Failed probes by stage",
            ["stage"],
            registry=self.registry,
        )

    def observe(self, outcome: ProbeOutcome) -> None:
        """Record one probe outcome."""
        self.success.set(1 if outcome.delivered else 0)
        if outcome.elapsed is not None:
            self.delivery_seconds.set(outcome.elapsed)
        if outcome.submission_time is not None:
            self.submission_seconds.set(outcome.submission_time)
        self.poll_attempts.set(outcome.attempts)
        self.cleanup_ok.set(1 if outcome.delivered and outcome.cleanup_ok else 0)
        if outcome.error is not None:
            self.failures.labels(stage=outcome.error.stage.value).inc()
        self.last_run.set(time.time())

    def generate_latest(self) -> bytes:
        """Export all metrics in Prometheus text exposition format."""
        return generate_latest(self.registry)

    def write_textfile(self, path: str) -> None:
        """Atomically write the metrics for the node-exporter textfile collector."""
        write_to_textfile(path, self.registry)


__all__ = ["ProbeMetrics"]
