# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Command-line interface for the mail delivery probe.

Usage:
    mail-probe --smtp-server mx.example.com --smtp-mail-from probe@example.com \\
        --smtp-rcpt monitor@example.com --imap-server imap.example.com \\
        --imap-username monitor --imap-password secret

    # Only print the delivery time, for scripting
    mail-probe --config /etc/mail-probe.ini --silent

    # Export the result for the node-exporter textfile collector
    mail-probe --config /etc/mail-probe.ini --metrics-file /var/lib/node_exporter/mail_probe.prom

Exit codes:
    0  message delivered
    1  probe failed (or invalid configuration)
    2  message not delivered within the poll budget
"""

from __future__ import annotations

import asyncio
import os
import sys
from typing import Any

import click
from rich.console import Console
from rich.markup import escape

from .config import DEFAULT_MAX_ATTEMPTS, DEFAULT_POLL_INTERVAL, ProbeConfig
from .config_loader import ConfigError, load_config
from .logger import configure_logging
from .probe import ProbeOutcome, Prober, ProbeStatus
from .prometheus import ProbeMetrics

EXIT_DELIVERED = 0
EXIT_FAILED = 1
EXIT_NOT_DELIVERED = 2

console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)


def run_async(coro):
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]Error:[/red] {message}", soft_wrap=True)


def print_warning(message: str) -> None:
    err_console.print(f"[yellow]Warning:[/yellow] {message}", soft_wrap=True)


def progress_hooks(config: ProbeConfig) -> dict[str, Any]:
    """Prober callbacks that print progress live in debug mode."""
    if not config.debug:
        return {}

    def on_submitted(seconds: float) -> None:
        console.print(f"Time to send message from SMTP server ({escape(config.smtp.host)}): {int(seconds)}")

    def on_attempt(attempt: int, uids: list[int]) -> None:
        console.print(f"Found messages: {uids}", markup=False)

    return {"on_submitted": on_submitted, "on_attempt": on_attempt}


def report(config: ProbeConfig, outcome: ProbeOutcome) -> int:
    """Print the outcome the way the operator asked for; return the exit code."""
    for warning in outcome.cleanup_warnings:
        print_warning(str(warning))

    if outcome.status is ProbeStatus.FAILED:
        print_error(str(outcome.error))
        return EXIT_FAILED

    if config.silent:
        console.print(str(outcome.seconds))
    elif outcome.delivered:
        console.print(f"Time to send and receive message with IMAP ({escape(config.imap.host)}): {outcome.seconds}")
    else:
        console.print(
            f"[yellow]Message not delivered within budget[/yellow] ({escape(config.imap.host)}): {outcome.seconds}",
            soft_wrap=True,
        )
    return EXIT_DELIVERED if outcome.delivered else EXIT_NOT_DELIVERED


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="INI file with probe settings (env: MAIL_PROBE_CONFIG).")
@click.option("--smtp-server", default=None, help="SMTP server host.")
@click.option("--smtp-server-port", type=int, default=None, help="SMTP server port. Default 25.")
@click.option("--smtp-hello-name", default=None, help="Name sent with EHLO. Default: current hostname.")
@click.option("--smtp-username", default=None, help="SMTP user. Omit to skip authentication.")
@click.option("--smtp-password", default=None, help="SMTP password, required with --smtp-username.")
@click.option("--smtp-cram", is_flag=True, default=None, help="Authenticate with CRAM-MD5 instead of PLAIN.")
@click.option("--smtp-starttls", is_flag=True, default=None, help="Upgrade the SMTP session with STARTTLS.")
@click.option("--ssl-on-connect", is_flag=True, default=None, help="Use TLS from the start of the SMTP connection.")
@click.option("--smtp-mail-from", default=None, help="Sender address.")
@click.option("--smtp-rcpt", default=None, help="Recipient address.")
@click.option("--smtp-subject", default=None, help="Subject text appended to the timestamp tag.")
@click.option("--imap-server", default=None, help="IMAP server host.")
@click.option("--imap-server-port", type=int, default=None, help="IMAP server port. Default 143.")
@click.option("--imap-username", default=None, help="IMAP user.")
@click.option("--imap-password", default=None, help="IMAP password.")
@click.option("--imap-tls", is_flag=True, default=None, help="Connect to IMAP over TLS.")
@click.option("--imap-mailbox", default=None, help="Mailbox to search. Default INBOX.")
@click.option("--max-attempts", type=click.IntRange(min=1), default=None,
              help=f"Maximum IMAP search rounds. Default {DEFAULT_MAX_ATTEMPTS}.")
@click.option("--interval", type=click.FloatRange(min=0), default=None,
              help=f"Seconds between search rounds. Default {DEFAULT_POLL_INTERVAL:g}.")
@click.option("--deadline", type=click.FloatRange(min=0, min_open=True), default=None,
              help="Give up polling after this many seconds.")
@click.option("--verify-certs/--insecure", "verify_certs", default=None,
              help="Verify server certificates. Default: accept any certificate.")
@click.option("--debug", is_flag=True, default=None, help="Show submission time and matches per attempt.")
@click.option("--silent", is_flag=True, default=None, help="Print only the delivery time in seconds.")
@click.option("--metrics-file", type=click.Path(dir_okay=False), default=None,
              help="Write Prometheus metrics to this textfile.")
@click.option("--log-level", default=None, help="Logging level (env: MAIL_PROBE_LOG_LEVEL). Default WARNING.")
def main(config_path: str | None, metrics_file: str | None, log_level: str | None, **options: Any) -> None:
    """Send a tagged message over SMTP and time its arrival in an IMAP mailbox."""
    configure_logging(log_level or os.getenv("MAIL_PROBE_LOG_LEVEL", "WARNING"))

    try:
        config = load_config(config_path, overrides=options)
    except (ConfigError, FileNotFoundError) as exc:
        print_error(str(exc))
        sys.exit(EXIT_FAILED)

    outcome = run_async(Prober(config, **progress_hooks(config)).run())
    exit_code = report(config, outcome)

    if metrics_file:
        metrics = ProbeMetrics()
        metrics.observe(outcome)
        try:
            metrics.write_textfile(metrics_file)
        except OSError as exc:
            print_error(f"cannot write metrics file {metrics_file}: {exc}")
            exit_code = exit_code or EXIT_FAILED

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
