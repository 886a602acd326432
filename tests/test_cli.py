"""Command-line tests with the probe run replaced by canned outcomes."""

import pytest
from click.testing import CliRunner

from mail_probe import cli
from mail_probe.errors import CleanupWarning, ProtocolError, Stage, TransportError
from mail_probe.probe import ProbeOutcome, ProbeStatus

BASE_ARGS = [
    "--smtp-server", "mx.example.com",
    "--smtp-mail-from", "probe@example.com",
    "--smtp-rcpt", "monitor@example.com",
    "--imap-server", "imap.example.com",
    "--imap-username", "monitor",
    "--imap-password", "secret",
]


@pytest.fixture
def runner(monkeypatch):
    for name in ("MAIL_PROBE_CONFIG", "MAIL_PROBE_SMTP_SERVER", "MAIL_PROBE_IMAP_SERVER"):
        monkeypatch.delenv(name, raising=False)
    return CliRunner()


@pytest.fixture
def fake_outcome(monkeypatch):
    """Replace the Prober so that run() returns the outcome stored in the box."""
    box = {"outcome": None, "configs": [], "hooks": []}

    class FakeProber:
        def __init__(self, config, on_submitted=None, on_attempt=None, **kwargs):
            box["configs"].append(config)
            box["hooks"].append((on_submitted, on_attempt))
            self.on_submitted = on_submitted
            self.on_attempt = on_attempt

        async def run(self):
            outcome = box["outcome"]
            if self.on_submitted is not None and outcome.submission_time is not None:
                self.on_submitted(outcome.submission_time)
            if self.on_attempt is not None:
                for attempt, uids in outcome.history:
                    self.on_attempt(attempt, uids)
            return outcome

    monkeypatch.setattr(cli, "Prober", FakeProber)
    return box


def delivered(**kwargs):
    values = dict(status=ProbeStatus.DELIVERED, tag="t", elapsed=3.7, submission_time=0.4,
                  uids=[42], attempts=2, history=[(1, []), (2, [42])])
    values.update(kwargs)
    return ProbeOutcome(**values)


def test_delivered_output(runner, fake_outcome):
    fake_outcome["outcome"] = delivered()

    result = runner.invoke(cli.main, BASE_ARGS)

    assert result.exit_code == 0
    assert "Time to send and receive message with IMAP (imap.example.com): 3" in result.output
    assert "Found messages" not in result.output


def test_silent_prints_only_seconds(runner, fake_outcome):
    fake_outcome["outcome"] = delivered()

    result = runner.invoke(cli.main, BASE_ARGS + ["--silent"])

    assert result.exit_code == 0
    assert result.output.strip() == "3"


def test_debug_prints_submission_and_attempts(runner, fake_outcome):
    fake_outcome["outcome"] = delivered()

    result = runner.invoke(cli.main, BASE_ARGS + ["--debug"])

    assert "Time to send message from SMTP server (mx.example.com): 0" in result.output
    assert "Found messages: []" in result.output
    assert "Found messages: [42]" in result.output


def test_debug_progress_is_printed_before_the_result(runner, fake_outcome):
    fake_outcome["outcome"] = delivered()

    result = runner.invoke(cli.main, BASE_ARGS + ["--debug"])

    lines = result.output.splitlines()
    assert lines[0].startswith("Time to send message from SMTP server")
    assert lines[1:3] == ["Found messages: []", "Found messages: [42]"]
    assert lines[3].startswith("Time to send and receive message with IMAP")


def test_no_progress_hooks_without_debug(runner, fake_outcome):
    fake_outcome["outcome"] = delivered()

    runner.invoke(cli.main, BASE_ARGS)

    assert fake_outcome["hooks"] == [(None, None)]


def test_timeout_exit_code(runner, fake_outcome):
    fake_outcome["outcome"] = ProbeOutcome(status=ProbeStatus.TIMEOUT, tag="t", elapsed=200.2, attempts=200)

    result = runner.invoke(cli.main, BASE_ARGS)

    assert result.exit_code == 2
    assert "Message not delivered within budget" in result.output
    assert "200" in result.output


def test_failure_reports_stage(runner, fake_outcome):
    error = ProtocolError(Stage.MAIL, "mx.example.com:25", "550 Sender rejected")
    fake_outcome["outcome"] = ProbeOutcome(status=ProbeStatus.FAILED, tag="t", error=error)

    result = runner.invoke(cli.main, BASE_ARGS)

    assert result.exit_code == 1
    assert "mail failed (mx.example.com:25): 550 Sender rejected" in result.output


def test_cleanup_warning_does_not_change_exit_code(runner, fake_outcome):
    warning = CleanupWarning(Stage.IMAP_EXPUNGE, "imap.example.com:143", "NO EXPUNGE failed")
    fake_outcome["outcome"] = delivered(cleanup_warnings=[warning])

    result = runner.invoke(cli.main, BASE_ARGS)

    assert result.exit_code == 0
    assert "Warning:" in result.output


def test_flags_map_to_config(runner, fake_outcome):
    fake_outcome["outcome"] = delivered()

    runner.invoke(cli.main, BASE_ARGS + [
        "--smtp-server-port", "587",
        "--smtp-starttls",
        "--smtp-username", "probe",
        "--smtp-password", "pw",
        "--smtp-cram",
        "--imap-tls",
        "--max-attempts", "10",
        "--interval", "0.5",
        "--verify-certs",
    ])

    config = fake_outcome["configs"][0]
    assert config.smtp.port == 587
    assert config.smtp.security.value == "starttls"
    assert config.smtp.auth_mode.value == "cram-md5"
    assert config.imap.use_tls
    assert config.poll.max_attempts == 10
    assert config.poll.interval == 0.5
    assert config.trust.value == "verify"


def test_missing_settings_exit_one(runner, fake_outcome):
    result = runner.invoke(cli.main, ["--smtp-server", "mx.example.com"])

    assert result.exit_code == 1
    assert "Error:" in result.output
    assert fake_outcome["configs"] == []


def test_missing_config_file(runner, fake_outcome, tmp_path):
    result = runner.invoke(cli.main, ["--config", str(tmp_path / "nope.ini")])

    assert result.exit_code == 1
    assert "Config file not found" in result.output


def test_metrics_file_written(runner, fake_outcome, tmp_path):
    fake_outcome["outcome"] = ProbeOutcome(
        status=ProbeStatus.FAILED,
        tag="t",
        error=TransportError(Stage.SMTP_CONNECT, "mx.example.com:25", "Connection refused"),
    )
    path = tmp_path / "mail_probe.prom"

    result = runner.invoke(cli.main, BASE_ARGS + ["--metrics-file", str(path)])

    assert result.exit_code == 1
    assert 'mail_probe_failures_total{stage="smtp-connect"} 1.0' in path.read_text()
