"""Shared fixtures: a real local SMTP server and a scriptable fake IMAP server."""

from __future__ import annotations

import socket
import types
from typing import Any

import pytest
from aiosmtpd.controller import Controller
from aiosmtpd.smtp import AuthResult

from mail_probe.config import (
    AuthMode,
    Credentials,
    ImapConfig,
    PollBudget,
    ProbeConfig,
    SecurityMode,
    SmtpConfig,
)


def get_free_port() -> int:
    """Find a free port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        s.listen(1)
        port = s.getsockname()[1]
    return port


class CapturingHandler:
    """SMTP handler that records envelope commands and captured messages."""

    def __init__(self):
        self.messages: list[dict[str, Any]] = []
        self.mail_from: list[str] = []
        self.reject_mail = False

    async def handle_MAIL(self, server, session, envelope, address, mail_options):
        self.mail_from.append(address)
        if self.reject_mail:
            return "550 Sender rejected"
        envelope.mail_from = address
        envelope.mail_options.extend(mail_options)
        return "250 OK"

    async def handle_RCPT(self, server, session, envelope, address, rcpt_options):
        envelope.rcpt_tos.append(address)
        return "250 OK"

    async def handle_DATA(self, server, session, envelope):
        self.messages.append({
            "from": envelope.mail_from,
            "to": envelope.rcpt_tos,
            "data": envelope.content.decode("utf-8", errors="replace"),
        })
        return "250 Message accepted for delivery"


class PasswordAuthenticator:
    """aiosmtpd authenticator accepting a single user."""

    def __init__(self, username: str, password: str):
        self.username = username.encode()
        self.password = password.encode()
        self.attempts: list[tuple[str, bytes]] = []

    def __call__(self, server, session, envelope, mechanism, auth_data):
        self.attempts.append((mechanism, auth_data.login))
        ok = auth_data.login == self.username and auth_data.password == self.password
        # handled=False lets aiosmtpd send the 535 reply itself
        return AuthResult(success=ok, handled=False)


@pytest.fixture
def smtp_handler():
    """Create a fresh SMTP handler."""
    return CapturingHandler()


@pytest.fixture
def smtp_server(smtp_handler):
    """Start a fake SMTP server on a free port."""
    port = get_free_port()
    controller = Controller(smtp_handler, hostname="127.0.0.1", port=port)
    controller.start()
    yield controller, port
    controller.stop()


@pytest.fixture
def smtp_authenticator():
    return PasswordAuthenticator("probe", "s3cret")


@pytest.fixture
def smtp_auth_server(smtp_handler, smtp_authenticator):
    """Fake SMTP server that accepts AUTH PLAIN without TLS."""
    port = get_free_port()
    controller = Controller(
        smtp_handler,
        hostname="127.0.0.1",
        port=port,
        authenticator=smtp_authenticator,
        auth_require_tls=False,
    )
    controller.start()
    yield controller, port
    controller.stop()


def imap_response(result: str = "OK", lines: list[bytes] | None = None):
    return types.SimpleNamespace(result=result, lines=lines or [b"completed"])


class FakeImapServer:
    """Scripted mailbox shared by every fake client created during a test.

    Attributes:
        found_on_attempt: SEARCH round that first returns ``uids``; None means
            never.
        commands: ``(command, args)`` issued by all clients.
    """

    def __init__(self):
        self.found_on_attempt: int | None = 1
        self.uids: list[int] = [42]
        self.search_lines: list[bytes] | None = None
        self.login_ok = True
        self.select_ok = True
        self.store_ok = True
        self.expunge_ok = True
        self.refuse_connection = False
        self.select_error: Exception | None = None
        self.searches = 0
        self.commands: list[tuple[str, tuple]] = []
        self.clients: list[FakeImapClient] = []

    def names(self) -> list[str]:
        return [name for name, _args in self.commands]


class FakeImapClient:
    """Stand-in for ``aioimaplib.IMAP4`` / ``IMAP4_SSL``."""

    def __init__(self, server: FakeImapServer, host: str, port: int, ssl_context=None):
        self.server = server
        self.host = host
        self.port = port
        self.ssl_context = ssl_context

    async def wait_hello_from_server(self):
        if self.server.refuse_connection:
            raise ConnectionRefusedError(111, "Connection refused")

    async def login(self, user, password):
        self.server.commands.append(("LOGIN", (user,)))
        if self.server.login_ok:
            return imap_response()
        return imap_response("NO", [b"[AUTHENTICATIONFAILED] Authentication failed."])

    async def select(self, mailbox="INBOX"):
        self.server.commands.append(("SELECT", (mailbox,)))
        if self.server.select_error is not None:
            raise self.server.select_error
        if self.server.select_ok:
            return imap_response(lines=[b"[UIDVALIDITY 1] UIDs valid", b"[READ-WRITE] Select completed"])
        return imap_response("NO", [b"Mailbox doesn't exist"])

    async def uid_search(self, *criteria, charset="utf-8"):
        self.server.commands.append(("UID SEARCH", criteria))
        self.server.searches += 1
        if self.server.search_lines is not None:
            return imap_response(lines=self.server.search_lines)
        found = self.server.found_on_attempt
        if found is not None and self.server.searches >= found:
            uids = " ".join(str(uid) for uid in self.server.uids)
            return imap_response(lines=[f"SEARCH {uids}".encode(), b"Search completed (0.001 + 0.000 secs)."])
        return imap_response(lines=[b"SEARCH", b"Search completed (0.001 + 0.000 secs)."])

    async def uid(self, command, *args):
        self.server.commands.append((f"UID {command.upper()}", args))
        if self.server.store_ok:
            return imap_response()
        return imap_response("NO", [b"STORE failed"])

    async def expunge(self):
        self.server.commands.append(("EXPUNGE", ()))
        if self.server.expunge_ok:
            return imap_response()
        return imap_response("NO", [b"EXPUNGE failed"])

    async def logout(self):
        self.server.commands.append(("LOGOUT", ()))
        return imap_response("BYE")


@pytest.fixture
def imap_server(monkeypatch):
    """Patch aioimaplib so that every connection talks to a FakeImapServer."""
    server = FakeImapServer()

    def plain(host, port, **kwargs):
        client = FakeImapClient(server, host, port)
        server.clients.append(client)
        return client

    def tls(host, port, ssl_context=None, **kwargs):
        client = FakeImapClient(server, host, port, ssl_context=ssl_context)
        server.clients.append(client)
        return client

    monkeypatch.setattr("mail_probe.transport.aioimaplib.IMAP4", plain)
    monkeypatch.setattr("mail_probe.transport.aioimaplib.IMAP4_SSL", tls)
    return server


def make_config(
    smtp_port: int = 25,
    *,
    smtp_host: str = "127.0.0.1",
    credentials: Credentials | None = None,
    auth_mode: AuthMode = AuthMode.PLAIN,
    security: SecurityMode = SecurityMode.NONE,
    max_attempts: int = 5,
    interval: float = 0.01,
    deadline: float | None = None,
) -> ProbeConfig:
    """Build a probe config pointing at local test servers."""
    return ProbeConfig(
        smtp=SmtpConfig(
            host=smtp_host,
            port=smtp_port,
            hello_name="probe.test",
            mail_from="probe@example.com",
            rcpt_to="monitor@example.com",
            credentials=credentials,
            auth_mode=auth_mode,
            security=security,
        ),
        imap=ImapConfig(
            host="imap.test",
            port=143,
            credentials=Credentials("monitor", "secret"),
        ),
        poll=PollBudget(max_attempts=max_attempts, interval=interval, deadline=deadline),
    )


@pytest.fixture
def probe_config():
    """Factory for probe configs, see ``make_config``."""
    return make_config


@pytest.fixture
def unused_port():
    """A localhost port with nothing listening on it."""
    return get_free_port()
