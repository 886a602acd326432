"""Tests for the correlation tag and probe message."""

from dataclasses import FrozenInstanceError
from datetime import datetime
from email import message_from_bytes

import pytest

from mail_probe.message import PROBE_BODY, ProbeMessage, make_tag


def test_tag_is_deterministic():
    start = datetime(2024, 3, 9, 7, 5, 1, 999999)
    assert make_tag(start, "Delivery quality monitoring") == make_tag(start, "Delivery quality monitoring")
    assert make_tag(start, "Delivery quality monitoring") == "20240309070501Delivery quality monitoring"


def test_tag_has_second_resolution():
    a = make_tag(datetime(2024, 1, 1, 0, 0, 0, 1), "x")
    b = make_tag(datetime(2024, 1, 1, 0, 0, 0, 900000), "x")
    c = make_tag(datetime(2024, 1, 1, 0, 0, 1), "x")
    assert a == b
    assert a < c


def test_message_headers_and_body():
    message = ProbeMessage(mail_from="probe@example.com", rcpt_to="monitor@example.com", tag="20240101000000probe")
    raw = message.as_bytes()

    assert b"\r\n" in raw
    parsed = message_from_bytes(raw)
    assert parsed["From"] == "probe@example.com"
    assert parsed["To"] == "monitor@example.com"
    assert parsed["Subject"] == "20240101000000probe"
    assert parsed.get_payload().strip() == PROBE_BODY


def test_message_is_immutable():
    message = ProbeMessage(mail_from="a@example.com", rcpt_to="b@example.com", tag="t")
    with pytest.raises(FrozenInstanceError):
        message.tag = "other"
