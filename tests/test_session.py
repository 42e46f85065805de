"""Tests for session token binding."""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import time
from datetime import timezone

from protocol import SESSION_TIME_PLACEHOLDER
from session import SessionBinder, bind, unix_timestamp


def test_token_layout():
    tok = SessionBinder().bind("peer1", "QmHash")
    assert tok.token == f"peer1:QmHash:{SESSION_TIME_PLACEHOLDER}"


def test_placeholder_is_literal():
    assert SESSION_TIME_PLACEHOLDER == "time.Now().String()"


def test_token_does_not_vary_with_time():
    binder = SessionBinder()
    assert binder.bind("p", "h").token == binder.bind("p", "h").token


def test_embed_time():
    binder = SessionBinder(embed_time=True, clock=lambda: 1_700_000_000_000_000_000)
    tok = binder.bind("p", "h")
    assert tok.token == "p:h:2023-11-14T22:13:20+00:00"


def test_issued_at_is_wall_clock():
    before = time.time_ns()
    tok = SessionBinder().bind("p", "h")
    after = time.time_ns()
    assert before <= tok.issued_at_ns <= after + 1
    assert tok.issued_at.tzinfo == timezone.utc


def test_issued_at_strictly_increasing_with_frozen_clock():
    binder = SessionBinder(clock=lambda: 1000)
    stamps = [binder.bind("p", "h").issued_at_ns for _ in range(5)]
    assert stamps == [1000, 1001, 1002, 1003, 1004]


def test_issued_at_unique_across_rapid_calls():
    stamps = {bind("p", "h").issued_at_ns for _ in range(1000)}
    assert len(stamps) == 1000


def test_unix_timestamp():
    uts = unix_timestamp()
    assert uts.isdigit()
    assert abs(int(uts) - int(time.time())) <= 2
