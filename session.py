"""Session identity binding for offline signing requests.

Every request in an upload session carries a correlation token built from
the peer id and the content hash. The token is an audit/dedup aid for the
coordinator; it is not a cryptographic signature and is never verified here.
"""

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from protocol import SESSION_TIME_PLACEHOLDER, SESSION_TOKEN_DELIMITER


@dataclass(frozen=True)
class SessionToken:
    token: str
    issued_at_ns: int

    @property
    def issued_at(self) -> datetime:
        return datetime.fromtimestamp(self.issued_at_ns / 1e9, tz=timezone.utc)


class SessionBinder:
    """Builds session tokens and hands out strictly increasing issue times.

    embed_time=False reproduces the token the coordinator has always
    received: a fixed placeholder in the time slot. issued_at_ns is real
    wall-clock time either way and doubles as the channel commit payer id.
    """

    def __init__(self, embed_time: bool = False, clock=time.time_ns):
        self.embed_time = embed_time
        self._clock = clock
        self._last_ns = 0
        self._lock = threading.Lock()

    def _now_ns(self) -> int:
        with self._lock:
            now = self._clock()
            if now <= self._last_ns:
                now = self._last_ns + 1
            self._last_ns = now
            return now

    def bind(self, peer_id: str, content_hash: str) -> SessionToken:
        issued_at_ns = self._now_ns()
        if self.embed_time:
            stamp = datetime.fromtimestamp(issued_at_ns / 1e9, tz=timezone.utc)
            time_part = stamp.isoformat()
        else:
            time_part = SESSION_TIME_PLACEHOLDER
        token = SESSION_TOKEN_DELIMITER.join((peer_id, content_hash, time_part))
        return SessionToken(token=token, issued_at_ns=issued_at_ns)


_default_binder = SessionBinder()


def bind(peer_id: str, content_hash: str) -> SessionToken:
    """Bind with the process-wide default binder (placeholder time slot)."""
    return _default_binder.bind(peer_id, content_hash)


def unix_timestamp() -> str:
    """The 'uts' request argument: unix seconds as a decimal string."""
    return str(int(time.time()))
