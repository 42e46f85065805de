"""Storage upload client for offline signing.

Thin request executor with a pluggable transport interface, plus the
upload session driver that fetches unsigned work, signs it locally and
submits the result. Default transport: HTTP against the node API.

The driver holds no session state of its own; the coordinator decides what
comes next after each accepted submission.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from urllib.parse import urlencode

import httpx

from codec import Encoding, string_to_bytes
from contract import Contracts, sign_contracts
from errors import SchemaError, TransportError, UploadError, UploadTimeoutError
from identity import Identity, api_url
from payment import (
    UnsignedData,
    encode_balance_payload,
    encode_channel_commit,
    encode_payin_request,
    encode_signed_data,
    sign_balance_data,
    sign_channel_commit,
    sign_data,
    sign_payin_request,
)
from protocol import (
    API_PREFIX,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SESSION_TIMEOUT,
    OPT_HOSTS,
    OPT_STORAGE_LENGTH,
    OPT_UPLOAD_MODE,
    PATH_GET_CONTRACT_BATCH,
    PATH_GET_UNSIGNED,
    PATH_SIGN,
    PATH_SIGN_CONTRACT_BATCH,
    PATH_UPLOAD,
    PATH_UPLOAD_OFFLINE,
    PATH_UPLOAD_STATUS,
    REQUEST_TIMEOUT,
    SessionStatus,
)
from session import SessionBinder, unix_timestamp

logger = logging.getLogger(__name__)


class Transport(ABC):
    """Executes one coordinator command. Override for other carriers."""

    @abstractmethod
    def execute(self, path: str, *args, options: dict | None = None):
        """Run *path* with ordered string arguments; return the decoded response."""
        ...


def _query_value(value) -> bytes:
    if isinstance(value, bytes):
        return value
    # raw payloads may carry non-UTF-8 bytes as surrogate escapes
    return string_to_bytes(str(value), Encoding.TEXT)


class HTTPTransport(Transport):
    """Default. POSTs to the node's HTTP API: each argument is a repeated
    `arg` query parameter, options are named parameters."""

    def __init__(self, base_url: str | None = None, timeout: float = REQUEST_TIMEOUT,
                 client: httpx.Client | None = None):
        self.base_url = (base_url or api_url()).rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def _url(self, path: str, args, options: dict | None) -> str:
        params = [("arg", _query_value(a)) for a in args]
        params.extend((k, _query_value(v)) for k, v in (options or {}).items())
        url = f"{self.base_url}{API_PREFIX}/{path}"
        return f"{url}?{urlencode(params)}" if params else url

    def execute(self, path: str, *args, options: dict | None = None):
        url = self._url(path, args, options)
        try:
            resp = self._client.post(url, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise TransportError(f"{path}: {e}") from e
        if resp.status_code >= 400:
            raise TransportError(f"{path}: {_error_message(resp)}", status_code=resp.status_code)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return resp.content

    def close(self):
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}: {resp.text[:200]}"
    if isinstance(body, dict) and body.get("Message"):
        return body["Message"]
    return f"HTTP {resp.status_code}: {resp.text[:200]}"


# ---------------------------------------------------------------------------
# Upload options
# ---------------------------------------------------------------------------

def upload_mode(mode: str) -> dict:
    return {OPT_UPLOAD_MODE: mode}


def hosts(host_list: str) -> dict:
    return {OPT_HOSTS: host_list}


def storage_length(days: int) -> dict:
    """Storage period, in days."""
    return {OPT_STORAGE_LENGTH: str(days)}


def _merge(options) -> dict:
    merged = {}
    for opt in options:
        merged.update(opt)
    return merged


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Shard:
    contract_id: str = ""
    price: int = 0
    host: str = ""
    status: str = ""


@dataclass(frozen=True)
class StorageStatus:
    status: str = ""
    message: str = ""
    file_hash: str = ""
    shards: dict = field(default_factory=dict)

    @classmethod
    def from_response(cls, data: dict | None) -> "StorageStatus":
        data = data or {}
        if not isinstance(data, dict):
            raise SchemaError(f"upload status must be an object, got {type(data).__name__}")
        raw_shards = data.get("Shards") or {}
        if not isinstance(raw_shards, dict):
            raise SchemaError("upload status Shards must be an object")
        shards = {}
        for name, s in raw_shards.items():
            if not isinstance(s, dict):
                raise SchemaError(f"upload status shard {name!r} is malformed")
            try:
                price = int(s.get("Price", 0) or 0)
            except (TypeError, ValueError) as e:
                raise SchemaError(f"upload status shard {name!r}: bad price: {e}") from e
            shards[name] = Shard(
                contract_id=s.get("ContractId", ""),
                price=price,
                host=s.get("Host", ""),
                status=s.get("Status", ""),
            )
        return cls(
            status=data.get("Status", ""),
            message=data.get("Message", ""),
            file_hash=data.get("FileHash", ""),
            shards=shards,
        )


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------

class StorageClient:
    """High-level client for offline-signed storage uploads."""

    def __init__(self, identity: Identity, transport: Transport | None = None,
                 base_url: str | None = None, binder: SessionBinder | None = None):
        self.identity = identity
        self._owns_transport = transport is None
        self.transport = transport or HTTPTransport(base_url)
        self.binder = binder or SessionBinder()

    def close(self):
        """Close the transport, if this client created it."""
        if self._owns_transport:
            self.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    @staticmethod
    def get_uts() -> str:
        return unix_timestamp()

    def _token(self, file_hash: str):
        return self.binder.bind(self.identity.peer_id, file_hash)

    # --- session setup ---

    def upload(self, file_hash: str, *options) -> str:
        """Start an online upload. Returns the session id."""
        resp = self.transport.execute(PATH_UPLOAD, file_hash, options=_merge(options))
        return _session_id(resp)

    def upload_offline(self, file_hash: str, uts: str, *options) -> str:
        """Start an upload whose signing happens on this client. Returns the session id."""
        token = self._token(file_hash)
        resp = self.transport.execute(
            PATH_UPLOAD_OFFLINE, file_hash, self.identity.peer_id, uts, token.token,
            options=_merge(options),
        )
        session_id = _session_id(resp)
        logger.info("offline upload of %s started: session %s", file_hash, session_id)
        return session_id

    def upload_status(self, session_id: str) -> StorageStatus:
        return StorageStatus.from_response(self.transport.execute(PATH_UPLOAD_STATUS, session_id))

    # --- fetch unsigned work ---

    def get_contract_batch(self, session_id: str, file_hash: str, uts: str,
                           session_status: str) -> Contracts:
        token = self._token(file_hash)
        resp = self.transport.execute(
            PATH_GET_CONTRACT_BATCH, session_id, self.identity.peer_id, uts, token.token,
            session_status,
        )
        return Contracts.from_response(resp)

    def get_unsigned_data(self, session_id: str, file_hash: str, uts: str,
                          session_status: str) -> UnsignedData:
        token = self._token(file_hash)
        resp = self.transport.execute(
            PATH_GET_UNSIGNED, session_id, self.identity.peer_id, uts, token.token,
            session_status,
        )
        return UnsignedData.from_response(resp)

    # --- submit signed work ---

    def sign_batch(self, session_id: str, file_hash: str, contracts: Contracts, uts: str,
                   session_status: str):
        private_key = self.identity.require_private_key()
        token = self._token(file_hash)
        signed = sign_contracts(contracts, private_key, session_status)
        logger.info("submitting %d signed contracts for session %s", len(signed), session_id)
        return self.transport.execute(
            PATH_SIGN_CONTRACT_BATCH, session_id, self.identity.peer_id, uts, token.token,
            session_status, signed.to_json(),
        )

    def _submit(self, session_id: str, token: str, uts: str, payload: str, session_status: str):
        logger.debug("submitting %d char payload for %s", len(payload), session_status)
        return self.transport.execute(
            PATH_SIGN, session_id, self.identity.peer_id, uts, token, payload, session_status,
        )

    def sign(self, session_id: str, file_hash: str, unsigned: UnsignedData, uts: str,
             session_status: str):
        token = self._token(file_hash)
        payload = encode_signed_data(sign_data(unsigned, self.identity))
        return self._submit(session_id, token.token, uts, payload, session_status)

    def sign_balance(self, session_id: str, file_hash: str, unsigned: UnsignedData, uts: str,
                     session_status: str):
        token = self._token(file_hash)
        payload = encode_balance_payload(sign_balance_data(unsigned, self.identity))
        return self._submit(session_id, token.token, uts, payload, session_status)

    def sign_pay_channel(self, session_id: str, file_hash: str, unsigned: UnsignedData, uts: str,
                         session_status: str, total_price: int):
        self.identity.require_private_key()
        token = self._token(file_hash)
        signed = sign_channel_commit(unsigned, self.identity, total_price, token.issued_at_ns)
        return self._submit(session_id, token.token, uts, encode_channel_commit(signed), session_status)

    def sign_pay_request(self, session_id: str, file_hash: str, unsigned: UnsignedData, uts: str,
                         session_status: str):
        token = self._token(file_hash)
        payload = encode_payin_request(sign_payin_request(unsigned, self.identity))
        return self._submit(session_id, token.token, uts, payload, session_status)


def _session_id(resp) -> str:
    if isinstance(resp, dict):
        return str(resp.get("ID", resp.get("id", "")))
    raise TransportError(f"unexpected upload response: {resp!r}")


# ---------------------------------------------------------------------------
# Offline session runner
# ---------------------------------------------------------------------------

class OfflineSession:
    """Polls an offline upload and answers each signing request in turn.

    Args:
        client: StorageClient carrying the buyer identity.
        file_hash: Content hash of the uploaded file.
        total_price: Amount committed to the escrow payment channel.
        poll_interval: Seconds between status polls.
        timeout: Overall deadline for the session, in seconds.
    """

    BATCH_STATUSES = (SessionStatus.INIT_SIGN_READY_ESCROW, SessionStatus.INIT_SIGN_READY_GUARD)

    def __init__(self, client: StorageClient, file_hash: str, total_price: int = 0,
                 poll_interval: float = DEFAULT_POLL_INTERVAL,
                 timeout: float = DEFAULT_SESSION_TIMEOUT,
                 sleep=time.sleep, monotonic=time.monotonic):
        self.client = client
        self.file_hash = file_hash
        self.total_price = total_price
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._sleep = sleep
        self._monotonic = monotonic

    def step(self, session_id: str, uts: str, status: str) -> bool:
        """Handle one signing request. Returns False if *status* needs no signature."""
        c = self.client
        if status in (s.value for s in self.BATCH_STATUSES):
            batch = c.get_contract_batch(session_id, self.file_hash, uts, status)
            c.sign_batch(session_id, self.file_hash, batch, uts, status)
            return True

        if status == SessionStatus.BALANCE_SIGN_READY.value:
            submit = c.sign_balance
        elif status == SessionStatus.PAY_CHANNEL_SIGN_READY.value:
            def submit(*args):
                return c.sign_pay_channel(*args, self.total_price)
        elif status == SessionStatus.PAY_REQUEST_SIGN_READY.value:
            submit = c.sign_pay_request
        elif status == SessionStatus.GUARD_SIGN_READY.value:
            submit = c.sign
        else:
            return False
        unsigned = c.get_unsigned_data(session_id, self.file_hash, uts, status)
        submit(session_id, self.file_hash, unsigned, uts, status)
        return True

    def run(self, session_id: str, uts: str) -> StorageStatus:
        """Drive the session until the coordinator reports complete."""
        self.client.identity.require_private_key()
        deadline = self._monotonic() + self.timeout
        handled = set()
        while True:
            state = self.client.upload_status(session_id)
            if state.status == SessionStatus.COMPLETE.value:
                logger.info("session %s complete", session_id)
                return state
            if state.status == SessionStatus.ERROR.value:
                raise UploadError(f"session {session_id} failed: {state.message}")
            if state.status not in handled:
                if self.step(session_id, uts, state.status):
                    logger.info("session %s: answered %s", session_id, state.status)
                    handled.add(state.status)
            if self._monotonic() >= deadline:
                raise UploadTimeoutError(
                    f"session {session_id} not complete after {self.timeout}s (last status {state.status!r})"
                )
            self._sleep(self.poll_interval)
