"""A Stratum mining-pool client driven by socket and timer events."""

from __future__ import annotations

import json
import logging
import string
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

from dogewallet.events import Signal

log = logging.getLogger(__name__)

RECONNECT_TIMER_INTERVAL = 30.0
RESPONSE_TIMER_INTERVAL = 10.0

_METHOD_LOGIN = "login"
_METHOD_JOB = "job"
_METHOD_SUBMIT = "submit"

_UINT32_MASK = 0xFFFFFFFF
_HEX_DIGITS = frozenset(string.hexdigits)


@dataclass(frozen=True)
class Job:
    """A unit of mining work announced by the pool."""

    job_id: str
    target: int
    blob: bytes


class JobSlot:
    """The current job of one pool together with its nonce counter.

    Shared between the pool client, which replaces the job, and the workers,
    which read it and draw nonces from it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._job: Optional[Job] = None
        self._nonce = 0

    @property
    def job(self) -> Optional[Job]:
        with self._lock:
            return self._job

    @property
    def nonce(self) -> int:
        with self._lock:
            return self._nonce

    def replace(self, job: Job) -> None:
        """Install ``job`` and restart the nonce counter at zero."""
        with self._lock:
            self._job = job
            self._nonce = 0

    def clear(self) -> None:
        with self._lock:
            self._job = None

    def next_nonce(self) -> int:
        """Advance the 32-bit nonce counter and return the new value."""
        with self._lock:
            self._nonce = (self._nonce + 1) & _UINT32_MASK
            return self._nonce


class Transport(Protocol):
    """The byte stream to the pool; events come back through the client's methods."""

    def connect(self, host: str, port: int) -> None: ...

    def write(self, data: bytes) -> None: ...

    def disconnect(self) -> None: ...

    def abort(self) -> None: ...


def _from_hex(text: Any) -> bytes:
    if not isinstance(text, str):
        return b""
    digits = "".join(ch for ch in text if ch in _HEX_DIGITS)
    if len(digits) % 2:
        digits = "0" + digits
    return bytes.fromhex(digits)


def parse_target(target_hex: str) -> int:
    """Decode a hex target as a little-endian 32-bit number (0 if too short)."""
    raw = _from_hex(target_hex)
    if len(raw) < 4:
        return 0
    return int.from_bytes(raw[:4], "little")


def encode_nonce(nonce: int) -> str:
    """Hex of the nonce as four little-endian bytes."""
    return (nonce & _UINT32_MASK).to_bytes(4, "little").hex()


def difficulty_for_target(target: int) -> int:
    """The share difficulty that a 32-bit target stands for (0 for no target)."""
    if target <= 0:
        return 0
    return _UINT32_MASK // target


@dataclass(frozen=True)
class _PendingRequest:
    method: str
    params: Dict[str, Any]


class StratumClient:
    """Logs in to a pool, tracks its jobs and submits shares.

    The owner reports transport events through :meth:`connected`,
    :meth:`feed` and :meth:`socket_error`, and fires the timers through
    :meth:`response_timed_out` and :meth:`reconnect_due` while
    ``response_timer_active`` or ``reconnect_timer_active`` is set.

    Signals: ``started()``, ``stopped()``, ``errored()``,
    ``difficulty_changed(difficulty)``, ``good_share_count_changed(count)``,
    ``bad_share_count_changed(count)``,
    ``connection_error_count_changed(count)`` and
    ``last_connection_error_time_changed(time_or_none)``.
    """

    def __init__(
        self,
        job_slot: JobSlot,
        host: str,
        port: int,
        difficulty: int,
        login: str,
        password: str,
        transport: Transport,
    ) -> None:
        self._job_slot = job_slot
        self._host = host
        self._port = port
        self._requested_difficulty = difficulty
        self._login = login
        self._password = password
        self._transport = transport

        self._is_connected = False
        self._buffer = b""
        self._session_id = ""
        self._request_counter = 0
        self._active_requests: Dict[int, _PendingRequest] = {}
        self._reconnect_timer_active = False
        self._response_timer_active = False
        self._good_share_count = 0
        self._bad_share_count = 0
        self._connection_error_count = 0
        self._last_connection_error: Optional[datetime] = None

        self.started = Signal()
        self.stopped = Signal()
        self.errored = Signal()
        self.difficulty_changed = Signal()
        self.good_share_count_changed = Signal()
        self.bad_share_count_changed = Signal()
        self.connection_error_count_changed = Signal()
        self.last_connection_error_time_changed = Signal()

    # State -----------------------------------------------------------------

    @property
    def login(self) -> str:
        return self._login

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def requested_difficulty(self) -> int:
        return self._requested_difficulty

    @property
    def difficulty(self) -> int:
        """Difficulty of the current job, or 0 without a job."""
        job = self._job_slot.job
        if job is None or not job.job_id:
            return 0
        return difficulty_for_target(job.target)

    @property
    def good_share_count(self) -> int:
        return self._good_share_count

    @property
    def bad_share_count(self) -> int:
        return self._bad_share_count

    @property
    def connection_error_count(self) -> int:
        return self._connection_error_count

    @property
    def last_connection_error_time(self) -> Optional[datetime]:
        return self._last_connection_error

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    @property
    def pending_requests(self) -> int:
        return len(self._active_requests)

    @property
    def response_timer_active(self) -> bool:
        return self._response_timer_active

    @property
    def reconnect_timer_active(self) -> bool:
        return self._reconnect_timer_active

    # Control ---------------------------------------------------------------

    def start(self) -> None:
        """Open the connection to the pool."""
        if self._is_connected:
            raise RuntimeError("stratum client is already connected")
        log.debug("[Stratum] Connecting to mining pool %s:%s", self._host, self._port)
        self._buffer = b""
        self._transport.connect(self._host, self._port)

    def stop(self) -> None:
        """Close the connection and forget the session, the job and the timers."""
        log.debug("[Stratum] Disconnecting...")
        self._transport.disconnect()
        self._is_connected = False
        self._buffer = b""
        self._reconnect_timer_active = False
        self._response_timer_active = False
        self._active_requests.clear()
        self._session_id = ""
        self._job_slot.clear()
        self._last_connection_error = None
        self.stopped.emit()

    # Transport events ------------------------------------------------------

    def connected(self) -> None:
        """The transport reached the pool; log in."""
        self._is_connected = True
        self._login_request()

    def feed(self, data: bytes) -> None:
        """Process bytes received from the pool, one JSON message per line."""
        self._response_timer_active = False
        self._buffer += data
        *lines, self._buffer = self._buffer.split(b"\n")
        for raw_line in lines:
            line = raw_line.strip()
            if not line:
                continue
            log.debug("[Stratum] <<<< %s", line.decode("utf-8", "replace"))
            try:
                message = json.loads(line)
            except ValueError as exc:
                log.error("[Stratum] Json parse error: %s", exc)
                continue
            if isinstance(message, dict):
                self._process_data(message)

    def socket_error(self, reason: str = "") -> None:
        """The transport failed; count the error and schedule a reconnect."""
        self._is_connected = False
        self._connection_error_count += 1
        self._last_connection_error = datetime.now()
        log.error("[Stratum] Socket error: %s. Reconnecting...", reason)
        self.errored.emit()
        self.connection_error_count_changed.emit(self._connection_error_count)
        self.last_connection_error_time_changed.emit(self._last_connection_error)
        self._reconnect()

    # Timers ----------------------------------------------------------------

    def response_timed_out(self) -> None:
        """The pool did not answer in time."""
        if not self._response_timer_active:
            return
        self._response_timer_active = False
        self._record_connection_error()
        log.warning("[Stratum] Response timed out")
        self._reconnect()

    def reconnect_due(self) -> None:
        """The reconnect delay elapsed; drop the connection and start over."""
        if not self._reconnect_timer_active:
            return
        self._reconnect_timer_active = False
        self._transport.abort()
        self._is_connected = False
        self.start()

    # Worker events ---------------------------------------------------------

    def share_found(self, job_id: str, nonce: int, result: bytes) -> None:
        """Submit a share, unless it belongs to a job that is no longer current."""
        job = self._job_slot.job
        current_id = job.job_id if job is not None else ""
        if current_id != job_id:
            return
        self._send_request(
            _PendingRequest(
                _METHOD_SUBMIT,
                {
                    "id": self._session_id,
                    "job_id": job_id,
                    "nonce": encode_nonce(nonce),
                    "result": bytes(result).hex(),
                },
            )
        )

    # Internals -------------------------------------------------------------

    def _record_connection_error(self) -> None:
        self._connection_error_count += 1
        self.connection_error_count_changed.emit(self._connection_error_count)
        self._last_connection_error = datetime.now()
        self.last_connection_error_time_changed.emit(self._last_connection_error)
        self.errored.emit()

    def _reconnect(self) -> None:
        self._response_timer_active = False
        self._active_requests.clear()
        self._session_id = ""
        self._job_slot.clear()
        self._reconnect_timer_active = True

    def _send_request(self, request: _PendingRequest) -> None:
        if not self._is_connected:
            return
        self._request_counter += 1
        message = {
            "id": str(self._request_counter),
            "jsonrpc": "2.0",
            "method": request.method,
            "params": request.params,
        }
        data = json.dumps(message, separators=(",", ":"), sort_keys=True, ensure_ascii=False).encode("utf-8")
        log.debug("[Stratum] >>>> %s", data.decode("utf-8"))
        self._transport.write(data + b"\n")
        self._active_requests[self._request_counter] = request
        self._response_timer_active = True

    def _login_request(self) -> None:
        login = self._login
        if self._requested_difficulty > 0:
            login += f".{self._requested_difficulty}"
        self._send_request(
            _PendingRequest(_METHOD_LOGIN, {"agent": "Miner", "login": login, "pass": self._password})
        )

    def _process_data(self, message: Dict[str, Any]) -> None:
        if "id" not in message:
            if message.get("method") == _METHOD_JOB:
                params = message.get("params")
                self._update_job(params if isinstance(params, dict) else {})
            return
        raw_id = message["id"]
        try:
            request_id = int(raw_id) if isinstance(raw_id, str) else 0
        except ValueError:
            request_id = 0
        request = self._active_requests.pop(request_id, None)
        if request is None:
            log.warning("[Stratum] Unknown response with id=%s", request_id)
            return
        if request.method == _METHOD_LOGIN:
            self._process_login_response(message)
        elif request.method == _METHOD_SUBMIT:
            self._process_submit_response(message)

    @staticmethod
    def _error_message(message: Dict[str, Any]) -> Optional[str]:
        if message.get("error") is None:
            return None
        error = message["error"]
        text = error.get("message") if isinstance(error, dict) else None
        return text if isinstance(text, str) else ""

    def _process_login_response(self, message: Dict[str, Any]) -> None:
        error = self._error_message(message)
        if error is not None:
            log.error("[Stratum] Login failed: %s. Reconnecting...", error)
            self._record_connection_error()
            self._reconnect()
            return
        result = message.get("result")
        result = result if isinstance(result, dict) else {}
        status = result.get("status")
        status = status if isinstance(status, str) else ""
        if status != "OK":
            log.error("[Stratum] Login failed. Invalid status: %s. Reconnecting...", status)
            self._record_connection_error()
            self._reconnect()
            return
        session_id = result.get("id")
        self._session_id = session_id if isinstance(session_id, str) else ""
        job = result.get("job")
        self._update_job(job if isinstance(job, dict) else {})
        self._last_connection_error = None
        self.last_connection_error_time_changed.emit(None)
        self.started.emit()

    def _process_submit_response(self, message: Dict[str, Any]) -> None:
        error = self._error_message(message)
        if error is not None:
            self._bad_share_count += 1
            self.bad_share_count_changed.emit(self._bad_share_count)
            log.warning("[Stratum] Share submit error: %s", error)
            self._reconnect()
        else:
            self._good_share_count += 1
            self.good_share_count_changed.emit(self._good_share_count)
            log.debug("[Stratum] Share submitted")

    def _update_job(self, job_map: Dict[str, Any]) -> None:
        job_id = job_map.get("job_id")
        job_id = job_id if isinstance(job_id, str) else ""
        if job_id:
            self._job_slot.replace(
                Job(job_id, parse_target(job_map.get("target")), _from_hex(job_map.get("blob")))
            )
            log.debug('[Stratum] New mining job: id="%s"', job_id)
        self.difficulty_changed.emit(self.difficulty)

    def __repr__(self) -> str:
        return f"StratumClient(host={self._host!r}, port={self._port}, login={self._login!r})"