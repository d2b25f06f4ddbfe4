"""A pool miner: a Stratum connection plus a set of hashing workers."""

from __future__ import annotations

import enum
import queue
import random
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from dogewallet.events import Signal
from dogewallet.stratum import JobSlot, StratumClient, Transport
from dogewallet.worker import HashFunction, Worker

HASHRATE_TIMER_INTERVAL = 1.0

TransportFactory = Callable[[], Transport]


class MinerState(enum.Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    ERROR = "error"


class Miner:
    """Mines for one pool, optionally sharing work with an alternate account.

    Workers run on their own threads; the shares they find are queued and
    submitted by :meth:`process_shares` on the owner's thread. The owner
    calls :meth:`update_hash_rate` once per ``HASHRATE_TIMER_INTERVAL``.

    Signals: ``state_changed(state)``, ``hash_rate_changed(rate)``,
    ``alternate_hash_rate_changed(rate)``, ``difficulty_changed(difficulty)``,
    ``good_share_count_changed(count)``,
    ``good_alternate_share_count_changed(count)``,
    ``bad_share_count_changed(count)``,
    ``connection_error_count_changed(count)`` and
    ``last_connection_error_time_changed(time_or_none)``.
    """

    def __init__(
        self,
        host: str,
        port: int,
        difficulty: int,
        login: str,
        password: str,
        hash_function: HashFunction,
        transport_factory: TransportFactory,
    ) -> None:
        self._hash_function = hash_function
        self._transport_factory = transport_factory
        self._password = password
        self._state = MinerState.STOPPED
        self._main_slot = JobSlot()
        self._alternate_slot = JobSlot()
        self._alternate_client: Optional[StratumClient] = None
        self._alternate_probability = 0
        self._hash_rate = 0
        self._alternate_hash_rate = 0
        self._hash_rate_timer_active = False
        self._workers: List[Worker] = []
        self._shares: "queue.SimpleQueue[Tuple[bool, str, int, bytes]]" = queue.SimpleQueue()

        self.state_changed = Signal()
        self.hash_rate_changed = Signal()
        self.alternate_hash_rate_changed = Signal()
        self.difficulty_changed = Signal()
        self.good_share_count_changed = Signal()
        self.good_alternate_share_count_changed = Signal()
        self.bad_share_count_changed = Signal()
        self.connection_error_count_changed = Signal()
        self.last_connection_error_time_changed = Signal()

        client = StratumClient(
            self._main_slot, host, port, difficulty, login, password, transport_factory()
        )
        client.started.connect(lambda: self._set_state(MinerState.RUNNING))
        client.stopped.connect(lambda: self._set_state(MinerState.STOPPED))
        client.errored.connect(self._client_errored)
        client.difficulty_changed.connect(self.difficulty_changed.emit)
        client.good_share_count_changed.connect(self.good_share_count_changed.emit)
        client.bad_share_count_changed.connect(self.bad_share_count_changed.emit)
        client.connection_error_count_changed.connect(self.connection_error_count_changed.emit)
        client.last_connection_error_time_changed.connect(self.last_connection_error_time_changed.emit)
        self._main_client = client

    # State -----------------------------------------------------------------

    @property
    def state(self) -> MinerState:
        return self._state

    @property
    def main_client(self) -> StratumClient:
        return self._main_client

    @property
    def alternate_client(self) -> Optional[StratumClient]:
        return self._alternate_client

    @property
    def alternate_probability(self) -> int:
        return self._alternate_probability

    @property
    def pool_host(self) -> str:
        return self._main_client.host

    @property
    def pool_port(self) -> int:
        return self._main_client.port

    @property
    def difficulty(self) -> int:
        return self._main_client.difficulty

    @property
    def hash_rate(self) -> int:
        return self._hash_rate

    @property
    def alternate_hash_rate(self) -> int:
        return self._alternate_hash_rate

    @property
    def good_share_count(self) -> int:
        return self._main_client.good_share_count

    @property
    def good_alternate_share_count(self) -> int:
        return self._alternate_client.good_share_count if self._alternate_client is not None else 0

    @property
    def bad_share_count(self) -> int:
        return self._main_client.bad_share_count

    @property
    def connection_error_count(self) -> int:
        return self._main_client.connection_error_count

    @property
    def last_connection_error_time(self) -> Optional[datetime]:
        return self._main_client.last_connection_error_time

    @property
    def worker_count(self) -> int:
        return len(self._workers)

    # Control ---------------------------------------------------------------

    def start(self, core_count: int) -> None:
        """Connect to the pool and run ``core_count`` workers."""
        if self._state is not MinerState.STOPPED:
            raise RuntimeError("miner is already started")
        self._main_client.start()
        if self._alternate_client is not None:
            self._alternate_client.start()
        self._hash_rate_timer_active = True

        while len(self._workers) < core_count:
            self._workers.append(self._make_worker())
        for worker in self._workers[:core_count]:
            worker.alternate_probability = self._alternate_probability
            worker.start()

    def stop(self) -> None:
        """Disconnect, stop every worker and wait for the workers to finish."""
        if self._state is MinerState.STOPPED:
            raise RuntimeError("miner is not started")
        self._main_client.stop()
        if self._alternate_client is not None:
            self._alternate_client.stop()
        self._hash_rate_timer_active = False
        self._hash_rate = 0
        self._alternate_hash_rate = 0
        for worker in self._workers:
            worker.stop()
        for worker in self._workers:
            worker.join()

    def set_alternate_account(self, login: str, probability: int) -> None:
        """Spend ``probability`` percent of the work on another account of the same pool."""
        if probability < 0:
            raise ValueError("probability must not be negative")
        current = self._alternate_client
        if current is not None:
            if current.login == login:
                self._set_probability(probability)
                return
            current.stop()

        self._set_probability(probability)
        client = StratumClient(
            self._alternate_slot,
            self._main_client.host,
            self._main_client.port,
            self._main_client.difficulty,
            login,
            self._password,
            self._transport_factory(),
        )
        client.good_share_count_changed.connect(self.good_alternate_share_count_changed.emit)
        self._alternate_client = client
        if self._state is not MinerState.STOPPED:
            client.start()

    def unset_alternate_account(self) -> None:
        """Stop sharing work with the alternate account."""
        if self._alternate_client is None:
            return
        if self._state is not MinerState.STOPPED:
            self._alternate_client.stop()
        self._alternate_client = None
        self._set_probability(0)

    def update_hash_rate(self) -> None:
        """Turn the hashes counted since the last call into per-second rates."""
        if not self._hash_rate_timer_active:
            return
        main_total = 0
        alternate_total = 0
        for worker in self._workers:
            main_count, alternate_count = worker.take_hash_counts()
            main_total += main_count
            alternate_total += alternate_count
        self._hash_rate = main_total
        self._alternate_hash_rate = alternate_total
        self.hash_rate_changed.emit(self._hash_rate)
        self.alternate_hash_rate_changed.emit(self._alternate_hash_rate)

    def process_shares(self) -> int:
        """Submit the shares found by the workers; return how many were taken."""
        taken = 0
        while True:
            try:
                alternate, job_id, nonce, result = self._shares.get_nowait()
            except queue.Empty:
                return taken
            taken += 1
            client = self._alternate_client if alternate else self._main_client
            if client is not None:
                client.share_found(job_id, nonce, result)

    # Internals -------------------------------------------------------------

    def _make_worker(self) -> Worker:
        worker = Worker(self._main_slot, self._alternate_slot, self._hash_function, random.Random())
        worker.share_found.connect(lambda job_id, nonce, result: self._shares.put((False, job_id, nonce, result)))
        worker.alternate_share_found.connect(
            lambda job_id, nonce, result: self._shares.put((True, job_id, nonce, result))
        )
        return worker

    def _set_probability(self, probability: int) -> None:
        self._alternate_probability = probability
        for worker in self._workers:
            worker.alternate_probability = probability

    def _client_errored(self) -> None:
        self._set_state(MinerState.ERROR)
        self._hash_rate = 0

    def _set_state(self, state: MinerState) -> None:
        if self._state is not state:
            self._state = state
            self.state_changed.emit(state)

    def __repr__(self) -> str:
        return f"Miner(host={self.pool_host!r}, port={self.pool_port}, state={self._state.value})"