"""A mining worker that hashes job blobs with successive nonces."""

from __future__ import annotations

import random
import threading
from typing import Callable, Optional, Tuple

from dogewallet.events import Signal
from dogewallet.stratum import Job, JobSlot

NONCE_OFFSET = 39
NONCE_SIZE = 4
HASH_SIZE = 32
IDLE_WAIT = 0.1

HashFunction = Callable[[bytes], bytes]


def _with_nonce(blob: bytes, nonce: int) -> bytes:
    return blob[:NONCE_OFFSET] + nonce.to_bytes(NONCE_SIZE, "little") + blob[NONCE_OFFSET + NONCE_SIZE:]


class Worker:
    """Hashes the current job of the main pool, or now and then of an alternate one.

    Signals: ``share_found(job_id, nonce, hash)`` and
    ``alternate_share_found(job_id, nonce, hash)``. They are emitted from
    the worker's own thread once :meth:`start` has been called.
    """

    def __init__(
        self,
        main_slot: JobSlot,
        alternate_slot: JobSlot,
        hash_function: HashFunction,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._main_slot = main_slot
        self._alternate_slot = alternate_slot
        self._hash_function = hash_function
        self._rng = rng if rng is not None else random.Random()
        self._alternate_probability = 0
        self._local_job: Optional[Job] = None

        self._counts_lock = threading.Lock()
        self._hash_count = 0
        self._alternate_hash_count = 0

        self._stop_event = threading.Event()
        self._stop_event.set()
        self._thread: Optional[threading.Thread] = None

        self.share_found = Signal()
        self.alternate_share_found = Signal()

    @property
    def alternate_probability(self) -> int:
        """Percentage of rounds spent on the alternate job."""
        return self._alternate_probability

    @alternate_probability.setter
    def alternate_probability(self, value: int) -> None:
        if value < 0:
            raise ValueError("alternate probability must not be negative")
        self._alternate_probability = int(value)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def take_hash_counts(self) -> Tuple[int, int]:
        """Return the main and alternate hash counts and reset both to zero."""
        with self._counts_lock:
            counts = (self._hash_count, self._alternate_hash_count)
            self._hash_count = 0
            self._alternate_hash_count = 0
        return counts

    def start(self) -> None:
        """Run mining rounds on a background thread until :meth:`stop`."""
        self._stop_event.clear()
        if self.is_running:
            return
        self._thread = threading.Thread(target=self.run, name="mining-worker", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Ask the mining loop to finish after the current round."""
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def run(self) -> None:
        """Mine until stopped."""
        while not self._stop_event.is_set():
            self.mining_round()

    def mining_round(self) -> bool:
        """Hash one nonce; return whether a job was available to hash."""
        alternate_job = self._alternate_slot.job
        has_alternate = alternate_job is not None and bool(alternate_job.job_id)
        if self._alternate_probability == 0 or not has_alternate:
            return self._round(self._main_slot, alternate=False)
        if self._rng.randrange(100) < self._alternate_probability:
            return self._round(self._alternate_slot, alternate=True)
        return self._round(self._main_slot, alternate=False)

    def _round(self, slot: JobSlot, alternate: bool) -> bool:
        job = slot.job
        if job is None or not job.job_id:
            if not alternate:
                self._stop_event.wait(IDLE_WAIT)
            return False
        if self._local_job is None or self._local_job.job_id != job.job_id:
            self._local_job = job
        local = self._local_job

        nonce = slot.next_nonce()
        digest = bytes(self._hash_function(_with_nonce(local.blob, nonce)))
        if len(digest) < HASH_SIZE:
            raise ValueError(f"hash function returned {len(digest)} bytes, expected {HASH_SIZE}")
        digest = digest[:HASH_SIZE]

        with self._counts_lock:
            if alternate:
                self._alternate_hash_count += 1
            else:
                self._hash_count += 1

        if int.from_bytes(digest[28:32], "little") < local.target:
            signal = self.alternate_share_found if alternate else self.share_found
            signal.emit(local.job_id, nonce, digest)
        return True

    def __repr__(self) -> str:
        return f"Worker(running={self.is_running}, alternate_probability={self._alternate_probability})"