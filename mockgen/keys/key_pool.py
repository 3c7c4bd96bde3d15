"""
API Key Pool.

Assigns Gemini API keys to mock jobs round-robin and fails jobs over when a
key hits its quota.

Behavior:
- Job N starts at key (N - 1) % size and scans forward past failed keys
- A failed key is never handed out again for the lifetime of the pool
- Marking a key failed drops every assignment pointing at it, so the next
  get_assignment() for those jobs goes through reassignment
- When every key has failed, all acquisition calls raise PoolExhausted

Jobs run in worker threads, so mutating calls are serialized by a lock.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field

from loguru import logger

from mockgen.errors import InvalidCredential, NoAssignment, PoolExhausted

MIN_KEY_LENGTH = 10


@dataclass(frozen=True)
class KeyAssignment:
    """A key handed to a job. `index` is 0-based; logs show it 1-based."""

    credential: str
    index: int

    @property
    def label(self) -> str:
        return f"API Key {self.index + 1}"

    def __repr__(self) -> str:
        # Never leak the raw key into logs or tracebacks
        return f"KeyAssignment(index={self.index})"


@dataclass
class PoolStats:
    """Snapshot of pool health for end-of-run reporting."""

    total: int
    available: int
    failed: int
    usage: dict[int, int] = field(default_factory=dict)


class KeyPool:
    """
    Round-robin API key pool with failure tracking.

    Usage:
        pool = KeyPool.create(load_api_keys("api_key.txt"))
        key = pool.assign(job_id)
        ...
        pool.mark_failed(key.index, "429 RESOURCE_EXHAUSTED")
        key = pool.get_assignment(job_id)  # reassigned transparently
    """

    def __init__(self, credentials: Iterable[str], min_length: int = MIN_KEY_LENGTH) -> None:
        """
        Build the pool.

        Args:
            credentials: Raw key strings. Entries are trimmed and blank
                entries are dropped.
            min_length: Minimum key length after trimming.

        Raises:
            InvalidCredential: If a key is too short or nothing is left.
        """
        keys: list[str] = []
        for position, raw in enumerate(credentials):
            key = (raw or "").strip()
            if not key:
                continue
            if len(key) < min_length:
                raise InvalidCredential(
                    position,
                    f"API key at position {position + 1} is too short "
                    f"({len(key)} chars, minimum {min_length})",
                )
            keys.append(key)

        if not keys:
            raise InvalidCredential(None, "No valid API keys provided")

        self._credentials: tuple[str, ...] = tuple(keys)
        self._failed: set[int] = set()
        self._assignments: dict[int, int] = {}
        self._usage: dict[int, int] = {i: 0 for i in range(len(keys))}
        # Jobs whose key failed under them; they still count as assigned
        self._dropped: set[int] = set()
        self._lock = threading.RLock()

        logger.info(f"Loaded {len(keys)} API key(s) for parallel usage")

    @classmethod
    def create(cls, credentials: Iterable[str], min_length: int = MIN_KEY_LENGTH) -> KeyPool:
        return cls(credentials, min_length=min_length)

    # ========================================
    # Properties
    # ========================================

    @property
    def size(self) -> int:
        return len(self._credentials)

    @property
    def available_count(self) -> int:
        return self.size - len(self._failed)

    @property
    def is_exhausted(self) -> bool:
        return len(self._failed) >= self.size

    @property
    def failed_indices(self) -> frozenset[int]:
        return frozenset(self._failed)

    @property
    def assignments(self) -> dict[int, int]:
        """Copy of the job id -> key index map."""
        with self._lock:
            return dict(self._assignments)

    # ========================================
    # Acquisition
    # ========================================

    def assign(self, job_id: int) -> KeyAssignment:
        """
        Assign a key to a job, starting at (job_id - 1) % size.

        Raises:
            PoolExhausted: If every key has failed.
        """
        with self._lock:
            if self.is_exhausted:
                raise PoolExhausted(self.size, job_id)

            index = (job_id - 1) % self.size
            probes = 0
            while index in self._failed and probes < self.size:
                index = (index + 1) % self.size
                probes += 1

            if index in self._failed:
                raise PoolExhausted(self.size, job_id)

            self._assignments[job_id] = index
            self._dropped.discard(job_id)
            return self._entry(index)

    def get_assignment(self, job_id: int) -> KeyAssignment:
        """
        Return the key currently assigned to a job.

        Reassigns transparently if the job's key has failed since it was
        assigned.

        Raises:
            NoAssignment: If the job was never assigned a key (and the pool
                still has working keys).
            PoolExhausted: If every key has failed, whether or not the job
                was ever assigned.
        """
        index = self._assignments.get(job_id)
        if index is not None and index not in self._failed:
            return self._entry(index)

        with self._lock:
            index = self._assignments.get(job_id)
            if index is not None and index not in self._failed:
                return self._entry(index)

            if self.is_exhausted:
                raise PoolExhausted(self.size, job_id)

            if index is None and job_id not in self._dropped:
                raise NoAssignment(job_id)

            logger.info(f"Reassigning key for mock {job_id} (previous key failed)")
            return self.assign(job_id)

    def next_available(self, excluding: int | None = None) -> KeyAssignment:
        """
        Return the lowest-index working key other than `excluding`.

        Raises:
            PoolExhausted: If no such key exists.
        """
        with self._lock:
            for index in range(self.size):
                if index not in self._failed and index != excluding:
                    return self._entry(index)
            raise PoolExhausted(self.size)

    def reassign(self, job_id: int, index: int) -> KeyAssignment:
        """
        Pin a job to a specific working key (manual failover).

        Raises:
            PoolExhausted: If the requested key has failed.
            IndexError: If the index is outside the pool.
        """
        if not 0 <= index < self.size:
            raise IndexError(f"Key index {index} out of range (pool size {self.size})")

        with self._lock:
            if index in self._failed:
                if self.is_exhausted:
                    raise PoolExhausted(self.size, job_id)
                return self.assign(job_id)
            self._assignments[job_id] = index
            self._dropped.discard(job_id)
            return self._entry(index)

    # ========================================
    # Bookkeeping
    # ========================================

    def mark_failed(self, index: int, reason: object = None) -> None:
        """Mark a key unusable for the rest of the run and drop its assignments."""
        with self._lock:
            if index in self._failed:
                return

            self._failed.add(index)
            detail = f": {reason}" if reason else ""
            logger.warning(f"API key {index + 1} marked as failed{detail}")

            if not self.is_exhausted:
                logger.info(f"{self.available_count} API key(s) remaining")

            for job_id in [j for j, i in self._assignments.items() if i == index]:
                del self._assignments[job_id]
                self._dropped.add(job_id)

    def record_success(self, index: int) -> None:
        with self._lock:
            self._usage[index] = self._usage.get(index, 0) + 1

    def stats(self) -> PoolStats:
        with self._lock:
            return PoolStats(
                total=self.size,
                available=self.available_count,
                failed=len(self._failed),
                usage=dict(self._usage),
            )

    # ========================================
    # Internals
    # ========================================

    def _entry(self, index: int) -> KeyAssignment:
        return KeyAssignment(credential=self._credentials[index], index=index)

    def __repr__(self) -> str:
        return f"KeyPool(size={self.size}, failed={sorted(self._failed)})"
