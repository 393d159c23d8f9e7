"""Bounded parallel probing of independent targets."""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
import logging
import threading
import time
from typing import Any, Callable, Generic, Hashable, Iterable, TypeVar

from hwcheck.logging_utils import TRACE_LEVEL

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_WORKERS = 5
RETRY_DELAY_S = 0.5


@dataclass(frozen=True)
class ProbeResult(Generic[R]):
    target: Any
    value: R | None = None
    error: str | None = None
    elapsed_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


class SensorIndexCache:
    """Process-wide list of relevant sensor records, loaded at most once.

    Concurrent first callers block on the lock while a single loader runs.
    Readers always receive their own copy of the list.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: list[Any] | None = None

    @property
    def populated(self) -> bool:
        return self._entries is not None

    def get(self, loader: Callable[[], Iterable[T]]) -> list[T]:
        if self._entries is None:
            with self._lock:
                if self._entries is None:
                    self._entries = list(loader())
        return list(self._entries)

    def snapshot(self) -> list[Any]:
        with self._lock:
            return list(self._entries or [])


class ParallelCollector:
    """Run one probe per target on a bounded thread pool.

    Every target gets a ``ProbeResult``; a probe that raises (including a
    timeout raised by the probe itself) yields a failed result for that
    target only. Results are keyed by target and returned in target order.
    """

    def __init__(self, workers: int = DEFAULT_WORKERS) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.workers = workers
        self.index_cache = SensorIndexCache()
        self.logger = logging.getLogger(self.__class__.__name__)

    def collect(
        self,
        targets: Iterable[T],
        probe: Callable[[T], R],
        key: Callable[[T], Hashable] | None = None,
    ) -> dict[Hashable, ProbeResult[R]]:
        key_of = key or (lambda target: target)
        ordered = list(targets)
        if not ordered:
            return {}
        finished: dict[Hashable, ProbeResult[R]] = {}
        with ThreadPoolExecutor(
            max_workers=min(self.workers, len(ordered)),
            thread_name_prefix="probe",
        ) as executor:
            futures = {executor.submit(self._run_probe, probe, target): target for target in ordered}
            for future in as_completed(futures):
                target = futures[future]
                result = future.result()
                finished[key_of(target)] = result
                self.logger.log(
                    TRACE_LEVEL,
                    "Probe %s finished in %.3fs (%s)",
                    key_of(target),
                    result.elapsed_s,
                    "ok" if result.ok else result.error,
                )
        failed = sum(1 for result in finished.values() if not result.ok)
        if failed:
            self.logger.debug("%s of %s probes failed", failed, len(finished))
        return {key_of(target): finished[key_of(target)] for target in ordered}

    def _run_probe(self, probe: Callable[[T], R], target: T) -> ProbeResult[R]:
        started = time.monotonic()
        try:
            value = probe(target)
        except Exception as exc:
            self.logger.debug("Probe failed for %s: %s", target, exc)
            return ProbeResult(
                target=target,
                error=str(exc) or exc.__class__.__name__,
                elapsed_s=time.monotonic() - started,
            )
        return ProbeResult(target=target, value=value, elapsed_s=time.monotonic() - started)


def best_of_attempts(
    attempt: Callable[[int], T],
    retries: int,
    succeeded: Callable[[T], bool],
    rank: Callable[[T], float],
    delay_s: float = RETRY_DELAY_S,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Try up to ``retries + 1`` times and keep the lowest-ranked outcome.

    Returns as soon as an attempt succeeds; otherwise the best failed attempt.
    """
    best: T | None = None
    for number in range(max(retries, 0) + 1):
        if number:
            sleep(delay_s)
        outcome = attempt(number)
        if best is None or rank(outcome) < rank(best):
            best = outcome
        if succeeded(outcome):
            return outcome
    assert best is not None
    return best
