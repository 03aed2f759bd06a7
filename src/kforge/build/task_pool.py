"""Bounded task pool for independent build steps.

Compilation of auxiliary objects and the core library build share no
mutable state, so they run side by side on a small thread pool. Each task
spends its time blocked on a subprocess.

Failure policy:
    - The first failure stops every task that has not started yet
    - Tasks already running are allowed to finish; their results are dropped
    - The first failure is re-raised once the pool has drained
"""

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, List, Optional

import psutil

_SKIPPED = object()


def default_worker_count() -> int:
    return psutil.cpu_count(logical=True) or 1


class TaskPool:
    """Runs named callables concurrently and collects their results."""

    def __init__(self, max_workers: Optional[int] = None):
        self.max_workers = max(1, max_workers or default_worker_count())

    def run(self, tasks: Dict[str, Callable[[], Any]]) -> Dict[str, Any]:
        """Run all tasks and wait for them.

        Args:
            tasks: Task name to zero-argument callable

        Returns:
            Task name to result, in the order tasks were given

        Raises:
            Exception: The first exception raised by any task
        """
        if not tasks:
            return {}

        stop = threading.Event()

        def guarded(task: Callable[[], Any]) -> Any:
            # a worker freed by a failure must not pick up queued work
            if stop.is_set():
                return _SKIPPED
            try:
                return task()
            except BaseException:
                stop.set()
                raise

        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(tasks)),
            thread_name_prefix="kforge",
        )
        futures: Dict[str, Future] = {}
        try:
            for name, task in tasks.items():
                futures[name] = executor.submit(guarded, task)

            done, pending = wait(futures.values(), return_when=FIRST_EXCEPTION)
            failed = self._first_failure(futures, done)
            if failed is not None:
                name, error = failed
                cancelled = [n for n, f in futures.items() if f in pending and f.cancel()]
                logging.info(
                    f"Task '{name}' failed; cancelled {len(cancelled)} pending task(s)"
                )
                raise error
        finally:
            executor.shutdown(wait=True)

        return {name: future.result() for name, future in futures.items()}

    @staticmethod
    def _first_failure(futures: Dict[str, Future], done) -> Optional[tuple]:
        failures: List[tuple] = []
        for name, future in futures.items():
            if future in done and not future.cancelled() and future.exception() is not None:
                failures.append((name, future.exception()))
        return failures[0] if failures else None
