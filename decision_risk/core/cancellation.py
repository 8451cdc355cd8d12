"""Cooperative cancellation and concurrent execution of run sweeps.

Sensitivity and stress sweeps are sets of independent full runs. They may
run concurrently and can be cancelled between runs; a run that has started
always completes and stays in the engine cache.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

from .exceptions import CancellationRequested
from .logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Flag shared between a sweep and whoever may cancel it."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, completed: Optional[Dict[str, object]] = None) -> None:
        if self._event.is_set():
            raise CancellationRequested("Sweep cancelled", completed=completed)


def run_sweep(
    tasks: List[Tuple[str, Callable[[], T]]],
    max_workers: int = 1,
    token: Optional[CancellationToken] = None,
) -> Dict[str, T]:
    """Run labelled tasks, checking ``token`` before each one starts.

    Args:
        tasks: (label, callable) pairs
        max_workers: Concurrent tasks; 1 runs them in order on this thread
        token: Optional cancellation token

    Returns:
        Results keyed by label, in task order

    Raises:
        CancellationRequested: ``token`` was cancelled; carries the tasks
            that completed
    """
    token = token or CancellationToken()
    completed: Dict[str, T] = {}
    lock = threading.Lock()

    def execute(label: str, task: Callable[[], T]) -> Optional[T]:
        if token.is_cancelled:
            return None
        result = task()
        with lock:
            completed[label] = result
        return result

    if max_workers <= 1:
        for label, task in tasks:
            with lock:
                snapshot = dict(completed)
            token.raise_if_cancelled(snapshot)
            execute(label, task)
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(execute, label, task) for label, task in tasks]
            for future in futures:
                future.result()

    if len(completed) < len(tasks):
        logger.info(
            f"Sweep cancelled after {len(completed)} of {len(tasks)} runs",
            extra={'component': 'sweep', 'runs': len(completed)}
        )
        raise CancellationRequested(
            f"Sweep cancelled after {len(completed)} of {len(tasks)} runs",
            completed=dict(completed),
        )

    return {label: completed[label] for label, _ in tasks}
