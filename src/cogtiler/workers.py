# src/cogtiler/workers.py

"""
Background worker pool for CPU-bound tile work.

Resampling, decoding and reprojection run on a fixed-size thread pool. The
numba kernels they call release the GIL, so threads execute truly in
parallel without spawning OS processes. A pool of size 0 executes every task
synchronously on the calling thread and hands back an already completed
future, which keeps the calling code identical in both modes.
"""

import itertools
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

import numpy as np
import psutil

from .render.resample import ResampleOptions, resample_data

log = logging.getLogger(__name__)

__all__ = [
    "WorkerPool",
    "default_pool_size"
]

def default_pool_size() -> int:
    """Number of logical CPUs, at least one."""
    return max(1, psutil.cpu_count(logical=True) or 1)

class WorkerPool:
    """
    Fixed-size pool handing out one future per submitted task.

    Every task gets a monotonically increasing id used in log messages. An
    exception raised by a task rejects that task's future only; the pool
    stays usable. Idle threads pick up queued tasks first come first served.

    Args:
        size (int): Number of worker threads. None uses `default_pool_size()`,
            0 runs tasks synchronously.
    """

    def __init__(self, size: Optional[int] = None):
        if size is not None and size < 0:
            raise ValueError(f"Worker pool size must be >= 0, got {size}")
        self.size = default_pool_size() if size is None else size
        self._executor: Optional[ThreadPoolExecutor] = None
        if self.size > 0:
            self._executor = ThreadPoolExecutor(
                max_workers=self.size,
                thread_name_prefix="cogtiler-worker"
            )
        self._ids = itertools.count(1)
        self._closed = False
        self._lock = threading.Lock()
        log.debug(f"Worker pool started with {self.size} worker(s)")

    @property
    def is_synchronous(self) -> bool:
        return self._executor is None

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, func: Callable[..., Any], *args, **kwargs) -> Future:
        """
        Schedule `func(*args, **kwargs)` and return its future.

        Raises:
            RuntimeError: If the pool has been shut down.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("Cannot submit tasks to a worker pool that has been shut down")
            task_id = next(self._ids)

        if self._executor is None:
            return self._run_inline(task_id, func, args, kwargs)
        return self._executor.submit(self._run_task, task_id, func, args, kwargs)

    def resample(self, data: np.ndarray, options: ResampleOptions) -> Future:
        return self.submit(resample_data, data, options)

    def shutdown(self, wait: bool = True) -> None:
        """Cancel queued tasks and stop the workers. Safe to call repeatedly."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        if self._executor is not None:
            self._executor.shutdown(wait=wait, cancel_futures=True)
        log.debug("Worker pool shut down")

    @staticmethod
    def _run_task(task_id: int, func, args, kwargs):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            log.debug(f"Task {task_id} ({getattr(func, '__name__', func)}) failed: {e}")
            raise

    def _run_inline(self, task_id: int, func, args, kwargs) -> Future:
        future: Future = Future()
        future.set_running_or_notify_cancel()
        try:
            future.set_result(self._run_task(task_id, func, args, kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
