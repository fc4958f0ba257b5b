# tests/unit/test_workers.py

import threading

import numpy as np
import pytest

from cogtiler.render.resample import ResampleOptions
from cogtiler.workers import WorkerPool, default_pool_size

def _fail():
    raise ValueError("task failed")

def test_default_size_uses_cpu_count():
    assert default_pool_size() >= 1
    with WorkerPool() as pool:
        assert pool.size == default_pool_size()

def test_synchronous_pool_runs_inline():
    caller = threading.get_ident()
    with WorkerPool(0) as pool:
        future = pool.submit(threading.get_ident)

        assert pool.is_synchronous
        assert future.done()
        assert future.result() == caller

def test_threaded_pool_runs_off_thread():
    caller = threading.get_ident()
    with WorkerPool(2) as pool:
        assert pool.submit(threading.get_ident).result(timeout=10) != caller

@pytest.mark.parametrize("size", [0, 2])
def test_failure_rejects_only_its_task(size):
    with WorkerPool(size) as pool:
        bad = pool.submit(_fail)
        good = pool.submit(sum, [1, 2, 3])

        with pytest.raises(ValueError, match="task failed"):
            bad.result(timeout=10)
        assert good.result(timeout=10) == 6
        # the pool stays usable after a failure
        assert pool.submit(max, 4, 9).result(timeout=10) == 9

@pytest.mark.parametrize("size", [0, 2])
def test_resample_task(size):
    data = np.arange(16, dtype="float32").reshape(4, 4)
    options = ResampleOptions(4, 4, 2, 2, method="nearest", buffer=1)

    with WorkerPool(size) as pool:
        out = pool.resample(data, options).result(timeout=10)

    np.testing.assert_array_equal(out, [[5.0, 6.0], [9.0, 10.0]])

def test_submit_after_shutdown():
    pool = WorkerPool(1)
    pool.shutdown()
    pool.shutdown()

    assert pool.closed
    with pytest.raises(RuntimeError):
        pool.submit(sum, [1])

def test_negative_size():
    with pytest.raises(ValueError):
        WorkerPool(-1)
