import threading

import pytest

from smtdecoder.common.checks import ConfigurationError, PoolTimeout
from smtdecoder.common.pool import HandlePool
from smtdecoder.common.testing import SmtDecoderTestCase


class Session:
    pass


class TestHandlePool(SmtDecoderTestCase):
    def test_acquire_and_release(self):
        pool = HandlePool(Session, 2)
        assert pool.size == 2
        first = pool.acquire()
        second = pool.acquire()
        assert first is not second
        assert pool.num_free() == 0

        pool.release(first)
        assert pool.num_free() == 1
        assert pool.acquire() is first

    def test_acquire_times_out_when_every_handle_is_in_use(self):
        pool = HandlePool(Session, 1)
        pool.acquire()
        with pytest.raises(PoolTimeout):
            pool.acquire(timeout=0.01)

    def test_acquire_blocks_until_a_handle_is_released(self):
        pool = HandlePool(Session, 1)
        handle = pool.acquire()
        acquired = []

        def worker():
            acquired.append(pool.acquire(timeout=10))

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join(0.1)
        assert thread.is_alive()
        assert acquired == []

        pool.release(handle)
        thread.join(10)
        assert len(acquired) == 1
        assert acquired[0] is handle

    def test_context_manager_releases_on_error(self):
        pool = HandlePool(Session, 1)
        with pytest.raises(RuntimeError):
            with pool.handle():
                assert pool.num_free() == 0
                raise RuntimeError("scoring failed")
        assert pool.num_free() == 1

    def test_concurrent_users_never_share_a_handle(self):
        pool = HandlePool(Session, 2)
        in_use = set()
        lock = threading.Lock()
        clashes = []

        def worker():
            for _ in range(50):
                with pool.handle(timeout=10) as session:
                    with lock:
                        if id(session) in in_use:
                            clashes.append(session)
                        in_use.add(id(session))
                    with lock:
                        in_use.discard(id(session))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert clashes == []
        assert pool.num_free() == 2

    def test_release_of_a_foreign_handle(self):
        pool = HandlePool(Session, 1)
        with pytest.raises(ValueError):
            pool.release(Session())

    def test_size_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            HandlePool(Session, 0)
