"""
A bounded pool of reusable handles with blocking acquire/release semantics.

Feature functions that wrap an external stateful resource (a classifier session, say)
own one of these; the pool size bounds how many sentences can use the resource at once.
"""
import logging
import queue
from contextlib import contextmanager
from typing import Callable, Generator, Generic, List, Optional, TypeVar

from smtdecoder.common.checks import ConfigurationError, PoolTimeout

logger = logging.getLogger(__name__)

H = TypeVar("H")


class HandlePool(Generic[H]):
    """
    # Parameters

    factory : `Callable[[], H]`
        Builds one handle.  It is called `size` times when the pool is created.
    size : `int`
        The number of handles in the pool.
    """

    def __init__(self, factory: Callable[[], H], size: int) -> None:
        if size < 1:
            raise ConfigurationError(f"pool size must be at least 1, got {size}")
        self._size = size
        self._free: "queue.Queue[H]" = queue.Queue(maxsize=size)
        self._handles: List[H] = []
        for _ in range(size):
            handle = factory()
            self._handles.append(handle)
            self._free.put_nowait(handle)

    @property
    def size(self) -> int:
        return self._size

    def num_free(self) -> int:
        return self._free.qsize()

    def acquire(self, timeout: Optional[float] = None) -> H:
        """
        Takes a handle out of the pool, blocking until one is released if they are all in
        use.  With a `timeout`, raises `PoolTimeout` if none became free in time.
        """
        try:
            return self._free.get(block=True, timeout=timeout)
        except queue.Empty:
            raise PoolTimeout(f"no handle released within {timeout} seconds")

    def release(self, handle: H) -> None:
        if not any(handle is owned for owned in self._handles):
            raise ValueError("released a handle that does not belong to this pool")
        self._free.put_nowait(handle)

    @contextmanager
    def handle(self, timeout: Optional[float] = None) -> Generator[H, None, None]:
        acquired = self.acquire(timeout)
        try:
            yield acquired
        finally:
            self.release(acquired)
