from typing import Any, Coroutine, Optional, TypeVar

from fsspec.asyn import get_loop
from fsspec.asyn import sync as _fsspec_sync

T = TypeVar("T")


def sync(coro: Coroutine[Any, Any, T], timeout: Optional[float] = None) -> T:
    """Run `coro` to completion on fsspec's dedicated IO event loop.

    Must not be called from a coroutine running on that loop.
    """
    return _fsspec_sync(get_loop(), lambda: coro, timeout=timeout)
