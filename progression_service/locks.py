"""Single-writer discipline per mesocycle.

Writers hold the in-process lock for the whole read-modify-write and also
select the mesocycle row ``FOR UPDATE`` inside their transaction, which covers
multiple worker processes on databases that support row locks.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

_locks: dict[int, asyncio.Lock] = {}
# Writers holding or waiting for each lock; the entry is evicted when it drops to zero
_users: dict[int, int] = {}


def _lock_for(mesocycle_id: int) -> asyncio.Lock:
    lock = _locks.get(mesocycle_id)
    if lock is None:
        lock = asyncio.Lock()
        _locks[mesocycle_id] = lock
    return lock


@asynccontextmanager
async def mesocycle_lock(mesocycle_id: int) -> AsyncIterator[None]:
    lock = _lock_for(mesocycle_id)
    _users[mesocycle_id] = _users.get(mesocycle_id, 0) + 1
    try:
        async with lock:
            yield
    finally:
        _users[mesocycle_id] -= 1
        if _users[mesocycle_id] == 0:
            del _users[mesocycle_id]
            _locks.pop(mesocycle_id, None)
