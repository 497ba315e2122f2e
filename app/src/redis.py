from typing import Optional
from redis import Redis
from redis.lock import Lock

from app.src import exceptions
from app.src.constants import (
    REDIS_HOST,
    REDIS_PORT,
    REDIS_PASSWORD,
    REDIS_DB,
    REDIS_SOCKET_TIMEOUT,
    MUTEX_LOCK_TIMEOUT,
    MUTEX_LOCK_MAX_WAIT_TIME,
)

redisClient = Redis(
    host=REDIS_HOST,
    port=REDIS_PORT,
    password=REDIS_PASSWORD,
    db=REDIS_DB,
    socket_timeout=REDIS_SOCKET_TIMEOUT,
    decode_responses=True,
)


def lockName(tableName: str, pk: Optional[int] = None) -> str:
    """`lock:order:42` guards one order, `lock:order` the whole table."""
    return f"lock:{tableName}" if pk is None else f"lock:{tableName}:{pk}"


def acquireLock(
    tableName: str,
    pk: Optional[int] = None,
    timeOut: int = MUTEX_LOCK_TIMEOUT,
    blockingTimeOut: int = MUTEX_LOCK_MAX_WAIT_TIME,
) -> Lock:
    """
    Serialise the changes made to a row (or a table) across workers.

    Order status changes, assignments and payments of an order all take
    the lock of the order, so only one of them runs at a time.

    Args:
        tableName (str): Table of the guarded row.
        pk (Optional[int]): Primary key of the row, None locks the table.
        timeOut (int): Seconds after which Redis drops a lock that was never released.
        blockingTimeOut (int): Seconds to wait for the lock.

    Raises:
        exceptions.LockAcquireTimeout: If the lock is still held after blockingTimeOut.
        exceptions.RedisDBError: If Redis cannot be reached.
    """
    try:
        lock = redisClient.lock(lockName(tableName, pk), timeout=timeOut)
        if lock.acquire(blocking=True, blocking_timeout=blockingTimeOut):
            return lock
        raise exceptions.LockAcquireTimeout()
    except Exception as e:
        exceptions.handle(e)


def releaseLock(lock: Optional[Lock]) -> None:
    if lock and lock.locked() and lock.owned():
        lock.release()
