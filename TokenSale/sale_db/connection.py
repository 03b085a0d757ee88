from typing import Callable, TypeVar

import redis
from redis.client import Pipeline

from TokenSale.sale_shared import errors, config
from TokenSale.sale_shared.types import HealthStatus

T = TypeVar("T")


def create_ledger_client(
    host: str = config.REDIS_HOST,
    port: int = config.REDIS_PORT,
    db: int = config.REDIS_LEDGER_DB,
) -> redis.Redis:
    r = redis.Redis(
        host=host,
        port=port,
        db=db,
        decode_responses=False,
        socket_connect_timeout=config.REDIS_SOCKET_TIMEOUT,
        socket_timeout=config.REDIS_SOCKET_TIMEOUT,
    )
    try:
        r.ping()
    except redis.exceptions.ConnectionError:
        raise errors.LedgerUnavailableError(f"Cannot connect to Redis at {host}:{port}")
    return r


def run_transaction(client: redis.Redis, operation: str, watch_keys: list[str], body: Callable[[Pipeline], T],
                    retries: int = config.LEDGER_OPTIMISTIC_LOCK_RETRIES) -> T:
    """Optimistic WATCH/MULTI/EXEC around ``body``.

    ``body`` receives a pipeline already watching ``watch_keys``; it does its
    reads immediately, calls ``pipe.multi()``, then queues writes. Any exception
    before EXEC discards the queued writes. A WatchError reruns ``body`` from
    scratch, up to ``retries`` attempts.
    """
    try:
        for attempt in range(retries):
            with client.pipeline(transaction=True) as pipe:
                try:
                    pipe.watch(*watch_keys)
                    result = body(pipe)
                    pipe.execute()
                    return result
                except redis.WatchError:
                    continue

        raise errors.ConcurrencyError(operation)
    except redis.exceptions.ConnectionError:
        raise errors.LedgerUnavailableError(operation)


def health_check(ledger_client) -> HealthStatus:
    connected = False
    key_count = 0
    uptime = 0.0

    try:
        connected = ledger_client.ping()
        key_count = ledger_client.dbsize()
        uptime = float(ledger_client.info().get('uptime_in_seconds', 0))
    except redis.exceptions.ResponseError:
        # INFO unsupported (e.g. some test doubles)
        pass
    except redis.exceptions.ConnectionError:
        connected = False

    return HealthStatus(
        ledger_connected=connected,
        ledger_key_count=key_count,
        uptime_seconds=uptime,
    )


def close(ledger_client) -> None:
    ledger_client.close()
