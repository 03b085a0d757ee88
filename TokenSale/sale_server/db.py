import redis

from TokenSale.sale_db.connection import close, create_ledger_client, health_check as ledger_health
from TokenSale.sale_shared.errors import LedgerUnavailableError

client: redis.Redis = None

def open_client() -> redis.Redis:
    global client
    if client is not None:
        return client

    client = create_ledger_client()
    return client

def get_client() -> redis.Redis:
    if client is None:
        raise LedgerUnavailableError("Ledger client not initialized. Call open_client() first.")
    return client

def close_client() -> None:
    global client
    if client is None:
        return
    try:
        close(client)
    finally:
        client = None

def health_check() -> bool:
    if client is None:
        return False
    return ledger_health(client).ledger_connected
