import time
from typing import Optional

import redis

from TokenSale.sale_db.connection import run_transaction
from TokenSale.sale_shared import config, errors
from TokenSale.sale_shared.types import BuyerRecord, SaleConfig


class SaleRecords:
    """Configuration and Buyer Records, one Redis hash each.

    ``fetch_*`` accept an optional ``conn`` so they can read through a watching
    pipeline; ``stage_*`` only queue writes on a pipeline already in MULTI.
    """

    def __init__(self, client: redis.Redis):
        self.db: redis.Redis = client

    def config_key(self, deployment_id: str) -> str:
        return f"{config.CONFIG_KEY_PREFIX}:{deployment_id}"

    def buyer_key(self, deployment_id: str, buyer_identity: str) -> str:
        return f"{config.BUYER_KEY_PREFIX}:{deployment_id}:{buyer_identity}"

    def _serialize_config(self, cfg: SaleConfig) -> dict:
        return {
            "deployment_id": cfg.deployment_id,
            "admin_identity": cfg.admin_identity,
            "token_price": str(cfg.token_price),
            "purchase_limit": str(cfg.purchase_limit),
            "asset_id": cfg.asset_id,
            "authority_id": cfg.authority_id,
            "authority_bump": str(cfg.authority_bump),
            "vault_id": cfg.vault_id,
            "vault_bump": str(cfg.vault_bump),
            "seed_version": str(cfg.seed_version),
            "created_at": str(cfg.created_at),
        }

    def _deserialize_config(self, data: dict[bytes, bytes]) -> SaleConfig:
        return SaleConfig(
            deployment_id=data[b"deployment_id"].decode(),
            admin_identity=data[b"admin_identity"].decode(),
            token_price=int(data[b"token_price"]),
            purchase_limit=int(data[b"purchase_limit"]),
            asset_id=data[b"asset_id"].decode(),
            authority_id=data[b"authority_id"].decode(),
            authority_bump=int(data[b"authority_bump"]),
            vault_id=data[b"vault_id"].decode(),
            vault_bump=int(data[b"vault_bump"]),
            seed_version=int(data[b"seed_version"]),
            created_at=int(data[b"created_at"]),
        )

    def _serialize_buyer(self, record: BuyerRecord) -> dict:
        return {
            "deployment_id": record.deployment_id,
            "buyer_identity": record.buyer_identity,
            "whitelisted": "1" if record.whitelisted else "0",
            "amount_purchased": str(record.amount_purchased),
            "created_at": str(record.created_at),
        }

    def _deserialize_buyer(self, data: dict[bytes, bytes]) -> BuyerRecord:
        return BuyerRecord(
            deployment_id=data[b"deployment_id"].decode(),
            buyer_identity=data[b"buyer_identity"].decode(),
            whitelisted=data[b"whitelisted"] == b"1",
            amount_purchased=int(data[b"amount_purchased"]),
            created_at=int(data[b"created_at"]),
        )

    # ─── Reads ───

    def fetch_config(self, deployment_id: str, conn=None) -> Optional[SaleConfig]:
        conn = conn if conn is not None else self.db
        try:
            data = conn.hgetall(self.config_key(deployment_id))
            if not data:
                return None
            return self._deserialize_config(data)
        except redis.exceptions.ConnectionError:
            raise errors.LedgerUnavailableError("fetch_config")

    def require_config(self, deployment_id: str, conn=None) -> SaleConfig:
        cfg = self.fetch_config(deployment_id, conn)
        if cfg is None:
            raise errors.NotInitializedError(deployment_id)
        return cfg

    def fetch_buyer(self, deployment_id: str, buyer_identity: str, conn=None) -> Optional[BuyerRecord]:
        conn = conn if conn is not None else self.db
        try:
            data = conn.hgetall(self.buyer_key(deployment_id, buyer_identity))
            if not data:
                return None
            return self._deserialize_buyer(data)
        except redis.exceptions.ConnectionError:
            raise errors.LedgerUnavailableError("fetch_buyer")

    def fetch_or_new_buyer(self, deployment_id: str, buyer_identity: str, conn=None) -> tuple[BuyerRecord, bool]:
        """Existing record, or a fresh unsaved one. The flag is True when fresh."""
        record = self.fetch_buyer(deployment_id, buyer_identity, conn)
        if record is not None:
            return record, False

        return BuyerRecord(
            deployment_id=deployment_id,
            buyer_identity=buyer_identity,
            whitelisted=False,
            amount_purchased=0,
            created_at=int(time.time() * 1000),
        ), True

    def list_buyers(self, deployment_id: str) -> list[BuyerRecord]:
        try:
            buyers: list[BuyerRecord] = []
            cursor = 0
            pattern = f"{config.BUYER_KEY_PREFIX}:{deployment_id}:*"
            while True:
                cursor, keys = self.db.scan(cursor=cursor, match=pattern, count=100)
                if keys:
                    pipe = self.db.pipeline(transaction=False)
                    for key in keys:
                        pipe.hgetall(key)
                    for data in pipe.execute():
                        if data:
                            buyers.append(self._deserialize_buyer(data))

                if cursor == 0:
                    break
            return buyers
        except redis.exceptions.ConnectionError:
            raise errors.LedgerUnavailableError("list_buyers")

    # ─── Staged writes ───

    def stage_config(self, pipe, cfg: SaleConfig) -> None:
        pipe.hset(self.config_key(cfg.deployment_id), mapping=self._serialize_config(cfg))

    def stage_config_update(self, pipe, deployment_id: str, **fields: int) -> None:
        pipe.hset(self.config_key(deployment_id), mapping={k: str(v) for k, v in fields.items()})

    def stage_buyer(self, pipe, record: BuyerRecord) -> None:
        pipe.hset(
            self.buyer_key(record.deployment_id, record.buyer_identity),
            mapping=self._serialize_buyer(record),
        )

    # ─── Standalone writes ───

    def create_config(self, cfg: SaleConfig) -> bool:
        key = self.config_key(cfg.deployment_id)

        def body(pipe):
            if pipe.exists(key):
                raise errors.AlreadyInitializedError(cfg.deployment_id)
            pipe.multi()
            self.stage_config(pipe, cfg)
            return True

        return run_transaction(self.db, "create_config", [key], body)

    def create_or_fetch_buyer(self, deployment_id: str, buyer_identity: str) -> tuple[BuyerRecord, bool]:
        key = self.buyer_key(deployment_id, buyer_identity)

        def body(pipe):
            record, created = self.fetch_or_new_buyer(deployment_id, buyer_identity, pipe)
            pipe.multi()
            if created:
                self.stage_buyer(pipe, record)
            return record, created

        return run_transaction(self.db, "create_or_fetch_buyer", [key], body)
