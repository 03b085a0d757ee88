import time
from typing import Union

import redis

from TokenSale.sale_db.connection import run_transaction
from TokenSale.sale_shared import config, errors
from TokenSale.sale_shared.authority import AuthorityProof
from TokenSale.sale_shared.types import TransferPlan

Authority = Union[str, AuthorityProof]


class AssetGateway:
    """Per-asset holdings and the transfers between them.

    A holding is a hash ``{owner, balance, created_at}``. One that was never
    written is owned by its own holder with balance 0. Only the owner can move
    funds out: either by identity (the caller signed upstream) or by an
    AuthorityProof that re-derives to the owner.
    """

    def __init__(self, client: redis.Redis):
        self.db: redis.Redis = client

    def account_key(self, asset_id: str, holder: str) -> str:
        return f"{config.ACCOUNT_KEY_PREFIX}:{asset_id}:{holder}"

    def _validate_amount(self, amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise errors.InvalidAmountError("amount", amount)
        if amount < 0 or amount > config.MAX_AMOUNT:
            raise errors.InvalidAmountError("amount", amount)

    def _resolve_authority(self, authority: Authority) -> str:
        if isinstance(authority, AuthorityProof):
            try:
                return authority.resolve()
            except (errors.InvalidSeedsError, errors.InvalidIdentityError):
                raise errors.InvalidAuthorityError("derived authority", authority)
        return authority

    def _read_account(self, conn, asset_id: str, holder: str) -> tuple[str, int, bool]:
        owner, balance = conn.hmget(self.account_key(asset_id, holder), "owner", "balance")
        if owner is None:
            return holder, 0, False
        return owner.decode(), int(balance or 0), True

    # ─── Composition primitives ───

    def prepare_transfer(self, conn, asset_id: str, source: str, destination: str,
                         amount: int, authority: Authority) -> TransferPlan:
        """Read and check one transfer without writing anything.

        ``conn`` is a pipeline watching both holdings (or the plain client).
        """
        self._validate_amount(amount)

        owner, balance, _ = self._read_account(conn, asset_id, source)
        signer = self._resolve_authority(authority)
        if signer != owner:
            raise errors.InvalidAuthorityError(source, signer)

        if balance < amount:
            raise errors.InsufficientFundsError(asset_id, source, balance, amount)

        _, dest_balance, dest_exists = self._read_account(conn, asset_id, destination)
        if source != destination and dest_balance + amount > config.MAX_AMOUNT:
            raise errors.ArithmeticOverflowError(f"transfer {asset_id} to {destination}")

        return TransferPlan(
            asset_id=asset_id,
            source=source,
            destination=destination,
            amount=amount,
            source_balance=balance,
            dest_balance=dest_balance,
            dest_exists=dest_exists,
        )

    def stage_transfer(self, pipe, plan: TransferPlan) -> None:
        # absolute writes: u64 balances do not fit Redis' signed HINCRBY range
        if plan.amount == 0 or plan.source == plan.destination:
            return

        if not plan.dest_exists:
            self.stage_open_account(pipe, plan.asset_id, plan.destination)
        pipe.hset(self.account_key(plan.asset_id, plan.source), "balance", str(plan.source_balance - plan.amount))
        pipe.hset(self.account_key(plan.asset_id, plan.destination), "balance", str(plan.dest_balance + plan.amount))

    def stage_open_account(self, pipe, asset_id: str, holder: str, owner: str | None = None) -> None:
        """Queue creation of a holding. An explicit ``owner`` replaces any
        existing one; the balance is never touched."""
        key = self.account_key(asset_id, holder)
        if owner is None:
            pipe.hsetnx(key, "owner", holder)
        else:
            pipe.hset(key, "owner", owner)
        pipe.hsetnx(key, "balance", "0")
        pipe.hsetnx(key, "created_at", str(int(time.time() * 1000)))

    # ─── Standalone operations ───

    def open_account(self, asset_id: str, holder: str, owner: str | None = None) -> bool:
        key = self.account_key(asset_id, holder)

        def body(pipe):
            if pipe.exists(key):
                return False
            pipe.multi()
            self.stage_open_account(pipe, asset_id, holder, owner)
            return True

        return run_transaction(self.db, "open_account", [key], body)

    def read_balance(self, conn, asset_id: str, holder: str) -> int:
        _, balance, _ = self._read_account(conn, asset_id, holder)
        return balance

    def balance(self, asset_id: str, holder: str) -> int:
        try:
            return self.read_balance(self.db, asset_id, holder)
        except redis.exceptions.ConnectionError:
            raise errors.LedgerUnavailableError("balance")

    def owner_of(self, asset_id: str, holder: str) -> str:
        try:
            owner, _, _ = self._read_account(self.db, asset_id, holder)
            return owner
        except redis.exceptions.ConnectionError:
            raise errors.LedgerUnavailableError("owner_of")

    def mint(self, asset_id: str, holder: str, amount: int) -> int:
        """Issue new units straight into a holding. Returns the new balance."""
        self._validate_amount(amount)
        key = self.account_key(asset_id, holder)

        def body(pipe):
            _, balance, exists = self._read_account(pipe, asset_id, holder)
            if balance + amount > config.MAX_AMOUNT:
                raise errors.ArithmeticOverflowError(f"mint {asset_id} to {holder}")
            pipe.multi()
            if not exists:
                self.stage_open_account(pipe, asset_id, holder)
            pipe.hset(key, "balance", str(balance + amount))
            return balance + amount

        return run_transaction(self.db, "mint", [key], body)

    def transfer(self, asset_id: str, source: str, destination: str,
                 amount: int, authority: Authority) -> TransferPlan:
        keys = [self.account_key(asset_id, source), self.account_key(asset_id, destination)]

        def body(pipe):
            plan = self.prepare_transfer(pipe, asset_id, source, destination, amount, authority)
            pipe.multi()
            self.stage_transfer(pipe, plan)
            return plan

        return run_transaction(self.db, "transfer", keys, body)
