"""
Sale Engine: the eight instructions of a custodial token sale.

Every instruction is one optimistic Redis transaction (see
``connection.run_transaction``): all records and holdings it reads are
WATCHed, every check happens before MULTI, and the writes are queued together,
so a failed instruction leaves nothing behind.

Holdings involved per deployment:
    (asset_id, vault_id)        sellable asset pool, owned by the escrow authority
    (NATIVE,   authority_id)    currency collected from buyers, owned by itself
    (asset_id, admin)           admin's own tokens, source of deposits
    (NATIVE,   buyer)           buyer's currency, source of payments

Transfers out of the two escrow holdings are authorized with an
AuthorityProof rebuilt from the seed and bump stored in the Configuration
Record; nothing else can move them.
"""

import logging
import time
from dataclasses import replace
from typing import Optional

import redis

from TokenSale.sale_db.connection import run_transaction
from TokenSale.sale_db.gateway import AssetGateway
from TokenSale.sale_db.records import SaleRecords
from TokenSale.sale_shared import config, errors
from TokenSale.sale_shared.authority import AuthorityProof, derive, normalize_identity
from TokenSale.sale_shared.types import BuyerRecord, PurchaseReceipt, SaleConfig, TransferPlan

log = logging.getLogger(__name__)


def _check_u64(field: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise errors.InvalidAmountError(field, value)
    if not 0 <= value <= config.MAX_AMOUNT:
        raise errors.InvalidAmountError(field, value)


def _try_normalize(identity) -> Optional[str]:
    try:
        return normalize_identity(identity)
    except errors.InvalidIdentityError:
        return None


def purchase_quote(
    amount_purchased: int,
    purchase_limit: int,
    token_price: int,
    requested_amount: int,
    currency_base_unit: int = config.CURRENCY_BASE_UNIT,
) -> tuple[int, int]:
    """(buy_units, currency_cost) for a purchase that passed the limit check.

    Units are clamped to what is left under the limit; the cost truncates,
    so fractional currency is always in the buyer's favour.
    """
    remaining = purchase_limit - amount_purchased
    buy_units = min(remaining, requested_amount)
    currency_cost = (buy_units * token_price) // currency_base_unit
    return buy_units, currency_cost


class TokenSaleEngine:
    def __init__(self, client: redis.Redis, deployment_id: str,
                 currency_base_unit: int = config.CURRENCY_BASE_UNIT):
        self.db: redis.Redis = client
        self.deployment_id = normalize_identity(deployment_id)
        self.currency_base_unit = currency_base_unit
        self.records = SaleRecords(client)
        self.gateway = AssetGateway(client)

    def _config_key(self) -> str:
        return self.records.config_key(self.deployment_id)

    def _require_admin(self, cfg: SaleConfig, caller: str, operation: str) -> None:
        if _try_normalize(caller) != cfg.admin_identity:
            raise errors.UnauthorizedError(caller, operation)

    def authority_proof(self, cfg: SaleConfig) -> AuthorityProof:
        if cfg.seed_version != config.SEED_VERSION:
            raise errors.InvalidSeedsError(f"Unsupported seed version {cfg.seed_version}")
        return AuthorityProof(
            deployment_id=self.deployment_id,
            seeds=(config.AUTHORITY_SEED,),
            bump=cfg.authority_bump,
        )

    # ─── Admin Operations ───

    def initialize(self, token_price: int, purchase_limit: int,
                   admin_identity: str, asset_id: str) -> SaleConfig:
        _check_u64("token_price", token_price)
        _check_u64("purchase_limit", purchase_limit)
        admin = normalize_identity(admin_identity)
        if not isinstance(asset_id, str) or not asset_id or asset_id == config.CURRENCY_ASSET_ID:
            raise errors.InvalidIdentityError(asset_id)

        authority_id, authority_bump = derive(config.AUTHORITY_SEED, self.deployment_id)
        vault_id, vault_bump = derive(config.VAULT_SEED, self.deployment_id)

        cfg = SaleConfig(
            deployment_id=self.deployment_id,
            admin_identity=admin,
            token_price=token_price,
            purchase_limit=purchase_limit,
            asset_id=asset_id,
            authority_id=authority_id,
            authority_bump=authority_bump,
            vault_id=vault_id,
            vault_bump=vault_bump,
            seed_version=config.SEED_VERSION,
            created_at=int(time.time() * 1000),
        )

        def body(pipe):
            if pipe.exists(self._config_key()):
                raise errors.AlreadyInitializedError(self.deployment_id)
            pipe.multi()
            self.records.stage_config(pipe, cfg)
            self.gateway.stage_open_account(pipe, asset_id, vault_id, owner=authority_id)
            self.gateway.stage_open_account(pipe, config.CURRENCY_ASSET_ID, authority_id, owner=authority_id)
            return cfg

        keys = [
            self._config_key(),
            self.gateway.account_key(asset_id, vault_id),
            self.gateway.account_key(config.CURRENCY_ASSET_ID, authority_id),
        ]
        result = run_transaction(self.db, "initialize", keys, body)
        log.info(
            "initialize: deployment=%s admin=%s asset=%s authority=%s bump=%d vault=%s",
            self.deployment_id, admin, asset_id, authority_id, authority_bump, vault_id,
        )
        return result

    def _update_config(self, caller: str, operation: str, **fields: int) -> SaleConfig:
        def body(pipe):
            cfg = self.records.require_config(self.deployment_id, pipe)
            self._require_admin(cfg, caller, operation)
            for name, value in fields.items():
                _check_u64(name, value)
            pipe.multi()
            self.records.stage_config_update(pipe, self.deployment_id, **fields)
            return replace(cfg, **fields)

        return run_transaction(self.db, operation, [self._config_key()], body)

    def change_price(self, caller: str, new_price: int) -> SaleConfig:
        cfg = self._update_config(caller, "change_price", token_price=new_price)
        log.info("change_price: deployment=%s price=%d", self.deployment_id, new_price)
        return cfg

    def change_limit(self, caller: str, new_limit: int) -> SaleConfig:
        cfg = self._update_config(caller, "change_limit", purchase_limit=new_limit)
        log.info("change_limit: deployment=%s limit=%d", self.deployment_id, new_limit)
        return cfg

    def _set_whitelisted(self, caller: str, buyer_identity: str, whitelisted: bool) -> tuple[BuyerRecord, bool]:
        operation = "whitelist_add" if whitelisted else "whitelist_remove"
        buyer = _try_normalize(buyer_identity)

        keys = [self._config_key()]
        if buyer is not None:
            keys.append(self.records.buyer_key(self.deployment_id, buyer))

        def body(pipe):
            cfg = self.records.require_config(self.deployment_id, pipe)
            self._require_admin(cfg, caller, operation)
            if buyer is None:
                raise errors.InvalidIdentityError(buyer_identity)

            if whitelisted:
                record, created = self.records.fetch_or_new_buyer(self.deployment_id, buyer, pipe)
            else:
                record = self.records.fetch_buyer(self.deployment_id, buyer, pipe)
                if record is None:
                    raise errors.RecordNotFoundError(self.records.buyer_key(self.deployment_id, buyer))
                created = False

            record.whitelisted = whitelisted
            pipe.multi()
            self.records.stage_buyer(pipe, record)
            return record, created

        return run_transaction(self.db, operation, keys, body)

    def whitelist_add(self, caller: str, buyer_identity: str) -> BuyerRecord:
        record, created = self._set_whitelisted(caller, buyer_identity, True)
        log.info(
            "whitelist_add: deployment=%s buyer=%s new_record=%s purchased=%d",
            self.deployment_id, record.buyer_identity, created, record.amount_purchased,
        )
        return record

    def whitelist_remove(self, caller: str, buyer_identity: str) -> BuyerRecord:
        record, _ = self._set_whitelisted(caller, buyer_identity, False)
        log.info("whitelist_remove: deployment=%s buyer=%s", self.deployment_id, record.buyer_identity)
        return record

    # ─── Purchase ───

    def buy(self, caller: str, amount: int) -> PurchaseReceipt:
        _check_u64("amount", amount)
        buyer = normalize_identity(caller)
        anchor = self.records.require_config(self.deployment_id)

        keys = [
            self._config_key(),
            self.records.buyer_key(self.deployment_id, buyer),
            self.gateway.account_key(config.CURRENCY_ASSET_ID, buyer),
            self.gateway.account_key(config.CURRENCY_ASSET_ID, anchor.authority_id),
            self.gateway.account_key(anchor.asset_id, anchor.vault_id),
            self.gateway.account_key(anchor.asset_id, buyer),
        ]

        def body(pipe):
            cfg = self.records.require_config(self.deployment_id, pipe)
            record = self.records.fetch_buyer(self.deployment_id, buyer, pipe)

            if record is None or not record.whitelisted:
                raise errors.NotWhitelistedError(buyer)
            log.debug("buy: %s is whitelisted", buyer)

            if record.amount_purchased >= cfg.purchase_limit:
                raise errors.LimitReachedError(buyer, record.amount_purchased, cfg.purchase_limit)

            buy_units, currency_cost = purchase_quote(
                record.amount_purchased, cfg.purchase_limit, cfg.token_price,
                amount, self.currency_base_unit,
            )
            if currency_cost > config.MAX_AMOUNT:
                raise errors.ArithmeticOverflowError("buy")

            if buy_units == 0:
                pipe.multi()
                return PurchaseReceipt(
                    buyer=buyer,
                    requested_amount=amount,
                    buy_units=0,
                    currency_cost=0,
                    amount_purchased=record.amount_purchased,
                    remaining=cfg.purchase_limit - record.amount_purchased,
                )

            log.debug("buy: collecting %d %s from %s", currency_cost, config.CURRENCY_ASSET_ID, buyer)
            payment = self.gateway.prepare_transfer(
                pipe, config.CURRENCY_ASSET_ID, buyer, cfg.authority_id, currency_cost, buyer,
            )
            log.debug("buy: releasing %d %s from vault", buy_units, cfg.asset_id)
            delivery = self.gateway.prepare_transfer(
                pipe, cfg.asset_id, cfg.vault_id, buyer, buy_units, self.authority_proof(cfg),
            )

            record.amount_purchased += buy_units

            pipe.multi()
            self.gateway.stage_transfer(pipe, payment)
            self.gateway.stage_transfer(pipe, delivery)
            self.records.stage_buyer(pipe, record)

            return PurchaseReceipt(
                buyer=buyer,
                requested_amount=amount,
                buy_units=buy_units,
                currency_cost=currency_cost,
                amount_purchased=record.amount_purchased,
                remaining=cfg.purchase_limit - record.amount_purchased,
            )

        receipt = run_transaction(self.db, "buy", keys, body, retries=config.BUY_OPTIMISTIC_LOCK_RETRIES)
        log.info(
            "buy: deployment=%s buyer=%s requested=%d units=%d cost=%d purchased=%d",
            self.deployment_id, buyer, amount, receipt.buy_units, receipt.currency_cost,
            receipt.amount_purchased,
        )
        return receipt

    # ─── Deposit / Withdraw ───

    def deposit(self, caller: str, amount: int) -> TransferPlan:
        anchor = self.records.require_config(self.deployment_id)
        keys = [
            self._config_key(),
            self.gateway.account_key(anchor.asset_id, anchor.admin_identity),
            self.gateway.account_key(anchor.asset_id, anchor.vault_id),
        ]

        def body(pipe):
            cfg = self.records.require_config(self.deployment_id, pipe)
            self._require_admin(cfg, caller, "deposit")
            _check_u64("amount", amount)
            plan = self.gateway.prepare_transfer(
                pipe, cfg.asset_id, cfg.admin_identity, cfg.vault_id, amount, cfg.admin_identity,
            )
            pipe.multi()
            self.gateway.stage_transfer(pipe, plan)
            return plan

        plan = run_transaction(self.db, "deposit", keys, body)
        log.info("deposit: deployment=%s amount=%d", self.deployment_id, amount)
        return plan

    def withdraw(self, caller: str, amount: int) -> TransferPlan:
        anchor = self.records.require_config(self.deployment_id)
        keys = [
            self._config_key(),
            self.gateway.account_key(config.CURRENCY_ASSET_ID, anchor.authority_id),
            self.gateway.account_key(config.CURRENCY_ASSET_ID, anchor.admin_identity),
        ]

        def body(pipe):
            cfg = self.records.require_config(self.deployment_id, pipe)
            self._require_admin(cfg, caller, "withdraw")
            _check_u64("amount", amount)

            escrow = self.gateway.read_balance(pipe, config.CURRENCY_ASSET_ID, cfg.authority_id)
            if amount > escrow:
                raise errors.InsufficientFundsError(config.CURRENCY_ASSET_ID, cfg.authority_id, escrow, amount)

            plan = self.gateway.prepare_transfer(
                pipe, config.CURRENCY_ASSET_ID, cfg.authority_id, cfg.admin_identity,
                amount, self.authority_proof(cfg),
            )
            pipe.multi()
            self.gateway.stage_transfer(pipe, plan)
            return plan

        plan = run_transaction(self.db, "withdraw", keys, body)
        log.info("withdraw: deployment=%s amount=%d", self.deployment_id, amount)
        return plan

    # ─── Queries ───

    def get_config(self) -> Optional[SaleConfig]:
        return self.records.fetch_config(self.deployment_id)

    def get_buyer(self, buyer_identity: str) -> Optional[BuyerRecord]:
        return self.records.fetch_buyer(self.deployment_id, normalize_identity(buyer_identity))

    def vault_balance(self) -> int:
        cfg = self.records.require_config(self.deployment_id)
        return self.gateway.balance(cfg.asset_id, cfg.vault_id)

    def escrow_balance(self) -> int:
        cfg = self.records.require_config(self.deployment_id)
        return self.gateway.balance(config.CURRENCY_ASSET_ID, cfg.authority_id)
