from TokenSale.sale_shared import config
from TokenSale.sale_shared.types import BuyerSummary, SaleSnapshot
from TokenSale.sale_db.engine import TokenSaleEngine


class SaleReporter:
    def __init__(self, engine: TokenSaleEngine):
        self.engine = engine

    def snapshot(self) -> SaleSnapshot:
        cfg = self.engine.records.require_config(self.engine.deployment_id)
        buyers = self.engine.records.list_buyers(self.engine.deployment_id)

        return SaleSnapshot(
            deployment_id=cfg.deployment_id,
            token_price=cfg.token_price,
            purchase_limit=cfg.purchase_limit,
            vault_balance=self.engine.gateway.balance(cfg.asset_id, cfg.vault_id),
            escrow_currency_balance=self.engine.gateway.balance(config.CURRENCY_ASSET_ID, cfg.authority_id),
            buyers_total=len(buyers),
            buyers_whitelisted=sum(1 for b in buyers if b.whitelisted),
            units_sold=sum(b.amount_purchased for b in buyers),
        )

    def buyer_report(self) -> list[BuyerSummary]:
        cfg = self.engine.records.require_config(self.engine.deployment_id)
        buyers = self.engine.records.list_buyers(self.engine.deployment_id)

        return sorted(
            (
                BuyerSummary(
                    buyer_identity=b.buyer_identity,
                    whitelisted=b.whitelisted,
                    amount_purchased=b.amount_purchased,
                    remaining=max(0, cfg.purchase_limit - b.amount_purchased),
                )
                for b in buyers
            ),
            key=lambda s: s.buyer_identity,
        )
