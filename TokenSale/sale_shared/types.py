from dataclasses import dataclass

@dataclass
class SaleConfig:
    deployment_id:   str
    admin_identity:  str
    token_price:     int
    purchase_limit:  int
    asset_id:        str
    authority_id:    str
    authority_bump:  int
    vault_id:        str
    vault_bump:      int
    seed_version:    int
    created_at:      int

@dataclass
class BuyerRecord:
    deployment_id:     str
    buyer_identity:    str
    whitelisted:       bool
    amount_purchased:  int
    created_at:        int

@dataclass
class TransferPlan:
    asset_id:     str
    source:       str
    destination:  str
    amount:          int
    source_balance:  int     # balances as read, before the transfer
    dest_balance:    int
    dest_exists:     bool

@dataclass
class PurchaseReceipt:
    buyer:             str
    requested_amount:  int
    buy_units:         int
    currency_cost:     int
    amount_purchased:  int
    remaining:         int

@dataclass
class SaleSnapshot:
    deployment_id:            str
    token_price:              int
    purchase_limit:           int
    vault_balance:            int
    escrow_currency_balance:  int
    buyers_total:             int
    buyers_whitelisted:       int
    units_sold:               int

@dataclass
class BuyerSummary:
    buyer_identity:    str
    whitelisted:       bool
    amount_purchased:  int
    remaining:         int

@dataclass
class HealthStatus:
    ledger_connected:  bool
    ledger_key_count:  int
    uptime_seconds:    float
