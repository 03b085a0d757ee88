"""
Token Sale Prototype — end-to-end sale lifecycle against a live Redis.

Requires Redis:
    docker run -p 6379:6379 redis:7

Run:
    python -m TokenSale.prototype
    python -m TokenSale.prototype --deployment <64 hex chars>
"""

import argparse
import logging
import os

from TokenSale.sale_shared import config
from TokenSale.sale_shared.authority import Keypair
from TokenSale.sale_shared.errors import NotWhitelistedError, LimitReachedError
from TokenSale.sale_db.connection import close, create_ledger_client
from TokenSale.sale_db.engine import TokenSaleEngine
from TokenSale.sale_db.stats import SaleReporter


# ─── ANSI Display Helpers ───

class Display:
    """Terminal formatting with ANSI colors — zero external dependencies."""

    RESET   = "\033[0m"
    BOLD    = "\033[1m"
    DIM     = "\033[2m"

    RED     = "\033[91m"
    GREEN   = "\033[92m"
    YELLOW  = "\033[93m"
    BLUE    = "\033[94m"
    MAGENTA = "\033[95m"
    CYAN    = "\033[96m"

    @classmethod
    def phase_header(cls, number: int, title: str) -> None:
        line = "═" * 60
        print(f"\n{cls.CYAN}{cls.BOLD}{line}")
        print(f"  PHASE {number} — {title}")
        print(f"{line}{cls.RESET}\n")

    @classmethod
    def arrow(cls, msg: str) -> None:
        print(f"  {cls.BLUE}→{cls.RESET} {msg}")

    @classmethod
    def success(cls, msg: str) -> None:
        print(f"  {cls.GREEN}✓{cls.RESET} {msg}")

    @classmethod
    def rejected(cls, msg: str) -> None:
        print(f"  {cls.RED}✗{cls.RESET} {msg}")

    @classmethod
    def stat_row(cls, label: str, value, width: int = 28) -> None:
        print(f"  {label:<{width}} {cls.BOLD}{value}{cls.RESET}")

    @classmethod
    def section(cls, title: str) -> None:
        print(f"\n  {cls.MAGENTA}{cls.BOLD}── {title} ──{cls.RESET}")

    @classmethod
    def banner(cls) -> None:
        print(f"""
{cls.CYAN}{cls.BOLD}
    ╔═══════════════════════════════════════════════════╗
    ║     Token Sale — Custodial Escrow Demo            ║
    ║     Whitelist, capped purchases, keyless vault    ║
    ╚═══════════════════════════════════════════════════╝
{cls.RESET}""")


def whole(units: int) -> str:
    return f"{units / config.CURRENCY_BASE_UNIT:,.4f}"


# ─── Prototype Logic ───

DECIMALS = 9
TOKEN_PRICE = 50_000_000              # 0.05 currency per whole token
PURCHASE_LIMIT = 400 * 10**DECIMALS
MINTED = 1000 * 10**DECIMALS
BUYER_AIRDROP = 1 * config.CURRENCY_BASE_UNIT
ASSET_ID = "DEMO"


def phase1_setup(engine: TokenSaleEngine, admin: Keypair, buyer: Keypair) -> None:
    Display.phase_header(1, "SETUP — Mint, Initialize, Deposit")

    engine.gateway.mint(ASSET_ID, admin.identity, MINTED)
    Display.success(f"Minted {whole(MINTED)} {ASSET_ID} to admin")
    engine.gateway.mint(config.CURRENCY_ASSET_ID, buyer.identity, BUYER_AIRDROP)
    Display.success(f"Airdropped {whole(BUYER_AIRDROP)} {config.CURRENCY_ASSET_ID} to buyer")

    cfg = engine.initialize(TOKEN_PRICE, PURCHASE_LIMIT, admin.identity, ASSET_ID)
    Display.success("Sale initialized")
    Display.stat_row("Escrow authority", f"{cfg.authority_id[:16]}…  bump={cfg.authority_bump}")
    Display.stat_row("Vault", f"{cfg.vault_id[:16]}…  bump={cfg.vault_bump}")

    engine.deposit(admin.identity, MINTED)
    Display.success(f"Deposited {whole(MINTED)} {ASSET_ID} into the vault")
    Display.stat_row("Admin balance", whole(engine.gateway.balance(ASSET_ID, admin.identity)))
    Display.stat_row("Vault balance", whole(engine.vault_balance()))


def phase2_buy(engine: TokenSaleEngine, admin: Keypair, buyer: Keypair) -> None:
    Display.phase_header(2, "BUY — Allow-list and Capped Purchases")
    amount = 3 * 10**DECIMALS

    Display.section("Buying before whitelisting")
    try:
        engine.buy(buyer.identity, amount)
    except NotWhitelistedError as e:
        Display.rejected(f"{e.kind}: {e}")

    Display.section("Whitelisting buyer")
    engine.whitelist_add(admin.identity, buyer.identity)
    Display.success("Buyer added to allow-list")

    receipt = engine.buy(buyer.identity, amount)
    Display.success(f"Bought {whole(receipt.buy_units)} {ASSET_ID} for {whole(receipt.currency_cost)} {config.CURRENCY_ASSET_ID}")
    Display.stat_row("Buyer tokens", whole(engine.gateway.balance(ASSET_ID, buyer.identity)))
    Display.stat_row("Remaining allowance", whole(receipt.remaining))

    Display.section("Tightening the limit")
    engine.change_limit(admin.identity, receipt.amount_purchased + 10**DECIMALS)
    receipt = engine.buy(buyer.identity, amount)
    Display.success(f"Request clamped to {whole(receipt.buy_units)} {ASSET_ID}")
    try:
        engine.buy(buyer.identity, amount)
    except LimitReachedError as e:
        Display.rejected(f"{e.kind}: {e}")


def phase3_withdraw(engine: TokenSaleEngine, admin: Keypair) -> None:
    Display.phase_header(3, "WITHDRAW — Collecting Proceeds")

    escrow = engine.escrow_balance()
    half = escrow // 2
    engine.withdraw(admin.identity, half)
    Display.success(f"Withdrew {whole(half)} of {whole(escrow)} {config.CURRENCY_ASSET_ID}")

    snap = SaleReporter(engine).snapshot()
    Display.section("Final state")
    Display.stat_row("Price (per token)", whole(snap.token_price))
    Display.stat_row("Purchase limit", whole(snap.purchase_limit))
    Display.stat_row("Vault balance", whole(snap.vault_balance))
    Display.stat_row("Escrow currency", whole(snap.escrow_currency_balance))
    Display.stat_row("Buyers (whitelisted/total)", f"{snap.buyers_whitelisted}/{snap.buyers_total}")
    Display.stat_row("Units sold", whole(snap.units_sold))


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Token sale lifecycle demo")
    parser.add_argument("--deployment", default=None, help="32-byte hex deployment id (random if omitted)")
    parser.add_argument("--verbose", action="store_true", help="show engine diagnostics")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    deployment_id = args.deployment or os.urandom(32).hex()
    client = create_ledger_client()
    engine = TokenSaleEngine(client, deployment_id)
    admin, buyer = Keypair(), Keypair()

    Display.banner()
    Display.arrow(f"Deployment {deployment_id}")
    try:
        phase1_setup(engine, admin, buyer)
        phase2_buy(engine, admin, buyer)
        phase3_withdraw(engine, admin)
    finally:
        close(client)


if __name__ == "__main__":
    main()
