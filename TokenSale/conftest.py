import pytest
import fakeredis

from TokenSale.sale_shared import config
from TokenSale.sale_shared.authority import Keypair
from TokenSale.sale_db.engine import TokenSaleEngine
from TokenSale.sale_db.gateway import AssetGateway
from TokenSale.sale_db.records import SaleRecords

DEPLOYMENT_ID = "72" * 32
ASSET_ID = "TSALE"
TOKEN_PRICE = 50_000_000             # 0.05 currency per whole token
PURCHASE_LIMIT = 400 * 10**9
ADMIN_TOKENS = 1000 * 10**9
BUYER_CURRENCY = 1 * config.CURRENCY_BASE_UNIT


@pytest.fixture
def sale_params():
    return {
        "deployment_id": DEPLOYMENT_ID,
        "asset_id": ASSET_ID,
        "token_price": TOKEN_PRICE,
        "purchase_limit": PURCHASE_LIMIT,
        "admin_tokens": ADMIN_TOKENS,
        "buyer_currency": BUYER_CURRENCY,
    }


@pytest.fixture
def ledger_client():
    r = fakeredis.FakeRedis()
    yield r
    r.flushdb()
    r.close()


@pytest.fixture
def records(ledger_client):
    return SaleRecords(ledger_client)


@pytest.fixture
def gateway(ledger_client):
    return AssetGateway(ledger_client)


@pytest.fixture
def admin():
    return Keypair.from_seed(b"\x01" * 32)


@pytest.fixture
def buyer():
    return Keypair.from_seed(b"\x02" * 32)


@pytest.fixture
def outsider():
    return Keypair.from_seed(b"\x03" * 32)


@pytest.fixture
def engine(ledger_client):
    return TokenSaleEngine(ledger_client, DEPLOYMENT_ID)


@pytest.fixture
def initialized(engine, admin):
    engine.initialize(TOKEN_PRICE, PURCHASE_LIMIT, admin.identity, ASSET_ID)
    return engine


@pytest.fixture
def funded(initialized, admin, buyer):
    """Initialized sale with the full supply in the vault and a buyer holding currency."""
    initialized.gateway.mint(ASSET_ID, admin.identity, ADMIN_TOKENS)
    initialized.deposit(admin.identity, ADMIN_TOKENS)
    initialized.gateway.mint(config.CURRENCY_ASSET_ID, buyer.identity, BUYER_CURRENCY)
    return initialized


@pytest.fixture
def whitelisted_buyer(funded, admin, buyer):
    funded.whitelist_add(admin.identity, buyer.identity)
    return buyer
