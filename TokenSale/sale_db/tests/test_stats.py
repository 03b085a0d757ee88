import pytest

from TokenSale.sale_shared import config, errors
from TokenSale.sale_db.stats import SaleReporter


@pytest.fixture
def reporter(funded):
    return SaleReporter(funded)


def test_snapshot_fresh_sale(reporter, sale_params):
    snap = reporter.snapshot()
    assert snap.deployment_id == sale_params["deployment_id"]
    assert snap.token_price == sale_params["token_price"]
    assert snap.purchase_limit == sale_params["purchase_limit"]
    assert snap.vault_balance == sale_params["admin_tokens"]
    assert snap.escrow_currency_balance == 0
    assert snap.buyers_total == 0
    assert snap.units_sold == 0


def test_snapshot_after_sales(reporter, funded, admin, whitelisted_buyer, outsider, sale_params):
    funded.buy(whitelisted_buyer.identity, 2 * config.CURRENCY_BASE_UNIT)
    funded.whitelist_add(admin.identity, outsider.identity)
    funded.whitelist_remove(admin.identity, outsider.identity)

    snap = reporter.snapshot()
    assert snap.buyers_total == 2
    assert snap.buyers_whitelisted == 1
    assert snap.units_sold == 2 * config.CURRENCY_BASE_UNIT
    assert snap.vault_balance == sale_params["admin_tokens"] - snap.units_sold
    assert snap.escrow_currency_balance == 100_000_000


def test_buyer_report_sorted_with_remaining(reporter, funded, admin, whitelisted_buyer, outsider):
    funded.change_limit(admin.identity, 100)
    funded.buy(whitelisted_buyer.identity, 40)
    funded.whitelist_add(admin.identity, outsider.identity)

    report = reporter.buyer_report()
    assert [s.buyer_identity for s in report] == sorted([whitelisted_buyer.identity, outsider.identity])
    by_id = {s.buyer_identity: s for s in report}
    assert by_id[whitelisted_buyer.identity].remaining == 60
    assert by_id[outsider.identity].remaining == 100


def test_buyer_report_remaining_never_negative(reporter, funded, admin, whitelisted_buyer):
    funded.buy(whitelisted_buyer.identity, 10)
    funded.change_limit(admin.identity, 5)
    [summary] = reporter.buyer_report()
    assert summary.remaining == 0


def test_snapshot_uninitialized_raises(engine):
    with pytest.raises(errors.NotInitializedError):
        SaleReporter(engine).snapshot()
