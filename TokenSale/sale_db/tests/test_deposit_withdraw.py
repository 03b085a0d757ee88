import pytest

from TokenSale.sale_shared import config, errors

WHOLE = config.CURRENCY_BASE_UNIT


# ── Deposit ──

def test_deposit_moves_tokens_into_vault(initialized, admin, sale_params):
    initialized.gateway.mint(sale_params["asset_id"], admin.identity, 100)
    plan = initialized.deposit(admin.identity, 60)
    assert plan.destination == initialized.get_config().vault_id
    assert initialized.vault_balance() == 60
    assert initialized.gateway.balance(sale_params["asset_id"], admin.identity) == 40


def test_deposit_keeps_vault_owner(initialized, admin, sale_params):
    initialized.gateway.mint(sale_params["asset_id"], admin.identity, 10)
    initialized.deposit(admin.identity, 10)
    cfg = initialized.get_config()
    assert initialized.gateway.owner_of(cfg.asset_id, cfg.vault_id) == cfg.authority_id


def test_deposit_more_than_held_raises(initialized, admin, sale_params):
    initialized.gateway.mint(sale_params["asset_id"], admin.identity, 5)
    with pytest.raises(errors.InsufficientFundsError):
        initialized.deposit(admin.identity, 6)
    assert initialized.vault_balance() == 0
    assert initialized.gateway.balance(sale_params["asset_id"], admin.identity) == 5


def test_deposit_zero_is_noop(initialized, admin):
    initialized.deposit(admin.identity, 0)
    assert initialized.vault_balance() == 0


def test_deposit_invalid_amount_from_admin(initialized, admin):
    with pytest.raises(errors.InvalidAmountError):
        initialized.deposit(admin.identity, -1)


def test_deposit_before_initialize_raises(engine, admin):
    with pytest.raises(errors.NotInitializedError):
        engine.deposit(admin.identity, 1)


# ── Withdraw ──

def test_withdraw_moves_currency_to_admin(funded, admin, whitelisted_buyer):
    funded.buy(whitelisted_buyer.identity, 10 * WHOLE)
    assert funded.escrow_balance() == 500_000_000

    plan = funded.withdraw(admin.identity, 200_000_000)
    assert plan.source == funded.get_config().authority_id
    assert funded.escrow_balance() == 300_000_000
    assert funded.gateway.balance(config.CURRENCY_ASSET_ID, admin.identity) == 200_000_000


def test_withdraw_everything(funded, admin, whitelisted_buyer):
    funded.buy(whitelisted_buyer.identity, 10 * WHOLE)
    funded.withdraw(admin.identity, funded.escrow_balance())
    assert funded.escrow_balance() == 0
    assert funded.gateway.balance(config.CURRENCY_ASSET_ID, admin.identity) == 500_000_000


def test_withdraw_more_than_collected_raises(funded, admin, whitelisted_buyer):
    funded.buy(whitelisted_buyer.identity, WHOLE)
    with pytest.raises(errors.InsufficientFundsError) as exc:
        funded.withdraw(admin.identity, 50_000_001)
    assert exc.value.balance == 50_000_000
    assert funded.escrow_balance() == 50_000_000
    assert funded.gateway.balance(config.CURRENCY_ASSET_ID, admin.identity) == 0


def test_withdraw_from_empty_escrow_raises(initialized, admin):
    with pytest.raises(errors.InsufficientFundsError):
        initialized.withdraw(admin.identity, 1)


def test_withdraw_zero_is_noop(initialized, admin):
    initialized.withdraw(admin.identity, 0)
    assert initialized.escrow_balance() == 0


def test_withdraw_does_not_touch_vault(funded, admin, whitelisted_buyer, sale_params):
    funded.buy(whitelisted_buyer.identity, WHOLE)
    funded.withdraw(admin.identity, 1)
    assert funded.vault_balance() == sale_params["admin_tokens"] - WHOLE


def test_escrow_cannot_be_moved_directly(funded, admin, whitelisted_buyer):
    funded.buy(whitelisted_buyer.identity, WHOLE)
    cfg = funded.get_config()
    with pytest.raises(errors.InvalidAuthorityError):
        funded.gateway.transfer(config.CURRENCY_ASSET_ID, cfg.authority_id, admin.identity, 1, admin.identity)
    with pytest.raises(errors.InvalidAuthorityError):
        funded.gateway.transfer(cfg.asset_id, cfg.vault_id, admin.identity, 1, admin.identity)
