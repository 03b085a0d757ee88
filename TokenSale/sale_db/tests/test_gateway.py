import pytest

from TokenSale.sale_shared import config, errors
from TokenSale.sale_shared.authority import AuthorityProof, derive

ASSET = "TSALE"
DEPLOYMENT = "ab" * 32
ALICE = "a1" * 32
BOB = "b0" * 32


@pytest.fixture
def escrow(gateway):
    """A holding owned by a derived authority, funded with 500 units."""
    authority_id, bump = derive(config.AUTHORITY_SEED, DEPLOYMENT)
    vault_id, _ = derive(config.VAULT_SEED, DEPLOYMENT)
    gateway.open_account(ASSET, vault_id, owner=authority_id)
    gateway.mint(ASSET, vault_id, 500)
    proof = AuthorityProof(DEPLOYMENT, (config.AUTHORITY_SEED,), bump)
    return vault_id, authority_id, proof


# ── Accounts ──

def test_unknown_holding_is_empty_and_self_owned(gateway):
    assert gateway.balance(ASSET, ALICE) == 0
    assert gateway.owner_of(ASSET, ALICE) == ALICE


def test_open_account_once(gateway):
    assert gateway.open_account(ASSET, ALICE) is True
    assert gateway.open_account(ASSET, ALICE) is False


def test_open_account_with_owner(gateway):
    gateway.open_account(ASSET, ALICE, owner=BOB)
    assert gateway.owner_of(ASSET, ALICE) == BOB
    assert gateway.balance(ASSET, ALICE) == 0


def test_mint_credits_balance(gateway):
    assert gateway.mint(ASSET, ALICE, 100) == 100
    assert gateway.mint(ASSET, ALICE, 50) == 150
    assert gateway.balance(ASSET, ALICE) == 150


def test_mint_overflow_raises(gateway):
    gateway.mint(ASSET, ALICE, config.MAX_AMOUNT)
    with pytest.raises(errors.ArithmeticOverflowError):
        gateway.mint(ASSET, ALICE, 1)


@pytest.mark.parametrize("bad", [-1, config.MAX_AMOUNT + 1, 1.5, "10", True])
def test_invalid_amount_raises(gateway, bad):
    with pytest.raises(errors.InvalidAmountError):
        gateway.mint(ASSET, ALICE, bad)


def test_assets_are_separate(gateway):
    gateway.mint(ASSET, ALICE, 10)
    assert gateway.balance(config.CURRENCY_ASSET_ID, ALICE) == 0


# ── Transfers by owner ──

def test_transfer_by_owner(gateway):
    gateway.mint(ASSET, ALICE, 100)
    plan = gateway.transfer(ASSET, ALICE, BOB, 40, ALICE)
    assert plan.amount == 40
    assert gateway.balance(ASSET, ALICE) == 60
    assert gateway.balance(ASSET, BOB) == 40


def test_transfer_creates_destination_owned_by_itself(gateway):
    gateway.mint(ASSET, ALICE, 100)
    gateway.transfer(ASSET, ALICE, BOB, 1, ALICE)
    assert gateway.owner_of(ASSET, BOB) == BOB


def test_transfer_by_non_owner_raises(gateway):
    gateway.mint(ASSET, ALICE, 100)
    with pytest.raises(errors.InvalidAuthorityError):
        gateway.transfer(ASSET, ALICE, BOB, 40, BOB)
    assert gateway.balance(ASSET, ALICE) == 100


def test_transfer_insufficient_funds_raises(gateway):
    gateway.mint(ASSET, ALICE, 10)
    with pytest.raises(errors.InsufficientFundsError) as exc:
        gateway.transfer(ASSET, ALICE, BOB, 11, ALICE)
    assert exc.value.balance == 10
    assert exc.value.amount == 11
    assert gateway.balance(ASSET, ALICE) == 10
    assert gateway.balance(ASSET, BOB) == 0


def test_insufficient_funds_is_transfer_error(gateway):
    with pytest.raises(errors.TransferError):
        gateway.transfer(ASSET, ALICE, BOB, 1, ALICE)


def test_zero_transfer_is_noop(gateway, ledger_client):
    gateway.transfer(ASSET, ALICE, BOB, 0, ALICE)
    assert not ledger_client.exists(gateway.account_key(ASSET, BOB))


def test_transfer_destination_overflow_raises(gateway):
    gateway.mint(ASSET, ALICE, 10)
    gateway.mint(ASSET, BOB, config.MAX_AMOUNT)
    with pytest.raises(errors.ArithmeticOverflowError):
        gateway.transfer(ASSET, ALICE, BOB, 1, ALICE)


# ── Transfers by derivation proof ──

def test_transfer_with_derivation_proof(gateway, escrow):
    vault_id, _, proof = escrow
    gateway.transfer(ASSET, vault_id, ALICE, 200, proof)
    assert gateway.balance(ASSET, vault_id) == 300
    assert gateway.balance(ASSET, ALICE) == 200


def test_transfer_with_wrong_bump_raises(gateway, escrow):
    vault_id, _, proof = escrow
    forged = AuthorityProof(proof.deployment_id, proof.seeds, (proof.bump + 1) % 256)
    with pytest.raises(errors.InvalidAuthorityError):
        gateway.transfer(ASSET, vault_id, ALICE, 1, forged)
    assert gateway.balance(ASSET, vault_id) == 500


def test_transfer_with_other_deployment_proof_raises(gateway, escrow):
    vault_id, _, proof = escrow
    _, other_bump = derive(config.AUTHORITY_SEED, "cd" * 32)
    forged = AuthorityProof("cd" * 32, proof.seeds, other_bump)
    with pytest.raises(errors.InvalidAuthorityError):
        gateway.transfer(ASSET, vault_id, ALICE, 1, forged)


def test_u64_balances_beyond_signed_range(gateway):
    big = 2**63 + 5
    gateway.mint(ASSET, ALICE, big)
    gateway.transfer(ASSET, ALICE, BOB, big - 1, ALICE)
    assert gateway.balance(ASSET, ALICE) == 1
    assert gateway.balance(ASSET, BOB) == big - 1


def test_self_transfer_keeps_balance(gateway):
    gateway.mint(ASSET, ALICE, 10)
    gateway.transfer(ASSET, ALICE, ALICE, 7, ALICE)
    assert gateway.balance(ASSET, ALICE) == 10


def test_vault_identity_cannot_move_its_own_funds(gateway, escrow):
    vault_id, _, _ = escrow
    with pytest.raises(errors.InvalidAuthorityError):
        gateway.transfer(ASSET, vault_id, ALICE, 1, vault_id)


# ── Composition primitives ──

def test_prepare_transfer_writes_nothing(gateway):
    gateway.mint(ASSET, ALICE, 100)
    plan = gateway.prepare_transfer(gateway.db, ASSET, ALICE, BOB, 30, ALICE)
    assert plan.dest_exists is False
    assert gateway.balance(ASSET, ALICE) == 100


def test_stage_transfer_applies_plan(gateway, ledger_client):
    gateway.mint(ASSET, ALICE, 100)
    plan = gateway.prepare_transfer(ledger_client, ASSET, ALICE, BOB, 30, ALICE)
    pipe = ledger_client.pipeline(transaction=True)
    gateway.stage_transfer(pipe, plan)
    pipe.execute()
    assert gateway.balance(ASSET, ALICE) == 70
    assert gateway.balance(ASSET, BOB) == 30
