"""
FastAPI instruction surface for one token-sale deployment.

Every state-changing request is a signed envelope:

    {"caller": <hex identity>, "nonce": <str>, "signature_b64": <b64>, "args": {...}}

where the signature is ed25519 over
``signing_payload(DEPLOYMENT_ID, <instruction>, caller, args, nonce)``. The signature
is what makes ``caller`` trustworthy; the engine then applies its own admin /
whitelist rules. Nonces are single-use per caller.

Errors come back as ``{"detail": {"kind": ..., "message": ...}}``.
"""

import base64
import binascii
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from TokenSale.sale_server import config, db
from TokenSale.sale_db.engine import TokenSaleEngine
from TokenSale.sale_db.stats import SaleReporter
from TokenSale.sale_shared import config as sale_config
from TokenSale.sale_shared.authority import normalize_identity, signing_payload, verify_signature
from TokenSale.sale_shared.errors import (
    InvalidSignatureError,
    ReplayedNonceError,
    TokenSaleError,
    UnauthorizedError,
)

log = logging.getLogger(__name__)


STATUS_BY_KIND = {
    "InvalidSignature":   401,
    "Unauthorized":       403,
    "NotWhitelisted":     403,
    "InvalidAuthority":   403,
    "RecordNotFound":     404,
    "AlreadyInitialized": 409,
    "LimitReached":       409,
    "InsufficientFunds":  409,
    "ReplayedNonce":      409,
    "InvalidAmount":      422,
    "InvalidIdentity":    422,
    "InvalidSeeds":       422,
    "ArithmeticOverflow": 422,
    "Concurrency":        503,
    "LedgerUnavailable":  503,
}


# ── Pydantic request/response models ──


class SignedEnvelope(BaseModel):
    caller: str
    nonce: str = Field(min_length=1, max_length=128)
    signature_b64: str


class InitializeArgs(BaseModel):
    token_price: int
    purchase_limit: int
    admin_identity: str
    asset_id: str


class PriceArgs(BaseModel):
    new_price: int


class LimitArgs(BaseModel):
    new_limit: int


class BuyerArgs(BaseModel):
    buyer_identity: str


class AmountArgs(BaseModel):
    amount: int


class InitializeRequest(SignedEnvelope):
    args: InitializeArgs


class PriceRequest(SignedEnvelope):
    args: PriceArgs


class LimitRequest(SignedEnvelope):
    args: LimitArgs


class BuyerRequest(SignedEnvelope):
    args: BuyerArgs


class AmountRequest(SignedEnvelope):
    args: AmountArgs


class ConfigOut(BaseModel):
    deployment_id: str
    admin_identity: str
    token_price: int
    purchase_limit: int
    asset_id: str
    authority_id: str
    authority_bump: int
    vault_id: str
    vault_bump: int
    seed_version: int
    created_at: int


class BuyerOut(BaseModel):
    deployment_id: str
    buyer_identity: str
    whitelisted: bool
    amount_purchased: int
    created_at: int


class ReceiptOut(BaseModel):
    buyer: str
    requested_amount: int
    buy_units: int
    currency_cost: int
    amount_purchased: int
    remaining: int


class TransferOut(BaseModel):
    asset_id: str
    source: str
    destination: str
    amount: int


class SnapshotOut(BaseModel):
    deployment_id: str
    token_price: int
    purchase_limit: int
    vault_balance: int
    escrow_currency_balance: int
    buyers_total: int
    buyers_whitelisted: int
    units_sold: int


class BuyerSummaryOut(BaseModel):
    buyer_identity: str
    whitelisted: bool
    amount_purchased: int
    remaining: int


class HealthResponse(BaseModel):
    status: str
    ledger_connected: bool


# ── App lifecycle ──


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
    db.open_client()
    log.info("Serving deployment %s", config.DEPLOYMENT_ID)
    yield
    db.close_client()


app = FastAPI(title="Token Sale", version="1.0.0", lifespan=lifespan)


def _get_engine() -> TokenSaleEngine:
    if db.client is None:
        raise HTTPException(status_code=503, detail={"kind": "LedgerUnavailable", "message": "Ledger client not initialized"})
    return TokenSaleEngine(db.client, config.DEPLOYMENT_ID)


def _http_error(e: TokenSaleError) -> HTTPException:
    return HTTPException(
        status_code=STATUS_BY_KIND.get(e.kind, 500),
        detail={"kind": e.kind, "message": str(e)},
    )


def _authenticate(instruction: str, req: SignedEnvelope, args: BaseModel) -> str:
    """Verify the envelope signature and burn its nonce. Returns the caller."""
    caller = normalize_identity(req.caller)
    payload = signing_payload(config.DEPLOYMENT_ID, instruction, caller, args.model_dump(), req.nonce)
    try:
        signature = base64.b64decode(req.signature_b64, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidSignatureError(caller)
    verify_signature(caller, payload, signature)

    # one nonce per identity, whatever hex casing the envelope used
    nonce_key = f"{sale_config.NONCE_KEY_PREFIX}:{config.DEPLOYMENT_ID}:{caller}:{req.nonce}"
    if not db.get_client().set(nonce_key, instruction, nx=True, ex=sale_config.NONCE_TTL_SECONDS):
        raise ReplayedNonceError(caller, req.nonce)
    return caller


# ── Instructions ──


@app.post("/v1/sale/initialize", response_model=ConfigOut)
def initialize(req: InitializeRequest):
    engine = _get_engine()
    try:
        caller = _authenticate("initialize", req, req.args)
        # the admin signs its own initialize
        if caller != normalize_identity(req.args.admin_identity):
            raise UnauthorizedError(caller, "initialize")
        cfg = engine.initialize(
            req.args.token_price,
            req.args.purchase_limit,
            req.args.admin_identity,
            req.args.asset_id,
        )
    except TokenSaleError as e:
        raise _http_error(e)
    return asdict(cfg)


@app.post("/v1/sale/change-price", response_model=ConfigOut)
def change_price(req: PriceRequest):
    engine = _get_engine()
    try:
        caller = _authenticate("change_price", req, req.args)
        cfg = engine.change_price(caller, req.args.new_price)
    except TokenSaleError as e:
        raise _http_error(e)
    return asdict(cfg)


@app.post("/v1/sale/change-limit", response_model=ConfigOut)
def change_limit(req: LimitRequest):
    engine = _get_engine()
    try:
        caller = _authenticate("change_limit", req, req.args)
        cfg = engine.change_limit(caller, req.args.new_limit)
    except TokenSaleError as e:
        raise _http_error(e)
    return asdict(cfg)


@app.post("/v1/sale/whitelist/add", response_model=BuyerOut)
def whitelist_add(req: BuyerRequest):
    engine = _get_engine()
    try:
        caller = _authenticate("whitelist_add", req, req.args)
        record = engine.whitelist_add(caller, req.args.buyer_identity)
    except TokenSaleError as e:
        raise _http_error(e)
    return asdict(record)


@app.post("/v1/sale/whitelist/remove", response_model=BuyerOut)
def whitelist_remove(req: BuyerRequest):
    engine = _get_engine()
    try:
        caller = _authenticate("whitelist_remove", req, req.args)
        record = engine.whitelist_remove(caller, req.args.buyer_identity)
    except TokenSaleError as e:
        raise _http_error(e)
    return asdict(record)


@app.post("/v1/sale/buy", response_model=ReceiptOut)
def buy(req: AmountRequest):
    engine = _get_engine()
    try:
        caller = _authenticate("buy", req, req.args)
        receipt = engine.buy(caller, req.args.amount)
    except TokenSaleError as e:
        raise _http_error(e)
    return asdict(receipt)


@app.post("/v1/sale/deposit", response_model=TransferOut)
def deposit(req: AmountRequest):
    engine = _get_engine()
    try:
        caller = _authenticate("deposit", req, req.args)
        plan = engine.deposit(caller, req.args.amount)
    except TokenSaleError as e:
        raise _http_error(e)
    return asdict(plan)


@app.post("/v1/sale/withdraw", response_model=TransferOut)
def withdraw(req: AmountRequest):
    engine = _get_engine()
    try:
        caller = _authenticate("withdraw", req, req.args)
        plan = engine.withdraw(caller, req.args.amount)
    except TokenSaleError as e:
        raise _http_error(e)
    return asdict(plan)


# ── Queries ──


@app.get("/v1/sale/config", response_model=ConfigOut)
def get_config():
    engine = _get_engine()
    try:
        cfg = engine.get_config()
    except TokenSaleError as e:
        raise _http_error(e)
    if cfg is None:
        raise HTTPException(status_code=404, detail={"kind": "RecordNotFound", "message": f"Deployment {config.DEPLOYMENT_ID} not initialized"})
    return asdict(cfg)


@app.get("/v1/sale/buyers", response_model=list[BuyerSummaryOut])
def list_buyers():
    engine = _get_engine()
    try:
        summaries = SaleReporter(engine).buyer_report()
    except TokenSaleError as e:
        raise _http_error(e)
    return [asdict(s) for s in summaries]


@app.get("/v1/sale/buyers/{buyer_identity}", response_model=BuyerOut)
def get_buyer(buyer_identity: str):
    engine = _get_engine()
    try:
        record = engine.get_buyer(buyer_identity)
    except TokenSaleError as e:
        raise _http_error(e)
    if record is None:
        raise HTTPException(status_code=404, detail={"kind": "RecordNotFound", "message": buyer_identity})
    return asdict(record)


@app.get("/v1/sale/snapshot", response_model=SnapshotOut)
def snapshot():
    engine = _get_engine()
    try:
        snap = SaleReporter(engine).snapshot()
    except TokenSaleError as e:
        raise _http_error(e)
    return asdict(snap)


@app.get("/v1/health", response_model=HealthResponse)
def health():
    connected = db.health_check()
    return HealthResponse(
        status="ok" if connected else "degraded",
        ledger_connected=connected,
    )
