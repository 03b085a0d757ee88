class TokenSaleError(Exception):
    kind = "TokenSaleError"


class LedgerUnavailableError(TokenSaleError):
    kind = "LedgerUnavailable"

    def __init__(self , message):
        message = f"Ledger_error  = {message}"
        super().__init__(message)


class AlreadyInitializedError(TokenSaleError):
    kind = "AlreadyInitialized"

    def __init__(self , deployment_id):
        self.deployment_id = deployment_id
        message = f"Deployment {deployment_id} already initialized"
        super().__init__(message)


class RecordNotFoundError(TokenSaleError):
    kind = "RecordNotFound"

    def __init__(self , key):
        self.key = key
        message = f"Record {key} not found"
        super().__init__(message)


class NotInitializedError(RecordNotFoundError):
    """A missing Configuration Record; reported as RecordNotFound."""

    def __init__(self , deployment_id):
        self.deployment_id = deployment_id
        super().__init__(f"config:{deployment_id}")


class UnauthorizedError(TokenSaleError):
    kind = "Unauthorized"

    def __init__(self , caller, operation):
        self.caller = caller
        self.operation = operation
        message = f"Caller {caller} is not allowed to {operation}"
        super().__init__(message)


class NotWhitelistedError(TokenSaleError):
    kind = "NotWhitelisted"

    def __init__(self , buyer):
        self.buyer = buyer
        message = f"Buyer {buyer} is not whitelisted"
        super().__init__(message)


class LimitReachedError(TokenSaleError):
    kind = "LimitReached"

    def __init__(self, buyer, amount_purchased, purchase_limit):
        self.buyer = buyer
        self.amount_purchased = amount_purchased
        self.purchase_limit = purchase_limit
        message = f"Purchase limit reached for {buyer}: {amount_purchased}/{purchase_limit}"
        super().__init__(message)


class InvalidAmountError(TokenSaleError):
    kind = "InvalidAmount"

    def __init__(self , field, value):
        self.field = field
        self.value = value
        message = f"Invalid {field}: {value!r}"
        super().__init__(message)


class InvalidIdentityError(TokenSaleError):
    kind = "InvalidIdentity"

    def __init__(self , identity):
        self.identity = identity
        message = f"Invalid identity {identity!r}"
        super().__init__(message)


class InvalidSeedsError(TokenSaleError):
    kind = "InvalidSeeds"

    def __init__(self , message):
        super().__init__(message)


class ArithmeticOverflowError(TokenSaleError):
    kind = "ArithmeticOverflow"

    def __init__(self , operation):
        self.operation = operation
        message = f"Arithmetic overflow in {operation}"
        super().__init__(message)


class ConcurrencyError(TokenSaleError):
    kind = "Concurrency"

    def __init__(self, operation):
        message = f"Optimistic lock failed after max retries: {operation}"
        super().__init__(message)


class TransferError(TokenSaleError):
    kind = "TransferError"


class InsufficientFundsError(TransferError):
    kind = "InsufficientFunds"

    def __init__(self, asset_id, holder, balance, amount):
        self.asset_id = asset_id
        self.holder = holder
        self.balance = balance
        self.amount = amount
        message = f"Insufficient {asset_id} for {holder}: balance {balance}, needed {amount}"
        super().__init__(message)


class InvalidAuthorityError(TransferError):
    kind = "InvalidAuthority"

    def __init__(self, holder, authority):
        self.holder = holder
        self.authority = authority
        message = f"{authority} cannot authorize transfers out of {holder}"
        super().__init__(message)


class InvalidSignatureError(TokenSaleError):
    kind = "InvalidSignature"

    def __init__(self , identity):
        self.identity = identity
        message = f"Signature check failed for {identity}"
        super().__init__(message)


class ReplayedNonceError(TokenSaleError):
    kind = "ReplayedNonce"

    def __init__(self , caller, nonce):
        self.caller = caller
        self.nonce = nonce
        message = f"Nonce {nonce} already used by {caller}"
        super().__init__(message)
