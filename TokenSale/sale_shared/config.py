import os

# Redis Connection

REDIS_HOST              = os.environ.get("TOKENSALE_REDIS_HOST", "localhost")
REDIS_PORT              = int(os.environ.get("TOKENSALE_REDIS_PORT", "6379"))
REDIS_LEDGER_DB         = int(os.environ.get("TOKENSALE_REDIS_DB", "0"))
REDIS_SOCKET_TIMEOUT    = 5          # seconds

# Key Namespace Prefixes

CONFIG_KEY_PREFIX       = "sale:v1:config"      # sale:v1:config:{deployment_id}
BUYER_KEY_PREFIX        = "sale:v1:buyer"       # sale:v1:buyer:{deployment_id}:{buyer_id}
NONCE_KEY_PREFIX        = "sale:v1:nonce"       # sale:v1:nonce:{deployment_id}:{caller}:{nonce}
ACCOUNT_KEY_PREFIX      = "ledger:v1:acct"      # ledger:v1:acct:{asset_id}:{holder_id}

# Escrow Authority Derivation

SEED_VERSION            = 1
AUTHORITY_SEED          = b"token_account_owner_pda"
VAULT_SEED              = b"PROGRAM_TOKEN_ACCOUNT"
PDA_MARKER              = b"ProgramDerivedAddress"
MAX_SEED_LENGTH         = 32
MAX_SEEDS               = 16
IDENTITY_SIZE_BYTES     = 32

# Currency

CURRENCY_ASSET_ID       = "NATIVE"
CURRENCY_BASE_UNIT      = 1_000_000_000    # smallest units per whole currency unit
MAX_AMOUNT              = 2**64 - 1        # u64 ceiling for prices, limits and balances

# Ledger Settings

LEDGER_OPTIMISTIC_LOCK_RETRIES = 3
# buys by different buyers share the config and vault watch keys
BUY_OPTIMISTIC_LOCK_RETRIES    = 32
NONCE_TTL_SECONDS              = 86_400
