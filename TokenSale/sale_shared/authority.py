"""
Escrow authority derivation and caller identities.

An escrow authority is a 32-byte identity computed as

    sha256(seed_1 || ... || seed_n || bump || deployment_id || "ProgramDerivedAddress")

and accepted only when the digest is NOT a valid ed25519 point, so no private
key exists for it. Presenting the same (seeds, bump, deployment_id) proves
control of the identity: the gateway re-derives it instead of checking a
signature. The bump is searched from 255 downwards; the first off-curve digest
wins.

Caller identities are ordinary ed25519 verify keys, hex encoded, signed and
verified with PyNaCl.
"""

import hashlib
import json
from dataclasses import dataclass

import nacl.signing
from nacl.bindings import crypto_core_ed25519_is_valid_point
from nacl.exceptions import BadSignatureError

from TokenSale.sale_shared import config
from TokenSale.sale_shared.errors import (
    InvalidIdentityError,
    InvalidSeedsError,
    InvalidSignatureError,
)


# ─── Identities ───

def decode_identity(identity: str) -> bytes:
    """Hex identity → 32 raw bytes. Raises InvalidIdentityError."""
    if not isinstance(identity, str):
        raise InvalidIdentityError(identity)
    try:
        raw = bytes.fromhex(identity)
    except ValueError:
        raise InvalidIdentityError(identity)
    if len(raw) != config.IDENTITY_SIZE_BYTES:
        raise InvalidIdentityError(identity)
    return raw


def normalize_identity(identity: str) -> str:
    return decode_identity(identity).hex()


def is_on_curve(point: bytes) -> bool:
    return bool(crypto_core_ed25519_is_valid_point(point))


class Keypair:
    """An ed25519 signer whose verify key is its identity."""

    def __init__(self, signing_key: nacl.signing.SigningKey | None = None):
        self._signing_key = signing_key or nacl.signing.SigningKey.generate()

    @classmethod
    def from_seed(cls, seed: bytes) -> "Keypair":
        return cls(nacl.signing.SigningKey(seed))

    @property
    def identity(self) -> str:
        return bytes(self._signing_key.verify_key).hex()

    def sign(self, message: bytes) -> bytes:
        return self._signing_key.sign(message).signature


def verify_signature(identity: str, message: bytes, signature: bytes) -> None:
    verify_key = nacl.signing.VerifyKey(decode_identity(identity))
    try:
        verify_key.verify(message, signature)
    except (BadSignatureError, ValueError):
        raise InvalidSignatureError(identity)


def signing_payload(deployment_id: str, instruction: str, caller: str, args: dict, nonce: str) -> bytes:
    """Canonical bytes a caller signs to submit one instruction.

    ``caller`` is normalized, so every spelling of one identity signs the same
    bytes.
    """
    body = {
        "deployment_id": deployment_id,
        "instruction": instruction,
        "caller": normalize_identity(caller),
        "args": args,
        "nonce": nonce,
    }
    return json.dumps(body, sort_keys=True, separators=(",", ":")).encode()


# ─── Derivation ───

def _validate_seeds(seeds: tuple[bytes, ...]) -> None:
    # the bump byte counts as one more seed
    if len(seeds) + 1 > config.MAX_SEEDS:
        raise InvalidSeedsError(f"Too many seeds: {len(seeds)}")
    for seed in seeds:
        if len(seed) > config.MAX_SEED_LENGTH:
            raise InvalidSeedsError(f"Seed longer than {config.MAX_SEED_LENGTH} bytes: {seed!r}")


def _hash_seeds(seeds: tuple[bytes, ...], bump: int, deployment: bytes) -> bytes:
    h = hashlib.sha256()
    for seed in seeds:
        h.update(seed)
    h.update(bytes([bump]))
    h.update(deployment)
    h.update(config.PDA_MARKER)
    return h.digest()


def create_program_address(seeds: tuple[bytes, ...], bump: int, deployment_id: str) -> str:
    """Recompute the identity for an explicit bump. Raises InvalidSeedsError when
    the combination does not yield a keyless identity."""
    _validate_seeds(seeds)
    if not 0 <= bump <= 255:
        raise InvalidSeedsError(f"Bump out of range: {bump}")

    digest = _hash_seeds(seeds, bump, decode_identity(deployment_id))
    if is_on_curve(digest):
        raise InvalidSeedsError("Derived identity lies on the ed25519 curve")
    return digest.hex()


def find_program_address(seeds: tuple[bytes, ...], deployment_id: str) -> tuple[str, int]:
    _validate_seeds(seeds)
    deployment = decode_identity(deployment_id)

    for bump in range(255, -1, -1):
        digest = _hash_seeds(seeds, bump, deployment)
        if not is_on_curve(digest):
            return digest.hex(), bump

    raise InvalidSeedsError("No bump yields an off-curve identity")


def derive(seed: bytes, deployment_id: str) -> tuple[str, int]:
    """(authority_id, bump) for a single fixed seed."""
    return find_program_address((seed,), deployment_id)


@dataclass(frozen=True)
class AuthorityProof:
    """Derivation proof presented to the gateway in place of a signature."""
    deployment_id: str
    seeds: tuple[bytes, ...]
    bump: int

    def resolve(self) -> str:
        return create_program_address(self.seeds, self.bump, self.deployment_id)


def verify_derivation(proof: AuthorityProof, expected_id: str) -> bool:
    try:
        return proof.resolve() == expected_id
    except (InvalidSeedsError, InvalidIdentityError):
        return False
