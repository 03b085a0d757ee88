#!/usr/bin/env python3
"""
Token sale runner: deployment preflight, test suite, lifecycle demo.

Usage:
    python demo.py                          preflight, then the 3-phase demo
    python demo.py --deployment <hex> -v    demo against a fixed deployment, with engine logs
    python demo.py --check                  preflight only
    python demo.py --tests                  run the pytest suite (no Redis needed)
"""

import argparse
import subprocess
import sys

from TokenSale import prototype
from TokenSale.prototype import Display
from TokenSale.sale_db.connection import close, create_ledger_client, health_check
from TokenSale.sale_server import config as server_config
from TokenSale.sale_shared import config
from TokenSale.sale_shared.authority import derive, normalize_identity
from TokenSale.sale_shared.errors import InvalidIdentityError, LedgerUnavailableError


def check_deployment(deployment_id: str) -> bool:
    """The id must be a 32-byte hex identity; shows the escrow identities it derives."""
    try:
        deployment_id = normalize_identity(deployment_id)
    except InvalidIdentityError:
        Display.rejected(f"Deployment id {deployment_id!r} is not 32-byte hex")
        return False

    authority_id, authority_bump = derive(config.AUTHORITY_SEED, deployment_id)
    vault_id, vault_bump = derive(config.VAULT_SEED, deployment_id)
    Display.success(f"Deployment {deployment_id[:16]}…")
    Display.stat_row("Escrow authority", f"{authority_id[:16]}…  bump={authority_bump}")
    Display.stat_row("Vault", f"{vault_id[:16]}…  bump={vault_bump}")
    return True


def check_ledger() -> bool:
    try:
        client = create_ledger_client()
    except LedgerUnavailableError as e:
        Display.rejected(str(e))
        return False

    try:
        status = health_check(client)
    finally:
        close(client)
    Display.success(f"Redis at {config.REDIS_HOST}:{config.REDIS_PORT} db={config.REDIS_LEDGER_DB}")
    Display.stat_row("Keys", status.ledger_key_count)
    return status.ledger_connected


def preflight(deployment_id: str) -> bool:
    Display.section("Deployment")
    deployment_ok = check_deployment(deployment_id)
    Display.section("Ledger")
    ledger_ok = check_ledger()
    return deployment_ok and ledger_ok


def run_tests() -> int:
    """The suite runs on fakeredis, so it needs no live services."""
    Display.section("Test suite")
    return subprocess.call([sys.executable, "-m", "pytest", "TokenSale", "-q"])


def main():
    parser = argparse.ArgumentParser(description="Token sale preflight, tests and demo")
    parser.add_argument("--check", action="store_true", help="only run the preflight")
    parser.add_argument("--tests", action="store_true", help="run the test suite and exit")
    parser.add_argument("--deployment", default=None,
                        help="deployment id for the demo (default: a fresh random one)")
    parser.add_argument("-v", "--verbose", action="store_true", help="show engine diagnostics")
    args = parser.parse_args()

    if args.tests:
        sys.exit(run_tests())

    deployment_id = args.deployment or server_config.DEPLOYMENT_ID
    if not preflight(deployment_id):
        Display.rejected("Preflight failed (start Redis with: docker run -p 6379:6379 redis:7)")
        sys.exit(1)
    if args.check:
        return

    argv = ["--deployment", args.deployment] if args.deployment else []
    if args.verbose:
        argv.append("--verbose")
    prototype.main(argv)


if __name__ == "__main__":
    main()
