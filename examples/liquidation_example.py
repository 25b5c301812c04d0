"""
Example: A borrower drifts underwater and is partially liquidated.

This example walks one collateralized position through its life: native
collateral goes in, tokens are borrowed up to the loan-to-value limit,
interest accrues block by block, and a third party repays part of the debt
in exchange for collateral.
"""

import logging

from lending import (
    SCALE, NATIVE_ASSET,
    BlockClock, CallContext, StaticPriceOracle, InMemoryAssetLedger, LendingPool,
    LendingError,
)


def show(pool, account):
    risk = pool.account_risk(account)
    print(f"  collateral:   {risk.supplied:>8,} native")
    print(f"  debt:         {risk.borrowed:>8,} tokens "
          f"({risk.pending_interest:,} pending interest)")
    print(f"  capacity:     {risk.borrow_capacity:>8,} tokens")
    print(f"  withdrawable: {risk.withdrawable_native:>8,} native")
    print(f"  status:       {risk.status}")


def main():
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    print("=" * 80)
    print("LENDING POOL - Borrow, Accrue, Liquidate")
    print("=" * 80)
    print()

    clock = BlockClock(1_000)
    oracle = StaticPriceOracle({NATIVE_ASSET: SCALE, "TOKEN": SCALE})
    token = InMemoryAssetLedger("TOKEN", custodian="pool")
    native = InMemoryAssetLedger("NATIVE", custodian="pool")
    pool = LendingPool(oracle, token, native, clock, address="pool")

    token.issue("pool", 1_000_000)
    native.issue("alice", 1_000)
    token.issue("keeper", 10_000)
    token.approve("keeper", "pool", 10_000)

    print("Step 1: Deposit collateral and borrow the maximum")
    print("-" * 80)
    pool.deposit(CallContext("alice", value=1_000), NATIVE_ASSET, 1_000)
    pool.borrow(CallContext("alice"), "TOKEN", 750)
    show(pool, "alice")
    print()

    print("Step 2: One more token is refused")
    print("-" * 80)
    try:
        pool.borrow(CallContext("alice"), "TOKEN", 1)
    except LendingError as exc:
        print(f"  {type(exc).__name__}: {exc}")
    print()

    print("Step 3: 100 blocks of interest at 0.1% per block")
    print("-" * 80)
    clock.advance(100)
    show(pool, "alice")
    print()

    print("Step 4: keeper repays the maximum 25% and seizes collateral")
    print("-" * 80)
    record = pool.liquidate(CallContext("keeper"), "alice", "TOKEN", 206)
    print(f"  {record!r}")
    print(f"  seized {record.details['seized']:,} native, "
          f"keeper now holds {native.balance_of('keeper'):,}")
    show(pool, "alice")
    print()

    print("Invariants")
    print("-" * 80)
    debt = pool.verify_debt_invariant()
    print(f"  total debt {debt['total_debt']:,} == sum of borrowed {debt['sum_borrowed']:,}: "
          f"{debt['valid']}")
    print(f"  token ledger conserved:  {token.verify_conservation()['valid']}")
    print(f"  native ledger conserved: {native.verify_conservation()['valid']}")


if __name__ == "__main__":
    main()
