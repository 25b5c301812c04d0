"""
interest.py - Borrow index and per-account interest accrual

Pure function pattern, as used for every calculation in this package:

1. PURE CALCULATION FUNCTIONS (calculate_*):
   - Take all inputs explicitly as parameters
   - No GlobalState, no clock, no hidden state

2. ENGINE (InterestAccrualEngine):
   - Reads the inputs from GlobalState and the block clock
   - Delegates the math to calculate_*()
   - Writes the results back

Key Formulas:
    borrow_index' = borrow_index + rate_per_block * blocks_elapsed
    interest      = borrowed * (borrow_index - last_borrow_index) / SCALE

Interest is simple (additive on the index) and truncated toward zero, so a
call may under-count by at most one unit. Accrual never reduces debt.
"""

from __future__ import annotations
import logging

from .core import (
    SCALE, ACCRUAL_CLOCK_GLOBAL,
    AccountId, BlockClock, MarketParameters,
)
from .state import GlobalState

logger = logging.getLogger(__name__)


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_index_advance(borrow_index: int, rate_per_block: int, blocks_elapsed: int) -> int:
    """
    Return the borrow index after blocks_elapsed blocks.

    PURE FUNCTION. A non-positive elapsed count leaves the index unchanged,
    so the index can never decrease.
    """
    if blocks_elapsed <= 0:
        return borrow_index
    return borrow_index + rate_per_block * blocks_elapsed


def calculate_account_interest(borrowed: int, borrow_index: int, last_borrow_index: int) -> int:
    """
    Interest owed since the account's last checkpoint.

    PURE FUNCTION. Uses truncating fixed-point division.

    Example:
        # 750 borrowed, index moved from 1.0 to 1.5
        calculate_account_interest(750, 15 * 10**17, 10**18) == 375
    """
    if borrowed <= 0 or borrow_index <= last_borrow_index:
        return 0
    return borrowed * (borrow_index - last_borrow_index) // SCALE


def calculate_pending_interest(
    borrowed: int,
    borrow_index: int,
    last_borrow_index: int,
    rate_per_block: int,
    blocks_elapsed: int,
) -> int:
    """
    Interest an account would owe if accrual ran now.

    PURE FUNCTION. Lets read-only views report the true debt without
    mutating the index.
    """
    projected = calculate_index_advance(borrow_index, rate_per_block, blocks_elapsed)
    return calculate_account_interest(borrowed, projected, last_borrow_index)


# ============================================================================
# ENGINE
# ============================================================================

class InterestAccrualEngine:
    """
    Brings the global index and one account's debt up to date.

    advance_global_index() and accrue_account_interest() are always called
    together, in that order, at the start of every state-changing entry
    point.

    Clock modes (MarketParameters.accrual_clock):
        "global": elapsed blocks are measured from the pool-wide
            last_accrual_block, so the index grows with block height alone,
            independent of which account triggers the update.
        "per_account": elapsed blocks are measured from the calling
            account's last_block_number (zero for a first-time account).

    In both modes the caller's last_block_number is stamped with the
    current block on every index update.
    """

    def __init__(self, state: GlobalState, params: MarketParameters, clock: BlockClock):
        self.state = state
        self.params = params
        self.clock = clock

    def blocks_elapsed(self, caller: AccountId) -> int:
        """Blocks the next index update would cover for this caller."""
        now = self.clock.block_number
        if self.params.accrual_clock == ACCRUAL_CLOCK_GLOBAL:
            return now - self.state.last_accrual_block
        return now - self.state.accounts.peek(caller).last_block_number

    def advance_global_index(self, caller: AccountId) -> int:
        """Advance the borrow index and return its new value."""
        now = self.clock.block_number
        elapsed = self.blocks_elapsed(caller)
        new_index = calculate_index_advance(
            self.state.borrow_index, self.params.interest_rate_per_block, elapsed
        )

        info = self.state.accounts.get(caller)
        self.state.accounts.put(caller, info.update(last_block_number=now))
        if self.params.accrual_clock == ACCRUAL_CLOCK_GLOBAL:
            self.state.last_accrual_block = max(self.state.last_accrual_block, now)

        if new_index != self.state.borrow_index:
            logger.debug(
                "borrow index %d -> %d (%d blocks, caller=%s)",
                self.state.borrow_index, new_index, elapsed, caller,
            )
        self.state.borrow_index = new_index
        return new_index

    def accrue_account_interest(self, account: AccountId) -> int:
        """Apply interest to the account's debt and return the amount added."""
        info = self.state.accounts.get(account)
        interest = calculate_account_interest(
            info.borrowed, self.state.borrow_index, info.last_borrow_index
        )
        self.state.accounts.put(account, info.update(
            borrowed=info.borrowed + interest,
            last_borrow_index=self.state.borrow_index,
        ))
        self.state.total_debt += interest
        if interest:
            logger.debug("accrued %d interest for %s", interest, account)
        return interest

    def accrue(self, caller: AccountId, account: AccountId | None = None) -> int:
        """advance_global_index(caller) then accrue_account_interest(account)."""
        self.advance_global_index(caller)
        return self.accrue_account_interest(caller if account is None else account)

    def pending_interest(self, account: AccountId) -> int:
        """Interest the account would accrue if it called in at this block."""
        info = self.state.accounts.peek(account)
        return calculate_pending_interest(
            borrowed=info.borrowed,
            borrow_index=self.state.borrow_index,
            last_borrow_index=info.last_borrow_index,
            rate_per_block=self.params.interest_rate_per_block,
            blocks_elapsed=self.blocks_elapsed(account),
        )
