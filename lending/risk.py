"""
risk.py - Collateral valuation, borrow capacity and liquidation math

This module follows the same split as interest.py:

1. FROZEN RESULT (AccountRisk): typed output of an assessment
2. PURE CALCULATION FUNCTIONS (calculate_*): all inputs explicit,
   trivially stress-testable with alternate prices
3. ENGINE (CollateralRiskEngine): looks prices up in the oracle and
   account records in GlobalState, then calls the pure functions

Key Formulas:
    collateral_value     = supplied * price(native) / SCALE
    borrow_capacity      = collateral_value * ltv_percent / 100
    healthy             <=> borrowed <= borrow_capacity
    withdrawable_native  = supplied - borrowed * price(token) / price(native)
    seize_amount         = repay_amount * SCALE / price(native)
    liquidation_cap      = borrowed * close_factor_percent / 100

All divisions truncate. Only native collateral counts toward borrow
capacity; supplied tokens are pool liquidity, not collateral.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict

from .core import (
    SCALE, NATIVE_ASSET,
    AccountId, AssetId, MarketParameters,
    PriceUnavailableError,
)
from .state import GlobalState


# Account status constants
STATUS_HEALTHY = "HEALTHY"
STATUS_LIQUIDATABLE = "LIQUIDATABLE"


# ============================================================================
# FROZEN RESULT
# ============================================================================

@dataclass(frozen=True, slots=True)
class AccountRisk:
    """
    Immutable result of an account risk assessment.

    borrowed includes pending_interest, i.e. it is the debt the account
    would carry if accrual ran at the current block.
    """
    account: AccountId
    supplied: int
    supplied_tokens: int
    borrowed: int
    pending_interest: int
    collateral_value: int
    borrow_capacity: int
    available_to_borrow: int
    withdrawable_native: int
    status: str

    @property
    def is_healthy(self) -> bool:
        return self.status == STATUS_HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        return {
            'account': self.account,
            'supplied': self.supplied,
            'supplied_tokens': self.supplied_tokens,
            'borrowed': self.borrowed,
            'pending_interest': self.pending_interest,
            'collateral_value': self.collateral_value,
            'borrow_capacity': self.borrow_capacity,
            'available_to_borrow': self.available_to_borrow,
            'withdrawable_native': self.withdrawable_native,
            'status': self.status,
        }


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_collateral_value(supplied: int, native_price: int) -> int:
    """Value of native collateral in the common price unit."""
    return supplied * native_price // SCALE


def calculate_borrow_capacity(collateral_value: int, loan_to_value_percent: int) -> int:
    """
    Maximum debt allowed against a collateral value.

    Example:
        calculate_borrow_capacity(1000, 75) == 750
    """
    return collateral_value * loan_to_value_percent // 100


def calculate_is_healthy(borrowed: int, borrow_capacity: int) -> bool:
    return borrowed <= borrow_capacity


def calculate_required_collateral(borrowed: int, token_price: int, native_price: int) -> int:
    """Native collateral needed to cover debt at par value."""
    return borrowed * token_price // native_price


def calculate_withdrawable_native(
    supplied: int,
    borrowed: int,
    token_price: int,
    native_price: int,
) -> int:
    """
    Native collateral that may leave the pool.

    PURE FUNCTION. When the debt already needs more collateral than is
    supplied the result is floored at zero, so any withdrawal fails.
    """
    remaining = supplied - calculate_required_collateral(borrowed, token_price, native_price)
    return max(remaining, 0)


def calculate_seize_amount(repay_amount: int, native_price: int) -> int:
    """Native collateral handed to a liquidator who repays repay_amount tokens."""
    return repay_amount * SCALE // native_price


def calculate_liquidation_cap(borrowed: int, close_factor_percent: int) -> int:
    """Largest repayment a single liquidation call may make."""
    return borrowed * close_factor_percent // 100


# ============================================================================
# ENGINE
# ============================================================================

class CollateralRiskEngine:
    """
    Read-only risk computations over GlobalState and oracle prices.

    Nothing here mutates state; LendingPool uses these numbers to accept or
    reject an operation before touching the account book.
    """

    def __init__(self, state: GlobalState, params: MarketParameters, token_asset: AssetId):
        self.state = state
        self.params = params
        self.token_asset = token_asset

    def price(self, asset: AssetId) -> int:
        """Oracle price of an asset; raises PriceUnavailableError if unusable."""
        price = self.state.oracle.get_price(asset)
        if price is None or price <= 0:
            label = "native asset" if asset == NATIVE_ASSET else f"asset {asset!r}"
            raise PriceUnavailableError(f"No usable price for {label}: {price!r}")
        return price

    def native_price(self) -> int:
        return self.price(NATIVE_ASSET)

    def token_price(self) -> int:
        return self.price(self.token_asset)

    def collateral_value(self, account: AccountId) -> int:
        info = self.state.accounts.peek(account)
        return calculate_collateral_value(info.supplied, self.native_price())

    def borrow_capacity(self, account: AccountId) -> int:
        return calculate_borrow_capacity(
            self.collateral_value(account), self.params.loan_to_value_percent
        )

    def is_healthy(self, account: AccountId) -> bool:
        info = self.state.accounts.peek(account)
        return calculate_is_healthy(info.borrowed, self.borrow_capacity(account))

    def withdrawable_native(self, account: AccountId) -> int:
        info = self.state.accounts.peek(account)
        return calculate_withdrawable_native(
            info.supplied, info.borrowed, self.token_price(), self.native_price()
        )

    def liquidation_seize_amount(self, repay_amount: int) -> int:
        return calculate_seize_amount(repay_amount, self.native_price())

    def liquidation_cap(self, account: AccountId) -> int:
        info = self.state.accounts.peek(account)
        return calculate_liquidation_cap(info.borrowed, self.params.close_factor_percent)

    def assess(self, account: AccountId, pending_interest: int = 0) -> AccountRisk:
        """
        Full risk picture for an account.

        Args:
            account: Account to assess
            pending_interest: Interest not yet written to the account; added
                to the recorded debt before any ratio is computed.
        """
        info = self.state.accounts.peek(account)
        native_price = self.native_price()
        token_price = self.token_price()

        borrowed = info.borrowed + pending_interest
        collateral_value = calculate_collateral_value(info.supplied, native_price)
        capacity = calculate_borrow_capacity(collateral_value, self.params.loan_to_value_percent)
        healthy = calculate_is_healthy(borrowed, capacity)

        return AccountRisk(
            account=account,
            supplied=info.supplied,
            supplied_tokens=info.supplied_tokens,
            borrowed=borrowed,
            pending_interest=pending_interest,
            collateral_value=collateral_value,
            borrow_capacity=capacity,
            available_to_borrow=max(capacity - borrowed, 0),
            withdrawable_native=calculate_withdrawable_native(
                info.supplied, borrowed, token_price, native_price
            ),
            status=STATUS_HEALTHY if healthy else STATUS_LIQUIDATABLE,
        )
