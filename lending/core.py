"""
Core types and pure helpers for the lending ledger.

This module provides the foundational pieces every other module builds on:
1. Fixed-point constants and helpers (wad arithmetic on Python ints)
2. Exceptions: LendingError and the operation-specific failure kinds
3. Protocols: PriceOracle, TokenLedger, NativeLedger, SupportsRollback
4. Execution environment inputs: CallContext and BlockClock
5. Market configuration: MarketParameters

All amounts, prices, indexes and rates are integers scaled by SCALE (1e18).
Division truncates toward zero, so every computation is exactly reproducible.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, getcontext
from typing import Any, Dict, Mapping, Protocol, runtime_checkable


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Decimal is only used at the edges (parsing configuration, displaying wad
# amounts). Ledger arithmetic itself is integer fixed point.
#
_LENDING_DECIMAL_CONTEXT = getcontext()
_LENDING_DECIMAL_CONTEXT.prec = 50


# ============================================================================
# CONSTANTS
# ============================================================================

# Fixed-point scale: 1.0 == SCALE.
SCALE = 10 ** 18

# Asset identity of the native value asset ("no token address").
NATIVE_ASSET = ""

# Default market parameters.
DEFAULT_INTEREST_RATE_PER_BLOCK = 10 ** 15   # 0.1% of SCALE per block
DEFAULT_SECONDS_PER_BLOCK = 12
DEFAULT_RESERVE_FACTOR = 5 * 10 ** 16        # 5%
DEFAULT_LOAN_TO_VALUE_PERCENT = 75
DEFAULT_CLOSE_FACTOR_PERCENT = 25

# Amount pulled from the caller when bootstrapping the token side.
TOKEN_PROBE_AMOUNT = 1

# Accrual clock modes.
ACCRUAL_CLOCK_GLOBAL = "global"
ACCRUAL_CLOCK_PER_ACCOUNT = "per_account"

SECONDS_PER_YEAR = 365 * 24 * 60 * 60


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Account identifier as injected by the execution environment.
AccountId = str

# Asset identity: NATIVE_ASSET or a token symbol/address.
AssetId = str


# ============================================================================
# FIXED-POINT HELPERS
# ============================================================================

def to_wad(value: Any) -> int:
    """
    Convert a human-readable amount to a fixed-point integer.

    Accepts int, Decimal or numeric strings. Floats are routed through str()
    so that 0.1 becomes exactly 10**17. Fractions below one wad unit are
    truncated.

    Example:
        to_wad("0.001") == 10**15
        to_wad(1) == 10**18
    """
    if isinstance(value, bool):
        raise ValueError("boolean is not a numeric amount")
    if isinstance(value, int):
        return value * SCALE
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    if value.is_nan() or value.is_infinite():
        raise ValueError(f"amount must be finite, got {value}")
    return int((value * SCALE).to_integral_value(rounding=ROUND_DOWN))


def from_wad(amount: int) -> Decimal:
    """Convert a fixed-point integer back to a Decimal for display."""
    return Decimal(amount) / Decimal(SCALE)


def wad_mul(a: int, b: int) -> int:
    """a * b / SCALE, truncating."""
    return a * b // SCALE


def wad_div(a: int, b: int) -> int:
    """a * SCALE / b, truncating."""
    return a * SCALE // b


def is_amount(value: Any) -> bool:
    """True for plain ints (bool excluded)."""
    return isinstance(value, int) and not isinstance(value, bool)


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LendingError(Exception):
    """Base exception for every failure raised by a lending operation."""
    pass


class ValidationError(LendingError):
    """Unsupported asset, amount/value mismatch or otherwise malformed input."""
    pass


class InsufficientCollateralError(LendingError):
    """Raised when a borrow, withdrawal or seizure exceeds what collateral allows."""
    pass


class InsufficientDebtError(LendingError):
    """Raised when a repayment exceeds the recorded debt."""
    pass


class LiquidationNotAllowedError(LendingError):
    """Raised when the liquidation target is currently healthy."""
    pass


class LiquidationCapExceededError(LendingError):
    """Raised when a liquidation repays more than the close factor allows."""
    pass


class ExternalTransferError(LendingError):
    """Raised when an asset ledger refuses a transfer or fails balance verification."""
    pass


class InsufficientLiquidityError(LendingError):
    """Raised when the pool holds fewer tokens than a withdrawal requests."""
    pass


class PriceUnavailableError(LendingError):
    """Raised when the oracle has no positive price for an asset."""
    pass


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class PriceOracle(Protocol):
    """
    Read-only price feed.

    Prices are fixed-point integers (SCALE == 1.0) denominated in a common
    unit. The native asset is queried with NATIVE_ASSET. Returns None when no
    price is known.
    """

    def get_price(self, asset: AssetId) -> int | None:
        ...


@runtime_checkable
class TokenLedger(Protocol):
    """
    Fungible token transfer interface.

    pull() moves tokens from an account that pre-authorized the move; push()
    sends tokens held by the pool. Both report failure by returning False.
    """

    symbol: str

    def pull(self, source: AccountId, dest: AccountId, amount: int) -> bool:
        ...

    def push(self, to: AccountId, amount: int) -> bool:
        ...

    def balance_of(self, account: AccountId) -> int:
        ...


@runtime_checkable
class NativeLedger(Protocol):
    """
    Native value transfer interface.

    There is no explicit pull: value attached to a call is taken with
    accept(). push() is an unconditional value transfer out of the pool.
    """

    def accept(self, source: AccountId, amount: int) -> bool:
        ...

    def push(self, to: AccountId, amount: int) -> bool:
        ...

    def balance_of(self, account: AccountId) -> int:
        ...


@runtime_checkable
class SupportsRollback(Protocol):
    """Collaborator whose effects can be undone when an operation aborts."""

    def snapshot(self) -> Any:
        ...

    def restore(self, snapshot: Any) -> None:
        ...


# ============================================================================
# EXECUTION ENVIRONMENT
# ============================================================================

@dataclass(frozen=True, slots=True)
class CallContext:
    """
    Already-authenticated inputs the execution environment supplies per call.

    Attributes:
        caller: The calling account. Trusted, never re-derived.
        value: Native value attached to the call (0 for non-payable calls).
    """
    caller: AccountId
    value: int = 0

    def __post_init__(self):
        if not isinstance(self.caller, str) or not self.caller.strip():
            raise ValueError("caller cannot be empty")
        if not is_amount(self.value):
            raise ValueError(f"value must be int, got {type(self.value).__name__}")
        if self.value < 0:
            raise ValueError(f"value cannot be negative, got {self.value}")

    def __repr__(self) -> str:
        if self.value:
            return f"Call({self.caller}, value={self.value})"
        return f"Call({self.caller})"


class BlockClock:
    """
    Logical block height shared by the pool and its collaborators.

    Height only moves forward.
    """

    def __init__(self, initial_block: int = 0):
        if not is_amount(initial_block) or initial_block < 0:
            raise ValueError(f"initial_block must be a non-negative int, got {initial_block!r}")
        self._block_number = initial_block

    @property
    def block_number(self) -> int:
        return self._block_number

    def advance(self, blocks: int = 1) -> int:
        """Move forward by a number of blocks and return the new height."""
        if not is_amount(blocks) or blocks < 0:
            raise ValueError(f"Cannot move block height backwards: {blocks!r}")
        self._block_number += blocks
        return self._block_number

    def advance_to(self, block_number: int) -> int:
        """Jump to an absolute height, which must not be in the past."""
        if not is_amount(block_number) or block_number < self._block_number:
            raise ValueError(
                f"Cannot move block height backwards: {block_number!r} < {self._block_number}"
            )
        self._block_number = block_number
        return self._block_number

    def __repr__(self) -> str:
        return f"BlockClock(block={self._block_number})"


# ============================================================================
# MARKET CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class MarketParameters:
    """
    Immutable market configuration, fixed when the pool is created.

    All fields are explicit; engines take this as a parameter instead of
    reading module constants, so alternate markets are trivial to build in
    tests.
    """
    interest_rate_per_block: int = DEFAULT_INTEREST_RATE_PER_BLOCK
    seconds_per_block: int = DEFAULT_SECONDS_PER_BLOCK
    reserve_factor: int = DEFAULT_RESERVE_FACTOR
    loan_to_value_percent: int = DEFAULT_LOAN_TO_VALUE_PERCENT
    close_factor_percent: int = DEFAULT_CLOSE_FACTOR_PERCENT
    accrual_clock: str = ACCRUAL_CLOCK_GLOBAL

    def __post_init__(self):
        for name in ('interest_rate_per_block', 'seconds_per_block', 'reserve_factor',
                     'loan_to_value_percent', 'close_factor_percent'):
            value = getattr(self, name)
            if not is_amount(value):
                raise ValueError(f"{name} must be int, got {type(value).__name__}")

        if self.interest_rate_per_block < 0:
            raise ValueError(
                f"interest_rate_per_block cannot be negative, got {self.interest_rate_per_block}"
            )
        if self.seconds_per_block <= 0:
            raise ValueError(f"seconds_per_block must be positive, got {self.seconds_per_block}")
        if not 0 <= self.reserve_factor <= SCALE:
            raise ValueError(f"reserve_factor must be in [0, SCALE], got {self.reserve_factor}")
        if not 0 < self.loan_to_value_percent <= 100:
            raise ValueError(
                f"loan_to_value_percent must be in (0, 100], got {self.loan_to_value_percent}"
            )
        if not 0 < self.close_factor_percent <= 100:
            raise ValueError(
                f"close_factor_percent must be in (0, 100], got {self.close_factor_percent}"
            )
        if self.accrual_clock not in (ACCRUAL_CLOCK_GLOBAL, ACCRUAL_CLOCK_PER_ACCOUNT):
            raise ValueError(f"unknown accrual_clock {self.accrual_clock!r}")

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> MarketParameters:
        """
        Build parameters from a plain mapping, filling in defaults.

        Fractional fields (interest_rate_per_block, reserve_factor) accept
        either wad ints or decimal strings such as "0.001".

        Example:
            params = MarketParameters.from_mapping({
                'interest_rate_per_block': "0.0005",
                'loan_to_value_percent': 80,
            })
        """
        def _fraction(key: str, default: int) -> int:
            value = raw.get(key, default)
            return value if is_amount(value) else to_wad(value)

        return cls(
            interest_rate_per_block=_fraction('interest_rate_per_block', DEFAULT_INTEREST_RATE_PER_BLOCK),
            seconds_per_block=int(raw.get('seconds_per_block', DEFAULT_SECONDS_PER_BLOCK)),
            reserve_factor=_fraction('reserve_factor', DEFAULT_RESERVE_FACTOR),
            loan_to_value_percent=int(raw.get('loan_to_value_percent', DEFAULT_LOAN_TO_VALUE_PERCENT)),
            close_factor_percent=int(raw.get('close_factor_percent', DEFAULT_CLOSE_FACTOR_PERCENT)),
            accrual_clock=raw.get('accrual_clock', ACCRUAL_CLOCK_GLOBAL),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'interest_rate_per_block': self.interest_rate_per_block,
            'seconds_per_block': self.seconds_per_block,
            'reserve_factor': self.reserve_factor,
            'loan_to_value_percent': self.loan_to_value_percent,
            'close_factor_percent': self.close_factor_percent,
            'accrual_clock': self.accrual_clock,
        }

    def annual_rate(self) -> Decimal:
        """Simple (non-compounded) yearly rate implied by the per-block rate."""
        blocks_per_year = SECONDS_PER_YEAR // self.seconds_per_block
        return from_wad(self.interest_rate_per_block * blocks_per_year)
