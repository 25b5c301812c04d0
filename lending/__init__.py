"""
lending - Collateralized Lending Ledger

Accounting and risk-control engine for a two-asset lending pool: accounts
deposit native value as collateral, borrow a fungible token against it, accrue
per-block interest through a global borrow index, and can be partially
liquidated by third parties once under-collateralized.

Usage:
    from lending import (
        LendingPool, BlockClock, CallContext, StaticPriceOracle,
        InMemoryAssetLedger, NATIVE_ASSET, SCALE,
    )

    clock = BlockClock()
    oracle = StaticPriceOracle({NATIVE_ASSET: SCALE, "TOKEN": SCALE})
    token = InMemoryAssetLedger("TOKEN", custodian="pool")
    native = InMemoryAssetLedger("NATIVE", custodian="pool")
    pool = LendingPool(oracle, token, native, clock, address="pool")

    native.issue("alice", 1_000)
    token.issue("pool", 10_000)

    pool.deposit(CallContext("alice", value=1_000), NATIVE_ASSET, 1_000)
    pool.borrow(CallContext("alice"), "TOKEN", 750)
"""

# Core types
from .core import (
    SCALE,
    NATIVE_ASSET,
    TOKEN_PROBE_AMOUNT,
    ACCRUAL_CLOCK_GLOBAL,
    ACCRUAL_CLOCK_PER_ACCOUNT,
    to_wad,
    from_wad,
    wad_mul,
    wad_div,
    CallContext,
    BlockClock,
    MarketParameters,
    PriceOracle,
    TokenLedger,
    NativeLedger,
    SupportsRollback,
    LendingError,
    ValidationError,
    InsufficientCollateralError,
    InsufficientDebtError,
    LiquidationNotAllowedError,
    LiquidationCapExceededError,
    ExternalTransferError,
    InsufficientLiquidityError,
    PriceUnavailableError,
)

# Account book and pool state
from .accounts import UserInfo, AccountBook
from .state import GlobalState, StateSnapshot

# Interest accrual
from .interest import (
    calculate_index_advance,
    calculate_account_interest,
    calculate_pending_interest,
    InterestAccrualEngine,
)

# Collateral risk
from .risk import (
    AccountRisk,
    calculate_collateral_value,
    calculate_borrow_capacity,
    calculate_is_healthy,
    calculate_required_collateral,
    calculate_withdrawable_native,
    calculate_seize_amount,
    calculate_liquidation_cap,
    CollateralRiskEngine,
    STATUS_HEALTHY,
    STATUS_LIQUIDATABLE,
)

# Collaborators
from .price_oracle import StaticPriceOracle, BlockSeriesPriceOracle
from .asset_ledger import InMemoryAssetLedger, Transfer, SYSTEM_WALLET

# Entry points
from .pool import LendingPool, OperationRecord

__all__ = [
    # Core
    'SCALE', 'NATIVE_ASSET', 'TOKEN_PROBE_AMOUNT',
    'ACCRUAL_CLOCK_GLOBAL', 'ACCRUAL_CLOCK_PER_ACCOUNT',
    'to_wad', 'from_wad', 'wad_mul', 'wad_div',
    'CallContext', 'BlockClock', 'MarketParameters',
    'PriceOracle', 'TokenLedger', 'NativeLedger', 'SupportsRollback',
    'LendingError', 'ValidationError', 'InsufficientCollateralError',
    'InsufficientDebtError', 'LiquidationNotAllowedError',
    'LiquidationCapExceededError', 'ExternalTransferError',
    'InsufficientLiquidityError', 'PriceUnavailableError',
    # Accounts and state
    'UserInfo', 'AccountBook', 'GlobalState', 'StateSnapshot',
    # Interest
    'calculate_index_advance', 'calculate_account_interest',
    'calculate_pending_interest', 'InterestAccrualEngine',
    # Risk
    'AccountRisk', 'calculate_collateral_value', 'calculate_borrow_capacity',
    'calculate_is_healthy', 'calculate_required_collateral', 'calculate_withdrawable_native',
    'calculate_seize_amount', 'calculate_liquidation_cap',
    'CollateralRiskEngine', 'STATUS_HEALTHY', 'STATUS_LIQUIDATABLE',
    # Collaborators
    'StaticPriceOracle', 'BlockSeriesPriceOracle',
    'InMemoryAssetLedger', 'Transfer', 'SYSTEM_WALLET',
    # Pool
    'LendingPool', 'OperationRecord',
]

__version__ = '1.0.0'
