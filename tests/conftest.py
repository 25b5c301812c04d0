"""
conftest.py - Shared pytest fixtures for lending tests

Provides common fixtures used across unit, conformance and functional tests:
- A bare market (pool + ledgers + oracle + clock) at par prices
- Funded accounts: a borrower with native collateral, a token supplier,
  and a liquidator holding tokens
- A per-account-clock market for the original accrual behavior
"""

import pytest

from lending import MarketParameters, ACCRUAL_CLOCK_PER_ACCOUNT

from tests.market import Market, build_market


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def market() -> Market:
    """Par-priced market at block 1000 with 1,000,000 tokens of pool liquidity."""
    return build_market()


@pytest.fixture
def funded_market(market) -> Market:
    """
    Market where:
    - alice holds 10,000 native and 10,000 tokens
    - bob holds 10,000 native and 10,000 tokens
    - liquidator holds 100,000 tokens
    All of them have approved the pool.
    """
    market.fund("alice", native=10_000, tokens=10_000)
    market.fund("bob", native=10_000, tokens=10_000)
    market.fund("liquidator", tokens=100_000)
    return market


@pytest.fixture
def collateralized_market(funded_market) -> Market:
    """Funded market with alice holding 1000 native units of collateral."""
    funded_market.deposit_native("alice", 1_000)
    return funded_market


@pytest.fixture
def per_account_market() -> Market:
    """Market using the per-account accrual clock, pool deployed at block 0."""
    market = build_market(
        start_block=0,
        params=MarketParameters(accrual_clock=ACCRUAL_CLOCK_PER_ACCOUNT),
    )
    market.fund("alice", native=10_000, tokens=10_000)
    market.fund("bob", native=10_000, tokens=10_000)
    return market
