"""
test_core_types.py - Unit tests for core.py

Tests:
- Fixed-point helpers (to_wad, from_wad, wad_mul, wad_div)
- CallContext validation
- BlockClock monotonicity
- MarketParameters defaults, validation and mapping adapter
- Exception hierarchy
"""

import pytest
from decimal import Decimal

from lending import (
    SCALE, NATIVE_ASSET,
    to_wad, from_wad, wad_mul, wad_div,
    CallContext, BlockClock, MarketParameters,
    ACCRUAL_CLOCK_GLOBAL, ACCRUAL_CLOCK_PER_ACCOUNT,
    LendingError, ValidationError, InsufficientCollateralError,
    InsufficientDebtError, LiquidationNotAllowedError,
    LiquidationCapExceededError, ExternalTransferError,
    InsufficientLiquidityError, PriceUnavailableError,
)


# ============================================================================
# FIXED POINT
# ============================================================================

class TestFixedPoint:

    def test_scale_is_one_e18(self):
        assert SCALE == 10 ** 18

    def test_native_asset_is_empty_identity(self):
        assert NATIVE_ASSET == ""

    def test_to_wad_int(self):
        assert to_wad(1) == SCALE
        assert to_wad(0) == 0

    def test_to_wad_decimal_string(self):
        assert to_wad("0.001") == 10 ** 15
        assert to_wad(Decimal("1.5")) == 15 * 10 ** 17

    def test_to_wad_float_goes_through_str(self):
        assert to_wad(0.1) == 10 ** 17

    def test_to_wad_truncates_below_one_unit(self):
        assert to_wad("0.0000000000000000019") == 1

    def test_to_wad_rejects_bool_and_nan(self):
        with pytest.raises(ValueError):
            to_wad(True)
        with pytest.raises(ValueError):
            to_wad(Decimal("NaN"))

    def test_from_wad(self):
        assert from_wad(15 * 10 ** 17) == Decimal("1.5")

    def test_wad_mul_truncates(self):
        assert wad_mul(3, SCALE // 2) == 1

    def test_wad_div(self):
        assert wad_div(187, SCALE) == 187
        assert wad_div(1, 2 * SCALE) == 0


# ============================================================================
# CALL CONTEXT
# ============================================================================

class TestCallContext:

    def test_defaults_to_no_value(self):
        ctx = CallContext("alice")
        assert ctx.caller == "alice"
        assert ctx.value == 0

    def test_is_frozen(self):
        ctx = CallContext("alice", value=5)
        with pytest.raises(AttributeError):
            ctx.value = 10

    def test_empty_caller_raises(self):
        with pytest.raises(ValueError, match="caller cannot be empty"):
            CallContext("  ")

    def test_negative_value_raises(self):
        with pytest.raises(ValueError, match="cannot be negative"):
            CallContext("alice", value=-1)

    def test_float_value_raises(self):
        with pytest.raises(ValueError, match="must be int"):
            CallContext("alice", value=1.5)

    def test_repr(self):
        assert repr(CallContext("alice")) == "Call(alice)"
        assert repr(CallContext("alice", value=3)) == "Call(alice, value=3)"


# ============================================================================
# BLOCK CLOCK
# ============================================================================

class TestBlockClock:

    def test_starts_at_initial_block(self):
        assert BlockClock(42).block_number == 42

    def test_advance(self):
        clock = BlockClock()
        assert clock.advance(10) == 10
        assert clock.advance() == 11

    def test_advance_to(self):
        clock = BlockClock(5)
        assert clock.advance_to(5) == 5
        assert clock.advance_to(20) == 20

    def test_cannot_move_backwards(self):
        clock = BlockClock(10)
        with pytest.raises(ValueError, match="backwards"):
            clock.advance_to(9)
        with pytest.raises(ValueError, match="backwards"):
            clock.advance(-1)

    def test_negative_initial_block_raises(self):
        with pytest.raises(ValueError):
            BlockClock(-1)


# ============================================================================
# MARKET PARAMETERS
# ============================================================================

class TestMarketParameters:

    def test_defaults(self):
        params = MarketParameters()
        assert params.interest_rate_per_block == 10 ** 15
        assert params.seconds_per_block == 12
        assert params.reserve_factor == 5 * 10 ** 16
        assert params.loan_to_value_percent == 75
        assert params.close_factor_percent == 25
        assert params.accrual_clock == ACCRUAL_CLOCK_GLOBAL

    def test_from_mapping_fills_defaults(self):
        params = MarketParameters.from_mapping({})
        assert params == MarketParameters()

    def test_from_mapping_accepts_decimal_strings(self):
        params = MarketParameters.from_mapping({
            'interest_rate_per_block': "0.0005",
            'reserve_factor': "0.1",
            'loan_to_value_percent': 80,
            'accrual_clock': ACCRUAL_CLOCK_PER_ACCOUNT,
        })
        assert params.interest_rate_per_block == 5 * 10 ** 14
        assert params.reserve_factor == 10 ** 17
        assert params.loan_to_value_percent == 80
        assert params.accrual_clock == ACCRUAL_CLOCK_PER_ACCOUNT

    def test_to_dict_round_trips_through_from_mapping(self):
        params = MarketParameters(loan_to_value_percent=60, close_factor_percent=50)
        assert MarketParameters.from_mapping(params.to_dict()) == params

    def test_negative_rate_raises(self):
        with pytest.raises(ValueError, match="interest_rate_per_block cannot be negative"):
            MarketParameters(interest_rate_per_block=-1)

    def test_ltv_out_of_range_raises(self):
        with pytest.raises(ValueError, match="loan_to_value_percent"):
            MarketParameters(loan_to_value_percent=0)
        with pytest.raises(ValueError, match="loan_to_value_percent"):
            MarketParameters(loan_to_value_percent=101)

    def test_close_factor_out_of_range_raises(self):
        with pytest.raises(ValueError, match="close_factor_percent"):
            MarketParameters(close_factor_percent=0)

    def test_reserve_factor_above_one_raises(self):
        with pytest.raises(ValueError, match="reserve_factor"):
            MarketParameters(reserve_factor=SCALE + 1)

    def test_unknown_clock_raises(self):
        with pytest.raises(ValueError, match="unknown accrual_clock"):
            MarketParameters(accrual_clock="wall")

    def test_float_field_raises(self):
        with pytest.raises(ValueError, match="must be int"):
            MarketParameters(interest_rate_per_block=0.001)

    def test_annual_rate(self):
        # 2,628,000 blocks of 12s per year at 0.1% per block
        assert MarketParameters().annual_rate() == Decimal("2628")


# ============================================================================
# EXCEPTIONS
# ============================================================================

class TestExceptionHierarchy:

    @pytest.mark.parametrize("error", [
        ValidationError,
        InsufficientCollateralError,
        InsufficientDebtError,
        LiquidationNotAllowedError,
        LiquidationCapExceededError,
        ExternalTransferError,
        InsufficientLiquidityError,
        PriceUnavailableError,
    ])
    def test_every_error_is_a_lending_error(self, error):
        assert issubclass(error, LendingError)

    def test_error_kinds_are_distinct(self):
        assert not issubclass(LiquidationCapExceededError, LiquidationNotAllowedError)
        assert not issubclass(InsufficientLiquidityError, InsufficientCollateralError)
