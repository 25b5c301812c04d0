"""
test_lending_operations.py - Unit tests for LendingPool entry points

Tests each entry point's success path and every failure kind it can raise:
- initialize: native reserves, token probe
- deposit: native value matching, token pull and balance verification
- borrow: capacity boundary
- repay: debt boundary
- withdraw: withdrawable native, supplied tokens, pool liquidity
- liquidate: health check, close factor cap, collateral bound
- accrued_supply_amount and read-only views
"""

import threading

import pytest

from lending import (
    SCALE, NATIVE_ASSET,
    CallContext, UserInfo, LendingPool, InMemoryAssetLedger, OperationRecord,
    ValidationError, InsufficientCollateralError, InsufficientDebtError,
    LiquidationNotAllowedError, LiquidationCapExceededError,
    ExternalTransferError, InsufficientLiquidityError, PriceUnavailableError,
    STATUS_LIQUIDATABLE,
)

from tests.market import TOKEN, POOL, build_market


# ============================================================================
# INITIALIZE
# ============================================================================

class TestInitialize:

    def test_native_adds_value_to_reserves(self, funded_market):
        pool = funded_market.pool
        record = pool.initialize(CallContext("alice", value=100), NATIVE_ASSET)
        assert pool.total_reserves == 100
        assert funded_market.native.balance_of(POOL) == 100
        assert record.kind == "initialize"
        assert record.amount == 100

    def test_native_without_value_raises(self, funded_market):
        with pytest.raises(ValidationError, match="non-zero"):
            funded_market.pool.initialize(CallContext("alice"), NATIVE_ASSET)

    def test_token_pulls_probe_unit(self, funded_market):
        pool = funded_market.pool
        before = funded_market.token.balance_of(POOL)
        pool.initialize(CallContext("alice"), TOKEN)
        assert funded_market.token.balance_of(POOL) == before + 1
        assert funded_market.token.balance_of("alice") == 9_999
        assert pool.total_reserves == 0

    def test_token_with_value_raises(self, funded_market):
        with pytest.raises(ValidationError):
            funded_market.pool.initialize(CallContext("alice", value=5), TOKEN)

    def test_token_probe_without_allowance_fails(self, market):
        market.fund("carol", tokens=10, approve=False)
        with pytest.raises(ExternalTransferError):
            market.pool.initialize(CallContext("carol"), TOKEN)

    def test_unsupported_asset_raises(self, funded_market):
        with pytest.raises(ValidationError, match="unsupported"):
            funded_market.pool.initialize(CallContext("alice"), "OTHER")


# ============================================================================
# DEPOSIT
# ============================================================================

class TestDeposit:

    def test_native_deposit_credits_collateral(self, funded_market):
        funded_market.deposit_native("alice", 1_000)
        assert funded_market.pool.get_account("alice").supplied == 1_000
        assert funded_market.native.balance_of(POOL) == 1_000
        assert funded_market.native.balance_of("alice") == 9_000

    def test_native_value_mismatch_raises(self, funded_market):
        with pytest.raises(ValidationError, match="does not match"):
            funded_market.pool.deposit(CallContext("alice", value=999), NATIVE_ASSET, 1_000)
        assert funded_market.pool.get_account("alice").supplied == 0

    def test_token_deposit_credits_supplied_tokens(self, funded_market):
        funded_market.deposit_tokens("bob", 500)
        info = funded_market.pool.get_account("bob")
        assert info.supplied_tokens == 500
        assert info.supplied == 0
        assert funded_market.token.balance_of(POOL) == 1_000_500

    def test_token_deposit_without_allowance_rolls_back(self, market):
        market.fund("carol", tokens=100, approve=False)
        with pytest.raises(ExternalTransferError):
            market.deposit_tokens("carol", 100)
        assert market.pool.get_account("carol").supplied_tokens == 0
        assert market.pool.history == []

    def test_token_deposit_with_value_raises(self, funded_market):
        with pytest.raises(ValidationError):
            funded_market.pool.deposit(CallContext("alice", value=5), TOKEN, 5)

    def test_fee_on_transfer_token_fails_balance_check(self):
        market = build_market(transfer_fee_bps=100)
        market.fund("alice", tokens=1_000)
        with pytest.raises(ExternalTransferError, match="balance grew by 99"):
            market.deposit_tokens("alice", 100)
        assert market.token.balance_of("alice") == 1_000
        assert market.pool.get_account("alice").supplied_tokens == 0

    @pytest.mark.parametrize("amount", [0, -5, 1.5, True])
    def test_bad_amount_raises(self, funded_market, amount):
        with pytest.raises(ValidationError):
            funded_market.pool.deposit(CallContext("alice"), TOKEN, amount)

    def test_unsupported_asset_raises(self, funded_market):
        with pytest.raises(ValidationError):
            funded_market.pool.deposit(CallContext("alice"), "OTHER", 1)


# ============================================================================
# BORROW
# ============================================================================

class TestBorrow:

    def test_borrow_up_to_capacity(self, collateralized_market):
        m = collateralized_market
        record = m.borrow("alice", 750)
        info = m.pool.get_account("alice")
        assert info.borrowed == 750
        assert info.last_block_number == 1_000
        assert m.pool.total_debt == 750
        assert m.token.balance_of("alice") == 10_750
        assert record.details['borrow_capacity'] == 750

    def test_borrow_above_capacity_raises(self, collateralized_market):
        m = collateralized_market
        with pytest.raises(InsufficientCollateralError, match="exceeds capacity 750"):
            m.borrow("alice", 751)
        assert m.pool.total_debt == 0
        assert m.token.balance_of("alice") == 10_000

    def test_borrow_without_collateral_raises(self, funded_market):
        with pytest.raises(InsufficientCollateralError):
            funded_market.borrow("bob", 1)

    def test_supplied_tokens_are_not_collateral(self, funded_market):
        funded_market.deposit_tokens("bob", 5_000)
        with pytest.raises(InsufficientCollateralError):
            funded_market.borrow("bob", 1)

    def test_borrow_native_asset_raises(self, collateralized_market):
        with pytest.raises(ValidationError):
            collateralized_market.pool.borrow(CallContext("alice"), NATIVE_ASSET, 10)

    def test_borrow_with_value_raises(self, collateralized_market):
        with pytest.raises(ValidationError):
            collateralized_market.pool.borrow(CallContext("alice", value=1), TOKEN, 10)

    def test_borrow_beyond_pool_liquidity_fails_transfer(self):
        market = build_market(pool_liquidity=100)
        market.fund("alice", native=1_000)
        market.deposit_native("alice", 1_000)
        with pytest.raises(ExternalTransferError):
            market.borrow("alice", 500)
        assert market.pool.get_account("alice").borrowed == 0
        assert market.pool.total_debt == 0

    def test_accrued_interest_counts_against_capacity(self, collateralized_market):
        m = collateralized_market
        m.borrow("alice", 700)
        m.clock.advance(100)
        # 700 * 0.1 = 70 interest, debt 770 > 750 capacity
        with pytest.raises(InsufficientCollateralError):
            m.borrow("alice", 1)

    def test_missing_price_raises(self, collateralized_market):
        collateralized_market.oracle.prices.pop(NATIVE_ASSET)
        with pytest.raises(PriceUnavailableError):
            collateralized_market.borrow("alice", 1)


# ============================================================================
# REPAY
# ============================================================================

class TestRepay:

    def test_partial_repay(self, collateralized_market):
        m = collateralized_market
        m.borrow("alice", 500)
        m.repay("alice", 200)
        assert m.pool.get_account("alice").borrowed == 300
        assert m.pool.total_debt == 300
        assert m.token.balance_of("alice") == 10_300

    def test_full_repay_including_interest(self, collateralized_market):
        m = collateralized_market
        m.borrow("alice", 500)
        m.clock.advance(10)
        # 500 * 0.01 = 5
        record = m.repay("alice", 505)
        assert record.details['interest'] == 5
        assert record.details['remaining_debt'] == 0
        assert m.pool.get_account("alice").borrowed == 0
        assert m.pool.total_debt == 0

    def test_repay_more_than_debt_raises(self, collateralized_market):
        m = collateralized_market
        m.borrow("alice", 500)
        with pytest.raises(InsufficientDebtError, match="debt is 500"):
            m.repay("alice", 501)
        assert m.pool.get_account("alice").borrowed == 500

    def test_repay_without_debt_raises(self, funded_market):
        with pytest.raises(InsufficientDebtError):
            funded_market.repay("bob", 1)

    def test_repay_without_allowance_rolls_back(self, collateralized_market):
        m = collateralized_market
        m.borrow("alice", 500)
        m.token.approve("alice", POOL, 0)
        with pytest.raises(ExternalTransferError):
            m.repay("alice", 100)
        assert m.pool.get_account("alice").borrowed == 500
        assert m.pool.total_debt == 500


# ============================================================================
# WITHDRAW
# ============================================================================

class TestWithdraw:

    def test_withdraw_native_without_debt(self, collateralized_market):
        m = collateralized_market
        m.withdraw_native("alice", 1_000)
        assert m.pool.get_account("alice").supplied == 0
        assert m.native.balance_of("alice") == 10_000

    def test_withdraw_native_keeps_debt_covered(self, collateralized_market):
        m = collateralized_market
        m.borrow("alice", 600)
        m.withdraw_native("alice", 400)
        assert m.pool.get_account("alice").supplied == 600

    def test_withdraw_native_above_withdrawable_raises(self, collateralized_market):
        m = collateralized_market
        m.borrow("alice", 600)
        with pytest.raises(InsufficientCollateralError, match="400 withdrawable"):
            m.withdraw_native("alice", 401)
        assert m.pool.get_account("alice").supplied == 1_000

    def test_withdraw_native_respects_token_price(self, collateralized_market):
        m = collateralized_market
        m.borrow("alice", 400)
        m.oracle.update_price(TOKEN, 2 * SCALE)
        # 400 tokens now need 800 native
        with pytest.raises(InsufficientCollateralError, match="200 withdrawable"):
            m.withdraw_native("alice", 201)

    def test_withdraw_tokens(self, funded_market):
        funded_market.deposit_tokens("bob", 500)
        funded_market.withdraw_tokens("bob", 300)
        assert funded_market.pool.get_account("bob").supplied_tokens == 200
        assert funded_market.token.balance_of("bob") == 9_800

    def test_withdraw_more_tokens_than_supplied_raises(self, funded_market):
        funded_market.deposit_tokens("bob", 500)
        with pytest.raises(InsufficientCollateralError, match="500 supplied"):
            funded_market.withdraw_tokens("bob", 501)

    def test_withdraw_tokens_beyond_liquidity_raises(self):
        market = build_market(pool_liquidity=0)
        market.fund("bob", tokens=1_000)
        market.fund("alice", native=10_000)
        market.deposit_tokens("bob", 1_000)
        market.deposit_native("alice", 10_000)
        market.borrow("alice", 800)
        with pytest.raises(InsufficientLiquidityError, match="pool holds 200"):
            market.withdraw_tokens("bob", 1_000)
        assert market.pool.get_account("bob").supplied_tokens == 1_000

    def test_withdraw_with_value_raises(self, collateralized_market):
        with pytest.raises(ValidationError):
            collateralized_market.pool.withdraw(CallContext("alice", value=1), NATIVE_ASSET, 1)


# ============================================================================
# LIQUIDATE
# ============================================================================

@pytest.fixture
def underwater_market(collateralized_market):
    """alice borrowed 750 and 100 blocks passed: debt 825 against capacity 750."""
    collateralized_market.borrow("alice", 750)
    collateralized_market.clock.advance(100)
    return collateralized_market


class TestLiquidate:

    def test_liquidate_up_to_cap(self, underwater_market):
        m = underwater_market
        record = m.liquidate("liquidator", "alice", 206)
        info = m.pool.get_account("alice")
        assert record.details['interest'] == 75
        assert record.details['cap'] == 206
        assert record.details['seized'] == 206
        assert record.counterparty == "alice"
        assert info.borrowed == 825 - 206
        assert info.supplied == 1_000 - 206
        assert m.native.balance_of("liquidator") == 206
        assert m.token.balance_of("liquidator") == 100_000 - 206
        assert m.pool.total_debt == 825 - 206

    def test_above_cap_raises(self, underwater_market):
        m = underwater_market
        with pytest.raises(LiquidationCapExceededError, match="cap is 206"):
            m.liquidate("liquidator", "alice", 207)
        assert m.pool.get_account("alice").supplied == 1_000

    def test_healthy_borrower_raises(self, collateralized_market):
        m = collateralized_market
        m.borrow("alice", 750)
        with pytest.raises(LiquidationNotAllowedError, match="is healthy"):
            m.liquidate("liquidator", "alice", 100)

    def test_failed_liquidation_discards_accrual(self, underwater_market):
        m = underwater_market
        with pytest.raises(LiquidationCapExceededError):
            m.liquidate("liquidator", "alice", 10_000)
        assert m.pool.get_account("alice").borrowed == 750
        assert m.pool.total_debt == 750

    def test_self_liquidation_raises(self, underwater_market):
        with pytest.raises(ValidationError):
            underwater_market.liquidate("alice", "alice", 10)

    def test_seizure_above_collateral_raises(self, underwater_market):
        m = underwater_market
        # native at 1/10 of par: 206 tokens would seize 2060 native
        m.oracle.update_price(NATIVE_ASSET, SCALE // 10)
        with pytest.raises(InsufficientCollateralError, match="exceeds alice's collateral"):
            m.liquidate("liquidator", "alice", 206)

    def test_seize_uses_native_price_only(self, underwater_market):
        m = underwater_market
        m.oracle.update_price(TOKEN, 3 * SCALE)
        record = m.liquidate("liquidator", "alice", 100)
        assert record.details['seized'] == 100

    def test_liquidator_without_tokens_rolls_back(self, underwater_market):
        m = underwater_market
        m.fund("pauper", tokens=5)
        with pytest.raises(ExternalTransferError):
            m.liquidate("pauper", "alice", 100)
        assert m.pool.get_account("alice").supplied == 1_000
        assert m.native.balance_of("pauper") == 0

    def test_liquidation_of_unknown_borrower_raises(self, funded_market):
        with pytest.raises(LiquidationNotAllowedError):
            funded_market.liquidate("liquidator", "nobody", 1)


# ============================================================================
# VIEWS
# ============================================================================

class TestViews:

    def test_accrued_supply_amount(self, collateralized_market):
        m = collateralized_market
        m.pool.initialize(CallContext("bob", value=50), NATIVE_ASSET)
        m.borrow("alice", 500)
        # 999,500 tokens held - 500 debt - 50 reserves
        assert m.pool.accrued_supply_amount(TOKEN) == 999_500 - 500 - 50

    def test_accrued_supply_amount_floors_at_zero(self):
        market = build_market(pool_liquidity=0)
        market.fund("alice", native=1_000)
        market.pool.initialize(CallContext("alice", value=1_000), NATIVE_ASSET)
        assert market.pool.accrued_supply_amount(TOKEN) == 0

    def test_accrued_supply_amount_native_raises(self, market):
        with pytest.raises(ValidationError):
            market.pool.accrued_supply_amount(NATIVE_ASSET)

    def test_get_account_does_not_create(self, market):
        assert market.pool.get_account("ghost") == UserInfo()
        assert "ghost" not in market.pool.state.accounts

    def test_deposit_stamps_caller_block(self, funded_market):
        m = funded_market
        m.clock.advance(50)
        m.deposit_native("alice", 100)
        assert m.pool.get_account("alice").last_block_number == 1_050
        assert m.pool.borrow_index == SCALE + 50 * 10 ** 15

        m.clock.advance(5)
        m.deposit_tokens("bob", 10)
        assert m.pool.get_account("bob").last_block_number == 1_055
        assert m.pool.get_account("alice").last_block_number == 1_050

    def test_get_account_waits_for_running_operation(self, collateralized_market):
        m = collateralized_market
        done = threading.Event()

        def read():
            m.pool.get_account("alice")
            done.set()

        with m.pool._lock:
            reader = threading.Thread(target=read)
            reader.start()
            assert not done.wait(0.1)
        reader.join(timeout=5)
        assert done.is_set()

    def test_record_details_are_read_only(self, collateralized_market):
        record = collateralized_market.borrow("alice", 100)
        with pytest.raises(TypeError):
            record.details['interest'] = 999
        assert record.details['interest'] == 0
        assert collateralized_market.pool.history[-1].details['interest'] == 0

    def test_record_does_not_alias_caller_dict(self):
        details = {'seized': 5}
        record = OperationRecord(0, "liquidate", "bob", "TOKEN", 5, 1, "alice", details)
        details['seized'] = 6
        assert record.details['seized'] == 5

    def test_account_risk_includes_pending_interest(self, underwater_market):
        risk = underwater_market.pool.account_risk("alice")
        assert risk.pending_interest == 75
        assert risk.borrowed == 825
        assert risk.status == STATUS_LIQUIDATABLE
        # recorded position is untouched
        assert underwater_market.pool.get_account("alice").borrowed == 750

    def test_history_records_committed_operations(self, collateralized_market):
        m = collateralized_market
        m.borrow("alice", 100)
        with pytest.raises(InsufficientCollateralError):
            m.borrow("alice", 10_000)
        kinds = [record.kind for record in m.pool.history]
        assert kinds == ["deposit", "borrow"]
        assert [r.sequence for r in m.pool.history] == [0, 1]

    def test_pool_rejects_nameless_token_ledger(self, market):
        class Nameless:
            symbol = ""

        with pytest.raises(ValueError, match="symbol"):
            LendingPool(market.oracle, Nameless(), InMemoryAssetLedger("N", "pool"), market.clock)
