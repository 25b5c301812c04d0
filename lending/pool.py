"""
pool.py - Lending pool entry points

The LendingPool class is the only module that mutates lending state. Every
entry point runs the same pipeline:

    (a) validate inputs
    (b) advance the global borrow index, accrue the relevant account
    (c) risk checks against the collateral engine
    (d) account book mutation
    (e) asset ledger interaction (always last)

Because bookkeeping is committed before any transfer, a receiving account
that calls back into the pool during (e) only ever sees settled state.

Each entry point is all-or-nothing: pool state and every collaborator that
supports snapshot()/restore() are captured up front and put back if any
stage raises. Nothing is retried.
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass, field
import logging
import threading
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from .accounts import UserInfo
from .core import (
    NATIVE_ASSET, TOKEN_PROBE_AMOUNT,
    AccountId, AssetId, BlockClock, CallContext, MarketParameters,
    NativeLedger, PriceOracle, SupportsRollback, TokenLedger,
    is_amount,
    LendingError, ValidationError, InsufficientCollateralError,
    InsufficientDebtError, LiquidationNotAllowedError,
    LiquidationCapExceededError, ExternalTransferError,
    InsufficientLiquidityError,
)
from .interest import InterestAccrualEngine
from .risk import AccountRisk, CollateralRiskEngine
from .state import GlobalState

logger = logging.getLogger(__name__)


# Operation kinds recorded in the audit trail
OP_INITIALIZE = "initialize"
OP_DEPOSIT = "deposit"
OP_BORROW = "borrow"
OP_REPAY = "repay"
OP_WITHDRAW = "withdraw"
OP_LIQUIDATE = "liquidate"


@dataclass(frozen=True, slots=True)
class OperationRecord:
    """
    Immutable audit record of a committed entry point.

    Attributes:
        sequence: Monotonic position in the pool history
        kind: Entry point name (deposit, borrow, ...)
        caller: Calling account
        asset: Asset identity the call was made with
        amount: Amount argument (value for a native initialize)
        block_number: Block height the call executed at
        counterparty: Borrower for liquidations, None otherwise
        details: Derived figures (interest accrued, seized collateral, ...)
    """
    sequence: int
    kind: str
    caller: AccountId
    asset: AssetId
    amount: int
    block_number: int
    counterparty: Optional[AccountId] = None
    details: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'details', MappingProxyType(dict(self.details)))

    def __repr__(self) -> str:
        asset = self.asset or "native"
        target = f" -> {self.counterparty}" if self.counterparty else ""
        return (
            f"Op(#{self.sequence} {self.kind} {self.amount} {asset} "
            f"by {self.caller}{target} @ block {self.block_number})"
        )


class LendingPool:
    """
    Collateralized lending ledger over one native asset and one token.

    Accounts deposit native value as collateral, borrow tokens up to the
    loan-to-value limit, pay per-block interest through the global borrow
    index, and can be partially liquidated once their debt exceeds borrow
    capacity.

    Thread Safety:
        Entry points are serialized by one re-entrant lock per pool. The
        lock is re-entrant so that a receive hook running on the same
        thread during a transfer may call back in.

    Example:
        clock = BlockClock()
        oracle = StaticPriceOracle({NATIVE_ASSET: SCALE, "TOKEN": SCALE})
        token = InMemoryAssetLedger("TOKEN", custodian="pool")
        native = InMemoryAssetLedger("NATIVE", custodian="pool")
        pool = LendingPool(oracle, token, native, clock, address="pool")

        pool.deposit(CallContext("alice", value=1000), NATIVE_ASSET, 1000)
        pool.borrow(CallContext("alice"), "TOKEN", 750)
    """

    def __init__(
        self,
        oracle: PriceOracle,
        token_ledger: TokenLedger,
        native_ledger: NativeLedger,
        clock: BlockClock,
        params: Optional[MarketParameters] = None,
        address: AccountId = "lending_pool",
    ):
        """
        Create a pool.

        Args:
            oracle: Price feed for the native asset and the token
            token_ledger: Token transfer backend; its symbol is the token's
                asset identity
            native_ledger: Native value transfer backend
            clock: Source of the current block height
            params: Market parameters (default: MarketParameters())
            address: The pool's own account on both ledgers
        """
        if not address or not address.strip():
            raise ValueError("address cannot be empty")
        token_asset = getattr(token_ledger, 'symbol', None)
        if not token_asset or token_asset == NATIVE_ASSET:
            raise ValueError("token_ledger must expose a non-empty symbol")

        self.address = address
        self.token_asset: AssetId = token_asset
        self.clock = clock
        self.params = params or MarketParameters()
        self.state = GlobalState(
            oracle=oracle,
            token_ledger=token_ledger,
            native_ledger=native_ledger,
            reserve_factor=self.params.reserve_factor,
            start_block=clock.block_number,
        )
        self.interest = InterestAccrualEngine(self.state, self.params, clock)
        self.risk = CollateralRiskEngine(self.state, self.params, self.token_asset)
        self.history: List[OperationRecord] = []
        self._lock = threading.RLock()

    # ========================================================================
    # READ-ONLY VIEWS
    # ========================================================================

    @property
    def borrow_index(self) -> int:
        return self.state.borrow_index

    @property
    def total_debt(self) -> int:
        return self.state.total_debt

    @property
    def total_reserves(self) -> int:
        return self.state.total_reserves

    @property
    def reserve_factor(self) -> int:
        return self.state.reserve_factor

    def get_account(self, account: AccountId) -> UserInfo:
        """Recorded position of an account (interest applied up to its last call)."""
        with self._lock:
            return self.state.accounts.peek(account)

    def account_risk(self, account: AccountId) -> AccountRisk:
        """Risk assessment including interest pending at the current block."""
        with self._lock:
            return self.risk.assess(account, self.interest.pending_interest(account))

    def accrued_supply_amount(self, asset: AssetId) -> int:
        """
        Token surplus available to suppliers.

        token balance held by the pool - total debt - total reserves,
        floored at zero.

        Raises:
            ValidationError: If asset is not the pool's token
        """
        self._require_token(asset)
        with self._lock:
            balance = self.state.token_ledger.balance_of(self.address)
            surplus = balance - self.state.total_debt - self.state.total_reserves
            return max(surplus, 0)

    def verify_debt_invariant(self) -> Dict[str, Any]:
        """
        Check that total debt equals the sum of every account's borrowed amount.

        Returns:
            Dict with 'valid', 'total_debt', 'sum_borrowed' and 'difference'.
        """
        with self._lock:
            sum_borrowed = self.state.accounts.total_borrowed()
            difference = self.state.total_debt - sum_borrowed
            return {
                'valid': difference == 0,
                'total_debt': self.state.total_debt,
                'sum_borrowed': sum_borrowed,
                'difference': difference,
            }

    # ========================================================================
    # ENTRY POINTS (Mutating)
    # ========================================================================

    def initialize(self, ctx: CallContext, asset: AssetId) -> OperationRecord:
        """
        Bootstrap one side of the pool.

        Native: the value attached to the call is added to total reserves.
        Token: a one-unit probe is pulled from the caller to prove the token
        ledger accepts transfers into the pool.

        Raises:
            ValidationError: zero native value, value on the token path, or
                unsupported asset
            ExternalTransferError: the ledger refused the transfer
        """
        self._require_supported(asset)
        if asset == NATIVE_ASSET:
            if ctx.value == 0:
                raise ValidationError("initialize requires a non-zero native value")
        elif ctx.value:
            raise ValidationError("native value cannot be attached to a token initialize")

        with self._operation(OP_INITIALIZE, ctx):
            self.interest.accrue(ctx.caller)

            if asset == NATIVE_ASSET:
                self.state.total_reserves += ctx.value
                self._accept_native(ctx.caller, ctx.value)
                amount = ctx.value
            else:
                self._pull_tokens(ctx.caller, TOKEN_PROBE_AMOUNT)
                amount = TOKEN_PROBE_AMOUNT

            return self._record(OP_INITIALIZE, ctx, asset, amount, details={
                'total_reserves': self.state.total_reserves,
            })

    def deposit(self, ctx: CallContext, asset: AssetId, amount: int) -> OperationRecord:
        """
        Supply native collateral or tokens.

        Native: ctx.value must equal amount; credited to supplied collateral.
        Token: pulled from the caller (needs an allowance for the pool) and
        credited to supplied_tokens. The pool's token balance must grow by
        at least amount.

        Raises:
            ValidationError: unsupported asset, bad amount, value mismatch
            ExternalTransferError: pull refused or balance check failed
        """
        self._require_supported(asset)
        self._require_amount(amount)
        if asset == NATIVE_ASSET:
            if ctx.value != amount:
                raise ValidationError(
                    f"attached value {ctx.value} does not match deposit amount {amount}"
                )
        elif ctx.value:
            raise ValidationError("native value cannot be attached to a token deposit")

        with self._operation(OP_DEPOSIT, ctx):
            interest = self.interest.accrue(ctx.caller)
            info = self.state.accounts.get(ctx.caller)

            if asset == NATIVE_ASSET:
                self.state.accounts.put(ctx.caller, info.update(supplied=info.supplied + amount))
                self._accept_native(ctx.caller, amount)
            else:
                self.state.accounts.put(
                    ctx.caller, info.update(supplied_tokens=info.supplied_tokens + amount)
                )
                before = self.state.token_ledger.balance_of(self.address)
                self._pull_tokens(ctx.caller, amount)
                after = self.state.token_ledger.balance_of(self.address)
                if after < before + amount:
                    raise ExternalTransferError(
                        f"{self.token_asset} balance grew by {after - before}, expected {amount}"
                    )

            return self._record(OP_DEPOSIT, ctx, asset, amount, details={'interest': interest})

    def borrow(self, ctx: CallContext, asset: AssetId, amount: int) -> OperationRecord:
        """
        Borrow tokens against native collateral.

        After accrual, borrowed + amount must not exceed borrow capacity.

        Raises:
            ValidationError: asset is not the token, bad amount
            InsufficientCollateralError: capacity exceeded
            ExternalTransferError: the pool could not send the tokens
        """
        self._require_token(asset)
        self._require_amount(amount)
        self._require_no_value(ctx)

        with self._operation(OP_BORROW, ctx):
            interest = self.interest.accrue(ctx.caller)
            info = self.state.accounts.get(ctx.caller)

            capacity = self.risk.borrow_capacity(ctx.caller)
            if info.borrowed + amount > capacity:
                raise InsufficientCollateralError(
                    f"{ctx.caller} cannot borrow {amount}: debt {info.borrowed} "
                    f"+ {amount} exceeds capacity {capacity}"
                )

            self.state.accounts.put(ctx.caller, info.update(
                borrowed=info.borrowed + amount,
                last_block_number=self.clock.block_number,
            ))
            self.state.total_debt += amount
            self._push_tokens(ctx.caller, amount)

            return self._record(OP_BORROW, ctx, asset, amount, details={
                'interest': interest,
                'borrow_capacity': capacity,
            })

    def repay(self, ctx: CallContext, asset: AssetId, amount: int) -> OperationRecord:
        """
        Repay part or all of the caller's debt.

        Raises:
            ValidationError: asset is not the token, bad amount
            InsufficientDebtError: amount exceeds the debt after accrual
            ExternalTransferError: tokens could not be pulled from the caller
        """
        self._require_token(asset)
        self._require_amount(amount)
        self._require_no_value(ctx)

        with self._operation(OP_REPAY, ctx):
            interest = self.interest.accrue(ctx.caller)
            info = self.state.accounts.get(ctx.caller)

            if amount > info.borrowed:
                raise InsufficientDebtError(
                    f"{ctx.caller} cannot repay {amount}: debt is {info.borrowed}"
                )

            self.state.accounts.put(ctx.caller, info.update(borrowed=info.borrowed - amount))
            self.state.total_debt -= amount
            self._pull_tokens(ctx.caller, amount)

            return self._record(OP_REPAY, ctx, asset, amount, details={
                'interest': interest,
                'remaining_debt': info.borrowed - amount,
            })

    def withdraw(self, ctx: CallContext, asset: AssetId, amount: int) -> OperationRecord:
        """
        Withdraw native collateral or supplied tokens.

        Native: amount must not exceed withdrawable_native, i.e. collateral
        left after covering the outstanding debt at oracle prices.
        Token: amount must not exceed the caller's supplied tokens nor the
        pool's token balance.

        Raises:
            ValidationError: unsupported asset, bad amount
            InsufficientCollateralError: not enough withdrawable balance
            InsufficientLiquidityError: pool holds too few tokens
            ExternalTransferError: the pool could not send the value
        """
        self._require_supported(asset)
        self._require_amount(amount)
        self._require_no_value(ctx)

        with self._operation(OP_WITHDRAW, ctx):
            interest = self.interest.accrue(ctx.caller)
            info = self.state.accounts.get(ctx.caller)

            if asset == NATIVE_ASSET:
                withdrawable = self.risk.withdrawable_native(ctx.caller)
                if amount > withdrawable:
                    raise InsufficientCollateralError(
                        f"{ctx.caller} cannot withdraw {amount}: {withdrawable} withdrawable"
                    )
                self.state.accounts.put(ctx.caller, info.update(supplied=info.supplied - amount))
                self._push_native(ctx.caller, amount)
            else:
                if amount > info.supplied_tokens:
                    raise InsufficientCollateralError(
                        f"{ctx.caller} cannot withdraw {amount} {asset}: "
                        f"{info.supplied_tokens} supplied"
                    )
                liquidity = self.state.token_ledger.balance_of(self.address)
                if liquidity < amount:
                    raise InsufficientLiquidityError(
                        f"pool holds {liquidity} {asset}, cannot withdraw {amount}"
                    )
                self.state.accounts.put(
                    ctx.caller, info.update(supplied_tokens=info.supplied_tokens - amount)
                )
                self._push_tokens(ctx.caller, amount)

            return self._record(OP_WITHDRAW, ctx, asset, amount, details={'interest': interest})

    def liquidate(
        self,
        ctx: CallContext,
        borrower: AccountId,
        asset: AssetId,
        amount: int,
    ) -> OperationRecord:
        """
        Repay part of an unhealthy borrower's debt and seize native collateral.

        The liquidator repays amount tokens (at most the close factor of the
        borrower's debt) and receives amount * SCALE / price(native) of the
        borrower's native collateral.

        Raises:
            ValidationError: asset is not the token, bad amount, self-liquidation
            LiquidationNotAllowedError: borrower is healthy after accrual
            LiquidationCapExceededError: amount above the close factor cap
            InsufficientCollateralError: seizure exceeds borrower collateral
            ExternalTransferError: repayment pull or collateral push refused
        """
        self._require_token(asset)
        self._require_amount(amount)
        self._require_no_value(ctx)
        if not borrower or borrower == ctx.caller:
            raise ValidationError("liquidator and borrower must be different accounts")

        with self._operation(OP_LIQUIDATE, ctx):
            self.interest.advance_global_index(ctx.caller)
            interest = self.interest.accrue_account_interest(borrower)
            info = self.state.accounts.get(borrower)

            if self.risk.is_healthy(borrower):
                raise LiquidationNotAllowedError(
                    f"{borrower} is healthy: debt {info.borrowed} within capacity "
                    f"{self.risk.borrow_capacity(borrower)}"
                )
            cap = self.risk.liquidation_cap(borrower)
            if amount > cap:
                raise LiquidationCapExceededError(
                    f"cannot repay {amount} of {borrower}'s debt: cap is {cap}"
                )
            seized = self.risk.liquidation_seize_amount(amount)
            if seized > info.supplied:
                raise InsufficientCollateralError(
                    f"seizing {seized} exceeds {borrower}'s collateral {info.supplied}"
                )

            self.state.accounts.put(borrower, info.update(
                borrowed=info.borrowed - amount,
                supplied=info.supplied - seized,
            ))
            self.state.total_debt -= amount
            self._pull_tokens(ctx.caller, amount)
            self._push_native(ctx.caller, seized)

            return self._record(OP_LIQUIDATE, ctx, asset, amount, counterparty=borrower, details={
                'interest': interest,
                'seized': seized,
                'cap': cap,
            })

    # ========================================================================
    # ATOMICITY
    # ========================================================================

    def _collaborators(self) -> List[SupportsRollback]:
        found: List[SupportsRollback] = []
        for collaborator in (self.state.token_ledger, self.state.native_ledger):
            if isinstance(collaborator, SupportsRollback) and collaborator not in found:
                found.append(collaborator)
        return found

    @contextmanager
    def _operation(self, kind: str, ctx: CallContext) -> Iterator[None]:
        """
        Run an entry point all-or-nothing under the pool lock.

        Captures pool state, history length and every rollback-capable
        collaborator; restores all of them if the body raises.
        """
        with self._lock:
            state_snapshot = self.state.snapshot()
            history_length = len(self.history)
            collaborator_snapshots: List[Tuple[SupportsRollback, Any]] = [
                (c, c.snapshot()) for c in self._collaborators()
            ]
            try:
                yield
            except Exception as exc:
                self.state.restore(state_snapshot)
                del self.history[history_length:]
                for collaborator, snapshot in collaborator_snapshots:
                    collaborator.restore(snapshot)
                if isinstance(exc, LendingError):
                    logger.warning(
                        "%s by %s rolled back: %s: %s",
                        kind, ctx.caller, type(exc).__name__, exc,
                    )
                raise

    def _record(
        self,
        kind: str,
        ctx: CallContext,
        asset: AssetId,
        amount: int,
        counterparty: Optional[AccountId] = None,
        details: Optional[Dict[str, int]] = None,
    ) -> OperationRecord:
        record = OperationRecord(
            sequence=len(self.history),
            kind=kind,
            caller=ctx.caller,
            asset=asset,
            amount=amount,
            block_number=self.clock.block_number,
            counterparty=counterparty,
            details=dict(details or {}),
        )
        self.history.append(record)
        logger.info("%r", record)
        return record

    # ========================================================================
    # VALIDATION HELPERS
    # ========================================================================

    def _require_supported(self, asset: AssetId) -> None:
        if asset != NATIVE_ASSET and asset != self.token_asset:
            raise ValidationError(f"unsupported asset {asset!r}")

    def _require_token(self, asset: AssetId) -> None:
        if asset != self.token_asset:
            raise ValidationError(f"expected token {self.token_asset!r}, got {asset!r}")

    @staticmethod
    def _require_amount(amount: Any) -> None:
        if not is_amount(amount):
            raise ValidationError(f"amount must be int, got {type(amount).__name__}")
        if amount <= 0:
            raise ValidationError(f"amount must be positive, got {amount}")

    @staticmethod
    def _require_no_value(ctx: CallContext) -> None:
        if ctx.value:
            raise ValidationError("this operation does not accept native value")

    # ========================================================================
    # ASSET LEDGER INTERACTION (always after bookkeeping)
    # ========================================================================

    def _pull_tokens(self, source: AccountId, amount: int) -> None:
        if not self.state.token_ledger.pull(source, self.address, amount):
            raise ExternalTransferError(
                f"could not pull {amount} {self.token_asset} from {source}"
            )

    def _push_tokens(self, to: AccountId, amount: int) -> None:
        if not self.state.token_ledger.push(to, amount):
            raise ExternalTransferError(f"could not send {amount} {self.token_asset} to {to}")

    def _accept_native(self, source: AccountId, amount: int) -> None:
        if not self.state.native_ledger.accept(source, amount):
            raise ExternalTransferError(f"could not take {amount} native value from {source}")

    def _push_native(self, to: AccountId, amount: int) -> None:
        if amount == 0:
            return
        if not self.state.native_ledger.push(to, amount):
            raise ExternalTransferError(f"could not send {amount} native value to {to}")

    def __repr__(self) -> str:
        return (
            f"LendingPool({self.address}, token={self.token_asset}, "
            f"debt={self.state.total_debt}, index={self.state.borrow_index})"
        )
