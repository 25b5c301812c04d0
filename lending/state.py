"""
state.py - Pool-wide mutable state

GlobalState is owned by exactly one LendingPool and handed by reference to
the accrual and risk engines. It is never module-global.

References to collaborators (oracle, ledgers) are fixed at construction.
Everything else is captured by snapshot() and put back by restore(), which
is how an aborted operation leaves no visible trace.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict

from .accounts import AccountBook
from .core import (
    SCALE, DEFAULT_RESERVE_FACTOR,
    NativeLedger, PriceOracle, TokenLedger,
)


@dataclass(frozen=True, slots=True)
class StateSnapshot:
    """Immutable copy of every mutable GlobalState field."""
    total_reserves: int
    total_debt: int
    borrow_index: int
    last_accrual_block: int
    accounts: AccountBook


class GlobalState:
    """
    Single instance of pool state.

    Attributes:
        oracle: Price feed (immutable reference)
        token_ledger: Token transfer backend (immutable reference)
        native_ledger: Native value transfer backend (immutable reference)
        total_reserves: Native reserve seeded through initialize()
        total_debt: Sum of every account's borrowed amount
        reserve_factor: Stored fee share, not used by any operation yet
        borrow_index: Global interest accumulator, starts at SCALE
        last_accrual_block: Block height of the last global index update
        accounts: Per-account records
    """

    def __init__(
        self,
        oracle: PriceOracle,
        token_ledger: TokenLedger,
        native_ledger: NativeLedger,
        reserve_factor: int = DEFAULT_RESERVE_FACTOR,
        start_block: int = 0,
    ):
        self._oracle = oracle
        self._token_ledger = token_ledger
        self._native_ledger = native_ledger
        self.reserve_factor = reserve_factor
        self.total_reserves = 0
        self.total_debt = 0
        self.borrow_index = SCALE
        self.last_accrual_block = start_block
        self.accounts = AccountBook()

    @property
    def oracle(self) -> PriceOracle:
        return self._oracle

    @property
    def token_ledger(self) -> TokenLedger:
        return self._token_ledger

    @property
    def native_ledger(self) -> NativeLedger:
        return self._native_ledger

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot(
            total_reserves=self.total_reserves,
            total_debt=self.total_debt,
            borrow_index=self.borrow_index,
            last_accrual_block=self.last_accrual_block,
            accounts=self.accounts.copy(),
        )

    def restore(self, snapshot: StateSnapshot) -> None:
        self.total_reserves = snapshot.total_reserves
        self.total_debt = snapshot.total_debt
        self.borrow_index = snapshot.borrow_index
        self.last_accrual_block = snapshot.last_accrual_block
        self.accounts = snapshot.accounts.copy()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_reserves': self.total_reserves,
            'total_debt': self.total_debt,
            'reserve_factor': self.reserve_factor,
            'borrow_index': self.borrow_index,
            'last_accrual_block': self.last_accrual_block,
            'accounts': {acct: info.to_dict() for acct, info in self.accounts.items()},
        }

    def __repr__(self) -> str:
        return (
            f"GlobalState(debt={self.total_debt}, reserves={self.total_reserves}, "
            f"index={self.borrow_index}, accounts={len(self.accounts)})"
        )
