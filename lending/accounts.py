"""
accounts.py - Per-account lending records

UserInfo is an immutable snapshot of one account's position. Each mutation
creates a NEW instance (value semantics) which AccountBook stores in place of
the old one, so a copy of the book is a complete, independent snapshot.

AccountBook does no validation of its own: LendingPool is responsible for
keeping the invariants (debt never negative, total debt equals the sum of
borrowed amounts).
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, Iterator, List, Tuple

from .core import AccountId


@dataclass(frozen=True, slots=True)
class UserInfo:
    """
    Lending position of a single account.

    Attributes:
        supplied: Native collateral, in native units.
        supplied_tokens: Tokens supplied to the pool, in token units. Kept
            separate from native collateral because the two assets carry
            independent prices.
        borrowed: Outstanding debt in token units, interest included.
        last_borrow_index: Borrow index when interest was last applied.
        last_block_number: Block height of the account's last index update.
    """
    supplied: int = 0
    supplied_tokens: int = 0
    borrowed: int = 0
    last_borrow_index: int = 0
    last_block_number: int = 0

    def update(self, **changes) -> UserInfo:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    @property
    def is_active(self) -> bool:
        return self.supplied > 0 or self.supplied_tokens > 0 or self.borrowed > 0

    def to_dict(self) -> Dict[str, int]:
        return {
            'supplied': self.supplied,
            'supplied_tokens': self.supplied_tokens,
            'borrowed': self.borrowed,
            'last_borrow_index': self.last_borrow_index,
            'last_block_number': self.last_block_number,
        }


EMPTY_ACCOUNT = UserInfo()


class AccountBook:
    """
    Mapping from account id to UserInfo.

    Accounts are created on first access through get() and are never
    deleted, even when every balance returns to zero.
    """

    def __init__(self, accounts: Dict[AccountId, UserInfo] | None = None):
        self._accounts: Dict[AccountId, UserInfo] = dict(accounts or {})

    def get(self, account: AccountId) -> UserInfo:
        """Return the account record, creating a zero record on first access."""
        info = self._accounts.get(account)
        if info is None:
            info = EMPTY_ACCOUNT
            self._accounts[account] = info
        return info

    def peek(self, account: AccountId) -> UserInfo:
        """Return the account record without creating it."""
        return self._accounts.get(account, EMPTY_ACCOUNT)

    def put(self, account: AccountId, info: UserInfo) -> None:
        self._accounts[account] = info

    def accounts(self) -> List[AccountId]:
        return sorted(self._accounts)

    def items(self) -> List[Tuple[AccountId, UserInfo]]:
        return sorted(self._accounts.items())

    def total_borrowed(self) -> int:
        # Sorted for a deterministic accumulation order.
        return sum(info.borrowed for _, info in self.items())

    def copy(self) -> AccountBook:
        # UserInfo is frozen, so a shallow copy of the dict is independent.
        return AccountBook(self._accounts)

    def __contains__(self, account: object) -> bool:
        return account in self._accounts

    def __len__(self) -> int:
        return len(self._accounts)

    def __iter__(self) -> Iterator[AccountId]:
        return iter(self.accounts())

    def __repr__(self) -> str:
        return f"AccountBook({len(self._accounts)} accounts)"
