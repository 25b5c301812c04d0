"""
asset_ledger.py - In-memory value transfer backend

InMemoryAssetLedger keeps integer balances of ONE asset per wallet and moves
them between wallets. It satisfies both the TokenLedger and the NativeLedger
protocols, so a pool is usually wired to two instances: one for the token,
one for the native asset.

Key responsibilities:
    - Double-entry balances: every transfer debits one wallet and credits
      another; issuance comes out of SYSTEM_WALLET, which may go negative
    - Allowances: pull() only succeeds up to what the source approved for
      the custodian (the pool's own account)
    - Refusal, not exceptions: a transfer that cannot happen returns False
    - Receive hooks: callbacks fired after a wallet is credited, the way a
      contract account gets control back when it receives value
    - Always logs: every applied transfer is appended to transfer_log
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass
import logging
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Set, Tuple

from .core import AccountId, is_amount

logger = logging.getLogger(__name__)


# Reserved wallet used for issuance. Exempt from balance checks.
SYSTEM_WALLET = "system"

# Transfer kinds
TRANSFER_ISSUE = "issue"
TRANSFER_PULL = "pull"
TRANSFER_PUSH = "push"
TRANSFER_ACCEPT = "accept"
TRANSFER_SEND = "send"
TRANSFER_FEE = "fee"

ReceiveHook = Callable[['InMemoryAssetLedger', 'Transfer'], None]


@dataclass(frozen=True, slots=True)
class Transfer:
    """
    A single applied movement of value between two wallets.

    Attributes:
        sequence: Monotonic position in the ledger's transfer log
        kind: How the transfer was initiated (issue, pull, push, ...)
        source: Wallet debited
        dest: Wallet credited
        amount: Positive integer quantity
    """
    sequence: int
    kind: str
    source: AccountId
    dest: AccountId
    amount: int

    def __repr__(self) -> str:
        return f"Transfer(#{self.sequence} {self.kind} {self.amount}: {self.source}->{self.dest})"


@dataclass(frozen=True, slots=True)
class LedgerSnapshot:
    balances: Tuple[Tuple[AccountId, int], ...]
    allowances: Tuple[Tuple[Tuple[AccountId, AccountId], int], ...]
    wallets: FrozenSet[AccountId]
    log_length: int
    next_sequence: int


class InMemoryAssetLedger:
    """
    Single-asset ledger with allowances and an audit trail.

    Thread Safety:
        Not thread-safe on its own; the pool's lock serializes access.

    Example:
        token = InMemoryAssetLedger("TOKEN", custodian="pool")
        token.issue("alice", 1_000)
        token.approve("alice", "pool", 500)
        token.pull("alice", "pool", 500)   # True
        token.push("bob", 200)             # True, from the pool
    """

    def __init__(self, symbol: str, custodian: AccountId, transfer_fee_bps: int = 0):
        """
        Create a ledger.

        Args:
            symbol: Asset symbol (token identity)
            custodian: Account whose balance push() spends and to which
                pulled or accepted value is credited (the pool)
            transfer_fee_bps: Fee withheld from pulled amounts, in basis
                points, for modelling fee-on-transfer tokens (default: 0)
        """
        if not symbol or not symbol.strip():
            raise ValueError("symbol cannot be empty")
        if not custodian or not custodian.strip():
            raise ValueError("custodian cannot be empty")
        if custodian == SYSTEM_WALLET:
            raise ValueError(f"custodian cannot be the reserved wallet {SYSTEM_WALLET!r}")
        if not is_amount(transfer_fee_bps) or not 0 <= transfer_fee_bps < 10_000:
            raise ValueError(f"transfer_fee_bps must be in [0, 10000), got {transfer_fee_bps!r}")

        self.symbol = symbol
        self.custodian = custodian
        self.transfer_fee_bps = transfer_fee_bps
        self.balances: Dict[AccountId, int] = defaultdict(int)
        self.allowances: Dict[Tuple[AccountId, AccountId], int] = {}
        self.registered_wallets: Set[AccountId] = {SYSTEM_WALLET, custodian}
        self.transfer_log: List[Transfer] = []
        self._next_sequence = 0
        self._receive_hooks: Dict[AccountId, ReceiveHook] = {}

    # ========================================================================
    # READ-ONLY
    # ========================================================================

    def balance_of(self, account: AccountId) -> int:
        return self.balances.get(account, 0)

    def allowance(self, owner: AccountId, spender: AccountId) -> int:
        return self.allowances.get((owner, spender), 0)

    def list_wallets(self) -> Set[AccountId]:
        return set(self.registered_wallets)

    def total_supply(self) -> int:
        """Units held outside SYSTEM_WALLET, i.e. everything issued."""
        return sum(
            qty for wallet, qty in sorted(self.balances.items()) if wallet != SYSTEM_WALLET
        )

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Check the double-entry invariant: all balances, system included, sum to zero.

        Returns:
            Dict with 'valid', 'total_supply' and 'net' (the raw sum).
        """
        net = sum(qty for _, qty in sorted(self.balances.items()))
        return {
            'valid': net == 0,
            'total_supply': self.total_supply(),
            'net': net,
        }

    # ========================================================================
    # REGISTRATION AND HOOKS
    # ========================================================================

    def register_wallet(self, wallet_id: AccountId) -> AccountId:
        if not wallet_id or not wallet_id.strip():
            raise ValueError("wallet_id cannot be empty")
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        return wallet_id

    def register_receive_hook(self, account: AccountId, hook: ReceiveHook) -> None:
        """
        Call hook(ledger, transfer) every time account is credited.

        Exceptions raised by the hook propagate to whoever initiated the
        transfer.
        """
        self._receive_hooks[account] = hook

    def remove_receive_hook(self, account: AccountId) -> None:
        self._receive_hooks.pop(account, None)

    # ========================================================================
    # TRANSFERS (Mutating)
    # ========================================================================

    def issue(self, to: AccountId, amount: int) -> Transfer:
        """Create units out of SYSTEM_WALLET. Raises on bad input."""
        if not is_amount(amount) or amount <= 0:
            raise ValueError(f"issue amount must be a positive int, got {amount!r}")
        return self._apply(TRANSFER_ISSUE, SYSTEM_WALLET, to, amount)

    def approve(self, owner: AccountId, spender: AccountId, amount: int) -> None:
        """Authorize spender to pull up to amount from owner (replaces any prior value)."""
        if not is_amount(amount) or amount < 0:
            raise ValueError(f"allowance must be a non-negative int, got {amount!r}")
        self.allowances[(owner, spender)] = amount

    def send(self, source: AccountId, dest: AccountId, amount: int) -> bool:
        """Plain wallet-to-wallet transfer initiated by source."""
        if not self._can_debit(source, amount) or source == dest:
            return self._refuse(TRANSFER_SEND, source, dest, amount)
        self._apply(TRANSFER_SEND, source, dest, amount)
        return True

    def pull(self, source: AccountId, dest: AccountId, amount: int) -> bool:
        """
        Move pre-authorized funds from source to dest on the custodian's behalf.

        Consumes allowance[source, custodian]. When a transfer fee is set,
        dest receives amount minus the fee and the fee returns to
        SYSTEM_WALLET.
        """
        if not self._can_debit(source, amount) or source == dest:
            return self._refuse(TRANSFER_PULL, source, dest, amount)
        allowed = self.allowance(source, self.custodian)
        if allowed < amount:
            return self._refuse(TRANSFER_PULL, source, dest, amount)

        self.allowances[(source, self.custodian)] = allowed - amount
        fee = amount * self.transfer_fee_bps // 10_000
        if fee:
            self._apply(TRANSFER_FEE, source, SYSTEM_WALLET, fee)
        self._apply(TRANSFER_PULL, source, dest, amount - fee)
        return True

    def push(self, to: AccountId, amount: int) -> bool:
        """Send amount from the custodian to an account."""
        if not self._can_debit(self.custodian, amount) or to == self.custodian:
            return self._refuse(TRANSFER_PUSH, self.custodian, to, amount)
        self._apply(TRANSFER_PUSH, self.custodian, to, amount)
        return True

    def accept(self, source: AccountId, amount: int) -> bool:
        """Take value attached to a call from source into the custodian."""
        if not self._can_debit(source, amount) or source == self.custodian:
            return self._refuse(TRANSFER_ACCEPT, source, self.custodian, amount)
        self._apply(TRANSFER_ACCEPT, source, self.custodian, amount)
        return True

    def _can_debit(self, wallet: AccountId, amount: Any) -> bool:
        if not is_amount(amount) or amount <= 0:
            return False
        return self.balance_of(wallet) >= amount

    def _refuse(self, kind: str, source: AccountId, dest: AccountId, amount: Any) -> bool:
        logger.warning("%s %s refused: %r %s -> %s", self.symbol, kind, amount, source, dest)
        return False

    def _apply(self, kind: str, source: AccountId, dest: AccountId, amount: int) -> Transfer:
        transfer = Transfer(
            sequence=self._next_sequence,
            kind=kind,
            source=source,
            dest=dest,
            amount=amount,
        )
        self._next_sequence += 1
        self.balances[source] -= amount
        self.balances[dest] += amount
        self.registered_wallets.add(source)
        self.registered_wallets.add(dest)
        self.transfer_log.append(transfer)
        logger.debug("%s %r", self.symbol, transfer)

        hook = self._receive_hooks.get(dest)
        if hook is not None:
            hook(self, transfer)
        return transfer

    # ========================================================================
    # ROLLBACK
    # ========================================================================

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            balances=tuple(self.balances.items()),
            allowances=tuple(self.allowances.items()),
            wallets=frozenset(self.registered_wallets),
            log_length=len(self.transfer_log),
            next_sequence=self._next_sequence,
        )

    def restore(self, snapshot: LedgerSnapshot) -> None:
        """Undo every transfer, approval and wallet registration made after snapshot was taken."""
        self.balances = defaultdict(int, snapshot.balances)
        self.allowances = dict(snapshot.allowances)
        self.registered_wallets = set(snapshot.wallets)
        del self.transfer_log[snapshot.log_length:]
        self._next_sequence = snapshot.next_sequence

    def __repr__(self) -> str:
        return (
            f"InMemoryAssetLedger({self.symbol}, custodian={self.custodian}, "
            f"{len(self.registered_wallets)} wallets, {len(self.transfer_log)} transfers)"
        )
