"""
price_oracle.py - In-memory price feeds for the lending pool

Provides pricing sources that satisfy the PriceOracle protocol.

Classes:
- StaticPriceOracle: block-independent prices, updated explicitly
- BlockSeriesPriceOracle: price history keyed by block height, read at the
  current height of a BlockClock

All prices are fixed-point integers (SCALE == 1.0) in a common unit. The
native asset is keyed by NATIVE_ASSET.
"""

from __future__ import annotations
from bisect import bisect_right
import logging
from typing import Dict, List, Optional, Tuple

from .core import AssetId, BlockClock, is_amount

logger = logging.getLogger(__name__)


def _check_price(asset: AssetId, price: int) -> None:
    if not is_amount(price):
        raise ValueError(f"price for {asset!r} must be int, got {type(price).__name__}")
    if price < 0:
        raise ValueError(f"price for {asset!r} cannot be negative, got {price}")


class StaticPriceOracle:
    """
    Pricing source with static prices.

    Prices stay constant until update_price() is called. Useful for tests
    and for driving scenarios by hand.
    """

    def __init__(self, prices: Optional[Dict[AssetId, int]] = None):
        self.prices: Dict[AssetId, int] = {}
        for asset, price in (prices or {}).items():
            _check_price(asset, price)
            self.prices[asset] = price

    def get_price(self, asset: AssetId) -> Optional[int]:
        return self.prices.get(asset)

    def update_price(self, asset: AssetId, price: int) -> None:
        _check_price(asset, price)
        logger.debug("price %r: %s -> %d", asset, self.prices.get(asset), price)
        self.prices[asset] = price

    def update_prices(self, prices: Dict[AssetId, int]) -> None:
        for asset, price in prices.items():
            self.update_price(asset, price)

    def __repr__(self):
        return f"StaticPriceOracle({len(self.prices)} prices)"


class BlockSeriesPriceOracle:
    """
    Pricing source with block-varying prices.

    Stores price observations per asset and answers with the most recent
    observation at or before the clock's current block.

    Example:
        clock = BlockClock()
        oracle = BlockSeriesPriceOracle(clock, {
            NATIVE_ASSET: [(0, 10**18), (100, 8 * 10**17)],
            "TOKEN": [(0, 10**18)],
        })
    """

    def __init__(
        self,
        clock: BlockClock,
        price_paths: Optional[Dict[AssetId, List[Tuple[int, int]]]] = None,
    ):
        self.clock = clock
        self.price_history: Dict[AssetId, List[Tuple[int, int]]] = {}

        if price_paths:
            for asset, path in price_paths.items():
                for block, price in path:
                    self.add_price(asset, block, price)

    def add_price(self, asset: AssetId, block_number: int, price: int) -> None:
        _check_price(asset, price)
        history = self.price_history.setdefault(asset, [])
        history.append((block_number, price))
        history.sort(key=lambda obs: obs[0])

    def get_price_at(self, asset: AssetId, block_number: int) -> Optional[int]:
        """
        Price at or before block_number, or None if there is none yet.

        Uses binary search over the sorted observations.
        """
        history = self.price_history.get(asset)
        if not history:
            return None
        blocks = [block for block, _ in history]
        idx = bisect_right(blocks, block_number)
        if idx == 0:
            return None
        return history[idx - 1][1]

    def get_price(self, asset: AssetId) -> Optional[int]:
        return self.get_price_at(asset, self.clock.block_number)

    def __repr__(self):
        total_observations = sum(len(history) for history in self.price_history.values())
        return (
            f"BlockSeriesPriceOracle({len(self.price_history)} assets, "
            f"{total_observations} observations)"
        )
