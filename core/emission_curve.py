"""
Emission Curve Model for the split protocol.

Per-period mint of the emission token follows a logistic curve in the
supply's progress toward the hard cap, scaled by how close the staking
utilization is to one half:

    emission = cap * rate * P * (1 - P) * 4 * S * (1 - S)

where P = supply / cap and S = locked voting supply / circulating supply.
Periods are processed strictly in order, each with its own snapshot of P and
S, and a single call never processes more than a caller-supplied number of
periods. Replaying an already processed period returns the stored result.
"""

import logging
from typing import Dict, Tuple

import numpy as np

from constants import DECIMAL_PRECISION

logger = logging.getLogger(__name__)


def emission_amount(supply: int, cap: int, rate: int, staking_ratio: int) -> int:
    """
    Mint amount for one period.

    Args:
        supply: Emission token supply at the start of the period
        cap: Hard cap on supply
        rate: Logistic growth rate, scaled by 1e18
        staking_ratio: Utilization S, scaled by 1e18 and clamped to [0, 1]

    Returns:
        Amount to mint, never pushing supply past the cap
    """
    if supply >= cap:
        return 0
    ratio = min(max(staking_ratio, 0), DECIMAL_PRECISION)

    progress = supply * DECIMAL_PRECISION // cap
    utilization = 4 * ratio * (DECIMAL_PRECISION - ratio) // DECIMAL_PRECISION

    amount = cap * rate // DECIMAL_PRECISION
    amount = amount * progress // DECIMAL_PRECISION
    amount = amount * (DECIMAL_PRECISION - progress) // DECIMAL_PRECISION
    amount = amount * utilization // DECIMAL_PRECISION
    return min(amount, cap - supply)


def allocate_to_pools(amount, ranking):
    """
    Splits an emission amount across pools pro rata to ranked vote weight.

    The division remainder goes to the top-ranked pool.

    Args:
        amount: Amount to allocate
        ranking: List of (pool, weight) sorted by weight descending

    Returns:
        Dict of pool -> amount; empty if there is nothing to allocate against
    """
    total = sum(weight for _, weight in ranking)
    if amount <= 0 or total == 0:
        return {}
    allocation = {pool: amount * weight // total for pool, weight in ranking}
    allocation[ranking[0][0]] += amount - sum(allocation.values())
    return allocation


class EmissionCurve:
    """
    Sequential, bounded processing of emission periods.
    """

    def __init__(self, cap, initial_supply, rate, initial_ratio=DECIMAL_PRECISION // 2):
        if not (0 < initial_supply < cap):
            raise ValueError("Initial supply must be positive and below the cap")
        self.cap = cap
        self.rate = rate
        self.supply = initial_supply

        # Next period that has not been processed yet
        self.next_period = 0

        # period -> staking ratio recorded for a period not processed yet
        self.ratio_snapshots: Dict[int, int] = {}

        # Ratio used by the last processed period, carried into periods without a snapshot
        self.last_ratio = initial_ratio

        # period -> (progress, ratio, amount) used when the period was processed
        self.history: Dict[int, Tuple[int, int, int]] = {}

    def record_staking_ratio(self, period, ratio):
        """Stores the staking ratio observed in a period; later updates win."""
        if not (0 <= ratio <= DECIMAL_PRECISION):
            raise ValueError("Staking ratio must be within [0, 1e18]")
        if period < self.next_period:
            raise ValueError(f"Period {period} has already been processed")
        self.ratio_snapshots[period] = ratio

    def ratio_for(self, period):
        """
        Staking ratio a period uses: the stored one once processed, otherwise
        the latest pending snapshot at or before it.

        Snapshots are dropped as their period is processed, so only pending
        periods are ever scanned.
        """
        if period in self.history:
            return self.history[period][1]
        known = [p for p in self.ratio_snapshots if p <= period]
        return self.ratio_snapshots[max(known)] if known else self.last_ratio

    def emission(self, period):
        """Returns the stored mint for a processed period."""
        if period not in self.history:
            raise ValueError(f"Period {period} has not been processed")
        return self.history[period][2]

    def backlog(self, current_period):
        """Completed periods still waiting to be processed."""
        return max(current_period - self.next_period, 0)

    def process(self, current_period, max_steps):
        """
        Processes completed periods up to (excluding) current_period.

        Args:
            current_period: Period in progress; earlier ones are complete
            max_steps: Maximum periods to process in this call

        Returns:
            Tuple (list of (period, amount) processed, backlog_empty)
        """
        if max_steps <= 0:
            raise ValueError("max_steps must be greater than zero")

        processed = []
        while self.next_period < current_period and len(processed) < max_steps:
            period = self.next_period
            ratio = self.ratio_snapshots.pop(period, self.last_ratio)
            self.last_ratio = ratio
            progress = self.supply * DECIMAL_PRECISION // self.cap
            amount = emission_amount(self.supply, self.cap, self.rate, ratio)

            self.supply += amount
            self.history[period] = (progress, ratio, amount)
            self.next_period += 1
            processed.append((period, amount))

        backlog_empty = self.next_period >= current_period
        if processed:
            logger.info("processed emission periods %d..%d, minted %d, backlog empty: %s",
                        processed[0][0], processed[-1][0], sum(a for _, a in processed), backlog_empty)
        return processed, backlog_empty

    def project(self, periods, staking_ratio):
        """
        Projects supply over future periods at a constant staking ratio
        without changing state.

        Returns:
            numpy array of supply values in whole tokens, one per period
        """
        supply = self.supply
        path = np.zeros(periods)
        for i in range(periods):
            supply += emission_amount(supply, self.cap, self.rate, staking_ratio)
            path[i] = supply / DECIMAL_PRECISION
        return path
