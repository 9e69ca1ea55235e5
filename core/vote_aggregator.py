"""
Vote Aggregator Model for the split protocol.

Voting right holders direct the protocol's single position each epoch. Votes
are whole tokens and lock the voted balance until the epoch ends. Active
votes name a pool; passive votes follow the active ones proportionally.

At the end of the voting window the aggregate is ranked by weight (ties by
pool id) and turned into router submissions. The external router accepts a
limited number of pools per call, so the ranking is either truncated to the
top K pools or, when the router supports it, split into several buckets whose
weights are renormalized to basis points.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from constants import BPS, MAX_POOLS, VOTE_UNIT
from errors import (
    AllPassiveRejected,
    AlreadyDone,
    NonWholeUnit,
    PoolLimitReached,
    WrongEpoch,
)

logger = logging.getLogger(__name__)


@dataclass
class VoteRecord:
    """A holder's weight on one pool, or their passive weight when pool is None."""
    holder: str
    pool: object
    weight: int
    passive: bool = False


@dataclass
class Bucket:
    """One router submission: pools with weights summing to BPS."""
    pools: List[object]
    weights_bps: List[int]
    raw_weight: int  # Total vote weight carried by this bucket


@dataclass
class VoteResult:
    """Outcome of an epoch's aggregation."""
    epoch: int
    ranking: List[Tuple[object, int]]
    buckets: List[Bucket] = field(default_factory=list)
    truncated_weight: int = 0


def normalize_bps(weights):
    """
    Scales weights so they sum to exactly BPS.

    Each entry is floored and the remainder goes to the first (largest) entry,
    so the loss per bucket is zero basis points.
    """
    total = sum(weights)
    if total == 0:
        return [0 for _ in weights]
    scaled = [w * BPS // total for w in weights]
    scaled[0] += BPS - sum(scaled)
    return scaled


class VoteAggregator:
    """
    Records per-holder active and passive votes for the current epoch.
    """

    def __init__(self, clock, voting_token, max_pools=MAX_POOLS, vote_unit=VOTE_UNIT):
        self.clock = clock
        self.voting_token = voting_token
        self.max_pools = max_pools
        self.vote_unit = vote_unit

        # Epoch the records below belong to
        self.epoch = 0
        self.last_reset_epoch = 0

        # holder -> pool -> weight
        self.holder_votes: Dict[str, Dict[object, int]] = {}
        # holder -> passive weight
        self.holder_passive: Dict[str, int] = {}
        # pool -> active weight; bounded to max_pools entries
        self.pool_totals: Dict[object, int] = {}

        self.active_total = 0
        self.passive_total = 0

        # epoch -> VoteResult
        self.results: Dict[int, VoteResult] = {}

    def _sync(self, now):
        epoch = self.clock.epoch_at(now)
        if epoch > self.epoch:
            self.reset_votes_for_new_epoch(epoch)
        return epoch

    def _check_amount(self, amount):
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")
        if amount % self.vote_unit != 0:
            raise NonWholeUnit("votes must be whole units", amount=amount, unit=self.vote_unit)

    def vote(self, holder, pool, amount, now):
        """
        Places an active vote for a pool.

        Args:
            holder: Voting right holder
            pool: Pool identifier
            amount: Whole-unit voting right amount to commit
            now: Current timestamp

        Raises:
            InvalidTiming: Outside the voting window
            NonWholeUnit: If amount is not a multiple of the vote unit
            PoolLimitReached: If the pool would exceed the distinct pool cap
            InsufficientUnlocked: If the holder lacks unlocked voting rights
        """
        epoch = self._sync(now)
        self.clock.require_window("voting", now)
        self._check_amount(amount)
        if pool not in self.pool_totals and len(self.pool_totals) >= self.max_pools:
            raise PoolLimitReached("too many pools this epoch", max_pools=self.max_pools)

        self.voting_token.lock_for_vote(holder, amount, self.clock.epoch_end(epoch))

        per_pool = self.holder_votes.setdefault(holder, {})
        per_pool[pool] = per_pool.get(pool, 0) + amount
        self.pool_totals[pool] = self.pool_totals.get(pool, 0) + amount
        self.active_total += amount
        logger.debug("epoch %d: %s voted %d for %s", epoch, holder, amount, pool)

    def vote_passive(self, holder, amount, now):
        """
        Places a passive vote, spread over the active votes at epoch end.

        Raises:
            AllPassiveRejected: If no active vote exists this epoch
        """
        epoch = self._sync(now)
        self.clock.require_window("voting", now)
        self._check_amount(amount)
        if self.active_total == 0:
            raise AllPassiveRejected("no active votes to follow this epoch", epoch=epoch)

        self.voting_token.lock_for_vote(holder, amount, self.clock.epoch_end(epoch))

        self.holder_passive[holder] = self.holder_passive.get(holder, 0) + amount
        self.passive_total += amount
        logger.debug("epoch %d: %s voted %d passively", epoch, holder, amount)

    def holder_weight(self, holder):
        """Total weight (active plus passive) the holder committed this epoch."""
        active = sum(self.holder_votes.get(holder, {}).values())
        return active + self.holder_passive.get(holder, 0)

    def holder_records(self, holder):
        records = [VoteRecord(holder, pool, weight) for pool, weight in self.holder_votes.get(holder, {}).items()]
        if holder in self.holder_passive:
            records.append(VoteRecord(holder, None, self.holder_passive[holder], passive=True))
        return records

    def total_weight(self):
        return self.active_total + self.passive_total

    def ranking(self):
        """
        Returns (pool, weight) pairs sorted by weight descending, then pool id.

        Passive weight is spread pro rata over active pool totals; the division
        remainder goes to the pool with the highest active weight so the ranked
        weights sum to the total vote weight.
        """
        if not self.pool_totals:
            return []

        by_active = sorted(self.pool_totals.items(), key=lambda item: (-item[1], item[0]))
        weights = {}
        distributed = 0
        for pool, active in by_active:
            share = self.passive_total * active // self.active_total
            weights[pool] = active + share
            distributed += share
        weights[by_active[0][0]] += self.passive_total - distributed

        return sorted(weights.items(), key=lambda item: (-item[1], item[0]))

    def finalize(self, now, max_per_call, multi_bucket=False):
        """
        Turns the epoch's votes into router submissions, once per epoch.

        Args:
            now: Current timestamp, must be inside the execution window
            max_per_call: Pools the router accepts per call
            multi_bucket: Split into several buckets instead of truncating

        Returns:
            VoteResult with ranking and buckets

        Raises:
            InvalidTiming: Outside the execution window
            AlreadyDone: If this epoch was already executed
        """
        epoch = self._sync(now)
        self.clock.require_window("execution", now)
        if epoch in self.results:
            raise AlreadyDone("votes already executed", epoch=epoch)
        if max_per_call <= 0:
            raise ValueError("max_per_call must be greater than zero")

        ranking = self.ranking()
        result = VoteResult(epoch=epoch, ranking=ranking)

        if ranking:
            if len(ranking) <= max_per_call or not multi_bucket:
                kept = ranking[:max_per_call]
                result.truncated_weight = sum(w for _, w in ranking[max_per_call:])
                result.buckets = [self._bucket(kept)]
            else:
                result.buckets = [
                    self._bucket(ranking[i:i + max_per_call])
                    for i in range(0, len(ranking), max_per_call)
                ]

        self.results[epoch] = result
        logger.info("epoch %d: executed %d pools in %d bucket(s), truncated %d",
                    epoch, len(ranking), len(result.buckets), result.truncated_weight)
        return result

    def _bucket(self, entries):
        pools = [pool for pool, _ in entries]
        weights = [weight for _, weight in entries]
        return Bucket(pools=pools, weights_bps=normalize_bps(weights), raw_weight=sum(weights))

    def latest_result(self):
        """Most recent executed result, or None."""
        if not self.results:
            return None
        return self.results[max(self.results)]

    def result_for(self, epoch):
        if epoch not in self.results:
            raise WrongEpoch("no executed votes for epoch", epoch=epoch)
        return self.results[epoch]

    def reset_votes_for_new_epoch(self, epoch):
        """
        Clears all vote records and unlocks voted balances.

        Callable by anyone; a second call for the same epoch is a no-op.

        Returns:
            True if records were cleared
        """
        if epoch <= self.last_reset_epoch:
            return False

        voters = set(self.holder_votes) | set(self.holder_passive)
        for holder in voters:
            self.voting_token.release_vote_lock(holder)

        self.holder_votes = {}
        self.holder_passive = {}
        self.pool_totals = {}
        self.active_total = 0
        self.passive_total = 0
        self.last_reset_epoch = epoch
        self.epoch = epoch
        logger.info("votes reset for epoch %d (%d voters unlocked)", epoch, len(voters))
        return True
