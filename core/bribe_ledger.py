"""
Bribe Snapshot Ledger Model for the split protocol.

Third parties fund bribes for an epoch's votes. After the voting window each
voter records a snapshot of their weight and the total weight; during the
next epoch they claim their pro rata share of every bribe token funded for
the snapshotted epoch. Claims close at a fixed deadline before the following
boundary, after which whatever was not claimed can be swept to a fixed sink.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Set, Tuple

from errors import (
    AlreadyDone,
    AlreadySnapshotted,
    InvalidTiming,
    NothingToClaim,
    WrongEpoch,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BribeSnapshot:
    """Voting weight captured for one holder in one epoch."""
    holder: str
    epoch: int
    weight: int
    total_weight: int


class BribeSnapshotLedger:
    """
    Per-epoch snapshots and proportional bribe claims.
    """

    def __init__(self, clock, aggregator):
        self.clock = clock
        self.aggregator = aggregator

        # (epoch, token) -> amount funded for that epoch's voters
        self.funded: Dict[Tuple[int, str], int] = {}
        # (epoch, token) -> amount paid out to voters
        self.paid: Dict[Tuple[int, str], int] = {}
        # (holder, epoch) -> BribeSnapshot
        self.snapshots: Dict[Tuple[str, int], BribeSnapshot] = {}
        # (holder, token, epoch) already claimed
        self.claimed: Set[Tuple[str, str, int]] = set()
        # (epoch, token) already swept
        self.swept: Set[Tuple[int, str]] = set()

    def notify_bribe(self, token, amount, now):
        """
        Funds a bribe for the voters of the epoch containing `now`.

        Returns:
            The epoch credited
        """
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")
        epoch = self.clock.epoch_at(now)
        key = (epoch, token)
        self.funded[key] = self.funded.get(key, 0) + amount
        return epoch

    def _current_weight(self, holder, epoch):
        if self.aggregator.epoch != epoch:
            return 0
        return self.aggregator.holder_weight(holder)

    def snapshot_eligible(self, holder, now):
        """Read-only check that snapshot() would succeed right now."""
        if not self.clock.in_window("snapshot", now):
            return False
        epoch = self.clock.epoch_at(now)
        return (holder, epoch) not in self.snapshots and self._current_weight(holder, epoch) > 0

    def snapshot(self, holder, now):
        """
        Records the holder's vote weight for the epoch whose voting just ended.

        Raises:
            InvalidTiming: Outside the snapshot window
            AlreadySnapshotted: On a second snapshot in the same epoch
            NothingToClaim: If the holder did not vote this epoch
        """
        self.clock.require_window("snapshot", now)
        epoch = self.clock.epoch_at(now)
        if (holder, epoch) in self.snapshots:
            raise AlreadySnapshotted("holder already snapshotted", holder=holder, epoch=epoch)

        weight = self._current_weight(holder, epoch)
        if weight == 0:
            raise NothingToClaim("holder has no vote weight this epoch", holder=holder, epoch=epoch)

        snap = BribeSnapshot(holder=holder, epoch=epoch, weight=weight,
                             total_weight=self.aggregator.total_weight())
        self.snapshots[(holder, epoch)] = snap
        logger.debug("snapshot %s epoch %d: %d / %d", holder, epoch, snap.weight, snap.total_weight)
        return snap

    def claimable(self, holder, token, epoch):
        snap = self.snapshots.get((holder, epoch))
        if snap is None or (holder, token, epoch) in self.claimed:
            return 0
        return snap.weight * self.funded.get((epoch, token), 0) // snap.total_weight

    def claim(self, holder, tokens, now):
        """
        Claims the holder's share of each token for the previous epoch.

        Args:
            holder: Snapshotted voter
            tokens: Bribe tokens to claim
            now: Current timestamp

        Returns:
            Dict of token -> amount paid

        Raises:
            WrongEpoch: If there is no snapshot for the previous epoch
            InvalidTiming: After the claim deadline
            AlreadyDone: If any of the tokens was already claimed
            NothingToClaim: If every requested token pays zero
        """
        epoch = self.clock.epoch_at(now) - 1
        if (holder, epoch) not in self.snapshots:
            raise WrongEpoch("no snapshot for the claimable epoch", holder=holder, epoch=epoch)
        if now >= self.clock.bribe_claim_deadline(epoch):
            raise InvalidTiming("bribe claim window closed", epoch=epoch)

        tokens = list(dict.fromkeys(tokens))
        for token in tokens:
            if (holder, token, epoch) in self.claimed:
                raise AlreadyDone("bribe already claimed", holder=holder, token=token, epoch=epoch)

        payouts = {token: self.claimable(holder, token, epoch) for token in tokens}
        if not any(payouts.values()):
            raise NothingToClaim("no bribes for the snapshotted epoch", holder=holder, epoch=epoch)

        for token, amount in payouts.items():
            self.claimed.add((holder, token, epoch))
            key = (epoch, token)
            self.paid[key] = self.paid.get(key, 0) + amount
        return payouts

    def sweep(self, token, epoch, now):
        """
        Returns the unclaimed balance of a token for an epoch whose claim
        window has closed, for transfer to the sink.

        Raises:
            InvalidTiming: If the epoch's claim window is still open
            AlreadyDone: If the token was already swept for this epoch
        """
        if now < self.clock.bribe_claim_deadline(epoch):
            raise InvalidTiming("claim window still open", epoch=epoch)
        key = (epoch, token)
        if key in self.swept:
            raise AlreadyDone("already swept", token=token, epoch=epoch)

        amount = self.funded.get(key, 0) - self.paid.get(key, 0)
        self.swept.add(key)
        logger.info("swept %d of %s for epoch %d", amount, token, epoch)
        return amount
