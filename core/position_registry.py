"""
Vote-Escrow Position Model for the split protocol.

The vote-escrow registry is external; VotingEscrowRegistry is a minimal
in-memory stand-in exposing the primitives the protocol relies on: lock,
merge, split, the "permanent and not voted this cycle" predicate, and rebase
growth claims.

PositionCustody holds the protocol's canonical position. Positions deposited
later wait in a pending set and are merged into the canonical one lazily,
no earlier than the next timestamp and only while neither side has voted this
cycle, which is the registry's merge precondition.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class Position:
    """A locked vote-escrow position."""
    id: int
    owner: str
    principal: int                # Locked amount in base units
    permanent: bool = True        # Permanently locked, never decays
    rebase_per_epoch: int = 0     # Growth claimable each epoch
    last_voted_epoch: int = -1    # Epoch in which the position last voted
    unclaimed_rebase: int = 0     # Growth accrued but not yet claimed


class VotingEscrowRegistry:
    """
    In-memory stand-in for the external vote-escrow registry.
    """

    def __init__(self):
        self.positions: Dict[int, Position] = {}
        self.next_position_id = 1

    def lock(self, owner, principal, permanent=True, rebase_per_epoch=0):
        """Creates a new locked position and returns its id."""
        if principal <= 0:
            raise ValueError("Principal must be greater than zero")
        position_id = self.next_position_id
        self.next_position_id += 1
        self.positions[position_id] = Position(
            id=position_id,
            owner=owner,
            principal=principal,
            permanent=permanent,
            rebase_per_epoch=rebase_per_epoch,
        )
        return position_id

    def get(self, position_id) -> Position:
        if position_id not in self.positions:
            raise ValueError(f"Position {position_id} doesn't exist")
        return self.positions[position_id]

    def transfer(self, position_id, sender, recipient):
        position = self.get(position_id)
        if position.owner != sender:
            raise ValueError(f"{sender} does not own position {position_id}")
        position.owner = recipient

    def is_permanent_and_unvoted(self, position_id, epoch):
        position = self.get(position_id)
        return position.permanent and position.last_voted_epoch < epoch

    def merge(self, from_id, to_id, epoch):
        """Merges one position into another; both must be unvoted this cycle."""
        source = self.get(from_id)
        target = self.get(to_id)
        if source.owner != target.owner:
            raise ValueError("Cannot merge positions with different owners")
        if not (self.is_permanent_and_unvoted(from_id, epoch) and self.is_permanent_and_unvoted(to_id, epoch)):
            raise ValueError("Cannot merge a position that voted this cycle")

        target.principal += source.principal
        target.rebase_per_epoch += source.rebase_per_epoch
        target.unclaimed_rebase += source.unclaimed_rebase
        del self.positions[from_id]

    def split(self, position_id, amounts):
        """
        Splits a position into several; the first amount stays in the original.

        Returns:
            List of position ids, the original first
        """
        position = self.get(position_id)
        if sum(amounts) != position.principal or any(a <= 0 for a in amounts):
            raise ValueError("Split amounts must be positive and sum to the principal")

        ids = [position_id]
        position.principal = amounts[0]
        for amount in amounts[1:]:
            new_id = self.lock(position.owner, amount, position.permanent)
            self.positions[new_id].last_voted_epoch = position.last_voted_epoch
            ids.append(new_id)
        return ids

    def record_vote(self, position_id, epoch):
        self.get(position_id).last_voted_epoch = epoch

    def accrue_rebase(self, epochs=1):
        """Accrues rebase growth on every position, as the external distributor would."""
        for position in self.positions.values():
            position.unclaimed_rebase += position.rebase_per_epoch * epochs

    def claim_rebase_growth(self, position_id):
        """Compounds accrued rebase growth into the position and returns it."""
        position = self.get(position_id)
        growth = position.unclaimed_rebase
        position.unclaimed_rebase = 0
        position.principal += growth
        return growth


@dataclass
class PendingPosition:
    position_id: int
    deposited_at: int


@dataclass
class PositionCustody:
    """
    The protocol's custodied positions: one canonical plus a pending set.
    """
    registry: VotingEscrowRegistry
    holder: str = "protocol"
    canonical_id: Optional[int] = None
    pending: List[PendingPosition] = field(default_factory=list)

    def accept(self, position_id, depositor, now):
        """
        Takes custody of a deposited position.

        Returns:
            The position's principal
        """
        position = self.registry.get(position_id)
        if position.owner != depositor:
            raise ValueError(f"{depositor} does not own position {position_id}")
        if not position.permanent:
            raise ValueError("Only permanently locked positions can be deposited")

        self.registry.transfer(position_id, depositor, self.holder)
        if self.canonical_id is None:
            self.canonical_id = position_id
        else:
            self.pending.append(PendingPosition(position_id, now))
        return position.principal

    def settle(self, now, epoch):
        """
        Merges pending positions whose deposit is strictly older than `now`.

        Idempotent: positions that cannot merge yet stay pending.

        Returns:
            Number of positions merged
        """
        if self.canonical_id is None or not self.pending:
            return 0

        merged = 0
        still_pending = []
        for entry in self.pending:
            ready = (
                entry.deposited_at < now
                and self.registry.is_permanent_and_unvoted(entry.position_id, epoch)
                and self.registry.is_permanent_and_unvoted(self.canonical_id, epoch)
            )
            if ready:
                self.registry.merge(entry.position_id, self.canonical_id, epoch)
                merged += 1
            else:
                still_pending.append(entry)
        self.pending = still_pending

        if merged:
            logger.info("merged %d pending positions into %d", merged, self.canonical_id)
        return merged

    def total_principal(self):
        total = 0
        if self.canonical_id is not None:
            total += self.registry.get(self.canonical_id).principal
        for entry in self.pending:
            total += self.registry.get(entry.position_id).principal
        return total

    def position_ids(self):
        ids = [] if self.canonical_id is None else [self.canonical_id]
        return ids + [entry.position_id for entry in self.pending]
