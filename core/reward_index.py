"""
Reward Index Ledger Model for the split protocol.

Each reward stream (trading fees, emission tokens, rebase growth) is tracked
with a monotonic global index and a per-holder checkpoint. Distributing adds
amount * SCALE / totalSupply to the index, and a holder's claim is
balance * (index - checkpoint) / SCALE. Both are O(1) no matter how many
holders exist, and holders can claim in any order.

A holder's checkpoint is set to the current index the first time they receive
a balance, never to zero, so nobody earns rewards accrued before they held.
"""

import logging

from constants import SCALE

logger = logging.getLogger(__name__)


class RewardIndexLedger:
    """
    Index-based reward accounting for one stream.
    """

    def __init__(self, name, token, algorithmic=False):
        self.name = name

        # Capital right token, read for balances and total supply
        self.token = token

        # True for algorithmically minted streams, False for externally funded
        self.algorithmic = algorithmic

        # Global accumulator, scaled by SCALE; never decreases
        self.global_index = 0

        # Holder -> index value at last claim or balance change
        self.checkpoints = {}

        # Amount received while total supply was zero, applied on next distribution
        self.queued = 0

        # Division remainder (numerator units) carried into the next distribution
        self.index_error = 0

        # Totals, for accounting checks
        self.total_distributed = 0
        self.total_claimed = 0
        self.total_reinjected = 0
        self.total_swept = 0

    def checkpoint(self, holder):
        """Returns the holder's checkpoint, defaulting to the current index."""
        return self.checkpoints.get(holder, self.global_index)

    def distribute(self, amount):
        """
        Adds rewards to the stream.

        If the token has no supply yet the amount is queued instead of dropped
        and is applied together with the next distribution.

        Args:
            amount: Reward amount in base units

        Returns:
            True if the index moved, False if the amount was queued
        """
        if amount < 0:
            raise ValueError("Amount must not be negative")

        self.total_distributed += amount
        return self._apply(amount)

    def _apply(self, amount):
        supply = self.token.total_supply
        if supply == 0:
            self.queued += amount
            logger.debug("%s: queued %d with zero supply", self.name, amount)
            return False

        pending = amount + self.queued
        if pending == 0:
            return False

        numerator = pending * SCALE + self.index_error
        increment = numerator // supply
        self.index_error = numerator - increment * supply
        self.queued = 0
        self.global_index += increment
        return True

    def claimable(self, holder):
        """Returns the rewards the holder could claim right now."""
        balance = self.token.balance_of(holder)
        if balance == 0:
            return 0
        return balance * (self.global_index - self.checkpoint(holder)) // SCALE

    def claim(self, holder):
        """
        Resets the holder's checkpoint and returns the amount owed.

        The caller is responsible for paying the returned amount out.
        """
        amount = self.claimable(holder)
        self.checkpoints[holder] = self.global_index
        self.total_claimed += amount
        if amount:
            logger.debug("%s: %s claimed %d", self.name, holder, amount)
        return amount

    def crystallize(self, holder, amount):
        """
        Returns the unclaimed rewards carried by `amount` of the holder's balance.

        The holder's checkpoint is left as is so the rest of the balance keeps
        accruing from the same point.
        """
        return amount * (self.global_index - self.checkpoint(holder)) // SCALE

    def receive(self, holder, balance_before, amount):
        """
        Re-derives the checkpoint of a holder whose balance grows by `amount`.

        A fresh holder starts at the current index. An existing holder gets the
        balance-weighted blend of their checkpoint and the current index, rounded
        up so repeated small transfers can never pull the checkpoint down.
        """
        if balance_before == 0:
            self.checkpoints[holder] = self.global_index
            return

        weighted = balance_before * self.checkpoint(holder) + amount * self.global_index
        balance_after = balance_before + amount
        self.checkpoints[holder] = -(-weighted // balance_after)

    def reinject(self, amount):
        """Feeds crystallized rewards back into the index for all current holders."""
        if amount <= 0:
            return
        self.total_reinjected += amount
        self._apply(amount)

    def sweep(self, amount):
        """Records crystallized rewards routed out of the stream to the sink."""
        if amount <= 0:
            return
        self.total_swept += amount

    def outstanding(self, holders):
        """Sums claimable rewards over the given holders."""
        return sum(self.claimable(h) for h in holders)
