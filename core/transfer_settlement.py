"""
Transfer Settlement Model for the split protocol.

Whenever capital rights move between holders, the rewards already accrued on
the moved amount must not follow the tokens (that would be a windfall for the
recipient) and must not be lost. The settlement crystallizes them per stream
and either re-indexes them to all holders or routes them to a fixed sink,
then blends the recipient's checkpoint.
"""

import logging

from config import SettlementPolicy

logger = logging.getLogger(__name__)


class TransferSettlementProtocol:
    """
    Settlement hook run by the capital right token on every transfer.
    """

    def __init__(self, ledgers, policy=SettlementPolicy.SWEEP, sink="sweep_sink"):
        if not isinstance(policy, SettlementPolicy):
            raise ValueError("policy must be a SettlementPolicy")

        # Stream name -> RewardIndexLedger; one policy for all of them
        self.ledgers = ledgers
        self.policy = policy
        self.sink = sink

        # Stream name -> amount routed to the sink so far
        self.swept = {name: 0 for name in ledgers}

    def settle(self, sender, recipient, amount, sender_balance, recipient_balance):
        """
        Settles every stream for a transfer that is about to happen.

        Must be called before balances move. A self-transfer settles nothing.

        Args:
            sender: Address sending capital rights
            recipient: Address receiving capital rights
            amount: Amount being moved
            sender_balance: Sender balance before the move
            recipient_balance: Recipient balance before the move

        Returns:
            Dict of stream name -> crystallized amount
        """
        if sender == recipient:
            return {}
        if amount > sender_balance:
            raise ValueError("Settlement amount exceeds sender balance")

        crystallized = {}
        for name, ledger in self.ledgers.items():
            unclaimed = ledger.crystallize(sender, amount)

            # Recipient checkpoint first, so re-indexing also reaches the recipient
            ledger.receive(recipient, recipient_balance, amount)

            if self.policy is SettlementPolicy.REINDEX:
                ledger.reinject(unclaimed)
            else:
                ledger.sweep(unclaimed)
                self.swept[name] += unclaimed
            crystallized[name] = unclaimed

        logger.debug("settled transfer %s -> %s of %d: %s", sender, recipient, amount, crystallized)
        return crystallized

    def settle_mint(self, recipient, amount, recipient_balance):
        """Blends the checkpoints of a holder receiving freshly minted rights."""
        for ledger in self.ledgers.values():
            ledger.receive(recipient, recipient_balance, amount)

    def withdraw_swept(self, stream):
        """Pays out and resets the sink's accumulated amount for a stream."""
        amount = self.swept.get(stream, 0)
        self.swept[stream] = 0
        return amount
