"""
Rights Token Model for the split protocol.

A deposited vote-escrow position is represented by two fungible tokens: the
voting right and the capital right. Both are plain balance ledgers that only
the protocol may mint or burn. Part of a balance can be locked for a purpose
(an epoch vote, a liquidation vote) and locked amounts cannot be transferred.
"""

import logging

from errors import InsufficientUnlocked, Unauthorized

logger = logging.getLogger(__name__)


class RightToken:
    """
    Balance ledger with issuer-only mint/burn and purpose-keyed locks.
    """

    def __init__(self, name):
        self.name = name

        # Total token supply
        self.total_supply = 0

        # Mapping of addresses to token balances
        self.balances = {}

        # Mapping of addresses to {purpose: locked amount}
        self.locks = {}

        # Accounts allowed to mint and burn
        self.issuers = set()

    def add_issuer(self, issuer):
        self.issuers.add(issuer)

    def balance_of(self, account):
        """Returns the token balance of the given account."""
        return self.balances.get(account, 0)

    def locked_of(self, account, purpose=None):
        """Returns the locked balance, for one purpose or summed over all."""
        held = self.locks.get(account, {})
        if purpose is not None:
            return held.get(purpose, 0)
        return sum(held.values())

    def unlocked_balance_of(self, account):
        return self.balance_of(account) - self.locked_of(account)

    def lock(self, account, amount, purpose):
        """
        Locks part of an account's balance.

        Raises:
            InsufficientUnlocked: If the unlocked balance is smaller than amount
        """
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")
        available = self.unlocked_balance_of(account)
        if available < amount:
            raise InsufficientUnlocked(f"cannot lock {self.name}", available=available, requested=amount)

        held = self.locks.setdefault(account, {})
        held[purpose] = held.get(purpose, 0) + amount
        logger.debug("%s: locked %d of %s for %s", self.name, amount, account, purpose)

    def unlock(self, account, purpose):
        """Releases everything locked for a purpose and returns the amount."""
        held = self.locks.get(account)
        if not held or purpose not in held:
            return 0
        amount = held.pop(purpose)
        if not held:
            del self.locks[account]
        logger.debug("%s: unlocked %d of %s from %s", self.name, amount, account, purpose)
        return amount

    def transfer(self, sender, recipient, amount):
        """
        Transfers unlocked tokens from sender to recipient.

        Args:
            sender: Address sending the tokens
            recipient: Address receiving the tokens
            amount: Amount of tokens to transfer

        Returns:
            True if successful
        """
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")

        available = self.unlocked_balance_of(sender)
        if available < amount:
            raise InsufficientUnlocked(f"cannot transfer {self.name}", available=available, requested=amount)

        if sender == recipient:
            return True

        self._before_transfer(sender, recipient, amount)

        # Update balances
        self.balances[sender] = self.balance_of(sender) - amount
        self.balances[recipient] = self.balance_of(recipient) + amount

        return True

    def mint(self, issuer, recipient, amount):
        """
        Mints new tokens to the recipient account.
        Only callable by authorized issuers.
        """
        if issuer not in self.issuers:
            raise Unauthorized(f"{issuer} may not mint {self.name}")
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")

        self._before_mint(recipient, amount)

        self.balances[recipient] = self.balance_of(recipient) + amount
        self.total_supply += amount
        logger.debug("%s: minted %d to %s", self.name, amount, recipient)

        return True

    def burn(self, issuer, from_account, amount):
        """
        Burns unlocked tokens from the given account.
        Only callable by authorized issuers.
        """
        if issuer not in self.issuers:
            raise Unauthorized(f"{issuer} may not burn {self.name}")
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")

        available = self.unlocked_balance_of(from_account)
        if available < amount:
            raise InsufficientUnlocked(f"cannot burn {self.name}", available=available, requested=amount)

        self.balances[from_account] = self.balance_of(from_account) - amount
        self.total_supply -= amount
        logger.debug("%s: burned %d from %s", self.name, amount, from_account)

        return True

    def holders(self):
        return [account for account, balance in self.balances.items() if balance > 0]

    def _before_transfer(self, sender, recipient, amount):
        pass

    def _before_mint(self, recipient, amount):
        pass


class CapitalRight(RightToken):
    """
    Capital right: entitles the holder to every reward stream.

    Every balance increase goes through the settlement protocol so reward
    checkpoints stay consistent with balances.
    """

    def __init__(self, name="capital"):
        super().__init__(name)
        self.settlement = None

    def _before_transfer(self, sender, recipient, amount):
        if self.settlement is not None:
            self.settlement.settle(sender, recipient, amount,
                                   self.balance_of(sender), self.balance_of(recipient))

    def _before_mint(self, recipient, amount):
        if self.settlement is not None:
            self.settlement.settle_mint(recipient, amount, self.balance_of(recipient))


class VotingRight(RightToken):
    """
    Voting right: directs gauge votes and governance, locked until epoch end
    once committed to a vote.
    """

    VOTE_LOCK = "vote"

    def __init__(self, name="voting"):
        super().__init__(name)

        # Address -> timestamp until which the vote lock holds
        self.locked_until = {}

    def lock_for_vote(self, account, amount, until):
        self.lock(account, amount, self.VOTE_LOCK)
        self.locked_until[account] = max(self.locked_until.get(account, 0), until)

    def release_vote_lock(self, account):
        self.locked_until.pop(account, None)
        return self.unlock(account, self.VOTE_LOCK)


class ReceiptRight(RightToken):
    """Receipt minted on liquidation approval, redeemable for underlying value."""

    def __init__(self, name="receipt"):
        super().__init__(name)
