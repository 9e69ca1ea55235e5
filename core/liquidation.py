"""
Liquidation State Machine Model for the split protocol.

Holders can wind the protocol down and redeem the underlying position. The
workflow needs consent from both rights:

    NORMAL -> C_LOCK -> C_VOTE -> V_CONFIRM -> APPROVED -> CLOSED

1. The first capital right vote moves NORMAL to C_LOCK.
2. 25% of the capital supply voting moves to C_VOTE and restarts the vote window.
3. 75% of the capital supply moves to V_CONFIRM.
4. 50% of the voting supply confirming moves to APPROVED.
5. APPROVED closes after the claim window or through an authorized close.

If the vote window runs out before the next threshold, the cycle fails: the
live phase returns to NORMAL under a new cycle number and every vote locked in
the failed cycle can be withdrawn in full. Anything past NORMAL blocks the
normal-path operations of the rest of the protocol.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from constants import (
    BPS,
    LIQUIDATION_CLAIM_WINDOW,
    LIQUIDATION_CLOCK_THRESHOLD_BPS,
    LIQUIDATION_CVOTE_THRESHOLD_BPS,
    LIQUIDATION_VCONFIRM_THRESHOLD_BPS,
    LIQUIDATION_VOTE_WINDOW,
)
from errors import (
    AlreadyDone,
    InvalidTiming,
    LiquidationInProgress,
    NothingToClaim,
    ThresholdNotMet,
    Unauthorized,
)

logger = logging.getLogger(__name__)


class Phase(Enum):
    """Liquidation phases; FAILED is only recorded on finished cycles."""
    NORMAL = 0
    C_LOCK = 1
    C_VOTE = 2
    V_CONFIRM = 3
    APPROVED = 4
    CLOSED = 5
    FAILED = 6


@dataclass
class LiquidationCycle:
    """State of one liquidation attempt."""
    number: int
    phase: Phase = Phase.NORMAL
    phase_entered_at: int = 0
    window_start: int = 0
    approved_at: Optional[int] = None
    capital_votes: Dict[str, int] = field(default_factory=dict)
    voting_confirms: Dict[str, int] = field(default_factory=dict)
    capital_total: int = 0
    voting_total: int = 0
    capital_supply_at_approval: int = 0
    underlying_value: int = 0
    redeemed_value: int = 0
    swept_to_custody: int = 0
    receipts_claimed: Set[str] = field(default_factory=set)
    withdrawn: Set[str] = field(default_factory=set)

    @property
    def lock_purpose(self):
        return f"liquidation:{self.number}"


class LiquidationStateMachine:
    """
    Five-phase wind-down workflow gated by two supermajorities.
    """

    def __init__(self, capital_token, voting_token, receipt_token, underlying_value_fn, issuer="protocol"):
        self.capital_token = capital_token
        self.voting_token = voting_token
        self.receipt_token = receipt_token
        self.underlying_value_fn = underlying_value_fn
        self.issuer = issuer

        self.cycle = LiquidationCycle(number=1)
        self.failed_cycles: Dict[int, LiquidationCycle] = {}
        self.transitions: List[tuple] = []

    @property
    def phase(self):
        return self.cycle.phase

    def is_active(self):
        return self.cycle.phase is not Phase.NORMAL

    def require_normal(self):
        """Raises LiquidationInProgress once the workflow has left NORMAL."""
        if self.is_active():
            raise LiquidationInProgress("normal operations are suspended", phase=self.cycle.phase.name)

    def _enter(self, phase, now):
        previous = self.cycle.phase
        self.cycle.phase = phase
        self.cycle.phase_entered_at = now
        self.transitions.append((self.cycle.number, previous, phase, now))
        logger.info("liquidation cycle %d: %s -> %s", self.cycle.number, previous.name, phase.name)

    def _meets(self, votes, supply, threshold_bps):
        return supply > 0 and votes * BPS >= threshold_bps * supply

    def resolve(self, now):
        """
        Applies time-based transitions: vote-window expiry and claim-window close.

        Returns:
            The phase after resolution
        """
        cycle = self.cycle
        if cycle.phase in (Phase.C_LOCK, Phase.C_VOTE, Phase.V_CONFIRM):
            if now >= cycle.window_start + LIQUIDATION_VOTE_WINDOW:
                self._fail(now)
        elif cycle.phase is Phase.APPROVED:
            if now >= cycle.approved_at + LIQUIDATION_CLAIM_WINDOW:
                self._close(now)
        return self.cycle.phase

    def _fail(self, now):
        self._enter(Phase.FAILED, now)
        failed = self.cycle
        self.failed_cycles[failed.number] = failed
        self.cycle = LiquidationCycle(number=failed.number + 1, phase_entered_at=now)
        logger.info("liquidation cycle %d failed; locked votes are withdrawable", failed.number)

    def _close(self, now):
        cycle = self.cycle
        cycle.swept_to_custody = cycle.underlying_value - cycle.redeemed_value
        self._enter(Phase.CLOSED, now)

    def _advance(self, now):
        cycle = self.cycle
        capital_supply = self.capital_token.total_supply
        if cycle.phase is Phase.C_LOCK and self._meets(cycle.capital_total, capital_supply, LIQUIDATION_CLOCK_THRESHOLD_BPS):
            self._enter(Phase.C_VOTE, now)
            cycle.window_start = now
        if cycle.phase is Phase.C_VOTE and self._meets(cycle.capital_total, capital_supply, LIQUIDATION_CVOTE_THRESHOLD_BPS):
            self._enter(Phase.V_CONFIRM, now)
        if cycle.phase is Phase.V_CONFIRM and self._meets(cycle.voting_total, self.voting_token.total_supply,
                                                          LIQUIDATION_VCONFIRM_THRESHOLD_BPS):
            cycle.capital_supply_at_approval = capital_supply
            cycle.underlying_value = self.underlying_value_fn()
            cycle.approved_at = now
            self._enter(Phase.APPROVED, now)

    def advance(self, now):
        """
        Explicitly attempts the next threshold transition.

        Raises:
            ThresholdNotMet: If the phase cannot advance yet
        """
        self.resolve(now)
        before = self.cycle.phase
        if before not in (Phase.C_LOCK, Phase.C_VOTE, Phase.V_CONFIRM):
            raise ThresholdNotMet("no threshold transition from this phase", phase=before.name)
        self._advance(now)
        if self.cycle.phase is before:
            raise ThresholdNotMet("threshold not reached", phase=before.name)
        return self.cycle.phase

    def capital_vote(self, holder, amount, now):
        """
        Locks capital rights in favour of liquidation.

        Returns:
            The phase after the vote
        """
        self.resolve(now)
        cycle = self.cycle
        if cycle.phase not in (Phase.NORMAL, Phase.C_LOCK, Phase.C_VOTE):
            raise InvalidTiming("capital voting is closed", phase=cycle.phase.name)

        self.capital_token.lock(holder, amount, cycle.lock_purpose)
        cycle.capital_votes[holder] = cycle.capital_votes.get(holder, 0) + amount
        cycle.capital_total += amount

        if cycle.phase is Phase.NORMAL:
            self._enter(Phase.C_LOCK, now)
            cycle.window_start = now
        self._advance(now)
        return self.cycle.phase

    def voting_confirm(self, holder, amount, now):
        """
        Locks voting rights to confirm an approved capital vote.

        Raises:
            ThresholdNotMet: Before the capital supermajority was reached
            InvalidTiming: After approval
        """
        self.resolve(now)
        cycle = self.cycle
        if cycle.phase in (Phase.NORMAL, Phase.C_LOCK, Phase.C_VOTE):
            raise ThresholdNotMet("capital supermajority not reached", phase=cycle.phase.name)
        if cycle.phase is not Phase.V_CONFIRM:
            raise InvalidTiming("confirmation is closed", phase=cycle.phase.name)

        self.voting_token.lock(holder, amount, cycle.lock_purpose)
        cycle.voting_confirms[holder] = cycle.voting_confirms.get(holder, 0) + amount
        cycle.voting_total += amount
        self._advance(now)
        return self.cycle.phase

    def withdraw_failed_liquidation(self, holder, cycle_number=None):
        """
        Unlocks everything a holder locked in failed cycles.

        Args:
            holder: Holder withdrawing
            cycle_number: Limit to one failed cycle; all failed cycles if None

        Returns:
            Tuple (capital unlocked, voting unlocked)
        """
        if cycle_number is not None and cycle_number not in self.failed_cycles:
            raise ValueError(f"Liquidation cycle {cycle_number} did not fail")
        numbers = [cycle_number] if cycle_number is not None else sorted(self.failed_cycles)

        capital, voting = self._failed_locks(holder, numbers)
        if capital == 0 and voting == 0:
            raise NothingToClaim("no locked liquidation votes to withdraw", holder=holder)
        return self._release_failed_locks(holder, numbers)

    def _failed_locks(self, holder, numbers):
        """Capital and voting still locked by the holder in the given failed cycles."""
        capital = voting = 0
        for number in numbers:
            failed = self.failed_cycles[number]
            if holder in failed.withdrawn:
                continue
            capital += self.capital_token.locked_of(holder, failed.lock_purpose)
            voting += self.voting_token.locked_of(holder, failed.lock_purpose)
        return capital, voting

    def _release_failed_locks(self, holder, numbers):
        capital = voting = 0
        for number in numbers:
            failed = self.failed_cycles[number]
            if holder in failed.withdrawn:
                continue
            c = self.capital_token.unlock(holder, failed.lock_purpose)
            v = self.voting_token.unlock(holder, failed.lock_purpose)
            if c or v:
                failed.withdrawn.add(holder)
            capital += c
            voting += v
        return capital, voting

    def _require_approved(self, now):
        self.resolve(now)
        if self.cycle.phase is not Phase.APPROVED:
            raise InvalidTiming("liquidation is not in its claim window", phase=self.cycle.phase.name)

    def check_receipt_claim(self, holder, now):
        """
        Validates a receipt claim without changing state.

        Returns:
            Receipt amount the claim would mint
        """
        self._require_approved(now)
        cycle = self.cycle
        if holder in cycle.receipts_claimed:
            raise AlreadyDone("receipt already claimed", holder=holder)
        failed_capital, _ = self._failed_locks(holder, sorted(self.failed_cycles))
        amount = (self.capital_token.unlocked_balance_of(holder)
                  + self.capital_token.locked_of(holder, cycle.lock_purpose)
                  + failed_capital)
        if amount == 0:
            raise NothingToClaim("no capital rights to convert", holder=holder)
        return amount

    def claim_receipt(self, holder, now):
        """
        Converts the holder's capital rights 1:1 into receipts and burns their
        voting rights. Once per holder per approved cycle.

        Rights still locked in earlier failed cycles are released and
        converted as well.

        Returns:
            Receipt amount minted
        """
        amount = self.check_receipt_claim(holder, now)
        cycle = self.cycle

        self._release_failed_locks(holder, sorted(self.failed_cycles))
        self.capital_token.unlock(holder, cycle.lock_purpose)
        self.voting_token.unlock(holder, cycle.lock_purpose)
        self.capital_token.burn(self.issuer, holder, amount)
        voting = self.voting_token.unlocked_balance_of(holder)
        if voting:
            self.voting_token.burn(self.issuer, holder, voting)
        self.receipt_token.mint(self.issuer, holder, amount)
        cycle.receipts_claimed.add(holder)
        return amount

    def redeem_receipt(self, holder, amount, now):
        """
        Burns receipts for their share of the underlying value.

        Returns:
            Underlying value paid
        """
        self._require_approved(now)
        cycle = self.cycle
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")
        if self.receipt_token.balance_of(holder) < amount:
            raise NothingToClaim("not enough receipts", holder=holder)

        value = amount * cycle.underlying_value // cycle.capital_supply_at_approval
        self.receipt_token.burn(self.issuer, holder, amount)
        cycle.redeemed_value += value
        return value

    def close(self, caller, authorized, now):
        """
        Closes an approved liquidation before the claim window ends.

        Returns:
            Value swept to custody
        """
        if caller not in authorized:
            raise Unauthorized(f"{caller} may not close the liquidation")
        self._require_approved(now)
        self._close(now)
        return self.cycle.swept_to_custody
