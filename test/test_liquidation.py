"""
Unit tests for the liquidation state machine.
"""

import unittest
import sys
import os

# Add the core directory to the path
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "core"))

from constants import DAY, LIQUIDATION_CLAIM_WINDOW, LIQUIDATION_VOTE_WINDOW
from errors import (
    AlreadyDone,
    InvalidTiming,
    LiquidationInProgress,
    NothingToClaim,
    ThresholdNotMet,
    Unauthorized,
)
from liquidation import LiquidationStateMachine, Phase
from rights_token import CapitalRight, ReceiptRight, VotingRight


class TestLiquidation(unittest.TestCase):
    def setUp(self):
        """Set up the test environment."""
        self.capital = CapitalRight()
        self.voting = VotingRight()
        self.receipt = ReceiptRight()
        for token in (self.capital, self.voting, self.receipt):
            token.add_issuer("protocol")

        self.user_a = "UserA"
        self.user_b = "UserB"
        self.user_c = "UserC"
        for holder, amount in ((self.user_a, 300), (self.user_b, 500), (self.user_c, 200)):
            self.capital.mint("protocol", holder, amount)
            self.voting.mint("protocol", holder, amount)

        self.machine = LiquidationStateMachine(self.capital, self.voting, self.receipt, lambda: 2000)

    def _approve(self, now=0):
        self.machine.capital_vote(self.user_a, 250, now)
        self.machine.capital_vote(self.user_b, 500, now)
        self.machine.voting_confirm(self.user_b, 500, now)

    def test_threshold_crossing(self):
        """Test that 25% of capital supply moves the workflow into C_VOTE."""
        self.assertEqual(self.machine.capital_vote(self.user_a, 100, 0), Phase.C_LOCK)
        self.assertEqual(self.machine.capital_vote(self.user_a, 149, DAY), Phase.C_LOCK)
        self.assertEqual(self.machine.capital_vote(self.user_c, 1, 2 * DAY), Phase.C_VOTE)
        self.assertEqual(self.machine.cycle.window_start, 2 * DAY)
        self.assertEqual(self.capital.locked_of(self.user_a), 249)

    def test_normal_operations_blocked(self):
        self.machine.require_normal()
        self.machine.capital_vote(self.user_a, 1, 0)
        with self.assertRaises(LiquidationInProgress):
            self.machine.require_normal()

    def test_voting_confirm_before_supermajority(self):
        self.machine.capital_vote(self.user_a, 250, 0)
        with self.assertRaises(ThresholdNotMet):
            self.machine.voting_confirm(self.user_b, 500, 0)

    def test_explicit_advance(self):
        with self.assertRaises(ThresholdNotMet):
            self.machine.advance(0)
        self.machine.capital_vote(self.user_a, 10, 0)
        with self.assertRaises(ThresholdNotMet):
            self.machine.advance(0)

    def test_full_approval(self):
        """Test the path to approval and the recorded redemption basis."""
        self._approve(now=DAY)
        cycle = self.machine.cycle

        self.assertEqual(cycle.phase, Phase.APPROVED)
        self.assertEqual(cycle.capital_supply_at_approval, 1000)
        self.assertEqual(cycle.underlying_value, 2000)
        self.assertEqual(cycle.approved_at, DAY)
        phases = [to for _, _, to, _ in self.machine.transitions]
        self.assertEqual(phases, [Phase.C_LOCK, Phase.C_VOTE, Phase.V_CONFIRM, Phase.APPROVED])

        with self.assertRaises(InvalidTiming):
            self.machine.capital_vote(self.user_c, 10, DAY)

    def test_failed_window_withdrawal(self):
        """Test that votes locked in a timed-out cycle can be withdrawn in full."""
        self.machine.capital_vote(self.user_a, 100, 0)
        self.assertEqual(self.machine.resolve(LIQUIDATION_VOTE_WINDOW), Phase.NORMAL)

        self.assertIn(1, self.machine.failed_cycles)
        self.assertEqual(self.machine.failed_cycles[1].phase, Phase.FAILED)
        self.assertEqual(self.machine.cycle.number, 2)

        self.assertEqual(self.machine.withdraw_failed_liquidation(self.user_a), (100, 0))
        self.assertEqual(self.capital.unlocked_balance_of(self.user_a), 300)
        with self.assertRaises(NothingToClaim):
            self.machine.withdraw_failed_liquidation(self.user_a)

    def test_capital_vote_stall_fails(self):
        """Test that a cycle past 25% but short of 75% fails when its window runs out."""
        self.machine.capital_vote(self.user_a, 100, 0)
        self.assertEqual(self.machine.capital_vote(self.user_a, 150, 10 * DAY), Phase.C_VOTE)
        self.assertEqual(self.machine.capital_vote(self.user_b, 400, 20 * DAY), Phase.C_VOTE)

        # The window restarted when 25% was crossed
        self.assertEqual(self.machine.resolve(LIQUIDATION_VOTE_WINDOW), Phase.C_VOTE)
        self.assertEqual(self.machine.resolve(10 * DAY + LIQUIDATION_VOTE_WINDOW), Phase.NORMAL)
        self.assertEqual(self.machine.transitions[-1][2], Phase.FAILED)

        self.assertEqual(self.machine.withdraw_failed_liquidation(self.user_a), (250, 0))
        self.assertEqual(self.machine.withdraw_failed_liquidation(self.user_b), (400, 0))
        self.assertEqual(self.capital.unlocked_balance_of(self.user_a), 300)
        self.assertEqual(self.capital.unlocked_balance_of(self.user_b), 500)

    def test_voting_confirm_stall_fails(self):
        """Test that confirmations locked in a failed V_CONFIRM phase are withdrawable."""
        self.machine.capital_vote(self.user_a, 250, 0)
        self.assertEqual(self.machine.capital_vote(self.user_b, 500, 0), Phase.V_CONFIRM)
        self.assertEqual(self.machine.voting_confirm(self.user_c, 200, DAY), Phase.V_CONFIRM)

        self.assertEqual(self.machine.resolve(LIQUIDATION_VOTE_WINDOW), Phase.NORMAL)

        self.assertEqual(self.machine.withdraw_failed_liquidation(self.user_c), (0, 200))
        self.assertEqual(self.machine.withdraw_failed_liquidation(self.user_b), (500, 0))
        self.assertEqual(self.machine.withdraw_failed_liquidation(self.user_a), (250, 0))
        self.assertEqual(self.voting.unlocked_balance_of(self.user_c), 200)
        self.assertEqual(self.capital.locked_of(self.user_b), 0)

    def test_receipt_includes_failed_cycle_locks(self):
        """Test that capital still locked in a failed cycle is converted, not stranded."""
        self.machine.capital_vote(self.user_a, 100, 0)
        self.machine.resolve(LIQUIDATION_VOTE_WINDOW + 1)

        now = LIQUIDATION_VOTE_WINDOW + DAY
        self.machine.capital_vote(self.user_a, 200, now)
        self.machine.capital_vote(self.user_b, 500, now)
        self.machine.capital_vote(self.user_c, 50, now)
        self.assertEqual(self.machine.voting_confirm(self.user_b, 500, now), Phase.APPROVED)

        self.assertEqual(self.machine.check_receipt_claim(self.user_a, now), 300)
        self.assertEqual(self.machine.claim_receipt(self.user_a, now), 300)
        self.assertEqual(self.receipt.balance_of(self.user_a), 300)
        self.assertEqual(self.capital.balance_of(self.user_a), 0)
        self.assertEqual(self.capital.locks, {self.user_b: {"liquidation:2": 500},
                                              self.user_c: {"liquidation:2": 50}})
        self.assertIn(self.user_a, self.machine.failed_cycles[1].withdrawn)
        with self.assertRaises(NothingToClaim):
            self.machine.withdraw_failed_liquidation(self.user_a)

    def test_withdraw_from_unknown_cycle(self):
        with self.assertRaises(ValueError):
            self.machine.withdraw_failed_liquidation(self.user_a, cycle_number=7)

    def test_claim_and_redeem_receipts(self):
        """Test receipt conversion and redemption against the approval snapshot."""
        self._approve()

        self.assertEqual(self.machine.claim_receipt(self.user_a, DAY), 300)
        self.assertEqual(self.capital.balance_of(self.user_a), 0)
        self.assertEqual(self.voting.balance_of(self.user_a), 0)
        self.assertEqual(self.receipt.balance_of(self.user_a), 300)
        with self.assertRaises(AlreadyDone):
            self.machine.claim_receipt(self.user_a, DAY)

        self.assertEqual(self.machine.redeem_receipt(self.user_a, 300, DAY), 600)
        self.assertEqual(self.receipt.balance_of(self.user_a), 0)
        with self.assertRaises(NothingToClaim):
            self.machine.redeem_receipt(self.user_a, 1, DAY)

    def test_claim_receipt_without_capital(self):
        self._approve()
        with self.assertRaises(NothingToClaim):
            self.machine.claim_receipt("nobody", DAY)
        self.assertNotIn("nobody", self.machine.cycle.receipts_claimed)

    def test_authorized_close(self):
        """Test that closing sweeps the unredeemed value to custody."""
        self._approve()
        self.machine.claim_receipt(self.user_a, DAY)
        self.machine.redeem_receipt(self.user_a, 300, DAY)

        with self.assertRaises(Unauthorized):
            self.machine.close(self.user_c, ("owner",), DAY)

        self.assertEqual(self.machine.close("owner", ("owner",), DAY), 1400)
        self.assertEqual(self.machine.phase, Phase.CLOSED)
        with self.assertRaises(InvalidTiming):
            self.machine.claim_receipt(self.user_b, DAY)

    def test_claim_window_expiry_closes(self):
        self._approve()
        self.assertEqual(self.machine.resolve(LIQUIDATION_CLAIM_WINDOW), Phase.CLOSED)
        self.assertEqual(self.machine.cycle.swept_to_custody, 2000)


if __name__ == '__main__':
    unittest.main()
