"""
Split Protocol Economic Model.

This main module combines the individual components into a complete model of
the protocol that splits a permanently locked vote-escrow position into a
voting right and a capital right. It can be used to simulate scenarios and
test the accounting and governance behaviour of the protocol.

There is no scheduler. Every entry point first brings time-gated state up to
date (epoch rollover, rebase growth, emission catch-up, pending merges,
liquidation timeouts) and only then does its own work.
"""

import logging

import numpy as np
import matplotlib.pyplot as plt

from bribe_ledger import BribeSnapshotLedger
from config import ProtocolConfig
from constants import (
    BPS,
    CAPITAL_DEPOSITOR_BPS,
    CAPITAL_RESERVE_BPS,
    CAPITAL_TREASURY_BPS,
    DAY,
    DECIMAL_PRECISION,
    EMISSION_STREAM,
    FEE_STREAM,
    REBASE_STREAM,
    VOTING_DEPOSITOR_BPS,
    VOTING_TREASURY_BPS,
)
from emission_curve import EmissionCurve, allocate_to_pools
from epoch_clock import EpochClock
from errors import AttestationRejected, NothingToClaim, Unauthorized
from external import AttestationOracle, GaugeRouter
from liquidation import LiquidationStateMachine, Phase
from position_registry import PendingPosition, PositionCustody, VotingEscrowRegistry
from reward_index import RewardIndexLedger
from rights_token import CapitalRight, ReceiptRight, VotingRight
from transfer_settlement import TransferSettlementProtocol
from vote_aggregator import VoteAggregator

logger = logging.getLogger(__name__)

ISSUER = "protocol"


def split_amount(total, shares_bps):
    """
    Splits an amount by basis-point shares; the last share takes the remainder
    so the parts always sum exactly to the total.
    """
    if sum(shares_bps) != BPS:
        raise ValueError("Shares must sum to 10000 basis points")
    parts = [total * share // BPS for share in shares_bps[:-1]]
    parts.append(total - sum(parts))
    return parts


class SplitProtocolModel:
    """
    Complete model of the split protocol.
    Combines all components and provides simulation capabilities.
    """

    def __init__(self, config=None, genesis_time=0, registry=None, router=None, oracle=None):
        self.config = config or ProtocolConfig()
        if not self.config.sealed:
            self.config.seal()

        # Clock
        self.clock = EpochClock(genesis_time)
        self.current_time = genesis_time

        # Rights tokens
        self.capital = CapitalRight()
        self.voting = VotingRight()
        self.receipt = ReceiptRight()
        for token in (self.capital, self.voting, self.receipt):
            token.add_issuer(ISSUER)

        # Reward streams, all settled with one policy
        self.ledgers = {
            FEE_STREAM: RewardIndexLedger(FEE_STREAM, self.capital, algorithmic=False),
            EMISSION_STREAM: RewardIndexLedger(EMISSION_STREAM, self.capital, algorithmic=True),
            REBASE_STREAM: RewardIndexLedger(REBASE_STREAM, self.capital, algorithmic=True),
        }
        self.settlement = TransferSettlementProtocol(
            self.ledgers, self.config.settlement_policy, self.config.sweep_sink)
        self.capital.settlement = self.settlement

        # External collaborators
        self.registry = registry or VotingEscrowRegistry()
        self.router = router or GaugeRouter(self.config.router_max_pools, supports_buckets=self.config.multi_bucket)
        self.oracle = oracle or AttestationOracle()
        self.custody = PositionCustody(self.registry, holder=ISSUER)

        # Governance components
        self.aggregator = VoteAggregator(self.clock, self.voting)
        self.bribes = BribeSnapshotLedger(self.clock, self.aggregator)
        self.emissions = EmissionCurve(
            self.config.emission_cap,
            self.config.emission_initial_supply,
            self.config.emission_rate,
        )
        self.liquidation = LiquidationStateMachine(
            self.capital, self.voting, self.receipt, self._redeemable_value, issuer=ISSUER)

        # Pool allocation table fed by emissions
        self.pool_allocations = {}
        self.unallocated_emissions = 0

        # Rebase rights minted to the sink from swept rebase remainders
        self.rebase_swept_minted = 0

        # Liquidation cycles whose custody sweep has been paid
        self.custody_settled_cycles = set()

        # Account -> asset -> amount paid out by the protocol
        self.payouts = {}

        # History tracking for simulations
        self.time_history = []
        self.capital_supply_history = []
        self.fee_index_history = []
        self.emission_supply_history = []
        self.vote_weight_history = []

    # ------------------------------------------------------------------
    # Time
    # ------------------------------------------------------------------

    def update_time(self, seconds):
        """
        Advances the simulation clock by the specified number of seconds.

        Rollover work runs lazily on the next call, not here.
        """
        if seconds < 0:
            raise ValueError("Time cannot move backwards")
        self.current_time += seconds

    def set_time(self, timestamp):
        if timestamp < self.current_time:
            raise ValueError("Time cannot move backwards")
        self.current_time = timestamp

    def _poke(self):
        """Brings every time-gated component up to the current time."""
        now = self.current_time
        entered = self.clock.advance(now)
        for epoch in entered:
            self.aggregator.reset_votes_for_new_epoch(epoch)

        self.liquidation.resolve(now)
        self._settle_custody()

        if self.liquidation.phase not in (Phase.APPROVED, Phase.CLOSED):
            if entered:
                self._claim_rebase()
            if self.emissions.backlog(self.clock.current_epoch):
                self._process_emissions(self.config.max_catchup_steps)

        self.custody.settle(now, self.clock.current_epoch)
        return now

    def _normal_path(self):
        now = self._poke()
        self.liquidation.require_normal()
        return now

    # ------------------------------------------------------------------
    # Internal flows
    # ------------------------------------------------------------------

    def _pay(self, account, asset, amount):
        if amount <= 0:
            return
        per_asset = self.payouts.setdefault(account, {})
        per_asset[asset] = per_asset.get(asset, 0) + amount

    def _mint_rights(self, account, capital_amount, voting_amount):
        if capital_amount > 0:
            self.capital.mint(ISSUER, account, capital_amount)
        if voting_amount > 0:
            self.voting.mint(ISSUER, account, voting_amount)

    def _claim_rebase(self):
        growth = 0
        for position_id in self.custody.position_ids():
            growth += self.registry.claim_rebase_growth(position_id)
        if growth:
            self.ledgers[REBASE_STREAM].distribute(growth)
            logger.info("rebase growth of %d distributed", growth)
        return growth

    def _process_emissions(self, max_steps):
        processed, backlog_empty = self.emissions.process(self.clock.current_epoch, max_steps)
        share_bps = self.config.emission_staker_share_bps
        for period, amount in processed:
            staker_part = amount * share_bps // BPS
            pool_part = amount - staker_part
            self.ledgers[EMISSION_STREAM].distribute(staker_part)

            ranking = self._ranking_for_period(period)
            allocation = allocate_to_pools(pool_part, ranking)
            if not allocation:
                self.unallocated_emissions += pool_part
            for pool, share in allocation.items():
                self.pool_allocations[pool] = self.pool_allocations.get(pool, 0) + share
        return len(processed), backlog_empty

    def _ranking_for_period(self, period):
        executed = [epoch for epoch in self.aggregator.results if epoch <= period]
        if not executed:
            return []
        return self.aggregator.results[max(executed)].ranking

    def _rebase_unminted(self):
        rebase = self.ledgers[REBASE_STREAM]
        return rebase.total_distributed - rebase.total_claimed - self.rebase_swept_minted

    def _redeemable_value(self):
        return max(self.custody.total_principal() - self._rebase_unminted(), 0)

    def _settle_custody(self):
        cycle = self.liquidation.cycle
        if cycle.phase is not Phase.CLOSED or cycle.number in self.custody_settled_cycles:
            return 0
        amount = cycle.swept_to_custody + self._rebase_unminted()
        self._pay(self.config.custody, "underlying", amount)
        self.custody_settled_cycles.add(cycle.number)
        logger.info("liquidation cycle %d closed, %d sent to custody", cycle.number, amount)
        return amount

    # ------------------------------------------------------------------
    # Deposits and transfers
    # ------------------------------------------------------------------

    def deposit_position(self, depositor, position_id):
        """
        Deposits a permanently locked position and mints both rights.

        Args:
            depositor: Owner of the position
            position_id: Registry id of the position

        Returns:
            Dict of account -> (capital minted, voting minted)
        """
        now = self._normal_path()
        self.clock.require_window("deposit", now)

        principal = self.custody.accept(position_id, depositor, now)

        capital_parts = split_amount(principal, [CAPITAL_DEPOSITOR_BPS, CAPITAL_TREASURY_BPS, CAPITAL_RESERVE_BPS])
        voting_parts = split_amount(principal, [VOTING_DEPOSITOR_BPS, VOTING_TREASURY_BPS])

        minted = {
            depositor: (capital_parts[0], voting_parts[0]),
            self.config.treasury: (capital_parts[1], voting_parts[1]),
            self.config.liquidity_reserve: (capital_parts[2], 0),
        }
        for account, (capital_amount, voting_amount) in minted.items():
            self._mint_rights(account, capital_amount, voting_amount)

        logger.info("%s deposited position %d with principal %d", depositor, position_id, principal)
        return minted

    def transfer_capital(self, sender, recipient, amount):
        self._normal_path()
        return self.capital.transfer(sender, recipient, amount)

    def transfer_voting(self, sender, recipient, amount):
        self._normal_path()
        return self.voting.transfer(sender, recipient, amount)

    # ------------------------------------------------------------------
    # Votes
    # ------------------------------------------------------------------

    def vote(self, holder, pool, amount):
        now = self._normal_path()
        self.aggregator.vote(holder, pool, amount, now)

    def vote_passive(self, holder, amount):
        now = self._normal_path()
        self.aggregator.vote_passive(holder, amount, now)

    def reset_votes_for_new_epoch(self):
        """Clears last epoch's votes; a repeated call is a no-op."""
        now = self._poke()
        return self.aggregator.reset_votes_for_new_epoch(self.clock.epoch_at(now))

    def execute_votes(self):
        """
        Submits the epoch's aggregated votes to the gauge router.

        With more than one bucket the canonical position is split so each
        bucket votes with power proportional to its weight; the split-off
        positions merge back once they are unvoted again.

        Returns:
            VoteResult of the epoch
        """
        now = self._normal_path()
        max_per_call = min(self.config.router_max_pools, self.router.max_pools_per_call)
        multi_bucket = self.config.multi_bucket and self.router.supports_buckets
        result = self.aggregator.finalize(now, max_per_call, multi_bucket)

        canonical = self.custody.canonical_id
        if not result.buckets or canonical is None:
            return result

        epoch = result.epoch
        if len(result.buckets) == 1:
            position_ids = [canonical]
        else:
            principal = self.registry.get(canonical).principal
            total = sum(bucket.raw_weight for bucket in result.buckets)
            amounts = [principal * bucket.raw_weight // total for bucket in result.buckets[:-1]]
            amounts.append(principal - sum(amounts))
            position_ids = self.registry.split(canonical, amounts)
            for position_id in position_ids[1:]:
                self.custody.pending.append(PendingPosition(position_id, now))

        for position_id, bucket in zip(position_ids, result.buckets):
            self.router.submit_votes(position_id, bucket.pools, bucket.weights_bps)
            self.registry.record_vote(position_id, epoch)
        return result

    # ------------------------------------------------------------------
    # Reward streams
    # ------------------------------------------------------------------

    def distribute_fees(self, amount):
        """Feeds trading fees into the fee stream."""
        self._normal_path()
        return self.ledgers[FEE_STREAM].distribute(amount)

    def harvest_fees(self):
        """Claims fees earned by the protocol's votes and distributes them."""
        self._normal_path()
        amount = self.router.claim_fees()
        if amount:
            self.ledgers[FEE_STREAM].distribute(amount)
        return amount

    def pending_rewards(self, holder):
        """Read-only claimable amount per stream."""
        return {name: ledger.claimable(holder) for name, ledger in self.ledgers.items()}

    def _claim_streams(self, holder):
        claimed = {name: ledger.claim(holder) for name, ledger in self.ledgers.items()}
        self._pay(holder, FEE_STREAM, claimed[FEE_STREAM])
        self._pay(holder, EMISSION_STREAM, claimed[EMISSION_STREAM])
        return claimed

    def claim_rewards(self, holder):
        """
        Claims every stream. Rebase growth is paid in newly minted rights.

        Raises:
            NothingToClaim: If all streams are empty for the holder
        """
        self._normal_path()
        if not any(self.pending_rewards(holder).values()):
            raise NothingToClaim("no rewards", holder=holder)

        claimed = self._claim_streams(holder)
        rebase = claimed[REBASE_STREAM]
        self._mint_rights(holder, rebase, rebase)
        return claimed

    def withdraw_swept(self, caller):
        """Pays the transfer remainders routed to the sink."""
        self._normal_path()
        if caller != self.config.sweep_sink:
            raise Unauthorized(f"{caller} is not the sweep sink")

        withdrawn = {name: self.settlement.withdraw_swept(name) for name in self.ledgers}
        self._pay(caller, FEE_STREAM, withdrawn[FEE_STREAM])
        self._pay(caller, EMISSION_STREAM, withdrawn[EMISSION_STREAM])
        self._mint_rights(caller, withdrawn[REBASE_STREAM], withdrawn[REBASE_STREAM])
        self.rebase_swept_minted += withdrawn[REBASE_STREAM]
        return withdrawn

    # ------------------------------------------------------------------
    # Emissions
    # ------------------------------------------------------------------

    def update_staking_ratio(self, ratio, proof):
        """
        Records an attested staking ratio for the current period.

        Raises:
            AttestationRejected: If the oracle does not attest the claim
        """
        now = self._normal_path()
        period = self.clock.epoch_at(now)
        claim = ("staking_ratio", period, ratio)
        if not self.oracle.verify(claim, proof):
            raise AttestationRejected("staking ratio not attested", period=period)
        self.emissions.record_staking_ratio(period, ratio)

    def process_emissions(self, max_steps=None):
        """
        Processes emission backlog up to a step bound.

        Returns:
            Tuple (periods processed, backlog empty)
        """
        self._normal_path()
        steps = max_steps if max_steps is not None else self.config.max_catchup_steps
        return self._process_emissions(steps)

    # ------------------------------------------------------------------
    # Bribes
    # ------------------------------------------------------------------

    def notify_bribe(self, token, amount):
        now = self._normal_path()
        return self.bribes.notify_bribe(token, amount, now)

    def snapshot_bribe(self, holder):
        now = self._normal_path()
        return self.bribes.snapshot(holder, now)

    def snapshot_eligible(self, holder):
        return self.bribes.snapshot_eligible(holder, self.current_time)

    def claim_bribes(self, holder, tokens):
        now = self._normal_path()
        payouts = self.bribes.claim(holder, tokens, now)
        for token, amount in payouts.items():
            self._pay(holder, token, amount)
        return payouts

    def sweep_bribes(self, caller, token, epoch):
        now = self._normal_path()
        if caller not in (self.config.owner, self.config.sweep_sink):
            raise Unauthorized(f"{caller} may not sweep bribes")
        amount = self.bribes.sweep(token, epoch, now)
        self._pay(self.config.sweep_sink, token, amount)
        return amount

    # ------------------------------------------------------------------
    # Liquidation
    # ------------------------------------------------------------------

    def liquidation_capital_vote(self, holder, amount):
        now = self._poke()
        return self.liquidation.capital_vote(holder, amount, now)

    def liquidation_voting_confirm(self, holder, amount):
        now = self._poke()
        return self.liquidation.voting_confirm(holder, amount, now)

    def advance_liquidation(self):
        now = self._poke()
        return self.liquidation.advance(now)

    def withdraw_failed_liquidation(self, holder, cycle_number=None):
        self._poke()
        return self.liquidation.withdraw_failed_liquidation(holder, cycle_number)

    def claim_receipt(self, holder):
        """
        Converts capital rights into receipts after approval.

        Outstanding stream rewards are paid first; rebase growth is paid as
        underlying value because no new rights can be minted any more.
        """
        now = self._poke()
        self.liquidation.check_receipt_claim(holder, now)

        claimed = self._claim_streams(holder)
        self._pay(holder, "underlying", claimed[REBASE_STREAM])
        return self.liquidation.claim_receipt(holder, now)

    def redeem_receipt(self, holder, amount):
        now = self._poke()
        value = self.liquidation.redeem_receipt(holder, amount, now)
        self._pay(holder, "underlying", value)
        return value

    def close_liquidation(self, caller):
        now = self._poke()
        self.liquidation.close(caller, (self.config.owner, self.config.custody), now)
        return self._settle_custody()

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def balances(self, holder):
        return {
            "capital": self.capital.balance_of(holder),
            "voting": self.voting.balance_of(holder),
            "voting_locked": self.voting.locked_of(holder),
            "capital_locked": self.capital.locked_of(holder),
            "receipt": self.receipt.balance_of(holder),
        }

    def paid_to(self, account, asset):
        return self.payouts.get(account, {}).get(asset, 0)

    def schedule(self):
        return self.clock.schedule()

    def get_system_state(self):
        """
        Returns the current state of the system.

        Returns:
            Dictionary with system state
        """
        return {
            "time": self.current_time,
            "epoch": self.clock.current_epoch,
            "principal": self.custody.total_principal(),
            "pending_positions": len(self.custody.pending),
            "capital_supply": self.capital.total_supply,
            "voting_supply": self.voting.total_supply,
            "indices": {name: ledger.global_index for name, ledger in self.ledgers.items()},
            "vote_weight": self.aggregator.total_weight(),
            "emission_supply": self.emissions.supply,
            "unallocated_emissions": self.unallocated_emissions,
            "liquidation_phase": self.liquidation.phase.name,
        }

    def _update_history(self):
        """Updates history tracking for simulations."""
        state = self.get_system_state()
        self.time_history.append(state["time"])
        self.capital_supply_history.append(state["capital_supply"] / DECIMAL_PRECISION)
        self.fee_index_history.append(state["indices"][FEE_STREAM] / DECIMAL_PRECISION)
        self.emission_supply_history.append(state["emission_supply"] / DECIMAL_PRECISION)
        self.vote_weight_history.append(state["vote_weight"] / DECIMAL_PRECISION)

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    def simulate_epochs(self, epochs, holders=5, weekly_fees=50_000.0, pools=20, plot_results=True, seed=None):
        """
        Runs a randomised multi-epoch scenario.

        Each epoch holders deposit positions, trade capital rights, vote on
        random pools, fees and bribes arrive, votes are executed and voters
        snapshot and claim their bribes.

        Args:
            epochs: Number of epochs to simulate
            holders: Number of simulated holders
            weekly_fees: Mean weekly trading fees in whole tokens
            pools: Number of gauge pools available
            plot_results: Whether to plot the results
            seed: Seed for numpy's random generator

        Returns:
            Dictionary with simulation results
        """
        rng = np.random.default_rng(seed)
        names = [f"holder{i}" for i in range(holders)]
        pool_ids = [f"pool{i:02d}" for i in range(pools)]
        snapshot_epochs = {}

        start_epoch = self.clock.epoch_at(self.current_time)
        for step in range(epochs):
            epoch_start = self.clock.epoch_start(start_epoch + step)

            # Deposit window: new positions and transfers
            self.set_time(max(self.current_time, epoch_start + 2 * 60 * 60))
            for name in names:
                if self.liquidation.is_active():
                    break
                if step == 0 or rng.random() < 0.2:
                    principal = int(rng.uniform(100, 1_000)) * DECIMAL_PRECISION
                    position_id = self.registry.lock(name, principal, rebase_per_epoch=principal // 500)
                    self.deposit_position(name, position_id)

            for _ in range(holders):
                sender, recipient = rng.choice(names, 2, replace=False)
                amount = self.capital.unlocked_balance_of(sender) // 10
                if amount > 0:
                    self.transfer_capital(sender, recipient, amount)

            # Voting window
            self.set_time(epoch_start + DAY)
            for name in names:
                whole = self.voting.unlocked_balance_of(name) // DECIMAL_PRECISION
                if whole < 2:
                    continue
                pool = rng.choice(pool_ids)
                if rng.random() < 0.2 and self.aggregator.active_total > 0:
                    self.vote_passive(name, (whole // 2) * DECIMAL_PRECISION)
                else:
                    self.vote(name, pool, (whole // 2) * DECIMAL_PRECISION)

            fees = max(rng.normal(weekly_fees, weekly_fees / 5), 0.0)
            self.router.accrue_fees(int(fees) * DECIMAL_PRECISION)
            self.harvest_fees()
            self.notify_bribe("bribeA", int(rng.uniform(1_000, 5_000)) * DECIMAL_PRECISION)

            # Execution and snapshot windows
            self.set_time(epoch_start + 6 * DAY + 60 * 60)
            self.execute_votes()
            self.set_time(epoch_start + 6 * DAY + 13 * 60 * 60)
            snapshot_epochs[start_epoch + step] = [n for n in names if self.snapshot_eligible(n)]
            for name in snapshot_epochs[start_epoch + step]:
                self.snapshot_bribe(name)

            # Next epoch: rebase accrues, bribes and rewards are claimed
            self.registry.accrue_rebase()
            self.set_time(epoch_start + self.clock.epoch_length + 2 * 60 * 60)
            for name in snapshot_epochs[start_epoch + step]:
                self.claim_bribes(name, ["bribeA"])
            for name in names:
                if any(self.pending_rewards(name).values()):
                    self.claim_rewards(name)

            self._update_history()

        time_points = (np.array(self.time_history) - self.clock.genesis_time) / (24 * 60 * 60)

        if plot_results:
            fig, axs = plt.subplots(4, 1, figsize=(12, 16), sharex=True)

            axs[0].plot(time_points, self.capital_supply_history)
            axs[0].set_title('Capital Right Supply')
            axs[0].set_ylabel('Tokens')

            axs[1].plot(time_points, self.fee_index_history)
            axs[1].set_title('Fee Index')
            axs[1].set_ylabel('Fees per capital right')

            axs[2].plot(time_points, self.emission_supply_history)
            axs[2].set_title('Emission Token Supply')
            axs[2].set_ylabel('Tokens')

            axs[3].plot(time_points, self.vote_weight_history)
            axs[3].set_title('Vote Weight at Epoch End')
            axs[3].set_ylabel('Votes')
            axs[3].set_xlabel('Days')

            plt.tight_layout()
            plt.show()

        final_state = self.get_system_state()
        return {
            'epochs': epochs,
            'final_principal': final_state['principal'] / DECIMAL_PRECISION,
            'final_capital_supply': final_state['capital_supply'] / DECIMAL_PRECISION,
            'final_emission_supply': final_state['emission_supply'] / DECIMAL_PRECISION,
            'pools_allocated': len(self.pool_allocations),
            'fees_paid': sum(self.paid_to(n, FEE_STREAM) for n in names) / DECIMAL_PRECISION,
            'bribes_paid': sum(self.paid_to(n, "bribeA") for n in names) / DECIMAL_PRECISION,
        }
