"""
Simple simulation for the split protocol model.

This script walks one deposit, one epoch of votes and a fee distribution
through the protocol and prints the resulting state.
"""

import sys
import os

import numpy as np

# Add the core directory to the path
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "core"))
from constants import DAY, DECIMAL_PRECISION, HOUR, WEEK
from protocol_model import SplitProtocolModel

D = DECIMAL_PRECISION


def print_state(model):
    state = model.get_system_state()
    print(f"  Epoch: {state['epoch']}")
    print(f"  Locked principal: {state['principal'] / D:.2f}")
    print(f"  Capital right supply: {state['capital_supply'] / D:.2f}")
    print(f"  Voting right supply: {state['voting_supply'] / D:.2f}")
    print(f"  Emission token supply: {state['emission_supply'] / D:,.0f}")
    print(f"  Liquidation phase: {state['liquidation_phase']}")


def run_basic_simulation():
    rng = np.random.default_rng()

    # Initialize the protocol at the start of the deposit window
    model = SplitProtocolModel(genesis_time=0)
    model.set_time(2 * HOUR)

    print("Depositing positions...")
    for i in range(5):
        principal = int(rng.uniform(100, 1_000)) * D
        position_id = model.registry.lock(f"user{i}", principal)
        minted = model.deposit_position(f"user{i}", position_id)
        capital, voting = minted[f"user{i}"]
        print(f"Position {position_id}: {principal / D:.0f} locked, {capital / D:.2f} capital, {voting / D:.2f} voting")

    print("\nVoting...")
    model.set_time(DAY)
    for i in range(5):
        pool = f"pool{i % 3}"
        amount = (model.voting.unlocked_balance_of(f"user{i}") // D // 2) * D
        model.vote(f"user{i}", pool, amount)
        print(f"user{i} voted {amount / D:.0f} for {pool}")

    print("\nDistributing 1000 in trading fees...")
    model.distribute_fees(1_000 * D)

    model.set_time(6 * DAY + HOUR)
    result = model.execute_votes()
    print("\nExecuted votes:")
    for pool, weight in result.ranking:
        print(f"  {pool}: {weight / D:.0f}")

    # Next epoch: rollover runs on the first call
    model.set_time(WEEK + 2 * HOUR)
    print("\nClaiming rewards in the next epoch...")
    for i in range(5):
        claimed = model.claim_rewards(f"user{i}")
        print(f"user{i}: {claimed['fee'] / D:.2f} fees, {claimed['emission'] / D:.2f} emission tokens")

    print("\nFinal protocol state:")
    print_state(model)


if __name__ == "__main__":
    run_basic_simulation()
