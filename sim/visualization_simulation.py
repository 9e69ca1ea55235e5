"""
Visualization simulation for the split protocol model.

This script runs a multi-epoch scenario with plots, then projects the
emission supply for several staking ratios.
"""

import sys
import os

import numpy as np
import matplotlib.pyplot as plt

# Add the core directory to the path
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "core"))
from config import ProtocolConfig, SettlementPolicy
from constants import DECIMAL_PRECISION, HOUR
from protocol_model import SplitProtocolModel


def run_visualization_simulation(epochs=12, policy=SettlementPolicy.SWEEP):
    config = ProtocolConfig(settlement_policy=policy)
    model = SplitProtocolModel(config=config, genesis_time=0)
    model.set_time(2 * HOUR)

    print(f"Running {epochs} epochs with {policy.value} settlement...")
    results = model.simulate_epochs(epochs, holders=8, plot_results=True)

    print("\nSimulation Results:")
    for key, value in results.items():
        print(f"  {key}: {value}")

    # Emission projections
    print("\nProjecting emission supply...")
    periods = 520
    weeks = np.arange(1, periods + 1)
    plt.figure(figsize=(10, 6))
    for ratio in (0.1, 0.3, 0.5, 0.7):
        path = model.emissions.project(periods, int(ratio * DECIMAL_PRECISION))
        plt.plot(weeks, path, label=f"staking ratio {ratio:.0%}")
    plt.title('Projected Emission Token Supply')
    plt.xlabel('Weeks')
    plt.ylabel('Tokens')
    plt.legend()
    plt.tight_layout()
    plt.show()


if __name__ == "__main__":
    run_visualization_simulation()
