"""
Deployment configuration for the split protocol model.

The owner sets each value once before launch and then seals the config.
After sealing every setter fails with AlreadyConfigured, so parameters are
effectively immutable for the lifetime of the deployment.
"""

import logging
from dataclasses import dataclass, field, fields
from enum import Enum

from constants import (
    BPS,
    DEFAULT_EMISSION_RATE,
    DEFAULT_EMISSION_STAKER_SHARE_BPS,
    DEFAULT_MAX_CATCHUP_STEPS,
    DEFAULT_ROUTER_MAX_POOLS,
    MAX_POOLS,
)
from errors import AlreadyConfigured

logger = logging.getLogger(__name__)


class SettlementPolicy(Enum):
    """What happens to rewards crystallized on a transferred balance."""
    SWEEP = "sweep"      # routed to the fixed sink
    REINDEX = "reindex"  # fed back into the stream's accumulator


@dataclass
class ProtocolConfig:
    """
    One-shot configuration for a deployment.

    Attributes:
        owner: Address allowed to configure and to close an approved liquidation
        treasury: Receives the protocol share of deposits
        liquidity_reserve: Receives the liquidity incentive share of capital rights
        sweep_sink: Receives swept transfer remainders and expired bribes
        custody: Receives unredeemed liquidation value for manual resolution
        settlement_policy: Policy used by every reward stream on transfer
        router_max_pools: Pools the external router accepts per call
        multi_bucket: Split votes across several calls when the router allows it
        emission_cap: Hard cap on the emission token supply
        emission_initial_supply: Emission token supply at genesis
        emission_rate: Logistic growth rate per period, scaled by 1e18
        emission_staker_share_bps: Share of each mint fed to capital holders
        max_catchup_steps: Emission periods processed per lazy catch-up
    """
    owner: str = "owner"
    treasury: str = "treasury"
    liquidity_reserve: str = "liquidity_reserve"
    sweep_sink: str = "sweep_sink"
    custody: str = "custody"
    settlement_policy: SettlementPolicy = SettlementPolicy.SWEEP
    router_max_pools: int = DEFAULT_ROUTER_MAX_POOLS
    multi_bucket: bool = False
    emission_cap: int = 1_000_000_000 * 10 ** 18
    emission_initial_supply: int = 100_000_000 * 10 ** 18
    emission_rate: int = DEFAULT_EMISSION_RATE
    emission_staker_share_bps: int = DEFAULT_EMISSION_STAKER_SHARE_BPS
    max_catchup_steps: int = DEFAULT_MAX_CATCHUP_STEPS
    sealed: bool = field(default=False, init=False)

    def __post_init__(self):
        for f in fields(self):
            if f.name != "sealed":
                self._validate(f.name, getattr(self, f.name))

    @classmethod
    def from_dict(cls, values):
        """Builds a config from a plain mapping, e.g. a parsed deployment file."""
        values = dict(values)
        policy = values.get("settlement_policy")
        if isinstance(policy, str):
            values["settlement_policy"] = SettlementPolicy(policy)
        known = {f.name for f in fields(cls) if f.init}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {sorted(unknown)}")
        return cls(**values)

    def set(self, name, value):
        """
        Sets a single parameter before the config is sealed.

        Raises:
            AlreadyConfigured: If the config has been sealed
            ValueError: If the parameter is unknown or the value is invalid
        """
        if self.sealed:
            raise AlreadyConfigured("config is sealed", key=name)
        if name == "sealed" or name not in {f.name for f in fields(self)}:
            raise ValueError(f"Unknown config key: {name}")
        self._validate(name, value)
        setattr(self, name, value)

    def seal(self):
        """Makes every parameter permanently immutable."""
        if self.sealed:
            raise AlreadyConfigured("config is already sealed")
        self.sealed = True
        logger.info("configuration sealed (policy=%s, router_max_pools=%d)",
                    self.settlement_policy.value, self.router_max_pools)

    def _validate(self, name, value):
        if name == "settlement_policy" and not isinstance(value, SettlementPolicy):
            raise ValueError("settlement_policy must be a SettlementPolicy")
        if name == "router_max_pools" and not (1 <= value <= MAX_POOLS):
            raise ValueError(f"router_max_pools must be between 1 and {MAX_POOLS}")
        if name == "emission_staker_share_bps" and not (0 <= value <= BPS):
            raise ValueError(f"emission_staker_share_bps must be between 0 and {BPS}")
        if name in ("emission_cap", "emission_rate", "max_catchup_steps") and value <= 0:
            raise ValueError(f"{name} must be greater than zero")
        if name == "emission_cap" and value <= self.emission_initial_supply:
            raise ValueError("emission_cap must be above the initial supply")
        if name == "emission_initial_supply" and not (0 < value < self.emission_cap):
            raise ValueError("emission_initial_supply must be positive and below the cap")
