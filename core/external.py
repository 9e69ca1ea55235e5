"""
External collaborators of the split protocol.

The gauge router and the cross-chain attestation oracle live outside the
protocol. These stand-ins implement only the interface the protocol consumes
so the model can be simulated and tested end to end.
"""

from typing import Dict, List, Tuple


class GaugeRouter:
    """
    Stand-in for the external gauge-voting router.

    Accepts at most `max_pools_per_call` pools per submission and tracks fees
    that become claimable by the voting position.
    """

    def __init__(self, max_pools_per_call=15, supports_buckets=False):
        if max_pools_per_call <= 0:
            raise ValueError("max_pools_per_call must be greater than zero")
        self.max_pools_per_call = max_pools_per_call
        self.supports_buckets = supports_buckets

        # (position id, pools, weights) per accepted call
        self.submissions: List[Tuple[int, List[str], List[int]]] = []

        # Fees waiting to be claimed by the protocol
        self.pending_fees = 0

    def submit_votes(self, position_id, pools, weights):
        if len(pools) != len(weights):
            raise ValueError("pools and weights must have the same length")
        if len(pools) > self.max_pools_per_call:
            raise ValueError(f"Router accepts at most {self.max_pools_per_call} pools per call")
        self.submissions.append((position_id, list(pools), list(weights)))
        return True

    def accrue_fees(self, amount):
        self.pending_fees += amount

    def claim_fees(self):
        """Returns and clears the fees earned by the protocol's votes."""
        amount = self.pending_fees
        self.pending_fees = 0
        return amount


class AttestationOracle:
    """
    Opaque cross-chain attestation check: is a claim attested by the remote
    state root? The stand-in accepts exactly the (claim, proof) pairs it was
    told about.
    """

    def __init__(self):
        self.attested: Dict[object, object] = {}

    def attest(self, claim, proof):
        self.attested[claim] = proof

    def verify(self, claim, proof):
        return claim in self.attested and self.attested[claim] == proof
