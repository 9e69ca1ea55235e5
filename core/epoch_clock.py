"""
Epoch Clock Model for the split protocol.

Epochs are fixed one-week periods counted from a genesis timestamp. Every
other component asks the clock which named window a timestamp falls in. The
clock has no timer: the only stored state is the epoch counter, which the
protocol advances lazily the first time it is called after a boundary.
"""

import logging

from constants import (
    BRIBE_CLAIM_DEADLINE,
    DEPOSIT_WINDOW,
    EXECUTION_WINDOW,
    ROLLOVER_BUFFER,
    SNAPSHOT_WINDOW,
    VOTING_WINDOW,
    WEEK,
)
from errors import InvalidTiming

logger = logging.getLogger(__name__)

WINDOWS = {
    "deposit": DEPOSIT_WINDOW,
    "voting": VOTING_WINDOW,
    "execution": EXECUTION_WINDOW,
    "snapshot": SNAPSHOT_WINDOW,
}


class EpochClock:
    """
    Computes epoch boundaries and sub-windows from a genesis timestamp.
    """

    def __init__(self, genesis_time: int, epoch_length: int = WEEK):
        if epoch_length <= 0:
            raise ValueError("Epoch length must be greater than zero")
        self.genesis_time = genesis_time
        self.epoch_length = epoch_length

        # Persisted counter, moved forward only by advance()
        self.current_epoch = 0

    def epoch_at(self, timestamp: int) -> int:
        """Returns the epoch number containing the timestamp."""
        if timestamp < self.genesis_time:
            raise InvalidTiming("timestamp precedes genesis", timestamp=timestamp)
        return (timestamp - self.genesis_time) // self.epoch_length

    def epoch_start(self, epoch: int) -> int:
        return self.genesis_time + epoch * self.epoch_length

    def epoch_end(self, epoch: int) -> int:
        return self.epoch_start(epoch + 1)

    def offset_in_epoch(self, timestamp: int) -> int:
        return (timestamp - self.genesis_time) % self.epoch_length

    def in_window(self, name: str, timestamp: int) -> bool:
        """
        Checks whether a timestamp falls inside a named window of its epoch.

        Args:
            name: One of "deposit", "voting", "execution", "snapshot"
            timestamp: Timestamp to test

        Returns:
            True if the timestamp is inside the window
        """
        if name not in WINDOWS:
            raise ValueError(f"Unknown window: {name}")
        if timestamp < self.genesis_time:
            return False
        start, end = WINDOWS[name]
        return start <= self.offset_in_epoch(timestamp) < end

    def require_window(self, name: str, timestamp: int) -> None:
        """Raises InvalidTiming unless the timestamp is inside the window."""
        if not self.in_window(name, timestamp):
            start, end = WINDOWS[name]
            raise InvalidTiming(f"outside {name} window",
                                offset=self.offset_in_epoch(timestamp), start=start, end=end)

    def in_rollover_buffer(self, timestamp: int) -> bool:
        return self.offset_in_epoch(timestamp) < ROLLOVER_BUFFER

    def bribe_claim_deadline(self, snapshot_epoch: int) -> int:
        """Last timestamp (exclusive) for claiming bribes snapshotted in an epoch."""
        return self.epoch_start(snapshot_epoch + 1) + BRIBE_CLAIM_DEADLINE

    def needs_rollover(self, timestamp: int) -> bool:
        return self.epoch_at(timestamp) > self.current_epoch

    def advance(self, timestamp: int) -> list:
        """
        Moves the epoch counter up to the epoch containing the timestamp.

        A second call after the same boundary observes the new epoch and
        returns an empty list, so rollover work keyed on the result runs once.

        Args:
            timestamp: Current time

        Returns:
            The epochs entered by this call, in order
        """
        target = self.epoch_at(timestamp)
        if target <= self.current_epoch:
            return []
        entered = list(range(self.current_epoch + 1, target + 1))
        self.current_epoch = target
        logger.info("epoch rollover to %d (%d boundaries crossed)", target, len(entered))
        return entered

    def schedule(self) -> dict:
        """Returns the weekly schedule as plain offsets for external tooling."""
        return {
            "epoch_length": self.epoch_length,
            "rollover_buffer": (0, ROLLOVER_BUFFER),
            **{name: window for name, window in WINDOWS.items()},
            "bribe_claim_deadline": BRIBE_CLAIM_DEADLINE,
        }
