"""
Failure kinds raised by the split protocol model.

Every kind derives from ValueError so callers that treat protocol rejections
as bad input keep working. A rejection always leaves state untouched.
"""


class ProtocolError(ValueError):
    """Base class for rejected protocol operations."""

    code = "PROTOCOL_ERROR"

    def __init__(self, reason="", **details):
        self.reason = reason
        self.details = details
        super().__init__(self.__str__())

    def __str__(self):
        if not self.details:
            return f"{self.code}: {self.reason}" if self.reason else self.code
        extra = ", ".join(f"{k}={v}" for k, v in sorted(self.details.items()))
        return f"{self.code}: {self.reason} ({extra})"


class InvalidTiming(ProtocolError):
    code = "INVALID_TIMING"


class AlreadyDone(ProtocolError):
    code = "ALREADY_DONE"


class AlreadySnapshotted(AlreadyDone):
    code = "ALREADY_SNAPSHOTTED"


class InsufficientUnlocked(ProtocolError):
    code = "INSUFFICIENT_UNLOCKED"


class NonWholeUnit(ProtocolError):
    code = "MUST_VOTE_WHOLE_UNITS"


MustVoteWholeUnits = NonWholeUnit


class AllPassiveRejected(ProtocolError):
    code = "ALL_PASSIVE_REJECTED"


class PoolLimitReached(ProtocolError):
    code = "POOL_LIMIT_REACHED"


class NothingToClaim(ProtocolError):
    code = "NOTHING_TO_CLAIM"


class WrongEpoch(ProtocolError):
    code = "WRONG_EPOCH"


class LiquidationInProgress(ProtocolError):
    code = "LIQUIDATION_IN_PROGRESS"


class ThresholdNotMet(ProtocolError):
    code = "THRESHOLD_NOT_MET"


class AlreadyConfigured(ProtocolError):
    code = "ALREADY_CONFIGURED"


class Unauthorized(ProtocolError):
    code = "UNAUTHORIZED"


class AttestationRejected(ProtocolError):
    code = "ATTESTATION_REJECTED"
