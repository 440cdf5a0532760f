"""Error taxonomy for the monitoring pipeline.

Every per-asset failure raised inside a cycle derives from GuardianError so
the orchestrator can catch it at the asset boundary and keep going.
"""


class GuardianError(Exception):
    """Base class for pipeline errors."""

    def __init__(self, message, symbol=None):
        super().__init__(message)
        self.symbol = symbol


class UnknownAsset(GuardianError):
    """Observation for an asset with no provisioned peak record."""


class FetchFailure(GuardianError):
    """Market data was unavailable for an asset."""


class PersistenceFailure(GuardianError):
    """A store write (or read needed for a decision) failed."""


class NotificationFailure(GuardianError):
    """Dispatch failed after the record it announces was stored."""
