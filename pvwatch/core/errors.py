"""
Error taxonomy for the monitoring core.

Detection treats most of these as non-fatal (the affected method is skipped);
forecasting and the alert lifecycle propagate them to the caller.
"""


class PVWatchError(Exception):
    """Base class for all pvwatch errors."""


class InsufficientDataError(PVWatchError):
    """Too few samples to build a baseline or train a model."""

    def __init__(self, message: str, available: int = 0, required: int = 0):
        super().__init__(message)
        self.available = available
        self.required = required


class ModelNotTrainedError(PVWatchError):
    """A prediction was requested before the model was trained."""


class InvalidInputError(PVWatchError, ValueError):
    """Malformed or out-of-range input rejected before computation."""


class UpstreamFetchError(PVWatchError):
    """Historical or weather data could not be retrieved."""


class InvalidStateTransitionError(PVWatchError):
    """An anomaly lifecycle operation is not allowed in the current state."""


class AnomalyNotFoundError(InvalidStateTransitionError):
    """The referenced anomaly does not exist."""

    def __init__(self, anomaly_id: str):
        super().__init__(f"Anomaly {anomaly_id} not found")
        self.anomaly_id = anomaly_id
