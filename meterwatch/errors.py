"""
Domain exceptions for the telemetry pipeline.

Only ReadingValidationError and PersistenceError are ever surfaced to the
caller of an ingestion. Everything else is contained inside the pipeline,
logged, and turned into an omitted side effect (no alert, no billing tick).

CHANGELOG:
- 2026-10-18: Initial creation
"""


class MeterwatchError(Exception):
    """Base class for all pipeline errors."""


class ReadingValidationError(MeterwatchError):
    """A reading payload is malformed or incomplete.

    Attributes:
        reason: Machine-readable rejection code, e.g. ``missing_device_id``
            or ``missing_field:apparent_power``.
    """

    def __init__(self, reason: str, detail: str | None = None) -> None:
        self.reason = reason
        self.detail = detail or reason
        super().__init__(self.detail)


class PersistenceError(MeterwatchError):
    """The durable write of a reading failed."""


class ConfigLookupError(MeterwatchError):
    """Device limits, tariff or owner contact could not be fetched."""


class NotificationError(MeterwatchError):
    """The notifier transport failed to deliver a message."""


class StateInconsistency(MeterwatchError):
    """Out-of-order or duplicate data detected while accruing billing state."""
