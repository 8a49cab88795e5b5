"""Exception hierarchy for the transit motion engine."""

from __future__ import annotations


class TransitSimulationError(Exception):
    """Base class for all recoverable simulation errors."""


class MalformedPathError(TransitSimulationError):
    """A path cannot be turned into a cumulative distance table."""

    def __init__(self, route_id: str, reason: str) -> None:
        super().__init__(f"Malformed path {route_id!r}: {reason}")
        self.route_id = route_id
        self.reason = reason


class NumericDegeneracyError(TransitSimulationError):
    """Distance or coordinate arithmetic produced a non-finite value."""


class ReconciliationConflictError(TransitSimulationError):
    """Duplicate or ambiguous identifiers between timetable and live data.

    Conflicts are resolved latest-wins; instances of this error are logged,
    never raised to the caller.
    """


class FeedUnavailableError(TransitSimulationError):
    """A data provider could not deliver a timetable or live snapshot."""


class SimulationInitializationError(TransitSimulationError):
    """No valid path data is available to start a simulation."""
