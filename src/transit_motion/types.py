"""Type definitions and enumerations for the transit motion engine.

This module contains type definitions, enumerations, and the abstract
interfaces of the external collaborators (renderer, data providers, exporters).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, TypedDict, Union

if TYPE_CHECKING:
    from collections.abc import Sequence

    from transit_motion.data_classes import (
        EntityPose,
        FlightStatusPayload,
        LiveFlightSnapshot,
        LiveTrainSnapshot,
        TimetableEntry,
        TrainStatusPayload,
    )

    StatusPayload = Union[TrainStatusPayload, FlightStatusPayload]


class EntityKind(Enum):
    """Kinds of simulated vehicles."""

    TRAIN = "train"
    FLIGHT = "flight"


class TrainState(Enum):
    """Lifecycle states of a train."""

    INACTIVE = "Inactive"
    STANDING = "Standing"
    RUNNING = "Running"
    NEXT_LEG = "NextLeg"
    TERMINATED = "Terminated"


class FlightState(Enum):
    """Lifecycle states of a flight."""

    SCHEDULED = "Scheduled"
    STANDING_PRE = "StandingPre"
    RUNNING = "Running"
    STANDING_POST = "StandingPost"
    TERMINATED = "Terminated"


class FlightScheduleStatus(Enum):
    """Statuses derived from comparing effective and scheduled times."""

    NEW_TIME = "NewTime"
    DELAYED = "Delayed"
    ON_TIME = "OnTime"


class PoseTraceRow(TypedDict):
    """A single recorded car pose.

    Angles are in degrees (bearing) and radians (pitch), altitude in meters,
    time in epoch milliseconds.
    """

    time: float
    entity_id: str
    kind: str
    car_index: int
    longitude: float
    latitude: float
    altitude: float
    bearing: float
    pitch: float
    standing: bool


class PoseSinkInterface(ABC):
    """Receives poses and status payloads emitted by the engine.

    The renderer and any hover/tracking UI implement this interface; the
    engine never renders anything itself.
    """

    @abstractmethod
    def publish_pose(self, pose: EntityPose) -> None:
        """Receive the latest pose of an active entity."""
        ...

    @abstractmethod
    def publish_status(self, status: StatusPayload) -> None:
        """Receive the UI-facing status of an entity whose state changed."""
        ...

    @abstractmethod
    def remove_entity(self, entity_id: str) -> None:
        """Forget an entity that is no longer active."""
        ...

    def is_visible(self, pose: EntityPose) -> bool:
        """Report whether a pose is on screen; off-screen entities tick at a lower rate."""
        return True


class TransitDataProviderInterface(ABC):
    """Delivers already-parsed timetable and live records.

    Implementations raise FeedUnavailableError (or OSError/ValueError) when
    a provider cannot be reached.
    """

    @abstractmethod
    def load_timetable(self, now: float) -> Sequence[TimetableEntry]:
        """Return the timetable of the service day containing ``now``."""
        ...

    @abstractmethod
    def fetch_train_snapshot(self, now: float) -> LiveTrainSnapshot:
        """Return the current full-replace live train snapshot."""
        ...

    @abstractmethod
    def fetch_flight_snapshot(self, now: float) -> LiveFlightSnapshot:
        """Return the current full-replace live flight snapshot."""
        ...


class PoseTraceExporterInterface(ABC):
    """Abstract base class for pose trace exporters.

    Follows Open/Closed Principle - open for extension, closed for modification.
    """

    @abstractmethod
    def export_traces(
        self,
        trace_rows: Sequence[PoseTraceRow],
        output_filename_base: str,
        output_directory: Path | None = None,
    ) -> Path | list[Path] | None:
        """Export recorded pose rows to file(s).

        Args:
            trace_rows: Recorded pose rows.
            output_filename_base: Base filename for output.
            output_directory: Directory to save files in.

        Returns:
            Path or list of paths to created file(s).
        """
        ...
