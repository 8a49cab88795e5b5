"""Data classes for the transit motion engine.

This module contains dataclasses that represent limits, configuration,
parsed feed records, emitted poses, and the mutable per-entity state owned
by the lifecycle state machines.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any

import numpy as np
from numpy.typing import NDArray

from transit_motion.constants import (
    FeedConventions,
    FlightMotionDefaults,
    FrameRateDefaults,
    ScheduleTimings,
    ServiceDayConstants,
    TrainMotionDefaults,
    UnitConversionConstants,
)
from transit_motion.types import EntityKind, FlightState, TrainState

# =============================================================================
# Limits and configuration
# =============================================================================


@dataclass(frozen=True)
class MotionLimits:
    """Speed and acceleration envelope of a vehicle.

    Speeds are in meters per millisecond, accelerations in meters per
    millisecond squared. A negative acceleration marks a decelerating
    (arriving) flight profile.
    """

    maximum_speed: float
    acceleration: float

    @property
    def maximum_acceleration_time(self) -> float:
        """Time needed to reach maximum speed from rest."""
        return self.maximum_speed / abs(self.acceleration)

    @property
    def maximum_acceleration_distance(self) -> float:
        """Distance covered while accelerating from rest to maximum speed."""
        return self.maximum_acceleration_time * self.maximum_speed / 2

    @classmethod
    def from_kilometers_per_hour(
        cls,
        speed_kmph: float,
        acceleration_kmph_per_second: float,
        time_factor: float = 1.0,
    ) -> MotionLimits:
        """Create limits from km/h and km/h/s, optionally sped up by a time factor."""
        return cls(
            maximum_speed=UnitConversionConstants.convert_kilometers_per_hour_to_meters_per_millisecond(speed_kmph) * time_factor,
            acceleration=UnitConversionConstants.convert_acceleration_to_meters_per_millisecond_squared(acceleration_kmph_per_second)
            * time_factor
            * time_factor,
        )

    def for_arrival(self) -> MotionLimits:
        """Limits of an arriving aircraft: half the speed, decelerating at half the rate."""
        return MotionLimits(maximum_speed=self.maximum_speed / 2, acceleration=-abs(self.acceleration) / 2)


@dataclass(frozen=True)
class SimulationConfiguration:
    """Configuration of a simulation context.

    All durations are in milliseconds.
    """

    train_limits: MotionLimits
    flight_limits: MotionLimits
    standing_duration: float = ScheduleTimings.STANDING_DURATION
    minimum_standing_duration: float = ScheduleTimings.MINIMUM_STANDING_DURATION
    intermediate_standing_duration: float = ScheduleTimings.INTERMEDIATE_STANDING_DURATION
    demonstration_stop_duration: float = ScheduleTimings.DEMONSTRATION_STOP_DURATION
    refresh_interval: float = ScheduleTimings.REFRESH_INTERVAL
    precision_delay: float = ScheduleTimings.PRECISION_DELAY
    minimum_flight_interval: float = ScheduleTimings.MINIMUM_FLIGHT_INTERVAL
    stall_reset_threshold: float = ScheduleTimings.STALL_RESET_THRESHOLD
    ad_hoc_retention: float = ScheduleTimings.AD_HOC_TRAIN_RETENTION
    day_boundary_hour: int = ServiceDayConstants.DAY_BOUNDARY_HOUR
    timezone: str = ServiceDayConstants.TIMEZONE
    car_spacing_meters: float = TrainMotionDefaults.CAR_SPACING_METERS
    default_frame_rate_hz: float = FrameRateDefaults.DEFAULT_FRAME_RATE_HZ
    off_screen_frame_rate_hz: float = FrameRateDefaults.OFF_SCREEN_FRAME_RATE_HZ
    realtime_operators: tuple[str, ...] = FeedConventions.REALTIME_OPERATORS
    suspension_keywords: tuple[str, ...] = FeedConventions.SUSPENSION_KEYWORDS
    identifier_aliases: tuple[tuple[str, str], ...] = FeedConventions.IDENTIFIER_ALIASES
    excluded_through_services: tuple[tuple[str, str], ...] = FeedConventions.EXCLUDED_THROUGH_SERVICES

    @classmethod
    def create_default(cls) -> SimulationConfiguration:
        """Create the realtime configuration with standard vehicle envelopes."""
        return cls(
            train_limits=MotionLimits.from_kilometers_per_hour(
                TrainMotionDefaults.MAXIMUM_SPEED_KMPH,
                TrainMotionDefaults.ACCELERATION_KMPH_PER_SECOND,
            ),
            flight_limits=MotionLimits.from_kilometers_per_hour(
                FlightMotionDefaults.MAXIMUM_SPEED_KMPH,
                FlightMotionDefaults.ACCELERATION_KMPH_PER_SECOND,
            ),
        )

    @classmethod
    def for_demonstration(
        cls,
        time_factor: float = TrainMotionDefaults.DEMONSTRATION_TIME_FACTOR,
    ) -> SimulationConfiguration:
        """Create a non-realtime configuration where trains run ``time_factor`` times faster."""
        default = cls.create_default()
        return replace(
            default,
            train_limits=MotionLimits.from_kilometers_per_hour(
                TrainMotionDefaults.MAXIMUM_SPEED_KMPH,
                TrainMotionDefaults.ACCELERATION_KMPH_PER_SECOND,
                time_factor,
            ),
        )


# =============================================================================
# Paths
# =============================================================================


@dataclass(frozen=True)
class DistanceTableEntry:
    """Cumulative distance table row for the segment starting at a vertex."""

    distance_meters: float
    bearing_degrees: float
    grade_per_mille: float
    pitch_radians: float


@dataclass(frozen=True, eq=False)
class RoutePath:
    """Path geometry with its cumulative distance table.

    ``coordinates`` has shape (n, 3) holding longitude, latitude and altitude
    in meters; ``distance_table`` has shape (n, 4) holding distance from
    start, bearing, grade and pitch of the segment beginning at each vertex.
    """

    route_id: str
    coordinates: NDArray[np.floating[Any]]
    distance_table: NDArray[np.floating[Any]]
    station_offsets: tuple[float, ...] = ()

    @property
    def vertex_count(self) -> int:
        """Number of vertices of the path."""
        return int(self.coordinates.shape[0])

    @property
    def total_distance(self) -> float:
        """Length of the path in meters."""
        return float(self.distance_table[-1, 0])

    @property
    def cumulative_distances(self) -> NDArray[np.floating[Any]]:
        """Distance column of the table."""
        return self.distance_table[:, 0]

    def distance_entry(self, index: int) -> DistanceTableEntry:
        """Return a row of the distance table."""
        distance, bearing, grade, pitch = self.distance_table[index]
        return DistanceTableEntry(float(distance), float(bearing), float(grade), float(pitch))


@dataclass(frozen=True)
class RailwayDefinition:
    """Parsed railway record: station order plus line geometry."""

    railway_id: str
    stations: tuple[str, ...]
    coordinates: tuple[tuple[float, ...], ...]
    station_offsets: tuple[float, ...]
    ascending_direction: str
    car_composition: int = 1


@dataclass(frozen=True)
class FlightRouteDefinition:
    """Parsed flight corridor record keyed by route identifier (e.g. ``HND.16R.Dep``)."""

    route_id: str
    coordinates: tuple[tuple[float, ...], ...]


@dataclass(eq=False)
class Railway:
    """A railway with its built path and current operational notice."""

    definition: RailwayDefinition
    path: RoutePath
    status: str | None = None
    status_text: str | None = None

    @property
    def railway_id(self) -> str:
        """Identifier of the railway."""
        return self.definition.railway_id

    @property
    def stations(self) -> tuple[str, ...]:
        """Stations in ascending order."""
        return self.definition.stations

    @property
    def is_suspended(self) -> bool:
        """Whether a suspension notice is in effect."""
        return self.status is not None

    def direction_of(self, rail_direction: str | None) -> int:
        """Return +1 for the ascending direction, -1 otherwise."""
        return 1 if rail_direction == self.definition.ascending_direction else -1


# =============================================================================
# Timetable and live feed records
# =============================================================================


@dataclass(frozen=True)
class TimetableStop:
    """A stop of a timetable; times are local "HH:MM" strings."""

    station: str
    departure: str | None = None
    arrival: str | None = None


@dataclass(frozen=True)
class TimetableEntry:
    """Parsed timetable record of one train leg."""

    train_id: str
    timetable_id: str
    railway_id: str
    rail_direction: str
    stops: tuple[TimetableStop, ...]
    train_type: str | None = None
    train_number: str | None = None
    origin: tuple[str, ...] = ()
    destination: tuple[str, ...] = ()
    previous_timetable_ids: tuple[str, ...] = ()
    next_timetable_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class LiveTrainRecord:
    """Parsed live train record."""

    train_id: str
    railway_id: str
    operator: str | None = None
    train_number: str | None = None
    train_type: str | None = None
    rail_direction: str | None = None
    delay_seconds: float | None = None
    car_composition: int | None = None
    origin_stations: tuple[str, ...] = ()
    destination_stations: tuple[str, ...] = ()
    from_station: str | None = None
    to_station: str | None = None
    reported_at: str | None = None


@dataclass(frozen=True)
class RailwayNotice:
    """Operational information text published for a railway."""

    railway_id: str
    operator: str
    status: str | None = None
    text: str | None = None


@dataclass(frozen=True)
class LiveTrainSnapshot:
    """Full-replace live train snapshot of one poll."""

    records: tuple[LiveTrainRecord, ...] = ()
    notices: tuple[RailwayNotice, ...] = ()


@dataclass(frozen=True)
class LiveFlightRecord:
    """Parsed live arrival or departure record; times are local "HH:MM" strings."""

    flight_id: str
    flight_numbers: tuple[str, ...] = ()
    airline: str | None = None
    operator: str | None = None
    status: str | None = None
    departure_airport: str | None = None
    arrival_airport: str | None = None
    origin_airport: str | None = None
    destination_airport: str | None = None
    scheduled_departure: str | None = None
    estimated_departure: str | None = None
    actual_departure: str | None = None
    scheduled_arrival: str | None = None
    estimated_arrival: str | None = None
    actual_arrival: str | None = None
    reported_at: str | None = None


@dataclass(frozen=True)
class LiveFlightSnapshot:
    """Full-replace live flight snapshot with the active runway pattern."""

    landing_runways: tuple[str, ...] = ()
    departure_runways: tuple[str, ...] = ()
    records: tuple[LiveFlightRecord, ...] = ()

    @property
    def runway_pattern(self) -> str:
        """Compact description of the active runways."""
        return "/".join(self.landing_runways) + " " + "/".join(self.departure_runways)


# =============================================================================
# Emitted poses and statuses
# =============================================================================


@dataclass(frozen=True)
class PoseSample:
    """Sampled pose of one car or aircraft body."""

    longitude: float
    latitude: float
    altitude: float
    bearing: float
    pitch: float

    @property
    def coordinate(self) -> tuple[float, float]:
        """Longitude and latitude."""
        return (self.longitude, self.latitude)

    def is_finite(self) -> bool:
        """Check that all components are finite numbers."""
        return all(math.isfinite(value) for value in (self.longitude, self.latitude, self.altitude, self.bearing, self.pitch))


@dataclass(frozen=True)
class EntityPose:
    """Pose snapshot of an active entity at a point in time."""

    entity_id: str
    kind: EntityKind
    time: float
    cars: tuple[PoseSample, ...]
    standing: bool

    @property
    def lead(self) -> PoseSample:
        """Pose of the first car."""
        return self.cars[0]


@dataclass(frozen=True)
class TrainStatusPayload:
    """UI-facing status of a train."""

    train_id: str
    railway_id: str
    train_type: str | None
    train_number: str | None
    destination: str | None
    rail_direction: str | None
    standing: bool
    departure_station: str | None
    departure_time: str | None
    arrival_station: str | None
    arrival_time: str | None
    delay: float
    is_ad_hoc: bool
    railway_status: str | None = None
    railway_status_text: str | None = None


@dataclass(frozen=True)
class FlightStatusPayload:
    """UI-facing status of a flight."""

    flight_id: str
    flight_numbers: tuple[str, ...]
    airline: str | None
    is_departure: bool
    counterpart_airport: str | None
    status: str | None
    scheduled_time: str | None
    estimated_time: str | None
    actual_time: str | None
    standing: bool

    @property
    def delayed(self) -> bool:
        """Whether the effective time differs from the scheduled one."""
        effective = self.estimated_time or self.actual_time
        return bool(effective) and effective != self.scheduled_time


@dataclass(frozen=True)
class TrackingReference:
    """Reference from the UI to one car of an entity."""

    entity_id: str
    car_index: int = 0


# =============================================================================
# Lifecycle-owned entities
# =============================================================================


@dataclass(eq=False)
class Train:
    """A train leg owned by the train lifecycle state machine.

    A train without ``stops`` is ad hoc: it was synthesized from live data
    or injected manually and runs between its reported from/to stations.
    ``section_length`` is signed; its sign is the travel direction.
    """

    train_id: str
    railway: Railway
    direction: int
    train_type: str | None = None
    train_number: str | None = None
    rail_direction: str | None = None
    timetable_id: str | None = None
    stops: list[TimetableStop] | None = None
    origin: tuple[str, ...] = ()
    destination: tuple[str, ...] = ()
    from_station: str | None = None
    to_station: str | None = None
    delay: float = 0.0
    car_composition: int = 1
    start_time: float = 0.0
    end_time: float = math.inf
    previous_train: Train | None = field(default=None, repr=False)
    next_train: Train | None = field(default=None, repr=False)
    shuttle: bool = False
    last_reported: float | None = None
    state: TrainState = TrainState.INACTIVE
    timetable_index: int | None = None
    section_index: int | None = None
    section_length: int = 0
    departure_station: str | None = None
    departure_time: str | None = None
    arrival_station: str | None = None
    arrival_time: str | None = None
    offset: float = 0.0
    interval: float = 0.0
    progress: float | None = None
    standing_is_final: bool = False
    task_id: int | None = None
    last_pose: EntityPose | None = field(default=None, repr=False)

    @property
    def is_ad_hoc(self) -> bool:
        """Whether the train runs without a timetable."""
        return self.stops is None

    @property
    def is_active(self) -> bool:
        """Whether the train is standing or running."""
        return self.state in (TrainState.STANDING, TrainState.RUNNING)

    @property
    def segment_index(self) -> int | None:
        """Index of the station-to-station segment occupied, independent of direction."""
        if self.section_index is None:
            return None
        return min(self.section_index, self.section_index + self.section_length)


@dataclass(eq=False)
class Flight:
    """A flight owned by the flight lifecycle state machine.

    ``base`` is the unconstrained reference time used by the spacing queue;
    ``standing``, ``start`` and ``end`` bound the visible lifetime.
    """

    flight_id: str
    route_id: str
    runway: str
    path: RoutePath
    flight_numbers: tuple[str, ...] = ()
    airline: str | None = None
    departure_airport: str | None = None
    arrival_airport: str | None = None
    origin_airport: str | None = None
    destination_airport: str | None = None
    scheduled_departure: str | None = None
    estimated_departure: str | None = None
    actual_departure: str | None = None
    scheduled_arrival: str | None = None
    estimated_arrival: str | None = None
    actual_arrival: str | None = None
    status: str | None = None
    limits: MotionLimits | None = None
    start: float = 0.0
    standing: float = 0.0
    base: float = 0.0
    end: float = 0.0
    state: FlightState = FlightState.SCHEDULED
    progress: float | None = None
    task_id: int | None = None
    last_pose: EntityPose | None = field(default=None, repr=False)

    @property
    def departure_time(self) -> str | None:
        """Effective departure time: estimated, actual, then scheduled."""
        return self.estimated_departure or self.actual_departure or self.scheduled_departure

    @property
    def arrival_time(self) -> str | None:
        """Effective arrival time: estimated, actual, then scheduled."""
        return self.estimated_arrival or self.actual_arrival or self.scheduled_arrival

    @property
    def is_departure(self) -> bool:
        """Whether the flight leaves from the modeled airport."""
        return self.destination_airport is not None

    @property
    def is_active(self) -> bool:
        """Whether the flight is visible."""
        return self.state in (FlightState.STANDING_PRE, FlightState.RUNNING, FlightState.STANDING_POST)
