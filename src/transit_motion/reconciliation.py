"""Typed live-data patches and their merge rules.

Only the fields listed on a patch are eligible for reconciliation. A field
left as ``None`` on a patch means "not reported" and never overwrites the
timetable value.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from transit_motion.constants import FeedConventions
from transit_motion.types import FlightScheduleStatus
from transit_motion.utilities import parse_time_string

if TYPE_CHECKING:
    from transit_motion.data_classes import Flight, LiveFlightRecord, LiveTrainRecord, Train


@dataclass(frozen=True)
class TrainPatch:
    """Fields of a live train record that may override timetable state."""

    delay: float | None = None
    car_composition: int | None = None
    train_type: str | None = None
    origin: tuple[str, ...] | None = None
    destination: tuple[str, ...] | None = None
    from_station: str | None = None
    to_station: str | None = None

    @classmethod
    def from_live_record(cls, record: LiveTrainRecord) -> TrainPatch:
        """Create a patch from a live record, converting the delay to milliseconds."""
        return cls(
            delay=record.delay_seconds * 1000 if record.delay_seconds is not None else None,
            car_composition=record.car_composition or None,
            train_type=record.train_type or None,
            origin=record.origin_stations or None,
            destination=record.destination_stations or None,
            from_station=record.from_station,
            to_station=record.to_station,
        )


def truncate_timetable(train: Train, origin: tuple[str, ...] | None, destination: tuple[str, ...] | None) -> bool:
    """Cut the train's stops to the live-reported origin and destination.

    The new first stop loses its arrival and the new last stop keeps only
    an arrival time.

    Returns:
        Whether the origin or destination changed.
    """
    changed = False

    if train.origin and origin and train.origin[0] != origin[0]:
        train.origin = origin
        if train.stops:
            for index, stop in enumerate(train.stops):
                if stop.station == origin[0]:
                    train.stops[index] = replace(stop, arrival=None)
                    del train.stops[:index]
                    break
        changed = True

    if train.destination and destination and train.destination[0] != destination[0]:
        train.destination = destination
        if train.stops:
            for index, stop in enumerate(train.stops):
                if stop.station == destination[0]:
                    train.stops[index] = replace(stop, arrival=stop.arrival or stop.departure, departure=None)
                    del train.stops[index + 1 :]
                    break
        changed = True

    return changed


def apply_train_patch(train: Train, patch: TrainPatch) -> bool:
    """Merge a patch into a train.

    Delay, car composition, category and a truncated route mark the train
    changed; an active changed train has to be restarted by the caller.
    Ad hoc trains also take the reported from/to stations, which do not
    count as a change.

    Returns:
        Whether the train changed in a way that invalidates its motion.
    """
    changed = False

    delay = max(patch.delay, 0.0) if patch.delay is not None else None
    if delay is not None and train.delay != delay:
        train.delay = delay
        changed = True
    if patch.car_composition is not None and train.car_composition != patch.car_composition:
        train.car_composition = patch.car_composition
        changed = True
    if patch.train_type is not None and train.train_type != patch.train_type:
        train.train_type = patch.train_type
        changed = True
    if truncate_timetable(train, patch.origin, patch.destination):
        changed = True

    if train.is_ad_hoc:
        train.from_station = patch.from_station
        train.to_station = patch.to_station

    return changed


@dataclass(frozen=True)
class FlightTimePatch:
    """Time fields of a live flight record; each poll replaces all six."""

    scheduled_departure: str | None = None
    estimated_departure: str | None = None
    actual_departure: str | None = None
    scheduled_arrival: str | None = None
    estimated_arrival: str | None = None
    actual_arrival: str | None = None

    @classmethod
    def from_live_record(cls, record: LiveFlightRecord) -> FlightTimePatch:
        return cls(
            scheduled_departure=record.scheduled_departure,
            estimated_departure=record.estimated_departure,
            actual_departure=record.actual_departure,
            scheduled_arrival=record.scheduled_arrival,
            estimated_arrival=record.estimated_arrival,
            actual_arrival=record.actual_arrival,
        )


def apply_flight_patch(flight: Flight, patch: FlightTimePatch) -> bool:
    """Replace a flight's time fields.

    Returns:
        Whether the effective departure or arrival time changed.
    """
    previous = (flight.departure_time, flight.arrival_time)
    flight.scheduled_departure = patch.scheduled_departure
    flight.estimated_departure = patch.estimated_departure
    flight.actual_departure = patch.actual_departure
    flight.scheduled_arrival = patch.scheduled_arrival
    flight.estimated_arrival = patch.estimated_arrival
    flight.actual_arrival = patch.actual_arrival
    return previous != (flight.departure_time, flight.arrival_time)


def _compare_times(effective: str | None, scheduled: str | None) -> str | None:
    if not effective or not scheduled:
        return None
    effective_time = parse_time_string(effective)
    scheduled_time = parse_time_string(scheduled)
    if effective_time < scheduled_time:
        return FlightScheduleStatus.NEW_TIME.value
    if effective_time > scheduled_time:
        return FlightScheduleStatus.DELAYED.value
    return FlightScheduleStatus.ON_TIME.value


def derive_flight_status(flight: Flight, reported_status: str | None) -> str | None:
    """Status shown for a flight.

    Without a reported status, arrivals are compared with their scheduled
    arrival; pre-departure statuses are replaced by comparing the effective
    departure with the scheduled one. Other statuses pass through.
    """
    if not reported_status:
        return _compare_times(flight.arrival_time, flight.scheduled_arrival)
    if reported_status in FeedConventions.PRE_DEPARTURE_STATUSES:
        return _compare_times(flight.departure_time, flight.scheduled_departure) or reported_status
    return reported_status
