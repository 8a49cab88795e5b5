"""Simulation context.

A :class:`TransitSimulation` owns every registry, the frame scheduler and
both lifecycle machines of one independent simulation. The host drives it by
calling :meth:`TransitSimulation.tick` with the current time; live snapshots
are integrated between ticks, never during one.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

import pandas as pd

from transit_motion.constants import FeedConventions
from transit_motion.data_classes import Flight, SimulationConfiguration, TrackingReference, Train
from transit_motion.exceptions import (
    FeedUnavailableError,
    MalformedPathError,
    ReconciliationConflictError,
    SimulationInitializationError,
)
from transit_motion.flights import (
    FlightLifecycleMachine,
    FlightScheduleCalculator,
    RunwaySpacingQueue,
    is_flight_activatable,
)
from transit_motion.geometry import PathDistanceTableBuilder, PathGeometrySampler
from transit_motion.reconciliation import (
    FlightTimePatch,
    TrainPatch,
    apply_flight_patch,
    apply_train_patch,
    derive_flight_status,
)
from transit_motion.runways import RunwayConfiguration, derive_runway_key
from transit_motion.scheduler import FrameScheduler
from transit_motion.timetable import TimetableLoader, TrainRegistry, is_activatable
from transit_motion.trains import TrainLifecycleMachine
from transit_motion.types import FlightState, TrainState
from transit_motion.utilities import ServiceClock

if TYPE_CHECKING:
    from collections.abc import Iterable

    from transit_motion.data_classes import (
        FlightRouteDefinition,
        LiveFlightRecord,
        LiveFlightSnapshot,
        LiveTrainRecord,
        LiveTrainSnapshot,
        Railway,
        RailwayDefinition,
        RoutePath,
        TimetableEntry,
    )
    from transit_motion.types import PoseSinkInterface, TransitDataProviderInterface

logger = logging.getLogger(__name__)

PROVIDER_ERRORS = (FeedUnavailableError, OSError, ValueError)

STATUS_FRAME_COLUMNS = [
    "entity_id",
    "kind",
    "route_id",
    "state",
    "standing",
    "longitude",
    "latitude",
    "altitude",
    "bearing",
    "delay",
    "status",
]


class TransitSimulation:
    """One independent train and flight simulation."""

    def __init__(
        self,
        railways: Iterable[RailwayDefinition] = (),
        flight_routes: Iterable[FlightRouteDefinition] = (),
        configuration: SimulationConfiguration | None = None,
        provider: TransitDataProviderInterface | None = None,
        sink: PoseSinkInterface | None = None,
        runway_configuration: RunwayConfiguration | None = None,
        realtime: bool = True,
    ) -> None:
        """Initialize the simulation and build every path.

        Args:
            railways: Parsed railway records.
            flight_routes: Parsed flight corridor records.
            configuration: Timings and limits; the realtime defaults when omitted.
            provider: Source of timetables and live snapshots, polled by :meth:`tick`.
            sink: Receiver of poses and statuses.
            runway_configuration: Runway decision table for flights.
            realtime: Whether timetables and live data drive the simulation.

        Raises:
            SimulationInitializationError: If no railway or flight route has valid geometry.
        """
        self.configuration = configuration or SimulationConfiguration.create_default()
        self.provider = provider
        self.sink = sink
        self.runway_configuration = runway_configuration or RunwayConfiguration()
        self.realtime = realtime

        builder = PathDistanceTableBuilder()
        self.railways: dict[str, Railway] = {}
        self.flight_routes: dict[str, RoutePath] = {}
        for definition in railways:
            try:
                self.railways[definition.railway_id] = builder.build_railway(definition)
            except MalformedPathError as error:
                logger.warning("Skipping railway: %s", error)
        for route in flight_routes:
            try:
                self.flight_routes[route.route_id] = builder.build_flight_route(route)
            except MalformedPathError as error:
                logger.warning("Skipping flight route: %s", error)
        if not self.railways and not self.flight_routes:
            raise SimulationInitializationError("No valid railway or flight route geometry is available")

        self.clock = ServiceClock(
            self.configuration.timezone,
            self.configuration.day_boundary_hour,
            self.configuration.precision_delay,
        )
        self.scheduler = FrameScheduler(self.configuration.default_frame_rate_hz)
        self.sampler = PathGeometrySampler()

        self.trains = TrainRegistry()
        self.flights: dict[str, Flight] = {}
        self.live_train_ids: set[str] = set()
        self.feed_timestamps: dict[str, str] = {}
        self.marked: TrackingReference | None = None
        self.tracked: TrackingReference | None = None

        self.train_machine = TrainLifecycleMachine(
            self.scheduler,
            self.sampler,
            self.clock,
            self.configuration,
            sink=sink,
            live_train_ids=self.live_train_ids,
            on_stop=self._on_train_stopped,
            on_handoff=self._on_train_handed_off,
        )
        self.flight_machine = FlightLifecycleMachine(
            self.scheduler,
            self.sampler,
            self.configuration,
            sink=sink,
            on_stop=self._on_flight_stopped,
        )
        self.timetable_loader = TimetableLoader(self.railways, self.clock, self.configuration)
        self.flight_calculator = FlightScheduleCalculator(self.configuration, self.clock)
        self.spacing_queue = RunwaySpacingQueue(self.configuration.minimum_flight_interval)

        self.runway_pattern: str | None = None
        self.pattern_changed_at = -math.inf
        self.service_date: pd.Timestamp | None = None
        self.last_tick: float | None = None
        self.last_refresh: float | None = None
        self.last_timetable_attempt: float | None = None

    # ===== Cadences =====

    def tick(self, now: float) -> None:
        """Advance the simulation to ``now``.

        Resets all entities after a stall, reloads the timetable when a new
        service day begins, polls live data once per refresh interval and
        finally runs the frame scheduler.
        """
        if self.last_tick is not None and now - self.last_tick > self.configuration.stall_reset_threshold:
            logger.info("No tick for %.0f ms; resetting all entities", now - self.last_tick)
            self.stop_all(now)
            self.last_refresh = None
            if not self.realtime:
                self.refresh_trains(now)
        self.last_tick = now

        if self.realtime:
            new_service_day = self.service_date != self.clock.service_date(now)
            if self.provider is not None and new_service_day and self._timetable_retry_due(now):
                self.reload_timetable(now)
            if self._refresh_due(now):
                self.last_refresh = now - self.configuration.precision_delay
                self.poll(now)

        self.scheduler.tick(now)

    def run(self, start_time: float, duration: float, time_step: float) -> float:
        """Tick repeatedly from ``start_time`` over ``duration`` milliseconds.

        Returns:
            Time of the last tick.
        """
        now = start_time
        end_time = start_time + duration
        while now <= end_time:
            self.tick(now)
            now += time_step
        return now - time_step

    def _refresh_due(self, now: float) -> bool:
        if self.last_refresh is None:
            return True
        interval = self.configuration.refresh_interval
        return math.floor((now - self.configuration.precision_delay) / interval) != math.floor(self.last_refresh / interval)

    def _timetable_retry_due(self, now: float) -> bool:
        if self.last_timetable_attempt is None:
            return True
        return now - self.last_timetable_attempt >= self.configuration.refresh_interval

    def reload_timetable(self, now: float) -> bool:
        """Load the timetable of the current service day from the provider.

        A failed load is retried by :meth:`tick` once per refresh interval.

        Returns:
            Whether the timetable was loaded.
        """
        if self.provider is None:
            return False
        try:
            entries = self.provider.load_timetable(now)
        except PROVIDER_ERRORS as error:
            logger.warning("Timetable unavailable: %s", error)
            self.last_timetable_attempt = now
            return False
        self.last_timetable_attempt = None
        self.load_timetable(entries, now)
        return True

    def poll(self, now: float) -> None:
        """Integrate fresh live snapshots; a failed poll leaves entities on stale data."""
        if self.provider is None:
            self.refresh_trains(now)
            self.refresh_flights(now)
            return

        try:
            train_snapshot = self.provider.fetch_train_snapshot(now)
        except PROVIDER_ERRORS as error:
            logger.warning("Live train data unavailable: %s", error)
            self.refresh_trains(now)
        else:
            self.apply_train_snapshot(train_snapshot, now)

        try:
            flight_snapshot = self.provider.fetch_flight_snapshot(now)
        except PROVIDER_ERRORS as error:
            logger.warning("Live flight data unavailable: %s", error)
            self.refresh_flights(now)
        else:
            self.apply_flight_snapshot(flight_snapshot, now)

    # ===== Trains =====

    def load_timetable(self, entries: Iterable[TimetableEntry], now: float) -> None:
        """Replace the timetable; running timetable trains stop, ad hoc trains are kept."""
        ad_hoc_trains = [train for train in self.trains if train.is_ad_hoc]
        for train in self.trains.active_trains():
            if not train.is_ad_hoc:
                self.train_machine.stop(train, now)

        registry = self.timetable_loader.load(entries, now)
        for train in ad_hoc_trains:
            if train.train_id not in registry:
                registry.add(train)
        self.trains = registry
        self.service_date = self.clock.service_date(now)
        self.last_refresh = None
        logger.info("Timetable for %s loaded (%s)", self.service_date.date(), self.clock.calendar_name(now))

    def refresh_trains(self, now: float) -> None:
        """Start every train whose activation window contains ``now``."""
        for train in self.trains:
            if is_activatable(train, now, train.train_id in self.live_train_ids):
                if self.train_machine.start(train, now):
                    self._validate_references(train)

    def apply_train_snapshot(self, snapshot: LiveTrainSnapshot, now: float) -> None:
        """Reconcile a full-replace live train snapshot, then refresh trains.

        Active trains whose delay, composition, category or route changed are
        torn down and restarted from the corrected state; tracking references
        survive when the car still exists.
        """
        self.live_train_ids.clear()
        seen: set[str] = set()

        for record in snapshot.records:
            if record.train_id in seen:
                conflict = ReconciliationConflictError(f"Train {record.train_id!r} reported twice; keeping the latest record")
                logger.warning("%s", conflict)
            seen.add(record.train_id)

            train = self.trains.find(record.train_id, self.configuration.identifier_aliases)
            if train is not None:
                self._reconcile_train(train, record, now)
            else:
                self._synthesize_ad_hoc_train(record, now)

            if record.operator and record.reported_at:
                self.feed_timestamps[record.operator] = record.reported_at

        self._apply_railway_notices(snapshot, now)
        self._prune_ad_hoc_trains(now)
        self.refresh_trains(now)

    def _reconcile_train(self, train: Train, record: LiveTrainRecord, now: float) -> None:
        self.live_train_ids.add(train.train_id)
        train.last_reported = now
        if train.is_ad_hoc:
            train.end_time = now + self.configuration.ad_hoc_retention

        changed = apply_train_patch(train, TrainPatch.from_live_record(record))
        if train.is_ad_hoc:
            train.start_time = min(train.start_time, now - train.delay)
        if changed and train.is_active:
            logger.debug("Restarting train %s with live data", train.train_id)
            self.train_machine.stop(train, now)

    def _synthesize_ad_hoc_train(self, record: LiveTrainRecord, now: float) -> None:
        railway = self.railways.get(record.railway_id)
        if railway is None:
            logger.debug("Ignoring live train %s on unknown railway %s", record.train_id, record.railway_id)
            return
        if self._is_excluded_through_service(record):
            return

        # Activation windows are shifted by the delay; the train is due now
        delay = record.delay_seconds * 1000 if record.delay_seconds and record.delay_seconds > 0 else 0.0
        train = Train(
            train_id=record.train_id,
            railway=railway,
            direction=railway.direction_of(record.rail_direction),
            train_type=record.train_type,
            train_number=record.train_number,
            rail_direction=record.rail_direction,
            timetable_id=record.train_id + FeedConventions.AD_HOC_TIMETABLE_SUFFIX,
            stops=None,
            origin=record.origin_stations,
            destination=record.destination_stations,
            from_station=record.from_station,
            to_station=record.to_station,
            delay=delay,
            car_composition=record.car_composition or railway.definition.car_composition,
            start_time=now - delay,
            end_time=now + self.configuration.ad_hoc_retention,
            last_reported=now,
        )
        self.trains.add(train)
        self.live_train_ids.add(train.train_id)
        logger.debug("Synthesized ad hoc train %s", train.train_id)

    def _is_excluded_through_service(self, record: LiveTrainRecord) -> bool:
        for railway_id, foreign_prefix in self.configuration.excluded_through_services:
            if record.railway_id != railway_id:
                continue
            endpoints = record.origin_stations[:1] + record.destination_stations[:1]
            if any(station.startswith(foreign_prefix) for station in endpoints):
                return True
        return False

    def _apply_railway_notices(self, snapshot: LiveTrainSnapshot, now: float) -> None:
        for railway in self.railways.values():
            railway.status = None
            railway.status_text = None

        for notice in snapshot.notices:
            railway = self.railways.get(notice.railway_id)
            if railway is None or not notice.status:
                continue
            if notice.operator not in self.configuration.realtime_operators:
                continue
            if not any(keyword in notice.status for keyword in self.configuration.suspension_keywords):
                continue

            railway.status = notice.status
            railway.status_text = notice.text
            for train in self.trains.active_trains():
                if train.railway is railway and train.train_id not in self.live_train_ids:
                    self.train_machine.stop(train, now)

    def _prune_ad_hoc_trains(self, now: float) -> None:
        retention = self.configuration.ad_hoc_retention
        for train in self.trains:
            if not train.is_ad_hoc or train.shuttle:
                continue
            if train.last_reported is None or now - train.last_reported >= retention:
                if train.is_active:
                    self.train_machine.stop(train, now, TrainState.TERMINATED)
                self.trains.remove(train)

    def inject_train(
        self,
        railway_id: str,
        now: float,
        direction: int = 1,
        section_index: int | None = None,
        car_composition: int | None = None,
        train_id: str | None = None,
    ) -> Train:
        """Start a shuttle train that runs back and forth over a whole railway.

        Raises:
            KeyError: If the railway is unknown.
        """
        railway = self.railways[railway_id]
        identifier = train_id or f"{railway_id}.Shuttle.{len(self.trains)}"
        train = Train(
            train_id=identifier,
            railway=railway,
            direction=1 if direction >= 0 else -1,
            section_index=section_index,
            car_composition=car_composition or railway.definition.car_composition,
            shuttle=True,
        )
        self.trains.add(train)
        self.train_machine.start(train, now)
        return train

    def start_demonstration(self, now: float) -> list[Train]:
        """Inject one shuttle from each end of every railway."""
        injected = []
        for railway_id, railway in self.railways.items():
            last_station = len(railway.stations) - 1
            injected.append(self.inject_train(railway_id, now, direction=1, section_index=0))
            injected.append(self.inject_train(railway_id, now, direction=-1, section_index=last_station))
        return injected

    # ===== Flights =====

    def apply_flight_snapshot(self, snapshot: LiveFlightSnapshot, now: float) -> None:
        """Reconcile a live flight snapshot, re-space runway queues and refresh flights."""
        pattern_name = snapshot.runway_pattern
        if pattern_name != self.runway_pattern:
            logger.info("Runway pattern changed from %s to %s", self.runway_pattern, pattern_name)
            self.runway_pattern = pattern_name
            self.pattern_changed_at = now
            for flight in list(self.flights.values()):
                if flight.is_active:
                    self.flight_machine.stop(flight, now)

        pattern = self.runway_configuration.resolve_pattern(snapshot.landing_runways, snapshot.departure_runways)
        queued = []
        for record in snapshot.records:
            flight = self.flights.get(record.flight_id)
            route_id = None if flight is not None and flight.is_active else self.runway_configuration.resolve_route_id(record, pattern)

            if flight is None:
                if record.status == FeedConventions.CANCELLED_STATUS:
                    continue
                flight = self._create_flight(record, route_id)
                if flight is None:
                    continue
                self.flights[flight.flight_id] = flight
            elif route_id is not None and route_id != flight.route_id and route_id in self.flight_routes:
                flight.route_id = route_id
                flight.runway = derive_runway_key(route_id)
                flight.path = self.flight_routes[route_id]

            apply_flight_patch(flight, FlightTimePatch.from_live_record(record))
            flight.status = derive_flight_status(flight, record.status)
            if not self.flight_calculator.assign_timing(flight, now):
                continue
            if record.operator and record.reported_at:
                self.feed_timestamps[record.operator] = record.reported_at
            if flight.base < self.pattern_changed_at:
                continue
            queued.append(flight)

        self.spacing_queue.apply(queued)
        self.refresh_flights(now)

    def _create_flight(self, record: LiveFlightRecord, route_id: str | None) -> Flight | None:
        if route_id is None or route_id not in self.flight_routes:
            return None
        return Flight(
            flight_id=record.flight_id,
            route_id=route_id,
            runway=derive_runway_key(route_id),
            path=self.flight_routes[route_id],
            flight_numbers=record.flight_numbers,
            airline=record.airline,
            departure_airport=record.departure_airport,
            arrival_airport=record.arrival_airport,
            origin_airport=record.origin_airport,
            destination_airport=record.destination_airport,
        )

    def refresh_flights(self, now: float) -> None:
        """Start every flight whose visible window contains ``now``."""
        for flight in list(self.flights.values()):
            if flight.base < self.pattern_changed_at:
                continue
            if is_flight_activatable(flight, now):
                self.flight_machine.start(flight, now)

    # ===== Common =====

    def stop_all(self, now: float) -> None:
        """Stop every active train and flight; they restart at the next refresh."""
        for train in self.trains.active_trains():
            self.train_machine.stop(train, now)
        for flight in list(self.flights.values()):
            if flight.is_active:
                self.flight_machine.stop(flight, now)

    def mark(self, entity_id: str, car_index: int = 0) -> None:
        """Set the marked (hovered) reference."""
        self.marked = TrackingReference(entity_id, car_index)

    def track(self, entity_id: str, car_index: int = 0) -> None:
        """Set the tracked (followed) reference."""
        self.tracked = TrackingReference(entity_id, car_index)

    def _move_references(self, source_id: str, target: Train | None) -> None:
        def moved(reference: TrackingReference | None) -> TrackingReference | None:
            if reference is None or reference.entity_id != source_id:
                return reference
            if target is None or reference.car_index >= target.car_composition:
                return None
            return TrackingReference(target.train_id, reference.car_index)

        self.marked = moved(self.marked)
        self.tracked = moved(self.tracked)

    def _validate_references(self, train: Train) -> None:
        self._move_references(train.train_id, train)

    def _clear_references(self, entity_id: str) -> None:
        if self.marked is not None and self.marked.entity_id == entity_id:
            self.marked = None
        if self.tracked is not None and self.tracked.entity_id == entity_id:
            self.tracked = None

    def _on_train_stopped(self, train: Train, final_state: TrainState) -> None:
        if final_state is TrainState.TERMINATED:
            self._clear_references(train.train_id)
            if train.is_ad_hoc and not train.shuttle:
                self.trains.remove(train)

    def _on_train_handed_off(self, train: Train, continuation: Train | None) -> None:
        self._move_references(train.train_id, continuation)

    def _on_flight_stopped(self, flight: Flight, final_state: FlightState) -> None:
        if final_state is FlightState.TERMINATED:
            self._clear_references(flight.flight_id)

    def status_frame(self) -> pd.DataFrame:
        """One row per active entity with its latest pose and status."""
        rows = []
        for train in self.trains.active_trains():
            lead = train.last_pose.lead if train.last_pose is not None else None
            rows.append(
                {
                    "entity_id": train.train_id,
                    "kind": "train",
                    "route_id": train.railway.railway_id,
                    "state": train.state.value,
                    "standing": train.state is TrainState.STANDING,
                    "longitude": lead.longitude if lead else None,
                    "latitude": lead.latitude if lead else None,
                    "altitude": lead.altitude if lead else None,
                    "bearing": lead.bearing if lead else None,
                    "delay": train.delay,
                    "status": train.railway.status,
                }
            )
        for flight in self.flights.values():
            if not flight.is_active:
                continue
            lead = flight.last_pose.lead if flight.last_pose is not None else None
            rows.append(
                {
                    "entity_id": flight.flight_id,
                    "kind": "flight",
                    "route_id": flight.route_id,
                    "state": flight.state.value,
                    "standing": flight.state is not FlightState.RUNNING,
                    "longitude": lead.longitude if lead else None,
                    "latitude": lead.latitude if lead else None,
                    "altitude": lead.altitude if lead else None,
                    "bearing": lead.bearing if lead else None,
                    "delay": None,
                    "status": flight.status,
                }
            )
        return pd.DataFrame(rows, columns=STATUS_FRAME_COLUMNS)
