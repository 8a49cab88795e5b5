"""Flight lifecycle state machine and runway spacing queue.

States::

    Scheduled -> StandingPre -> Running -> StandingPost -> Terminated

Departures stand on the apron before rolling, arrivals stand at the gate
after landing. The spacing queue keeps movements that share a runway at
least a minimum interval apart.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from typing import TYPE_CHECKING, Callable

from transit_motion.data_classes import EntityPose, FlightStatusPayload
from transit_motion.exceptions import NumericDegeneracyError
from transit_motion.motion import KinematicMotionProfileSolver
from transit_motion.types import EntityKind, FlightState

if TYPE_CHECKING:
    from collections.abc import Iterable

    from transit_motion.data_classes import Flight, SimulationConfiguration
    from transit_motion.geometry import PathGeometrySampler
    from transit_motion.scheduler import FrameScheduler
    from transit_motion.types import PoseSinkInterface
    from transit_motion.utilities import ServiceClock

logger = logging.getLogger(__name__)


class FlightScheduleCalculator:
    """Derives the start, standing, base and end instants of a flight."""

    def __init__(self, configuration: SimulationConfiguration, clock: ServiceClock) -> None:
        self.configuration = configuration
        self.clock = clock

    def assign_timing(self, flight: Flight, now: float) -> bool:
        """Set motion limits and timing from the flight's effective times.

        A known departure anchors the start of the roll; otherwise the
        arrival time is the moment the aircraft stops at the end of its
        approach, and the journey is computed backwards from it.

        Returns:
            Whether the flight has any usable time.
        """
        departure_time = flight.departure_time
        arrival_time = flight.arrival_time
        if not departure_time and not arrival_time:
            return False

        limits = self.configuration.flight_limits.for_arrival() if arrival_time else self.configuration.flight_limits
        flight.limits = limits
        duration = KinematicMotionProfileSolver(limits).flight_duration(flight.path.total_distance)
        standing_duration = self.configuration.standing_duration

        if departure_time:
            flight.start = flight.base = self.clock.resolve(departure_time, now)
            flight.standing = flight.start - standing_duration
            flight.end = flight.start + duration
        else:
            flight.start = flight.standing = self.clock.resolve(arrival_time or "", now) - duration
            flight.base = flight.start + duration - standing_duration
            flight.end = flight.start + duration + standing_duration
        return True


class RunwaySpacingQueue:
    """Enforces a minimum interval between flights that share a runway key."""

    def __init__(self, minimum_interval: float) -> None:
        self.minimum_interval = minimum_interval

    def apply(self, flights: Iterable[Flight]) -> dict[str, list[Flight]]:
        """Group flights by runway, sort by base time and push each one back if needed.

        Each flight's base is raised to at least the previous flight's base
        plus the minimum interval; the same shift is applied to its start,
        standing and end instants.

        Returns:
            The ordered queue of each runway key.
        """
        queues: dict[str, list[Flight]] = defaultdict(list)
        for flight in flights:
            queues[flight.runway].append(flight)

        for queue in queues.values():
            queue.sort(key=lambda flight: flight.base)
            latest = -math.inf
            for flight in queue:
                delay = max(flight.base, latest + self.minimum_interval) - flight.base
                if delay > 0:
                    self.shift(flight, delay)
                latest = flight.base

        return dict(queues)

    @staticmethod
    def shift(flight: Flight, delay: float) -> None:
        """Move all timing instants of a flight by ``delay`` milliseconds."""
        flight.start += delay
        flight.base += delay
        flight.standing += delay
        flight.end += delay


def is_flight_activatable(flight: Flight, now: float) -> bool:
    """Whether a scheduled flight's visible window contains ``now``."""
    return flight.state is FlightState.SCHEDULED and flight.standing <= now <= flight.end


class FlightLifecycleMachine:
    """Drives flights through their lifecycle on a frame scheduler."""

    def __init__(
        self,
        scheduler: FrameScheduler,
        sampler: PathGeometrySampler,
        configuration: SimulationConfiguration,
        sink: PoseSinkInterface | None = None,
        on_stop: Callable[[Flight, FlightState], None] | None = None,
    ) -> None:
        self.scheduler = scheduler
        self.sampler = sampler
        self.configuration = configuration
        self.sink = sink
        self.on_stop = on_stop

    def advance(self, flight: Flight, now: float) -> None:
        """Perform the next transition of ``flight`` at ``now``."""
        if flight.state is FlightState.STANDING_PRE:
            self._run(flight, now, max(now - flight.start, 0.0))
        elif flight.state is FlightState.RUNNING:
            self._stand_after_arrival(flight, now)
        elif flight.state is FlightState.STANDING_POST:
            self.stop(flight, now, FlightState.TERMINATED)
        else:
            self.start(flight, now)

    def start(self, flight: Flight, now: float) -> None:
        """Activate a flight, mid-roll if its start has already passed."""
        if now >= flight.start:
            self._run(flight, now, now - flight.start)
            return

        flight.state = FlightState.STANDING_PRE
        self._update_pose(flight, 0.0, now)
        self._publish_status(flight)
        flight.task_id = self.scheduler.schedule(
            completion_callback=lambda completed_at: self.advance(flight, completed_at),
            duration=flight.start - now,
        )

    def stop(self, flight: Flight, now: float, final_state: FlightState = FlightState.SCHEDULED) -> None:
        """Cancel the flight's task and remove it from the renderer."""
        self.scheduler.cancel(flight.task_id)
        flight.task_id = None
        flight.state = final_state
        if self.sink is not None:
            self.sink.remove_entity(flight.flight_id)
        logger.debug("Stopped flight %s (%s)", flight.flight_id, final_state.value)
        if self.on_stop is not None:
            self.on_stop(flight, final_state)

    def _run(self, flight: Flight, now: float, elapsed: float) -> None:
        limits = flight.limits or self.configuration.flight_limits
        profile = KinematicMotionProfileSolver(limits).solve_flight(flight.path.total_distance)
        anchor = now - elapsed
        flight.state = FlightState.RUNNING
        self._publish_status(flight)
        flight.task_id = self.scheduler.schedule(
            callback=lambda time_elapsed, _duration: self._update_pose(flight, profile.progress_at(time_elapsed), anchor + time_elapsed),
            completion_callback=lambda completed_at: self.advance(flight, completed_at),
            duration=profile.duration,
            start_offset=elapsed,
        )

    def _stand_after_arrival(self, flight: Flight, now: float) -> None:
        flight.state = FlightState.STANDING_POST
        self._update_pose(flight, 1.0, now)
        self._publish_status(flight)
        flight.task_id = self.scheduler.schedule(
            completion_callback=lambda completed_at: self.advance(flight, completed_at),
            duration=max(flight.end - now, 0.0),
        )

    def _update_pose(self, flight: Flight, progress: float, time: float) -> None:
        flight.progress = progress
        try:
            samples = self.sampler.sample(flight.path, progress * flight.path.total_distance)
        except NumericDegeneracyError as error:
            logger.warning("Skipping pose update of flight %s: %s", flight.flight_id, error)
            return

        pose = EntityPose(
            entity_id=flight.flight_id,
            kind=EntityKind.FLIGHT,
            time=time,
            cars=tuple(samples),
            standing=flight.state in (FlightState.STANDING_PRE, FlightState.STANDING_POST),
        )
        flight.last_pose = pose
        if self.sink is None:
            return
        self.sink.publish_pose(pose)
        if self.scheduler.is_active(flight.task_id):
            visible = self.sink.is_visible(pose)
            self.scheduler.set_frame_rate(flight.task_id, None if visible else self.configuration.off_screen_frame_rate_hz)

    def build_status(self, flight: Flight) -> FlightStatusPayload:
        """UI-facing status of a flight."""
        if flight.is_departure:
            scheduled, estimated, actual = flight.scheduled_departure, flight.estimated_departure, flight.actual_departure
            counterpart = flight.destination_airport
        else:
            scheduled, estimated, actual = flight.scheduled_arrival, flight.estimated_arrival, flight.actual_arrival
            counterpart = flight.origin_airport
        return FlightStatusPayload(
            flight_id=flight.flight_id,
            flight_numbers=flight.flight_numbers,
            airline=flight.airline,
            is_departure=flight.is_departure,
            counterpart_airport=counterpart,
            status=flight.status,
            scheduled_time=scheduled,
            estimated_time=estimated,
            actual_time=actual,
            standing=flight.state in (FlightState.STANDING_PRE, FlightState.STANDING_POST),
        )

    def _publish_status(self, flight: Flight) -> None:
        if self.sink is not None:
            self.sink.publish_status(self.build_status(flight))
