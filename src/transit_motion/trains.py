"""Train lifecycle state machine.

Every train carries an explicit :class:`TrainState`; :meth:`TrainLifecycleMachine.advance`
is the single transition function, called when a train is started and by
the frame scheduler whenever a standing or running phase completes.

States::

    Inactive -> Standing <-> Running -> (NextLeg | Terminated)
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Callable

from transit_motion.data_classes import EntityPose, PoseSample, TrainStatusPayload
from transit_motion.exceptions import NumericDegeneracyError
from transit_motion.motion import KinematicMotionProfileSolver
from transit_motion.types import EntityKind, TrainState

if TYPE_CHECKING:
    from collections.abc import Sequence

    from transit_motion.data_classes import SimulationConfiguration, Train
    from transit_motion.geometry import PathGeometrySampler
    from transit_motion.motion import MotionProfile
    from transit_motion.scheduler import FrameScheduler
    from transit_motion.types import PoseSinkInterface
    from transit_motion.utilities import ServiceClock

logger = logging.getLogger(__name__)


def find_station_index(stations: Sequence[str], station: str | None, direction: int, start: int | None = None) -> int:
    """Index of ``station`` searching in travel direction from ``start``; -1 if absent.

    Ascending trains search forward, descending trains search backward.
    """
    if station is None:
        return -1
    if direction > 0:
        begin = 0 if start is None else max(start, 0)
        for index in range(begin, len(stations)):
            if stations[index] == station:
                return index
    else:
        begin = len(stations) - 1 if start is None else min(start, len(stations) - 1)
        for index in range(begin, -1, -1):
            if stations[index] == station:
                return index
    return -1


def normalize_bearing(bearing: float) -> float:
    """Wrap a bearing into (-180, 180]."""
    wrapped = math.fmod(bearing + 180.0, 360.0)
    if wrapped <= 0:
        wrapped += 360.0
    return wrapped - 180.0


class TrainLifecycleMachine:
    """Drives trains through their lifecycle on a frame scheduler."""

    def __init__(
        self,
        scheduler: FrameScheduler,
        sampler: PathGeometrySampler,
        clock: ServiceClock,
        configuration: SimulationConfiguration,
        sink: PoseSinkInterface | None = None,
        live_train_ids: set[str] | None = None,
        on_stop: Callable[[Train, TrainState], None] | None = None,
        on_handoff: Callable[[Train, Train | None], None] | None = None,
    ) -> None:
        """Initialize the machine.

        Args:
            scheduler: Scheduler running standing and running phases.
            sampler: Geometry sampler used for pose updates.
            clock: Service-day clock resolving timetable times.
            configuration: Timings and limits.
            sink: Receiver of poses and statuses.
            live_train_ids: Identifiers reported by the latest live poll; owned by the caller.
            on_stop: Called after a train is stopped with the state it ended in.
            on_handoff: Called after a train hands over to its continuation, with
                ``None`` when the continuation could not be started.
        """
        self.scheduler = scheduler
        self.sampler = sampler
        self.clock = clock
        self.configuration = configuration
        self.sink = sink
        self.live_train_ids = live_train_ids if live_train_ids is not None else set()
        self.on_stop = on_stop
        self.on_handoff = on_handoff
        self.solver = KinematicMotionProfileSolver(
            configuration.train_limits,
            precision_delay=configuration.precision_delay,
            refresh_interval=configuration.refresh_interval,
        )

    # ----- Transitions -----

    def advance(self, train: Train, now: float) -> None:
        """Perform the next transition of ``train`` at ``now``."""
        if train.state is TrainState.STANDING:
            self._finish_standing(train, now)
        elif train.state is TrainState.RUNNING:
            self._finish_running(train, now)
        else:
            self.start(train, now)

    def start(self, train: Train, now: float, timetable_index: int | None = None) -> bool:
        """Start an inactive train at the section derived from ``now``.

        Returns:
            Whether the train could be placed on its railway.
        """
        if train.shuttle:
            self._prepare_shuttle(train)
            self._run(train, now)
            return True

        if not self.assign_section(train, now, timetable_index):
            logger.debug("Train %s is out of range of its railway", train.train_id)
            return False

        if train.is_ad_hoc and train.section_length != 0:
            self._run(train, now)
            return True

        departure = self._departure_instant(train, now)
        if departure is not None and now >= departure:
            self._run(train, now, elapsed=now - departure)
        else:
            self._stand(train, now)
        return True

    def stop(self, train: Train, now: float, final_state: TrainState = TrainState.INACTIVE) -> None:
        """Cancel the train's task and remove it from the renderer."""
        self.scheduler.cancel(train.task_id)
        train.task_id = None
        train.state = final_state
        train.standing_is_final = False
        if self.sink is not None:
            self.sink.remove_entity(train.train_id)
        logger.debug("Stopped train %s (%s)", train.train_id, final_state.value)
        if self.on_stop is not None:
            self.on_stop(train, final_state)

    # ----- Section assignment -----

    def assign_section(self, train: Train, now: float, timetable_index: int | None = None, final: bool = False) -> bool:
        """Set the section the train occupies.

        Timetable trains use the last stop whose departure has passed (or
        ``timetable_index``); ad hoc trains use their reported stations.

        Returns:
            Whether a valid section was found.
        """
        if train.is_ad_hoc:
            return self._assign_ad_hoc_section(train, final)
        return self._assign_timetable_section(train, now, timetable_index)

    def _assign_timetable_section(self, train: Train, now: float, timetable_index: int | None) -> bool:
        stops = train.stops or []
        if not stops:
            return False
        if timetable_index is None:
            timetable_index = 0
            for index, stop in enumerate(stops):
                if stop.departure and self.clock.resolve(stop.departure, now) + train.delay <= now:
                    timetable_index = index
        if timetable_index >= len(stops):
            return False

        stations = train.railway.stations
        current = stops[timetable_index]
        following = stops[timetable_index + 1] if timetable_index + 1 < len(stops) else None
        current_section = find_station_index(stations, current.station, train.direction)
        next_section = (
            find_station_index(stations, following.station, train.direction, current_section)
            if following is not None and current_section >= 0
            else -1
        )

        train.timetable_index = timetable_index
        train.departure_station = current.station
        train.departure_time = current.departure or current.arrival

        if current_section >= 0 and next_section >= 0 and following is not None:
            train.section_index = current_section
            train.section_length = next_section - current_section
            train.arrival_station = following.station
            train.arrival_time = following.arrival or following.departure
            self._update_offsets(train)
            return True

        train.arrival_station = None
        train.arrival_time = None
        return False

    def _assign_ad_hoc_section(self, train: Train, final: bool) -> bool:
        stations = train.railway.stations
        direction = train.direction
        departure_station = train.from_station or train.to_station
        arrival_station = train.to_station or train.from_station
        destination = train.destination[0] if train.destination else None

        current_section = find_station_index(stations, departure_station, direction)
        train.departure_station = departure_station
        if current_section < 0:
            train.arrival_station = None
            return False
        next_section = find_station_index(stations, arrival_station, direction, current_section)
        final_section = find_station_index(stations, destination, direction, current_section)
        if train.section_index is not None:
            actual_section = train.section_index + train.section_length
        else:
            actual_section = current_section

        if current_section != final_section and ((not final and next_section >= 0) or (final and final_section >= 0)):
            target_section = final_section if final else next_section
            train.section_index = actual_section
            train.section_length = target_section - actual_section
            if arrival_station == departure_station and 0 <= current_section + direction < len(stations):
                train.arrival_station = stations[current_section + direction]
            else:
                train.arrival_station = arrival_station
            self._update_offsets(train)
            return True

        train.arrival_station = None
        train.arrival_time = None
        return False

    def _prepare_shuttle(self, train: Train) -> None:
        last_station = len(train.railway.stations) - 1
        if train.section_index is None:
            train.section_index = 0 if train.direction > 0 else last_station
        train.section_length = train.direction
        self._update_offsets(train)

    @staticmethod
    def _update_offsets(train: Train) -> None:
        offsets = train.railway.path.station_offsets
        section_index = train.section_index or 0
        train.offset = offsets[section_index]
        train.interval = offsets[section_index + train.section_length] - train.offset

    # ----- Phases -----

    def _run(self, train: Train, now: float, elapsed: float = 0.0) -> None:
        profile = self._solve_profile(train, now, elapsed)
        anchor = now - elapsed
        train.state = TrainState.RUNNING
        train.standing_is_final = False
        self._publish_status(train)
        train.task_id = self.scheduler.schedule(
            callback=lambda time_elapsed, _duration: self._update_pose(train, profile.progress_at(time_elapsed), anchor + time_elapsed),
            completion_callback=lambda completed_at: self.advance(train, completed_at),
            duration=profile.duration,
            start_offset=elapsed,
        )

    def _solve_profile(self, train: Train, now: float, elapsed: float) -> MotionProfile:
        distance = abs(train.interval)
        if train.is_ad_hoc or train.shuttle or not train.arrival_time:
            return self.solver.solve_free_running(distance)
        target_duration = self.clock.resolve(train.arrival_time, now) + train.delay - now + elapsed
        return self.solver.solve_constrained(distance, target_duration if target_duration > 0 else None)

    def _stand(self, train: Train, now: float, final: bool = False) -> None:
        if train.is_ad_hoc:
            final = not self._assign_ad_hoc_section(train, final=train.train_id not in self.live_train_ids)
            if not final and train.section_length != 0:
                self._run(train, now)
                return

        if train.is_ad_hoc:
            duration = self.configuration.minimum_standing_duration if final else self.configuration.intermediate_standing_duration
        elif final:
            duration = self.configuration.minimum_standing_duration
        else:
            departure = self._departure_instant(train, now)
            remaining = departure - now if departure is not None else 0.0
            duration = max(remaining, self.configuration.minimum_standing_duration)

        train.state = TrainState.STANDING
        train.standing_is_final = final
        if not final:
            self._update_pose(train, 0.0, now)
        elif train.progress is not None:
            self._update_pose(train, train.progress, now)
        self._publish_status(train)
        train.task_id = self.scheduler.schedule(
            completion_callback=lambda completed_at: self.advance(train, completed_at),
            duration=duration,
        )

    def _finish_standing(self, train: Train, now: float) -> None:
        if train.standing_is_final:
            self.stop(train, now, TrainState.TERMINATED)
        elif train.shuttle or not train.is_ad_hoc:
            self._run(train, now)
        else:
            self._stand(train, now)

    def _finish_running(self, train: Train, now: float) -> None:
        if train.shuttle:
            self._reverse_at_terminus(train)
            train.state = TrainState.STANDING
            self._update_pose(train, 0.0, now)
            train.task_id = self.scheduler.schedule(
                completion_callback=lambda completed_at: self.advance(train, completed_at),
                duration=self.configuration.demonstration_stop_duration,
            )
            return

        if train.is_ad_hoc:
            self._stand(train, now)
            return

        stops = train.stops or []
        next_index = (train.timetable_index or 0) + 1
        if next_index >= len(stops):
            self.stop(train, now, TrainState.TERMINATED)
            return

        if self._assign_timetable_section(train, now, next_index):
            self._stand(train, now)
        elif train.next_train is not None:
            self._hand_off(train, now)
        else:
            self._stand(train, now, final=True)

    def _reverse_at_terminus(self, train: Train) -> None:
        last_station = len(train.railway.stations) - 1
        section_index = (train.section_index or 0) + train.direction
        train.section_index = section_index
        if section_index <= 0 or section_index >= last_station:
            train.direction = -train.direction
        train.section_length = train.direction
        self._update_offsets(train)

    def _hand_off(self, train: Train, now: float) -> None:
        continuation = train.next_train
        self.stop(train, now, TrainState.NEXT_LEG)
        started = continuation is not None and not continuation.is_active and self.start(continuation, now, timetable_index=0)
        if self.on_handoff is not None:
            self.on_handoff(train, continuation if started else None)

    def _departure_instant(self, train: Train, now: float) -> float | None:
        if not train.departure_time:
            return None
        return self.clock.resolve(train.departure_time, now) + train.delay

    # ----- Output -----

    def _update_pose(self, train: Train, progress: float, time: float) -> None:
        train.progress = progress
        distance = train.offset + progress * train.interval
        try:
            samples = self.sampler.sample(
                train.railway.path,
                distance,
                max(train.car_composition, 1),
                self.configuration.car_spacing_meters,
            )
        except NumericDegeneracyError as error:
            logger.warning("Skipping pose update of train %s: %s", train.train_id, error)
            return

        if train.direction < 0:
            samples = [
                PoseSample(
                    longitude=sample.longitude,
                    latitude=sample.latitude,
                    altitude=sample.altitude,
                    bearing=normalize_bearing(sample.bearing + 180),
                    pitch=-sample.pitch,
                )
                for sample in samples
            ]

        pose = EntityPose(
            entity_id=train.train_id,
            kind=EntityKind.TRAIN,
            time=time,
            cars=tuple(samples),
            standing=train.state is TrainState.STANDING,
        )
        train.last_pose = pose
        if self.sink is None:
            return
        self.sink.publish_pose(pose)
        if self.scheduler.is_active(train.task_id):
            visible = self.sink.is_visible(pose)
            self.scheduler.set_frame_rate(train.task_id, None if visible else self.configuration.off_screen_frame_rate_hz)

    def build_status(self, train: Train) -> TrainStatusPayload:
        """UI-facing status of a train."""
        return TrainStatusPayload(
            train_id=train.train_id,
            railway_id=train.railway.railway_id,
            train_type=train.train_type,
            train_number=train.train_number,
            destination=train.destination[0] if train.destination else None,
            rail_direction=train.rail_direction,
            standing=train.state is TrainState.STANDING,
            departure_station=train.departure_station,
            departure_time=train.departure_time,
            arrival_station=train.arrival_station,
            arrival_time=train.arrival_time,
            delay=train.delay,
            is_ad_hoc=train.is_ad_hoc,
            railway_status=train.railway.status,
            railway_status_text=train.railway.status_text,
        )

    def _publish_status(self, train: Train) -> None:
        if self.sink is not None:
            self.sink.publish_status(self.build_status(train))
