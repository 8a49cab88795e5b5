"""Kinematic motion profiles.

A motion profile maps elapsed time to distance travelled along a section
under a speed and acceleration envelope. Trains use a symmetric
accelerate/cruise/decelerate profile from rest to rest, optionally stretched
to track a timetable arrival. Departing flights accelerate then cruise and
arriving flights cruise then decelerate; the sign of the acceleration tells
the two apart.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np
from numpy.typing import NDArray

from transit_motion.constants import ScheduleTimings
from transit_motion.data_classes import MotionLimits
from transit_motion.exceptions import NumericDegeneracyError
from transit_motion.utilities import saturate_value_within_limits


class ProfileShape(Enum):
    """Which phases of the trapezoid a profile contains."""

    SYMMETRIC = "symmetric"
    ACCELERATE_CRUISE = "accelerate_cruise"
    CRUISE_DECELERATE = "cruise_decelerate"


@dataclass(frozen=True)
class MotionProfile:
    """Immutable kinematic description of a single journey.

    ``cruise_speed`` and ``acceleration_time`` are the effective values after
    any duration constraint has been applied; ``acceleration`` keeps the sign
    of the configured envelope.
    """

    distance: float
    cruise_speed: float
    acceleration: float
    acceleration_time: float
    duration: float
    shape: ProfileShape
    target_duration: float | None = None

    def distance_at(self, elapsed: float) -> float:
        """Distance travelled after ``elapsed`` milliseconds."""
        if self.distance <= 0:
            return 0.0
        elapsed = saturate_value_within_limits(elapsed, 0.0, self.duration)
        remaining = self.duration - elapsed
        magnitude = abs(self.acceleration)

        if self.shape is ProfileShape.CRUISE_DECELERATE:
            if remaining <= self.acceleration_time:
                travelled = self.distance - magnitude / 2 * remaining * remaining
            else:
                travelled = self.cruise_speed * elapsed
        elif elapsed <= self.acceleration_time:
            travelled = magnitude / 2 * elapsed * elapsed
        elif self.shape is ProfileShape.SYMMETRIC and remaining <= self.acceleration_time:
            travelled = self.distance - magnitude / 2 * remaining * remaining
        else:
            travelled = self.cruise_speed * (elapsed - self.acceleration_time / 2)

        return saturate_value_within_limits(travelled, 0.0, self.distance)

    def progress_at(self, elapsed: float) -> float:
        """Fraction of the distance covered after ``elapsed`` milliseconds, in [0, 1]."""
        if self.distance <= 0:
            return 1.0
        return self.distance_at(elapsed) / self.distance

    def sample_distances(self, elapsed_times: NDArray[np.floating[Any]]) -> NDArray[np.floating[Any]]:
        """Vectorized :meth:`distance_at` over an array of elapsed times."""
        if self.distance <= 0:
            return np.zeros_like(elapsed_times, dtype=float)

        elapsed = np.clip(np.asarray(elapsed_times, dtype=float), 0.0, self.duration)
        remaining = self.duration - elapsed
        magnitude = abs(self.acceleration)
        accelerating = magnitude / 2 * elapsed**2
        decelerating = self.distance - magnitude / 2 * remaining**2

        if self.shape is ProfileShape.CRUISE_DECELERATE:
            travelled = np.where(remaining <= self.acceleration_time, decelerating, self.cruise_speed * elapsed)
        else:
            cruising = self.cruise_speed * (elapsed - self.acceleration_time / 2)
            travelled = np.where(elapsed <= self.acceleration_time, accelerating, cruising)
            if self.shape is ProfileShape.SYMMETRIC:
                in_deceleration = (elapsed > self.acceleration_time) & (remaining <= self.acceleration_time)
                travelled = np.where(in_deceleration, decelerating, travelled)

        return np.clip(travelled, 0.0, self.distance)


class KinematicMotionProfileSolver:
    """Builds motion profiles for a speed and acceleration envelope."""

    def __init__(
        self,
        limits: MotionLimits,
        precision_delay: float = ScheduleTimings.PRECISION_DELAY,
        refresh_interval: float = ScheduleTimings.REFRESH_INTERVAL,
    ) -> None:
        """Initialize the solver.

        Args:
            limits: Speed and acceleration envelope.
            precision_delay: Slack subtracted from a target duration to absorb feed latency.
            refresh_interval: Tolerance added to a target duration, one poll interval.
        """
        self.limits = limits
        self.precision_delay = precision_delay
        self.refresh_interval = refresh_interval

    def solve_free_running(self, distance: float) -> MotionProfile:
        """Symmetric rest-to-rest profile, triangular when the section is too short to cruise."""
        self._validate(distance)
        acceleration = abs(self.limits.acceleration)
        maximum_speed = self.limits.maximum_speed

        if distance <= self.limits.maximum_acceleration_distance * 2:
            duration = math.sqrt(distance / acceleration) * 2
            acceleration_time = duration / 2
            cruise_speed = acceleration * acceleration_time
        else:
            acceleration_time = self.limits.maximum_acceleration_time
            duration = acceleration_time * 2 + (distance - self.limits.maximum_acceleration_distance * 2) / maximum_speed
            cruise_speed = maximum_speed

        return MotionProfile(
            distance=distance,
            cruise_speed=cruise_speed,
            acceleration=acceleration,
            acceleration_time=acceleration_time,
            duration=duration,
            shape=ProfileShape.SYMMETRIC,
        )

    def solve_constrained(self, distance: float, target_duration: float | None) -> MotionProfile:
        """Symmetric profile stretched to arrive close to ``target_duration``.

        The free-running duration is clamped into
        ``[target - precision_delay, target + refresh_interval - precision_delay]``
        but never below the free-running duration itself, so the cruise speed
        stays within the envelope. Triangular sections are not stretched.
        """
        free_profile = self.solve_free_running(distance)
        if target_duration is None or not math.isfinite(target_duration) or target_duration <= 0:
            return free_profile
        if distance <= self.limits.maximum_acceleration_distance * 2:
            return free_profile

        acceleration = abs(self.limits.acceleration)
        duration = saturate_value_within_limits(
            free_profile.duration,
            target_duration - self.precision_delay,
            target_duration + self.refresh_interval - self.precision_delay,
        )
        duration = max(duration, free_profile.duration)

        half_duration_speed = acceleration * duration / 2
        discriminant = acceleration * (acceleration * duration * duration / 4 - distance)
        cruise_speed = half_duration_speed - math.sqrt(max(discriminant, 0.0))
        if not math.isfinite(cruise_speed) or cruise_speed <= 0:
            raise NumericDegeneracyError(f"Cannot stretch {distance} m over {duration} ms")

        return MotionProfile(
            distance=distance,
            cruise_speed=cruise_speed,
            acceleration=acceleration,
            acceleration_time=cruise_speed / acceleration,
            duration=duration,
            shape=ProfileShape.SYMMETRIC,
            target_duration=target_duration,
        )

    def solve_flight(self, distance: float) -> MotionProfile:
        """One-sided profile: positive acceleration departs, negative acceleration arrives.

        Routes shorter than the acceleration distance use a pure
        acceleration (or deceleration) profile with a lower peak speed.
        """
        self._validate(distance)
        acceleration = self.limits.acceleration
        magnitude = abs(acceleration)
        cruise_speed = self.limits.maximum_speed
        acceleration_time = self.limits.maximum_acceleration_time

        if distance < self.limits.maximum_acceleration_distance:
            acceleration_time = math.sqrt(2 * distance / magnitude)
            cruise_speed = magnitude * acceleration_time

        duration = acceleration_time / 2 + distance / cruise_speed if cruise_speed > 0 else 0.0

        return MotionProfile(
            distance=distance,
            cruise_speed=cruise_speed,
            acceleration=acceleration,
            acceleration_time=acceleration_time,
            duration=duration,
            shape=ProfileShape.ACCELERATE_CRUISE if acceleration > 0 else ProfileShape.CRUISE_DECELERATE,
        )

    def flight_duration(self, distance: float) -> float:
        """Duration of the flight profile over ``distance``."""
        return self.solve_flight(distance).duration

    def _validate(self, distance: float) -> None:
        if not math.isfinite(distance) or distance < 0:
            raise NumericDegeneracyError(f"Invalid travel distance: {distance}")
        if self.limits.acceleration == 0 or self.limits.maximum_speed <= 0:
            raise NumericDegeneracyError("Motion limits must have a non-zero acceleration and positive speed")
