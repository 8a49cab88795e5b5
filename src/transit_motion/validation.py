"""Motion profile validation.

This module contains classes for validating motion profiles
against their kinematic envelope.
"""

from __future__ import annotations

from typing import Any

import numpy as np
from numpy.typing import NDArray

from transit_motion.data_classes import MotionLimits
from transit_motion.motion import MotionProfile


class ConstraintBasedProfileValidator:
    """Validates sampled motion profiles against speed and acceleration limits."""

    def __init__(
        self,
        limits: MotionLimits,
        relative_tolerance: float = 1e-6,
        sample_count: int = 1001,
    ) -> None:
        """Initialize the validator.

        Args:
            limits: Envelope the profile must respect.
            relative_tolerance: Allowed relative excess over each limit.
            sample_count: Number of evenly spaced samples over the profile duration.
        """
        self.limits = limits
        self.relative_tolerance = relative_tolerance
        self.sample_count = sample_count

    def validate_profile(self, profile: MotionProfile) -> bool:
        """Check if a profile satisfies all kinematic constraints.

        Args:
            profile: Profile to validate.

        Returns:
            True if the profile is valid, False otherwise.
        """
        if profile.duration <= 0:
            return profile.progress_at(0.0) == 1.0

        times = np.linspace(0.0, profile.duration, self.sample_count)
        distances = profile.sample_distances(times)

        has_endpoint_violation = self._check_endpoint_violation(profile, distances)
        has_monotonicity_violation = self._check_monotonicity_violation(profile, distances)
        has_speed_violation = self._check_speed_violation(distances, times)
        has_acceleration_violation = self._check_acceleration_violation(distances, times)

        return not (has_endpoint_violation or has_monotonicity_violation or has_speed_violation or has_acceleration_violation)

    def _tolerance(self, value: float) -> float:
        return abs(value) * self.relative_tolerance + 1e-12

    def _check_endpoint_violation(self, profile: MotionProfile, distances: NDArray[np.floating[Any]]) -> bool:
        """Check that the profile starts at zero and ends at its full distance."""
        tolerance = self._tolerance(profile.distance)
        return bool(abs(distances[0]) > tolerance or abs(distances[-1] - profile.distance) > tolerance)

    def _check_monotonicity_violation(self, profile: MotionProfile, distances: NDArray[np.floating[Any]]) -> bool:
        """Check that the distance never decreases."""
        return bool(np.any(np.diff(distances) < -self._tolerance(profile.distance)))

    def _check_speed_violation(self, distances: NDArray[np.floating[Any]], times: NDArray[np.floating[Any]]) -> bool:
        """Check that the speed never exceeds the maximum speed."""
        speeds = np.gradient(distances, times)
        maximum_speed = self.limits.maximum_speed
        return bool(np.any(np.abs(speeds) > maximum_speed + self._tolerance(maximum_speed)))

    def _check_acceleration_violation(self, distances: NDArray[np.floating[Any]], times: NDArray[np.floating[Any]]) -> bool:
        """Check that the acceleration magnitude never exceeds the limit."""
        accelerations = np.gradient(np.gradient(distances, times), times)
        maximum_acceleration = abs(self.limits.acceleration)
        return bool(np.any(np.abs(accelerations) > maximum_acceleration + self._tolerance(maximum_acceleration)))
