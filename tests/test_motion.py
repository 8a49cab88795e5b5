"""Unit tests for kinematic motion profiles and their validation."""

from __future__ import annotations

import math
from dataclasses import replace

import numpy as np
import pytest

from transit_motion.constants import ScheduleTimings
from transit_motion.data_classes import MotionLimits, SimulationConfiguration
from transit_motion.exceptions import NumericDegeneracyError
from transit_motion.motion import KinematicMotionProfileSolver, ProfileShape
from transit_motion.validation import ConstraintBasedProfileValidator

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def train_limits() -> MotionLimits:
    """Standard train envelope: 80 km/h, 3 km/h/s."""
    return MotionLimits.from_kilometers_per_hour(80, 3)


@pytest.fixture
def flight_limits() -> MotionLimits:
    """Standard flight envelope: 500 km/h, 12 km/h/s."""
    return MotionLimits.from_kilometers_per_hour(500, 12)


@pytest.fixture
def train_solver(train_limits: MotionLimits) -> KinematicMotionProfileSolver:
    """Solver for the train envelope."""
    return KinematicMotionProfileSolver(train_limits)


# =============================================================================
# Motion Limits Tests
# =============================================================================


class TestMotionLimits:
    """Tests for MotionLimits unit conversion and derived values."""

    def test_unit_conversion(self, train_limits: MotionLimits) -> None:
        """Test km/h and km/h/s conversion to meters and milliseconds."""
        assert train_limits.maximum_speed == pytest.approx(80 / 3600)
        assert train_limits.acceleration == pytest.approx(3 / 3_600_000)

    def test_acceleration_time_and_distance(self, train_limits: MotionLimits) -> None:
        """Test time and distance needed to reach maximum speed."""
        assert train_limits.maximum_acceleration_time == pytest.approx(80 / 3 * 1000)
        expected_distance = 0.5 * (80 / 3.6) * (80 / 3)
        assert train_limits.maximum_acceleration_distance == pytest.approx(expected_distance)

    def test_time_factor_scales_speed_and_acceleration(self) -> None:
        """Test that a time factor keeps distances and shrinks durations."""
        normal = MotionLimits.from_kilometers_per_hour(80, 3)
        fast = MotionLimits.from_kilometers_per_hour(80, 3, time_factor=12)

        assert fast.maximum_speed == pytest.approx(normal.maximum_speed * 12)
        assert fast.acceleration == pytest.approx(normal.acceleration * 144)
        assert fast.maximum_acceleration_distance == pytest.approx(normal.maximum_acceleration_distance)
        assert fast.maximum_acceleration_time == pytest.approx(normal.maximum_acceleration_time / 12)

    def test_demonstration_configuration_only_speeds_up_trains(self) -> None:
        """Test that demonstration mode changes the train envelope and nothing else."""
        default = SimulationConfiguration.create_default()
        demonstration = SimulationConfiguration.for_demonstration(time_factor=12)

        assert demonstration.train_limits == MotionLimits.from_kilometers_per_hour(80, 3, time_factor=12)
        assert replace(demonstration, train_limits=default.train_limits) == default

    def test_arrival_limits(self, flight_limits: MotionLimits) -> None:
        """Test that arrivals fly at half speed and decelerate at half rate."""
        arrival = flight_limits.for_arrival()
        assert arrival.maximum_speed == pytest.approx(flight_limits.maximum_speed / 2)
        assert arrival.acceleration == pytest.approx(-flight_limits.acceleration / 2)


# =============================================================================
# Free Running Profile Tests
# =============================================================================


class TestFreeRunningProfile:
    """Tests for symmetric rest-to-rest profiles."""

    def test_long_section_duration(self, train_solver: KinematicMotionProfileSolver, train_limits: MotionLimits) -> None:
        """Test a 10 km section against the closed-form trapezoid duration."""
        profile = train_solver.solve_free_running(10_000)

        acceleration_time = train_limits.maximum_acceleration_time
        acceleration_distance = train_limits.maximum_acceleration_distance
        expected = 2 * acceleration_time + (10_000 - 2 * acceleration_distance) / train_limits.maximum_speed

        assert profile.duration == pytest.approx(expected, rel=0.01)
        assert profile.cruise_speed == pytest.approx(train_limits.maximum_speed)
        assert profile.acceleration_time == pytest.approx(acceleration_time)
        assert profile.shape is ProfileShape.SYMMETRIC

    def test_short_section_is_triangular(self, train_solver: KinematicMotionProfileSolver, train_limits: MotionLimits) -> None:
        """Test that a section too short to cruise never reaches maximum speed."""
        profile = train_solver.solve_free_running(400)

        assert profile.duration == pytest.approx(2 * math.sqrt(400 / train_limits.acceleration))
        assert profile.acceleration_time == pytest.approx(profile.duration / 2)
        assert profile.cruise_speed < train_limits.maximum_speed

    @pytest.mark.parametrize("distance", [50.0, 400.0, 592.0, 1000.0, 1808.0, 10_000.0])
    def test_progress_endpoints_and_monotonicity(self, train_solver: KinematicMotionProfileSolver, distance: float) -> None:
        """Test that progress runs monotonically from 0 to 1."""
        profile = train_solver.solve_free_running(distance)

        assert profile.progress_at(0) == 0
        assert profile.progress_at(profile.duration) == pytest.approx(1.0)
        assert profile.progress_at(profile.duration * 2) == pytest.approx(1.0)
        assert profile.progress_at(-100) == 0

        distances = profile.sample_distances(np.linspace(0, profile.duration, 501))
        assert np.all(np.diff(distances) >= -1e-9)

    def test_symmetry(self, train_solver: KinematicMotionProfileSolver) -> None:
        """Test that half the duration covers half the distance."""
        profile = train_solver.solve_free_running(3000)
        assert profile.progress_at(profile.duration / 2) == pytest.approx(0.5)

    def test_vectorized_sampling_matches_scalar(self, train_solver: KinematicMotionProfileSolver) -> None:
        """Test that array sampling agrees with scalar sampling."""
        profile = train_solver.solve_free_running(2500)
        times = np.linspace(-1000, profile.duration + 1000, 97)

        vectorized = profile.sample_distances(times)
        scalar = np.array([profile.distance_at(time) for time in times])

        np.testing.assert_allclose(vectorized, scalar, rtol=1e-9, atol=1e-9)

    def test_zero_distance(self, train_solver: KinematicMotionProfileSolver) -> None:
        """Test that a zero-length section completes instantly."""
        profile = train_solver.solve_free_running(0)
        assert profile.duration == 0
        assert profile.progress_at(0) == 1.0

    @pytest.mark.parametrize("distance", [-1.0, math.nan, math.inf])
    def test_invalid_distance(self, train_solver: KinematicMotionProfileSolver, distance: float) -> None:
        """Test that unusable distances raise a degeneracy error."""
        with pytest.raises(NumericDegeneracyError):
            train_solver.solve_free_running(distance)

    def test_zero_acceleration_is_rejected(self) -> None:
        """Test that a degenerate envelope raises a degeneracy error."""
        solver = KinematicMotionProfileSolver(MotionLimits(maximum_speed=0.02, acceleration=0.0))
        with pytest.raises(NumericDegeneracyError):
            solver.solve_free_running(100)


# =============================================================================
# Constrained Profile Tests
# =============================================================================


class TestConstrainedProfile:
    """Tests for profiles stretched to a timetable arrival."""

    def test_stretched_to_lower_bound_of_window(self, train_solver: KinematicMotionProfileSolver, train_limits: MotionLimits) -> None:
        """Test that a late target stretches the profile to the window's lower bound."""
        free = train_solver.solve_free_running(10_000)
        target = free.duration + 100_000

        profile = train_solver.solve_constrained(10_000, target)

        assert profile.duration == pytest.approx(target - ScheduleTimings.PRECISION_DELAY)
        assert profile.cruise_speed < train_limits.maximum_speed
        assert profile.acceleration_time == pytest.approx(profile.cruise_speed / train_limits.acceleration)
        assert profile.progress_at(profile.duration) == pytest.approx(1.0)
        assert profile.target_duration == target

    def test_free_duration_inside_window_is_kept(self, train_solver: KinematicMotionProfileSolver, train_limits: MotionLimits) -> None:
        """Test that a target near the free duration leaves the profile unchanged."""
        free = train_solver.solve_free_running(10_000)

        profile = train_solver.solve_constrained(10_000, free.duration + 10_000)

        assert profile.duration == pytest.approx(free.duration)
        assert profile.cruise_speed == pytest.approx(train_limits.maximum_speed, rel=1e-6)

    def test_early_target_never_exceeds_maximum_speed(
        self,
        train_solver: KinematicMotionProfileSolver,
        train_limits: MotionLimits,
    ) -> None:
        """Test that an unreachable target falls back to the free-running duration."""
        free = train_solver.solve_free_running(10_000)

        profile = train_solver.solve_constrained(10_000, free.duration / 2)

        assert profile.duration == pytest.approx(free.duration)
        assert profile.cruise_speed <= train_limits.maximum_speed * (1 + 1e-6)

    @pytest.mark.parametrize("target", [None, 0.0, -5000.0, math.inf])
    def test_missing_target_runs_free(self, train_solver: KinematicMotionProfileSolver, target: float | None) -> None:
        """Test that an absent or unusable target yields the free-running profile."""
        profile = train_solver.solve_constrained(10_000, target)
        assert profile.duration == pytest.approx(train_solver.solve_free_running(10_000).duration)
        assert profile.target_duration is None

    def test_triangular_section_is_not_stretched(self, train_solver: KinematicMotionProfileSolver) -> None:
        """Test that sections too short to cruise keep their free-running profile."""
        free = train_solver.solve_free_running(300)
        profile = train_solver.solve_constrained(300, free.duration * 10)
        assert profile.duration == pytest.approx(free.duration)


# =============================================================================
# Flight Profile Tests
# =============================================================================


class TestFlightProfile:
    """Tests for one-sided departure and arrival profiles."""

    def test_departure_accelerates_then_cruises(self, flight_limits: MotionLimits) -> None:
        """Test the departure duration and shape."""
        solver = KinematicMotionProfileSolver(flight_limits)
        profile = solver.solve_flight(20_000)

        expected = flight_limits.maximum_acceleration_time / 2 + 20_000 / flight_limits.maximum_speed
        assert profile.shape is ProfileShape.ACCELERATE_CRUISE
        assert profile.duration == pytest.approx(expected)
        assert solver.flight_duration(20_000) == pytest.approx(expected)
        assert profile.progress_at(profile.duration) == pytest.approx(1.0)

    def test_arrival_cruises_then_decelerates(self, flight_limits: MotionLimits) -> None:
        """Test that arrivals come to rest at the end of the approach."""
        arrival_limits = flight_limits.for_arrival()
        profile = KinematicMotionProfileSolver(arrival_limits).solve_flight(20_000)

        assert profile.shape is ProfileShape.CRUISE_DECELERATE
        assert profile.progress_at(0) == 0
        assert profile.progress_at(profile.duration) == pytest.approx(1.0)
        # Cruise speed near the start of the approach
        assert profile.distance_at(1000) == pytest.approx(arrival_limits.maximum_speed * 1000)

    def test_short_route_uses_pure_acceleration(self, flight_limits: MotionLimits) -> None:
        """Test that routes shorter than the acceleration distance never cruise."""
        profile = KinematicMotionProfileSolver(flight_limits).solve_flight(100)

        expected_time = math.sqrt(2 * 100 / flight_limits.acceleration)
        assert profile.duration == pytest.approx(expected_time)
        assert profile.cruise_speed < flight_limits.maximum_speed
        assert profile.progress_at(profile.duration) == pytest.approx(1.0)


# =============================================================================
# Profile Validator Tests
# =============================================================================


class TestConstraintBasedProfileValidator:
    """Tests for ConstraintBasedProfileValidator class."""

    @pytest.mark.parametrize("distance", [300.0, 1808.0, 10_000.0])
    def test_free_profiles_are_valid(
        self,
        train_solver: KinematicMotionProfileSolver,
        train_limits: MotionLimits,
        distance: float,
    ) -> None:
        """Test that free-running profiles respect the envelope."""
        validator = ConstraintBasedProfileValidator(train_limits)
        assert validator.validate_profile(train_solver.solve_free_running(distance))

    def test_constrained_profile_is_valid(self, train_solver: KinematicMotionProfileSolver, train_limits: MotionLimits) -> None:
        """Test that stretched profiles respect the envelope."""
        validator = ConstraintBasedProfileValidator(train_limits)
        profile = train_solver.solve_constrained(1808, 180_000)
        assert validator.validate_profile(profile)

    @pytest.mark.parametrize("distance", [100.0, 20_000.0])
    def test_flight_profiles_are_valid(self, flight_limits: MotionLimits, distance: float) -> None:
        """Test that departure and arrival profiles respect their envelopes."""
        for limits in (flight_limits, flight_limits.for_arrival()):
            profile = KinematicMotionProfileSolver(limits).solve_flight(distance)
            assert ConstraintBasedProfileValidator(limits).validate_profile(profile)

    def test_speed_violation_detected(self, train_solver: KinematicMotionProfileSolver, train_limits: MotionLimits) -> None:
        """Test that a profile faster than the envelope is rejected."""
        slower_limits = MotionLimits(train_limits.maximum_speed / 2, train_limits.acceleration)
        validator = ConstraintBasedProfileValidator(slower_limits)
        assert not validator.validate_profile(train_solver.solve_free_running(10_000))

    def test_acceleration_violation_detected(self, train_solver: KinematicMotionProfileSolver, train_limits: MotionLimits) -> None:
        """Test that a profile accelerating harder than the envelope is rejected."""
        gentle_limits = MotionLimits(train_limits.maximum_speed, train_limits.acceleration / 4)
        validator = ConstraintBasedProfileValidator(gentle_limits)
        assert not validator.validate_profile(train_solver.solve_free_running(10_000))

    def test_zero_length_profile(self, train_solver: KinematicMotionProfileSolver, train_limits: MotionLimits) -> None:
        """Test that an instant profile is valid."""
        validator = ConstraintBasedProfileValidator(train_limits)
        assert validator.validate_profile(train_solver.solve_free_running(0))
