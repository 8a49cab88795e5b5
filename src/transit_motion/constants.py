"""Constants and configuration values for the transit motion engine.

This module contains all constant values organized by domain,
following the Single Responsibility Principle.
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Final


class UnitConversionConstants:
    """Physical unit conversion factors.

    The engine works internally in meters and milliseconds.
    """

    KILOMETERS_PER_HOUR_TO_METERS_PER_MILLISECOND: Final[float] = 1.0 / 3600.0
    KILOMETERS_PER_HOUR_PER_SECOND_TO_METERS_PER_MILLISECOND_SQUARED: Final[float] = 1.0 / 3_600_000.0
    DEGREES_TO_RADIANS: Final[float] = math.pi / 180.0
    MILLISECONDS_PER_SECOND: Final[int] = 1000
    MILLISECONDS_PER_DAY: Final[int] = 86_400_000

    @classmethod
    def convert_kilometers_per_hour_to_meters_per_millisecond(cls, speed_kmph: float) -> float:
        """Convert speed from km/h to m/ms."""
        return speed_kmph * cls.KILOMETERS_PER_HOUR_TO_METERS_PER_MILLISECOND

    @classmethod
    def convert_acceleration_to_meters_per_millisecond_squared(cls, acceleration_kmph_per_second: float) -> float:
        """Convert acceleration from km/h/s to m/ms²."""
        return acceleration_kmph_per_second * cls.KILOMETERS_PER_HOUR_PER_SECOND_TO_METERS_PER_MILLISECOND_SQUARED

    @classmethod
    def convert_seconds_to_milliseconds(cls, seconds: float) -> float:
        """Convert a duration from seconds to milliseconds."""
        return seconds * cls.MILLISECONDS_PER_SECOND

    @classmethod
    def convert_degrees_to_radians(cls, angle_degrees: float) -> float:
        """Convert angle from degrees to radians."""
        return angle_degrees * cls.DEGREES_TO_RADIANS


class EarthConstants:
    """Spherical earth model used by the geometry sampler."""

    MEAN_EARTH_RADIUS_METERS: Final[float] = 6_371_008.8
    MEAN_EARTH_RADIUS_KILOMETERS: Final[float] = MEAN_EARTH_RADIUS_METERS / 1000.0


class TrainMotionDefaults:
    """Kinematic envelope of trains."""

    MAXIMUM_SPEED_KMPH: Final[float] = 80.0
    ACCELERATION_KMPH_PER_SECOND: Final[float] = 3.0
    CAR_SPACING_METERS: Final[float] = 20.0
    DEMONSTRATION_TIME_FACTOR: Final[float] = 12.0


class FlightMotionDefaults:
    """Kinematic envelope of aircraft along approach and departure routes."""

    MAXIMUM_SPEED_KMPH: Final[float] = 500.0
    ACCELERATION_KMPH_PER_SECOND: Final[float] = 12.0


class ScheduleTimings:
    """Timing constants of the timetable-driven lifecycles, in milliseconds."""

    STANDING_DURATION: Final[int] = 60_000
    MINIMUM_STANDING_DURATION: Final[int] = 30_000
    INTERMEDIATE_STANDING_DURATION: Final[int] = 15_000
    DEMONSTRATION_STOP_DURATION: Final[int] = 1_000
    REFRESH_INTERVAL: Final[int] = 60_000
    PRECISION_DELAY: Final[int] = 25_000
    MINIMUM_FLIGHT_INTERVAL: Final[int] = 90_000
    STALL_RESET_THRESHOLD: Final[int] = 10_000
    AD_HOC_TRAIN_RETENTION: Final[int] = UnitConversionConstants.MILLISECONDS_PER_DAY


class ServiceDayConstants:
    """Local service day conventions of the timetable feeds."""

    TIMEZONE: Final[str] = "Asia/Tokyo"
    DAY_BOUNDARY_HOUR: Final[int] = 3


class FrameRateDefaults:
    """Frame scheduler cadences in Hz."""

    DEFAULT_FRAME_RATE_HZ: Final[float] = 120.0
    OFF_SCREEN_FRAME_RATE_HZ: Final[float] = 1.0


class FileExportLimits:
    """Limits for file export operations."""

    MAXIMUM_CSV_ROWS_PER_FILE: Final[int] = 1_000_000


class FeedConventions:
    """String conventions of the parsed live feeds."""

    AD_HOC_TIMETABLE_SUFFIX: Final[str] = ".Today"
    REALTIME_OPERATORS: Final[tuple[str, ...]] = ("TokyoMetro", "Toei")
    SUSPENSION_KEYWORDS: Final[tuple[str, ...]] = ("見合わせ", "折返し運転", "運休", "遅延")
    IDENTIFIER_ALIASES: Final[tuple[tuple[str, str], ...]] = ((".Marunouchi.", ".MarunouchiBranch."),)
    EXCLUDED_THROUGH_SERVICES: Final[tuple[tuple[str, str], ...]] = (("TokyoMetro.Namboku", "Toei.Mita"),)
    PRE_DEPARTURE_STATUSES: Final[tuple[str, ...]] = ("CheckIn", "NowBoarding", "BoardingComplete", "Departed")
    CANCELLED_STATUS: Final[str] = "Cancelled"


# Default output directory for all generated files
DEFAULT_OUTPUT_DIRECTORY: Final[Path] = Path("output")
