"""Utility functions for the transit motion engine.

This module contains utility functions for value manipulation, identifier
handling, file operations, and the service-day clock.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pandas as pd

from transit_motion.constants import ScheduleTimings, ServiceDayConstants

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


def generate_unique_filepath(output_directory: Path, base_name: str, extension: str) -> Path:
    """Generate a unique filepath by appending a number if file exists.

    Args:
        output_directory: Directory to save the file in.
        base_name: Base filename without extension.
        extension: File extension including the dot (e.g., '.csv').

    Returns:
        Unique filepath that does not exist.
    """
    output_directory.mkdir(parents=True, exist_ok=True)
    counter = 0
    filepath = output_directory / f"{base_name}{extension}"

    while filepath.exists():
        counter += 1
        filepath = output_directory / f"{base_name}_{counter}{extension}"

    return filepath


def saturate_value_within_limits(
    value: float,
    minimum_limit: float,
    maximum_limit: float,
) -> float:
    """Saturate a value within specified minimum and maximum limits.

    Args:
        value: Value to saturate.
        minimum_limit: Minimum allowed value.
        maximum_limit: Maximum allowed value.

    Returns:
        Value clamped to [minimum_limit, maximum_limit].
    """
    if value < minimum_limit:
        return minimum_limit
    if value > maximum_limit:
        return maximum_limit
    return value


def iterate_identifier_candidates(
    identifier: str,
    aliases: Sequence[tuple[str, str]],
) -> Iterator[str]:
    """Yield an identifier followed by each of its aliased spellings.

    Args:
        identifier: Identifier as reported by a live feed.
        aliases: Pairs of (substring, replacement).

    Yields:
        The identifier itself, then every distinct aliased variant.
    """
    yield identifier
    for original, replacement in aliases:
        if original in identifier:
            candidate = identifier.replace(original, replacement)
            if candidate != identifier:
                yield candidate


def parse_time_string(time_string: str) -> tuple[int, int]:
    """Parse a local "HH:MM" string into hours and minutes.

    Raises:
        ValueError: If the string is not of the form "HH:MM".
    """
    hours_text, separator, minutes_text = time_string.partition(":")
    if not separator:
        raise ValueError(f"Invalid time string: {time_string!r}")
    return int(hours_text), int(minutes_text)


class ServiceClock:
    """Resolves local timetable times against the current service day.

    A service day runs from the boundary hour (03:00) to the boundary hour of
    the next calendar day, so "00:30" belongs to the service day that started
    the previous morning. Every resolved instant carries the precision offset
    that compensates for feed latency.
    """

    def __init__(
        self,
        timezone: str = ServiceDayConstants.TIMEZONE,
        day_boundary_hour: int = ServiceDayConstants.DAY_BOUNDARY_HOUR,
        precision_offset: float = ScheduleTimings.PRECISION_DELAY,
    ) -> None:
        self.timezone = timezone
        self.day_boundary_hour = day_boundary_hour
        self.precision_offset = precision_offset

    def localize(self, now: float) -> pd.Timestamp:
        """Convert epoch milliseconds to a local timestamp."""
        return pd.to_datetime(now, unit="ms", utc=True).tz_convert(self.timezone)

    def resolve(self, time_string: str, now: float) -> float:
        """Convert a local "HH:MM" string to epoch milliseconds within the service day of ``now``.

        Args:
            time_string: Local time as printed in timetables.
            now: Current instant in epoch milliseconds.

        Returns:
            Epoch milliseconds of the timetable instant, including the precision offset.
        """
        local_now = self.localize(now)
        hours, minutes = parse_time_string(time_string)

        # Both adjustments look at the unadjusted hours
        day_shift = 0
        if local_now.hour < self.day_boundary_hour:
            day_shift -= 24
        if hours < self.day_boundary_hour:
            day_shift += 24
        hours += day_shift

        resolved = local_now.normalize() + pd.Timedelta(hours=hours, minutes=minutes, milliseconds=self.precision_offset)
        return resolved.value / 1e6

    def format(self, time: float) -> str:
        """Render epoch milliseconds as a local "HH:MM" string."""
        return self.localize(time).strftime("%H:%M")

    def service_date(self, now: float) -> pd.Timestamp:
        """Return the local calendar date on which the service day of ``now`` started."""
        local_now = self.localize(now) - pd.Timedelta(hours=self.day_boundary_hour)
        return local_now.normalize()

    def calendar_name(self, now: float) -> str:
        """Return ``"holiday"`` on weekend service days, ``"weekday"`` otherwise."""
        return "holiday" if self.service_date(now).dayofweek >= 5 else "weekday"
