"""Pytest configuration and shared fixtures for transit motion engine tests."""

from __future__ import annotations

import sys
from collections.abc import Callable, Sequence
from pathlib import Path

import pandas as pd
import pytest
from geopy.distance import great_circle

# Add src directory to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from transit_motion.constants import EarthConstants  # noqa: E402
from transit_motion.data_classes import (  # noqa: E402
    FlightRouteDefinition,
    LiveFlightSnapshot,
    LiveTrainSnapshot,
    Railway,
    RailwayDefinition,
    SimulationConfiguration,
    TimetableEntry,
    TimetableStop,
)
from transit_motion.geometry import PathDistanceTableBuilder, PathGeometrySampler  # noqa: E402
from transit_motion.recording import PoseTraceRecorder  # noqa: E402
from transit_motion.scheduler import FrameScheduler  # noqa: E402
from transit_motion.types import TransitDataProviderInterface  # noqa: E402
from transit_motion.utilities import ServiceClock  # noqa: E402

SERVICE_DATE = "2024-04-01"
RAILWAY_ID = "Test.Line"
ASCENDING_DIRECTION = "Test.Eastbound"
DESCENDING_DIRECTION = "Test.Westbound"
STATIONS = ("Test.Line.A", "Test.Line.B", "Test.Line.C", "Test.Line.D")
STATION_COORDINATES = (
    (139.70, 35.68, 0.0),
    (139.72, 35.68, 0.0),
    (139.74, 35.68, 0.0),
    (139.76, 35.68, 0.0),
)


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (may require external resources)",
    )
    config.addinivalue_line("markers", "performance: marks throughput tests")


def cumulative_offsets(coordinates: Sequence[Sequence[float]]) -> tuple[float, ...]:
    """Great-circle distance of every vertex from the first one, in meters."""
    offsets = [0.0]
    for current, following in zip(coordinates, coordinates[1:]):
        segment = great_circle(
            (current[1], current[0]),
            (following[1], following[0]),
            radius=EarthConstants.MEAN_EARTH_RADIUS_KILOMETERS,
        ).meters
        offsets.append(offsets[-1] + segment)
    return tuple(offsets)


class StaticTransitDataProvider(TransitDataProviderInterface):
    """Provider returning fixed records and counting calls."""

    def __init__(
        self,
        timetable: Sequence[TimetableEntry] = (),
        train_snapshot: LiveTrainSnapshot | None = None,
        flight_snapshot: LiveFlightSnapshot | None = None,
    ) -> None:
        self.timetable = list(timetable)
        self.train_snapshot = train_snapshot or LiveTrainSnapshot()
        self.flight_snapshot = flight_snapshot or LiveFlightSnapshot()
        self.live_error: Exception | None = None
        self.timetable_loads = 0
        self.train_polls = 0
        self.flight_polls = 0

    def load_timetable(self, now: float) -> list[TimetableEntry]:
        self.timetable_loads += 1
        return self.timetable

    def fetch_train_snapshot(self, now: float) -> LiveTrainSnapshot:
        self.train_polls += 1
        if self.live_error is not None:
            raise self.live_error
        return self.train_snapshot

    def fetch_flight_snapshot(self, now: float) -> LiveFlightSnapshot:
        self.flight_polls += 1
        if self.live_error is not None:
            raise self.live_error
        return self.flight_snapshot


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def local_time() -> Callable[[str], float]:
    """Convert a local "HH:MM[:SS]" time on the test service date to epoch milliseconds."""

    def convert(time_text: str, date: str = SERVICE_DATE) -> float:
        if time_text.count(":") == 1:
            time_text += ":00"
        return pd.Timestamp(f"{date} {time_text}", tz="Asia/Tokyo").value / 1e6

    return convert


@pytest.fixture
def configuration() -> SimulationConfiguration:
    """Realtime configuration with standard envelopes."""
    return SimulationConfiguration.create_default()


@pytest.fixture
def clock() -> ServiceClock:
    """Service-day clock in Tokyo time."""
    return ServiceClock()


@pytest.fixture
def scheduler() -> FrameScheduler:
    """Fresh frame scheduler."""
    return FrameScheduler()


@pytest.fixture
def sampler() -> PathGeometrySampler:
    """Path geometry sampler."""
    return PathGeometrySampler()


@pytest.fixture
def recorder() -> PoseTraceRecorder:
    """Recording pose sink."""
    return PoseTraceRecorder()


@pytest.fixture
def railway_definition() -> RailwayDefinition:
    """Straight east-west railway of four stations about 1.8 km apart."""
    return RailwayDefinition(
        railway_id=RAILWAY_ID,
        stations=STATIONS,
        coordinates=STATION_COORDINATES,
        station_offsets=cumulative_offsets(STATION_COORDINATES),
        ascending_direction=ASCENDING_DIRECTION,
    )


@pytest.fixture
def railway(railway_definition: RailwayDefinition) -> Railway:
    """Built runtime railway."""
    return PathDistanceTableBuilder().build_railway(railway_definition)


@pytest.fixture
def flight_route_definitions() -> list[FlightRouteDefinition]:
    """Departure and arrival corridors of the primary airport."""
    return [
        FlightRouteDefinition("HND.16R.Dep", ((139.780, 35.560, 0.0), (139.790, 35.530, 0.0), (139.850, 35.400, 1500.0))),
        FlightRouteDefinition("HND.16L.Dep", ((139.770, 35.565, 0.0), (139.780, 35.535, 0.0), (139.840, 35.405, 1500.0))),
        FlightRouteDefinition("HND.L23.Arr", ((139.950, 35.700, 1200.0), (139.830, 35.590, 300.0), (139.800, 35.560, 0.0))),
        FlightRouteDefinition("HND.L22.Arr", ((139.940, 35.710, 1200.0), (139.820, 35.600, 300.0), (139.790, 35.570, 0.0))),
    ]


@pytest.fixture
def make_timetable_entry() -> Callable[..., TimetableEntry]:
    """Factory of timetable entries on the test railway.

    Stops are given as (station suffix, arrival, departure) tuples.
    """

    def make(
        train_id: str,
        stops: Sequence[tuple[str, str | None, str | None]],
        rail_direction: str = ASCENDING_DIRECTION,
        timetable_id: str | None = None,
        previous_timetable_ids: tuple[str, ...] = (),
        next_timetable_ids: tuple[str, ...] = (),
    ) -> TimetableEntry:
        timetable_stops = tuple(
            TimetableStop(station=f"{RAILWAY_ID}.{suffix}", arrival=arrival, departure=departure)
            for suffix, arrival, departure in stops
        )
        return TimetableEntry(
            train_id=train_id,
            timetable_id=timetable_id or f"{train_id}.Weekday",
            railway_id=RAILWAY_ID,
            rail_direction=rail_direction,
            stops=timetable_stops,
            train_type="Local",
            train_number=train_id.rsplit(".", 1)[-1],
            origin=(timetable_stops[0].station,),
            destination=(timetable_stops[-1].station,),
            previous_timetable_ids=previous_timetable_ids,
            next_timetable_ids=next_timetable_ids,
        )

    return make


@pytest.fixture
def provider() -> StaticTransitDataProvider:
    """Provider with an empty timetable and empty live snapshots."""
    return StaticTransitDataProvider()
