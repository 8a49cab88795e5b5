"""Unit tests for the runway decision table."""

from __future__ import annotations

import logging

import pytest

from transit_motion.data_classes import LiveFlightRecord
from transit_motion.runways import RunwayConfiguration, RunwayPattern, derive_runway_key


@pytest.fixture
def runway_configuration() -> RunwayConfiguration:
    """Configuration with one northern and one southern destination."""
    return RunwayConfiguration(airport_directions={"CTS": "N", "FUK": "S"})


@pytest.fixture
def south_flow(runway_configuration: RunwayConfiguration) -> RunwayPattern:
    """Daytime south-flow pattern."""
    return runway_configuration.resolve_pattern(("L22", "L23"), ("16L", "16R"))


class TestResolvePattern:
    """Tests for RunwayConfiguration.resolve_pattern method."""

    @pytest.mark.parametrize(
        ("landing", "departure", "arrival_routes", "departure_routes", "north"),
        [
            (("L22", "L23"), ("16L", "16R"), {"S": "L23", "N": "L22"}, {"S": "16R", "N": "16L"}, False),
            (("I23", "I22"), ("16L", "16R"), {"S": "I23", "N": "I22"}, {"S": "16R", "N": "16L"}, False),
            (("I34L", "H34R"), ("05", "34R"), {"S": "IX34L", "N": "H34R"}, {"S": "05", "N": "34R"}, True),
            (("I34L", "I34R"), ("05", "34R"), {"S": "IZ34L", "N": "H34R"}, {"S": "05", "N": "34R"}, True),
            (("L23", "L22", "I34R"), ("16L",), {"S": "L23", "N": "L22"}, {"S": "16R", "N": "16L"}, False),
        ],
    )
    def test_daytime_patterns(
        self,
        runway_configuration: RunwayConfiguration,
        landing: tuple[str, ...],
        departure: tuple[str, ...],
        arrival_routes: dict[str, str],
        departure_routes: dict[str, str],
        north: bool,
    ) -> None:
        """Test daytime two-runway patterns, including supersets of a pattern."""
        pattern = runway_configuration.resolve_pattern(landing, departure)

        assert pattern.arrival_routes == arrival_routes
        assert pattern.departure_routes == departure_routes
        assert pattern.north is north

    @pytest.mark.parametrize(
        ("landing", "departure", "arrival_route", "departure_route", "north"),
        [
            (("L23",), ("16L",), "LY23", "N16L", False),
            (("I23",), ("16L",), "IY23", "N16L", False),
            (("I34L",), ("05",), "IX34L", "N05", True),
            (("I34R",), ("05",), "IY34R", "N05", True),
        ],
    )
    def test_midnight_patterns(
        self,
        runway_configuration: RunwayConfiguration,
        landing: tuple[str, ...],
        departure: tuple[str, ...],
        arrival_route: str,
        departure_route: str,
        north: bool,
    ) -> None:
        """Test that a single landing runway uses the same route for every side."""
        pattern = runway_configuration.resolve_pattern(landing, departure)

        assert pattern.arrival_routes == {"S": arrival_route, "N": arrival_route}
        assert pattern.departure_routes == {"S": departure_route, "N": departure_route}
        assert pattern.north is north

    def test_unexpected_runway_combination(
        self,
        runway_configuration: RunwayConfiguration,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test that an unknown multi-runway combination yields no routes."""
        with caplog.at_level(logging.WARNING, logger="transit_motion.runways"):
            pattern = runway_configuration.resolve_pattern(("L22", "I34R"), ("16L",))

        assert pattern == RunwayPattern()
        assert "Unexpected landing runways" in caplog.text

    def test_unknown_midnight_runways(
        self,
        runway_configuration: RunwayConfiguration,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test that unknown single runways leave only the known side populated."""
        with caplog.at_level(logging.WARNING, logger="transit_motion.runways"):
            pattern = runway_configuration.resolve_pattern(("X01",), ("16L",))

        assert pattern.arrival_routes == {}
        assert pattern.departure_routes == {"S": "N16L", "N": "N16L"}
        assert "Unexpected landing runway: X01" in caplog.text

    def test_pattern_routes_are_independent_copies(self, runway_configuration: RunwayConfiguration) -> None:
        """Test that mutating a resolved pattern leaves the table intact."""
        first = runway_configuration.resolve_pattern(("L22", "L23"), ())
        first.arrival_routes["S"] = "changed"

        second = runway_configuration.resolve_pattern(("L22", "L23"), ())
        assert second.arrival_routes["S"] == "L23"


class TestResolveRouteId:
    """Tests for RunwayConfiguration.resolve_route_id method."""

    @pytest.mark.parametrize(
        ("record", "expected"),
        [
            (LiveFlightRecord("NH.NH61.HND", departure_airport="HND", destination_airport="CTS"), "HND.16L.Dep"),
            (LiveFlightRecord("NH.NH241.HND", departure_airport="HND", destination_airport="FUK"), "HND.16R.Dep"),
            (LiveFlightRecord("NH.NH999.HND", departure_airport="HND", destination_airport="XXX"), "HND.16R.Dep"),
            (LiveFlightRecord("JL.JL502.HND", arrival_airport="HND", origin_airport="CTS"), "HND.L22.Arr"),
            (LiveFlightRecord("JL.JL306.HND", arrival_airport="HND", origin_airport="FUK"), "HND.L23.Arr"),
            (LiveFlightRecord("JL.JL1.NRT", departure_airport="NRT", destination_airport="CTS"), "NRT.16R.Dep"),
            (LiveFlightRecord("JL.JL2.NRT", arrival_airport="NRT", origin_airport="CTS"), "NRT.16L.Arr"),
            (LiveFlightRecord("JL.JL3.KIX", departure_airport="KIX", destination_airport="CTS"), None),
        ],
    )
    def test_south_flow_routes(
        self,
        runway_configuration: RunwayConfiguration,
        south_flow: RunwayPattern,
        record: LiveFlightRecord,
        expected: str | None,
    ) -> None:
        """Test route selection by airport and compass side."""
        assert runway_configuration.resolve_route_id(record, south_flow) == expected

    def test_secondary_airport_north_flow(self, runway_configuration: RunwayConfiguration) -> None:
        """Test that the secondary airport follows the flow of the primary pattern."""
        pattern = runway_configuration.resolve_pattern(("I34L", "H34R"), ("05", "34R"))

        departure = LiveFlightRecord("JL.JL1.NRT", departure_airport="NRT")
        arrival = LiveFlightRecord("JL.JL2.NRT", arrival_airport="NRT")

        assert runway_configuration.resolve_route_id(departure, pattern) == "NRT.34L.Dep"
        assert runway_configuration.resolve_route_id(arrival, pattern) == "NRT.34R.Arr"

    def test_no_route_without_pattern(self, runway_configuration: RunwayConfiguration) -> None:
        """Test that primary-airport flights are not modeled under an empty pattern."""
        record = LiveFlightRecord("NH.NH61.HND", departure_airport="HND", destination_airport="CTS")
        assert runway_configuration.resolve_route_id(record, RunwayPattern()) is None


@pytest.mark.parametrize(
    ("route_id", "expected"),
    [
        ("HND.IX34L.Arr", "HND.34L"),
        ("HND.16R.Dep", "HND.16R"),
        ("HND.N05.Dep", "HND.05"),
        ("HND.L23.Arr", "HND.23"),
        ("HND.H34R.Arr", "HND.34R"),
        ("NRT.34L.Dep", "NRT.34L"),
    ],
)
def test_derive_runway_key(route_id: str, expected: str) -> None:
    """Test that approach prefixes and the direction suffix are removed."""
    assert derive_runway_key(route_id) == expected
