"""Runway decision table.

Maps the active landing and departure runways reported by the airport
information service to the approach and departure route identifiers of the
modeled airports. This is configuration data: it decides which path a
flight follows, never how it moves.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from transit_motion.data_classes import LiveFlightRecord

logger = logging.getLogger(__name__)

RUNWAY_KEY_PATTERN: Final = re.compile(r"^([^.]+\.)[A-Z]*([^.]+).+")


@dataclass(frozen=True)
class RunwayPattern:
    """Routes in use for arrivals and departures, keyed by compass side ('N'/'S')."""

    arrival_routes: dict[str, str] = field(default_factory=dict)
    departure_routes: dict[str, str] = field(default_factory=dict)
    north: bool = True


# (required landing runways, arrival routes, departure routes, north flow)
DAYTIME_PATTERNS: Final[tuple[tuple[frozenset[str], dict[str, str], dict[str, str], bool], ...]] = (
    (frozenset({"L22", "L23"}), {"S": "L23", "N": "L22"}, {"S": "16R", "N": "16L"}, False),
    (frozenset({"I22", "I23"}), {"S": "I23", "N": "I22"}, {"S": "16R", "N": "16L"}, False),
    (frozenset({"I34L", "H34R"}), {"S": "IX34L", "N": "H34R"}, {"S": "05", "N": "34R"}, True),
    (frozenset({"I34L", "I34R"}), {"S": "IZ34L", "N": "H34R"}, {"S": "05", "N": "34R"}, True),
)

# Single landing runway in use at night: (runway, arrival route, north flow)
MIDNIGHT_ARRIVALS: Final[tuple[tuple[str, str, bool], ...]] = (
    ("I23", "IY23", False),
    ("L23", "LY23", False),
    ("I34L", "IX34L", True),
    ("I34R", "IY34R", True),
)

MIDNIGHT_DEPARTURES: Final[tuple[tuple[str, str], ...]] = (
    ("16L", "N16L"),
    ("05", "N05"),
)


class RunwayConfiguration:
    """Resolves runway patterns and flight route identifiers."""

    def __init__(
        self,
        airport_directions: Mapping[str, str] | None = None,
        default_direction: str = "S",
        primary_airport: str = "HND",
        secondary_airport: str = "NRT",
    ) -> None:
        """Initialize the configuration.

        Args:
            airport_directions: Compass side ('N' or 'S') of each origin/destination airport.
            default_direction: Side used for airports without an entry.
            primary_airport: Airport whose routes follow the decision table.
            secondary_airport: Airport with a fixed north/south flow only.
        """
        self.airport_directions = dict(airport_directions or {})
        self.default_direction = default_direction
        self.primary_airport = primary_airport
        self.secondary_airport = secondary_airport

    def resolve_pattern(self, landing_runways: Sequence[str], departure_runways: Sequence[str]) -> RunwayPattern:
        """Look up the routes in use for the reported runways."""
        landing = set(landing_runways)
        for required, arrival_routes, departure_routes, north in DAYTIME_PATTERNS:
            if required <= landing:
                return RunwayPattern(dict(arrival_routes), dict(departure_routes), north)

        if len(landing) != 1:
            logger.warning("Unexpected landing runways: %s", ", ".join(landing_runways))
            return RunwayPattern()

        arrival_routes: dict[str, str] = {}
        north = True
        for runway, route, north_flow in MIDNIGHT_ARRIVALS:
            if runway in landing:
                arrival_routes = {"S": route, "N": route}
                north = north_flow
                break
        else:
            logger.warning("Unexpected landing runway: %s", landing_runways[0])

        departure_routes: dict[str, str] = {}
        for runway, route in MIDNIGHT_DEPARTURES:
            if runway in departure_runways:
                departure_routes = {"S": route, "N": route}
                break
        else:
            logger.warning("Unexpected departure runways: %s", ", ".join(departure_runways))

        return RunwayPattern(arrival_routes, departure_routes, north)

    def direction_of(self, airport: str | None) -> str:
        """Compass side of an origin or destination airport."""
        if airport is None:
            return self.default_direction
        return self.airport_directions.get(airport, self.default_direction)

    def resolve_route_id(self, record: LiveFlightRecord, pattern: RunwayPattern) -> str | None:
        """Route identifier a flight follows under ``pattern``, or ``None`` if not modeled."""
        direction = self.direction_of(record.destination_airport or record.origin_airport)
        secondary = self.secondary_airport
        primary = self.primary_airport

        if record.departure_airport == secondary:
            return f"{secondary}.{'34L' if pattern.north else '16R'}.Dep"
        if record.arrival_airport == secondary:
            return f"{secondary}.{'34R' if pattern.north else '16L'}.Arr"
        if record.departure_airport == primary:
            route = pattern.departure_routes.get(direction)
            return f"{primary}.{route}.Dep" if route else None
        if record.arrival_airport == primary:
            route = pattern.arrival_routes.get(direction)
            return f"{primary}.{route}.Arr" if route else None
        return None


def derive_runway_key(route_id: str) -> str:
    """Spacing-queue key of a route: airport plus runway, approach prefix removed.

    ``HND.IX34L.Arr`` and ``HND.34R.Dep`` resolve to ``HND.34L`` and ``HND.34R``.
    """
    return RUNWAY_KEY_PATTERN.sub(r"\1\2", route_id)
