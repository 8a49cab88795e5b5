"""Path construction and geometry sampling.

Paths are built once from parsed coordinate records into a cumulative
distance table; the sampler then maps a travelled distance to a position,
altitude, bearing and pitch for each car of a composition.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

import numpy as np
from geopy.distance import great_circle
from geopy.point import Point

from transit_motion.constants import EarthConstants
from transit_motion.data_classes import (
    FlightRouteDefinition,
    PoseSample,
    Railway,
    RailwayDefinition,
    RoutePath,
)
from transit_motion.exceptions import MalformedPathError, NumericDegeneracyError
from transit_motion.utilities import saturate_value_within_limits

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

# Station offsets may exceed the computed path length by this much (meters)
STATION_OFFSET_TOLERANCE_METERS = 1.0


def calculate_initial_bearing(origin: Sequence[float], target: Sequence[float]) -> float:
    """Initial great-circle bearing from ``origin`` to ``target``.

    Args:
        origin: Longitude and latitude in degrees.
        target: Longitude and latitude in degrees.

    Returns:
        Bearing in degrees within (-180, 180].
    """
    longitude1, latitude1 = math.radians(origin[0]), math.radians(origin[1])
    longitude2, latitude2 = math.radians(target[0]), math.radians(target[1])
    delta_longitude = longitude2 - longitude1

    y = math.sin(delta_longitude) * math.cos(latitude2)
    x = math.cos(latitude1) * math.sin(latitude2) - math.sin(latitude1) * math.cos(latitude2) * math.cos(delta_longitude)
    return math.degrees(math.atan2(y, x))


class PathDistanceTableBuilder:
    """Builds :class:`RoutePath` instances from coordinate records."""

    def __init__(self, earth_radius_kilometers: float = EarthConstants.MEAN_EARTH_RADIUS_KILOMETERS) -> None:
        self.earth_radius_kilometers = earth_radius_kilometers

    def build(
        self,
        route_id: str,
        coordinates: Sequence[Sequence[float]],
        station_offsets: Sequence[float] = (),
    ) -> RoutePath:
        """Build a path and its cumulative distance table.

        Consecutive duplicate vertices are merged so distances strictly
        increase; a path whose vertices all coincide collapses to a
        two-vertex, zero-length path.

        Args:
            route_id: Identifier used in error messages.
            coordinates: Vertices as (longitude, latitude[, altitude]).
            station_offsets: Distances of stations from the start of the path, in meters.

        Returns:
            The built path.

        Raises:
            MalformedPathError: If the geometry or station offsets are unusable.
        """
        vertices = self._normalize_vertices(route_id, coordinates)
        number_of_vertices = vertices.shape[0]
        distance_table = np.zeros((number_of_vertices, 4))

        travelled = 0.0
        bearing = grade = pitch = 0.0
        for index in range(number_of_vertices - 1):
            current_vertex = vertices[index]
            next_vertex = vertices[index + 1]
            segment_length = great_circle(
                (current_vertex[1], current_vertex[0]),
                (next_vertex[1], next_vertex[0]),
                radius=self.earth_radius_kilometers,
            ).meters

            if segment_length > 0:
                bearing = calculate_initial_bearing(current_vertex, next_vertex)
                grade = (next_vertex[2] - current_vertex[2]) / segment_length * 1000
            else:
                bearing = grade = 0.0
            pitch = math.atan(grade / 1000)

            distance_table[index] = (travelled, bearing, grade, pitch)
            travelled += segment_length

        # The last row repeats the final segment's attitude
        distance_table[-1] = (travelled, bearing, grade, pitch)

        if not np.all(np.isfinite(distance_table)):
            raise MalformedPathError(route_id, "distance table contains non-finite values")

        offsets = self._validate_station_offsets(route_id, station_offsets, travelled)
        return RoutePath(
            route_id=route_id,
            coordinates=vertices,
            distance_table=distance_table,
            station_offsets=offsets,
        )

    def build_railway(self, definition: RailwayDefinition) -> Railway:
        """Build the runtime railway of a parsed railway record."""
        if len(definition.station_offsets) != len(definition.stations):
            raise MalformedPathError(definition.railway_id, "station offsets do not match stations")
        if len(definition.stations) < 2:
            raise MalformedPathError(definition.railway_id, "a railway needs at least two stations")
        path = self.build(definition.railway_id, definition.coordinates, definition.station_offsets)
        return Railway(definition=definition, path=path)

    def build_flight_route(self, definition: FlightRouteDefinition) -> RoutePath:
        """Build the path of a parsed flight corridor record."""
        return self.build(definition.route_id, definition.coordinates)

    @staticmethod
    def _normalize_vertices(route_id: str, coordinates: Sequence[Sequence[float]]) -> np.ndarray:
        if len(coordinates) < 2:
            raise MalformedPathError(route_id, f"expected at least 2 vertices, got {len(coordinates)}")

        rows = []
        for coordinate in coordinates:
            if len(coordinate) < 2:
                raise MalformedPathError(route_id, f"vertex {coordinate!r} has no latitude")
            altitude = coordinate[2] if len(coordinate) > 2 else 0.0
            rows.append((float(coordinate[0]), float(coordinate[1]), float(altitude)))

        vertices = np.asarray(rows, dtype=float)
        if not np.all(np.isfinite(vertices)):
            raise MalformedPathError(route_id, "coordinates contain non-finite values")

        changed = np.any(np.diff(vertices[:, :2], axis=0) != 0, axis=1)
        keep = np.concatenate(([True], changed))
        vertices = vertices[keep]
        if vertices.shape[0] == 1:
            vertices = np.vstack((vertices, vertices))
        return vertices

    @staticmethod
    def _validate_station_offsets(route_id: str, station_offsets: Sequence[float], total_distance: float) -> tuple[float, ...]:
        offsets = tuple(float(offset) for offset in station_offsets)
        if not offsets:
            return offsets
        if not all(math.isfinite(offset) for offset in offsets):
            raise MalformedPathError(route_id, "station offsets contain non-finite values")
        if any(later < earlier for earlier, later in zip(offsets, offsets[1:])):
            raise MalformedPathError(route_id, "station offsets are not non-decreasing")
        if offsets[0] < -STATION_OFFSET_TOLERANCE_METERS or offsets[-1] > total_distance + STATION_OFFSET_TOLERANCE_METERS:
            raise MalformedPathError(route_id, "station offsets fall outside the path")
        return tuple(min(max(offset, 0.0), total_distance) for offset in offsets)


class PathGeometrySampler:
    """Maps travelled distance along a path to car poses."""

    def __init__(self, earth_radius_kilometers: float = EarthConstants.MEAN_EARTH_RADIUS_KILOMETERS) -> None:
        self.earth_radius_kilometers = earth_radius_kilometers

    @staticmethod
    def locate_segment(path: RoutePath, distance: float) -> int:
        """Index of the segment containing ``distance``, clamped to a valid segment."""
        index = int(np.searchsorted(path.cumulative_distances, distance, side="right")) - 1
        return min(max(index, 0), path.vertex_count - 2)

    def sample(
        self,
        path: RoutePath,
        distance: float,
        car_count: int = 1,
        car_spacing: float = 0.0,
    ) -> list[PoseSample]:
        """Sample ``car_count`` poses spaced ``car_spacing`` apart and centered on ``distance``.

        Distances outside the path are projected from the nearest segment
        along its bearing, except on a zero-length path where every car
        sits on the sole coordinate.

        Raises:
            NumericDegeneracyError: If a sampled pose is not finite.
        """
        if not math.isfinite(distance):
            raise NumericDegeneracyError(f"Non-finite distance {distance} on {path.route_id}")

        cumulative = path.cumulative_distances
        last_segment = path.vertex_count - 2
        collapsed = path.total_distance <= 0
        car_distance = distance - car_spacing * (car_count - 1) / 2
        index = self.locate_segment(path, car_distance)

        poses = []
        for _ in range(car_count):
            while index < last_segment and car_distance > cumulative[index + 1]:
                index += 1
            if collapsed:
                # A collapsed path has no bearing to extrapolate along
                projected_distance = saturate_value_within_limits(car_distance, 0.0, path.total_distance)
            else:
                projected_distance = car_distance
            poses.append(self._project(path, index, projected_distance))
            car_distance += car_spacing
        return poses

    def _project(self, path: RoutePath, index: int, distance: float) -> PoseSample:
        entry = path.distance_entry(index)
        longitude, latitude, altitude = path.coordinates[index]
        overshoot = distance - entry.distance_meters

        if overshoot == 0:
            destination = Point(latitude, longitude)
        else:
            bearing = entry.bearing_degrees if overshoot > 0 else entry.bearing_degrees + 180
            destination = great_circle(meters=abs(overshoot), radius=self.earth_radius_kilometers).destination(
                Point(latitude, longitude),
                bearing,
            )

        pose = PoseSample(
            longitude=destination.longitude,
            latitude=destination.latitude,
            altitude=float(altitude) + entry.grade_per_mille * overshoot / 1000,
            bearing=entry.bearing_degrees,
            pitch=entry.pitch_radians,
        )
        if not pose.is_finite():
            raise NumericDegeneracyError(f"Non-finite pose at {distance} m on {path.route_id}")
        return pose
