"""Timetable loading, continuation linking and activation windows.

Timetable records are turned into :class:`Train` entities held in a
:class:`TrainRegistry` owned by one simulation context. Continuation links
between legs are resolved through a directed graph so that inconsistent
feeds (cycles, dangling references) are detected and dropped.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

import networkx as nx

from transit_motion.data_classes import SimulationConfiguration, TimetableEntry, Train
from transit_motion.exceptions import ReconciliationConflictError
from transit_motion.utilities import iterate_identifier_candidates

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping, Sequence

    from transit_motion.data_classes import Railway
    from transit_motion.utilities import ServiceClock

logger = logging.getLogger(__name__)


class TrainRegistry:
    """Trains of one simulation context keyed by train identifier."""

    def __init__(self) -> None:
        self._trains: dict[str, Train] = {}
        self._timetables: dict[str, Train] = {}

    def __len__(self) -> int:
        return len(self._trains)

    def __iter__(self) -> Iterator[Train]:
        return iter(list(self._trains.values()))

    def __contains__(self, train_id: object) -> bool:
        return train_id in self._trains

    def get(self, train_id: str) -> Train | None:
        """Return a train by identifier."""
        return self._trains.get(train_id)

    def get_by_timetable(self, timetable_id: str) -> Train | None:
        """Return a train by timetable identifier."""
        return self._timetables.get(timetable_id)

    def find(self, train_id: str, aliases: Sequence[tuple[str, str]] = ()) -> Train | None:
        """Return a train by identifier, retrying under each alias spelling."""
        for candidate in iterate_identifier_candidates(train_id, aliases):
            train = self._trains.get(candidate)
            if train is not None:
                return train
        return None

    def add(self, train: Train) -> None:
        """Register a train; a duplicate identifier replaces the earlier train."""
        existing = self._trains.get(train.train_id)
        if existing is not None and existing is not train:
            conflict = ReconciliationConflictError(f"Duplicate train identifier {train.train_id!r}; keeping the latest")
            logger.warning("%s", conflict)
            if self._timetables.get(existing.timetable_id or "") is existing:
                del self._timetables[existing.timetable_id or ""]
        self._trains[train.train_id] = train
        if train.timetable_id is not None:
            self._timetables[train.timetable_id] = train

    def remove(self, train: Train) -> None:
        """Unregister a train if it is still the registered instance."""
        if self._trains.get(train.train_id) is train:
            del self._trains[train.train_id]
        if train.timetable_id is not None and self._timetables.get(train.timetable_id) is train:
            del self._timetables[train.timetable_id]

    def active_trains(self) -> list[Train]:
        """Trains currently standing or running."""
        return [train for train in self._trains.values() if train.is_active]


def is_within_activation_window(train: Train, now: float) -> bool:
    """Whether ``now`` lies within the train's delay-shifted window."""
    return train.start_time + train.delay <= now <= train.end_time + train.delay


def is_activatable(train: Train, now: float, has_live_data: bool = False) -> bool:
    """Whether an inactive train may be started at ``now``.

    Neither the train nor its adjacent legs may be active, and a suspended
    railway only runs trains that the live feed still reports.
    """
    if train.is_active or not is_within_activation_window(train, now):
        return False
    if train.previous_train is not None and train.previous_train.is_active:
        return False
    if train.next_train is not None and train.next_train.is_active:
        return False
    return not train.railway.is_suspended or has_live_data


class TimetableLoader:
    """Builds a train registry from parsed timetable records."""

    def __init__(
        self,
        railways: Mapping[str, Railway],
        clock: ServiceClock,
        configuration: SimulationConfiguration,
    ) -> None:
        self.railways = railways
        self.clock = clock
        self.configuration = configuration

    def load(self, entries: Iterable[TimetableEntry], now: float) -> TrainRegistry:
        """Create trains for every usable entry, link continuations and compute windows.

        Args:
            entries: Parsed timetable records of the service day.
            now: Current instant, which selects the service day.

        Returns:
            Registry holding one train per timetable identifier.
        """
        registry = TrainRegistry()
        usable_entries: dict[str, TimetableEntry] = {}

        for entry in entries:
            railway = self.railways.get(entry.railway_id)
            if railway is None:
                logger.warning("Skipping timetable %s on unknown railway %s", entry.timetable_id, entry.railway_id)
                continue
            if not entry.stops or entry.stops[0].departure is None:
                logger.warning("Skipping timetable %s without a first departure", entry.timetable_id)
                continue
            if entry.timetable_id in usable_entries:
                conflict = ReconciliationConflictError(f"Duplicate timetable identifier {entry.timetable_id!r}; keeping the latest")
                logger.warning("%s", conflict)
            usable_entries[entry.timetable_id] = entry

        graph = build_continuation_graph(usable_entries.values())

        for entry in usable_entries.values():
            railway = self.railways[entry.railway_id]
            registry.add(
                Train(
                    train_id=entry.train_id,
                    railway=railway,
                    direction=railway.direction_of(entry.rail_direction),
                    train_type=entry.train_type,
                    train_number=entry.train_number,
                    rail_direction=entry.rail_direction,
                    timetable_id=entry.timetable_id,
                    stops=list(entry.stops),
                    origin=entry.origin,
                    destination=entry.destination,
                    car_composition=railway.definition.car_composition,
                )
            )

        for entry in usable_entries.values():
            train = registry.get_by_timetable(entry.timetable_id)
            if train is None:
                continue
            self._link_continuations(train, entry, graph, registry)
            self._assign_activation_window(train, now)

        logger.info("Loaded %d timetable trains", len(registry))
        return registry

    @staticmethod
    def _link_continuations(train: Train, entry: TimetableEntry, graph: nx.DiGraph, registry: TrainRegistry) -> None:
        if entry.previous_timetable_ids:
            previous_id = entry.previous_timetable_ids[0]
            if graph.has_edge(previous_id, entry.timetable_id):
                train.previous_train = registry.get_by_timetable(previous_id)

        if entry.next_timetable_ids:
            next_id = entry.next_timetable_ids[0]
            if graph.has_edge(entry.timetable_id, next_id):
                train.next_train = registry.get_by_timetable(next_id)

        if train.next_train is not None and train.next_train.stops and train.stops:
            # The last stop departs when the continuation does
            train.stops[-1] = replace(train.stops[-1], departure=train.next_train.stops[0].departure)

    def _assign_activation_window(self, train: Train, now: float) -> None:
        stops = train.stops or []
        first_departure = stops[0].departure or ""
        last_stop = stops[-1]
        end_time_string = last_stop.arrival or last_stop.departure or stops[max(len(stops) - 2, 0)].departure

        train.start_time = self.clock.resolve(first_departure, now) - self.configuration.standing_duration
        train.end_time = self.clock.resolve(end_time_string, now) if end_time_string else train.start_time


def build_continuation_graph(entries: Iterable[TimetableEntry]) -> nx.DiGraph:
    """Directed graph of leg continuations, with links that close a cycle removed.

    Only links whose both ends are known timetable identifiers are kept.
    """
    entries = list(entries)
    known = {entry.timetable_id for entry in entries}
    graph = nx.DiGraph()
    graph.add_nodes_from(known)

    for entry in entries:
        if entry.previous_timetable_ids and entry.previous_timetable_ids[0] in known:
            graph.add_edge(entry.previous_timetable_ids[0], entry.timetable_id)
        if entry.next_timetable_ids and entry.next_timetable_ids[0] in known:
            graph.add_edge(entry.timetable_id, entry.next_timetable_ids[0])

    while True:
        try:
            cycle = nx.find_cycle(graph)
        except nx.NetworkXNoCycle:
            break
        source, target = cycle[-1][:2]
        conflict = ReconciliationConflictError(f"Continuation cycle through {source!r} -> {target!r}; link dropped")
        logger.warning("%s", conflict)
        graph.remove_edge(source, target)

    return graph
