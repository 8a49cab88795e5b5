"""Example script for the transit motion engine.

This script drives the simulation without a renderer: every pose is
recorded, exported and plotted instead.

All output files are automatically saved to the 'output' directory
with unique filenames to prevent overwriting.
"""

from collections.abc import Sequence

import pandas as pd
from geopy.distance import great_circle

from transit_motion import (
    CsvPoseTraceExporter,
    FlightRouteDefinition,
    LiveFlightRecord,
    LiveFlightSnapshot,
    LiveTrainSnapshot,
    MatlabPoseTraceExporter,
    PoseTraceRecorder,
    PoseTraceVisualizationRenderer,
    RailwayDefinition,
    RunwayConfiguration,
    SimulationConfiguration,
    TimetableEntry,
    TimetableStop,
    TransitDataProviderInterface,
    TransitSimulation,
)

SERVICE_DATE = "2024-04-01"
RAILWAY_ID = "Sample.Line"
STATION_COORDINATES = (
    (139.700, 35.690, 0.0),
    (139.715, 35.685, 0.0),
    (139.735, 35.682, 0.0),
    (139.750, 35.676, 0.0),
    (139.770, 35.671, 0.0),
)


def local_time(time_text: str) -> float:
    """Epoch milliseconds of a local "HH:MM:SS" time on the sample service date."""
    return pd.Timestamp(f"{SERVICE_DATE} {time_text}", tz="Asia/Tokyo").value / 1e6


def create_sample_railway() -> RailwayDefinition:
    """Five-station railway with a station on every vertex."""
    offsets = [0.0]
    for current, following in zip(STATION_COORDINATES, STATION_COORDINATES[1:]):
        offsets.append(offsets[-1] + great_circle((current[1], current[0]), (following[1], following[0])).meters)

    return RailwayDefinition(
        railway_id=RAILWAY_ID,
        stations=tuple(f"{RAILWAY_ID}.S{index}" for index in range(len(STATION_COORDINATES))),
        coordinates=STATION_COORDINATES,
        station_offsets=tuple(offsets),
        ascending_direction="Sample.Outbound",
        car_composition=3,
    )


def create_sample_flight_routes() -> list[FlightRouteDefinition]:
    """A departure and an arrival corridor of the primary airport."""
    return [
        FlightRouteDefinition("HND.16R.Dep", ((139.780, 35.560, 0.0), (139.790, 35.530, 0.0), (139.850, 35.400, 1500.0))),
        FlightRouteDefinition("HND.L23.Arr", ((139.950, 35.700, 1200.0), (139.830, 35.590, 300.0), (139.800, 35.560, 0.0))),
    ]


class SampleTransitDataProvider(TransitDataProviderInterface):
    """Provider serving a fixed timetable and fixed flights."""

    def __init__(self, stations: Sequence[str]) -> None:
        self.stations = stations

    def load_timetable(self, now: float) -> list[TimetableEntry]:
        # Two minutes per section; no arrival at the origin, no departure at the terminus
        last = len(self.stations) - 1
        stops = tuple(
            TimetableStop(
                station=station,
                arrival=f"10:{2 * index:02d}" if index > 0 else None,
                departure=f"10:{2 * index:02d}" if index < last else None,
            )
            for index, station in enumerate(self.stations)
        )
        return [
            TimetableEntry(
                train_id=f"{RAILWAY_ID}.S1000",
                timetable_id=f"{RAILWAY_ID}.S1000.Weekday",
                railway_id=RAILWAY_ID,
                rail_direction="Sample.Outbound",
                stops=stops,
                train_type="Local",
                train_number="S1000",
                origin=(self.stations[0],),
                destination=(self.stations[-1],),
            )
        ]

    def fetch_train_snapshot(self, now: float) -> LiveTrainSnapshot:
        return LiveTrainSnapshot()

    def fetch_flight_snapshot(self, now: float) -> LiveFlightSnapshot:
        return LiveFlightSnapshot(
            landing_runways=("L22", "L23"),
            departure_runways=("16L", "16R"),
            records=(
                LiveFlightRecord("NH.NH241.HND", departure_airport="HND", destination_airport="FUK", scheduled_departure="10:01"),
                LiveFlightRecord("NH.NH243.HND", departure_airport="HND", destination_airport="FUK", scheduled_departure="10:01"),
                LiveFlightRecord("JL.JL306.HND", arrival_airport="HND", origin_airport="FUK", scheduled_arrival="10:06"),
            ),
        )


def main() -> None:
    """Run the sample timetable and flights in realtime mode for ten minutes."""
    railway = create_sample_railway()
    recorder = PoseTraceRecorder()
    simulation = TransitSimulation(
        railways=[railway],
        flight_routes=create_sample_flight_routes(),
        provider=SampleTransitDataProvider(railway.stations),
        sink=recorder,
        runway_configuration=RunwayConfiguration(airport_directions={"FUK": "S"}),
    )

    # Poses are sampled once per second of simulated time
    last_tick = simulation.run(local_time("09:59:00"), 10 * 60 * 1000, 1000)
    print(f"Simulated until {simulation.clock.format(last_tick)}")
    print(simulation.status_frame().to_string())

    if not recorder.rows:
        print("No poses were recorded.")
        return

    print(f"Recorded {len(recorder.rows)} poses of {len(recorder.entity_ids())} entities")

    # Export results (auto-saves to output/ with unique filenames)
    matlab_output_path = MatlabPoseTraceExporter().export_traces(recorder.rows, "realtime")
    print(f"Saved MATLAB file: {matlab_output_path}")

    csv_output_paths = CsvPoseTraceExporter().export_traces(recorder.rows, "realtime")
    if csv_output_paths:
        print(f"Saved CSV file(s): {csv_output_paths}")

    saved_path = PoseTraceVisualizationRenderer.render_three_dimensional_traces(
        recorder.rows,
        plot_title="Sample Line and HND flights",
        output_filename_base="realtime",
    )
    if saved_path:
        print(f"Saved plot image: {saved_path}")


def main_demonstration() -> None:
    """Run two demonstration shuttles for one simulated minute.

    Demonstration trains ignore timetables and run faster than real time,
    reversing at each terminal.
    """
    recorder = PoseTraceRecorder()
    simulation = TransitSimulation(
        railways=[create_sample_railway()],
        configuration=SimulationConfiguration.for_demonstration(),
        sink=recorder,
        realtime=False,
    )

    shuttles = simulation.start_demonstration(0.0)
    print(f"Started {len(shuttles)} shuttles")
    simulation.run(0.0, 60_000, 100)

    frame = recorder.to_dataframe()
    print(frame.groupby("entity_id")["time"].agg(["count", "max"]).to_string())

    csv_output_paths = CsvPoseTraceExporter().export_traces(recorder.rows, "demonstration")
    if csv_output_paths:
        print(f"Saved CSV file(s): {csv_output_paths}")

    saved_path = PoseTraceVisualizationRenderer.render_three_dimensional_traces(
        recorder.rows,
        plot_title="Demonstration shuttles",
        output_filename_base="demonstration",
    )
    if saved_path:
        print(f"Saved plot image: {saved_path}")


if __name__ == "__main__":
    # Run the realtime sample
    main()

    # Uncomment to run the demonstration shuttles instead:
    # main_demonstration()
