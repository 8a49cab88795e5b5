"""Transit Motion Engine - Train and Flight Motion Simulation Library.

This package simulates where every train and aircraft is along its path,
frame by frame, from timetables and live operational data, and emits poses
and statuses for an external renderer.
"""

# Core types and data classes
from .constants import DEFAULT_OUTPUT_DIRECTORY
from .data_classes import (
    EntityPose,
    FlightRouteDefinition,
    LiveFlightRecord,
    LiveFlightSnapshot,
    LiveTrainRecord,
    LiveTrainSnapshot,
    MotionLimits,
    PoseSample,
    RailwayDefinition,
    RailwayNotice,
    SimulationConfiguration,
    TimetableEntry,
    TimetableStop,
)
from .exceptions import (
    FeedUnavailableError,
    MalformedPathError,
    NumericDegeneracyError,
    ReconciliationConflictError,
    SimulationInitializationError,
    TransitSimulationError,
)

# Export functionality
from .exporters import CsvPoseTraceExporter, MatlabPoseTraceExporter

# Engine components
from .geometry import PathDistanceTableBuilder, PathGeometrySampler
from .motion import KinematicMotionProfileSolver, MotionProfile
from .recording import PoseTraceRecorder
from .runways import RunwayConfiguration
from .scheduler import FrameScheduler

# Main simulation context
from .simulation import TransitSimulation
from .types import (
    FlightState,
    PoseSinkInterface,
    PoseTraceRow,
    TrainState,
    TransitDataProviderInterface,
)

# Utilities
from .utilities import ServiceClock, generate_unique_filepath

# Validation and visualization
from .validation import ConstraintBasedProfileValidator
from .visualization import PoseTraceVisualizationRenderer

__all__ = [
    # Constants
    "DEFAULT_OUTPUT_DIRECTORY",
    # Records and configuration
    "EntityPose",
    "FlightRouteDefinition",
    "LiveFlightRecord",
    "LiveFlightSnapshot",
    "LiveTrainRecord",
    "LiveTrainSnapshot",
    "MotionLimits",
    "PoseSample",
    "PoseTraceRow",
    "RailwayDefinition",
    "RailwayNotice",
    "SimulationConfiguration",
    "TimetableEntry",
    "TimetableStop",
    "FlightState",
    "TrainState",
    # Interfaces
    "PoseSinkInterface",
    "TransitDataProviderInterface",
    # Errors
    "FeedUnavailableError",
    "MalformedPathError",
    "NumericDegeneracyError",
    "ReconciliationConflictError",
    "SimulationInitializationError",
    "TransitSimulationError",
    # Main API
    "TransitSimulation",
    "FrameScheduler",
    "KinematicMotionProfileSolver",
    "MotionProfile",
    "PathDistanceTableBuilder",
    "PathGeometrySampler",
    "RunwayConfiguration",
    # Diagnostics
    "PoseTraceRecorder",
    "CsvPoseTraceExporter",
    "MatlabPoseTraceExporter",
    "ConstraintBasedProfileValidator",
    "PoseTraceVisualizationRenderer",
    # Utilities
    "ServiceClock",
    "generate_unique_filepath",
]
