"""Tests for pose recording, trace export and visualization."""

from __future__ import annotations

import csv
from pathlib import Path
from unittest.mock import MagicMock, patch

import numpy as np
import pytest
import scipy.io

from transit_motion.data_classes import EntityPose, PoseSample, TrainStatusPayload
from transit_motion.exporters import CsvPoseTraceExporter, MatlabPoseTraceExporter
from transit_motion.recording import POSE_TRACE_COLUMNS, PoseTraceRecorder
from transit_motion.types import EntityKind, PoseSinkInterface, PoseTraceRow
from transit_motion.visualization import PoseTraceVisualizationRenderer

# =============================================================================
# Fixtures
# =============================================================================


def make_pose(entity_id: str, time: float, longitude: float, car_count: int = 1, kind: EntityKind = EntityKind.TRAIN) -> EntityPose:
    """Pose with cars spaced eastwards from ``longitude``."""
    cars = tuple(
        PoseSample(longitude=longitude + index * 0.0002, latitude=35.68, altitude=10.0 * index, bearing=90.0, pitch=0.0)
        for index in range(car_count)
    )
    return EntityPose(entity_id=entity_id, kind=kind, time=time, cars=cars, standing=False)


@pytest.fixture
def filled_recorder() -> PoseTraceRecorder:
    """Recorder holding a two-car train and a flight over ten frames."""
    recorder = PoseTraceRecorder()
    for frame in range(10):
        recorder.publish_pose(make_pose("Test.Line.A1000", frame * 100.0, 139.70 + frame * 0.001, car_count=2))
        recorder.publish_pose(make_pose("NH.NH61.HND", frame * 100.0, 139.78, kind=EntityKind.FLIGHT))
    return recorder


@pytest.fixture
def trace_rows(filled_recorder: PoseTraceRecorder) -> list[PoseTraceRow]:
    """Recorded rows of the filled recorder."""
    return filled_recorder.rows


# =============================================================================
# Recorder Tests
# =============================================================================


class TestPoseTraceRecorder:
    """Tests for PoseTraceRecorder class."""

    def test_rows_per_car(self, filled_recorder: PoseTraceRecorder) -> None:
        """Test that each car of a pose becomes one row."""
        assert len(filled_recorder.rows) == 30
        assert filled_recorder.entity_ids() == ["Test.Line.A1000", "NH.NH61.HND"]
        assert len(filled_recorder.rows_for("Test.Line.A1000")) == 10
        assert len(filled_recorder.rows_for("Test.Line.A1000", car_index=None)) == 20
        assert filled_recorder.rows_for("NH.NH61.HND")[0]["kind"] == "flight"

    def test_dataframe(self, filled_recorder: PoseTraceRecorder) -> None:
        """Test conversion of the recorded rows to a data frame."""
        frame = filled_recorder.to_dataframe()

        assert list(frame.columns) == POSE_TRACE_COLUMNS
        assert len(frame) == 30
        assert frame.groupby("entity_id")["time"].max()["Test.Line.A1000"] == pytest.approx(900.0)

    def test_statuses_and_removals(self) -> None:
        """Test that the latest status is kept and removals are recorded."""
        recorder = PoseTraceRecorder()
        status = TrainStatusPayload(
            train_id="Test.Line.A1000",
            railway_id="Test.Line",
            train_type="Local",
            train_number="A1000",
            destination="Test.Line.D",
            rail_direction="Test.Eastbound",
            standing=True,
            departure_station="Test.Line.A",
            departure_time="10:00",
            arrival_station="Test.Line.B",
            arrival_time="10:03",
            delay=0.0,
            is_ad_hoc=False,
        )

        recorder.publish_status(status)
        recorder.remove_entity("Test.Line.A1000")

        assert recorder.statuses == {"Test.Line.A1000": status}
        assert recorder.removed_entity_ids == ["Test.Line.A1000"]

    def test_forwards_to_downstream(self) -> None:
        """Test that every call reaches the wrapped sink."""
        downstream = MagicMock(spec=PoseSinkInterface)
        downstream.is_visible.return_value = False
        recorder = PoseTraceRecorder(downstream)
        pose = make_pose("Test.Line.A1000", 0.0, 139.70)

        recorder.publish_pose(pose)
        recorder.remove_entity("Test.Line.A1000")

        downstream.publish_pose.assert_called_once_with(pose)
        downstream.remove_entity.assert_called_once_with("Test.Line.A1000")
        assert recorder.is_visible(pose) is False

    def test_clear(self, filled_recorder: PoseTraceRecorder) -> None:
        """Test that clearing forgets everything."""
        filled_recorder.remove_entity("NH.NH61.HND")
        filled_recorder.clear()

        assert filled_recorder.rows == []
        assert filled_recorder.removed_entity_ids == []
        assert filled_recorder.to_dataframe().empty


# =============================================================================
# Exporter Tests
# =============================================================================


class TestCsvPoseTraceExporter:
    """Tests for CsvPoseTraceExporter class."""

    def test_export_creates_file(self, trace_rows: list[PoseTraceRow], tmp_path: Path) -> None:
        """Test that export creates a CSV file with a header row."""
        created_files = CsvPoseTraceExporter().export_traces(trace_rows, "test_traces", tmp_path)

        assert len(created_files) == 1
        assert created_files[0].suffix == ".csv"
        with open(created_files[0], newline="", encoding="utf-8") as file:
            rows = list(csv.reader(file))
        assert rows[0] == POSE_TRACE_COLUMNS
        assert len(rows) == 31

    def test_export_empty_results(self, tmp_path: Path) -> None:
        """Test export with no rows."""
        assert CsvPoseTraceExporter().export_traces([], "test_traces", tmp_path) == []

    def test_file_splitting_on_row_limit(self, trace_rows: list[PoseTraceRow], tmp_path: Path) -> None:
        """Test that CSV export splits files when the row limit is exceeded."""
        created_files = CsvPoseTraceExporter(maximum_rows_per_file=12).export_traces(trace_rows, "split_test", tmp_path)

        assert len(created_files) == 3
        assert len({file.name for file in created_files}) == 3
        for file in created_files:
            assert file.exists()


class TestMatlabPoseTraceExporter:
    """Tests for MatlabPoseTraceExporter class."""

    def test_export_creates_file(self, trace_rows: list[PoseTraceRow], tmp_path: Path) -> None:
        """Test that export creates a MATLAB file with one array per field."""
        created_file = MatlabPoseTraceExporter().export_traces(trace_rows, "test_traces", tmp_path)

        assert created_file.exists()
        assert created_file.suffix == ".mat"

        contents = scipy.io.loadmat(str(created_file))
        poses = contents["poses"][0, 0]
        longitudes = np.ravel(poses["longitude"])
        assert longitudes.shape == (30,)
        assert longitudes[0] == pytest.approx(139.70)

    def test_repeated_export_does_not_overwrite(self, trace_rows: list[PoseTraceRow], tmp_path: Path) -> None:
        """Test that a second export gets a new filename."""
        exporter = MatlabPoseTraceExporter()
        first = exporter.export_traces(trace_rows, "test_traces", tmp_path)
        second = exporter.export_traces(trace_rows, "test_traces", tmp_path)

        assert first != second
        assert second.name == "test_traces_Poses_1.mat"


# =============================================================================
# Visualization Tests
# =============================================================================


class TestPoseTraceVisualizationRenderer:
    """Tests for PoseTraceVisualizationRenderer class."""

    def test_render_saves_to_file(self, trace_rows: list[PoseTraceRow], tmp_path: Path) -> None:
        """Test rendering and saving to an explicit file."""
        output_path = tmp_path / "plots" / "test_plot.png"

        result = PoseTraceVisualizationRenderer.render_three_dimensional_traces(
            trace_rows,
            plot_title="Test Plot",
            output_filepath=output_path,
        )

        assert result == output_path
        assert output_path.exists()

    def test_render_auto_generates_filename(self, trace_rows: list[PoseTraceRow], tmp_path: Path) -> None:
        """Test rendering with an auto-generated filename."""
        result = PoseTraceVisualizationRenderer.render_three_dimensional_traces(
            trace_rows,
            output_directory=tmp_path,
            output_filename_base="auto_test",
        )

        assert result is not None
        assert result.exists()
        assert result.name == "auto_test_traces.png"

    def test_render_interactive(self, trace_rows: list[PoseTraceRow]) -> None:
        """Test that rendering without a target shows the plot."""
        with patch("matplotlib.pyplot.show") as show:
            result = PoseTraceVisualizationRenderer.render_three_dimensional_traces(trace_rows)

        assert result is None
        show.assert_called_once()

    def test_render_without_rows(self, tmp_path: Path) -> None:
        """Test that an empty trace still produces a figure."""
        output_path = tmp_path / "empty.png"
        assert PoseTraceVisualizationRenderer.render_three_dimensional_traces([], output_filepath=output_path) == output_path
