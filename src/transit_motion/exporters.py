"""Pose trace exporters.

This module contains classes for exporting recorded pose traces
to various file formats (CSV, MATLAB).
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import scipy.io

from transit_motion.constants import DEFAULT_OUTPUT_DIRECTORY, FileExportLimits
from transit_motion.recording import POSE_TRACE_COLUMNS
from transit_motion.types import PoseTraceExporterInterface, PoseTraceRow
from transit_motion.utilities import generate_unique_filepath

if TYPE_CHECKING:
    from collections.abc import Sequence


class CsvPoseTraceExporter(PoseTraceExporterInterface):
    """Exports pose traces to CSV format with automatic file splitting."""

    def __init__(
        self,
        maximum_rows_per_file: int = FileExportLimits.MAXIMUM_CSV_ROWS_PER_FILE,
    ) -> None:
        """Initialize the CSV exporter.

        Args:
            maximum_rows_per_file: Maximum number of rows per output file.
        """
        self.maximum_rows_per_file = maximum_rows_per_file

    def export_traces(
        self,
        trace_rows: Sequence[PoseTraceRow],
        output_filename_base: str,
        output_directory: Path | None = None,
    ) -> list[Path]:
        """Export pose rows to CSV format with automatic file splitting.

        Args:
            trace_rows: Recorded pose rows.
            output_filename_base: Base filename for output.
            output_directory: Directory to save files in (uses DEFAULT_OUTPUT_DIRECTORY if None).

        Returns:
            List of paths to created files.
        """
        if not trace_rows:
            print("No pose data to export.")
            return []

        target_directory = output_directory or DEFAULT_OUTPUT_DIRECTORY
        created_files: list[Path] = []
        current_file = None
        csv_writer = None
        current_row_count = 0

        try:
            for row in trace_rows:
                if current_file is None or current_row_count >= self.maximum_rows_per_file:
                    if current_file is not None:
                        current_file.close()
                    output_filepath = generate_unique_filepath(target_directory, f"{output_filename_base}_Poses", ".csv")
                    current_file = open(output_filepath, mode="w", newline="", encoding="utf-8")  # noqa: SIM115
                    csv_writer = csv.writer(current_file)
                    csv_writer.writerow(POSE_TRACE_COLUMNS)
                    created_files.append(output_filepath)
                    print(f"Writing to {output_filepath}...")
                    current_row_count = 0

                csv_writer.writerow([row[column] for column in POSE_TRACE_COLUMNS])  # type: ignore[union-attr, literal-required]
                current_row_count += 1
        finally:
            if current_file is not None:
                current_file.close()

        print("Data successfully saved.")
        return created_files


class MatlabPoseTraceExporter(PoseTraceExporterInterface):
    """Exports pose traces to MATLAB .mat format, one column array per field."""

    def export_traces(
        self,
        trace_rows: Sequence[PoseTraceRow],
        output_filename_base: str,
        output_directory: Path | None = None,
    ) -> Path:
        """Export pose rows to MATLAB format.

        Args:
            trace_rows: Recorded pose rows.
            output_filename_base: Base filename for output.
            output_directory: Directory to save files in (uses DEFAULT_OUTPUT_DIRECTORY if None).

        Returns:
            Path to created file.
        """
        target_directory = output_directory or DEFAULT_OUTPUT_DIRECTORY
        output_filepath = generate_unique_filepath(target_directory, f"{output_filename_base}_Poses", ".mat")

        columns = {
            "time": np.array([row["time"] for row in trace_rows], dtype=float),
            "entity_id": np.array([row["entity_id"] for row in trace_rows], dtype=object),
            "kind": np.array([row["kind"] for row in trace_rows], dtype=object),
            "car_index": np.array([row["car_index"] for row in trace_rows], dtype=float),
            "longitude": np.array([row["longitude"] for row in trace_rows], dtype=float),
            "latitude": np.array([row["latitude"] for row in trace_rows], dtype=float),
            "altitude": np.array([row["altitude"] for row in trace_rows], dtype=float),
            "bearing": np.array([row["bearing"] for row in trace_rows], dtype=float),
            "pitch": np.array([row["pitch"] for row in trace_rows], dtype=float),
            "standing": np.array([row["standing"] for row in trace_rows], dtype=bool),
        }
        scipy.io.savemat(str(output_filepath), {"poses": columns})
        print(f"Data successfully saved to {output_filepath}")
        return output_filepath
