"""Pose trace visualization.

This module contains classes for plotting recorded vehicle traces.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import matplotlib.pyplot as plt

from transit_motion.constants import DEFAULT_OUTPUT_DIRECTORY
from transit_motion.utilities import generate_unique_filepath

if TYPE_CHECKING:
    from collections.abc import Sequence

    from transit_motion.types import PoseTraceRow


class PoseTraceVisualizationRenderer:
    """Creates visualizations of recorded vehicle traces."""

    @staticmethod
    def render_three_dimensional_traces(
        trace_rows: Sequence[PoseTraceRow],
        plot_title: str = "Transit Motion Engine",
        output_filepath: Path | str | None = None,
        output_directory: Path | None = None,
        output_filename_base: str | None = None,
    ) -> Path | None:
        """Create a 3D plot of the lead-car trace of every recorded entity.

        Args:
            trace_rows: Recorded pose rows.
            plot_title: Plot title.
            output_filepath: Explicit path to save the plot image. If None, uses output_directory.
            output_directory: Directory to save files in (uses DEFAULT_OUTPUT_DIRECTORY if None).
            output_filename_base: Base filename for auto-generated path (required if output_filepath is None
                and saving to file is desired).

        Returns:
            Path to saved file if saving, None if displaying interactively.
        """
        traces: dict[str, list[PoseTraceRow]] = {}
        for row in trace_rows:
            if row["car_index"] == 0:
                traces.setdefault(row["entity_id"], []).append(row)

        figure = plt.figure()
        axes = figure.add_subplot(111, projection="3d")

        for entity_id, rows in traces.items():
            axes.plot3D(
                [row["longitude"] for row in rows],
                [row["latitude"] for row in rows],
                [row["altitude"] for row in rows],
                label=entity_id,
            )

        axes.set_xlabel("Longitude (deg)")
        axes.set_ylabel("Latitude (deg)")
        axes.set_zlabel("Altitude (m)")
        axes.set_title(plot_title)
        if traces:
            axes.legend()

        save_path: Path | None = None
        if output_filepath is not None:
            save_path = Path(output_filepath)
            save_path.parent.mkdir(parents=True, exist_ok=True)
        elif output_filename_base is not None:
            target_directory = output_directory or DEFAULT_OUTPUT_DIRECTORY
            save_path = generate_unique_filepath(target_directory, f"{output_filename_base}_traces", ".png")

        if save_path is not None:
            figure.savefig(save_path, dpi=150, bbox_inches="tight")
            plt.close(figure)
            return save_path

        plt.show()
        return None
