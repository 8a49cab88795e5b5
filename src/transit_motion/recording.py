"""Pose trace recording.

The recorder is a pose sink that keeps every emitted car pose as a flat
row, for export and plotting.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pandas as pd

from transit_motion.data_classes import TrainStatusPayload
from transit_motion.types import PoseSinkInterface, PoseTraceRow

if TYPE_CHECKING:
    from transit_motion.data_classes import EntityPose
    from transit_motion.types import StatusPayload

POSE_TRACE_COLUMNS = list(PoseTraceRow.__annotations__)


class PoseTraceRecorder(PoseSinkInterface):
    """Records poses, latest statuses and removals.

    Optionally forwards everything to another sink, so a renderer can be
    recorded while it runs.
    """

    def __init__(self, downstream: PoseSinkInterface | None = None) -> None:
        self.downstream = downstream
        self.rows: list[PoseTraceRow] = []
        self.statuses: dict[str, StatusPayload] = {}
        self.removed_entity_ids: list[str] = []

    def publish_pose(self, pose: EntityPose) -> None:
        for car_index, car in enumerate(pose.cars):
            self.rows.append(
                PoseTraceRow(
                    time=pose.time,
                    entity_id=pose.entity_id,
                    kind=pose.kind.value,
                    car_index=car_index,
                    longitude=car.longitude,
                    latitude=car.latitude,
                    altitude=car.altitude,
                    bearing=car.bearing,
                    pitch=car.pitch,
                    standing=pose.standing,
                )
            )
        if self.downstream is not None:
            self.downstream.publish_pose(pose)

    def publish_status(self, status: StatusPayload) -> None:
        entity_id = status.train_id if isinstance(status, TrainStatusPayload) else status.flight_id
        self.statuses[entity_id] = status
        if self.downstream is not None:
            self.downstream.publish_status(status)

    def remove_entity(self, entity_id: str) -> None:
        self.removed_entity_ids.append(entity_id)
        if self.downstream is not None:
            self.downstream.remove_entity(entity_id)

    def is_visible(self, pose: EntityPose) -> bool:
        if self.downstream is not None:
            return self.downstream.is_visible(pose)
        return True

    def entity_ids(self) -> list[str]:
        """Identifiers with at least one recorded pose, in first-seen order."""
        return list(dict.fromkeys(row["entity_id"] for row in self.rows))

    def rows_for(self, entity_id: str, car_index: int | None = 0) -> list[PoseTraceRow]:
        """Recorded rows of one entity, optionally limited to a single car."""
        return [
            row
            for row in self.rows
            if row["entity_id"] == entity_id and (car_index is None or row["car_index"] == car_index)
        ]

    def to_dataframe(self) -> pd.DataFrame:
        """All recorded rows as a data frame."""
        return pd.DataFrame(self.rows, columns=POSE_TRACE_COLUMNS)

    def clear(self) -> None:
        """Forget everything recorded."""
        self.rows.clear()
        self.statuses.clear()
        self.removed_entity_ids.clear()
