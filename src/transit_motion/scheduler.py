"""Frame scheduler driving all time-based callbacks of a simulation.

The scheduler holds a registry of animation tasks and is ticked by the host
with the current time. It never reads a clock itself, which keeps every
simulation run deterministic and replayable.
"""

from __future__ import annotations

import itertools
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass

from transit_motion.constants import FrameRateDefaults, UnitConversionConstants
from transit_motion.exceptions import TransitSimulationError

logger = logging.getLogger(__name__)

FrameCallback = Callable[[float, float], None]
CompletionCallback = Callable[[float], None]


@dataclass
class AnimationTask:
    """A registered task; owned by the scheduler for its whole lifetime."""

    task_id: int
    callback: FrameCallback | None
    completion_callback: CompletionCallback | None
    duration: float
    frame_rate_hz: float
    start_offset: float
    start_time: float | None = None
    next_frame_time: float = -math.inf

    def elapsed_at(self, now: float) -> float:
        """Time elapsed since the task clock started."""
        if self.start_time is None:
            return 0.0
        return now - self.start_time


class FrameScheduler:
    """Cooperative frame task scheduler.

    Tasks start their clock lazily on the first tick after registration;
    ``start_offset`` advances that clock retroactively so a journey can be
    resumed mid-way. Tasks with an infinite duration never complete on
    their own.
    """

    def __init__(self, default_frame_rate_hz: float = FrameRateDefaults.DEFAULT_FRAME_RATE_HZ) -> None:
        self.default_frame_rate_hz = default_frame_rate_hz
        self._tasks: dict[int, AnimationTask] = {}
        self._identifiers = itertools.count()

    def __len__(self) -> int:
        return len(self._tasks)

    def schedule(
        self,
        callback: FrameCallback | None = None,
        completion_callback: CompletionCallback | None = None,
        duration: float = math.inf,
        frame_rate_hz: float | None = None,
        start_offset: float = 0.0,
    ) -> int:
        """Register a task.

        Args:
            callback: Called as ``callback(min(elapsed, duration), duration)`` on every eligible frame.
            completion_callback: Called once with the tick time when ``elapsed >= duration``.
            duration: Task duration in milliseconds.
            frame_rate_hz: Frame rate override; the scheduler default when omitted.
            start_offset: Milliseconds by which the task clock is advanced at its first tick.

        Returns:
            Identifier usable with :meth:`cancel`.
        """
        task_id = next(self._identifiers)
        self._tasks[task_id] = AnimationTask(
            task_id=task_id,
            callback=callback,
            completion_callback=completion_callback,
            duration=duration,
            frame_rate_hz=frame_rate_hz or self.default_frame_rate_hz,
            start_offset=max(start_offset, 0.0),
        )
        return task_id

    def cancel(self, task_id: int | None) -> None:
        """Remove a task; a no-op for unknown, completed or cancelled ids."""
        if task_id is not None:
            self._tasks.pop(task_id, None)

    def cancel_all(self) -> None:
        """Remove every task."""
        self._tasks.clear()

    def is_active(self, task_id: int | None) -> bool:
        """Whether a task is still registered."""
        return task_id is not None and task_id in self._tasks

    def set_frame_rate(self, task_id: int | None, frame_rate_hz: float | None) -> None:
        """Change the frame rate of a live task; ``None`` restores the default."""
        task = self._tasks.get(task_id) if task_id is not None else None
        if task is not None:
            task.frame_rate_hz = frame_rate_hz or self.default_frame_rate_hz

    def frame_rate_of(self, task_id: int | None) -> float | None:
        """Current frame rate of a live task."""
        task = self._tasks.get(task_id) if task_id is not None else None
        return task.frame_rate_hz if task is not None else None

    def tick(self, now: float) -> None:
        """Run every task whose next eligible frame has come.

        Tasks registered or cancelled by callbacks during the tick take
        effect immediately: new tasks wait for the next tick and cancelled
        tasks receive no further calls.
        """
        for task_id in list(self._tasks):
            task = self._tasks.get(task_id)
            if task is None or task.next_frame_time > now:
                continue

            if task.start_time is None:
                task.start_time = now - task.start_offset
            elapsed = now - task.start_time

            if task.callback is not None:
                self._run_guarded(task, task.callback, min(elapsed, task.duration), task.duration)
            task.next_frame_time = now + UnitConversionConstants.MILLISECONDS_PER_SECOND / task.frame_rate_hz

            if elapsed >= task.duration and self._tasks.get(task_id) is task:
                del self._tasks[task_id]
                if task.completion_callback is not None:
                    self._run_guarded(task, task.completion_callback, now)

    def _run_guarded(self, task: AnimationTask, function: Callable[..., None], *arguments: float) -> None:
        try:
            function(*arguments)
        except TransitSimulationError as error:
            logger.warning("Animation task %d failed: %s", task.task_id, error)
