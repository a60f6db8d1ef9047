"""Simulated progress for the single blocking image-edit call.

The model gives no progress signal, so while a call is in flight an estimator
task advances a percentage toward 95 and rotates a step label. The task stops
as soon as the shared stop event is set.
"""

import asyncio
import logging

from ..config import (
    MASK_SECONDS_PER_EDIT,
    PLACEMENT_SECONDS_PER_EDIT,
    PROGRESS_TICK_S,
    SURFACE_SECONDS_PER_EDIT,
)
from ..models.schemas import EditGroup

logger = logging.getLogger(__name__)

PROGRESS_CAP = 95.0

STEPS = {
    EditGroup.SURFACE: [
        "Downloading image...",
        "Creating regions...",
        "Calling AI...",
        "Processing...",
        "Finalizing...",
    ],
    EditGroup.PLACEMENT: [
        "Preparing images...",
        "Sending to AI...",
        "Rendering products...",
        "Finalizing...",
    ],
    EditGroup.MASK: [
        "Preparing mask...",
        "Sending to AI...",
        "Applying edit...",
        "Finalizing...",
    ],
}

_SECONDS_PER_EDIT = {
    EditGroup.SURFACE: SURFACE_SECONDS_PER_EDIT,
    EditGroup.PLACEMENT: PLACEMENT_SECONDS_PER_EDIT,
    EditGroup.MASK: MASK_SECONDS_PER_EDIT,
}


def estimated_seconds(group: EditGroup, edit_count: int) -> float:
    return max(edit_count, 1) * _SECONDS_PER_EDIT[group]


class ProgressEstimator:
    def __init__(self, group: EditGroup, edit_count: int, tick_s: float = PROGRESS_TICK_S):
        self.group = group
        self.estimated_s = estimated_seconds(group, edit_count)
        self.tick_s = tick_s
        self.progress = 0.0
        self.steps = STEPS[group]
        self.step = self.steps[0]
        # Surface steps rotate every 3 s, the others spread over the estimate
        self._step_every_s = 3.0 if group == EditGroup.SURFACE else self.estimated_s / 4
        self._elapsed = 0.0

    def advance(self, dt: float) -> None:
        """Move the estimate forward by ``dt`` seconds of wall time."""
        ticks = dt / 0.5
        increment = ticks * 100.0 / (self.estimated_s * 2)
        self.progress = min(self.progress + increment, PROGRESS_CAP)
        self._elapsed += dt
        idx = int(self._elapsed // self._step_every_s) if self._step_every_s > 0 else 0
        self.step = self.steps[min(idx, len(self.steps) - 1)]

    async def run(self, stop: asyncio.Event) -> None:
        """Tick until ``stop`` is set. Never raises on stop."""
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.tick_s)
            except asyncio.TimeoutError:
                self.advance(self.tick_s)
        logger.debug("Progress estimator stopped at %.1f%%", self.progress)

    def complete(self) -> None:
        self.progress = 100.0
        self.step = "Complete!"
