"""
Rendering surfaces: the thing that visually spins.

The playback machine only sees the RenderingSurface interface. A surface is
built for one segment list and thrown away when the list changes.
"""

import logging
import random
import time
from abc import ABC, abstractmethod

from .errors import SurfaceError
from .models import LandedSegment

logger = logging.getLogger(__name__)


class RenderingSurface(ABC):

    @property
    @abstractmethod
    def ready(self):
        """False when the surface could not be initialized (e.g. no segments)."""

    @abstractmethod
    def spin(self, slot, on_finished):
        """
        Start an animation that stops on one-based ``slot``.

        Returns immediately; ``on_finished(LandedSegment)`` is called exactly
        once when the animation stops.
        """

    @abstractmethod
    def abort(self):
        """Stop the running animation. Raises SurfaceError if none is running."""

    @abstractmethod
    def reset_rotation(self):
        """Zero the rotation baseline so the next spin starts from scratch."""


def segment_width(count):
    return 360.0 / count


def segment_at_angle(angle, count):
    """One-based segment under ``angle`` (degrees, segment 1 starts at 0)."""
    index = int((angle % 360) // segment_width(count))
    return min(index, count - 1) + 1


def random_angle_for_segment(slot, count, rng=random):
    """Random stop angle strictly inside ``slot`` so rounding can't cross a border."""
    width = segment_width(count)
    start = (slot - 1) * width
    margin = min(1.0, width / 4)
    return rng.uniform(start + margin, start + width - margin)


class TimedWheelSurface(RenderingSurface):
    """
    Server-side wheel that broadcasts the animation to displays and finishes
    after a fixed duration.

    The pointer sits at the top of the wheel; a stop angle is the wheel angle
    that ends up under it. ``start_task`` runs the completion in the background
    (``socketio.start_background_task`` in the server).
    """

    def __init__(self, segments, duration=6, rotations=10, start_task=None, sleep=time.sleep,
                 emit=None, rng=random):
        self.segments = list(segments)
        self.duration = duration
        self.rotations = rotations
        self.rotation_angle = 0.0
        self._start_task = start_task or _run_inline
        self._sleep = sleep
        self._emit = emit
        self._rng = rng
        self._generation = 0
        self._animating = False
        self._target_rotation = 0.0

    @property
    def ready(self):
        return bool(self.segments)

    @property
    def animating(self):
        return self._animating

    def pointer_angle(self, rotation=None):
        rotation = self.rotation_angle if rotation is None else rotation
        return (360 - rotation % 360) % 360

    def indicated_segment(self):
        if not self.segments:
            return None
        slot = segment_at_angle(self.pointer_angle(), len(self.segments))
        segment = self.segments[slot - 1]
        return LandedSegment(text=segment.text, fill=segment.color)

    def spin(self, slot, on_finished):
        if not self.ready:
            raise SurfaceError("wheel has no segments")
        if not 1 <= slot <= len(self.segments):
            raise SurfaceError(f"slot {slot} outside 1..{len(self.segments)}")

        stop_angle = random_angle_for_segment(slot, len(self.segments), self._rng)
        self._target_rotation = self.rotation_angle + 360 * self.rotations + (360 - stop_angle)
        self._generation += 1
        self._animating = True

        if self._emit:
            self._emit('wheel_spin', {
                'slot': slot,
                'stop_angle': stop_angle,
                'rotation': self._target_rotation,
                'duration_ms': int(self.duration * 1000),
            })
        logger.debug(f"🎡 Animating to slot {slot} (stop angle {stop_angle:.1f}°)")
        self._start_task(self._finish_after, self._generation, on_finished)

    def abort(self):
        if not self._animating:
            raise SurfaceError("no animation in progress")
        self._animating = False
        self._generation += 1
        if self._emit:
            self._emit('wheel_abort', {})

    def reset_rotation(self):
        self.rotation_angle = 0.0

    def _finish_after(self, generation, on_finished):
        self._sleep(self.duration)
        if generation != self._generation or not self._animating:
            logger.debug("🛑 Animation was aborted before it finished")
            return
        self._animating = False
        self.rotation_angle = self._target_rotation
        on_finished(self.indicated_segment())


def _run_inline(func, *args):
    func(*args)


def timed_surface_factory(duration, rotations, start_task=None, sleep=time.sleep, emit=None):
    """Factory handed to the playback machine; one surface per segment list."""
    def build(segments):
        return TimedWheelSurface(segments, duration=duration, rotations=rotations,
                                 start_task=start_task, sleep=sleep, emit=emit)
    return build
