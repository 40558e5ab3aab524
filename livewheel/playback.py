"""
Playback state machine: plays queued spin requests one at a time.

IDLE -> SPINNING happens only when idle with a non-empty queue. SPINNING ->
IDLE happens only when the surface calls back (or an operator forces it).
A request arriving mid-spin waits in the queue; nothing preempts a spin.
"""

import logging
import threading
import time

from .history import PlaybackState
from .resolution import resolve_outcome
from .spin_queue import SpinQueue

logger = logging.getLogger(__name__)


def target_slot(request, segment_count):
    """One-based slot for a request; anything but an in-range index lands on slot 1."""
    index = request.segment_index
    if index is not None and 0 <= index < segment_count:
        return index + 1
    return 1


class PlaybackMachine:

    def __init__(self, publisher, surface_factory, queue=None, fallback_color="#cccccc"):
        self.publisher = publisher
        self.queue = queue if queue is not None else SpinQueue()
        self.fallback_color = fallback_color
        self._surface_factory = surface_factory
        self._surface = None
        self._spinning_surface = None
        self._segment_count = 0
        self._state = PlaybackState.IDLE
        self._active = None
        self._draining = False
        self._lock = threading.RLock()

        # debugging aids, same spirit as the status endpoint
        self.total_spins = 0
        self.spin_start_time = None

    @property
    def state(self):
        return self._state

    @property
    def is_spinning(self):
        return self._state is PlaybackState.SPINNING

    def configure_segments(self, segments):
        """Build a fresh surface for a new segment list; the old one is dropped."""
        with self._lock:
            self._segment_count = len(segments)
            self._surface = self._surface_factory(list(segments))
            if not getattr(self._surface, 'ready', False):
                logger.warning("⚠️ Rendering surface not ready (no segments); spins will be dropped")
        self.publisher.set_segment_count(len(segments))

    def submit(self, request):
        with self._lock:
            self.queue.enqueue(request)
            logger.info(f"📥 Spin queued for @{request.username or 'anonymous'} "
                        f"(pending: {len(self.queue)}, state: {self._state.value})")
            self.publisher.set_pending(len(self.queue))
            self._drain()

    def force_idle(self, reason="operator reset"):
        """
        Drop the in-flight spin and go back to IDLE.

        The only way out of a spin whose completion never arrives. The dropped
        spin gets no outcome; a late callback from it is ignored.
        """
        with self._lock:
            if self._state is PlaybackState.IDLE:
                logger.info(f"🔄 Force idle ignored ({reason}): wheel already idle")
                return False
            logger.warning(f"🔄 Forcing wheel idle: {reason}")
            self._abort_surface(self._spinning_surface or self._surface)
            self._active = None
            self._spinning_surface = None
            self._set_state(PlaybackState.IDLE)
            self._drain()
            return True

    def _drain(self):
        # iterative: a surface that completes synchronously re-enters _finish,
        # which lands back here while we are still looping
        if self._draining:
            return
        self._draining = True
        try:
            while self._state is PlaybackState.IDLE and self.queue.has_pending():
                self._start_next()
        finally:
            self._draining = False

    def _start_next(self):
        request = self.queue.dequeue_front()
        self.publisher.set_pending(len(self.queue))
        surface = self._surface

        if surface is None or not surface.ready or not callable(getattr(surface, 'spin', None)):
            self._drop(request, "not_ready", "Rendering surface is not initialized")
            return

        slot = target_slot(request, self._segment_count)
        if request.segment_index is not None and slot != request.segment_index + 1:
            logger.warning(f"⚠️ segmentIndex {request.segment_index} outside 0..{self._segment_count - 1}, "
                           f"spinning to the first segment")

        self._abort_surface(surface)
        surface.reset_rotation()

        token = object()
        self._active = token
        self._spinning_surface = surface
        self.total_spins += 1
        self.spin_start_time = time.time()
        self._set_state(PlaybackState.SPINNING)
        logger.info(f"🎲 Spin #{self.total_spins} STARTED for @{request.username or 'anonymous'} -> slot {slot}")

        try:
            surface.spin(slot, self._continuation(token, request, slot))
        except Exception as e:
            if self._active is not token:
                logger.error(f"💥 Rendering surface raised after completing: {e}")
                return
            self._active = None
            self._spinning_surface = None
            self._set_state(PlaybackState.IDLE)
            self._drop(request, "start_failed", f"Rendering surface failed to start: {e}")

    def _continuation(self, token, request, slot):
        fired = []

        def on_finished(landed=None):
            if fired:
                logger.warning(f"⚠️ Duplicate completion for spin of @{request.username} ignored")
                return
            fired.append(True)
            self._finish(token, request, slot, landed)

        return on_finished

    def _finish(self, token, request, slot, landed):
        with self._lock:
            if token is not self._active:
                logger.warning(f"⚠️ Stale completion for @{request.username} ignored")
                return
            self._active = None
            self._spinning_surface = None
            outcome = resolve_outcome(request, slot, landed, fallback_color=self.fallback_color)
            duration = time.time() - self.spin_start_time if self.spin_start_time else 0
            self.spin_start_time = None
            logger.info(f"✅ Spin #{self.total_spins} COMPLETED (duration: {duration:.1f}s)")
            self._set_state(PlaybackState.IDLE)
            self.publisher.record(outcome)
            self._drain()

    def _abort_surface(self, surface):
        if surface is None:
            return
        try:
            surface.abort()
        except Exception as e:
            logger.debug(f"Surface abort ignored: {e}")

    def _drop(self, request, kind, message):
        logger.error(f"🚫 Spin for @{request.username or 'anonymous'} dropped: {message}")
        self.publisher.report_error(kind, message)

    def _set_state(self, state):
        self._state = state
        self.publisher.set_state(state)
