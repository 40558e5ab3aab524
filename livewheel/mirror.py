import logging
import threading

logger = logging.getLogger(__name__)


class SegmentMirror:
    """Local copy of the registry's segment list, replaced wholesale."""

    def __init__(self, segments=None):
        self._segments = list(segments or [])
        self._observers = []
        self._lock = threading.RLock()

    def subscribe(self, callback):
        self._observers.append(callback)

    def replace(self, segments):
        with self._lock:
            self._segments = list(segments)
            snapshot = list(self._segments)
        logger.info(f"📊 Segments updated: {len(snapshot)} segment(s)")
        for callback in list(self._observers):
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(f"💥 Segment observer failed: {e}")

    @property
    def segments(self):
        with self._lock:
            return list(self._segments)

    def __len__(self):
        with self._lock:
            return len(self._segments)
