import logging
import threading
from collections import deque
from enum import Enum

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 5


class PlaybackState(Enum):
    IDLE = "idle"
    SPINNING = "spinning"


class HistoryPublisher:
    """
    Bounded most-recent-first outcome history plus live wheel status.

    Observers are called synchronously as ``callback(event, payload)`` with
    event one of ``outcome`` (a ResolvedOutcome), ``status`` (status dict) or
    ``error`` (diagnostic dict).
    """

    def __init__(self, capacity=DEFAULT_HISTORY_SIZE):
        self._history = deque(maxlen=capacity)
        self._observers = []
        self._lock = threading.RLock()
        self.state = PlaybackState.IDLE
        self.segment_count = 0
        self.pending = 0
        self.connected = True
        self.last_outcome = None

    @property
    def capacity(self):
        return self._history.maxlen

    def subscribe(self, callback):
        self._observers.append(callback)

    def record(self, outcome):
        with self._lock:
            self._history.appendleft(outcome)
            self.last_outcome = outcome
        logger.info(f"🏆 Winner: '{outcome.text}' for @{outcome.username or 'anonymous'}")
        self._notify("outcome", outcome)
        self._notify("status", self.status())

    def set_state(self, state):
        with self._lock:
            self.state = state
        self._notify("status", self.status())

    def set_segment_count(self, count):
        with self._lock:
            self.segment_count = count
        self._notify("status", self.status())

    def set_pending(self, count):
        with self._lock:
            self.pending = count
        self._notify("status", self.status())

    def set_connected(self, connected):
        with self._lock:
            self.connected = bool(connected)
        logger.info(f"🔌 Transport {'connected' if connected else 'disconnected'}")
        self._notify("status", self.status())

    def report_error(self, kind, message):
        self._notify("error", {"error_type": kind, "message": message})

    def history(self):
        with self._lock:
            return list(self._history)

    def status(self):
        with self._lock:
            return {
                "state": self.state.value,
                "is_spinning": self.state is PlaybackState.SPINNING,
                "segments": self.segment_count,
                "pending": self.pending,
                "connected": self.connected,
                "last_winner": self.last_outcome.to_dict() if self.last_outcome else None,
            }

    def _notify(self, event, payload):
        for callback in list(self._observers):
            try:
                callback(event, payload)
            except Exception as e:
                logger.error(f"💥 Observer failed on '{event}': {e}")
