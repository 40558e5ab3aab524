import logging
import threading
from collections import defaultdict, deque

logger = logging.getLogger(__name__)

SEGMENTS_UPDATED = 'segments-updated'
SPIN = 'spin'


class LocalTransport:
    """
    In-process publish/subscribe channel with a single publisher.

    Delivery is synchronous and in publish order. While disconnected, published
    notifications are held and delivered in the same order on reconnect.
    """

    def __init__(self):
        self._handlers = defaultdict(list)
        self._connection_observers = []
        self._held = deque()
        self._lock = threading.RLock()
        self.connected = True

    def subscribe(self, event, handler):
        self._handlers[event].append(handler)

    def on_connection_change(self, callback):
        self._connection_observers.append(callback)

    def publish(self, event, payload):
        with self._lock:
            if not self.connected:
                self._held.append((event, payload))
                logger.warning(f"📴 Transport down, holding '{event}' ({len(self._held)} held)")
                return False
            self._deliver(event, payload)
            return True

    def set_connected(self, connected):
        with self._lock:
            if connected == self.connected:
                return
            self.connected = connected
            for callback in list(self._connection_observers):
                callback(connected)
            if connected:
                while self._held and self.connected:
                    event, payload = self._held.popleft()
                    self._deliver(event, payload)

    @property
    def held(self):
        return len(self._held)

    def _deliver(self, event, payload):
        for handler in list(self._handlers[event]):
            try:
                handler(payload)
            except Exception as e:
                logger.error(f"💥 Handler for '{event}' failed: {e}")
