import logging

from .admin import AdminEditSession
from .errors import RelayError
from .history import HistoryPublisher
from .mirror import SegmentMirror
from .models import Segment, SpinRequest
from .playback import PlaybackMachine
from .transport import SEGMENTS_UPDATED, SPIN

logger = logging.getLogger(__name__)


class WheelStation:
    """
    The wheel as seen from the transport: mirrors segments, queues spin
    requests, plays them in order and publishes outcomes.
    """

    def __init__(self, transport, relay_client, surface_factory, history_size=5, fallback_color="#cccccc"):
        self.transport = transport
        self.relay_client = relay_client
        self.mirror = SegmentMirror()
        self.publisher = HistoryPublisher(capacity=history_size)
        self.machine = PlaybackMachine(self.publisher, surface_factory, fallback_color=fallback_color)
        self.admin = AdminEditSession(self.mirror, relay_client)

        self.mirror.subscribe(self.machine.configure_segments)
        transport.subscribe(SEGMENTS_UPDATED, self.on_segments_updated)
        transport.subscribe(SPIN, self.on_spin)
        transport.on_connection_change(self.publisher.set_connected)
        self.publisher.connected = transport.connected

    def on_segments_updated(self, payload):
        if not isinstance(payload, list):
            logger.error(f"💥 Ignoring segments update that is not a list: {type(payload).__name__}")
            return
        segments = [Segment.from_payload(entry) for entry in payload if isinstance(entry, dict)]
        self.mirror.replace(segments)

    def on_spin(self, payload):
        request = SpinRequest.from_payload(payload)
        logger.info(f"🎡 Spin event received: {request.type} from @{request.username or 'anonymous'}")
        self.machine.submit(request)

    def test_spin(self, sku=None):
        """Operator test trigger; the result is informational only."""
        try:
            result = self.relay_client.test_spin(sku)
        except RelayError as e:
            logger.error(f"💥 Test spin failed: {e}")
            return None
        logger.info(f"🧪 Test spin sent (sku: {sku or 'random'}): {result}")
        return result

    def force_idle(self, reason="operator reset"):
        return self.machine.force_idle(reason)

    def subscribe(self, callback):
        self.publisher.subscribe(callback)

    def status(self):
        return self.publisher.status()

    def history(self):
        return self.publisher.history()

    @property
    def segments(self):
        return self.mirror.segments
