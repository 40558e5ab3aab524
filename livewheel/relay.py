"""
Webhook relay: the upstream publisher of spin requests.

A TikFinity-style webhook carries three positional values (username, text,
sku) and a shared secret. The relay checks the secret, decides which segment
the wheel must land on and publishes a ``spin`` notification.
"""

import hmac
import logging
import random

from .errors import RelayError, SegmentValidationError, WebhookAuthError
from .models import SegmentRef, SpinRequest
from .transport import SEGMENTS_UPDATED, SPIN

logger = logging.getLogger(__name__)

TOKEN_HEADER = 'x-tikfinity-token'
ANONYMOUS = 'Anónimo'


def extract_token(headers, body):
    token = headers.get(TOKEN_HEADER) if headers else None
    if not token and isinstance(body, dict):
        token = body.get('secret')
    return token if isinstance(token, str) else None


class WebhookRelay:

    def __init__(self, registry, transport, secret=None, rng=random):
        self.registry = registry
        self.transport = transport
        self.secret = secret
        self._rng = rng
        self.total_published = 0

    @property
    def enabled(self):
        return bool(self.secret)

    def authenticate(self, token):
        if not self.enabled:
            raise WebhookAuthError("Webhook secret is not configured")
        if not token or not hmac.compare_digest(token.encode('utf-8'), self.secret.encode('utf-8')):
            raise WebhookAuthError("Invalid webhook token")

    def build_request(self, username, text, sku=None, request_type='gift'):
        """Pick the target segment: by sku when it matches, otherwise at random."""
        segments = self.registry.segments
        sku = sku if isinstance(sku, str) and sku.strip() else None

        index = None
        if segments:
            index = self.registry.find(sku) if sku else None
            if sku and index is None:
                logger.warning(f"⚠️ Unknown sku '{sku}', picking a random segment")
            if index is None:
                index = self._rng.randrange(len(segments))

        return SpinRequest(
            type=request_type,
            username=username if isinstance(username, str) and username.strip() else ANONYMOUS,
            text=text if isinstance(text, str) else None,
            sku=sku,
            segment_index=index,
            segment=SegmentRef.from_segment(segments[index]) if index is not None else None,
        )

    def handle_webhook(self, body, headers=None):
        """Authenticate and publish one webhook; returns the published request."""
        body = body if isinstance(body, dict) else {}
        self.authenticate(extract_token(headers, body))
        request = self.build_request(body.get('value1'), body.get('value2'), body.get('value3'))
        self.publish(request)
        return request

    def test_spin(self, sku=None):
        request = self.build_request('TestUser', 'Test spin', sku, request_type='test')
        self.publish(request)
        return request

    def publish(self, request):
        self.total_published += 1
        target = request.segment.text if request.segment else 'none'
        logger.info(f"📡 Publishing spin #{self.total_published} from @{request.username} -> {target}")
        self.transport.publish(SPIN, request.to_dict())


class LocalRelayClient:
    """Relay client for a wheel running in the same process as the relay."""

    def __init__(self, registry, relay, transport):
        self.registry = registry
        self.relay = relay
        self.transport = transport

    def save_segments(self, segments):
        try:
            saved = self.registry.save(segments)
        except SegmentValidationError as e:
            raise RelayError(f"Segments rejected: {e}") from e
        self.transport.publish(SEGMENTS_UPDATED, [s.to_dict() for s in saved])
        return saved

    def test_spin(self, sku=None):
        return self.relay.test_spin(sku).to_dict()
