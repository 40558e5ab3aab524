import logging

import requests

from .errors import RelayError
from .models import Segment
from .relay import TOKEN_HEADER

logger = logging.getLogger(__name__)


class HttpRelayClient:
    """Talks to a running relay server over its HTTP API."""

    def __init__(self, base_url="http://localhost:5000", timeout=5, session=None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def save_segments(self, segments):
        data = self._request('POST', '/api/segments', json=segments)
        return [Segment.from_payload(s) for s in data]

    def test_spin(self, sku=None):
        return self._request('POST', '/api/test-spin', json={'sku': sku})

    def send_webhook(self, secret, username="TestUser123", text="Test gift", sku=None):
        payload = {'value1': username, 'value2': text, 'value3': sku, 'secret': secret}
        return self._request('POST', '/webhook/tikfinity', json=payload, headers={TOKEN_HEADER: secret})

    def status(self):
        return self._request('GET', '/api/spin/status')

    def _request(self, method, path, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise RelayError(f"{method} {url} failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if not response.ok:
            message = data.get('error') if isinstance(data, dict) else response.text
            raise RelayError(f"{method} {url} returned {response.status_code}: {message}")
        logger.debug(f"📡 {method} {url} -> {response.status_code}")
        return data
