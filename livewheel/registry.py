import logging
import re
import threading
import uuid
from collections.abc import Mapping

from .errors import RelayError, SegmentValidationError
from .models import Segment, random_color
from .storage import load_json_file, save_json_file

logger = logging.getLogger(__name__)

COLOR_PATTERN = re.compile(r'^#(?:[0-9a-fA-F]{3,4}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$')

DEFAULT_SEGMENTS = [
    {"id": "rosa", "text": "Rosa", "color": "#FF6B9D"},
    {"id": "gg", "text": "GG", "color": "#4ECDC4"},
    {"id": "corazon", "text": "Corazón", "color": "#FFD93D"},
    {"id": "perfume", "text": "Perfume", "color": "#9B5DE5"},
    {"id": "dona", "text": "Dona", "color": "#F15BB5"},
    {"id": "sombrero", "text": "Sombrero", "color": "#00BBF9"},
]


def normalize_segments(payload, color_factory=random_color):
    """
    Validate an edited segment list and fill in what the editor left out.

    Accepts a list or ``{"segments": [...]}``. Text is required; a missing or
    duplicate id gets a generated one, a missing or invalid color a random one.
    """
    if isinstance(payload, Mapping) and 'segments' in payload:
        payload = payload['segments']
    if not isinstance(payload, list):
        raise SegmentValidationError("Segments must be a list")

    segments = []
    seen = set()
    for position, entry in enumerate(payload):
        if not isinstance(entry, Mapping):
            raise SegmentValidationError(f"Segment {position + 1} must be an object")

        text = entry.get('text')
        if not isinstance(text, str) or not text.strip():
            raise SegmentValidationError(f"Segment {position + 1}: text must be a non-empty string")

        segment_id = entry.get('id')
        if not isinstance(segment_id, str) or not segment_id.strip() or segment_id in seen:
            segment_id = f"seg_{uuid.uuid4().hex[:8]}"
            while segment_id in seen:
                segment_id = f"seg_{uuid.uuid4().hex[:8]}"
        seen.add(segment_id)

        color = entry.get('color')
        if not isinstance(color, str) or not COLOR_PATTERN.match(color):
            color = color_factory()

        segments.append(Segment(id=segment_id, text=text.strip(), color=color))
    return segments


class SegmentRegistry:
    """The authoritative segment list, persisted to a JSON file."""

    def __init__(self, path, defaults=None):
        self.path = path
        self.defaults = DEFAULT_SEGMENTS if defaults is None else defaults
        self._lock = threading.RLock()
        self._segments = []

    def load(self):
        data = load_json_file(self.path, self.defaults, expected_type=list)
        try:
            segments = normalize_segments(data)
        except SegmentValidationError as e:
            logger.error(f"🚨 Stored segments invalid ({e}), using defaults")
            segments = normalize_segments(self.defaults)
        with self._lock:
            self._segments = segments
        logger.info(f"🎯 Registry loaded {len(segments)} segment(s) from {self.path}")
        return list(segments)

    @property
    def segments(self):
        with self._lock:
            return list(self._segments)

    def save(self, payload):
        segments = normalize_segments(payload)
        with self._lock:
            if not save_json_file(self.path, [s.to_dict() for s in segments], backup=True):
                raise RelayError("Failed to save segments")
            self._segments = segments
        logger.info(f"🎁 Registry saved {len(segments)} segment(s)")
        return list(segments)

    def find(self, sku):
        """Position of the segment whose id, or text ignoring case, matches ``sku``."""
        if sku is None:
            return None
        wanted = str(sku).strip()
        segments = self.segments
        for position, segment in enumerate(segments):
            if segment.id == wanted:
                return position
        for position, segment in enumerate(segments):
            if segment.text.casefold() == wanted.casefold():
                return position
        return None
