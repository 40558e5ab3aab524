import logging
import threading
import uuid

from .errors import RelayError
from .models import Segment, random_color

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('text', 'color')


class AdminEditSession:
    """
    Staged segment edits, separate from the live mirror until committed.

    Every mirror change resets the staged list, including while an operator
    is mid-edit: unsaved edits are lost when the registry announces a new list.
    """

    def __init__(self, mirror, relay_client, color_factory=random_color):
        self.mirror = mirror
        self.relay_client = relay_client
        self._color_factory = color_factory
        self._lock = threading.RLock()
        self._staged = mirror.segments
        self.dirty = False
        mirror.subscribe(self.reset)

    def reset(self, segments=None):
        with self._lock:
            if self.dirty:
                logger.warning("⚠️ Registry update discarded unsaved admin edits")
            self._staged = list(self.mirror.segments if segments is None else segments)
            self.dirty = False

    def staged(self):
        with self._lock:
            return list(self._staged)

    def add(self, text="Nuevo premio", color=None):
        with self._lock:
            taken = {s.id for s in self._staged}
            new_id = f"seg_{uuid.uuid4().hex[:8]}"
            while new_id in taken:
                new_id = f"seg_{uuid.uuid4().hex[:8]}"
            segment = Segment(id=new_id, text=text, color=color or self._color_factory())
            self._staged.append(segment)
            self.dirty = True
            return segment

    def remove(self, position):
        with self._lock:
            self._check_position(position)
            removed = self._staged.pop(position)
            self.dirty = True
            return removed

    def update(self, position, field, value):
        if field not in EDITABLE_FIELDS:
            raise ValueError(f"Field '{field}' is not editable")
        if not isinstance(value, str):
            raise ValueError(f"Field '{field}' must be a string")
        with self._lock:
            self._check_position(position)
            current = self._staged[position]
            self._staged[position] = Segment(
                id=current.id,
                text=value if field == 'text' else current.text,
                color=value if field == 'color' else current.color,
            )
            self.dirty = True
            return self._staged[position]

    def commit(self):
        """
        Send the staged list to the registry; on success the mirror takes the
        accepted (normalized) list. On failure nothing changes and RelayError
        is raised so the caller can tell the operator.
        """
        with self._lock:
            staged = list(self._staged)
            was_dirty = self.dirty
            # the registry echoes the commit back through the mirror
            self.dirty = False
        try:
            accepted = self.relay_client.save_segments([s.to_dict() for s in staged])
        except RelayError as e:
            logger.error(f"💥 Segment commit failed, edits kept: {e}")
            with self._lock:
                self.dirty = was_dirty
            raise

        segments = [s if isinstance(s, Segment) else Segment.from_payload(s) for s in accepted]
        logger.info(f"💾 Committed {len(segments)} segment(s)")
        # a relay that echoes through the transport has already applied it
        if self.mirror.segments != segments:
            self.mirror.replace(segments)
        return segments

    def _check_position(self, position):
        if not isinstance(position, int) or not 0 <= position < len(self._staged):
            raise IndexError(f"No segment at position {position}")
