"""
Records flowing through the wheel.

Inbound payloads come from an untyped transport, so every record that can be
built from one has a ``from_payload`` constructor that keeps only well-typed
values and leaves the rest absent (None). Nothing here raises on a partial
payload; resolving absent fields is the job of ``resolution.resolve_outcome``.
"""

import random
from dataclasses import dataclass
from typing import Any, Mapping, Optional

DEFAULT_SEGMENT_COLOR = "#cccccc"


def _opt_str(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _opt_index(value) -> Optional[int]:
    # bool is an int subclass; a True index is a payload bug, not slot 1
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def random_color(rng=random) -> str:
    return "#{:06x}".format(rng.randrange(0x1000000))


@dataclass(frozen=True)
class Segment:
    id: str
    text: str
    color: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Segment":
        return cls(
            id=_opt_str(payload.get("id")) or "",
            text=_opt_str(payload.get("text")) or "",
            color=_opt_str(payload.get("color")) or DEFAULT_SEGMENT_COLOR,
        )

    def to_dict(self):
        return {"id": self.id, "text": self.text, "color": self.color}


@dataclass(frozen=True)
class SegmentRef:
    """Partial segment declared by a spin request; any field may be missing."""

    id: Optional[str] = None
    text: Optional[str] = None
    color: Optional[str] = None

    @classmethod
    def from_payload(cls, payload) -> Optional["SegmentRef"]:
        if not isinstance(payload, Mapping):
            return None
        return cls(
            id=_opt_str(payload.get("id")),
            text=_opt_str(payload.get("text")),
            color=_opt_str(payload.get("color")),
        )

    @classmethod
    def from_segment(cls, segment: Segment) -> "SegmentRef":
        return cls(id=segment.id, text=segment.text, color=segment.color)

    def to_dict(self):
        return {k: v for k, v in (("id", self.id), ("text", self.text), ("color", self.color)) if v is not None}


@dataclass(frozen=True)
class SpinRequest:
    type: str
    username: str
    text: Optional[str] = None
    sku: Optional[str] = None
    segment_index: Optional[int] = None
    segment: Optional[SegmentRef] = None

    @classmethod
    def from_payload(cls, payload) -> "SpinRequest":
        if not isinstance(payload, Mapping):
            payload = {}
        return cls(
            type=_opt_str(payload.get("type")) or "gift",
            username=_opt_str(payload.get("username")) or "",
            text=_opt_str(payload.get("text")),
            sku=_opt_str(payload.get("sku")),
            segment_index=_opt_index(payload.get("segmentIndex")),
            segment=SegmentRef.from_payload(payload.get("segment")),
        )

    def to_dict(self):
        data = {
            "type": self.type,
            "username": self.username,
            "text": self.text,
            "sku": self.sku,
        }
        if self.segment_index is not None:
            data["segmentIndex"] = self.segment_index
        if self.segment is not None:
            data["segment"] = self.segment.to_dict()
        return data


@dataclass(frozen=True)
class LandedSegment:
    """What the rendering surface says it stopped on: label and fill only."""

    text: Optional[str] = None
    fill: Optional[str] = None


@dataclass(frozen=True)
class ResolvedOutcome:
    type: str
    username: str
    text: str
    sku: Optional[str]
    segment_index: int
    segment: Segment
    timestamp: str

    def to_dict(self):
        data = {
            "type": self.type,
            "username": self.username,
            "text": self.text,
            "sku": self.sku,
            "segmentIndex": self.segment_index,
            "segment": self.segment.to_dict(),
            "timestamp": self.timestamp,
        }
        return data
