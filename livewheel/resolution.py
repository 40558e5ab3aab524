from datetime import datetime, timezone
from typing import Optional

from .models import DEFAULT_SEGMENT_COLOR, LandedSegment, ResolvedOutcome, Segment, SegmentRef, SpinRequest


def _first_present(*values):
    for value in values:
        if value is not None:
            return value
    return None


def resolve_outcome(request: SpinRequest, slot: int, landed: Optional[LandedSegment] = None,
                    fallback_color: str = DEFAULT_SEGMENT_COLOR, now: Optional[datetime] = None) -> ResolvedOutcome:
    """
    Reconcile what the wheel visually stopped on with what the request declared.

    ``slot`` is the one-based segment number the wheel was sent to. The surface
    is trusted for label and fill; the request for identity and metadata. Each
    field falls back independently and ends at a constant, so this never fails.
    """
    landed = landed or LandedSegment()
    declared = request.segment or SegmentRef()

    text = _first_present(landed.text, declared.text, request.text, f"Segmento {slot}")
    segment = Segment(
        id=_first_present(declared.id, f"seg_{slot}"),
        text=text,
        color=_first_present(landed.fill, declared.color, fallback_color),
    )
    finished_at = now or datetime.now(timezone.utc)

    return ResolvedOutcome(
        type=request.type,
        username=request.username,
        text=text,
        sku=request.sku,
        segment_index=_first_present(request.segment_index, slot - 1),
        segment=segment,
        timestamp=finished_at.isoformat(),
    )
