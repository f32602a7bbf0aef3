from __future__ import annotations

from typing import Callable, Iterable, Sequence

from core.flags.conditions import matches
from core.flags.evaluation import FeatureFlagContext
from core.flags.models import FlagSegment


class SegmentMatcher:
    """
    OR across segments: the first active segment whose conditions hold wins.
    Segments are scoped to the context's tenant plus global ones.
    """

    def __init__(self, load_segments: Callable[[Iterable[str], str | None], Sequence[FlagSegment]]):
        self._load = load_segments

    def matching_segment(self, segment_names: Iterable[str], context: FeatureFlagContext) -> FlagSegment | None:
        for segment in self._load(segment_names, context.tenant_id):
            if matches(segment.conditions, context.user_properties):
                return segment
        return None

    def is_user_in_segments(self, segment_names: Iterable[str], context: FeatureFlagContext) -> bool:
        return self.matching_segment(segment_names, context) is not None
