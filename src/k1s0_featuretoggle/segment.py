"""セグメント所属判定"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from .condition import matches
from .models import Segment
from .user import EvaluationContext

logger = logging.getLogger(__name__)


def contains(segment: Segment, user: EvaluationContext) -> bool:
    """いずれかのルールの全条件にマッチすればセグメントに所属する。"""
    return any(
        all(matches(c, user, None) for c in rule.conditions) for rule in segment.rules
    )


def is_member(
    segment_key: str,
    user: EvaluationContext,
    segments: Mapping[str, Segment],
) -> bool:
    """ユーザーがセグメントに所属するか判定する。存在しないセグメントは非所属。"""
    segment = segments.get(segment_key)
    if segment is None:
        logger.debug("segment not found", extra={"segment": segment_key})
        return False
    return contains(segment, user)


def in_any_segment(
    segment_keys: Iterable[str],
    user: EvaluationContext,
    segments: Mapping[str, Segment],
) -> bool:
    return any(is_member(key, user, segments) for key in segment_keys)
