"""条件マッチング"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Mapping
from functools import lru_cache
from typing import TypeVar

import semver

from .models import Condition, ConditionType, Predicate, Segment
from .user import EvaluationContext, attribute_text

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 属性ではなくユーザーキーを参照する合成サブジェクト
KEY_SUBJECT = "$key"

_NEGATED_STRING: dict[str, Predicate] = {
    Predicate.IS_NOT_ANY_OF: Predicate.IS_ONE_OF,
    Predicate.DOES_NOT_CONTAIN: Predicate.CONTAINS,
    Predicate.DOES_NOT_START_WITH: Predicate.STARTS_WITH,
    Predicate.DOES_NOT_END_WITH: Predicate.ENDS_WITH,
    Predicate.DOES_NOT_MATCH_REGEX: Predicate.MATCHES_REGEX,
}


@lru_cache(maxsize=512)
def _compile(pattern: str) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern)
    except re.error:
        return None


def _regex_search(value: str, pattern: str) -> bool:
    compiled = _compile(pattern)
    return compiled is not None and compiled.search(value) is not None


_STRING_OPS: dict[str, Callable[[str, str], bool]] = {
    Predicate.IS_ONE_OF: lambda c, o: c == o,
    Predicate.CONTAINS: lambda c, o: o in c,
    Predicate.STARTS_WITH: lambda c, o: c.startswith(o),
    Predicate.ENDS_WITH: lambda c, o: c.endswith(o),
    Predicate.MATCHES_REGEX: _regex_search,
}

_ORDERING_OPS: dict[str, Callable[[object, object], bool]] = {
    Predicate.EQ: lambda c, o: c == o,
    Predicate.GT: lambda c, o: c > o,  # type: ignore[operator]
    Predicate.GE: lambda c, o: c >= o,  # type: ignore[operator]
    Predicate.LT: lambda c, o: c < o,  # type: ignore[operator]
    Predicate.LE: lambda c, o: c <= o,  # type: ignore[operator]
}


def _is_plain(text: str) -> bool:
    # 前後の空白や桁区切りの _ を含む文字列は数値として扱わない
    return text == text.strip() and "_" not in text


def _parse_number(text: str) -> float | None:
    if not _is_plain(text):
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _parse_semver(text: str) -> semver.Version | None:
    try:
        return semver.Version.parse(text)
    except ValueError:
        return None


def _parse_timestamp(text: str) -> int | None:
    if not _is_plain(text):
        return None
    try:
        return int(text)
    except ValueError:
        return None


def _resolve_subject(condition: Condition, user: EvaluationContext) -> str | None:
    if condition.subject == KEY_SUBJECT:
        return user.key
    value = user.get(condition.subject)
    if value is None:
        return None
    return attribute_text(value)


def _any_object(
    condition: Condition,
    value: T,
    parse: Callable[[str], T | None],
    op: Callable[[T, T], bool],
) -> bool:
    for obj in condition.objects:
        parsed = parse(obj)
        if parsed is not None and op(value, parsed):
            return True
    return False


def _match_string(condition: Condition, value: str, predicate: str) -> bool:
    positive = _NEGATED_STRING.get(predicate)
    if positive is not None:
        return not _match_string(condition, value, positive)
    op = _STRING_OPS.get(predicate)
    if op is None:
        logger.debug("unknown predicate", extra={"predicate": predicate})
        return False
    return _any_object(condition, value, lambda o: o, op)


def _match_ordering(
    condition: Condition,
    text: str,
    parse: Callable[[str], T | None],
) -> bool:
    value = parse(text)
    if value is None:
        return False
    if condition.predicate == Predicate.NE:
        return not _any_object(condition, value, parse, _ORDERING_OPS[Predicate.EQ])
    op = _ORDERING_OPS.get(condition.predicate)
    if op is None:
        logger.debug("unknown predicate", extra={"predicate": condition.predicate})
        return False
    return _any_object(condition, value, parse, op)


def _match_datetime(condition: Condition, text: str | None) -> bool:
    if text is None:
        value: int | None = int(time.time())
    else:
        value = _parse_timestamp(text)
    if value is None:
        return False
    if condition.predicate == Predicate.AFTER:
        return _any_object(condition, value, _parse_timestamp, lambda c, o: c >= o)
    if condition.predicate == Predicate.BEFORE:
        return _any_object(condition, value, _parse_timestamp, lambda c, o: c < o)
    return False


def _match_segment(
    condition: Condition,
    user: EvaluationContext,
    segments: Mapping[str, Segment] | None,
) -> bool:
    # セグメント内のセグメント条件は評価しない（ネスト不可）
    if segments is None:
        return False
    from .segment import in_any_segment

    if condition.predicate == Predicate.IS_IN:
        return in_any_segment(condition.objects, user, segments)
    if condition.predicate == Predicate.IS_NOT_IN:
        return not in_any_segment(condition.objects, user, segments)
    return False


def matches(
    condition: Condition,
    user: EvaluationContext,
    segments: Mapping[str, Segment] | None = None,
) -> bool:
    """条件がユーザーにマッチするか判定する。例外は送出しない。"""
    if condition.type == ConditionType.SEGMENT:
        return _match_segment(condition, user, segments)

    text = _resolve_subject(condition, user)
    if condition.type == ConditionType.DATETIME:
        return _match_datetime(condition, text)
    if text is None:
        logger.debug("user attribute missing", extra={"subject": condition.subject})
        return False

    if condition.type == ConditionType.STRING:
        return _match_string(condition, text, condition.predicate)
    if condition.type == ConditionType.NUMBER:
        return _match_ordering(condition, text, _parse_number)
    if condition.type == ConditionType.SEMVER:
        return _match_ordering(condition, text, _parse_semver)
    return False
