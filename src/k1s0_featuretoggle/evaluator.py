"""トグル評価アルゴリズム

評価は全域的（常に値を返す）かつ副作用なし。ルックアップの失敗はすべて
Reason 付きの結果として表現し、例外は送出しない。
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any

from .condition import matches
from .hashing import salt_hash
from .models import Serve, Snapshot, Toggle
from .user import EvaluationContext, attribute_text

MAX_PREREQUISITE_DEPTH = 20


class Reason(StrEnum):
    """評価結果の理由。"""

    NOT_READY = "not ready"
    TOGGLE_NOT_FOUND = "toggle not found"
    DISABLED = "disabled"
    RULE_MATCHED = "rule matched"
    DEFAULT = "default"
    TYPE_MISMATCH = "type mismatch"
    PREREQUISITE_NOT_MET = "prerequisite not met"
    SERVE_ERROR = "serve error"


class ValueType(StrEnum):
    """呼び出し側が要求する値の型。"""

    BOOL = "bool"
    NUMBER = "number"
    STRING = "string"
    JSON = "json"

    def accepts(self, value: Any) -> bool:
        if self is ValueType.BOOL:
            return isinstance(value, bool)
        if self is ValueType.NUMBER:
            return isinstance(value, int | float) and not isinstance(value, bool)
        if self is ValueType.STRING:
            return isinstance(value, str)
        return True


@dataclass(frozen=True)
class EvalDetail:
    """評価結果。variation_index が None の場合は値が解決できなかった。"""

    value: Any = None
    reason: Reason = Reason.DEFAULT
    rule_index: int | None = None
    variation_index: int | None = None
    version: int | None = None
    message: str = ""


class _ServeError(Exception):
    pass


class _PrerequisiteError(Exception):
    pass


def _json_equal(a: Any, b: Any) -> bool:
    """JSON 値として比較する。真偽値・整数・浮動小数点数は型が異なれば不一致。"""
    if isinstance(a, bool | int | float) or isinstance(b, bool | int | float):
        return type(a) is type(b) and a == b
    if isinstance(a, list | tuple) and isinstance(b, list | tuple):
        return len(a) == len(b) and all(_json_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, dict) and isinstance(b, dict):
        return a.keys() == b.keys() and all(_json_equal(a[k], b[k]) for k in a)
    return bool(a == b)


def _bucket_key(toggle: Toggle, bucket_by: str | None, user: EvaluationContext) -> str:
    if bucket_by is None:
        return user.key
    value = user.get(bucket_by)
    if value is None:
        raise _ServeError(f"user {user.key!r} does not have attribute named {bucket_by!r}")
    return attribute_text(value)


def _variation_index(toggle: Toggle, serve: Serve, user: EvaluationContext) -> int:
    if serve.split is None:
        index = serve.select
    else:
        distribution = serve.split
        salt = distribution.salt or toggle.key
        bucket_value = salt_hash(_bucket_key(toggle, distribution.bucket_by, user), salt)
        index = distribution.find_index(bucket_value)
        if index is None:
            raise _ServeError(f"bucket {bucket_value} not found in distribution")
    if index is None or not 0 <= index < len(toggle.variations):
        raise _ServeError(
            f"index {index} overflow, variations count is {len(toggle.variations)}"
        )
    return index


def _serve(
    toggle: Toggle,
    serve: Serve,
    user: EvaluationContext,
    reason: Reason,
    rule_index: int | None = None,
    message: str = "",
) -> EvalDetail:
    try:
        index = _variation_index(toggle, serve, user)
    except _ServeError as e:
        return EvalDetail(
            reason=Reason.SERVE_ERROR,
            rule_index=rule_index,
            version=toggle.version,
            message=str(e),
        )
    return EvalDetail(
        value=toggle.variations[index],
        reason=reason,
        rule_index=rule_index,
        variation_index=index,
        version=toggle.version,
        message=message,
    )


def _meet_prerequisites(
    toggle: Toggle, user: EvaluationContext, snapshot: Snapshot, depth: int
) -> bool:
    if depth <= 0:
        raise _PrerequisiteError("prerequisite depth overflow")
    for prerequisite in toggle.prerequisites:
        parent = snapshot.toggles.get(prerequisite.key)
        if parent is None:
            raise _PrerequisiteError(f"prerequisite not exist: {prerequisite.key}")
        detail = _do_evaluate(parent, user, snapshot, depth - 1)
        if detail.variation_index is None or not _json_equal(detail.value, prerequisite.value):
            return False
    return True


def _do_evaluate(
    toggle: Toggle, user: EvaluationContext, snapshot: Snapshot, depth: int
) -> EvalDetail:
    if not toggle.enabled:
        return _serve(toggle, toggle.disabled_serve, user, Reason.DISABLED)

    if not _meet_prerequisites(toggle, user, snapshot, depth):
        return _serve(
            toggle,
            toggle.disabled_serve,
            user,
            Reason.PREREQUISITE_NOT_MET,
            message="prerequisite not match",
        )

    for index, rule in enumerate(toggle.rules):
        if all(matches(c, user, snapshot.segments) for c in rule.conditions):
            return _serve(toggle, rule.serve, user, Reason.RULE_MATCHED, rule_index=index)

    return _serve(toggle, toggle.default_serve, user, Reason.DEFAULT)


def evaluate_toggle(
    toggle: Toggle,
    user: EvaluationContext,
    snapshot: Snapshot,
    max_depth: int = MAX_PREREQUISITE_DEPTH,
) -> EvalDetail:
    """単一トグルを評価する。"""
    try:
        return _do_evaluate(toggle, user, snapshot, max_depth)
    except _PrerequisiteError as e:
        return _serve(
            toggle,
            toggle.disabled_serve,
            user,
            Reason.PREREQUISITE_NOT_MET,
            message=str(e),
        )


def evaluate(snapshot: Snapshot | None, toggle_key: str, user: EvaluationContext) -> EvalDetail:
    """スナップショットからトグルを引いて評価する。"""
    if snapshot is None:
        return EvalDetail(reason=Reason.NOT_READY)
    toggle = snapshot.toggles.get(toggle_key)
    if toggle is None:
        return EvalDetail(reason=Reason.TOGGLE_NOT_FOUND, message=f"toggle {toggle_key!r} not exist")
    return evaluate_toggle(toggle, user, snapshot)


def evaluate_typed(
    snapshot: Snapshot | None,
    toggle_key: str,
    user: EvaluationContext,
    value_type: ValueType,
    default: Any,
) -> EvalDetail:
    """要求された型の値を返す。解決できない場合や型不一致の場合は default。"""
    detail = evaluate(snapshot, toggle_key, user)
    if detail.variation_index is None:
        return replace(detail, value=default)
    if not value_type.accepts(detail.value):
        return replace(
            detail,
            value=default,
            variation_index=None,
            reason=Reason.TYPE_MISMATCH,
            message=f"expected {value_type.value}, got {type(detail.value).__name__}",
        )
    return detail
