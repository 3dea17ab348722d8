"""featuretoggle データモデル"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from .exceptions import FeatureToggleError, FeatureToggleErrorCodes
from .user import attribute_text


class ConditionType(StrEnum):
    """条件タイプ。"""

    STRING = "string"
    SEGMENT = "segment"
    NUMBER = "number"
    SEMVER = "semver"
    DATETIME = "datetime"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str) -> ConditionType:
        """未知のタイプは UNKNOWN として扱う。"""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class Predicate(StrEnum):
    """条件の述語。"""

    IS_ONE_OF = "is one of"
    IS_NOT_ANY_OF = "is not any of"
    CONTAINS = "contains"
    DOES_NOT_CONTAIN = "does not contain"
    STARTS_WITH = "starts with"
    DOES_NOT_START_WITH = "does not start with"
    ENDS_WITH = "ends with"
    DOES_NOT_END_WITH = "does not end with"
    MATCHES_REGEX = "matches regex"
    DOES_NOT_MATCH_REGEX = "does not match regex"

    EQ = "="
    NE = "!="
    GT = ">"
    GE = ">="
    LT = "<"
    LE = "<="

    AFTER = "after"
    BEFORE = "before"

    IS_IN = "is in"
    IS_NOT_IN = "is not in"


@dataclass(frozen=True)
class Condition:
    """ユーザー属性に対する単一の述語。"""

    type: ConditionType
    subject: str
    predicate: str
    objects: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Condition:
        return cls(
            type=ConditionType.parse(str(data.get("type", ""))),
            subject=data.get("subject") or "",
            predicate=data["predicate"],
            objects=tuple(attribute_text(o) for o in data.get("objects") or []),
        )


@dataclass(frozen=True)
class Distribution:
    """バケット空間 [0, 10000) のバリエーションへの分割。

    ranges[i] はバリエーション i に割り当てられた半開区間の並び。
    """

    ranges: tuple[tuple[tuple[int, int], ...], ...]
    bucket_by: str | None = None
    salt: str | None = None

    def find_index(self, bucket_value: int) -> int | None:
        """バケット値を含む区間のバリエーションインデックスを返す。"""
        for index, ranges in enumerate(self.ranges):
            if any(lower <= bucket_value < upper for lower, upper in ranges):
                return index
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Distribution:
        ranges = tuple(
            tuple((int(pair[0]), int(pair[1])) for pair in variation_ranges)
            for variation_ranges in data["distribution"]
        )
        return cls(
            ranges=ranges,
            bucket_by=data.get("bucketBy") or None,
            salt=data.get("salt") or None,
        )


@dataclass(frozen=True)
class Serve:
    """固定インデックスまたはパーセンテージ分配。"""

    select: int | None = None
    split: Distribution | None = None

    def __post_init__(self) -> None:
        if (self.select is None) == (self.split is None):
            raise ValueError("serve requires exactly one of select or split")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Serve:
        if "select" in data:
            return cls(select=int(data["select"]))
        if "split" in data:
            return cls(split=Distribution.from_dict(data["split"]))
        raise ValueError(f"unknown serve: {sorted(data)}")


@dataclass(frozen=True)
class Rule:
    """AND 結合された条件と serve。"""

    serve: Serve
    conditions: tuple[Condition, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Rule:
        return cls(
            serve=Serve.from_dict(data["serve"]),
            conditions=tuple(Condition.from_dict(c) for c in data.get("conditions") or []),
        )


@dataclass(frozen=True)
class SegmentRule:
    """セグメントのルール。条件は AND 結合。"""

    conditions: tuple[Condition, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SegmentRule:
        return cls(conditions=tuple(Condition.from_dict(c) for c in data.get("conditions") or []))


@dataclass(frozen=True)
class Segment:
    """再利用可能なユーザー集合。ルールは OR 結合。"""

    key: str
    unique_id: str = ""
    version: int = 0
    rules: tuple[SegmentRule, ...] = ()

    @classmethod
    def from_dict(cls, key: str, data: dict[str, Any]) -> Segment:
        return cls(
            key=key,
            unique_id=data.get("uniqueId") or key,
            version=int(data.get("version") or 0),
            rules=tuple(SegmentRule.from_dict(r) for r in data.get("rules") or []),
        )


@dataclass(frozen=True)
class Prerequisite:
    """前提トグルとその要求値。"""

    key: str
    value: Any

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Prerequisite:
        return cls(key=data["key"], value=data["value"])


@dataclass(frozen=True)
class Toggle:
    """トグル定義。"""

    key: str
    enabled: bool
    variations: tuple[Any, ...]
    disabled_serve: Serve
    default_serve: Serve
    rules: tuple[Rule, ...] = ()
    version: int = 0
    prerequisites: tuple[Prerequisite, ...] = ()
    track_access_events: bool = False
    last_modified: int | None = None
    for_client: bool = False

    @classmethod
    def from_dict(cls, key: str, data: dict[str, Any]) -> Toggle:
        return cls(
            key=data.get("key") or key,
            enabled=bool(data["enabled"]),
            variations=tuple(data["variations"]),
            disabled_serve=Serve.from_dict(data["disabledServe"]),
            default_serve=Serve.from_dict(data["defaultServe"]),
            rules=tuple(Rule.from_dict(r) for r in data.get("rules") or []),
            version=int(data.get("version") or 0),
            prerequisites=tuple(
                Prerequisite.from_dict(p) for p in data.get("prerequisites") or []
            ),
            track_access_events=bool(data.get("trackAccessEvents", False)),
            last_modified=data.get("lastModified"),
            for_client=bool(data.get("forClient", False)),
        )

    @classmethod
    def fixed(cls, key: str, value: Any) -> Toggle:
        """常に value を返す有効なトグルを作る（テスト用）。"""
        return cls(
            key=key,
            enabled=True,
            variations=(value,),
            disabled_serve=Serve(select=0),
            default_serve=Serve(select=0),
        )


@dataclass(frozen=True)
class Snapshot:
    """全トグル・セグメント定義の不変なバージョン付きスナップショット。"""

    toggles: Mapping[str, Toggle] = field(default_factory=dict)
    segments: Mapping[str, Segment] = field(default_factory=dict)
    version: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "toggles", MappingProxyType(dict(self.toggles)))
        object.__setattr__(self, "segments", MappingProxyType(dict(self.segments)))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Snapshot:
        toggles = {
            key: Toggle.from_dict(key, value) for key, value in (data.get("toggles") or {}).items()
        }
        segments = {
            key: Segment.from_dict(key, value)
            for key, value in (data.get("segments") or {}).items()
        }
        version = data.get("version")
        if version is None:
            # バージョンのないペイロードは含まれる定義の最大バージョンで代用する
            version = max(
                [t.version for t in toggles.values()] + [s.version for s in segments.values()],
                default=0,
            )
        return cls(toggles=toggles, segments=segments, version=int(version))


def parse_snapshot(data: Any) -> Snapshot:
    """ペイロード辞書を Snapshot に変換する。"""
    if not isinstance(data, dict):
        raise FeatureToggleError(
            code=FeatureToggleErrorCodes.PARSE_ERROR,
            message=f"Payload must be an object, got {type(data).__name__}",
        )
    try:
        return Snapshot.from_dict(data)
    except (KeyError, TypeError, ValueError, AttributeError, IndexError) as e:
        raise FeatureToggleError(
            code=FeatureToggleErrorCodes.PARSE_ERROR,
            message=f"Invalid toggle payload: {e!r}",
            cause=e,
        ) from e


def load_json(text: str) -> Snapshot:
    """JSON 文字列から Snapshot を読み込む。"""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise FeatureToggleError(
            code=FeatureToggleErrorCodes.PARSE_ERROR,
            message=f"Invalid JSON: {e}",
            cause=e,
        ) from e
    return parse_snapshot(data)
