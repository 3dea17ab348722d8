"""データモデル・パースのユニットテスト"""

import pytest
from k1s0_featuretoggle.exceptions import FeatureToggleError, FeatureToggleErrorCodes
from k1s0_featuretoggle.models import (
    ConditionType,
    Serve,
    Snapshot,
    Toggle,
    load_json,
    parse_snapshot,
)

PAYLOAD = {
    "version": 7,
    "segments": {
        "beta": {
            "uniqueId": "seg-beta",
            "version": 2,
            "rules": [
                {
                    "conditions": [
                        {"type": "string", "subject": "city", "predicate": "is one of", "objects": ["1"]}
                    ]
                }
            ],
        }
    },
    "toggles": {
        "checkout": {
            "key": "checkout",
            "enabled": True,
            "version": 3,
            "trackAccessEvents": True,
            "lastModified": 1700000000000,
            "forClient": False,
            "variations": ["a", "b"],
            "disabledServe": {"select": 0},
            "defaultServe": {
                "split": {
                    "distribution": [[[0, 5000]], [[5000, 10000]]],
                    "bucketBy": "device",
                    "salt": "s1",
                }
            },
            "prerequisites": [{"key": "parent", "value": True}],
            "rules": [
                {
                    "serve": {"select": 1},
                    "conditions": [
                        {"type": "number", "subject": "age", "predicate": ">", "objects": [18]},
                        {"type": "segment", "predicate": "is in", "objects": ["beta"]},
                    ],
                }
            ],
        }
    },
}


def test_parse_snapshot_full_payload() -> None:
    """camelCase のペイロードを全項目パースできること。"""
    snapshot = parse_snapshot(PAYLOAD)
    assert snapshot.version == 7

    toggle = snapshot.toggles["checkout"]
    assert toggle.enabled is True
    assert toggle.version == 3
    assert toggle.variations == ("a", "b")
    assert toggle.track_access_events is True
    assert toggle.last_modified == 1700000000000
    assert toggle.disabled_serve == Serve(select=0)
    assert toggle.default_serve.split is not None
    assert toggle.default_serve.split.bucket_by == "device"
    assert toggle.default_serve.split.salt == "s1"
    assert toggle.default_serve.split.ranges == (((0, 5000),), ((5000, 10000),))
    assert toggle.prerequisites[0].key == "parent"
    assert toggle.prerequisites[0].value is True

    rule = toggle.rules[0]
    assert rule.serve.select == 1
    assert rule.conditions[0].type == ConditionType.NUMBER
    assert rule.conditions[0].objects == ("18",)
    assert rule.conditions[1].type == ConditionType.SEGMENT
    assert rule.conditions[1].subject == ""

    segment = snapshot.segments["beta"]
    assert segment.unique_id == "seg-beta"
    assert segment.version == 2
    assert segment.rules[0].conditions[0].subject == "city"


def test_parse_snapshot_version_fallback() -> None:
    """バージョンがない場合は定義の最大バージョンを使うこと。"""
    payload = {key: value for key, value in PAYLOAD.items() if key != "version"}
    assert parse_snapshot(payload).version == 3


def test_parse_snapshot_empty_payload() -> None:
    """空のペイロードはバージョン 0 の空スナップショットになること。"""
    snapshot = parse_snapshot({})
    assert snapshot.version == 0
    assert len(snapshot.toggles) == 0
    assert len(snapshot.segments) == 0


def test_unknown_condition_type() -> None:
    """未知の条件タイプは UNKNOWN になること。"""
    assert ConditionType.parse("geo") == ConditionType.UNKNOWN
    assert ConditionType.parse("semver") == ConditionType.SEMVER


def test_serve_requires_exactly_one() -> None:
    """select と split のどちらか一方だけを要求すること。"""
    with pytest.raises(ValueError):
        Serve()


def test_parse_snapshot_invalid_serve() -> None:
    """不正な serve は PARSE_ERROR になること。"""
    payload = {
        "toggles": {
            "t": {"enabled": True, "variations": [1], "disabledServe": {}, "defaultServe": {"select": 0}}
        }
    }
    with pytest.raises(FeatureToggleError) as exc_info:
        parse_snapshot(payload)
    assert exc_info.value.code == FeatureToggleErrorCodes.PARSE_ERROR


def test_parse_snapshot_missing_field() -> None:
    """必須項目の欠落は PARSE_ERROR になること。"""
    with pytest.raises(FeatureToggleError) as exc_info:
        parse_snapshot({"toggles": {"t": {"enabled": True}}})
    assert exc_info.value.code == FeatureToggleErrorCodes.PARSE_ERROR


def test_parse_snapshot_rejects_non_object() -> None:
    """オブジェクト以外のペイロードは PARSE_ERROR になること。"""
    with pytest.raises(FeatureToggleError) as exc_info:
        parse_snapshot([1, 2, 3])
    assert exc_info.value.code == FeatureToggleErrorCodes.PARSE_ERROR


def test_load_json() -> None:
    """JSON 文字列から読み込めること。"""
    snapshot = load_json('{"version": 1, "toggles": {}}')
    assert snapshot.version == 1


def test_load_json_invalid() -> None:
    """不正な JSON は PARSE_ERROR になること。"""
    with pytest.raises(FeatureToggleError) as exc_info:
        load_json("{not json")
    assert exc_info.value.code == FeatureToggleErrorCodes.PARSE_ERROR


def test_snapshot_is_immutable() -> None:
    """スナップショットのマッピングは変更できないこと。"""
    snapshot = Snapshot(toggles={"t": Toggle.fixed("t", True)}, version=1)
    with pytest.raises(TypeError):
        snapshot.toggles["u"] = Toggle.fixed("u", False)  # type: ignore[index]


def test_toggle_fixed() -> None:
    """fixed は単一バリエーションの有効なトグルを作ること。"""
    toggle = Toggle.fixed("t", "value")
    assert toggle.enabled is True
    assert toggle.variations == ("value",)
    assert toggle.default_serve.select == 0
