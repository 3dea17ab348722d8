"""評価対象ユーザー"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field

AttributeValue = str | int | float | bool


def _generate_key() -> str:
    return str(time.time_ns() // 1000)


def attribute_text(value: AttributeValue) -> str:
    """属性値を比較用の文字列表現に変換する。"""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass
class EvaluationContext:
    """フラグ評価コンテキスト。

    key を省略した場合は生成時刻（マイクロ秒）から生成し、以後は固定。
    """

    key: str = field(default_factory=_generate_key)
    attributes: dict[str, AttributeValue] = field(default_factory=dict)

    def with_attr(self, name: str, value: AttributeValue) -> EvaluationContext:
        """属性を設定する。同名の属性は上書きされる。"""
        self.attributes[name] = value
        return self

    def with_attrs(self, attrs: Mapping[str, AttributeValue]) -> EvaluationContext:
        """複数の属性をまとめて設定する。"""
        self.attributes.update(attrs)
        return self

    def get(self, name: str) -> AttributeValue | None:
        return self.attributes.get(name)
