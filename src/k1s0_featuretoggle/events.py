"""評価イベントの送出先"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class AccessEvent:
    """どのトグルでどのバリエーションを返したかの記録。"""

    key: str
    user_key: str
    value: Any
    reason: str
    variation_index: int | None = None
    rule_index: int | None = None
    version: int | None = None
    time: int = field(default_factory=lambda: time.time_ns() // 1_000_000)


class EventSink(Protocol):
    """評価イベントを受け取るプロトコル。"""

    def record(self, event: AccessEvent) -> None: ...


class InMemoryEventSink:
    """テスト用インメモリイベントシンク。"""

    def __init__(self) -> None:
        self._events: list[AccessEvent] = []

    def record(self, event: AccessEvent) -> None:
        self._events.append(event)

    def events(self) -> list[AccessEvent]:
        return list(self._events)
