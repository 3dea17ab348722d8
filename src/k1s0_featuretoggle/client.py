"""FeatureToggleClient: トグル評価のファサード"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from .config import ClientConfig, build_config
from .evaluator import EvalDetail, Reason, ValueType, evaluate_typed
from .events import AccessEvent, EventSink
from .exceptions import FeatureToggleError, FeatureToggleErrorCodes
from .metrics import evaluations_total
from .models import Snapshot, Toggle
from .repository import Repository
from .source import DefinitionSource, HttpDefinitionSource, PushSource
from .synchronizer import Synchronizer, SyncType, UpdateCallback
from .user import EvaluationContext

logger = logging.getLogger(__name__)


class FeatureToggleClient:
    """フィーチャートグルクライアント。

    評価は同期的かつノンブロッキングで、常に値を返す。定義の同期は
    start() で開始するバックグラウンドタスクが行う。

    使用例::

        async with FeatureToggleClient({"remote_url": "https://toggles.example.com"}) as client:
            user = EvaluationContext("user-1").with_attr("city", "1")
            if client.bool_value("new_checkout", user, False):
                ...
    """

    def __init__(
        self,
        config: ClientConfig | dict[str, Any],
        *,
        source: DefinitionSource | None = None,
        push_source: PushSource | None = None,
        event_sink: EventSink | None = None,
    ) -> None:
        self._config: ClientConfig | None = build_config(config)
        self._repository = Repository()
        self._event_sink = event_sink
        self._synchronizer: Synchronizer | None = Synchronizer(
            self._repository,
            source or HttpDefinitionSource(self._config),
            refresh_interval=self._config.refresh_interval,
            retry=self._config.retry,
            push_source=push_source,
        )
        self._started = False
        self._closed = False

    @classmethod
    def from_snapshot(
        cls, snapshot: Snapshot, *, event_sink: EventSink | None = None
    ) -> FeatureToggleClient:
        """固定スナップショットで評価するクライアントを作る。同期は行わない。"""
        client = cls.__new__(cls)
        client._config = None
        client._repository = Repository(snapshot)
        client._event_sink = event_sink
        client._synchronizer = None
        client._started = False
        client._closed = False
        return client

    @classmethod
    def for_test(cls, toggles: Mapping[str, Any]) -> FeatureToggleClient:
        """トグルキーと固定値の対応からテスト用クライアントを作る。"""
        snapshot = Snapshot(
            toggles={key: Toggle.fixed(key, value) for key, value in toggles.items()},
            version=1,
        )
        return cls.from_snapshot(snapshot)

    @property
    def initialized(self) -> bool:
        """最初のスナップショットが公開済みかどうか。"""
        return self._repository.initialized

    @property
    def version(self) -> int | None:
        return self._repository.version

    async def start(self) -> None:
        """同期を開始する。wait_first_response 設定時は start_wait 秒まで最初の応答を待つ。"""
        if self._closed:
            raise FeatureToggleError(
                code=FeatureToggleErrorCodes.NOT_STARTED,
                message="client is already closed",
            )
        if self._started or self._synchronizer is None or self._config is None:
            return
        self._started = True
        await self._synchronizer.start(
            wait_first_response=self._config.wait_first_response,
            timeout=self._config.start_wait,
        )

    async def close(self) -> None:
        """同期を停止する。複数回呼んでもよい。"""
        if self._closed:
            return
        self._closed = True
        if self._synchronizer is not None:
            grace = self._config.shutdown_timeout if self._config is not None else 5.0
            await self._synchronizer.stop(grace=grace)

    async def __aenter__(self) -> FeatureToggleClient:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def set_update_callback(self, callback: UpdateCallback | None) -> None:
        """スナップショット更新時のコールバックを設定する。"""
        if self._synchronizer is not None:
            self._synchronizer.set_update_callback(callback)

    async def sync_now(self) -> bool:
        """即座に 1 回同期する。新しいスナップショットを公開した場合 True。

        Raises:
            FeatureToggleError: 同期が構成されていない場合、または取得に失敗した場合
        """
        if self._synchronizer is None:
            raise FeatureToggleError(
                code=FeatureToggleErrorCodes.NOT_STARTED,
                message="client has no synchronizer (test mode)",
            )
        return await self._synchronizer.sync_now(SyncType.POLLING)

    def bool_value(self, toggle_key: str, user: EvaluationContext, default: bool) -> bool:
        return self._evaluate(toggle_key, user, ValueType.BOOL, default).value

    def number_value(self, toggle_key: str, user: EvaluationContext, default: float) -> float:
        return self._evaluate(toggle_key, user, ValueType.NUMBER, default).value

    def string_value(self, toggle_key: str, user: EvaluationContext, default: str) -> str:
        return self._evaluate(toggle_key, user, ValueType.STRING, default).value

    def json_value(self, toggle_key: str, user: EvaluationContext, default: Any) -> Any:
        return self._evaluate(toggle_key, user, ValueType.JSON, default).value

    def bool_detail(self, toggle_key: str, user: EvaluationContext, default: bool) -> EvalDetail:
        return self._evaluate(toggle_key, user, ValueType.BOOL, default)

    def number_detail(
        self, toggle_key: str, user: EvaluationContext, default: float
    ) -> EvalDetail:
        return self._evaluate(toggle_key, user, ValueType.NUMBER, default)

    def string_detail(self, toggle_key: str, user: EvaluationContext, default: str) -> EvalDetail:
        return self._evaluate(toggle_key, user, ValueType.STRING, default)

    def json_detail(self, toggle_key: str, user: EvaluationContext, default: Any) -> EvalDetail:
        return self._evaluate(toggle_key, user, ValueType.JSON, default)

    def _evaluate(
        self,
        toggle_key: str,
        user: EvaluationContext,
        value_type: ValueType,
        default: Any,
    ) -> EvalDetail:
        snapshot = self._repository.read()
        try:
            detail = evaluate_typed(snapshot, toggle_key, user, value_type, default)
        except Exception as e:
            logger.error(
                "Toggle evaluation failed, returning default",
                extra={"toggle": toggle_key, "error": str(e)},
            )
            detail = EvalDetail(value=default, reason=Reason.SERVE_ERROR, message=str(e))
        evaluations_total.add(1, {"toggle": toggle_key, "reason": detail.reason.value})
        if snapshot is not None:
            self._track(snapshot, toggle_key, user, detail)
        if value_type is ValueType.JSON and detail.variation_index is not None:
            # スナップショット内の値を呼び出し側の変更から守る
            return replace(detail, value=copy.deepcopy(detail.value))
        return detail

    def _track(
        self,
        snapshot: Snapshot,
        toggle_key: str,
        user: EvaluationContext,
        detail: EvalDetail,
    ) -> None:
        if self._event_sink is None:
            return
        toggle = snapshot.toggles.get(toggle_key)
        if toggle is None or not toggle.track_access_events:
            return
        event = AccessEvent(
            key=toggle_key,
            user_key=user.key,
            value=detail.value,
            reason=detail.reason.value,
            variation_index=detail.variation_index,
            rule_index=detail.rule_index,
            version=detail.version,
        )
        try:
            self._event_sink.record(event)
        except Exception as e:
            logger.warning("Event sink failed", extra={"toggle": toggle_key, "error": str(e)})
