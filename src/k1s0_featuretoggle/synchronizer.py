"""Synchronizer: asyncio Task ベースのトグル定義同期処理"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from .config import RetrySection
from .exceptions import FeatureToggleError
from .metrics import sync_duration_seconds, sync_total
from .models import Snapshot, parse_snapshot
from .repository import Repository
from .source import DefinitionSource, PushSource

logger = logging.getLogger(__name__)


class SyncType(StrEnum):
    """同期の契機。"""

    POLLING = "polling"
    REALTIME = "realtime"


UpdateCallback = Callable[[Snapshot | None, Snapshot, SyncType], None]


class Synchronizer:
    """取得元からトグル定義を取得し、Repository に公開するバックグラウンド処理。

    ポーリングとプッシュの両モードは同じ公開経路（_apply）に合流する。
    """

    def __init__(
        self,
        repository: Repository,
        source: DefinitionSource,
        *,
        refresh_interval: float = 5.0,
        retry: RetrySection | None = None,
        push_source: PushSource | None = None,
        on_update: UpdateCallback | None = None,
    ) -> None:
        self._repository = repository
        self._source = source
        self._push_source = push_source
        self._refresh_interval = refresh_interval
        self._retry = retry or RetrySection()
        self._on_update = on_update
        self._first_response = asyncio.Event()
        self._tasks: list[asyncio.Task[None]] = []
        self._running = False

    @property
    def initialized(self) -> bool:
        return self._repository.initialized

    @property
    def running(self) -> bool:
        return self._running

    def set_update_callback(self, callback: UpdateCallback | None) -> None:
        """公開成功時に (旧スナップショット, 新スナップショット, SyncType) で呼ばれるコールバックを設定する。"""
        self._on_update = callback

    async def start(self, wait_first_response: bool = False, timeout: float = 5.0) -> None:
        """同期タスクを開始する。

        wait_first_response が True の場合、最初の応答を最大 timeout 秒待つ。
        タイムアウトしても例外は送出せず、以後はバックグラウンドで同期を続ける。
        """
        if self._running:
            return
        self._running = True
        self._tasks.append(asyncio.create_task(self._poll_loop(), name="featuretoggle-poll"))
        if self._push_source is not None:
            self._tasks.append(asyncio.create_task(self._push_loop(), name="featuretoggle-push"))
        logger.info(
            "Toggle synchronizer started",
            extra={
                "refresh_interval": self._refresh_interval,
                "push": self._push_source is not None,
            },
        )
        if wait_first_response:
            try:
                await asyncio.wait_for(self._first_response.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "No toggle response within start wait, serving defaults until first sync",
                    extra={"timeout": timeout},
                )

    async def stop(self, grace: float = 5.0) -> None:
        """同期タスクを停止し、取得元の接続を解放する。"""
        self._running = False
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=grace)
            if pending:
                logger.warning(
                    "Synchronizer tasks did not stop within grace period",
                    extra={"pending": len(pending)},
                )
        for closeable in (self._push_source, self._source):
            if closeable is None:
                continue
            try:
                await asyncio.wait_for(closeable.aclose(), timeout=grace)
            except Exception as e:
                logger.warning("Failed to close toggle source", extra={"error": str(e)})
        logger.info("Toggle synchronizer stopped")

    async def sync_now(self, sync_type: SyncType = SyncType.POLLING) -> bool:
        """取得と公開を 1 回実行する。

        Returns:
            新しいスナップショットを公開した場合 True

        Raises:
            FeatureToggleError: 取得またはペイロードの解析に失敗した場合
        """
        started = time.perf_counter()
        try:
            payload = await self._source.fetch_all(self._repository.version)
            return self._apply(payload, sync_type)
        except FeatureToggleError:
            sync_total.add(1, {"sync_type": sync_type.value, "result": "failed"})
            raise
        finally:
            sync_duration_seconds.record(
                time.perf_counter() - started, {"sync_type": sync_type.value}
            )

    def _apply(self, payload: dict[str, Any], sync_type: SyncType) -> bool:
        """ペイロードをスナップショットにして公開する。"""
        snapshot = parse_snapshot(payload)
        previous = self._repository.read()
        try:
            published = self._repository.publish(snapshot)
        except FeatureToggleError as e:
            self._first_response.set()
            sync_total.add(1, {"sync_type": sync_type.value, "result": "rejected"})
            logger.warning(
                "Rejected invalid toggle snapshot",
                extra={"version": snapshot.version, "error": str(e)},
            )
            return False
        self._first_response.set()
        if not published:
            sync_total.add(1, {"sync_type": sync_type.value, "result": "stale"})
            return False
        sync_total.add(1, {"sync_type": sync_type.value, "result": "published"})
        logger.debug(
            "Toggle snapshot synchronized",
            extra={
                "version": snapshot.version,
                "toggles": len(snapshot.toggles),
                "sync_type": sync_type.value,
            },
        )
        self._notify(previous, snapshot, sync_type)
        return True

    def _notify(self, previous: Snapshot | None, current: Snapshot, sync_type: SyncType) -> None:
        if self._on_update is None:
            return
        try:
            self._on_update(previous, current, sync_type)
        except Exception as e:
            logger.error("Update callback failed", extra={"error": str(e)})

    async def _poll_loop(self) -> None:
        """ポーリングループ。失敗時はバックオフして再試行する。"""
        attempt = 0
        while self._running:
            try:
                await self.sync_now(SyncType.POLLING)
                attempt = 0
                delay = self._refresh_interval
            except Exception as e:
                delay = self._retry.compute_delay(attempt)
                attempt += 1
                logger.error(
                    "Toggle sync failed",
                    extra={"error": str(e), "attempt": attempt, "retry_in": delay},
                )
            await asyncio.sleep(delay)

    async def _push_loop(self) -> None:
        """プッシュ購読ループ。切断時はバックオフして再接続する。"""
        push_source = self._push_source
        if push_source is None:
            return
        attempt = 0
        while self._running:
            try:
                async for payload in push_source.listen():
                    attempt = 0
                    await self._handle_push(payload)
                logger.warning("Toggle push stream closed")
            except Exception as e:
                logger.error("Toggle push stream failed", extra={"error": str(e)})
            delay = self._retry.compute_delay(attempt)
            attempt += 1
            await asyncio.sleep(delay)

    async def _handle_push(self, payload: dict[str, Any] | None) -> None:
        try:
            if payload is None:
                await self.sync_now(SyncType.REALTIME)
            else:
                self._apply(payload, SyncType.REALTIME)
        except FeatureToggleError as e:
            sync_total.add(1, {"sync_type": SyncType.REALTIME.value, "result": "failed"})
            logger.error("Failed to apply pushed toggles", extra={"error": str(e)})
