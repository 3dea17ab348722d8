"""トグル定義の取得元（ポーリング / プッシュ）"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

import httpx

from .config import ClientConfig
from .exceptions import FeatureToggleError, FeatureToggleErrorCodes

SDK_VERSION = "0.1.0"
USER_AGENT = f"Python/{SDK_VERSION}"


class DefinitionSource(ABC):
    """全定義を一括取得する取得元（ポーリングモード）。"""

    @abstractmethod
    async def fetch_all(self, current_version: int | None = None) -> dict[str, Any]:
        """トグル・セグメント定義のペイロードを取得する。"""
        ...

    async def aclose(self) -> None:
        """保持している接続を解放する。"""
        return None


class HttpDefinitionSource(DefinitionSource):
    """httpx を使ったトグル定義取得元。"""

    def __init__(self, config: ClientConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={
                    "Authorization": self._config.server_sdk_key,
                    "User-Agent": USER_AGENT,
                },
                timeout=self._config.http_timeout,
            )
        return self._client

    async def fetch_all(self, current_version: int | None = None) -> dict[str, Any]:
        url = self._config.toggles_url or ""
        params = {"version": str(current_version)} if current_version is not None else None
        try:
            resp = await self._get_client().get(url, params=params)
        except httpx.HTTPError as e:
            raise FeatureToggleError(
                code=FeatureToggleErrorCodes.HTTP_ERROR,
                message=f"Failed to fetch toggles: {e}",
                cause=e,
            ) from e
        if resp.status_code >= 400:
            raise FeatureToggleError(
                code=FeatureToggleErrorCodes.HTTP_ERROR,
                message=f"fetch_all: HTTP {resp.status_code}: {resp.text}",
            )
        try:
            data: Any = resp.json()
        except ValueError as e:
            raise FeatureToggleError(
                code=FeatureToggleErrorCodes.PARSE_ERROR,
                message=f"fetch_all: invalid JSON body: {e}",
                cause=e,
            ) from e
        if not isinstance(data, dict):
            raise FeatureToggleError(
                code=FeatureToggleErrorCodes.PARSE_ERROR,
                message="fetch_all: response body must be a JSON object",
            )
        return data

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


class InMemoryDefinitionSource(DefinitionSource):
    """テスト用インメモリ取得元。

    enqueue したペイロードまたは例外を順に返し、尽きたら最後のペイロードを返し続ける。
    """

    def __init__(self, payload: dict[str, Any] | None = None) -> None:
        self._queue: list[dict[str, Any] | Exception] = []
        self._last: dict[str, Any] | None = payload
        self.fetch_count = 0
        self.requested_versions: list[int | None] = []
        self.closed = False

    def enqueue(self, item: dict[str, Any] | Exception) -> None:
        self._queue.append(item)

    async def fetch_all(self, current_version: int | None = None) -> dict[str, Any]:
        self.fetch_count += 1
        self.requested_versions.append(current_version)
        if self._queue:
            item = self._queue.pop(0)
            if isinstance(item, Exception):
                raise item
            self._last = item
        if self._last is None:
            raise FeatureToggleError(
                code=FeatureToggleErrorCodes.HTTP_ERROR,
                message="no payload available",
            )
        return self._last

    async def aclose(self) -> None:
        self.closed = True


class PushSource(ABC):
    """更新を非同期に配信する取得元（プッシュモード）。"""

    @abstractmethod
    def listen(self) -> AsyncIterator[dict[str, Any] | None]:
        """更新を順に返す。None は「変更あり」の通知のみで、取得元からの再取得を促す。

        ストリームが終了または例外を送出した場合は切断とみなされる。
        """
        ...

    async def aclose(self) -> None:
        return None


_DISCONNECT = object()


class InMemoryPushSource(PushSource):
    """テスト用インメモリプッシュ取得元。"""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self.connect_count = 0
        self.closed = False

    def push(self, payload: dict[str, Any]) -> None:
        """ペイロードを配信する。"""
        self._queue.put_nowait(payload)

    def notify(self) -> None:
        """変更通知のみを配信する。"""
        self._queue.put_nowait(None)

    def disconnect(self, error: Exception | None = None) -> None:
        """現在のストリームを終了させる。error 指定時はその例外で終了する。"""
        self._queue.put_nowait(error if error is not None else _DISCONNECT)

    async def listen(self) -> AsyncIterator[dict[str, Any] | None]:
        self.connect_count += 1
        while True:
            item = await self._queue.get()
            if item is _DISCONNECT:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def aclose(self) -> None:
        self.closed = True
