"""クライアント設定（pydantic BaseModel）"""

from __future__ import annotations

import random
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from .exceptions import FeatureToggleError, FeatureToggleErrorCodes


class RetrySection(BaseModel):
    """同期失敗時のバックオフ設定。"""

    initial_delay: float = Field(default=0.5, ge=0.0)
    max_delay: float = Field(default=30.0, ge=0.0)
    multiplier: float = Field(default=2.0, ge=1.0)
    jitter: bool = True

    def compute_delay(self, attempt: int) -> float:
        """リトライ間隔を秒単位で計算する。"""
        base = self.initial_delay * (self.multiplier**attempt)
        capped = min(base, self.max_delay)
        if self.jitter:
            return capped * (0.9 + random.random() * 0.2)
        return capped


class ClientConfig(BaseModel):
    """フィーチャートグルクライアント設定。

    toggles_url / events_url / realtime_url を省略した場合は remote_url から導出する。
    """

    remote_url: str = Field(min_length=1)
    toggles_url: str | None = None
    events_url: str | None = None
    realtime_url: str | None = None
    server_sdk_key: str = ""
    refresh_interval: float = Field(default=5.0, gt=0.0)
    wait_first_response: bool = False
    start_wait: float = Field(default=5.0, gt=0.0)
    http_timeout: float = Field(default=3.0, gt=0.0)
    shutdown_timeout: float = Field(default=5.0, gt=0.0)
    retry: RetrySection = Field(default_factory=RetrySection)

    @model_validator(mode="after")
    def _derive_urls(self) -> ClientConfig:
        if not self.remote_url.startswith(("http://", "https://")):
            raise ValueError(f"remote_url must be an http(s) URL: {self.remote_url}")
        base = self.remote_url if self.remote_url.endswith("/") else self.remote_url + "/"
        if self.toggles_url is None:
            self.toggles_url = base + "api/server-sdk/toggles"
        if self.events_url is None:
            self.events_url = base + "api/events"
        if self.realtime_url is None:
            self.realtime_url = base + "realtime"
        return self


def build_config(data: ClientConfig | dict[str, Any]) -> ClientConfig:
    """辞書または ClientConfig を検証済みの ClientConfig にする。"""
    if isinstance(data, ClientConfig):
        return data
    try:
        return ClientConfig.model_validate(data)
    except ValidationError as e:
        raise FeatureToggleError(
            code=FeatureToggleErrorCodes.CONFIG_ERROR,
            message=f"Config validation failed: {e}",
            cause=e,
        ) from e


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """base と override をディープマージして新しい辞書を返す。override の値が優先される。"""
    result: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise FeatureToggleError(
            code=FeatureToggleErrorCodes.READ_FILE,
            message=f"Failed to read config file: {path}",
            cause=e,
        ) from e
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise FeatureToggleError(
            code=FeatureToggleErrorCodes.PARSE_YAML,
            message=f"Failed to parse YAML: {path}",
            cause=e,
        ) from e
    if not isinstance(data, dict):
        raise FeatureToggleError(
            code=FeatureToggleErrorCodes.PARSE_YAML,
            message=f"Config root must be a mapping: {path}",
        )
    return data


def load_config(base_path: Path, env_path: Path | None = None) -> ClientConfig:
    """YAML 設定ファイルを読み込んで ClientConfig を返す。

    base_path: ベース設定ファイルパス（必須）
    env_path: 環境別設定ファイルパス（オプション）。存在する場合はベースにマージ。
    トップレベルに featuretoggle キーがあればその下を設定として扱う。
    """
    data = _read_yaml(base_path)
    if env_path is not None and env_path.exists():
        data = deep_merge(data, _read_yaml(env_path))
    section = data.get("featuretoggle", data)
    if not isinstance(section, dict):
        raise FeatureToggleError(
            code=FeatureToggleErrorCodes.CONFIG_ERROR,
            message="featuretoggle section must be a mapping",
        )
    return build_config(section)
