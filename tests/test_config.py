"""設定読み込みのユニットテスト"""

from pathlib import Path

import pytest
from k1s0_featuretoggle.config import (
    ClientConfig,
    RetrySection,
    build_config,
    deep_merge,
    load_config,
)
from k1s0_featuretoggle.exceptions import FeatureToggleError, FeatureToggleErrorCodes


def test_urls_are_derived_from_remote_url() -> None:
    """個別 URL を省略した場合は remote_url から導出すること。"""
    config = ClientConfig(remote_url="https://toggles.example.com")
    assert config.toggles_url == "https://toggles.example.com/api/server-sdk/toggles"
    assert config.events_url == "https://toggles.example.com/api/events"
    assert config.realtime_url == "https://toggles.example.com/realtime"


def test_explicit_urls_are_kept() -> None:
    """個別 URL を指定した場合はそれを使うこと。"""
    config = ClientConfig(
        remote_url="https://toggles.example.com/",
        toggles_url="https://cdn.example.com/toggles",
    )
    assert config.toggles_url == "https://cdn.example.com/toggles"
    assert config.events_url == "https://toggles.example.com/api/events"


def test_defaults() -> None:
    """既定値が設定されること。"""
    config = ClientConfig(remote_url="http://localhost:4007")
    assert config.refresh_interval == 5.0
    assert config.wait_first_response is False
    assert config.start_wait == 5.0
    assert config.retry.initial_delay == 0.5


def test_build_config_rejects_non_http_url() -> None:
    """http(s) 以外の remote_url は CONFIG_ERROR になること。"""
    with pytest.raises(FeatureToggleError) as exc_info:
        build_config({"remote_url": "ftp://example.com"})
    assert exc_info.value.code == FeatureToggleErrorCodes.CONFIG_ERROR


def test_build_config_rejects_invalid_interval() -> None:
    """正でないポーリング間隔は CONFIG_ERROR になること。"""
    with pytest.raises(FeatureToggleError) as exc_info:
        build_config({"remote_url": "https://example.com", "refresh_interval": 0})
    assert exc_info.value.code == FeatureToggleErrorCodes.CONFIG_ERROR


def test_build_config_passes_through_model() -> None:
    """ClientConfig はそのまま返すこと。"""
    config = ClientConfig(remote_url="https://example.com")
    assert build_config(config) is config


def test_retry_compute_delay_without_jitter() -> None:
    """指数バックオフが max_delay で頭打ちになること。"""
    retry = RetrySection(initial_delay=1.0, max_delay=5.0, multiplier=2.0, jitter=False)
    assert retry.compute_delay(0) == 1.0
    assert retry.compute_delay(1) == 2.0
    assert retry.compute_delay(2) == 4.0
    assert retry.compute_delay(3) == 5.0


def test_retry_compute_delay_with_jitter() -> None:
    """ジッターは ±10% の範囲に収まること。"""
    retry = RetrySection(initial_delay=1.0, max_delay=10.0, multiplier=2.0, jitter=True)
    for _ in range(50):
        assert 1.8 <= retry.compute_delay(1) <= 2.2


def test_deep_merge() -> None:
    """ネストした辞書がマージされること。"""
    base = {"a": 1, "retry": {"initial_delay": 1.0, "jitter": True}}
    override = {"retry": {"initial_delay": 2.0}}
    assert deep_merge(base, override) == {"a": 1, "retry": {"initial_delay": 2.0, "jitter": True}}


def test_load_config(tmp_path: Path) -> None:
    """YAML ファイルから設定を読み込めること。"""
    base = tmp_path / "config.yaml"
    base.write_text(
        "featuretoggle:\n"
        "  remote_url: https://toggles.example.com\n"
        "  server_sdk_key: server-key\n"
        "  refresh_interval: 10\n"
        "  retry:\n"
        "    max_delay: 60\n",
        encoding="utf-8",
    )
    config = load_config(base)
    assert config.server_sdk_key == "server-key"
    assert config.refresh_interval == 10.0
    assert config.retry.max_delay == 60.0


def test_load_config_with_env_override(tmp_path: Path) -> None:
    """環境別ファイルでベース設定を上書きできること。"""
    base = tmp_path / "config.yaml"
    base.write_text("remote_url: https://toggles.example.com\nrefresh_interval: 10\n", encoding="utf-8")
    env = tmp_path / "config.prod.yaml"
    env.write_text("refresh_interval: 30\nwait_first_response: true\n", encoding="utf-8")
    config = load_config(base, env)
    assert config.remote_url == "https://toggles.example.com"
    assert config.refresh_interval == 30.0
    assert config.wait_first_response is True


def test_load_config_missing_env_file_is_ignored(tmp_path: Path) -> None:
    """存在しない環境別ファイルは無視すること。"""
    base = tmp_path / "config.yaml"
    base.write_text("remote_url: https://toggles.example.com\n", encoding="utf-8")
    config = load_config(base, tmp_path / "missing.yaml")
    assert config.remote_url == "https://toggles.example.com"


def test_load_config_missing_file(tmp_path: Path) -> None:
    """ベースファイルがない場合は READ_FILE_ERROR になること。"""
    with pytest.raises(FeatureToggleError) as exc_info:
        load_config(tmp_path / "missing.yaml")
    assert exc_info.value.code == FeatureToggleErrorCodes.READ_FILE


def test_load_config_invalid_yaml(tmp_path: Path) -> None:
    """不正な YAML は PARSE_YAML_ERROR になること。"""
    base = tmp_path / "config.yaml"
    base.write_text("remote_url: [unclosed\n", encoding="utf-8")
    with pytest.raises(FeatureToggleError) as exc_info:
        load_config(base)
    assert exc_info.value.code == FeatureToggleErrorCodes.PARSE_YAML
