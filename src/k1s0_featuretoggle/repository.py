"""スナップショットリポジトリ

現在のスナップショットは単一の参照として保持し、公開は参照の差し替えで行う。
読み取り側はロックを取らず、書き込み側のみ threading.Lock で直列化する。
"""

from __future__ import annotations

import logging
import threading

from .exceptions import FeatureToggleError, FeatureToggleErrorCodes
from .hashing import BUCKET_SIZE
from .models import Distribution, Serve, Snapshot, Toggle

logger = logging.getLogger(__name__)


def _invalid(toggle: Toggle, message: str) -> FeatureToggleError:
    return FeatureToggleError(
        code=FeatureToggleErrorCodes.VALIDATION,
        message=f"toggle {toggle.key!r}: {message}",
    )


def _validate_distribution(toggle: Toggle, distribution: Distribution) -> None:
    if len(distribution.ranges) > len(toggle.variations):
        raise _invalid(
            toggle,
            f"distribution has {len(distribution.ranges)} entries "
            f"but only {len(toggle.variations)} variations",
        )
    ranges = sorted(pair for variation in distribution.ranges for pair in variation)
    cursor = 0
    for lower, upper in ranges:
        if lower >= upper:
            raise _invalid(toggle, f"empty bucket range [{lower}, {upper})")
        if lower < cursor:
            raise _invalid(toggle, f"bucket range [{lower}, {upper}) overlaps")
        if lower > cursor:
            raise _invalid(toggle, f"bucket gap [{cursor}, {lower})")
        cursor = upper
    if cursor != BUCKET_SIZE:
        raise _invalid(toggle, f"bucket ranges end at {cursor}, expected {BUCKET_SIZE}")


def _validate_serve(toggle: Toggle, serve: Serve) -> None:
    if serve.split is not None:
        _validate_distribution(toggle, serve.split)
    elif serve.select is None or not 0 <= serve.select < len(toggle.variations):
        raise _invalid(
            toggle,
            f"variation index {serve.select} out of range ({len(toggle.variations)} variations)",
        )


def validate_snapshot(snapshot: Snapshot) -> None:
    """スナップショットの構造的な不変条件を検証する。

    Raises:
        FeatureToggleError: 不変条件に違反した場合 (VALIDATION_ERROR)
    """
    for toggle in snapshot.toggles.values():
        if not toggle.variations:
            raise _invalid(toggle, "variations must not be empty")
        _validate_serve(toggle, toggle.disabled_serve)
        _validate_serve(toggle, toggle.default_serve)
        for rule in toggle.rules:
            _validate_serve(toggle, rule.serve)


class Repository:
    """現在のスナップショットを保持するリポジトリ。"""

    def __init__(self, snapshot: Snapshot | None = None) -> None:
        self._lock = threading.Lock()
        self._snapshot: Snapshot | None = None
        if snapshot is not None:
            self.publish(snapshot)

    def read(self) -> Snapshot | None:
        """現在のスナップショットを返す。未同期なら None。"""
        return self._snapshot

    @property
    def version(self) -> int | None:
        snapshot = self._snapshot
        return None if snapshot is None else snapshot.version

    @property
    def initialized(self) -> bool:
        return self._snapshot is not None

    def publish(self, candidate: Snapshot) -> bool:
        """候補スナップショットを検証して公開する。

        Returns:
            公開した場合 True。現在より新しくないバージョンの場合は何もせず False。

        Raises:
            FeatureToggleError: 候補が不変条件に違反した場合。現在のスナップショットは維持される。
        """
        with self._lock:
            current = self._snapshot
            if current is not None and candidate.version <= current.version:
                logger.debug(
                    "Stale snapshot ignored",
                    extra={"candidate_version": candidate.version, "version": current.version},
                )
                return False
            validate_snapshot(candidate)
            self._snapshot = candidate
        logger.debug("Snapshot published", extra={"version": candidate.version})
        return True
