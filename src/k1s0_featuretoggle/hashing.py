"""ロールアウト用バケット計算

全 SDK 実装で同一ユーザーが同一バケットに割り当てられる必要があるため、
ダイジェスト・バイト順・剰余の方式は変更しないこと。
"""

from __future__ import annotations

import hashlib

BUCKET_SIZE = 10000


def salt_hash(key: str, salt: str, bucket_size: int = BUCKET_SIZE) -> int:
    """SHA-1(key + salt) の末尾 4 バイトをビッグエンディアンで読み、bucket_size で割った余りを返す。"""
    digest = hashlib.sha1(f"{key}{salt}".encode("utf-8")).digest()
    value = int.from_bytes(digest[-4:], byteorder="big", signed=False)
    return value % bucket_size


def bucket(toggle_key: str, user_key: str) -> int:
    """ユーザーのトグルに対するバケット値 [0, 10000) を返す。トグルキーがデフォルトの salt。"""
    return salt_hash(user_key, toggle_key)
