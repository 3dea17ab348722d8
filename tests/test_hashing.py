"""バケット計算のユニットテスト"""

from k1s0_featuretoggle.hashing import BUCKET_SIZE, bucket, salt_hash


def test_salt_hash_known_vector() -> None:
    """他言語実装と同じバケット値になること。"""
    assert salt_hash("key", "salt") == 2647


def test_salt_hash_is_deterministic() -> None:
    """同じ入力は常に同じバケットになること。"""
    assert salt_hash("user-1", "toggle") == salt_hash("user-1", "toggle")


def test_salt_hash_range() -> None:
    """バケット値が [0, 10000) に収まること。"""
    for i in range(500):
        assert 0 <= salt_hash(f"user-{i}", "toggle") < BUCKET_SIZE


def test_salt_hash_custom_bucket_size() -> None:
    """bucket_size を指定できること。"""
    for i in range(100):
        assert 0 <= salt_hash(f"user-{i}", "toggle", 100) < 100


def test_bucket_uses_toggle_key_as_salt() -> None:
    """bucket はトグルキーを salt としてユーザーキーをハッシュすること。"""
    assert bucket("toggle", "user-1") == salt_hash("user-1", "toggle")


def test_bucket_differs_between_toggles() -> None:
    """トグルが異なれば割り当ても独立していること。"""
    users = [f"user-{i}" for i in range(200)]
    a = [bucket("toggle_a", u) for u in users]
    b = [bucket("toggle_b", u) for u in users]
    assert a != b
