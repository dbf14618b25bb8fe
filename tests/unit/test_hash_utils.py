"""해싱 유틸리티 유닛 테스트"""
import pytest
from metasearch.utils.hash_utils import hash_string, generate_cache_key


class TestHashUtils:
    """해싱 유틸리티 테스트"""

    def test_hash_string_consistency(self):
        """동일한 입력에 대한 일관성"""
        assert hash_string("rust async") == hash_string("rust async")

    def test_hash_string_different_inputs(self):
        """다른 입력에 대한 다른 해시"""
        assert hash_string("rust") != hash_string("go")

    def test_hash_string_length(self):
        """MD5 해시 길이 확인 (32자)"""
        assert len(hash_string("test")) == 32

    def test_generate_cache_key_format(self):
        """캐시 키 포맷 확인"""
        key = generate_cache_key("web", "python")
        assert key.startswith("web:")
        assert len(key) == len("web:") + 32


class TestCacheKeyIdentity:
    """논리적으로 같은 요청은 같은 키, 결과에 영향을 주는 입력이 다르면 다른 키"""

    def test_query_normalized(self):
        assert generate_cache_key("web", "  Rust   Async ") == generate_cache_key("web", "rust async")

    def test_extras_order_independent(self):
        key1 = generate_cache_key("images", "cat", extras={"size": "large", "color": "red"})
        key2 = generate_cache_key("images", "cat", extras={"color": "red", "size": "large"})
        assert key1 == key2

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"category": "images"},
            {"query": "rust sync"},
            {"page": 2},
            {"safe_search": "strict"},
            {"extras": {"region": "kr"}},
        ],
    )
    def test_each_input_changes_key(self, kwargs):
        base = {"category": "web", "query": "rust async", "page": 1, "safe_search": "moderate", "extras": None}
        changed = {**base, **kwargs}
        assert generate_cache_key(**base) != generate_cache_key(**changed)

    def test_empty_and_missing_extras_equal(self):
        assert generate_cache_key("web", "q", extras={}) == generate_cache_key("web", "q")
