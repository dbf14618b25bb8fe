"""해싱 유틸리티"""
import hashlib
import json
from typing import Any, Mapping, Optional


def hash_string(text: str) -> str:
    """
    문자열을 MD5 해시로 변환

    Args:
        text: 해시할 문자열

    Returns:
        MD5 해시 문자열
    """
    return hashlib.md5(text.encode()).hexdigest()


def generate_cache_key(
    category: str,
    query: str,
    page: int = 1,
    safe_search: str = "moderate",
    extras: Optional[Mapping[str, Any]] = None,
) -> str:
    """
    카테고리별 결과 세트 캐시 키 생성

    결과에 영향을 주는 입력(카테고리, 정규화된 검색어, 페이지, 세이프서치,
    카테고리 전용 옵션)이 모두 키에 포함됩니다. extras는 키 정렬 후 직렬화하므로
    dict 순서와 무관하게 같은 키가 나옵니다.

    Args:
        category: 카테고리 값 (예: "web")
        query: 정규화된 검색어
        page: 페이지 번호
        safe_search: 정규화된 세이프서치 단계
        extras: 카테고리 전용 옵션

    Returns:
        "{category}:{md5}" 형식의 캐시 키
    """
    from metasearch.utils.text import normalize_query

    canonical = json.dumps(
        {
            "category": category,
            "query": normalize_query(query),
            "page": int(page),
            "safe_search": str(safe_search),
            "extras": dict(extras or {}),
        },
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        default=str,
    )
    return f"{category}:{hash_string(canonical)}"
