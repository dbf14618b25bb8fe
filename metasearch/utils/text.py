"""Query and option normalization helpers."""

from __future__ import annotations

import re
import unicodedata
from enum import Enum
from typing import Any, Optional


class SafeSearchLevel(str, Enum):
    """세이프서치 단계"""

    OFF = "off"
    MODERATE = "moderate"
    STRICT = "strict"


_SAFE_SEARCH_OFF = {"off", "false", "0", "no", "disable", "disabled"}
_SAFE_SEARCH_STRICT = {"strict", "high", "max", "2", "strong"}


def normalize_query(query: str) -> str:
    """
    캐시 키/로그용 검색어 정규화

    예시:
    - "  Rust   Async  " -> "rust async"
    - "ＰＹＴＨＯＮ" -> "python"  (전각 문자 NFKC 변환)

    Args:
        query: 원본 검색어

    Returns:
        정규화된 검색어 (공백만 있으면 빈 문자열)
    """
    if not query:
        return ""

    normalized = unicodedata.normalize("NFKC", query)

    # 다중 공백을 단일 공백으로
    normalized = re.sub(r"\s+", " ", normalized)

    return normalized.strip().casefold()


def normalize_safe_search(value: Optional[Any]) -> SafeSearchLevel:
    """세이프서치 파라미터 정규화

    알 수 없는 값은 moderate로 취급합니다.

    Examples:
        >>> normalize_safe_search(None)
        <SafeSearchLevel.MODERATE: 'moderate'>
        >>> normalize_safe_search("Disabled")
        <SafeSearchLevel.OFF: 'off'>
        >>> normalize_safe_search(2)
        <SafeSearchLevel.STRICT: 'strict'>
    """
    if value is None:
        return SafeSearchLevel.MODERATE

    if isinstance(value, SafeSearchLevel):
        return value

    if isinstance(value, bool):
        return SafeSearchLevel.MODERATE if value else SafeSearchLevel.OFF

    normalized = str(value).strip().lower()

    if normalized in _SAFE_SEARCH_OFF:
        return SafeSearchLevel.OFF

    if normalized in _SAFE_SEARCH_STRICT:
        return SafeSearchLevel.STRICT

    return SafeSearchLevel.MODERATE
