"""인메모리 캐시 스토어 - 캐싱 로직만 담당

- TTL은 읽기 시점에 지연 검사합니다 (백그라운드 스윕 없음)
- 용량이 가득 차면 put 시점에 2단계 정리:
  (a) 최근 접근 시각이 가장 오래된 ~10% 무조건 제거
  (b) 남은 항목 중 논리적으로 만료된 항목 제거
- 내부 오류는 절대 호출자에게 전파하지 않고 미스로 처리합니다
"""
import threading
from dataclasses import dataclass
from typing import Any, Optional

from metasearch.core.config import settings
from metasearch.core.exceptions import CacheException
from metasearch.core.logging import logger
from metasearch.core.clock import Clock, MonotonicClock
from metasearch.schemas.result_schema import CacheStats


@dataclass
class CacheEntry:
    """캐시 항목 (스토어 전용, 호출자에게는 payload만 노출)"""

    key: str
    payload: Any
    stored_at: float
    ttl: float
    last_accessed: float

    def is_expired(self, now: float) -> bool:
        return now - self.stored_at > self.ttl


class CacheStore:
    """TTL + 최대 항목 수 기반 캐시

    프로세스 시작 시 한 번 생성되어 AggregationEngine에 주입됩니다.
    get/put/clear/stats는 내부 락으로 직렬화되므로 스레드와 코루틴 양쪽에서 안전합니다.
    """

    def __init__(
        self,
        max_size: Optional[int] = None,
        default_ttl: Optional[float] = None,
        eviction_ratio: Optional[float] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Args:
            max_size: 최대 항목 수 (기본값: settings.cache_max_size)
            default_ttl: 기본 TTL (초, 기본값: settings.cache_ttl_medium_s)
            eviction_ratio: 용량 초과 시 무조건 제거할 비율 (기본값: 0.1)
            clock: 시간 소스 (테스트에서 주입)

        Raises:
            ValueError: 설정값이 유효하지 않은 경우
        """
        self.max_size = settings.cache_max_size if max_size is None else max_size
        self.default_ttl = settings.cache_ttl_medium_s if default_ttl is None else default_ttl
        self.eviction_ratio = settings.cache_eviction_ratio if eviction_ratio is None else eviction_ratio
        self.clock: Clock = clock or MonotonicClock()

        if self.max_size <= 0:
            raise ValueError(f"max_size must be positive (got {self.max_size})")
        if self.default_ttl <= 0:
            raise ValueError(f"default_ttl must be positive (got {self.default_ttl})")
        if not 0 < self.eviction_ratio <= 1:
            raise ValueError(f"eviction_ratio must be in (0, 1] (got {self.eviction_ratio})")

        self._lock = threading.RLock()
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        """캐시 조회

        만료된 항목은 이 시점에 저장소에서 제거됩니다.

        Args:
            key: 캐시 키

        Returns:
            payload 또는 None (미스/만료/내부 오류)
        """
        with self._lock:
            try:
                entry = self._entries.get(key)
                if entry is None:
                    self._misses += 1
                    return None

                if not isinstance(entry, CacheEntry):
                    raise CacheException(
                        "Corrupt cache entry",
                        error_code="CACHE_CORRUPT_ENTRY",
                        details={"key": key, "type": type(entry).__name__},
                    )

                now = self.clock.now()
                if entry.is_expired(now):
                    del self._entries[key]
                    self._misses += 1
                    logger.debug(f"[CACHE] Expired: key={key}")
                    return None

                entry.last_accessed = now
                self._hits += 1
                return entry.payload

            except Exception as e:
                logger.error(f"[CACHE] get failed, treating as miss: key={key}, error={type(e).__name__}: {e}")
                self._misses += 1
                self._entries.pop(key, None)
                return None

    def put(self, key: str, payload: Any, ttl: Optional[float] = None) -> bool:
        """캐시 저장 (덮어쓰기)

        Args:
            key: 캐시 키
            payload: 저장할 결과 세트
            ttl: TTL (초, 기본값: default_ttl)

        Returns:
            저장 성공 여부. 실패해도 예외는 발생하지 않음
        """
        with self._lock:
            try:
                ttl_s = self.default_ttl if ttl is None else float(ttl)
                if ttl_s <= 0:
                    logger.warning(f"[CACHE] Rejected non-positive TTL: key={key}, ttl={ttl_s}")
                    return False

                if key not in self._entries and len(self._entries) >= self.max_size:
                    self._cleanup()

                now = self.clock.now()
                self._entries[key] = CacheEntry(
                    key=key,
                    payload=payload,
                    stored_at=now,
                    ttl=ttl_s,
                    last_accessed=now,
                )
                logger.debug(f"[CACHE] Set: key={key}, ttl={ttl_s}s")
                return True

            except Exception as e:
                logger.error(f"[CACHE] put failed: key={key}, error={type(e).__name__}: {e}")
                return False

    def delete(self, key: str) -> bool:
        """캐시 삭제"""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """전체 비우기 + 적중/미스 카운터 초기화"""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
        logger.info("[CACHE] Cleared")

    def stats(self) -> CacheStats:
        """통계 스냅샷 (만료 항목 수는 전체 스캔으로 재계산)"""
        with self._lock:
            now = self.clock.now()
            expired = sum(1 for entry in self._entries.values() if self._is_expired(entry, now))
            total = self._hits + self._misses
            hit_rate = round(self._hits / total * 100, 2) if total > 0 else 0.0
            return CacheStats(
                size=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                hit_rate=hit_rate,
                max_size=self.max_size,
                expired_entries=expired,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _cleanup(self) -> None:
        """용량 초과 정리 (락을 잡은 상태에서만 호출)"""
        before = len(self._entries)

        # (a) 가장 오래 접근되지 않은 항목부터 제거. 손상된 항목이 가장 먼저 제거됨
        ordered = sorted(self._entries.items(), key=lambda kv: self._last_accessed(kv[1]))
        to_remove = max(1, int(len(ordered) * self.eviction_ratio))
        for key, _ in ordered[:to_remove]:
            del self._entries[key]

        # (b) 남은 항목 중 만료된 항목 제거
        now = self.clock.now()
        expired_keys = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired_keys:
            del self._entries[key]

        logger.info(
            f"[CACHE] Full ({before}/{self.max_size}), cleaned up: "
            f"evicted={to_remove}, expired={len(expired_keys)}, size={len(self._entries)}"
        )

    @staticmethod
    def _last_accessed(entry: Any) -> float:
        if isinstance(entry, CacheEntry):
            return entry.last_accessed
        return float("-inf")

    @staticmethod
    def _is_expired(entry: Any, now: float) -> bool:
        if not isinstance(entry, CacheEntry):
            return True
        return entry.is_expired(now)
