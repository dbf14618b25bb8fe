"""Engine Result - Standardized Result Format

Provides the result types flowing between provider calls, the aggregator and the engine.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from metasearch.schemas.result_schema import Category, ProviderError, ResultItem


class SearchStatus(str, Enum):
    """검색 상태"""

    CACHE_HIT = "cache_hit"  # 캐시 히트 (프로바이더 호출 없음)
    SUCCESS = "success"  # 모든 프로바이더 성공
    PARTIAL = "partial"  # 일부 프로바이더 실패 (나머지 결과로 응답)
    DEGRADED = "degraded"  # 모든 프로바이더 실패 (빈 결과 + 오류 목록)


class RequestPhase(str, Enum):
    """요청 단계

    PENDING → CACHE_CHECK → {CACHE_HIT → DONE}
                          | {CACHE_MISS → FETCHING → MERGING → CACHE_WRITE → DONE}
    """

    PENDING = "pending"
    CACHE_CHECK = "cache_check"
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    FETCHING = "fetching"
    MERGING = "merging"
    CACHE_WRITE = "cache_write"
    DONE = "done"


@dataclass
class ProviderOutcome:
    """프로바이더 호출 1회의 결과 (병합 단계에서 즉시 소비됨)

    Attributes:
        provider_name: 프로바이더 이름
        weight: 등록 시 고정된 가중치
        items: 정규화된 결과 (빈 목록도 성공)
        error: 실패 시 오류
        provider_index: 등록 순서 (동점 정렬 기준)
        page_offset: 백필 호출이면 요청 페이지로부터의 거리 (기본 호출은 0)
    """

    provider_name: str
    weight: float
    items: list[ResultItem] = field(default_factory=list)
    error: Optional[ProviderError] = None
    provider_index: int = 0
    page_offset: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(
        cls, provider_name: str, weight: float, items: list[ResultItem],
        provider_index: int = 0, page_offset: int = 0,
    ) -> "ProviderOutcome":
        return cls(provider_name, weight, list(items), None, provider_index, page_offset)

    @classmethod
    def failure(
        cls, provider_name: str, weight: float, error: ProviderError,
        provider_index: int = 0, page_offset: int = 0,
    ) -> "ProviderOutcome":
        return cls(provider_name, weight, [], error, provider_index, page_offset)


@dataclass
class AggregationResult:
    """Category Aggregator 결과

    Attributes:
        items: 요청 페이지에 해당하는 결과 (정렬 + 중복 제거 완료)
        provider_errors: 실패한 프로바이더별 오류
        total_merged: 페이지 슬라이스 전 병합 결과 수
        providers_succeeded: 성공한 기본 호출 수
        backfill_calls: 수행한 백필 호출 수
    """

    items: list[ResultItem] = field(default_factory=list)
    provider_errors: list[ProviderError] = field(default_factory=list)
    total_merged: int = 0
    providers_succeeded: int = 0
    backfill_calls: int = 0

    @property
    def all_failed(self) -> bool:
        """모든 프로바이더 실패 여부 (degraded)"""
        return self.providers_succeeded == 0 and bool(self.provider_errors)


@dataclass(frozen=True)
class CachedResultSet:
    """캐시에 저장되는 결과 세트 (불변)"""

    items: tuple[ResultItem, ...]
    provider_errors: tuple[ProviderError, ...] = ()
    degraded: bool = False


@dataclass
class EngineResult:
    """AggregationEngine.run 결과

    Attributes:
        status: 검색 상태
        category: 카테고리
        items: 결과 목록
        from_cache: 캐시 히트 여부
        provider_errors: 프로바이더별 오류 (경계 계층이 응답에 노출)
        query: 정규화된 검색어
        page: 페이지 번호
        elapsed_ms: 소요 시간 (밀리초)
        phases: 단계별 경과 시간 (밀리초)
    """

    status: SearchStatus
    category: Category
    items: list[ResultItem] = field(default_factory=list)
    from_cache: bool = False
    provider_errors: list[ProviderError] = field(default_factory=list)

    # 메타데이터
    query: Optional[str] = None
    page: int = 1
    elapsed_ms: Optional[float] = None
    phases: dict[str, float] = field(default_factory=dict)

    @property
    def is_degraded(self) -> bool:
        return self.status == SearchStatus.DEGRADED

    @classmethod
    def from_cache(
        cls, category: Category, cached: CachedResultSet, query: str, page: int,
        elapsed_ms: float, phases: Optional[dict[str, float]] = None,
    ) -> "EngineResult":
        """캐시 히트 결과 생성"""
        return cls(
            status=SearchStatus.CACHE_HIT,
            category=category,
            items=list(cached.items),
            from_cache=True,
            provider_errors=list(cached.provider_errors),
            query=query,
            page=page,
            elapsed_ms=elapsed_ms,
            phases=phases or {},
        )

    @classmethod
    def from_fetch(
        cls, category: Category, fetched: CachedResultSet, query: str, page: int,
        elapsed_ms: float, phases: Optional[dict[str, float]] = None,
    ) -> "EngineResult":
        """프로바이더 호출 결과로 생성

        Args:
            category: 카테고리
            fetched: 집계 후 캐시에 저장된 결과 세트
            query: 정규화된 검색어
            page: 페이지 번호
            elapsed_ms: 소요 시간 (밀리초)
            phases: 단계별 경과 시간

        Returns:
            EngineResult: from_cache=False 결과
        """
        if fetched.degraded:
            status = SearchStatus.DEGRADED
        elif fetched.provider_errors:
            status = SearchStatus.PARTIAL
        else:
            status = SearchStatus.SUCCESS

        return cls(
            status=status,
            category=category,
            items=list(fetched.items),
            from_cache=False,
            provider_errors=list(fetched.provider_errors),
            query=query,
            page=page,
            elapsed_ms=elapsed_ms,
            phases=phases or {},
        )

    def to_dict(self) -> dict[str, Any]:
        """경계 계층(HTTP 응답)용 표현"""
        return {
            "category": self.category.value,
            "status": self.status.value,
            "items": [item.model_dump(mode="json") for item in self.items],
            "fromCache": self.from_cache,
            "providerErrors": [
                {"provider": e.provider, "message": e.message} for e in self.provider_errors
            ],
            "page": self.page,
            "elapsedMs": self.elapsed_ms,
        }


@dataclass(frozen=True)
class CategoryFailure:
    """search_all에서 카테고리 하나가 예기치 않게 실패한 경우"""

    category: Category
    message: str
    error_code: str = "CATEGORY_FAILED"
