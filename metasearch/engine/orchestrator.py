"""Aggregation Engine - Main Engine Entry Point

Coordinates the per-category pipeline:
1. Cache lookup
2. Category Aggregator on a miss (fan-out, merge, backfill, pagination)
3. Cache write with the category's TTL class

Per-request errors never leave run(); only invalid input raises.
"""

import asyncio
from typing import Any, Iterable, Mapping, Optional, Union

from metasearch.core.clock import Clock, MonotonicClock
from metasearch.core.config import Settings, settings as default_settings
from metasearch.core.exceptions import NoProvidersRegisteredException
from metasearch.core.logging import logger, sanitize_for_log
from metasearch.schemas.result_schema import Category, SearchOptions
from metasearch.services.impl.cache_store import CacheStore
from metasearch.utils.hash_utils import generate_cache_key
from metasearch.utils.text import normalize_query

from .aggregator import CategoryAggregator
from .budget import BudgetConfig, BudgetManager
from .categories import CategoryPolicy, TTLClass, load_policies
from .providers import ProviderRegistry
from .result import CachedResultSet, CategoryFailure, EngineResult, RequestPhase


class AggregationEngine:
    """집계 엔진

    Usage:
        engine = AggregationEngine(registry, CacheStore(), CategoryAggregator())
        result = await engine.run(Category.WEB, "rust async", SearchOptions(page=1))

        result.items
        result.from_cache
        result.provider_errors
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        cache: CacheStore,
        aggregator: Optional[CategoryAggregator] = None,
        policies: Optional[Mapping[Category, CategoryPolicy]] = None,
        config: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        coalesce: Optional[bool] = None,
        categories: Optional[Iterable[Union[Category, str]]] = None,
    ):
        """
        Args:
            registry: 프로바이더 레지스트리 (최소 1개 카테고리 등록 필요)
            cache: 프로세스 전역에서 하나만 생성된 캐시 스토어
            aggregator: 카테고리 집계기
            policies: 카테고리 정책 (기본값: categories.yaml)
            config: 설정 (기본값: 전역 settings)
            clock: 단계 측정용 시간 소스
            coalesce: 같은 키의 동시 미스를 하나의 계산으로 합칠지 여부
            categories: 반드시 서비스해야 하는 카테고리. 하나라도 프로바이더가 없으면 생성 시점에 실패

        Raises:
            ValueError: registry/cache가 None인 경우
            NoProvidersRegisteredException: 등록된 프로바이더가 하나도 없거나
                categories 중 프로바이더가 없는 카테고리가 있는 경우
        """
        if registry is None:
            raise ValueError("registry must not be None")
        if cache is None:
            raise ValueError("cache must not be None")

        registry.validate(categories)

        self.registry = registry
        self.cache = cache
        self.config = config or default_settings
        self.aggregator = aggregator or CategoryAggregator(config=self.config)
        self.policies: dict[Category, CategoryPolicy] = dict(policies) if policies is not None else load_policies()
        self.clock: Clock = clock or MonotonicClock()
        self.coalesce = self.config.coalesce_concurrent_misses if coalesce is None else coalesce
        self._inflight: dict[str, asyncio.Future] = {}

    async def run(
        self,
        category: Union[Category, str],
        query: str,
        options: Optional[SearchOptions] = None,
    ) -> EngineResult:
        """카테고리 검색 실행

        Args:
            category: 카테고리
            query: 검색어 (정규화 전)
            options: 검색 옵션 (기본값: page=1, safe_search=moderate)

        Returns:
            EngineResult: items / from_cache / provider_errors

        Raises:
            ValueError: 알 수 없는 카테고리, 빈 검색어
            NoProvidersRegisteredException: 생성 시 선언하지 않은 카테고리에 프로바이더가 없는 경우
                (알 수 없는 카테고리와 같은 호출자 계약 위반)
        """
        category = self._to_category(category)
        options = options or SearchOptions()
        normalized = normalize_query(query) if isinstance(query, str) else ""
        if not normalized:
            raise ValueError(f"Invalid query: {query!r}")

        providers = self.registry.providers(category)
        if not providers:
            raise NoProvidersRegisteredException(category.value)

        budget = BudgetManager(BudgetConfig(total_budget=self.config.provider_timeout_s), clock=self.clock)
        budget.start()
        budget.checkpoint(RequestPhase.PENDING.value)

        key = generate_cache_key(
            category.value, normalized, options.page, options.safe_search.value, options.extras
        )
        safe_query = sanitize_for_log(normalized)

        # 1. Cache 확인
        budget.checkpoint(RequestPhase.CACHE_CHECK.value)
        cached = self._cache_get(key)
        if cached is not None:
            budget.checkpoint(RequestPhase.CACHE_HIT.value)
            budget.checkpoint(RequestPhase.DONE.value)
            logger.info(f"[ENGINE] Cache hit: {category.value} query='{safe_query}' page={options.page}")
            return EngineResult.from_cache(
                category, cached, normalized, options.page, budget.elapsed_ms(), budget.checkpoints_ms()
            )

        budget.checkpoint(RequestPhase.CACHE_MISS.value)
        logger.info(f"[ENGINE] Cache miss: {category.value} query='{safe_query}' page={options.page}")

        # 2. 프로바이더 호출 + 병합 + 캐시 저장
        if self.coalesce:
            result_set = await self._coalesced_fetch(key, category, normalized, options, budget)
        else:
            result_set = await self._fetch_and_store(key, category, normalized, options, budget)

        budget.checkpoint(RequestPhase.DONE.value)
        if result_set.degraded:
            logger.warning(
                f"[ENGINE] Degraded {category.value} result: all providers failed "
                f"({len(result_set.provider_errors)} errors)"
            )
        logger.debug(f"[ENGINE] Budget report: {budget.get_report()}")
        return EngineResult.from_fetch(
            category, result_set, normalized, options.page, budget.elapsed_ms(), budget.checkpoints_ms()
        )

    async def search_all(
        self,
        categories: Iterable[Union[Category, str]],
        query: str,
        options: Optional[SearchOptions] = None,
    ) -> dict[Category, Union[EngineResult, CategoryFailure]]:
        """여러 카테고리 동시 검색

        카테고리 하나가 예기치 않게 실패해도 다른 카테고리 결과에는 영향이 없습니다.

        Raises:
            ValueError: 알 수 없는 카테고리, 빈 검색어
        """
        targets = list(dict.fromkeys(self._to_category(c) for c in categories))
        if not normalize_query(query or ""):
            raise ValueError(f"Invalid query: {query!r}")

        settled = await asyncio.gather(
            *(self.run(category, query, options) for category in targets),
            return_exceptions=True,
        )

        results: dict[Category, Union[EngineResult, CategoryFailure]] = {}
        for category, outcome in zip(targets, settled):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.error(f"[ENGINE] {category.value} failed: {type(outcome).__name__}: {outcome}")
                results[category] = CategoryFailure(
                    category=category,
                    message=str(outcome),
                    error_code=getattr(outcome, "error_code", None) or "CATEGORY_FAILED",
                )
            else:
                results[category] = outcome
        return results

    def policy_for(self, category: Union[Category, str]) -> CategoryPolicy:
        category = self._to_category(category)
        return self.policies.get(category) or CategoryPolicy(category=category)

    async def _fetch_and_store(
        self,
        key: str,
        category: Category,
        query: str,
        options: SearchOptions,
        budget: BudgetManager,
    ) -> CachedResultSet:
        """CACHE_MISS → FETCHING → MERGING → CACHE_WRITE"""
        policy = self.policy_for(category)

        budget.checkpoint(RequestPhase.FETCHING.value)
        aggregation = await self.aggregator.aggregate(
            self.registry.providers(category), query, options, policy
        )
        budget.checkpoint(RequestPhase.MERGING.value)

        result_set = CachedResultSet(
            items=tuple(aggregation.items),
            provider_errors=tuple(aggregation.provider_errors),
            degraded=aggregation.all_failed,
        )

        # 전부 실패한 결과도 짧은 TTL로 캐시 (죽은 프로바이더 반복 호출 방지)
        ttl_class = TTLClass.SHORT if aggregation.all_failed else policy.ttl_class
        ttl = ttl_class.seconds(self.config)

        budget.checkpoint(RequestPhase.CACHE_WRITE.value)
        if not self.cache.put(key, result_set, ttl):
            logger.warning(f"[ENGINE] Cache write skipped: {category.value} key={key}")

        return result_set

    async def _coalesced_fetch(
        self,
        key: str,
        category: Category,
        query: str,
        options: SearchOptions,
        budget: BudgetManager,
    ) -> CachedResultSet:
        """같은 키의 동시 미스는 먼저 시작한 계산 하나를 공유"""
        inflight = self._inflight.get(key)
        if inflight is not None:
            logger.debug(f"[ENGINE] Joining in-flight fetch: key={key}")
            return await asyncio.shield(inflight)

        task = asyncio.ensure_future(self._fetch_and_store(key, category, query, options, budget))
        self._inflight[key] = task
        task.add_done_callback(lambda _: self._inflight.pop(key, None))
        return await asyncio.shield(task)

    def _cache_get(self, key: str) -> Optional[CachedResultSet]:
        cached = self.cache.get(key)
        if cached is None:
            return None
        if not isinstance(cached, CachedResultSet):
            logger.warning(f"[ENGINE] Unexpected cache payload type {type(cached).__name__}, ignoring: key={key}")
            self.cache.delete(key)
            return None
        return cached

    @staticmethod
    def _to_category(category: Any) -> Category:
        if isinstance(category, Category):
            return category
        try:
            return Category(str(category).lower())
        except ValueError:
            raise ValueError(f"Unknown category: {category!r}") from None
