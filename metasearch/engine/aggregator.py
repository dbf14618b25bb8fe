"""Category Aggregator - Provider Fan-out with Partial Failure Isolation

카테고리 하나에 등록된 모든 프로바이더를 동시에 호출하고,
실패한 프로바이더는 오류로 기록한 뒤 나머지 결과만 병합합니다.

- 프로바이더 하나의 실패가 다른 프로바이더를 막거나 취소하지 않음
- 집계기 자체는 절대 예외를 던지지 않음 (전부 실패해도 빈 결과 + 오류 목록)
"""

import asyncio
from collections.abc import Mapping
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from metasearch.core.config import Settings, settings as default_settings
from metasearch.core.exceptions import MetaSearchException, ParsingException
from metasearch.core.logging import logger, sanitize_for_log
from metasearch.schemas.result_schema import Category, ProviderError, ResultItem, SearchOptions

from .categories import AggregationMode, CategoryPolicy
from .providers import ProviderSpec
from .ranking import Jitter, NoJitter, merge_outcomes, paginate
from .result import AggregationResult, ProviderOutcome
from .retry import RetryExecutor


class CategoryAggregator:
    """카테고리 집계기

    Usage:
        aggregator = CategoryAggregator(RetryExecutor(), jitter=ScoreJitter(seed=42))
        result = await aggregator.collect(registry.providers(Category.WEB), "rust async", options, policy)

        result.items            # 요청 페이지 결과
        result.provider_errors  # 실패한 프로바이더
    """

    def __init__(
        self,
        executor: Optional[RetryExecutor] = None,
        jitter: Optional[Jitter] = None,
        config: Optional[Settings] = None,
    ):
        """
        Args:
            executor: 프로바이더 호출마다 사용할 재시도 실행자
            jitter: jitter 정책이 켜진 카테고리에 적용할 가중치 배수 공급자
            config: 백필 설정 (기본값: 전역 settings)
        """
        self.executor = executor or RetryExecutor()
        self.jitter: Jitter = jitter or NoJitter()
        self.config = config or default_settings

    async def aggregate(
        self,
        providers: Sequence[ProviderSpec],
        query: str,
        options: SearchOptions,
        policy: CategoryPolicy,
    ) -> AggregationResult:
        """정책의 집계 방식에 따라 collect / collect_first_success 호출"""
        if policy.mode == AggregationMode.FIRST_SUCCESS:
            return await self.collect_first_success(providers, query, options, policy)
        return await self.collect(providers, query, options, policy)

    async def collect(
        self,
        providers: Sequence[ProviderSpec],
        query: str,
        options: SearchOptions,
        policy: Optional[CategoryPolicy] = None,
    ) -> AggregationResult:
        """전체 프로바이더 병렬 호출 → 병합 → (백필) → 페이지 슬라이스

        프로바이더에는 1페이지부터 요청하고, 병합된 전체 목록에서 options.page를 잘라냅니다.
        목표 수(max(result_floor, page * page_size))에 못 미치면 가중치 상위
        프로바이더에 다음 페이지를 추가 요청합니다.

        Args:
            providers: 등록 순서대로의 프로바이더
            query: 정규화된 검색어
            options: 검색 옵션
            policy: 카테고리 정책 (기본값: 설정 기반 web 정책)

        Returns:
            AggregationResult: 결과 + 프로바이더별 오류
        """
        policy = policy or self._default_policy()
        safe_query = sanitize_for_log(query)

        if not providers:
            logger.warning(f"[AGGREGATOR] No providers for {policy.category.value}: query='{safe_query}'")
            return AggregationResult()

        jitter = self.jitter if policy.jitter else NoJitter()
        base_options = options.with_page(1)

        outcomes = await self._call_all(
            [(index, spec, base_options, 0) for index, spec in enumerate(providers)],
            query,
            policy.category,
        )

        provider_errors = [outcome.error for outcome in outcomes if outcome.error is not None]
        succeeded = [outcome for outcome in outcomes if outcome.ok]
        merged = merge_outcomes(succeeded, jitter)

        target = max(policy.result_floor, options.page * policy.page_size)
        backfill_calls = 0
        if policy.backfill and succeeded and len(merged) < target:
            merged, backfill_calls = await self._backfill(
                providers, succeeded, merged, query, options, policy, jitter, target
            )

        items = paginate(merged, options.page, policy.page_size)

        logger.info(
            f"[AGGREGATOR] {policy.category.value} complete: query='{safe_query}', "
            f"page={options.page}, items={len(items)}, merged={len(merged)}, "
            f"ok={len(succeeded)}/{len(outcomes)}, backfill_calls={backfill_calls}"
        )
        if not succeeded:
            logger.error(
                f"[AGGREGATOR] All {policy.category.value} providers failed: "
                f"{[e.provider for e in provider_errors]}"
            )

        return AggregationResult(
            items=items,
            provider_errors=provider_errors,
            total_merged=len(merged),
            providers_succeeded=len(succeeded),
            backfill_calls=backfill_calls,
        )

    async def collect_first_success(
        self,
        providers: Sequence[ProviderSpec],
        query: str,
        options: SearchOptions,
        policy: Optional[CategoryPolicy] = None,
    ) -> AggregationResult:
        """등록 순서대로 하나씩 시도, 결과가 1개 이상인 첫 프로바이더 채택 (날씨)

        앞선 프로바이더의 실패는 모두 provider_errors에 남습니다.
        """
        policy = policy or self._default_policy()
        provider_errors: list[ProviderError] = []
        succeeded = 0

        for index, spec in enumerate(providers):
            outcome = await self._call_provider(index, spec, query, options, 0, policy.category)
            if outcome.error is not None:
                provider_errors.append(outcome.error)
                continue

            succeeded += 1
            if not outcome.items:
                logger.info(f"[AGGREGATOR] {spec.name} returned no results, trying next provider")
                continue

            merged = merge_outcomes([outcome])
            logger.info(f"[AGGREGATOR] {policy.category.value} served by {spec.name}")
            return AggregationResult(
                items=merged[:policy.page_size],
                provider_errors=provider_errors,
                total_merged=len(merged),
                providers_succeeded=succeeded,
            )

        logger.error(
            f"[AGGREGATOR] No {policy.category.value} provider produced results: "
            f"query='{sanitize_for_log(query)}', errors={len(provider_errors)}"
        )
        return AggregationResult(provider_errors=provider_errors, providers_succeeded=succeeded)

    async def _backfill(
        self,
        providers: Sequence[ProviderSpec],
        succeeded: list[ProviderOutcome],
        merged: list[ResultItem],
        query: str,
        options: SearchOptions,
        policy: CategoryPolicy,
        jitter: Jitter,
        target: int,
    ) -> tuple[list[ResultItem], int]:
        """가중치 상위 프로바이더의 다음 페이지로 결과 보충

        페이지 단위로 라운드를 돌며 목표 수 도달 또는 호출 예산 소진 시 중단합니다.
        백필 실패는 로그만 남기고 provider_errors에는 넣지 않습니다.

        Returns:
            (병합 결과, 수행한 백필 호출 수)
        """
        ok_names = {outcome.provider_name for outcome in succeeded}
        candidates = [
            (index, spec) for index, spec in enumerate(providers)
            if spec.supports_paging and spec.name in ok_names
        ]
        # 가중치 내림차순, 동점은 등록 순서
        candidates.sort(key=lambda pair: (-pair[1].weight, pair[0]))
        candidates = candidates[:self.config.backfill_provider_count]

        if not candidates:
            return merged, 0

        logger.info(
            f"[AGGREGATOR] Only {len(merged)}/{target} results, backfilling from "
            f"{[spec.name for _, spec in candidates]}"
        )

        outcomes = list(succeeded)
        calls = 0
        for extra_page in range(1, self.config.backfill_pages + 1):
            if len(merged) >= target or calls >= self.config.backfill_max_calls:
                break

            batch = []
            for index, spec in candidates:
                if calls >= self.config.backfill_max_calls:
                    break
                batch.append((index, spec, options.with_page(1 + extra_page), extra_page))
                calls += 1

            for outcome in await self._call_all(batch, query, policy.category):
                if outcome.error is not None:
                    logger.info(
                        f"[AGGREGATOR] Backfill {outcome.provider_name} page {1 + extra_page} "
                        f"failed: {outcome.error.message}"
                    )
                    continue
                outcomes.append(outcome)

            merged = merge_outcomes(outcomes, jitter)

        return merged, calls

    async def _call_all(
        self,
        calls: list[tuple[int, ProviderSpec, SearchOptions, int]],
        query: str,
        category: Category,
    ) -> list[ProviderOutcome]:
        """프로바이더 동시 호출. 개별 실패는 ProviderOutcome.error로 변환됨"""
        return list(await asyncio.gather(*(
            self._call_provider(index, spec, query, call_options, page_offset, category)
            for index, spec, call_options, page_offset in calls
        )))

    async def _call_provider(
        self,
        index: int,
        spec: ProviderSpec,
        query: str,
        options: SearchOptions,
        page_offset: int,
        category: Category,
    ) -> ProviderOutcome:
        """프로바이더 1회 호출 (재시도 포함). 예외를 던지지 않음"""
        try:
            raw = await self.executor.execute(lambda: spec.call(query, options), label=spec.name)
            items = self._normalize(spec.name, raw, category)
        except Exception as e:
            error = ProviderError(
                provider=spec.name,
                message=self._describe(e),
                error_code=getattr(e, "error_code", None) or "PROVIDER_ERROR",
            )
            logger.warning(f"[AGGREGATOR] ✗ {spec.name} failed: {error.message}")
            return ProviderOutcome.failure(spec.name, spec.weight, error, index, page_offset)

        if items:
            logger.debug(f"[AGGREGATOR] ✓ {spec.name} (page {options.page}): {len(items)} results")
        else:
            logger.info(f"[AGGREGATOR] {spec.name} (page {options.page}): no results")
        return ProviderOutcome.success(spec.name, spec.weight, items, index, page_offset)

    @staticmethod
    def _normalize(provider: str, raw: Any, category: Category) -> list[ResultItem]:
        """어댑터 반환값을 ResultItem 목록으로 변환

        URL이 없거나 검증에 실패한 항목은 버립니다.

        Raises:
            ParsingException: 반환값이 목록이 아닌 경우
        """
        if raw is None:
            return []
        if isinstance(raw, (str, bytes, Mapping)) or not isinstance(raw, Sequence):
            raise ParsingException(
                f"adapter returned {type(raw).__name__}, expected a list", provider=provider
            )

        items: list[ResultItem] = []
        dropped = 0
        for entry in raw:
            if isinstance(entry, ResultItem):
                items.append(entry if entry.category == category else entry.model_copy(update={"category": category}))
                continue
            if not isinstance(entry, Mapping):
                dropped += 1
                continue
            try:
                item = ResultItem.from_provider(entry, category)
            except ValidationError:
                item = None
            if item is None:
                dropped += 1
                continue
            items.append(item)

        if dropped:
            logger.debug(f"[AGGREGATOR] {provider}: dropped {dropped} malformed entries")
        return items

    @staticmethod
    def _describe(error: BaseException) -> str:
        if isinstance(error, MetaSearchException):
            return error.message
        return str(error) or type(error).__name__

    def _default_policy(self) -> CategoryPolicy:
        return CategoryPolicy(
            category=Category.WEB,
            page_size=self.config.results_per_page,
            result_floor=self.config.result_floor,
            backfill=False,
        )
