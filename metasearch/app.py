"""엔진 팩토리 - 프로세스 시작 시 한 번 호출"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Optional, Union

from metasearch.core.clock import Clock
from metasearch.core.config import Settings, settings as default_settings
from metasearch.core.logging import logger
from metasearch.schemas.result_schema import Category
from metasearch.engine import (
    AggregationEngine,
    CategoryAggregator,
    ProviderRegistry,
    RetryExecutor,
    RetryPolicy,
    ScoreJitter,
    load_policies,
)
from metasearch.providers.http_client import shutdown_shared_http_client
from metasearch.services.impl.cache_store import CacheStore


def create_engine(
    registry: ProviderRegistry,
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
    categories: Optional[Iterable[Union[Category, str]]] = None,
) -> AggregationEngine:
    """
    AggregationEngine 생성 (Factory Pattern)

    캐시 스토어는 여기서 정확히 하나만 만들어 엔진에 넘깁니다.

    Args:
        registry: 프로바이더 레지스트리
        settings: 설정 (기본값: 전역 settings)
        clock: 시간 소스 (테스트에서 주입)
        categories: 반드시 서비스해야 하는 카테고리 (기본값: 등록된 카테고리)

    Returns:
        AggregationEngine 인스턴스

    Raises:
        NoProvidersRegisteredException: 등록된 프로바이더가 없거나 categories 중 빈 카테고리가 있는 경우
        ConfigurationException: 카테고리 정책이 잘못된 경우
    """
    config = settings or default_settings

    categories = list(categories) if categories is not None else None
    registry.validate(categories)
    policies = load_policies()

    cache = CacheStore(
        max_size=config.cache_max_size,
        default_ttl=config.cache_ttl_medium_s,
        eviction_ratio=config.cache_eviction_ratio,
        clock=clock,
    )
    executor = RetryExecutor(
        RetryPolicy(
            max_attempts=config.provider_max_attempts,
            timeout_s=config.provider_timeout_s,
            base_delay_s=config.retry_base_delay_s,
        ),
        clock=clock,
    )
    aggregator = CategoryAggregator(
        executor=executor,
        jitter=ScoreJitter(seed=config.score_jitter_seed),
        config=config,
    )

    engine = AggregationEngine(
        registry,
        cache,
        aggregator=aggregator,
        policies=policies,
        config=config,
        clock=clock,
        categories=categories,
    )
    logger.info(
        f"Engine created: categories={[c.value for c in registry.categories()]}, "
        f"cache_max_size={config.cache_max_size}, coalesce={engine.coalesce}"
    )
    return engine


@asynccontextmanager
async def engine_lifespan(
    registry: ProviderRegistry,
    settings: Optional[Settings] = None,
    categories: Optional[Iterable[Union[Category, str]]] = None,
) -> AsyncIterator[AggregationEngine]:
    """엔진 생명주기 (종료 시 공유 HTTP 세션 정리)"""
    logger.info("Starting metasearch engine...")
    engine = create_engine(registry, settings, categories=categories)
    try:
        yield engine
    finally:
        logger.info("Shutting down metasearch engine...")
        await shutdown_shared_http_client()
