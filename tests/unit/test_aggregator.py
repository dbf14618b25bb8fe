"""Category Aggregator 유닛 테스트

네트워크 없이 FakeProvider로 부분 실패 격리, 병합, 백필, 페이지네이션을 검증합니다.
"""
import asyncio
import time

import pytest

from metasearch.core.config import Settings
from metasearch.core.exceptions import HttpStatusException, ParsingException
from metasearch.engine.aggregator import CategoryAggregator
from metasearch.engine.categories import DEFAULT_POLICIES, AggregationMode, CategoryPolicy
from metasearch.engine.providers import ProviderRegistry
from metasearch.engine.ranking import ScoreJitter
from metasearch.engine.retry import RetryExecutor, RetryPolicy
from metasearch.schemas import Category, ResultItem, SearchOptions


@pytest.fixture
def aggregator(retry_executor):
    config = Settings(backfill_provider_count=3, backfill_pages=2, backfill_max_calls=6)
    return CategoryAggregator(executor=retry_executor, config=config)


@pytest.fixture
def web_policy():
    return CategoryPolicy(Category.WEB, page_size=100, result_floor=100, backfill=False)


def _registry(category=Category.WEB, **providers):
    registry = ProviderRegistry()
    for name, (weight, call, paging) in providers.items():
        registry.register(category, name, weight, call, supports_paging=paging)
    return registry.providers(category)


class TestPartialFailureIsolation:
    """프로바이더 하나의 실패가 다른 프로바이더에 영향을 주지 않음"""

    @pytest.mark.asyncio
    async def test_one_failing_provider(self, aggregator, web_policy, provider_factory, items_factory):
        """A, C 결과는 병합되고 B 오류는 정확히 1개"""
        a = provider_factory(items_factory("a", 5))
        b = provider_factory(error=HttpStatusException(500))
        c = provider_factory(items_factory("c", 5))
        providers = _registry(A=(3.0, a, False), B=(2.0, b, False), C=(1.0, c, False))

        result = await aggregator.collect(providers, "rust async", SearchOptions(), web_policy)

        assert {item.provider_name for item in result.items} == {"A", "C"}
        assert len(result.items) == 10
        assert len(result.provider_errors) == 1
        assert result.provider_errors[0].provider == "B"
        assert result.provider_errors[0].error_code == "RETRY_EXHAUSTED"
        assert result.providers_succeeded == 2
        assert result.all_failed is False
        # B는 재시도 예산만큼 호출됨
        assert b.call_count == 5

    @pytest.mark.asyncio
    async def test_empty_result_is_not_error(self, aggregator, web_policy, provider_factory, items_factory):
        """0건 반환은 실패가 아님"""
        empty = provider_factory([])
        full = provider_factory(items_factory("full", 3))
        providers = _registry(Empty=(2.0, empty, False), Full=(1.0, full, False))

        result = await aggregator.collect(providers, "q", SearchOptions(), web_policy)

        assert result.provider_errors == []
        assert result.providers_succeeded == 2
        assert len(result.items) == 3

    @pytest.mark.asyncio
    async def test_all_providers_fail(self, aggregator, web_policy, provider_factory):
        """전부 실패해도 예외 없이 빈 결과 + 오류 목록"""
        providers = _registry(
            A=(1.0, provider_factory(error=HttpStatusException(403)), False),
            B=(1.0, provider_factory(error=ValueError("adapter bug")), False),
        )

        result = await aggregator.collect(providers, "q", SearchOptions(), web_policy)

        assert result.items == []
        assert result.all_failed is True
        assert [e.provider for e in result.provider_errors] == ["A", "B"]
        assert result.provider_errors[0].error_code == "HTTP_STATUS"
        assert result.provider_errors[1].message == "adapter bug"

    @pytest.mark.asyncio
    async def test_no_providers_returns_empty(self, aggregator, web_policy):
        result = await aggregator.collect([], "q", SearchOptions(), web_policy)

        assert result.items == []
        assert result.provider_errors == []


class TestNormalization:
    """어댑터 반환값 정규화"""

    @pytest.mark.asyncio
    async def test_dict_aliases_and_extras(self, aggregator, web_policy, provider_factory):
        provider = provider_factory([
            {"link": "https://www.python.org/", "name": "Python", "description": "Official site", "favicon": "x.ico"},
            {"title": "no url"},
        ])
        providers = _registry(Docs=(1.0, provider, False))

        result = await aggregator.collect(providers, "python", SearchOptions(), web_policy)

        assert len(result.items) == 1
        item = result.items[0]
        assert item.url == "https://www.python.org/"
        assert item.title == "Python"
        assert item.snippet == "Official site"
        assert item.display_domain == "python.org"
        assert item.extras == {"favicon": "x.ico"}
        assert item.category == Category.WEB

    @pytest.mark.asyncio
    async def test_result_items_passed_through(self, aggregator, web_policy, provider_factory):
        item = ResultItem(category=Category.WEB, url="https://a.example.com", title="A")
        providers = _registry(P=(2.0, provider_factory([item]), False))

        result = await aggregator.collect(providers, "q", SearchOptions(), web_policy)

        assert result.items[0].url == "https://a.example.com"
        assert result.items[0].weight_score == 2.0

    @pytest.mark.asyncio
    async def test_non_list_return_is_parse_error(self, aggregator, web_policy, provider_factory):
        """목록이 아닌 반환값은 재시도 없는 파싱 오류"""

        class WrongShape:
            calls = 0

            async def __call__(self, query, options):
                WrongShape.calls += 1
                return "<html>captcha</html>"

        providers = _registry(Bad=(1.0, WrongShape(), False))

        result = await aggregator.collect(providers, "q", SearchOptions(), web_policy)

        assert result.provider_errors[0].error_code == "PARSING_ERROR"
        assert WrongShape.calls == 1

    @pytest.mark.asyncio
    async def test_parsing_exception_from_adapter_not_retried(self, aggregator, web_policy, provider_factory):
        provider = provider_factory(error=ParsingException("selector changed"))
        providers = _registry(P=(1.0, provider, False))

        result = await aggregator.collect(providers, "q", SearchOptions(), web_policy)

        assert provider.call_count == 1
        assert result.provider_errors[0].error_code == "PARSING_ERROR"


class TestPagination:
    """병합 후 페이지 슬라이스"""

    @pytest.mark.asyncio
    async def test_pages_sliced_from_merged_list(self, aggregator, web_policy, provider_factory, items_factory):
        provider = provider_factory(items_factory("big", 250))
        providers = _registry(Big=(1.0, provider, False))

        page3 = await aggregator.collect(providers, "q", SearchOptions(page=3), web_policy)
        page4 = await aggregator.collect(providers, "q", SearchOptions(page=4), web_policy)

        assert len(page3.items) == 50
        assert page3.items[0].url == "https://big.example.com/200"
        assert page3.total_merged == 250
        assert page4.items == []
        assert page4.provider_errors == []

    @pytest.mark.asyncio
    async def test_providers_asked_for_first_page(self, aggregator, web_policy, provider_factory, items_factory):
        provider = provider_factory(items_factory("p", 10))
        providers = _registry(P=(1.0, provider, False))

        await aggregator.collect(providers, "q", SearchOptions(page=2, safe_search="strict"), web_policy)

        query, options = provider.calls[0]
        assert query == "q"
        assert options.page == 1
        assert options.safe_search.value == "strict"


class TestBackfill:
    """결과가 목표 수에 못 미칠 때 추가 페이지 요청"""

    @pytest.mark.asyncio
    async def test_backfill_until_floor(self, aggregator, provider_factory, items_factory):
        policy = CategoryPolicy(Category.WEB, page_size=100, result_floor=100, backfill=True)
        ddg = provider_factory(pages={
            1: items_factory("ddg", 40),
            2: items_factory("ddg", 40, start=40),
            3: items_factory("ddg", 40, start=80),
        })
        mojeek = provider_factory(items_factory("mojeek", 30))
        providers = _registry(DuckDuckGo=(3.0, ddg, True), Mojeek=(1.0, mojeek, False))

        result = await aggregator.collect(providers, "q", SearchOptions(), policy)

        # 1페이지 70개 → 2페이지로 110개 도달 → 3페이지는 요청하지 않음
        assert ddg.pages_requested == [1, 2]
        assert mojeek.pages_requested == [1]
        assert result.backfill_calls == 1
        assert result.total_merged == 110
        assert len(result.items) == 100

    @pytest.mark.asyncio
    async def test_backfill_uses_top_weighted_paging_providers(self, retry_executor, provider_factory, items_factory):
        config = Settings(backfill_provider_count=2, backfill_pages=2, backfill_max_calls=6)
        aggregator = CategoryAggregator(executor=retry_executor, config=config)
        policy = CategoryPolicy(Category.WEB, page_size=100, result_floor=100, backfill=True)

        low = provider_factory(items_factory("low", 5))
        mid = provider_factory(items_factory("mid", 5))
        high = provider_factory(items_factory("high", 5))
        providers = _registry(Low=(1.0, low, True), Mid=(2.0, mid, True), High=(3.0, high, True))

        await aggregator.collect(providers, "q", SearchOptions(), policy)

        assert high.pages_requested == [1, 2, 3]
        assert mid.pages_requested == [1, 2, 3]
        assert low.pages_requested == [1]

    @pytest.mark.asyncio
    async def test_backfill_call_budget(self, retry_executor, provider_factory, items_factory):
        config = Settings(backfill_provider_count=3, backfill_pages=2, backfill_max_calls=3)
        aggregator = CategoryAggregator(executor=retry_executor, config=config)
        policy = CategoryPolicy(Category.WEB, page_size=100, result_floor=100, backfill=True)

        a = provider_factory(items_factory("a", 1))
        b = provider_factory(items_factory("b", 1))
        c = provider_factory(items_factory("c", 1))
        providers = _registry(A=(3.0, a, True), B=(3.0, b, True), C=(3.0, c, True))

        result = await aggregator.collect(providers, "q", SearchOptions(), policy)

        assert result.backfill_calls == 3
        assert a.call_count + b.call_count + c.call_count == 6

    @pytest.mark.asyncio
    async def test_backfill_skips_failed_providers_and_hides_its_errors(
        self, aggregator, provider_factory, items_factory
    ):
        policy = CategoryPolicy(Category.WEB, page_size=100, result_floor=100, backfill=True)
        broken = provider_factory(error=HttpStatusException(404))
        flaky = provider_factory(pages={1: items_factory("flaky", 10)})
        async def flaky_call(query, options):
            if options.page == 2:
                flaky.calls.append((query, options))
                raise HttpStatusException(404)
            return await flaky(query, options)

        providers = _registry(Broken=(3.0, broken, True), Flaky=(2.0, flaky_call, True))

        result = await aggregator.collect(providers, "q", SearchOptions(), policy)

        assert broken.call_count == 1
        assert [e.provider for e in result.provider_errors] == ["Broken"]
        assert len(result.items) == 10

    @pytest.mark.asyncio
    async def test_backfill_disabled_by_policy(self, aggregator, provider_factory, items_factory):
        provider = provider_factory(items_factory("img", 10))
        providers = _registry(Category.IMAGES, Img=(2.0, provider, True))

        await aggregator.collect(providers, "q", SearchOptions(), DEFAULT_POLICIES[Category.IMAGES])

        assert provider.pages_requested == [1]


class TestJitterPolicy:
    """지터는 정책이 켜진 카테고리에만 적용"""

    @pytest.mark.asyncio
    async def test_jitter_applied_only_when_enabled(self, retry_executor, provider_factory, items_factory):
        aggregator = CategoryAggregator(executor=retry_executor, jitter=ScoreJitter(seed=3))
        provider = provider_factory(items_factory("p", 20))

        web = await aggregator.collect(
            _registry(P=(2.0, provider, False)), "q", SearchOptions(), DEFAULT_POLICIES[Category.WEB]
        )
        news = await aggregator.collect(
            _registry(Category.NEWS, P=(2.0, provider, False)), "q", SearchOptions(), DEFAULT_POLICIES[Category.NEWS]
        )

        assert {item.weight_score for item in web.items} == {2.0}
        assert all(1.0 <= item.weight_score <= 2.0 for item in news.items)
        assert len({item.weight_score for item in news.items}) > 1


class TestFirstSuccess:
    """순차 시도, 첫 성공 채택 (날씨)"""

    @pytest.fixture
    def weather_policy(self):
        policy = DEFAULT_POLICIES[Category.WEATHER]
        assert policy.mode == AggregationMode.FIRST_SUCCESS
        return policy

    @pytest.mark.asyncio
    async def test_first_success_wins(self, aggregator, weather_policy, provider_factory):
        first = provider_factory(error=HttpStatusException(404))
        second = provider_factory([{"url": "https://wttr.in/Seoul", "title": "Seoul", "temp_c": 21}])
        third = provider_factory([{"url": "https://weather.gov/x", "title": "x"}])
        providers = _registry(Category.WEATHER, WttrIn=(1.0, first, False), OpenMeteo=(1.0, second, False),
                              WeatherGov=(1.0, third, False))

        result = await aggregator.aggregate(providers, "seoul", SearchOptions(), weather_policy)

        assert len(result.items) == 1
        assert result.items[0].provider_name == "OpenMeteo"
        assert result.items[0].extras == {"temp_c": 21}
        assert [e.provider for e in result.provider_errors] == ["WttrIn"]
        assert third.call_count == 0

    @pytest.mark.asyncio
    async def test_empty_result_falls_through(self, aggregator, weather_policy, provider_factory):
        empty = provider_factory([])
        second = provider_factory([{"url": "https://wttr.in/Busan"}])
        providers = _registry(Category.WEATHER, A=(1.0, empty, False), B=(1.0, second, False))

        result = await aggregator.collect_first_success(providers, "busan", SearchOptions(), weather_policy)

        assert result.items[0].provider_name == "B"
        assert result.provider_errors == []

    @pytest.mark.asyncio
    async def test_all_fail(self, aggregator, weather_policy, provider_factory):
        providers = _registry(
            Category.WEATHER,
            A=(1.0, provider_factory(error=HttpStatusException(404)), False),
            B=(1.0, provider_factory(error=ParsingException("bad")), False),
        )

        result = await aggregator.collect_first_success(providers, "x", SearchOptions(), weather_policy)

        assert result.items == []
        assert result.all_failed is True
        assert len(result.provider_errors) == 2


class TestConcurrentFanOut:
    """프로바이더 동시 호출과 타임아웃 격리 (실제 시간 사용)"""

    @pytest.fixture
    def timed_aggregator(self):
        executor = RetryExecutor(RetryPolicy(max_attempts=3, timeout_s=0.5, base_delay_s=0.0))
        return CategoryAggregator(executor=executor, config=Settings())

    @staticmethod
    def _slow_provider(prefix: str, delay: float, started: list):
        async def call(query, options):
            started.append(prefix)
            await asyncio.sleep(delay)
            return [{"url": f"https://{prefix}.example.com/{i}", "title": f"{prefix} {i}"} for i in range(3)]

        return call

    @pytest.mark.asyncio
    async def test_hanging_provider_cancelled_without_siblings(self, timed_aggregator, web_policy):
        """멈춘 프로바이더만 전체 타임아웃으로 취소되고 나머지 결과는 유지"""
        started: list = []
        cancelled = asyncio.Event()

        async def hang(query, options):
            started.append("hang")
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        providers = _registry(
            Hang=(3.0, hang, False),
            A=(2.0, self._slow_provider("a", 0.2, started), False),
            B=(1.0, self._slow_provider("b", 0.2, started), False),
        )

        begin = time.monotonic()
        result = await timed_aggregator.collect(providers, "python", SearchOptions(), web_policy)
        elapsed = time.monotonic() - begin

        assert {item.provider_name for item in result.items} == {"A", "B"}
        assert len(result.items) == 6
        assert [(e.provider, e.error_code) for e in result.provider_errors] == [("Hang", "PROVIDER_TIMEOUT")]
        assert cancelled.is_set()
        assert sorted(started) == ["a", "b", "hang"]
        # 순차 호출이면 0.5 + 0.2 + 0.2 = 0.9초 이상
        assert 0.45 <= elapsed < 0.85

    @pytest.mark.asyncio
    async def test_providers_run_concurrently(self, timed_aggregator, web_policy):
        started: list = []
        providers = _registry(
            A=(3.0, self._slow_provider("a", 0.2, started), False),
            B=(2.0, self._slow_provider("b", 0.2, started), False),
            C=(1.0, self._slow_provider("c", 0.2, started), False),
        )

        begin = time.monotonic()
        result = await timed_aggregator.collect(providers, "python", SearchOptions(), web_policy)
        elapsed = time.monotonic() - begin

        assert result.provider_errors == []
        assert len(result.items) == 9
        assert elapsed < 0.45

    @pytest.mark.asyncio
    async def test_self_cancelling_adapter_is_provider_failure(self, aggregator, web_policy, provider_factory, items_factory):
        """어댑터가 스스로 CancelledError를 던져도 집계는 계속되고 오류로 기록됨"""
        calls = 0

        async def cancels_itself(query, options):
            nonlocal calls
            calls += 1
            raise asyncio.CancelledError()

        healthy = provider_factory(items_factory("ok", 4))
        providers = _registry(Broken=(3.0, cancels_itself, False), Ok=(1.0, healthy, False))

        result = await aggregator.collect(providers, "python", SearchOptions(), web_policy)

        assert [item.provider_name for item in result.items] == ["Ok"] * 4
        assert [(e.provider, e.error_code) for e in result.provider_errors] == [("Broken", "PROVIDER_CANCELLED")]
        assert calls == 1
