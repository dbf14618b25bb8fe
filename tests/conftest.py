"""전역 테스트 설정

역할:
- 테스트 환경 구성
- 공통 Fake 주입 (시간, 대기, 프로바이더)

금지:
- 실제 네트워크 호출
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import pytest


# 프로젝트 루트를 경로에 추가
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture(scope="session", autouse=True)
def test_env() -> None:
    """테스트 환경 변수 설정 (세션 전역)"""
    os.environ["ENVIRONMENT"] = "test"
    os.environ["LOG_LEVEL"] = "INFO"


@dataclass
class FakeClock:
    """수동으로 진행시키는 단조 시간 소스"""

    current: float = 1000.0

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@dataclass
class FakeSleep:
    """실제로 대기하지 않고 요청된 지연만 기록 (시계도 함께 진행)"""

    clock: FakeClock
    delays: list[float] = field(default_factory=list)

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        self.clock.advance(seconds)


@dataclass
class FakeProvider:
    """프로바이더 어댑터 더미

    - items: 매 호출마다 반환할 결과 (pages가 있으면 페이지별 결과 우선)
    - error: 매 호출마다 던질 예외
    """

    items: list[Any] = field(default_factory=list)
    error: Optional[BaseException] = None
    pages: dict[int, list[Any]] = field(default_factory=dict)
    calls: list[tuple[str, Any]] = field(default_factory=list)

    async def __call__(self, query: str, options: Any) -> list[Any]:
        self.calls.append((query, options))
        if self.error is not None:
            raise self.error
        if self.pages:
            return list(self.pages.get(options.page, []))
        return list(self.items)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def pages_requested(self) -> list[int]:
        return [options.page for _, options in self.calls]


def make_items(prefix: str, count: int, start: int = 0, **fields: Any) -> list[dict[str, Any]]:
    """테스트용 결과 dict 생성 (URL은 prefix 기준으로 고유)"""
    return [
        {
            "title": f"{prefix} result {i}",
            "url": f"https://{prefix}.example.com/{i}",
            "snippet": f"snippet {i}",
            **fields,
        }
        for i in range(start, start + count)
    ]


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep(fake_clock: FakeClock) -> FakeSleep:
    return FakeSleep(clock=fake_clock)


@pytest.fixture
def provider_factory():
    """FakeProvider 생성 팩토리"""

    def _factory(
        items: Optional[list[Any]] = None,
        error: Optional[BaseException] = None,
        pages: Optional[dict[int, list[Any]]] = None,
    ) -> FakeProvider:
        return FakeProvider(items=list(items or []), error=error, pages=dict(pages or {}))

    return _factory


@pytest.fixture
def items_factory():
    return make_items


@pytest.fixture
def retry_executor(fake_clock: FakeClock, fake_sleep: FakeSleep):
    """기본 정책(5회, 20초, 1초 기본 지연) + 가짜 시계/대기"""
    from metasearch.engine.retry import RetryExecutor, RetryPolicy

    return RetryExecutor(
        RetryPolicy(max_attempts=5, timeout_s=20.0, base_delay_s=1.0),
        clock=fake_clock,
        sleep=fake_sleep,
    )
