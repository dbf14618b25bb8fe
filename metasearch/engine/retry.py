"""Retry/Backoff Executor

단일 아웃바운드 호출을 감싸는 실행자입니다.

- 시도 횟수 제한 (기본 5회)
- 호출 시작 시점에 설정되는 전체 타임아웃 (기본 20초, 시도별 아님)
  전체 타임아웃이 지나면 진행 중인 시도는 취소되고 더 이상 시도하지 않습니다.
- 429/5xx/전송 오류는 재시도, 그 외는 즉시 종료
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from metasearch.core.clock import Clock, MonotonicClock
from metasearch.core.config import settings
from metasearch.core.exceptions import ProviderException, ProviderTimeoutException, RetryExhaustedException
from metasearch.core.logging import logger

from .budget import BudgetConfig, BudgetManager
from .strategy import RetryStrategy

T = TypeVar("T")

_DEADLINE = object()


@dataclass
class RetryPolicy:
    """재시도 정책"""

    max_attempts: int = 5
    timeout_s: float = 20.0  # 호출 전체 예산 (초)
    base_delay_s: float = 1.0

    def __post_init__(self):
        if self.max_attempts <= 0:
            raise ValueError(f"max_attempts must be positive (got {self.max_attempts})")
        if self.timeout_s <= 0:
            raise ValueError(f"timeout_s must be positive (got {self.timeout_s})")
        if self.base_delay_s < 0:
            raise ValueError(f"base_delay_s must be >= 0 (got {self.base_delay_s})")

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.provider_max_attempts,
            timeout_s=settings.provider_timeout_s,
            base_delay_s=settings.retry_base_delay_s,
        )


class RetryExecutor:
    """재시도/백오프 실행자

    Usage:
        executor = RetryExecutor(RetryPolicy(max_attempts=5, timeout_s=20.0))
        data = await executor.execute(lambda: client.fetch(url), label="duckduckgo")
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        strategy: Optional[RetryStrategy] = None,
        clock: Optional[Clock] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        """
        Args:
            policy: 재시도 정책 (기본값: settings 기반)
            strategy: 재시도 판단 전략 (기본값: policy.base_delay_s 사용)
            clock: 전체 예산 측정용 시간 소스
            sleep: 시도 사이 대기 함수 (테스트에서 주입)
        """
        self.policy = policy or RetryPolicy.from_settings()
        self.strategy = strategy or RetryStrategy(base_delay_s=self.policy.base_delay_s)
        self.clock: Clock = clock or MonotonicClock()
        self._sleep = sleep or asyncio.sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: Optional[int] = None,
        timeout: Optional[float] = None,
        label: str = "operation",
    ) -> T:
        """재시도 정책에 따라 operation 실행

        Args:
            operation: 매 시도마다 새 awaitable을 만드는 팩토리
            max_attempts: 최대 시도 횟수 (기본값: policy.max_attempts)
            timeout: 전체 타임아웃 (초, 기본값: policy.timeout_s)
            label: 로깅용 이름 (프로바이더명 등)

        Returns:
            operation 결과

        Raises:
            ProviderTimeoutException: 전체 타임아웃 초과
            RetryExhaustedException: 시도 횟수 소진 (마지막 오류 보존)
            Exception: 재시도 대상이 아닌 오류는 그대로 전파
        """
        attempts_allowed = max_attempts if max_attempts is not None else self.policy.max_attempts
        total_timeout = timeout if timeout is not None else self.policy.timeout_s
        if attempts_allowed <= 0:
            raise ValueError(f"max_attempts must be positive (got {attempts_allowed})")

        budget = BudgetManager(BudgetConfig(total_budget=total_timeout), clock=self.clock)
        budget.start()

        last_error: Optional[Exception] = None

        for attempt in range(attempts_allowed):
            remaining = budget.remaining()
            if remaining <= 0:
                raise self._deadline_error(label, total_timeout, attempt, last_error)

            try:
                result = await self._run_attempt(operation, remaining)
            except Exception as e:
                last_error = e

                if budget.is_exhausted():
                    raise self._deadline_error(label, total_timeout, attempt + 1, e) from e

                if not self.strategy.is_retryable(e):
                    logger.info(
                        f"[RETRY] {label}: non-retryable failure on attempt {attempt + 1}: "
                        f"{type(e).__name__}: {e}"
                    )
                    raise

                if attempt == attempts_allowed - 1:
                    break

                delay = self.strategy.backoff_delay(e, attempt)
                if delay >= budget.remaining():
                    logger.warning(
                        f"[RETRY] {label}: backoff {delay:.2f}s exceeds remaining budget "
                        f"{budget.remaining():.2f}s, giving up"
                    )
                    raise self._deadline_error(label, total_timeout, attempt + 1, e) from e

                logger.warning(
                    f"[RETRY] {label}: attempt {attempt + 1}/{attempts_allowed} failed: "
                    f"{type(e).__name__}: {e}, retrying in {delay:.2f}s"
                )
                await self._sleep(delay)
                continue

            if result is _DEADLINE:
                logger.warning(f"[RETRY] {label}: overall timeout {total_timeout}s fired during attempt {attempt + 1}")
                raise self._deadline_error(label, total_timeout, attempt + 1, last_error)

            if attempt > 0:
                logger.info(f"[RETRY] {label}: succeeded on attempt {attempt + 1}/{attempts_allowed}")
            return result

        assert last_error is not None
        logger.error(f"[RETRY] {label}: all {attempts_allowed} attempts failed. Last error: {last_error}")
        raise RetryExhaustedException(attempts_allowed, last_error, provider=label) from last_error

    @staticmethod
    async def _run_attempt(operation: Callable[[], Awaitable[T]], remaining: float) -> Any:
        """시도 1회 실행. 남은 예산 안에 끝나지 않으면 취소하고 _DEADLINE 반환"""
        task = asyncio.ensure_future(operation())
        try:
            done, _ = await asyncio.wait({task}, timeout=remaining)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            # 바깥 취소는 위의 asyncio.wait에서 전파됨. 여기서 취소된 작업은 어댑터가 스스로 취소한 경우
            if task.cancelled():
                raise ProviderException("adapter call was cancelled", error_code="PROVIDER_CANCELLED")
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return _DEADLINE

    @staticmethod
    def _deadline_error(
        label: str, timeout_s: float, attempts: int, last_error: Optional[BaseException]
    ) -> ProviderTimeoutException:
        details: dict[str, Any] = {"operation": label, "timeout_s": timeout_s, "attempts": attempts}
        if last_error is not None:
            details["last_error"] = f"{type(last_error).__name__}: {last_error}"
        return ProviderTimeoutException(label, timeout_s, details=details, provider=label)
