"""Retry Strategy - Retry and Backoff Decision Logic

Determines whether a failed provider call is retried and how long to wait.
"""

import asyncio
from typing import Optional

from pydantic import ValidationError

from metasearch.core.exceptions import (
    HttpStatusException,
    ParsingException,
    ProviderTimeoutException,
    RetryExhaustedException,
    TransportException,
)


class RetryStrategy:
    """재시도 전략 결정

    에러 유형에 따라 재시도 여부와 대기 시간을 결정합니다.

    Usage:
        strategy = RetryStrategy(base_delay_s=1.0)

        try:
            result = await call()
        except Exception as e:
            if strategy.is_retryable(e):
                await asyncio.sleep(strategy.backoff_delay(e, attempt))
    """

    def __init__(self, base_delay_s: float = 1.0):
        if base_delay_s < 0:
            raise ValueError(f"base_delay_s must be >= 0 (got {base_delay_s})")
        self.base_delay_s = base_delay_s

    @staticmethod
    def is_retryable(error: BaseException) -> bool:
        """재시도 여부 결정

        재시도 대상:
        - 전송 계층 타임아웃/연결 실패
        - HTTP 429, 5xx

        재시도하지 않음:
        - 그 외 4xx
        - 응답 파싱 실패, 결과 검증 실패
        - 알 수 없는 애플리케이션 오류

        Args:
            error: 발생한 예외

        Returns:
            bool: 재시도해야 하는지 여부
        """
        if isinstance(error, (ParsingException, RetryExhaustedException, ValidationError)):
            return False

        if isinstance(error, HttpStatusException):
            return error.is_rate_limited or error.is_server_error

        return isinstance(
            error,
            (
                ProviderTimeoutException,
                TransportException,
                asyncio.TimeoutError,
                TimeoutError,
                ConnectionError,
            ),
        )

    def backoff_delay(self, error: BaseException, attempt: int) -> float:
        """다음 시도 전 대기 시간 (초)

        - 429: Retry-After가 있으면 그 값, 없으면 base * (attempt + 1)
        - 그 외: base * 2^attempt (지수 백오프)

        Args:
            error: 직전 시도의 예외
            attempt: 실패한 시도의 0-based 인덱스

        Returns:
            float: 대기 시간 (초)
        """
        if isinstance(error, HttpStatusException) and error.is_rate_limited:
            retry_after: Optional[float] = error.retry_after
            if retry_after is not None and retry_after >= 0:
                return float(retry_after)
            return self.base_delay_s * (attempt + 1)

        return self.base_delay_s * (2 ** attempt)
