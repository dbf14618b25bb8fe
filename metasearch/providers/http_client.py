"""공유 HTTP 클라이언트 (curl_cffi)

- 어댑터가 요청마다 AsyncSession을 만들면 TLS/커넥션 오버헤드가 커지므로
  프로세스 단위로 세션 하나를 재사용합니다 (max_clients로 동시 소켓 수 제한).
- 실패는 재시도 판단이 가능한 타입 예외로 변환합니다.
- 앱 종료 시 close()로 정리합니다.
"""

from __future__ import annotations

import asyncio
import random
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional

from curl_cffi.requests import AsyncSession
from curl_cffi.requests.exceptions import RequestException, Timeout

from metasearch.core.config import settings
from metasearch.core.exceptions import (
    HttpStatusException,
    ParsingException,
    ProviderTimeoutException,
    TransportException,
)
from metasearch.core.logging import logger
from metasearch.engine.retry import RetryExecutor
from metasearch.utils.url_utils import extract_display_domain


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-After 헤더 → 대기 시간 (초)

    초 단위 숫자와 HTTP-date 형식을 모두 지원합니다. 해석할 수 없으면 None.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    try:
        return max(0.0, float(value))
    except ValueError:
        pass

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class SharedHttpClient:
    def __init__(self, max_clients: Optional[int] = None) -> None:
        self._lock = asyncio.Lock()
        self._session: Optional[AsyncSession] = None
        self._max_clients = max_clients or settings.http_max_clients

    async def _ensure_session(self) -> AsyncSession:
        async with self._lock:
            if self._session is not None:
                return self._session
            self._session = AsyncSession(
                impersonate=settings.http_impersonate,
                headers=self.default_headers(),
                allow_redirects=True,
                max_clients=self._max_clients,
                trust_env=False,
            )
            return self._session

    def default_headers(self) -> Dict[str, str]:
        return {
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,application/json;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }

    @staticmethod
    def random_user_agent() -> str:
        return random.choice(settings.http_user_agents)

    async def fetch(
        self,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout_s: Optional[float] = None,
    ) -> Any:
        """GET 요청

        Args:
            url: 요청 URL
            params: 쿼리 파라미터
            headers: 추가 헤더 (User-Agent 미지정 시 로테이션)
            timeout_s: 전송 계층 타임아웃 (초)

        Returns:
            JSON 응답이면 파싱된 객체, 아니면 본문 텍스트

        Raises:
            ProviderTimeoutException: 전송 타임아웃
            TransportException: 연결 실패 등
            HttpStatusException: 2xx가 아닌 응답 (Retry-After 포함)
            ParsingException: JSON 응답 파싱 실패
        """
        timeout = timeout_s if timeout_s is not None else settings.provider_timeout_s
        host = extract_display_domain(url) or url
        request_headers = {"User-Agent": self.random_user_agent()}
        request_headers.update(headers or {})

        sess = await self._ensure_session()
        try:
            resp = await sess.get(url, params=params, headers=request_headers, timeout=timeout)
        except Timeout as e:
            logger.info(f"[HTTP_CLIENT] GET timeout: {host} ({timeout}s)")
            raise ProviderTimeoutException(f"GET {host}", timeout) from e
        except RequestException as e:
            logger.info(f"[HTTP_CLIENT] GET failed: {host}: {type(e).__name__}: {repr(e)}")
            raise TransportException(f"{type(e).__name__}: {e}", details={"host": host}) from e

        status = getattr(resp, "status_code", 0) or 0
        if not 200 <= status < 300:
            retry_after = parse_retry_after(resp.headers.get("retry-after"))
            logger.info(f"[HTTP_CLIENT] GET {host} -> HTTP {status} (retry_after={retry_after})")
            raise HttpStatusException(status, getattr(resp, "reason", "") or "", retry_after=retry_after)

        content_type = (resp.headers.get("content-type") or "").lower()
        if "json" in content_type:
            try:
                return resp.json()
            except ValueError as e:
                raise ParsingException(f"invalid JSON from {host}: {e}") from e

        return getattr(resp, "text", "") or ""

    async def close(self) -> None:
        async with self._lock:
            if self._session is None:
                return
            try:
                await self._session.close()
            except Exception as e:
                logger.debug(f"[HTTP_CLIENT] Session close failed: {type(e).__name__}: {e}")
            self._session = None


_shared_http_client = SharedHttpClient()


def get_shared_http_client() -> SharedHttpClient:
    return _shared_http_client


async def shutdown_shared_http_client() -> None:
    await _shared_http_client.close()


async def fetch_with_retry(
    url: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    label: Optional[str] = None,
    max_attempts: Optional[int] = None,
    timeout: Optional[float] = None,
    client: Optional[SharedHttpClient] = None,
    executor: Optional[RetryExecutor] = None,
) -> Any:
    """공유 클라이언트 GET을 재시도/백오프 실행자로 감싼 헬퍼 (어댑터용)

    timeout은 시도 1회가 아니라 호출 전체 예산입니다.
    """
    client = client or get_shared_http_client()
    executor = executor or RetryExecutor()
    transport_timeout = timeout if timeout is not None else executor.policy.timeout_s

    return await executor.execute(
        lambda: client.fetch(url, params=params, headers=headers, timeout_s=transport_timeout),
        max_attempts=max_attempts,
        timeout=timeout,
        label=label or extract_display_domain(url) or url,
    )
