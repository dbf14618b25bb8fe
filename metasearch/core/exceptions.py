"""커스텀 예외 정의 (Structured Exception Hierarchy)"""
from typing import Any, Optional


# 기본 예외 클래스
class MetaSearchException(Exception):
    """기본 예외 클래스 - 모든 커스텀 예외의 부모"""
    def __init__(self, message: str, error_code: str = "UNKNOWN_ERROR", details: Optional[dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# 프로바이더 관련 예외
class ProviderException(MetaSearchException):
    """프로바이더 호출 관련 예외의 기본 클래스"""
    def __init__(
        self,
        message: str,
        error_code: str = "PROVIDER_ERROR",
        details: Optional[dict[str, Any]] = None,
        provider: Optional[str] = None,
    ):
        self.provider = provider
        super().__init__(message, error_code or "PROVIDER_ERROR", details)


class ProviderTimeoutException(ProviderException):
    """타임아웃 (전송 계층 타임아웃 또는 호출 전체 예산 초과)"""
    def __init__(self, operation: str, timeout_s: float, details: Optional[dict[str, Any]] = None, provider: Optional[str] = None):
        message = f"Operation '{operation}' timed out after {timeout_s}s"
        super().__init__(message, "PROVIDER_TIMEOUT",
                         details or {"operation": operation, "timeout_s": timeout_s}, provider)


class TransportException(ProviderException):
    """연결 실패 등 전송 계층 오류"""
    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None, provider: Optional[str] = None):
        message = f"Transport failure: {reason}"
        super().__init__(message, "TRANSPORT_ERROR", details or {"reason": reason}, provider)


class HttpStatusException(ProviderException):
    """2xx가 아닌 HTTP 응답

    retry_after: 서버가 Retry-After로 알려준 대기 시간 (초)
    """
    def __init__(
        self,
        status_code: int,
        reason: str = "",
        retry_after: Optional[float] = None,
        details: Optional[dict[str, Any]] = None,
        provider: Optional[str] = None,
    ):
        self.status_code = status_code
        self.retry_after = retry_after
        message = f"HTTP {status_code}" + (f": {reason}" if reason else "")
        super().__init__(message, "HTTP_STATUS",
                         details or {"status_code": status_code, "retry_after": retry_after}, provider)

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500


class ParsingException(ProviderException):
    """응답/결과 파싱 오류 (재시도 무의미)"""
    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None, provider: Optional[str] = None):
        message = f"Failed to parse response: {reason}"
        super().__init__(message, "PARSING_ERROR", details or {"reason": reason}, provider)


class RetryExhaustedException(ProviderException):
    """재시도 예산 소진 - 마지막 오류를 보존합니다"""
    def __init__(self, attempts: int, last_error: BaseException, provider: Optional[str] = None):
        self.attempts = attempts
        self.last_error = last_error
        message = f"Failed after {attempts} attempts: {last_error}"
        super().__init__(message, "RETRY_EXHAUSTED",
                         {"attempts": attempts, "last_error": type(last_error).__name__}, provider)


# 캐시 관련 예외
class CacheException(MetaSearchException):
    """캐시 내부 오류 (호출자에게 전파되지 않고 미스로 처리됨)"""
    def __init__(self, message: str, error_code: str = "CACHE_ERROR", details: Optional[dict[str, Any]] = None):
        super().__init__(message, error_code or "CACHE_ERROR", details)


# 설정 관련 예외 (시작/등록 시점에만 발생)
class ConfigurationException(MetaSearchException):
    """설정 오류"""
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class NoProvidersRegisteredException(ConfigurationException):
    """카테고리에 등록된 프로바이더가 없음"""
    def __init__(self, category: str, details: Optional[dict[str, Any]] = None):
        self.category = category
        super().__init__(f"No providers registered for category '{category}'",
                         details or {"category": category})
        self.error_code = "NO_PROVIDERS"
