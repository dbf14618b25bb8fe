"""설정 관리 - 환경 변수 로드 및 검증"""
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """애플리케이션 설정"""

    # 캐시
    cache_max_size: int = 10000
    cache_eviction_ratio: float = 0.1  # 용량 초과 시 가장 오래된 10% 제거
    cache_ttl_short_s: float = 120.0  # 2분 - 변동이 큰 데이터 (날씨)
    cache_ttl_medium_s: float = 600.0  # 10분 - 검색 결과
    cache_ttl_long_s: float = 3600.0  # 60분 - 거의 정적인 데이터

    # 프로바이더 호출 (Retry/Backoff)
    # NOTE: provider_timeout_s는 시도 1회가 아니라 호출 전체에 걸리는 예산입니다.
    provider_max_attempts: int = 5
    provider_timeout_s: float = 20.0
    retry_base_delay_s: float = 1.0

    # 병합/페이지네이션
    results_per_page: int = 100
    result_floor: int = 100
    backfill_provider_count: int = 3
    backfill_pages: int = 2
    backfill_max_calls: int = 6

    # 동일 키 동시 미스 병합(single-flight). 기본값은 꺼짐: 중복 계산을 허용합니다.
    coalesce_concurrent_misses: bool = False

    # 이미지/동영상/뉴스 랭킹 지터 시드 (None이면 비결정적)
    score_jitter_seed: Optional[int] = None

    # 아웃바운드 HTTP
    http_impersonate: str = "chrome"
    http_max_clients: int = 100
    http_user_agents: list[str] = Field(default_factory=lambda: [
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    ])

    # 로깅
    environment: str = "development"  # production이면 DEBUG 로그 비활성화
    log_level: str = "INFO"
    log_third_party_level: str = "WARNING"  # curl_cffi 등 외부 라이브러리 로거

    @field_validator(
        "cache_max_size",
        "provider_max_attempts",
        "results_per_page",
        "http_max_clients",
    )
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator(
        "cache_ttl_short_s",
        "cache_ttl_medium_s",
        "cache_ttl_long_s",
        "provider_timeout_s",
    )
    @classmethod
    def validate_positive_duration(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("durations must be positive")
        return v

    @field_validator("cache_eviction_ratio")
    @classmethod
    def validate_eviction_ratio(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError("cache_eviction_ratio must be in (0, 1]")
        return v

    @field_validator(
        "retry_base_delay_s",
        "result_floor",
        "backfill_provider_count",
        "backfill_pages",
        "backfill_max_calls",
    )
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("value must be >= 0")
        return v

    @field_validator("http_user_agents")
    @classmethod
    def validate_user_agents(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("http_user_agents must not be empty")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
