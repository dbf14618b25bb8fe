"""Pydantic 스키마 정의 - 엔진 경계를 오가는 모델"""
import math
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from metasearch.utils.text import SafeSearchLevel, normalize_safe_search
from metasearch.utils.url_utils import extract_display_domain


class Category(str, Enum):
    """검색 카테고리"""

    WEB = "web"
    IMAGES = "images"
    VIDEOS = "videos"
    NEWS = "news"
    WEATHER = "weather"


# 프로바이더별로 제각각인 필드명을 공통 필드로 매핑
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "url": ("url", "link", "href"),
    "title": ("title", "name"),
    "snippet": ("snippet", "description", "content", "body"),
    "display_domain": ("display_domain", "displayDomain", "domain"),
    "raw_score": ("raw_score", "rawScore", "score"),
}

# 엔진이 병합 단계에서 직접 채우는 필드 (어댑터 입력은 무시)
_ENGINE_FIELDS = {"provider_name", "provider_weight", "weight_score", "category", "extras"}


class ResultItem(BaseModel):
    """카테고리 공통 검색 결과 항목

    카테고리 전용 속성(이미지 크기, 영상 길이, 기사 발행 시각 등)은 extras에
    그대로 보존되며 엔진은 해석하지 않습니다.
    """
    model_config = ConfigDict(frozen=True)

    category: Category = Field(..., description="결과 카테고리")
    title: str = Field("", description="제목")
    url: str = Field(..., min_length=1, description="결과 URL (중복 제거 키)")
    snippet: str = Field("", description="요약/설명")
    display_domain: str = Field("", description="표시용 도메인")
    provider_name: str = Field("", description="결과를 제공한 프로바이더")
    provider_weight: float = Field(1.0, gt=0, description="프로바이더 가중치")
    raw_score: Optional[float] = Field(None, description="프로바이더가 보고한 순위 신호")
    weight_score: float = Field(0.0, ge=0, description="가중 점수 (병합 시 계산)")
    extras: dict[str, Any] = Field(default_factory=dict, description="카테고리 전용 속성")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("url must not be blank")
        return v

    @field_validator("raw_score")
    @classmethod
    def drop_non_finite_score(cls, v: Optional[float]) -> Optional[float]:
        if v is None or not math.isfinite(v):
            return None
        return v

    @field_validator("title", "snippet", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip()

    @model_validator(mode="before")
    @classmethod
    def fill_display_domain(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("display_domain") and data.get("url"):
            data = {**data, "display_domain": extract_display_domain(str(data["url"]))}
        return data

    @classmethod
    def from_provider(cls, data: Mapping[str, Any], category: Category) -> Optional["ResultItem"]:
        """어댑터가 돌려준 dict를 공통 모델로 변환

        Args:
            data: 어댑터 원본 결과
            category: 결과 카테고리

        Returns:
            ResultItem 또는 None (URL이 없는 항목)

        Raises:
            pydantic.ValidationError: 필드 타입이 잘못된 경우
        """
        remaining = dict(data)
        fields: dict[str, Any] = {}
        for field_name, aliases in _FIELD_ALIASES.items():
            for alias in aliases:
                if alias in remaining:
                    value = remaining.pop(alias)
                    if field_name not in fields and value not in (None, ""):
                        fields[field_name] = value

        if not fields.get("url"):
            return None

        for engine_field in _ENGINE_FIELDS:
            remaining.pop(engine_field, None)

        extras = dict(data.get("extras") or {}) if isinstance(data.get("extras"), Mapping) else {}
        extras.update(remaining)

        return cls(category=category, extras=extras, **fields)


class ProviderError(BaseModel):
    """프로바이더별 실패 정보 (응답에 그대로 노출됨)"""
    model_config = ConfigDict(frozen=True)

    provider: str = Field(..., description="프로바이더 이름")
    message: str = Field(..., description="사람이 읽을 수 있는 오류 메시지")
    error_code: str = Field("PROVIDER_ERROR", description="오류 코드")


class SearchOptions(BaseModel):
    """검색 옵션 (모든 카테고리 공통 + 카테고리 전용 extras)"""
    model_config = ConfigDict(frozen=True)

    page: int = Field(1, ge=1, description="페이지 번호 (1부터)")
    safe_search: SafeSearchLevel = Field(SafeSearchLevel.MODERATE, description="세이프서치 단계")
    extras: dict[str, Any] = Field(default_factory=dict, description="카테고리 전용 옵션")

    @field_validator("safe_search", mode="before")
    @classmethod
    def validate_safe_search(cls, v: Any) -> SafeSearchLevel:
        return normalize_safe_search(v)

    def with_page(self, page: int) -> "SearchOptions":
        """페이지만 바꾼 사본 반환 (백필 호출용)"""
        return self.model_copy(update={"page": page})


class CacheStats(BaseModel):
    """캐시 통계 스냅샷"""

    size: int = Field(..., ge=0)
    hits: int = Field(..., ge=0)
    misses: int = Field(..., ge=0)
    hit_rate: float = Field(..., ge=0, le=100, description="적중률 (%)")
    max_size: int = Field(..., gt=0)
    expired_entries: int = Field(..., ge=0, description="논리적으로 만료됐지만 아직 저장소에 남은 항목")

    def to_dict(self) -> dict[str, Any]:
        """경계 계층(HTTP 응답)용 표현"""
        return {
            "size": self.size,
            "hits": self.hits,
            "misses": self.misses,
            "hitRate": f"{self.hit_rate:.2f}%",
            "maxSize": self.max_size,
            "expiredEntries": self.expired_entries,
        }
