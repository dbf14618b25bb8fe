"""Category Policies - TTL Class and Aggregation Mode per Category

카테고리마다 캐시 TTL 등급, 집계 방식, 페이지 크기, 백필/지터 여부가 다릅니다.
기본값은 코드에 있고, resources/categories.yaml이 있으면 그 값으로 덮어씁니다.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Mapping, Optional

from metasearch.core.config import Settings, settings as default_settings
from metasearch.core.exceptions import ConfigurationException
from metasearch.schemas.result_schema import Category
from metasearch.utils.resource_loader import load_category_policies


class TTLClass(str, Enum):
    """캐시 TTL 등급 (카테고리 변동성 기준)"""

    SHORT = "short"  # 날씨처럼 자주 바뀌는 데이터
    MEDIUM = "medium"  # 검색 결과
    LONG = "long"  # 거의 정적인 데이터

    def seconds(self, config: Optional[Settings] = None) -> float:
        config = config or default_settings
        if self is TTLClass.SHORT:
            return config.cache_ttl_short_s
        if self is TTLClass.LONG:
            return config.cache_ttl_long_s
        return config.cache_ttl_medium_s


class AggregationMode(str, Enum):
    """집계 방식"""

    MERGE = "merge"  # 전체 프로바이더 병렬 호출 → 병합/중복 제거/정렬
    FIRST_SUCCESS = "first_success"  # 등록 순서대로 시도, 첫 성공 결과 채택


@dataclass(frozen=True)
class CategoryPolicy:
    """카테고리 집계 정책"""

    category: Category
    ttl_class: TTLClass = TTLClass.MEDIUM
    mode: AggregationMode = AggregationMode.MERGE
    page_size: int = 100
    result_floor: int = 100
    backfill: bool = False
    jitter: bool = False

    def __post_init__(self):
        if self.page_size <= 0:
            raise ConfigurationException(
                f"page_size must be positive for category '{self.category.value}'",
                {"category": self.category.value, "page_size": self.page_size},
            )
        if self.result_floor < 0:
            raise ConfigurationException(
                f"result_floor must be >= 0 for category '{self.category.value}'",
                {"category": self.category.value, "result_floor": self.result_floor},
            )

    def ttl_seconds(self, config: Optional[Settings] = None) -> float:
        return self.ttl_class.seconds(config)


DEFAULT_POLICIES: dict[Category, CategoryPolicy] = {
    Category.WEB: CategoryPolicy(
        Category.WEB, TTLClass.MEDIUM, AggregationMode.MERGE,
        page_size=100, result_floor=100, backfill=True, jitter=False,
    ),
    Category.IMAGES: CategoryPolicy(
        Category.IMAGES, TTLClass.MEDIUM, AggregationMode.MERGE,
        page_size=150, result_floor=100, backfill=False, jitter=True,
    ),
    Category.VIDEOS: CategoryPolicy(
        Category.VIDEOS, TTLClass.MEDIUM, AggregationMode.MERGE,
        page_size=150, result_floor=100, backfill=False, jitter=True,
    ),
    Category.NEWS: CategoryPolicy(
        Category.NEWS, TTLClass.MEDIUM, AggregationMode.MERGE,
        page_size=100, result_floor=100, backfill=False, jitter=True,
    ),
    Category.WEATHER: CategoryPolicy(
        Category.WEATHER, TTLClass.SHORT, AggregationMode.FIRST_SUCCESS,
        page_size=1, result_floor=0, backfill=False, jitter=False,
    ),
}

_POLICY_FIELDS = ("ttl_class", "mode", "page_size", "result_floor", "backfill", "jitter")
_TRUE_STRINGS = ("true", "yes", "on", "1")
_FALSE_STRINGS = ("false", "no", "off", "0")


def _to_bool(value: Any) -> bool:
    """YAML/환경 변수 값 -> bool. 문자열 "false"는 False"""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError(f"expected a boolean, got {value!r}")


def _apply_overrides(base: CategoryPolicy, raw: Mapping[str, Any]) -> CategoryPolicy:
    """YAML 한 항목을 기본 정책 위에 덮어쓰기

    Raises:
        ConfigurationException: 알 수 없는 TTL 등급/모드 또는 잘못된 값
    """
    changes: dict[str, Any] = {}
    for field_name in _POLICY_FIELDS:
        if field_name not in raw or raw[field_name] is None:
            continue
        value = raw[field_name]
        try:
            if field_name == "ttl_class":
                value = TTLClass(str(value).lower())
            elif field_name == "mode":
                value = AggregationMode(str(value).lower())
            elif field_name in ("page_size", "result_floor"):
                value = int(value)
            else:
                value = _to_bool(value)
        except ValueError as e:
            raise ConfigurationException(
                f"Invalid '{field_name}' for category '{base.category.value}': {value!r}",
                {"category": base.category.value, "field": field_name, "value": str(value)},
            ) from e
        changes[field_name] = value

    return replace(base, **changes) if changes else base


def load_policies(overrides: Optional[Mapping[str, Any]] = None) -> dict[Category, CategoryPolicy]:
    """카테고리 정책 테이블 구성

    Args:
        overrides: {"web": {"page_size": 50}, ...} 형식. None이면 categories.yaml 사용

    Returns:
        dict[Category, CategoryPolicy]: 모든 카테고리의 정책

    Raises:
        ConfigurationException: 알 수 없는 카테고리나 잘못된 값
    """
    raw_table = load_category_policies() if overrides is None else overrides
    policies = dict(DEFAULT_POLICIES)

    for name, raw in (raw_table or {}).items():
        try:
            category = Category(str(name).lower())
        except ValueError as e:
            raise ConfigurationException(
                f"Unknown category in policy table: '{name}'", {"category": str(name)}
            ) from e
        if not isinstance(raw, Mapping):
            raise ConfigurationException(
                f"Policy for category '{name}' must be a mapping", {"category": str(name)}
            )
        policies[category] = _apply_overrides(policies[category], raw)

    return policies
