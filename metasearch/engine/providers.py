"""Provider Registry - Category별 프로바이더 등록

가중치는 등록 시점에 한 번 정해지고 요청 중에는 절대 바뀌지 않습니다.
등록 순서는 동점 정렬의 기준이 되므로 보존됩니다.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Union

from metasearch.core.exceptions import ConfigurationException, NoProvidersRegisteredException
from metasearch.core.logging import logger
from metasearch.providers.base import ProviderCall
from metasearch.schemas.result_schema import Category


@dataclass(frozen=True)
class ProviderSpec:
    """등록된 프로바이더"""

    name: str
    weight: float
    call: ProviderCall
    supports_paging: bool = False


class ProviderRegistry:
    """카테고리 → 프로바이더 목록 (등록 순서 유지)

    Usage:
        registry = ProviderRegistry()
        registry.register(Category.WEB, "duckduckgo", 3.0, ddg_adapter, supports_paging=True)
        registry.register(Category.WEB, "mojeek", 1.0, mojeek_adapter)
        registry.validate([Category.WEB])
    """

    def __init__(self):
        self._providers: dict[Category, list[ProviderSpec]] = {}

    def register(
        self,
        category: Union[Category, str],
        name: str,
        weight: float,
        call: ProviderCall,
        supports_paging: bool = False,
    ) -> ProviderSpec:
        """프로바이더 등록

        Raises:
            ConfigurationException: 이름 공백/중복, 가중치 <= 0, 호출 불가능한 call
        """
        category = self._to_category(category)
        name = (name or "").strip()

        if not name:
            raise ConfigurationException("Provider name must not be blank", {"category": category.value})
        if not callable(call):
            raise ConfigurationException(
                f"Provider '{name}' call is not callable", {"category": category.value, "provider": name}
            )
        try:
            weight = float(weight)
        except (TypeError, ValueError) as e:
            raise ConfigurationException(
                f"Provider '{name}' weight must be a number", {"provider": name, "weight": str(weight)}
            ) from e
        if weight <= 0:
            raise ConfigurationException(
                f"Provider '{name}' weight must be positive (got {weight})",
                {"category": category.value, "provider": name, "weight": weight},
            )

        providers = self._providers.setdefault(category, [])
        if any(spec.name == name for spec in providers):
            raise ConfigurationException(
                f"Provider '{name}' already registered for category '{category.value}'",
                {"category": category.value, "provider": name},
            )

        spec = ProviderSpec(name=name, weight=weight, call=call, supports_paging=supports_paging)
        providers.append(spec)
        logger.debug(f"[REGISTRY] Registered {category.value}/{name} (weight={weight}, paging={supports_paging})")
        return spec

    def providers(self, category: Union[Category, str]) -> tuple[ProviderSpec, ...]:
        """등록 순서대로 프로바이더 반환 (없으면 빈 튜플)"""
        return tuple(self._providers.get(self._to_category(category), ()))

    def categories(self) -> tuple[Category, ...]:
        return tuple(c for c, specs in self._providers.items() if specs)

    def validate(self, categories: Optional[Iterable[Union[Category, str]]] = None) -> None:
        """카테고리마다 최소 1개 프로바이더가 있는지 확인

        Args:
            categories: 검사할 카테고리 (기본값: 등록된 모든 카테고리, 없으면 오류)

        Raises:
            NoProvidersRegisteredException: 프로바이더가 없는 카테고리가 있는 경우
        """
        targets = [self._to_category(c) for c in categories] if categories is not None else list(self.categories())
        if not targets:
            raise NoProvidersRegisteredException("*")
        for category in targets:
            if not self._providers.get(category):
                raise NoProvidersRegisteredException(category.value)

    def __contains__(self, category: object) -> bool:
        try:
            return bool(self._providers.get(self._to_category(category)))
        except ConfigurationException:
            return False

    @staticmethod
    def _to_category(category) -> Category:
        if isinstance(category, Category):
            return category
        try:
            return Category(str(category).lower())
        except ValueError as e:
            raise ConfigurationException(f"Unknown category: '{category}'", {"category": str(category)}) from e
