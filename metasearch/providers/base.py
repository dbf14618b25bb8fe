"""Provider Adapter Protocol - Interface for external search sources

엔진은 어댑터가 데이터를 어떻게 가져오는지(API 호출/마크업 스크래핑) 알지 못합니다.
이름, 가중치, 결과 형태, 실패 방식만 계약으로 취급합니다.
"""

from typing import Any, Awaitable, Callable, Mapping, Protocol, Sequence, Union

from metasearch.schemas.result_schema import ResultItem, SearchOptions

RawItem = Union[ResultItem, Mapping[str, Any]]

# call(query, options) -> 결과 목록
ProviderCall = Callable[[str, SearchOptions], Awaitable[Sequence[RawItem]]]


class ProviderAdapter(Protocol):
    """프로바이더 어댑터 프로토콜

    구현 예시:
        class DuckDuckGoAdapter(ProviderAdapter):
            async def __call__(self, query: str, options: SearchOptions) -> list[dict]:
                html = await fetch_with_retry(URL, params={"q": query}, label="duckduckgo")
                ...
    """

    async def __call__(self, query: str, options: SearchOptions) -> Sequence[RawItem]:
        """결과 조회

        Args:
            query: 정규화된 검색어
            options: 페이지/세이프서치/카테고리 전용 옵션

        Returns:
            ResultItem 또는 dict 목록. 결과가 없으면 빈 목록 (실패 아님)

        Raises:
            HttpStatusException: 2xx가 아닌 응답
            TransportException: 연결 실패
            ProviderTimeoutException: 타임아웃
            ParsingException: 응답 형식 오류
        """
        ...
