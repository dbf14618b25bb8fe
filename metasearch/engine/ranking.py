"""Ranking - Weighted Merge, URL Dedup, Stable Sort, Pagination

병합 단계는 완전히 순차적이고 결정적입니다.
같은 ProviderOutcome 집합(과 같은 지터 시드)이면 항상 같은 순서가 나옵니다.
"""

import math
import random
from typing import Callable, Iterable, Optional, Protocol

from metasearch.schemas.result_schema import ResultItem

from .result import ProviderOutcome

Sampler = Callable[[], float]


class Jitter(Protocol):
    """가중치 배수 공급자"""

    def sampler(self) -> Sampler:
        ...


class NoJitter:
    """지터 없음 (배수 1.0)"""

    def sampler(self) -> Sampler:
        return lambda: 1.0


class ScoreJitter:
    """프로바이더 가중치에 무작위 배수 적용 (이미지/동영상/뉴스)

    병합마다 새 random.Random(seed)를 만들기 때문에 seed가 같으면 결과 순서도 같습니다.
    seed=None이면 시스템 엔트로피를 사용합니다.
    """

    def __init__(self, seed: Optional[int] = None, low: float = 0.5, high: float = 1.0):
        if not 0 < low <= high:
            raise ValueError(f"jitter range must satisfy 0 < low <= high (got {low}, {high})")
        self.seed = seed
        self.low = low
        self.high = high

    def sampler(self) -> Sampler:
        rng = random.Random(self.seed)
        span = self.high - self.low
        return lambda: self.low + rng.random() * span


def compute_weight_score(weight: float, raw_score: Optional[float], multiplier: float = 1.0) -> float:
    """weightScore = weight * multiplier * max(raw_score, 1)

    raw_score가 없거나 유한한 수가 아니면 (NaN, inf) 1로 취급합니다.
    """
    if raw_score is None or not math.isfinite(raw_score):
        signal = 1.0
    else:
        signal = max(float(raw_score), 1.0)
    return weight * multiplier * signal


def merge_outcomes(outcomes: Iterable[ProviderOutcome], jitter: Optional[Jitter] = None) -> list[ResultItem]:
    """성공한 프로바이더 결과 병합

    1. 항목마다 weight_score 계산 (provider_name/provider_weight도 이 시점에 기록)
    2. URL 기준 중복 제거: 점수가 더 높은 항목만 유지, 동점이면 먼저 나온 항목 유지
    3. weight_score 내림차순 정렬, 동점은 등록 순서 → 페이지 → 프로바이더 내 위치

    Args:
        outcomes: 프로바이더 결과 (실패 결과는 무시)
        jitter: 가중치 배수 공급자 (기본값: NoJitter)

    Returns:
        list[ResultItem]: 정렬된 중복 없는 결과
    """
    sample = (jitter or NoJitter()).sampler()
    ordered = sorted(outcomes, key=lambda o: (o.provider_index, o.page_offset))

    best: dict[str, tuple[float, tuple[int, int, int], ResultItem]] = {}
    for outcome in ordered:
        if not outcome.ok:
            continue
        for position, item in enumerate(outcome.items):
            score = compute_weight_score(outcome.weight, item.raw_score, sample())
            order_key = (outcome.provider_index, outcome.page_offset, position)

            current = best.get(item.url)
            if current is not None and score <= current[0]:
                continue

            best[item.url] = (
                score,
                order_key,
                item.model_copy(update={
                    "provider_name": outcome.provider_name,
                    "provider_weight": outcome.weight,
                    "weight_score": score,
                }),
            )

    ranked = sorted(best.values(), key=lambda entry: (-entry[0], entry[1]))
    return [item for _, _, item in ranked]


def paginate(items: list[ResultItem], page: int, page_size: int) -> list[ResultItem]:
    """페이지 슬라이스. 범위를 벗어난 페이지는 빈 목록

    Raises:
        ValueError: page < 1 또는 page_size <= 0
    """
    if page < 1:
        raise ValueError(f"page must be >= 1 (got {page})")
    if page_size <= 0:
        raise ValueError(f"page_size must be positive (got {page_size})")
    start = (page - 1) * page_size
    return items[start:start + page_size]
