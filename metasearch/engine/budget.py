"""Budget Manager - Time Budget and Phase Tracking

BudgetManager는 두 곳에서 사용됩니다.
- RetryExecutor: 호출 전체 타임아웃(기본 20초) 예산 추적
- AggregationEngine: 요청 단계(cache_check → fetching → ...) 체크포인트 기록
"""

from dataclasses import dataclass
from typing import Optional

from metasearch.core.clock import Clock, MonotonicClock


@dataclass
class BudgetConfig:
    """예산 설정"""

    total_budget: float = 20.0  # 전체 예산 (초)
    min_remaining: float = 0.0  # 새 시도를 시작하기 위한 최소 여유 시간 (초)

    def __post_init__(self):
        if self.total_budget <= 0:
            raise ValueError(f"total_budget must be positive (got {self.total_budget})")
        if self.min_remaining < 0:
            raise ValueError(f"min_remaining must be >= 0 (got {self.min_remaining})")


class BudgetManager:
    """시간 예산 관리자

    Usage:
        manager = BudgetManager(BudgetConfig(total_budget=20.0))
        manager.start()

        manager.checkpoint("cache_miss")

        if manager.is_exhausted():
            ...

        report = manager.get_report()
    """

    def __init__(self, config: Optional[BudgetConfig] = None, clock: Optional[Clock] = None):
        self.config = config or BudgetConfig()
        self.clock: Clock = clock or MonotonicClock()
        self.start_time: Optional[float] = None
        self._checkpoints: dict[str, float] = {}

    def start(self) -> None:
        """예산 측정 시작"""
        self.start_time = self.clock.now()
        self._checkpoints.clear()

    def checkpoint(self, name: str) -> None:
        """체크포인트 기록 (경과 시간, 초)

        Raises:
            RuntimeError: start()가 호출되지 않은 경우
        """
        if self.start_time is None:
            raise RuntimeError("Budget not started. Call start() first.")
        self._checkpoints[name] = self.clock.now() - self.start_time

    def elapsed(self) -> float:
        """경과 시간 반환 (초). start() 전에는 0.0"""
        if self.start_time is None:
            return 0.0
        return self.clock.now() - self.start_time

    def elapsed_ms(self) -> float:
        return self.elapsed() * 1000

    def remaining(self) -> float:
        """남은 예산 반환 (초). 음수가 되지 않도록 보장"""
        return max(0.0, self.config.total_budget - self.elapsed())

    def is_exhausted(self) -> bool:
        """예산 소진 여부"""
        if self.start_time is None:
            return False
        return self.remaining() <= self.config.min_remaining

    def checkpoints_ms(self) -> dict[str, float]:
        """체크포인트별 경과 시간 (밀리초)"""
        return {name: round(value * 1000, 3) for name, value in self._checkpoints.items()}

    def get_report(self) -> dict:
        """예산 사용 리포트 생성

        Returns:
            dict: total_budget / elapsed / remaining / checkpoints / is_exhausted
        """
        return {
            "total_budget": self.config.total_budget,
            "elapsed": self.elapsed(),
            "remaining": self.remaining(),
            "checkpoints": self._checkpoints.copy(),
            "is_exhausted": self.is_exhausted(),
        }
