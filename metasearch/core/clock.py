"""Clock - 주입 가능한 단조 시간 소스

TTL 계산과 재시도 예산 추적은 모두 이 Clock을 통해서만 시간을 읽습니다.
테스트에서는 수동으로 시간을 진행시키는 Clock을 주입합니다.
"""

from time import monotonic
from typing import Protocol


class Clock(Protocol):
    """단조 증가 시간 소스 (초 단위)"""

    def now(self) -> float:
        ...


class MonotonicClock:
    """time.monotonic 기반 기본 Clock"""

    def now(self) -> float:
        return monotonic()
