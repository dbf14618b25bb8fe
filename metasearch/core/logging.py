"""로깅 설정

패키지 전체가 "metasearch" 로거 하나를 공유합니다.
메시지는 `[ENGINE]`, `[AGGREGATOR]`, `[RETRY]` 처럼 태그로 시작합니다.
"""
import logging
import sys
from typing import Optional

from metasearch.core.config import Settings, settings

LOGGER_NAME = "metasearch"

_PRODUCTION_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
_DEVELOPMENT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
_THIRD_PARTY_LOGGERS = ("curl_cffi", "asyncio")
_MASKED_PATTERNS = ("password", "token", "api_key", "apikey", "secret", "authorization")


def _level(name: str, default: int = logging.INFO) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else default


def setup_logging(config: Optional[Settings] = None) -> logging.Logger:
    """로거 초기화 (여러 번 호출해도 핸들러는 하나)

    Args:
        config: 설정 (기본값: 전역 settings)

    Returns:
        "metasearch" 로거
    """
    config = config or settings
    is_production = config.environment.lower() == "production"

    level = _level(config.log_level)
    if is_production and level < logging.INFO:
        level = logging.INFO

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = True

    handler = next((h for h in logger.handlers if getattr(h, "_metasearch", False)), None)
    if handler is None:
        handler = logging.StreamHandler(sys.stdout)
        handler._metasearch = True
        logger.addHandler(handler)

    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        fmt=_PRODUCTION_FORMAT if is_production else _DEVELOPMENT_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    third_party_level = _level(config.log_third_party_level, logging.WARNING)
    for name in _THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)

    return logger


logger = setup_logging()


def sanitize_for_log(value: str, max_length: int = 100) -> str:
    """검색어 등 사용자 입력을 로그용 문자열로 변환

    비밀값처럼 보이는 입력은 통째로 마스킹하고, 개행을 공백으로 바꾼 뒤 잘라냅니다.

    Args:
        value: 로깅할 문자열
        max_length: 최대 길이

    Returns:
        로그에 남겨도 되는 문자열
    """
    if not value:
        return "[empty]"

    lowered = value.lower()
    if any(pattern in lowered for pattern in _MASKED_PATTERNS):
        return "***"

    result = value.replace("\r", " ").replace("\n", " ")
    if len(result) > max_length:
        result = result[:max_length] + "..."
    return result
