"""리소스 파일(YAML) 로더 유틸리티"""
import os
import yaml
from typing import Any, Dict
from functools import lru_cache

from metasearch.core.logging import logger


def get_resource_path(relative_path: str) -> str:
    """패키지 리소스 디렉터리 기준 절대 경로 반환"""
    # metasearch/utils/resource_loader.py -> metasearch/utils -> metasearch
    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    return os.path.join(base_dir, "resources", relative_path)


@lru_cache(maxsize=32)
def load_yaml_resource(relative_path: str) -> Dict[str, Any]:
    """YAML 리소스 로드 및 캐싱"""
    path = get_resource_path(relative_path)
    if not os.path.exists(path):
        logger.warning(f"Resource not found: {path}")
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load YAML resource {path}: {e}")
        return {}


def load_category_policies() -> Dict[str, Any]:
    """카테고리 정책 테이블 로드"""
    data = load_yaml_resource("categories.yaml")
    return data.get("categories", {}) or {}
