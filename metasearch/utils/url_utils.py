"""URL 파싱 유틸리티"""
from urllib.parse import urlparse


def extract_display_domain(url: str) -> str:
    """
    결과 URL에서 표시용 도메인 추출

    Examples:
        >>> extract_display_domain("https://www.python.org/downloads/")
        'python.org'
        >>> extract_display_domain("//cdn.example.com/a.png")
        'cdn.example.com'
        >>> extract_display_domain("invalid")
        ''

    Args:
        url: 결과 URL

    Returns:
        www. 를 제외한 호스트명 또는 빈 문자열
    """
    if not url:
        return ""

    try:
        parsed = urlparse(url.strip())
        host = (parsed.hostname or "").lower()
    except ValueError:
        return ""

    if host.startswith("www."):
        host = host[4:]
    return host


def is_http_url(url: str) -> bool:
    """http(s) 절대 URL인지 확인"""
    if not url:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
