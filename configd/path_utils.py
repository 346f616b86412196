"""
etcd 키 경로 변환 유틸리티

문제:
- etcd 이벤트 키는 절대 경로: /rails/production/database/host
- 트리는 watch 루트 기준 상대 주소 사용: ["database", "host"]

해결:
- 루트 접두사 제거 후 "/" 기준 분할
- 루트 밖의 키는 검사하지 않음 (etcd가 watch 범위 내 이벤트만 전달)
"""

SEPARATOR = "/"


def naked_key(key: str, root: str) -> str:
    """절대 키에서 watch 루트 접두사 제거

    Args:
        key: etcd 절대 키 (예: /rails/production/database/host)
        root: watch 루트 (예: /rails/production)

    Returns:
        루트 기준 상대 경로 (예: database/host)

    Examples:
        >>> naked_key("/rails/production/database/host", "/rails/production")
        'database/host'
        >>> naked_key("/rails/production", "/rails/production/")
        ''
    """
    prefix = root.rstrip(SEPARATOR)
    relative = key[len(prefix):] if key.startswith(prefix) else key
    return relative.lstrip(SEPARATOR)


def split_key(relative: str) -> list[str]:
    """상대 경로를 세그먼트 목록으로 분할

    빈 경로는 루트 자체를 의미하므로 빈 목록을 반환합니다.

    Examples:
        >>> split_key("database/host")
        ['database', 'host']
        >>> split_key("")
        []
    """
    if not relative:
        return []
    return relative.split(SEPARATOR)


def key_segments(key: str, root: str) -> list[str]:
    """절대 키 → 트리 주소"""
    return split_key(naked_key(key, root))


def join_segments(segments: list[str]) -> str:
    """트리 주소 → 상대 경로 (로그 출력용)"""
    return SEPARATOR.join(segments)
