"""
에러 분류 시스템

rails-configd 예외 계층과 재시도 가능 여부 판단.
etcd watch 루프가 재연결 여부를 결정할 때 사용.
"""

from enum import Enum


class ErrorCategory(str, Enum):
    """에러 카테고리"""

    RETRYABLE = "retryable"  # 네트워크 오류, etcd 일시 장애
    NON_RETRYABLE = "non_retryable"  # 잘못된 경로, 권한 오류
    UNKNOWN = "unknown"


# 재시도 가능 에러 패턴
RETRYABLE_PATTERNS = [
    "connection",
    "timeout",
    "timed out",
    "network",
    "unavailable",
    "temporary",
    "leader",
    "raft",
    "500",
    "502",
    "503",
    "504",
    "ECONNREFUSED",
    "ECONNRESET",
    "ETIMEDOUT",
]

# 재시도 불가 에러 패턴
NON_RETRYABLE_PATTERNS = [
    "key not found",
    "not a directory",
    "not a file",
    "404",
    "invalid",
    "permission",
    "unauthorized",
    "forbidden",
]


class ConfigdError(Exception):
    """rails-configd 기본 에러"""

    def __init__(
        self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN
    ):
        super().__init__(message)
        self.category = category


class ConfigurationError(ConfigdError):
    """설정 오류 (시작 단계에서 프로세스 종료)"""

    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.NON_RETRYABLE)


class StoreError(ConfigdError):
    """etcd 요청 실패

    etcd가 에러 본문을 돌려준 경우 error_code/index를 함께 보관합니다.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        error_code: int | None = None,
        index: int | None = None,
    ):
        super().__init__(message, category)
        self.error_code = error_code
        self.index = index


class RenderError(ConfigdError):
    """설정 파일 렌더링 실패 (해당 사이클만 중단)"""

    pass


class ReloadError(ConfigdError):
    """리로드 실패 (렌더링 결과는 유지)"""

    pass


class TreeUpdateError(ConfigdError):
    """트리에 적용할 수 없는 변경 이벤트"""

    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.NON_RETRYABLE)


class ErrorClassifier:
    """에러 분류기"""

    @classmethod
    def classify(cls, error: Exception) -> ErrorCategory:
        """에러를 분류하여 카테고리 반환

        ConfigdError에 명시된 카테고리가 있으면 그대로 사용하고,
        없으면 메시지 패턴과 예외 타입으로 판단합니다.

        Args:
            error: 분류할 예외 객체

        Returns:
            ErrorCategory: 재시도 가능 여부에 따른 카테고리
        """
        if isinstance(error, ConfigdError) and error.category != ErrorCategory.UNKNOWN:
            return error.category

        error_str = str(error).lower()

        # 패턴 매칭 (우선순위: NON_RETRYABLE > RETRYABLE)
        for pattern in NON_RETRYABLE_PATTERNS:
            if pattern.lower() in error_str:
                return ErrorCategory.NON_RETRYABLE

        for pattern in RETRYABLE_PATTERNS:
            if pattern.lower() in error_str:
                return ErrorCategory.RETRYABLE

        # 예외 타입 기반 분류
        if isinstance(error, (TimeoutError, ConnectionError)):
            return ErrorCategory.RETRYABLE

        if isinstance(error, (ValueError, KeyError, PermissionError)):
            return ErrorCategory.NON_RETRYABLE

        return ErrorCategory.UNKNOWN

    @classmethod
    def is_retryable(cls, error: Exception) -> bool:
        """재시도 가능 여부 (UNKNOWN은 재시도 대상으로 취급)"""
        return cls.classify(error) != ErrorCategory.NON_RETRYABLE

    @classmethod
    def format_message(cls, error: Exception) -> str:
        """에러 메시지 포맷팅

        Args:
            error: 포맷팅할 예외 객체

        Returns:
            str: 카테고리 라벨이 포함된 에러 메시지
        """
        category = cls.classify(error)
        label = {
            ErrorCategory.RETRYABLE: "[재시도 가능]",
            ErrorCategory.NON_RETRYABLE: "[재시도 불가]",
            ErrorCategory.UNKNOWN: "[분류되지 않음]",
        }

        return f"{label[category]} {type(error).__name__}: {str(error)}"
