"""
유틸리티 패키지

보안, 로깅, 예외 처리 등의 공통 유틸리티를 제공합니다.
"""

from pwa_shop.utils.security import JWTManager

from pwa_shop.utils.logging import (
    setup_logging,
    get_logger,
    AuditLogger,
    audit_logger,
)

from pwa_shop.utils.exceptions import (
    AppException,
    ValidationException,
    NotFoundException,
    UnauthorizedException,
    ForbiddenException,
    ExternalServiceException,
    # 푸시/오프라인 전용
    UnsupportedPlatformError,
    PermissionDeniedError,
    PermissionDismissedError,
    SubscriptionGoneError,
    MalformedPushPayloadError,
    InstallError,
    NetworkFailureError,
)

__all__ = [
    # 보안
    "JWTManager",
    # 로깅
    "setup_logging",
    "get_logger",
    "AuditLogger",
    "audit_logger",
    # 예외
    "AppException",
    "ValidationException",
    "NotFoundException",
    "UnauthorizedException",
    "ForbiddenException",
    "ExternalServiceException",
    "UnsupportedPlatformError",
    "PermissionDeniedError",
    "PermissionDismissedError",
    "SubscriptionGoneError",
    "MalformedPushPayloadError",
    "InstallError",
    "NetworkFailureError",
]
