"""
예외 계층

- AppException 계열: status_code / error_code / details를 가지며 알림 API에서는
  전역 핸들러가 {error, message, details} JSON으로 변환합니다.
- 오프라인 런타임은 같은 계열을 사용하고, 페치 실패만 httpx 예외 계층을 따릅니다.
"""

from typing import Optional, Any

import httpx
from fastapi import status


class AppException(Exception):
    """기본 예외 (기본값 500)"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "app_error",
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationException(AppException):
    """400 (예: 구독하지 않은 사용자에게 전송)"""

    def __init__(
        self,
        message: str = "입력 데이터가 유효하지 않습니다.",
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        if field:
            details = details or {}
            details["field"] = field

        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="validation_error",
            details=details,
        )


class NotFoundException(AppException):
    """404"""

    def __init__(
        self,
        resource: str = "리소스",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
    ):
        if message is None:
            if resource_id:
                message = f"{resource}를 찾을 수 없습니다 (ID: {resource_id})"
            else:
                message = f"{resource}를 찾을 수 없습니다."

        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="not_found",
            details={"resource": resource, "resource_id": resource_id},
        )


class UnauthorizedException(AppException):
    def __init__(self, message: str = "인증에 실패했습니다."):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code="unauthorized",
        )


class ForbiddenException(AppException):
    def __init__(self, message: str = "접근 권한이 없습니다."):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="forbidden",
        )


class ExternalServiceException(AppException):
    """503, 푸시 서비스(FCM, Mozilla autopush) 전송 실패"""

    def __init__(
        self,
        service: str,
        message: str = "외부 서비스 요청에 실패했습니다.",
        details: Optional[dict[str, Any]] = None,
    ):
        details = details or {}
        details["service"] = service

        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="external_service_error",
            details=details,
        )


# 푸시/오프라인 런타임 전용 예외 클래스


class UnsupportedPlatformError(AppException):
    """런타임이 필요한 기능(푸시, 백그라운드 동기화)을 제공하지 않을 때"""

    def __init__(self, feature: str = "push"):
        super().__init__(
            message=f"{feature} 기능을 지원하지 않는 환경입니다.",
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            error_code="unsupported_platform",
            details={"feature": feature},
        )


class PermissionDeniedError(AppException):
    """사용자가 알림 권한을 거부했을 때"""

    def __init__(self, message: str = "알림이 차단되었습니다. 브라우저 설정에서 허용해주세요."):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="permission_denied",
        )


class PermissionDismissedError(AppException):
    """사용자가 권한 요청을 허용도 거부도 하지 않고 닫았을 때"""

    def __init__(self, message: str = "알림 권한 요청이 닫혔습니다."):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="permission_dismissed",
        )


class SubscriptionGoneError(AppException):
    """
    푸시 서비스가 구독 endpoint를 더 이상 유효하지 않다고 보고했을 때 (404/410)

    사용자에게 노출하지 않고 로그만 남깁니다.
    """

    def __init__(self, endpoint: str, status_code: int = status.HTTP_410_GONE):
        super().__init__(
            message="푸시 구독이 만료되었습니다.",
            status_code=status_code,
            error_code="subscription_gone",
            details={"endpoint": endpoint[:50]},
        )


class MalformedPushPayloadError(AppException):
    """푸시 메시지가 {title, body, ...} 구조로 파싱되지 않을 때"""

    def __init__(self, reason: str):
        super().__init__(
            message="푸시 메시지 형식이 올바르지 않습니다.",
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="malformed_push_payload",
            details={"reason": reason},
        )


class InstallError(AppException):
    """서비스 워커 설치 중 필수 리소스 사전 캐싱 실패"""

    def __init__(self, url: str, reason: str):
        super().__init__(
            message=f"필수 리소스를 캐싱하지 못했습니다: {url}",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="install_failed",
            details={"url": url, "reason": reason},
        )


class NetworkFailureError(httpx.NetworkError):
    """
    네트워크 실패 후 캐시/오프라인 대체 응답도 없을 때

    httpx 전송 계층 예외를 상속하므로 호출자는 일반 네트워크 오류처럼 처리할 수 있습니다.
    """
