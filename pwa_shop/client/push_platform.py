"""
푸시 플랫폼 인터페이스

알림 권한과 푸시 구독의 실제 소유자(브라우저 PushManager/Notification API)를 추상화합니다.
NotificationService는 이 인터페이스만 사용합니다.
"""

import base64
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from pwa_shop.api.schemas.push_schemas import PushSubscriptionInfo


class PermissionState(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    DEFAULT = "default"  # 요청 전이거나 사용자가 프롬프트를 닫음


class PushPlatform(ABC):
    @abstractmethod
    def is_supported(self) -> bool:
        """서비스 워커 + PushManager 지원 여부"""

    @abstractmethod
    def permission(self) -> PermissionState:
        """현재 알림 권한 상태"""

    @abstractmethod
    async def request_permission(self) -> PermissionState:
        """사용자에게 권한 요청 프롬프트 표시"""

    @abstractmethod
    async def get_subscription(self) -> Optional[PushSubscriptionInfo]:
        """이미 존재하는 구독 (없으면 None)"""

    @abstractmethod
    async def subscribe(self, application_server_key: bytes) -> PushSubscriptionInfo:
        """userVisibleOnly 구독 생성"""

    @abstractmethod
    async def unsubscribe(self) -> bool:
        """구독 해지 (구독이 없었으면 False)"""


def url_base64_to_bytes(base64_string: str) -> bytes:
    """
    URL-safe base64 문자열(VAPID 공개 키)을 바이트로 변환

    패딩('=')이 없어도 처리합니다.

    Raises:
        ValueError: base64로 해석할 수 없는 문자열
    """
    padding = "=" * ((4 - len(base64_string) % 4) % 4)
    return base64.urlsafe_b64decode(base64_string + padding)
