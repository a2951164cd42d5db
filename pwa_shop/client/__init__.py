"""
페이지 측 클라이언트 패키지

알림 API 클라이언트, 푸시 플랫폼 인터페이스, 푸시 구독 관리자,
오프라인 대응 쇼핑 API와 상품 캐시를 제공합니다.
"""

from pwa_shop.client.api import NotificationsAPI
from pwa_shop.client.notification_service import (
    Failed,
    NotificationService,
    Subscribed,
    Subscribing,
    Toaster,
    Unsubscribed,
)
from pwa_shop.client.offline_cache import ProductCache
from pwa_shop.client.push_platform import (
    PermissionState,
    PushPlatform,
    url_base64_to_bytes,
)
from pwa_shop.client.shop_api import ShopAPI

__all__ = [
    "NotificationsAPI",
    "ProductCache",
    "ShopAPI",
    "NotificationService",
    "Toaster",
    "Unsubscribed",
    "Subscribing",
    "Subscribed",
    "Failed",
    "PermissionState",
    "PushPlatform",
    "url_base64_to_bytes",
]
