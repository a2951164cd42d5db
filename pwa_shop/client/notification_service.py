"""
푸시 구독 관리자 (페이지 측)

알림 권한 요청, 푸시 구독 생성/해지, 서버 구독 미러 등록, 알림 이력 조회를 담당합니다.
애플리케이션 시작 시 한 번 만들어 필요한 곳에 전달하는 컨텍스트 객체입니다.

구독 상태는 다음 중 하나입니다.
- Unsubscribed: 구독 없음
- Subscribing: 권한 요청/구독 생성/서버 등록 진행 중
- Subscribed(subscription): 서버가 구독을 저장함
- Failed(reason): 마지막 구독 시도 실패 (구독 없음으로 취급)

구독/해지는 asyncio.Lock으로 직렬화되어 동시에 호출되어도 순서대로 처리됩니다.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from pwa_shop.api.schemas.push_schemas import PushSubscriptionInfo
from pwa_shop.client.api import NotificationsAPI
from pwa_shop.client.push_platform import (
    PermissionState,
    PushPlatform,
    url_base64_to_bytes,
)
from pwa_shop.utils.exceptions import (
    PermissionDeniedError,
    PermissionDismissedError,
    UnsupportedPlatformError,
)
from pwa_shop.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Unsubscribed:
    pass


@dataclass(frozen=True)
class Subscribing:
    pass


@dataclass(frozen=True)
class Subscribed:
    subscription: PushSubscriptionInfo


@dataclass(frozen=True)
class Failed:
    reason: str


SubscriptionState = Union[Unsubscribed, Subscribing, Subscribed, Failed]


ORDER_TITLES = {
    "created": "Order Confirmed!",
    "processing": "Order Processing",
    "shipped": "Order Shipped!",
    "delivered": "Order Delivered!",
    "cancelled": "Order Cancelled",
}

ORDER_BODIES = {
    "created": "Your order #{short_id} has been confirmed",
    "processing": "Your order #{short_id} is being processed",
    "shipped": "Your order #{short_id} has been shipped",
    "delivered": "Your order #{short_id} has been delivered",
    "cancelled": "Your order #{short_id} has been cancelled",
}


class Toaster:
    """사용자에게 보이는 짧은 메시지 (기본 구현은 로그로 출력)"""

    def success(self, message: str) -> None:
        logger.info(f"[OK] {message}")

    def error(self, message: str) -> None:
        logger.error(f"[FAIL] {message}")

    def info(self, message: str) -> None:
        logger.info(message)


class NotificationService:
    """
    푸시 알림 구독 관리자

    Args:
        api: 알림 API 클라이언트
        platform: 권한/구독을 소유한 푸시 플랫폼
        toaster: 사용자 메시지 출력 (기본값: 로그 출력)

    Example:
        ```python
        service = NotificationService(NotificationsAPI(client), platform)
        await service.init()
        if not service.is_subscribed:
            await service.subscribe()
        ```
    """

    def __init__(
        self,
        api: NotificationsAPI,
        platform: PushPlatform,
        toaster: Optional[Toaster] = None,
    ):
        self.api = api
        self.platform = platform
        self.toaster = toaster or Toaster()
        self.vapid_public_key: Optional[str] = None
        self._state: SubscriptionState = Unsubscribed()
        self._lock = asyncio.Lock()

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def is_subscribed(self) -> bool:
        return isinstance(self._state, Subscribed)

    @property
    def subscription(self) -> Optional[PushSubscriptionInfo]:
        if isinstance(self._state, Subscribed):
            return self._state.subscription
        return None

    def _set_state(self, state: SubscriptionState) -> None:
        if state != self._state:
            logger.debug(f"Subscription state: {self._state} -> {state}")
        self._state = state

    def is_supported(self) -> bool:
        return self.platform.is_supported()

    def get_permission_status(self) -> PermissionState:
        return self.platform.permission()

    async def init(self) -> None:
        """
        서버 공개 키 조회 및 기존 구독 확인

        여러 번 호출해도 안전하며, 실패는 로그로만 남깁니다.
        """
        try:
            self.vapid_public_key = await self.api.get_vapid_key()
            existing = None
            if self.platform.is_supported():
                existing = await self.platform.get_subscription()
        except Exception as e:
            logger.error(f"[FAIL] Failed to initialize notification service: {e}", exc_info=True)
            return

        if not isinstance(self._state, Subscribing):
            self._set_state(Subscribed(existing) if existing else Unsubscribed())
        logger.info("Notification service initialized")

    async def request_permission(self) -> bool:
        """권한 요청 후 결과를 사용자 메시지로 표시"""
        try:
            if not self.platform.is_supported():
                raise UnsupportedPlatformError("push")
            permission = await self.platform.request_permission()
        except Exception as e:
            logger.error(f"[FAIL] Error requesting notification permission: {e}", exc_info=True)
            self.toaster.error("Failed to request notification permission")
            return False

        if permission == PermissionState.GRANTED:
            self.toaster.success("Notifications enabled!")
            return True
        if permission == PermissionState.DENIED:
            self.toaster.error("Notifications blocked. Enable them in browser settings.")
            return False

        self.toaster.info("Notification permission dismissed")
        return False

    async def _ensure_permission(self) -> None:
        if self.platform.permission() == PermissionState.GRANTED:
            return

        permission = await self.platform.request_permission()
        if permission == PermissionState.DENIED:
            raise PermissionDeniedError()
        if permission != PermissionState.GRANTED:
            raise PermissionDismissedError()

    async def _create_subscription(self) -> PushSubscriptionInfo:
        if not self.platform.is_supported():
            raise UnsupportedPlatformError("push")

        if not self.vapid_public_key:
            self.vapid_public_key = await self.api.get_vapid_key()

        await self._ensure_permission()

        # 플랫폼에 이미 구독이 있으면 재사용 (중복 구독 방지)
        subscription = await self.platform.get_subscription()
        if subscription is None:
            subscription = await self.platform.subscribe(
                url_base64_to_bytes(self.vapid_public_key)
            )

        await self.api.subscribe(subscription)
        return subscription

    async def subscribe(self) -> bool:
        """
        푸시 알림 구독

        서버가 구독을 저장한 뒤에만 Subscribed 상태가 됩니다.

        Returns:
            bool: 구독 성공 여부
        """
        async with self._lock:
            if isinstance(self._state, Subscribed):
                return True

            self._set_state(Subscribing())
            try:
                subscription = await self._create_subscription()
            except PermissionDeniedError as e:
                self._set_state(Unsubscribed())
                self.toaster.error(e.message)
                return False
            except PermissionDismissedError as e:
                self._set_state(Unsubscribed())
                self.toaster.info(e.message)
                return False
            except Exception as e:
                logger.error(f"[FAIL] Error subscribing to notifications: {e}", exc_info=True)
                self._set_state(Failed(reason=str(e)))
                self.toaster.error("Failed to subscribe to notifications")
                return False

            self._set_state(Subscribed(subscription))
            self.toaster.success("Successfully subscribed to notifications!")
            return True

    async def unsubscribe(self) -> bool:
        """
        푸시 구독 해지

        플랫폼 구독을 해지한 뒤 서버 구독 미러도 제거합니다 (서버 호출 실패는 로그만 남김).

        Returns:
            bool: 해지된 구독이 있었는지 여부
        """
        async with self._lock:
            try:
                unsubscribed = await self.platform.unsubscribe()
            except Exception as e:
                logger.error(f"[FAIL] Error unsubscribing from notifications: {e}", exc_info=True)
                self.toaster.error("Failed to unsubscribe from notifications")
                return False

            self._set_state(Unsubscribed())
            if not unsubscribed:
                return False

            try:
                await self.api.unsubscribe()
            except Exception as e:
                logger.warning(f"[WARN] Failed to clear server subscription: {e}")

            self.toaster.success("Unsubscribed from notifications")
            return True

    # ========================================
    # 알림 전송/이력
    # ========================================

    async def send_test_notification(self) -> bool:
        try:
            await self.api.send_notification(
                {
                    "title": "Test Notification",
                    "body": "This is a test notification from PWA Shop!",
                    "data": {"url": "/"},
                }
            )
        except Exception as e:
            logger.error(f"[FAIL] Error sending test notification: {e}")
            self.toaster.error("Failed to send test notification")
            return False

        self.toaster.success("Test notification sent!")
        return True

    async def send_order_notification(
        self, order: Dict[str, Any], status: str = "created"
    ) -> bool:
        """주문 상태 변경 알림 (created, processing, shipped, delivered, cancelled)"""
        if status not in ORDER_TITLES:
            raise ValueError(f"Unknown order status: {status}")

        order_id = str(order.get("_id") or order.get("id") or "")
        try:
            await self.api.send_notification(
                {
                    "title": ORDER_TITLES[status],
                    "body": ORDER_BODIES[status].format(short_id=order_id[-6:]),
                    "type": "order_update",
                    "data": {
                        "url": f"/orders/{order_id}",
                        "orderId": order_id,
                        "type": "order_update",
                    },
                }
            )
        except Exception as e:
            logger.error(f"[FAIL] Error sending order notification: {e}")
            return False
        return True

    async def send_promotional_notification(
        self, title: str, message: str, url: str = "/"
    ) -> bool:
        try:
            await self.api.send_notification(
                {
                    "title": title,
                    "body": message,
                    "type": "promotion",
                    "data": {"url": url, "type": "promotion"},
                }
            )
        except Exception as e:
            logger.error(f"[FAIL] Error sending promotional notification: {e}")
            return False
        return True

    async def get_notifications(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            return await self.api.get_notifications(params)
        except Exception as e:
            logger.error(f"[FAIL] Error fetching notifications: {e}")
            return {"notifications": [], "unread_count": 0}

    async def mark_as_read(self, notification_id: str) -> bool:
        try:
            await self.api.mark_as_read(notification_id)
        except Exception as e:
            logger.error(f"[FAIL] Error marking notification as read: {e}")
            return False
        return True

    async def mark_all_as_read(self) -> bool:
        try:
            await self.api.mark_all_as_read()
        except Exception as e:
            logger.error(f"[FAIL] Error marking all notifications as read: {e}")
            self.toaster.error("Failed to mark notifications as read")
            return False

        self.toaster.success("All notifications marked as read")
        return True
