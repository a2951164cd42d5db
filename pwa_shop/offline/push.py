"""
서비스 워커 푸시 이벤트 처리

- push: 페이로드({title, body, icon?, badge?, data?})를 파싱하여 알림 표시
- notificationclick: 'view' 액션이면 data.url(기본 '/') 페이지에 포커스하거나 새 창 열기

이벤트 핸들러는 예외를 밖으로 던지지 않고 로그만 남깁니다.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from pwa_shop.api.schemas.push_schemas import PushPayload
from pwa_shop.config import Settings, get_settings
from pwa_shop.offline.clients import Clients, WindowClient
from pwa_shop.utils.exceptions import MalformedPushPayloadError
from pwa_shop.utils.logging import get_logger

logger = get_logger(__name__)

VIBRATE_PATTERN = [100, 50, 100]


class NotificationAction(BaseModel):
    action: str
    title: str
    icon: Optional[str] = None


class NotificationOptions(BaseModel):
    """표시할 알림의 옵션 (Notification API options)"""

    body: str
    icon: Optional[str] = None
    badge: Optional[str] = None
    vibrate: List[int] = Field(default_factory=lambda: list(VIBRATE_PATTERN))
    data: Dict[str, Any] = Field(default_factory=dict)
    actions: List[NotificationAction] = Field(default_factory=list)


@dataclass
class DisplayedNotification:
    title: str
    options: NotificationOptions
    closed: bool = False

    @property
    def data(self) -> Dict[str, Any]:
        return self.options.data

    def close(self) -> None:
        self.closed = True


class NotificationSurface(ABC):
    """알림을 실제로 표시하는 플랫폼 계층"""

    @abstractmethod
    async def show_notification(
        self, title: str, options: NotificationOptions
    ) -> DisplayedNotification:
        pass

    @abstractmethod
    async def get_notifications(self) -> List[DisplayedNotification]:
        pass


@dataclass
class InMemoryNotificationSurface(NotificationSurface):
    """표시된 알림을 메모리에 보관하는 기본 구현"""

    shown: List[DisplayedNotification] = field(default_factory=list)

    async def show_notification(
        self, title: str, options: NotificationOptions
    ) -> DisplayedNotification:
        notification = DisplayedNotification(title=title, options=options)
        self.shown.append(notification)
        return notification

    async def get_notifications(self) -> List[DisplayedNotification]:
        return [notification for notification in self.shown if not notification.closed]


def parse_push_payload(data: Union[bytes, str]) -> PushPayload:
    """
    푸시 메시지 본문을 PushPayload로 파싱

    Raises:
        MalformedPushPayloadError: JSON이 아니거나 title/body가 없는 경우
    """
    try:
        raw = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedPushPayloadError(reason=f"invalid json: {e}") from e

    if not isinstance(raw, dict):
        raise MalformedPushPayloadError(reason="payload is not an object")

    try:
        return PushPayload.model_validate(raw)
    except ValidationError as e:
        raise MalformedPushPayloadError(reason=str(e)) from e


class PushEventHandler:
    """
    push / notificationclick 이벤트 처리기

    Args:
        surface: 알림 표시 계층
        clients: 열린 페이지 레지스트리
        settings: 기본 아이콘/배지 경로 (기본값: get_settings())
    """

    def __init__(
        self,
        surface: NotificationSurface,
        clients: Clients,
        settings: Optional[Settings] = None,
    ):
        self.surface = surface
        self.clients = clients
        self.settings = settings or get_settings()

    def build_options(self, payload: PushPayload) -> NotificationOptions:
        icon = self.settings.NOTIFICATION_ICON
        return NotificationOptions(
            body=payload.body,
            icon=payload.icon or icon,
            badge=payload.badge or self.settings.NOTIFICATION_BADGE,
            data=payload.data,
            actions=[
                NotificationAction(action="view", title="View", icon=icon),
                NotificationAction(action="close", title="Close", icon=icon),
            ],
        )

    async def handle_push(
        self, data: Union[bytes, str, None]
    ) -> Optional[DisplayedNotification]:
        """데이터가 없거나 형식이 잘못된 메시지는 표시하지 않음"""
        if not data:
            logger.debug("Push event without data ignored")
            return None

        try:
            payload = parse_push_payload(data)
        except MalformedPushPayloadError as e:
            logger.warning(f"[WARN] Malformed push payload skipped: {e.details['reason']}")
            return None

        try:
            notification = await self.surface.show_notification(
                payload.title, self.build_options(payload)
            )
        except Exception as e:
            logger.error(
                f"[FAIL] Failed to show notification \"{payload.title}\": {e!r}", exc_info=True
            )
            return None

        logger.info(f"Notification shown: {payload.title}")
        return notification

    async def handle_notification_click(
        self, notification: DisplayedNotification, action: Optional[str] = None
    ) -> Optional[WindowClient]:
        """
        알림 클릭 처리

        'view' 액션이면 대상 URL의 기존 창에 포커스하고, 없으면 새 창을 엽니다.
        그 외('close', 본문 클릭)는 알림만 닫습니다.
        """
        notification.close()

        if action != "view":
            return None

        url_to_open = notification.data.get("url") or "/"
        try:
            for client in await self.clients.match_all(include_uncontrolled=True):
                if client.url == url_to_open:
                    return await self.clients.focus(client.id)

            return await self.clients.open_window(url_to_open)
        except Exception as e:
            logger.error(
                f"[FAIL] Failed to open {url_to_open} from notification: {e!r}", exc_info=True
            )
            return None
