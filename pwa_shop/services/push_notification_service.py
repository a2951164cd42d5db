"""
푸시 알림 서비스

pywebpush(Web Push + VAPID)를 사용하여 푸시 알림을 전송합니다.
사용자 레코드의 구독 미러 관리, 단일 전송, 브로드캐스트, 알림 이력을 담당합니다.
"""

import asyncio
import json
import math
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pywebpush import webpush, WebPushException
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pwa_shop.config import get_settings
from pwa_shop.models.notification import Notification, NotificationType
from pwa_shop.models.user import User
from pwa_shop.utils.exceptions import (
    ExternalServiceException,
    NotFoundException,
    SubscriptionGoneError,
    ValidationException,
)
from pwa_shop.utils.logging import audit_logger, get_logger


logger = get_logger(__name__)

# 푸시 서비스가 구독 만료로 응답하는 상태 코드 (404 Not Found, 410 Gone)
GONE_STATUS_CODES = (404, 410)


@dataclass
class BroadcastResult:
    """브로드캐스트 결과"""

    total_users: int = 0
    success_count: int = 0
    fail_count: int = 0
    cleared_user_ids: List[UUID] = field(default_factory=list)

    @property
    def message(self) -> str:
        return (
            f"Broadcast completed. Sent: {self.success_count}, Failed: {self.fail_count}"
        )


class PushNotificationService:
    """푸시 알림 서비스 클래스"""

    def __init__(
        self,
        db_session: AsyncSession,
        vapid_private_key: Optional[str] = None,
        vapid_claims: Optional[Dict[str, str]] = None,
    ):
        """
        Args:
            db_session: 데이터베이스 세션
            vapid_private_key: VAPID 개인 키 (PEM 또는 base64url DER)
            vapid_claims: VAPID claims (subject 필수, 예: {"sub": "mailto:admin@example.com"})
        """
        settings = get_settings()
        self.db_session = db_session
        self.vapid_private_key = vapid_private_key
        self.vapid_claims = vapid_claims or {}
        self.icon = settings.NOTIFICATION_ICON
        self.badge = settings.NOTIFICATION_BADGE

    # ------------------------------------------------------------------
    # 구독 미러 관리
    # ------------------------------------------------------------------

    async def get_user(self, user_id: UUID) -> Optional[User]:
        result = await self.db_session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def subscribe(self, user_id: UUID, subscription: Dict[str, Any]) -> User:
        """
        푸시 알림 구독 등록 (사용자 레코드에 구독 정보를 덮어씀)

        Args:
            user_id: 사용자 ID
            subscription: {"endpoint": ..., "keys": {"p256dh": ..., "auth": ...}}

        Raises:
            NotFoundException: 사용자가 없는 경우
        """
        user = await self.get_user(user_id)
        if user is None:
            raise NotFoundException(resource="사용자", resource_id=str(user_id))

        user.push_subscription = subscription
        await self.db_session.commit()

        logger.info(f"[OK] Push subscription saved for user {user_id}")
        audit_logger.log_event(
            "push.subscribed",
            user_id=str(user_id),
            resource_type="subscription",
            action="create",
        )
        return user

    async def unsubscribe(self, user_id: UUID) -> bool:
        """
        사용자의 구독 미러 제거

        Returns:
            제거된 구독이 있었는지 여부
        """
        result = await self.db_session.execute(
            update(User)
            .where(User.id == user_id, User.push_subscription.is_not(None))
            .values(push_subscription=None)
        )
        await self.db_session.commit()

        removed = result.rowcount > 0
        logger.info(f"[OK] Cleared push subscription for user {user_id} (removed={removed})")
        return removed

    # ------------------------------------------------------------------
    # 전송
    # ------------------------------------------------------------------

    def build_payload(self, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> str:
        """서비스 워커 push 이벤트가 파싱하는 JSON 페이로드"""
        return json.dumps(
            {
                "title": title,
                "body": body,
                "data": data or {},
                "badge": self.badge,
                "icon": self.icon,
                "timestamp": int(time.time() * 1000),
            },
            ensure_ascii=False,
        )

    def _deliver(self, subscription: Dict[str, Any], payload: str) -> None:
        # pywebpush가 claims에 aud/exp를 채워 넣으므로 호출마다 복사본을 전달
        webpush(
            subscription_info=subscription,
            data=payload,
            vapid_private_key=self.vapid_private_key,
            vapid_claims=dict(self.vapid_claims),
        )

    async def _push(self, subscription: Dict[str, Any], payload: str) -> None:
        """
        구독 하나에 페이로드 전송

        Raises:
            SubscriptionGoneError: 푸시 서비스가 404/410으로 응답한 경우
            WebPushException: 그 밖의 전송 실패
        """
        try:
            await asyncio.to_thread(self._deliver, subscription, payload)
        except WebPushException as e:
            response = getattr(e, "response", None)
            status_code = getattr(response, "status_code", None)
            if status_code in GONE_STATUS_CODES:
                raise SubscriptionGoneError(
                    subscription.get("endpoint", ""), status_code=status_code
                ) from e
            raise

    async def send_to_user(
        self,
        user_id: UUID,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
        notification_type: str = NotificationType.GENERAL.value,
    ) -> Notification:
        """
        사용자에게 푸시 알림 전송

        전송 성공 시에만 알림 이력을 저장합니다.

        Raises:
            NotFoundException: 사용자가 없는 경우
            ValidationException: 사용자가 구독하지 않은 경우
            ExternalServiceException: 푸시 전송 실패 (만료 구독이면 미러도 제거됨)
        """
        user = await self.get_user(user_id)
        if user is None:
            raise NotFoundException(resource="사용자", resource_id=str(user_id))

        if not user.push_subscription:
            raise ValidationException(
                message="User not subscribed to push notifications",
                field="push_subscription",
            )

        payload = self.build_payload(title, body, data)

        try:
            await self._push(user.push_subscription, payload)
        except SubscriptionGoneError as e:
            logger.info(f"[OK] Removing expired subscription for user {user_id}: {e.details}")
            await self.unsubscribe(user_id)
            raise ExternalServiceException(
                service="web-push", message="Failed to send push notification"
            )
        except WebPushException as e:
            logger.error(f"[FAIL] Failed to send push notification to user {user_id}: {e}")
            raise ExternalServiceException(
                service="web-push", message="Failed to send push notification"
            )

        notification = Notification(
            user_id=user_id,
            title=title,
            message=body,
            type=notification_type,
            data=data or {},
            sent=True,
            sent_at=datetime.utcnow(),
        )
        self.db_session.add(notification)
        await self.db_session.commit()
        await self.db_session.refresh(notification)

        logger.info(f"[OK] Push notification sent to user {user_id}")
        return notification

    async def _broadcast_recipients(self, notification_type: str) -> List[User]:
        stmt = select(User).where(User.push_subscription.is_not(None))
        preference = User.broadcast_preference(notification_type)
        if preference is not None:
            stmt = stmt.where(preference.is_(True))

        result = await self.db_session.execute(stmt)
        return list(result.scalars().all())

    async def broadcast(
        self,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
        notification_type: str = NotificationType.GENERAL.value,
    ) -> BroadcastResult:
        """
        구독 중인 모든 사용자에게 알림 브로드캐스트

        전송은 동시에 수행하고, 결과 반영(만료 구독 제거, 이력 저장)은 세션에서 순차 처리합니다.
        404/410 응답을 받은 사용자의 구독만 제거되며 다른 수신자의 구독은 유지됩니다.
        """
        users = await self._broadcast_recipients(notification_type)
        payload = self.build_payload(title, body, data)

        outcomes = await asyncio.gather(
            *(self._push(user.push_subscription, payload) for user in users),
            return_exceptions=True,
        )

        result = BroadcastResult(total_users=len(users))
        sent_at = datetime.utcnow()

        for user, outcome in zip(users, outcomes):
            delivered = not isinstance(outcome, BaseException)

            if delivered:
                result.success_count += 1
            else:
                result.fail_count += 1
                logger.error(f"[FAIL] Failed to send to user {user.id}: {outcome!r}")

                if isinstance(outcome, SubscriptionGoneError):
                    user.push_subscription = None
                    result.cleared_user_ids.append(user.id)
                    logger.info(f"[OK] Removing expired subscription for user {user.id}")
                elif not isinstance(outcome, Exception):
                    raise outcome

            self.db_session.add(
                Notification(
                    user_id=user.id,
                    title=title,
                    message=body,
                    type=notification_type,
                    data=data or {},
                    sent=delivered,
                    sent_at=sent_at if delivered else None,
                )
            )

        await self.db_session.commit()

        audit_logger.log_event(
            "push.broadcast",
            resource_type="notification",
            action="create",
            details={
                "type": notification_type,
                "total": result.total_users,
                "success": result.success_count,
                "failed": result.fail_count,
            },
        )
        return result

    # ------------------------------------------------------------------
    # 알림 이력
    # ------------------------------------------------------------------

    async def list_notifications(
        self,
        user_id: UUID,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
    ) -> Dict[str, Any]:
        """
        사용자 알림 이력 조회 (최신순)

        Returns:
            {"notifications": [...], "pagination": {...}, "unread_count": int}
        """
        filters = [Notification.user_id == user_id]
        if unread_only:
            filters.append(Notification.read.is_(False))

        result = await self.db_session.execute(
            select(Notification)
            .where(*filters)
            .order_by(Notification.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        notifications = list(result.scalars().all())

        total = await self.db_session.scalar(
            select(func.count()).select_from(Notification).where(*filters)
        )
        unread_count = await self.db_session.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
        )

        return {
            "notifications": [n.to_dict() for n in notifications],
            "pagination": {
                "current": page,
                "pages": math.ceil(total / limit) if limit else 0,
                "total": total,
            },
            "unread_count": unread_count,
        }

    async def mark_as_read(self, user_id: UUID, notification_id: UUID) -> Notification:
        """
        Raises:
            NotFoundException: 본인 알림이 아니거나 존재하지 않는 경우
        """
        result = await self.db_session.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        )
        notification = result.scalar_one_or_none()
        if notification is None:
            raise NotFoundException(resource="알림", resource_id=str(notification_id))

        notification.mark_read()
        await self.db_session.commit()
        await self.db_session.refresh(notification)
        return notification

    async def mark_all_as_read(self, user_id: UUID) -> int:
        result = await self.db_session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .values(read=True, read_at=datetime.utcnow())
        )
        await self.db_session.commit()
        return result.rowcount


async def get_push_notification_service(
    db_session: AsyncSession,
    vapid_private_key: Optional[str] = None,
    vapid_claims: Optional[Dict[str, str]] = None,
) -> PushNotificationService:
    """푸시 알림 서비스 인스턴스 생성 (의존성 주입용)"""
    settings = get_settings()
    return PushNotificationService(
        db_session,
        vapid_private_key or settings.VAPID_PRIVATE_KEY,
        vapid_claims or settings.vapid_claims,
    )
