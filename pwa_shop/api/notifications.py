"""
푸시 알림 API 엔드포인트

PWA 푸시 알림 구독/해지, 알림 전송/브로드캐스트, 알림 이력 API를 제공합니다.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pwa_shop.api.schemas.push_schemas import (
    BroadcastRequest,
    BroadcastResponse,
    MarkReadResponse,
    MessageResponse,
    NotificationListResponse,
    SendNotificationRequest,
    SubscribeRequest,
    VapidKeyResponse,
)
from pwa_shop.config import get_settings
from pwa_shop.middleware.auth import get_current_user, require_admin
from pwa_shop.models.base import get_db
from pwa_shop.models.user import User
from pwa_shop.services.push_notification_service import get_push_notification_service
from pwa_shop.utils.exceptions import ValidationException

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get(
    "/vapid-public-key",
    response_model=VapidKeyResponse,
    summary="VAPID 공개 키 조회",
)
async def get_vapid_public_key():
    """클라이언트가 pushManager.subscribe()에 사용할 applicationServerKey"""
    return VapidKeyResponse(publicKey=get_settings().VAPID_PUBLIC_KEY)


@router.post(
    "/subscribe",
    response_model=MessageResponse,
    summary="푸시 알림 구독 등록",
    description="Web Push API의 subscription 객체를 사용자 레코드에 저장합니다.",
)
async def subscribe(
    request: SubscribeRequest,
    current_user: User = Depends(get_current_user),
    db_session: AsyncSession = Depends(get_db),
):
    push_service = await get_push_notification_service(db_session)
    await push_service.subscribe(current_user.id, request.subscription.model_dump())

    logger.info(f"[OK] User {current_user.id} subscribed to push notifications")
    return MessageResponse(message="Push subscription saved successfully")


@router.delete(
    "/subscribe",
    response_model=MessageResponse,
    summary="푸시 알림 구독 해지",
    description="사용자 레코드의 구독 미러를 제거합니다.",
)
async def unsubscribe(
    current_user: User = Depends(get_current_user),
    db_session: AsyncSession = Depends(get_db),
):
    push_service = await get_push_notification_service(db_session)
    removed = await push_service.unsubscribe(current_user.id)

    logger.info(f"[OK] User {current_user.id} unsubscribed (removed={removed})")
    return MessageResponse(message="Push subscription removed")


@router.post(
    "/send",
    response_model=MessageResponse,
    summary="푸시 알림 전송",
    description="본인에게 알림을 전송합니다. 관리자는 user_id로 다른 사용자를 지정할 수 있습니다.",
)
async def send_notification(
    request: SendNotificationRequest,
    current_user: User = Depends(get_current_user),
    db_session: AsyncSession = Depends(get_db),
):
    target_user_id = current_user.id
    if request.user_id and current_user.is_admin:
        try:
            target_user_id = UUID(request.user_id)
        except ValueError:
            raise ValidationException(message="잘못된 사용자 ID 형식입니다.", field="user_id")

    push_service = await get_push_notification_service(db_session)
    await push_service.send_to_user(
        target_user_id,
        title=request.title,
        body=request.body,
        data=request.data,
        notification_type=request.type,
    )
    return MessageResponse(message="Push notification sent successfully")


@router.post(
    "/broadcast",
    response_model=BroadcastResponse,
    summary="전체 구독자 브로드캐스트 (관리자 전용)",
)
async def broadcast(
    request: BroadcastRequest,
    admin: User = Depends(require_admin),
    db_session: AsyncSession = Depends(get_db),
):
    push_service = await get_push_notification_service(db_session)
    result = await push_service.broadcast(
        title=request.title,
        body=request.body,
        data=request.data,
        notification_type=request.type,
    )

    logger.info(f"[OK] Broadcast by admin {admin.id}: {result.message}")
    return BroadcastResponse(
        message=result.message,
        total_users=result.total_users,
        success_count=result.success_count,
        fail_count=result.fail_count,
    )


@router.get(
    "",
    response_model=NotificationListResponse,
    summary="내 알림 이력 조회",
)
async def get_notifications(
    page: int = Query(1, ge=1, description="페이지 번호"),
    limit: int = Query(20, ge=1, le=100, description="페이지 크기"),
    unread_only: bool = Query(False, description="읽지 않은 알림만"),
    current_user: User = Depends(get_current_user),
    db_session: AsyncSession = Depends(get_db),
):
    push_service = await get_push_notification_service(db_session)
    return await push_service.list_notifications(
        current_user.id, page=page, limit=limit, unread_only=unread_only
    )


@router.put(
    "/read-all",
    response_model=MessageResponse,
    summary="모든 알림 읽음 처리",
)
async def mark_all_as_read(
    current_user: User = Depends(get_current_user),
    db_session: AsyncSession = Depends(get_db),
):
    push_service = await get_push_notification_service(db_session)
    updated = await push_service.mark_all_as_read(current_user.id)

    logger.info(f"[OK] Marked {updated} notifications as read for user {current_user.id}")
    return MessageResponse(message="All notifications marked as read")


@router.put(
    "/{notification_id}/read",
    response_model=MarkReadResponse,
    summary="알림 읽음 처리",
)
async def mark_as_read(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db_session: AsyncSession = Depends(get_db),
):
    push_service = await get_push_notification_service(db_session)
    notification = await push_service.mark_as_read(current_user.id, notification_id)
    return MarkReadResponse(
        message="Notification marked as read",
        notification=notification.to_dict(),
    )
