"""
푸시 알림 API 요청/응답 스키마

Web Push 구독 객체, 푸시 페이로드, 알림 이력 응답을 정의합니다.
클라이언트 런타임(pwa_shop.client, pwa_shop.offline)도 같은 스키마를 사용합니다.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Literal, Optional


class PushKeys(BaseModel):
    """푸시 암호화 키"""

    p256dh: str = Field(..., description="Public key for encryption")
    auth: str = Field(..., description="Authentication secret")


class PushSubscriptionInfo(BaseModel):
    """Web Push API의 subscription 객체"""

    endpoint: str = Field(..., description="푸시 서비스 endpoint URL")
    keys: PushKeys

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "endpoint": "https://fcm.googleapis.com/fcm/send/...",
                "keys": {
                    "p256dh": "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA_0QTpQtUbVlUls...",
                    "auth": "tBHItJI5svbpez7KI4CCXg==",
                },
            }
        }
    )


class SubscribeRequest(BaseModel):
    """푸시 구독 등록 요청"""

    subscription: PushSubscriptionInfo


class SendNotificationRequest(BaseModel):
    """단일 사용자 알림 전송 요청"""

    title: str = Field(..., min_length=1, max_length=200, description="알림 제목")
    body: str = Field(..., min_length=1, description="알림 내용")
    data: Dict[str, Any] = Field(default_factory=dict, description="추가 데이터 (url 등)")
    user_id: Optional[str] = Field(None, description="대상 사용자 ID (관리자 전용)")
    type: Literal["order_update", "promotion", "new_product", "general"] = "general"


class BroadcastRequest(BaseModel):
    """전체 구독자 알림 브로드캐스트 요청"""

    title: str = Field(..., min_length=1, max_length=200, description="알림 제목")
    body: str = Field(..., min_length=1, description="알림 내용")
    data: Dict[str, Any] = Field(default_factory=dict, description="추가 데이터")
    type: Literal["order_update", "promotion", "new_product", "general"] = "general"


class BroadcastResponse(BaseModel):
    """브로드캐스트 결과"""

    message: str
    total_users: int
    success_count: int
    fail_count: int


class PushPayload(BaseModel):
    """
    서비스 워커가 수신하는 푸시 메시지 페이로드

    title/body는 필수, 나머지는 선택입니다.
    """

    title: str
    body: str
    icon: Optional[str] = None
    badge: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[int] = None

    @field_validator("data", mode="before")
    @classmethod
    def _null_data(cls, value):
        return {} if value is None else value


class NotificationItem(BaseModel):
    """알림 이력 항목"""

    id: str
    user_id: str
    title: str
    message: str
    type: str
    data: Dict[str, Any]
    read: bool
    sent: bool
    sent_at: Optional[str] = None
    read_at: Optional[str] = None
    created_at: Optional[str] = None


class Pagination(BaseModel):
    current: int
    pages: int
    total: int


class NotificationListResponse(BaseModel):
    """알림 이력 목록 응답"""

    notifications: List[NotificationItem]
    pagination: Pagination
    unread_count: int


class MarkReadResponse(BaseModel):
    message: str
    notification: Optional[NotificationItem] = None


class MessageResponse(BaseModel):
    message: str


class VapidKeyResponse(BaseModel):
    """VAPID 공개 키 응답 (클라이언트 호환을 위해 camelCase 필드)"""

    publicKey: str
