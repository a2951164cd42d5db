"""
사용자(User) 모델

목적: 알림 수신 대상 계정. 푸시 구독 정보의 서버 측 미러와 알림 수신 설정을 보관합니다.
계정 생성/로그인은 인증 서비스의 책임이며 여기서는 다루지 않습니다.
"""

from datetime import datetime
from enum import Enum
from sqlalchemy import Boolean, Column, String, DateTime, JSON, Uuid, CheckConstraint
from sqlalchemy.orm import relationship
import uuid

from .base import Base


class UserRole(str, Enum):
    """사용자 역할"""

    CUSTOMER = "customer"
    ADMIN = "admin"


class UserStatus(str, Enum):
    """계정 상태"""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class User(Base):
    """사용자 모델"""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    role = Column(
        String(50),
        nullable=False,
        default=UserRole.CUSTOMER.value,
    )
    status = Column(
        String(50),
        nullable=False,
        default=UserStatus.ACTIVE.value,
        index=True,
    )

    # 푸시 구독 미러: {"endpoint": ..., "keys": {"p256dh": ..., "auth": ...}}
    push_subscription = Column(JSON(none_as_null=True), nullable=True)

    # 알림 수신 설정
    notify_order_updates = Column(Boolean, nullable=False, default=True)
    notify_promotions = Column(Boolean, nullable=False, default=True)
    notify_new_products = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("role IN ('customer', 'admin')", name="check_user_role"),
        CheckConstraint(
            "status IN ('active', 'suspended', 'deleted')", name="check_user_status"
        ),
    )

    notifications = relationship(
        "Notification", back_populates="user", lazy="dynamic", cascade="all, delete-orphan"
    )

    @classmethod
    def broadcast_preference(cls, notification_type: str):
        """브로드캐스트 수신 여부를 거르는 설정 컬럼 (order_update/general은 필터 없음)"""
        return {
            "promotion": cls.notify_promotions,
            "new_product": cls.notify_new_products,
        }.get(notification_type)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def is_subscribed(self) -> bool:
        return bool(self.push_subscription)

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
