"""
데이터베이스 모델 패키지

서버(알림 API) 측 SQLAlchemy 모델을 관리합니다.
클라이언트 오프라인 저장소 모델은 pwa_shop.offline.database 에 있습니다.
"""

from .base import Base, TimestampMixin, get_db, init_db, close_db
from .user import User, UserRole, UserStatus
from .notification import Notification, NotificationType

__all__ = [
    "Base",
    "TimestampMixin",
    "get_db",
    "init_db",
    "close_db",
    "User",
    "UserRole",
    "UserStatus",
    "Notification",
    "NotificationType",
]
