"""
오프라인 런타임 (서비스 워커) 패키지

캐시 저장소, 요청 가로채기, 라이프사이클, 푸시/알림 클릭, 백그라운드 동기화를 제공합니다.
"""

from pwa_shop.offline.cache_storage import Cache, CachedResponse, CacheStorage
from pwa_shop.offline.clients import Clients, WindowClient
from pwa_shop.offline.database import OfflineDatabase
from pwa_shop.offline.lifecycle import LifecycleController, WorkerState
from pwa_shop.offline.local_storage import LocalStorage
from pwa_shop.offline.push import (
    DisplayedNotification,
    InMemoryNotificationSurface,
    NotificationSurface,
    PushEventHandler,
)
from pwa_shop.offline.sync import BackgroundSync, OfflineActionQueue, SyncManager
from pwa_shop.offline.transport import OfflineTransport
from pwa_shop.offline.worker import ServiceWorker, ServiceWorkerRegistration

__all__ = [
    "Cache",
    "CachedResponse",
    "CacheStorage",
    "Clients",
    "WindowClient",
    "OfflineDatabase",
    "LifecycleController",
    "WorkerState",
    "LocalStorage",
    "DisplayedNotification",
    "InMemoryNotificationSurface",
    "NotificationSurface",
    "PushEventHandler",
    "BackgroundSync",
    "OfflineActionQueue",
    "SyncManager",
    "OfflineTransport",
    "ServiceWorker",
    "ServiceWorkerRegistration",
]
