"""
서비스 워커 조립 및 등록 관리

ServiceWorker는 한 버전의 워커가 사용하는 구성 요소(캐시, 요청 가로채기, 라이프사이클,
푸시/동기화 처리기)를 묶습니다. ServiceWorkerRegistration은 활성 워커를 보관하며,
새 버전 설치가 실패하면 기존 활성 워커를 유지합니다.

Example:
    ```python
    database = OfflineDatabase(settings.CACHE_DATABASE_URL)
    await database.init()

    registration = ServiceWorkerRegistration(database)
    worker = await registration.update(
        ServiceWorker(database, httpx.AsyncHTTPTransport(), registration.clients)
    )

    async with worker.client() as client:
        products = (await client.get("/api/products")).json()
    ```
"""

from typing import Optional, Union

import httpx

from pwa_shop.config import Settings, get_settings
from pwa_shop.offline.cache_storage import CacheStorage
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
from pwa_shop.offline.sync import (
    BackgroundSync,
    OfflineActionQueue,
    SyncManager,
    SyncResult,
)
from pwa_shop.offline.transport import OfflineTransport
from pwa_shop.utils.exceptions import InstallError
from pwa_shop.utils.logging import get_logger

logger = get_logger(__name__)


class ServiceWorker:
    """
    한 버전의 서비스 워커

    Args:
        database: 오프라인 저장소
        network: 실제 네트워크 전송 계층
        clients: 열린 페이지 레지스트리
        surface: 알림 표시 계층 (기본값: 메모리 구현)
        settings: 설정 (기본값: get_settings())
    """

    def __init__(
        self,
        database: OfflineDatabase,
        network: httpx.AsyncBaseTransport,
        clients: Clients,
        surface: Optional[NotificationSurface] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.database = database
        self.network = network
        self.clients = clients

        self.caches = CacheStorage(database, self.settings.APP_ORIGIN)
        self.local_storage = LocalStorage(database)
        self.lifecycle = LifecycleController(self.caches, network, clients, self.settings)
        self.transport = OfflineTransport(network, self.caches, self.local_storage, self.settings)
        self.push = PushEventHandler(surface or InMemoryNotificationSurface(), clients, self.settings)
        self.queue = OfflineActionQueue(database)
        self.background_sync = BackgroundSync(self.queue, network, self.settings)

    def __repr__(self) -> str:
        return f"<ServiceWorker(version={self.version}, state={self.state.value})>"

    @property
    def version(self) -> str:
        return self.settings.CACHE_VERSION

    @property
    def state(self) -> WorkerState:
        return self.lifecycle.state

    async def install(self) -> None:
        await self.lifecycle.install()

    async def activate(self) -> list[str]:
        return await self.lifecycle.activate()

    def client(self, **kwargs) -> httpx.AsyncClient:
        """
        요청 가로채기가 적용된 httpx 클라이언트

        클라이언트를 닫아도 워커의 전송 계층은 닫히지 않습니다. 워커 종료는 aclose()로 합니다.
        """
        kwargs.setdefault("base_url", self.settings.APP_ORIGIN)
        return httpx.AsyncClient(transport=_SharedTransport(self.transport), **kwargs)

    async def on_push(
        self, data: Union[bytes, str, None]
    ) -> Optional[DisplayedNotification]:
        return await self.push.handle_push(data)

    async def on_notification_click(
        self, notification: DisplayedNotification, action: Optional[str] = None
    ) -> Optional[WindowClient]:
        return await self.push.handle_notification_click(notification, action)

    async def on_sync(self, tag: str) -> Optional[SyncResult]:
        return await self.background_sync.handle_sync(tag)

    async def aclose(self) -> None:
        await self.transport.aclose()


class _SharedTransport(httpx.AsyncBaseTransport):
    """AsyncClient 종료 시 워커 전송 계층까지 닫히지 않도록 감싸는 전송 계층"""

    def __init__(self, transport: OfflineTransport):
        self._transport = transport

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return await self._transport.handle_async_request(request)

    async def aclose(self) -> None:
        await self._transport.drain()


class ServiceWorkerRegistration:
    """
    활성 워커 보관 및 업데이트

    Args:
        database: 오프라인 저장소
        sync_supported: 런타임이 백그라운드 동기화를 지원하는지 여부
    """

    def __init__(self, database: OfflineDatabase, sync_supported: bool = True):
        self.database = database
        self.clients = Clients()
        self.sync = SyncManager(database, supported=sync_supported)
        self.active: Optional[ServiceWorker] = None
        self.waiting: Optional[ServiceWorker] = None

    async def update(self, worker: ServiceWorker) -> Optional[ServiceWorker]:
        """
        새 워커 설치 후 (skip-waiting이면) 바로 활성화

        설치가 실패하면 기존 활성 워커를 그대로 유지하고 반환합니다.
        """
        try:
            await worker.install()
        except InstallError:
            logger.warning(
                f"[WARN] Keeping active worker "
                f"{self.active.version if self.active else None} after failed install"
            )
            return self.active

        if not worker.lifecycle.skip_waiting:
            self.waiting = worker
            return self.active

        previous = self.active
        if previous is not None and previous is not worker:
            # 활성화가 이전 버전 파티션을 지우기 전에 남은 캐시 저장을 끝냄
            await previous.transport.drain()
        await worker.activate()
        self.active = worker
        self.waiting = None
        if previous is not None and previous is not worker:
            previous.lifecycle.state = WorkerState.REDUNDANT

        return self.active

    async def dispatch_sync(self) -> dict[str, Optional[SyncResult]]:
        """
        등록된 동기화 태그마다 활성 워커의 sync 이벤트 실행 (연결 복구 시 호출)

        처리가 끝난 태그는 등록 해제하고, 재전송할 액션이 남아 있으면 다음 호출까지 유지합니다.
        """
        if self.active is None:
            return {}

        results: dict[str, Optional[SyncResult]] = {}
        for tag in await self.sync.get_tags():
            result = await self.active.on_sync(tag)
            results[tag] = result
            if result is None or result.remaining_count == 0:
                await self.sync.unregister(tag)
        return results
