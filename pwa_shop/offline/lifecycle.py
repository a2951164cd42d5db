"""
서비스 워커 라이프사이클 관리 (install / activate)

상태 전이: parsed → installing → installed → activating → activated
설치 실패 시: installing → redundant (이전 활성 워커 유지)

- install: 정적 캐시 파티션에 필수 리소스를 사전 캐싱하고 API 캐시 파티션을 생성
- activate: 현재 버전이 아닌 캐시 파티션을 모두 삭제한 뒤 열린 페이지를 claim
"""

from enum import Enum
from typing import Optional

import httpx

from pwa_shop.config import Settings, get_settings
from pwa_shop.offline.cache_storage import CacheStorage
from pwa_shop.offline.clients import Clients
from pwa_shop.utils.exceptions import InstallError
from pwa_shop.utils.logging import get_logger

logger = get_logger(__name__)


class WorkerState(str, Enum):
    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"
    REDUNDANT = "redundant"


class LifecycleController:
    """
    한 버전의 서비스 워커 설치/활성화 담당

    Args:
        caches: 캐시 저장소
        network: 사전 캐싱에 사용할 네트워크 전송 계층
        clients: 열린 페이지 레지스트리
        settings: 캐시 버전/사전 캐싱 목록 (기본값: get_settings())
    """

    def __init__(
        self,
        caches: CacheStorage,
        network: httpx.AsyncBaseTransport,
        clients: Clients,
        settings: Optional[Settings] = None,
    ):
        self.caches = caches
        self.network = network
        self.clients = clients
        self.settings = settings or get_settings()
        self.state = WorkerState.PARSED
        self.skip_waiting = False

    @property
    def version(self) -> str:
        return self.settings.CACHE_VERSION

    @property
    def current_cache_names(self) -> set[str]:
        return {self.settings.static_cache_name, self.settings.api_cache_name}

    async def _fetch(self, request: httpx.Request) -> httpx.Response:
        return await self.network.handle_async_request(request)

    async def install(self) -> None:
        """
        필수 리소스 사전 캐싱

        하나라도 실패하면 설치 전체가 실패하고 아무것도 저장되지 않습니다.

        Raises:
            InstallError: 필수 리소스를 가져오지 못했거나 캐시 저장에 실패한 경우
        """
        self.state = WorkerState.INSTALLING
        static_name = self.settings.static_cache_name
        existed = await self.caches.has(static_name)

        try:
            static_cache = await self.caches.open(static_name)
            await static_cache.add_all(self.settings.PRECACHE_URLS, self._fetch)
        except InstallError as e:
            await self._abort_install(static_name, existed, e)
            raise
        except Exception as e:
            error = InstallError(url=static_name, reason=repr(e))
            await self._abort_install(static_name, existed, error)
            raise error from e

        await self.caches.open(self.settings.api_cache_name)

        self.state = WorkerState.INSTALLED
        self.skip_waiting = True
        logger.info(f"[OK] Service worker {self.version} installed")

    async def _abort_install(self, static_name: str, existed: bool, error: InstallError) -> None:
        if not existed:
            await self.caches.delete(static_name)
        self.state = WorkerState.REDUNDANT
        logger.error(
            f"[FAIL] Service worker {self.version} install failed: {error.message}",
            extra={"url": error.details.get("url"), "reason": error.details.get("reason")},
        )

    async def activate(self) -> list[str]:
        """
        오래된 버전의 캐시 파티션 삭제 후 열린 페이지 claim

        Returns:
            list[str]: 삭제된 파티션 이름 목록
        """
        if self.state != WorkerState.INSTALLED:
            raise RuntimeError(f"Cannot activate a worker in state '{self.state.value}'")

        self.state = WorkerState.ACTIVATING
        keep = self.current_cache_names
        deleted = []
        for name in await self.caches.keys():
            if name not in keep:
                logger.info(f"Deleting old cache: {name}")
                await self.caches.delete(name)
                deleted.append(name)

        await self.clients.claim(self.version)

        self.state = WorkerState.ACTIVATED
        logger.info(f"[OK] Service worker {self.version} activated (purged {len(deleted)} caches)")
        return deleted
