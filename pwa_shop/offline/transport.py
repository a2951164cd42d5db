"""
요청 가로채기 (Fetch Interceptor)

서비스 워커가 만든 httpx.AsyncClient의 모든 요청은 OfflineTransport를 거칩니다.
요청 종류에 따라 캐시 전략을 선택합니다.

- API 요청 (/api/ 로 시작): 네트워크 우선
    * 성공한 GET 200 응답은 API 캐시에 백그라운드로 저장
    * 네트워크 실패 시 캐시 → (/api/products 한정) cachedProducts 대체 응답 → 실패 전파
- 정적 자산/페이지: 캐시 우선
    * 캐시 미스면 네트워크 요청, 같은 출처의 200 응답은 정적 캐시에 백그라운드로 저장
    * 네트워크 실패 시 문서(navigation) 요청이면 /offline.html 반환

Example:
    ```python
    transport = OfflineTransport(httpx.AsyncHTTPTransport(), caches, local_storage)
    async with httpx.AsyncClient(transport=transport, base_url=settings.APP_ORIGIN) as client:
        response = await client.get("/api/products")
        if response.json().get("offline"):
            ...
    ```
"""

import asyncio
from typing import Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError

from pwa_shop.config import Settings, get_settings
from pwa_shop.offline.cache_storage import CachedResponse, CacheStorage
from pwa_shop.offline.local_storage import LocalStorage
from pwa_shop.utils.exceptions import NetworkFailureError
from pwa_shop.utils.logging import get_logger

logger = get_logger(__name__)


class OfflineTransport(httpx.AsyncBaseTransport):
    """
    네트워크 우선/캐시 우선 전략을 적용하는 httpx 전송 계층

    Args:
        network: 실제 네트워크 요청을 보내는 전송 계층
        caches: 캐시 저장소
        local_storage: cachedProducts 조회용 키-값 저장소
        settings: 캐시 이름, 경로 규칙 등 (기본값: get_settings())
    """

    def __init__(
        self,
        network: httpx.AsyncBaseTransport,
        caches: CacheStorage,
        local_storage: LocalStorage,
        settings: Optional[Settings] = None,
    ):
        self._network = network
        self._caches = caches
        self._local_storage = local_storage
        self._settings = settings or get_settings()
        self._origin = httpx.URL(self._settings.APP_ORIGIN)
        self._pending: set[asyncio.Task] = set()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.startswith(self._settings.API_PATH_PREFIX):
            return await self._network_first(request)
        return await self._cache_first(request)

    # ========================================
    # API 요청: 네트워크 우선
    # ========================================

    async def _network_first(self, request: httpx.Request) -> httpx.Response:
        try:
            response = await self._network.handle_async_request(request)
            if request.method != "GET" or response.status_code != 200:
                return response
            snapshot = await self._snapshot(request, response)
        except httpx.TransportError as e:
            logger.info(f"Network unavailable for {request.method} {request.url.path}: {e!r}")
            return await self._api_fallback(request, e)

        self._store_in_background(self._settings.api_cache_name, request, snapshot)
        return snapshot.to_response(request)

    async def _api_fallback(
        self, request: httpx.Request, error: httpx.TransportError
    ) -> httpx.Response:
        if request.method != "GET":
            raise NetworkFailureError(
                "Network error and no cache available", request=request
            ) from error

        cached = await self._lookup(request)
        if cached is not None:
            logger.info(f"Serving cached API response: {request.url.path}")
            return cached.to_response(request)

        if request.url.path == self._settings.PRODUCTS_PATH:
            products = await self._local_storage.get_item(
                self._settings.CACHED_PRODUCTS_KEY, []
            )
            logger.info(f"Serving offline product list ({len(products)} items)")
            return httpx.Response(
                200,
                json={"products": products, "offline": True},
                request=request,
                extensions={"from_cache": True},
            )

        raise NetworkFailureError(
            "No cached response available", request=request
        ) from error

    # ========================================
    # 정적 자산/페이지: 캐시 우선
    # ========================================

    async def _cache_first(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            cached = await self._lookup(request)
            if cached is not None:
                return cached.to_response(request)

        try:
            response = await self._network.handle_async_request(request)
            if (
                request.method != "GET"
                or response.status_code != 200
                or not self._is_same_origin(request)
            ):
                return response
            snapshot = await self._snapshot(request, response)
        except httpx.TransportError as e:
            logger.info(f"Network unavailable for {request.method} {request.url.path}: {e!r}")
            return await self._static_fallback(request, e)

        self._store_in_background(self._settings.static_cache_name, request, snapshot)
        return snapshot.to_response(request)

    async def _static_fallback(
        self, request: httpx.Request, error: httpx.TransportError
    ) -> httpx.Response:
        if self._is_navigation(request):
            offline_page = await self._lookup(self._settings.OFFLINE_PAGE)
            if offline_page is not None:
                logger.info(f"Serving offline page for {request.url.path}")
                return offline_page.to_response(request)
            logger.warning("[WARN] Offline page is not cached")

        raise NetworkFailureError(
            "Network error and no cache available", request=request
        ) from error

    # ========================================
    # 공통
    # ========================================

    async def _lookup(self, request) -> Optional[CachedResponse]:
        try:
            return await self._caches.match(request)
        except SQLAlchemyError as e:
            logger.error(f"[FAIL] Cache lookup failed: {e}", exc_info=True)
            return None

    @staticmethod
    async def _snapshot(request: httpx.Request, response: httpx.Response) -> CachedResponse:
        try:
            return await CachedResponse.from_response(request, response)
        finally:
            await response.aclose()

    def _is_same_origin(self, request: httpx.Request) -> bool:
        url = request.url
        return (url.scheme, url.host, url.port) == (
            self._origin.scheme,
            self._origin.host,
            self._origin.port,
        )

    @staticmethod
    def _is_navigation(request: httpx.Request) -> bool:
        if request.headers.get("sec-fetch-dest") == "document":
            return True
        return request.extensions.get("destination") == "document"

    def _store_in_background(
        self, cache_name: str, request: httpx.Request, snapshot: CachedResponse
    ) -> None:
        """캐시 저장을 응답 반환과 분리하여 실행 (실패는 로그만 남김)"""
        task = asyncio.create_task(
            self._store(cache_name, request, snapshot),
            name=f"cache-put {cache_name} {snapshot.url}",
        )
        self._pending.add(task)
        task.add_done_callback(self._on_store_done)

    async def _store(
        self, cache_name: str, request: httpx.Request, snapshot: CachedResponse
    ) -> None:
        cache = await self._caches.open(cache_name)
        await cache.put(request, snapshot)

    def _on_store_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"[WARN] Background cache write failed ({task.get_name()}): {error!r}")

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """진행 중인 백그라운드 캐시 저장이 모두 끝날 때까지 대기"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        await self._network.aclose()
