"""
쇼핑 API 클라이언트 (오프라인 대응)

ServiceWorker.client()로 만든 httpx.AsyncClient를 통해 요청합니다.

- 상품 목록을 네트워크에서 받으면 cachedProducts에 저장
- 오프라인 중 실패한 변경 요청(/api/ 의 GET 이외)은 오프라인 액션 큐에 넣고
  'background-sync' 태그를 등록. 연결이 복구되면 ServiceWorkerRegistration.dispatch_sync()가
  큐를 재전송합니다.

Example:
    ```python
    async with registration.active.client() as client:
        shop = ShopAPI(registration, client)
        products = await shop.get_products()
        result = await shop.submit("POST", "/api/cart", json={"productId": "p1"})
        if isinstance(result, OfflineAction):
            toaster.info("오프라인 상태입니다. 연결되면 자동으로 전송됩니다.")
    ```
"""

import uuid
from typing import Any, Dict, List, Optional, Union

import httpx

from pwa_shop.client.offline_cache import ProductCache
from pwa_shop.config import Settings, get_settings
from pwa_shop.offline.local_storage import LocalStorage
from pwa_shop.offline.sync import IDEMPOTENCY_HEADER, OfflineAction, OfflineActionQueue
from pwa_shop.offline.worker import ServiceWorkerRegistration
from pwa_shop.utils.logging import get_logger

logger = get_logger(__name__)


class ShopAPI:
    """
    Args:
        registration: 동기화 태그를 등록할 서비스 워커 등록 정보
        client: 요청 가로채기가 적용된 httpx 클라이언트
        settings: 경로 규칙, 동기화 태그 (기본값: get_settings())
    """

    def __init__(
        self,
        registration: ServiceWorkerRegistration,
        client: httpx.AsyncClient,
        settings: Optional[Settings] = None,
    ):
        self.registration = registration
        self.client = client
        self.settings = settings or get_settings()
        self.product_cache = ProductCache(LocalStorage(registration.database), self.settings)
        self.queue = OfflineActionQueue(registration.database)

    async def get_products(self, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        상품 목록 조회

        네트워크에서 받은 목록만 저장하고, 오프라인 대체 응답({"offline": true})은 저장하지 않습니다.

        Raises:
            httpx.HTTPStatusError: 4xx/5xx 응답
            httpx.TransportError: 네트워크 오류이고 캐시된 응답도 없는 경우
        """
        response = await self.client.get(self.settings.PRODUCTS_PATH, params=params or {})
        response.raise_for_status()
        data = response.json()
        products = data.get("products", [])

        if not data.get("offline"):
            await self.product_cache.cache_products(products)
        return products

    def _is_queueable(self, method: str, url: str) -> bool:
        return method.upper() != "GET" and httpx.URL(url).path.startswith(
            self.settings.API_PATH_PREFIX
        )

    async def submit(
        self,
        method: str,
        url: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Union[httpx.Response, OfflineAction]:
        """
        변경 요청 전송

        네트워크 오류로 보내지 못한 API 변경 요청은 큐에 넣고 대기 중인 OfflineAction을 반환합니다.
        첫 전송과 재전송에 같은 Idempotency-Key를 사용합니다.

        Raises:
            httpx.TransportError: 큐에 넣을 수 없는 요청(GET, /api/ 외 경로)의 네트워크 오류
        """
        idempotency_key = str(uuid.uuid4())
        request_headers = {**(headers or {}), IDEMPOTENCY_HEADER: idempotency_key}

        try:
            return await self.client.request(method, url, json=json, headers=request_headers)
        except httpx.TransportError as e:
            if not self._is_queueable(method, url):
                raise
            logger.info(f"Request failed while offline, queueing {method.upper()} {url}: {e!r}")

        action = await self.queue.enqueue(
            method, url, body=json, headers=headers, idempotency_key=idempotency_key
        )
        await self.registration.sync.register(self.settings.SYNC_TAG)
        return action
