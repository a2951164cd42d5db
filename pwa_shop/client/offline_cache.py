"""
페이지 측 오프라인 데이터 캐시 (localStorage)

온라인일 때 받은 상품 목록과 로그인 사용자를 저장해 두면,
네트워크가 끊겼을 때 서비스 워커가 /api/products 대체 응답에 cachedProducts를 사용합니다.
"""

from typing import Any, Dict, List, Optional

from pwa_shop.config import Settings, get_settings
from pwa_shop.offline.local_storage import LocalStorage
from pwa_shop.utils.logging import get_logger

logger = get_logger(__name__)

USER_KEY = "user"
TOKEN_KEY = "token"


class ProductCache:
    """
    cachedProducts / user 저장소

    Args:
        local_storage: 서비스 워커와 공유하는 키-값 저장소
        settings: cachedProducts 키 (기본값: get_settings())
    """

    def __init__(self, local_storage: LocalStorage, settings: Optional[Settings] = None):
        self.local_storage = local_storage
        self.settings = settings or get_settings()

    async def cache_products(self, products: List[Dict[str, Any]]) -> None:
        await self.local_storage.set_item(self.settings.CACHED_PRODUCTS_KEY, products)
        logger.debug(f"Cached {len(products)} products for offline use")

    async def get_cached_products(self) -> List[Dict[str, Any]]:
        """저장된 값이 없거나 목록이 아니면 빈 목록"""
        products = await self.local_storage.get_item(self.settings.CACHED_PRODUCTS_KEY, [])
        return products if isinstance(products, list) else []

    async def cache_user(self, user: Dict[str, Any]) -> None:
        await self.local_storage.set_item(USER_KEY, user)

    async def get_cached_user(self) -> Optional[Dict[str, Any]]:
        user = await self.local_storage.get_item(USER_KEY)
        return user if isinstance(user, dict) else None

    async def clear_cache(self) -> None:
        """로그아웃 시 상품/사용자/토큰 삭제"""
        for key in (self.settings.CACHED_PRODUCTS_KEY, USER_KEY, TOKEN_KEY):
            await self.local_storage.remove_item(key)
        logger.info("Offline cache cleared")
