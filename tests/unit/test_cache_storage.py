"""
캐시 저장소 관리자 유닛 테스트
"""

import httpx
import pytest

from pwa_shop.offline.cache_storage import CachedResponse, CacheStorage
from pwa_shop.offline.database import OfflineDatabase
from pwa_shop.utils.exceptions import InstallError

ORIGIN = "http://localhost:3000"


def snapshot(url: str, body: bytes, status_code: int = 200) -> CachedResponse:
    return CachedResponse(
        method="GET",
        url=f"{ORIGIN}{url}",
        status_code=status_code,
        headers=(("content-type", "text/plain"),),
        body=body,
    )


@pytest.mark.asyncio
class TestCacheStorage:
    """CacheStorage 파티션 관리 테스트"""

    async def test_open_creates_partition(self, caches: CacheStorage):
        """open은 없는 파티션을 생성"""
        assert await caches.has("pwa-ecommerce-v1.0.0") is False

        cache = await caches.open("pwa-ecommerce-v1.0.0")

        assert cache.name == "pwa-ecommerce-v1.0.0"
        assert await caches.has("pwa-ecommerce-v1.0.0") is True
        assert await caches.keys() == ["pwa-ecommerce-v1.0.0"]

    async def test_open_existing_partition_keeps_entries(self, caches: CacheStorage):
        """이미 있는 파티션을 다시 열어도 항목 유지"""
        cache = await caches.open("static")
        await cache.put("/app.js", snapshot("/app.js", b"console.log(1)"))

        reopened = await caches.open("static")

        assert await reopened.keys() == [("GET", f"{ORIGIN}/app.js")]

    async def test_keys_in_creation_order(self, caches: CacheStorage):
        """파티션 이름은 생성 순으로 나열"""
        for name in ["b-cache", "a-cache", "c-cache"]:
            await caches.open(name)

        assert await caches.keys() == ["b-cache", "a-cache", "c-cache"]

    async def test_delete_partition_removes_entries(self, caches: CacheStorage):
        """파티션 삭제 시 항목도 함께 삭제"""
        cache = await caches.open("old-cache")
        await cache.put("/index.html", snapshot("/index.html", b"<html></html>"))

        deleted = await caches.delete("old-cache")

        assert deleted is True
        assert await caches.has("old-cache") is False
        assert await caches.match("/index.html") is None

    async def test_delete_missing_partition(self, caches: CacheStorage):
        assert await caches.delete("missing") is False

    async def test_match_miss_returns_none(self, caches: CacheStorage):
        """캐시 미스는 None"""
        await caches.open("static")
        assert await caches.match("/not-cached.js") is None

    async def test_match_searches_oldest_partition_first(self, caches: CacheStorage):
        """여러 파티션에 같은 요청이 있으면 먼저 생성된 파티션의 응답"""
        first = await caches.open("first")
        second = await caches.open("second")
        await second.put("/logo.png", snapshot("/logo.png", b"second"))
        await first.put("/logo.png", snapshot("/logo.png", b"first"))

        cached = await caches.match("/logo.png")
        scoped = await caches.match("/logo.png", cache_name="second")

        assert cached.body == b"first"
        assert scoped.body == b"second"

    async def test_relative_and_absolute_urls_share_key(self, caches: CacheStorage):
        cache = await caches.open("static")
        await cache.put("/offline.html", snapshot("/offline.html", b"offline"))

        absolute = await caches.match(httpx.Request("GET", f"{ORIGIN}/offline.html"))

        assert absolute is not None
        assert absolute.body == b"offline"

    async def test_get_and_post_are_separate_keys(self, caches: CacheStorage):
        """캐시 키는 method + URL"""
        cache = await caches.open("api")
        await cache.put(
            httpx.Request("GET", f"{ORIGIN}/api/cart"), snapshot("/api/cart", b"get")
        )

        assert await caches.match(httpx.Request("POST", f"{ORIGIN}/api/cart")) is None


@pytest.mark.asyncio
class TestCache:
    """단일 파티션 Cache 테스트"""

    async def test_put_replaces_previous_snapshot(self, caches: CacheStorage):
        """같은 키에 다시 저장하면 마지막 값으로 교체"""
        cache = await caches.open("api-cache-v1.0.0")
        await cache.put("/api/products", snapshot("/api/products", b'{"v": 1}'))
        await cache.put("/api/products", snapshot("/api/products", b'{"v": 2}'))

        cached = await cache.match("/api/products")

        assert cached.body == b'{"v": 2}'
        assert len(await cache.keys()) == 1

    async def test_put_accepts_live_response(self, caches: CacheStorage):
        """httpx.Response를 저장하면 본문 스냅샷이 만들어짐"""
        cache = await caches.open("static")
        response = httpx.Response(
            200, headers={"content-type": "text/css"}, content=b"body{margin:0}"
        )

        await cache.put("/static/css/main.css", response)
        cached = await cache.match("/static/css/main.css")

        assert cached.status_code == 200
        assert cached.body == b"body{margin:0}"
        assert ("content-type", "text/css") in cached.headers

    async def test_to_response_reproduces_snapshot(self, caches: CacheStorage):
        cache = await caches.open("static")
        await cache.put("/app.js", snapshot("/app.js", b"let a = 1;"))

        response = (await cache.match("/app.js")).to_response()

        assert response.status_code == 200
        assert response.content == b"let a = 1;"
        assert response.headers["content-type"] == "text/plain"
        assert response.extensions["from_cache"] is True

    async def test_delete_entry(self, caches: CacheStorage):
        cache = await caches.open("static")
        await cache.put("/app.js", snapshot("/app.js", b"a"))

        assert await cache.delete("/app.js") is True
        assert await cache.delete("/app.js") is False
        assert await cache.match("/app.js") is None

    async def test_add_all_stores_every_url(self, caches: CacheStorage, network):
        """add_all은 모든 URL을 가져와 저장"""
        cache = await caches.open("static")
        urls = ["/", "/offline.html", "/static/js/bundle.js"]

        await cache.add_all(urls, network.handle_async_request)

        keys = await cache.keys()
        assert sorted(url for _, url in keys) == sorted(f"{ORIGIN}{url}" for url in urls)

    async def test_add_all_is_atomic_on_http_error(self, caches: CacheStorage, network):
        """하나라도 200이 아니면 아무것도 저장하지 않음"""
        network.add("/static/js/bundle.js", status_code=500)
        cache = await caches.open("static")

        with pytest.raises(InstallError) as exc_info:
            await cache.add_all(
                ["/", "/static/js/bundle.js", "/offline.html"], network.handle_async_request
            )

        assert exc_info.value.details["url"] == "/static/js/bundle.js"
        assert exc_info.value.details["reason"] == "HTTP 500"
        assert await cache.keys() == []

    async def test_add_all_is_atomic_on_network_error(self, caches: CacheStorage, network):
        network.online = False
        cache = await caches.open("static")

        with pytest.raises(InstallError):
            await cache.add_all(["/", "/offline.html"], network.handle_async_request)

        assert await cache.keys() == []


@pytest.mark.asyncio
async def test_cache_survives_restart(tmp_path):
    """파일 DB에 저장된 캐시는 재시작 후에도 유지"""
    url = f"sqlite+aiosqlite:///{tmp_path / 'pwa_cache.db'}"

    # Given: 첫 번째 실행에서 캐시 저장
    database = OfflineDatabase(url)
    await database.init()
    cache = await CacheStorage(database, ORIGIN).open("pwa-ecommerce-v1.0.0")
    await cache.put("/offline.html", snapshot("/offline.html", b"offline"))
    await database.dispose()

    # When: 새 엔진으로 다시 열기
    restarted = OfflineDatabase(url)
    await restarted.init()
    cached = await CacheStorage(restarted, ORIGIN).match("/offline.html")
    await restarted.dispose()

    # Then
    assert cached is not None
    assert cached.body == b"offline"
