"""
서비스 워커 라이프사이클 유닛 테스트
"""

import pytest

from pwa_shop.offline.cache_storage import Cache, CachedResponse
from pwa_shop.offline.clients import Clients
from pwa_shop.offline.lifecycle import WorkerState
from pwa_shop.offline.worker import ServiceWorker, ServiceWorkerRegistration
from pwa_shop.utils.exceptions import InstallError


@pytest.mark.asyncio
class TestInstall:
    """install 단계 테스트"""

    async def test_install_precaches_manifest(self, worker: ServiceWorker, test_settings):
        """
        Test: 설치 시 필수 리소스를 정적 캐시에 저장하고 API 캐시를 생성
        """
        # When
        await worker.install()

        # Then
        assert worker.state == WorkerState.INSTALLED
        assert worker.lifecycle.skip_waiting is True

        static = await worker.caches.open(test_settings.static_cache_name)
        cached_urls = {url for _, url in await static.keys()}
        assert cached_urls == {
            f"{test_settings.APP_ORIGIN}{url}" for url in test_settings.PRECACHE_URLS
        }
        assert await worker.caches.has(test_settings.api_cache_name) is True

    async def test_install_is_idempotent(self, worker: ServiceWorker, test_settings):
        """
        Test: 같은 버전을 두 번 설치해도 같은 항목 집합
        """
        await worker.install()
        static = await worker.caches.open(test_settings.static_cache_name)
        first = sorted(await static.keys())

        await worker.install()
        second = sorted(await static.keys())

        assert first == second
        assert sorted(await worker.caches.keys()) == sorted(
            [test_settings.static_cache_name, test_settings.api_cache_name]
        )

    async def test_install_fails_fast(self, worker: ServiceWorker, network, test_settings):
        """
        Test: 필수 리소스 하나라도 실패하면 설치 전체 실패, 아무것도 저장되지 않음
        """
        # Given
        network.add("/icons/icon-512x512.png", status_code=503)

        # When
        with pytest.raises(InstallError) as exc_info:
            await worker.install()

        # Then
        assert exc_info.value.details["url"] == "/icons/icon-512x512.png"
        assert worker.state == WorkerState.REDUNDANT
        assert worker.lifecycle.skip_waiting is False
        assert await worker.caches.has(test_settings.static_cache_name) is False
        assert await worker.caches.match("/offline.html") is None

    async def test_install_fails_when_offline(self, worker: ServiceWorker, network):
        network.online = False

        with pytest.raises(InstallError):
            await worker.install()

        assert worker.state == WorkerState.REDUNDANT

    async def test_install_skips_duplicate_urls(self, offline_db, network, clients, test_settings):
        """
        Test: 같은 항목을 가리키는 URL이 중복돼도 한 번만 가져와 저장
        """
        # Given
        settings = test_settings.model_copy(
            update={"PRECACHE_URLS": ["/", "/offline.html", "/", "/#top"]}
        )
        worker = ServiceWorker(offline_db, network, clients, settings=settings)

        # When
        await worker.install()

        # Then
        assert worker.state == WorkerState.INSTALLED
        assert [request.url.path for request in network.requests] == ["/", "/offline.html"]
        static = await worker.caches.open(settings.static_cache_name)
        assert len(await static.keys()) == 2

    async def test_storage_failure_is_install_failure(
        self, worker: ServiceWorker, test_settings, monkeypatch
    ):
        """
        Test: 캐시 저장 중 오류도 InstallError로 설치 실패 처리
        """
        # Given
        async def broken_add_all(self, urls, fetch):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(Cache, "add_all", broken_add_all)

        # When
        with pytest.raises(InstallError) as exc_info:
            await worker.install()

        # Then
        assert "database is locked" in exc_info.value.details["reason"]
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert worker.state == WorkerState.REDUNDANT
        assert await worker.caches.has(test_settings.static_cache_name) is False


@pytest.mark.asyncio
class TestActivate:
    """activate 단계 테스트"""

    async def test_activate_purges_stale_versions(self, worker: ServiceWorker, test_settings):
        """
        Test: 활성화 후에는 현재 버전의 파티션만 남음
        """
        # Given: 이전 버전 캐시
        for name in ["pwa-ecommerce-v0.9.0", "api-cache-v0.9.0", "pwa-ecommerce-critical"]:
            old = await worker.caches.open(name)
            await old.put("/", stale_snapshot(name))

        # When
        await worker.install()
        deleted = await worker.activate()

        # Then
        assert worker.state == WorkerState.ACTIVATED
        assert sorted(deleted) == sorted(
            ["pwa-ecommerce-v0.9.0", "api-cache-v0.9.0", "pwa-ecommerce-critical"]
        )
        assert set(await worker.caches.keys()) == {
            test_settings.static_cache_name,
            test_settings.api_cache_name,
        }
        assert (await worker.caches.match("/")).body == b"asset:/"

    async def test_activate_claims_open_clients(self, worker: ServiceWorker, clients: Clients):
        """
        Test: 활성화 후 열린 페이지를 현재 버전이 제어
        """
        page = clients.attach("http://localhost:3000/")
        assert page.controlled is False

        await worker.install()
        await worker.activate()

        assert page.controller == worker.version

    async def test_activate_requires_install(self, worker: ServiceWorker):
        with pytest.raises(RuntimeError):
            await worker.activate()


@pytest.mark.asyncio
class TestRegistration:
    """ServiceWorkerRegistration 업데이트 테스트"""

    async def test_update_activates_new_worker(self, offline_db, network, test_settings):
        registration = ServiceWorkerRegistration(offline_db)
        worker = ServiceWorker(offline_db, network, registration.clients, settings=test_settings)

        active = await registration.update(worker)

        assert active is worker
        assert worker.state == WorkerState.ACTIVATED

    async def test_failed_update_keeps_previous_worker(self, offline_db, network, test_settings):
        """
        Test: 새 버전 설치 실패 시 이전 활성 워커와 캐시 유지
        """
        # Given: v1.0.0 활성
        registration = ServiceWorkerRegistration(offline_db)
        current = await registration.update(
            ServiceWorker(offline_db, network, registration.clients, settings=test_settings)
        )

        # When: v2.0.0 설치 실패
        next_settings = test_settings.model_copy(update={"CACHE_VERSION": "v2.0.0"})
        network.add("/static/js/bundle.js", status_code=404)
        active = await registration.update(
            ServiceWorker(offline_db, network, registration.clients, settings=next_settings)
        )

        # Then
        assert active is current
        assert current.state == WorkerState.ACTIVATED
        assert await current.caches.has(test_settings.static_cache_name) is True
        assert await current.caches.has(next_settings.static_cache_name) is False

    async def test_new_version_replaces_old(self, offline_db, network, test_settings):
        registration = ServiceWorkerRegistration(offline_db)
        old = await registration.update(
            ServiceWorker(offline_db, network, registration.clients, settings=test_settings)
        )

        next_settings = test_settings.model_copy(update={"CACHE_VERSION": "v2.0.0"})
        new = await registration.update(
            ServiceWorker(offline_db, network, registration.clients, settings=next_settings)
        )

        assert registration.active is new
        assert old.state == WorkerState.REDUNDANT
        assert set(await new.caches.keys()) == {
            "pwa-ecommerce-v2.0.0",
            "api-cache-v2.0.0",
        }

    async def test_update_survives_storage_failure(
        self, offline_db, network, test_settings, monkeypatch
    ):
        registration = ServiceWorkerRegistration(offline_db)
        worker = ServiceWorker(offline_db, network, registration.clients, settings=test_settings)

        async def broken_add_all(self, urls, fetch):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(Cache, "add_all", broken_add_all)

        assert await registration.update(worker) is None
        assert registration.active is None
        assert worker.state == WorkerState.REDUNDANT


def stale_snapshot(name: str) -> CachedResponse:
    return CachedResponse(
        method="GET",
        url="http://localhost:3000/",
        status_code=200,
        headers=(),
        body=f"stale:{name}".encode(),
    )
