"""
백그라운드 동기화 유닛 테스트
"""

import json

import pytest

from pwa_shop.offline.database import OfflineDatabase
from pwa_shop.offline.sync import (
    IDEMPOTENCY_HEADER,
    BackgroundSync,
    OfflineActionQueue,
    SyncManager,
)


@pytest.fixture
def queue(offline_db: OfflineDatabase) -> OfflineActionQueue:
    return OfflineActionQueue(offline_db)


@pytest.fixture
def background_sync(queue, network, test_settings) -> BackgroundSync:
    return BackgroundSync(queue, network, test_settings)


@pytest.mark.asyncio
class TestSyncManager:
    """동기화 태그 등록"""

    async def test_register_persists_tag(self, offline_db):
        manager = SyncManager(offline_db)

        assert await manager.register("background-sync") is True
        assert await manager.register("background-sync") is True

        assert await manager.get_tags() == ["background-sync"]

    async def test_register_is_noop_when_unsupported(self, offline_db):
        """
        Test: 백그라운드 동기화 미지원 환경에서는 아무것도 하지 않음
        """
        manager = SyncManager(offline_db, supported=False)

        assert await manager.register("background-sync") is False
        assert await manager.get_tags() == []

    async def test_unregister(self, offline_db):
        manager = SyncManager(offline_db)
        await manager.register("background-sync")

        await manager.unregister("background-sync")

        assert await manager.get_tags() == []


@pytest.mark.asyncio
class TestOfflineActionQueue:
    """오프라인 액션 큐"""

    async def test_enqueue_preserves_order(self, queue):
        await queue.enqueue("post", "/api/cart", {"productId": "p1"})
        await queue.enqueue("POST", "/api/cart", {"productId": "p2"})
        await queue.enqueue("DELETE", "/api/cart/p1")

        pending = await queue.pending()

        assert [(a.method, a.url) for a in pending] == [
            ("POST", "/api/cart"),
            ("POST", "/api/cart"),
            ("DELETE", "/api/cart/p1"),
        ]
        assert pending[0].body == {"productId": "p1"}
        assert pending[2].body is None

    async def test_duplicate_idempotency_key_ignored(self, queue):
        """
        Test: 같은 idempotency key로 다시 추가해도 하나만 유지
        """
        first = await queue.enqueue("POST", "/api/orders", {"total": 10}, idempotency_key="order-1")
        second = await queue.enqueue("POST", "/api/orders", {"total": 10}, idempotency_key="order-1")

        assert first.id == second.id
        assert await queue.count() == 1

    async def test_clear_completed(self, queue):
        action = await queue.enqueue("POST", "/api/cart", {"productId": "p1"})
        await queue.mark_completed(action.id)

        assert await queue.clear_completed() == 1
        assert await queue.count() == 0


@pytest.mark.asyncio
class TestBackgroundSync:
    """sync 이벤트 재전송"""

    async def test_replays_in_order_with_idempotency_key(self, background_sync, queue, network):
        """
        Test: 대기 중인 액션을 생성 순서대로 Idempotency-Key와 함께 재전송
        """
        # Given
        network.add("/api/cart", status_code=201, json={"ok": True})
        network.add("/api/favorites", status_code=200, json={"ok": True})
        first = await queue.enqueue("POST", "/api/cart", {"productId": "p1"}, idempotency_key="k1")
        second = await queue.enqueue("POST", "/api/favorites", {"productId": "p2"}, idempotency_key="k2")

        # When
        result = await background_sync.handle_sync("background-sync")

        # Then
        assert result.processed_count == 2
        assert result.success is True
        assert [r.url.path for r in network.requests] == ["/api/cart", "/api/favorites"]
        assert [r.headers[IDEMPOTENCY_HEADER] for r in network.requests] == ["k1", "k2"]
        assert json.loads(network.requests[0].content) == {"productId": "p1"}
        assert (await queue.get(first.id)).status == "completed"
        assert (await queue.get(second.id)).status == "completed"

    async def test_client_error_marks_failed(self, background_sync, queue, network):
        """
        Test: 4xx 응답은 재시도하지 않고 failed
        """
        network.add("/api/cart", status_code=422, json={"error": "invalid"})
        action = await queue.enqueue("POST", "/api/cart", {"productId": None})

        result = await background_sync.replay()

        stored = await queue.get(action.id)
        assert stored.status == "failed"
        assert stored.error == "HTTP 422"
        assert result.failed_count == 1
        assert result.remaining_count == 0

    async def test_server_error_keeps_pending(self, background_sync, queue, network):
        """
        Test: 5xx 응답은 재시도 횟수만 늘리고 pending 유지
        """
        network.add("/api/cart", status_code=503)
        action = await queue.enqueue("POST", "/api/cart", {"productId": "p1"})

        result = await background_sync.replay()

        stored = await queue.get(action.id)
        assert stored.status == "pending"
        assert stored.retries == 1
        assert result.remaining_count == 1
        assert result.success is False

    async def test_network_error_stops_replay(self, background_sync, queue, network):
        """
        Test: 네트워크 오류가 나면 남은 액션은 다음 sync까지 보류
        """
        network.online = False
        first = await queue.enqueue("POST", "/api/cart", {"productId": "p1"})
        second = await queue.enqueue("POST", "/api/cart", {"productId": "p2"})

        result = await background_sync.replay()

        assert network.call_count == 1
        assert (await queue.get(first.id)).retries == 1
        assert (await queue.get(second.id)).retries == 0
        assert result.remaining_count == 2

    async def test_exceeding_max_retries_marks_failed(self, queue, network, test_settings):
        settings = test_settings.model_copy(update={"SYNC_MAX_RETRIES": 2})
        background_sync = BackgroundSync(queue, network, settings)
        network.add("/api/cart", status_code=500)
        action = await queue.enqueue("POST", "/api/cart", {"productId": "p1"})

        await background_sync.replay()
        await background_sync.replay()

        stored = await queue.get(action.id)
        assert stored.status == "failed"
        assert stored.retries == 2

    async def test_unknown_tag_ignored(self, background_sync, queue, network):
        await queue.enqueue("POST", "/api/cart", {"productId": "p1"})

        assert await background_sync.handle_sync("periodic-refresh") is None
        assert network.call_count == 0

    async def test_worker_sync_event(self, worker, network):
        network.add("/api/cart", status_code=201)
        await worker.queue.enqueue("POST", "/api/cart", {"productId": "p1"})

        result = await worker.on_sync("background-sync")

        assert result.processed_count == 1
