"""
백그라운드 동기화 (Background Sync Trigger)

- SyncManager: 동기화 태그 등록 (플랫폼이 지원하지 않으면 아무것도 하지 않음)
- OfflineActionQueue: 오프라인 중 실패한 요청을 보관하는 영속 큐
- BackgroundSync: 'background-sync' 태그의 sync 이벤트에서 큐를 순서대로 재전송

모든 요청은 Idempotency-Key 헤더와 함께 재전송되므로 서버는 중복 처리를 걸러낼 수 있습니다.
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy import delete, func, select

from pwa_shop.config import Settings, get_settings
from pwa_shop.offline.database import (
    OfflineActionRecord,
    OfflineDatabase,
    SyncRegistrationRecord,
)
from pwa_shop.utils.logging import get_logger

logger = get_logger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"

# 재시도하면 성공할 수 있는 4xx
RETRYABLE_STATUS_CODES = (408, 429)


@dataclass
class OfflineAction:
    """
    오프라인 중 수행되어 동기화가 필요한 요청

    Attributes:
        id: 액션 식별자
        idempotency_key: 재전송 중복 방지 키
        method: HTTP 메서드
        url: 요청 URL (origin 기준 상대 경로 가능)
        body: JSON 본문
        status: 'pending', 'completed', 'failed'
        retries: 재전송 시도 횟수
        error: 마지막 실패 사유
    """

    id: str
    idempotency_key: str
    method: str
    url: str
    body: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)
    status: str = "pending"
    retries: int = 0
    error: Optional[str] = None

    @classmethod
    def _from_record(cls, record: OfflineActionRecord) -> "OfflineAction":
        return cls(
            id=record.id,
            idempotency_key=record.idempotency_key,
            method=record.method,
            url=record.url,
            body=record.body,
            headers=dict(record.headers or {}),
            status=record.status,
            retries=record.retries,
            error=record.error,
        )


@dataclass
class SyncResult:
    """동기화 결과"""

    processed_count: int = 0
    failed_count: int = 0
    remaining_count: int = 0
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.failed_count == 0 and self.remaining_count == 0


class SyncManager:
    """
    동기화 태그 등록 관리 (registration.sync)

    Args:
        database: 오프라인 저장소
        supported: 런타임이 백그라운드 동기화를 지원하는지 여부
    """

    def __init__(self, database: OfflineDatabase, supported: bool = True):
        self.database = database
        self.supported = supported

    async def register(self, tag: str) -> bool:
        """
        태그 등록 (이미 등록된 태그는 그대로 유지)

        Returns:
            bool: 등록 여부 (미지원 환경이면 False)
        """
        if not self.supported:
            logger.info(f"Background sync not supported, skipping registration: {tag}")
            return False

        async with self.database.session() as session:
            async with session.begin():
                if await session.get(SyncRegistrationRecord, tag) is None:
                    session.add(SyncRegistrationRecord(tag=tag))

        logger.info(f"Background sync registered: {tag}")
        return True

    async def get_tags(self) -> List[str]:
        async with self.database.session() as session:
            result = await session.execute(
                select(SyncRegistrationRecord.tag).order_by(
                    SyncRegistrationRecord.registered_at
                )
            )
            return list(result.scalars().all())

    async def unregister(self, tag: str) -> None:
        async with self.database.session() as session:
            async with session.begin():
                await session.execute(
                    delete(SyncRegistrationRecord).where(SyncRegistrationRecord.tag == tag)
                )


class OfflineActionQueue:
    """오프라인 액션 영속 큐 (생성 순서 보장)"""

    def __init__(self, database: OfflineDatabase):
        self.database = database

    async def enqueue(
        self,
        method: str,
        url: str,
        body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> OfflineAction:
        """
        요청을 큐에 추가

        같은 idempotency_key가 이미 있으면 새로 추가하지 않고 기존 액션을 반환합니다.
        """
        key = idempotency_key or str(uuid.uuid4())

        async with self.database.session() as session:
            async with session.begin():
                result = await session.execute(
                    select(OfflineActionRecord).where(
                        OfflineActionRecord.idempotency_key == key
                    )
                )
                existing = result.scalar_one_or_none()
                if existing is not None:
                    logger.debug(f"Offline action already queued: {key}")
                    return OfflineAction._from_record(existing)

                record = OfflineActionRecord(
                    id=str(uuid.uuid4()),
                    idempotency_key=key,
                    method=method.upper(),
                    url=url,
                    body=body,
                    headers=headers or {},
                )
                session.add(record)
                await session.flush()
                action = OfflineAction._from_record(record)

        logger.info(f"Queued offline action: {action.method} {action.url}")
        return action

    async def pending(self) -> List[OfflineAction]:
        async with self.database.session() as session:
            result = await session.execute(
                select(OfflineActionRecord)
                .where(OfflineActionRecord.status == "pending")
                .order_by(OfflineActionRecord.seq)
            )
            return [OfflineAction._from_record(record) for record in result.scalars().all()]

    async def get(self, action_id: str) -> Optional[OfflineAction]:
        async with self.database.session() as session:
            result = await session.execute(
                select(OfflineActionRecord).where(OfflineActionRecord.id == action_id)
            )
            record = result.scalar_one_or_none()
            return OfflineAction._from_record(record) if record else None

    async def _update(self, action_id: str, **values: Any) -> None:
        async with self.database.session() as session:
            async with session.begin():
                result = await session.execute(
                    select(OfflineActionRecord).where(OfflineActionRecord.id == action_id)
                )
                record = result.scalar_one()
                for name, value in values.items():
                    setattr(record, name, value)

    async def mark_completed(self, action_id: str) -> None:
        await self._update(action_id, status="completed", error=None)

    async def mark_failed(self, action_id: str, error: str) -> None:
        await self._update(action_id, status="failed", error=error)

    async def record_retry(self, action: OfflineAction, error: str, max_retries: int) -> None:
        """재시도 횟수 증가, 최대 횟수를 넘으면 failed 처리"""
        retries = action.retries + 1
        status = "failed" if retries >= max_retries else "pending"
        await self._update(action.id, retries=retries, error=error, status=status)

    async def count(self, status: Optional[str] = None) -> int:
        stmt = select(func.count(OfflineActionRecord.seq))
        if status is not None:
            stmt = stmt.where(OfflineActionRecord.status == status)
        async with self.database.session() as session:
            return (await session.execute(stmt)).scalar_one()

    async def clear_completed(self) -> int:
        async with self.database.session() as session:
            async with session.begin():
                result = await session.execute(
                    delete(OfflineActionRecord).where(
                        OfflineActionRecord.status == "completed"
                    )
                )
        return result.rowcount


class BackgroundSync:
    """
    sync 이벤트 처리기

    Args:
        queue: 오프라인 액션 큐
        network: 재전송에 사용할 네트워크 전송 계층
        settings: 동기화 태그, 최대 재시도 횟수, origin (기본값: get_settings())
    """

    def __init__(
        self,
        queue: OfflineActionQueue,
        network: httpx.AsyncBaseTransport,
        settings: Optional[Settings] = None,
    ):
        self.queue = queue
        self.network = network
        self.settings = settings or get_settings()
        self._origin = httpx.URL(self.settings.APP_ORIGIN)

    async def handle_sync(self, tag: str) -> Optional[SyncResult]:
        """알 수 없는 태그는 무시 (None 반환)"""
        if tag != self.settings.SYNC_TAG:
            logger.debug(f"Ignoring sync event for unknown tag: {tag}")
            return None

        logger.info("Background sync triggered")
        return await self.replay()

    def _build_request(self, action: OfflineAction) -> httpx.Request:
        headers = dict(action.headers)
        headers[IDEMPOTENCY_HEADER] = action.idempotency_key
        return httpx.Request(
            action.method,
            self._origin.join(action.url),
            json=action.body,
            headers=headers,
        )

    async def _send(self, request: httpx.Request) -> int:
        response = await self.network.handle_async_request(request)
        try:
            await response.aread()
        finally:
            await response.aclose()
        return response.status_code

    async def replay(self) -> SyncResult:
        """
        대기 중인 액션을 생성 순서대로 재전송

        - 2xx: completed
        - 4xx (408/429 제외): failed, 재시도하지 않음
        - 네트워크 오류: retries + 1, 이후 액션은 다음 sync까지 보류
        - 5xx, 408, 429: retries + 1
        """
        start_time = time.time()
        result = SyncResult()

        for action in await self.queue.pending():
            request = self._build_request(action)
            try:
                status_code = await self._send(request)
            except httpx.TransportError as e:
                error = f"network error: {e!r}"
                await self.queue.record_retry(action, error, self.settings.SYNC_MAX_RETRIES)
                result.errors.append(error)
                logger.warning(f"[WARN] Sync stopped, network unavailable: {action.url}")
                break

            if 200 <= status_code < 300:
                await self.queue.mark_completed(action.id)
                result.processed_count += 1
            elif 400 <= status_code < 500 and status_code not in RETRYABLE_STATUS_CODES:
                error = f"HTTP {status_code}"
                await self.queue.mark_failed(action.id, error)
                result.failed_count += 1
                result.errors.append(f"{action.method} {action.url}: {error}")
                logger.error(f"[FAIL] Offline action rejected: {action.method} {action.url} ({error})")
            else:
                error = f"HTTP {status_code}"
                await self.queue.record_retry(action, error, self.settings.SYNC_MAX_RETRIES)
                result.errors.append(f"{action.method} {action.url}: {error}")

        result.remaining_count = await self.queue.count("pending")
        result.duration_seconds = time.time() - start_time

        logger.info(
            f"[OK] Background sync finished: processed={result.processed_count}, "
            f"failed={result.failed_count}, remaining={result.remaining_count}"
        )
        return result
