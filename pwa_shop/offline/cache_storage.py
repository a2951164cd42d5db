"""
캐시 저장소 관리자 (Cache Store Manager)

버전이 붙은 이름으로 캐시 파티션을 열고/만들고, 요청 단위로 응답 스냅샷을 저장/조회하며,
오래된 버전의 파티션을 정리할 수 있도록 파티션 이름 목록을 제공합니다.

모든 데이터는 OfflineDatabase(SQLite)에 저장되어 프로세스 재시작 후에도 유지됩니다.

Example:
    ```python
    caches = CacheStorage(database, origin="http://localhost:3000")
    cache = await caches.open("pwa-ecommerce-v1.0.0")
    await cache.put("/offline.html", snapshot)
    cached = await caches.match("/offline.html")
    ```
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional, Union

import httpx
from sqlalchemy import delete, select

from pwa_shop.offline.database import (
    CacheEntryRecord,
    CachePartitionRecord,
    OfflineDatabase,
)
from pwa_shop.utils.exceptions import InstallError
from pwa_shop.utils.logging import get_logger

logger = get_logger(__name__)

# 스냅샷 본문은 디코딩된 바이트이므로 전송 관련 헤더는 저장하지 않음
_TRANSPORT_HEADERS = {"content-encoding", "content-length", "transfer-encoding", "connection"}

RequestLike = Union[httpx.Request, str]
Fetcher = Callable[[httpx.Request], Awaitable[httpx.Response]]


@dataclass(frozen=True)
class CachedResponse:
    """
    캐시된 응답 스냅샷 (불변)

    저장 후에는 변경되지 않으며, 같은 요청의 다음 성공 응답으로 통째로 교체됩니다.
    """

    method: str
    url: str
    status_code: int
    headers: tuple[tuple[str, str], ...]
    body: bytes

    @classmethod
    async def from_response(
        cls, request: httpx.Request, response: httpx.Response
    ) -> "CachedResponse":
        """
        응답 본문을 끝까지 읽어 스냅샷 생성

        Raises:
            httpx.TransportError: 본문 수신 중 연결이 끊긴 경우
        """
        body = await response.aread()
        headers = tuple(
            (key, value)
            for key, value in response.headers.multi_items()
            if key.lower() not in _TRANSPORT_HEADERS
        )
        return cls(
            method=request.method,
            url=str(request.url),
            status_code=response.status_code,
            headers=headers,
            body=body,
        )

    def to_response(self, request: Optional[httpx.Request] = None) -> httpx.Response:
        """스냅샷으로 새 httpx.Response 생성 (extensions["from_cache"]로 출처 표시)"""
        return httpx.Response(
            status_code=self.status_code,
            headers=list(self.headers),
            content=self.body,
            request=request,
            extensions={"from_cache": True},
        )

    @classmethod
    def _from_record(cls, record: CacheEntryRecord) -> "CachedResponse":
        return cls(
            method=record.method,
            url=record.url,
            status_code=record.status_code,
            headers=tuple((key, value) for key, value in record.headers),
            body=record.body,
        )


class Cache:
    """이름으로 식별되는 단일 캐시 파티션"""

    def __init__(self, storage: "CacheStorage", name: str):
        self._storage = storage
        self.name = name

    def __repr__(self) -> str:
        return f"<Cache(name={self.name})>"

    async def match(self, request: RequestLike) -> Optional[CachedResponse]:
        return await self._storage.match(request, cache_name=self.name)

    async def put(
        self, request: RequestLike, response: Union[CachedResponse, httpx.Response]
    ) -> None:
        """
        요청 키에 응답 스냅샷 저장 (같은 키의 기존 항목은 교체)

        메서드 검사는 하지 않습니다. GET 요청만 저장하는 정책은 OfflineTransport가 적용합니다.
        """
        method, url = self._storage.request_key(request)
        if isinstance(response, httpx.Response):
            response = await CachedResponse.from_response(
                self._storage.build_request(request), response
            )

        async with self._storage.database.session() as session:
            async with session.begin():
                await self._storage._ensure_partition(session, self.name)
                await session.execute(
                    delete(CacheEntryRecord).where(
                        CacheEntryRecord.partition_name == self.name,
                        CacheEntryRecord.method == method,
                        CacheEntryRecord.url == url,
                    )
                )
                session.add(
                    CacheEntryRecord(
                        partition_name=self.name,
                        method=method,
                        url=url,
                        status_code=response.status_code,
                        headers=[list(item) for item in response.headers],
                        body=response.body,
                    )
                )

        logger.debug(f"Cached {method} {url} in {self.name}")

    async def add_all(self, urls: Iterable[str], fetch: Fetcher) -> None:
        """
        URL 목록을 모두 가져와 한 번에 저장

        하나라도 실패하거나 200이 아니면 아무것도 저장하지 않습니다.

        Raises:
            InstallError: 가져오기 실패 또는 200이 아닌 응답
        """
        snapshots: list[CachedResponse] = []
        seen: set[tuple[str, str]] = set()
        for url in urls:
            request = self._storage.build_request(url)
            # "/" 와 "/#top" 처럼 같은 항목을 가리키는 URL은 한 번만
            key = self._storage.request_key(request)
            if key in seen:
                continue
            seen.add(key)

            try:
                response = await fetch(request)
                snapshot = await CachedResponse.from_response(request, response)
            except httpx.TransportError as e:
                raise InstallError(url=url, reason=str(e) or type(e).__name__) from e

            if snapshot.status_code != 200:
                raise InstallError(url=url, reason=f"HTTP {snapshot.status_code}")
            snapshots.append(snapshot)

        async with self._storage.database.session() as session:
            async with session.begin():
                await self._storage._ensure_partition(session, self.name)
                for snapshot in snapshots:
                    await session.execute(
                        delete(CacheEntryRecord).where(
                            CacheEntryRecord.partition_name == self.name,
                            CacheEntryRecord.method == snapshot.method,
                            CacheEntryRecord.url == snapshot.url,
                        )
                    )
                    session.add(
                        CacheEntryRecord(
                            partition_name=self.name,
                            method=snapshot.method,
                            url=snapshot.url,
                            status_code=snapshot.status_code,
                            headers=[list(item) for item in snapshot.headers],
                            body=snapshot.body,
                        )
                    )

        logger.info(f"[OK] Pre-cached {len(snapshots)} resources into {self.name}")

    async def keys(self) -> list[tuple[str, str]]:
        """저장된 요청 키 목록 [(method, url), ...]"""
        async with self._storage.database.session() as session:
            result = await session.execute(
                select(CacheEntryRecord.method, CacheEntryRecord.url)
                .where(CacheEntryRecord.partition_name == self.name)
                .order_by(CacheEntryRecord.id)
            )
            return [(method, url) for method, url in result.all()]

    async def delete(self, request: RequestLike) -> bool:
        method, url = self._storage.request_key(request)
        async with self._storage.database.session() as session:
            async with session.begin():
                result = await session.execute(
                    delete(CacheEntryRecord).where(
                        CacheEntryRecord.partition_name == self.name,
                        CacheEntryRecord.method == method,
                        CacheEntryRecord.url == url,
                    )
                )
        return result.rowcount > 0


class CacheStorage:
    """
    캐시 파티션 모음

    상대 URL은 origin 기준으로 절대 URL로 변환한 뒤 키로 사용합니다.
    """

    def __init__(self, database: OfflineDatabase, origin: str):
        self.database = database
        self.origin = httpx.URL(origin)

    def build_request(self, request: RequestLike) -> httpx.Request:
        if isinstance(request, httpx.Request):
            return request
        return httpx.Request("GET", self.origin.join(request))

    def request_key(self, request: RequestLike) -> tuple[str, str]:
        """요청 식별자 (method, fragment 제외 절대 URL)"""
        request = self.build_request(request)
        url = str(request.url).split("#", 1)[0]
        return request.method.upper(), url

    async def _ensure_partition(self, session, name: str) -> None:
        existing = await session.get(CachePartitionRecord, name)
        if existing is None:
            session.add(CachePartitionRecord(name=name))
            await session.flush()

    async def open(self, name: str) -> Cache:
        """이름의 파티션을 열기 (없으면 생성)"""
        async with self.database.session() as session:
            async with session.begin():
                await self._ensure_partition(session, name)
        return Cache(self, name)

    async def has(self, name: str) -> bool:
        async with self.database.session() as session:
            return await session.get(CachePartitionRecord, name) is not None

    async def keys(self) -> list[str]:
        """파티션 이름 목록 (생성 순)"""
        async with self.database.session() as session:
            result = await session.execute(
                select(CachePartitionRecord.name).order_by(
                    CachePartitionRecord.created_at, CachePartitionRecord.name
                )
            )
            return list(result.scalars().all())

    async def delete(self, name: str) -> bool:
        """파티션과 모든 항목 삭제"""
        async with self.database.session() as session:
            async with session.begin():
                await session.execute(
                    delete(CacheEntryRecord).where(CacheEntryRecord.partition_name == name)
                )
                result = await session.execute(
                    delete(CachePartitionRecord).where(CachePartitionRecord.name == name)
                )
        deleted = result.rowcount > 0
        if deleted:
            logger.info(f"Deleted cache partition: {name}")
        return deleted

    async def match(
        self, request: RequestLike, cache_name: Optional[str] = None
    ) -> Optional[CachedResponse]:
        """
        요청에 해당하는 스냅샷 조회

        cache_name이 없으면 모든 파티션을 생성 순으로 검색합니다.
        캐시 미스는 None을 반환합니다.
        """
        method, url = self.request_key(request)
        stmt = (
            select(CacheEntryRecord)
            .join(
                CachePartitionRecord,
                CachePartitionRecord.name == CacheEntryRecord.partition_name,
            )
            .where(CacheEntryRecord.method == method, CacheEntryRecord.url == url)
        )
        if cache_name is not None:
            stmt = stmt.where(CacheEntryRecord.partition_name == cache_name)
        stmt = stmt.order_by(
            CachePartitionRecord.created_at, CachePartitionRecord.name
        ).limit(1)

        async with self.database.session() as session:
            result = await session.execute(stmt)
            record = result.scalar_one_or_none()

        if record is None:
            return None
        return CachedResponse._from_record(record)
