"""
클라이언트 키-값 저장소 (localStorage 대응)

값은 JSON으로 직렬화하여 OfflineDatabase에 저장합니다.
상품 목록 오프라인 대체 응답에 쓰이는 cachedProducts 등을 보관합니다.
"""

import json
from typing import Any

from sqlalchemy import delete, select

from pwa_shop.offline.database import LocalStorageRecord, OfflineDatabase
from pwa_shop.utils.logging import get_logger

logger = get_logger(__name__)


class LocalStorage:
    def __init__(self, database: OfflineDatabase):
        self.database = database

    async def get_item(self, key: str, default: Any = None) -> Any:
        """
        키의 값 조회

        저장된 값이 JSON으로 해석되지 않으면 default를 반환합니다.
        """
        async with self.database.session() as session:
            record = await session.get(LocalStorageRecord, key)
            if record is None:
                return default
            raw = record.value

        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"[WARN] Failed to deserialize local storage item '{key}': {e}")
            return default

    async def set_item(self, key: str, value: Any) -> None:
        serialized = json.dumps(value, default=str, ensure_ascii=False)
        async with self.database.session() as session:
            async with session.begin():
                record = await session.get(LocalStorageRecord, key)
                if record is None:
                    session.add(LocalStorageRecord(key=key, value=serialized))
                else:
                    record.value = serialized

    async def remove_item(self, key: str) -> bool:
        async with self.database.session() as session:
            async with session.begin():
                result = await session.execute(
                    delete(LocalStorageRecord).where(LocalStorageRecord.key == key)
                )
        return result.rowcount > 0

    async def keys(self) -> list[str]:
        async with self.database.session() as session:
            result = await session.execute(
                select(LocalStorageRecord.key).order_by(LocalStorageRecord.key)
            )
            return list(result.scalars().all())
